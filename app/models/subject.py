# models/subject.py
from flask import current_app
from sqlalchemy import Index

from app.extensions import db
from .base import BaseModel


class Subject(BaseModel):
    __tablename__ = 'subject'

    user_id = db.Column(db.String(36), db.ForeignKey('app_user.id'), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)

    # {"monday": {"start": "09:00", "end": "10:00"}, "Friday": [{...}, {...}]}
    schedule = db.Column(db.JSON, nullable=False, default=dict)

    # Registered classroom location; unset when either coordinate is missing
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    radius_m = db.Column(db.Float, nullable=True)

    # None means the subject predates the opt-in flag and is always scheduled
    auto_attendance = db.Column(db.Boolean, nullable=True)

    user = db.relationship('User', back_populates='subjects')

    __table_args__ = (
        Index('idx_subject_user_auto', 'user_id', 'auto_attendance'),
    )

    @property
    def has_location(self):
        return self.latitude is not None and self.longitude is not None

    @property
    def geofence_radius(self):
        """Radius in metres, falling back to the configured default."""
        if self.radius_m is not None and self.radius_m > 0:
            return float(self.radius_m)
        return float(current_app.config.get('DEFAULT_GEOFENCE_RADIUS', 50))

    @property
    def is_scheduled(self):
        return self.auto_attendance is not False

    def __repr__(self):
        return f'<Subject {self.name} ({self.id})>'
