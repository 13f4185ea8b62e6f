# models/location_sample.py
from datetime import datetime
from sqlalchemy import Index

from app.extensions import db
from .base import BaseModel


class LocationSample(BaseModel):
    __tablename__ = 'location_sample'

    user_id = db.Column(db.String(36), nullable=False)
    subject_id = db.Column(db.String(36), nullable=False)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    accuracy_m = db.Column(db.Float, nullable=True)
    captured_at = db.Column(db.DateTime, nullable=False)
    received_at = db.Column(db.DateTime, default=datetime.now, nullable=False)
    trigger_job_id = db.Column(db.String(36), nullable=True, index=True)

    __table_args__ = (
        Index('idx_location_user_subject_captured', 'user_id', 'subject_id', 'captured_at'),
    )

    def __repr__(self):
        return f'<LocationSample {self.user_id}/{self.subject_id} @ {self.captured_at}>'
