# models/user.py
from app.extensions import db
from .base import BaseModel


class User(BaseModel):
    """A device owner whose subjects are verified automatically."""

    __tablename__ = 'app_user'

    display_name = db.Column(db.String(120), nullable=True)
    # Opaque device push address (FCM registration token)
    push_token = db.Column(db.String(512), nullable=True)

    subjects = db.relationship('Subject', back_populates='user', lazy='select',
                               order_by='Subject.created_at', cascade='all, delete-orphan')

    @property
    def has_push_address(self):
        return bool(self.push_token and self.push_token.strip())

    def __repr__(self):
        return f'<User {self.id}>'
