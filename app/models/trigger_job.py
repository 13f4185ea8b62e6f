# models/trigger_job.py
import uuid
from datetime import timedelta
from sqlalchemy import Index

from app.extensions import db
from .base import BaseModel


class JobStatus:
    PENDING = 'pending'
    DISPATCHED = 'dispatched'
    RESOLVED = 'resolved'


class JobOutcome:
    PRESENT = 'present'
    ABSENT = 'absent'
    CANNOT_EVALUATE = 'cannot_evaluate'
    DISPATCH_FAILED = 'dispatch_failed'
    EXPIRED = 'expired'


class TriggerJob(BaseModel):
    """One location check for a (user, subject, class date)."""

    __tablename__ = 'trigger_job'

    user_id = db.Column(db.String(36), nullable=False)
    subject_id = db.Column(db.String(36), nullable=False)
    class_date = db.Column(db.Date, nullable=False)
    trigger_at = db.Column(db.DateTime, nullable=False)
    class_start_at = db.Column(db.DateTime, nullable=True)
    class_end_at = db.Column(db.DateTime, nullable=True)

    status = db.Column(db.String(12), default=JobStatus.PENDING, nullable=False)
    correlation_id = db.Column(db.String(36), nullable=False, default=lambda: str(uuid.uuid4()))
    dispatched_at = db.Column(db.DateTime, nullable=True)
    resolved_at = db.Column(db.DateTime, nullable=True)

    outcome = db.Column(db.String(20), nullable=True)
    reason = db.Column(db.String(40), nullable=True)
    distance_m = db.Column(db.Float, nullable=True)
    location_sample_id = db.Column(db.String(36), nullable=True)

    __table_args__ = (
        # One verification per user, subject and calendar day
        Index('uq_trigger_job_user_subject_date', 'user_id', 'subject_id', 'class_date', unique=True),
        Index('idx_trigger_job_status_trigger', 'status', 'trigger_at'),
        Index('idx_trigger_job_status_dispatched', 'status', 'dispatched_at'),
        Index('idx_trigger_job_status_date', 'status', 'class_date'),
    )

    @property
    def is_pending(self):
        return self.status == JobStatus.PENDING

    @property
    def is_dispatched(self):
        return self.status == JobStatus.DISPATCHED

    @property
    def is_resolved(self):
        return self.status == JobStatus.RESOLVED

    def grace_deadline(self, grace_minutes):
        """Instant after which a dispatched job resolves without waiting for the device."""
        if not self.dispatched_at:
            return None
        return self.dispatched_at + timedelta(minutes=grace_minutes)

    def in_grace_window(self, instant, grace_minutes):
        deadline = self.grace_deadline(grace_minutes)
        return deadline is not None and self.dispatched_at <= instant <= deadline

    def __repr__(self):
        return f'<TriggerJob {self.user_id}/{self.subject_id} {self.class_date} {self.status}>'
