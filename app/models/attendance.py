# models/attendance.py
from sqlalchemy import Index

from app.extensions import db
from .base import BaseModel


class AttendanceStatus:
    PRESENT = 'present'
    ABSENT = 'absent'


class AttendanceEntry(BaseModel):
    """
    One decided day of an attendance record.

    The logical record for (user, subject, month_year) is the set of its entries
    split by status. The unique index keeps every day in at most one of the two sets.
    """

    __tablename__ = 'attendance_entry'

    user_id = db.Column(db.String(36), db.ForeignKey('app_user.id'), nullable=False)
    subject_id = db.Column(db.String(36), db.ForeignKey('subject.id'), nullable=False)
    month_year = db.Column(db.String(20), nullable=False)  # e.g. 'march 2025'
    day = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(10), nullable=False)
    reason = db.Column(db.String(40), nullable=True)
    distance_m = db.Column(db.Float, nullable=True)
    trigger_job_id = db.Column(db.String(36), nullable=True)

    __table_args__ = (
        Index('uq_attendance_user_subject_month_day', 'user_id', 'subject_id', 'month_year', 'day', unique=True),
        Index('idx_attendance_user_subject_month', 'user_id', 'subject_id', 'month_year'),
    )

    def __repr__(self):
        return f'<AttendanceEntry {self.subject_id} {self.month_year} day {self.day} {self.status}>'
