# models/__init__.py
from .base import BaseModel
from .user import User
from .subject import Subject
from .attendance import AttendanceEntry, AttendanceStatus
from .location_sample import LocationSample
from .trigger_job import TriggerJob, JobStatus, JobOutcome

__all__ = [
    'BaseModel',
    'User',
    'Subject',
    'AttendanceEntry',
    'AttendanceStatus',
    'LocationSample',
    'TriggerJob',
    'JobStatus',
    'JobOutcome'
]
