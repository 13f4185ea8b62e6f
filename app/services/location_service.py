# services/location_service.py
"""
Location ingest.
Stores every location sample a device submits and, when it answers an open
location request, lets the job resolve without waiting for the grace window.
"""

import logging
from datetime import datetime

from flask import current_app

from app.extensions import db
from app.models.location_sample import LocationSample
from app.models.subject import Subject
from app.services.job_queue_service import JobQueueService
from app.utils.clock import local_now, to_local_naive, from_epoch

logger = logging.getLogger('location_service')


def _coordinate(value, name, limit):
    if value is None or isinstance(value, bool):
        raise ValueError(f"{name} is required")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number")
    if not -limit <= number <= limit:
        raise ValueError(f"{name} must be between -{limit} and {limit}")
    return number


def parse_capture_time(value, now):
    """
    Normalize a device capture time to naive scheduler-zone time.

    Accepts ISO-8601 strings, epoch seconds or epoch milliseconds. Missing values
    and values in the future fall back to now.
    """
    if value is None or value == '':
        return now

    try:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            captured = from_epoch(value)
        elif isinstance(value, datetime):
            captured = to_local_naive(value)
        else:
            text = str(value).strip()
            if text.endswith('Z'):
                text = text[:-1] + '+00:00'
            captured = to_local_naive(datetime.fromisoformat(text))
    except (TypeError, ValueError, OverflowError, OSError):
        raise ValueError(f"Invalid capture time: {value!r}")

    return min(captured, now)


class LocationService:

    @staticmethod
    def submit_location(user_id, subject_id, latitude, longitude, captured_at=None, accuracy=None, now=None):
        """
        Accept a location sample from a device.

        Args:
            user_id: User identifier
            subject_id: Subject identifier
            latitude: Decimal degrees
            longitude: Decimal degrees
            captured_at: Optional capture time (ISO-8601 or epoch)
            accuracy: Optional reported GPS accuracy in metres
            now: Receive instant (local naive)

        Returns:
            dict: success, sample_id, evaluated and, when evaluated, the job outcome

        Raises:
            ValueError: Invalid input
            LookupError: Unknown subject for this user
        """
        now = now or local_now()

        if not user_id or not subject_id:
            raise ValueError("userId and subjectId are required")

        latitude = _coordinate(latitude, 'latitude', 90)
        longitude = _coordinate(longitude, 'longitude', 180)
        captured = parse_capture_time(captured_at, now)

        if accuracy is not None:
            try:
                accuracy = float(accuracy)
            except (TypeError, ValueError):
                raise ValueError("accuracy must be a number")

        subject = db.session.get(Subject, subject_id)
        if subject is None or subject.user_id != user_id:
            raise LookupError(f"Subject {subject_id} not found for user {user_id}")

        sample = LocationSample(
            user_id=user_id,
            subject_id=subject_id,
            latitude=latitude,
            longitude=longitude,
            accuracy_m=accuracy,
            captured_at=captured,
            received_at=now
        )

        job = JobQueueService.find_open_job(user_id, subject_id, captured.date())
        grace = current_app.config.get('GRACE_WINDOW_MINUTES', 5)
        answers_job = job is not None and job.in_grace_window(captured, grace) and job.in_grace_window(now, grace)
        if answers_job:
            sample.trigger_job_id = job.id

        db.session.add(sample)
        db.session.commit()
        logger.info(f"Location stored for user {user_id}, subject {subject_id}")

        response = {
            'success': True,
            'sample_id': sample.id,
            'evaluated': False,
            'message': 'Location submitted successfully'
        }

        if not answers_job:
            # Kept for audit only
            return response

        if current_app.config.get('IMMEDIATE_EVALUATION', True):
            resolved = JobQueueService.resolve_job(job, now, sample=sample)
            db.session.refresh(job)
            response.update({
                'evaluated': resolved,
                'job_id': job.id,
                'outcome': job.outcome,
                'reason': job.reason,
                'distance_m': job.distance_m
            })

        return response
