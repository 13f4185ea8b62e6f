# services/geofence_service.py
"""
Geofence evaluator: the authoritative present/absent decision for a class day.
"""

import logging
from datetime import timedelta

from flask import current_app

from app.models.attendance import AttendanceStatus
from app.services.attendance_service import AttendanceService
from app.utils.clock import local_now
from app.utils.geo import is_within_geofence

logger = logging.getLogger('geofence_service')


class EvaluationOutcome:
    PRESENT = 'present'
    ABSENT = 'absent'
    ALREADY_DECIDED = 'already_decided'
    CANNOT_EVALUATE = 'cannot_evaluate'


class EvaluationReason:
    WITHIN_RANGE = 'within_range'
    OUT_OF_RANGE = 'out_of_range'
    NO_TIMELY_LOCATION = 'no_timely_location'
    MISSING_CLASS_LOCATION = 'missing_class_location'


class GeofenceService:

    @staticmethod
    def evaluate(subject, sample, on_date, window_start=None, window_end=None, trigger_job_id=None, now=None):
        """
        Decide and record attendance for one subject on one calendar day.

        Args:
            subject: Subject with its registered class location
            sample: Candidate LocationSample or None
            on_date: Calendar date being decided
            window_start: Earliest capture time accepted (defaults to now minus the grace window)
            window_end: Latest capture time accepted (defaults to now)
            trigger_job_id: Job the decision belongs to, kept for audit
            now: Evaluation instant (local naive)

        Returns:
            dict: success, outcome, reason, distance_m, day, month_year, message
        """
        now = now or local_now()
        if window_end is None:
            window_end = now
        if window_start is None:
            window_start = window_end - timedelta(minutes=current_app.config.get('GRACE_WINDOW_MINUTES', 5))

        user_id = subject.user_id
        response = {
            'success': True,
            'user_id': user_id,
            'subject_id': subject.id,
            'day': on_date.day,
            'month_year': AttendanceService.month_key(on_date),
            'reason': None,
            'distance_m': None
        }

        # 1. Idempotency gate
        existing = AttendanceService.get_entry(user_id, subject.id, on_date)
        if existing:
            response.update({
                'outcome': EvaluationOutcome.ALREADY_DECIDED,
                'decided_status': existing.status,
                'message': f'Attendance already marked {existing.status} for day {on_date.day}'
            })
            return response

        # 2. Mis-configured class, not the user's fault
        if not subject.has_location:
            logger.warning(f"No class location set for subject {subject.id}")
            response.update({
                'success': False,
                'outcome': EvaluationOutcome.CANNOT_EVALUATE,
                'reason': EvaluationReason.MISSING_CLASS_LOCATION,
                'message': 'Class location is not configured'
            })
            return response

        # 3. Decide
        if sample is None or not (window_start <= sample.captured_at <= window_end):
            status = AttendanceStatus.ABSENT
            reason = EvaluationReason.NO_TIMELY_LOCATION
            distance = None
        else:
            within, distance = is_within_geofence(
                sample.latitude, sample.longitude,
                subject.latitude, subject.longitude,
                subject.geofence_radius
            )
            status = AttendanceStatus.PRESENT if within else AttendanceStatus.ABSENT
            reason = EvaluationReason.WITHIN_RANGE if within else EvaluationReason.OUT_OF_RANGE
            distance = round(distance, 2)

        # 4. Commit through the idempotent union write
        written = AttendanceService.mark_day(
            user_id, subject.id, on_date, status,
            reason=reason, distance_m=distance, trigger_job_id=trigger_job_id
        )

        if not written:
            existing = AttendanceService.get_entry(user_id, subject.id, on_date)
            response.update({
                'outcome': EvaluationOutcome.ALREADY_DECIDED,
                'decided_status': existing.status if existing else None,
                'message': f'Attendance already marked for day {on_date.day}'
            })
            return response

        response.update({
            'outcome': status,
            'reason': reason,
            'distance_m': distance,
            'message': f'Marked {status} ({reason})'
        })
        return response
