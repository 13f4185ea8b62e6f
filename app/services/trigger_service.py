# services/trigger_service.py
"""
Trigger scheduler.
Scans every user's subjects for classes happening today and creates at most one
pending TriggerJob per (user, subject, date).
"""

import logging
from collections import Counter
from datetime import datetime, time

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.extensions import db
from app.models.user import User
from app.models.trigger_job import TriggerJob, JobStatus
from app.services.attendance_service import AttendanceService
from app.utils.clock import local_now, minute_of_day
from app.utils.schedule import intervals_for_day, open_intervals, trigger_minute, format_minute_of_day

logger = logging.getLogger('trigger_service')


class ScanResult:
    """Per-subject scan outcomes."""
    QUEUED = 'queued'
    OPTED_OUT = 'opted_out'
    NO_CLASS_TODAY = 'no_class_today'
    CLASS_ENDED = 'class_ended'
    MISSING_LOCATION = 'missing_location'
    MISSING_PUSH_ADDRESS = 'missing_push_address'
    ALREADY_DECIDED = 'already_decided'
    ALREADY_QUEUED = 'already_queued'


def _at_minute(day, minute):
    return datetime.combine(day, time(minute // 60, minute % 60))


class TriggerService:

    @staticmethod
    def scan_classes(now=None):
        """
        Run one scan pass over all users and subjects.

        Args:
            now: Local naive "now" used for the whole pass (defaults to the scheduler clock)

        Returns:
            dict: Scan summary with counts per outcome
        """
        now = now or local_now()
        day_name = now.strftime('%A').lower()
        policy = current_app.config.get('TRIGGER_POLICY', 'midpoint')

        logger.info(f"Scanning for classes on {day_name} - {now.strftime('%H:%M:%S')}")

        outcomes = Counter()
        summary = {
            'day': day_name,
            'date': now.date().isoformat(),
            'scanned_at': now.isoformat(),
            'users': 0,
            'subjects': 0,
            'queued': 0,
            'skipped': 0,
            'errors': 0,
        }

        try:
            user_ids = [user_id for (user_id,) in db.session.query(User.id).order_by(User.created_at).all()]
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Could not list users for scan: {str(e)}")
            summary['errors'] += 1
            summary['outcomes'] = dict(outcomes)
            return summary

        for user_id in user_ids:
            try:
                user = db.session.get(User, user_id)
                subjects = list(user.subjects) if user else []
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error(f"Skipping user {user_id} this cycle: {str(e)}")
                summary['errors'] += 1
                continue

            summary['users'] += 1

            for subject in subjects:
                subject_id = subject.id
                summary['subjects'] += 1
                try:
                    result = TriggerService.schedule_subject(user, subject, now, policy=policy)
                except SQLAlchemyError as e:
                    db.session.rollback()
                    logger.error(f"Skipping subject {subject_id} of user {user_id} this cycle: {str(e)}")
                    summary['errors'] += 1
                    continue

                outcomes[result] += 1
                if result == ScanResult.QUEUED:
                    summary['queued'] += 1
                else:
                    summary['skipped'] += 1

        summary['outcomes'] = dict(outcomes)
        logger.info(f"Summary: {summary['queued']} classes queued, {summary['skipped']} skipped, "
                    f"{summary['errors']} errors")
        return summary

    @staticmethod
    def schedule_subject(user, subject, now, policy='midpoint'):
        """
        Decide whether a TriggerJob must be created for one subject today.

        Returns:
            str: A ScanResult value
        """
        if not subject.is_scheduled:
            return ScanResult.OPTED_OUT

        intervals = intervals_for_day(subject.schedule, now.strftime('%A'))
        if not intervals:
            return ScanResult.NO_CLASS_TODAY

        now_minute = minute_of_day(now)
        remaining = open_intervals(intervals, now_minute)
        if not remaining:
            return ScanResult.CLASS_ENDED

        if not subject.has_location:
            logger.warning(f"No class location set for subject {subject.id}; not scheduling a check")
            return ScanResult.MISSING_LOCATION

        if not user.has_push_address:
            logger.warning(f"No push address for user {user.id}; not scheduling a check for {subject.id}")
            return ScanResult.MISSING_PUSH_ADDRESS

        today = now.date()

        if AttendanceService.is_day_decided(user.id, subject.id, today):
            return ScanResult.ALREADY_DECIDED

        if TriggerService.job_exists(user.id, subject.id, today):
            return ScanResult.ALREADY_QUEUED

        interval = remaining[0]
        trigger_at = _at_minute(today, trigger_minute(interval, policy))
        if trigger_at < now:
            # Class is still running; check right away
            trigger_at = now

        job = TriggerJob(
            user_id=user.id,
            subject_id=subject.id,
            class_date=today,
            trigger_at=trigger_at,
            class_start_at=_at_minute(today, interval.start),
            class_end_at=_at_minute(today, interval.end),
            status=JobStatus.PENDING
        )

        try:
            db.session.add(job)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.debug(f"Job for {user.id}/{subject.id} on {today} created by another scan")
            return ScanResult.ALREADY_QUEUED

        minutes_until = max(0, int((trigger_at - now).total_seconds() // 60))
        logger.info(f"Queuing class {subject.id} for {user.id} "
                    f"({format_minute_of_day(interval.start)}-{format_minute_of_day(interval.end)}, "
                    f"check in {minutes_until} mins)")
        return ScanResult.QUEUED

    @staticmethod
    def job_exists(user_id, subject_id, class_date):
        return db.session.query(
            db.session.query(TriggerJob.id)
            .filter_by(user_id=user_id, subject_id=subject_id, class_date=class_date)
            .exists()
        ).scalar()
