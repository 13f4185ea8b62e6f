# services/job_queue_service.py
"""
Job queue.
Fires a location request for each due TriggerJob, resolves dispatched jobs once their
grace window has elapsed and purges old bookkeeping. Every status change is a
compare-and-set update so each stage is entered at most once per job.
"""

import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db, notification_service
from app.models.location_sample import LocationSample
from app.models.subject import Subject
from app.models.trigger_job import TriggerJob, JobStatus, JobOutcome
from app.models.user import User
from app.services.geofence_service import GeofenceService, EvaluationOutcome
from app.utils.clock import local_now

logger = logging.getLogger('job_queue_service')

LOCATION_REQUEST = 'location_request'


def _grace_minutes():
    return current_app.config.get('GRACE_WINDOW_MINUTES', 5)


class JobQueueService:

    @staticmethod
    def _transition(job_id, from_status, **values):
        """
        Move a job out of from_status. Returns False when another path got there first.
        """
        updated = (
            db.session.query(TriggerJob)
            .filter(TriggerJob.id == job_id, TriggerJob.status == from_status)
            .update(values, synchronize_session=False)
        )
        db.session.commit()
        return updated == 1

    @staticmethod
    def process_queue(now=None):
        """
        Fire due jobs, then resolve those whose grace window has passed.

        Returns:
            dict: Counts for this cycle
        """
        now = now or local_now()
        summary = {'processed_at': now.isoformat()}
        summary.update(JobQueueService.fire_due_jobs(now))
        summary.update(JobQueueService.resolve_expired_jobs(now))
        return summary

    @staticmethod
    def fire_due_jobs(now=None):
        now = now or local_now()
        counts = {'dispatched': 0, 'dispatch_failed': 0, 'expired': 0, 'errors': 0}

        try:
            job_ids = [
                job_id for (job_id,) in
                db.session.query(TriggerJob.id)
                .filter(TriggerJob.status == JobStatus.PENDING, TriggerJob.trigger_at <= now)
                .order_by(TriggerJob.trigger_at)
                .all()
            ]
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Could not load due jobs: {str(e)}")
            counts['errors'] += 1
            return counts

        for job_id in job_ids:
            try:
                result = JobQueueService.fire_job(job_id, now)
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error(f"Failed to fire job {job_id}: {str(e)}")
                counts['errors'] += 1
                continue

            if result in counts:
                counts[result] += 1

        return counts

    @staticmethod
    def fire_job(job_id, now):
        """
        Dispatch the location request for one pending job.

        Returns:
            str or None: 'dispatched', 'dispatch_failed', 'expired', or None when the job was not pending
        """
        job = db.session.get(TriggerJob, job_id)
        if job is None or not job.is_pending:
            return None

        # Missed while the process was down; the class is over
        if job.class_end_at and now >= job.class_end_at + timedelta(minutes=1):
            if JobQueueService._transition(job_id, JobStatus.PENDING, status=JobStatus.RESOLVED,
                                           outcome=JobOutcome.EXPIRED, resolved_at=now):
                logger.warning(f"Job {job_id} for {job.user_id}/{job.subject_id} expired before dispatch")
                return 'expired'
            return None

        if not JobQueueService._transition(job_id, JobStatus.PENDING, status=JobStatus.DISPATCHED,
                                           dispatched_at=now):
            return None

        user = db.session.get(User, job.user_id)
        payload = {
            'type': LOCATION_REQUEST,
            'userId': job.user_id,
            'subjectId': job.subject_id,
            'correlationId': job.correlation_id
        }

        logger.info(f"Triggering location request for user {job.user_id}, subject {job.subject_id}")
        sent = notification_service.dispatch(user.push_token if user else None, payload)

        if not sent:
            JobQueueService._transition(job_id, JobStatus.DISPATCHED, status=JobStatus.RESOLVED,
                                        outcome=JobOutcome.DISPATCH_FAILED, resolved_at=now)
            return 'dispatch_failed'

        return 'dispatched'

    @staticmethod
    def resolve_expired_jobs(now=None):
        now = now or local_now()
        cutoff = now - timedelta(minutes=_grace_minutes())
        counts = {'resolved': 0, 'errors': 0}

        try:
            jobs = (
                db.session.query(TriggerJob)
                .filter(TriggerJob.status == JobStatus.DISPATCHED, TriggerJob.dispatched_at <= cutoff)
                .order_by(TriggerJob.dispatched_at)
                .all()
            )
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Could not load dispatched jobs: {str(e)}")
            counts['errors'] += 1
            return counts

        for job in jobs:
            job_id = job.id
            try:
                if JobQueueService.resolve_job(job, now):
                    counts['resolved'] += 1
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error(f"Failed to resolve job {job_id}: {str(e)}")
                counts['errors'] += 1

        return counts

    @staticmethod
    def freshest_sample(job):
        """Latest sample for the job's user and subject captured inside its grace window."""
        deadline = job.grace_deadline(_grace_minutes())
        return (
            db.session.query(LocationSample)
            .filter(
                LocationSample.user_id == job.user_id,
                LocationSample.subject_id == job.subject_id,
                LocationSample.captured_at >= job.dispatched_at,
                LocationSample.captured_at <= deadline
            )
            .order_by(LocationSample.captured_at.desc())
            .first()
        )

    @staticmethod
    def resolve_job(job, now, sample=None):
        """
        Evaluate attendance for a dispatched job and mark it resolved.

        Args:
            job: Dispatched TriggerJob
            now: Resolution instant
            sample: Sample to use; the freshest one in the grace window when omitted

        Returns:
            bool: True when this call resolved the job
        """
        if not job.is_dispatched:
            return False

        job_id = job.id
        subject = db.session.get(Subject, job.subject_id)
        if subject is None:
            logger.warning(f"Subject {job.subject_id} no longer exists; closing job {job_id}")
            return JobQueueService._transition(job_id, JobStatus.DISPATCHED, status=JobStatus.RESOLVED,
                                               outcome=JobOutcome.CANNOT_EVALUATE, resolved_at=now)

        if sample is None:
            sample = JobQueueService.freshest_sample(job)

        result = GeofenceService.evaluate(
            subject, sample, job.class_date,
            window_start=job.dispatched_at,
            window_end=job.grace_deadline(_grace_minutes()),
            trigger_job_id=job_id,
            now=now
        )

        outcome = result['outcome']
        reason = result.get('reason')
        if outcome == EvaluationOutcome.ALREADY_DECIDED:
            # The ledger holds the decision that counts
            outcome = result.get('decided_status')
            reason = EvaluationOutcome.ALREADY_DECIDED

        resolved = JobQueueService._transition(
            job_id, JobStatus.DISPATCHED,
            status=JobStatus.RESOLVED,
            outcome=outcome,
            reason=reason,
            distance_m=result.get('distance_m'),
            location_sample_id=sample.id if sample else None,
            resolved_at=now
        )

        if resolved:
            logger.info(f"Resolved job {job_id} for {result['user_id']}/{result['subject_id']}: "
                        f"{outcome} ({reason})")
        else:
            logger.debug(f"Job {job_id} was already resolved by another path")
        return resolved

    @staticmethod
    def purge_stale_jobs(now=None):
        """
        Delete resolved jobs past JOB_RETENTION_DAYS and samples past SAMPLE_RETENTION_DAYS.

        Returns:
            dict: Number of deleted jobs and samples
        """
        now = now or local_now()
        job_cutoff = now.date() - timedelta(days=current_app.config.get('JOB_RETENTION_DAYS', 2))
        sample_cutoff = now - timedelta(days=current_app.config.get('SAMPLE_RETENTION_DAYS', 30))

        try:
            jobs_deleted = (
                db.session.query(TriggerJob)
                .filter(TriggerJob.status == JobStatus.RESOLVED, TriggerJob.class_date < job_cutoff)
                .delete(synchronize_session=False)
            )
            samples_deleted = (
                db.session.query(LocationSample)
                .filter(LocationSample.captured_at < sample_cutoff)
                .delete(synchronize_session=False)
            )
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Failed to purge stale jobs: {str(e)}")
            return {'success': False, 'jobs_deleted': 0, 'samples_deleted': 0}

        if jobs_deleted or samples_deleted:
            logger.info(f"Purged {jobs_deleted} resolved jobs and {samples_deleted} location samples")
        return {'success': True, 'jobs_deleted': jobs_deleted, 'samples_deleted': samples_deleted}

    @staticmethod
    def find_open_job(user_id, subject_id, class_date):
        return (
            db.session.query(TriggerJob)
            .filter_by(user_id=user_id, subject_id=subject_id, class_date=class_date,
                       status=JobStatus.DISPATCHED)
            .first()
        )

    @staticmethod
    def get_status():
        """
        Pending jobs with their scheduled instants, for observability.
        """
        pending = (
            db.session.query(TriggerJob)
            .filter_by(status=JobStatus.PENDING)
            .order_by(TriggerJob.trigger_at)
            .all()
        )
        dispatched_count = db.session.query(TriggerJob).filter_by(status=JobStatus.DISPATCHED).count()

        return {
            'pending_count': len(pending),
            'dispatched_count': dispatched_count,
            'pending': [
                {
                    'user_id': job.user_id,
                    'subject_id': job.subject_id,
                    'scheduled_at': job.trigger_at.isoformat(),
                    'class_date': job.class_date.isoformat()
                }
                for job in pending
            ]
        }
