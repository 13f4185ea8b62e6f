from datetime import date, datetime, timedelta

from app.extensions import db, notification_service
from app.models import TriggerJob, JobStatus, JobOutcome, LocationSample
from app.services.attendance_service import AttendanceService
from app.services.job_queue_service import JobQueueService
from app.services.location_service import LocationService
from app.services.trigger_service import TriggerService
from tests.conftest import MONDAY_8AM

TRIGGER_AT = datetime(2025, 3, 3, 9, 30)


def _queued_job(make_subject, **subject_kwargs):
    subject = make_subject(**subject_kwargs)
    TriggerService.scan_classes(now=MONDAY_8AM)
    job = db.session.query(TriggerJob).filter_by(subject_id=subject.id).one()
    return subject, job


def _add_sample(subject, latitude, longitude, captured_at):
    sample = LocationSample(user_id=subject.user_id, subject_id=subject.id,
                            latitude=latitude, longitude=longitude,
                            captured_at=captured_at, received_at=captured_at)
    db.session.add(sample)
    db.session.commit()
    return sample


def test_job_not_fired_before_trigger_time(make_subject):
    _, job = _queued_job(make_subject)
    counts = JobQueueService.fire_due_jobs(now=TRIGGER_AT - timedelta(minutes=1))

    assert counts['dispatched'] == 0
    assert db.session.get(TriggerJob, job.id).status == JobStatus.PENDING


def test_due_job_dispatched_once(make_subject, monkeypatch):
    _, job = _queued_job(make_subject)
    calls = []
    monkeypatch.setattr(notification_service, 'dispatch',
                        lambda address, payload: calls.append((address, payload)) or True)

    assert JobQueueService.fire_due_jobs(now=TRIGGER_AT)['dispatched'] == 1
    assert JobQueueService.fire_due_jobs(now=TRIGGER_AT + timedelta(seconds=15))['dispatched'] == 0

    job = db.session.get(TriggerJob, job.id)
    assert job.status == JobStatus.DISPATCHED
    assert job.dispatched_at == TRIGGER_AT

    assert len(calls) == 1
    address, payload = calls[0]
    assert address == 'token-u1'
    assert payload == {
        'type': 'location_request',
        'userId': 'u1',
        'subjectId': job.subject_id,
        'correlationId': job.correlation_id,
    }


def test_dispatch_failure_resolves_without_decision(make_subject, monkeypatch):
    subject, job = _queued_job(make_subject)
    monkeypatch.setattr(notification_service, 'dispatch', lambda address, payload: False)

    counts = JobQueueService.fire_due_jobs(now=TRIGGER_AT)
    assert counts['dispatch_failed'] == 1

    job = db.session.get(TriggerJob, job.id)
    assert job.status == JobStatus.RESOLVED
    assert job.outcome == JobOutcome.DISPATCH_FAILED
    assert AttendanceService.get_entry('u1', subject.id, date(2025, 3, 3)) is None

    # No retry
    assert JobQueueService.fire_due_jobs(now=TRIGGER_AT + timedelta(minutes=1))['dispatched'] == 0


def test_missed_pending_job_expires(make_subject):
    subject, job = _queued_job(make_subject)
    counts = JobQueueService.fire_due_jobs(now=datetime(2025, 3, 3, 10, 5))

    assert counts['expired'] == 1
    job = db.session.get(TriggerJob, job.id)
    assert job.status == JobStatus.RESOLVED
    assert job.outcome == JobOutcome.EXPIRED
    assert AttendanceService.get_entry('u1', subject.id, date(2025, 3, 3)) is None


def test_no_show_marked_absent_after_grace(make_subject):
    subject, job = _queued_job(make_subject)
    JobQueueService.fire_due_jobs(now=TRIGGER_AT)

    # Still inside the grace window
    assert JobQueueService.resolve_expired_jobs(now=TRIGGER_AT + timedelta(minutes=4))['resolved'] == 0

    assert JobQueueService.resolve_expired_jobs(now=TRIGGER_AT + timedelta(minutes=5))['resolved'] == 1
    assert JobQueueService.resolve_expired_jobs(now=TRIGGER_AT + timedelta(minutes=6))['resolved'] == 0

    job = db.session.get(TriggerJob, job.id)
    assert job.status == JobStatus.RESOLVED
    assert job.outcome == 'absent'
    assert job.reason == 'no_timely_location'

    record = AttendanceService.get_attendance_record('u1', subject.id, 'march 2025')
    assert record == {'month_year': 'march 2025', 'present': [], 'absent': [3]}


def test_freshest_sample_in_window_decides(make_subject):
    subject, job = _queued_job(make_subject)
    JobQueueService.fire_due_jobs(now=TRIGGER_AT)

    # Before dispatch: ignored
    _add_sample(subject, 0.0, 0.0, TRIGGER_AT - timedelta(minutes=1))
    _add_sample(subject, 1.0, 1.0, TRIGGER_AT + timedelta(minutes=1))
    fresh = _add_sample(subject, 0.0001, 0.0, TRIGGER_AT + timedelta(minutes=3))

    JobQueueService.resolve_expired_jobs(now=TRIGGER_AT + timedelta(minutes=5))

    job = db.session.get(TriggerJob, job.id)
    assert job.outcome == 'present'
    assert job.reason == 'within_range'
    assert job.location_sample_id == fresh.id
    assert AttendanceService.get_entry('u1', subject.id, date(2025, 3, 3)).status == 'present'


def test_already_decided_day_keeps_ledger_status(make_subject):
    subject, job = _queued_job(make_subject)
    JobQueueService.fire_due_jobs(now=TRIGGER_AT)
    AttendanceService.mark_day('u1', subject.id, date(2025, 3, 3), 'present')

    JobQueueService.resolve_expired_jobs(now=TRIGGER_AT + timedelta(minutes=5))

    job = db.session.get(TriggerJob, job.id)
    assert job.status == JobStatus.RESOLVED
    assert job.outcome == 'present'
    assert job.reason == 'already_decided'


def test_process_queue_runs_both_stages(make_subject):
    _queued_job(make_subject)
    summary = JobQueueService.process_queue(now=TRIGGER_AT)

    assert summary['dispatched'] == 1
    assert summary['resolved'] == 0
    assert summary['processed_at'] == TRIGGER_AT.isoformat()


def test_status_lists_pending_jobs(make_subject):
    _, job = _queued_job(make_subject)
    status = JobQueueService.get_status()

    assert status['pending_count'] == 1
    assert status['dispatched_count'] == 0
    assert status['pending'][0]['scheduled_at'] == TRIGGER_AT.isoformat()
    assert status['pending'][0]['class_date'] == '2025-03-03'


def test_purge_removes_old_resolved_jobs_and_samples(make_subject):
    subject, job = _queued_job(make_subject)
    JobQueueService.fire_due_jobs(now=datetime(2025, 3, 3, 11, 0))
    old_sample = _add_sample(subject, 0.0, 0.0, datetime(2025, 1, 1, 9, 0))
    recent_sample = _add_sample(subject, 0.0, 0.0, datetime(2025, 3, 3, 9, 31))
    old_sample_id, recent_sample_id = old_sample.id, recent_sample.id

    # Two days later the job is still retained
    result = JobQueueService.purge_stale_jobs(now=datetime(2025, 3, 5, 12, 0))
    assert result == {'success': True, 'jobs_deleted': 0, 'samples_deleted': 1}

    result = JobQueueService.purge_stale_jobs(now=datetime(2025, 3, 6, 12, 0))
    assert result['jobs_deleted'] == 1

    assert db.session.get(LocationSample, old_sample_id) is None
    assert db.session.get(LocationSample, recent_sample_id) is not None


def test_purge_keeps_unresolved_jobs(make_subject):
    _queued_job(make_subject)
    result = JobQueueService.purge_stale_jobs(now=datetime(2025, 3, 10, 12, 0))

    assert result['jobs_deleted'] == 0
    assert db.session.query(TriggerJob).count() == 1


def test_resolver_with_stale_job_loses_to_earlier_resolution(make_subject):
    subject, job = _queued_job(make_subject)
    JobQueueService.fire_due_jobs(now=TRIGGER_AT)

    # A resolver that loaded the job while it was still dispatched
    stale = db.session.get(TriggerJob, job.id)
    db.session.refresh(stale)
    db.session.expunge(stale)
    assert stale.status == JobStatus.DISPATCHED

    response = LocationService.submit_location('u1', subject.id, 0.0, 0.0, now=TRIGGER_AT + timedelta(minutes=1))
    assert response['evaluated'] is True
    assert response['outcome'] == 'present'

    assert JobQueueService.resolve_job(stale, TRIGGER_AT + timedelta(minutes=6)) is False

    resolved = db.session.get(TriggerJob, job.id)
    assert resolved.status == JobStatus.RESOLVED
    assert resolved.outcome == 'present'
    assert resolved.reason == 'within_range'
    record = AttendanceService.get_attendance_record('u1', subject.id, 'march 2025')
    assert record == {'month_year': 'march 2025', 'present': [3], 'absent': []}
