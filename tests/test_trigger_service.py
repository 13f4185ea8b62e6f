from datetime import date, datetime

from sqlalchemy.exc import OperationalError

from app.extensions import db
from app.models import TriggerJob, JobStatus
from app.services.attendance_service import AttendanceService
from app.services.trigger_service import TriggerService, ScanResult
from tests.conftest import MONDAY_8AM


def _jobs():
    return db.session.query(TriggerJob).all()


def test_scan_queues_midpoint_job(make_subject):
    subject = make_subject()
    summary = TriggerService.scan_classes(now=MONDAY_8AM)

    assert summary['day'] == 'monday'
    assert summary['queued'] == 1
    assert summary['outcomes'] == {ScanResult.QUEUED: 1}

    jobs = _jobs()
    assert len(jobs) == 1
    job = jobs[0]
    assert job.subject_id == subject.id
    assert job.status == JobStatus.PENDING
    assert job.class_date == date(2025, 3, 3)
    assert job.trigger_at == datetime(2025, 3, 3, 9, 30)
    assert job.class_start_at == datetime(2025, 3, 3, 9, 0)
    assert job.class_end_at == datetime(2025, 3, 3, 10, 0)


def test_rescan_does_not_duplicate(make_subject):
    make_subject()
    TriggerService.scan_classes(now=MONDAY_8AM)
    summary = TriggerService.scan_classes(now=datetime(2025, 3, 3, 8, 1))

    assert summary['queued'] == 0
    assert summary['outcomes'] == {ScanResult.ALREADY_QUEUED: 1}
    assert len(_jobs()) == 1


def test_class_in_progress_triggers_now(make_subject):
    make_subject()
    now = datetime(2025, 3, 3, 9, 40)
    TriggerService.scan_classes(now=now)

    assert _jobs()[0].trigger_at == now


def test_ended_class_not_queued(make_subject):
    make_subject()
    summary = TriggerService.scan_classes(now=datetime(2025, 3, 3, 10, 1))

    assert summary['outcomes'] == {ScanResult.CLASS_ENDED: 1}
    assert _jobs() == []


def test_no_class_on_other_days(make_subject):
    make_subject()
    summary = TriggerService.scan_classes(now=datetime(2025, 3, 4, 8, 0))

    assert summary['day'] == 'tuesday'
    assert summary['outcomes'] == {ScanResult.NO_CLASS_TODAY: 1}


def test_first_open_interval_is_used(make_subject):
    make_subject(schedule={'monday': [
        {'start': '08:00', 'end': '08:30'},
        {'start': '14:00', 'end': '15:00'},
    ]})
    TriggerService.scan_classes(now=datetime(2025, 3, 3, 8, 45))

    assert _jobs()[0].trigger_at == datetime(2025, 3, 3, 14, 30)


def test_trigger_policy_from_config(app, make_subject):
    make_subject()
    app.config['TRIGGER_POLICY'] = 'start'
    TriggerService.scan_classes(now=MONDAY_8AM)

    assert _jobs()[0].trigger_at == datetime(2025, 3, 3, 9, 0)


def test_opted_out_subject_skipped(make_subject):
    make_subject(auto_attendance=False)
    summary = TriggerService.scan_classes(now=MONDAY_8AM)

    assert summary['outcomes'] == {ScanResult.OPTED_OUT: 1}
    assert _jobs() == []


def test_legacy_subject_without_flag_is_scheduled(make_subject):
    make_subject(auto_attendance=None)
    assert TriggerService.scan_classes(now=MONDAY_8AM)['queued'] == 1


def test_misconfigured_subjects_skipped(make_subject):
    make_subject(latitude=None)
    make_subject(user_id='u2', push_token=None, name='Physics')
    summary = TriggerService.scan_classes(now=MONDAY_8AM)

    assert summary['outcomes'] == {
        ScanResult.MISSING_LOCATION: 1,
        ScanResult.MISSING_PUSH_ADDRESS: 1,
    }
    assert _jobs() == []


def test_decided_day_not_queued(make_subject):
    subject = make_subject()
    AttendanceService.mark_day('u1', subject.id, date(2025, 3, 3), 'present')
    summary = TriggerService.scan_classes(now=MONDAY_8AM)

    assert summary['outcomes'] == {ScanResult.ALREADY_DECIDED: 1}
    assert _jobs() == []


def test_failing_subject_does_not_abort_scan(make_subject, monkeypatch):
    broken = make_subject(name='Broken')
    make_subject(name='Fine', schedule={'monday': {'start': '11:00', 'end': '12:00'}})
    broken_id = broken.id

    original = TriggerService.schedule_subject

    def flaky(user, subject, now, policy='midpoint'):
        if subject.id == broken_id:
            raise OperationalError('INSERT', {}, Exception('database is locked'))
        return original(user, subject, now, policy=policy)

    monkeypatch.setattr(TriggerService, 'schedule_subject', staticmethod(flaky))
    summary = TriggerService.scan_classes(now=MONDAY_8AM)

    assert summary['errors'] == 1
    assert summary['queued'] == 1
    assert _jobs()[0].trigger_at == datetime(2025, 3, 3, 11, 30)


def test_concurrent_scans_create_one_job(make_subject, monkeypatch):
    make_subject()
    # Both scans pass the existence check; the unique index decides
    monkeypatch.setattr(TriggerService, 'job_exists', staticmethod(lambda *args: False))

    first = TriggerService.scan_classes(now=MONDAY_8AM)
    second = TriggerService.scan_classes(now=MONDAY_8AM)

    assert first['outcomes'] == {ScanResult.QUEUED: 1}
    assert second['outcomes'] == {ScanResult.ALREADY_QUEUED: 1}
    assert second['errors'] == 0
    assert len(_jobs()) == 1
