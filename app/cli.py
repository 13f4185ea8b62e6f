# cli.py
"""
Flask CLI commands for operating the attendance engine.
"""

import json

import click
from flask.cli import with_appcontext

from app.extensions import db, engine


def _echo_summary(title, summary):
    click.echo(title)
    click.echo("-" * 60)
    for key, value in (summary or {}).items():
        click.echo(f"{key:<20} {value}")


@click.command("scan-now")
@with_appcontext
def scan_now():
    """Scan today's classes and queue location checks."""
    summary = engine.trigger_scan_now()
    _echo_summary("Scan summary", summary)


@click.command("process-queue")
@with_appcontext
def process_queue():
    """Fire due location requests and resolve expired ones."""
    summary = engine.trigger_queue_processing_now()
    _echo_summary("Queue summary", summary)


@click.command("purge-jobs")
@with_appcontext
def purge_jobs():
    """Delete old resolved jobs and location samples."""
    from app.services.job_queue_service import JobQueueService

    result = JobQueueService.purge_stale_jobs()
    if not result['success']:
        click.echo("Error purging jobs - check logs", err=True)
        return
    click.echo(f"Deleted {result['jobs_deleted']} jobs and {result['samples_deleted']} location samples.")


@click.command("engine-status")
@with_appcontext
def engine_status():
    """Show pending location checks."""
    status = engine.get_status()

    click.echo(f"Pending jobs: {status['pending_count']}  (dispatched: {status['dispatched_count']})")
    if status['pending']:
        click.echo("-" * 80)
        click.echo(f"{'User':<30} {'Subject':<30} {'Scheduled at':<20}")
        click.echo("-" * 80)
        for job in status['pending']:
            click.echo(f"{job['user_id'][:30]:<30} {job['subject_id'][:30]:<30} {job['scheduled_at']:<20}")


@click.command("add-user")
@click.option("--user-id", required=True, help="User identifier")
@click.option("--name", default=None, help="Display name")
@click.option("--push-token", default=None, help="Device push token")
@with_appcontext
def add_user(user_id, name, push_token):
    """Create or update a user."""
    from app.models import User

    try:
        user = db.session.get(User, user_id) or User(id=user_id)
        if name:
            user.display_name = name
        if push_token:
            user.push_token = push_token
        user.save()
        click.echo(f"User '{user_id}' saved.")
    except Exception as e:
        db.session.rollback()
        click.echo(f"Error saving user: {str(e)}", err=True)
        raise


@click.command("add-subject")
@click.option("--user-id", required=True, help="Owning user identifier")
@click.option("--subject-id", default=None, help="Subject identifier (generated when omitted)")
@click.option("--name", required=True, help="Subject name")
@click.option("--schedule", "schedule_json", required=True,
              help='Weekly schedule JSON, e.g. \'{"monday": {"start": "09:00", "end": "10:00"}}\'')
@click.option("--latitude", type=float, default=None, help="Classroom latitude")
@click.option("--longitude", type=float, default=None, help="Classroom longitude")
@click.option("--radius", type=float, default=None, help="Geofence radius in metres (default 50)")
@click.option("--auto/--no-auto", "auto_attendance", default=None, help="Automatic verification opt-in")
@with_appcontext
def add_subject(user_id, subject_id, name, schedule_json, latitude, longitude, radius, auto_attendance):
    """Register a subject with its schedule and classroom location."""
    from app.models import User, Subject

    if db.session.get(User, user_id) is None:
        click.echo(f"Error: user '{user_id}' does not exist", err=True)
        return

    try:
        schedule = json.loads(schedule_json)
    except ValueError as e:
        click.echo(f"Error: invalid schedule JSON: {str(e)}", err=True)
        return

    subject = Subject(
        user_id=user_id,
        name=name,
        schedule=schedule,
        latitude=latitude,
        longitude=longitude,
        radius_m=radius,
        auto_attendance=auto_attendance
    )
    if subject_id:
        subject.id = subject_id

    try:
        subject.save()
        click.echo(f"Subject '{name}' saved with id {subject.id}.")
    except Exception as e:
        db.session.rollback()
        click.echo(f"Error saving subject: {str(e)}", err=True)
        raise


@click.command("attendance-record")
@click.argument("user_id")
@click.argument("subject_id")
@click.argument("month_year")
@with_appcontext
def attendance_record(user_id, subject_id, month_year):
    """
    Show present and absent days for one month.

    Example usage:
        flask attendance-record u1 maths "march 2025"
    """
    from app.services.attendance_service import AttendanceService

    try:
        record = AttendanceService.get_attendance_record(user_id, subject_id, month_year)
    except ValueError as e:
        click.echo(f"Error: {str(e)}", err=True)
        return

    click.echo(f"{record['month_year']}")
    click.echo(f"  present: {', '.join(map(str, record['present'])) or '-'}")
    click.echo(f"  absent:  {', '.join(map(str, record['absent'])) or '-'}")


@click.command("import-users")
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def import_users_command(file_path):
    """Import users, subjects and attendance from a JSON export."""
    from app.services.importer import import_file

    result = import_file(file_path)
    if not result['success']:
        click.echo(f"Error: {result.get('error')}", err=True)
        return

    click.echo(f"Imported {result['users_imported']} users, {result['subjects_imported']} subjects, "
               f"{result['attendance_days_added']} attendance days.")
    for error in result['errors']:
        click.echo(f"- {error}")


def register_cli_commands(app):
    """
    Register all CLI commands with the Flask application.

    Args:
        app: Flask application instance
    """
    app.cli.add_command(scan_now)
    app.cli.add_command(process_queue)
    app.cli.add_command(purge_jobs)
    app.cli.add_command(engine_status)
    app.cli.add_command(add_user)
    app.cli.add_command(add_subject)
    app.cli.add_command(attendance_record)
    app.cli.add_command(import_users_command)


# # Register a user and a subject
# flask add-user --user-id u1 --name "Asha" --push-token <fcm token>
# flask add-subject --user-id u1 --name Maths --schedule '{"monday": {"start": "09:00", "end": "10:00"}}' \
#     --latitude 12.9716 --longitude 77.5946 --radius 50
#
# # Operate the engine by hand
# flask scan-now
# flask process-queue
# flask engine-status
