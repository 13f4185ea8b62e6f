# services/importer.py
"""
Import users, subjects and existing attendance from a Firestore-style JSON export:

    {"users": {"<uid>": {"name": ..., "fcmToken": ...,
                         "subjects": {"<sid>": {"name": ..., "schedule": {...},
                                                "location": {"latitude": ..., "longitude": ..., "accuracy": 50},
                                                "autoAttendance": true,
                                                "attendance": {"march 2025": {"present": [3], "absent": [4]}}}}}}}
"""

import json
import logging

from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db
from app.models import User, Subject, AttendanceStatus
from app.services.attendance_service import AttendanceService

logger = logging.getLogger('importer')

PUSH_TOKEN_KEYS = ('fcmToken', 'pushToken', 'push_token', 'token')


def _first(data, keys):
    for key in keys:
        if data.get(key):
            return data[key]
    return None


def _import_attendance(user_id, subject_id, attendance, result):
    for month_year, record in (attendance or {}).items():
        if not isinstance(record, dict):
            continue
        # Present first so a day listed in both sets stays present
        for status in (AttendanceStatus.PRESENT, AttendanceStatus.ABSENT):
            for day in record.get(status) or []:
                try:
                    on_date = AttendanceService.date_for(month_year, day)
                except (TypeError, ValueError) as e:
                    result['errors'].append(f"{user_id}/{subject_id} {month_year} day {day}: {str(e)}")
                    continue

                if AttendanceService.mark_day(user_id, subject_id, on_date, status, reason='imported'):
                    result['attendance_days_added'] += 1


def _upsert_subject(user, subject_id, data, result):
    subject = db.session.get(Subject, subject_id)
    if subject is not None and subject.user_id != user.id:
        # Subject ids are only unique per user in the export
        logger.warning(f"Subject {subject_id} of user {user.id} collides with a subject of user {subject.user_id}; skipped")
        result['errors'].append(f"{user.id}/{subject_id}: subject id already belongs to user {subject.user_id}")
        return None

    if subject is None:
        subject = Subject(id=subject_id, user_id=user.id)
        db.session.add(subject)

    location = data.get('location') or {}
    subject.name = data.get('name') or subject.name or subject_id
    subject.schedule = data.get('schedule') or {}
    subject.latitude = location.get('latitude')
    subject.longitude = location.get('longitude')
    subject.radius_m = location.get('radius') or location.get('accuracy')
    subject.auto_attendance = data.get('autoAttendance', data.get('auto_attendance'))
    return subject


def import_users(data):
    """
    Upsert users and subjects and merge existing attendance.

    Args:
        data: Parsed export (dict with a 'users' mapping)

    Returns:
        dict: success flag, counts and per-item errors
    """
    result = {
        'success': True,
        'users_imported': 0,
        'subjects_imported': 0,
        'attendance_days_added': 0,
        'errors': []
    }

    users = (data or {}).get('users')
    if not isinstance(users, dict):
        result.update({'success': False, 'error': "Export must contain a 'users' mapping"})
        return result

    for user_id, user_data in users.items():
        user_data = user_data or {}
        try:
            user = db.session.get(User, user_id)
            if user is None:
                user = User(id=user_id)
                db.session.add(user)

            user.display_name = user_data.get('name') or user.display_name
            user.push_token = _first(user_data, PUSH_TOKEN_KEYS) or user.push_token

            imported = []
            for subject_id, subject_data in (user_data.get('subjects') or {}).items():
                if _upsert_subject(user, subject_id, subject_data or {}, result) is not None:
                    imported.append((subject_id, subject_data))

            db.session.commit()
            result['users_imported'] += 1
            result['subjects_imported'] += len(imported)

            for subject_id, subject_data in imported:
                _import_attendance(user_id, subject_id, (subject_data or {}).get('attendance'), result)

        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Failed to import user {user_id}: {str(e)}")
            result['errors'].append(f"{user_id}: {str(e)}")

    logger.info(f"Imported {result['users_imported']} users, {result['subjects_imported']} subjects, "
                f"{result['attendance_days_added']} attendance days")
    return result


def import_file(file_path):
    """Import a JSON export from disk."""
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        return {
            'success': False,
            'error': f"Error reading file: {str(e)}",
            'users_imported': 0
        }

    return import_users(data)
