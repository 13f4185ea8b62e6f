# services/attendance_service.py
"""
Attendance ledger.
Reads and writes per-(user, subject, month) attendance records. Every write is an
insert-if-absent of a single day, so repeated or concurrent writes converge.
"""

import calendar
import logging
from datetime import date

from sqlalchemy.exc import IntegrityError

from app.extensions import db
from app.models.attendance import AttendanceEntry, AttendanceStatus

logger = logging.getLogger('attendance_service')

MONTH_NAMES = [name.lower() for name in calendar.month_name]


class AttendanceService:

    @staticmethod
    def month_key(on_date):
        """Record key for the month containing on_date, e.g. 'march 2025'."""
        return f"{MONTH_NAMES[on_date.month]} {on_date.year}"

    @staticmethod
    def parse_month_key(month_year):
        """
        Parse a record key such as 'March 2025'.

        Returns:
            tuple: (year, month)

        Raises:
            ValueError: The key is not '<month name> <year>'
        """
        parts = str(month_year).strip().lower().split()
        if len(parts) != 2 or parts[0] not in MONTH_NAMES[1:] or not parts[1].isdigit():
            raise ValueError(f"Invalid month key: {month_year!r}. Expected e.g. 'march 2025'")
        return int(parts[1]), MONTH_NAMES.index(parts[0])

    @staticmethod
    def get_entry(user_id, subject_id, on_date):
        return (
            db.session.query(AttendanceEntry)
            .filter_by(
                user_id=user_id,
                subject_id=subject_id,
                month_year=AttendanceService.month_key(on_date),
                day=on_date.day
            )
            .first()
        )

    @staticmethod
    def is_day_decided(user_id, subject_id, on_date):
        """True when the day is already in either the present or the absent set."""
        return AttendanceService.get_entry(user_id, subject_id, on_date) is not None

    @staticmethod
    def mark_day(user_id, subject_id, on_date, status, reason=None, distance_m=None, trigger_job_id=None):
        """
        Add a day to the present or absent set unless the day is already decided.

        Returns:
            bool: True when this call wrote the decision, False when the day was already decided
        """
        if status not in (AttendanceStatus.PRESENT, AttendanceStatus.ABSENT):
            raise ValueError(f"Invalid attendance status: {status}")

        if AttendanceService.is_day_decided(user_id, subject_id, on_date):
            logger.info(f"Attendance already marked for {user_id}, subject {subject_id} (Day {on_date.day})")
            return False

        entry = AttendanceEntry(
            user_id=user_id,
            subject_id=subject_id,
            month_year=AttendanceService.month_key(on_date),
            day=on_date.day,
            status=status,
            reason=reason,
            distance_m=distance_m,
            trigger_job_id=trigger_job_id
        )

        try:
            db.session.add(entry)
            db.session.commit()
        except IntegrityError:
            # Another writer decided the same day first
            db.session.rollback()
            logger.info(f"Concurrent attendance write for {user_id}, subject {subject_id} (Day {on_date.day}) ignored")
            return False

        logger.info(f"Marked {status.upper()} for {user_id}, subject {subject_id} (Day {on_date.day}, {reason})")
        return True

    @staticmethod
    def get_attendance_record(user_id, subject_id, month_year):
        """
        Attendance record for one month.

        Returns:
            dict: month_year plus sorted present and absent day lists
        """
        year, month = AttendanceService.parse_month_key(month_year)
        key = f"{MONTH_NAMES[month]} {year}"

        entries = (
            db.session.query(AttendanceEntry.day, AttendanceEntry.status)
            .filter_by(user_id=user_id, subject_id=subject_id, month_year=key)
            .order_by(AttendanceEntry.day)
            .all()
        )

        return {
            'month_year': key,
            'present': [day for day, status in entries if status == AttendanceStatus.PRESENT],
            'absent': [day for day, status in entries if status == AttendanceStatus.ABSENT],
        }

    @staticmethod
    def date_for(month_year, day):
        """Calendar date for a day-of-month inside a record key."""
        year, month = AttendanceService.parse_month_key(month_year)
        return date(year, month, int(day))
