# controllers/api.py
"""
JSON endpoints for devices and operators: location submission, manual engine
triggers, engine status and attendance records.
"""

import logging
from flask import Blueprint, request, jsonify

from app.extensions import db, engine
from app.models.subject import Subject
from app.services.attendance_service import AttendanceService
from app.services.location_service import LocationService
from app.utils.clock import local_now

api_bp = Blueprint('api', __name__)

logger = logging.getLogger('api')


@api_bp.route('/api/locations', methods=['POST'])
@api_bp.route('/submit-location', methods=['POST'])
def submit_location():
    """
    Accept a location sample from a device.
    Body: userId, subjectId, latitude, longitude, capturedAt (optional), accuracy (optional)
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        return jsonify({
            'success': False,
            'message': 'No data provided',
            'error_code': 'missing_data'
        }), 400

    try:
        result = LocationService.submit_location(
            user_id=data.get('userId'),
            subject_id=data.get('subjectId'),
            latitude=data.get('latitude'),
            longitude=data.get('longitude'),
            captured_at=data.get('capturedAt', data.get('timestamp')),
            accuracy=data.get('accuracy')
        )
    except ValueError as e:
        return jsonify({
            'success': False,
            'message': str(e),
            'error_code': 'invalid_location'
        }), 400
    except LookupError as e:
        return jsonify({
            'success': False,
            'message': str(e),
            'error_code': 'subject_not_found'
        }), 404

    return jsonify(result), 202


@api_bp.route('/api/engine/scan', methods=['POST'])
def trigger_scan():
    """Run a scan cycle now."""
    summary = engine.trigger_scan_now()
    return jsonify({'success': True, 'summary': summary})


@api_bp.route('/api/engine/process-queue', methods=['POST'])
def trigger_queue_processing():
    """Fire due jobs and resolve expired ones now."""
    summary = engine.trigger_queue_processing_now()
    return jsonify({'success': True, 'summary': summary})


@api_bp.route('/api/engine/status', methods=['GET'])
def engine_status():
    return jsonify(engine.get_status())


@api_bp.route('/api/users/<user_id>/subjects/<subject_id>/attendance', methods=['GET'])
def attendance_record(user_id, subject_id):
    """Attendance record for one month (?month=march%202025, defaults to the current month)."""
    subject = db.session.get(Subject, subject_id)
    if subject is None or subject.user_id != user_id:
        return jsonify({
            'success': False,
            'message': 'Subject not found',
            'error_code': 'subject_not_found'
        }), 404

    month_year = request.args.get('month') or AttendanceService.month_key(local_now().date())

    try:
        record = AttendanceService.get_attendance_record(user_id, subject_id, month_year)
    except ValueError as e:
        return jsonify({
            'success': False,
            'message': str(e),
            'error_code': 'invalid_month'
        }), 400

    record.update({'success': True, 'user_id': user_id, 'subject_id': subject_id})
    return jsonify(record)
