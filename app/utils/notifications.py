# utils/notifications.py
"""
Push notification transport for location requests.
The engine only relies on dispatch() returning True or False; delivery is not guaranteed.
"""

import os
import logging
import threading
from collections import deque
from datetime import datetime

import firebase_admin
from firebase_admin import credentials, messaging


class DispatchStatus:
    SENT = 'sent'
    FAILED = 'failed'

    def __init__(self, payload, status, error=None):
        self.correlation_id = payload.get('correlationId')
        self.user_id = payload.get('userId')
        self.subject_id = payload.get('subjectId')
        self.status = status
        self.error = error
        self.timestamp = datetime.now()

    def to_dict(self):
        """Convert status to dictionary for JSON serialization"""
        return {
            'correlation_id': self.correlation_id,
            'user_id': self.user_id,
            'subject_id': self.subject_id,
            'status': self.status,
            'error': self.error,
            'timestamp': self.timestamp.isoformat()
        }


class NotificationService:
    """Sends data-only location-request pushes through FCM, or just logs them."""

    BACKENDS = ('log', 'fcm')

    def __init__(self, app=None):
        self.app = app
        self.backend = 'log'
        self.credentials_path = None
        self.logger = logging.getLogger('notification_service')
        self._firebase_app = None
        self._lock = threading.Lock()
        self.stats = {'sent': 0, 'failed': 0}
        self.recent = deque(maxlen=50)

        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.app = app
        self.backend = app.config.get('NOTIFICATION_BACKEND', 'log')
        self.credentials_path = app.config.get('FIREBASE_CREDENTIALS_PATH')
        self._firebase_app = None
        self.stats = {'sent': 0, 'failed': 0}
        self.recent.clear()

        if self.backend not in self.BACKENDS:
            self.logger.warning(f"Unknown NOTIFICATION_BACKEND '{self.backend}', falling back to 'log'")
            self.backend = 'log'

        if self.backend == 'fcm' and not (self.credentials_path and os.path.exists(self.credentials_path)):
            self.logger.error(f"Firebase credentials not found at {self.credentials_path}; "
                              f"location requests will fail until it is provided")

        self.logger.info(f"Notification service initialized with '{self.backend}' backend")

    def _get_firebase_app(self):
        with self._lock:
            if self._firebase_app is None:
                try:
                    self._firebase_app = firebase_admin.get_app('attendance-engine')
                except ValueError:
                    cred = credentials.Certificate(self.credentials_path)
                    self._firebase_app = firebase_admin.initialize_app(cred, name='attendance-engine')
                    self.logger.info("Firebase service account loaded from file")
            return self._firebase_app

    def _send_fcm(self, address, payload):
        message = messaging.Message(
            token=address,
            data={key: str(value) for key, value in payload.items() if value is not None},
            android=messaging.AndroidConfig(priority='high'),
            apns=messaging.APNSConfig(
                headers={'apns-priority': '5', 'apns-push-type': 'background'},
                payload=messaging.APNSPayload(aps=messaging.Aps(content_available=True))
            )
        )
        message_id = messaging.send(message, app=self._get_firebase_app())
        self.logger.debug(f"FCM accepted message {message_id}")

    def _record(self, payload, status, error=None):
        with self._lock:
            self.stats[status] += 1
            self.recent.append(DispatchStatus(payload, status, error))

    def dispatch(self, address, payload):
        """
        Deliver a location request to a device.

        Args:
            address: Device push token
            payload: dict with type, userId, subjectId, correlationId

        Returns:
            bool: True when the transport accepted the message
        """
        if not address:
            self.logger.warning(f"No push address for user {payload.get('userId')}; cannot request location")
            self._record(payload, DispatchStatus.FAILED, 'missing push address')
            return False

        try:
            if self.backend == 'fcm':
                self._send_fcm(address, payload)
            else:
                self.logger.info(f"[push:log] location request for user {payload.get('userId')}, "
                                 f"subject {payload.get('subjectId')} ({payload.get('correlationId')})")

            self._record(payload, DispatchStatus.SENT)
            return True

        except Exception as e:
            self.logger.error(f"Failed to send location request to user {payload.get('userId')}: {str(e)}")
            self._record(payload, DispatchStatus.FAILED, str(e))
            return False

    def get_stats(self):
        with self._lock:
            return {
                'backend': self.backend,
                'sent': self.stats['sent'],
                'failed': self.stats['failed'],
                'recent': [status.to_dict() for status in self.recent]
            }
