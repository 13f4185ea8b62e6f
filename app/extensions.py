# extensions.py
"""
Flask extensions initialization.
This file initializes all Flask extensions to avoid circular imports.
Extensions are initialized here and then bound to the app in the application factory.
"""

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from app.utils.notifications import NotificationService
from app.utils.engine import AttendanceEngine
from sqlalchemy import text
import time
import logging
import threading

# Initialize extensions without app binding
db = SQLAlchemy()
migrate = Migrate()
notification_service = NotificationService()
engine = AttendanceEngine()

# Connection monitoring
connection_stats = {
    'total_checks': 0,
    'failed_checks': 0,
    'last_check': 0,
    'healthy': True
}
connection_lock = threading.Lock()

logger = logging.getLogger(__name__)


def get_connection_stats():
    """
    Get current database connection statistics.

    Returns:
        dict: Connection statistics
    """
    with connection_lock:
        return connection_stats.copy()


def check_database_health():
    """
    Check if the database connection is healthy.
    This function requires an active Flask application context.

    Returns:
        tuple: (bool, str) indicating health status and message
    """
    try:
        if not current_app:
            return False, "No application context available"

        connection = db.engine.connect()
        try:
            with connection.begin():
                result = connection.execute(text("SELECT 1"))
                result.fetchone()

            with connection_lock:
                connection_stats['total_checks'] += 1
                connection_stats['healthy'] = True
                connection_stats['last_check'] = time.time()

            return True, "Database connection is healthy"
        finally:
            connection.close()

    except Exception as e:
        logger.error(f"Database health check failed: {e}")

        with connection_lock:
            connection_stats['failed_checks'] += 1
            connection_stats['healthy'] = False
            connection_stats['last_check'] = time.time()

        return False, f"Database connection failed: {str(e)}"


def init_extensions(app):
    """
    Initialize all extensions with proper order and configuration.

    Args:
        app: Flask application instance
    """
    # Step 1: Initialize database first (required by other extensions)
    db.init_app(app)
    migrate.init_app(app, db)

    # Step 2: Push transport used by the job queue
    notification_service.init_app(app)

    # Step 3: Background scan / queue / purge loops (requires db)
    engine.init_app(app)

    app.logger.info("Extensions initialized successfully in correct order")


# Database health check thread
def start_database_health_monitor(app, interval=300):
    """
    Start a background thread to monitor database health.

    Args:
        app: Flask application instance
        interval (int): Health check interval in seconds
    """

    def monitor():
        while True:
            try:
                with app.app_context():
                    healthy, message = check_database_health()
                    if not healthy:
                        logger.warning(f"Database health monitor: {message}")
                time.sleep(interval)
            except Exception as e:
                logger.error(f"Database health monitor error: {e}")
                time.sleep(interval)

    if app.config.get('ENABLE_DB_HEALTH_MONITOR', False):
        monitor_thread = threading.Thread(target=monitor, daemon=True, name="DatabaseHealthMonitor")
        monitor_thread.start()
        logger.info("Started database health monitor thread")
