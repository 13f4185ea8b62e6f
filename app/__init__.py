# __init__.py
"""
Application factory for the class attendance verification service.
This module creates and configures the Flask application using the application factory pattern.
"""

import os
import logging
from logging.handlers import RotatingFileHandler

from flask import Flask, jsonify
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

from app.config import config_by_name
from app.extensions import init_extensions, db, engine
from app.utils.clock import local_now


def setup_logging(app):
    """
    Configure structured logging for the application.

    Args:
        app: Flask application instance
    """
    log_format = logging.Formatter(
        '%(asctime)s %(levelname)s %(name)s %(threadName)s : %(message)s'
    )
    level = logging.DEBUG if app.debug else logging.INFO

    handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(log_format)
    console_handler.setLevel(level)
    handlers.append(console_handler)

    if app.config.get('LOG_TO_FILE'):
        log_dir = app.config.get('LOG_DIR') or os.path.join(app.root_path, 'logs')
        os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'app.log'),
            maxBytes=1024 * 1024 * 10,  # 10MB
            backupCount=5
        )
        file_handler.setFormatter(log_format)
        file_handler.setLevel(logging.INFO)
        handlers.append(file_handler)

    # Service loggers are named per module, so attach to the root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in handlers:
        root_logger.addHandler(handler)

    # Forcefully suppress SQLAlchemy logs
    sa_logger = logging.getLogger('sqlalchemy.engine')
    sa_logger.setLevel(logging.WARNING)
    sa_logger.propagate = False


def register_blueprints(app):
    """
    Register all application blueprints.

    Args:
        app: Flask application instance
    """
    try:
        from .controllers.api import api_bp

        app.register_blueprint(api_bp)

        app.logger.info("All blueprints registered successfully")

    except ImportError as e:
        app.logger.error(f"Failed to import blueprint: {str(e)}")
        raise


def register_error_handlers(app):
    """
    Register global error handlers.

    Args:
        app: Flask application instance
    """

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        return jsonify({'error': e.name, 'message': e.description}), e.code

    @app.errorhandler(Exception)
    def handle_exception(e):
        app.logger.error(f"Unhandled exception: {str(e)}", exc_info=True)
        db.session.rollback()
        return jsonify({
            'error': 'An unexpected error occurred',
            'message': str(e) if app.debug else 'Internal server error'
        }), 500


def register_shell_context(app):
    """
    Register shell context for flask shell command.

    Args:
        app: Flask application instance
    """

    @app.shell_context_processor
    def make_shell_context():
        from app.models import User, Subject, AttendanceEntry, LocationSample, TriggerJob
        return {
            'db': db,
            'engine': engine,
            'User': User,
            'Subject': Subject,
            'AttendanceEntry': AttendanceEntry,
            'LocationSample': LocationSample,
            'TriggerJob': TriggerJob
        }


def initialize_database(app):
    """
    Create tables that do not exist yet.

    Args:
        app: Flask application instance
    """
    try:
        with app.app_context():
            from app import models  # noqa: F401  (register tables)
            db.create_all()
    except Exception as e:
        app.logger.error(f"Failed to initialize database: {str(e)}", exc_info=True)
        # Don't raise in production - app should still start
        if app.debug or app.testing:
            raise


def register_health_checks(app):
    """
    Register health check endpoints.

    Args:
        app: Flask application instance
    """

    @app.route('/health')
    def health_check():
        """Basic health check endpoint."""
        return jsonify({
            'status': 'ok',
            'local_time': local_now().isoformat(),
            'timezone': app.config.get('SCHEDULER_TIMEZONE'),
            'version': app.config.get('VERSION', '1.0.0')
        })

    @app.route('/ping')
    def ping():
        return 'OK', 200

    @app.route('/health/database')
    def database_health_check():
        """Database health check endpoint."""
        from app.extensions import check_database_health, get_connection_stats

        healthy, message = check_database_health()
        stats = get_connection_stats()

        return jsonify({
            'status': 'healthy' if healthy else 'unhealthy',
            'message': message,
            'stats': stats,
            'timestamp': local_now().isoformat()
        }), 200 if healthy else 503

    @app.route('/health/engine')
    def engine_health_check():
        """Scheduler thread health."""
        threads = {name: thread.is_alive() for name, thread in engine.threads.items()}

        if not app.config.get('SCHEDULER_ENABLED'):
            status = 'disabled'
        elif engine.running and threads and all(threads.values()):
            status = 'healthy'
        else:
            status = 'degraded'

        return jsonify({
            'status': status,
            'threads': threads,
            'last_runs': engine.last_runs,
            'timestamp': local_now().isoformat()
        }), 503 if status == 'degraded' else 200


def create_app(config_name=None):
    """
    Application factory function.

    Args:
        config_name (str): Configuration name ('development', 'production', 'testing')

    Returns:
        Flask: Configured Flask application instance
    """
    load_dotenv()

    app = Flask(__name__)

    config_name = config_name or os.environ.get('FLASK_ENV', 'development')
    config_class = config_by_name[config_name]
    app.config.from_object(config_class)

    issues = config_class.validate()
    if issues:
        raise ValueError('; '.join(issues))

    if not app.testing:
        setup_logging(app)
    app.logger.info(f"Starting application with config: {config_name}")

    init_extensions(app)

    register_blueprints(app)
    register_error_handlers(app)
    register_shell_context(app)
    register_health_checks(app)

    from .cli import register_cli_commands
    register_cli_commands(app)

    initialize_database(app)

    from app.extensions import start_database_health_monitor
    start_database_health_monitor(app, interval=app.config.get('DB_HEALTH_CHECK_INTERVAL', 300))

    if app.config.get('SCHEDULER_ENABLED'):
        engine.start_worker()
        app.logger.info("Attendance engine started (scan runs now and then every "
                        f"{app.config.get('SCAN_INTERVAL_SECONDS')}s)")

    app.logger.info("Application factory completed successfully")

    return app
