import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default='false'):
    return os.environ.get(name, default).lower() == 'true'


class Config:
    """Base configuration class with all settings as static attributes."""

    # Core configuration
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'your-secret-key-here'
    DEBUG = _env_bool('FLASK_DEBUG')
    VERSION = '1.0.0'

    # MySQL connection timeouts
    MYSQL_CONNECT_TIMEOUT = 30
    MYSQL_READ_TIMEOUT = 30
    MYSQL_WRITE_TIMEOUT = 30

    # Database configuration
    base_db_uri = os.environ.get('DATABASE_URL')

    # Fallback to SQLite if no DATABASE_URL is provided
    if not base_db_uri:
        base_db_uri = 'sqlite:///attendance_engine.db'

    if base_db_uri.startswith('mysql'):
        from urllib.parse import urlparse, urlunparse
        parsed = urlparse(base_db_uri)

        # PyMySQL specific parameters only
        query_params = {
            'charset': 'utf8mb4',
            'connect_timeout': str(MYSQL_CONNECT_TIMEOUT),
            'read_timeout': str(MYSQL_READ_TIMEOUT),
            'write_timeout': str(MYSQL_WRITE_TIMEOUT),
        }

        query_string = '&'.join([f"{k}={v}" for k, v in query_params.items()])
        new_query = f"{parsed.query}&{query_string}" if parsed.query else query_string

        SQLALCHEMY_DATABASE_URI = urlunparse((
            parsed.scheme,
            parsed.netloc,
            parsed.path,
            parsed.params,
            new_query,
            parsed.fragment
        ))

        # pool_recycle goes here, not in the connection string
        SQLALCHEMY_ENGINE_OPTIONS = {
            "pool_recycle": 3600,
            "pool_pre_ping": True,
            "pool_size": 10,
            "max_overflow": 20,
        }
    else:
        SQLALCHEMY_DATABASE_URI = base_db_uri
        SQLALCHEMY_ENGINE_OPTIONS = {}

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Health monitoring
    ENABLE_DB_HEALTH_MONITOR = True
    DB_HEALTH_CHECK_INTERVAL = 300  # 5 minutes

    # Logging
    LOG_TO_FILE = _env_bool('LOG_TO_FILE')
    LOG_DIR = os.environ.get('LOG_DIR')
    SYSLOG_SERVER = os.environ.get('SYSLOG_SERVER')

    # Scheduler engine
    SCHEDULER_ENABLED = _env_bool('SCHEDULER_ENABLED', 'true')
    SCHEDULER_TIMEZONE = os.environ.get('SCHEDULER_TIMEZONE', 'Asia/Kolkata')
    SCAN_INTERVAL_SECONDS = int(os.environ.get('SCAN_INTERVAL_SECONDS', 60))
    QUEUE_INTERVAL_SECONDS = int(os.environ.get('QUEUE_INTERVAL_SECONDS', 15))
    PURGE_INTERVAL_SECONDS = int(os.environ.get('PURGE_INTERVAL_SECONDS', 3600))

    # Verification policy
    TRIGGER_POLICY = os.environ.get('TRIGGER_POLICY', 'midpoint')  # midpoint | start | end
    GRACE_WINDOW_MINUTES = int(os.environ.get('GRACE_WINDOW_MINUTES', 5))
    DEFAULT_GEOFENCE_RADIUS = float(os.environ.get('DEFAULT_GEOFENCE_RADIUS', 50))
    IMMEDIATE_EVALUATION = _env_bool('IMMEDIATE_EVALUATION', 'true')

    # Retention
    JOB_RETENTION_DAYS = int(os.environ.get('JOB_RETENTION_DAYS', 2))
    SAMPLE_RETENTION_DAYS = int(os.environ.get('SAMPLE_RETENTION_DAYS', 30))

    # Push notifications
    NOTIFICATION_BACKEND = os.environ.get('NOTIFICATION_BACKEND', 'log')  # log | fcm
    FIREBASE_CREDENTIALS_PATH = os.environ.get('FIREBASE_CREDENTIALS_PATH', 'serviceAccountKey.json')

    @classmethod
    def validate(cls):
        """Return a list of configuration problems for this environment."""
        issues = []
        if cls.TRIGGER_POLICY not in ('midpoint', 'start', 'end'):
            issues.append(f"Unknown TRIGGER_POLICY '{cls.TRIGGER_POLICY}'")
        if cls.GRACE_WINDOW_MINUTES <= 0:
            issues.append("GRACE_WINDOW_MINUTES must be positive")
        return issues


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    SQLALCHEMY_ECHO = _env_bool('SQL_DEBUG')


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    NOTIFICATION_BACKEND = os.environ.get('NOTIFICATION_BACKEND', 'fcm')

    @classmethod
    def validate(cls):
        issues = super().validate()
        if not os.environ.get('SECRET_KEY'):
            issues.append("SECRET_KEY environment variable must be set in production")
        if not os.environ.get('DATABASE_URL'):
            issues.append("DATABASE_URL environment variable must be set in production")
        return issues


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Tests drive the engine by hand
    SCHEDULER_ENABLED = False
    ENABLE_DB_HEALTH_MONITOR = False
    LOG_TO_FILE = False
    NOTIFICATION_BACKEND = 'log'
    TRIGGER_POLICY = 'midpoint'
    GRACE_WINDOW_MINUTES = 5
    DEFAULT_GEOFENCE_RADIUS = 50.0
    IMMEDIATE_EVALUATION = True


# Configuration dictionary
config_by_name = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig
}
