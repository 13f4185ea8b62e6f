# wsgi.py
"""
Main application entry point.
This module creates the Flask application instance and handles application startup.
"""

import os

from app import create_app


def create_application():
    """
    Create and configure the Flask application.

    Returns:
        Flask: Configured application instance
    """
    config_name = os.environ.get('FLASK_ENV', 'development')
    app = create_app(config_name)

    if config_name == 'production':
        setup_production_features(app)

    return app


def setup_production_features(app):
    """
    Setup production-specific features.

    Args:
        app: Flask application instance
    """
    import logging
    from logging.handlers import SysLogHandler

    if app.config.get('SYSLOG_SERVER'):
        syslog_handler = SysLogHandler(address=app.config['SYSLOG_SERVER'])
        syslog_handler.setLevel(logging.ERROR)
        logging.getLogger().addHandler(syslog_handler)

    app.logger.info("Production features configured")


# Create the application instance
app = create_application()


# Development server configuration
if __name__ == '__main__':
    port = int(os.environ.get('PORT', 10000))
    debug = os.environ.get('FLASK_ENV') == 'development'

    app.logger.info(f"Starting development server on port {port}, debug={debug}")

    # The reloader would start a second set of scheduler threads
    app.run(
        host='0.0.0.0',
        port=port,
        debug=debug,
        use_reloader=False,
        threaded=True
    )
