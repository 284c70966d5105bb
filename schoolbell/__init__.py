# __init__.py
"""
Application factory for the school pickup notifier.
This module creates and configures the Flask application using the application factory pattern.
"""

import os
import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler

from flask import Flask, jsonify
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

from schoolbell.config import config_by_name
from schoolbell.errors import SchoolbellError
from schoolbell.extensions import init_extensions, db

API_PREFIX = '/api/auth'


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

    root_logger = logging.getLogger()
    if any(getattr(handler, 'schoolbell', False) for handler in root_logger.handlers):
        return

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(log_format)
    console_handler.setLevel(level)
    console_handler.schoolbell = True

    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    if not app.testing:
        # File handler with rotation
        log_dir = app.config.get('LOG_DIR') or os.path.join(app.root_path, 'logs')
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'app.log'),
            maxBytes=1024 * 1024 * 10,  # 10MB
            backupCount=5
        )
        file_handler.setFormatter(log_format)
        file_handler.setLevel(logging.INFO)
        file_handler.schoolbell = True
        root_logger.addHandler(file_handler)

    # Suppress excessive SQLAlchemy logging
    sa_logger = logging.getLogger('sqlalchemy.engine')
    sa_logger.setLevel(logging.WARNING)
    sa_logger.propagate = False


def register_blueprints(app):
    """
    Register all application blueprints.

    Args:
        app: Flask application instance
    """
    from .controllers.auth import auth_bp
    from .controllers.attendance import attendance_bp
    from .controllers.enrollment import enrollment_bp
    from .controllers.whatsapp import whatsapp_bp

    # The existing front end calls every route under the same prefix
    app.register_blueprint(auth_bp, url_prefix=API_PREFIX)
    app.register_blueprint(attendance_bp, url_prefix=API_PREFIX)
    app.register_blueprint(enrollment_bp, url_prefix=API_PREFIX)
    app.register_blueprint(whatsapp_bp, url_prefix=API_PREFIX)

    app.logger.info("All blueprints registered successfully")


def register_error_handlers(app):
    """
    Register global error handlers.

    Args:
        app: Flask application instance
    """

    @app.errorhandler(SchoolbellError)
    def handle_domain_error(e):
        if e.status_code >= 500:
            app.logger.warning(f"{e.error_code}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({
            'success': False,
            'message': e.description,
            'error_code': (e.name or 'http_error').lower().replace(' ', '_')
        }), e.code

    @app.errorhandler(Exception)
    def handle_exception(e):
        app.logger.error(f"Unhandled exception: {str(e)}", exc_info=True)
        return jsonify({
            'success': False,
            'message': str(e) if app.debug else 'Error interno del servidor',
            'error_code': 'internal_error'
        }), 500


def register_shell_context(app):
    """
    Register shell context for flask shell command.

    Args:
        app: Flask application instance
    """

    @app.shell_context_processor
    def make_shell_context():
        from schoolbell.models import AttendanceRecord, GuardianLink, Student, User
        return {
            'db': db,
            'User': User,
            'Student': Student,
            'GuardianLink': GuardianLink,
            'AttendanceRecord': AttendanceRecord,
            'session_supervisor': app.extensions['session_supervisor']
        }


def register_health_checks(app):
    """
    Register health check endpoints.

    Args:
        app: Flask application instance
    """
    limiter = app.extensions['rate_limiter']

    @app.route('/health')
    @limiter.exempt
    def health_check():
        """Basic health check endpoint."""
        return jsonify({
            'status': 'ok',
            'timestamp': datetime.now().isoformat(),
            'version': app.config.get('VERSION', '1.0.0')
        })

    @app.route('/health/database')
    @limiter.exempt
    def database_health_check():
        """Database health check endpoint."""
        from schoolbell.extensions import check_database_health, get_connection_stats

        healthy, message = check_database_health()
        body = {
            'status': 'healthy' if healthy else 'unhealthy',
            'message': message,
            'stats': get_connection_stats(),
            'timestamp': datetime.now().isoformat()
        }
        return jsonify(body), 200 if healthy else 503

    @app.route('/health/whatsapp')
    @limiter.exempt
    def whatsapp_health_check():
        """WhatsApp session health check endpoint."""
        status = app.extensions['session_supervisor'].status()
        status['timestamp'] = datetime.now().isoformat()
        return jsonify(status), 200 if status['ready'] else 503


def create_app(config_name=None):
    """
    Application factory function.

    Args:
        config_name (str): Configuration name ('development', 'production', 'testing')

    Returns:
        Flask: Configured Flask application instance
    """
    # Load environment variables
    load_dotenv()

    # Create Flask application
    app = Flask(__name__)

    # Load configuration
    config_name = config_name or os.environ.get('FLASK_ENV', 'development')
    config_class = config_by_name[config_name]
    app.config.from_object(config_class)
    config_class.validate(app)

    # Setup logging first
    setup_logging(app)
    app.logger.info(f"Starting application with config: {config_name}")

    # Initialize extensions
    init_extensions(app)

    with app.app_context():
        from schoolbell import models  # noqa: F401  register tables
        db.create_all()

    # Register components
    register_blueprints(app)
    register_error_handlers(app)
    register_shell_context(app)
    register_health_checks(app)

    # Register CLI commands
    from .cli import register_cli_commands
    register_cli_commands(app)

    app.logger.info("Application factory completed successfully")

    return app
