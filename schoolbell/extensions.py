# extensions.py
"""
Flask extensions initialization.
This file initializes all extensions to avoid circular imports.
Extensions are initialized here and then bound to the app in the application factory.
"""

import logging
import threading
import time

from flask import current_app
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import text

from schoolbell.messaging import NotificationDispatcher, SessionSupervisor

# Initialize extensions without app binding
db = SQLAlchemy()
migrate = Migrate()
cors = CORS()

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
            connection.execute(text("SELECT 1")).fetchone()
        finally:
            connection.close()

        with connection_lock:
            connection_stats['total_checks'] += 1
            connection_stats['healthy'] = True
            connection_stats['last_check'] = time.time()

        return True, "Database connection is healthy"

    except Exception as e:
        logger.error(f"Database health check failed: {e}")

        with connection_lock:
            connection_stats['total_checks'] += 1
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
    # Step 1: Initialize database first (required by the services)
    db.init_app(app)
    migrate.init_app(app, db)

    # Step 2: Request guards shared by every API route
    init_rate_limiting(app)
    cors.init_app(app, resources={r"/api/*": {"origins": app.config.get("CORS_ORIGINS", "*")}})

    # Step 3: Own one WhatsApp session per application and hand it to the dispatcher
    init_messaging(app)

    app.logger.info("Extensions initialized successfully in correct order")


def init_rate_limiting(app):
    """
    Attach a per-client request limiter to the application.

    Limits come from RATELIMIT_DEFAULT and are counted per remote address.

    Args:
        app: Flask application instance

    Returns:
        Limiter: the limiter now owned by ``app``
    """
    limiter = Limiter(
        get_remote_address,
        app=app,
        default_limits=[app.config.get('RATELIMIT_DEFAULT', '100 per 15 minutes')],
        storage_uri=app.config.get('RATELIMIT_STORAGE_URI', 'memory://'),
        enabled=app.config.get('RATELIMIT_ENABLED', True),
    )
    app.extensions['rate_limiter'] = limiter
    return limiter


def init_messaging(app):
    """
    Create the application's WhatsApp session and its notification dispatcher.

    The supervisor starts connecting immediately when WHATSAPP_AUTOSTART is set.

    Args:
        app: Flask application instance

    Returns:
        SessionSupervisor: the supervisor now owned by ``app``
    """
    supervisor = SessionSupervisor()
    notifier = NotificationDispatcher(
        supervisor,
        group_suffix=app.config.get('WHATSAPP_GROUP_SUFFIX', '@g.us')
    )
    app.extensions['notification_dispatcher'] = notifier
    supervisor.init_app(app)
    return supervisor


def get_session_supervisor():
    """Return the WhatsApp session owned by the current application."""
    return current_app.extensions['session_supervisor']


def get_dispatcher():
    """Return the notification dispatcher owned by the current application."""
    return current_app.extensions['notification_dispatcher']
