import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Base configuration class with all settings as static attributes."""

    # Core configuration
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'your-secret-key-here'
    DEBUG = os.environ.get('FLASK_DEBUG', 'false').lower() == 'true'

    # Token settings for the API login
    JWT_SECRET = os.environ.get('JWT_SECRET') or 'clave_secreta_segura'
    JWT_ALGORITHM = 'HS256'
    JWT_EXPIRES_HOURS = int(os.environ.get('JWT_EXPIRES_HOURS', 8))

    # Database configuration
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///schoolbell.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,  # Check connection health before use
    }

    # Directory configuration
    BASE_DIR = os.path.dirname(os.path.abspath(__file__))
    LOG_DIR = os.environ.get('LOG_DIR') or os.path.join(BASE_DIR, 'logs')

    # WhatsApp session
    WHATSAPP_AUTH_DIR = os.environ.get('WHATSAPP_AUTH_DIR', './auth_info_baileys')
    WHATSAPP_TRANSPORT = os.environ.get('WHATSAPP_TRANSPORT')  # e.g. 'mypkg.transport:Client'
    WHATSAPP_AUTOSTART = os.environ.get('WHATSAPP_AUTOSTART', 'true').lower() == 'true'
    WHATSAPP_RESTART_DELAY = float(os.environ.get('WHATSAPP_RESTART_DELAY', 5))
    WHATSAPP_GROUP_SUFFIX = '@g.us'
    WHATSAPP_DEFAULT_GROUP_ID = os.environ.get('WHATSAPP_DEFAULT_GROUP_ID', '120363416896007690@g.us')
    WHATSAPP_AUTO_REPLY_TRIGGER = 'hola'
    WHATSAPP_AUTO_REPLY_TEXT = 'Hola, estoy activo 🤖'

    # Request guards for the API
    RATELIMIT_ENABLED = os.environ.get('RATELIMIT_ENABLED', 'true').lower() == 'true'
    RATELIMIT_DEFAULT = os.environ.get('RATELIMIT_DEFAULT', '100 per 15 minutes')
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')

    # Attendance
    ATTENDANCE_MANUAL_SENTINEL = 'N/A'

    @staticmethod
    def validate(app):
        """Hook for environment-specific startup checks."""
        return None


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    SQLALCHEMY_ECHO = os.environ.get('SQL_DEBUG', 'false').lower() == 'true'


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False

    SECRET_KEY = os.environ.get('SECRET_KEY')
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL')

    # Settings production must not default, keyed by config name -> env variable
    REQUIRED_SETTINGS = {
        'SECRET_KEY': 'SECRET_KEY',
        'SQLALCHEMY_DATABASE_URI': 'DATABASE_URL',
        'WHATSAPP_TRANSPORT': 'WHATSAPP_TRANSPORT',
    }

    @staticmethod
    def validate(app):
        """Ensure production secrets and the transport are configured."""
        for key, env_name in ProductionConfig.REQUIRED_SETTINGS.items():
            if not app.config.get(key):
                raise ValueError(f"{env_name} environment variable must be set in production")


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # The test suite drives the session by hand
    WHATSAPP_AUTOSTART = False
    WHATSAPP_RESTART_DELAY = 0
    RATELIMIT_ENABLED = False
    JWT_SECRET = 'testing-secret'


# Configuration dictionary
config_by_name = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig
}

