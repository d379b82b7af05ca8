"""
Brand Studio - Configuration
Environment-based configuration for different deployment stages
"""
import os
from datetime import timedelta


def _database_url(fallback):
    """Resolve DATABASE_URL, switching Render's postgres:// prefix to the psycopg v3 driver"""
    db_url = os.environ.get('DATABASE_URL', '')
    if not db_url:
        return fallback
    if db_url.startswith('postgres://'):
        db_url = db_url.replace('postgres://', 'postgresql+psycopg://', 1)
    elif db_url.startswith('postgresql://'):
        db_url = db_url.replace('postgresql://', 'postgresql+psycopg://', 1)
    return db_url


class BaseConfig:
    """Base configuration"""

    # Flask - Secret key (required in production)
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')

    # Warn if using dev key in production-like environment
    _is_production = os.environ.get('RENDER') or os.environ.get('FLASK_ENV') == 'production'
    if SECRET_KEY == 'dev-secret-key-change-in-production' and _is_production:
        import warnings
        warnings.warn("SECRET_KEY is using default dev value in production! Set SECRET_KEY env var.")

    ENV = os.environ.get('FLASK_ENV', 'development')

    # CORS
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')

    # Public site
    SITE_URL = os.environ.get('SITE_URL', 'http://localhost:3000')

    @property
    def SQLALCHEMY_DATABASE_URI(self):
        """Get database URI, falling back to a local SQLite file"""
        return _database_url('sqlite:///brand_studio.db')

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }

    # JWT Auth (cookie: auth-token)
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY', SECRET_KEY)
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=int(os.environ.get('JWT_EXPIRES_DAYS', '7')))
    JWT_ISSUER = 'brand-studio'
    JWT_AUDIENCE = 'admin-panel'
    AUTH_COOKIE_NAME = 'auth-token'

    # Cron endpoints may authenticate with a shared secret instead of a user token
    CRON_SECRET = os.environ.get('CRON_SECRET', '')

    # Rate limiting
    RATELIMIT_ENABLED = True


class DevelopmentConfig(BaseConfig):
    """Development configuration"""
    DEBUG = True
    TESTING = False


class ProductionConfig(BaseConfig):
    """Production configuration"""
    DEBUG = False
    TESTING = False

    @property
    def SQLALCHEMY_DATABASE_URI(self):
        """Production requires DATABASE_URL"""
        return _database_url('')


class TestingConfig(BaseConfig):
    """Testing configuration"""
    DEBUG = True
    TESTING = True
    SECRET_KEY = 'test-secret-key'
    JWT_SECRET_KEY = 'test-jwt-secret'
    SITE_URL = 'https://example.com'
    CRON_SECRET = 'test-cron-secret'
    RATELIMIT_ENABLED = False

    @property
    def SQLALCHEMY_DATABASE_URI(self):
        """In-memory SQLite unless a test database is provided"""
        return _database_url('sqlite:///:memory:')

    SQLALCHEMY_ENGINE_OPTIONS = {}


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
