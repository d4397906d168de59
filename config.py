"""Configuration module for the medical supplies Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _int_range(value, default):
    """Parse 'min-max' into a tuple of ints."""
    raw = value or default
    low, high = raw.split('-', 1)
    return int(low), int(high)


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    TESTING = False

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'medsupply')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'medsupply')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'medsupply')

        DATABASE_URL = (
            f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Remote document store
    # 'memory' keeps remote documents in-process (offline / development)
    REMOTE_BACKEND = os.getenv('REMOTE_BACKEND', 'memory')
    FIRESTORE_PROJECT_ID = os.getenv('FIRESTORE_PROJECT_ID', '')
    FIRESTORE_DATABASE = os.getenv('FIRESTORE_DATABASE', '(default)')
    FIRESTORE_API_KEY = os.getenv('FIRESTORE_API_KEY')
    FIRESTORE_TOKEN = os.getenv('FIRESTORE_TOKEN')
    REMOTE_TIMEOUT = int(os.getenv('REMOTE_TIMEOUT', '10'))  # seconds
    REMOTE_PRODUCTS_COLLECTION = os.getenv('REMOTE_PRODUCTS_COLLECTION', 'products')
    REMOTE_ORDERS_COLLECTION = os.getenv('REMOTE_ORDERS_COLLECTION', 'orders')

    # Background sync workers
    SYNC_MAX_WORKERS = int(os.getenv('SYNC_MAX_WORKERS', '4'))
    SYNC_INLINE = os.getenv('SYNC_INLINE', 'false').lower() == 'true'

    # Stock rules
    ALLOW_NEGATIVE_STOCK = os.getenv('ALLOW_NEGATIVE_STOCK', 'true').lower() == 'true'
    # Placeholder stock for products pulled from the remote catalog
    PULL_STOCK_RANGE = _int_range(os.getenv('PULL_STOCK_RANGE'), '10-100')
    PULL_MIN_STOCK_RANGE = _int_range(os.getenv('PULL_MIN_STOCK_RANGE'), '5-25')

    # Redis Cache Configuration
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_REPORTS_TTL = int(os.getenv('CACHE_REPORTS_TTL', '120'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'medsupply')

    # Business Information
    BUSINESS_NAME = os.getenv('BUSINESS_NAME', 'Sistema Médico')
    CURRENCY_SYMBOL = os.getenv('CURRENCY_SYMBOL', 'S/.')


class TestConfig(Config):
    """Configuration used by the test suite."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
    REMOTE_BACKEND = 'memory'
    SYNC_INLINE = True
    CACHE_ENABLED = False
    ALLOW_NEGATIVE_STOCK = True
