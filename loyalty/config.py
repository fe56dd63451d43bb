"""
Configuration management for the loyalty points engine.
"""
import os
from dotenv import load_dotenv

load_dotenv()


class BaseConfig:
    """Base configuration."""
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # Loyalty defaults (overridden per-program where the program sets them)
    POINTS_EXPIRY_DAYS = int(os.getenv('POINTS_EXPIRY_DAYS', '365'))
    POINTS_PRECISION = 2  # minor-unit places for point amounts

    # Bounded internal retries on concurrent-update conflicts
    LOYALTY_CONFLICT_RETRIES = int(os.getenv('LOYALTY_CONFLICT_RETRIES', '3'))

    # Recent transactions shown in an account summary
    SUMMARY_RECENT_TRANSACTIONS = 10


class DevelopmentConfig(BaseConfig):
    """Development configuration."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'DATABASE_URL',
        'sqlite:///loyalty_dev.db'  # SQLite fallback for local dev
    )


class ProductionConfig(BaseConfig):
    """Production configuration."""
    DEBUG = False

    _db_url = os.getenv('DATABASE_URL', '')
    if _db_url.startswith('postgres://'):
        # SQLAlchemy requires postgresql:// not postgres://
        _db_url = _db_url.replace('postgres://', 'postgresql://', 1)

    SQLALCHEMY_DATABASE_URI = _db_url

    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 5,
        'pool_recycle': 300,
        'pool_pre_ping': True,  # Verify connections before using
    }

    @classmethod
    def validate_database_url(cls) -> str:
        """
        Validate DATABASE_URL in production environment.

        Raises:
            RuntimeError: If DATABASE_URL is missing or points at SQLite
        """
        if not cls._db_url:
            raise RuntimeError(
                "CRITICAL: DATABASE_URL environment variable is not set!\n"
                "Production deployments need a database that supports row-level locking."
            )

        if cls._db_url.startswith('sqlite'):
            raise RuntimeError(
                "CRITICAL: DATABASE_URL points at SQLite in production!\n"
                "SQLite ignores SELECT ... FOR UPDATE, so concurrent point updates would not serialize."
            )

        return cls._db_url


class TestingConfig(BaseConfig):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    LOG_LEVEL = 'WARNING'


config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig
}


def get_config(config_name: str = 'development'):
    """Get configuration class by name."""
    return config_map.get(config_name, DevelopmentConfig)


def validate_config(config_name: str = 'development') -> None:
    """
    Validate configuration before app startup.

    Args:
        config_name: The configuration environment name

    Raises:
        RuntimeError: If validation fails in production
    """
    if config_name == 'production':
        ProductionConfig.validate_database_url()
