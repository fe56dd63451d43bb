"""
Tests for configuration and the app factory.
"""
import pytest

from loyalty import create_app
from loyalty.config import (
    DevelopmentConfig,
    ProductionConfig,
    TestingConfig,
    get_config,
    validate_config,
)


class TestConfig:
    """Tests for config selection and validation."""

    def test_get_config_by_name(self):
        assert get_config('testing') is TestingConfig
        assert get_config('production') is ProductionConfig
        assert get_config('unknown') is DevelopmentConfig

    def test_loyalty_defaults(self):
        assert TestingConfig.POINTS_PRECISION == 2
        assert TestingConfig.LOYALTY_CONFLICT_RETRIES >= 1
        assert TestingConfig.SQLALCHEMY_DATABASE_URI == 'sqlite:///:memory:'

    def test_production_rejects_missing_database(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, '_db_url', '')

        with pytest.raises(RuntimeError, match='DATABASE_URL'):
            validate_config('production')

    def test_production_rejects_sqlite(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, '_db_url', 'sqlite:///loyalty.db')

        with pytest.raises(RuntimeError, match='SQLite'):
            validate_config('production')

    def test_production_accepts_postgres(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, '_db_url', 'postgresql://loyalty@db/loyalty')

        assert ProductionConfig.validate_database_url() == 'postgresql://loyalty@db/loyalty'


class TestCreateApp:
    """Tests for the application factory."""

    def test_create_app_testing(self):
        app = create_app('testing')

        assert app.config['TESTING'] is True
        assert 'loyalty' in app.cli.commands
