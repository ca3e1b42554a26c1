"""
Tests for settings derived from the environment.
"""

import pytest
from pydantic import ValidationError

from app.core.config import Settings


def test_sync_url_derived_from_async_url():
    settings = Settings(DATABASE_URL="postgresql+asyncpg://u:p@db:5432/tours")
    assert settings.sync_database_url == "postgresql://u:p@db:5432/tours"
    assert settings.is_sqlite is False


def test_explicit_sync_url_wins():
    settings = Settings(
        DATABASE_URL="sqlite+aiosqlite:///./local.db",
        DATABASE_URL_SYNC="sqlite:///./other.db",
    )
    assert settings.sync_database_url == "sqlite:///./other.db"
    assert settings.is_sqlite is True


def test_json_logs_follow_environment_unless_forced():
    assert Settings(ENVIRONMENT="production", LOG_JSON=None).json_logs is True
    assert Settings(ENVIRONMENT="development", LOG_JSON=None).json_logs is False
    assert Settings(ENVIRONMENT="development", LOG_JSON=True).json_logs is True


def test_booking_ref_prefix_is_normalised():
    assert Settings(BOOKING_REF_PREFIX=" tb ").BOOKING_REF_PREFIX == "TB"
    with pytest.raises(ValidationError):
        Settings(BOOKING_REF_PREFIX="B-K")
