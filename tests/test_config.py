"""Tests for application configuration."""

from pipevault.config import Settings


def test_settings_defaults() -> None:
    """Test that settings have expected default values."""
    settings = Settings()
    assert settings.api_port == 8000
    assert settings.debug is False
    assert "postgresql" in settings.database_url
    assert settings.db_pool_size == 5
    assert settings.db_max_overflow == 10


def test_yard_defaults() -> None:
    """Test that the default rack holds 200 twelve-meter joints."""
    settings = Settings()
    assert settings.default_rack_capacity == 200
    assert settings.nominal_joint_length_m == 12.0


def test_settings_from_environment(monkeypatch) -> None:
    """Test that environment variables override defaults."""
    monkeypatch.setenv("GEMINI_MODEL", "gemini-2.5-flash")
    monkeypatch.setenv("NOTIFICATION_MAX_ATTEMPTS", "3")
    settings = Settings()
    assert settings.gemini_model == "gemini-2.5-flash"
    assert settings.notification_max_attempts == 3
