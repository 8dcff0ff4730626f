"""Unit tests for environment-driven settings."""

from driver_locator.core.config import AIFallbackSettings, DatabaseSettings, SchedulerSettings


def test_database_url_gets_asyncpg_driver(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://user:pw@db:5432/locator")
    assert DatabaseSettings().connection_url == "postgresql+asyncpg://user:pw@db:5432/locator"

    monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://user:pw@db:5432/locator")
    assert DatabaseSettings().connection_url == "postgresql+asyncpg://user:pw@db:5432/locator"


def test_ai_fallback_is_disabled_without_url(monkeypatch):
    monkeypatch.delenv("AI_FALLBACK_URL", raising=False)
    settings = AIFallbackSettings()

    assert settings.enabled is False
    assert settings.concurrency == 3
    assert settings.dispatch_delay_ms == 500


def test_ai_fallback_from_env(monkeypatch):
    monkeypatch.setenv("AI_FALLBACK_URL", "https://parser.example.com/parse")
    monkeypatch.setenv("AI_FALLBACK_CONCURRENCY", "5")

    settings = AIFallbackSettings()

    assert settings.enabled is True
    assert settings.concurrency == 5


def test_scheduler_intervals_from_env(monkeypatch):
    monkeypatch.setenv("LOAD_SYNC_INTERVAL_SECONDS", "120")
    monkeypatch.setenv("RUN_JOBS_ON_STARTUP", "false")

    settings = SchedulerSettings()

    assert settings.load_sync_interval_seconds == 120
    assert settings.unknown_driver_interval_seconds == 600
    assert settings.run_on_startup is False
