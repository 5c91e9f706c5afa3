import pytest
from pydantic import ValidationError

from idlescan.shared.core.config import Settings, get_settings, reload_settings_from_environment


def test_test_environment_settings():
    settings = get_settings()

    assert settings.DATABASE_URL == "sqlite+aiosqlite:///:memory:"
    assert settings.AWS_DEFAULT_REGION == "us-east-1"
    assert settings.IAM_KEY_OPERATOR == ">="


def test_settings_are_cached():
    assert get_settings() is get_settings()


def test_reload_reads_environment(monkeypatch):
    monkeypatch.setenv("SCAN_TIMEOUT_SECONDS", "42")
    try:
        assert reload_settings_from_environment().SCAN_TIMEOUT_SECONDS == 42.0
    finally:
        monkeypatch.delenv("SCAN_TIMEOUT_SECONDS")
        reload_settings_from_environment()


@pytest.mark.parametrize(
    "overrides",
    [
        {"CLOUD_API_TIMEOUT_SECONDS": 0},
        {"SCAN_TIMEOUT_SECONDS": -1},
        {"SCAN_MAX_CONCURRENT_DETECTORS": 0},
        {"DETECTOR_MAX_CONCURRENCY": 0},
        {"INVENTORY_MAX_PAGES": 0},
        {"IAM_KEY_THRESHOLD_DAYS": -5},
        {"AWS_DEFAULT_REGION": "mars-central-1"},
    ],
)
def test_guardrails_reject_invalid_values(overrides):
    with pytest.raises(ValidationError):
        Settings(**overrides)


def test_unrelated_environment_keys_are_ignored(monkeypatch):
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")

    assert not hasattr(Settings(), "AWS_SECRET_ACCESS_KEY")
