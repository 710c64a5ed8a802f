"""Tests for runtime settings loading and notification endpoint derivation."""

import pytest

from cryoprocess.config import (
    AppSettings,
    SettingsLoadError,
    config_build_notification_url,
    config_configure_logging,
    config_load_settings,
)


def test_config_load_settings_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Read values from environment variables case-insensitively.

    Returns:
        None: Assertions validate loaded values.

    Raises:
        AssertionError: Raised when settings differ.
    """

    monkeypatch.setenv("PROJECTS_ROOT_PATH", " /srv/projects ")
    monkeypatch.setenv("SLURM_PARTITION", "  ")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("NOTIFICATION_RECONNECT_DELAY_SECONDS", "2.5")

    settings = config_load_settings()

    assert settings.projects_root_path == "/srv/projects"
    assert settings.slurm_partition is None
    assert settings.log_level == "DEBUG"
    assert settings.notification_reconnect_delay_seconds == 2.5


def test_config_load_settings_wraps_validation_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SLURM_SUBMIT_COMMAND", "/tmp/fake-sbatch")

    with pytest.raises(SettingsLoadError):
        config_load_settings()


def test_config_defaults_keep_five_second_reconnect_delay(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("NOTIFICATION_RECONNECT_DELAY_SECONDS", raising=False)

    assert AppSettings(_env_file=None).notification_reconnect_delay_seconds == 5.0


def test_config_build_notification_url_selects_scheme() -> None:
    """Use `wss` only for secure endpoints.

    Returns:
        None: Assertions validate URL derivation.

    Raises:
        AssertionError: Raised when URLs differ.
    """

    plain_settings = AppSettings(notification_host="scheduler.local", notification_port=9000, notification_secure=False)
    secure_settings = AppSettings(notification_host="events.example.org", notification_port=443, notification_secure=True)

    assert config_build_notification_url(plain_settings) == "ws://scheduler.local:9000/ws"
    assert config_build_notification_url(secure_settings) == "wss://events.example.org:443/ws"
    with pytest.raises(ValueError):
        config_build_notification_url(None)


def test_config_configure_logging_rejects_unknown_level() -> None:
    with pytest.raises(ValueError):
        config_configure_logging("chatty")
