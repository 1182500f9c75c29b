import pytest

from homerelay.config import AppConfig, default_robot_units, validate_config
from homerelay.enums.devices import DeviceClass


def test_defaults(monkeypatch):
    for name in ("RELAY_PORT", "PORT", "RELAY_APP_SECRET", "ROOMBA_J7_IP"):
        monkeypatch.delenv(name, raising=False)

    config = AppConfig()

    assert config.port == 3000
    assert config.app_secret == "app-dev-secret"
    assert config.history_enabled is True
    assert config.robots_enabled is True
    assert [unit.id for unit in config.robot_units] == ["roomba_j7", "braava_jet"]


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("RELAY_SHUTTERS_SECRET", "s3cret")
    monkeypatch.setenv("RELAY_HISTORY_ENABLED", "false")
    monkeypatch.setenv("RELAY_ROBOT_POLL_SECONDS", "12.5")

    config = AppConfig()

    assert config.port == 8080
    assert config.device_secrets()[DeviceClass.SHUTTERS] == "s3cret"
    assert config.history_enabled is False
    assert config.robot_poll_seconds == 12.5


def test_relay_port_wins_over_port(monkeypatch):
    monkeypatch.setenv("RELAY_PORT", "4000")
    monkeypatch.setenv("PORT", "8080")

    assert AppConfig().port == 4000


def test_invalid_integer_env(monkeypatch):
    monkeypatch.setenv("RELAY_PORT", "http")

    with pytest.raises(ValueError, match="RELAY_PORT"):
        AppConfig()


def test_robot_credentials_from_env(monkeypatch):
    monkeypatch.setenv("ROOMBA_J7_IP", "192.168.1.20")
    monkeypatch.setenv("ROOMBA_J7_BLID", "blid")
    monkeypatch.setenv("ROOMBA_J7_PASSWORD", "pw")
    monkeypatch.delenv("BRAAVA_JET_IP", raising=False)

    units = {unit.id: unit for unit in default_robot_units()}

    assert units["roomba_j7"].configured
    assert units["roomba_j7"].address == "192.168.1.20"
    assert not units["braava_jet"].configured


def test_validate_config_flags_dev_secrets_and_missing_robots(monkeypatch):
    for prefix in ("ROOMBA_J7", "BRAAVA_JET"):
        monkeypatch.delenv(f"{prefix}_IP", raising=False)
    config = AppConfig(
        shutters_secret="shutters-dev-secret",
        irrigation_secret="real",
        robots_secret="real",
        app_secret="real",
        robot_poll_seconds=1,
    )

    warnings = validate_config(config)

    assert "shutters device secret is the development default" in warnings
    assert not any("irrigation" in warning for warning in warnings)
    assert any("very short" in warning for warning in warnings)
    assert any("No robot unit has credentials" in warning for warning in warnings)


def test_overrides_match_field_names_case_insensitively(tmp_path):
    config = AppConfig()

    config.apply_overrides({"DEBUG": True, "Database_Path": str(tmp_path / "relay.db"), "app_secret": "abc"})

    assert config.DEBUG is True
    assert not hasattr(config, "debug")
    assert config.database_path == str(tmp_path / "relay.db")
    assert config.app_secret == "abc"
    assert config.as_flask_config()["DEBUG"] is True
