"""
Configuration for the HomeRelay hub
===================================
Runtime settings loaded from environment variables, robot unit definitions
and the logging setup shared by the server entry point and the tests.
"""

import logging
import os
import sys
import threading
from contextlib import suppress
from dataclasses import dataclass, field, fields
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from homerelay.enums.devices import DeviceClass
from homerelay.robots.models import MOP, VACUUM, RobotUnitConfig


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer.") from None


def _env_int_multi(names: tuple[str, ...], default: int) -> int:
    for name in names:
        value = os.getenv(name)
        if value is None:
            continue
        try:
            return int(value)
        except ValueError:
            raise ValueError(f"Environment variable {name} must be an integer.") from None
    return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number.") from None


def _robot_unit(robot_id: str, name: str, robot_type: str, env_prefix: str) -> RobotUnitConfig:
    return RobotUnitConfig(
        id=robot_id,
        name=name,
        type=robot_type,
        address=os.getenv(f"{env_prefix}_IP"),
        blid=os.getenv(f"{env_prefix}_BLID"),
        password=os.getenv(f"{env_prefix}_PASSWORD"),
    )


def default_robot_units() -> list[RobotUnitConfig]:
    """Robot units the subsystem manages directly (credentials from env)."""
    return [
        _robot_unit("roomba_j7", "Roomba j7", VACUUM, "ROOMBA_J7"),
        _robot_unit("braava_jet", "Braava Jet", MOP, "BRAAVA_JET"),
    ]


@dataclass
class AppConfig:
    """Runtime configuration loaded from environment variables."""

    environment: str = field(default_factory=lambda: os.getenv("RELAY_ENV", "development"))
    host: str = field(default_factory=lambda: os.getenv("RELAY_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: _env_int_multi(("RELAY_PORT", "PORT"), 3000))

    # Per-class device secrets and the controller token.
    shutters_secret: str = field(default_factory=lambda: os.getenv("RELAY_SHUTTERS_SECRET", "shutters-dev-secret"))
    irrigation_secret: str = field(
        default_factory=lambda: os.getenv("RELAY_IRRIGATION_SECRET", "irrigation-dev-secret")
    )
    robots_secret: str = field(default_factory=lambda: os.getenv("RELAY_ROBOTS_SECRET", "robots-dev-secret"))
    app_secret: str = field(default_factory=lambda: os.getenv("RELAY_APP_SECRET", "app-dev-secret"))

    database_path: str = field(default_factory=lambda: os.getenv("RELAY_DATABASE_PATH", "database/relay.db"))
    history_enabled: bool = field(default_factory=lambda: _env_bool("RELAY_HISTORY_ENABLED", True))

    robots_enabled: bool = field(default_factory=lambda: _env_bool("RELAY_ROBOTS_ENABLED", True))
    robot_poll_seconds: float = field(default_factory=lambda: _env_float("RELAY_ROBOT_POLL_SECONDS", 30.0))
    robot_command_timeout: float = field(default_factory=lambda: _env_float("RELAY_ROBOT_COMMAND_TIMEOUT", 10.0))
    robot_units: list[RobotUnitConfig] = field(default_factory=default_robot_units)

    socketio_cors_origins: str = field(default_factory=lambda: os.getenv("RELAY_SOCKETIO_CORS", "*"))

    DEBUG: bool = field(default_factory=lambda: _env_bool("RELAY_DEBUG", False))
    log_file: str = field(default_factory=lambda: os.getenv("RELAY_LOG_FILE", "logs/relay.log"))

    def device_secrets(self) -> dict[DeviceClass, str]:
        return {
            DeviceClass.SHUTTERS: self.shutters_secret,
            DeviceClass.IRRIGATION: self.irrigation_secret,
            DeviceClass.ROBOTS: self.robots_secret,
        }

    def apply_overrides(self, overrides: dict[str, Any]) -> None:
        """Set fields from ``overrides``; keys match field names case-insensitively."""
        names = {f.name.lower(): f.name for f in fields(self)}
        for key, value in overrides.items():
            setattr(self, names.get(key.lower(), key.lower()), value)

    def as_flask_config(self) -> dict:
        return {
            "DEBUG": self.DEBUG,
            "ENV": self.environment,
            "JSON_SORT_KEYS": False,
        }


def validate_config(config: AppConfig) -> list[str]:
    """Return warnings for settings that work but are probably wrong."""
    warnings = []

    for device_class, secret in config.device_secrets().items():
        if secret.endswith("-dev-secret"):
            warnings.append(f"{device_class.value} device secret is the development default")
    if config.app_secret == "app-dev-secret":
        warnings.append("Controller secret is the development default")

    if config.robot_poll_seconds < 5:
        warnings.append(f"Robot poll interval ({config.robot_poll_seconds}s) is very short")

    if config.robots_enabled and not any(unit.configured for unit in config.robot_units):
        warnings.append("No robot unit has credentials; robot subsystem has nothing to manage")

    return warnings


def setup_logging(debug: bool = False, log_file: str | None = "logs/relay.log") -> None:
    """Setup logging configuration."""
    log_level = logging.DEBUG if debug else logging.INFO

    root = logging.getLogger()
    root.setLevel(log_level)

    # Avoid adding duplicates when create_app is called multiple times
    has_console = any(getattr(h, "name", "") == "relay_console" for h in root.handlers)
    has_file = any(getattr(h, "name", "") == "relay_file" for h in root.handlers)
    added_handler = False

    # Console handler (force UTF-8 so emoji log lines survive Windows terminals)
    stream = sys.stdout
    with suppress(AttributeError, ValueError):
        stream.reconfigure(encoding="utf-8", errors="replace")
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if not has_console:
        console_handler = logging.StreamHandler(stream=stream)
        console_handler.name = "relay_console"
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)
        added_handler = True

    if not has_file and log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.name = "relay_file"
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        added_handler = True

    for handler in root.handlers:
        if getattr(handler, "name", "") in {"relay_console", "relay_file"}:
            handler.setLevel(log_level)

    if added_handler:
        root.info(f"Logging initialized at level: {logging.getLevelName(log_level)}")

    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    # Socket.IO / Engine.IO log every ping and poll at INFO
    logging.getLogger("socketio").setLevel(logging.WARNING)
    logging.getLogger("engineio").setLevel(logging.WARNING)


def install_exception_hooks() -> None:
    """Log uncaught exceptions from the main thread and worker threads."""
    logger = logging.getLogger("homerelay.uncaught")

    def _excepthook(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        logger.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback))

    def _thread_excepthook(args: threading.ExceptHookArgs) -> None:
        if args.exc_type is SystemExit:
            return
        thread_name = args.thread.name if args.thread is not None else "unknown"
        logger.error(
            "Uncaught exception in thread %s",
            thread_name,
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
        )

    sys.excepthook = _excepthook
    threading.excepthook = _thread_excepthook


def load_config() -> AppConfig:
    """Helper for callers to load and validate configuration."""
    config = AppConfig()
    logger = logging.getLogger("config_loader")
    for warning in validate_config(config):
        logger.warning(warning)
    return config
