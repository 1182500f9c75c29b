from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from homerelay.config import AppConfig
from homerelay.hub.auth import AuthGate
from homerelay.hub.hub import ConnectionHub
from homerelay.hub.registry import DeviceRegistry
from homerelay.robots.drivers import RobotDriver
from homerelay.robots.models import RobotUnitConfig
from homerelay.robots.subsystem import RobotSubsystem
from homerelay.services.history import HistorySink
from homerelay.workers.poller import PollingWorker

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Own every long-lived relay object."""

    config: AppConfig
    registry: DeviceRegistry
    auth: AuthGate
    history: HistorySink
    hub: ConnectionHub
    robots: Optional[RobotSubsystem]
    robot_poller: Optional[PollingWorker]
    started: bool = False

    @classmethod
    def build(
        cls,
        config: AppConfig,
        *,
        driver_factory: Callable[[RobotUnitConfig], RobotDriver] | None = None,
    ) -> "ServiceContainer":
        """Construct the container; background threads start with ``start()``."""
        logger.info("Building ServiceContainer...")

        registry = DeviceRegistry()
        auth = AuthGate(config.device_secrets(), config.app_secret)
        history = HistorySink.from_path(config.database_path) if config.history_enabled else HistorySink.disabled()

        robots: Optional[RobotSubsystem] = None
        robot_poller: Optional[PollingWorker] = None
        if config.robots_enabled:
            robots = RobotSubsystem(config.robot_units, driver_factory)
            robot_poller = PollingWorker("RobotPoller", robots.poll, config.robot_poll_seconds)

        hub = ConnectionHub(registry, auth, robots=robots, history=history)

        logger.info("ServiceContainer built successfully.")
        return cls(
            config=config,
            registry=registry,
            auth=auth,
            history=history,
            hub=hub,
            robots=robots,
            robot_poller=robot_poller,
        )

    def start(self) -> None:
        """Start robot sessions and status polling."""
        if self.started:
            return
        self.started = True
        if self.robots is not None:
            self.robots.start()
        if self.robot_poller is not None:
            self.robot_poller.start()

    def shutdown(self) -> None:
        """Release external resources before process exit."""
        if self.robot_poller is not None:
            try:
                self.robot_poller.stop()
                logger.info("✓ Robot poller stopped")
            except Exception as e:
                logger.warning(f"Failed to stop robot poller: {e}")

        if self.robots is not None:
            try:
                self.robots.stop()
                logger.info("✓ Robot subsystem stopped")
            except Exception as e:
                logger.warning(f"Failed to stop robot subsystem: {e}")

        try:
            self.hub.close_all()
            logger.info("✓ Connections closed")
        except Exception as e:
            logger.warning(f"Failed to close connections: {e}")

        try:
            self.history.shutdown()
            logger.info("✓ History sink stopped")
        except Exception as e:
            logger.warning(f"Failed to stop history sink: {e}")

        self.started = False
