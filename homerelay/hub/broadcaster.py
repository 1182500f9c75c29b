"""Fan-out of state events to controller connections."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

from homerelay.hub.connection import Connection

logger = logging.getLogger(__name__)


class Broadcaster:
    """Delivers an event to every open controller connection.

    Device connections are skipped entirely. Delivery is fire-and-forget per
    connection: one failing controller never blocks the others and never
    surfaces as an error of the state change that triggered the broadcast.
    """

    def __init__(self, connections: Callable[[], Iterable[Connection]]) -> None:
        self._connections = connections

    def broadcast(self, event: dict[str, Any]) -> int:
        delivered = 0
        for connection in list(self._connections()):
            if not connection.is_controller or not connection.is_open:
                continue
            try:
                connection.send(event)
                delivered += 1
            except Exception as exc:
                logger.warning(
                    "Broadcast of %s to %s failed: %s", event.get("type"), connection.describe(), exc
                )
        logger.debug("Broadcast %s to %d controller(s)", event.get("type"), delivered)
        return delivered
