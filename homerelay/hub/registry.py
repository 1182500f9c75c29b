"""
DeviceRegistry
==============

Holds, per device class, the authoritative state blob and the single
connection currently allowed to write it.

Rules:
  - ``register`` is a hard replace: a different, still-open owner is detached
    and force-closed before the new owner is installed.
  - ``replace_state`` overwrites the whole blob and stamps ``lastUpdate``;
    nothing is merged or validated.
  - ``unregister`` is compare-and-clear: a close event from an already
    evicted connection must not clear the newer registration.

Threading: every public method takes the registry's RLock. The hub holds the
same lock around register/replace/unregister + broadcast sequences so that
they are atomic as a unit (see ``ConnectionHub``).
"""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

from homerelay.enums.devices import DeviceClass
from homerelay.hub.connection import Connection
from homerelay.schemas.state import initial_state
from homerelay.utils.concurrency import synchronized
from homerelay.utils.time import iso_now

logger = logging.getLogger(__name__)

LAST_UPDATE_KEY = "lastUpdate"

IRRIGATION_START = "START"
IRRIGATION_STOP = "STOP"


@dataclass
class RegistryEntry:
    state: dict[str, Any]
    owner: Connection | None = None
    live: bool = False


class DeviceRegistry:
    """Per-class state snapshot and single-owner bookkeeping."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: dict[DeviceClass, RegistryEntry] = {
            device_class: RegistryEntry(state=initial_state(device_class)) for device_class in DeviceClass
        }

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    # ── ownership ────────────────────────────────────────────────────

    @synchronized
    def register(self, device_class: DeviceClass, connection: Connection) -> Connection | None:
        """Make ``connection`` the exclusive writer for ``device_class``.

        Returns the evicted predecessor, if one was still open.
        """
        entry = self._entries[device_class]
        previous = entry.owner
        evicted: Connection | None = None

        if previous is not None and previous.id != connection.id:
            # Detach first so the predecessor's own close handler sees a
            # non-matching identity and leaves the new registration alone.
            entry.owner = None
            entry.live = False
            if previous.is_open:
                evicted = previous
                logger.warning(
                    "Evicting %s: superseded by %s", previous.describe(), connection.describe()
                )
                try:
                    previous.close()
                except Exception as exc:
                    logger.error("Failed to close evicted %s: %s", previous.describe(), exc)

        entry.owner = connection
        entry.live = True
        logger.info("Registered %s as owner of %s", connection.describe(), device_class.value)
        return evicted

    @synchronized
    def unregister(self, device_class: DeviceClass, connection: Connection) -> bool:
        """Clear ownership only if ``connection`` is still the registered owner."""
        entry = self._entries[device_class]
        if entry.owner is None or entry.owner.id != connection.id:
            logger.debug(
                "Ignoring unregister of %s for %s: not the current owner", connection.describe(), device_class.value
            )
            return False

        entry.owner = None
        entry.live = False
        if device_class == DeviceClass.ROBOTS:
            for record in robot_entries(entry.state).values():
                record["connected"] = False
        logger.info("Unregistered %s from %s", connection.describe(), device_class.value)
        return True

    @synchronized
    def owner(self, device_class: DeviceClass) -> Connection | None:
        return self._entries[device_class].owner

    @synchronized
    def is_owner(self, device_class: DeviceClass, connection: Connection) -> bool:
        owner = self._entries[device_class].owner
        return owner is not None and owner.id == connection.id

    @synchronized
    def is_live(self, device_class: DeviceClass) -> bool:
        entry = self._entries[device_class]
        return entry.live and entry.owner is not None and entry.owner.is_open

    # ── state ────────────────────────────────────────────────────────

    @synchronized
    def replace_state(
        self, device_class: DeviceClass, new_state: dict[str, Any]
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """Overwrite the blob for ``device_class`` wholesale.

        Returns ``(previous, committed)`` copies so callers can detect
        transitions without touching registry internals.
        """
        entry = self._entries[device_class]
        committed = copy.deepcopy(dict(new_state))
        committed[LAST_UPDATE_KEY] = iso_now()
        previous = entry.state
        entry.state = committed
        return copy.deepcopy(previous), copy.deepcopy(committed)

    @synchronized
    def update_state(
        self, device_class: DeviceClass, build: Callable[[dict[str, Any]], dict[str, Any]]
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """Build a new blob from a copy of the current one, then replace wholesale."""
        current = copy.deepcopy(self._entries[device_class].state)
        return self.replace_state(device_class, build(current))

    @synchronized
    def snapshot(self, device_class: DeviceClass) -> dict[str, Any]:
        return copy.deepcopy(self._entries[device_class].state)


def robot_entries(state: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Robot records in a robots blob, without the registry timestamp."""
    return {
        robot_id: record
        for robot_id, record in state.items()
        if robot_id != LAST_UPDATE_KEY and isinstance(record, dict)
    }


def irrigation_transition(previous: dict[str, Any], incoming: dict[str, Any]) -> str | None:
    """Return START/STOP when the active flag flips, None for plain telemetry."""
    was_active = bool(previous.get("active", False))
    is_active = bool(incoming.get("active", False))
    if is_active and not was_active:
        return IRRIGATION_START
    if was_active and not is_active:
        return IRRIGATION_STOP
    return None
