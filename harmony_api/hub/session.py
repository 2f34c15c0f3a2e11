"""Hub session - one hub's caches and refresh loops.

Lifecycle: ``start()`` runs the registration refreshes (activities, then
state, then devices) and starts three independent timers; ``stop()`` cancels
the timers. Each cache is replaced by a single assignment, so readers always
see a complete snapshot.

Timer ticks shield their refresh, so cancelling a timer never cancels a hub
call already in flight. Every refresh re-checks ``_is_current()`` after each
await and drops its result once the session has been torn down.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from harmony_api.hub.constants import ACTIVITIES_INTERVAL, DEVICES_INTERVAL, STATE_INTERVAL
from harmony_api.hub.models import Activity, Command, Device, HubState
from harmony_api.hub.naming import index_control_groups, slugify
from harmony_api.hub.state import publish_transition

if TYPE_CHECKING:
    from harmony_api.hub.client import HubClient
    from harmony_api.hub.core import HubRegistry

logger = logging.getLogger(__name__)


def build_activities(raw_activities: list[dict[str, Any]]) -> dict[int, Activity]:
    """Build the activities cache keyed by integer id."""
    activities: dict[int, Activity] = {}
    for raw in raw_activities:
        activity_id = int(raw["id"])
        activities[activity_id] = Activity(
            id=activity_id,
            slug=slugify(raw.get("label")),
            label=raw.get("label", ""),
            is_av_activity=bool(raw.get("isAVActivity", False)),
            commands=index_control_groups(raw.get("controlGroup")),
        )
    return activities


def build_devices(raw_commands: dict[str, Any]) -> dict[int, Device]:
    """Build the devices cache from a ``getAvailableCommands`` response."""
    devices: dict[int, Device] = {}
    for raw in raw_commands.get("device") or ():
        device_id = int(raw["id"])
        devices[device_id] = Device(
            id=device_id,
            slug=slugify(raw.get("label")),
            label=raw.get("label", ""),
            commands=index_control_groups(raw.get("controlGroup")),
        )
    return devices


def _slug_index(items: dict[int, Any]) -> dict[str, Any]:
    # Later entries sharing a slug win.
    return {item.slug: item for item in items.values()}


class HubSession:
    """State and refresh loops for a single registered hub."""

    def __init__(self, slug: str, client: HubClient, registry: HubRegistry):
        self.slug = slug
        self.client = client
        self.registry = registry
        self.logger = logging.getLogger(f"hub.{slug}")

        # Caches are replaced wholesale, never mutated
        self.activities: dict[int, Activity] = {}
        self.devices: dict[int, Device] = {}
        self.state: HubState | None = None
        self._activities_by_slug: dict[str, Activity] = {}
        self._devices_by_slug: dict[str, Device] = {}

        self._timers: dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self):
        """Run the registration refreshes, then start the three timers."""
        # State lookup needs the activities cache, so order matters here.
        await self.refresh_activities()
        await self.refresh_state()
        await self.refresh_devices()

        if not self._is_current():
            return

        schedule = (
            ("activities", self.refresh_activities, ACTIVITIES_INTERVAL),
            ("state", self.refresh_state, STATE_INTERVAL),
            ("devices", self.refresh_devices, DEVICES_INTERVAL),
        )
        for kind, refresh, seconds in schedule:
            self._timers[kind] = await self.registry.schedule_task(
                task_id=f"{self.slug}_{kind}_refresh",
                coro=_shielded(refresh),
                interval=timedelta(seconds=seconds),
                run_immediately=False,
            )
        self.logger.info(f"Hub {self.slug} active")

    def stop(self):
        """Cancel all timers and drop the caches."""
        for task in self._timers.values():
            task.cancel()
        self._timers.clear()
        self.activities = {}
        self.devices = {}
        self.state = None
        self._activities_by_slug = {}
        self._devices_by_slug = {}

    def _is_current(self) -> bool:
        return self.registry.is_registered(self)

    # ------------------------------------------------------------------
    # Refreshes
    # ------------------------------------------------------------------

    async def refresh_activities(self):
        """Fetch the activity list and replace the activities cache."""
        if not self._is_current():
            return
        self.logger.debug(f"Updating activities for {self.slug}")
        try:
            raw = await self.client.get_activities()
            activities = build_activities(raw)
        except Exception as e:
            self.logger.warning(f"Failed to update activities for {self.slug}: {e}")
            return

        if not self._is_current():
            self.logger.debug(f"Discarding activities for removed hub {self.slug}")
            return
        self.activities = activities
        self._activities_by_slug = _slug_index(activities)

    async def refresh_devices(self):
        """Fetch available commands and replace the devices cache."""
        if not self._is_current():
            return
        self.logger.debug(f"Updating devices for {self.slug}")
        try:
            raw = await self.client.get_available_commands()
            devices = build_devices(raw)
        except Exception as e:
            self.logger.warning(f"Failed to update devices for {self.slug}: {e}")
            return

        if not self._is_current():
            self.logger.debug(f"Discarding devices for removed hub {self.slug}")
            return
        self.devices = devices
        self._devices_by_slug = _slug_index(devices)

    async def refresh_state(self):
        """Fetch the current activity, replace the state, publish on change.

        An activity id missing from the activities cache leaves the state
        untouched and publishes nothing; the next tick tries again.
        """
        if not self._is_current():
            return
        self.logger.debug(f"Updating state for {self.slug}")

        try:
            activity_id = int(await self.client.get_current_activity())
        except Exception as e:
            self.logger.warning(f"Failed to update state for {self.slug}: {e}")
            return

        if not self._is_current():
            self.logger.debug(f"Discarding state for removed hub {self.slug}")
            return

        activity = self.activities.get(activity_id)
        if activity is None:
            self.logger.warning(f"Hub {self.slug} reported unknown activity {activity_id}, skipping state update")
            return

        # Read after the await so overlapping refreshes publish a change once
        previous = self.state.current_activity if self.state else None
        self.state = HubState.from_activity(activity)

        if previous is None or previous.id != activity.id:
            self.logger.info(f"Hub {self.slug} activity changed to {activity.slug}")
            await publish_transition(self, activity)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def activity_list(self) -> list[Activity]:
        return list(self.activities.values())

    def device_list(self) -> list[Device]:
        return list(self.devices.values())

    def activity_by_slug(self, activity_slug: str) -> Activity | None:
        return self._activities_by_slug.get(activity_slug)

    def device_by_slug(self, device_slug: str) -> Device | None:
        return self._devices_by_slug.get(device_slug)

    def device_command(self, device_slug: str, command_slug: str) -> Command | None:
        device = self.device_by_slug(device_slug)
        if device is None:
            return None
        return device.commands.get(command_slug)

    def current_activity(self) -> Activity | None:
        """The cached activity matching the current state, if any."""
        if self.state is None or self.state.current_activity is None:
            return None
        return self.activity_by_slug(self.state.current_activity.slug)

    def current_activity_command(self, command_slug: str) -> Command | None:
        activity = self.current_activity()
        if activity is None:
            return None
        return activity.commands.get(command_slug)

    def summary(self) -> dict[str, Any]:
        current = self.state.current_activity if self.state else None
        return {
            "activities": len(self.activities),
            "devices": len(self.devices),
            "current_activity": current.slug if current else None,
            "off": self.state.off if self.state else None,
        }


def _shielded(refresh: Callable[[], Awaitable[None]]) -> Callable[[], Awaitable[None]]:
    """Wrap a refresh so cancelling its timer does not cancel the hub call."""

    async def _tick():
        await asyncio.shield(refresh())

    return _tick
