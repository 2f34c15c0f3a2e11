"""Inbound command routing.

Bus topics address a hub and optionally an activity or device; the payload
names the command. Unresolvable references are dropped without a reply since
the bus has no response path. The lookup helpers here are shared with the
HTTP API, which turns ``None`` into a 404 instead.
"""

import logging
import re

from harmony_api.hub.core import HubRegistry
from harmony_api.hub.dispatcher import CommandDispatcher
from harmony_api.hub.models import Activity, Command, Device
from harmony_api.hub.session import HubSession

logger = logging.getLogger(__name__)

ACTIVITY_COMMAND_RE = re.compile(r"(?:^|/)hubs/([^/]+)/activities/([^/]+)/command$")
DEVICE_COMMAND_RE = re.compile(r"(?:^|/)hubs/([^/]+)/devices/([^/]+)/command$")
CURRENT_ACTIVITY_COMMAND_RE = re.compile(r"(?:^|/)hubs/([^/]+)/command$")


def split_command_payload(payload: str) -> tuple[str, str | None]:
    """Split ``<commandSlug>[:<repeat>]`` into its parts."""
    command_slug, _, repeat = payload.strip().partition(":")
    return command_slug, repeat or None


class InboundCommandRouter:
    """Resolves addressed commands against hub caches and dispatches them."""

    def __init__(self, registry: HubRegistry, dispatcher: CommandDispatcher):
        self.registry = registry
        self.dispatcher = dispatcher

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def session(self, hub_slug: str) -> HubSession | None:
        return self.registry.get_session(hub_slug)

    def activity(self, hub_slug: str, activity_slug: str) -> Activity | None:
        session = self.session(hub_slug)
        return session.activity_by_slug(activity_slug) if session else None

    def device(self, hub_slug: str, device_slug: str) -> Device | None:
        session = self.session(hub_slug)
        return session.device_by_slug(device_slug) if session else None

    def device_command(self, hub_slug: str, device_slug: str, command_slug: str) -> Command | None:
        session = self.session(hub_slug)
        return session.device_command(device_slug, command_slug) if session else None

    def current_activity(self, hub_slug: str) -> Activity | None:
        session = self.session(hub_slug)
        return session.current_activity() if session else None

    def current_activity_command(self, hub_slug: str, command_slug: str) -> Command | None:
        session = self.session(hub_slug)
        return session.current_activity_command(command_slug) if session else None

    # ------------------------------------------------------------------
    # Bus routing
    # ------------------------------------------------------------------

    async def route(self, topic: str, payload: str) -> bool:
        """Dispatch a bus message.

        Returns:
            True if the message resolved to a hub action, False if dropped
        """
        if match := ACTIVITY_COMMAND_RE.search(topic):
            return await self._route_activity(match.group(1), match.group(2), payload)
        if match := DEVICE_COMMAND_RE.search(topic):
            return await self._route_device(match.group(1), match.group(2), payload)
        if match := CURRENT_ACTIVITY_COMMAND_RE.search(topic):
            return await self._route_current_activity(match.group(1), payload)
        logger.debug(f"Ignoring message on unrecognized topic {topic}")
        return False

    async def _route_activity(self, hub_slug: str, activity_slug: str, payload: str) -> bool:
        activity = self.activity(hub_slug, activity_slug)
        if activity is None:
            logger.debug(f"Unknown activity {hub_slug}/{activity_slug}, dropping")
            return False

        state = payload.strip()
        if state == "on":
            await self.dispatcher.start_activity(hub_slug, activity.id)
        elif state == "off":
            await self.dispatcher.power_off(hub_slug)
        else:
            logger.debug(f"Unsupported activity payload {state!r} for {hub_slug}/{activity_slug}")
            return False
        return True

    async def _route_device(self, hub_slug: str, device_slug: str, payload: str) -> bool:
        command_slug, repeat = split_command_payload(payload)
        command = self.device_command(hub_slug, device_slug, command_slug)
        if command is None:
            logger.debug(f"Unknown command {hub_slug}/{device_slug}/{command_slug}, dropping")
            return False
        await self.dispatcher.send_action(hub_slug, command.action, repeat)
        return True

    async def _route_current_activity(self, hub_slug: str, payload: str) -> bool:
        command_slug, repeat = split_command_payload(payload)
        command = self.current_activity_command(hub_slug, command_slug)
        if command is None:
            logger.debug(f"Unknown current-activity command {hub_slug}/{command_slug}, dropping")
            return False
        await self.dispatcher.send_action(hub_slug, command.action, repeat)
        return True
