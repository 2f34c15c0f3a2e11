"""Command dispatch - button-press emulation toward a hub."""

import asyncio
import logging
import re
from typing import Any

from harmony_api.hub.constants import HOLD_ACTION_COMMAND, PRESS_TIMESTAMP, RELEASE_TIMESTAMP
from harmony_api.hub.core import HubRegistry
from harmony_api.hub.session import HubSession

logger = logging.getLogger(__name__)

_LEADING_INT_RE = re.compile(r"\s*[+-]?\d+")


def parse_repeat(value: Any) -> int:
    """Coerce a caller-supplied repeat count; anything unusable becomes 1.

    Leading digits are honoured (``"3x"`` -> 3), matching lenient integer
    parsing of bus payloads.
    """
    if value is None:
        return 1
    match = _LEADING_INT_RE.match(str(value))
    if match is None:
        return 1
    repeat = int(match.group(0))
    return repeat if repeat > 0 else 1


def hold_action_body(action: str, status: str, timestamp: int) -> str:
    return f"action={action}:status={status}:timestamp={timestamp}"


class CommandDispatcher:
    """Sends actions, activity starts, and power-off requests to hubs.

    Hub errors are logged and never raised to callers.
    """

    def __init__(self, registry: HubRegistry):
        self.registry = registry

    def _session(self, hub_slug: str) -> HubSession | None:
        session = self.registry.get_session(hub_slug)
        if session is None:
            logger.debug(f"Dispatch to unknown hub {hub_slug} ignored")
        return session

    async def send_action(self, hub_slug: str, action: str, repeat: Any = 1):
        """Press and release ``action`` ``repeat`` times.

        Each release waits for its press; separate repetitions may overlap.
        """
        session = self._session(hub_slug)
        if session is None:
            return
        count = parse_repeat(repeat)
        logger.debug(f"Sending {action} to {hub_slug} x{count}")
        await asyncio.gather(*(self._press_release(session, action) for _ in range(count)))

    async def _press_release(self, session: HubSession, action: str):
        try:
            await session.client.send(HOLD_ACTION_COMMAND, hold_action_body(action, "press", PRESS_TIMESTAMP))
            await session.client.send(HOLD_ACTION_COMMAND, hold_action_body(action, "release", RELEASE_TIMESTAMP))
        except Exception as e:
            logger.warning(f"Failed to send action to {session.slug}: {e}")

    async def start_activity(self, hub_slug: str, activity_id: int):
        """Start an activity, then refresh state immediately."""
        session = self._session(hub_slug)
        if session is None:
            return
        try:
            await session.client.start_activity(activity_id)
        except Exception as e:
            logger.warning(f"Failed to start activity {activity_id} on {hub_slug}: {e}")
            return
        await session.refresh_state()

    async def power_off(self, hub_slug: str):
        """Turn the hub off, then refresh state immediately."""
        session = self._session(hub_slug)
        if session is None:
            return
        try:
            await session.client.turn_off()
        except Exception as e:
            logger.warning(f"Failed to turn off {hub_slug}: {e}")
            return
        await session.refresh_state()
