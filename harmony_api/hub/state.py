"""State change publishing.

A transition publishes, in order: the current activity slug, the aggregate
on/off state, then one on/off state per known activity. All messages are
retained so late subscribers see the latest state.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from harmony_api.hub.constants import TOPIC_ACTIVITY_STATE, TOPIC_CURRENT_ACTIVITY, TOPIC_HUB_STATE
from harmony_api.hub.models import Activity

if TYPE_CHECKING:
    from harmony_api.hub.session import HubSession


def on_off(value: bool) -> str:
    return "on" if value else "off"


async def publish_transition(session: HubSession, activity: Activity):
    """Publish ``2 + len(session.activities)`` retained state messages."""
    registry = session.registry
    hub = session.slug

    await registry.publish(TOPIC_CURRENT_ACTIVITY.format(hub=hub), activity.slug, retain=True)
    await registry.publish(TOPIC_HUB_STATE.format(hub=hub), on_off(not activity.is_power_off), retain=True)

    # Snapshot so a concurrent activities refresh does not change the sweep.
    for known in list(session.activities.values()):
        await registry.publish(
            TOPIC_ACTIVITY_STATE.format(hub=hub, activity=known.slug),
            on_off(known.id == activity.id),
            retain=True,
        )
