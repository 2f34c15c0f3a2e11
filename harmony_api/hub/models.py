"""Internal cache models for hub sessions.

These dataclasses carry the raw hub action strings and are never serialized
directly; the HTTP layer converts them through the views in ``schemas.py``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from harmony_api.hub.constants import POWER_OFF_ACTIVITY_ID


@dataclass(frozen=True)
class Command:
    """One invocable hub function."""

    name: str
    slug: str
    label: str
    action: str  # escaped hub action, internal only


@dataclass(frozen=True)
class Activity:
    """A hub activity (macro-state) and its command set."""

    id: int
    slug: str
    label: str
    is_av_activity: bool = False
    commands: dict[str, Command] = field(default_factory=dict, repr=False)

    @property
    def is_power_off(self) -> bool:
        return self.id == POWER_OFF_ACTIVITY_ID


@dataclass(frozen=True)
class Device:
    """A controllable appliance known to the hub."""

    id: int
    slug: str
    label: str
    commands: dict[str, Command] = field(default_factory=dict, repr=False)


@dataclass(frozen=True)
class HubState:
    """Snapshot of a hub's current activity.

    Built only through ``from_activity`` so that ``off`` always agrees with
    the activity id.
    """

    off: bool
    current_activity: Activity | None
    activity_commands: tuple[Command, ...] = ()

    @classmethod
    def from_activity(cls, activity: Activity) -> HubState:
        return cls(
            off=activity.is_power_off,
            current_activity=activity,
            activity_commands=tuple(activity.commands.values()),
        )


@dataclass(frozen=True)
class HubInfo:
    """Identity and address of a hub as reported by discovery."""

    friendly_name: str | None
    ip: str | None = None
