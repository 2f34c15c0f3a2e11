"""Public API views.

Only these models cross the HTTP boundary. None of them carries a hub action
string or a command map; the internal dataclasses in ``models.py`` do.
"""

from pydantic import BaseModel, ConfigDict, Field

from harmony_api.hub.models import Activity, Command, Device, HubState


class CommandView(BaseModel):
    name: str
    slug: str
    label: str

    @classmethod
    def from_command(cls, command: Command) -> "CommandView":
        return cls(name=command.name, slug=command.slug, label=command.label)


class ActivityView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    slug: str
    label: str
    is_av_activity: bool = Field(default=False, alias="isAVActivity")

    @classmethod
    def from_activity(cls, activity: Activity) -> "ActivityView":
        return cls(
            id=activity.id,
            slug=activity.slug,
            label=activity.label,
            is_av_activity=activity.is_av_activity,
        )


class DeviceView(BaseModel):
    id: int
    slug: str
    label: str

    @classmethod
    def from_device(cls, device: Device) -> "DeviceView":
        return cls(id=device.id, slug=device.slug, label=device.label)


class HubStatusView(BaseModel):
    off: bool
    current_activity: ActivityView | None = None
    activity_commands: list[CommandView] = []

    @classmethod
    def from_state(cls, state: HubState) -> "HubStatusView":
        current = state.current_activity
        return cls(
            off=state.off,
            current_activity=ActivityView.from_activity(current) if current else None,
            activity_commands=[CommandView.from_command(c) for c in state.activity_commands],
        )


class HubList(BaseModel):
    hubs: list[str]


class ActivityList(BaseModel):
    activities: list[ActivityView]


class DeviceList(BaseModel):
    devices: list[DeviceView]


class CommandList(BaseModel):
    commands: list[CommandView]

    @classmethod
    def from_commands(cls, commands) -> "CommandList":
        return cls(commands=[CommandView.from_command(c) for c in commands])


class Message(BaseModel):
    message: str


OK = Message(message="ok")
