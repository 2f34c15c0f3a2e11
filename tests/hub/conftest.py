"""Shared fixtures for tests/hub/ test suite.

Provides a fake hub client with canned activity/device payloads, a
publisher that records outbound messages, and registries wired to both.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from harmony_api.hub.api import create_api
from harmony_api.hub.core import HubRegistry
from harmony_api.hub.session import HubSession

HUB_SLUG = "living-room"


def action(command: str, device_id: str = "100") -> str:
    """Raw hub action as the hub reports it (JSON, so it contains ':')."""
    return json.dumps({"command": command, "type": "IRCommand", "deviceId": device_id}, separators=(",", ":"))


def function(label: str, command: str | None = None, device_id: str = "100") -> dict:
    command = command or label.replace(" ", "")
    return {"name": command, "label": label, "action": action(command, device_id)}


def control_group(name: str, *functions: dict) -> dict:
    return {"name": name, "function": list(functions)}


def make_activities(include_power_off: bool = True) -> list[dict]:
    activities = []
    if include_power_off:
        activities.append({"id": "-1", "label": "PowerOff", "isAVActivity": False, "controlGroup": []})
    activities += [
        {
            "id": "1",
            "label": "Watch TV",
            "isAVActivity": True,
            "controlGroup": [
                control_group("Volume", function("Volume Up"), function("Volume Down"), function("Mute")),
                control_group("Channel", function("Channel Up"), function("Channel Down")),
            ],
        },
        {
            "id": "2",
            "label": "Listen to Music",
            "isAVActivity": True,
            "controlGroup": [control_group("Volume", function("Volume Up", "VolumeUp", "200"), function("Mute"))],
        },
    ]
    return activities


def make_devices() -> list[dict]:
    return [
        {
            "id": "100",
            "label": "Living Room TV",
            "controlGroup": [
                control_group("Power", function("Power On"), function("Power Off")),
                control_group("Volume", function("Volume Up"), function("Volume Down")),
            ],
        },
        {
            "id": "200",
            "label": "Denon AV Receiver",
            "controlGroup": [control_group("Volume", function("Volume Up", device_id="200"))],
        },
    ]


class FakeHubClient:
    """HubClient double whose calls are AsyncMocks with canned responses."""

    def __init__(self, activities=None, devices=None, current_activity=-1):
        self.get_activities = AsyncMock(return_value=activities if activities is not None else make_activities())
        self.get_available_commands = AsyncMock(
            return_value={"device": devices if devices is not None else make_devices()}
        )
        self.get_current_activity = AsyncMock(return_value=str(current_activity))
        self.start_activity = AsyncMock(return_value=None)
        self.turn_off = AsyncMock(return_value=None)
        self.send = AsyncMock(return_value=None)


class RecordingPublisher:
    """Outbound publisher that keeps every message in order."""

    def __init__(self):
        self.messages: list[tuple[str, str, bool]] = []

    async def publish(self, topic: str, payload: str, retain: bool = False):
        self.messages.append((topic, payload, retain))

    def topics(self) -> list[str]:
        return [topic for topic, _, _ in self.messages]


def add_session(registry: HubRegistry, client, slug: str = HUB_SLUG) -> HubSession:
    """Insert a session without running its registration refreshes or timers."""
    session = HubSession(slug, client, registry)
    registry.sessions[slug] = session
    return session


async def populate(session: HubSession):
    await session.refresh_activities()
    await session.refresh_state()
    await session.refresh_devices()


@pytest.fixture
def client():
    return FakeHubClient(current_activity=1)


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest_asyncio.fixture
async def registry(publisher):
    reg = HubRegistry()
    await reg.initialize()
    reg.set_publisher(publisher)
    yield reg
    await reg.shutdown()


@pytest.fixture
def session(registry, client):
    return add_session(registry, client)


@pytest.fixture
def api_registry(client):
    """Registry with one populated hub and no running timers."""
    reg = HubRegistry()
    session = add_session(reg, client)
    asyncio.run(populate(session))
    return reg


@pytest.fixture
def api_client(api_registry):
    """Create a FastAPI TestClient backed by api_registry."""
    app = create_api(api_registry)
    return TestClient(app)
