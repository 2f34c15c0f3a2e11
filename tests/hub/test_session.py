"""Unit tests for HubSession.

Covers registration ordering, cache construction and replacement, refresh
failure handling, teardown races, and the off/current-activity invariant.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from conftest import HUB_SLUG, FakeHubClient, add_session, make_activities, populate

from harmony_api.hub.session import _shielded, build_activities, build_devices

# ============================================================================
# Cache builders
# ============================================================================


class TestBuilders:
    def test_build_activities_keys_by_int_id(self):
        activities = build_activities(make_activities())
        assert sorted(activities) == [-1, 1, 2]
        watch_tv = activities[1]
        assert watch_tv.slug == "watch-tv"
        assert watch_tv.is_av_activity is True
        assert "volume-up" in watch_tv.commands

    def test_build_devices(self):
        devices = build_devices({"device": [{"id": "7", "label": "Xbox One", "controlGroup": []}]})
        assert devices[7].slug == "xbox-one"
        assert devices[7].commands == {}

    def test_build_devices_without_device_key(self):
        assert build_devices({}) == {}


# ============================================================================
# Registration
# ============================================================================


class TestRegistration:
    """Registration runs activities, state, devices in order, then starts timers."""

    async def test_initial_refresh_order(self, registry):
        calls = []
        client = FakeHubClient(current_activity=1)
        client.get_activities.side_effect = lambda: calls.append("activities") or make_activities()
        client.get_current_activity.side_effect = lambda: calls.append("state") or "1"
        client.get_available_commands.side_effect = lambda: calls.append("devices") or {"device": []}

        await registry.register_hub(HUB_SLUG, client)

        assert calls == ["activities", "state", "devices"]

    async def test_state_resolved_on_registration(self, registry, client):
        session = await registry.register_hub(HUB_SLUG, client)
        assert session.state is not None
        assert session.state.current_activity.slug == "watch-tv"

    async def test_three_timers_started(self, registry, client):
        session = await registry.register_hub(HUB_SLUG, client)
        assert set(session._timers) == {"activities", "state", "devices"}
        assert all(not t.done() for t in session._timers.values())

    async def test_reregistration_replaces_session(self, registry, client):
        first = await registry.register_hub(HUB_SLUG, client)
        second = await registry.register_hub(HUB_SLUG, FakeHubClient(current_activity=2))

        assert registry.get_session(HUB_SLUG) is second
        assert first.activities == {}
        assert second.state.current_activity.slug == "listen-to-music"

    async def test_teardown_during_registration_starts_no_timers(self, registry, client):
        async def _get_devices():
            registry.teardown_hub(HUB_SLUG)
            return {"device": []}

        client.get_available_commands = AsyncMock(side_effect=_get_devices)
        session = await registry.register_hub(HUB_SLUG, client)

        assert session._timers == {}
        assert registry.get_session(HUB_SLUG) is None


# ============================================================================
# Refreshes
# ============================================================================


class TestRefresh:
    async def test_refresh_replaces_cache_object(self, session, client):
        await session.refresh_activities()
        first = session.activities

        client.get_activities.return_value = make_activities(include_power_off=False)
        await session.refresh_activities()

        assert session.activities is not first
        assert sorted(session.activities) == [1, 2]
        assert -1 in first  # previous snapshot untouched

    async def test_activity_failure_keeps_cache(self, session, client):
        await session.refresh_activities()
        before = session.activities

        client.get_activities.side_effect = ConnectionError("hub unreachable")
        await session.refresh_activities()

        assert session.activities is before

    async def test_malformed_response_keeps_cache(self, session, client):
        await session.refresh_devices()
        before = session.devices

        client.get_available_commands.return_value = {"device": [{"label": "No id"}]}
        await session.refresh_devices()

        assert session.devices is before

    async def test_state_failure_keeps_state(self, session, client):
        await populate(session)
        before = session.state

        client.get_current_activity.side_effect = TimeoutError()
        await session.refresh_state()

        assert session.state is before

    async def test_failure_then_recovery(self, session, client):
        client.get_activities.side_effect = [ConnectionError("down"), make_activities()]
        await session.refresh_activities()
        assert session.activities == {}

        await session.refresh_activities()
        assert len(session.activities) == 3

    async def test_duplicate_activity_slug_last_write_wins(self, session, client):
        client.get_activities.return_value = [
            {"id": "1", "label": "Watch TV", "controlGroup": []},
            {"id": "5", "label": "Watch  TV", "controlGroup": []},
        ]
        await session.refresh_activities()

        assert session.activity_by_slug("watch-tv").id == 5


# ============================================================================
# Off / current activity invariant
# ============================================================================


class TestStateInvariant:
    @pytest.mark.parametrize(("activity_id", "off"), [(-1, True), (1, False), (2, False)])
    async def test_off_iff_power_off_activity(self, session, client, activity_id, off):
        client.get_current_activity.return_value = str(activity_id)
        await populate(session)

        assert session.state.off is off
        assert (session.state.current_activity.id == -1) is off

    async def test_activity_commands_match_current_activity(self, session):
        await populate(session)
        slugs = [c.slug for c in session.state.activity_commands]
        assert slugs == list(session.activities[1].commands)

    async def test_unknown_activity_id_fails_soft(self, session, client, publisher):
        await populate(session)
        before = session.state
        publisher.messages.clear()

        client.get_current_activity.return_value = "999"
        await session.refresh_state()

        assert session.state is before
        assert publisher.messages == []

    async def test_state_before_activities_fails_soft(self, session, publisher):
        await session.refresh_state()

        assert session.state is None
        assert publisher.messages == []


# ============================================================================
# Teardown races
# ============================================================================


class TestTeardown:
    """A refresh completing after teardown must not repopulate anything."""

    @pytest.mark.parametrize(
        ("method", "call", "attr", "empty"),
        [
            ("refresh_activities", "get_activities", "activities", {}),
            ("refresh_devices", "get_available_commands", "devices", {}),
        ],
    )
    async def test_late_cache_refresh_discarded(self, registry, client, method, call, attr, empty):
        session = add_session(registry, client)
        gate = asyncio.Event()
        response = await getattr(client, call)()

        async def _slow():
            await gate.wait()
            return response

        setattr(client, call, AsyncMock(side_effect=_slow))
        task = asyncio.create_task(getattr(session, method)())
        await asyncio.sleep(0)

        registry.teardown_hub(HUB_SLUG)
        gate.set()
        await task

        assert getattr(session, attr) == empty
        assert registry.get_session(HUB_SLUG) is None

    async def test_late_state_refresh_discarded(self, registry, client, publisher):
        session = add_session(registry, client)
        await session.refresh_activities()
        gate = asyncio.Event()

        async def _slow():
            await gate.wait()
            return "1"

        client.get_current_activity = AsyncMock(side_effect=_slow)
        task = asyncio.create_task(session.refresh_state())
        await asyncio.sleep(0)

        registry.teardown_hub(HUB_SLUG)
        gate.set()
        await task

        assert session.state is None
        assert session.activities == {}
        assert publisher.messages == []

    async def test_teardown_cancels_timers(self, registry, client):
        session = await registry.register_hub(HUB_SLUG, client)
        timers = list(session._timers.values())

        assert registry.teardown_hub(HUB_SLUG) is True
        await asyncio.gather(*timers, return_exceptions=True)

        assert all(t.cancelled() for t in timers)
        assert session._timers == {}

    async def test_teardown_unknown_hub(self, registry):
        assert registry.teardown_hub("nope") is False

    async def test_refresh_after_teardown_skips_hub_call(self, registry, client):
        session = add_session(registry, client)
        registry.teardown_hub(HUB_SLUG)

        await session.refresh_activities()
        await session.refresh_state()
        await session.refresh_devices()

        client.get_activities.assert_not_awaited()
        client.get_current_activity.assert_not_awaited()
        client.get_available_commands.assert_not_awaited()


class TestShieldedTick:
    async def test_cancelling_tick_does_not_cancel_refresh(self):
        started = asyncio.Event()
        gate = asyncio.Event()
        finished = []

        async def _refresh():
            started.set()
            await gate.wait()
            finished.append(True)

        task = asyncio.create_task(_shielded(_refresh)())
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        gate.set()
        for _ in range(5):
            await asyncio.sleep(0)

        assert finished == [True]


# ============================================================================
# Lookups
# ============================================================================


class TestLookups:
    async def test_device_command(self, session):
        await populate(session)
        command = session.device_command("living-room-tv", "power-on")
        assert command.name == "PowerOn"
        assert session.device_command("living-room-tv", "nope") is None
        assert session.device_command("nope", "power-on") is None

    async def test_current_activity_command(self, session):
        await populate(session)
        assert session.current_activity().slug == "watch-tv"
        assert session.current_activity_command("channel-up").name == "ChannelUp"
        assert session.current_activity_command("nope") is None

    async def test_current_activity_without_state(self, session):
        assert session.current_activity() is None
        assert session.current_activity_command("mute") is None

    async def test_summary(self, session):
        await populate(session)
        assert session.summary() == {"activities": 3, "devices": 2, "current_activity": "watch-tv", "off": False}
