"""Hub registry - per-hub sessions, service modules, and background tasks."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from harmony_api.hub.client import HubClient
    from harmony_api.hub.session import HubSession

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    """Outbound message sink (the MQTT bridge in production)."""

    async def publish(self, topic: str, payload: str, retain: bool = False) -> None: ...


class Module:
    """Base class for bridge modules."""

    def __init__(self, module_id: str, registry: HubRegistry):
        self.module_id = module_id
        self.registry = registry
        self.logger = logging.getLogger(f"module.{module_id}")

    async def initialize(self):
        """Initialize module resources."""
        pass

    async def shutdown(self):
        """Cleanup module resources."""
        pass


class HubRegistry:
    """Owns every hub session plus the modules and tasks that feed them.

    A session is inserted on registration and removed with a single delete on
    teardown. Refreshes still in flight check ``is_registered`` before they
    write, so a removed session can never be repopulated.
    """

    def __init__(self):
        self.sessions: dict[str, HubSession] = {}
        self.modules: dict[str, Module] = {}
        self.module_status: dict[str, str] = {}  # module_id -> "registered" | "running" | "failed"
        self.tasks: set[asyncio.Task] = set()
        self._publisher: Publisher | None = None
        self._running = False
        self._start_time: datetime | None = None
        self._request_count: int = 0
        self.logger = logging.getLogger("hub")

    async def initialize(self):
        self.logger.info("Initializing hub registry...")
        self._running = True
        self._start_time = datetime.now(tz=UTC)

    async def shutdown(self):
        """Tear down all sessions, shut down modules, cancel background tasks."""
        self.logger.info("Shutting down hub registry...")
        self._running = False

        for hub_slug in list(self.sessions):
            self.teardown_hub(hub_slug)

        for module_id, module in self.modules.items():
            self.logger.info(f"Shutting down module: {module_id}")
            try:
                await module.shutdown()
            except Exception as e:
                self.logger.error(f"Error shutting down module {module_id}: {e}")

        for task in self.tasks:
            if not task.done():
                task.cancel()

        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
        self.logger.info("Hub registry shutdown complete")

    # ------------------------------------------------------------------
    # Modules
    # ------------------------------------------------------------------

    def register_module(self, module: Module):
        """Register a module with the registry.

        Raises:
            ValueError: if a module with the same id is already registered
        """
        if module.module_id in self.modules:
            raise ValueError(f"Module {module.module_id} already registered")

        self.modules[module.module_id] = module
        self.module_status[module.module_id] = "registered"
        self.logger.info(f"Registered module: {module.module_id}")

    def get_module(self, module_id: str) -> Module | None:
        return self.modules.get(module_id)

    def mark_module_running(self, module_id: str):
        self.module_status[module_id] = "running"

    def mark_module_failed(self, module_id: str):
        self.module_status[module_id] = "failed"

    # ------------------------------------------------------------------
    # Hub sessions
    # ------------------------------------------------------------------

    async def register_hub(self, hub_slug: str, client: HubClient) -> HubSession:
        """Create a session for ``hub_slug`` and run its registration refreshes.

        An existing session under the same slug is torn down first.
        """
        from harmony_api.hub.session import HubSession

        if hub_slug in self.sessions:
            self.logger.info(f"Hub {hub_slug} re-registered, replacing existing session")
            self.teardown_hub(hub_slug)

        session = HubSession(hub_slug, client, self)
        self.sessions[hub_slug] = session
        await session.start()
        return session

    def teardown_hub(self, hub_slug: str) -> bool:
        """Cancel a hub's timers and drop its caches.

        Returns:
            True if a session was removed, False if the slug was unknown
        """
        session = self.sessions.pop(hub_slug, None)
        if session is None:
            return False
        session.stop()
        self.logger.info(f"Hub {hub_slug} torn down")
        return True

    def get_session(self, hub_slug: str) -> HubSession | None:
        return self.sessions.get(hub_slug)

    def is_registered(self, session: HubSession) -> bool:
        """True while ``session`` is still the live entry for its slug."""
        return self.sessions.get(session.slug) is session

    def hub_slugs(self) -> list[str]:
        return list(self.sessions)

    def has_hubs(self) -> bool:
        return bool(self.sessions)

    # ------------------------------------------------------------------
    # Outbound publishing
    # ------------------------------------------------------------------

    def set_publisher(self, publisher: Publisher | None):
        """Attach the outbound publisher. Publishing is a no-op without one."""
        self._publisher = publisher

    async def publish(self, topic: str, payload: str, retain: bool = False):
        """Publish a message relative to the bus namespace.

        Publish failures are logged and swallowed so that a broker outage
        never stops a refresh loop.
        """
        if self._publisher is None:
            self.logger.debug(f"No publisher attached, dropping {topic}={payload}")
            return
        try:
            await self._publisher.publish(topic, payload, retain=retain)
        except Exception as e:
            self.logger.warning(f"Publish to {topic} failed: {e}")

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    async def schedule_task(
        self,
        task_id: str,
        coro: Callable[[], Awaitable[Any]],
        interval: timedelta | None = None,
        run_immediately: bool = True,
    ) -> asyncio.Task:
        """Schedule a task to run periodically.

        Args:
            task_id: Unique task identifier
            coro: Async callable to run
            interval: Run interval (None = run once)
            run_immediately: If True, run immediately then schedule

        Returns:
            The asyncio task driving the schedule; cancel it to stop the timer
        """

        async def run_task():
            self.logger.debug(f"Task {task_id}: starting")

            if run_immediately:
                try:
                    await coro()
                except Exception as e:
                    self.logger.error(f"Task {task_id} error: {e}")

            if interval:
                while self._running:
                    await asyncio.sleep(interval.total_seconds())
                    try:
                        await coro()
                    except Exception as e:
                        self.logger.error(f"Task {task_id} error: {e}")

        task = self.spawn(run_task(), name=task_id)
        self.logger.debug(f"Scheduled task: {task_id}" + (f" (interval: {interval})" if interval else " (one-time)"))
        return task

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
        """Run a coroutine as a tracked background task."""
        task = asyncio.create_task(coro, name=name)
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)
        return task

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def is_running(self) -> bool:
        return self._running

    def get_uptime_seconds(self) -> float:
        if self._start_time is None:
            return 0.0
        return (datetime.now(tz=UTC) - self._start_time).total_seconds()

    async def health_check(self) -> dict[str, Any]:
        """Summarize registry, module, and per-hub cache status."""
        return {
            "status": "ok" if self._running else "stopped",
            "uptime_seconds": round(self.get_uptime_seconds()),
            "modules": {module_id: self.module_status.get(module_id, "unknown") for module_id in self.modules},
            "hubs": {slug: session.summary() for slug, session in self.sessions.items()},
            "requests": self._request_count,
            "timestamp": datetime.now(tz=UTC).isoformat(),
        }
