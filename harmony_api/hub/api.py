"""FastAPI routes for the harmony-api HTTP façade."""

import html
import logging
import time

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from harmony_api.hub.core import HubRegistry
from harmony_api.hub.dispatcher import CommandDispatcher
from harmony_api.hub.router import InboundCommandRouter
from harmony_api.hub.schemas import (
    OK,
    ActivityList,
    ActivityView,
    CommandList,
    DeviceList,
    DeviceView,
    HubList,
    HubStatusView,
    Message,
)
from harmony_api.hub.session import HubSession

logger = logging.getLogger(__name__)

NOT_FOUND = "Not Found"

# Reachable even before any hub has been discovered
_HEALTH_PATHS = frozenset({"/_ping", "/health"})


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail=NOT_FOUND)


def _require_session(commands: InboundCommandRouter, hub_slug: str) -> HubSession:
    session = commands.session(hub_slug)
    if session is None:
        raise _not_found()
    return session


def _register_read_routes(router: APIRouter, registry: HubRegistry, commands: InboundCommandRouter) -> None:
    """Register hub, activity, device, and status listing endpoints."""

    @router.get("/hubs", response_model=HubList)
    async def list_hubs():
        return HubList(hubs=registry.hub_slugs())

    @router.get("/hubs/{hub_slug}/activities", response_model=ActivityList)
    async def list_activities(hub_slug: str):
        session = _require_session(commands, hub_slug)
        return ActivityList(activities=[ActivityView.from_activity(a) for a in session.activity_list()])

    @router.get("/hubs/{hub_slug}/activities/{activity_slug}/commands", response_model=CommandList)
    async def list_activity_commands(hub_slug: str, activity_slug: str):
        activity = commands.activity(hub_slug, activity_slug)
        if activity is None:
            raise _not_found()
        return CommandList.from_commands(activity.commands.values())

    @router.get("/hubs/{hub_slug}/devices", response_model=DeviceList)
    async def list_devices(hub_slug: str):
        session = _require_session(commands, hub_slug)
        return DeviceList(devices=[DeviceView.from_device(d) for d in session.device_list()])

    @router.get("/hubs/{hub_slug}/devices/{device_slug}/commands", response_model=CommandList)
    async def list_device_commands(hub_slug: str, device_slug: str):
        device = commands.device(hub_slug, device_slug)
        if device is None:
            raise _not_found()
        return CommandList.from_commands(device.commands.values())

    @router.get("/hubs/{hub_slug}/status", response_model=HubStatusView)
    async def get_status(hub_slug: str):
        session = _require_session(commands, hub_slug)
        if session.state is None:
            raise _not_found()
        return HubStatusView.from_state(session.state)

    @router.get("/hubs/{hub_slug}/commands", response_model=CommandList)
    async def list_current_commands(hub_slug: str):
        activity = commands.current_activity(hub_slug)
        if activity is None:
            raise _not_found()
        return CommandList.from_commands(activity.commands.values())


def _register_command_routes(router: APIRouter, commands: InboundCommandRouter) -> None:
    """Register endpoints that send commands to a hub."""
    dispatcher = commands.dispatcher

    @router.post("/hubs/{hub_slug}/commands/{command_slug}", response_model=Message)
    async def send_current_command(hub_slug: str, command_slug: str, repeat: str | None = Query(None)):
        command = commands.current_activity_command(hub_slug, command_slug)
        if command is None:
            raise _not_found()
        await dispatcher.send_action(hub_slug, command.action, repeat)
        return OK

    @router.put("/hubs/{hub_slug}/off", response_model=Message)
    async def turn_off(hub_slug: str):
        _require_session(commands, hub_slug)
        await dispatcher.power_off(hub_slug)
        return OK

    @router.post("/hubs/{hub_slug}/activities/{activity_slug}", response_model=Message)
    async def start_activity(hub_slug: str, activity_slug: str):
        activity = commands.activity(hub_slug, activity_slug)
        if activity is None:
            raise _not_found()
        await dispatcher.start_activity(hub_slug, activity.id)
        return OK

    @router.post("/hubs/{hub_slug}/start_activity", response_model=Message, deprecated=True)
    async def start_activity_legacy(hub_slug: str, activity: str | None = Query(None)):
        found = commands.activity(hub_slug, activity) if activity else None
        if found is None:
            raise _not_found()
        await dispatcher.start_activity(hub_slug, found.id)
        return OK

    @router.post("/hubs/{hub_slug}/devices/{device_slug}/commands/{command_slug}", response_model=Message)
    async def send_device_command(
        hub_slug: str, device_slug: str, command_slug: str, repeat: str | None = Query(None)
    ):
        command = commands.device_command(hub_slug, device_slug, command_slug)
        if command is None:
            raise _not_found()
        await dispatcher.send_action(hub_slug, command.action, repeat)
        return OK


def _register_index_routes(router: APIRouter, registry: HubRegistry) -> None:
    """Register the HTML endpoint index used by the landing page."""

    @router.get("/hubs_for_index", response_class=HTMLResponse)
    async def hubs_for_index():
        parts: list[str] = []

        def link(path: str):
            escaped = html.escape(path)
            parts.append(f'<p><span class="method">GET</span> <a href="{escaped}">{escaped}</a></p>')

        for hub_slug in registry.hub_slugs():
            session = registry.get_session(hub_slug)
            if session is None:
                continue
            parts.append(f'<h3 class="hub-name">{html.escape(hub_slug.replace("-", " "))}</h3>')
            link(f"/hubs/{hub_slug}/status")
            link(f"/hubs/{hub_slug}/activities")
            link(f"/hubs/{hub_slug}/commands")
            for activity in session.activity_list():
                link(f"/hubs/{hub_slug}/activities/{activity.slug}/commands")
            link(f"/hubs/{hub_slug}/devices")
            for device in session.device_list():
                link(f"/hubs/{hub_slug}/devices/{device.slug}/commands")

        return "".join(parts)


def create_api(registry: HubRegistry, commands: InboundCommandRouter | None = None) -> FastAPI:
    """Create FastAPI application with hub routes.

    Args:
        registry: HubRegistry instance
        commands: Command router shared with the MQTT bridge (built from the
            registry when omitted)

    Returns:
        FastAPI application
    """
    from harmony_api import __version__

    if commands is None:
        commands = InboundCommandRouter(registry, CommandDispatcher(registry))

    app = FastAPI(
        title="harmony-api",
        description="REST API for Harmony hubs",
        version=__version__,
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})

    # Middleware registered last runs first, so hub availability is checked
    # inside the timing wrapper.
    @app.middleware("http")
    async def require_hubs_middleware(request: Request, call_next):
        if request.url.path not in _HEALTH_PATHS and not registry.has_hubs():
            return JSONResponse(status_code=500, content={"message": "No hubs available"})
        return await call_next(request)

    @app.middleware("http")
    async def request_timing_middleware(request: Request, call_next):
        registry._request_count += 1
        start = time.monotonic()
        response = await call_next(request)
        elapsed = time.monotonic() - start
        if elapsed > 1.0:
            logger.warning(f"{request.method} {request.url.path} took {elapsed:.2f}s")
        else:
            logger.debug(f"{request.method} {request.url.path} took {elapsed:.3f}s")
        return response

    @app.get("/_ping", response_class=PlainTextResponse)
    async def ping():
        return "OK"

    @app.get("/health")
    async def health():
        """Detailed health check with module status, hubs, and uptime."""
        try:
            health_data = await registry.health_check()
            return JSONResponse(content=health_data)
        except Exception:
            logger.exception("Health check failed")
            return JSONResponse(status_code=500, content={"status": "error", "error": "Health check failed"})

    router = APIRouter()
    _register_read_routes(router, registry, commands)
    _register_command_routes(router, commands)
    _register_index_routes(router, registry)
    app.include_router(router)

    return app
