"""Hub client interface.

The wire protocol spoken to the hub is provided by the deployment: any object
implementing ``HubClient`` works, and ``load_client_factory`` resolves the
factory configured as ``module:callable``.
"""

import importlib
from collections.abc import Awaitable, Callable
from typing import Any, Protocol


class HubClient(Protocol):
    """Async calls the bridge makes against a single hub."""

    async def get_activities(self) -> list[dict[str, Any]]:
        """Return activities with ``id``, ``label``, ``isAVActivity``, ``controlGroup``."""
        ...

    async def get_available_commands(self) -> dict[str, Any]:
        """Return ``{"device": [...]}`` with ``id``, ``label``, ``controlGroup`` per device."""
        ...

    async def get_current_activity(self) -> int | str:
        """Return the id of the running activity (``-1`` when off)."""
        ...

    async def start_activity(self, activity_id: int) -> Any: ...

    async def turn_off(self) -> Any: ...

    async def send(self, command: str, body: str) -> Any:
        """Send a raw command such as ``holdAction`` with a delimited body."""
        ...


ClientFactory = Callable[[str], Awaitable[HubClient]]


def load_client_factory(path: str) -> ClientFactory:
    """Import a client factory given as ``package.module:callable``.

    Raises:
        ValueError: if ``path`` is not in ``module:callable`` form
        ImportError / AttributeError: if the target cannot be resolved
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Client factory must be 'module:callable', got {path!r}")
    module = importlib.import_module(module_name)
    factory = getattr(module, attr)
    if not callable(factory):
        raise TypeError(f"Client factory {path!r} is not callable")
    return factory
