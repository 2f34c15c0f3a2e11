"""Discovery Module - turns hub online/offline events into sessions.

Any discovery source can drive ``hub_online`` / ``hub_offline``. Hubs listed
in the configuration are announced online, each in its own task, when the
module initializes.
"""

from collections.abc import Iterable

from harmony_api.hub.client import ClientFactory
from harmony_api.hub.core import HubRegistry, Module
from harmony_api.hub.models import HubInfo
from harmony_api.hub.naming import slugify


class DiscoveryModule(Module):
    """Registers and tears down hub sessions as hubs come and go."""

    def __init__(
        self,
        registry: HubRegistry,
        client_factory: ClientFactory,
        static_hubs: Iterable[HubInfo] = (),
    ):
        """Initialize discovery module.

        Args:
            registry: HubRegistry instance
            client_factory: Async callable creating a hub client from an IP
            static_hubs: Hubs to announce online at startup
        """
        super().__init__("discovery", registry)
        self.client_factory = client_factory
        self.static_hubs = list(static_hubs)

    async def initialize(self):
        self.logger.info(f"Discovery module initializing ({len(self.static_hubs)} configured hub(s))...")
        # One task per hub; a hung hub delays only its own registration
        for info in self.static_hubs:
            self.registry.spawn(self.hub_online(info), name=f"hub_online:{info.friendly_name}")

    async def hub_online(self, info: HubInfo):
        """Create a client for a newly seen hub and register its session."""
        self.logger.info(f"Hub discovered: {info.friendly_name} at {info.ip}.")
        if not info.ip or not info.friendly_name:
            return

        hub_slug = slugify(info.friendly_name)
        try:
            client = await self.client_factory(info.ip)
        except Exception as e:
            self.logger.error(f"Failed to connect to hub {hub_slug} at {info.ip}: {e}")
            return

        await self.registry.register_hub(hub_slug, client)

    async def hub_offline(self, info: HubInfo):
        """Tear down the session of a hub that disappeared."""
        self.logger.info(f"Hub lost: {info.friendly_name} at {info.ip}.")
        if not info.friendly_name:
            return
        self.registry.teardown_hub(slugify(info.friendly_name))
