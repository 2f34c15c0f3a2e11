"""MQTT Bridge Module - inbound hub commands and retained state publishing.

Subscribes to the command topics under the configured namespace and hands
each message to the command router in its own task, so a slow hub call never
blocks the message loop. Also serves as the registry's outbound publisher.
"""

import asyncio
import random

import aiomqtt

from harmony_api.hub.constants import (
    DEFAULT_TOPIC_NAMESPACE,
    INBOUND_TOPICS,
    MQTT_MAX_RETRY_DELAY_S,
    MQTT_RETRY_DELAY_S,
)
from harmony_api.hub.core import HubRegistry, Module
from harmony_api.hub.router import InboundCommandRouter
from harmony_api.hub.state import publish_transition


class MqttBridgeModule(Module):
    """Connects the hub registry to an MQTT broker."""

    def __init__(  # noqa: PLR0913
        self,
        registry: HubRegistry,
        router: InboundCommandRouter,
        mqtt_host: str = "localhost",
        mqtt_port: int = 1883,
        mqtt_user: str | None = None,
        mqtt_password: str | None = None,
        namespace: str = DEFAULT_TOPIC_NAMESPACE,
    ):
        super().__init__("mqtt_bridge", registry)
        self.router = router
        self.mqtt_host = mqtt_host
        self.mqtt_port = mqtt_port
        self.mqtt_user = mqtt_user
        self.mqtt_password = mqtt_password
        self.namespace = namespace.strip("/")

        self._client: aiomqtt.Client | None = None
        self._mqtt_connected = False

    async def initialize(self):
        """Attach as the outbound publisher and start the listener."""
        self.logger.info("MQTT bridge initializing...")
        self.registry.set_publisher(self)
        await self.registry.schedule_task(
            task_id="mqtt_listener",
            coro=self._mqtt_listen_loop,
            interval=None,
            run_immediately=True,
        )

    async def shutdown(self):
        self.registry.set_publisher(None)
        self._client = None
        self._mqtt_connected = False
        self.logger.info("MQTT bridge shut down")

    @property
    def connected(self) -> bool:
        return self._mqtt_connected

    def topic(self, relative: str) -> str:
        return f"{self.namespace}/{relative}"

    def subscriptions(self) -> list[str]:
        return [self.topic(t) for t in INBOUND_TOPICS]

    async def publish(self, topic: str, payload: str, retain: bool = False):
        """Publish ``payload`` on ``topic`` relative to the namespace.

        Messages are dropped while disconnected; retained state is republished
        by ``republish_state`` when the connection comes up.
        """
        client = self._client
        if client is None or not self._mqtt_connected:
            self.logger.debug(f"MQTT not connected, dropping {topic}={payload}")
            return
        try:
            await client.publish(self.topic(topic), payload, retain=retain)
        except aiomqtt.MqttError as e:
            self.logger.warning(f"MQTT publish to {topic} failed: {e}")

    async def republish_state(self):
        """Publish the current transition of every hub with a known state.

        Transitions are only published on change, so anything dropped while
        disconnected is sent again once the broker is reachable.
        """
        for session in list(self.registry.sessions.values()):
            state = session.state
            if state is None or state.current_activity is None:
                continue
            await publish_transition(session, state.current_activity)

    async def _mqtt_listen_loop(self):
        """Connect to the broker, subscribe, and route incoming commands."""
        retry_delay = MQTT_RETRY_DELAY_S

        while self.registry.is_running():
            try:
                async with aiomqtt.Client(
                    hostname=self.mqtt_host,
                    port=self.mqtt_port,
                    username=self.mqtt_user,
                    password=self.mqtt_password,
                ) as client:
                    self._client = client
                    self._mqtt_connected = True
                    self.logger.info(f"MQTT connected to {self.mqtt_host}:{self.mqtt_port}")
                    retry_delay = MQTT_RETRY_DELAY_S

                    for topic in self.subscriptions():
                        await client.subscribe(topic)

                    await self.republish_state()

                    async for message in client.messages:
                        self._handle_message(str(message.topic), message.payload)

            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._client = None
                self._mqtt_connected = False
                self.logger.warning(f"MQTT connection failed: {e}, retrying in {retry_delay}s")

                jitter = retry_delay * random.uniform(-0.25, 0.25)
                await asyncio.sleep(retry_delay + jitter)
                retry_delay = min(retry_delay * 2, MQTT_MAX_RETRY_DELAY_S)
            finally:
                self._client = None
                self._mqtt_connected = False

    def _handle_message(self, topic: str, payload) -> asyncio.Task | None:
        """Route one inbound message in its own task."""
        if isinstance(payload, (bytes, bytearray)):
            try:
                payload = payload.decode()
            except UnicodeDecodeError:
                self.logger.debug(f"Ignoring non-text payload on {topic}")
                return None
        elif payload is None:
            payload = ""
        else:
            payload = str(payload)

        relative = topic.removeprefix(f"{self.namespace}/")
        return self.registry.spawn(self._route(relative, payload), name=f"mqtt_route:{relative}")

    async def _route(self, topic: str, payload: str):
        try:
            await self.router.route(topic, payload)
        except Exception as e:
            self.logger.warning(f"MQTT message error on {topic}: {e}")
