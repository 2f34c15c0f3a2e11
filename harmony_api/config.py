"""Configuration dataclasses for harmony-api.

Settings come from environment variables, optionally overlaid by a JSON file
whose keys match the field names.
"""

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from harmony_api.hub.constants import DEFAULT_TOPIC_NAMESPACE
from harmony_api.hub.models import HubInfo


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def parse_hubs(value: str | list | None) -> list[HubInfo]:
    """Parse configured hubs.

    Accepts ``"Living Room=192.168.1.20,Bedroom=192.168.1.21"`` or a JSON-style
    list of ``{"name": ..., "ip": ...}`` objects.
    """
    if not value:
        return []
    hubs: list[HubInfo] = []
    if isinstance(value, str):
        for entry in value.split(","):
            name, sep, ip = entry.partition("=")
            if not sep or not name.strip() or not ip.strip():
                raise ValueError(f"Invalid hub entry {entry!r}, expected 'Name=ip'")
            hubs.append(HubInfo(friendly_name=name.strip(), ip=ip.strip()))
        return hubs
    for entry in value:
        hubs.append(HubInfo(friendly_name=entry["name"], ip=entry.get("ip")))
    return hubs


@dataclass
class BridgeConfig:
    """MQTT, HTTP, and hub settings for a bridge process."""

    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    topic_namespace: str = DEFAULT_TOPIC_NAMESPACE
    enable_mqtt: bool = True
    enable_http_server: bool = True
    http_host: str = "0.0.0.0"
    http_port: int = 8282
    hubs: list[HubInfo] = field(default_factory=list)
    client_factory: str = ""

    @classmethod
    def from_env(cls):
        return cls(
            mqtt_host=os.environ.get("HARMONY_MQTT_HOST", cls.mqtt_host),
            mqtt_port=int(os.environ.get("HARMONY_MQTT_PORT", cls.mqtt_port)),
            mqtt_username=os.environ.get("HARMONY_MQTT_USERNAME") or None,
            mqtt_password=os.environ.get("HARMONY_MQTT_PASSWORD") or None,
            topic_namespace=os.environ.get("HARMONY_TOPIC_NAMESPACE") or cls.topic_namespace,
            enable_mqtt=_env_bool("HARMONY_ENABLE_MQTT", cls.enable_mqtt),
            enable_http_server=_env_bool("HARMONY_ENABLE_HTTP", cls.enable_http_server),
            http_host=os.environ.get("HARMONY_HTTP_HOST", cls.http_host),
            http_port=int(os.environ.get("PORT", cls.http_port)),
            hubs=parse_hubs(os.environ.get("HARMONY_HUBS")),
            client_factory=os.environ.get("HARMONY_CLIENT_FACTORY", cls.client_factory),
        )

    @classmethod
    def from_file(cls, path: str | Path, base: "BridgeConfig | None" = None):
        """Overlay settings from a JSON file onto ``base`` (env config by default).

        Raises:
            ValueError: on unknown keys
        """
        data: dict[str, Any] = json.loads(Path(path).read_text())
        config = base if base is not None else cls.from_env()
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config key(s): {', '.join(sorted(unknown))}")
        for key, value in data.items():
            if key == "hubs":
                value = parse_hubs(value)
            setattr(config, key, value)
        return config
