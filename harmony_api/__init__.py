"""harmony-api: MQTT and HTTP bridge for Harmony remote-control hubs."""

__version__ = "1.0.0"
