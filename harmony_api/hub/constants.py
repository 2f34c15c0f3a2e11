"""Shared constants for hub sessions and bridge modules.

Refresh intervals and topic layouts are defined here so that the session,
the state publisher, and the MQTT bridge agree on them.
"""

# Refresh intervals (seconds)
ACTIVITIES_INTERVAL = 60  # activity list, rarely changes
STATE_INTERVAL = 5  # current activity
DEVICES_INTERVAL = 60  # device list, rarely changes

# Reserved activity id reported by the hub when it is powered off
POWER_OFF_ACTIVITY_ID = -1

# Button-press emulation
HOLD_ACTION_COMMAND = "holdAction"
PRESS_TIMESTAMP = 0
RELEASE_TIMESTAMP = 55
ACTION_DELIMITER = ":"

DEFAULT_TOPIC_NAMESPACE = "harmony-api"

# Outbound (retained) topics, relative to the namespace
TOPIC_CURRENT_ACTIVITY = "hubs/{hub}/current_activity"
TOPIC_HUB_STATE = "hubs/{hub}/state"
TOPIC_ACTIVITY_STATE = "hubs/{hub}/activities/{activity}/state"

# Inbound subscriptions, relative to the namespace
INBOUND_TOPICS = (
    "hubs/+/activities/+/command",
    "hubs/+/devices/+/command",
    "hubs/+/command",
)

# Initial reconnect stagger and backoff bounds for the MQTT listener
MQTT_RETRY_DELAY_S = 5
MQTT_MAX_RETRY_DELAY_S = 60
