"""Topic utilities for the MQTT link to the Matter server node."""

from typing import Optional


def topic_node_config(base: str) -> str:
    """Get MQTT topic for the server node configuration."""
    return f"{base}/node/config"


def topic_status(base: str) -> str:
    """Get MQTT topic the node publishes its commissioning status on."""
    return f"{base}/status"


def topic_endpoint_config(base: str, endpoint_id: str) -> str:
    """Get MQTT topic for an endpoint description."""
    return f"{base}/endpoints/{endpoint_id}/config"


def topic_endpoint_state(base: str, endpoint_id: str) -> str:
    """Get MQTT topic for an endpoint's attribute tree."""
    return f"{base}/endpoints/{endpoint_id}/state"


def topic_command_pattern(base: str) -> str:
    """Get MQTT subscription pattern for inbound commands."""
    return f"{base}/endpoints/+/command"


def parse_command_topic(base: str, topic: str) -> Optional[str]:
    """Return the endpoint id of a command topic, or None if it is not one."""
    prefix = f"{base}/endpoints/"
    if not topic.startswith(prefix) or not topic.endswith("/command"):
        return None
    endpoint_id = topic[len(prefix):-len("/command")]
    if not endpoint_id or "/" in endpoint_id:
        return None
    return endpoint_id
