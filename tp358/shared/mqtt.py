"""MQTT configuration and utilities."""

import json
from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class MQTTConfig:
    """MQTT broker configuration."""
    enabled: bool = True
    broker: str = "localhost"
    port: int = 1883
    client_id: str = "tp358-scanner"
    keepalive: int = 60
    qos: int = 1
    topic_prefix: str = "tp358"

    @classmethod
    def from_dict(cls, data: dict) -> "MQTTConfig":
        """Create config from dictionary."""
        return cls(
            enabled=bool(data.get("enabled", True)),
            broker=data.get("broker", "localhost"),
            port=int(data.get("port", 1883)),
            client_id=data.get("client_id", "tp358-scanner"),
            keepalive=int(data.get("keepalive", 60)),
            qos=int(data.get("qos", 1)),
            topic_prefix=data.get("topic_prefix", "tp358").rstrip("/"),
        )


def event_topic(prefix: str, event: str, payload: Dict[str, Any]) -> str:
    """Build the MQTT topic for a broadcast event.

    Readings are published per device so subscribers can filter with
    wildcards; every other event goes to a single topic.

    Args:
        prefix: Topic prefix (e.g., 'tp358').
        event: Event name ('reading', 'bleStatus').
        payload: Event payload dictionary.

    Returns:
        Topic string, e.g. 'tp358/reading/FBB930BB5E55'.
    """
    if event == "reading" and payload.get("device_address"):
        device = str(payload["device_address"]).replace(":", "")
        return f"{prefix}/{event}/{device}"
    return f"{prefix}/{event}"


def create_event_payload(payload: Dict[str, Any]) -> str:
    """Serialize an event payload to JSON.

    Args:
        payload: Event payload dictionary.

    Returns:
        JSON string payload.
    """
    return json.dumps(payload, separators=(",", ":"))
