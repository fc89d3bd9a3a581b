"""Broadcast sinks: push named events to live subscribers."""

import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Set

import paho.mqtt.client as mqtt
from aiohttp import WSCloseCode, web
from paho.mqtt.enums import CallbackAPIVersion

from tp358.shared.mqtt import MQTTConfig, create_event_payload, event_topic

logger = logging.getLogger(__name__)

READING_EVENT = "reading"
STATUS_EVENT = "bleStatus"


class Broadcaster(ABC):
    """Delivers a named event to every connected subscriber."""

    @abstractmethod
    async def broadcast(self, event: str, payload: Dict[str, Any]) -> None:
        """Send an event. May raise; callers decide how to handle failures."""
        pass


class MQTTBroadcaster(Broadcaster):
    """Publishes events to an MQTT broker."""

    def __init__(self, config: MQTTConfig):
        """Initialize MQTT broadcaster.

        Args:
            config: MQTT configuration.
        """
        self.config = config
        self.client: Optional[mqtt.Client] = None
        self._connected = False
        self._connect_event = threading.Event()

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        """Handle connection to broker."""
        if reason_code == 0:
            logger.info(
                f"Connected to MQTT broker at {self.config.broker}:{self.config.port}"
            )
            self._connected = True
        else:
            logger.error(f"Failed to connect to MQTT broker: {reason_code}")
            self._connected = False
        self._connect_event.set()

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        """Handle disconnection from broker."""
        self._connected = False
        if reason_code != 0:
            logger.warning(f"Unexpected MQTT disconnection (reason={reason_code})")
        else:
            logger.info("Disconnected from MQTT broker")

    def connect(self, timeout: float = 10.0) -> bool:
        """Connect to the MQTT broker.

        paho reconnects on its own once the network loop is running.

        Args:
            timeout: Timeout in seconds to wait for connection.

        Returns:
            True if connected successfully, False otherwise.
        """
        self._connect_event.clear()

        self.client = mqtt.Client(
            callback_api_version=CallbackAPIVersion.VERSION2,
            client_id=self.config.client_id,
        )
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

        logger.info(
            f"Connecting to MQTT broker at {self.config.broker}:{self.config.port}"
        )

        try:
            self.client.connect(self.config.broker, self.config.port, keepalive=self.config.keepalive)
            self.client.loop_start()

            if self._connect_event.wait(timeout=timeout):
                return self._connected
            logger.error("Timeout waiting for MQTT connection")
            return False
        except (OSError, ValueError) as e:
            logger.error(f"Failed to connect to MQTT broker: {e}")
            return False

    def disconnect(self):
        """Disconnect from the MQTT broker."""
        if self.client:
            self.client.loop_stop()
            self.client.disconnect()
            self.client = None
            self._connected = False

    async def broadcast(self, event: str, payload: Dict[str, Any]) -> None:
        """Publish an event; status events are retained for late subscribers.

        Raises:
            ConnectionError: If not connected or the publish is rejected.
        """
        if not self._connected or not self.client:
            raise ConnectionError("Not connected to MQTT broker")

        topic = event_topic(self.config.topic_prefix, event, payload)
        message = create_event_payload(payload)

        # publish() only queues the message; the network thread sends it
        result = self.client.publish(topic, message, qos=self.config.qos, retain=event == STATUS_EVENT)
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            raise ConnectionError(f"Failed to publish to {topic}: rc={result.rc}")
        logger.debug(f"Published to {topic}: {message}")

    @property
    def is_connected(self) -> bool:
        """Check if connected to MQTT broker."""
        return self._connected


class WebSocketHub(Broadcaster):
    """Fans events out to browser clients connected over WebSocket."""

    def __init__(self):
        self._clients: Set[web.WebSocketResponse] = set()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def handle(self, request: web.Request) -> web.WebSocketResponse:
        """aiohttp handler for GET /live."""
        ws = web.WebSocketResponse(heartbeat=30.0)
        await ws.prepare(request)

        self._clients.add(ws)
        logger.info(f"Live client connected ({self.client_count} total)")
        try:
            # Clients only listen; drain incoming frames until close
            async for _ in ws:
                pass
        finally:
            self._clients.discard(ws)
            logger.info(f"Live client disconnected ({self.client_count} total)")
        return ws

    async def broadcast(self, event: str, payload: Dict[str, Any]) -> None:
        message = json.dumps({"event": event, "data": payload})
        for ws in list(self._clients):
            if ws.closed:
                self._clients.discard(ws)
                continue
            try:
                await ws.send_str(message)
            except (ConnectionError, RuntimeError) as e:
                logger.debug(f"Dropping live client: {e}")
                self._clients.discard(ws)

    async def close(self):
        """Close all client connections."""
        for ws in list(self._clients):
            await ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutdown")
        self._clients.clear()


class BroadcastGroup(Broadcaster):
    """Sends each event to several broadcasters.

    A failing member is logged and does not keep the others from receiving
    the event.
    """

    def __init__(self, members: Optional[List[Broadcaster]] = None):
        self.members: List[Broadcaster] = list(members or [])

    def add(self, member: Broadcaster):
        self.members.append(member)

    async def broadcast(self, event: str, payload: Dict[str, Any]) -> None:
        for member in self.members:
            try:
                await member.broadcast(event, payload)
            except Exception as e:
                logger.warning(f"{member.__class__.__name__} failed to send '{event}': {e}")
