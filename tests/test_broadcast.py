"""Tests for broadcast sinks."""

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import paho.mqtt.client as mqtt
import pytest

from tp358.scanner.broadcast import (
    READING_EVENT,
    STATUS_EVENT,
    BroadcastGroup,
    MQTTBroadcaster,
    WebSocketHub,
)
from tp358.shared.mqtt import MQTTConfig, create_event_payload, event_topic


def test_event_topic():
    assert event_topic("tp358", READING_EVENT, {"device_address": "FB:B9:30:BB:5E:55"}) == "tp358/reading/FBB930BB5E55"
    assert event_topic("tp358", STATUS_EVENT, {"warning": True}) == "tp358/bleStatus"
    assert event_topic("home", READING_EVENT, {}) == "home/reading"


def test_create_event_payload_is_compact():
    assert create_event_payload({"a": 1, "b": None}) == '{"a":1,"b":null}'


@pytest.fixture
def connected_mqtt():
    broadcaster = MQTTBroadcaster(MQTTConfig(topic_prefix="tp358", qos=1))
    broadcaster.client = MagicMock()
    broadcaster.client.publish.return_value = SimpleNamespace(rc=mqtt.MQTT_ERR_SUCCESS)
    broadcaster._connected = True
    return broadcaster


@pytest.mark.asyncio
async def test_mqtt_publishes_readings_per_device(connected_mqtt):
    payload = {"device_address": "FB:B9:30:BB:5E:55", "temperature_c": 16.9}

    await connected_mqtt.broadcast(READING_EVENT, payload)

    args, kwargs = connected_mqtt.client.publish.call_args
    assert args[0] == "tp358/reading/FBB930BB5E55"
    assert json.loads(args[1]) == payload
    assert kwargs == {"qos": 1, "retain": False}


@pytest.mark.asyncio
async def test_mqtt_retains_status(connected_mqtt):
    await connected_mqtt.broadcast(STATUS_EVENT, {"warning": False, "message": ""})

    args, kwargs = connected_mqtt.client.publish.call_args
    assert args[0] == "tp358/bleStatus"
    assert kwargs["retain"] is True


@pytest.mark.asyncio
async def test_mqtt_rejected_publish_raises(connected_mqtt):
    connected_mqtt.client.publish.return_value = SimpleNamespace(rc=mqtt.MQTT_ERR_NO_CONN)

    with pytest.raises(ConnectionError):
        await connected_mqtt.broadcast(READING_EVENT, {"device_address": "FB:B9:30:BB:5E:55"})


@pytest.mark.asyncio
async def test_mqtt_not_connected_raises():
    broadcaster = MQTTBroadcaster(MQTTConfig())

    assert not broadcaster.is_connected
    with pytest.raises(ConnectionError):
        await broadcaster.broadcast(READING_EVENT, {})


@pytest.mark.asyncio
async def test_group_isolates_failing_members(broadcaster):
    class Failing:
        async def broadcast(self, event, payload):
            raise ConnectionError("down")

    group = BroadcastGroup([Failing()])
    group.add(broadcaster)

    await group.broadcast(STATUS_EVENT, {"warning": True})

    assert broadcaster.events == [(STATUS_EVENT, {"warning": True})]


@pytest.mark.asyncio
async def test_hub_without_clients():
    hub = WebSocketHub()

    await hub.broadcast(READING_EVENT, {"device_address": "FB:B9:30:BB:5E:55"})

    assert hub.client_count == 0


@pytest.mark.asyncio
async def test_hub_drops_closed_clients():
    class ClosedSocket:
        closed = True

    hub = WebSocketHub()
    hub._clients.add(ClosedSocket())

    await hub.broadcast(READING_EVENT, {})

    assert hub.client_count == 0
