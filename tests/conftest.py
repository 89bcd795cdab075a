"""Pytest configuration and shared fixtures."""
from __future__ import annotations

from unittest.mock import MagicMock, patch

import paho.mqtt.client as mqtt
import pytest

from vzlogger_mqtt.channel import AggMode, MeterChannel
from vzlogger_mqtt.config import MqttConfig


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "threaded: mark test as starting real background threads"
    )


@pytest.fixture(autouse=True)
def library_ready():
    """Pretend the installed paho-mqtt passed the version check."""
    with patch("vzlogger_mqtt.connection.init_library", return_value=True) as mock:
        yield mock


@pytest.fixture
def mqtt_config():
    return MqttConfig(
        enabled=True,
        retain=False,
        raw_and_agg=False,
        host="broker",
        port=1883,
        keepalive=30,
        user="",
        password="",
        topic_prefix="vzlogger/",
    )


@pytest.fixture
def fake_client():
    """A paho client double whose calls all succeed."""
    client = MagicMock(name="paho_client")
    client.connect.return_value = mqtt.MQTT_ERR_SUCCESS
    client.publish.return_value = MagicMock(rc=mqtt.MQTT_ERR_SUCCESS)
    client.loop.return_value = mqtt.MQTT_ERR_SUCCESS
    client.reconnect.return_value = mqtt.MQTT_ERR_SUCCESS
    client.disconnect.return_value = mqtt.MQTT_ERR_SUCCESS
    return client


@pytest.fixture
def client_factory(fake_client):
    with patch("vzlogger_mqtt.connection.mqtt.Client", return_value=fake_client) as factory:
        yield factory


@pytest.fixture
def power_channel():
    return MeterChannel(name="power1", uuid="6836dd20-00d5-11e0-bab1-856ed5f959ae")


@pytest.fixture
def energy_channel():
    return MeterChannel(
        name="energy",
        uuid="9b0a8c10-6a2b-11e0-9d4e-3b9f0a7c1e22",
        aggmode=AggMode.AVG,
    )
