from __future__ import annotations

from decimal import Decimal
import logging
import math
from typing import Any, Protocol

import paho.mqtt.client as mqtt

from vzlogger_mqtt.channel import Channel, Reading
from vzlogger_mqtt.config import MqttConfig
from vzlogger_mqtt.logging_utils import TRACE_LEVEL
from vzlogger_mqtt.topics import ChannelTopicCache, ChannelTopicEntry

QOS = 0


class ClientSource(Protocol):
    """What ``Publisher`` needs from a connection (``ConnectionManager``)."""

    config: MqttConfig

    @property
    def client(self) -> Any: ...

    @property
    def enabled(self) -> bool: ...


def format_value(value: float) -> str:
    """Render a reading as a plain decimal string (``42.5``, ``1e-07`` -> ``0.0000001``).

    Raises ``ValueError`` for NaN and infinities, which have no decimal form.
    """
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"non-finite reading {number}")
    return format(Decimal(repr(number)), "f")


class Publisher:
    """Publishes channel readings through a ``ConnectionManager``.

    ``publish`` is called from the data-producing threads: it never blocks on
    the broker and never raises.
    """

    def __init__(self, connection: ClientSource) -> None:
        self.connection = connection
        self.cache = ChannelTopicCache(
            connection.config.topic_prefix,
            connection.config.raw_and_agg,
        )
        self.logger = logging.getLogger(self.__class__.__name__)

    def _send(self, client: mqtt.Client, topic: str, payload: str) -> bool:
        try:
            result = client.publish(
                topic,
                payload=payload,
                qos=QOS,
                retain=self.connection.config.retain,
            )
        except (ValueError, OSError) as exc:
            self.logger.log(TRACE_LEVEL, "publish to %s failed: %s", topic, exc)
            return False
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            self.logger.log(TRACE_LEVEL, "publish to %s returned %s", topic, result.rc)
            return False
        return True

    def _announce(self, client: mqtt.Client, entry: ChannelTopicEntry) -> None:
        if entry.announced or not entry.announce_topic:
            return
        with entry.announce_lock:
            if entry.announced:
                return
            if self._send(client, entry.announce_topic, entry.announce_value):
                entry.announced = True

    def publish(self, channel: Channel | None, reading: Reading, aggregate: bool = False) -> None:
        if channel is None:
            return
        client = self.connection.client
        if client is None or not self.connection.enabled:
            return

        entry = self.cache.resolve(channel.name, channel)
        self._announce(client, entry)

        if not entry.sends(aggregate):
            return
        topic = entry.topic_for(aggregate)
        try:
            payload = format_value(reading.value)
        except (OverflowError, ValueError, TypeError) as exc:
            self.logger.log(TRACE_LEVEL, "skipping reading for %s: %s", topic, exc)
            return
        self.logger.log(TRACE_LEVEL, "publish %s=%s", topic, payload)
        self._send(client, topic, payload)
