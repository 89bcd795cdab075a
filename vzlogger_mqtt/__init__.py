"""MQTT publishing for vzlogger meter readings."""

from vzlogger_mqtt.channel import AggMode, MeterChannel, MeterReading
from vzlogger_mqtt.config import ConfigurationError, MqttConfig, load_config, parse_options
from vzlogger_mqtt.connection import ConnectionManager, ConnectionState
from vzlogger_mqtt.publisher import Publisher
from vzlogger_mqtt.reconnect import ReconnectLoop
from vzlogger_mqtt.topics import ChannelTopicCache, ChannelTopicEntry, generate_names

__all__ = [
    "AggMode",
    "ChannelTopicCache",
    "ChannelTopicEntry",
    "ConfigurationError",
    "ConnectionManager",
    "ConnectionState",
    "MeterChannel",
    "MeterReading",
    "MqttConfig",
    "Publisher",
    "ReconnectLoop",
    "generate_names",
    "load_config",
    "parse_options",
]
