from __future__ import annotations

from dataclasses import dataclass
import configparser
import logging
from pathlib import Path
from typing import Any, Callable, Mapping

from vzlogger_mqtt.channel import AggMode, MeterChannel
from vzlogger_mqtt.logging_utils import TRACE_LEVEL
from vzlogger_mqtt.schema import validate_options

DEFAULT_TOPIC_PREFIX = "vzlogger/"
CHANNEL_SECTION_PREFIX = "channel:"

logger = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """Raised when the MQTT configuration is missing or unusable."""


@dataclass(frozen=True)
class MqttConfig:
    enabled: bool = False
    retain: bool = False
    raw_and_agg: bool = False
    host: str = ""
    port: int = 1883
    keepalive: int = 60
    user: str = ""
    password: str = ""
    topic_prefix: str = DEFAULT_TOPIC_PREFIX

    def is_configured(self) -> bool:
        if not self.enabled:
            return False
        if not self.port:
            logger.log(TRACE_LEVEL, "mqtt port not configured!")
        if not self.host:
            logger.warning("mqtt host not configured!")
        return self.port != 0 and bool(self.host)


@dataclass(frozen=True)
class ChannelConfig:
    name: str
    uuid: str
    aggmode: AggMode

    def to_channel(self) -> MeterChannel:
        return MeterChannel(name=self.name, uuid=self.uuid, aggmode=self.aggmode)


@dataclass(frozen=True)
class AppConfig:
    mqtt: MqttConfig
    channels: list[ChannelConfig]


def normalize_topic_prefix(topic: str | None) -> str:
    """Return ``topic`` with exactly one trailing slash.

    Empty topics, and topics MQTT would not accept as a publish prefix
    (leading ``$``, wildcards, NUL), fall back to ``vzlogger/``.
    """
    if topic is None:
        return DEFAULT_TOPIC_PREFIX
    topic = topic.strip().rstrip("/")
    if not topic:
        return DEFAULT_TOPIC_PREFIX
    if topic.startswith("$") or any(char in topic for char in "+#\x00"):
        logger.warning(
            "Invalid mqtt topic prefix '%s', using '%s' instead.",
            topic,
            DEFAULT_TOPIC_PREFIX,
        )
        return DEFAULT_TOPIC_PREFIX
    return topic + "/"


def parse_options(options: Mapping[str, Any] | None) -> MqttConfig:
    """Build an ``MqttConfig`` from a JSON-style option object.

    Unknown keys and wrongly typed values are dropped with a warning.
    """
    if options is None:
        raise ConfigurationError("config: mqtt no options!")
    if not isinstance(options, Mapping):
        raise ConfigurationError(
            f"config: mqtt options must be an object, got {type(options).__name__}"
        )

    rejected: set[str] = set()
    for error in validate_options(options):
        if error.key is None:
            raise ConfigurationError(f"config: invalid mqtt options: {error.message}")
        if error.key not in rejected:
            logger.warning(
                "Ignoring invalid field or type: %s=%s (%s)",
                error.key,
                options[error.key],
                error.message,
            )
            rejected.add(error.key)
    valid = {key: value for key, value in options.items() if key not in rejected}

    defaults = MqttConfig()
    return MqttConfig(
        enabled=valid.get("enabled", defaults.enabled),
        retain=valid.get("retain", defaults.retain),
        raw_and_agg=valid.get("rawAndAgg", defaults.raw_and_agg),
        host=valid.get("host", defaults.host),
        port=int(valid.get("port", defaults.port)),
        keepalive=int(valid.get("keepalive", defaults.keepalive)),
        user=valid.get("user", defaults.user),
        password=valid.get("pass", defaults.password),
        topic_prefix=normalize_topic_prefix(valid.get("topic")),
    )


_OPTION_CONVERTERS: dict[str, Callable[[configparser.SectionProxy, str], Any]] = {
    "enabled": lambda section, key: section.getboolean(key),
    "retain": lambda section, key: section.getboolean(key),
    "rawAndAgg": lambda section, key: section.getboolean(key),
    "port": lambda section, key: section.getint(key),
    "keepalive": lambda section, key: section.getint(key),
    "host": lambda section, key: section.get(key),
    "user": lambda section, key: section.get(key),
    "pass": lambda section, key: section.get(key),
    "topic": lambda section, key: section.get(key),
}


def _read_mqtt_section(section: configparser.SectionProxy) -> dict[str, Any]:
    options: dict[str, Any] = {}
    for key in section:
        converter = _OPTION_CONVERTERS.get(key)
        if converter is None:
            # left in place so parse_options reports it as unknown
            options[key] = section.get(key)
            continue
        try:
            options[key] = converter(section, key)
        except ValueError:
            logger.warning("Ignoring invalid field or type: %s=%s", key, section.get(key))
    return options


def _read_channels(parser: configparser.ConfigParser) -> list[ChannelConfig]:
    channels: list[ChannelConfig] = []
    for section_name in parser.sections():
        if not section_name.startswith(CHANNEL_SECTION_PREFIX):
            continue
        name = section_name[len(CHANNEL_SECTION_PREFIX):].strip()
        section = parser[section_name]
        uuid = section.get("uuid", "").strip()
        if not name or not uuid:
            logger.warning("Skipping channel section [%s]: name and uuid are required.", section_name)
            continue
        try:
            aggmode = AggMode.parse(section.get("aggmode"))
        except ValueError as exc:
            raise ConfigurationError(f"config: channel {name}: {exc}") from exc
        channels.append(ChannelConfig(name=name, uuid=uuid, aggmode=aggmode))
    return channels


def load_config(path: str | Path) -> AppConfig:
    # keys are case sensitive ("rawAndAgg")
    parser = configparser.ConfigParser(interpolation=None)
    parser.optionxform = str  # type: ignore[assignment, method-assign]
    read_files = parser.read(path, encoding="utf-8")
    if not read_files:
        raise ConfigurationError(f"Config file not found: {path}")
    if not parser.has_section("mqtt"):
        raise ConfigurationError(f"config: no [mqtt] section in {path}")

    mqtt = parse_options(_read_mqtt_section(parser["mqtt"]))
    return AppConfig(mqtt=mqtt, channels=_read_channels(parser))
