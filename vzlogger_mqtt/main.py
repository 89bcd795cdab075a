from __future__ import annotations

import argparse
import logging
import sys
import threading
from typing import Callable, Iterable, Mapping

import paho.mqtt.client as mqtt

from vzlogger_mqtt.channel import MeterChannel, MeterReading
from vzlogger_mqtt.config import ConfigurationError, MqttConfig, load_config
from vzlogger_mqtt.connection import ConnectionManager
from vzlogger_mqtt.logging_utils import configure_logging, resolve_log_level
from vzlogger_mqtt.publisher import Publisher
from vzlogger_mqtt.reconnect import ReconnectLoop

AGGREGATE_MARKER = "agg"

PublishFn = Callable[[MeterChannel, MeterReading, bool], None]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Publish meter readings read from stdin to an MQTT broker",
        epilog="Input lines: '<channel> <value> [agg]'. '#' starts a comment.",
    )
    parser.add_argument(
        "--config",
        default="config/example.cfg",
        help="Path to CFG configuration file",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (TRACE, DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable debug logging (-v) or trace logging (-vv)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log topics and payloads without connecting to MQTT",
    )
    return parser


def parse_reading_line(line: str) -> tuple[str, float, bool] | None:
    """Parse ``<channel> <value> [agg]``; ``None`` for blank and comment lines."""
    line = line.split("#", 1)[0].strip()
    if not line:
        return None
    fields = line.split()
    if len(fields) not in (2, 3):
        raise ValueError(f"expected '<channel> <value> [agg]', got {line!r}")
    aggregate = False
    if len(fields) == 3:
        if fields[2].lower() != AGGREGATE_MARKER:
            raise ValueError(f"unknown reading kind {fields[2]!r}")
        aggregate = True
    try:
        value = float(fields[1])
    except ValueError:
        raise ValueError(f"invalid reading value {fields[1]!r}") from None
    return fields[0], value, aggregate


def feed_readings(
    lines: Iterable[str],
    channels: Mapping[str, MeterChannel],
    publish: PublishFn,
) -> int:
    """Publish every valid line; returns the number of readings handed on."""
    logger = logging.getLogger("vzlogger_mqtt")
    count = 0
    for lineno, line in enumerate(lines, start=1):
        try:
            parsed = parse_reading_line(line)
        except ValueError as exc:
            logger.warning("Skipping line %s: %s", lineno, exc)
            continue
        if parsed is None:
            continue
        name, value, aggregate = parsed
        channel = channels.get(name)
        if channel is None:
            logger.warning("Skipping line %s: unknown channel %s", lineno, name)
            continue
        publish(channel, MeterReading(value=value), aggregate)
        count += 1
    return count


class DryRunConnection:
    """Stands in for ``ConnectionManager``; its client only logs publishes."""

    def __init__(self, config: MqttConfig) -> None:
        self.config = config
        self.enabled = True
        self.client = self
        self.logger = logging.getLogger("vzlogger_mqtt")

    def publish(self, topic: str, payload: str, qos: int = 0, retain: bool = False) -> mqtt.MQTTMessageInfo:
        self.logger.info("Would publish %s=%s (qos=%s, retain=%s)", topic, payload, qos, retain)
        return mqtt.MQTTMessageInfo(0)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = resolve_log_level(args.verbose, args.log_level)
    configure_logging(level)
    logger = logging.getLogger("vzlogger_mqtt")
    try:
        config = load_config(args.config)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return 2
    channels = {item.name: item.to_channel() for item in config.channels}
    if not channels:
        logger.warning("No [channel:<name>] sections configured; every reading will be skipped.")

    if args.dry_run:
        logger.info("Dry run enabled; skipping MQTT connection.")
        count = feed_readings(sys.stdin, channels, Publisher(DryRunConnection(config.mqtt)).publish)
        logger.info("Processed %s readings.", count)
        return 0

    connection = ConnectionManager(config.mqtt)
    if not connection.enabled:
        logger.warning("MQTT publishing disabled for this run.")
    publisher = Publisher(connection)
    stop_event = threading.Event()
    network_loop = ReconnectLoop(connection, stop_event)
    network_loop.start()

    try:
        count = feed_readings(sys.stdin, channels, publisher.publish)
        logger.info("End of input after %s readings.", count)
    except KeyboardInterrupt:
        logger.info("vzlogger-mqtt stopped.")
    finally:
        stop_event.set()
        network_loop.join()
        connection.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
