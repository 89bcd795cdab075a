from __future__ import annotations

import enum
from functools import lru_cache
import logging
import os
from typing import TYPE_CHECKING, Any, Protocol

import paho.mqtt
import paho.mqtt.client as mqtt

from vzlogger_mqtt.config import ConfigurationError, MqttConfig
from vzlogger_mqtt.logging_utils import PAHO_LOGGER_NAME, TRACE_LEVEL

if TYPE_CHECKING:
    from vzlogger_mqtt.reconnect import ReconnectLoop

EXPECTED_PAHO_MAJOR = 2
CLIENT_ID_PREFIX = "vzlogger_"
TEARDOWN_LOOP_TIMEOUT_S = 0.05

logger = logging.getLogger(__name__)


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class ConnectionEventSink(Protocol):
    def on_connect(self, reason_code: Any) -> None: ...

    def on_disconnect(self, reason_code: Any) -> None: ...

    def on_message(self, message: mqtt.MQTTMessage) -> None: ...


def check_library_version(version: str) -> bool:
    try:
        major = int(version.split(".", 1)[0])
    except ValueError:
        logger.error("Cannot parse paho-mqtt version '%s'!", version)
        return False
    if major != EXPECTED_PAHO_MAJOR:
        logger.error(
            "Wrong paho-mqtt major version! %s vs. expected %s! Stopped.",
            major,
            EXPECTED_PAHO_MAJOR,
        )
        return False
    return True


@lru_cache(maxsize=1)
def init_library() -> bool:
    """Check the installed paho-mqtt once per process."""
    version = getattr(paho.mqtt, "__version__", "0")
    logger.log(TRACE_LEVEL, "using paho-mqtt %s", version)
    return check_library_version(version)


def make_client_id() -> str:
    return f"{CLIENT_ID_PREFIX}{os.getpid()}"


def bind_event_sink(client: mqtt.Client, sink: ConnectionEventSink) -> None:
    """Route paho's (VERSION2) callbacks to ``sink``."""

    def _on_connect(client, userdata, flags, reason_code, properties=None):
        sink.on_connect(reason_code)

    def _on_disconnect(client, userdata, flags, reason_code, properties=None):
        sink.on_disconnect(reason_code)

    def _on_message(client, userdata, message):
        sink.on_message(message)

    client.on_connect = _on_connect
    client.on_disconnect = _on_disconnect
    client.on_message = _on_message


class ConnectionManager:
    """Owns the paho client, its connection state and its teardown.

    Construction never fails because the broker is unreachable; the manager
    is left disabled instead and publishing becomes a no-op. A missing
    configuration is the only fatal error.
    """

    def __init__(self, config: MqttConfig | None) -> None:
        if config is None:
            raise ConfigurationError("config: mqtt no options!")
        self.config = config
        self.logger = logging.getLogger(self.__class__.__name__)
        self.state = ConnectionState.DISCONNECTED
        self._enabled = config.enabled
        self._client: mqtt.Client | None = None
        self._network_loop: ReconnectLoop | None = None

        if init_library() and config.is_configured():
            self._setup_client()
        else:
            self._enabled = False

    @property
    def client(self) -> mqtt.Client | None:
        return self._client

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def is_configured(self) -> bool:
        return self.config.is_configured()

    def _setup_client(self) -> None:
        client_id = make_client_id()
        try:
            # paho serialises publish() against loop() with its own locks,
            # so the client may be shared with the network thread.
            client = mqtt.Client(
                mqtt.CallbackAPIVersion.VERSION2,
                client_id=client_id,
                clean_session=True,
                protocol=mqtt.MQTTv311,
            )
        except ValueError as exc:
            self.logger.error("Creating MQTT client %s failed: %s. Stopped!", client_id, exc)
            self._enabled = False
            self.state = ConnectionState.FAILED
            return

        self._client = client
        client.enable_logger(logging.getLogger(PAHO_LOGGER_NAME))
        if self.config.user or self.config.password:
            client.username_pw_set(self.config.user, self.config.password)
        bind_event_sink(client, self)

        self.state = ConnectionState.CONNECTING
        self.logger.info(
            "Connecting to MQTT broker %s:%s as %s",
            self.config.host,
            self.config.port,
            client_id,
        )
        try:
            # synchronous connect; ReconnectLoop drives client.loop() afterwards
            client.connect(
                self.config.host,
                self.config.port,
                keepalive=self.config.keepalive,
            )
        except (OSError, ValueError) as exc:
            self.logger.error(
                "Connecting to MQTT broker %s:%s failed: %s. Stopped!",
                self.config.host,
                self.config.port,
                exc,
            )
            self._enabled = False
            self.state = ConnectionState.FAILED

    def attach_network_loop(self, network_loop: ReconnectLoop) -> None:
        self._network_loop = network_loop

    # ConnectionEventSink

    def on_connect(self, reason_code: Any) -> None:
        self.logger.log(TRACE_LEVEL, "connect callback called, rc=%s", reason_code)
        if reason_code == 0:
            self.state = ConnectionState.CONNECTED
            self.logger.info(
                "Connected to MQTT broker %s:%s", self.config.host, self.config.port
            )
        else:
            self.state = ConnectionState.FAILED
            self.logger.error("Failed to connect to MQTT broker, return code: %s", reason_code)

    def on_disconnect(self, reason_code: Any) -> None:
        self.logger.log(TRACE_LEVEL, "disconnect callback called, rc=%s", reason_code)
        self.state = ConnectionState.DISCONNECTED
        if reason_code == 0:
            self.logger.info("Disconnected from MQTT broker (clean)")
        else:
            self.logger.warning(
                "Unexpectedly disconnected from MQTT broker, return code: %s", reason_code
            )

    def on_message(self, message: mqtt.MQTTMessage) -> None:
        self.logger.log(TRACE_LEVEL, "message callback called, topic=%s", message.topic)

    def close(self) -> None:
        """Disconnect and release the client.

        The network loop must already be stopped and joined.
        """
        network_loop = self._network_loop
        if network_loop is not None and network_loop.running:
            raise AssertionError(
                "MQTT network loop still running; stop and join it before close()"
            )
        client, self._client = self._client, None
        self._enabled = False
        if client is None:
            return

        client.disconnect()
        # the network thread is gone, so flush the DISCONNECT packet here
        rc = client.loop(timeout=TEARDOWN_LOOP_TIMEOUT_S)
        if rc not in (mqtt.MQTT_ERR_SUCCESS, mqtt.MQTT_ERR_NO_CONN):
            self.logger.warning("client loop returned %s during teardown", rc)
        self.state = ConnectionState.DISCONNECTED
        self.logger.info("Disconnected from MQTT broker")
