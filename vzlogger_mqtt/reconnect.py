from __future__ import annotations

import logging
import threading

import paho.mqtt.client as mqtt

from vzlogger_mqtt.connection import ConnectionManager
from vzlogger_mqtt.logging_utils import TRACE_LEVEL

LOOP_TIMEOUT_S = 1.0
RECONNECT_DELAY_S = 1.0
THREAD_NAME = "mqtt-client"


class ReconnectLoop:
    """Background thread that services the client's network I/O.

    Every iteration runs ``client.loop()``; when it reports an error the loop
    pauses for a fixed delay and asks paho to reconnect. There is no backoff.
    The owner stops it by setting ``stop_event`` and calling ``join()``.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        stop_event: threading.Event,
        *,
        loop_timeout: float = LOOP_TIMEOUT_S,
        reconnect_delay: float = RECONNECT_DELAY_S,
    ) -> None:
        self.connection = connection
        self.stop_event = stop_event
        self.loop_timeout = loop_timeout
        self.reconnect_delay = reconnect_delay
        self.logger = logging.getLogger(self.__class__.__name__)
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("ReconnectLoop already started")
        self.connection.attach_network_loop(self)
        self._thread = threading.Thread(target=self.run, name=THREAD_NAME, daemon=True)
        self._thread.start()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the thread; returns False if it is still alive afterwards."""
        if self._thread is not None:
            self._thread.join(timeout)
        return not self.running

    def _pause(self) -> bool:
        """Sleep for the reconnect delay; False if stopped meanwhile."""
        return not self.stop_event.wait(self.reconnect_delay)

    def _reconnect(self, client: mqtt.Client) -> None:
        try:
            rc = client.reconnect()
        except OSError as exc:
            self.logger.warning("reconnect failed: %s", exc)
            return
        if rc != mqtt.MQTT_ERR_SUCCESS:
            self.logger.warning("reconnect returned %s", rc)
        else:
            self.logger.log(TRACE_LEVEL, "reconnect succeeded")

    def run(self) -> None:
        client = self.connection.client
        if client is None or not self.connection.enabled:
            self.logger.debug("MQTT client disabled, network loop not started")
            return

        self.logger.debug("Start MQTT network loop")
        while not self.stop_event.is_set():
            rc = client.loop(timeout=self.loop_timeout)
            if rc == mqtt.MQTT_ERR_SUCCESS:
                continue
            self.logger.warning("client loop returned %s. trying reconnect", rc)
            if not self._pause():
                break
            self._reconnect(client)
        self.logger.debug("Stopped MQTT network loop")
