from __future__ import annotations

import logging
import ssl
import sys
import time
from typing import Any, Protocol, TextIO

import paho.mqtt.client as mqtt

from pi_stats.config import MqttConfig
from pi_stats.errors import OutputError


class OutputSink(Protocol):
    def write(self, line: str) -> None:
        """Emit one serialized record; raise OutputError if it was not accepted."""
        ...

    def close(self) -> None:
        ...


class StreamSink:
    """Write newline-terminated lines to a text stream, stdout by default."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream if stream is not None else sys.stdout

    def write(self, line: str) -> None:
        try:
            self.stream.write(line + "\n")
            self.stream.flush()
        except (OSError, ValueError) as exc:
            raise OutputError(f"unable to write record: {exc}") from exc

    def close(self) -> None:
        pass


class MqttSink:
    """Publish each line to an MQTT topic.

    Availability is announced on ``<topic>/status`` with a retained
    ``online``/``offline`` payload, and the broker publishes ``offline`` as the
    Last Will if the connection drops.
    """

    def __init__(self, config: MqttConfig, client: mqtt.Client | None = None) -> None:
        self.config = config
        self.client = client if client is not None else mqtt.Client(
            client_id=config.client_id, protocol=mqtt.MQTTv311
        )
        self.logger = logging.getLogger(self.__class__.__name__)
        self._connected = False

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

        if config.username:
            self.client.username_pw_set(config.username, config.password)
        if config.tls_enabled:
            self.client.tls_set(
                ca_certs=config.ca_cert,
                cert_reqs=ssl.CERT_REQUIRED,
            )

        self.client.will_set(
            self._availability_topic,
            payload="offline",
            qos=1,
            retain=True,
        )
        # Reconnects run on paho's thread; a write while disconnected still fails.
        self.client.reconnect_delay_set(min_delay=1, max_delay=120)

    @property
    def _availability_topic(self) -> str:
        return f"{self.config.topic}/status"

    @property
    def connected(self) -> bool:
        return self._connected

    def _on_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: dict[str, Any],
        rc: int,
    ) -> None:
        if rc == 0:
            self._connected = True
            self.logger.info(
                "Connected to MQTT broker %s:%s", self.config.host, self.config.port
            )
            self.client.publish(
                self._availability_topic,
                payload="online",
                qos=1,
                retain=True,
            )
        else:
            self._connected = False
            self.logger.error("Failed to connect to MQTT broker, return code: %s", rc)

    def _on_disconnect(self, client: mqtt.Client, userdata: Any, rc: int) -> None:
        self._connected = False
        if rc == 0:
            self.logger.info("Disconnected from MQTT broker (clean)")
        else:
            self.logger.warning(
                "Unexpectedly disconnected from MQTT broker, return code: %s", rc
            )

    def connect(self, wait_s: float = 5.0) -> None:
        self.logger.info(
            "Connecting to MQTT broker %s:%s", self.config.host, self.config.port
        )
        try:
            self.client.connect(
                self.config.host,
                self.config.port,
                keepalive=self.config.keepalive,
            )
        except OSError as exc:
            raise OutputError(
                f"unable to connect to MQTT broker {self.config.host}:{self.config.port}: {exc}"
            ) from exc
        self.client.loop_start()
        deadline = time.monotonic() + wait_s
        while not self._connected and time.monotonic() < deadline:
            time.sleep(0.1)
        if not self._connected:
            self.client.loop_stop()
            raise OutputError(
                f"MQTT broker {self.config.host}:{self.config.port} did not accept the connection"
            )

    def write(self, line: str) -> None:
        self.logger.debug("Publishing record to %s", self.config.topic)
        result = self.client.publish(
            self.config.topic,
            payload=line,
            qos=self.config.qos,
            retain=self.config.retain,
        )
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            raise OutputError(f"failed to publish record, error code: {result.rc}")

    def close(self) -> None:
        if self._connected:
            self.client.publish(
                self._availability_topic,
                payload="offline",
                qos=1,
                retain=True,
            )
        self.client.loop_stop()
        self.client.disconnect()
        self.logger.info("Disconnected from MQTT broker")
