from __future__ import annotations

import argparse
from dataclasses import dataclass

from pi_stats.errors import ConfigurationError

FLAVORS = ("tagged", "fields")
SINKS = ("stdout", "mqtt")


@dataclass(frozen=True)
class MqttConfig:
    host: str
    port: int
    topic: str
    client_id: str
    username: str | None
    password: str | None
    qos: int
    retain: bool
    tls_enabled: bool
    ca_cert: str | None
    keepalive: int = 60


@dataclass(frozen=True)
class DeviceConfig:
    vcgencmd_path: str
    query_timeout_s: float


@dataclass(frozen=True)
class OutputConfig:
    flavor: str
    measurement: str
    sink: str

    @property
    def host_as_tag(self) -> bool:
        return self.flavor == "tagged"

    @property
    def include_timestamp(self) -> bool:
        return self.flavor == "tagged"


@dataclass(frozen=True)
class SamplingConfig:
    interval_s: float


@dataclass(frozen=True)
class AppConfig:
    device: DeviceConfig
    output: OutputConfig
    sampling: SamplingConfig
    mqtt: MqttConfig


def _get_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value if value else None


def load_config(args: argparse.Namespace) -> AppConfig:
    """Build and validate the configuration from parsed command-line flags."""
    if args.step <= 0:
        raise ConfigurationError(f"sampling interval must be positive, got {args.step}")
    if args.flavor not in FLAVORS:
        raise ConfigurationError(f"unknown output flavor: {args.flavor}")
    if args.sink not in SINKS:
        raise ConfigurationError(f"unknown output sink: {args.sink}")
    if args.query_timeout <= 0:
        raise ConfigurationError(
            f"query timeout must be positive, got {args.query_timeout}"
        )
    if args.mqtt_qos not in (0, 1, 2):
        raise ConfigurationError(f"MQTT QoS must be 0, 1 or 2, got {args.mqtt_qos}")
    measurement = args.measurement.strip()
    if not measurement:
        raise ConfigurationError("measurement name must not be empty")

    device = DeviceConfig(
        vcgencmd_path=args.vcgencmd,
        query_timeout_s=args.query_timeout,
    )
    output = OutputConfig(
        flavor=args.flavor,
        measurement=measurement,
        sink=args.sink,
    )
    sampling = SamplingConfig(interval_s=args.step)
    mqtt = MqttConfig(
        host=args.mqtt_host,
        port=args.mqtt_port,
        topic=args.mqtt_topic,
        client_id=args.mqtt_client_id,
        username=_get_optional(args.mqtt_username),
        password=_get_optional(args.mqtt_password),
        qos=args.mqtt_qos,
        retain=args.mqtt_retain,
        tls_enabled=args.mqtt_tls,
        ca_cert=_get_optional(args.mqtt_ca_cert),
    )
    return AppConfig(device=device, output=output, sampling=sampling, mqtt=mqtt)
