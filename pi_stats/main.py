from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Sequence

from pi_stats.assembler import HostIdentity, RecordAssembler
from pi_stats.config import FLAVORS, SINKS, AppConfig, load_config
from pi_stats.errors import OutputError, PiStatsError
from pi_stats.firmware import VcgencmdQueryService
from pi_stats.logging_utils import configure_logging, resolve_log_level
from pi_stats.loop import SamplingLoop
from pi_stats.record import Record
from pi_stats.registry import MetricRegistry, build_default_registry
from pi_stats.schema import validate_record
from pi_stats.sinks import MqttSink, OutputSink, StreamSink


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Sample Raspberry Pi firmware telemetry as InfluxDB line protocol"
    )
    parser.add_argument(
        "-s",
        "--step",
        type=float,
        default=1.0,
        help="Seconds to wait between records (default: 1)",
    )
    parser.add_argument(
        "--flavor",
        choices=FLAVORS,
        default="tagged",
        help="'tagged': host tag and timestamp; 'fields': host as a field, no timestamp",
    )
    parser.add_argument(
        "--measurement",
        default="raspberry_pi",
        help="Measurement name of every record",
    )
    parser.add_argument(
        "--vcgencmd",
        default="vcgencmd",
        help="Path to the vcgencmd executable",
    )
    parser.add_argument(
        "--query-timeout",
        type=float,
        default=5.0,
        help="Seconds to wait for a single vcgencmd call",
    )
    parser.add_argument(
        "--sink",
        choices=SINKS,
        default="stdout",
        help="Where to write records",
    )
    mqtt_group = parser.add_argument_group("MQTT sink")
    mqtt_group.add_argument("--mqtt-host", default="localhost")
    mqtt_group.add_argument("--mqtt-port", type=int, default=1883)
    mqtt_group.add_argument("--mqtt-topic", default="telemetry/raspberry_pi")
    mqtt_group.add_argument("--mqtt-client-id", default="pi-stats")
    mqtt_group.add_argument("--mqtt-username")
    mqtt_group.add_argument("--mqtt-password")
    mqtt_group.add_argument("--mqtt-qos", type=int, default=0)
    mqtt_group.add_argument("--mqtt-retain", action="store_true")
    mqtt_group.add_argument("--mqtt-tls", action="store_true")
    mqtt_group.add_argument("--mqtt-ca-cert")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Emit a single record, then exit",
    )
    parser.add_argument(
        "--dump-json",
        help="Write the latest record as JSON to a file (overwritten each tick)",
    )
    parser.add_argument(
        "--list-metrics",
        action="store_true",
        help="Print the registered metrics and exit",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable debug logging (-v) or trace logging (-vv)",
    )
    return parser


def list_metrics(registry: MetricRegistry) -> None:
    for spec in registry:
        print(
            f"{spec.key}\t{spec.command}\t{spec.argument or '-'}\t{spec.extractor.name}"
        )


def build_sink(config: AppConfig) -> OutputSink:
    if config.output.sink == "mqtt":
        sink = MqttSink(config.mqtt)
        sink.connect()
        return sink
    return StreamSink()


class RecordObserver:
    """Validate the first record against the schema and optionally dump JSON."""

    def __init__(self, dump_path: str | None) -> None:
        self.dump_path = dump_path
        self.validated = False
        self.logger = logging.getLogger("pi_stats")

    def __call__(self, record: Record) -> None:
        record_json = record.to_json()
        if not self.validated:
            self.validated = True
            schema_errors = validate_record(record_json)
            if schema_errors:
                self.logger.warning(
                    "Schema validation failed with %s errors.", len(schema_errors)
                )
                self.logger.debug("Schema errors: %s", schema_errors)
            else:
                self.logger.info("Schema validation passed.")
        if self.dump_path:
            try:
                with open(self.dump_path, "w", encoding="utf-8") as handle:
                    json.dump(record_json, handle, indent=2)
            except OSError as exc:
                raise OutputError(f"unable to write {self.dump_path}: {exc}") from exc


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = resolve_log_level(args.verbose, args.log_level)
    configure_logging(level)
    logger = logging.getLogger("pi_stats")

    sink: OutputSink | None = None
    try:
        config = load_config(args)
        registry = build_default_registry()
        if args.list_metrics:
            list_metrics(registry)
            return 0

        query_service = VcgencmdQueryService(
            config.device.vcgencmd_path, config.device.query_timeout_s
        )
        assembler = RecordAssembler(
            registry,
            query_service,
            HostIdentity(),
            measurement=config.output.measurement,
            host_as_tag=config.output.host_as_tag,
        )
        sink = build_sink(config)
        loop = SamplingLoop(
            assembler,
            sink,
            interval_s=config.sampling.interval_s,
            include_timestamp=config.output.include_timestamp,
            on_record=RecordObserver(args.dump_json),
        )
        logger.info("pi-stats started with %s metrics.", len(registry))
        loop.run(max_ticks=1 if args.once else None)
    except PiStatsError as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("pi-stats stopped.")
    finally:
        if sink is not None:
            sink.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
