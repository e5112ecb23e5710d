"""Raspberry Pi firmware telemetry as InfluxDB line protocol."""

from pi_stats.assembler import HostIdentity, RecordAssembler
from pi_stats.errors import (
    ConfigurationError,
    ExtractionError,
    OutputError,
    ParseError,
    PiStatsError,
    PropertyMissingError,
    TransportError,
)
from pi_stats.firmware import FirmwareQueryService, VcgencmdQueryService
from pi_stats.loop import LoopState, SamplingLoop
from pi_stats.record import FieldKind, FieldValue, Record
from pi_stats.registry import (
    MetricRegistry,
    MetricSpec,
    RegistryBuilder,
    build_default_registry,
)

__all__ = [
    "ConfigurationError",
    "ExtractionError",
    "FieldKind",
    "FieldValue",
    "FirmwareQueryService",
    "HostIdentity",
    "LoopState",
    "MetricRegistry",
    "MetricSpec",
    "OutputError",
    "ParseError",
    "PiStatsError",
    "PropertyMissingError",
    "Record",
    "RecordAssembler",
    "RegistryBuilder",
    "SamplingLoop",
    "TransportError",
    "VcgencmdQueryService",
    "build_default_registry",
]
