from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Iterator, KeysView, Mapping, Optional, Tuple

from pi_stats.errors import ConfigurationError, ExtractionError
from pi_stats.extractors import (
    CLOCK,
    CONFIG,
    MEMORY,
    TEMPERATURE,
    THROTTLE,
    THROTTLE_FLAGS,
    VOLTAGE,
    Extractor,
    labeled_line,
)
from pi_stats.record import FieldValue

Definition = Tuple[str, str, Optional[str], Extractor]


@dataclass(frozen=True)
class MetricSpec:
    key: str
    command: str
    argument: str | None
    extractor: Extractor

    def extract(self, raw: str) -> FieldValue:
        """Normalize a raw response, naming this command in any failure."""
        try:
            return self.extractor(self.argument, raw)
        except ExtractionError as exc:
            if exc.command is not None:
                raise
            raise type(exc)(str(exc), self.command, self.argument) from exc


class MetricRegistry:
    """Immutable metric key to :class:`MetricSpec` mapping.

    Iteration follows ascending key order so every record lists its fields in
    the same order.
    """

    def __init__(self, specs: Mapping[str, MetricSpec]) -> None:
        self._specs = MappingProxyType(
            {key: specs[key] for key in sorted(specs)}
        )

    @classmethod
    def from_definitions(cls, definitions: Iterable[Definition]) -> MetricRegistry:
        builder = RegistryBuilder()
        for key, command, argument, extractor in definitions:
            builder.add(key, command, argument, extractor)
        return builder.build()

    def __getitem__(self, key: str) -> MetricSpec:
        return self._specs[key]

    def __contains__(self, key: object) -> bool:
        return key in self._specs

    def __iter__(self) -> Iterator[MetricSpec]:
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)

    def keys(self) -> KeysView[str]:
        return self._specs.keys()

    def commands(self) -> set[str]:
        return {spec.command for spec in self}


class RegistryBuilder:
    def __init__(self) -> None:
        self._specs: dict[str, MetricSpec] = {}

    def add(
        self,
        key: str,
        command: str,
        argument: str | None,
        extractor: Extractor,
    ) -> RegistryBuilder:
        if not key:
            raise ConfigurationError("metric key must not be empty")
        if key in self._specs:
            raise ConfigurationError(f"duplicate metric key: {key}")
        if not command:
            raise ConfigurationError(f"metric {key} has no command")
        try:
            extractor.validate(argument)
        except ConfigurationError as exc:
            raise ConfigurationError(f"metric {key}: {exc}") from exc
        self._specs[key] = MetricSpec(
            key=key, command=command, argument=argument or None, extractor=extractor
        )
        return self

    def build(self) -> MetricRegistry:
        if not self._specs:
            raise ConfigurationError("registry has no metrics")
        return MetricRegistry(self._specs)


CLOCKS = (
    "arm", "core", "h264", "isp", "v3d", "uart",
    "pwm", "emmc", "pixel", "vec", "hdmi", "dpi",
)
VOLTAGES = ("core", "sdram_c", "sdram_i", "sdram_p")
CONFIG_FREQUENCIES = ("arm_freq", "core_freq", "gpu_freq", "sdram_freq")
MEMORY_POOLS = ("arm", "gpu", "malloc_total", "malloc", "reloc_total", "reloc")
RELOC_STATS = {
    "mem_reloc_allocation_failures": "alloc failures",
    "mem_reloc_compactions": "compactions",
    "mem_reloc_legacy_block_failures": "legacy block fails",
}


def default_definitions() -> list[Definition]:
    """The Raspberry Pi metric table."""
    definitions: list[Definition] = [("soc_temp", "measure_temp", None, TEMPERATURE)]
    definitions += [
        (f"{name}_freq", "measure_clock", name, CLOCK) for name in CLOCKS
    ]
    definitions += [
        (f"{name}_volts", "measure_volts", name, VOLTAGE) for name in VOLTAGES
    ]
    definitions += [
        (f"config_{name}", "get_config", name, CONFIG) for name in CONFIG_FREQUENCIES
    ]
    definitions += [
        (f"{name}_mem", "get_mem", name, MEMORY) for name in MEMORY_POOLS
    ]
    definitions += [
        ("oom_count", "mem_oom", None, labeled_line("oom events")),
        ("oom_ms", "mem_oom", None, labeled_line("total time in oom handler", " ms")),
    ]
    definitions += [
        (key, "mem_reloc_stats", None, labeled_line(label))
        for key, label in RELOC_STATS.items()
    ]
    definitions += [
        (flag, "get_throttled", flag, THROTTLE) for flag in THROTTLE_FLAGS
    ]
    return definitions


def build_default_registry() -> MetricRegistry:
    return MetricRegistry.from_definitions(default_definitions())
