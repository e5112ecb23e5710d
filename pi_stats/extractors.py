"""Normalizers for VideoCore firmware responses.

Every firmware command answers with its own textual micro-format: ``temp=48.3'C``,
``frequency(48)=600000000``, ``volt=0.8500V``, ``arm=948M``,
``throttled=0x50005`` or a block of ``label: value`` lines. This module turns
each of those shapes into a :class:`~pi_stats.record.FieldValue`.

The module has two layers:

* pure value normalizers (``normalize_temperature``, ``scale_mega``, ...) that
  work on the bare value text,
* :class:`Extractor` capabilities that locate the value in a raw response and
  hand it to a normalizer. The registry binds a command and an argument to one
  of these.

Extractors never fall back to a default. A response without the expected
property raises :class:`PropertyMissingError`, a malformed value raises
:class:`ParseError`.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import partial
import re
from typing import Callable

from pi_stats.errors import ConfigurationError, ParseError, PropertyMissingError
from pi_stats.record import FieldValue

MEGA_SUFFIX = "000000"

# Bit positions in the get_throttled mask. The "_occurred" companion of each
# flag lives 16 bits higher and is sticky until reboot.
THROTTLE_BITS = {
    "under_voltage": 0,
    "frequency_cap": 1,
    "throttled": 2,
    "soft_temp_limit": 3,
}
OCCURRED_OFFSET = 16
THROTTLE_FLAGS = {
    **THROTTLE_BITS,
    **{f"{name}_occurred": bit + OCCURRED_OFFSET for name, bit in THROTTLE_BITS.items()},
}

_HEX_RE = re.compile(r"(?:0[xX])?[0-9a-fA-F]+")
_DIGITS_RE = re.compile(r"\d+")


def read_property(raw: str, name: str) -> str | None:
    """Return the value of ``name=value`` in a firmware response.

    The name must start the response or follow whitespace. The value runs to
    the next whitespace unless it is double-quoted.
    """
    match = re.search(
        r'(?:^|\s)' + re.escape(name) + r'=(?:"([^"]*)"|(\S*))', raw
    )
    if match is None:
        return None
    quoted, bare = match.groups()
    return quoted if quoted is not None else bare


def require_property(raw: str, name: str) -> str:
    value = read_property(raw, name)
    if value is None:
        raise PropertyMissingError(f"property '{name}' not found in {raw.strip()!r}")
    return value


def find_labeled_line(raw: str, label: str) -> str | None:
    """Return the first line whose left-trimmed text starts with ``label``."""
    for line in raw.splitlines():
        stripped = line.strip()
        if stripped.startswith(label):
            return stripped
    return None


def strip_decimal_zeros(text: str) -> str:
    """Drop trailing zero digits after the decimal point, then a dangling point.

    This is a character trim, not rounding: ``1.200000`` becomes ``1.2`` and
    ``45.0`` becomes ``45``. Text without a decimal point is returned as is.
    """
    if "." not in text:
        return text
    text = text.rstrip("0").rstrip(".")
    if text in ("", "-"):
        return "0"
    return text


def scale_mega(text: str) -> str:
    """Append six zero digits unless the value is literally ``0``.

    A textual heuristic for MHz to Hz and MB to bytes. The decimal padding is
    intentional; no binary multiplier is involved.
    """
    if not _DIGITS_RE.fullmatch(text):
        raise ParseError(f"expected a non-negative integer, got {text!r}")
    if text == "0":
        return text
    return text + MEGA_SUFFIX


def _strip_unit(text: str, unit: str) -> str:
    if not text.endswith(unit):
        raise ParseError(f"expected a value in {unit!r}, got {text!r}")
    return text[: -len(unit)]


def normalize_temperature(text: str) -> FieldValue:
    return FieldValue.decimal(strip_decimal_zeros(_strip_unit(text, "'C")))


def normalize_voltage(text: str) -> FieldValue:
    return FieldValue.decimal(strip_decimal_zeros(_strip_unit(text, "V")))


def normalize_frequency(text: str) -> FieldValue:
    return FieldValue.integer(scale_mega(text))


def normalize_memory(text: str) -> FieldValue:
    return FieldValue.integer(scale_mega(_strip_unit(text, "M")))


def parse_throttled(text: str) -> int:
    """Parse the hex mask reported by ``get_throttled`` as a 32-bit unsigned int."""
    if not _HEX_RE.fullmatch(text):
        raise ParseError(f"invalid throttle bitmask {text!r}")
    value = int(text, 16)
    if value > 0xFFFFFFFF:
        raise ParseError(f"throttle bitmask {text!r} exceeds 32 bits")
    return value


def decode_throttled(bitmask: int) -> dict[str, bool]:
    return {name: bool((bitmask >> bit) & 1) for name, bit in THROTTLE_FLAGS.items()}


# Command-level extractors. Each takes (argument, raw response).


def measure_temp(argument: str | None, raw: str) -> FieldValue:
    return normalize_temperature(require_property(raw, "temp"))


def measure_clock(argument: str | None, raw: str) -> FieldValue:
    # The property name carries a clock index, e.g. frequency(48)=...
    _, sep, value = raw.strip().partition("=")
    if not sep:
        raise PropertyMissingError(f"no '=' separator in {raw.strip()!r}")
    return normalize_frequency(value.strip())


def measure_volts(argument: str | None, raw: str) -> FieldValue:
    return normalize_voltage(require_property(raw, "volt"))


def get_config(argument: str | None, raw: str) -> FieldValue:
    return normalize_frequency(require_property(raw, str(argument)))


def get_mem(argument: str | None, raw: str) -> FieldValue:
    return normalize_memory(require_property(raw, str(argument)))


def get_throttled(argument: str | None, raw: str) -> FieldValue:
    flags = decode_throttled(parse_throttled(require_property(raw, "throttled")))
    try:
        return FieldValue.integer(int(flags[str(argument)]))
    except KeyError:
        raise ConfigurationError(f"unknown throttle flag {argument!r}") from None


def labeled_counter(
    label: str, unit: str | None, argument: str | None, raw: str
) -> FieldValue:
    line = find_labeled_line(raw, label)
    if line is None:
        raise PropertyMissingError(f"unable to find '{label}' line")
    value = line[len(label):]
    if value.startswith(":"):
        value = value[1:]
    value = value.strip()
    if unit is not None and value.endswith(unit.strip()):
        value = value[: -len(unit.strip())].rstrip()
    return FieldValue.integer(value)


class ArgumentPolicy(Enum):
    NONE = "none"
    OPTIONAL = "optional"
    REQUIRED = "required"


@dataclass(frozen=True)
class Extractor:
    """A named normalization contract plus the arguments it accepts."""

    name: str
    func: Callable[[str | None, str], FieldValue]
    argument_policy: ArgumentPolicy = ArgumentPolicy.NONE
    choices: frozenset[str] | None = None

    def __call__(self, argument: str | None, raw: str) -> FieldValue:
        return self.func(argument, raw)

    def validate(self, argument: str | None) -> None:
        if argument is None or argument == "":
            if self.argument_policy is ArgumentPolicy.REQUIRED:
                raise ConfigurationError(f"{self.name} requires an argument")
            return
        if self.argument_policy is ArgumentPolicy.NONE:
            raise ConfigurationError(
                f"{self.name} takes no argument, got {argument!r}"
            )
        if self.choices is not None and argument not in self.choices:
            raise ConfigurationError(
                f"unknown {self.name} argument {argument!r}; "
                f"expected one of {', '.join(sorted(self.choices))}"
            )


TEMPERATURE = Extractor("temperature", measure_temp, ArgumentPolicy.OPTIONAL)
CLOCK = Extractor("clock", measure_clock, ArgumentPolicy.REQUIRED)
VOLTAGE = Extractor("voltage", measure_volts, ArgumentPolicy.REQUIRED)
CONFIG = Extractor("config", get_config, ArgumentPolicy.REQUIRED)
MEMORY = Extractor("memory", get_mem, ArgumentPolicy.REQUIRED)
THROTTLE = Extractor(
    "throttle",
    get_throttled,
    ArgumentPolicy.REQUIRED,
    choices=frozenset(THROTTLE_FLAGS),
)


def labeled_line(label: str, unit: str | None = None) -> Extractor:
    """Build an extractor for one ``label: value[ unit]`` line."""
    if not label:
        raise ConfigurationError("labeled line extractor needs a label")
    return Extractor(f"labeled_line({label!r})", partial(labeled_counter, label, unit))
