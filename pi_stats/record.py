from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import re
from typing import Any

from pi_stats.errors import ParseError

_INTEGER_RE = re.compile(r"-?\d+")
_DECIMAL_RE = re.compile(r"-?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")

_MEASUREMENT_ESCAPES = str.maketrans({",": r"\,", " ": r"\ "})
_KEY_ESCAPES = str.maketrans({",": r"\,", "=": r"\=", " ": r"\ "})
_STRING_ESCAPES = str.maketrans({'"': r"\"", "\\": "\\\\"})


class FieldKind(Enum):
    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"


@dataclass(frozen=True)
class FieldValue:
    """A normalized metric value tagged with its line protocol type."""

    kind: FieldKind
    text: str

    @classmethod
    def integer(cls, text: str | int) -> FieldValue:
        text = str(text)
        if not _INTEGER_RE.fullmatch(text):
            raise ParseError(f"not an integer: {text!r}")
        return cls(FieldKind.INTEGER, text)

    @classmethod
    def decimal(cls, text: str) -> FieldValue:
        if not _DECIMAL_RE.fullmatch(text):
            raise ParseError(f"not a decimal number: {text!r}")
        return cls(FieldKind.FLOAT, text)

    @classmethod
    def string(cls, text: str) -> FieldValue:
        return cls(FieldKind.STRING, text)

    def serialize(self) -> str:
        if self.kind is FieldKind.INTEGER:
            return f"{self.text}i"
        if self.kind is FieldKind.STRING:
            return '"' + self.text.translate(_STRING_ESCAPES) + '"'
        return self.text

    def to_json(self) -> int | float | str:
        if self.kind is FieldKind.INTEGER:
            return int(self.text)
        if self.kind is FieldKind.FLOAT:
            return float(self.text)
        return self.text


def escape_measurement(name: str) -> str:
    return name.translate(_MEASUREMENT_ESCAPES)


def escape_key(key: str) -> str:
    """Escape a tag key, tag value or field key."""
    return key.translate(_KEY_ESCAPES)


@dataclass
class Record:
    """One sample of every registered metric.

    Fields keep insertion order, which is the registry order, so two records
    from the same registry serialize their fields identically.
    """

    measurement: str
    tags: dict[str, str] = field(default_factory=dict)
    fields: dict[str, FieldValue] = field(default_factory=dict)
    timestamp_ns: int = 0

    def to_line(self, include_timestamp: bool = True) -> str:
        """Serialize as one line of line protocol, without the newline."""
        if not self.fields:
            raise ValueError("a record needs at least one field")
        head = escape_measurement(self.measurement)
        for key, value in self.tags.items():
            head += f",{escape_key(key)}={escape_key(value)}"
        field_set = ",".join(
            f"{escape_key(key)}={value.serialize()}"
            for key, value in self.fields.items()
        )
        line = f"{head} {field_set}"
        if include_timestamp:
            line += f" {self.timestamp_ns}"
        return line

    def to_json(self) -> dict[str, Any]:
        return {
            "measurement": self.measurement,
            "tags": dict(self.tags),
            "fields": {key: value.to_json() for key, value in self.fields.items()},
            "timestamp_ns": self.timestamp_ns,
        }
