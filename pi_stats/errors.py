from __future__ import annotations


class PiStatsError(Exception):
    """Base class for every fatal collector error."""


class ConfigurationError(PiStatsError):
    """Invalid metric registry or command-line configuration."""


class TransportError(PiStatsError):
    """The device command could not be executed."""


class OutputError(PiStatsError):
    """An output sink refused a line."""


class ExtractionError(PiStatsError):
    """A device response could not be normalized into a field value."""

    def __init__(
        self, message: str, command: str | None = None, argument: str | None = None
    ) -> None:
        self.command = command
        self.argument = argument
        if command is not None:
            target = f"{command} {argument}" if argument else command
            message = f"{target}: {message}"
        super().__init__(message)


class PropertyMissingError(ExtractionError):
    """Expected property or labeled line is absent from the response."""


class ParseError(ExtractionError):
    """Value is present but malformed."""
