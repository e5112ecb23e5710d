from __future__ import annotations

import logging
import socket
import time
from typing import Callable

from pi_stats.errors import ConfigurationError, ExtractionError
from pi_stats.firmware import FirmwareQueryService
from pi_stats.record import FieldValue, Record
from pi_stats.registry import MetricRegistry

DEFAULT_MEASUREMENT = "raspberry_pi"
UNKNOWN_HOST = "???"
HOST_KEY = "host"


class HostIdentity:
    """Host name resolved once per process; never raises."""

    def __init__(self, resolver: Callable[[], str] | None = None) -> None:
        self._resolver = resolver if resolver is not None else socket.gethostname
        self._name: str | None = None
        self.logger = logging.getLogger(self.__class__.__name__)

    def resolve(self) -> str:
        if self._name is None:
            try:
                name = self._resolver().strip()
            except OSError as exc:
                self.logger.warning("Unable to resolve host name: %s", exc)
                name = ""
            if not name:
                self.logger.warning("Using placeholder host name %s", UNKNOWN_HOST)
                name = UNKNOWN_HOST
            self._name = name
        return self._name


class RecordAssembler:
    def __init__(
        self,
        registry: MetricRegistry,
        query_service: FirmwareQueryService,
        host: HostIdentity | None = None,
        measurement: str = DEFAULT_MEASUREMENT,
        host_as_tag: bool = True,
        clock: Callable[[], int] = time.time_ns,
    ) -> None:
        if HOST_KEY in registry:
            raise ConfigurationError(
                f"metric key '{HOST_KEY}' is reserved for the host identity"
            )
        self.registry = registry
        self.query_service = query_service
        self.host = host if host is not None else HostIdentity()
        self.measurement = measurement
        self.host_as_tag = host_as_tag
        self.clock = clock
        self._last_timestamp = 0
        self.logger = logging.getLogger(self.__class__.__name__)

    def assemble(self) -> Record:
        """Query every registered metric and build one complete record.

        Errors from the device or from an extractor propagate unchanged; the
        fields collected so far are discarded with the local dict.
        """
        host = self.host.resolve()
        fields: dict[str, FieldValue] = {}
        tags: dict[str, str] = {}
        if self.host_as_tag:
            tags[HOST_KEY] = host
        else:
            fields[HOST_KEY] = FieldValue.string(host)

        for spec in self.registry:
            raw = self.query_service.query(spec.command, spec.argument)
            try:
                fields[spec.key] = spec.extract(raw)
            except ExtractionError:
                self.logger.debug("Extraction failed for metric %s", spec.key)
                raise

        timestamp = self.clock()
        if timestamp <= self._last_timestamp:
            timestamp = self._last_timestamp + 1
        self._last_timestamp = timestamp

        self.logger.debug("Assembled record with %s fields", len(fields))
        return Record(
            measurement=self.measurement,
            tags=tags,
            fields=fields,
            timestamp_ns=timestamp,
        )
