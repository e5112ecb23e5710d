from __future__ import annotations

from enum import Enum
import logging
import time
from typing import Callable

from pi_stats.assembler import RecordAssembler
from pi_stats.record import Record
from pi_stats.sinks import OutputSink


class LoopState(Enum):
    SAMPLING = "sampling"
    WAITING = "waiting"


class SamplingLoop:
    """Alternate between emitting one record and waiting a fixed interval.

    The interval starts after a record has been written, so the effective
    period is query time plus the interval. Errors are not caught here.
    """

    def __init__(
        self,
        assembler: RecordAssembler,
        sink: OutputSink,
        interval_s: float = 1.0,
        include_timestamp: bool = True,
        sleep: Callable[[float], None] | None = None,
        on_record: Callable[[Record], None] | None = None,
    ) -> None:
        self.assembler = assembler
        self.sink = sink
        self.interval_s = interval_s
        self.include_timestamp = include_timestamp
        self.sleep = sleep if sleep is not None else time.sleep
        self.on_record = on_record
        self.state = LoopState.SAMPLING
        self.ticks = 0
        self.logger = logging.getLogger(self.__class__.__name__)

    def tick(self) -> Record:
        self.state = LoopState.SAMPLING
        record = self.assembler.assemble()
        self.sink.write(record.to_line(self.include_timestamp))
        self.ticks += 1
        if self.on_record is not None:
            self.on_record(record)
        return record

    def run(self, max_ticks: int | None = None) -> None:
        self.logger.info("Sampling every %s seconds.", self.interval_s)
        while True:
            self.tick()
            if max_ticks is not None and self.ticks >= max_ticks:
                return
            self.state = LoopState.WAITING
            self.logger.debug("Waiting %s seconds.", self.interval_s)
            self.sleep(self.interval_s)
