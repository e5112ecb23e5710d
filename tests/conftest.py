"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import pytest


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "raspberry_pi: mark test as needing a real vcgencmd"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )


MEM_OOM_RESPONSE = """oom events: 2
lifetime oom required: 0 Mbytes
total time in oom handler: 12 ms
max time spent in oom handler: 7 ms
"""

MEM_RELOC_STATS_RESPONSE = """alloc failures:     0
compactions:        3
legacy block fails: 1
"""


def canned_response(command: str, argument: str | None = None) -> str:
    """Plausible vcgencmd output for every command in the default registry."""
    if command == "measure_temp":
        return "temp=48.3'C\n"
    if command == "measure_clock":
        return "frequency(48)=600\n"
    if command == "measure_volts":
        return "volt=1.200000V\n"
    if command == "get_config":
        return f"{argument}=1500\n"
    if command == "get_mem":
        return f"{argument}=12M\n"
    if command == "mem_oom":
        return MEM_OOM_RESPONSE
    if command == "mem_reloc_stats":
        return MEM_RELOC_STATS_RESPONSE
    if command == "get_throttled":
        return "throttled=0x50005\n"
    raise AssertionError(f"unexpected command {command}")


class FakeQueryService:
    """Answers queries from canned text and records every call."""

    def __init__(self, overrides: dict[str, str] | None = None) -> None:
        self.overrides = overrides or {}
        self.calls: list[tuple[str, str | None]] = []

    def query(self, command: str, argument: str | None = None) -> str:
        self.calls.append((command, argument))
        if command in self.overrides:
            return self.overrides[command]
        return canned_response(command, argument)


class FakeClock:
    """Nanosecond clock that advances one second per reading."""

    def __init__(self, start: int = 1_700_000_000_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        self.now += 1_000_000_000
        return self.now


class ListSink:
    def __init__(self) -> None:
        self.lines: list[str] = []
        self.closed = False

    def write(self, line: str) -> None:
        self.lines.append(line)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_query_service():
    return FakeQueryService()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def list_sink():
    return ListSink()
