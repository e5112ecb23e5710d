"""Tests for record assembly and the sampling loop."""
from __future__ import annotations

from unittest.mock import Mock

import pytest

from pi_stats.assembler import UNKNOWN_HOST, HostIdentity, RecordAssembler
from pi_stats.errors import (
    ConfigurationError,
    ParseError,
    PropertyMissingError,
    TransportError,
)
from pi_stats.extractors import TEMPERATURE
from pi_stats.loop import LoopState, SamplingLoop
from pi_stats.record import FieldKind
from pi_stats.registry import MetricRegistry, build_default_registry

from conftest import FakeQueryService


@pytest.fixture
def registry():
    return build_default_registry()


@pytest.fixture
def host():
    return HostIdentity(resolver=lambda: "pi4")


@pytest.fixture
def assembler(registry, fake_query_service, host, fake_clock):
    return RecordAssembler(registry, fake_query_service, host, clock=fake_clock)


def _field_keys(line: str) -> list[str]:
    field_set = line.split(" ")[1]
    return [pair.split("=", 1)[0] for pair in field_set.split(",")]


class TestHostIdentity:
    def test_resolves_once(self):
        resolver = Mock(return_value="pi4")
        identity = HostIdentity(resolver=resolver)
        assert identity.resolve() == "pi4"
        assert identity.resolve() == "pi4"
        resolver.assert_called_once()

    def test_failure_degrades_to_sentinel(self):
        identity = HostIdentity(resolver=Mock(side_effect=OSError("no name")))
        assert identity.resolve() == UNKNOWN_HOST

    def test_empty_name_degrades_to_sentinel(self):
        assert HostIdentity(resolver=lambda: "").resolve() == UNKNOWN_HOST


class TestRecordAssembler:
    def test_record_has_every_metric(self, assembler, registry):
        record = assembler.assemble()
        assert list(record.fields) == list(registry.keys())
        assert record.tags == {"host": "pi4"}
        assert record.measurement == "raspberry_pi"

    def test_values_are_normalized(self, assembler):
        fields = assembler.assemble().fields
        assert fields["soc_temp"].text == "48.3"
        assert fields["soc_temp"].kind is FieldKind.FLOAT
        assert fields["arm_freq"].text == "600000000"
        assert fields["core_volts"].text == "1.2"
        assert fields["config_arm_freq"].text == "1500000000"
        assert fields["gpu_mem"].text == "12000000"
        assert fields["oom_count"].text == "2"
        assert fields["oom_ms"].text == "12"
        assert fields["mem_reloc_compactions"].text == "3"
        assert fields["mem_reloc_legacy_block_failures"].text == "1"
        assert fields["mem_reloc_allocation_failures"].text == "0"
        assert fields["under_voltage"].text == "1"
        assert fields["throttled"].text == "1"
        assert fields["frequency_cap"].text == "0"

    def test_queries_follow_registry_order(self, assembler, registry, fake_query_service):
        assembler.assemble()
        assert fake_query_service.calls == [
            (spec.command, spec.argument) for spec in registry
        ]

    def test_timestamps_strictly_increase(self, registry, fake_query_service, host):
        assembler = RecordAssembler(
            registry, fake_query_service, host, clock=lambda: 1000
        )
        stamps = [assembler.assemble().timestamp_ns for _ in range(3)]
        assert stamps == [1000, 1001, 1002]

    def test_host_as_field(self, registry, fake_query_service, host, fake_clock):
        assembler = RecordAssembler(
            registry, fake_query_service, host, host_as_tag=False, clock=fake_clock
        )
        record = assembler.assemble()
        assert record.tags == {}
        assert record.fields["host"].kind is FieldKind.STRING
        assert record.fields["host"].text == "pi4"

    def test_custom_measurement(self, registry, fake_query_service, host):
        assembler = RecordAssembler(
            registry, fake_query_service, host, measurement="pi_stats"
        )
        assert assembler.assemble().to_line().startswith("pi_stats,host=pi4 ")

    @pytest.mark.parametrize("host_as_tag", [True, False])
    def test_host_metric_key_is_rejected(self, fake_query_service, host, host_as_tag):
        registry = MetricRegistry.from_definitions(
            [("host", "measure_temp", None, TEMPERATURE)]
        )
        with pytest.raises(ConfigurationError, match="reserved"):
            RecordAssembler(
                registry, fake_query_service, host, host_as_tag=host_as_tag
            )
        assert fake_query_service.calls == []

    def test_missing_property_aborts(self, registry, host):
        service = FakeQueryService({"get_mem": "error=1\n"})
        assembler = RecordAssembler(registry, service, host)
        with pytest.raises(PropertyMissingError, match="get_mem"):
            assembler.assemble()

    def test_transport_error_propagates(self, registry, host):
        service = Mock()
        service.query.side_effect = TransportError("device unreachable")
        assembler = RecordAssembler(registry, service, host)
        with pytest.raises(TransportError):
            assembler.assemble()
        service.query.assert_called_once()


class TestSamplingLoop:
    def test_one_line_per_tick(self, assembler, list_sink, registry):
        sleep = Mock()
        loop = SamplingLoop(assembler, list_sink, interval_s=5, sleep=sleep)
        loop.run(max_ticks=3)

        assert len(list_sink.lines) == 3
        for line in list_sink.lines:
            keys = _field_keys(line)
            assert sorted(keys) == sorted(registry.keys())
            assert len(keys) == len(set(keys))
        stamps = [int(line.rsplit(" ", 1)[1]) for line in list_sink.lines]
        assert stamps == sorted(stamps)
        assert len(set(stamps)) == 3
        assert sleep.call_count == 2
        sleep.assert_called_with(5)

    def test_waits_only_after_writing(self, assembler, list_sink):
        events = []
        list_sink.write = lambda line: events.append("write")
        loop = SamplingLoop(
            assembler, list_sink, sleep=lambda s: events.append("sleep")
        )
        loop.run(max_ticks=2)
        assert events == ["write", "sleep", "write"]

    def test_state_transitions(self, assembler, list_sink):
        states = []

        def sleep(seconds):
            states.append(loop.state)

        loop = SamplingLoop(assembler, list_sink, sleep=sleep)
        assert loop.state is LoopState.SAMPLING
        loop.run(max_ticks=2)
        assert states == [LoopState.WAITING]
        assert loop.state is LoopState.SAMPLING
        assert loop.ticks == 2

    def test_fields_flavor_has_no_timestamp(
        self, registry, fake_query_service, host, list_sink
    ):
        assembler = RecordAssembler(
            registry, fake_query_service, host, host_as_tag=False
        )
        SamplingLoop(assembler, list_sink, include_timestamp=False).run(max_ticks=1)
        line = list_sink.lines[0]
        assert line.count(" ") == 1
        assert line.startswith('raspberry_pi host="pi4",')

    def test_extraction_failure_writes_nothing(self, registry, host, list_sink):
        service = FakeQueryService({"get_throttled": "throttled=0xnothex\n"})
        assembler = RecordAssembler(registry, service, host)
        sleep = Mock()
        loop = SamplingLoop(assembler, list_sink, sleep=sleep)
        with pytest.raises(ParseError):
            loop.run()
        assert list_sink.lines == []
        sleep.assert_not_called()

    def test_failure_on_later_tick_keeps_earlier_lines(self, registry, host, list_sink):
        service = FakeQueryService()
        assembler = RecordAssembler(registry, service, host)

        def sleep(seconds):
            service.overrides["measure_temp"] = "temp=\n"

        loop = SamplingLoop(assembler, list_sink, sleep=sleep)
        with pytest.raises(ParseError):
            loop.run()
        assert len(list_sink.lines) == 1

    def test_on_record_callback(self, assembler, list_sink):
        seen = []
        SamplingLoop(assembler, list_sink, on_record=seen.append).run(max_ticks=1)
        assert len(seen) == 1
        assert seen[0].to_line() == list_sink.lines[0]
