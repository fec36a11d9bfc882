"""Tests for ESLint process discovery."""

from unittest.mock import MagicMock, PropertyMock, patch

import psutil
import pytest

from eslint_reaper.collector import (
    ProcessCollector,
    ProcessEntry,
    ProcessUsage,
    is_target,
    list_processes,
    lookup_usage,
)
from eslint_reaper.config import Config, SystemConfig

from tests.conftest import ESLINT_CMD, make_entry

SELF_PID = 999


class TestIsTarget:
    """Each identity predicate must hold for a process to match."""

    def test_matches_eslint_service(self) -> None:
        assert is_target(make_entry(pid=10), SELF_PID)

    def test_wrong_process_name(self) -> None:
        assert not is_target(make_entry(pid=10, name="python"), SELF_PID)

    def test_missing_service_script(self) -> None:
        cmd = "/usr/local/bin/node other-service.js -debug-name=eslint"
        assert not is_target(make_entry(pid=10, cmd=cmd), SELF_PID)

    def test_missing_identity_tag(self) -> None:
        cmd = "/usr/local/bin/node js-language-service.js -debug-name=typescript"
        assert not is_target(make_entry(pid=10, cmd=cmd), SELF_PID)

    def test_own_pid_excluded(self) -> None:
        assert not is_target(make_entry(pid=SELF_PID), SELF_PID)


def _fake_proc(pid: int, name: str | None, cmdline: list[str] | None) -> MagicMock:
    proc = MagicMock()
    proc.info = {"pid": pid, "name": name, "cmdline": cmdline}
    return proc


class TestListProcesses:
    """Tests for list_processes() over psutil.process_iter."""

    def test_builds_entries(self) -> None:
        procs = [
            _fake_proc(1, "node", ["node", "a.js"]),
            _fake_proc(2, None, None),
        ]
        with patch("eslint_reaper.collector.psutil.process_iter", return_value=procs):
            entries = list_processes()

        assert entries == [
            ProcessEntry(pid=1, name="node", cmd="node a.js"),
            ProcessEntry(pid=2, name="", cmd=""),
        ]

    def test_skips_vanished_processes(self) -> None:
        vanished = MagicMock()
        type(vanished).info = PropertyMock(side_effect=psutil.NoSuchProcess(5))
        procs = [vanished, _fake_proc(1, "node", ["node"])]
        with patch("eslint_reaper.collector.psutil.process_iter", return_value=procs):
            entries = list_processes()

        assert [e.pid for e in entries] == [1]


class TestLookupUsage:
    """Tests for lookup_usage() over psutil.Process."""

    def _process(self, pid: int, cpu: float, rss: int, created: float) -> MagicMock:
        proc = MagicMock()
        proc.pid = pid
        proc.cpu_percent.return_value = cpu
        proc.memory_info.return_value = MagicMock(rss=rss)
        proc.create_time.return_value = created
        return proc

    def test_reports_usage(self) -> None:
        proc = self._process(10, cpu=42.0, rss=2048, created=1000.0)
        with (
            patch("eslint_reaper.collector.psutil.Process", return_value=proc),
            patch("eslint_reaper.collector.time.time", return_value=1002.5),
            patch("eslint_reaper.collector.time.sleep") as mock_sleep,
        ):
            usage = lookup_usage([10], cpu_sample_seconds=0.5)

        assert usage == {
            10: ProcessUsage(
                cpu_percent=42.0, memory_bytes=2048, elapsed_ms=2500, create_time=1000.0
            )
        }
        mock_sleep.assert_called_once_with(0.5)

    def test_vanished_pid_absent(self) -> None:
        alive = self._process(10, cpu=1.0, rss=1, created=0.0)

        def make_process(pid):
            if pid == 11:
                raise psutil.NoSuchProcess(pid)
            return alive

        with patch("eslint_reaper.collector.psutil.Process", side_effect=make_process):
            usage = lookup_usage([10, 11])

        assert set(usage) == {10}

    def test_exit_during_measurement_absent(self) -> None:
        proc = self._process(10, cpu=1.0, rss=1, created=0.0)
        proc.memory_info.side_effect = psutil.NoSuchProcess(10)
        with patch("eslint_reaper.collector.psutil.Process", return_value=proc):
            usage = lookup_usage([10])

        assert usage == {}

    def test_no_sleep_without_processes(self) -> None:
        with (
            patch("eslint_reaper.collector.psutil.Process", side_effect=psutil.NoSuchProcess(1)),
            patch("eslint_reaper.collector.time.sleep") as mock_sleep,
        ):
            usage = lookup_usage([1], cpu_sample_seconds=1.0)

        assert usage == {}
        mock_sleep.assert_not_called()


class TestProcessCollector:
    """Tests for ProcessCollector."""

    @pytest.fixture
    def collector(self) -> ProcessCollector:
        config = Config(system=SystemConfig(cpu_sample_seconds=0))
        return ProcessCollector(config, self_pid=SELF_PID)

    def test_defaults_to_own_pid(self) -> None:
        import os

        assert ProcessCollector(Config()).self_pid == os.getpid()

    def test_empty_discovery_skips_lookup(self, collector) -> None:
        """No candidates means no usage lookup at all."""
        with (
            patch(
                "eslint_reaper.collector.list_processes",
                return_value=[make_entry(pid=1, name="bash", cmd="bash")],
            ),
            patch("eslint_reaper.collector.lookup_usage") as mock_lookup,
        ):
            samples = collector.collect_sync()

        assert samples == []
        mock_lookup.assert_not_called()

    def test_collects_only_targets_in_discovery_order(self, collector) -> None:
        entries = [
            make_entry(pid=30),
            make_entry(pid=5, name="bash", cmd="bash"),
            make_entry(pid=20),
            make_entry(pid=SELF_PID),
        ]
        usage = {
            30: ProcessUsage(cpu_percent=1.5, memory_bytes=300, elapsed_ms=3000, create_time=7.0),
            20: ProcessUsage(cpu_percent=2.5, memory_bytes=200, elapsed_ms=2000),
        }
        with (
            patch("eslint_reaper.collector.list_processes", return_value=entries),
            patch("eslint_reaper.collector.lookup_usage", return_value=usage) as mock_lookup,
        ):
            samples = collector.collect_sync()

        mock_lookup.assert_called_once_with([30, 20], cpu_sample_seconds=0)
        assert [s.pid for s in samples] == [30, 20]
        assert samples[0].command == ESLINT_CMD
        assert samples[0].cpu_percent == 1.5
        assert samples[0].memory_bytes == 300
        assert samples[0].elapsed_ms == 3000
        assert samples[0].create_time == 7.0
        assert samples[1].create_time is None

    def test_drops_candidates_missing_from_lookup(self, collector) -> None:
        """A process that exits between listing and lookup is not sampled."""
        entries = [make_entry(pid=1), make_entry(pid=2)]
        usage = {2: ProcessUsage(cpu_percent=0.0, memory_bytes=10, elapsed_ms=1)}
        with (
            patch("eslint_reaper.collector.list_processes", return_value=entries),
            patch("eslint_reaper.collector.lookup_usage", return_value=usage),
        ):
            samples = collector.collect_sync()

        assert [s.pid for s in samples] == [2]

    def test_listing_failure_propagates(self, collector) -> None:
        with patch("eslint_reaper.collector.list_processes", side_effect=OSError("boom")):
            with pytest.raises(OSError, match="boom"):
                collector.collect_sync()

    @pytest.mark.asyncio
    async def test_collect_runs_in_executor(self, collector) -> None:
        with patch("eslint_reaper.collector.list_processes", return_value=[]):
            samples = await collector.collect()

        assert samples == []
