"""Background watchdog for eslint-reaper."""

import asyncio
import os
import signal
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable

import psutil
import structlog

from eslint_reaper import logging as console
from eslint_reaper.collector import ProcessCollector, ProcessSample
from eslint_reaper.config import Config
from eslint_reaper.policy import KillPlan, UsageTotals, evaluate_threshold, select_victims
from eslint_reaper.reaper import TerminationError, TerminationResult, terminate_async

log = structlog.get_logger()

Terminator = Callable[[list[int], float, dict[int, float]], Awaitable[TerminationResult]]


class AlreadyRunningError(RuntimeError):
    """Raised when another watchdog holds the PID file."""

    def __init__(self, pid: int):
        self.pid = pid
        super().__init__(f"Watchdog is already running (PID {pid})")


@dataclass
class WatchdogState:
    """Runtime counters of the watchdog.

    Reported in logs only. The kill decision never reads them.
    """

    running: bool = False
    iteration_count: int = 0
    kill_count: int = 0
    failure_count: int = 0
    last_iteration_time: datetime | None = None

    def record_iteration(self, killed: int) -> None:
        """Update state after a completed check."""
        self.iteration_count += 1
        self.kill_count += killed
        self.last_iteration_time = datetime.now()

    def record_failure(self, killed: int = 0) -> None:
        """Update state after a check that raised."""
        self.failure_count += 1
        self.kill_count += killed
        self.last_iteration_time = datetime.now()


@dataclass
class IterationResult:
    """Everything one check saw and did."""

    samples: list[ProcessSample]
    totals: UsageTotals
    plan: KillPlan | None = None
    killed: list[int] = field(default_factory=list)


class Watchdog:
    """Periodically checks ESLint processes and reaps the excess."""

    def __init__(
        self,
        config: Config,
        collector: ProcessCollector | None = None,
        terminator: Terminator | None = None,
    ):
        self.config = config
        self.state = WatchdogState()
        self.collector = collector or ProcessCollector(config)
        self._terminate = terminator or terminate_async
        self._shutdown_event = asyncio.Event()
        self._owns_pid_file = False

    async def run_once(self) -> IterationResult:
        """Run a single check: discover, report, evaluate, and reap if needed.

        Errors from discovery and termination propagate to the caller.
        """
        samples = await self.collector.collect()
        for sample in samples:
            console.process_line(sample)

        totals = evaluate_threshold(samples, self.config.max_memory_gb)
        console.totals(
            totals.total_memory_bytes, totals.total_cpu_percent, totals.threshold_reached
        )
        log.info(
            "check_completed",
            processes=len(samples),
            total_memory_bytes=totals.total_memory_bytes,
            total_cpu_percent=round(totals.total_cpu_percent, 2),
            threshold_reached=totals.threshold_reached,
        )

        result = IterationResult(samples=samples, totals=totals)
        if totals.threshold_reached:
            result.plan = select_victims(samples, self.config.optimal_process_count)
            if result.plan.kill:
                console.kill_issued(result.plan.pids)
                log.info(
                    "kill_issued",
                    pids=result.plan.pids,
                    kept=[s.pid for s in result.plan.keep],
                )
                started = {
                    s.pid: s.create_time for s in result.plan.kill if s.create_time is not None
                }
                outcome = await self._terminate(
                    result.plan.pids, self.config.system.kill_grace_seconds, started
                )
                result.killed = outcome.terminated
            else:
                console.kill_skipped(len(samples), self.config.optimal_process_count)

        console.separator()
        self.state.record_iteration(len(result.killed))
        return result

    def request_shutdown(self) -> None:
        """Stop the loop before its next check."""
        self._shutdown_event.set()

    async def _main_loop(self) -> None:
        """Run checks until shutdown.

        The pause is measured from the end of each check, so a slow check
        delays the next one rather than overlapping it. A failed check is
        logged and the loop carries on.
        """
        interval = self.config.interval_seconds

        while not self._shutdown_event.is_set():
            try:
                await self.run_once()
            except asyncio.CancelledError:
                log.info("main_loop_cancelled")
                break
            except TerminationError as e:
                self.state.record_failure(killed=len(e.result.terminated))
                console.kill_failed(e.result.failed)
                log.warning("terminate_failed", failed=e.result.failed)
            except Exception as e:
                self.state.record_failure()
                console.iteration_failed(str(e))
                log.exception("check_failed", error=str(e))

            if await self._wait_for_shutdown(interval):
                break

    async def _wait_for_shutdown(self, timeout: float) -> bool:
        """Sleep up to timeout seconds. Returns True if shutdown was requested."""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def start(self) -> None:
        """Start the watchdog and run until shutdown."""
        from importlib.metadata import version

        log.info(
            "watchdog_starting",
            version=version("eslint-reaper"),
            max_memory_gb=self.config.max_memory_gb,
            optimal_process_count=self.config.optimal_process_count,
            interval_seconds=self.config.interval_seconds,
            silent=self.config.silent,
        )

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: self._handle_signal(s))

        running_pid = self._check_already_running()
        if running_pid is not None:
            console.already_running(running_pid)
            log.error("watchdog_already_running", pid=running_pid)
            raise AlreadyRunningError(running_pid)

        self._write_pid_file()

        self.state.running = True
        console.watchdog_started(
            self.config.max_memory_gb,
            self.config.optimal_process_count,
            self.config.interval_seconds,
        )
        log.info("watchdog_started")

        await self._main_loop()

    async def stop(self) -> None:
        """Stop the watchdog gracefully."""
        console.watchdog_stopping()
        log.info(
            "watchdog_stopping",
            iterations=self.state.iteration_count,
            killed=self.state.kill_count,
            failures=self.state.failure_count,
        )
        self.state.running = False
        self._remove_pid_file()
        console.watchdog_stopped()
        log.info("watchdog_stopped")

    def _handle_signal(self, sig: signal.Signals) -> None:
        """Handle shutdown signals."""
        console.signal_received(sig.name)
        log.info("signal_received", signal=sig.name)
        self.request_shutdown()

    def _write_pid_file(self) -> None:
        """Write PID file."""
        self.config.pid_path.parent.mkdir(parents=True, exist_ok=True)
        self.config.pid_path.write_text(str(os.getpid()))
        self._owns_pid_file = True
        log.debug("pid_file_written", path=str(self.config.pid_path))

    def _remove_pid_file(self) -> None:
        """Remove PID file if this watchdog wrote it."""
        if self._owns_pid_file and self.config.pid_path.exists():
            self.config.pid_path.unlink()
            self._owns_pid_file = False
            log.debug("pid_file_removed")

    def _check_already_running(self) -> int | None:
        """Return the PID of a live watchdog holding the PID file, if any.

        Verifies not just that a process with the PID exists, but that it's
        actually eslint-reaper. A stale PID file is removed.
        """
        pid_path = self.config.pid_path
        if not pid_path.exists():
            return None

        try:
            pid = int(pid_path.read_text().strip())
        except ValueError:
            log.warning("pid_file_invalid", reason="not a number")
            pid_path.unlink()
            return None

        if pid == os.getpid():
            return None

        try:
            proc = psutil.Process(pid)
            cmdline_str = " ".join(proc.cmdline()).lower()
            if "eslint-reaper" in cmdline_str or "eslint_reaper" in cmdline_str:
                return pid
            log.warning(
                "pid_file_stale",
                reason="different process",
                pid=pid,
                actual_process=proc.name(),
            )
        except psutil.NoSuchProcess:
            log.warning("pid_file_stale", reason="process not found", pid=pid)
        except psutil.AccessDenied:
            # Can't inspect process - assume it's running to be safe
            log.warning("pid_check_access_denied", pid=pid)
            return pid

        pid_path.unlink()
        return None


async def run_watchdog(config: Config | None = None) -> None:
    """Run the watchdog until shutdown.

    Args:
        config: Optional validated config, loads from file if not provided
    """
    if config is None:
        config = Config.load()
        config.validate()

    console.configure(config)

    watchdog = Watchdog(config)

    try:
        await watchdog.start()
    except AlreadyRunningError:
        raise
    except Exception as e:
        log.exception("watchdog_crashed", error=str(e))
        raise
    finally:
        await watchdog.stop()
