"""Discovery of ESLint language-service processes via psutil."""

import asyncio
import os
import time
from dataclasses import dataclass

import psutil
import structlog

from eslint_reaper.config import Config

log = structlog.get_logger()

# Process identity. A target is a node process running the language service
# script with the eslint debug name.
TARGET_PROCESS_NAME = "node"
SERVICE_SCRIPT_MARKER = "js-language-service.js"
IDENTITY_MARKER = "-debug-name=eslint"


@dataclass(frozen=True)
class ProcessEntry:
    """One row of the OS process table."""

    pid: int
    name: str
    cmd: str


@dataclass(frozen=True)
class ProcessUsage:
    """Resource usage of a single process at lookup time."""

    cpu_percent: float
    memory_bytes: int
    elapsed_ms: int
    create_time: float | None = None  # Process start, seconds since the epoch


@dataclass(frozen=True)
class ProcessSample:
    """Snapshot of one target process.

    Samples are rebuilt from scratch on every check and never compared with
    samples from a previous check.
    """

    pid: int
    command: str
    cpu_percent: float
    memory_bytes: int
    elapsed_ms: int
    create_time: float | None = None  # Identifies the process if its PID is reused


def is_target(entry: ProcessEntry, self_pid: int) -> bool:
    """Return True if the process table entry is an ESLint language service."""
    return (
        entry.name == TARGET_PROCESS_NAME
        and SERVICE_SCRIPT_MARKER in entry.cmd
        and IDENTITY_MARKER in entry.cmd
        and entry.pid != self_pid
    )


def list_processes() -> list[ProcessEntry]:
    """Return the live process table.

    Processes that exit or deny access while being read are skipped.
    """
    entries = []
    for proc in psutil.process_iter(["pid", "name", "cmdline"]):
        try:
            info = proc.info
            cmdline = info["cmdline"] or []
            entries.append(
                ProcessEntry(
                    pid=info["pid"],
                    name=info["name"] or "",
                    cmd=" ".join(cmdline),
                )
            )
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return entries


def lookup_usage(pids: list[int], cpu_sample_seconds: float = 0.0) -> dict[int, ProcessUsage]:
    """Look up CPU, memory and age for each PID.

    CPU % is measured over ``cpu_sample_seconds``: every process is primed
    first, then all of them are read after a single shared wait. With a zero
    window psutil reports 0.0 for the first reading.

    Returns:
        Mapping of PID to usage. PIDs that exited or cannot be inspected are
        absent.
    """
    procs: dict[int, psutil.Process] = {}
    for pid in pids:
        try:
            proc = psutil.Process(pid)
            proc.cpu_percent(interval=None)
            procs[pid] = proc
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            log.debug("usage_lookup_skipped", pid=pid)

    if procs and cpu_sample_seconds > 0:
        time.sleep(cpu_sample_seconds)

    now = time.time()
    usage: dict[int, ProcessUsage] = {}
    for pid, proc in procs.items():
        try:
            with proc.oneshot():
                cpu = proc.cpu_percent(interval=None)
                rss = proc.memory_info().rss
                started = proc.create_time()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            log.debug("usage_lookup_skipped", pid=pid)
            continue
        usage[pid] = ProcessUsage(
            cpu_percent=cpu,
            memory_bytes=rss,
            elapsed_ms=max(0, int((now - started) * 1000)),
            create_time=started,
        )
    return usage


class ProcessCollector:
    """Collects samples of every ESLint language-service process."""

    def __init__(self, config: Config, self_pid: int | None = None):
        self.config = config
        self.self_pid = os.getpid() if self_pid is None else self_pid

    def collect_sync(self) -> list[ProcessSample]:
        """Discover targets and measure them.

        Returns samples in discovery order. Targets that vanished before they
        could be measured are dropped. Listing and lookup errors propagate.
        """
        candidates = [e for e in list_processes() if is_target(e, self.self_pid)]
        if not candidates:
            return []

        usage = lookup_usage(
            [e.pid for e in candidates],
            cpu_sample_seconds=self.config.system.cpu_sample_seconds,
        )

        samples = []
        for entry in candidates:
            u = usage.get(entry.pid)
            if u is None:
                log.info("process_vanished", pid=entry.pid)
                continue
            samples.append(
                ProcessSample(
                    pid=entry.pid,
                    command=entry.cmd,
                    cpu_percent=u.cpu_percent,
                    memory_bytes=u.memory_bytes,
                    elapsed_ms=u.elapsed_ms,
                    create_time=u.create_time,
                )
            )
        return samples

    async def collect(self) -> list[ProcessSample]:
        """Run collection in executor (psutil calls are blocking)."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.collect_sync)
