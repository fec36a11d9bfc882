"""Batched process termination."""

import asyncio
from dataclasses import dataclass, field

import psutil
import structlog

log = structlog.get_logger()


@dataclass
class TerminationResult:
    """Outcome of one termination batch."""

    terminated: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)  # pid -> reason


class TerminationError(Exception):
    """Raised when one or more PIDs in a batch could not be terminated.

    The whole batch has been attempted by the time this is raised.
    """

    def __init__(self, result: TerminationResult):
        self.result = result
        details = ", ".join(f"{pid} ({reason})" for pid, reason in result.failed.items())
        super().__init__(f"Failed to terminate {len(result.failed)} process(es): {details}")


def terminate(
    pids: list[int],
    grace_seconds: float = 0.0,
    started: dict[int, float] | None = None,
) -> TerminationResult:
    """Send SIGTERM to every PID, then SIGKILL whatever is left after the grace period.

    With a zero grace period the signals are sent and nothing is awaited.

    Args:
        pids: Processes to terminate.
        grace_seconds: Time to wait for SIGTERM before sending SIGKILL.
        started: Start time recorded for each PID when it was sampled. A PID
            whose current process started at a different time belongs to a
            new process and is not signalled.

    Raises:
        TerminationError: If any PID was already gone or could not be signalled.
    """
    started = started or {}
    result = TerminationResult()
    signalled: list[psutil.Process] = []

    for pid in pids:
        try:
            proc = psutil.Process(pid)
            if pid in started and proc.create_time() != started[pid]:
                log.warning("pid_reused", pid=pid)
                result.failed[pid] = "pid reused"
                continue
            proc.terminate()
            signalled.append(proc)
        except psutil.NoSuchProcess:
            result.failed[pid] = "no such process"
        except psutil.AccessDenied:
            result.failed[pid] = "access denied"

    if signalled and grace_seconds > 0:
        _, alive = psutil.wait_procs(signalled, timeout=grace_seconds)
        for proc in alive:
            try:
                proc.kill()
                log.warning("process_force_killed", pid=proc.pid, grace_seconds=grace_seconds)
            except psutil.NoSuchProcess:
                pass  # Exited between the wait and the kill
            except psutil.AccessDenied:
                result.failed[proc.pid] = "access denied"

    result.terminated = [pid for pid in pids if pid not in result.failed]
    log.info("terminate_batch", terminated=result.terminated, failed=result.failed)

    if result.failed:
        raise TerminationError(result)
    return result


async def terminate_async(
    pids: list[int],
    grace_seconds: float = 0.0,
    started: dict[int, float] | None = None,
) -> TerminationResult:
    """Run terminate() in executor (signalling and waiting are blocking)."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, terminate, pids, grace_seconds, started)
