"""Threshold evaluation and victim selection.

Both steps are pure: they look only at the samples of the current check and
the configured limits.
"""

from dataclasses import dataclass
from typing import Sequence

from eslint_reaper.collector import ProcessSample

BYTES_PER_GB = 1024**3


@dataclass(frozen=True)
class UsageTotals:
    """Aggregate usage of all matched processes."""

    total_memory_bytes: int
    total_cpu_percent: float
    threshold_reached: bool

    @property
    def total_memory_gb(self) -> float:
        return self.total_memory_bytes / BYTES_PER_GB


@dataclass(frozen=True)
class KillPlan:
    """Partition of the samples into processes to keep and to terminate."""

    keep: tuple[ProcessSample, ...]
    kill: tuple[ProcessSample, ...]

    @property
    def pids(self) -> list[int]:
        """PIDs to terminate, in kill order."""
        return [s.pid for s in self.kill]


def evaluate_threshold(samples: Sequence[ProcessSample], max_memory_gb: float) -> UsageTotals:
    """Sum memory and CPU and compare memory against the limit.

    The limit itself is allowed: only usage strictly above ``max_memory_gb``
    counts as reached.
    """
    total_memory = sum(s.memory_bytes for s in samples)
    total_cpu = sum(s.cpu_percent for s in samples)
    return UsageTotals(
        total_memory_bytes=total_memory,
        total_cpu_percent=total_cpu,
        threshold_reached=total_memory / BYTES_PER_GB > max_memory_gb,
    )


def order_by_usefulness(samples: Sequence[ProcessSample]) -> list[ProcessSample]:
    """Most useful first: busiest CPU, then youngest."""
    return sorted(samples, key=lambda s: (-s.cpu_percent, s.elapsed_ms))


def select_victims(samples: Sequence[ProcessSample], optimal_process_count: int) -> KillPlan:
    """Keep the ``optimal_process_count`` most useful processes, kill the rest.

    Idle and older processes end up at the back of the ordering, so they are
    the ones killed.
    """
    ordered = order_by_usefulness(samples)
    return KillPlan(
        keep=tuple(ordered[:optimal_process_count]),
        kill=tuple(ordered[optimal_process_count:]),
    )
