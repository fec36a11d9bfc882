"""Centralized console logging with Rich formatting.

This module provides:
1. Icon vocabulary (Icon class namespace)
2. Level-based styling
3. Core log functions (log, info, warn, error)
4. Domain helpers (process_line, totals, kill_issued, etc.)
5. Structlog configuration (configure)

Console output uses Rich markup for colors. JSON file output via structlog
remains separate (machine-parseable, no colors).

Silent mode puts the stdout console into quiet mode once at startup, so
callers never check the flag themselves. Errors go to a separate stderr
console that is never silenced.
"""

from __future__ import annotations

import logging
import logging.handlers
from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from rich.console import Console
from rich.markup import escape

from eslint_reaper.formatting import format_bytes, format_percent

if TYPE_CHECKING:
    from eslint_reaper.collector import ProcessSample
    from eslint_reaper.config import Config

# Rich consoles for human-readable output
_console = Console(highlight=False)
_err_console = Console(stderr=True, highlight=False)


# ─────────────────────────────────────────────────────────────────────────────
# Icons
# ─────────────────────────────────────────────────────────────────────────────


class Icon:
    """Icon vocabulary for console output."""

    OK = "[bold green]✓[/]"
    FAIL = "[bold red]✗[/]"
    WAIT = "⏳"
    KILL = "[bright_red]✂[/]"
    SIGNAL = "⚡"


# ─────────────────────────────────────────────────────────────────────────────
# Level Styles
# ─────────────────────────────────────────────────────────────────────────────

_LEVEL_STYLES = {
    "info": "[bright_blue]\\[info][/]",
    "warn": "[yellow]\\[warn][/]",
    "error": "[bold red]\\[err][/] ",
}


# ─────────────────────────────────────────────────────────────────────────────
# Core Functions
# ─────────────────────────────────────────────────────────────────────────────


def log(level: str, msg: str, icon: str = "") -> None:
    """Print a log message with timestamp and level.

    Args:
        level: Log level (info, warn, error)
        msg: Message to print (can include Rich markup)
        icon: Optional icon to show after level (e.g., Icon.OK)
    """
    ts = datetime.now().strftime("%H:%M:%S")
    lvl = _LEVEL_STYLES.get(level, f"[{level}]")
    icon_part = f" {icon}" if icon else ""
    console = _err_console if level == "error" else _console
    console.print(f"[dim]{ts}[/] {lvl}{icon_part} {msg}")


def info(msg: str, icon: str = "") -> None:
    """Log an info message."""
    log("info", msg, icon)


def warn(msg: str, icon: str = "") -> None:
    """Log a warning message."""
    log("warn", msg, icon)


def error(msg: str, icon: str = "") -> None:
    """Log an error message. Shown even in silent mode."""
    log("error", msg, icon)


# ─────────────────────────────────────────────────────────────────────────────
# Domain Helpers
# ─────────────────────────────────────────────────────────────────────────────


def process_line(sample: ProcessSample) -> None:
    """Print one matched process."""
    _console.print(
        f"[dim]{sample.pid}[/] - {format_bytes(sample.memory_bytes)} - "
        f"{format_percent(sample.cpu_percent)} % - {escape(sample.command)}",
        soft_wrap=True,
    )


def totals(total_memory_bytes: int, total_cpu_percent: float, threshold_reached: bool) -> None:
    """Print aggregate usage, memory in red once over the limit."""
    color = "red" if threshold_reached else "green"
    _console.print(f"Total memory: [{color}]{format_bytes(total_memory_bytes)}[/]")
    _console.print(f"Total CPU: {format_percent(total_cpu_percent)} %")


def separator() -> None:
    """Print the end-of-check separator."""
    _console.print("-" * 20)


def kill_issued(pids: list[int]) -> None:
    """Log termination requested."""
    suffix = "es" if len(pids) != 1 else ""
    pid_list = ", ".join(str(pid) for pid in pids)
    info(f"Terminating {len(pids)} process{suffix} [dim]({pid_list})[/]", Icon.KILL)


def kill_skipped(count: int, optimal: int) -> None:
    """Log that the limit was exceeded but nothing is left to kill."""
    warn(f"Memory limit exceeded but only {count} process(es) running [dim](keeping {optimal})[/]")


def kill_failed(failures: dict[int, str]) -> None:
    """Log termination failures."""
    details = ", ".join(f"{pid} ({reason})" for pid, reason in failures.items())
    error(f"Termination failed: {escape(details)}", Icon.FAIL)


def iteration_failed(error_msg: str) -> None:
    """Log a check that aborted."""
    error(f"Check failed: {escape(error_msg)}", Icon.FAIL)


def watchdog_started(max_memory_gb: float, optimal: int, interval: int) -> None:
    """Log startup complete with the effective limits."""
    info(
        f"Watching ESLint: limit [cyan]{max_memory_gb}GB[/], keep [cyan]{optimal}[/], "
        f"every [cyan]{interval}s[/]",
        Icon.OK,
    )


def watchdog_stopping() -> None:
    """Log shutdown initiated."""
    info("Watchdog stopping...", Icon.WAIT)


def watchdog_stopped() -> None:
    """Log shutdown complete."""
    info("Watchdog stopped", Icon.OK)


def signal_received(name: str) -> None:
    """Log signal received."""
    info(f"Received [bold]{name}[/]", Icon.SIGNAL)


def already_running(pid: int | None = None) -> None:
    """Log watchdog already running error."""
    if pid:
        error(f"Another watchdog already running [dim](PID {pid})[/]", Icon.FAIL)
    else:
        error("Another watchdog already running", Icon.FAIL)


# ─────────────────────────────────────────────────────────────────────────────
# Structlog Configuration
# ─────────────────────────────────────────────────────────────────────────────


def _add_source(source: str) -> structlog.types.Processor:
    """Create a processor that adds a source field to log events."""

    def processor(
        logger: structlog.types.WrappedLogger,
        method_name: str,
        event_dict: structlog.types.EventDict,
    ) -> structlog.types.EventDict:
        event_dict["source"] = source
        return event_dict

    return processor


def configure(config: Config, source: str = "watchdog") -> None:
    """Select console verbosity and route structlog to a JSON Lines file.

    Console output is human-readable Rich markup; it is muted when
    ``config.silent`` is set. File output is JSON Lines for machine parsing
    and is written regardless of silent mode.

    Args:
        config: Application config with paths
        source: Value of the source field on every file log event
    """
    _console.quiet = config.silent

    # Ensure state directory exists for log file
    config.state_dir.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        config.log_path,
        maxBytes=config.system.log_max_bytes,
        backupCount=config.system.log_backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.INFO)

    stdlib_root = logging.getLogger()
    stdlib_root.setLevel(logging.INFO)
    stdlib_root.handlers.clear()

    file_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
                structlog.processors.add_log_level,
                _add_source(source),
                structlog.processors.format_exc_info,
            ],
        )
    )
    stdlib_root.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
            structlog.processors.add_log_level,
            _add_source(source),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

