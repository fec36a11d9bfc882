"""Shared test fixtures for eslint-reaper."""

import logging
from contextlib import ExitStack
from pathlib import Path
from typing import Iterator
from unittest.mock import patch

import pytest
import structlog

from eslint_reaper.collector import ProcessEntry, ProcessSample
from eslint_reaper.config import Config

ESLINT_CMD = (
    "/usr/local/bin/node /opt/ide/plugins/javascript/js-language-service.js "
    "-id=1712 -debug-name=eslint"
)


def make_sample(
    pid: int = 123,
    cpu: float = 0.0,
    elapsed: int = 1000,
    mem: float = 100 * 1024 * 1024,
    command: str = ESLINT_CMD,
    create_time: float | None = None,
) -> ProcessSample:
    """Create a ProcessSample for testing."""
    return ProcessSample(
        pid=pid,
        command=command,
        cpu_percent=cpu,
        memory_bytes=int(mem),
        elapsed_ms=elapsed,
        create_time=create_time,
    )


def make_entry(pid: int = 123, name: str = "node", cmd: str = ESLINT_CMD) -> ProcessEntry:
    """Create a process table entry for testing."""
    return ProcessEntry(pid=pid, name=name, cmd=cmd)


@pytest.fixture
def scenario_samples() -> list[ProcessSample]:
    """Three ESLint processes totalling ~6.52GB."""
    return [
        make_sample(pid=1, cpu=10, elapsed=500, mem=1e9),
        make_sample(pid=2, cpu=50, elapsed=100, mem=1e9),
        make_sample(pid=3, cpu=50, elapsed=50, mem=5e9),
    ]


@pytest.fixture
def patched_config_paths(tmp_path: Path) -> Iterator[Path]:
    """Patch all Config path properties to live under tmp_path."""
    # fmt: off
    with ExitStack() as stack:
        stack.enter_context(patch.object(
            Config, "config_dir",
            new_callable=lambda: property(lambda self: tmp_path / "config")
        ))
        stack.enter_context(patch.object(
            Config, "state_dir",
            new_callable=lambda: property(lambda self: tmp_path / "state")
        ))
        stack.enter_context(patch.object(
            Config, "runtime_dir",
            new_callable=lambda: property(lambda self: tmp_path / "run")
        ))
        yield tmp_path
    # fmt: on


@pytest.fixture
def restore_logging() -> Iterator[None]:
    """Undo configure() side effects after each test."""
    from eslint_reaper import logging as console

    yield
    console._console.quiet = False
    root = logging.getLogger()
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()
    structlog.reset_defaults()
