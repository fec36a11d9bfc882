"""Configuration system for eslint-reaper."""

from dataclasses import dataclass, field, fields, is_dataclass, replace
from pathlib import Path

import tomlkit

MIN_MAX_MEMORY_GB = 0.5


class ConfigError(ValueError):
    """Raised when a configuration value has the wrong type or is out of range."""


@dataclass
class SystemConfig:
    """Sampling, termination and log file settings."""

    cpu_sample_seconds: float = 0.5  # Window used to measure instantaneous CPU %
    kill_grace_seconds: float = 5.0  # Time to exit after SIGTERM before SIGKILL
    # Log file rotation
    log_max_bytes: int = 5 * 1024 * 1024  # Max log file size (5MB)
    log_backup_count: int = 3  # Number of backup log files to keep


def _dataclass_to_table(obj: object) -> tomlkit.items.Table:
    """Convert a dataclass instance to a tomlkit Table recursively."""
    table = tomlkit.table()
    for f in fields(obj):  # type: ignore[arg-type]
        value = getattr(obj, f.name)
        if is_dataclass(value) and not isinstance(value, type):
            table.add(f.name, _dataclass_to_table(value))
        else:
            table.add(f.name, value)
    return table


@dataclass
class Config:
    """Main configuration container.

    Built once at startup (file values, then CLI overrides), validated, and
    passed to the watchdog. Nothing mutates it afterwards.
    """

    max_memory_gb: float = 6.0  # Total memory allowed across matched processes
    optimal_process_count: int = 2  # Processes left alive after reaping
    interval_seconds: int = 30  # Pause between the end of one check and the next
    silent: bool = False  # Suppress normal console output
    system: SystemConfig = field(default_factory=SystemConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "eslint-reaper"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs."""
        return Path.home() / ".local" / "state" / "eslint-reaper"

    @property
    def runtime_dir(self) -> Path:
        """Runtime directory for the PID file.

        Stored in /tmp/ so it's cleared on reboot, avoiding stale file issues.
        """
        return Path("/tmp/eslint-reaper")

    @property
    def log_path(self) -> Path:
        """JSON Lines log path."""
        return self.state_dir / "daemon.log"

    @property
    def pid_path(self) -> Path:
        """PID file path."""
        return self.runtime_dir / "daemon.pid"

    def validate(self) -> None:
        """Check every field has the right type and is within range.

        Raises:
            ConfigError: With a message naming the offending field.
        """
        for name in ("optimal_process_count", "interval_seconds"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{name} must be an integer, got {value!r}")
        if self.max_memory_gb < MIN_MAX_MEMORY_GB:
            raise ConfigError(
                f"max_memory_gb must be >= {MIN_MAX_MEMORY_GB}, got {self.max_memory_gb}"
            )
        if self.optimal_process_count < 1:
            raise ConfigError(
                f"optimal_process_count must be >= 1, got {self.optimal_process_count}"
            )
        if self.interval_seconds < 1:
            raise ConfigError(f"interval_seconds must be >= 1, got {self.interval_seconds}")
        if self.system.cpu_sample_seconds < 0:
            raise ConfigError(
                f"cpu_sample_seconds must be >= 0, got {self.system.cpu_sample_seconds}"
            )
        if self.system.kill_grace_seconds < 0:
            raise ConfigError(
                f"kill_grace_seconds must be >= 0, got {self.system.kill_grace_seconds}"
            )

    def with_overrides(self, **values: object) -> "Config":
        """Return a copy with the given top-level fields replaced.

        None values are ignored so unset CLI flags keep the file value.
        """
        changes = {name: value for name, value in values.items() if value is not None}
        return replace(self, **changes)

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)

        doc = tomlkit.document()
        doc.add("max_memory_gb", self.max_memory_gb)
        doc.add("optimal_process_count", self.optimal_process_count)
        doc.add("interval_seconds", self.interval_seconds)
        doc.add("silent", self.silent)
        doc.add(tomlkit.nl())
        doc.add("system", _dataclass_to_table(self.system))

        path.write_text(tomlkit.dumps(doc))

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        All defaults come from the dataclass definitions, so Config() and
        Config.load() agree when no file exists.

        Raises:
            ValueError: If the file cannot be parsed.
            ConfigError: If a value has the wrong type.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f)
        except tomlkit.exceptions.TOMLKitError as e:
            raise ValueError(f"Failed to parse config file {path}: {e}") from e

        return cls(
            max_memory_gb=_read(data, "max_memory_gb", defaults.max_memory_gb, float),
            optimal_process_count=_read(
                data, "optimal_process_count", defaults.optimal_process_count, int
            ),
            interval_seconds=_read(data, "interval_seconds", defaults.interval_seconds, int),
            silent=_read(data, "silent", defaults.silent, bool),
            system=_load_system_config(data.get("system", {})),
        )


_TYPE_NAMES = {bool: "a boolean", int: "an integer", float: "a number"}


def _read(data: dict, key: str, default: object, kind: type) -> object:
    """Read one value from TOML data as a plain Python value of the given type.

    Integers are accepted where a number is expected. Anything else of the
    wrong type (including booleans for numeric fields) is rejected.

    Raises:
        ConfigError: If the value has the wrong type.
    """
    value = data.get(key, default)
    if kind is float and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, bool) != (kind is bool) or not isinstance(value, kind):
        raise ConfigError(f"{key} must be {_TYPE_NAMES[kind]}, got {value!r}")
    return kind(value)


def _load_system_config(data: dict) -> SystemConfig:
    """Load system config from TOML data."""
    d = SystemConfig()
    return SystemConfig(
        cpu_sample_seconds=_read(data, "cpu_sample_seconds", d.cpu_sample_seconds, float),
        kill_grace_seconds=_read(data, "kill_grace_seconds", d.kill_grace_seconds, float),
        log_max_bytes=_read(data, "log_max_bytes", d.log_max_bytes, int),
        log_backup_count=_read(data, "log_backup_count", d.log_backup_count, int),
    )
