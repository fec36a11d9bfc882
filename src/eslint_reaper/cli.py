"""CLI commands for eslint-reaper."""

from pathlib import Path

import click

from eslint_reaper.config import MIN_MAX_MEMORY_GB


def _load_config(config_path: Path | None, **overrides: object):
    """Load the config file, apply CLI overrides and validate.

    Exits with a descriptive message if the result is invalid.
    """
    from eslint_reaper.config import Config, ConfigError

    try:
        config = Config.load(config_path).with_overrides(**overrides)
        config.validate()
    except ConfigError as e:
        raise click.UsageError(str(e)) from e
    except ValueError as e:
        raise click.ClickException(str(e)) from e
    return config


config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ~/.config/eslint-reaper/config.toml)",
)


@click.group()
@click.version_option(package_name="eslint-reaper")
def main() -> None:
    """Keep ESLint language-service processes within a memory budget."""
    pass


@main.command()
@click.option(
    "--max-memory",
    "-m",
    "max_memory_gb",
    type=click.FloatRange(min=MIN_MAX_MEMORY_GB),
    default=None,
    help="Total memory in GB allowed across ESLint processes [default: 6]",
)
@click.option(
    "--optimal-process-count",
    "-c",
    "optimal_process_count",
    type=click.IntRange(min=1),
    default=None,
    help="Processes left running once the limit is exceeded [default: 2]",
)
@click.option(
    "--interval",
    "-i",
    "interval_seconds",
    type=click.IntRange(min=1),
    default=None,
    help="Seconds between checks [default: 30]",
)
@click.option("--silent", "-s", is_flag=True, help="Only print errors to the console")
@config_option
def run(
    max_memory_gb: float | None,
    optimal_process_count: int | None,
    interval_seconds: int | None,
    silent: bool,
    config_path: Path | None,
) -> None:
    """Run the watchdog until interrupted."""
    import asyncio

    from eslint_reaper.daemon import AlreadyRunningError, run_watchdog

    config = _load_config(
        config_path,
        max_memory_gb=max_memory_gb,
        optimal_process_count=optimal_process_count,
        interval_seconds=interval_seconds,
        silent=silent or None,
    )

    try:
        asyncio.run(run_watchdog(config))
    except AlreadyRunningError:
        raise SystemExit(1)


@main.command()
@click.option(
    "--max-memory",
    "-m",
    "max_memory_gb",
    type=click.FloatRange(min=MIN_MAX_MEMORY_GB),
    default=None,
    help="Memory limit in GB to evaluate against",
)
@click.option(
    "--optimal-process-count",
    "-c",
    "optimal_process_count",
    type=click.IntRange(min=1),
    default=None,
    help="Processes that would be kept",
)
@click.option("--width", "-w", default=60, help="Max chars of command line to show")
@config_option
def status(
    max_memory_gb: float | None,
    optimal_process_count: int | None,
    width: int,
    config_path: Path | None,
) -> None:
    """Show matched processes and what a check would kill, without killing."""
    from eslint_reaper import logging as console
    from eslint_reaper.collector import ProcessCollector
    from eslint_reaper.formatting import format_bytes, format_percent, truncate_command
    from eslint_reaper.policy import evaluate_threshold, select_victims

    config = _load_config(
        config_path,
        max_memory_gb=max_memory_gb,
        optimal_process_count=optimal_process_count,
    )
    # Collector events go to the log file, not into the table
    console.configure(config, source="status")

    samples = ProcessCollector(config).collect_sync()
    if not samples:
        click.echo("No ESLint processes running.")
        return

    totals = evaluate_threshold(samples, config.max_memory_gb)
    plan = select_victims(samples, config.optimal_process_count)
    doomed = set(plan.pids) if totals.threshold_reached else set()

    click.echo(f"{'PID':>7}  {'Memory':>10}  {'CPU %':>7}  {'Age':>8}  {'Action':6}  Command")
    click.echo("-" * (48 + width))
    for sample in plan.keep + plan.kill:
        action = "kill" if sample.pid in doomed else "keep"
        age = f"{sample.elapsed_ms / 1000:.0f}s"
        click.echo(
            f"{sample.pid:>7}  {format_bytes(sample.memory_bytes):>10}  "
            f"{format_percent(sample.cpu_percent):>7}  {age:>8}  {action:6}  "
            f"{truncate_command(sample.command, width)}"
        )

    click.echo()
    state = "exceeded" if totals.threshold_reached else "ok"
    click.echo(
        f"Total memory: {format_bytes(totals.total_memory_bytes)} "
        f"(limit {config.max_memory_gb}GB, {state})"
    )
    click.echo(f"Total CPU: {format_percent(totals.total_cpu_percent)} %")


@main.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("show")
@config_option
def config_show(config_path: Path | None) -> None:
    """Display current configuration."""
    from eslint_reaper.config import Config

    try:
        cfg = Config.load(config_path)
    except ValueError as e:
        raise click.ClickException(str(e)) from e
    path = config_path or cfg.config_path

    click.echo(f"Config file: {path}")
    click.echo(f"Exists: {path.exists()}")
    click.echo()
    click.echo(f"max_memory_gb = {cfg.max_memory_gb}")
    click.echo(f"optimal_process_count = {cfg.optimal_process_count}")
    click.echo(f"interval_seconds = {cfg.interval_seconds}")
    click.echo(f"silent = {str(cfg.silent).lower()}")
    click.echo()
    click.echo("[system]")
    click.echo(f"  cpu_sample_seconds = {cfg.system.cpu_sample_seconds}")
    click.echo(f"  kill_grace_seconds = {cfg.system.kill_grace_seconds}")
    click.echo(f"  log_max_bytes = {cfg.system.log_max_bytes}")
    click.echo(f"  log_backup_count = {cfg.system.log_backup_count}")


@config.command("reset")
@config_option
@click.confirmation_option(prompt="Reset config to defaults?")
def config_reset(config_path: Path | None) -> None:
    """Reset configuration to defaults."""
    from eslint_reaper.config import Config

    cfg = Config()
    path = config_path or cfg.config_path
    cfg.save(path)
    click.echo(f"Config reset to defaults at {path}")


if __name__ == "__main__":
    main()
