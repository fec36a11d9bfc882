"""Formatting utilities for consistent console output."""

_BYTE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_bytes(num_bytes: float) -> str:
    """Format a byte count with binary scaling and two decimals.

    Args:
        num_bytes: Size in bytes

    Returns:
        Formatted size, e.g. "512.00B", "1.50KB", "6.52GB"
    """
    value = float(num_bytes)
    for unit in _BYTE_UNITS[:-1]:
        if abs(value) < 1024:
            return f"{value:.2f}{unit}"
        value /= 1024
    return f"{value:.2f}{_BYTE_UNITS[-1]}"


def format_percent(value: float) -> str:
    """Format a CPU percentage with two decimals."""
    return f"{value:.2f}"


def truncate_command(command: str, width: int) -> str:
    """Shorten a command line for display, marking the cut with '..'."""
    if width < 3 or len(command) <= width:
        return command
    return command[: width - 2] + ".."
