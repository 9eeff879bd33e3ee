"""
Human-readable sizes and durations for the CLI summary.
"""

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_size(bytes_size: float) -> str:
    """`1536` -> `'1.5 KB'`."""
    if bytes_size <= 0:
        return "0 B"
    for unit in _SIZE_UNITS[:-1]:
        if bytes_size < 1024:
            return f"{bytes_size:.1f} {unit}"
        bytes_size /= 1024
    return f"{bytes_size:.1f} {_SIZE_UNITS[-1]}"


def format_duration(seconds: float) -> str:
    """
    `65` -> `'1m 5s'`, `3600` -> `'1h'`.

    Sub-minute durations keep one decimal.
    """
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    return " ".join(
        f"{value}{unit}"
        for value, unit in ((hours, "h"), (minutes, "m"), (secs, "s"))
        if value
    )
