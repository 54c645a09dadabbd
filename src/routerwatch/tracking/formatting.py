"""Human-readable byte and duration formatting for notifications."""

from datetime import timedelta

_BYTE_UNITS = ["B", "KB", "MB", "GB", "TB"]


def format_bytes(num_bytes: int | float) -> str:
    """Format a byte count using binary units, e.g. 1536 -> "1.5 KB"."""
    if num_bytes <= 0:
        return "0 B"
    value = float(num_bytes)
    unit = 0
    while value >= 1024 and unit < len(_BYTE_UNITS) - 1:
        value /= 1024
        unit += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_BYTE_UNITS[unit]}"


def format_duration(duration: timedelta) -> str:
    """Format a duration as "1d 2h 3m", "2h 3m", "3m 4s" or "4s"."""
    seconds = max(int(duration.total_seconds()), 0)
    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)

    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
