"""Small formatting and time helpers shared by the migration modules."""

from __future__ import annotations

from datetime import datetime, timezone

_DECIMAL_UNITS = ("Bytes", "KB", "MB", "GB", "TB")
_BINARY_UNITS = ("Bytes", "KiB", "MiB", "GiB", "TiB")


def get_utc_now() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def format_bytes(num_bytes, binary_units: bool = False) -> str:
    """Render a byte count as a human-readable string, e.g. ``1.5 KB``."""
    if not num_bytes:
        return "0 Bytes"
    base = 1024 if binary_units else 1000
    units = _BINARY_UNITS if binary_units else _DECIMAL_UNITS
    value = float(num_bytes)
    idx = 0
    while value >= base and idx < len(units) - 1:
        value /= base
        idx += 1
    if idx == 0:
        return f"{int(value)} {units[0]}"
    return f"{value:.2f} {units[idx]}"


def format_duration(seconds: float) -> str:
    """Render seconds as ``1h 2m 3s`` / ``2m 3s`` / ``3.0s``."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    return f"{minutes}m {secs}s"


def percent(part: int, total: int) -> str:
    """Percentage with one decimal place; ``0.0`` for an empty total."""
    if total <= 0:
        return "0.0"
    return f"{(part / total) * 100:.1f}"
