from __future__ import annotations

import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_ms() -> int:
    return int(time.time() * 1000)


def to_epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def from_epoch_seconds(seconds: int | float) -> datetime:
    return datetime.fromtimestamp(float(seconds), tz=timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat().replace("+00:00", "Z")


def format_timestamp(value: datetime | None, default: str = "-") -> str:
    """Human display used on order and tracking views."""
    if value is None:
        return default
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.strftime("%d %b %Y, %H:%M UTC")


def format_scaled_duration(duration_ms: float | None, scale: float = 10.0) -> str:
    """Render a duration with elapsed seconds multiplied by ``scale``.

    Zero, negative or missing durations render as ``Pending``.
    """
    if duration_ms is None:
        return "Pending"
    try:
        scaled_seconds = (float(duration_ms) / 1000.0) * float(scale)
    except (TypeError, ValueError):
        return "Pending"
    if scaled_seconds <= 0:
        return "Pending"
    total_minutes = int(scaled_seconds // 60)
    if total_minutes < 1:
        return "< 1m"
    hours, minutes = divmod(total_minutes, 60)
    if hours == 0:
        return f"{minutes}m"
    return f"{hours}h {minutes}m"
