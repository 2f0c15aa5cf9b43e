"""Timestamp parsing and duration labels shared by the compiler and the report."""
from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any

_MAX_STEP_MS = 60 * 60 * 1000


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _format_datetime_utc(value: datetime) -> str:
    dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt.isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 transcript timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return None
        try:
            parsed = datetime.fromisoformat(cleaned.replace("Z", "+00:00"))
        except (ValueError, TypeError):
            return None
    else:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def normalize_iso_timestamp(value: Any) -> str:
    parsed = parse_timestamp(value)
    return _format_datetime_utc(parsed) if parsed else ""


def iso_to_epoch(value: Any) -> float:
    parsed = parse_timestamp(value)
    if not parsed:
        return 0.0
    try:
        return parsed.timestamp()
    except (OverflowError, OSError, ValueError):
        return 0.0


def elapsed_ms(start: Any, end: Any) -> float | None:
    """Milliseconds from *start* to *end*, or None when either side is unusable."""
    start_dt = parse_timestamp(start)
    end_dt = parse_timestamp(end)
    if not start_dt or not end_dt:
        return None
    try:
        return (end_dt - start_dt).total_seconds() * 1000
    except (OverflowError, ValueError):
        return None


def format_duration(start: Any, end: Any) -> str | None:
    """Short step label such as ``42s`` or ``3m5s``.

    Returns None for negative gaps, gaps over an hour (unreliable) and
    sub-second gaps.
    """
    diff_ms = elapsed_ms(start, end)
    if diff_ms is None:
        return None
    if diff_ms < 0 or diff_ms > _MAX_STEP_MS:
        return None
    if diff_ms < 1000:
        return None
    if diff_ms < 60_000:
        return f"{_round_half_up(diff_ms / 1000)}s"

    minutes = int(diff_ms // 60_000)
    seconds = _round_half_up((diff_ms % 60_000) / 1000)
    if seconds == 60:
        minutes, seconds = minutes + 1, 0
    return f"{minutes}m{seconds}s" if seconds > 0 else f"{minutes}m"


def format_session_duration(diff_ms: float) -> str:
    if diff_ms < 1000:
        return "<1s"
    if diff_ms < 60_000:
        return f"{_round_half_up(diff_ms / 1000)}s"

    total_minutes = int(diff_ms // 60_000)
    if total_minutes < 60:
        seconds = _round_half_up((diff_ms % 60_000) / 1000)
        return f"{total_minutes}m {seconds}s" if seconds > 0 else f"{total_minutes}m"

    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m" if minutes > 0 else f"{hours}h"


def format_session_start(value: datetime) -> str:
    """Local wall-clock rendering used in report session headers."""
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def format_time_ago(value: datetime, now: datetime | None = None) -> str:
    current = now or datetime.now(timezone.utc)
    moment = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    diff_sec = max(0, int((current - moment).total_seconds()))
    diff_min = diff_sec // 60
    diff_hour = diff_min // 60
    diff_day = diff_hour // 24

    if diff_sec < 60:
        return f"{diff_sec}s ago"
    if diff_min < 60:
        return f"{diff_min}m ago"
    if diff_hour < 24:
        return f"{diff_hour}h ago"
    if diff_day < 30:
        return f"{diff_day}d ago"
    if diff_day // 30 < 12:
        return f"{diff_day // 30}mo ago"
    return f"{diff_day // 365}y ago"


def report_timestamp(now: datetime | None = None) -> str:
    """Filesystem-safe ``YYYY-MM-DD-HH-MM-SS`` stamp (UTC)."""
    current = now or datetime.now(timezone.utc)
    if current.tzinfo:
        current = current.astimezone(timezone.utc)
    return current.strftime("%Y-%m-%d-%H-%M-%S")
