# Overview: UTC helpers; the database stores naive UTC, the API speaks ISO-8601 with a trailing Z.

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: str | None) -> datetime | None:
    """
    Offline device timestamps to naive UTC.

    Offsets (including "Z") are converted; a timestamp without an offset is
    taken as UTC. Raises ValueError on malformed input.
    """
    if value is None or not value.strip():
        return None
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_utc_z(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"
