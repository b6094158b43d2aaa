"""Shared time helpers."""

from __future__ import annotations

from datetime import datetime, timezone


def utc_isoformat() -> str:
    """Return the current UTC timestamp as an ISO string with 'Z' suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def from_epoch_millis(value: int) -> str:
    """Render an RDS ``LastWritten`` value (epoch milliseconds) as ISO UTC."""
    moment = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    return moment.isoformat().replace("+00:00", "Z")
