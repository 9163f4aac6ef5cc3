from __future__ import annotations

import datetime as dt


def _now_utc() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def date_and_time(ts: dt.datetime | None = None) -> str:
    """Format a timestamp for error reports, e.g. ``2026-01-30 12:04:05 UTC``."""

    ts = ts or _now_utc()
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=dt.timezone.utc)
    return ts.astimezone(dt.timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
