from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def now_ms() -> int:
    return int(utc_now().timestamp() * 1000)
