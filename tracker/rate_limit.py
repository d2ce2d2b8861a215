from __future__ import annotations

from datetime import datetime

from tracker.config import MIN_VISIT_INTERVAL_MS


def elapsed_ms(last_visit: datetime, now: datetime) -> float:
    return (now - last_visit).total_seconds() * 1000.0


def allow(last_visit: datetime, now: datetime, min_interval_ms: int = MIN_VISIT_INTERVAL_MS) -> bool:
    """Return False while the cooldown since last_visit is still running.

    Only meaningful for visitors that already have a record; a first visit
    is never rate limited.
    """
    return elapsed_ms(last_visit, now) >= min_interval_ms
