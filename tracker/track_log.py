from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

PAGE_SIZE = 15
MAX_ENTRIES = 5000


@dataclass
class TrackEvent:
    time: str         # ISO-8601 UTC
    outcome: str      # tracking Outcome value, e.g. "tracked"
    status: int       # HTTP status code returned
    duration_ms: int
    country: str      # country code of the visitor, "" if unknown


def record(path: str, event: TrackEvent) -> None:
    """Append one tracking event to the JSONL file. Rotates at MAX_ENTRIES."""
    p = Path(path)
    line = json.dumps(asdict(event)) + "\n"
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        if p.exists():
            lines = p.read_text(encoding="utf-8").splitlines()
            if len(lines) >= MAX_ENTRIES:
                lines = lines[-(MAX_ENTRIES - 1):]
                p.write_text("\n".join(lines) + "\n" + line, encoding="utf-8")
                return
        with p.open("a", encoding="utf-8") as f:
            f.write(line)
    except OSError:
        logger.exception("Failed to write track log to %s", path)


def load_page(
    path: str,
    page: int = 1,
    outcome: str = "",
) -> tuple[list[TrackEvent], int]:
    """Return (events, total_filtered) for the given page, newest first.

    Page is 1-based.
    """
    p = Path(path)
    if not p.exists():
        return [], 0
    try:
        lines = p.read_text(encoding="utf-8").splitlines()
    except OSError:
        logger.exception("Failed to read track log from %s", path)
        return [], 0

    valid = [l for l in lines if l.strip()]
    valid.reverse()  # newest first

    all_events: list[TrackEvent] = []
    for line in valid:
        try:
            d = json.loads(line)
            if outcome and d.get("outcome") != outcome:
                continue
            all_events.append(TrackEvent(
                time=d.get("time", ""),
                outcome=d.get("outcome", ""),
                status=int(d.get("status", 200)),
                duration_ms=int(d.get("duration_ms", 0)),
                country=d.get("country", ""),
            ))
        except (ValueError, TypeError, AttributeError):
            logger.debug("Skipping malformed track log line in %s: %r", path, line)
            continue

    total = len(all_events)
    start = (page - 1) * PAGE_SIZE
    return all_events[start: start + PAGE_SIZE], total
