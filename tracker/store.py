from __future__ import annotations

import json
import logging
import threading
from collections import Counter
from pathlib import Path
from typing import Callable, Optional

from tracker.models import VisitorRecord

logger = logging.getLogger(__name__)


class DuplicateKeyError(Exception):
    """A record for this address already exists."""

    def __init__(self, address: str) -> None:
        super().__init__(f"visitor {address} already exists")
        self.address = address


class VisitorStore:
    """Thread-safe store of visitor records, keyed by address.

    Records handed out are copies; mutations go through create/save/update.
    When a log path is set, every mutation appends the changed record to a
    JSONL change log.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self._lock = threading.Lock()
        self._visitors: dict[str, VisitorRecord] = {}
        self._path = path

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._visitors)

    @property
    def total_visits(self) -> int:
        with self._lock:
            return sum(v.visit_count for v in self._visitors.values())

    def find_by_address(self, address: str) -> Optional[VisitorRecord]:
        with self._lock:
            existing = self._visitors.get(address)
            return existing.copy() if existing is not None else None

    def create(self, record: VisitorRecord) -> VisitorRecord:
        """Insert a new record. Raises DuplicateKeyError if the address is taken."""
        with self._lock:
            if record.address in self._visitors:
                raise DuplicateKeyError(record.address)
            self._visitors[record.address] = record.copy()
            self._append(record)
        return record

    def save(self, record: VisitorRecord) -> None:
        """Persist mutations of an existing record.

        Counters never move backwards: a stale copy cannot lower visit_count
        or last_visit of what is already stored.
        """
        with self._lock:
            existing = self._visitors.get(record.address)
            if existing is None:
                raise KeyError(record.address)
            stored = record.copy()
            stored.first_visit = existing.first_visit
            stored.visit_count = max(stored.visit_count, existing.visit_count)
            stored.last_visit = max(stored.last_visit, existing.last_visit)
            self._visitors[record.address] = stored
            self._append(stored)

    def update(
        self, address: str, mutate: Callable[[VisitorRecord], None]
    ) -> Optional[VisitorRecord]:
        """Atomic read-modify-write of one record.

        ``mutate`` runs under the store lock on a working copy; if it raises,
        nothing is written and the exception propagates. Returns the updated
        record, or None when the address is unknown.
        """
        with self._lock:
            existing = self._visitors.get(address)
            if existing is None:
                return None
            working = existing.copy()
            mutate(working)
            self._visitors[address] = working
            self._append(working)
            return working.copy()

    def summary(self, top: int = 20) -> dict:
        """Visitor and visit totals plus the busiest countries by visitor."""
        with self._lock:
            countries: Counter[str] = Counter(
                v.geo.country_code or "Unknown" for v in self._visitors.values()
            )
            return {
                "visitors": len(self._visitors),
                "visits": sum(v.visit_count for v in self._visitors.values()),
                "by_country": dict(countries.most_common(top)),
            }

    def load(self) -> None:
        """Replay the change log, if there is one.

        Each line is the full document of one visitor after a mutation; the
        last line for an address wins. The log is compacted to one line per
        visitor afterwards.
        """
        if not self._path:
            return
        p = Path(self._path)
        if not p.exists():
            logger.info("No visitor log at %s, starting empty", self._path)
            return
        loaded: dict[str, VisitorRecord] = {}
        skipped = 0
        for line in p.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                record = VisitorRecord.from_document(json.loads(line))
            except (KeyError, TypeError, ValueError, AttributeError):
                skipped += 1
                continue
            loaded[record.address] = record
        if skipped:
            logger.warning("Skipped %d malformed lines in %s", skipped, self._path)
        with self._lock:
            self._visitors = loaded
            self._compact()
        logger.info("Loaded %d visitors from %s", len(loaded), self._path)

    def _append(self, record: VisitorRecord) -> None:
        # Caller holds self._lock
        if not self._path:
            return
        p = Path(self._path)
        try:
            p.parent.mkdir(parents=True, exist_ok=True)
            with p.open("a", encoding="utf-8") as f:
                f.write(json.dumps(record.to_document()) + "\n")
        except OSError:
            logger.exception("Failed to append visitor %s to %s", record.address, self._path)

    def _compact(self) -> None:
        # Caller holds self._lock
        p = Path(self._path)
        try:
            tmp = p.with_name(p.name + ".tmp")
            tmp.write_text(
                "".join(json.dumps(v.to_document()) + "\n" for v in self._visitors.values()),
                encoding="utf-8",
            )
            tmp.replace(p)
        except OSError:
            logger.exception("Failed to compact visitor log %s", self._path)
