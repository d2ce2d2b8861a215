from __future__ import annotations

import enum
import ipaddress
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from tracker import rate_limit
from tracker.classifier import is_bot
from tracker.config import LOCAL_FALLBACK_ADDRESS
from tracker.fetchers.ipdata import UpstreamError
from tracker.models import VisitorRecord
from tracker.store import DuplicateKeyError, VisitorStore

logger = logging.getLogger(__name__)

# (address, api_key) -> enrichment payload
Lookup = Callable[[str, str], Awaitable[dict]]


class Outcome(enum.Enum):
    TRACKED = "tracked"
    BOT_FILTERED = "bot_filtered"
    RATE_LIMITED = "rate_limited"
    CONFIG_ERROR = "config_error"
    UPSTREAM_ERROR = "upstream_error"
    FAILED = "failed"

    @property
    def acknowledged(self) -> bool:
        """True for outcomes the caller sees as a plain success."""
        return self in (Outcome.TRACKED, Outcome.BOT_FILTERED)


class RateLimitExceeded(Exception):
    def __init__(self, elapsed_ms: float) -> None:
        super().__init__(f"{elapsed_ms:.0f}ms since last visit")
        self.elapsed_ms = elapsed_ms


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_address(address: str) -> str:
    """Map loopback callers (local testing) to a fixed public address."""
    try:
        if ipaddress.ip_address(address).is_loopback:
            return LOCAL_FALLBACK_ADDRESS
    except ValueError:
        pass
    return address


class VisitorTracker:
    """Classify, rate limit, enrich and count one page view.

    Bot filtering and the repeat-visit cooldown are optional stages. The
    enrichment lookup is only called for addresses that have no record yet.
    """

    def __init__(
        self,
        store: VisitorStore,
        lookup: Lookup,
        api_key: str = "",
        bot_filter_enabled: bool = True,
        rate_limit_enabled: bool = True,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.lookup = lookup
        self.api_key = api_key
        self.bot_filter_enabled = bot_filter_enabled
        self.rate_limit_enabled = rate_limit_enabled
        self._clock = clock

    async def handle(self, address: str, user_agent: Optional[str]) -> Outcome:
        """Run one tracking request through the pipeline. Never raises."""
        address = normalize_address(address)

        if self.bot_filter_enabled and is_bot(user_agent, address):
            logger.info("Bot detected and ignored: %s from %s", user_agent, address)
            return Outcome.BOT_FILTERED

        try:
            return await self._track(address, user_agent)
        except Exception:
            logger.exception("An error occurred while tracking visitor %s", address)
            return Outcome.FAILED

    async def _track(self, address: str, user_agent: Optional[str]) -> Outcome:
        if self.store.find_by_address(address) is not None:
            return self._record_repeat_visit(
                address, user_agent, self._clock(), enforce_cooldown=self.rate_limit_enabled,
            )

        if not self.api_key:
            logger.error("IPDATA_API_KEY is required to track new visitors")
            return Outcome.CONFIG_ERROR

        try:
            data = await self.lookup(address, self.api_key)
        except UpstreamError as exc:
            logger.error("Enrichment failed for %s: %s", address, exc)
            return Outcome.UPSTREAM_ERROR

        now = self._clock()
        record = VisitorRecord.from_enrichment(address, user_agent, data, now)
        try:
            self.store.create(record)
        except DuplicateKeyError:
            # Another request for the same address won the create race
            logger.info("Visitor [%s] created concurrently, counting as repeat visit", address)
            return self._record_repeat_visit(address, user_agent, now, enforce_cooldown=False)

        logger.info("New visitor [%s] from %s, %s.", address, record.geo.city, record.geo.country_name)
        return Outcome.TRACKED

    def _record_repeat_visit(
        self,
        address: str,
        user_agent: Optional[str],
        now: datetime,
        enforce_cooldown: bool,
    ) -> Outcome:
        def apply(record: VisitorRecord) -> None:
            if enforce_cooldown and not rate_limit.allow(record.last_visit, now):
                raise RateLimitExceeded(rate_limit.elapsed_ms(record.last_visit, now))
            record.visit_count += 1
            record.last_visit = max(record.last_visit, now)
            if user_agent != record.user_agent:
                record.user_agent = user_agent

        try:
            updated = self.store.update(address, apply)
        except RateLimitExceeded as exc:
            logger.info("Rate limited request from %s. Time since last: %dms", address, exc.elapsed_ms)
            return Outcome.RATE_LIMITED

        if updated is None:
            raise KeyError(f"visitor {address} disappeared during update")
        logger.info("Existing visitor [%s]. Count: %d", address, updated.visit_count)
        return Outcome.TRACKED
