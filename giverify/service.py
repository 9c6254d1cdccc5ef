"""Product verification facade: cache, single-flight queue and portal lookups."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

from .cache import CacheBackend, create_cache
from .classifier import PortalObservation, PortalProfile, primary_portal, secondary_portal, to_result
from .config import settings
from .driver import PlaywrightDriver
from .errors import ClassificationTimeout, ScrapeFailure
from .job_queue import QueueState, SingleFlightQueue
from .models import VerificationResult

logger = logging.getLogger(__name__)


class PortalDriver(Protocol):
    async def observe(self, product_id: str, profile: PortalProfile) -> PortalObservation: ...


class VerificationService:
    """Answers ``verify(product_id)`` from cache or by driving the portal.

    Lookups are queued and executed one at a time so that only a single
    browser is ever open. Only terminal classifications are cached; any
    failure reaches the caller as :class:`ScrapeFailure` and leaves the cache
    untouched so the next call retries.
    """

    def __init__(
        self,
        driver: Optional[PortalDriver] = None,
        cache: Optional[CacheBackend] = None,
        *,
        primary: Optional[PortalProfile] = None,
        secondary: Optional[PortalProfile] = None,
        secondary_enabled: Optional[bool] = None,
        secondary_retries: Optional[int] = None,
        secondary_backoff_seconds: Optional[float] = None,
    ) -> None:
        self._driver = driver or PlaywrightDriver()
        self._cache = cache if cache is not None else create_cache()
        self._queue: SingleFlightQueue[VerificationResult] = SingleFlightQueue(self._run_job)
        self.primary = primary or primary_portal()
        self.secondary = secondary or secondary_portal()
        self.secondary_enabled = (
            settings.secondary_portal_enabled if secondary_enabled is None else secondary_enabled
        )
        self.secondary_retries = settings.secondary_retries if secondary_retries is None else secondary_retries
        self.secondary_backoff_seconds = (
            settings.secondary_backoff_seconds if secondary_backoff_seconds is None else secondary_backoff_seconds
        )
        self.timeout_count = 0

    @property
    def queue_state(self) -> QueueState:
        return self._queue.state

    @property
    def pending(self) -> int:
        return self._queue.pending

    @property
    def cached(self) -> int:
        return self._cache.size()

    async def verify(self, product_id: str) -> VerificationResult:
        cached = self._cache.get(product_id)
        if cached is not None:
            logger.info("Cache HIT for product_id=%s", product_id)
            return VerificationResult.model_validate(cached)
        logger.info("Cache MISS for product_id=%s", product_id)
        return await self._queue.submit(product_id)

    async def aclose(self) -> None:
        await self._queue.close(ScrapeFailure)

    async def _run_job(self, product_id: str) -> VerificationResult:
        try:
            result = await self._lookup(product_id)
        except Exception as exc:
            logger.exception("Verification failed for product_id=%s", product_id)
            raise ScrapeFailure(product_id) from exc
        self._cache.set(product_id, result.model_dump())
        logger.info(
            "Cached product_id=%s invalid=%s source=%s cache_size=%s",
            product_id,
            result.invalid,
            result.source,
            self._cache.size(),
        )
        return result

    async def _scan(self, product_id: str, profile: PortalProfile) -> VerificationResult:
        observation = await self._driver.observe(product_id, profile)
        try:
            return to_result(product_id, observation, profile)
        except ClassificationTimeout:
            self.timeout_count += 1
            logger.warning(
                "Classification timeout on %s portal for product_id=%s (total=%s); check selectors",
                profile.name,
                product_id,
                self.timeout_count,
            )
            raise

    async def _lookup(self, product_id: str) -> VerificationResult:
        if not self.secondary_enabled:
            return await self._scan(product_id, self.primary)

        primary_result: Optional[VerificationResult] = None
        primary_error: Optional[Exception] = None
        try:
            primary_result = await self._scan(product_id, self.primary)
        except Exception as exc:
            primary_error = exc
            logger.warning("Primary portal failed for product_id=%s: %s", product_id, exc)
        else:
            if primary_result.has_data:
                return primary_result
            logger.info("Primary portal returned no data for product_id=%s, trying secondary", product_id)

        last_error: Optional[Exception] = None
        for attempt in range(1, self.secondary_retries + 1):
            try:
                secondary_result = await self._scan(product_id, self.secondary)
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "Secondary attempt %s/%s failed for product_id=%s: %s",
                    attempt,
                    self.secondary_retries,
                    product_id,
                    exc,
                )
                if attempt < self.secondary_retries:
                    await asyncio.sleep(self.secondary_backoff_seconds * attempt)
                continue
            if secondary_result.has_data or primary_result is None:
                return secondary_result
            return primary_result

        if primary_result is not None:
            logger.info("Secondary portal failed, keeping primary result for product_id=%s", product_id)
            return primary_result
        raise last_error or primary_error or ScrapeFailure(product_id)
