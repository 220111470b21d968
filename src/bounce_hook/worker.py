# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Delivery worker: claims due queue rows and posts them to subscribers.

Each tick:

1. Recovery sweep: ``delivering`` rows untouched for longer than the grace
   window go back to ``pending`` (their attempt never finished).
2. Claim up to ``items_per_iteration`` due rows.
3. Sign and POST them concurrently; every outcome becomes a state change:
   2xx -> ``delivered``; anything else -> retry with capped exponential
   backoff, or ``failed_permanent`` once ``max_retries`` attempts are used.

A failing endpoint never stops the loop. Store errors abort the current
tick only; the next tick starts over from the store.
"""

from __future__ import annotations

import asyncio
import signal
import time
from collections.abc import Callable

import aiohttp

from . import __version__
from .config import HookConfig
from .errors import DeliveryError, StoreError
from .hook_db import BounceHookDb
from .logger import get_logger
from .metrics import HookMetrics
from .models import QueueItem
from .signing import sign

logger = get_logger("worker")

USER_AGENT = f"bounce-hook/{__version__}"
BASE_DELAY_SECONDS = 1
MAX_ERROR_BODY = 200


def compute_backoff(attempt_count: int, max_delay_seconds: int) -> int:
    """Delay before the next attempt: ``min(1 * 2**attempt_count, max_delay_seconds)``."""
    # Cap the exponent so huge attempt counts do not build huge integers
    exponent = min(attempt_count, 62)
    return min(BASE_DELAY_SECONDS * 2**exponent, max_delay_seconds)


class DeliveryWorker:
    """Periodic webhook delivery loop.

    Args:
        db: Connected store.
        config: Worker tunables.
        metrics: Optional Prometheus collector.
        clock: Returns the current Unix time; injectable for tests.
    """

    def __init__(
        self,
        db: BounceHookDb,
        config: HookConfig,
        metrics: HookMetrics | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.db = db
        self.config = config
        self.metrics = metrics
        self._clock = clock
        self._stop = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._session: aiohttp.ClientSession | None = None

    def _now(self) -> int:
        return int(self._clock())

    # ----------------------------------------------------------------- lifecycle
    async def start(self) -> None:
        """Run the loop in a background task."""
        self._stop.clear()
        self._task = asyncio.create_task(self.run_forever(), name="webhook-delivery-loop")

    def request_stop(self) -> None:
        """Ask the loop to exit after the current tick (signal-handler safe)."""
        self._stop.set()

    async def stop(self) -> None:
        """Stop the loop after the current tick and release the HTTP session."""
        self.request_stop()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        await self.close()

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def run_forever(self) -> None:
        logger.info(
            "Worker started (interval=%ss, batch=%s, max_retries=%s)",
            self.config.interval_seconds,
            self.config.items_per_iteration,
            self.config.max_retries,
        )
        while not self._stop.is_set():
            try:
                await self.run_cycle()
            except StoreError:
                logger.exception("Store error, retrying on next tick")
            except Exception as exc:  # pragma: no cover - the loop must survive
                logger.exception("Unhandled error in delivery loop: %s", exc)
            await self._wait(self.config.interval_seconds)
        logger.info("Worker stopped")

    async def _wait(self, timeout: float) -> None:
        """Sleep until the next tick or until a stop is requested."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass

    # --------------------------------------------------------------- one tick
    async def run_cycle(self) -> int:
        """Execute one tick. Returns the number of rows claimed.

        Raises:
            StoreError: The recovery sweep or the claim failed.
        """
        now = self._now()
        recovered = await self.db.recover_stale(now - self.config.recovery_grace_seconds, now)
        if recovered:
            logger.warning("Recovered %d stale delivering row(s)", recovered)
            if self.metrics:
                self.metrics.recovered.inc(recovered)

        items = await self.db.claim_due(self.config.items_per_iteration, now)
        if items:
            logger.debug("Claimed %d queue row(s)", len(items))
            session = self._get_session()
            results = await asyncio.gather(
                *(self._deliver(session, item) for item in items), return_exceptions=True
            )
            for item, result in zip(items, results, strict=True):
                if isinstance(result, BaseException):
                    # Row stays delivering and is picked up again by the recovery sweep
                    logger.error("Could not record outcome of queue row %s: %s", item.id, result)

        if self.metrics:
            self.metrics.set_queue_counts(await self.db.count_by_status())
        return len(items)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.api_timeout_seconds),
                headers={"User-Agent": USER_AGENT},
            )
        return self._session

    async def _post(self, session: aiohttp.ClientSession, item: QueueItem) -> None:
        """POST one signed payload. Raises DeliveryError unless the answer is 2xx."""
        timestamp = self._now()
        body = item.payload.encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "X-Timestamp": str(timestamp),
            "X-Signature": sign(item.secret_token, timestamp, body),
            "User-Agent": USER_AGENT,
        }
        try:
            async with session.post(
                item.url,
                data=body,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.config.api_timeout_seconds),
            ) as resp:
                if not 200 <= resp.status < 300:
                    text = (await resp.text(errors="replace"))[:MAX_ERROR_BODY]
                    raise DeliveryError(f"HTTP {resp.status}: {text}".strip(), status=resp.status)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise DeliveryError(f"{type(exc).__name__}: {exc}".rstrip(": ")) from exc

    async def _deliver(self, session: aiohttp.ClientSession, item: QueueItem) -> None:
        try:
            await self._post(session, item)
        except DeliveryError as exc:
            await self._record_failure(item, str(exc))
            return

        await self.db.mark_delivered(item.id, self._now())
        logger.info("Delivered queue row %s to %s", item.id, item.url)
        if self.metrics:
            self.metrics.delivered.inc()

    async def _record_failure(self, item: QueueItem, error: str) -> None:
        now = self._now()
        attempts = item.attempt_count + 1
        if attempts >= self.config.max_retries:
            await self.db.mark_permanent_failure(item.id, error, now)
            logger.error(
                "Giving up on queue row %s after %d attempt(s): %s", item.id, attempts, error
            )
            if self.metrics:
                self.metrics.failed.inc()
            return

        delay = compute_backoff(item.attempt_count, self.config.max_delay_seconds)
        await self.db.mark_retry(item.id, now + delay, error, now)
        logger.warning(
            "Delivery of queue row %s failed (attempt %d/%d), retrying in %ss: %s",
            item.id,
            attempts,
            self.config.max_retries,
            delay,
            error,
        )
        if self.metrics:
            self.metrics.retried.inc()


async def run_worker(config: HookConfig, metrics: HookMetrics | None = None) -> None:
    """CLI entry point: run the worker until SIGINT or SIGTERM."""
    db = BounceHookDb(config.database_url)
    await db.connect()
    worker = DeliveryWorker(db, config, metrics)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, worker.request_stop)
        except NotImplementedError:  # pragma: no cover - Windows
            pass

    try:
        await worker.run_forever()
    finally:
        await worker.close()
        await db.close()


__all__ = ["BASE_DELAY_SECONDS", "DeliveryWorker", "USER_AGENT", "compute_backoff", "run_worker"]
