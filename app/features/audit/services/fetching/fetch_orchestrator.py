"""
Bounded concurrent page fetching.

A fixed pool of workers pulls URLs from a shared queue. Each fetch has its
own timeout and its own outcome, so one slow or broken page never blocks
or aborts the batch. Network-level failures get one retry after a short
backoff; an HTTP error status is final. An optional audit-level deadline
stops scheduling: URLs not started by then are recorded as abandoned.

Every distinct input URL ends up in exactly one of ``succeeded`` or
``failed``.
"""

import asyncio
import logging
from typing import Iterable, List, Optional, Union

from app.features.audit.schemas.fetch import FetchBatchResult, FetchedPage, FetchFailure
from app.features.audit.services.fetching.http_fetcher import HtmlFetcher
from app.platform.config import settings
from app.platform.events import FETCH_ABANDONED, FETCH_FAILED, emit_event, engine_logger
from app.platform.exceptions import InvalidInput, TransientFetchFailure

MAX_ATTEMPTS = 2
ABANDONED_REASON = "audit deadline exceeded"


class FetchOrchestrator:
    def __init__(
        self,
        fetcher: HtmlFetcher,
        retry_backoff: float = settings.AUDIT_RETRY_BACKOFF,
        logger: Optional[logging.Logger] = None,
    ):
        self.fetcher = fetcher
        self.retry_backoff = retry_backoff
        self.logger = engine_logger(__name__, logger)

    async def fetch_all(
        self,
        urls: Iterable[str],
        max_concurrent: int = settings.AUDIT_MAX_CONCURRENT,
        per_request_timeout: float = settings.AUDIT_REQUEST_TIMEOUT,
        audit_timeout: Optional[float] = None,
    ) -> FetchBatchResult:
        if max_concurrent < 1:
            raise InvalidInput(f"max_concurrent must be at least 1, got {max_concurrent}")
        if per_request_timeout <= 0:
            raise InvalidInput(f"per_request_timeout must be positive, got {per_request_timeout}")
        if audit_timeout is not None and audit_timeout <= 0:
            raise InvalidInput(f"audit_timeout must be positive, got {audit_timeout}")

        unique_urls = list(dict.fromkeys(urls))
        loop = asyncio.get_running_loop()
        deadline = loop.time() + audit_timeout if audit_timeout is not None else None

        queue: asyncio.Queue = asyncio.Queue()
        for url in unique_urls:
            queue.put_nowait(url)

        # Shared accumulator; workers only touch it while holding the lock
        result = FetchBatchResult()
        abandoned: List[str] = []
        lock = asyncio.Lock()

        async def record(outcome: Union[FetchedPage, FetchFailure]) -> None:
            async with lock:
                if isinstance(outcome, FetchedPage):
                    result.succeeded.append(outcome)
                else:
                    result.failed.append(outcome)
                    if outcome.abandoned:
                        abandoned.append(outcome.url)

        async def worker() -> None:
            while True:
                try:
                    url = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                if deadline is not None and loop.time() >= deadline:
                    await record(FetchFailure(url=url, reason=ABANDONED_REASON, attempts=0, abandoned=True))
                    continue
                await record(await self._fetch_one(url, per_request_timeout, deadline))

        workers = [asyncio.create_task(worker()) for _ in range(min(max_concurrent, len(unique_urls)))]
        await asyncio.gather(*workers)

        if abandoned:
            emit_event(
                self.logger,
                FETCH_ABANDONED,
                f"Audit deadline reached, {len(abandoned)} page(s) abandoned",
                urls=list(abandoned),
            )
        return result

    async def _fetch_one(
        self,
        url: str,
        per_request_timeout: float,
        deadline: Optional[float],
    ) -> Union[FetchedPage, FetchFailure]:
        loop = asyncio.get_running_loop()
        attempts = 0
        reason = ""

        while attempts < MAX_ATTEMPTS:
            budget = per_request_timeout
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    return self._failure(url, ABANDONED_REASON, attempts, abandoned=True)
                budget = min(budget, remaining)

            attempts += 1
            try:
                response = await asyncio.wait_for(self.fetcher.fetch(url, budget), timeout=budget)
            except (TransientFetchFailure, asyncio.TimeoutError) as e:
                reason = str(e) or f"timeout after {budget}s"
                if attempts < MAX_ATTEMPTS:
                    backoff = self.retry_backoff
                    if deadline is not None:
                        backoff = min(backoff, max(deadline - loop.time(), 0.0))
                    await asyncio.sleep(backoff)
                continue
            except Exception as e:
                # Anything else is specific to this page and final for it
                return self._failure(url, f"{type(e).__name__}: {e}", attempts)

            if not response.ok:
                return self._failure(url, f"HTTP {response.status}", attempts)
            return FetchedPage(url=url, html=response.body)

        return self._failure(url, reason, attempts)

    def _failure(self, url: str, reason: str, attempts: int, abandoned: bool = False) -> FetchFailure:
        if not abandoned:
            emit_event(
                self.logger,
                FETCH_FAILED,
                f"Fetch failed for {url}: {reason}",
                level=logging.INFO,
                url=url,
                reason=reason,
                attempts=attempts,
            )
        return FetchFailure(url=url, reason=reason, attempts=attempts, abandoned=abandoned)
