"""Paginated fetch-with-retry engine.

:class:`PaginatedFetcher` turns a cursor-based listing operation into a
complete, order-preserving list:

* :meth:`PaginatedFetcher.fetch_all` walks the cursor chain;
* :meth:`PaginatedFetcher.fetch_all_chunked` additionally enriches the
  items of every result page with an async mapper, at most ``chunk_size``
  at a time, dropping (and logging) items whose enrichment fails;
* :meth:`PaginatedFetcher.call_with_retry` wraps a single request and
  retries transient failures as classified by
  :func:`~notionsource.notion_api.retries.classify_error`.

Retries are unbounded unless ``max_attempts`` or ``max_elapsed`` is given.
A backoff sleep suspends only the coroutine that hit the failure; sibling
requests of the same batch proceed independently.

Usage::

    fetcher = PaginatedFetcher()

    async def request(cursor):
        response = await blocks.list_children(block_id, cursor)
        return CursorPage.from_response(response)

    children = await fetcher.fetch_all(request)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Generic, TypeVar

from notionsource.config import SourceConfig
from notionsource.errors import NotionSourceError, NotionSourceRetryExhaustedError
from notionsource.observability import MetricsHook, get_logger, resolve_metrics
from notionsource.utils.chunk import chunked

from .retries import classify_error

log = get_logger("notionsource.fetcher")

T = TypeVar("T")
U = TypeVar("U")


@dataclass
class CursorPage(Generic[T]):
    """One page of a cursor-paginated listing.

    Attributes
    ----------
    items:
        Items of this page, in server order.
    next_cursor:
        Cursor of the next page, ``None`` on the last page.
    """

    items: list[T] = field(default_factory=list)
    next_cursor: str | None = None

    @classmethod
    def from_response(cls, response: dict[str, Any]) -> CursorPage[dict[str, Any]]:
        """Build a page from a raw Notion list response."""
        next_cursor = response.get("next_cursor")
        if not response.get("has_more", next_cursor is not None):
            next_cursor = None
        return cls(items=list(response.get("results", [])), next_cursor=next_cursor)


class PaginatedFetcher:
    """Cursor loop with classified, per-request retry.

    Parameters
    ----------
    max_attempts:
        Optional cap on attempts per request.  ``None`` retries forever.
    max_elapsed:
        Optional cap, in seconds, on the time one request may spend in
        retries (sleeps included).
    sleep:
        Coroutine function used for backoff sleeps.
    clock:
        Monotonic clock in seconds.
    metrics:
        Optional metrics hook.
    """

    def __init__(
        self,
        *,
        max_attempts: int | None = None,
        max_elapsed: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        metrics: MetricsHook | None = None,
    ) -> None:
        self._max_attempts = max_attempts
        self._max_elapsed = max_elapsed
        self._sleep = sleep
        self._clock = clock
        self._metrics = resolve_metrics(metrics)

    @classmethod
    def from_config(cls, config: SourceConfig, **kwargs: Any) -> PaginatedFetcher:
        """Build a fetcher using the retry budget of *config*."""
        return cls(
            max_attempts=config.retry_max_attempts,
            max_elapsed=config.retry_max_elapsed,
            metrics=config.metrics,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Single request
    # ------------------------------------------------------------------

    async def call_with_retry(self, call: Callable[[], Awaitable[T]]) -> T:
        """Await ``call()``, retrying transient failures.

        Non-retryable exceptions propagate unchanged.

        Raises
        ------
        NotionSourceRetryExhaustedError
            Only when a retry budget is configured and exceeded.
        """
        started = self._clock()
        attempt = 0

        while True:
            attempt += 1
            try:
                return await call()
            except Exception as exc:
                decision = classify_error(exc)
                if decision is None:
                    raise

                elapsed = self._clock() - started
                if self._budget_exceeded(attempt, elapsed, decision.delay):
                    raise NotionSourceRetryExhaustedError(
                        message=(
                            f"Gave up after {attempt} attempts "
                            f"({elapsed:.1f}s): {exc}"
                        ),
                        context={
                            "attempts": attempt,
                            "elapsed_seconds": elapsed,
                            "last_error_code": getattr(exc, "code", type(exc).__name__),
                        },
                        cause=exc,
                    ) from exc

                log.warning(
                    _RETRY_MESSAGES[decision.reason].format(delay=decision.delay),
                    extra={
                        "extra_fields": {
                            "op": "fetch",
                            "reason": decision.reason,
                            "delay": decision.delay,
                            "attempt": attempt,
                        }
                    },
                )
                self._metrics.increment(
                    "notionsource.retries_total",
                    tags={"reason": decision.reason},
                )
                await self._sleep(decision.delay)

    def _budget_exceeded(self, attempt: int, elapsed: float, delay: float) -> bool:
        if self._max_attempts is not None and attempt >= self._max_attempts:
            return True
        return self._max_elapsed is not None and elapsed + delay > self._max_elapsed

    # ------------------------------------------------------------------
    # Cursor loops
    # ------------------------------------------------------------------

    async def fetch_all(
        self,
        request: Callable[[str | None], Awaitable[CursorPage[T]]],
    ) -> list[T]:
        """Collect every item of a cursor-paginated listing, in order.

        Parameters
        ----------
        request:
            ``request(cursor)`` returns one :class:`CursorPage`.  It is first
            called with ``None``, then with each returned ``next_cursor``
            until that is ``None``.  A retried request reuses its cursor.
        """
        items: list[T] = []
        cursor: str | None = None

        while True:
            page = await self.call_with_retry(partial(request, cursor))
            items.extend(page.items)
            cursor = page.next_cursor
            if cursor is None:
                return items

    async def fetch_all_chunked(
        self,
        request: Callable[[str | None], Awaitable[CursorPage[T]]],
        mapper: Callable[[T], Awaitable[U]],
        chunk_size: int | None = None,
    ) -> list[U]:
        """Like :meth:`fetch_all`, enriching each item with *mapper*.

        The items of one result page are split into batches of at most
        *chunk_size*; the mapper calls of a batch run concurrently and the
        next batch starts once they have all settled.  Items whose mapper
        raised are logged and left out; the others keep their order.
        """
        results: list[U] = []
        cursor: str | None = None

        while True:
            page = await self.call_with_retry(partial(request, cursor))
            for batch in chunked(page.items, chunk_size):
                results.extend(await self._map_batch(batch, mapper))
            cursor = page.next_cursor
            if cursor is None:
                return results

    async def _map_batch(
        self,
        batch: list[T],
        mapper: Callable[[T], Awaitable[U]],
    ) -> list[U]:
        settled = await asyncio.gather(
            *(mapper(item) for item in batch),
            return_exceptions=True,
        )

        mapped: list[U] = []
        for item, outcome in zip(batch, settled):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                log.warning(
                    "Dropping item whose content could not be fetched",
                    extra={
                        "extra_fields": {
                            "op": "fetch",
                            "item_id": item.get("id") if isinstance(item, dict) else None,
                            "error": str(outcome),
                            "error_code": outcome.code
                            if isinstance(outcome, NotionSourceError)
                            else type(outcome).__name__,
                        }
                    },
                )
                continue
            mapped.append(outcome)
        return mapped


_RETRY_MESSAGES: dict[str, str] = {
    "rate_limited": "API rate limit reached, retrying after {delay:g} seconds",
    "server_error": "Server-side error, retrying after {delay:g} seconds",
    "timeout": "Request timed out, retrying after {delay:g} seconds",
}
