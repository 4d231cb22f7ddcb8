"""Tests for notion_api/fetcher.py: cursor loops, classified retry, chunking."""

from __future__ import annotations

import asyncio
import logging

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from conftest import RecordingMetricsHook, SleepRecorder
from notionsource.config import SourceConfig
from notionsource.errors import (
    NotionSourceNotFoundError,
    NotionSourceRateLimitError,
    NotionSourceRetryExhaustedError,
    NotionSourceServerError,
    NotionSourceTimeoutError,
    NotionSourceValidationError,
)
from notionsource.notion_api.fetcher import CursorPage, PaginatedFetcher

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def paged(pages: list[list[int]]):
    """A cursor-paginated listing serving *pages*; records every cursor asked."""
    seen: list[str | None] = []

    async def request(cursor: str | None) -> CursorPage[int]:
        seen.append(cursor)
        index = 0 if cursor is None else int(cursor)
        next_cursor = str(index + 1) if index + 1 < len(pages) else None
        return CursorPage(items=list(pages[index]), next_cursor=next_cursor)

    return request, seen


def flaky(failures: list[BaseException], result):
    """A call raising each of *failures* in turn, then returning *result*."""
    calls = {"count": 0}

    async def call():
        calls["count"] += 1
        if failures:
            raise failures.pop(0)
        return result

    return call, calls


def rate_limited(retry_after: float | None = 1.0) -> NotionSourceRateLimitError:
    return NotionSourceRateLimitError(
        "slow down", context={"status_code": 429, "retry_after_seconds": retry_after},
    )


class FakeClock:
    """Monotonic clock advanced by the paired sleep."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.now += delay


# ---------------------------------------------------------------------------
# CursorPage
# ---------------------------------------------------------------------------


class TestCursorPage:
    def test_from_response(self):
        page = CursorPage.from_response(
            {"results": [{"id": "a"}], "next_cursor": "c2", "has_more": True}
        )
        assert page.items == [{"id": "a"}]
        assert page.next_cursor == "c2"

    def test_has_more_false_ends_listing(self):
        page = CursorPage.from_response({"results": [], "next_cursor": "c2", "has_more": False})
        assert page.next_cursor is None

    def test_missing_fields(self):
        page = CursorPage.from_response({})
        assert page.items == []
        assert page.next_cursor is None


# ---------------------------------------------------------------------------
# fetch_all
# ---------------------------------------------------------------------------


class TestFetchAll:
    @pytest.mark.asyncio
    async def test_concatenates_pages_in_order(self, sleep):
        request, seen = paged([[1, 2], [3], [4, 5, 6]])
        fetcher = PaginatedFetcher(sleep=sleep)
        assert await fetcher.fetch_all(request) == [1, 2, 3, 4, 5, 6]
        assert seen == [None, "1", "2"]

    @pytest.mark.asyncio
    async def test_single_empty_page(self, sleep):
        request, seen = paged([[]])
        assert await PaginatedFetcher(sleep=sleep).fetch_all(request) == []
        assert seen == [None]

    @pytest.mark.asyncio
    async def test_retried_page_reuses_cursor(self, sleep):
        pages = [[1], [2]]
        seen: list[str | None] = []
        failures = [rate_limited(2.0)]

        async def request(cursor):
            seen.append(cursor)
            if cursor == "1" and failures:
                raise failures.pop()
            index = 0 if cursor is None else int(cursor)
            return CursorPage(items=pages[index], next_cursor="1" if index == 0 else None)

        result = await PaginatedFetcher(sleep=sleep).fetch_all(request)
        assert result == [1, 2]
        assert seen == [None, "1", "1"]
        assert sleep.delays == [2.0]

    @given(st.lists(st.lists(st.integers(), max_size=5), min_size=1, max_size=8))
    @settings(max_examples=50, deadline=None)
    def test_completeness(self, pages):
        request, seen = paged(pages)
        fetcher = PaginatedFetcher(sleep=SleepRecorder())
        result = asyncio.run(fetcher.fetch_all(request))
        assert result == [item for page in pages for item in page]
        assert len(seen) == len(pages)


# ---------------------------------------------------------------------------
# call_with_retry
# ---------------------------------------------------------------------------


class TestCallWithRetry:
    @pytest.mark.parametrize("k", [0, 1, 3, 7])
    @pytest.mark.asyncio
    async def test_rate_limits_converge(self, sleep, k):
        call, calls = flaky([rate_limited(4.0) for _ in range(k)], "ok")
        assert await PaginatedFetcher(sleep=sleep).call_with_retry(call) == "ok"
        assert calls["count"] == k + 1
        assert sleep.delays == [4.0] * k

    @pytest.mark.asyncio
    async def test_rate_limit_without_header_waits_a_minute(self, sleep):
        call, _ = flaky([rate_limited(None)], "ok")
        await PaginatedFetcher(sleep=sleep).call_with_retry(call)
        assert sleep.delays == [60.0]

    @pytest.mark.asyncio
    async def test_server_error_and_timeout_wait_30(self, sleep):
        call, _ = flaky(
            [
                NotionSourceServerError("down", context={"status_code": 502}),
                NotionSourceTimeoutError("slow"),
            ],
            {"ok": True},
        )
        assert await PaginatedFetcher(sleep=sleep).call_with_retry(call) == {"ok": True}
        assert sleep.delays == [30.0, 30.0]

    @pytest.mark.parametrize(
        "exc",
        [NotionSourceNotFoundError("gone"), NotionSourceValidationError("bad"), RuntimeError("x")],
    )
    @pytest.mark.asyncio
    async def test_fatal_errors_propagate_unchanged(self, sleep, exc):
        call, calls = flaky([exc], "never")
        with pytest.raises(type(exc)) as exc_info:
            await PaginatedFetcher(sleep=sleep).call_with_retry(call)
        assert exc_info.value is exc
        assert calls["count"] == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_unbounded_by_default(self, sleep):
        call, calls = flaky([rate_limited(0.0) for _ in range(50)], "ok")
        assert await PaginatedFetcher(sleep=sleep).call_with_retry(call) == "ok"
        assert calls["count"] == 51

    @pytest.mark.asyncio
    async def test_max_attempts_exhausted(self, sleep):
        call, calls = flaky([rate_limited(1.0) for _ in range(10)], "ok")
        fetcher = PaginatedFetcher(max_attempts=3, sleep=sleep)
        with pytest.raises(NotionSourceRetryExhaustedError) as exc_info:
            await fetcher.call_with_retry(call)
        assert calls["count"] == 3
        assert sleep.delays == [1.0, 1.0]
        assert exc_info.value.context["attempts"] == 3
        assert exc_info.value.context["last_error_code"] == "RATE_LIMITED"
        assert isinstance(exc_info.value.__cause__, NotionSourceRateLimitError)

    @pytest.mark.asyncio
    async def test_max_elapsed_exhausted(self):
        clock = FakeClock()
        call, calls = flaky(
            [NotionSourceServerError("down") for _ in range(10)], "ok",
        )
        fetcher = PaginatedFetcher(max_elapsed=50.0, sleep=clock.sleep, clock=clock)
        with pytest.raises(NotionSourceRetryExhaustedError):
            await fetcher.call_with_retry(call)
        # 0 + 30 fits the budget, 30 + 30 does not.
        assert calls["count"] == 2
        assert clock.now == 30.0

    @pytest.mark.asyncio
    async def test_fatal_error_not_wrapped_by_budget(self, sleep):
        call, _ = flaky([NotionSourceNotFoundError("gone")], "ok")
        with pytest.raises(NotionSourceNotFoundError):
            await PaginatedFetcher(max_attempts=1, sleep=sleep).call_with_retry(call)

    @pytest.mark.asyncio
    async def test_retry_is_logged_and_counted(self, sleep, caplog):
        metrics = RecordingMetricsHook()
        call, _ = flaky([rate_limited(5.0), NotionSourceServerError("down")], "ok")
        fetcher = PaginatedFetcher(sleep=sleep, metrics=metrics)
        with caplog.at_level(logging.WARNING, logger="notionsource"):
            await fetcher.call_with_retry(call)

        messages = [r.getMessage() for r in caplog.records]
        assert "API rate limit reached, retrying after 5 seconds" in messages
        assert "Server-side error, retrying after 30 seconds" in messages
        assert [m["tags"] for m in metrics.increments] == [
            {"reason": "rate_limited"},
            {"reason": "server_error"},
        ]

    def test_from_config(self):
        config = SourceConfig(token="t", retry_max_attempts=4, retry_max_elapsed=120.0)
        fetcher = PaginatedFetcher.from_config(config)
        assert fetcher._max_attempts == 4
        assert fetcher._max_elapsed == 120.0


# ---------------------------------------------------------------------------
# fetch_all_chunked
# ---------------------------------------------------------------------------


class TestFetchAllChunked:
    @pytest.mark.asyncio
    async def test_maps_in_order_across_pages(self, sleep):
        request, _ = paged([[1, 2, 3], [4, 5]])

        async def double(n: int) -> int:
            return n * 2

        fetcher = PaginatedFetcher(sleep=sleep)
        assert await fetcher.fetch_all_chunked(request, double, 2) == [2, 4, 6, 8, 10]

    @pytest.mark.asyncio
    async def test_failed_items_are_dropped(self, sleep, caplog):
        request, _ = paged([[{"id": "a"}, {"id": "b"}, {"id": "c"}]])

        async def mapper(item):
            if item["id"] == "b":
                raise NotionSourceNotFoundError("gone")
            return item["id"]

        with caplog.at_level(logging.WARNING, logger="notionsource"):
            result = await PaginatedFetcher(sleep=sleep).fetch_all_chunked(request, mapper)
        assert result == ["a", "c"]
        dropped = [r for r in caplog.records if "could not be fetched" in r.getMessage()]
        assert dropped[0].extra_fields["item_id"] == "b"
        assert dropped[0].extra_fields["error_code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_concurrency_bounded_by_chunk_size(self, sleep):
        request, _ = paged([list(range(10))])
        state = {"active": 0, "peak": 0}

        async def mapper(n):
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
            await asyncio.sleep(0)
            state["active"] -= 1
            return n

        result = await PaginatedFetcher(sleep=sleep).fetch_all_chunked(request, mapper, 3)
        assert result == list(range(10))
        assert state["peak"] == 3

    @pytest.mark.asyncio
    async def test_no_chunk_size_runs_whole_page(self, sleep):
        request, _ = paged([list(range(6))])
        state = {"active": 0, "peak": 0}

        async def mapper(n):
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
            await asyncio.sleep(0)
            state["active"] -= 1
            return n

        await PaginatedFetcher(sleep=sleep).fetch_all_chunked(request, mapper)
        assert state["peak"] == 6

    @pytest.mark.asyncio
    async def test_mapper_retries_do_not_block_siblings(self, sleep):
        request, _ = paged([[1, 2]])
        fetcher = PaginatedFetcher(sleep=sleep)
        failures = [rate_limited(3.0)]

        async def fetch_one():
            if failures:
                raise failures.pop()
            return 1

        async def mapper(n):
            if n == 1:
                return await fetcher.call_with_retry(fetch_one)
            return n

        assert await fetcher.fetch_all_chunked(request, mapper) == [1, 2]
        assert sleep.delays == [3.0]

    @pytest.mark.asyncio
    async def test_listing_error_propagates(self, sleep):
        async def request(cursor):
            raise NotionSourceNotFoundError("no such block")

        async def mapper(item):
            return item

        with pytest.raises(NotionSourceNotFoundError):
            await PaginatedFetcher(sleep=sleep).fetch_all_chunked(request, mapper)
