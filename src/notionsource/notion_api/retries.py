"""Retry classification for failed Notion API calls.

:func:`classify_error` is a pure function used by the paginated fetcher to
decide what to do with an exception raised by a request:

* rate limited -- wait the server's ``Retry-After`` (default 60 s);
* server side (5xx) -- wait 30 s;
* request timeout -- wait 30 s;
* anything else -- not retryable, the caller re-raises it.

The delays are fixed per category; there is no exponential growth and no
jitter, because Notion's guidance for both throttling and outages is to
come back after a fixed interval.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import httpx

from notionsource.errors import (
    NotionSourceRateLimitError,
    NotionSourceServerError,
    NotionSourceTimeoutError,
)

DEFAULT_RATE_LIMIT_DELAY: float = 60.0
"""Seconds to wait after a 429 without a usable ``Retry-After`` header."""

SERVER_ERROR_DELAY: float = 30.0
"""Seconds to wait after a 5xx response."""

TIMEOUT_DELAY: float = 30.0
"""Seconds to wait after a request timeout."""


@dataclass(frozen=True)
class RetryDecision:
    """How to retry a transient failure.

    Attributes
    ----------
    reason:
        ``"rate_limited"``, ``"server_error"`` or ``"timeout"``.
    delay:
        Seconds to sleep before reissuing the same request.
    """

    reason: str
    delay: float


def classify_error(exc: BaseException) -> RetryDecision | None:
    """Classify *exc* as a transient failure, or return ``None``.

    Parameters
    ----------
    exc:
        The exception raised by a request.  Both the typed errors raised by
        :class:`~notionsource.notion_api.transport.AsyncNotionTransport` and
        raw ``httpx.TimeoutException`` instances are understood.

    Returns
    -------
    RetryDecision | None
        The retry plan, or ``None`` when the error is not retryable.
    """
    if isinstance(exc, NotionSourceRateLimitError):
        retry_after = exc.retry_after
        delay = DEFAULT_RATE_LIMIT_DELAY if retry_after is None else retry_after
        return RetryDecision(reason="rate_limited", delay=delay)

    if isinstance(exc, NotionSourceServerError):
        return RetryDecision(reason="server_error", delay=SERVER_ERROR_DELAY)

    if isinstance(exc, (NotionSourceTimeoutError, httpx.TimeoutException)):
        return RetryDecision(reason="timeout", delay=TIMEOUT_DELAY)

    return None


def parse_retry_after(raw: str | None) -> float | None:
    """Parse a ``Retry-After`` header value in seconds.

    Returns ``None`` for a missing, malformed or negative value.  HTTP-date
    values are not produced by Notion and are treated as malformed.
    """
    if raw is None:
        return None
    try:
        value = float(raw)
    except (ValueError, TypeError):
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return value
