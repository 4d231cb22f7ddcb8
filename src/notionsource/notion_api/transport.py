"""Async HTTP transport for the Notion API.

The transport performs exactly one attempt per call:

1. Send the HTTP request with auth and version headers.
2. On ``2xx`` -- return the parsed JSON response.
3. On ``429`` -- raise :class:`NotionSourceRateLimitError` carrying the
   ``Retry-After`` value.
4. On ``5xx`` -- raise :class:`NotionSourceServerError`.
5. On a timeout -- raise :class:`NotionSourceTimeoutError`.
6. On other ``4xx`` or network failures -- raise the matching permanent
   error.

Retrying is the job of :class:`~notionsource.notion_api.fetcher.PaginatedFetcher`,
which classifies these errors and decides whether and when to re-issue the
same request.
"""

from __future__ import annotations

import time
from typing import Any

import httpx

from notionsource.config import SourceConfig
from notionsource.errors import (
    NotionSourceAuthError,
    NotionSourceNetworkError,
    NotionSourceNotFoundError,
    NotionSourcePermissionError,
    NotionSourceRateLimitError,
    NotionSourceServerError,
    NotionSourceTimeoutError,
    NotionSourceValidationError,
)
from notionsource.observability import get_logger, resolve_metrics

from .retries import parse_retry_after

log = get_logger("notionsource.transport")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _raise_for_status(response: httpx.Response, method: str, path: str) -> None:
    """Raise the :class:`NotionSourceError` subclass matching a non-2xx status."""
    status = response.status_code
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    notion_message = body.get("message", response.text[:500])
    notion_code = body.get("code", "")

    if status == 429:
        retry_after = parse_retry_after(response.headers.get("retry-after"))
        raise NotionSourceRateLimitError(
            message=f"Rate limited on {method} {path}: {notion_message}",
            context={"status_code": status, "retry_after_seconds": retry_after},
        )
    if status >= 500:
        raise NotionSourceServerError(
            message=f"Server error {status} on {method} {path}: {notion_message}",
            context={"status_code": status, "notion_code": notion_code},
        )
    if status == 401:
        raise NotionSourceAuthError(
            message=f"Authentication failed on {method} {path}: {notion_message}",
            context={"status_code": status, "notion_code": notion_code},
        )
    if status == 403:
        raise NotionSourcePermissionError(
            message=f"Permission denied on {method} {path}: {notion_message}",
            context={
                "status_code": status,
                "notion_code": notion_code,
                "operation": f"{method} {path}",
            },
        )
    if status == 404:
        raise NotionSourceNotFoundError(
            message=f"Resource not found on {method} {path}: {notion_message}",
            context={"status_code": status, "notion_code": notion_code, "path": path},
        )
    if status == 408:
        raise NotionSourceTimeoutError(
            message=f"Request timeout on {method} {path}: {notion_message}",
            context={"method": method, "path": path, "status_code": status},
        )

    raise NotionSourceValidationError(
        message=f"Client error {status} on {method} {path}: {notion_message}",
        context={"status_code": status, "notion_code": notion_code, "body": body},
    )


# ---------------------------------------------------------------------------
# Async transport
# ---------------------------------------------------------------------------

class AsyncNotionTransport:
    """Asynchronous HTTP transport with auth headers and typed errors.

    Parameters
    ----------
    config:
        A :class:`SourceConfig` controlling base URL, version and timeout.
    client:
        Optional pre-built ``httpx.AsyncClient``.  The transport closes it on
        :meth:`close` either way.
    """

    def __init__(
        self,
        config: SourceConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._metrics = resolve_metrics(config.metrics)
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url,
            headers={
                "Authorization": f"Bearer {config.token}",
                "Notion-Version": config.notion_version,
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(config.timeout_seconds),
        )

    # -- public API --------------------------------------------------------

    async def request(self, method: str, path: str, **kwargs: Any) -> dict:
        """Execute one HTTP request against the Notion API.

        Parameters
        ----------
        method:
            HTTP method (``GET``, ``POST``, ``PATCH``).
        path:
            API path relative to ``base_url`` (e.g. ``/pages/abc``).
        **kwargs:
            Forwarded to :meth:`httpx.AsyncClient.request`.

        Returns
        -------
        dict
            Parsed JSON response body (``{}`` for an empty body).

        Raises
        ------
        NotionSourceRateLimitError
            On 429 responses.
        NotionSourceServerError
            On 5xx responses.
        NotionSourceTimeoutError
            When the request times out.
        NotionSourceAuthError / NotionSourcePermissionError /
        NotionSourceNotFoundError / NotionSourceValidationError
            On the corresponding 4xx responses.
        NotionSourceNetworkError
            On other transport-level failures.
        """
        t0 = time.monotonic()
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            self._metrics.increment(
                "notionsource.requests_total",
                tags={"method": method, "status": "timeout"},
            )
            raise NotionSourceTimeoutError(
                message=f"Request timed out on {method} {path}: {exc}",
                context={"method": method, "path": path},
                cause=exc,
            ) from exc
        except httpx.TransportError as exc:
            self._metrics.increment(
                "notionsource.requests_total",
                tags={"method": method, "status": "error"},
            )
            raise NotionSourceNetworkError(
                message=f"Network error on {method} {path}: {exc}",
                context={"method": method, "path": path},
                cause=exc,
            ) from exc

        elapsed_ms = (time.monotonic() - t0) * 1000
        status = str(response.status_code)
        self._metrics.increment(
            "notionsource.requests_total",
            tags={"method": method, "status": status},
        )
        self._metrics.timing(
            "notionsource.request_duration_ms",
            elapsed_ms,
            tags={"method": method, "status": status},
        )
        log.debug(
            "Notion API request",
            extra={
                "extra_fields": {
                    "op": "request",
                    "method": method,
                    "path": path,
                    "status_code": response.status_code,
                    "elapsed_ms": round(elapsed_ms, 1),
                }
            },
        )

        if 200 <= response.status_code < 300:
            if response.status_code == 204 or not response.content:
                return {}
            result: dict = response.json()
            return result

        _raise_for_status(response, method, path)
        return {}  # unreachable: _raise_for_status always raises

    async def close(self) -> None:
        """Close the underlying async HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> AsyncNotionTransport:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
