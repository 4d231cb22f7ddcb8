"""notionsource.notion_api -- Notion API transport and endpoint wrappers.

This sub-package provides:

* :mod:`.retries` -- Failure classification and retry delays.
* :mod:`.transport` -- Single-attempt HTTP transport with auth and typed errors.
* :mod:`.fetcher` -- Cursor pagination with per-request retry.
* :mod:`.pages` -- Page API wrappers.
* :mod:`.blocks` -- Block API wrappers.
* :mod:`.databases` -- Database API wrappers.
"""

from __future__ import annotations

from .blocks import AsyncBlockAPI
from .databases import AsyncDatabaseAPI
from .fetcher import CursorPage, PaginatedFetcher
from .pages import AsyncPageAPI, build_rich_text_property
from .retries import RetryDecision, classify_error, parse_retry_after
from .transport import AsyncNotionTransport

__all__ = [
    "AsyncBlockAPI",
    "AsyncDatabaseAPI",
    "AsyncNotionTransport",
    "AsyncPageAPI",
    "CursorPage",
    "PaginatedFetcher",
    "RetryDecision",
    "build_rich_text_property",
    "classify_error",
    "parse_retry_after",
]
