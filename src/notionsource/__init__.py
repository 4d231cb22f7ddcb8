"""notionsource — Notion database ingestion for static-site builds.

Public re-exports
-----------------

* **Client:** :class:`AsyncNotionSourceClient`
* **Configuration:** :class:`SourceConfig`, :class:`SlugOptions`, :class:`SlugValue`
* **Pipeline:** :class:`PaginatedFetcher`, :class:`ContentCache`,
  :class:`ContentTreeLoader`, :class:`BlockTreeCompiler`,
  :class:`IngestionDriver`, :class:`PeriodicRefresher`
* **Errors:** Every :class:`NotionSourceError` subclass and :class:`ErrorCode`
* **Models:** Result dataclasses, enums, and normalized property shapes

Usage::

    import asyncio
    from notionsource import AsyncNotionSourceClient

    async def main():
        async with AsyncNotionSourceClient(
            token="secret_xxx",
            database_id="<database_id>",
        ) as client:
            result = await client.ingest()
            for document in result.documents:
                print(document.slug, document.title)

    asyncio.run(main())
"""

from __future__ import annotations

# ── Client ─────────────────────────────────────────────────────────────
from notionsource.async_client import AsyncNotionSourceClient

# ── Cache ──────────────────────────────────────────────────────────────
from notionsource.cache import (
    CacheEntry,
    ContentCache,
    KeyValueStore,
    MemoryStore,
    is_usable,
    parse_notion_time,
)

# ── Configuration ───────────────────────────────────────────────────────
from notionsource.config import SlugOptions, SlugValue, SourceConfig

# ── Conversion ─────────────────────────────────────────────────────────
from notionsource.converter import (
    BlockTreeCompiler,
    RichTextRenderer,
    get_page_title,
    normalize_property,
    page_to_properties,
    render_rich_text,
)

# ── Errors ──────────────────────────────────────────────────────────────
from notionsource.errors import (
    ErrorCode,
    NotionSourceAuthError,
    NotionSourceConfigurationError,
    NotionSourceError,
    NotionSourceNetworkError,
    NotionSourceNotFoundError,
    NotionSourcePermissionError,
    NotionSourceRateLimitError,
    NotionSourceRetryExhaustedError,
    NotionSourceServerError,
    NotionSourceTimeoutError,
    NotionSourceValidationError,
)

# ── Ingestion ──────────────────────────────────────────────────────────
from notionsource.ingest import IngestionDriver, PeriodicRefresher
from notionsource.loader import ContentTreeLoader

# ── Models ──────────────────────────────────────────────────────────────
from notionsource.models import (
    BlockType,
    CacheKind,
    ConversionWarning,
    Document,
    IngestionResult,
    NotionDate,
    NotionFile,
    NotionPerson,
    PropertyContext,
)
from notionsource.notion_api import CursorPage, PaginatedFetcher

# ── Public surface ──────────────────────────────────────────────────────

__all__ = [
    # Client
    "AsyncNotionSourceClient",
    # Configuration
    "SourceConfig",
    "SlugOptions",
    "SlugValue",
    # Pipeline
    "PaginatedFetcher",
    "CursorPage",
    "ContentCache",
    "CacheEntry",
    "KeyValueStore",
    "MemoryStore",
    "is_usable",
    "parse_notion_time",
    "ContentTreeLoader",
    "BlockTreeCompiler",
    "RichTextRenderer",
    "render_rich_text",
    "normalize_property",
    "page_to_properties",
    "get_page_title",
    "IngestionDriver",
    "PeriodicRefresher",
    # Error base + code enum
    "NotionSourceError",
    "ErrorCode",
    # Transient errors
    "NotionSourceRateLimitError",
    "NotionSourceServerError",
    "NotionSourceTimeoutError",
    # Permanent errors
    "NotionSourceValidationError",
    "NotionSourceAuthError",
    "NotionSourcePermissionError",
    "NotionSourceNotFoundError",
    "NotionSourceNetworkError",
    "NotionSourceRetryExhaustedError",
    "NotionSourceConfigurationError",
    # Models
    "BlockType",
    "CacheKind",
    "ConversionWarning",
    "Document",
    "IngestionResult",
    "NotionDate",
    "NotionFile",
    "NotionPerson",
    "PropertyContext",
]
