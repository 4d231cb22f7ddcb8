"""Materialize full pages and database listings from the Notion API.

:class:`ContentTreeLoader` combines the :class:`PaginatedFetcher` with the
:class:`ContentCache`: every page and every block subtree is looked up in
the cache first (validated against the object's ``last_edited_time``) and
only fetched when the cached copy is missing or stale.

Blocks the integration cannot see (no ``type``) and blocks Notion reports as
``unsupported`` are dropped while loading.  A child whose subtree fails to
load is dropped from its parent, see
:meth:`PaginatedFetcher.fetch_all_chunked`.
"""

from __future__ import annotations

from functools import partial
from typing import Any

from notionsource.cache import ContentCache
from notionsource.config import SourceConfig
from notionsource.models import Block, CacheKind, Page
from notionsource.notion_api import (
    AsyncBlockAPI,
    AsyncDatabaseAPI,
    AsyncPageAPI,
    CursorPage,
    PaginatedFetcher,
)
from notionsource.observability import get_logger
from notionsource.utils.hashing import hash_dict

log = get_logger("notionsource.loader")


def is_block_accessible(block: dict[str, Any]) -> bool:
    """Blocks shared without access come back without a ``type``."""
    return bool(block.get("type"))


def is_block_supported(block: dict[str, Any]) -> bool:
    return block.get("type") != "unsupported"


def is_page_accessible(page: dict[str, Any]) -> bool:
    """Only full page objects (with a ``url``) can be ingested."""
    return page.get("object") == "page" and "url" in page


class ContentTreeLoader:
    """Load pages with their block trees, through the cache.

    Parameters
    ----------
    config:
        Run configuration (database id, filter, chunk size, cache flags).
    fetcher:
        Pagination and retry engine.
    cache:
        Content cache.  Ignored when ``config.cache_enabled`` is false.
    blocks / pages / databases:
        Endpoint wrappers.
    """

    def __init__(
        self,
        config: SourceConfig,
        fetcher: PaginatedFetcher,
        cache: ContentCache,
        blocks: AsyncBlockAPI,
        pages: AsyncPageAPI,
        databases: AsyncDatabaseAPI,
    ) -> None:
        self._config = config
        self._fetcher = fetcher
        self._cache = cache
        self._blocks = blocks
        self._pages = pages
        self._databases = databases

    @property
    def cache_enabled(self) -> bool:
        return self._config.cache_enabled

    # ------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------

    async def load_children(
        self,
        block_id: str,
        last_edited_time: str | None,
    ) -> list[Block]:
        """Return the full child tree of a block or page.

        Every returned block has ``has_children`` set and, when true, a
        ``children`` list loaded the same way.
        """
        if self.cache_enabled:
            cached = self._cache.get_if_fresh(CacheKind.BLOCK, block_id, last_edited_time)
            if cached is not None:
                return cached

        children = await self._fetcher.fetch_all_chunked(
            partial(self._request_children, block_id),
            self._attach_children,
            self._config.chunk_size,
        )
        if self.cache_enabled:
            self._cache.set(CacheKind.BLOCK, block_id, children)
        return children

    async def _request_children(
        self,
        block_id: str,
        cursor: str | None,
    ) -> CursorPage[Block]:
        response = await self._blocks.list_children(block_id, cursor)
        page = CursorPage.from_response(response)
        page.items = [
            block
            for block in page.items
            if is_block_accessible(block) and is_block_supported(block)
        ]
        return page

    async def _attach_children(self, block: Block) -> Block:
        if not block.get("has_children"):
            return {**block, "has_children": False}
        children = await self.load_children(block["id"], block.get("last_edited_time"))
        return {**block, "has_children": True, "children": children}

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    async def load_page(self, page: dict[str, Any]) -> Page:
        """Return *page* with its ``children`` block tree attached."""
        page_id = page["id"]
        last_edited_time = page.get("last_edited_time")

        if self.cache_enabled:
            cached = self._cache.get_if_fresh(CacheKind.PAGE, page_id, last_edited_time)
            if cached is not None:
                return cached

        loaded: Page = {
            **page,
            "children": await self.load_children(page_id, last_edited_time),
        }
        if self.cache_enabled:
            self._cache.set(CacheKind.PAGE, page_id, loaded)
        return loaded

    async def load_page_by_id(self, page_id: str) -> Page:
        """Retrieve a page object and load it."""
        page = await self._fetcher.call_with_retry(partial(self._pages.retrieve, page_id))
        return await self.load_page(page)

    async def load_pages(self) -> list[Page]:
        """Return every page of the configured database, in query order."""
        if self.cache_enabled and self._config.use_cache_for_database:
            page_ids = await self._cached_page_ids()
            if page_ids is not None:
                return await self._fetcher.fetch_all_chunked(
                    partial(_replay, page_ids),
                    self.load_page_by_id,
                    self._config.chunk_size,
                )

        listed: list[str] = []

        async def load_listed(page: dict[str, Any]) -> Page:
            listed.append(page["id"])
            return await self.load_page(page)

        pages = await self._fetcher.fetch_all_chunked(
            self._request_pages,
            load_listed,
            self._config.chunk_size,
        )

        if self.cache_enabled and self._config.use_cache_for_database:
            ids = [page["id"] for page in pages]
            self._cache.set(CacheKind.DATABASE, self._database_cache_id(), ids)
        log.info(
            "Loaded database pages",
            extra={
                "extra_fields": {
                    "database_id": self._config.database_id,
                    "listed": len(listed),
                    "loaded": len(pages),
                }
            },
        )
        return pages

    async def _request_pages(self, cursor: str | None) -> CursorPage[dict[str, Any]]:
        response = await self._databases.query(
            self._config.database_id,
            cursor,
            filter=self._config.filter,
        )
        page = CursorPage.from_response(response)
        page.items = [item for item in page.items if is_page_accessible(item)]
        return page

    async def _cached_page_ids(self) -> list[str] | None:
        database = await self._fetcher.call_with_retry(
            partial(self._databases.retrieve, self._config.database_id)
        )
        return self._cache.get_if_fresh(
            CacheKind.DATABASE,
            self._database_cache_id(),
            database.get("last_edited_time"),
        )

    def _database_cache_id(self) -> str:
        # A filtered listing is cached apart from the unfiltered one.
        if self._config.filter is None:
            return self._config.database_id
        return f"{self._config.database_id}_{hash_dict(self._config.filter)[:12]}"


async def _replay(items: list[str], cursor: str | None) -> CursorPage[str]:
    return CursorPage(items=list(items))
