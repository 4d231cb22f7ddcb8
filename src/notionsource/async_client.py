"""Asynchronous Notion content source.

:class:`AsyncNotionSourceClient` wires the transport, endpoint wrappers,
fetcher, cache, loader, compiler and driver together from one
:class:`~notionsource.config.SourceConfig`.

Usage::

    import asyncio
    from notionsource import AsyncNotionSourceClient

    async def main():
        async with AsyncNotionSourceClient(
            token="secret_xxx",
            database_id="<database_id>",
            output_format="markdown",
        ) as client:
            result = await client.ingest(sink=print)
            print(len(result.documents))

    asyncio.run(main())
"""

from __future__ import annotations

from typing import Any

import httpx

from notionsource.cache import ContentCache, KeyValueStore
from notionsource.config import SourceConfig
from notionsource.converter.block_compiler import BlockTreeCompiler
from notionsource.ingest import IngestionDriver, PeriodicRefresher, Sink
from notionsource.loader import ContentTreeLoader
from notionsource.models import IngestionResult, Page
from notionsource.notion_api import (
    AsyncBlockAPI,
    AsyncDatabaseAPI,
    AsyncNotionTransport,
    AsyncPageAPI,
    PaginatedFetcher,
)


class AsyncNotionSourceClient:
    """Asynchronous Notion content source.

    Parameters
    ----------
    token:
        Notion integration token.  **Required.**
    store:
        Cache store.  Defaults to an in-process
        :class:`~notionsource.cache.MemoryStore`, so the cache only lives as
        long as the client.
    client:
        Optional pre-configured ``httpx.AsyncClient``.
    fetcher:
        Optional pre-built :class:`PaginatedFetcher` (e.g. with an injected
        sleep).
    **kwargs:
        All remaining keyword arguments are forwarded to
        :class:`SourceConfig`.
    """

    def __init__(
        self,
        token: str,
        *,
        store: KeyValueStore | None = None,
        client: httpx.AsyncClient | None = None,
        fetcher: PaginatedFetcher | None = None,
        **kwargs: Any,
    ) -> None:
        self._config = SourceConfig(token=token, **kwargs)
        self._transport = AsyncNotionTransport(self._config, client=client)
        self._pages = AsyncPageAPI(self._transport)
        self._blocks = AsyncBlockAPI(self._transport)
        self._databases = AsyncDatabaseAPI(self._transport)
        self._fetcher = fetcher or PaginatedFetcher.from_config(self._config)
        self._cache = ContentCache.from_config(self._config, store)
        self._loader = ContentTreeLoader(
            self._config,
            self._fetcher,
            self._cache,
            self._blocks,
            self._pages,
            self._databases,
        )
        self._compiler = BlockTreeCompiler(self._config)

    @property
    def config(self) -> SourceConfig:
        return self._config

    @property
    def cache(self) -> ContentCache:
        return self._cache

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def driver(self, sink: Sink | None = None) -> IngestionDriver:
        """Return an :class:`IngestionDriver` emitting to *sink*."""
        return IngestionDriver(
            self._config,
            self._loader,
            self._compiler,
            self._pages,
            self._fetcher,
            self._cache,
            sink=sink,
        )

    async def ingest(self, sink: Sink | None = None) -> IngestionResult:
        """Run one ingestion pass over the configured database."""
        return await self.driver(sink).run()

    def refresher(self, sink: Sink | None = None) -> PeriodicRefresher:
        """Return a :class:`PeriodicRefresher` for ``config.refresh_interval``.

        Raises
        ------
        ValueError
            If no refresh interval is configured.
        """
        if self._config.refresh_interval is None:
            raise ValueError("refresh_interval is not configured")
        driver = self.driver(sink)
        return PeriodicRefresher(driver.run, self._config.refresh_interval)

    # ------------------------------------------------------------------
    # Lower-level access
    # ------------------------------------------------------------------

    async def load_pages(self) -> list[Page]:
        """Load every database page with its block tree, through the cache."""
        return await self._loader.load_pages()

    async def load_page(self, page_id: str) -> Page:
        """Load one page with its block tree, through the cache."""
        return await self._loader.load_page_by_id(page_id)

    def compile_page(self, page: Page) -> str:
        """Compile a loaded page into its body (no YAML preamble)."""
        return self._compiler.compile_page(page)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._transport.close()

    async def __aenter__(self) -> AsyncNotionSourceClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
