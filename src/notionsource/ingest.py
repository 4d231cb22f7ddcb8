"""Top-level ingestion: database pages to :class:`~notionsource.models.Document` records.

:class:`IngestionDriver` runs one pass.  For every page of the database
listing, in listing order, it:

1. normalizes and converts the page properties;
2. resolves the slug, writing a generated one back to Notion when the slug
   property is empty (and dropping the page's cache entry first);
3. compiles the block tree into the body, with an optional YAML preamble;
4. hands the resulting document to the sink.

A configuration error (the slug property is missing or not a string) aborts
the whole pass.  Any other :class:`~notionsource.errors.NotionSourceError`
only fails the page it happened on.

:class:`PeriodicRefresher` repeats passes on a fixed interval and never
lets two passes overlap.
"""

from __future__ import annotations

import asyncio
import inspect
import json
from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any

import yaml

from notionsource.cache import ContentCache
from notionsource.config import SourceConfig
from notionsource.converter.block_compiler import BlockTreeCompiler
from notionsource.converter.properties import (
    get_page_title,
    normalize_property,
    page_to_properties,
)
from notionsource.errors import NotionSourceConfigurationError, NotionSourceError
from notionsource.loader import ContentTreeLoader, is_page_accessible
from notionsource.models import CacheKind, Document, IngestionResult, Page
from notionsource.notion_api import AsyncPageAPI, PaginatedFetcher
from notionsource.observability import get_logger, resolve_metrics
from notionsource.utils.hashing import hash_dict

log = get_logger("notionsource.ingest")

Sink = Callable[[Document], Any]
"""Receives each document; may be a plain function or a coroutine function."""


def render_frontmatter(properties: dict[str, Any], body: str) -> str:
    """Prefix *body* with the properties as a YAML preamble."""
    preamble = yaml.safe_dump(
        properties,
        default_flow_style=False,
        allow_unicode=True,
        sort_keys=False,
    )
    return f"---\n{preamble}---\n\n{body}"


class IngestionDriver:
    """Run ingestion passes over one database.

    Parameters
    ----------
    config:
        Run configuration.
    loader:
        Loads the database pages with their block trees.
    compiler:
        Compiles block trees.
    pages:
        Page endpoint wrapper, used for slug back-writes.
    fetcher:
        Retry engine applied to slug back-writes.
    cache:
        Content cache, invalidated on slug back-writes.
    sink:
        Optional callable receiving every document as it is produced.
    """

    def __init__(
        self,
        config: SourceConfig,
        loader: ContentTreeLoader,
        compiler: BlockTreeCompiler,
        pages: AsyncPageAPI,
        fetcher: PaginatedFetcher,
        cache: ContentCache,
        sink: Sink | None = None,
    ) -> None:
        self._config = config
        self._loader = loader
        self._compiler = compiler
        self._pages = pages
        self._fetcher = fetcher
        self._cache = cache
        self._sink = sink
        self._metrics = resolve_metrics(config.metrics)

    async def run(self) -> IngestionResult:
        """Ingest every page of the database once.

        Returns
        -------
        IngestionResult
            Emitted documents (in database order), compile warnings, and the
            ids of pages that failed.

        Raises
        ------
        NotionSourceConfigurationError
            If the slug policy does not match the database.
        """
        result = IngestionResult()
        pages = await self._loader.load_pages()

        for page in pages:
            page_id = page.get("id", "")
            try:
                document = await self.ingest_page(page)
                warnings = list(self._compiler.warnings)
                await self._emit(document)
            except NotionSourceConfigurationError as exc:
                log.error(
                    exc.message,
                    extra={"extra_fields": {"page_id": page_id, "error_code": exc.code}},
                )
                raise
            except NotionSourceError as exc:
                log.error(
                    f"Ingestion of page {page_id} failed: {exc.message}",
                    extra={"extra_fields": {"page_id": page_id, "error_code": exc.code}},
                )
                result.failed.append(page_id)
                continue
            except Exception as exc:
                # Converters, slug generators and sinks are caller code.
                log.error(
                    f"Ingestion of page {page_id} failed: {exc!r}",
                    exc_info=True,
                    extra={"extra_fields": {"page_id": page_id, "error_code": type(exc).__name__}},
                )
                result.failed.append(page_id)
                continue

            result.warnings.extend(warnings)
            result.documents.append(document)
            self._metrics.increment("notionsource.documents_total")

        log.info(
            "Ingestion pass finished",
            extra={
                "extra_fields": {
                    "database_id": self._config.database_id,
                    "documents": len(result.documents),
                    "failed": len(result.failed),
                    "warnings": len(result.warnings),
                }
            },
        )
        return result

    async def ingest_page(self, page: Page) -> Document:
        """Build the document of one loaded page."""
        title = get_page_title(page)
        properties = page_to_properties(
            page,
            self._config.key_converter,
            self._config.value_converter,
        )
        slug = await self.append_slug(page, properties)

        body = self._compiler.compile_page(page)
        if self._config.props_to_frontmatter:
            body = render_frontmatter(properties, body)

        return Document(
            id=page["id"],
            title=title,
            properties=properties,
            body=body,
            created_at=page.get("created_time"),
            updated_at=page.get("last_edited_time"),
            slug=slug,
            archived=bool(page.get("archived", False)),
            raw=page,
            raw_json=json.dumps(page, ensure_ascii=False),
            content_digest=hash_dict(page),
        )

    async def append_slug(self, page: Page, properties: dict[str, Any]) -> str | None:
        """Resolve the slug of *page*, generating and writing it if empty.

        On a successful back-write both ``page["properties"]`` and
        *properties* are updated in place.

        Raises
        ------
        NotionSourceConfigurationError
            If the slug key is absent from *properties* or its value is not
            a string.
        """
        options = self._config.slug_options
        if options is None or options.generator is None:
            return None

        key = options.key
        if key not in properties:
            raise NotionSourceConfigurationError(
                message=f"Property {key} doesn't exist on database {self._config.database_id}!",
                context={"key": key, "database_id": self._config.database_id},
            )

        current = properties[key]
        if not isinstance(current, str):
            raise NotionSourceConfigurationError(
                message=(
                    f"Property {key} is defined as slug, "
                    f"but its value type is {type(current).__name__}!"
                ),
                context={"key": key, "value_type": type(current).__name__},
            )
        if current != "":
            return current

        page_id = page["id"]
        # The write bumps last_edited_time remotely; never serve the old copy.
        self._cache.delete(CacheKind.PAGE, page_id)

        generated = options.generator(properties, page)
        try:
            updated = await self._fetcher.call_with_retry(
                partial(
                    self._pages.update_property,
                    page_id,
                    generated.notion_key,
                    generated.value,
                    generated.url,
                )
            )
        except NotionSourceError as exc:
            log.warning(
                f"Setting slug for page {page_id} has failed! Slug will be set to null.",
                extra={"extra_fields": {"page_id": page_id, "error_code": exc.code}},
            )
            return None

        written = (updated.get("properties") or {}).get(generated.notion_key)
        if not is_page_accessible(updated) or written is None:
            log.warning(
                f"Setting slug for page {page_id} has failed! Slug will be set to null.",
                extra={"extra_fields": {"page_id": page_id}},
            )
            return None

        page.setdefault("properties", {})[generated.notion_key] = written
        properties[key] = normalize_property(written)
        log.info(
            f"Updated slug for page {page_id}!",
            extra={"extra_fields": {"page_id": page_id, "slug": generated.value}},
        )
        return generated.value

    async def _emit(self, document: Document) -> None:
        if self._sink is None:
            return
        outcome = self._sink(document)
        if inspect.isawaitable(outcome):
            await outcome


class PeriodicRefresher:
    """Re-run an ingestion pass every *interval* seconds.

    A tick that fires while the previous pass is still running is skipped
    with a warning.  A failed pass is logged and does not stop the loop.

    Parameters
    ----------
    run:
        Coroutine function performing one pass.
    interval:
        Seconds between ticks.
    sleep:
        Coroutine function used to wait between ticks.
    """

    def __init__(
        self,
        run: Callable[[], Awaitable[Any]],
        interval: float,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval}")
        self._run = run
        self._interval = interval
        self._sleep = sleep
        self._current: asyncio.Task[None] | None = None
        self._loop_task: asyncio.Task[None] | None = None

    @property
    def in_flight(self) -> bool:
        return self._current is not None and not self._current.done()

    def trigger(self) -> asyncio.Task[None] | None:
        """Start a pass now, unless one is already running.

        Returns the task of the started pass, or ``None`` if skipped.
        """
        if self.in_flight:
            log.warning("Refetch cancelled to prevent overriding previous fetch!")
            return None
        self._current = asyncio.ensure_future(self._run_once())
        return self._current

    async def _run_once(self) -> None:
        try:
            await self._run()
        except NotionSourceError as exc:
            log.error(
                f"Periodic refresh failed: {exc.message}",
                extra={"extra_fields": {"error_code": exc.code}},
            )
        except Exception as exc:
            log.error(
                f"Periodic refresh failed: {exc!r}",
                exc_info=True,
                extra={"extra_fields": {"error_code": type(exc).__name__}},
            )

    async def run_forever(self) -> None:
        while True:
            await self._sleep(self._interval)
            self.trigger()

    def start(self) -> asyncio.Task[None]:
        """Schedule :meth:`run_forever` on the running loop."""
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.ensure_future(self.run_forever())
        return self._loop_task

    async def stop(self) -> None:
        """Stop ticking and wait for an in-flight pass to finish."""
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        if self._current is not None:
            await self._current
