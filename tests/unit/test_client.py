"""Tests for AsyncNotionSourceClient.

The Notion API is served by an ``httpx.MockTransport`` so that the whole
stack (transport, fetcher, cache, loader, compiler, driver) runs offline.
"""

from __future__ import annotations

import json

import httpx
import pytest

from conftest import SleepRecorder, make_block, make_page, text_run
from notionsource import AsyncNotionSourceClient, PeriodicRefresher, SlugOptions, SlugValue
from notionsource.cache import MemoryStore
from notionsource.notion_api.fetcher import PaginatedFetcher

EDITED = "2023-11-14T22:00:00.000Z"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class FakeNotion:
    """Routes API paths to canned responses and records every request."""

    def __init__(self) -> None:
        self.pages = {
            "p1": make_page(
                "p1",
                title="First Post",
                last_edited_time=EDITED,
                properties={"Slug": {"id": "s", "type": "rich_text", "rich_text": []}},
            ),
        }
        self.children = {
            "p1": [
                make_block(
                    "heading_1", "h1", last_edited_time=EDITED, rich_text=[text_run("Intro")],
                ),
                make_block(
                    "paragraph",
                    "para",
                    last_edited_time=EDITED,
                    rich_text=[text_run("Hello "), text_run("World", bold=True)],
                ),
            ],
        }
        self.requests: list[tuple[str, str]] = []
        self.rate_limits: dict[str, int] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/v1")
        self.requests.append((request.method, path))

        if self.rate_limits.get(path):
            self.rate_limits[path] -= 1
            return httpx.Response(429, json={"message": "slow"}, headers={"Retry-After": "2"})

        if request.method == "POST" and path == "/databases/db-1/query":
            return httpx.Response(
                200, json={"results": list(self.pages.values()), "next_cursor": None, "has_more": False},
            )
        if request.method == "GET" and path == "/databases/db-1":
            return httpx.Response(200, json={"object": "database", "id": "db-1", "last_edited_time": EDITED})
        if request.method == "GET" and path.startswith("/blocks/"):
            block_id = path.split("/")[2]
            return httpx.Response(
                200, json={"results": self.children.get(block_id, []), "next_cursor": None, "has_more": False},
            )
        if path.startswith("/pages/"):
            page_id = path.split("/")[2]
            page = self.pages.get(page_id)
            if page is None:
                return httpx.Response(404, json={"message": "Could not find page", "code": "object_not_found"})
            if request.method == "PATCH":
                body = json.loads(request.content)
                for key, prop in body["properties"].items():
                    runs = [
                        {**run, "plain_text": run["text"]["content"], "href": None}
                        for run in prop["rich_text"]
                    ]
                    page["properties"][key] = {"id": "s", "type": "rich_text", "rich_text": runs}
            return httpx.Response(200, json=page)
        return httpx.Response(400, json={"message": f"unexpected {request.method} {path}"})


def make_client(notion: FakeNotion, sleep: SleepRecorder | None = None, **kwargs) -> AsyncNotionSourceClient:
    http = httpx.AsyncClient(
        base_url="https://api.notion.com/v1",
        transport=httpx.MockTransport(notion.handler),
    )
    kwargs.setdefault("database_id", "db-1")
    return AsyncNotionSourceClient(
        token="test_token_1234",
        client=http,
        fetcher=PaginatedFetcher(sleep=sleep or SleepRecorder()),
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

class TestInit:
    @pytest.mark.asyncio
    async def test_forwards_kwargs_to_config(self):
        client = AsyncNotionSourceClient(token="test_token_1234", database_id="db", output_format="markdown")
        assert client.config.database_id == "db"
        assert client.config.output_format == "markdown"
        await client.close()

    @pytest.mark.asyncio
    async def test_invalid_config_rejected(self):
        with pytest.raises(ValueError):
            AsyncNotionSourceClient(token="t", chunk_size=0)

    @pytest.mark.asyncio
    async def test_custom_store(self):
        store = MemoryStore()
        client = make_client(FakeNotion(), store=store)
        await client.load_pages()
        assert "NOTION_PAGE_p1" in store
        await client.close()

    @pytest.mark.asyncio
    async def test_context_manager_closes_transport(self):
        notion = FakeNotion()
        async with make_client(notion) as client:
            await client.load_pages()
        assert client._transport._client.is_closed

    def test_refresher_requires_interval(self):
        client = AsyncNotionSourceClient(token="test_token_1234")
        with pytest.raises(ValueError, match="refresh_interval"):
            client.refresher()

    def test_refresher(self):
        client = AsyncNotionSourceClient(token="test_token_1234", refresh_interval=300)
        assert isinstance(client.refresher(), PeriodicRefresher)


# ---------------------------------------------------------------------------
# End to end
# ---------------------------------------------------------------------------

class TestIngest:
    @pytest.mark.asyncio
    async def test_markdown_document(self):
        notion = FakeNotion()
        received = []
        async with make_client(notion, output_format="markdown") as client:
            result = await client.ingest(sink=received.append)

        assert [d.id for d in received] == ["p1"]
        document = result.documents[0]
        assert document.title == "First Post"
        assert document.body == (
            "---\nName: First Post\nSlug: ''\n---\n\n## Intro\n\nHello **World**"
        )

    @pytest.mark.asyncio
    async def test_html_document_without_frontmatter(self):
        async with make_client(FakeNotion(), props_to_frontmatter=False) as client:
            result = await client.ingest()
        assert result.documents[0].body == "<h2>Intro</h2>\nHello <strong>World</strong>"

    @pytest.mark.asyncio
    async def test_slug_back_write(self):
        notion = FakeNotion()

        def slugify(properties, page):
            return SlugValue(notion_key="Slug", value=properties["Name"].lower().replace(" ", "-"))

        async with make_client(
            notion,
            props_to_frontmatter=False,
            slug_options=SlugOptions(key="Slug", generator=slugify),
        ) as client:
            result = await client.ingest()

        assert result.documents[0].slug == "first-post"
        assert ("PATCH", "/pages/p1") in notion.requests

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self):
        notion = FakeNotion()
        notion.rate_limits["/blocks/p1/children"] = 2
        sleep = SleepRecorder()
        async with make_client(notion, sleep=sleep, props_to_frontmatter=False) as client:
            result = await client.ingest()
        assert sleep.delays == [2.0, 2.0]
        assert result.documents[0].body.endswith("Hello <strong>World</strong>")

    @pytest.mark.asyncio
    async def test_second_pass_served_from_cache(self):
        notion = FakeNotion()
        async with make_client(notion) as client:
            await client.ingest()
            first = len(notion.requests)
            await client.ingest()
        second_pass = notion.requests[first:]
        assert second_pass == [("POST", "/databases/db-1/query")]

    @pytest.mark.asyncio
    async def test_database_cache(self):
        notion = FakeNotion()
        async with make_client(notion, use_cache_for_database=True) as client:
            await client.ingest()
            first = len(notion.requests)
            result = await client.ingest()
        assert [d.id for d in result.documents] == ["p1"]
        assert ("POST", "/databases/db-1/query") not in notion.requests[first:]


class TestLowerLevel:
    @pytest.mark.asyncio
    async def test_load_page_and_compile(self):
        async with make_client(FakeNotion(), output_format="markdown") as client:
            page = await client.load_page("p1")
            assert [b["id"] for b in page["children"]] == ["h1", "para"]
            assert client.compile_page(page) == "## Intro\n\nHello **World**"

    @pytest.mark.asyncio
    async def test_missing_page_raises(self):
        from notionsource.errors import NotionSourceNotFoundError

        async with make_client(FakeNotion()) as client:
            with pytest.raises(NotionSourceNotFoundError):
                await client.load_page("nope")
