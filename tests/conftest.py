"""Shared test fixtures and builders for the notionsource test suite."""

from __future__ import annotations

from typing import Any

import pytest

from notionsource.config import SourceConfig
from notionsource.converter.block_compiler import BlockTreeCompiler

# ---------------------------------------------------------------------------
# Builders for Notion API shaped objects
# ---------------------------------------------------------------------------


def text_run(
    content: str,
    *,
    link: str | None = None,
    **annotations: Any,
) -> dict[str, Any]:
    """A Notion ``text`` rich-text item."""
    return {
        "type": "text",
        "text": {"content": content, "link": {"url": link} if link else None},
        "annotations": {
            "bold": False,
            "italic": False,
            "strikethrough": False,
            "underline": False,
            "code": False,
            "color": "default",
            **annotations,
        },
        "plain_text": content,
        "href": link,
    }


def make_block(
    block_type: str,
    block_id: str = "block-1",
    children: list[dict[str, Any]] | None = None,
    last_edited_time: str = "2024-01-01T00:00:00.000Z",
    **data: Any,
) -> dict[str, Any]:
    """A loaded Notion block; *data* becomes the type-specific payload."""
    block: dict[str, Any] = {
        "object": "block",
        "id": block_id,
        "type": block_type,
        "has_children": children is not None,
        "last_edited_time": last_edited_time,
        block_type: data,
    }
    if children is not None:
        block["children"] = children
    return block


def make_page(
    page_id: str = "page-1",
    title: str = "Hello",
    properties: dict[str, Any] | None = None,
    last_edited_time: str = "2024-01-01T00:00:00.000Z",
    **extra: Any,
) -> dict[str, Any]:
    """A Notion page object with a ``Name`` title property."""
    props: dict[str, Any] = {
        "Name": {"id": "title", "type": "title", "title": [text_run(title)]},
    }
    props.update(properties or {})
    page: dict[str, Any] = {
        "object": "page",
        "id": page_id,
        "url": f"https://www.notion.so/{page_id}",
        "created_time": "2023-12-31T00:00:00.000Z",
        "last_edited_time": last_edited_time,
        "archived": False,
        "properties": props,
    }
    page.update(extra)
    return page


class RecordingMetricsHook:
    """A metrics backend that records all calls for assertion."""

    def __init__(self) -> None:
        self.increments: list[dict[str, Any]] = []
        self.timings: list[dict[str, Any]] = []

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        self.increments.append({"name": name, "value": value, "tags": tags})

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        self.timings.append({"name": name, "ms": ms, "tags": tags})

    def names(self) -> list[str]:
        return [entry["name"] for entry in self.increments]


class SleepRecorder:
    """Drop-in for ``asyncio.sleep`` that records delays and returns at once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config() -> SourceConfig:
    """Default test configuration with a dummy token."""
    return SourceConfig(token="test_token_1234", database_id="db-1")


@pytest.fixture
def compiler(config: SourceConfig) -> BlockTreeCompiler:
    """HTML compiler using the default test config."""
    return BlockTreeCompiler(config)


@pytest.fixture
def md_compiler() -> BlockTreeCompiler:
    """Markdown compiler."""
    return BlockTreeCompiler(
        SourceConfig(token="test_token_1234", output_format="markdown")
    )


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def metrics() -> RecordingMetricsHook:
    return RecordingMetricsHook()
