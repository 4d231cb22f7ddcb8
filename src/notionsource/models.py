"""Public data models for notionsource.

Blocks, pages, rich-text runs and property values stay in the shape the
Notion API returns them (plain ``dict`` objects) so that they can be cached
and re-serialized without a mapping layer.  Loaded blocks and pages carry an
extra ``children`` key holding their nested blocks.

This module defines the closed block vocabulary, the normalized property
shapes, and the result types produced by an ingestion run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, TypedDict, Union

Block = dict[str, Any]
"""A Notion block object, plus ``children`` when ``has_children`` is true."""

Page = dict[str, Any]
"""A Notion page object, plus the ``children`` of its root."""

RichTextRun = dict[str, Any]
"""One Notion rich-text item."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class BlockType(str, Enum):
    """Block types the compiler has an emission rule for.

    Any other ``type`` tag is rendered as an "unsupported" comment.
    """

    PARAGRAPH = "paragraph"
    HEADING_1 = "heading_1"
    HEADING_2 = "heading_2"
    HEADING_3 = "heading_3"
    BULLETED_LIST_ITEM = "bulleted_list_item"
    NUMBERED_LIST_ITEM = "numbered_list_item"
    TO_DO = "to_do"
    TOGGLE = "toggle"
    QUOTE = "quote"
    CODE = "code"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    EMBED = "embed"
    BOOKMARK = "bookmark"
    DIVIDER = "divider"
    COLUMN = "column"
    COLUMN_LIST = "column_list"
    TABLE = "table"
    TABLE_ROW = "table_row"
    CHILD_PAGE = "child_page"


class CacheKind(str, Enum):
    """Kinds of payload stored in the content cache."""

    PAGE = "page"
    """A full page object including its block tree."""

    BLOCK = "block"
    """The children list of one block or page."""

    DATABASE = "database"
    """The ordered page ids of one database."""


# ---------------------------------------------------------------------------
# Normalized property values
# ---------------------------------------------------------------------------

class NotionDate(TypedDict):
    start: str
    end: Optional[str]
    time_zone: Optional[str]


class NotionFile(TypedDict):
    name: Optional[str]
    url: str


class NotionPerson(TypedDict):
    name: Optional[str]
    avatar: Optional[str]
    email: Optional[str]


NormalizedValue = Union[
    None,
    bool,
    int,
    float,
    str,
    list[str],
    NotionDate,
    NotionFile,
    NotionPerson,
    list[Any],
]


@dataclass(frozen=True)
class PropertyContext:
    """What the key and value converters see for one property.

    Attributes
    ----------
    name:
        Property name as defined in the database.
    type:
        The Notion property kind (``"title"``, ``"select"``, ...).
    value:
        The normalized value.
    raw:
        The raw Notion property object.
    """

    name: str
    type: str
    value: Any
    raw: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Conversion warnings
# ---------------------------------------------------------------------------

@dataclass
class ConversionWarning:
    """A non-fatal issue encountered while compiling a page.

    Attributes
    ----------
    code:
        A machine-readable warning code (e.g. ``"UNSUPPORTED_BLOCK"``).
    message:
        A human-readable description of the issue.
    context:
        Arbitrary structured data for diagnostics.
    """

    code: str
    message: str
    context: dict = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Ingestion output
# ---------------------------------------------------------------------------

@dataclass
class Document:
    """One ingested page, ready for the static-site sink.

    Attributes
    ----------
    id:
        The Notion page id.
    title:
        Plain-text page title.
    properties:
        Normalized (and converted) properties.
    body:
        Compiled markdown/HTML body, with the YAML preamble when enabled.
    created_at / updated_at:
        ISO-8601 timestamps as returned by Notion.
    slug:
        The page slug, when a slug policy is configured.
    archived:
        Whether the page is archived.
    raw:
        The loaded page object (with its block tree).
    raw_json:
        ``raw`` serialized as JSON.
    content_digest:
        Stable digest of ``raw``, usable as a change marker by the sink.
    """

    id: str
    title: str
    properties: dict[str, Any]
    body: str
    created_at: str | None = None
    updated_at: str | None = None
    slug: str | None = None
    archived: bool = False
    raw: dict[str, Any] = field(default_factory=dict, repr=False)
    raw_json: str = field(default="", repr=False)
    content_digest: str = ""


@dataclass
class IngestionResult:
    """Outcome of one ingestion pass.

    Attributes
    ----------
    documents:
        Emitted documents in database order.
    warnings:
        Non-fatal issues collected while compiling.
    failed:
        Ids of pages whose ingestion failed; they were not emitted.
    """

    documents: list[Document] = field(default_factory=list)
    warnings: list[ConversionWarning] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
