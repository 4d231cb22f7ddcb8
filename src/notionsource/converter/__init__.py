"""Conversion of Notion content: rich text, page properties and block trees."""

from .block_compiler import BlockTreeCompiler, child_page_to_html, get_youtube_embed_url
from .properties import get_page_title, normalize_property, page_to_properties
from .rich_text import RichTextRenderer, render_rich_text

__all__ = [
    "BlockTreeCompiler",
    "RichTextRenderer",
    "child_page_to_html",
    "get_page_title",
    "get_youtube_embed_url",
    "normalize_property",
    "page_to_properties",
    "render_rich_text",
]
