"""Notion block tree to HTML / Markdown compiler.

Compiles a loaded block tree (blocks carrying their ``children``) into the
body of a document.  Output mode comes from ``SourceConfig.output_format``:

* ``"html"`` -- every block becomes an HTML fragment, siblings are joined
  with a newline;
* ``"markdown"`` -- text blocks become Markdown, blocks without a Markdown
  form (media, toggles, tables, columns) stay inline HTML, siblings are
  joined with a blank line.

Consecutive list items of one kind form one list.  Block types without an
emission rule compile to an HTML comment naming the type; they never fail
the page.

Usage::

    from notionsource.config import SourceConfig
    from notionsource.converter.block_compiler import BlockTreeCompiler

    compiler = BlockTreeCompiler(SourceConfig(token="secret_xxx"))
    body = compiler.compile_page(page)
"""

from __future__ import annotations

import html
import itertools
import re
import textwrap
from collections.abc import Callable as _Callable
from typing import Any

from notionsource.config import SourceConfig
from notionsource.models import Block, BlockType, ConversionWarning, Page
from notionsource.observability import get_logger

from .rich_text import RichTextRenderer, render_rich_text

log = get_logger("notionsource.compiler")

# https://stackoverflow.com/questions/19377262/regex-for-youtube-url
YOUTUBE_URL_RE = re.compile(
    r"^((?:https?:)?//)?((?:www|m)\.)?((?:youtube(?:-nocookie)?\.com|youtu\.be))"
    r"(/(?:[\w\-]+\?v=|embed/|live/|v/)?)(?P<youtube_id>[\w\-]+)(\S+)?$"
)

YOUTUBE_EMBED_URL = "https://www.youtube.com/embed/{video_id}"

_YOUTUBE_IFRAME = (
    '<iframe width="100%" height="600" src="{src}" title="YouTube video player" '
    'frameborder="0" allow="accelerometer; autoplay; clipboard-write; '
    'encrypted-media; gyroscope; picture-in-picture; web-share" allowfullscreen></iframe>'
)

# List item types and their Markdown markers.
_LIST_MARKERS: dict[str, str] = {
    "bulleted_list_item": "*",
    "numbered_list_item": "1.",
}

_LIST_TAGS: dict[str, str] = {
    "bulleted_list_item": "ul",
    "numbered_list_item": "ol",
}

# Languages of code blocks a child page may inject, and their wrappers.
_INJECTED_LANGUAGES: dict[str, tuple[str, str]] = {
    "html": ("", ""),
    "markdown": ("", ""),
    "css": ("<style>\n", "\n</style>"),
    "javascript": ("<script>\n", "\n</script>"),
}


def get_youtube_embed_url(url: str) -> str | None:
    """Return the embed URL of a YouTube video URL, or ``None``.

    >>> get_youtube_embed_url("https://youtu.be/abc123")
    'https://www.youtube.com/embed/abc123'
    """
    match = YOUTUBE_URL_RE.match(url or "")
    if match is None:
        return None
    return YOUTUBE_EMBED_URL.format(video_id=match.group("youtube_id"))


def child_page_to_html(block: Block) -> str:
    """Concatenate the injectable code blocks directly under a child page.

    ``html`` and ``markdown`` code passes through verbatim, ``css`` is
    wrapped in ``<style>``, ``javascript`` in ``<script>``.  Other code
    blocks and non-code children are ignored.  The code is never escaped.
    """
    parts: list[str] = []
    for child in block.get("children") or []:
        if child.get("type") != "code":
            continue
        code_data = child.get("code", {})
        wrapper = _INJECTED_LANGUAGES.get(code_data.get("language", ""))
        if wrapper is None:
            continue
        code = "".join(run.get("plain_text", "") for run in code_data.get("rich_text", []))
        parts.append(f"{wrapper[0]}{code}{wrapper[1]}")
    return "\n".join(parts)


def html_class(name: str) -> str:
    return f'class="notion-{name.replace("_", "-")}-block"'


def _color_attr(color: str | None) -> str:
    if not color or color == "default":
        return ""
    return f' data-notion-color="{color}"'


def _media_url(data: dict[str, Any]) -> str:
    source_type = data.get("type", "")
    if source_type in ("external", "file"):
        return (data.get(source_type) or {}).get("url", "")
    return ""


class BlockTreeCompiler:
    """Stateful compiler of Notion block trees.

    Non-fatal issues found during :meth:`compile` are collected in
    :attr:`warnings`, which is reset at the start of every call.

    Parameters
    ----------
    config:
        Run configuration; ``output_format``, ``lower_title_level`` and
        ``cache_enabled`` affect the output.
    """

    def __init__(self, config: SourceConfig) -> None:
        self._config = config
        self._mode = config.output_format
        self._text = RichTextRenderer(self._mode)
        self._separator = "\n" if self._mode == "html" else "\n\n"
        self.warnings: list[ConversionWarning] = []

    @property
    def is_html(self) -> bool:
        return self._mode == "html"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def compile(self, blocks: list[Block]) -> str:
        """Compile sibling blocks into one trimmed body string."""
        self.warnings = []
        return self._compile_list(blocks or [], parent=None)

    def compile_page(self, page: Page) -> str:
        """Compile the block tree of a page; the page itself adds no markup."""
        return self.compile(page.get("children") or [])

    def compile_block(self, block: Block, parent: Block | None = None) -> str:
        """Compile a single block (without resetting :attr:`warnings`)."""
        return self._dispatch(block, parent)

    # ------------------------------------------------------------------
    # Internal: sibling lists
    # ------------------------------------------------------------------

    def _compile_list(self, blocks: list[Block], parent: Block | None) -> str:
        parts: list[str] = []

        for list_type, group in itertools.groupby(
            blocks, key=lambda b: b.get("type") if b.get("type") in _LIST_MARKERS else None
        ):
            if list_type is None:
                parts.extend(self._dispatch(block, parent) for block in group)
            else:
                parts.append(self._render_list_group(list_type, list(group)))

        return self._separator.join(part for part in parts if part).strip()

    def _children(self, block: Block, separator: str | None = None) -> str:
        if not block.get("has_children"):
            return ""
        children = block.get("children") or []
        if separator is None:
            return self._compile_list(children, parent=block)
        return separator.join(
            part for part in (self._dispatch(child, block) for child in children) if part
        )

    def _rich_text(self, block: Block) -> str:
        data = block.get(block.get("type", ""), {})
        return self._text.render(data.get("rich_text", []), escape_html=self.is_html).strip()

    def _caption(self, data: dict[str, Any]) -> str:
        return self._text.render(data.get("caption", []), escape_html=self.is_html).strip()

    def _dispatch(self, block: Block, parent: Block | None) -> str:
        renderer = _BLOCK_RENDERERS.get(block.get("type", ""))
        if renderer is None:
            return self._render_unsupported(block)
        return renderer(self, block, parent)

    # ------------------------------------------------------------------
    # Text blocks
    # ------------------------------------------------------------------

    def _render_paragraph(self, block: Block, parent: Block | None) -> str:
        text = self._rich_text(block)
        children = self._children(block)

        if not self.is_html:
            if children:
                return f"{text}\n\n{textwrap.indent(children, '  ')}"
            return text

        text = text.replace("\n", "<br>") if text else "<br>"
        if children:
            return f"{text}\n<div {html_class('paragraph')}>{children}</div>"
        return text

    def _render_heading(self, block: Block, parent: Block | None) -> str:
        block_type = block["type"]
        level = int(block_type.rsplit("_", 1)[1]) + (1 if self._config.lower_title_level else 0)
        text = self._rich_text(block)

        if not self.is_html:
            return f"{'#' * level} {text}"

        color = _color_attr(block.get(block_type, {}).get("color"))
        return f"<h{level}{color}>{text or '<br>'}</h{level}>"

    def _render_list_group(self, list_type: str, items: list[Block]) -> str:
        if not self.is_html:
            marker = _LIST_MARKERS[list_type]
            lines: list[str] = []
            for item in items:
                line = f"{marker} {self._rich_text(item)}"
                children = self._children(item)
                if children:
                    line += "\n" + textwrap.indent(children, " " * (len(marker) + 1))
                lines.append(line)
            return "\n".join(lines)

        tag = _LIST_TAGS[list_type]
        entries: list[str] = []
        for item in items:
            color = _color_attr(item.get(list_type, {}).get("color"))
            children = self._children(item)
            entries.append(f"<li{color}>{self._rich_text(item)}{children}</li>")
        return f"<{tag}>{''.join(entries)}</{tag}>"

    def _render_to_do(self, block: Block, parent: Block | None) -> str:
        checked = bool(block.get("to_do", {}).get("checked"))
        text = self._rich_text(block)
        children = self._children(block)

        if not self.is_html:
            line = f"- [{'x' if checked else ' '}] {text}"
            if children:
                line += "\n" + textwrap.indent(children, "  ")
            return line

        checkbox = f'<input type="checkbox"{" checked" if checked else ""} disabled>'
        return f"<div {html_class('to_do')}><label>{checkbox} {text}</label>{children}</div>"

    def _render_toggle(self, block: Block, parent: Block | None) -> str:
        color = _color_attr(block.get("toggle", {}).get("color"))
        summary = self._rich_text(block)
        return f"<details{color}><summary>{summary}</summary>{self._children(block)}</details>"

    def _render_quote(self, block: Block, parent: Block | None) -> str:
        text = self._rich_text(block)
        children = self._children(block)

        if not self.is_html:
            content = f"{text}\n\n{children}" if children else text
            return "\n".join(f"> {line}".rstrip() for line in content.split("\n"))

        color = _color_attr(block.get("quote", {}).get("color"))
        return f"<blockquote{color}>{text}{children}</blockquote>"

    def _render_code(self, block: Block, parent: Block | None) -> str:
        data = block.get("code", {})
        language = data.get("language", "")
        # Notion uses "plain text" for unspecified language
        if language == "plain text":
            language = ""
        code = render_rich_text(data.get("rich_text", []), escape_html=False, mode="plain")
        return f"```{language}\n{code}\n```"

    # ------------------------------------------------------------------
    # Media blocks
    # ------------------------------------------------------------------

    def _captionize(self, content: str, caption: str) -> str:
        if not caption:
            return content
        return (
            f"<figure {html_class('figure')}>{content}"
            f"<figcaption {html_class('figcaption')}>{caption}</figcaption></figure>"
        )

    def _check_media_expiry(self, block: Block, data: dict[str, Any], url: str) -> None:
        if data.get("type") != "file" or not self._config.cache_enabled:
            return
        message = (
            "Media file stored in Notion will last only for 1 hour! "
            "Consider using link embed, or disable cache."
        )
        log.warning(
            message,
            extra={"extra_fields": {"block_id": block.get("id", ""), "block_type": block.get("type")}},
        )
        self.warnings.append(
            ConversionWarning(
                code="MEDIA_URL_EXPIRY",
                message=message,
                context={
                    "block_id": block.get("id", ""),
                    "url": url,
                    "expiry_time": (data.get("file") or {}).get("expiry_time", ""),
                },
            )
        )

    def _render_image(self, block: Block, parent: Block | None) -> str:
        data = block.get("image", {})
        url = _media_url(data)
        self._check_media_expiry(block, data, url)
        caption = self._caption(data)
        alt = html.escape(
            render_rich_text(data.get("caption", []), escape_html=False, mode="plain").strip(),
            quote=True,
        )
        is_gif = url.split("?", 1)[0].rsplit(".", 1)[-1].lower() == "gif"

        if not self.is_html and not is_gif:
            return f"![{caption}]({url})"

        img = f'<img src="{url}" alt="{alt}">'
        if is_gif and not caption:
            return f"<figure>{img}</figure>"
        return self._captionize(img, caption)

    def _render_audio(self, block: Block, parent: Block | None) -> str:
        data = block.get("audio", {})
        url = _media_url(data)
        self._check_media_expiry(block, data, url)
        audio = f'<audio {html_class("audio")} controls><source src="{url}"></audio>'
        return self._captionize(audio, self._caption(data))

    def _render_video(self, block: Block, parent: Block | None) -> str:
        data = block.get("video", {})
        url = _media_url(data)
        caption = self._caption(data)

        if data.get("type") == "file":
            self._check_media_expiry(block, data, url)
            video = f'<video {html_class("video")} controls><source src="{url}"></video>'
            return self._captionize(video, caption)

        embed_url = get_youtube_embed_url(url)
        if embed_url is not None:
            return self._captionize(_YOUTUBE_IFRAME.format(src=embed_url), caption)

        return self._comment(
            block,
            f"External video ({url}) is not supported yet: "
            "please upload video file directly or to youtube.",
            code="UNSUPPORTED_VIDEO",
        )

    def _render_embed(self, block: Block, parent: Block | None) -> str:
        data = block.get("embed", {})
        iframe = f'<iframe {html_class("embed")} src="{data.get("url", "")}"></iframe>'
        return self._captionize(iframe, self._caption(data))

    def _render_bookmark(self, block: Block, parent: Block | None) -> str:
        data = block.get("bookmark", {})
        url = data.get("url", "")
        label = self._caption(data) or url
        if self.is_html:
            return f'<a href="{url}">{label}</a>'
        return f"[{label}]({url})"

    # ------------------------------------------------------------------
    # Layout blocks
    # ------------------------------------------------------------------

    def _render_divider(self, block: Block, parent: Block | None) -> str:
        return "<hr>" if self.is_html else "---"

    def _render_column(self, block: Block, parent: Block | None) -> str:
        return f"<div {html_class('column')}>{self._children(block)}</div>"

    def _render_column_list(self, block: Block, parent: Block | None) -> str:
        return f"<div {html_class('column_list')}>{self._children(block, separator='')}</div>"

    def _render_table(self, block: Block, parent: Block | None) -> str:
        rows = "\n".join(
            part for part in (self._dispatch(row, block) for row in block.get("children") or [])
            if part
        )
        return f"<table>\n{rows}\n</table>"

    def _render_table_row(self, block: Block, parent: Block | None) -> str:
        if parent is None or parent.get("type") != "table" or not parent.get("children"):
            return ""

        table = parent.get("table", {})
        is_header_row = bool(table.get("has_row_header")) and (
            block.get("id") == parent["children"][0].get("id")
        )
        has_column_header = bool(table.get("has_column_header"))

        cells: list[str] = []
        for index, cell in enumerate(block.get("table_row", {}).get("cells", [])):
            tag = "th" if is_header_row or (has_column_header and index == 0) else "td"
            cells.append(f"<{tag}>{render_rich_text(cell)}</{tag}>")
        return f"<tr>{''.join(cells)}</tr>"

    def _render_child_page(self, block: Block, parent: Block | None) -> str:
        if not block.get("has_children"):
            return ""
        return child_page_to_html(block)

    # ------------------------------------------------------------------
    # Unsupported block fallback
    # ------------------------------------------------------------------

    def _comment(self, block: Block, comment: str, code: str) -> str:
        block_type = block.get("type", "unknown")
        log.warning(
            comment,
            extra={"extra_fields": {"block_id": block.get("id", ""), "block_type": block_type}},
        )
        self.warnings.append(
            ConversionWarning(
                code=code,
                message=comment,
                context={"block_id": block.get("id", ""), "block_type": block_type},
            )
        )
        return f"<!-- {comment} -->"

    def _render_unsupported(self, block: Block) -> str:
        block_type = block.get("type", "unknown")
        return self._comment(
            block,
            f"Block type '{block_type}' is not supported yet.",
            code="UNSUPPORTED_BLOCK",
        )


# ------------------------------------------------------------------
# Block renderer dispatch table
# ------------------------------------------------------------------

_BlockRenderer = _Callable[["BlockTreeCompiler", Block, "Block | None"], str]

_BLOCK_RENDERERS: dict[str, _BlockRenderer] = {
    BlockType.PARAGRAPH.value: BlockTreeCompiler._render_paragraph,
    BlockType.HEADING_1.value: BlockTreeCompiler._render_heading,
    BlockType.HEADING_2.value: BlockTreeCompiler._render_heading,
    BlockType.HEADING_3.value: BlockTreeCompiler._render_heading,
    # list items met outside of _compile_list (e.g. compile_block) form a one-item list
    BlockType.BULLETED_LIST_ITEM.value: lambda self, block, parent: self._render_list_group(
        "bulleted_list_item", [block]
    ),
    BlockType.NUMBERED_LIST_ITEM.value: lambda self, block, parent: self._render_list_group(
        "numbered_list_item", [block]
    ),
    BlockType.TO_DO.value: BlockTreeCompiler._render_to_do,
    BlockType.TOGGLE.value: BlockTreeCompiler._render_toggle,
    BlockType.QUOTE.value: BlockTreeCompiler._render_quote,
    BlockType.CODE.value: BlockTreeCompiler._render_code,
    BlockType.IMAGE.value: BlockTreeCompiler._render_image,
    BlockType.AUDIO.value: BlockTreeCompiler._render_audio,
    BlockType.VIDEO.value: BlockTreeCompiler._render_video,
    BlockType.EMBED.value: BlockTreeCompiler._render_embed,
    BlockType.BOOKMARK.value: BlockTreeCompiler._render_bookmark,
    BlockType.DIVIDER.value: BlockTreeCompiler._render_divider,
    BlockType.COLUMN.value: BlockTreeCompiler._render_column,
    BlockType.COLUMN_LIST.value: BlockTreeCompiler._render_column_list,
    BlockType.TABLE.value: BlockTreeCompiler._render_table,
    BlockType.TABLE_ROW.value: BlockTreeCompiler._render_table_row,
    BlockType.CHILD_PAGE.value: BlockTreeCompiler._render_child_page,
}
