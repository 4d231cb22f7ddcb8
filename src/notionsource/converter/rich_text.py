"""Inline rendering: Notion rich_text arrays to HTML, Markdown or plain text.

Each run is reduced to its base content, optionally HTML-escaped, then
wrapped by a fixed annotation pipeline.  Steps run in this order, each one
wrapping the output of the previous ones (innermost first)::

    equation -> code -> bold -> italic -> strikethrough -> underline -> color -> link

A bold, linked run is therefore always ``<a href="..."><strong>...</strong></a>``,
however the annotation flags happen to be ordered in the input.  Runs are
concatenated without separators.

Base content by run type:

* ``text`` -- ``plain_text``;
* ``equation`` -- the TeX expression, turned into an image by the pipeline;
* ``mention`` of a date -- ``<time datetime="X">X</time>`` where ``X`` is the
  start, or ``start → end`` for a range;
* any other mention -- ``plain_text``.
"""

from __future__ import annotations

import html
from collections.abc import Callable
from typing import Any, Literal
from urllib.parse import quote

RenderMode = Literal["html", "markdown", "plain"]

TEX_IMAGE_URL = (
    "http://www.sciweavers.org/tex2img.php?eq={expression}"
    "&bc=White&fc=Black&im=jpg&fs=20&ff=arev&edit="
)


def tex_image_url(expression: str) -> str:
    """Return the URL of a rendered image of a TeX *expression*."""
    return TEX_IMAGE_URL.format(expression=quote(expression, safe="!~*'()"))


def _attr(value: str) -> str:
    return html.escape(value, quote=True)


# ---------------------------------------------------------------------------
# Base content
# ---------------------------------------------------------------------------

def _run_link(run: dict[str, Any]) -> str | None:
    if run.get("type", "text") != "text":
        return None
    link = (run.get("text") or {}).get("link")
    if isinstance(link, dict):
        return link.get("url") or None
    return None


def _date_mention(date: dict[str, Any], escape: bool, tagged: bool) -> str:
    start = date.get("start") or ""
    end = date.get("end")
    value = f"{start} → {end}" if end else start
    if escape:
        value = html.escape(value)
    if not tagged:
        return value
    return f'<time datetime="{value}">{value}</time>'


def _base_content(run: dict[str, Any], escape: bool, mode: str) -> str:
    run_type = run.get("type", "text")

    if run_type == "equation":
        content = (run.get("equation") or {}).get("expression", "")
    elif run_type == "mention":
        mention = run.get("mention") or {}
        if mention.get("type") == "date" and mention.get("date"):
            return _date_mention(mention["date"], escape, tagged=mode != "plain")
        content = run.get("plain_text", "")
    else:
        # API responses use "plain_text"; hand-built runs may only carry text.content.
        content = run.get("plain_text") or (run.get("text") or {}).get("content", "")

    return html.escape(content, quote=False) if escape else content


# ---------------------------------------------------------------------------
# Annotation pipeline
# ---------------------------------------------------------------------------

_Step = Callable[[str, dict[str, Any], str], str]


def _equation(content: str, run: dict[str, Any], mode: str) -> str:
    if run.get("type") != "equation":
        return content
    expression = (run.get("equation") or {}).get("expression", "")
    url = tex_image_url(expression)
    if mode == "markdown":
        return f"![{content}]({url})"
    return f'<img src="{_attr(url)}" alt="{_attr(expression)}">'


def _wrapper(flag: str, html_tags: tuple[str, str], md_marks: tuple[str, str]) -> _Step:
    def step(content: str, run: dict[str, Any], mode: str) -> str:
        if not (run.get("annotations") or {}).get(flag):
            return content
        opening, closing = html_tags if mode == "html" else md_marks
        return f"{opening}{content}{closing}"

    step.__name__ = f"_{flag}"
    return step


def _color(content: str, run: dict[str, Any], mode: str) -> str:
    color = (run.get("annotations") or {}).get("color", "default")
    if not color or color == "default":
        return content
    return f'<span data-notion-color="{_attr(color)}">{content}</span>'


def _link(content: str, run: dict[str, Any], mode: str) -> str:
    url = _run_link(run)
    if url is None:
        return content
    if mode == "markdown":
        return f"[{content}]({url})"
    return f'<a href="{_attr(url)}">{content}</a>'


PIPELINE: tuple[_Step, ...] = (
    _equation,
    _wrapper("code", ("<code>", "</code>"), ("`", "`")),
    _wrapper("bold", ("<strong>", "</strong>"), ("**", "**")),
    _wrapper("italic", ("<em>", "</em>"), ("_", "_")),
    _wrapper("strikethrough", ("<s>", "</s>"), ("~~", "~~")),
    _wrapper("underline", ("<u>", "</u>"), ("<u>", "</u>")),
    _color,
    _link,
)


def render_run(
    run: dict[str, Any],
    escape_html: bool = True,
    mode: RenderMode = "html",
) -> str:
    """Render a single rich-text run."""
    content = _base_content(run, escape_html, mode)
    if mode == "plain":
        return content
    for step in PIPELINE:
        content = step(content, run, mode)
    return content


def render_rich_text(
    runs: list[dict[str, Any]] | None,
    escape_html: bool = True,
    mode: RenderMode = "html",
) -> str:
    """Render a Notion rich_text array.

    Parameters
    ----------
    runs:
        Notion rich_text objects, in display order.
    escape_html:
        HTML-escape the base content of every run before styling.
    mode:
        ``"html"`` (tags), ``"markdown"`` (markdown marks, with ``<u>`` and
        colour spans kept as inline HTML) or ``"plain"`` (no styling).

    Returns
    -------
    str
        The concatenated rendering of all runs.
    """
    if not runs:
        return ""
    return "".join(render_run(run, escape_html, mode) for run in runs)


class RichTextRenderer:
    """A :func:`render_rich_text` bound to one output mode."""

    def __init__(self, mode: RenderMode = "html") -> None:
        self.mode = mode

    def render(self, runs: list[dict[str, Any]] | None, escape_html: bool = True) -> str:
        return render_rich_text(runs, escape_html, self.mode)

    def plain(self, runs: list[dict[str, Any]] | None) -> str:
        return render_rich_text(runs, escape_html=False, mode="plain")
