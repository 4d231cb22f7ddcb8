"""Property-based tests for notionsource using Hypothesis.

These tests verify invariant properties of the cache freshness rule, the
inline renderer and the batching helpers.  They complement the
example-based unit tests by exercising the code with a wide range of
randomly generated inputs.
"""

from __future__ import annotations

import html

from hypothesis import given
from hypothesis import strategies as st

from conftest import text_run
from notionsource.cache import CacheEntry, is_usable, truncate_to_minute
from notionsource.converter.rich_text import render_rich_text
from notionsource.utils.chunk import chunked
from notionsource.utils.hashing import hash_dict

# ---------------------------------------------------------------------------
# Reusable strategies
# ---------------------------------------------------------------------------

_epoch_ms_st = st.integers(min_value=0, max_value=4_102_444_800_000)

_flags = ("code", "bold", "italic", "strikethrough", "underline")

# HTML wrappers in pipeline order (innermost first).
_HTML_TAGS = {
    "code": ("<code>", "</code>"),
    "bold": ("<strong>", "</strong>"),
    "italic": ("<em>", "</em>"),
    "strikethrough": ("<s>", "</s>"),
    "underline": ("<u>", "</u>"),
}

_MD_MARKS = {
    "code": ("`", "`"),
    "bold": ("**", "**"),
    "italic": ("_", "_"),
    "strikethrough": ("~~", "~~"),
    "underline": ("<u>", "</u>"),
}

_plain_text_st = st.text(
    alphabet=st.characters(blacklist_categories=("Cs",)), min_size=1, max_size=40,
)


# ---------------------------------------------------------------------------
# Cache freshness
# ---------------------------------------------------------------------------


class TestCacheFreshnessProperties:
    @given(cached=_epoch_ms_st, edited=_epoch_ms_st, now=_epoch_ms_st)
    def test_never_usable_unless_strictly_newer(self, cached, edited, now):
        entry = CacheEntry(payload=None, cached_time=cached)
        assert is_usable(entry, edited, now) == (cached > edited)

    @given(cached=_epoch_ms_st, delta=st.integers(min_value=1, max_value=10**9), now=_epoch_ms_st)
    def test_expiry_bounds_usability(self, cached, delta, now):
        edited = cached - delta
        expires_at = cached + delta
        entry = CacheEntry(payload=None, cached_time=cached, expires_at=expires_at)
        assert is_usable(entry, edited, now) == (now <= expires_at)

    @given(epoch_ms=_epoch_ms_st)
    def test_truncation_is_minute_aligned_and_idempotent(self, epoch_ms):
        truncated = truncate_to_minute(epoch_ms)
        assert truncated % 60_000 == 0
        assert 0 <= epoch_ms - truncated < 60_000
        assert truncate_to_minute(truncated) == truncated

    @given(
        payload=st.recursive(
            st.none() | st.booleans() | st.integers() | st.text(max_size=20),
            lambda inner: st.lists(inner, max_size=4)
            | st.dictionaries(st.text(max_size=8), inner, max_size=4),
            max_leaves=10,
        ),
        cached=_epoch_ms_st,
        expires=st.none() | _epoch_ms_st,
    )
    def test_entry_bytes_preserve_fields(self, payload, cached, expires):
        entry = CacheEntry(payload=payload, cached_time=cached, expires_at=expires)
        assert CacheEntry.from_bytes(entry.to_bytes()) == entry


# ---------------------------------------------------------------------------
# Inline rendering
# ---------------------------------------------------------------------------


class TestRichTextProperties:
    @given(texts=st.lists(_plain_text_st, max_size=6))
    def test_plain_runs_concatenate(self, texts):
        runs = [text_run(t) for t in texts]
        assert render_rich_text(runs, escape_html=False, mode="plain") == "".join(texts)

    @given(texts=st.lists(_plain_text_st, max_size=6))
    def test_escaped_html_unescapes_to_source(self, texts):
        runs = [text_run(t) for t in texts]
        rendered = render_rich_text(runs, escape_html=True, mode="html")
        assert "<" not in rendered
        assert html.unescape(rendered) == "".join(texts)

    @given(
        flags=st.sets(st.sampled_from(_flags)),
        linked=st.booleans(),
        content=st.text(alphabet="abcxyz ", min_size=1, max_size=10),
    )
    def test_html_annotation_stacking_order(self, flags, linked, content):
        link = "https://example.com/x" if linked else None
        run = text_run(content, link=link, **{flag: True for flag in flags})

        expected = content
        for flag in _flags:
            if flag in flags:
                opening, closing = _HTML_TAGS[flag]
                expected = f"{opening}{expected}{closing}"
        if linked:
            expected = f'<a href="{link}">{expected}</a>'

        assert render_rich_text([run]) == expected

    @given(
        flags=st.sets(st.sampled_from(_flags)),
        content=st.text(alphabet="abcxyz", min_size=1, max_size=10),
    )
    def test_markdown_annotation_stacking_order(self, flags, content):
        run = text_run(content, link="https://example.com", **{flag: True for flag in flags})

        expected = content
        for flag in _flags:
            if flag in flags:
                opening, closing = _MD_MARKS[flag]
                expected = f"{opening}{expected}{closing}"

        assert render_rich_text([run], mode="markdown") == f"[{expected}](https://example.com)"


# ---------------------------------------------------------------------------
# Batching and hashing
# ---------------------------------------------------------------------------


class TestChunkedProperties:
    @given(items=st.lists(st.integers()), size=st.integers(min_value=1, max_value=50))
    def test_concatenation_equals_input(self, items, size):
        batches = chunked(items, size)
        assert [item for batch in batches for item in batch] == items

    @given(items=st.lists(st.integers()), size=st.integers(min_value=1, max_value=50))
    def test_batches_are_full_except_last(self, items, size):
        batches = chunked(items, size)
        assert all(len(batch) == size for batch in batches[:-1])
        if batches:
            assert 1 <= len(batches[-1]) <= size

    @given(items=st.lists(st.integers(), min_size=1))
    def test_no_size_is_one_batch(self, items):
        assert chunked(items) == [items]


class TestHashDictProperties:
    @given(d=st.dictionaries(st.text(max_size=10), st.integers(), max_size=8))
    def test_key_order_irrelevant(self, d):
        reordered = dict(reversed(list(d.items())))
        assert hash_dict(d) == hash_dict(reordered)
