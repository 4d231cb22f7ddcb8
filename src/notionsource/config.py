"""Configuration for notionsource.

:class:`SourceConfig` captures every tuneable knob of an ingestion run.  It
is resolved once at the entry point and passed to each component, so no
component assembles its own defaults.

Slug generation is described by :class:`SlugOptions`; its generator returns
a :class:`SlugValue`.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from notionsource.models import NormalizedValue, PropertyContext


def default_key_converter(ctx: PropertyContext) -> str:
    """Replace spaces in the property name with underscores."""
    return ctx.name.replace(" ", "_")


def default_value_converter(ctx: PropertyContext) -> NormalizedValue:
    """Return the normalized value unchanged."""
    return ctx.value


# ---------------------------------------------------------------------------
# Slug options
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SlugValue:
    """A generated slug and where to write it back.

    Attributes
    ----------
    notion_key:
        Name of the Notion property the slug is written to.
    value:
        The slug text.
    url:
        Optional link attached to the written rich-text run.
    """

    notion_key: str
    value: str
    url: str | None = None


@dataclass(frozen=True)
class SlugOptions:
    """Slug policy.

    Attributes
    ----------
    key:
        Key of the slug in the *converted* property mapping (after the key
        converter has run).
    generator:
        ``generator(properties, page) -> SlugValue``.  Called only for pages
        whose slug property is empty.  ``None`` disables back-writes and
        slug handling entirely.
    """

    key: str
    generator: Callable[[dict[str, Any], dict[str, Any]], SlugValue] | None = None


# ---------------------------------------------------------------------------
# Configuration dataclass
# ---------------------------------------------------------------------------

@dataclass
class SourceConfig:
    """Complete configuration for an ingestion run.

    Parameters
    ----------
    token:
        Notion integration token.  **Required.**  Never logged.
    database_id:
        The database whose pages are ingested.
    notion_version:
        Value of the ``Notion-Version`` header sent with every request.
    base_url:
        API root URL.  Override for proxy or testing environments.
    filter:
        Optional database query filter, sent verbatim.
    output_format:
        ``"html"`` or ``"markdown"`` body output.
    lower_title_level:
        Render Notion ``heading_N`` as level ``N + 1`` so that the document
        title can own level 1.
    props_to_frontmatter:
        Prefix the body with a YAML preamble of the normalized properties.
    cache_enabled:
        Use the content cache for pages and block subtrees.
    cache_max_age:
        Optional absolute lifetime of a cache entry, in seconds.
    cache_namespace:
        Prefix of every cache key.
    use_cache_for_database:
        Also cache the list of page ids of the database, validated against
        the database's own ``last_edited_time``.
    chunk_size:
        Maximum number of concurrent child fetches per result page.
        ``None`` fetches a whole result page at once.
    slug_options:
        Optional slug policy (see :class:`SlugOptions`).
    key_converter / value_converter:
        Pure functions applied to every normalized property before it is
        emitted.
    refresh_interval:
        Seconds between periodic re-ingestion passes.  ``None`` disables it.
    timeout_seconds:
        HTTP request timeout.  A timeout is retried like any other
        transient failure.
    retry_max_attempts:
        Optional cap on attempts per request.  ``None`` retries forever.
    retry_max_elapsed:
        Optional cap, in seconds, on time spent retrying one request.
    metrics:
        Optional :class:`~notionsource.observability.MetricsHook`.
    """

    # ── Core ────────────────────────────────────────────────────────────
    token: str = ""

    database_id: str = ""

    notion_version: str = "2022-06-28"

    base_url: str = "https://api.notion.com/v1"

    filter: dict[str, Any] | None = None

    # ── Output ──────────────────────────────────────────────────────────
    output_format: Literal["html", "markdown"] = "html"

    lower_title_level: bool = True

    props_to_frontmatter: bool = True

    # ── Cache ───────────────────────────────────────────────────────────
    cache_enabled: bool = True

    cache_max_age: float | None = None

    cache_namespace: str = "NOTION"

    use_cache_for_database: bool = False

    # ── Fetching ────────────────────────────────────────────────────────
    chunk_size: int | None = None

    timeout_seconds: float = 30.0

    retry_max_attempts: int | None = None

    retry_max_elapsed: float | None = None

    # ── Properties & slug ───────────────────────────────────────────────
    slug_options: SlugOptions | None = None

    key_converter: Callable[[PropertyContext], str] = default_key_converter

    value_converter: Callable[[PropertyContext], Any] = default_value_converter

    # ── Scheduling ──────────────────────────────────────────────────────
    refresh_interval: float | None = None

    # ── Observability ──────────────────────────────────────────────────
    metrics: Any | None = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        from urllib.parse import urlparse

        parsed = urlparse(self.base_url)
        if parsed.scheme == "http" and parsed.hostname not in (
            "localhost",
            "127.0.0.1",
            "::1",
        ):
            raise ValueError(
                f"base_url uses insecure HTTP for non-local host '{parsed.hostname}'. "
                "Use HTTPS to protect your API token, or target localhost for testing."
            )

        if self.output_format not in ("html", "markdown"):
            raise ValueError(f"output_format must be 'html' or 'markdown', got {self.output_format!r}")
        if self.chunk_size is not None and self.chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {self.chunk_size}")
        if self.cache_max_age is not None and self.cache_max_age <= 0:
            raise ValueError(f"cache_max_age must be > 0, got {self.cache_max_age}")
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {self.timeout_seconds}")
        if self.retry_max_attempts is not None and self.retry_max_attempts < 1:
            raise ValueError(f"retry_max_attempts must be >= 1, got {self.retry_max_attempts}")
        if self.retry_max_elapsed is not None and self.retry_max_elapsed <= 0:
            raise ValueError(f"retry_max_elapsed must be > 0, got {self.retry_max_elapsed}")
        if self.refresh_interval is not None and self.refresh_interval <= 0:
            raise ValueError(f"refresh_interval must be > 0, got {self.refresh_interval}")

    def __repr__(self) -> str:
        """Mask the token to prevent accidental credential leakage."""
        parts: list[str] = []
        for f in dataclasses.fields(self):
            val = getattr(self, f.name)
            if f.name == "token":
                masked = f"...{val[-4:]}" if len(val) >= 4 else "****"
                parts.append(f"token='{masked}'")
            else:
                parts.append(f"{f.name}={val!r}")
        return f"SourceConfig({', '.join(parts)})"
