"""Time-based content cache over an injected key/value store.

Entries wrap a JSON-serializable payload with the time it was cached
(truncated to the minute) and an optional absolute expiry.  An entry is
*usable* for a remote object only while it is strictly newer than the
object's ``last_edited_time`` and not yet expired::

    usable = cached_time > last_edited_time and (expires_at is None or now <= expires_at)

Reads never raise: a missing, undecodable or malformed entry is a miss.
Writes are best effort: a failing store is logged and ignored, the fetched
data is still returned to the caller.

Keys are ``"{namespace}_{PREFIX}_{id}"`` (``NOTION_PAGE_<id>``), so equal
ids of different kinds never collide.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from notionsource.config import SourceConfig
from notionsource.models import CacheKind
from notionsource.observability import MetricsHook, get_logger, resolve_metrics

log = get_logger("notionsource.cache")

KIND_PREFIX: dict[CacheKind, str] = {
    CacheKind.PAGE: "PAGE",
    CacheKind.BLOCK: "BLOCK",
    CacheKind.DATABASE: "DATABASE",
}

_MINUTE_MS = 60_000


# ---------------------------------------------------------------------------
# Store protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class KeyValueStore(Protocol):
    """Byte-oriented key/value store backing the cache."""

    def get(self, key: str) -> bytes | None:
        ...

    def set(self, key: str, value: bytes) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryStore:
    """In-process :class:`KeyValueStore` backed by a dict."""

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CacheEntry:
    """One cached payload.

    Attributes
    ----------
    payload:
        The cached value (a page, a list of blocks, a list of ids).
    cached_time:
        Epoch milliseconds at which the entry was written, truncated to the
        minute.
    expires_at:
        Optional epoch milliseconds after which the entry is dead.
    """

    payload: Any
    cached_time: int
    expires_at: int | None = None

    def to_bytes(self) -> bytes:
        return json.dumps(
            {
                "payload": self.payload,
                "cached_time": self.cached_time,
                "expires_at": self.expires_at,
            },
            ensure_ascii=False,
        ).encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> CacheEntry:
        """Decode an entry.

        Raises
        ------
        ValueError
            If *raw* is not a well-formed entry.
        """
        data = json.loads(raw)
        if not isinstance(data, dict) or "payload" not in data:
            raise ValueError("cache entry is not an object with a payload")

        cached_time = data.get("cached_time")
        expires_at = data.get("expires_at")
        if not isinstance(cached_time, int) or isinstance(cached_time, bool):
            raise ValueError(f"invalid cached_time: {cached_time!r}")
        if expires_at is not None and (
            not isinstance(expires_at, int) or isinstance(expires_at, bool)
        ):
            raise ValueError(f"invalid expires_at: {expires_at!r}")

        return cls(payload=data["payload"], cached_time=cached_time, expires_at=expires_at)


def truncate_to_minute(epoch_ms: int) -> int:
    """Drop the seconds and milliseconds of an epoch-ms timestamp."""
    return epoch_ms - epoch_ms % _MINUTE_MS


def parse_notion_time(value: str | int | float | None) -> int | None:
    """Convert a Notion ISO-8601 timestamp into epoch milliseconds.

    Numbers are taken to be epoch milliseconds already.  ``None`` and
    unparseable strings return ``None``.

    >>> parse_notion_time("2024-01-02T03:04:00.000Z")
    1704164640000
    """
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return int(parsed.timestamp() * 1000)


def is_usable(entry: CacheEntry, last_edited_time: int, now: int) -> bool:
    """Whether *entry* may stand in for an object edited at *last_edited_time*.

    All arguments are epoch milliseconds.  The entry must be strictly newer
    than the edit; an entry cached in the same minute as the edit is stale.
    """
    if entry.cached_time <= last_edited_time:
        return False
    return entry.expires_at is None or now <= entry.expires_at


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

class ContentCache:
    """Typed get/set over a :class:`KeyValueStore`.

    Parameters
    ----------
    store:
        The backing store.
    namespace:
        Prefix of every key.
    max_age:
        Default lifetime, in seconds, of entries written by :meth:`set`.
        ``None`` means entries never expire (they still go stale on edit).
    clock:
        Returns the current time in epoch seconds.
    metrics:
        Optional metrics hook.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        namespace: str = "NOTION",
        max_age: float | None = None,
        clock: Callable[[], float] = time.time,
        metrics: MetricsHook | None = None,
    ) -> None:
        self._store = store
        self._namespace = namespace
        self._max_age = max_age
        self._clock = clock
        self._metrics = resolve_metrics(metrics)

    @classmethod
    def from_config(
        cls,
        config: SourceConfig,
        store: KeyValueStore | None = None,
        **kwargs: Any,
    ) -> ContentCache:
        """Build a cache for *config*, using a :class:`MemoryStore` by default."""
        return cls(
            store if store is not None else MemoryStore(),
            namespace=config.cache_namespace,
            max_age=config.cache_max_age,
            metrics=config.metrics,
            **kwargs,
        )

    def key(self, kind: CacheKind, item_id: str) -> str:
        return f"{self._namespace}_{KIND_PREFIX[CacheKind(kind)]}_{item_id}"

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    # ------------------------------------------------------------------
    # Primitive operations
    # ------------------------------------------------------------------

    def get(self, kind: CacheKind, item_id: str) -> CacheEntry | None:
        """Return the stored entry, or ``None`` on a miss of any sort."""
        key = self.key(kind, item_id)
        try:
            raw = self._store.get(key)
        except Exception as exc:
            log.warning(
                "Cache store read failed, treating as a miss",
                extra={"extra_fields": {"key": key, "error": str(exc)}},
            )
            return None
        if raw is None:
            return None

        try:
            return CacheEntry.from_bytes(raw)
        except (ValueError, TypeError, UnicodeDecodeError) as exc:
            log.warning(
                "Discarding corrupt cache entry",
                extra={"extra_fields": {"key": key, "error": str(exc)}},
            )
            return None

    def set(
        self,
        kind: CacheKind,
        item_id: str,
        payload: Any,
        max_age: float | None = None,
    ) -> CacheEntry:
        """Replace the entry for ``(kind, item_id)`` and return it.

        *max_age* (seconds) overrides the cache default for this entry.
        """
        cached_time = truncate_to_minute(self.now_ms())
        lifetime = max_age if max_age is not None else self._max_age
        expires_at = cached_time + int(lifetime * 1000) if lifetime is not None else None
        entry = CacheEntry(payload=payload, cached_time=cached_time, expires_at=expires_at)

        key = self.key(kind, item_id)
        try:
            self._store.set(key, entry.to_bytes())
        except Exception as exc:
            log.warning(
                "Cache store write failed",
                extra={"extra_fields": {"key": key, "error": str(exc)}},
            )
        return entry

    def delete(self, kind: CacheKind, item_id: str) -> None:
        key = self.key(kind, item_id)
        try:
            self._store.delete(key)
        except Exception as exc:
            log.warning(
                "Cache store delete failed",
                extra={"extra_fields": {"key": key, "error": str(exc)}},
            )

    # ------------------------------------------------------------------
    # Freshness
    # ------------------------------------------------------------------

    def get_if_fresh(
        self,
        kind: CacheKind,
        item_id: str,
        last_edited_time: str | int | None,
    ) -> Any | None:
        """Return the cached payload if it is usable, else ``None``.

        *last_edited_time* may be a Notion timestamp string or epoch ms.
        An unknown edit time never validates an entry.
        """
        kind = CacheKind(kind)
        tags = {"kind": kind.value}
        fields = {"kind": kind.value, "id": item_id}

        entry = self.get(kind, item_id)
        if entry is None:
            log.info("Cache miss", extra={"extra_fields": {**fields, "reason": "empty"}})
            self._metrics.increment("notionsource.cache_misses_total", tags=tags)
            return None

        edited_ms = parse_notion_time(last_edited_time)
        if edited_ms is None or entry.cached_time <= edited_ms:
            log.info(
                f"{kind.value} {item_id} is updated, refetching",
                extra={"extra_fields": {**fields, "reason": "edited"}},
            )
            self._metrics.increment("notionsource.cache_misses_total", tags=tags)
            return None

        if not is_usable(entry, edited_ms, self.now_ms()):
            log.info(
                f"Cache of {kind.value} {item_id} is outdated, refetching",
                extra={"extra_fields": {**fields, "reason": "expired"}},
            )
            self._metrics.increment("notionsource.cache_misses_total", tags=tags)
            return None

        self._metrics.increment("notionsource.cache_hits_total", tags=tags)
        return entry.payload
