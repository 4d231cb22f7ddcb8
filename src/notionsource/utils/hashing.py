"""MD5 helpers for content digests and derived cache keys.

Used to give every emitted document a stable ``content_digest`` of its raw
page tree and to derive cache ids from query filters.  They are **not**
used for security purposes.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def md5_hash(data: str) -> str:
    """Return the hex-encoded MD5 digest of *data* (UTF-8 encoded).

    >>> md5_hash("hello")
    '5d41402abc4b2a76b9719d911017c592'
    """
    return hashlib.md5(data.encode("utf-8")).hexdigest()


def hash_dict(d: dict[str, Any]) -> str:
    """Return the MD5 of *d* serialized as sorted-key JSON.

    Key order does not affect the result.

    >>> hash_dict({"b": 2, "a": 1}) == hash_dict({"a": 1, "b": 2})
    True
    """
    return md5_hash(json.dumps(d, sort_keys=True, ensure_ascii=False, default=str))
