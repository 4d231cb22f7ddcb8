"""Page property normalization.

:func:`normalize_property` reduces any Notion property value to a small set
of portable shapes (primitives, :class:`~notionsource.models.NotionDate`,
:class:`~notionsource.models.NotionFile`,
:class:`~notionsource.models.NotionPerson` or lists of these).  It never
raises: property kinds this module does not know log a warning and become
``None``, so a schema change on the Notion side cannot break a build.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from notionsource.config import default_key_converter, default_value_converter
from notionsource.models import (
    NormalizedValue,
    NotionDate,
    NotionFile,
    NotionPerson,
    PropertyContext,
)
from notionsource.observability import get_logger

from .rich_text import render_rich_text

log = get_logger("notionsource.properties")

# Kinds whose payload is already a JSON scalar.
_SCALAR_KINDS = frozenset({
    "number",
    "checkbox",
    "url",
    "email",
    "phone_number",
    "created_time",
    "last_edited_time",
})


def _plain(runs: list[dict[str, Any]] | None) -> str:
    return render_rich_text(runs, escape_html=False, mode="plain")


def normalize_date(date: dict[str, Any] | None) -> NotionDate | None:
    if not date or not date.get("start"):
        return None
    return NotionDate(
        start=date["start"],
        end=date.get("end"),
        time_zone=date.get("time_zone"),
    )


def normalize_user(user: dict[str, Any] | None) -> NotionPerson | None:
    """Extract ``{name, avatar, email}`` from a Notion user object.

    A bot installed by a user stands for that user.  Workspace bots and
    users the integration cannot see (no ``type``) yield ``None``.
    """
    if not user or not user.get("type"):
        return None

    if user["type"] == "person":
        return NotionPerson(
            name=user.get("name"),
            avatar=user.get("avatar_url"),
            email=(user.get("person") or {}).get("email"),
        )

    owner = (user.get("bot") or {}).get("owner") or {}
    if owner.get("type") == "user":
        return normalize_user(owner.get("user"))
    return None


def normalize_file(file: dict[str, Any]) -> NotionFile | None:
    file_type = file.get("type")
    if file_type not in ("external", "file"):
        log.warning(
            f"Unknown file type {file_type!r} detected",
            extra={"extra_fields": {"file_type": file_type}},
        )
        return None
    return NotionFile(name=file.get("name"), url=(file.get(file_type) or {}).get("url"))


def _normalize_formula(formula: dict[str, Any]) -> NormalizedValue:
    kind = formula.get("type")
    if kind in ("string", "number", "boolean"):
        return formula.get(kind)
    if kind == "date":
        return normalize_date(formula.get("date"))
    log.warning(
        f"Unknown formula type {kind!r} detected",
        extra={"extra_fields": {"formula_type": kind}},
    )
    return None


def _normalize_rollup(rollup: dict[str, Any]) -> NormalizedValue:
    kind = rollup.get("type")
    if kind == "number":
        return rollup.get("number")
    if kind == "date":
        return normalize_date(rollup.get("date"))
    if kind == "array":
        return [normalize_property(item) for item in rollup.get("array") or []]
    log.warning(
        f"Unknown rollup type {kind!r} detected",
        extra={"extra_fields": {"rollup_type": kind}},
    )
    return None


def _normalize_unique_id(unique_id: dict[str, Any]) -> int | None:
    return unique_id.get("number")


def normalize_property(prop: dict[str, Any]) -> NormalizedValue:
    """Normalize one Notion property value.

    Parameters
    ----------
    prop:
        A Notion property object, ``{"type": kind, kind: payload, ...}``.

    Returns
    -------
    NormalizedValue
        See the module docstring.  Unknown kinds return ``None``.
    """
    kind = prop.get("type")

    if kind in ("title", "rich_text"):
        return _plain(prop.get(kind))
    if kind in _SCALAR_KINDS:
        return prop.get(kind)
    if kind in ("select", "status"):
        option = prop.get(kind)
        return option.get("name") if option else None
    if kind == "multi_select":
        return [option["name"] for option in prop.get("multi_select") or [] if option.get("name")]
    if kind == "date":
        return normalize_date(prop.get("date"))
    if kind == "people":
        people = (normalize_user(user) for user in prop.get("people") or [])
        return [person for person in people if person is not None]
    if kind in ("created_by", "last_edited_by"):
        return normalize_user(prop.get(kind))
    if kind == "files":
        files = (normalize_file(file) for file in prop.get("files") or [])
        return [file for file in files if file is not None]
    if kind == "formula":
        return _normalize_formula(prop.get("formula") or {})
    if kind == "rollup":
        return _normalize_rollup(prop.get("rollup") or {})
    if kind == "unique_id":
        return _normalize_unique_id(prop.get("unique_id") or {})
    if kind == "relation":
        return [item["id"] for item in prop.get("relation") or [] if item.get("id")]

    log.warning(
        f"Property type {kind!r} is not supported yet",
        extra={"extra_fields": {"property_type": kind}},
    )
    return None


def page_to_properties(
    page: dict[str, Any],
    key_converter: Callable[[PropertyContext], str] = default_key_converter,
    value_converter: Callable[[PropertyContext], Any] = default_value_converter,
) -> dict[str, Any]:
    """Normalize and convert every property of *page*.

    Each property is normalized, then passed to the converters as a
    :class:`PropertyContext`; the returned mapping is
    ``{key_converter(ctx): value_converter(ctx)}`` in page order.
    """
    properties: dict[str, Any] = {}
    for name, prop in (page.get("properties") or {}).items():
        ctx = PropertyContext(
            name=name,
            type=prop.get("type", ""),
            value=normalize_property(prop),
            raw=prop,
        )
        properties[key_converter(ctx)] = value_converter(ctx)
    return properties


def get_page_title(page: dict[str, Any]) -> str:
    """Return the plain text of the page's ``title`` property, or ``""``."""
    for prop in (page.get("properties") or {}).values():
        if prop.get("type") == "title":
            return _plain(prop.get("title"))
    return ""
