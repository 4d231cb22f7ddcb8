"""Database API wrapper for the Notion API."""

from __future__ import annotations

from typing import Any

from .blocks import PAGE_SIZE
from .transport import AsyncNotionTransport


class AsyncDatabaseAPI:
    """Asynchronous wrapper for the Notion Databases API.

    Parameters
    ----------
    transport:
        A configured :class:`AsyncNotionTransport` instance.
    """

    def __init__(self, transport: AsyncNotionTransport) -> None:
        self._transport = transport

    async def retrieve(self, database_id: str) -> dict[str, Any]:
        """Retrieve the database object (schema, title, ``last_edited_time``)."""
        return await self._transport.request("GET", f"/databases/{database_id}")

    async def query(
        self,
        database_id: str,
        start_cursor: str | None = None,
        filter: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Query one page of database rows.

        Parameters
        ----------
        database_id:
            The UUID of the database.
        start_cursor:
            Cursor returned by the previous call, ``None`` for the first page.
        filter:
            Optional Notion filter object, sent verbatim.

        Returns
        -------
        dict
            The raw query response (``results``, ``next_cursor``, ``has_more``).
        """
        body: dict[str, Any] = {"page_size": PAGE_SIZE}
        if start_cursor is not None:
            body["start_cursor"] = start_cursor
        if filter is not None:
            body["filter"] = filter
        return await self._transport.request(
            "POST", f"/databases/{database_id}/query", json=body,
        )
