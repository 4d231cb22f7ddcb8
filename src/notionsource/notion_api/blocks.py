"""Block API wrapper for the Notion API.

:class:`AsyncBlockAPI` returns *one* page of children per call; walking the
cursor chain is left to :class:`~notionsource.notion_api.fetcher.PaginatedFetcher`
so that each page request is retried on its own.
"""

from __future__ import annotations

from typing import Any

from .transport import AsyncNotionTransport

PAGE_SIZE = 100
"""Largest page size the Notion API accepts for list endpoints."""


class AsyncBlockAPI:
    """Asynchronous wrapper for the Notion Blocks API.

    Parameters
    ----------
    transport:
        A configured :class:`AsyncNotionTransport` instance.
    """

    def __init__(self, transport: AsyncNotionTransport) -> None:
        self._transport = transport

    async def list_children(
        self,
        block_id: str,
        start_cursor: str | None = None,
    ) -> dict[str, Any]:
        """List one page of children of a block or page.

        Parameters
        ----------
        block_id:
            The UUID of the parent block (or page).
        start_cursor:
            Cursor returned by the previous call, ``None`` for the first page.

        Returns
        -------
        dict
            The raw list response (``results``, ``next_cursor``, ``has_more``).
        """
        params: dict[str, Any] = {"page_size": PAGE_SIZE}
        if start_cursor is not None:
            params["start_cursor"] = start_cursor
        return await self._transport.request(
            "GET", f"/blocks/{block_id}/children", params=params,
        )
