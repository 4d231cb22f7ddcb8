"""Page API wrapper for the Notion API.

Provides :class:`AsyncPageAPI`, a thin wrapper around the ``/pages``
endpoints.  All HTTP concerns are delegated to the transport; retries are
applied by the caller through the fetcher.
"""

from __future__ import annotations

from typing import Any

from .transport import AsyncNotionTransport


def build_rich_text_property(value: str, url: str | None = None) -> dict[str, Any]:
    """Build a ``rich_text`` property payload holding one plain run.

    Parameters
    ----------
    value:
        Text content of the run.
    url:
        Optional link attached to the run.
    """
    link = {"url": url} if url else None
    return {
        "type": "rich_text",
        "rich_text": [
            {
                "type": "text",
                "text": {"content": value, "link": link},
                "annotations": {
                    "bold": False,
                    "italic": False,
                    "strikethrough": False,
                    "underline": False,
                    "code": False,
                    "color": "default",
                },
            }
        ],
    }


class AsyncPageAPI:
    """Asynchronous wrapper for the Notion Pages API.

    Parameters
    ----------
    transport:
        A configured :class:`AsyncNotionTransport` instance.
    """

    def __init__(self, transport: AsyncNotionTransport) -> None:
        self._transport = transport

    async def retrieve(self, page_id: str) -> dict[str, Any]:
        """Retrieve a page by its ID.

        Parameters
        ----------
        page_id:
            The UUID of the page to retrieve (with or without hyphens).

        Returns
        -------
        dict
            The full page object (without block content).
        """
        return await self._transport.request("GET", f"/pages/{page_id}")

    async def update_property(
        self,
        page_id: str,
        key: str,
        value: str,
        url: str | None = None,
    ) -> dict[str, Any]:
        """Overwrite one property of a page with a single rich-text run.

        Parameters
        ----------
        page_id:
            The UUID of the page to update.
        key:
            Property name.
        value:
            New text content.
        url:
            Optional link for the run.

        Returns
        -------
        dict
            The updated page object.
        """
        body = {"properties": {key: build_rich_text_property(value, url)}}
        return await self._transport.request("PATCH", f"/pages/{page_id}", json=body)
