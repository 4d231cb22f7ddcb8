"""Split a list into consecutive batches of bounded size.

Used by the paginated fetcher to bound how many child fetches run at once:
each batch is gathered concurrently, batches run one after another.
"""

from __future__ import annotations

from typing import TypeVar

T = TypeVar("T")


def chunked(items: list[T], size: int | None = None) -> list[list[T]]:
    """Split *items* into batches of at most *size*, preserving order.

    Parameters
    ----------
    items:
        The full list to partition.
    size:
        Maximum number of items per batch.  ``None`` puts everything in a
        single batch.

    Returns
    -------
    list[list]
        A list of sublists.  An empty input returns an empty list (not
        ``[[]]``).

    Raises
    ------
    ValueError
        If *size* is less than 1.

    Examples
    --------
    >>> chunked([1, 2, 3, 4, 5], 2)
    [[1, 2], [3, 4], [5]]
    >>> chunked([1, 2, 3])
    [[1, 2, 3]]
    """
    if size is not None and size < 1:
        raise ValueError(f"size must be >= 1, got {size}")

    if not items:
        return []

    if size is None:
        return [list(items)]

    return [items[i : i + size] for i in range(0, len(items), size)]
