"""Partition a search result count into EFetch pages.

Algorithm Notes
---------------
1. Reject counts above :data:`MAX_RESULTS_PER_QUERY` before anything is
   fetched.
2. Walk offsets ``0, page_size, 2 * page_size, ...`` up to ``total_count``.
3. Clamp the final page so the plan never reads past ``total_count``.
"""

from __future__ import annotations

from typing import List, NamedTuple

from .errors import AdmissionDeniedError

MAX_RESULTS_PER_QUERY = 2000


class Page(NamedTuple):
    """A single ``retstart``/``retmax`` window."""

    offset: int
    size: int


def plan_pages(total_count: int, page_size: int) -> List[Page]:
    """Return the pages needed to read ``total_count`` records.

    Parameters
    ----------
    total_count:
        Number of records reported by the search service.
    page_size:
        Maximum number of records per page.

    Returns
    -------
    list of :class:`Page`
        Pages ordered by offset. The list is empty when ``total_count`` is 0.

    Raises
    ------
    ValueError
        If ``total_count`` is negative or ``page_size`` is not positive.
    """

    if total_count < 0:
        msg = f"total_count must not be negative, got {total_count}"
        raise ValueError(msg)
    if page_size <= 0:
        msg = f"page_size must be positive, got {page_size}"
        raise ValueError(msg)
    return [
        Page(offset, min(page_size, total_count - offset))
        for offset in range(0, total_count, page_size)
    ]


def ensure_admissible(total_count: int, ceiling: int = MAX_RESULTS_PER_QUERY) -> None:
    """Raise :class:`AdmissionDeniedError` when ``total_count`` exceeds ``ceiling``."""

    if total_count > ceiling:
        raise AdmissionDeniedError(total_count, ceiling)


__all__ = ["MAX_RESULTS_PER_QUERY", "Page", "ensure_admissible", "plan_pages"]
