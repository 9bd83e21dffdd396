"""Exceptions raised while retrieving and decoding PubMed records."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .paging import Page


class RetrievalError(RuntimeError):
    """Base class for every failure reported by a retrieval.

    Parameters
    ----------
    message:
        Human readable description of the failure.
    page:
        The planned page the failure belongs to, when it is page specific.
    """

    def __init__(self, message: str, *, page: "Page | None" = None) -> None:
        super().__init__(message)
        self.page = page

    def __str__(self) -> str:
        message = super().__str__()
        if self.page is None:
            return message
        return f"{message} (page offset={self.page.offset}, size={self.page.size})"


class AdmissionDeniedError(RetrievalError):
    """Raised when a query matches more records than the admission ceiling."""

    def __init__(self, total_count: int, ceiling: int) -> None:
        super().__init__(
            f"Query matched {total_count} records which exceeds the limit of {ceiling}"
        )
        self.total_count = total_count
        self.ceiling = ceiling


class RemoteCountError(RetrievalError):
    """The search service failed to report a count or a session handle."""


class RemoteFetchError(RetrievalError):
    """The fetch service failed to deliver a page."""


class MalformedDocumentError(RetrievalError):
    """A fetched document is not well formed or cannot be decoded."""


class RetrievalTimeoutError(RetrievalError):
    """The retrieval did not complete before its deadline."""


__all__ = [
    "AdmissionDeniedError",
    "MalformedDocumentError",
    "RemoteCountError",
    "RemoteFetchError",
    "RetrievalError",
    "RetrievalTimeoutError",
]
