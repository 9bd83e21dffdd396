"""Interfaces of the search and fetch services used by the retriever."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol


@dataclass(frozen=True)
class SessionHandle:
    """Opaque reference to a result window stored on the history server.

    A handle is created by one search call and consumed by exactly one fetch
    call; handles are never shared between pages.
    """

    web_env: str
    query_key: str
    offset: int
    page_size: int


@dataclass(frozen=True)
class SearchResult:
    total_count: int
    session: SessionHandle | None = None


class SearchCollaborator(Protocol):
    """Reports how many records match ``query`` and opens a result window."""

    def search(self, query: str, offset: int, page_size: int) -> SearchResult:
        ...


class FetchCollaborator(Protocol):
    """Streams the EFetch document for one result window."""

    def fetch(self, session: SessionHandle) -> Iterable[bytes]:
        ...


__all__ = [
    "FetchCollaborator",
    "SearchCollaborator",
    "SearchResult",
    "SessionHandle",
]
