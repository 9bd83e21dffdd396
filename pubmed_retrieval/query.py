"""Request parameters for the ESearch and EFetch E-utilities."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict
from urllib.parse import urlencode

DEFAULT_BASE_URL = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
ESEARCH_ENDPOINT = "esearch.fcgi"
EFETCH_ENDPOINT = "efetch.fcgi"


@dataclass(frozen=True)
class EutilsQuery:
    """Parameters shared by an ESearch call and the EFetch calls that follow it.

    ``web_env`` and ``query_key`` are empty until a search has stored its
    result set on the history server.  ``tool``, ``email`` and ``api_key``
    identify the caller to NCBI and are only sent when set.
    """

    term: str
    db: str = "pubmed"
    retstart: int = 0
    retmax: int = 20
    web_env: str | None = None
    query_key: str | None = None
    api_key: str | None = None
    tool: str | None = None
    email: str | None = None

    def with_window(self, retstart: int, retmax: int) -> "EutilsQuery":
        """Return a copy reading ``retmax`` records from ``retstart``."""

        return replace(self, retstart=retstart, retmax=retmax)

    def with_history(self, web_env: str, query_key: str) -> "EutilsQuery":
        """Return a copy bound to a stored history server result set."""

        return replace(self, web_env=web_env, query_key=query_key)

    def _identity(self) -> Dict[str, str]:
        params: Dict[str, str] = {}
        if self.api_key:
            params["api_key"] = self.api_key
        if self.tool:
            params["tool"] = self.tool
        if self.email:
            params["email"] = self.email
        return params

    def esearch_params(self) -> Dict[str, str]:
        """Parameters for ESearch; the result set is always kept on the server."""

        params = {
            "db": self.db,
            "term": self.term,
            "retstart": str(self.retstart),
            "retmax": str(self.retmax),
            "usehistory": "y",
        }
        params.update(self._identity())
        return params

    def efetch_params(self) -> Dict[str, str]:
        """Parameters for EFetch reading one window of the stored result set.

        Raises
        ------
        ValueError
            If the query is not bound to a history server result set.
        """

        if not self.web_env or not self.query_key:
            msg = "EFetch requires WebEnv and query_key from a previous ESearch"
            raise ValueError(msg)
        params = {
            "db": self.db,
            "WebEnv": self.web_env,
            "query_key": self.query_key,
            "retstart": str(self.retstart),
            "retmax": str(self.retmax),
            "retmode": "xml",
        }
        params.update(self._identity())
        return params


def eutils_url(base_url: str, endpoint: str, params: Dict[str, str] | None = None) -> str:
    """Join ``base_url`` and ``endpoint`` and append ``params`` as a query string.

    >>> eutils_url("https://example.org/eutils/", "esearch.fcgi", {"term": "a b"})
    'https://example.org/eutils/esearch.fcgi?term=a+b'
    """

    url = f"{base_url.rstrip('/')}/{endpoint}"
    if params:
        url = f"{url}?{urlencode(params)}"
    return url


__all__ = [
    "DEFAULT_BASE_URL",
    "EFETCH_ENDPOINT",
    "ESEARCH_ENDPOINT",
    "EutilsQuery",
    "eutils_url",
]
