"""ESearch and EFetch clients backed by :class:`~pubmed_retrieval.http_client.HttpClient`.

Algorithm Notes
---------------
1. :class:`ESearchClient` runs ESearch with ``usehistory=y`` for one
   ``retstart``/``retmax`` window and returns the total count together with
   the ``WebEnv``/``query_key`` pair identifying the stored result set.
2. :class:`EFetchClient` requests that window as XML with ``stream=True`` and
   yields the body in chunks so the decoder can start before the download
   finishes.
3. Transport failures and HTTP error statuses are converted into
   :class:`~pubmed_retrieval.errors.RemoteCountError` and
   :class:`~pubmed_retrieval.errors.RemoteFetchError` respectively.
"""

from __future__ import annotations

from contextlib import closing
from dataclasses import replace
import logging
from typing import Iterator, Type, TypeVar

import requests

from .collaborators import SearchResult, SessionHandle
from .config import PubMedRetrievalConfig
from .errors import RemoteCountError, RemoteFetchError
from .esearch import parse_esearch_response
from .http_client import HttpClient
from .query import (
    DEFAULT_BASE_URL,
    EFETCH_ENDPOINT,
    ESEARCH_ENDPOINT,
    EutilsQuery,
    eutils_url,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024

E = TypeVar("E", bound="_EutilsEndpoint")


def create_http_client(config: PubMedRetrievalConfig) -> HttpClient:
    """Return an :class:`HttpClient` configured from ``config``."""

    return HttpClient(
        timeout=config.network.timeout_sec,
        max_retries=config.network.max_retries,
        rps=config.rate_limit.rps,
        backoff_multiplier=config.network.backoff_multiplier,
        retry_penalty_seconds=config.network.retry_penalty_sec,
    )


class _EutilsEndpoint:
    """State shared by the E-utilities clients."""

    endpoint: str

    def __init__(
        self,
        client: HttpClient,
        *,
        base_url: str = DEFAULT_BASE_URL,
        db: str = "pubmed",
        api_key: str | None = None,
        tool: str | None = None,
        email: str | None = None,
    ) -> None:
        self.client = client
        self.base_url = base_url
        self.url = eutils_url(base_url, self.endpoint)
        self._template = EutilsQuery(
            term="", db=db, api_key=api_key, tool=tool, email=email
        )

    @classmethod
    def from_config(cls: Type[E], config: PubMedRetrievalConfig, client: HttpClient) -> E:
        """Build the client from the ``eutils`` configuration section."""

        eutils = config.eutils
        return cls(
            client,
            base_url=eutils.base_url,
            db=eutils.db,
            api_key=eutils.effective_api_key(),
            tool=eutils.tool,
            email=eutils.email,
        )


class ESearchClient(_EutilsEndpoint):
    """Count and session collaborator calling ``esearch.fcgi``."""

    endpoint = ESEARCH_ENDPOINT

    def search(self, query: str, offset: int, page_size: int) -> SearchResult:
        """Run ESearch for ``query`` and open the window ``[offset, offset + page_size)``.

        Raises
        ------
        RemoteCountError
            If the request fails, the service answers with an error status or
            the reply cannot be parsed.
        """

        params = (
            replace(self._template, term=query)
            .with_window(offset, page_size)
            .esearch_params()
        )
        LOGGER.debug("ESearch %s", eutils_url(self.base_url, self.endpoint, params))
        try:
            resp = self.client.get(self.url, params=params)
        except requests.RequestException as exc:
            raise RemoteCountError(f"ESearch request failed: {exc}") from exc
        if resp.status_code >= 400:
            msg = f"ESearch returned HTTP {resp.status_code}: {resp.text[:200]}"
            raise RemoteCountError(msg)

        parsed = parse_esearch_response(resp.content)
        session = None
        if parsed.web_env and parsed.query_key:
            session = SessionHandle(
                web_env=parsed.web_env,
                query_key=parsed.query_key,
                offset=offset,
                page_size=page_size,
            )
        return SearchResult(total_count=parsed.count, session=session)


class EFetchClient(_EutilsEndpoint):
    """Fetch collaborator streaming ``efetch.fcgi`` XML for a session window."""

    endpoint = EFETCH_ENDPOINT
    chunk_size = DEFAULT_CHUNK_SIZE

    def fetch(self, session: SessionHandle) -> Iterator[bytes]:
        """Yield the EFetch document for ``session`` in byte chunks.

        The request is sent when iteration starts and the connection is
        released once the generator is exhausted or closed.

        Raises
        ------
        RemoteFetchError
            If the request fails, the service answers with an error status or
            the connection breaks while streaming.
        """

        params = (
            self._template.with_history(session.web_env, session.query_key)
            .with_window(session.offset, session.page_size)
            .efetch_params()
        )
        LOGGER.debug("EFetch %s", eutils_url(self.base_url, self.endpoint, params))
        try:
            resp = self.client.get(self.url, params=params, stream=True)
        except requests.RequestException as exc:
            raise RemoteFetchError(f"EFetch request failed: {exc}") from exc

        with closing(resp):
            if resp.status_code >= 400:
                raise RemoteFetchError(f"EFetch returned HTTP {resp.status_code}")
            try:
                for chunk in resp.iter_content(chunk_size=self.chunk_size):
                    if chunk:
                        yield chunk
            except requests.RequestException as exc:
                raise RemoteFetchError(f"EFetch stream interrupted: {exc}") from exc


__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "EFetchClient",
    "ESearchClient",
    "create_http_client",
]
