"""Concurrent retrieval of every record matching a PubMed query.

Algorithm Notes
---------------
1. Ask the search service for the number of matching records using a one
   record window.
2. Refuse queries matching more than ``max_results`` records before any page
   is fetched.
3. Split the count into pages and run one task per page on a bounded thread
   pool.  Each task opens its own history server window with a fresh search
   call, streams the EFetch document and decodes it with a fresh decoder.
4. Concatenate the page results in plan order.  The first failure (in plan
   order) fails the whole retrieval; pages that have not started are
   cancelled and pages in flight stop at their next chunk.
"""

from __future__ import annotations

from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
import logging
import threading
from typing import Callable, Iterable, Iterator, List

from .collaborators import FetchCollaborator, SearchCollaborator
from .config import PubMedRetrievalConfig
from .efetch_decoder import decode_articles
from .errors import RemoteCountError, RetrievalError, RetrievalTimeoutError
from .eutils_client import EFetchClient, ESearchClient, create_http_client
from .http_client import HttpClient
from .model import PubMedArticle
from .paging import MAX_RESULTS_PER_QUERY, Page, ensure_admissible, plan_pages

LOGGER = logging.getLogger(__name__)


def _abandonable(chunks: Iterable[bytes], cancelled: threading.Event) -> Iterator[bytes]:
    """Yield ``chunks`` until ``cancelled`` is set, then close the source."""

    iterator = iter(chunks)
    try:
        for chunk in iterator:
            if cancelled.is_set():
                raise RetrievalError("Page abandoned after another page failed")
            yield chunk
    finally:
        close = getattr(iterator, "close", None)
        if close is not None:
            close()


class PubMedRetriever:
    """Retrieve and decode all records matching a query.

    Parameters
    ----------
    search_client:
        Collaborator reporting counts and opening history server windows.
    fetch_client:
        Collaborator streaming the EFetch document of a window.
    page_size:
        Maximum number of records requested per page.
    max_workers:
        Maximum number of pages in flight at the same time.
    max_results:
        Admission ceiling; larger result sets are refused.
    timeout:
        Seconds to wait for all pages before giving up. ``None`` waits
        indefinitely.
    progress_callback:
        Optional callable invoked with ``1`` whenever a page has been decoded
        successfully. It runs on the worker thread.
    """

    def __init__(
        self,
        search_client: SearchCollaborator,
        fetch_client: FetchCollaborator,
        *,
        page_size: int = 200,
        max_workers: int = 4,
        max_results: int = MAX_RESULTS_PER_QUERY,
        timeout: float | None = None,
        progress_callback: Callable[[int], None] | None = None,
    ) -> None:
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        if max_workers <= 0:
            raise ValueError(f"max_workers must be positive, got {max_workers}")
        self.search_client = search_client
        self.fetch_client = fetch_client
        self.page_size = page_size
        self.max_workers = max_workers
        self.max_results = max_results
        self.timeout = timeout
        self.progress_callback = progress_callback

    def count(self, query: str) -> int:
        """Return the number of records matching ``query``."""

        return self.search_client.search(query, 0, 1).total_count

    def retrieve(self, query: str) -> List[PubMedArticle]:
        """Return every record matching ``query`` in result order.

        Raises
        ------
        AdmissionDeniedError
            If the query matches more than ``max_results`` records.
        RemoteCountError, RemoteFetchError, MalformedDocumentError
            If a search, a fetch or the decoding of a page fails. The
            exception's ``page`` names the failing page.
        RetrievalTimeoutError
            If the pages did not complete within ``timeout`` seconds.
        """

        total = self.count(query)
        ensure_admissible(total, self.max_results)
        pages = plan_pages(total, self.page_size)
        if not pages:
            LOGGER.info("Query matched no records")
            return []
        LOGGER.info("Retrieving %d records in %d pages", total, len(pages))

        cancelled = threading.Event()
        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(pages)),
            thread_name_prefix="pubmed-page",
        )
        futures: List[Future[List[PubMedArticle]]] = []
        try:
            for page in pages:
                futures.append(executor.submit(self._retrieve_page, query, page, cancelled))

            done, not_done = wait(futures, timeout=self.timeout, return_when=FIRST_EXCEPTION)
            for future in futures:
                if future in done:
                    error = future.exception()
                    if error is not None:
                        raise error
            if not_done:
                msg = f"Retrieval did not complete within {self.timeout} seconds"
                raise RetrievalTimeoutError(msg)
        except BaseException:
            cancelled.set()
            raise
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        articles: List[PubMedArticle] = []
        for future in futures:
            articles.extend(future.result())
        LOGGER.info("Retrieved %d records", len(articles))
        return articles

    def _retrieve_page(
        self, query: str, page: Page, cancelled: threading.Event
    ) -> List[PubMedArticle]:
        try:
            result = self.search_client.search(query, page.offset, page.size)
            if result.session is None:
                raise RemoteCountError("Search service returned no session handle")
            chunks = self.fetch_client.fetch(result.session)
            articles = decode_articles(_abandonable(chunks, cancelled))
        except RetrievalError as exc:
            if exc.page is None:
                exc.page = page
            LOGGER.debug(
                "Page failed: %s",
                exc,
                extra={"page_offset": page.offset, "page_size": page.size},
            )
            raise
        LOGGER.debug(
            "Decoded %d records for page offset=%d size=%d",
            len(articles),
            page.offset,
            page.size,
        )
        if self.progress_callback is not None:
            self.progress_callback(1)
        return articles


def build_retriever(
    config: PubMedRetrievalConfig,
    http_client: HttpClient | None = None,
    *,
    progress_callback: Callable[[int], None] | None = None,
) -> PubMedRetriever:
    """Wire a :class:`PubMedRetriever` to the E-utilities over HTTP.

    Parameters
    ----------
    config:
        Validated configuration.
    http_client:
        Transport shared by the search and fetch clients. A new client is
        created from ``config`` when omitted; the caller owns closing it.
    progress_callback:
        Passed through to :class:`PubMedRetriever`.
    """

    if http_client is None:
        http_client = create_http_client(config)
    retrieval = config.retrieval
    return PubMedRetriever(
        ESearchClient.from_config(config, http_client),
        EFetchClient.from_config(config, http_client),
        page_size=retrieval.page_size,
        max_workers=retrieval.max_workers,
        timeout=retrieval.timeout_sec,
        progress_callback=progress_callback,
    )


__all__ = ["PubMedRetriever", "build_retriever"]
