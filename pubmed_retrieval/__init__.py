"""Retrieval of PubMed records through the NCBI E-utilities.

The package searches PubMed with ESearch, fetches the matching records page
by page with EFetch and decodes the ``PubmedArticleSet`` XML into the
dataclasses of :mod:`pubmed_retrieval.model`.  The entry point for library
use is :func:`pubmed_retrieval.retriever.build_retriever`.
"""

__all__ = [
    "collaborators",
    "config",
    "efetch_decoder",
    "errors",
    "esearch",
    "eutils_client",
    "http_client",
    "logging_utils",
    "model",
    "paging",
    "query",
    "retriever",
]
