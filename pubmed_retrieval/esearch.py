"""Parsing of ESearch ``eSearchResult`` documents."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import List
import xml.etree.ElementTree as ET

from .errors import RemoteCountError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ESearchResponse:
    """The parts of an ESearch reply used for paging."""

    count: int
    web_env: str | None = None
    query_key: str | None = None
    ids: List[str] = field(default_factory=list)


def _text(root: ET.Element, path: str) -> str | None:
    value = root.findtext(path)
    if value is None:
        return None
    return value.strip() or None


def parse_esearch_response(payload: str | bytes) -> ESearchResponse:
    """Parse an ESearch XML reply.

    Only the top-level ``Count`` is read; ``TranslationStack`` entries carry
    their own ``Count`` elements per search term.

    Raises
    ------
    RemoteCountError
        If the document is not XML, reports an ``ERROR`` or has no numeric
        ``Count``.
    """

    try:
        root = ET.fromstring(payload)
    except ET.ParseError as exc:
        msg = f"ESearch returned invalid XML: {exc}"
        raise RemoteCountError(msg) from exc

    error = _text(root, "ERROR")
    if error:
        raise RemoteCountError(f"ESearch reported an error: {error}")

    raw_count = _text(root, "Count")
    if raw_count is None:
        raise RemoteCountError("ESearch reply has no Count")
    try:
        count = int(raw_count)
    except ValueError as exc:
        raise RemoteCountError(f"ESearch Count {raw_count!r} is not an integer") from exc

    for warning in root.iterfind("WarningList/*"):
        if warning.text and warning.text.strip():
            LOGGER.warning("ESearch %s: %s", warning.tag, warning.text.strip())

    ids = [
        node.text.strip()
        for node in root.iterfind("IdList/Id")
        if node.text and node.text.strip()
    ]
    return ESearchResponse(
        count=count,
        web_env=_text(root, "WebEnv"),
        query_key=_text(root, "QueryKey"),
        ids=ids,
    )


__all__ = ["ESearchResponse", "parse_esearch_response"]
