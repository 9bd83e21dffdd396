from __future__ import annotations

import io
import json
import logging
import sys
import threading
from typing import Any, cast

import pytest

from pubmed_retrieval.logging_utils import configure_logging, redact


def test_json_logging_with_redaction(monkeypatch: pytest.MonkeyPatch) -> None:
    """``configure_logging`` emits JSON output and redacts secrets."""

    stream = io.StringIO()
    monkeypatch.setattr(sys, "stderr", stream)

    configure_logging("INFO", log_format="json")

    logger = logging.getLogger("test")
    logger.info(
        "token=SECRET",
        extra={"api_key": "dont_show", "nested": {"password": "value"}, "offset": 200},
    )

    data = json.loads(stream.getvalue().strip())

    assert data["message"] == "token=***"
    assert data["level"] == "INFO"
    assert data["extra"]["api_key"] == "***"
    assert data["extra"]["nested"]["password"] == "***"
    assert data["extra"]["offset"] == 200


def test_human_logging_masks_eutils_query_string(monkeypatch: pytest.MonkeyPatch) -> None:
    stream = io.StringIO()
    monkeypatch.setattr(sys, "stderr", stream)

    configure_logging("DEBUG", log_format="human")

    logging.getLogger("pubmed_retrieval.eutils_client").debug(
        "ESearch %s",
        "https://eutils/esearch.fcgi?db=pubmed&term=asthma&api_key=abc123"
        "&email=me%40example.org&tool=pubmed-retrieval",
    )

    output = stream.getvalue()
    assert "abc123" not in output
    assert "example.org" not in output
    assert "api_key=***&email=***&tool=pubmed-retrieval" in output
    assert "term=asthma" in output


def test_configure_logging_rejects_unknown_format() -> None:
    """Unsupported log formats raise a :class:`ValueError`."""

    with pytest.raises(ValueError):
        configure_logging("INFO", log_format=cast(Any, "xml"))


def test_configure_logging_rejects_unknown_level() -> None:
    with pytest.raises(ValueError, match="Unknown log level"):
        configure_logging("CHATTY")


def test_redact_walks_nested_values() -> None:
    value = {"params": [("api_key=abc", 1)], "token": "x", "offset": 0}

    assert redact(value) == {"params": [("api_key=***", 1)], "token": "***", "offset": 0}


def test_json_records_name_the_thread_and_page_context() -> None:
    stream = io.StringIO()
    configure_logging("DEBUG", log_format="json", stream=stream)

    def _log() -> None:
        logging.getLogger("pubmed_retrieval.retriever").debug(
            "Page failed", extra={"page_offset": 200, "page_size": 100}
        )

    worker = threading.Thread(target=_log, name="pubmed-page_0")
    worker.start()
    worker.join()

    data = json.loads(stream.getvalue().strip())
    assert data["thread"] == "pubmed-page_0"
    assert data["extra"] == {"page_offset": 200, "page_size": 100}


def test_human_format_includes_thread_name() -> None:
    stream = io.StringIO()
    configure_logging("INFO", stream=stream)

    logging.getLogger("test").info("hello")

    assert "(MainThread) hello" in stream.getvalue()
