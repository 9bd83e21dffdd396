"""Command line interface for retrieving PubMed records for a query.

Records are written as a JSON array, either to ``--output`` or to standard
output.  Logs and the progress bar go to standard error.

Algorithm Notes
---------------
1. Parse command line options and configure logging.
2. Load the ``pubmed_retrieval`` configuration section and apply command
   line overrides.
3. Either report the number of matching records (``--count-only``) or
   retrieve and decode every record page by page.
4. Serialise the records into UTF-8 encoded JSON.

Exit status is ``0`` on success, ``2`` when the query matches too many
records and ``1`` for any other failure.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Sequence, TextIO

from tqdm.auto import tqdm

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pubmed_retrieval.config import (  # noqa: E402
    PubMedRetrievalConfig,
    RetrievalSection,
    load_config,
)
from pubmed_retrieval.errors import AdmissionDeniedError, RetrievalError  # noqa: E402
from pubmed_retrieval.eutils_client import create_http_client  # noqa: E402
from pubmed_retrieval.logging_utils import configure_logging  # noqa: E402
from pubmed_retrieval.retriever import build_retriever  # noqa: E402

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_ADMISSION_DENIED = 2


def _build_parser() -> argparse.ArgumentParser:
    """Return the command line parser used by :func:`main`."""

    parser = argparse.ArgumentParser(
        description="Retrieve PubMed records matching a query and write them as JSON.",
    )
    parser.add_argument("--query", required=True, help="PubMed search term.")
    parser.add_argument(
        "--config",
        help=(
            "YAML file with a 'pubmed_retrieval' section. Built-in defaults are"
            " used when omitted."
        ),
    )
    parser.add_argument(
        "--output",
        help="Destination JSON file. Records are written to stdout when omitted.",
    )
    parser.add_argument(
        "--count-only",
        action="store_true",
        help="Only print the number of matching records.",
    )
    parser.add_argument(
        "--page-size", type=int, help="Records requested per EFetch call."
    )
    parser.add_argument(
        "--max-workers", type=int, help="Maximum number of pages fetched concurrently."
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Seconds to wait for all pages before giving up.",
    )
    parser.add_argument(
        "--log-level",
        help="Logging level (e.g. INFO, DEBUG). Overrides the configuration.",
    )
    parser.add_argument(
        "--log-format",
        choices=["human", "json"],
        help="Logging output format. Overrides the configuration.",
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable the progress bar.",
    )
    return parser


def _apply_cli_overrides(
    config: PubMedRetrievalConfig, args: argparse.Namespace
) -> PubMedRetrievalConfig:
    """Return ``config`` with retrieval settings taken from ``args``."""

    overrides: Dict[str, Any] = {}
    if args.page_size is not None:
        overrides["page_size"] = args.page_size
    if args.max_workers is not None:
        overrides["max_workers"] = args.max_workers
    if args.timeout is not None:
        overrides["timeout_sec"] = args.timeout
    if not overrides:
        return config
    retrieval = RetrievalSection.model_validate(
        {**config.retrieval.model_dump(), **overrides}
    )
    return config.model_copy(update={"retrieval": retrieval})


def _write_records(records: List[Dict[str, Any]], handle: TextIO) -> None:
    json.dump(records, handle, ensure_ascii=False, indent=2)
    handle.write("\n")


def main(argv: Sequence[str] | None = None) -> int:
    """Program entry point returning an exit status code."""

    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level or "INFO", log_format=args.log_format or "human")

    try:
        config = _apply_cli_overrides(load_config(args.config), args)
    except (FileNotFoundError, ValueError) as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return EXIT_FAILURE
    if args.log_level is None or args.log_format is None:
        configure_logging(
            args.log_level or config.logging.level,
            log_format=args.log_format or config.logging.format,
        )

    with create_http_client(config) as client:
        if args.count_only:
            retriever = build_retriever(config, client)
            try:
                total = retriever.count(args.query)
            except RetrievalError as exc:
                LOGGER.error("Count failed: %s", exc)
                return EXIT_FAILURE
            print(total)
            return EXIT_OK

        with tqdm(desc="pubmed pages", unit="page", disable=args.no_progress) as pbar:
            retriever = build_retriever(config, client, progress_callback=pbar.update)
            try:
                articles = retriever.retrieve(args.query)
            except AdmissionDeniedError as exc:
                LOGGER.error("%s; narrow the query", exc)
                return EXIT_ADMISSION_DENIED
            except RetrievalError as exc:
                LOGGER.error("Retrieval failed: %s", exc)
                return EXIT_FAILURE

    records = [article.to_dict() for article in articles]
    if args.output:
        output_path = Path(args.output)
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with output_path.open("w", encoding="utf-8") as handle:
                _write_records(records, handle)
        except OSError as exc:
            LOGGER.error("Failed to write output %s: %s", output_path, exc)
            return EXIT_FAILURE
        LOGGER.info("Wrote %d records to %s", len(records), output_path)
    else:
        _write_records(records, sys.stdout)
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
