"""Logging setup for the retrieval CLI with JSON output and secret redaction.

Two output formats are supported: human readable lines and one JSON object per
record.  Both pass through :class:`SecretRedactingFilter`, which masks NCBI API
keys, tokens, passwords and contact e-mail addresses wherever they show up in
messages (typically inside logged E-utilities URLs) or in ``extra`` context.
Page workers run on named threads (``pubmed-page_N``), and the thread name is
part of every record so interleaved page logs can be told apart.
"""

from __future__ import annotations

import json
import logging
import logging.config
import re
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from typing import Any, Dict, Literal, TextIO

__all__ = [
    "JsonFormatter",
    "SecretRedactingFilter",
    "configure_logging",
    "redact",
]

LogFormat = Literal["human", "json"]
LOG_FORMATS = ("human", "json")
MASK = "***"

HUMAN_FORMAT = "%(asctime)s %(levelname)s [%(name)s] (%(threadName)s) %(message)s"
HUMAN_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

_SECRET_NAMES = r"(?:email|password|secret|(?:access[_-]?|auth[_-]?)?token|api[_-]?key)"
# ``name=value`` or ``name: value``, optionally quoted. ``&`` ends a value so
# each parameter of a query string is masked on its own.
_ASSIGNMENT = re.compile(
    rf"(?i)(?P<prefix>\b{_SECRET_NAMES}\b[\"']?\s*[:=]\s*[\"']?)[^\"',;&\s]+"
)
_SECRET_ATTRIBUTE = re.compile(rf"(?i)^{_SECRET_NAMES}$")

# Attributes every LogRecord carries; anything else came in through ``extra``.
_STANDARD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"asctime", "message", "taskName"}
_UNREDACTED_ATTRIBUTES = frozenset({"msg", "args", "exc_info", "stack_info"})


def redact(value: Any) -> Any:
    """Return ``value`` with credentials replaced by ``"***"``.

    Strings are scanned for ``name=value`` assignments.  Mappings are walked
    recursively and values stored under a secret-looking key are masked
    whole.  Lists and tuples are walked item by item; other values are
    returned unchanged.
    """

    if isinstance(value, str):
        return _ASSIGNMENT.sub(lambda match: match.group("prefix") + MASK, value)
    if isinstance(value, Mapping):
        return {
            key: MASK
            if isinstance(key, str) and _SECRET_ATTRIBUTE.match(key)
            else redact(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [redact(item) for item in value]
    if isinstance(value, tuple):
        return tuple(redact(item) for item in value)
    return value


class SecretRedactingFilter(logging.Filter):
    """Mask credentials in the message and ``extra`` context of a record."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        record.msg = redact(record.getMessage())
        # The message is already rendered; clearing ``args`` stops the
        # formatter from %-formatting it a second time.
        record.args = ()
        for attr, value in list(vars(record).items()):
            if attr in _UNREDACTED_ATTRIBUTES:
                continue
            if _SECRET_ATTRIBUTE.match(attr):
                setattr(record, attr, MASK)
            else:
                setattr(record, attr, redact(value))
        return True


class JsonFormatter(logging.Formatter):
    """Render records as single-line JSON objects.

    Each line carries an ISO-8601 UTC timestamp, the level, the logger name,
    the thread and the message.  Context attached through ``extra`` (for
    instance the page offset of a failed EFetch call) is emitted under
    ``"extra"``.
    """

    def __init__(self, *, ensure_ascii: bool = False) -> None:
        super().__init__()
        self.ensure_ascii = ensure_ascii

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, Any] = {
            "timestamp": created.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack_info"] = self.formatStack(record.stack_info)

        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in _STANDARD_ATTRIBUTES and not key.startswith("_")
        }
        if extra:
            payload["extra"] = _jsonable(extra)
        return json.dumps(payload, ensure_ascii=self.ensure_ascii)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_jsonable(item) for item in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return repr(value)


def _level_number(log_level: str) -> int:
    level = logging.getLevelName(log_level.strip().upper())
    if not isinstance(level, int):
        msg = f"Unknown log level: {log_level!r}"
        raise ValueError(msg)
    return level


def _dict_config(level: int, log_format: LogFormat, stream: TextIO | None) -> Dict[str, Any]:
    handler: Dict[str, Any] = {
        "class": "logging.StreamHandler",
        "level": level,
        "filters": ["redact"],
        "formatter": log_format,
        "stream": "ext://sys.stderr" if stream is None else stream,
    }
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"redact": {"()": SecretRedactingFilter}},
        "formatters": {
            "human": {"format": HUMAN_FORMAT, "datefmt": HUMAN_DATEFMT},
            "json": {"()": JsonFormatter},
        },
        "handlers": {"default": handler},
        "root": {"level": level, "handlers": ["default"]},
        # urllib3 logs every connection at DEBUG, including full URLs.
        "loggers": {"urllib3": {"level": max(level, logging.INFO)}},
    }


def configure_logging(
    log_level: str = "INFO",
    *,
    log_format: LogFormat = "human",
    stream: TextIO | None = None,
) -> None:
    """Configure logging for the retrieval command line entry point.

    Args:
        log_level: Verbosity level name, for example ``"INFO"`` or ``"DEBUG"``.
        log_format: ``"human"`` for formatted text or ``"json"`` for JSON
            lines.
        stream: Destination of log records. Defaults to ``stderr`` so that
            ``stdout`` stays free for retrieved records.

    Raises:
        ValueError: If ``log_format`` or ``log_level`` is not recognised.
    """

    if log_format not in LOG_FORMATS:
        msg = f"Unsupported log format: {log_format!r}"
        raise ValueError(msg)
    logging.config.dictConfig(_dict_config(_level_number(log_level), log_format, stream))
