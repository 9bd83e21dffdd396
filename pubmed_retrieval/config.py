"""Configuration models for PubMed retrieval.

Settings live in the ``pubmed_retrieval`` section of a YAML file and are
validated with pydantic.  Environment variables prefixed with
``PUBMED_RETRIEVAL__`` override values from the file; the remainder of the
variable name is a path of double-underscore separated keys inside the
section, e.g. ``PUBMED_RETRIEVAL__RETRIEVAL__PAGE_SIZE=100`` or
``PUBMED_RETRIEVAL__EUTILS__EMAIL=me@example.org``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Literal, Mapping

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from .paging import MAX_RESULTS_PER_QUERY
from .query import DEFAULT_BASE_URL

LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "PUBMED_RETRIEVAL__"
DEFAULT_SECTION = "pubmed_retrieval"


class EutilsConfig(BaseModel):
    """Where and as whom the E-utilities are called.

    Attributes
    ----------
    base_url:
        Base URL of the E-utilities; ``esearch.fcgi`` and ``efetch.fcgi`` are
        appended to it.
    db:
        Entrez database to search.
    tool, email:
        Identification NCBI asks heavy users to send with every request.
    api_key:
        NCBI API key. When unset, the environment variable named by
        ``api_key_env`` is consulted.
    """

    model_config = ConfigDict(extra="forbid")

    base_url: str = Field(default=DEFAULT_BASE_URL)
    db: str = Field(default="pubmed")
    tool: str | None = Field(default="pubmed-retrieval")
    email: str | None = None
    api_key: str | None = None
    api_key_env: str = Field(default="NCBI_API_KEY")

    @field_validator("base_url", "db")
    @classmethod
    def _validate_non_blank(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            msg = "Value must not be blank"
            raise ValueError(msg)
        return cleaned

    @field_validator("tool", "email", "api_key")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str | None) -> str | None:
        if value is not None and value.count("@") != 1:
            msg = "Email address must contain exactly one '@'"
            raise ValueError(msg)
        return value

    def effective_api_key(self) -> str | None:
        """Return ``api_key`` or the value of the ``api_key_env`` variable."""

        if self.api_key:
            return self.api_key
        value = os.environ.get(self.api_key_env, "").strip()
        return value or None


class NetworkConfig(BaseModel):
    """Timeout and retry behaviour of the HTTP transport."""

    model_config = ConfigDict(extra="forbid")

    timeout_sec: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=1)
    backoff_multiplier: float = Field(default=1.0, ge=0)
    retry_penalty_sec: float = Field(default=1.0, ge=0)


class RateLimitConfig(BaseModel):
    """Request budget shared by all page workers.

    NCBI allows 3 requests per second without an API key and 10 with one.
    """

    model_config = ConfigDict(extra="forbid")

    rps: float = Field(default=3.0, gt=0)


class RetrievalSection(BaseModel):
    """Paging and concurrency of a retrieval."""

    model_config = ConfigDict(extra="forbid")

    page_size: int = Field(default=200, gt=0, le=MAX_RESULTS_PER_QUERY)
    max_workers: int = Field(default=4, gt=0)
    timeout_sec: float | None = Field(default=None, gt=0)


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: str = Field(default="INFO")
    format: Literal["human", "json"] = Field(default="human")

    @field_validator("level")
    @classmethod
    def _normalise_level(cls, value: str) -> str:
        cleaned = value.strip().upper()
        if not isinstance(logging.getLevelName(cleaned), int):
            msg = f"Unknown log level: {value!r}"
            raise ValueError(msg)
        return cleaned


class PubMedRetrievalConfig(BaseModel):
    """Validated ``pubmed_retrieval`` configuration section."""

    model_config = ConfigDict(extra="forbid")

    eutils: EutilsConfig = Field(default_factory=EutilsConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    retrieval: RetrievalSection = Field(default_factory=RetrievalSection)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _apply_env_overrides(
    data: Dict[str, Any], environ: Mapping[str, str] | None = None
) -> Dict[str, Any]:
    """Update the section mapping ``data`` with ``PUBMED_RETRIEVAL__`` variables.

    Parameters
    ----------
    data:
        Contents of the ``pubmed_retrieval`` section, modified in place.
    environ:
        Mapping to read variables from. Defaults to :data:`os.environ`.

    Returns
    -------
    Dict[str, Any]
        The updated mapping.
    """

    environ = os.environ if environ is None else environ
    for raw_key, value in environ.items():
        if not raw_key.startswith(ENV_PREFIX):
            continue
        path = [part.lower() for part in raw_key[len(ENV_PREFIX) :].split("__") if part]
        if not path:
            continue
        ref: Any = data
        for part in path[:-1]:
            if not isinstance(ref, dict):
                break
            ref = ref.setdefault(part, {})
        if not isinstance(ref, dict):
            LOGGER.warning("Ignoring environment override %s", raw_key)
            continue
        ref[path[-1]] = value
    return data


def load_config(
    path: str | Path | None = None,
    *,
    section: str = DEFAULT_SECTION,
    apply_env: bool = True,
) -> PubMedRetrievalConfig:
    """Load and validate the retrieval configuration.

    Parameters
    ----------
    path:
        YAML file holding a top-level ``section`` mapping. When ``None`` the
        built-in defaults are used.
    section:
        Name of the top-level key to read.
    apply_env:
        Apply ``PUBMED_RETRIEVAL__`` environment overrides before validation.

    Returns
    -------
    PubMedRetrievalConfig
        Parsed and validated configuration.

    Raises
    ------
    FileNotFoundError
        If ``path`` does not exist.
    ValueError
        If the YAML is invalid, the section is missing or validation fails.
    """

    payload: Dict[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        content = config_path.read_text(encoding="utf-8")
        try:
            loaded = yaml.safe_load(content) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc
        if not isinstance(loaded, Mapping):
            msg = f"Configuration root must be a mapping in {config_path}"
            raise ValueError(msg)
        section_payload = loaded.get(section)
        if not isinstance(section_payload, Mapping):
            msg = f"Missing '{section}' section in {config_path}"
            raise ValueError(msg)
        payload = _to_plain_dict(section_payload)

    if apply_env:
        _apply_env_overrides(payload)

    try:
        return PubMedRetrievalConfig.model_validate(payload)
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc


def _to_plain_dict(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        str(key): _to_plain_dict(value) if isinstance(value, Mapping) else value
        for key, value in data.items()
    }


__all__ = [
    "DEFAULT_SECTION",
    "ENV_PREFIX",
    "EutilsConfig",
    "LoggingConfig",
    "NetworkConfig",
    "PubMedRetrievalConfig",
    "RateLimitConfig",
    "RetrievalSection",
    "load_config",
]
