"""HTTP transport shared by the E-utilities collaborators.

:class:`HttpClient` wraps :mod:`requests` with a process wide rate limit and
``tenacity`` retries.  NCBI allows three requests per second without an API
key and ten with one; exceeding the budget yields ``429`` responses, so every
request waits on the shared :class:`RateLimiter` first.  Page workers run on
separate threads and each thread gets its own :class:`requests.Session`.

Algorithm Notes
---------------
1. Before each outgoing request the client waits on the rate limiter, which
   also honours cool-down windows announced through ``Retry-After``.
2. Transport errors and transient status codes are retried up to
   ``max_retries`` attempts with exponential backoff.
3. Responses are returned as :class:`requests.Response` objects; decoding and
   interpretation of other non-2xx statuses is left to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
import logging
import threading
import time
from threading import Lock, RLock
from types import TracebackType
from typing import Any, Dict, Iterable, Mapping, Tuple

import requests  # type: ignore[import-untyped]
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

LOGGER = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "pubmed-retrieval/0.1 (+https://www.ncbi.nlm.nih.gov/books/NBK25497/)"

DEFAULT_STATUS_FORCELIST: frozenset[int] = frozenset(
    {408, 429, 500, 502, 503, 504}
)


def _parse_retry_after(value: str | None) -> float | None:
    """Return the delay in seconds announced by a ``Retry-After`` value."""

    if value is None:
        return None
    candidate = value.strip()
    if not candidate:
        return None
    try:
        seconds = float(candidate)
    except ValueError:
        try:
            retry_dt = parsedate_to_datetime(candidate)
        except (TypeError, ValueError):
            return None
        if retry_dt.tzinfo is None:
            retry_dt = retry_dt.replace(tzinfo=timezone.utc)
        delta = (retry_dt - datetime.now(timezone.utc)).total_seconds()
        return max(0.0, delta)
    return max(0.0, seconds)


def retry_after_from_response(response: requests.Response) -> float | None:
    """Extract the retry delay advertised by ``response`` when available."""

    retry_after = _parse_retry_after(response.headers.get("Retry-After"))
    if retry_after is not None:
        return retry_after

    reset_header = response.headers.get("X-RateLimit-Reset")
    if not reset_header:
        return None
    try:
        reset_epoch = float(reset_header)
    except ValueError:
        return None
    delay = reset_epoch - time.time()
    if delay <= 0:
        return None
    return delay


class RetryAfterWaitStrategy(wait_base):
    """Tenacity wait strategy preferring the server's ``Retry-After`` hint."""

    def __init__(self, fallback: wait_base) -> None:
        self._fallback = fallback

    def __call__(self, retry_state: RetryCallState) -> float:
        retry_after = self._retry_after_seconds(retry_state)
        if retry_after is None:
            return self._fallback(retry_state)
        if retry_after > 0:
            LOGGER.debug("Server asked to wait %.2f seconds before retrying", retry_after)
            return retry_after
        return 0.0

    @staticmethod
    def _retry_after_seconds(retry_state: RetryCallState) -> float | None:
        if retry_state.outcome is None or not retry_state.outcome.failed:
            return None
        exception = retry_state.outcome.exception()
        if isinstance(exception, requests.HTTPError) and exception.response is not None:
            return retry_after_from_response(exception.response)
        return None


@dataclass
class RateLimiter:
    """Minimum-interval rate limiter with penalty support.

    Parameters
    ----------
    rps:
        Maximum number of requests per second. ``0`` disables rate limiting.
    last_call:
        Monotonic timestamp of the last admitted request.
    blocked_until:
        Monotonic timestamp until which requests are paused, used for
        server-side hints such as ``Retry-After``.
    """

    rps: float
    last_call: float = 0.0
    blocked_until: float = 0.0
    lock: RLock = field(default_factory=RLock, init=False, repr=False, compare=False)

    def wait(self) -> None:
        """Sleep just enough to satisfy the configured rate limit."""

        while True:
            with self.lock:
                now = time.monotonic()
                wait_until = max(self.blocked_until, now)
                if self.rps > 0:
                    wait_until = max(wait_until, self.last_call + 1.0 / self.rps)
                if wait_until <= now:
                    self.last_call = now
                    self.blocked_until = max(self.blocked_until, now)
                    return
                sleep_for = wait_until - now
            time.sleep(sleep_for)

    def apply_penalty(self, delay_seconds: float | None) -> None:
        """Delay the next request by ``delay_seconds`` when positive."""

        if not delay_seconds or delay_seconds <= 0:
            return
        target = time.monotonic() + delay_seconds
        with self.lock:
            if target > self.blocked_until:
                self.blocked_until = target


class HttpClient:
    """A :mod:`requests` wrapper with retries, rate limiting and per-thread sessions.

    Args:
        timeout: Default request timeout, either a single float applied to the
            connect and read phases or a ``(connect, read)`` tuple.
        max_retries: Maximum number of attempts for transient failures.
        rps: Target requests per second shared by all threads.
        status_forcelist: HTTP status codes that trigger a retry. Defaults to
            ``DEFAULT_STATUS_FORCELIST``.
        backoff_multiplier: Multiplier for the exponential backoff delay.
        retry_penalty_seconds: Cool-down applied to every thread after a
            ``429 Too Many Requests`` response without ``Retry-After``.
        headers: Headers sent with every request. A ``User-Agent`` is added
            when missing.
    """

    def __init__(
        self,
        *,
        timeout: float | Tuple[float, float],
        max_retries: int,
        rps: float,
        status_forcelist: Iterable[int] | None = None,
        backoff_multiplier: float = 1.0,
        retry_penalty_seconds: float = 0.0,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        if isinstance(timeout, tuple):
            self.timeout = timeout
        else:
            self.timeout = (timeout, timeout)
        self.max_retries = max(1, max_retries)
        self.rate_limiter = RateLimiter(rps)
        self.headers: Dict[str, str] = dict(headers or {})
        self.headers.setdefault("User-Agent", DEFAULT_USER_AGENT)
        self._thread_local = threading.local()
        self._session_lock = Lock()
        self._owned_sessions: list[requests.Session] = []
        if status_forcelist is None:
            self.status_forcelist = set(DEFAULT_STATUS_FORCELIST)
        else:
            self.status_forcelist = set(status_forcelist)
        self.backoff_multiplier = backoff_multiplier
        self.retry_penalty_seconds = retry_penalty_seconds

    @property
    def session(self) -> requests.Session:
        """Return the :class:`requests.Session` for the calling thread."""

        session = getattr(self._thread_local, "session", None)
        if session is None:
            session = requests.Session()
            session.headers.update(self.headers)
            self._thread_local.session = session
            with self._session_lock:
                self._owned_sessions.append(session)
        return session

    def close(self) -> None:
        """Close the sessions created by this client."""

        with self._session_lock:
            sessions = list(self._owned_sessions)
            self._owned_sessions.clear()
        for session in sessions:
            session.close()
        self._thread_local = threading.local()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def _check_transient(self, resp: requests.Response, method: str, url: str) -> None:
        if resp.status_code not in self.status_forcelist:
            return
        delay = retry_after_from_response(resp)
        if delay is not None:
            self.rate_limiter.apply_penalty(delay)
        elif resp.status_code == 429 and self.retry_penalty_seconds > 0:
            delay = self.retry_penalty_seconds
            self.rate_limiter.apply_penalty(delay)
        if delay:
            LOGGER.warning(
                "Transient HTTP %s for %s %s; retrying after %.2f seconds",
                resp.status_code,
                method.upper(),
                url,
                delay,
            )
        else:
            LOGGER.warning(
                "Transient HTTP %s for %s %s", resp.status_code, method.upper(), url
            )
        # Release the connection of a streamed response before retrying.
        resp.close()
        resp.raise_for_status()

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Perform an HTTP request honouring retry and rate limits.

        Parameters
        ----------
        method:
            HTTP verb such as ``"get"`` or ``"post"``.
        url:
            Absolute URL to request.
        **kwargs:
            Additional arguments passed to :meth:`requests.Session.request`,
            e.g. ``params`` or ``stream=True``.

        Returns
        -------
        :class:`requests.Response`
            Raw HTTP response. Non-2xx statuses outside ``status_forcelist``
            are returned as is.
        """

        timeout = kwargs.pop("timeout", self.timeout)
        wait_strategy = RetryAfterWaitStrategy(
            wait_exponential(multiplier=self.backoff_multiplier)
        )

        @retry(
            reraise=True,
            retry=retry_if_exception_type(requests.RequestException),
            stop=stop_after_attempt(self.max_retries),
            wait=wait_strategy,
        )
        def _do_request() -> requests.Response:
            self.rate_limiter.wait()
            LOGGER.debug("HTTP %s %s (timeout=%s)", method.upper(), url, timeout)
            resp = self.session.request(method, url, timeout=timeout, **kwargs)
            self._check_transient(resp, method, url)
            return resp

        return _do_request()

    def get(self, url: str, **kwargs: Any) -> requests.Response:
        """Shorthand for ``request("get", url, **kwargs)``."""

        return self.request("get", url, **kwargs)


__all__ = [
    "DEFAULT_STATUS_FORCELIST",
    "DEFAULT_USER_AGENT",
    "HttpClient",
    "RateLimiter",
    "RetryAfterWaitStrategy",
    "retry_after_from_response",
]
