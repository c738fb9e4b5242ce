import json
import logging
import random
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import requests
from cachetools import LRUCache

from ..core.config import (
    CACHE_MAXSIZE,
    ENGINE_API_URL,
    FETCH_BACKOFF_RANGE,
    FETCH_JITTER,
    FETCH_MAX_ATTEMPTS,
    FETCH_TIMEOUT_SECONDS,
    FETCH_WORKERS,
)
from ..core.errors import FetchError

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass(frozen=True)
class FetchRequest:
    method: str
    path: str
    params: Dict[str, Any] = field(default_factory=dict)
    json: Optional[Dict[str, Any]] = None


def request_key(path: str, params: Optional[Dict[str, Any]] = None) -> str:
    """Stable identity of a logical query: endpoint + sorted, normalized parameters."""
    normalized = {k: v for k, v in (params or {}).items() if v is not None}
    return path + "?" + json.dumps(normalized, sort_keys=True, default=str, separators=(",", ":"))


class _LoggingLRU(LRUCache):
    def popitem(self):
        key, value = super().popitem()
        logger.debug("Evicted %s from response cache", key)
        return key, value


class ResponseCache:
    """Process-lifetime response store with optional LRU bound.

    ``maxsize=None`` keeps every entry; otherwise the least recently used
    entry is evicted once the bound is exceeded.
    """

    def __init__(self, maxsize: Optional[int] = CACHE_MAXSIZE):
        if maxsize is not None and maxsize < 1:
            raise ValueError("maxsize must be >= 1 or None")
        self.maxsize = maxsize
        self._data = _LoggingLRU(maxsize=maxsize) if maxsize is not None else {}
        self._lock = threading.Lock()

    def get(self, key: str, default=_MISSING):
        with self._lock:
            try:
                return self._data[key]
            except KeyError:
                return default

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class _RetryableStatus(requests.HTTPError):
    pass


class ResilientFetcher:
    """HTTP client for the query service with jittered retries, in-flight
    request deduplication and a shared response cache."""

    def __init__(
        self,
        base_url: str = ENGINE_API_URL,
        *,
        session: Optional[requests.Session] = None,
        cache: Optional[ResponseCache] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        timeout: float = FETCH_TIMEOUT_SECONDS,
        max_attempts: int = FETCH_MAX_ATTEMPTS,
        jitter: float = FETCH_JITTER,
        backoff_range: tuple[float, float] = FETCH_BACKOFF_RANGE,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.cache = cache if cache is not None else ResponseCache()
        self.executor = executor or ThreadPoolExecutor(max_workers=FETCH_WORKERS, thread_name_prefix="tsf-fetch")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.jitter = jitter
        self.backoff_range = backoff_range
        self._sleep = sleep
        self._clock = clock
        self._rng = rng or random.Random()
        self._inflight: Dict[str, Future] = {}
        self._lock = threading.Lock()

    # -----------------------
    # Single logical request
    # -----------------------
    def attempt_timeout(self) -> float:
        return self.timeout * self._rng.uniform(1 - self.jitter, 1 + self.jitter)

    def _read_body(self, resp, url: str, deadline: float) -> bytes:
        # requests' timeout bounds each socket read, not the whole transfer
        chunks = []
        for chunk in resp.iter_content(chunk_size=8192):
            if self._clock() > deadline:
                raise requests.Timeout(f"{url} still sending after its deadline")
            chunks.append(chunk)
        return b"".join(chunks)

    def _attempt(self, request: FetchRequest, timeout: float):
        """One try, abandoned once ``timeout`` seconds of wall clock have passed."""
        url = f"{self.base_url}{request.path}"
        deadline = self._clock() + timeout
        resp = self.session.request(
            request.method,
            url,
            params=request.params or None,
            json=request.json,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            stream=True,
        )
        try:
            if resp.status_code == 429 or resp.status_code >= 500:
                raise _RetryableStatus(f"HTTP {resp.status_code} for {url}", response=resp)
            content = self._read_body(resp, url, deadline)
        finally:
            resp.close()
        text = content.decode(resp.encoding or "utf-8", errors="replace")
        if resp.status_code >= 400:
            raise FetchError(f"HTTP {resp.status_code} for {url}\nResponse: {text}", status_code=resp.status_code)
        content_type = resp.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                return json.loads(text)
            except ValueError as exc:
                raise requests.exceptions.InvalidJSONError(f"invalid JSON from {url}: {exc}") from exc
        return text

    def fetch(self, request: FetchRequest):
        """Perform ``request`` with up to ``max_attempts`` tries and return the decoded body."""
        last_exc: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                delay = self._rng.uniform(*self.backoff_range)
                logger.info("Waiting %.2fs before retrying %s %s", delay, request.method, request.path)
                self._sleep(delay)
            timeout = self.attempt_timeout()
            try:
                return self._attempt(request, timeout)
            except requests.RequestException as exc:
                last_exc = exc
                logger.warning(
                    "Attempt %d/%d for %s %s failed: %s",
                    attempt, self.max_attempts, request.method, request.path, exc,
                )
        logger.error("All %d attempts failed for %s %s", self.max_attempts, request.method, request.path)
        status = getattr(getattr(last_exc, "response", None), "status_code", None)
        raise FetchError(f"{request.method} {request.path} failed: {last_exc}", status_code=status) from last_exc

    # -----------------------
    # Dedup + cache
    # -----------------------
    def fetch_deduped(self, key: str, request: FetchRequest, *, refresh: bool = False):
        """Return the body for ``key``, sharing one network call among concurrent callers.

        A cached body is served directly. With ``refresh=True`` a background
        refresh is scheduled as well, unless one is already outstanding.
        """
        with self._lock:
            cached = self.cache.get(key)
            if cached is not _MISSING:
                logger.debug("Cache hit for %s", key)
                if refresh and key not in self._inflight:
                    self._start(key, request)
                return cached
            future = self._inflight.get(key)
            if future is None:
                future = self._start(key, request)
            else:
                logger.debug("Joining in-flight request for %s", key)
        return future.result()

    def _start(self, key: str, request: FetchRequest) -> Future:
        future = self.executor.submit(self._run, key, request)
        self._inflight[key] = future
        return future

    def _run(self, key: str, request: FetchRequest):
        try:
            body = self.fetch(request)
            self.cache.set(key, body)
            return body
        finally:
            with self._lock:
                self._inflight.pop(key, None)

    def invalidate(self, key: str) -> None:
        self.cache.invalidate(key)

    def close(self) -> None:
        self.executor.shutdown(wait=False)
        self.session.close()
