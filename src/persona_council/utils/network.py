"""
NetworkClient -- JSON-over-HTTP client with timeout, retry, and de-duplication.

Features:
  - Per-attempt timeout enforced with asyncio.wait_for (the in-flight attempt
    is cancelled at the boundary)
  - Retry with exponential backoff: retry_attempts + 1 total attempts
  - Concurrent identical requests (url, method, body) share one in-flight task
  - Batch GETs with bounded concurrency; failures are returned as values

Every failure surfaces as a NetworkError with code TIMEOUT, HTTP_ERROR or
NETWORK_ERROR.

Usage:
    client = NetworkClient(timeout=15.0, retry_attempts=3)
    result = await client.get("https://example.com/personas.json")
    print(result.status, result.data)

    results = await client.batch_request([url_a, url_b], concurrency=3)
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from ..errors import NetworkError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 1.0
RETRY_MAX_DELAY = 30.0
HEALTH_CHECK_TIMEOUT = 5.0
DEFAULT_BATCH_CONCURRENCY = 3

DEFAULT_HEADERS = {
    "User-Agent": "persona-council/0.1",
    "Accept": "application/json",
    "Content-Type": "application/json",
}


@dataclass
class RequestResult:
    """Decoded response of a successful request."""

    data: Any
    status: int
    url: str
    execution_time: float


class _PendingRequest:
    """Shared in-flight task plus the number of callers waiting on it."""

    def __init__(self, task: asyncio.Task):
        self.task = task
        self.waiters = 0


class NetworkClient:
    """
    Resilient async HTTP client.

    The transport is injectable so tests can plug in httpx.MockTransport.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._timeout = timeout
        self._retry_attempts = retry_attempts
        self._retry_delay = retry_delay
        self._headers = {**DEFAULT_HEADERS, **(headers or {})}
        self._transport = transport
        self._pending: dict[str, _PendingRequest] = {}

    @property
    def pending_count(self) -> int:
        """Number of distinct requests currently in flight."""
        return len(self._pending)

    async def get(self, url: str, **kwargs: Any) -> RequestResult:
        return await self.request(url, method="GET", **kwargs)

    async def post(self, url: str, body: Any = None, **kwargs: Any) -> RequestResult:
        return await self.request(url, method="POST", body=body, **kwargs)

    async def request(
        self,
        url: str,
        method: str = "GET",
        body: Any = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        retry_attempts: int | None = None,
        retry_delay: float | None = None,
    ) -> RequestResult:
        """
        Issue a request, joining an identical in-flight request if present.

        Raises:
            NetworkError: after the final attempt fails.
        """
        method = method.upper()
        key = self._request_key(url, method, body)

        entry = self._pending.get(key)
        if entry is None:
            task = asyncio.ensure_future(
                self._execute(
                    url,
                    method,
                    body,
                    headers,
                    self._timeout if timeout is None else timeout,
                    self._retry_attempts if retry_attempts is None else retry_attempts,
                    self._retry_delay if retry_delay is None else retry_delay,
                )
            )
            entry = _PendingRequest(task)
            self._pending[key] = entry
            task.add_done_callback(lambda _t, k=key, e=entry: self._release(k, e))
        else:
            logger.debug(f"[Network] Joining in-flight {method} {url}")

        entry.waiters += 1
        try:
            return await asyncio.shield(entry.task)
        except asyncio.CancelledError:
            if entry.waiters == 1 and not entry.task.done():
                # Unmap first so a new caller starts a fresh request.
                self._release(key, entry)
                entry.task.cancel()
            raise
        finally:
            entry.waiters -= 1

    def _release(self, key: str, entry: _PendingRequest) -> None:
        if self._pending.get(key) is entry:
            del self._pending[key]

    def cancel_all(self) -> int:
        """Cancel every in-flight request. Returns how many were cancelled."""
        entries = list(self._pending.values())
        for entry in entries:
            entry.task.cancel()
        self._pending.clear()
        if entries:
            logger.info(f"[Network] Cancelled {len(entries)} pending requests")
        return len(entries)

    @staticmethod
    def _request_key(url: str, method: str, body: Any) -> str:
        return json.dumps(
            {"url": url, "method": method, "body": body}, sort_keys=True, default=str
        )

    async def _execute(
        self,
        url: str,
        method: str,
        body: Any,
        headers: dict[str, str] | None,
        timeout: float,
        retry_attempts: int,
        retry_delay: float,
    ) -> RequestResult:
        """Run the retry loop. The last NetworkError is raised unchanged."""
        last_error: NetworkError | None = None
        start = time.monotonic()

        for attempt in range(retry_attempts + 1):
            try:
                status, data = await asyncio.wait_for(
                    self._send(url, method, body, headers), timeout=timeout
                )
                return RequestResult(
                    data=data,
                    status=status,
                    url=url,
                    execution_time=time.monotonic() - start,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException):
                last_error = NetworkError(
                    f"Request to {url} timed out after {timeout}s",
                    code=NetworkError.TIMEOUT,
                    url=url,
                )
            except NetworkError as e:
                last_error = e

            if attempt < retry_attempts:
                delay = min(retry_delay * (2**attempt), RETRY_MAX_DELAY)
                logger.warning(
                    f"[Network] {last_error.code} on {method} {url} "
                    f"(attempt {attempt + 1}/{retry_attempts + 1}). "
                    f"Retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

        logger.error(
            f"[Network] {method} {url} failed after {retry_attempts + 1} attempts: "
            f"{last_error.message}"
        )
        raise last_error

    async def _send(
        self,
        url: str,
        method: str,
        body: Any,
        headers: dict[str, str] | None,
    ) -> tuple[int, Any]:
        """One attempt. Timeouts are left to the caller's wait_for."""
        merged = {**self._headers, **(headers or {})}
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=None) as client:
                response = await client.request(
                    method,
                    url,
                    json=body,
                    headers=merged,
                )
        except httpx.TimeoutException:
            raise
        except (httpx.HTTPError, httpx.InvalidURL, ValueError, TypeError) as e:
            # Malformed URLs and unserializable bodies fail before any I/O.
            raise NetworkError(
                f"Request to {url} failed: {e}",
                code=NetworkError.NETWORK_ERROR,
                url=url,
            ) from e

        if not response.is_success:
            raise NetworkError(
                f"HTTP {response.status_code} from {url}",
                code=NetworkError.HTTP_ERROR,
                status=response.status_code,
                url=url,
            )

        if not response.content:
            return response.status_code, None
        try:
            return response.status_code, response.json()
        except ValueError as e:
            raise NetworkError(
                f"Invalid JSON from {url}: {e}",
                code=NetworkError.NETWORK_ERROR,
                status=response.status_code,
                url=url,
            ) from e

    async def batch_request(
        self,
        urls: list[str],
        concurrency: int = DEFAULT_BATCH_CONCURRENCY,
        **kwargs: Any,
    ) -> list[RequestResult | NetworkError]:
        """GET each URL with at most ``concurrency`` in flight, preserving order."""
        semaphore = asyncio.Semaphore(max(concurrency, 1))

        async def _one(url: str) -> RequestResult | NetworkError:
            async with semaphore:
                try:
                    return await self.get(url, **kwargs)
                except NetworkError as e:
                    return e

        return list(await asyncio.gather(*[_one(u) for u in urls]))

    async def health_check(self, url: str) -> bool:
        """True when ``url`` answers 2xx within the health-check timeout."""
        try:
            await self.get(url, timeout=HEALTH_CHECK_TIMEOUT, retry_attempts=1)
            return True
        except NetworkError as e:
            logger.debug(f"[Network] Health check failed for {url}: {e.message}")
            return False
