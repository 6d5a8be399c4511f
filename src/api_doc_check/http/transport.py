"""Execute documented requests against a live service.

The transport is the only part of the pipeline that waits on I/O. Calls are
bounded by a semaphore; a timeout or connection failure is turned into a
synthetic 504 response so a scan never aborts because one call failed.
"""

import asyncio
import logging
import random
import time
from urllib.parse import urljoin

import httpx

from api_doc_check.config import ServiceAccount
from api_doc_check.http.models import Request, Response
from api_doc_check.params.rewriter import rewrite_request_body_namespaces, rewrite_response_body_namespaces

logger = logging.getLogger(__name__)

FAILURE_STATUS_CODE = 504
FAILURE_STATUS_PREFIX = "HttpResponseFailure"

# headers httpx computes itself
_SKIPPED_REQUEST_HEADERS = frozenset({"content-length", "host"})


class RetryStrategy:
    """Decides whether a response is retried and how long to wait first."""

    max_attempts = 0

    def should_retry(self, response: Response, attempt: int) -> bool:
        return False

    def delay(self, attempt: int) -> float:
        return 0.0


class NoRetry(RetryStrategy):
    pass


class ExponentialBackoff(RetryStrategy):
    """Full-jitter exponential backoff on throttling and unavailable responses."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        retry_on: tuple[int, ...] = (429, 503, 504),
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.retry_on = retry_on

    def should_retry(self, response: Response, attempt: int) -> bool:
        return attempt < self.max_attempts and response.status_code in self.retry_on

    def delay(self, attempt: int) -> float:
        return random.uniform(0, min(self.max_delay, self.base_delay * 2 ** attempt))


def failure_response(error: Exception, elapsed: float = 0.0) -> Response:
    return Response(
        status_code=FAILURE_STATUS_CODE,
        status_message=f"{FAILURE_STATUS_PREFIX} {error}".strip(),
        elapsed=elapsed,
    )


def _response_from_httpx(response: httpx.Response, elapsed: float) -> Response:
    return Response(
        http_version=response.http_version or "HTTP/1.1",
        status_code=response.status_code,
        status_message=response.reason_phrase or "",
        headers=list(response.headers.items()),
        body=response.text,
        elapsed=elapsed,
    )


class HttpTransport:
    """Async HTTP executor for Request values.

    Pass `client` to reuse an existing httpx.AsyncClient (tests pass one
    built on httpx.MockTransport); otherwise one is created and owned here.
    """

    def __init__(
        self,
        account: ServiceAccount | None = None,
        concurrency: int = 4,
        timeout: float = 30.0,
        retry: RetryStrategy | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.account = account or ServiceAccount()
        self.retry = retry or NoRetry()
        self._semaphore = asyncio.Semaphore(concurrency)
        self._owns_client = client is None
        self.http = client or httpx.AsyncClient(timeout=timeout)
        logger.info("HTTP transport ready for %s (concurrency=%d)", self.account.base_url or "<absolute urls>", concurrency)

    def resolve_url(self, url: str) -> str:
        if url.lower().startswith(("http://", "https://")) or not self.account.base_url:
            return url
        return urljoin(self.account.base_url.rstrip("/") + "/", url.lstrip("/"))

    async def execute(self, request: Request) -> Response:
        """Send `request`, retrying per the strategy; never raises for network failures."""
        request = rewrite_request_body_namespaces(request, self.account)
        attempt = 0
        while True:
            async with self._semaphore:
                response = await self._send(request)
            if not self.retry.should_retry(response, attempt):
                break
            wait = self.retry.delay(attempt)
            logger.debug("Retrying %s %s after %d (attempt %d, waiting %.2fs)", request.method, request.url, response.status_code, attempt + 1, wait)
            await asyncio.sleep(wait)
            attempt += 1
        try:
            response = rewrite_response_body_namespaces(response, self.account)
        except ValueError as e:
            # compared as received
            logger.warning("Response body of %s %s left untranslated: %s", request.method, request.url, e)
        return response.model_copy(update={"retry_count": attempt})

    async def _send(self, request: Request) -> Response:
        url = self.resolve_url(request.url)
        headers = [(k, v) for k, v in request.headers if k.lower() not in _SKIPPED_REQUEST_HEADERS]
        present = {k.lower() for k, _ in headers}
        for name, value in self.account.auth_headers().items():
            if name.lower() not in present:
                headers.append((name, value))
        content = request.body_bytes if request.body_bytes is not None else (request.body or None)

        started = time.monotonic()
        try:
            response = await self.http.request(request.method, url, headers=headers, content=content)
        except httpx.TimeoutException as e:
            logger.warning("%s %s timed out", request.method, url)
            return failure_response(e, time.monotonic() - started)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", request.method, url, e)
            return failure_response(e, time.monotonic() - started)
        elapsed = time.monotonic() - started
        logger.debug("%s %s -> %d (%.3fs)", request.method, url, response.status_code, elapsed)
        return _response_from_httpx(response, elapsed)

    async def close(self) -> None:
        if self._owns_client:
            await self.http.aclose()

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()
