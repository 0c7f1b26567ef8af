"""Resilient HTTP client for calls from the control plane to workloads."""

import asyncio
import re
from typing import List, Mapping, Optional, Tuple

import httpx
import structlog

logger = structlog.get_logger("http_client")

DEFAULT_TIMEOUT_SECONDS = 30.0

# RFC 7230 token characters
_METHOD_TOKEN = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")

# Upper bound on per-attempt summaries kept on a RetryExhaustedError
MAX_ATTEMPT_SUMMARIES = 10


class HTTPClientError(Exception):
    """Base class for outbound HTTP failures."""


class RequestConstructionError(HTTPClientError):
    """The request could not be built (bad URL or method). Not retried."""


class TransportError(HTTPClientError):
    """Connection, protocol, or timeout failure while sending."""

    def __init__(self, message: str, timeout: bool = False):
        super().__init__(message)
        self.timeout = timeout


class NonSuccessStatus(HTTPClientError):
    """The server answered with something other than 200."""

    def __init__(self, status_code: int):
        super().__init__(f"unexpected status code {status_code}")
        self.status_code = status_code


class RetryExhaustedError(HTTPClientError):
    """Every attempt failed.

    The message is deliberately generic; ``attempts`` keeps short summaries
    of the individual failures for logs only.
    """

    def __init__(self, attempts: List[str]):
        super().__init__("failed to make request after multiple retries")
        self.attempts = attempts


def build_request(
    method: str,
    url: str,
    body: Optional[bytes] = None,
    headers: Optional[Mapping[str, str]] = None,
) -> httpx.Request:
    """Build a fresh request, rejecting malformed methods and targets."""
    if not method or not _METHOD_TOKEN.match(method):
        raise RequestConstructionError(f"invalid method {method!r}")
    try:
        request = httpx.Request(method, url, content=body, headers=dict(headers or {}))
    except (httpx.InvalidURL, httpx.UnsupportedProtocol, TypeError, ValueError) as e:
        raise RequestConstructionError(f"invalid url {url!r}: {e}") from e
    if request.url.scheme not in ("http", "https") or not request.url.host:
        raise RequestConstructionError(f"invalid url {url!r}")
    return request


class HTTPClient:
    """Thin wrapper over ``httpx.AsyncClient`` with a bounded retry helper.

    Parameters
    - timeout: Per-call timeout in seconds (``None`` disables it)
    - transport: Optional ``httpx`` transport, mainly for tests
    - max_attempts: Default attempt bound for ``make_request_with_retry``
    - retry_delay: Default pause in seconds between attempts
    """

    def __init__(
        self,
        timeout: Optional[float] = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
    ):
        self._timeout = timeout
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    def set_timeout(self, timeout: Optional[float]) -> None:
        if timeout is not None and timeout < 0:
            raise ValueError("timeout must be >= 0")
        self._timeout = timeout
        self._client.timeout = httpx.Timeout(timeout)

    def get_timeout(self) -> Optional[float]:
        return self._timeout

    async def do(self, request: httpx.Request) -> Tuple[httpx.Response, bytes]:
        """Send ``request`` and return the response with its drained body.

        The connection is always released before returning.
        """
        request.extensions["timeout"] = self._client.timeout.as_dict()
        try:
            response = await self._client.send(request)
        except httpx.TimeoutException as e:
            raise TransportError(f"request timed out: {e}", timeout=True) from e
        except httpx.HTTPError as e:
            raise TransportError(f"request failed: {e}") from e
        try:
            body = await response.aread()
        except httpx.HTTPError as e:
            raise TransportError(f"failed reading response body: {e}") from e
        finally:
            await response.aclose()
        return response, body

    async def make_request_with_retry(
        self,
        url: str,
        method: str,
        body: Optional[bytes] = None,
        headers: Optional[Mapping[str, str]] = None,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ) -> Tuple[httpx.Response, bytes]:
        """Issue a request until it returns 200 or ``max_attempts`` run out.

        ``body`` is plain bytes so every attempt resends the same payload.
        Raises ``RequestConstructionError`` at once for malformed input and
        ``RetryExhaustedError`` once all attempts fail.
        """
        max_attempts = self.max_attempts if max_attempts is None else max_attempts
        retry_delay = self.retry_delay if retry_delay is None else retry_delay
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if retry_delay < 0:
            raise ValueError("retry_delay must be >= 0")

        summaries: List[str] = []
        for attempt in range(1, max_attempts + 1):
            request = build_request(method, url, body, headers)
            try:
                response, payload = await self.do(request)
                if response.status_code == httpx.codes.OK:
                    if attempt > 1:
                        logger.info("Request succeeded after retry", url=url, attempt=attempt)
                    return response, payload
                raise NonSuccessStatus(response.status_code)
            except (TransportError, NonSuccessStatus) as e:
                if len(summaries) < MAX_ATTEMPT_SUMMARIES:
                    summaries.append(f"attempt {attempt}: {e}")
                logger.warning(
                    "Request attempt failed",
                    url=url,
                    method=method,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error=str(e),
                )

            if attempt < max_attempts:
                await asyncio.sleep(retry_delay)

        logger.error("Request failed after all retries", url=url, method=method, attempts=summaries)
        raise RetryExhaustedError(summaries)

    async def aclose(self) -> None:
        await self._client.aclose()
