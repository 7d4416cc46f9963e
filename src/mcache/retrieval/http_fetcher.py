"""
HTTP streaming fetcher.

Opens remote media with httpx in streaming mode so the body is read chunk by
chunk instead of being buffered by the client. Connection establishment can
be retried with tenacity; once bytes have started flowing nothing is retried.
"""

from __future__ import annotations

from typing import AsyncIterator

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from mcache import __version__
from mcache.exceptions import FetchError
from mcache.logging import get_logger
from mcache.retrieval.base import FetchStream, StreamingFetcher

logger = get_logger(__name__)

USER_AGENT = f"mcache/{__version__}"

# Request timeout
REQUEST_TIMEOUT = 30.0

NOT_OK_MESSAGE = "Network response was not ok"


def _content_length(response: httpx.Response) -> int | None:
    """Size hint usable for progress, or None.

    A Content-Length describes the encoded body, so it is ignored when the
    body is content-encoded (httpx yields decoded bytes).
    """
    encoding = response.headers.get("content-encoding", "identity").strip().lower()
    if encoding not in ("", "identity"):
        return None
    raw = response.headers.get("content-length")
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value > 0 else None


class HttpFetchStream(FetchStream):
    """FetchStream over a streaming httpx response."""

    def __init__(self, response: httpx.Response, chunk_size: int | None = None) -> None:
        super().__init__(str(response.request.url), _content_length(response))
        self.status_code = response.status_code
        self._response = response
        self._chunk_size = chunk_size

    async def _iter_chunks(self) -> AsyncIterator[bytes]:
        received = 0
        try:
            async for chunk in self._response.aiter_bytes(self._chunk_size):
                if not chunk:
                    continue
                received += len(chunk)
                yield chunk
        except httpx.HTTPError as e:
            raise FetchError(
                f"Stream interrupted: {e}",
                context={"url": self.url, "received_bytes": received},
            ) from e

        if received == 0:
            raise FetchError(
                f"{NOT_OK_MESSAGE}: response has no body",
                context={"url": self.url, "status_code": self.status_code},
            )
        if self.total_bytes is not None and received < self.total_bytes:
            raise FetchError(
                "Stream ended before the announced length",
                context={
                    "url": self.url,
                    "received_bytes": received,
                    "total_bytes": self.total_bytes,
                },
            )

    async def aclose(self) -> None:
        """Close the response and return the connection to the pool."""
        await self._response.aclose()


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Connection attempt failed, retrying",
        attempt=retry_state.attempt_number,
        error=str(exc),
    )


class HttpStreamingFetcher(StreamingFetcher):
    """Opens streaming GET requests with httpx.

    Features:
    - Streaming responses (no full-body buffering in the client)
    - Optional connection retries with exponential backoff (tenacity)
    - Non-success statuses and transport errors raised as FetchError
    """

    def __init__(
        self,
        timeout: float = REQUEST_TIMEOUT,
        connect_retries: int = 0,
        chunk_size: int | None = None,
        user_agent: str = USER_AGENT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            timeout: Transport timeout in seconds (connect and per read).
            connect_retries: Extra attempts when the connection cannot be made.
            chunk_size: Preferred chunk size; None yields chunks as received.
            user_agent: User-Agent header value.
            transport: Optional httpx transport (used by tests).
        """
        self.timeout = timeout
        self.connect_retries = connect_retries
        self.chunk_size = chunk_size
        self.user_agent = user_agent
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": self.user_agent},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _send(self, request: httpx.Request) -> httpx.Response:
        client = await self._get_client()
        retrying = AsyncRetrying(
            retry=retry_if_exception_type((httpx.ConnectError, httpx.ConnectTimeout)),
            stop=stop_after_attempt(self.connect_retries + 1),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
            before_sleep=_log_retry,
            reraise=True,
        )
        return await retrying(client.send, request, stream=True)

    async def open(self, url: str) -> HttpFetchStream:
        """Open a streaming GET for url.

        Args:
            url: Remote media URL.

        Returns:
            HttpFetchStream positioned before the first chunk.

        Raises:
            FetchError: If the request fails or the status is not 2xx.
        """
        client = await self._get_client()
        try:
            request = client.build_request("GET", url)
            response = await self._send(request)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FetchError(
                f"Failed to fetch {url}: {e}", context={"url": url}
            ) from e

        if not response.is_success:
            await response.aclose()
            raise FetchError(
                f"{NOT_OK_MESSAGE}: HTTP {response.status_code}",
                context={"url": url, "status_code": response.status_code},
            )

        stream = HttpFetchStream(response, self.chunk_size)
        logger.debug(
            "Opened stream",
            url=url,
            status=response.status_code,
            total_bytes=stream.total_bytes,
        )
        return stream
