"""HTTP transport for the chat-completions endpoint.

This module provides:
- ChatTransport: Posts requests over an aiohttp ClientSession
- LineStream: Single-pass, cancellable async iterator over body lines

Status policy: any status outside 200-299 raises HttpStatusError after the
error body has been read; the provider's ``error.message`` is used when the
body decodes as an error envelope, otherwise the raw body text.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

import aiohttp

from .cancellation import CancellationToken
from .errors import Cancelled, HttpStatusError, NetworkError
from .models import ChatRequest
from .wire import parse_error_message

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"

# Seconds without any body data before a read is treated as a network failure
DEFAULT_READ_TIMEOUT = 60.0


def _decode_line(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").rstrip("\r\n")


class LineStream:
    """Lazily consumed lines of a streamed response body.

    Not restartable: iterating a second time raises RuntimeError. Every
    read is raced against the cancellation token; cancelling closes the
    underlying connection instead of draining it.
    """

    def __init__(
        self, response: aiohttp.ClientResponse, token: CancellationToken
    ) -> None:
        self._response = response
        self._token = token
        self._started = False
        self._closed = False
        self.status = response.status
        token.add_callback(self._abort)

    def _abort(self) -> None:
        self._response.close()

    def __aiter__(self) -> AsyncIterator[str]:
        if self._started:
            raise RuntimeError("LineStream can only be iterated once")
        self._started = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        try:
            while True:
                self._token.raise_if_cancelled()
                try:
                    raw = await self._token.guard(self._response.content.readline())
                except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                    if self._token.cancelled:
                        raise Cancelled() from e
                    raise NetworkError(f"Stream read failed: {e}") from e
                if not raw:
                    break
                yield _decode_line(raw)
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        """Release the connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._token.remove_callback(self._abort)
        self._response.close()

    @property
    def closed(self) -> bool:
        return self._closed


class ChatTransport:
    """Sends chat-completion requests to an OpenAI-compatible API.

    The transport owns its ClientSession unless one is passed in.

    Example:
        async with ChatTransport(api_key="sk-...") as transport:
            lines = await transport.stream_chat(request, token)
            async for line in lines:
                ...
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        session: aiohttp.ClientSession | None = None,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
    ) -> None:
        """Initialize the transport.

        Args:
            api_key: Bearer credential.
            base_url: API root; "/chat/completions" is appended.
            session: Shared ClientSession (not closed by close()).
            read_timeout: Per-read socket timeout in seconds.
        """
        self._api_key = api_key
        self.url = base_url.rstrip("/") + "/chat/completions"
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=None, sock_read=read_timeout)

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this transport created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> ChatTransport:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def _post(
        self, request: ChatRequest, token: CancellationToken
    ) -> aiohttp.ClientResponse:
        """Send the request and wait for response headers."""
        session = await self._get_session()
        body = request.to_dict()

        async def send() -> aiohttp.ClientResponse:
            return await session.post(self.url, json=body, headers=self.headers)

        logger.debug(
            "chat_request_started",
            extra={
                "model": request.model,
                "stream": request.stream,
                "message_count": len(request.messages),
            },
        )
        try:
            return await token.guard(send())
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"Request failed: {e}") from e

    async def _read_error_body(
        self, response: aiohttp.ClientResponse, token: CancellationToken
    ) -> str:
        """Read a non-2xx body line by line, honouring cancellation."""
        parts: list[str] = []
        try:
            while True:
                raw = await token.guard(response.content.readline())
                if not raw:
                    break
                parts.append(_decode_line(raw))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"Error body read failed: {e}") from e
        return "".join(parts)

    def _status_error(self, status: int, body: str) -> HttpStatusError:
        message = parse_error_message(body)
        logger.warning("Chat request failed with status %d", status)
        return HttpStatusError(status, message if message is not None else body, body)

    async def stream_chat(
        self, request: ChatRequest, token: CancellationToken
    ) -> LineStream:
        """Open a streamed completion.

        Args:
            request: Request payload (``stream`` should be True).
            token: Cancellation token for this send.

        Returns:
            LineStream over the raw protocol lines.

        Raises:
            NetworkError: On connection-level failures.
            HttpStatusError: On a non-2xx status.
            Cancelled: If cancelled before the stream is handed over.
        """
        response = await self._post(request, token)
        try:
            if not 200 <= response.status <= 299:
                body = await self._read_error_body(response, token)
                raise self._status_error(response.status, body)
            token.raise_if_cancelled()
        except BaseException:
            response.close()
            raise
        return LineStream(response, token)

    async def send_once(self, request: ChatRequest, token: CancellationToken) -> str:
        """Send a request and read the whole body.

        Returns:
            The response body text.

        Raises:
            NetworkError: On connection-level failures.
            HttpStatusError: On a non-2xx status.
            Cancelled: If cancelled at any suspension point.
        """
        response = await self._post(request, token)
        token.add_callback(response.close)
        try:
            try:
                body = await token.guard(response.text())
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise NetworkError(f"Response read failed: {e}") from e
            if not 200 <= response.status <= 299:
                raise self._status_error(response.status, body)
            token.raise_if_cancelled()
            return body
        finally:
            token.remove_callback(response.close)
            response.close()
