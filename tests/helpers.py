"""Test helpers: wire builders, a scripted provider endpoint and a transport double."""

from __future__ import annotations

import asyncio
import json
from typing import AsyncIterator

from aiohttp import web

from llm_stream_chat.cancellation import CancellationToken
from llm_stream_chat.models import ChatRequest


# ---------------------------------------------------------------------------
# Wire helpers
# ---------------------------------------------------------------------------


def data_line(content: str | None = None, finish_reason: str | None = None) -> str:
    """Build a streaming data line carrying one delta."""
    delta = {} if content is None else {"content": content}
    return "data: " + json.dumps(
        {"choices": [{"delta": delta, "finish_reason": finish_reason}]}
    )


DONE_LINE = "data: [DONE]"


def completion_body(content: str | None = "Hello!", usage: bool = True) -> str:
    """Build a non-streaming completion envelope."""
    body: dict = {
        "choices": (
            []
            if content is None
            else [
                {
                    "message": {"role": "assistant", "content": content},
                    "finish_reason": "stop",
                }
            ]
        )
    }
    if usage:
        body["usage"] = {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7}
    return json.dumps(body)


def error_body(message: str = "rate limited", type_: str = "rate_limit") -> str:
    return json.dumps({"error": {"message": message, "type": type_}})


async def aiter_lines(lines: list[str]) -> AsyncIterator[str]:
    """Async line source over a list."""
    for line in lines:
        yield line


# ---------------------------------------------------------------------------
# Scripted provider endpoint
# ---------------------------------------------------------------------------


class FakeProvider:
    """Scripted chat-completions endpoint for aiohttp TestServer.

    Streams ``lines`` as an event stream, or answers with ``status`` and
    ``body`` when a body is set. With ``stall_after`` set, the stream
    pauses after that many lines until ``release`` is set.
    """

    def __init__(self) -> None:
        self.lines: list[str] = []
        self.status = 200
        self.body: str | None = None
        self.stall_after: int | None = None
        self.release = asyncio.Event()
        self.stalled = asyncio.Event()
        self.requests: list[dict] = []
        self.headers: list[dict[str, str]] = []

    async def handle(self, request: web.Request) -> web.StreamResponse:
        self.requests.append(await request.json())
        self.headers.append(dict(request.headers))

        if self.body is not None:
            return web.Response(
                status=self.status, text=self.body, content_type="application/json"
            )

        response = web.StreamResponse(
            status=self.status, headers={"Content-Type": "text/event-stream"}
        )
        await response.prepare(request)
        try:
            for i, line in enumerate(self.lines):
                if self.stall_after is not None and i == self.stall_after:
                    self.stalled.set()
                    try:
                        await asyncio.wait_for(self.release.wait(), timeout=5)
                    except asyncio.TimeoutError:
                        pass
                await response.write((line + "\n").encode("utf-8"))
            await response.write_eof()
        except ConnectionResetError:
            pass
        return response

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/v1/chat/completions", self.handle)
        return app


# ---------------------------------------------------------------------------
# In-process transport double
# ---------------------------------------------------------------------------


class FakeTransport:
    """Transport double returning scripted lines or bodies.

    ``gate`` (if set) is awaited before each line after the first
    ``gate_after`` lines, so a test can act mid-stream.
    """

    def __init__(
        self,
        lines: list[str] | None = None,
        body: str | None = None,
        error: Exception | None = None,
    ) -> None:
        self.lines = lines or []
        self.body = body
        self.error = error
        self.gate: asyncio.Event | None = None
        self.gate_after = 0
        self.waiting = asyncio.Event()
        self.requests: list[ChatRequest] = []
        self.closed = False

    async def _line_source(self, token: CancellationToken) -> AsyncIterator[str]:
        for i, line in enumerate(self.lines):
            if self.gate is not None and i >= self.gate_after:
                self.waiting.set()
                await token.guard(self.gate.wait())
            token.raise_if_cancelled()
            yield line

    async def stream_chat(self, request: ChatRequest, token: CancellationToken):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self._line_source(token)

    async def send_once(self, request: ChatRequest, token: CancellationToken) -> str:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.gate is not None:
            self.waiting.set()
            await token.guard(self.gate.wait())
        return self.body or ""

    async def close(self) -> None:
        self.closed = True

