"""Stream decoder: raw event-stream lines to text fragments."""

from __future__ import annotations

import logging
from typing import AsyncIterable, AsyncIterator

from .cancellation import CancellationToken
from .errors import DecodeError
from .wire import decode_data_line, is_terminator

logger = logging.getLogger(__name__)


class StreamDecoder:
    """Turns a line source into a lazy sequence of text fragments.

    Non-data lines are ignored; a data line that fails to decode is skipped
    and counted, never aborting the stream. The stream ends cleanly on the
    terminator line or when the line source is exhausted, after which
    ``finished`` is True and ``text`` holds the whole response.

    On cancellation or a transport error the exception propagates and
    ``text`` still holds whatever had accumulated.

    Example:
        decoder = StreamDecoder(lines, token)
        async for fragment in decoder:
            render(fragment)
        if decoder.finished:
            history.commit(generation, user_text, decoder.text)
    """

    def __init__(
        self, lines: AsyncIterable[str], token: CancellationToken | None = None
    ) -> None:
        self._lines = lines
        self._token = token or CancellationToken()
        self._parts: list[str] = []
        self._started = False
        self.finished = False
        self.finish_reason: str | None = None
        self.skipped = 0

    @property
    def text(self) -> str:
        """Return the accumulated response text."""
        return "".join(self._parts)

    def __aiter__(self) -> AsyncIterator[str]:
        if self._started:
            raise RuntimeError("StreamDecoder can only be iterated once")
        self._started = True
        return self._decode()

    async def _decode(self) -> AsyncIterator[str]:
        try:
            async for line in self._lines:
                self._token.raise_if_cancelled()

                if is_terminator(line):
                    break
                try:
                    chunk = decode_data_line(line)
                except DecodeError as e:
                    self.skipped += 1
                    logger.debug("Skipping data line: %s", e)
                    continue
                if chunk is None:
                    continue

                if chunk.finish_reason is not None:
                    self.finish_reason = chunk.finish_reason
                if not chunk.content:
                    continue

                self._parts.append(chunk.content)
                yield chunk.content
        finally:
            aclose = getattr(self._lines, "aclose", None)
            if aclose is not None:
                await aclose()

        self._token.raise_if_cancelled()
        self.finished = True
        logger.debug(
            "stream_decoded",
            extra={
                "length": len(self.text),
                "skipped_lines": self.skipped,
                "finish_reason": self.finish_reason,
            },
        )
