"""Chat session: the surface a UI drives.

A ChatSession owns the history buffer and the rows shown to the user, and
runs at most one send at a time. Each send gets its own CancellationToken,
threaded through the transport, the decoder and the parser.

Clearing while a send is in flight cancels that send, and the history
generation counter makes any commit from a pre-clear send a no-op.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

from .cancellation import CancellationToken
from .config import ChatConfig
from .decoder import StreamDecoder
from .emitter import EventEmitter
from .errors import Cancelled, ChatError
from .events import (
    CANCELLED_MESSAGE,
    ConversationRow,
    RowAdded,
    RowRemoved,
    RowsCleared,
    RowUpdated,
)
from .history import HistoryBuffer
from .image_host import ImageHostClient
from .parser import DEFAULT_PARSE_THRESHOLD, IncrementalParser, parse
from .transport import ChatTransport
from .wire import parse_completion

logger = logging.getLogger(__name__)


async def _last_row(rows: AsyncIterator[ConversationRow]) -> ConversationRow:
    final: ConversationRow | None = None
    async for row in rows:
        final = row
    if final is None:
        raise ChatError("Send produced no rows")
    return final


class ChatSession:
    """Sends user turns and maintains the conversation rows.

    Example:
        session = ChatSession.from_config(config)
        async for row in session.send_text("hello"):
            redraw(row)
        await session.close()
    """

    def __init__(
        self,
        transport: ChatTransport,
        history: HistoryBuffer,
        *,
        model: str,
        temperature: float = 0.5,
        stream: bool = True,
        parse_threshold: int = DEFAULT_PARSE_THRESHOLD,
        emitter: EventEmitter | None = None,
        image_host: ImageHostClient | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            transport: HTTP transport for the chat endpoint.
            history: History buffer (holds the system prompt).
            model: Provider model name.
            temperature: Sampling temperature.
            stream: Stream responses; False uses single-shot completions.
            parse_threshold: Unparsed characters before a forced re-parse.
            emitter: Optional emitter notified of every row change.
            image_host: Upload collaborator for send_text_with_image_bytes().
        """
        self.transport = transport
        self.history = history
        self.model = model
        self.temperature = temperature
        self.stream = stream
        self.parse_threshold = parse_threshold
        self.emitter = emitter
        self.image_host = image_host
        self.rows: list[ConversationRow] = []
        self._token: CancellationToken | None = None

    @classmethod
    def from_config(
        cls, config: ChatConfig, emitter: EventEmitter | None = None
    ) -> ChatSession:
        """Build a session and its collaborators from configuration.

        Raises:
            ValueError: If no API key is configured.
        """
        if not config.api_key:
            raise ValueError("API key not configured")
        transport = ChatTransport(
            api_key=config.api_key,
            base_url=config.base_url,
            read_timeout=config.read_timeout,
        )
        image_host = None
        if config.image_host.api_key:
            image_host = ImageHostClient(
                api_key=config.image_host.api_key,
                upload_url=config.image_host.upload_url,
            )
        return cls(
            transport,
            HistoryBuffer(config.system_prompt, budget=config.history_budget),
            model=config.model,
            temperature=config.temperature,
            stream=config.stream,
            parse_threshold=config.parse_threshold,
            emitter=emitter,
            image_host=image_host,
        )

    async def close(self) -> None:
        """Cancel any active send and close HTTP sessions."""
        self.cancel()
        await self.transport.close()
        if self.image_host is not None:
            await self.image_host.close()

    @property
    def is_interacting(self) -> bool:
        """True while a send is in flight."""
        return self._token is not None

    # ------------------------------------------------------------------
    # Row bookkeeping
    # ------------------------------------------------------------------

    async def _add_row(self, row: ConversationRow) -> ConversationRow:
        self.rows.append(row)
        snapshot = row.snapshot()
        if self.emitter is not None:
            await self.emitter.emit(RowAdded(row=snapshot))
        return snapshot

    async def _update_row(self, row: ConversationRow) -> ConversationRow:
        snapshot = row.snapshot()
        if self.emitter is not None:
            await self.emitter.emit(RowUpdated(row=snapshot))
        return snapshot

    def _begin(self) -> CancellationToken:
        if self._token is not None:
            raise RuntimeError("A send is already in progress")
        self._token = CancellationToken()
        return self._token

    def _end(self, token: CancellationToken) -> None:
        if self._token is token:
            self._token = None

    @staticmethod
    def _fail(row: ConversationRow, error: Exception) -> None:
        if isinstance(error, Cancelled):
            row.error = CANCELLED_MESSAGE
            logger.info("send_cancelled", extra={"row_id": row.id})
        else:
            row.error = str(error)
            logger.warning("Send failed for row %s: %s", row.id, error)

    # ------------------------------------------------------------------
    # Inbound interface
    # ------------------------------------------------------------------

    async def send_text(self, text: str) -> AsyncIterator[ConversationRow]:
        """Send a text turn, yielding row snapshots as the response arrives.

        The first snapshot is the new row with an empty response; the last
        has ``is_interacting`` False and either a final authoritative parse
        or an error alongside whatever partial text arrived.

        Raises:
            RuntimeError: If another send is in progress.
        """
        text = text.strip()
        if self.stream:
            rows = self._send_streaming(text)
        else:
            rows = self._send_single(text)
        try:
            async for row in rows:
                yield row
        finally:
            await rows.aclose()

    async def _send_streaming(self, text: str) -> AsyncIterator[ConversationRow]:
        token = self._begin()
        generation = self.history.generation
        row = ConversationRow(send_text=text, send=parse(text), response=parse(""))
        parser = IncrementalParser(self.parse_threshold, token)
        logger.info("send_started", extra={"row_id": row.id, "stream": True})
        try:
            yield await self._add_row(row)
            try:
                request = self.history.build_request(
                    text, model=self.model, temperature=self.temperature, stream=True
                )
                lines = await self.transport.stream_chat(request, token)
                decoder = StreamDecoder(lines, token)
                async for fragment in decoder:
                    row.response = parser.feed(fragment)
                    yield await self._update_row(row)

                row.response = parser.finish()
                token.raise_if_cancelled()
                if decoder.finished:
                    self.history.commit(generation, text, decoder.text)
            except ChatError as e:
                self._fail(row, e)
                # Partial text stays visible next to the error
                row.response = parse(parser.text)

            row.is_interacting = False
            yield await self._update_row(row)
        finally:
            if row.is_interacting:
                # Abandoned mid-send (consumer stopped or task cancelled)
                token.cancel()
                row.is_interacting = False
                row.error = row.error or CANCELLED_MESSAGE
                await self._update_row(row)
            self._end(token)

    async def _send_single(
        self,
        text: str,
        image_url: str | None = None,
        image_data: bytes | None = None,
    ) -> AsyncIterator[ConversationRow]:
        token = self._begin()
        generation = self.history.generation
        row = ConversationRow(
            send_text=text, send=parse(text), response=parse(""), image_url=image_url
        )
        logger.info("send_started", extra={"row_id": row.id, "stream": False})
        try:
            yield await self._add_row(row)
            try:
                if image_data is not None:
                    if self.image_host is None:
                        raise ChatError("No image host configured")
                    image_url = await self.image_host.upload(image_data, token)
                    row.image_url = image_url

                request = self.history.build_request(
                    text,
                    model=self.model,
                    temperature=self.temperature,
                    stream=False,
                    image_url=image_url,
                )
                body = await self.transport.send_once(request, token)
                response_text = parse_completion(body)
                row.response = parse(response_text)
                token.raise_if_cancelled()
                self.history.commit(generation, text, response_text, image_url=image_url)
            except ChatError as e:
                self._fail(row, e)

            row.is_interacting = False
            yield await self._update_row(row)
        finally:
            if row.is_interacting:
                # Abandoned mid-send (consumer stopped or task cancelled)
                token.cancel()
                row.is_interacting = False
                row.error = row.error or CANCELLED_MESSAGE
                await self._update_row(row)
            self._end(token)

    async def send_text_with_image(self, text: str, image_url: str) -> ConversationRow:
        """Send a text + image turn as a single-shot completion.

        Returns:
            The finalized row.
        """
        return await _last_row(self._send_single(text.strip(), image_url=image_url))

    async def send_text_with_image_bytes(self, text: str, data: bytes) -> ConversationRow:
        """Upload an image through the image host, then send it with text.

        Returns:
            The finalized row (upload failures are attached as its error).
        """
        return await _last_row(self._send_single(text.strip(), image_data=data))

    def cancel(self) -> None:
        """Cancel the in-flight send, if any. History is left untouched."""
        if self._token is not None:
            self._token.cancel()

    async def clear_history(self) -> None:
        """Cancel any in-flight send, then clear history and rows."""
        self.cancel()
        self.history.clear()
        self.rows.clear()
        if self.emitter is not None:
            await self.emitter.emit(RowsCleared())

    async def retry(self, row_id: str) -> AsyncIterator[ConversationRow]:
        """Remove a row and re-send its original text.

        Raises:
            KeyError: If no row has that id.
            RuntimeError: If another send is in progress.
        """
        if self._token is not None:
            raise RuntimeError("A send is already in progress")
        for index, row in enumerate(self.rows):
            if row.id == row_id:
                break
        else:
            raise KeyError(f"Row not found: {row_id}")

        del self.rows[index]
        if self.emitter is not None:
            await self.emitter.emit(RowRemoved(row_id=row_id))

        if row.image_url is not None:
            rows = self._send_single(row.send_text, image_url=row.image_url)
        else:
            rows = self.send_text(row.send_text)
        try:
            async for updated in rows:
                yield updated
        finally:
            await rows.aclose()
