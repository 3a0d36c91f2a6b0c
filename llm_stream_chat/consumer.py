"""Row consumers: conversation state and live terminal output."""

from __future__ import annotations

import sys
from typing import TextIO

from .events import (
    ConversationRow,
    Event,
    RowAdded,
    RowRemoved,
    RowsCleared,
    RowUpdated,
)
from .formatter import format_error, format_row, format_rows


class ConversationConsumer:
    """Builds the full list of rows from events.

    Implements the Consumer protocol from protocol.py for use with EventEmitter.
    """

    def __init__(self) -> None:
        self.rows: list[ConversationRow] = []
        self._row_index: dict[str, int] = {}  # row_id → index in rows

    async def on_event(self, event: Event) -> None:
        """Process a single event (async protocol method)."""
        self.handle(event)

    def handle(self, event: Event) -> None:
        """Process a single event (synchronous method)."""
        if isinstance(event, RowAdded):
            self._row_index[event.row.id] = len(self.rows)
            self.rows.append(event.row)
        elif isinstance(event, RowUpdated):
            index = self._row_index.get(event.row.id)
            if index is None:
                # Update for a row dropped by a clear
                return
            self.rows[index] = event.row
        elif isinstance(event, RowRemoved):
            index = self._row_index.pop(event.row_id, None)
            if index is not None:
                del self.rows[index]
                self._reindex()
        elif isinstance(event, RowsCleared):
            self.rows.clear()
            self._row_index.clear()

    def _reindex(self) -> None:
        self._row_index = {row.id: i for i, row in enumerate(self.rows)}

    def render_row(self, row: ConversationRow) -> str:
        """Render a row to its terminal representation."""
        return format_row(row)

    def to_text(self) -> str:
        """Render all rows."""
        return format_rows(self.rows)


class TerminalConsumer:
    """Writes the in-flight response to a terminal as it streams.

    Raw response text is written as it grows; the styled segmentation is
    available through render_row() once the row is final.
    """

    def __init__(self, out: TextIO | None = None) -> None:
        self.out = out or sys.stdout
        self._written: dict[str, int] = {}  # row_id → characters written

    async def on_event(self, event: Event) -> None:
        """Process a single event."""
        if isinstance(event, RowAdded):
            self._written[event.row.id] = 0
            self.out.write("● ")
        elif isinstance(event, RowUpdated):
            self._write_progress(event.row)
        elif isinstance(event, RowsCleared):
            self._written.clear()
        self.out.flush()

    def _write_progress(self, row: ConversationRow) -> None:
        written = self._written.get(row.id)
        if written is None:
            return
        text = row.response_text or ""
        if len(text) > written:
            self.out.write(text[written:].replace("\n", "\n  "))
            self._written[row.id] = len(text)
        if not row.is_interacting:
            self.out.write("\n")
            if row.error:
                self.out.write(format_error(row.error) + "\n")
            del self._written[row.id]

    def render_row(self, row: ConversationRow) -> str:
        """Render a row to its terminal representation."""
        return format_row(row)
