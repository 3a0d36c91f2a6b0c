"""Consumer protocol for conversation row updates.

Consumers receive RowAdded / RowUpdated / RowRemoved / RowsCleared events
from the EventEmitter, in the order the session produced them.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .events import ConversationRow, Event


@runtime_checkable
class Consumer(Protocol):
    """Protocol for row update consumers.

    Consumers are responsible for:
    1. Processing events via on_event()
    2. Rendering a row to string via render_row()
    """

    async def on_event(self, event: Event) -> None:
        """Process a single event.

        Args:
            event: The event to process.
        """
        ...

    def render_row(self, row: ConversationRow) -> str:
        """Render a row to its string representation.

        Args:
            row: The row to render.

        Returns:
            String representation of the row.
        """
        ...
