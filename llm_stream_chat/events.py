"""Conversation rows and the UI update events that carry them.

This module defines:
- ConversationRow: One user turn paired with its (possibly partial) response
- Event: RowAdded, RowUpdated, RowRemoved, RowsCleared
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from typing import Union

from .parser import ParsedOutput, parse

CANCELLED_MESSAGE = "The response was cancelled"


def _new_row_id() -> str:
    return f"row_{uuid.uuid4().hex[:12]}"


@dataclass
class ConversationRow:
    """The unit a chat UI iterates over.

    Created when a send begins with an empty response, updated in place as
    fragments arrive, and finalized (``is_interacting`` False) when the
    stream ends or fails. A failed row keeps its partial response.
    """

    send_text: str
    id: str = field(default_factory=_new_row_id)
    send: ParsedOutput | None = None
    response: ParsedOutput | None = None
    error: str | None = None
    is_interacting: bool = True
    image_url: str | None = None

    @property
    def response_text(self) -> str | None:
        return self.response.full_text if self.response is not None else None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def cancelled(self) -> bool:
        return self.error == CANCELLED_MESSAGE

    def snapshot(self) -> ConversationRow:
        """Return a shallow copy safe to hand to consumers."""
        return replace(self)

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "send_text": self.send_text,
            "response_text": self.response_text,
            "segments": (
                [s.to_dict() for s in self.response.segments]
                if self.response is not None
                else []
            ),
            "error": self.error,
            "is_interacting": self.is_interacting,
            "image_url": self.image_url,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ConversationRow:
        """Deserialize from dictionary. Segments are re-derived by parsing."""
        response_text = data.get("response_text")
        return cls(
            id=data["id"],
            send_text=data["send_text"],
            send=parse(data["send_text"]),
            response=parse(response_text) if response_text is not None else None,
            error=data.get("error"),
            is_interacting=data.get("is_interacting", False),
            image_url=data.get("image_url"),
        )


# --- Event types ---


@dataclass
class RowAdded:
    """A send began; a new row was appended."""

    row: ConversationRow


@dataclass
class RowUpdated:
    """An existing row changed (new fragment, final parse or error)."""

    row: ConversationRow


@dataclass
class RowRemoved:
    """A row was removed (e.g. before a retry)."""

    row_id: str


@dataclass
class RowsCleared:
    """All rows were cleared along with the history."""

    pass


# Union type for all event types
Event = Union[RowAdded, RowUpdated, RowRemoved, RowsCleared]
