"""Conversation turns and chat-completion request payloads.

This module defines the data model sent to the provider:
- Role: Who authored a turn
- TurnContent: Tagged union of text and image content
- ContentPart: Tagged union of the parts inside image content
- Turn: One immutable conversation message
- ChatRequest: The provider request payload
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union


class Role(Enum):
    """Author of a conversation turn."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


# --- Content parts (inside image content) ---


@dataclass(frozen=True)
class TextPart:
    """A text part of a multi-part message."""

    text: str

    def to_dict(self) -> dict:
        """Serialize to provider format."""
        return {"type": "text", "text": self.text}

    @classmethod
    def from_dict(cls, data: dict) -> TextPart:
        """Deserialize from provider format."""
        return cls(text=data["text"])


@dataclass(frozen=True)
class ImageUrlPart:
    """An image reference part of a multi-part message."""

    url: str

    def to_dict(self) -> dict:
        """Serialize to provider format."""
        return {"type": "image_url", "image_url": {"url": self.url}}

    @classmethod
    def from_dict(cls, data: dict) -> ImageUrlPart:
        """Deserialize from provider format."""
        return cls(url=data["image_url"]["url"])


ContentPart = Union[TextPart, ImageUrlPart]


def part_from_dict(data: dict) -> ContentPart:
    """Deserialize a ContentPart using its "type" discriminator.

    Raises:
        KeyError: If "type" is missing or unknown.
    """
    type_map = {
        "text": TextPart.from_dict,
        "image_url": ImageUrlPart.from_dict,
    }
    return type_map[data["type"]](data)


# --- Turn content ---


@dataclass(frozen=True)
class TextContent:
    """Plain string content."""

    text: str

    @property
    def weight(self) -> int:
        """Budget weight: character count."""
        return len(self.text)

    def to_wire(self) -> str | list[dict]:
        """Value of the provider "content" field."""
        return self.text

    def to_dict(self) -> dict:
        """Serialize to tagged dictionary."""
        return {"type": "text", "text": self.text}

    @classmethod
    def from_dict(cls, data: dict) -> TextContent:
        """Deserialize from tagged dictionary."""
        return cls(text=data["text"])


@dataclass(frozen=True)
class ImageContent:
    """Multi-part content mixing text and image references."""

    parts: tuple[ContentPart, ...] = field(default_factory=tuple)

    @property
    def weight(self) -> int:
        """Budget weight: number of parts."""
        return len(self.parts)

    def to_wire(self) -> str | list[dict]:
        """Value of the provider "content" field."""
        return [part.to_dict() for part in self.parts]

    def to_dict(self) -> dict:
        """Serialize to tagged dictionary."""
        return {"type": "image", "parts": [part.to_dict() for part in self.parts]}

    @classmethod
    def from_dict(cls, data: dict) -> ImageContent:
        """Deserialize from tagged dictionary."""
        return cls(parts=tuple(part_from_dict(p) for p in data["parts"]))


TurnContent = Union[TextContent, ImageContent]


def content_from_dict(data: dict) -> TurnContent:
    """Deserialize TurnContent from dictionary using type discriminator.

    Args:
        data: Dictionary with "type" field indicating content type.

    Returns:
        The matching TurnContent variant.

    Raises:
        KeyError: If "type" field is missing or unknown.
    """
    type_map = {
        "text": TextContent.from_dict,
        "image": ImageContent.from_dict,
    }
    return type_map[data["type"]](data)


# --- Turn ---


@dataclass(frozen=True)
class Turn:
    """One message in the conversation."""

    role: Role
    content: TurnContent

    @classmethod
    def text(cls, role: Role, text: str) -> Turn:
        """Build a text turn."""
        return cls(role=role, content=TextContent(text))

    @classmethod
    def image(cls, role: Role, text: str, image_url: str) -> Turn:
        """Build a text + image turn."""
        return cls(
            role=role,
            content=ImageContent(parts=(TextPart(text), ImageUrlPart(image_url))),
        )

    @property
    def weight(self) -> int:
        return self.content.weight

    def to_wire(self) -> dict:
        """Serialize to the provider message format."""
        return {"role": self.role.value, "content": self.content.to_wire()}

    def to_dict(self) -> dict:
        """Serialize to tagged dictionary."""
        return {"role": self.role.value, "content": self.content.to_dict()}

    @classmethod
    def from_dict(cls, data: dict) -> Turn:
        """Deserialize from tagged dictionary."""
        return cls(role=Role(data["role"]), content=content_from_dict(data["content"]))


def total_weight(turns: list[Turn] | tuple[Turn, ...]) -> int:
    """Sum the budget weight of a sequence of turns."""
    return sum(turn.weight for turn in turns)


# --- Request ---


@dataclass(frozen=True)
class ChatRequest:
    """Chat-completion request payload."""

    model: str
    messages: tuple[Turn, ...]
    temperature: float | None = 0.5
    stream: bool = True

    @property
    def weight(self) -> int:
        return total_weight(self.messages)

    def to_dict(self) -> dict:
        """Serialize to the provider JSON body."""
        body: dict = {
            "model": self.model,
            "messages": [turn.to_wire() for turn in self.messages],
            "stream": self.stream,
        }
        if self.temperature is not None:
            body["temperature"] = self.temperature
        return body
