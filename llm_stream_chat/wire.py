"""Decoding of provider response envelopes.

Streaming bodies are event-stream lines; each ``data: `` line carries one
JSON chunk ``{"choices": [{"delta": {"content": ...}, "finish_reason": ...}]}``.
Non-streaming bodies are a single completion envelope. Errors come back as
``{"error": {"message": ..., "type": ...}}``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum, auto

from .errors import DecodeError, UpstreamEmptyError

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
TERMINATOR = "[DONE]"


# ---------------------------------------------------------------------------
# Stream line classification
# ---------------------------------------------------------------------------


class FrameType(Enum):
    DATA = auto()
    TERMINATOR = auto()
    IGNORED = auto()


def classify_frame(line: str) -> FrameType:
    """Classify a raw event-stream line."""
    if not line.startswith(DATA_PREFIX):
        # Blank separators, ": keepalive" comments, "event:" / "id:" fields
        return FrameType.IGNORED
    if line[len(DATA_PREFIX):].strip() == TERMINATOR:
        return FrameType.TERMINATOR
    return FrameType.DATA


def is_terminator(line: str) -> bool:
    """Return True for the end-of-stream sentinel line."""
    return classify_frame(line) is FrameType.TERMINATOR


@dataclass
class StreamChunk:
    """One decoded streaming chunk."""

    content: str | None
    role: str | None = None
    finish_reason: str | None = None


def decode_chunk(payload: str) -> StreamChunk:
    """Decode the JSON payload of a data frame.

    Raises:
        DecodeError: If the payload is not JSON or lacks choices[0].delta.
    """
    try:
        obj = json.loads(payload)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Invalid chunk JSON: {e}") from e

    if not isinstance(obj, dict):
        raise DecodeError(f"Expected object, got {type(obj).__name__}")
    choices = obj.get("choices")
    if not isinstance(choices, list) or not choices:
        raise DecodeError("Chunk has no choices")
    first = choices[0]
    if not isinstance(first, dict) or not isinstance(first.get("delta"), dict):
        raise DecodeError("Chunk choice has no delta")

    delta = first["delta"]
    content = delta.get("content")
    if content is not None and not isinstance(content, str):
        raise DecodeError(f"Delta content is {type(content).__name__}")
    return StreamChunk(
        content=content,
        role=delta.get("role"),
        finish_reason=first.get("finish_reason"),
    )


def decode_data_line(line: str) -> StreamChunk | None:
    """Decode a raw stream line into a chunk.

    Returns None for lines that carry no data (separators, comments,
    other fields and the terminator).

    Raises:
        DecodeError: If a data line's payload is malformed.
    """
    if classify_frame(line) is not FrameType.DATA:
        return None
    return decode_chunk(line[len(DATA_PREFIX):])


# ---------------------------------------------------------------------------
# Non-streaming completion
# ---------------------------------------------------------------------------


@dataclass
class Usage:
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> Usage:
        return cls(
            prompt_tokens=data.get("prompt_tokens"),
            completion_tokens=data.get("completion_tokens"),
            total_tokens=data.get("total_tokens"),
        )


@dataclass
class Completion:
    """A decoded single-shot completion."""

    content: str
    finish_reason: str | None = None
    usage: Usage | None = None


def decode_completion(body: str, *, strict: bool = False) -> Completion:
    """Decode a non-streaming completion envelope.

    An envelope with no choices decodes to empty content unless ``strict``.

    Raises:
        DecodeError: If the body is not a completion envelope.
        UpstreamEmptyError: If ``strict`` and there are no choices.
    """
    try:
        obj = json.loads(body)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Invalid completion JSON: {e}") from e
    if not isinstance(obj, dict):
        raise DecodeError(f"Expected object, got {type(obj).__name__}")

    usage = None
    if isinstance(obj.get("usage"), dict):
        usage = Usage.from_dict(obj["usage"])

    choices = obj.get("choices") or []
    if not isinstance(choices, list):
        raise DecodeError("Completion choices is not a list")
    if not choices:
        if strict:
            raise UpstreamEmptyError("Completion has no choices")
        return Completion(content="", usage=usage)

    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    if not isinstance(message, dict):
        raise DecodeError("Completion choice has no message")

    content = message.get("content")
    if content is None:
        content = ""
    elif isinstance(content, list):
        # Multi-part replies: keep the text parts
        content = "".join(
            part.get("text", "") for part in content if isinstance(part, dict)
        )
    elif not isinstance(content, str):
        raise DecodeError(f"Message content is {type(content).__name__}")

    return Completion(
        content=content,
        finish_reason=first.get("finish_reason"),
        usage=usage,
    )


def parse_completion(body: str) -> str:
    """Return the first choice's message content ("" when there is none)."""
    return decode_completion(body).content


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


def parse_error_message(body: str) -> str | None:
    """Extract error.message from a provider error envelope, if decodable."""
    try:
        obj = json.loads(body)
    except json.JSONDecodeError:
        return None
    if not isinstance(obj, dict):
        return None
    error = obj.get("error")
    if not isinstance(error, dict):
        return None
    message = error.get("message")
    return message if isinstance(message, str) else None
