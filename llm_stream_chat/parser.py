"""Segmentation of a markdown transcript into plain text and fenced code.

``parse()`` is the authoritative, stateless segmentation. ``IncrementalParser``
wraps it for a growing transcript: it re-parses only when the unparsed
suffix could change the segmentation, and otherwise patches the suffix onto
a copy of the last segment for display.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum

from .cancellation import CancellationToken

logger = logging.getLogger(__name__)

FENCE = "```"

# Unparsed characters that force an authoritative re-parse
DEFAULT_PARSE_THRESHOLD = 64


class SegmentStyle(Enum):
    PLAIN = "plain"
    CODE = "code"


@dataclass(frozen=True)
class Segment:
    """A styled run of the transcript.

    ``source`` is the exact slice of the transcript the segment covers,
    fences included, so the sources of a parse concatenate back to the
    input. ``text`` is what gets displayed: the code body for code blocks.
    """

    source: str
    text: str
    is_code_block: bool = False
    code_language: str | None = None
    closed: bool = True

    @property
    def style(self) -> SegmentStyle:
        return SegmentStyle.CODE if self.is_code_block else SegmentStyle.PLAIN

    def extended(self, suffix: str) -> Segment:
        """Return a copy with ``suffix`` appended to source and display text."""
        return replace(self, source=self.source + suffix, text=self.text + suffix)

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "text": self.text,
            "is_code_block": self.is_code_block,
            "code_language": self.code_language,
        }


@dataclass(frozen=True)
class ParsedOutput:
    """A transcript and its segmentation."""

    full_text: str
    segments: tuple[Segment, ...]

    @property
    def source_text(self) -> str:
        """Concatenated segment sources (equals ``full_text``)."""
        return "".join(s.source for s in self.segments)

    @property
    def code_blocks(self) -> list[Segment]:
        return [s for s in self.segments if s.is_code_block]


def _plain(source: str) -> Segment:
    return Segment(source=source, text=source)


def _language(info: str) -> str | None:
    words = info.split()
    return words[0] if words else None


def parse(full_text: str) -> ParsedOutput:
    """Split a transcript into plain and fenced-code segments.

    Rules:
    - A ``` opens a code block anywhere in the text; the rest of its line
      is the info string, whose first word becomes ``code_language``.
    - The next ``` after the opening line closes it. Without one the block
      stays open to the end of the text; no closing fence is invented.
    - An info string containing a backtick (an inline span such as
      ```ls```) does not open a block; the line stays plain text.
    - A whitespace-only transcript is one empty plain segment.
    """
    if not full_text.strip():
        return ParsedOutput(full_text, (Segment(source=full_text, text=""),))

    segments: list[Segment] = []
    pos = 0
    search = 0
    length = len(full_text)

    while pos < length:
        start = full_text.find(FENCE, search)
        if start == -1:
            segments.append(_plain(full_text[pos:]))
            break

        info_start = start + len(FENCE)
        newline = full_text.find("\n", info_start)
        info = full_text[info_start:] if newline == -1 else full_text[info_start:newline]
        if "`" in info:
            # Inline span: keep scanning from the next line
            if newline == -1:
                segments.append(_plain(full_text[pos:]))
                break
            search = newline
            continue

        if start > pos:
            segments.append(_plain(full_text[pos:start]))
        if newline == -1:
            # Opening line still arriving
            segments.append(
                Segment(
                    source=full_text[start:],
                    text="",
                    is_code_block=True,
                    code_language=_language(info),
                    closed=False,
                )
            )
            break

        language = _language(info)
        body_start = newline + 1
        end = full_text.find(FENCE, body_start)
        if end == -1:
            segments.append(
                Segment(
                    source=full_text[start:],
                    text=full_text[body_start:],
                    is_code_block=True,
                    code_language=language,
                    closed=False,
                )
            )
            break

        body = full_text[body_start:end]
        if body.endswith("\n"):
            body = body[:-1]
        segments.append(
            Segment(
                source=full_text[start:end + len(FENCE)],
                text=body,
                is_code_block=True,
                code_language=language,
            )
        )
        pos = end + len(FENCE)
        search = pos

    return ParsedOutput(full_text, tuple(segments))


class IncrementalParser:
    """Maintains the segmentation of a growing transcript.

    ``feed()`` re-parses authoritatively when the unparsed suffix reaches
    ``threshold`` characters or contains a fence marker (including one
    split across fragments); otherwise it returns the last authoritative
    output with the suffix appended to a copy of its last segment.
    ``finish()`` always re-parses, so the stored result is authoritative.
    """

    def __init__(
        self,
        threshold: int = DEFAULT_PARSE_THRESHOLD,
        token: CancellationToken | None = None,
    ) -> None:
        self.threshold = threshold
        self._token = token
        self._parts: list[str] = []
        self._length = 0
        self._parsed: ParsedOutput | None = None
        self.reparse_count = 0

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def last_authoritative(self) -> ParsedOutput | None:
        return self._parsed

    @property
    def is_authoritative(self) -> bool:
        """True when the last parse covers the whole transcript."""
        return self._parsed is not None and len(self._parsed.full_text) == self._length

    def _parsed_length(self) -> int:
        return len(self._parsed.full_text) if self._parsed is not None else 0

    def _needs_reparse(self, text: str) -> bool:
        parsed_length = self._parsed_length()
        if self._length - parsed_length >= self.threshold:
            return True
        # Look back so a fence split across fragments is still seen
        lookback = max(0, parsed_length - (len(FENCE) - 1))
        return FENCE in text[lookback:]

    def _reparse(self, text: str) -> ParsedOutput:
        self._parsed = parse(text)
        self.reparse_count += 1
        if self._token is not None:
            self._token.raise_if_cancelled()
        return self._parsed

    def feed(self, fragment: str) -> ParsedOutput:
        """Append a fragment and return the output to display."""
        self._parts.append(fragment)
        self._length += len(fragment)
        text = self.text

        if self._needs_reparse(text):
            return self._reparse(text)
        return self._patched(text)

    def _patched(self, text: str) -> ParsedOutput:
        if self._parsed is None or not self._parsed.segments:
            return ParsedOutput(text, (_plain(text),))
        suffix = text[self._parsed_length():]
        if not suffix:
            return self._parsed
        segments = list(self._parsed.segments)
        segments[-1] = segments[-1].extended(suffix)
        return ParsedOutput(text, tuple(segments))

    def finish(self) -> ParsedOutput:
        """Authoritatively parse the complete transcript."""
        text = self.text
        if self.is_authoritative and self._parsed is not None:
            return self._parsed
        logger.debug(
            "final_parse",
            extra={"length": len(text), "reparse_count": self.reparse_count},
        )
        return self._reparse(text)
