"""Terminal formatting for conversation rows."""

from __future__ import annotations

from .events import ConversationRow
from .parser import ParsedOutput, Segment

CODE_GUTTER = "│ "


def _prefix_lines(text: str, first: str, rest: str) -> str:
    lines = text.split("\n")
    return "\n".join([f"{first}{lines[0]}"] + [f"{rest}{line}" for line in lines[1:]])


def format_segment(segment: Segment) -> str:
    """Format one segment: plain text verbatim, code in a gutter."""
    if not segment.is_code_block:
        return segment.text
    header = f"[{segment.code_language}]" if segment.code_language else "[code]"
    lines = [header]
    if segment.text:
        lines.extend(f"{CODE_GUTTER}{line}" for line in segment.text.split("\n"))
    if not segment.closed:
        lines.append(f"{CODE_GUTTER}…")
    return "\n".join(lines)


def format_output(parsed: ParsedOutput) -> str:
    """Format a parsed response.

    Code blocks always start and end on their own line.
    """
    parts: list[str] = []
    for segment in parsed.segments:
        formatted = format_segment(segment)
        if segment.is_code_block:
            if parts and not parts[-1].endswith("\n"):
                parts.append("\n")
            parts.append(formatted)
            parts.append("\n")
        else:
            if parts and parts[-1] == "\n" and formatted.startswith("\n"):
                formatted = formatted[1:]
            parts.append(formatted)
    return "".join(parts).rstrip("\n")


def format_user_message(text: str) -> str:
    """Format a user message with prompt prefix."""
    if not text:
        return "❯"
    return _prefix_lines(text, "❯ ", "  ")


def format_assistant_text(parsed: ParsedOutput | None) -> str:
    """Format assistant output with bullet prefix."""
    text = format_output(parsed) if parsed is not None else ""
    if not text.strip():
        return "●"
    return _prefix_lines(text, "● ", "  ")


def format_error(error: str) -> str:
    """Format an error line."""
    return _prefix_lines(error, "  ✗ ", "    ")


def format_row(row: ConversationRow) -> str:
    """Format a whole row: user turn, response and error."""
    parts = [format_user_message(row.send_text)]
    if row.image_url:
        parts.append(f"  └ image: {row.image_url}")
    parts.append("")
    if row.is_interacting and not row.response_text:
        parts.append("✱ Thinking…")
    else:
        parts.append(format_assistant_text(row.response))
    if row.error:
        parts.append(format_error(row.error))
    return "\n".join(parts)


def format_rows(rows: list[ConversationRow]) -> str:
    """Format a conversation, rows separated by a blank line."""
    return "\n\n".join(format_row(row) for row in rows)
