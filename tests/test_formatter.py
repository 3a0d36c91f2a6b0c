"""Tests for terminal formatting of rows and segments."""

from __future__ import annotations

from llm_stream_chat.events import ConversationRow
from llm_stream_chat.formatter import (
    format_assistant_text,
    format_error,
    format_output,
    format_row,
    format_rows,
    format_segment,
    format_user_message,
)
from llm_stream_chat.parser import parse


class TestFormatSegment:
    def test_plain_text_verbatim(self) -> None:
        assert format_segment(parse("hello").segments[0]) == "hello"

    def test_closed_code_block(self) -> None:
        segment = parse("```py\na = 1\nb = 2\n```").segments[0]
        assert format_segment(segment) == "[py]\n│ a = 1\n│ b = 2"

    def test_untagged_block(self) -> None:
        segment = parse("```\nx\n```").segments[0]
        assert format_segment(segment) == "[code]\n│ x"

    def test_open_block_shows_ellipsis(self) -> None:
        segment = parse("```sh\nls").segments[0]
        assert format_segment(segment) == "[sh]\n│ ls\n│ …"


class TestFormatOutput:
    def test_code_on_its_own_lines(self) -> None:
        out = format_output(parse("Run ```sh\nls\n``` then done"))
        assert out == "Run \n[sh]\n│ ls\n then done"

    def test_text_around_block(self) -> None:
        out = format_output(parse("Here:\n```py\npass\n```\nDone."))
        assert out == "Here:\n[py]\n│ pass\nDone."


class TestFormatMessages:
    def test_user_message(self) -> None:
        assert format_user_message("hi\nthere") == "❯ hi\n  there"
        assert format_user_message("") == "❯"

    def test_assistant_text(self) -> None:
        assert format_assistant_text(parse("a\nb")) == "● a\n  b"
        assert format_assistant_text(None) == "●"

    def test_error(self) -> None:
        assert format_error("boom") == "  ✗ boom"


class TestFormatRow:
    def test_waiting_row(self) -> None:
        row = ConversationRow(send_text="hello", response=parse(""))
        assert format_row(row) == "❯ hello\n\n✱ Thinking…"

    def test_failed_row_keeps_partial(self) -> None:
        row = ConversationRow(
            send_text="hello",
            response=parse("Hi"),
            error="connection reset",
            is_interacting=False,
        )
        assert format_row(row) == "❯ hello\n\n● Hi\n  ✗ connection reset"

    def test_image_row(self) -> None:
        row = ConversationRow(
            send_text="what?",
            response=parse("A cat"),
            is_interacting=False,
            image_url="https://i/c.png",
        )
        assert format_row(row) == "❯ what?\n  └ image: https://i/c.png\n\n● A cat"

    def test_rows_separated_by_blank_line(self) -> None:
        rows = [
            ConversationRow(send_text="a", response=parse("1"), is_interacting=False),
            ConversationRow(send_text="b", response=parse("2"), is_interacting=False),
        ]
        assert format_rows(rows) == "❯ a\n\n● 1\n\n❯ b\n\n● 2"
