"""Tests for stream line classification and envelope decoding."""

from __future__ import annotations

import json

import pytest

from helpers import DONE_LINE, completion_body, data_line, error_body
from llm_stream_chat.errors import DecodeError, UpstreamEmptyError
from llm_stream_chat.wire import (
    FrameType,
    classify_frame,
    decode_chunk,
    decode_completion,
    decode_data_line,
    is_terminator,
    parse_completion,
    parse_error_message,
)


class TestClassifyFrame:
    @pytest.mark.parametrize(
        "line",
        ["", ": keepalive", "event: message", "id: 7", "data:[DONE]", "retry: 10"],
    )
    def test_non_data_lines_are_ignored(self, line: str) -> None:
        assert classify_frame(line) is FrameType.IGNORED

    def test_terminator(self) -> None:
        assert classify_frame(DONE_LINE) is FrameType.TERMINATOR
        assert is_terminator("data: [DONE]  ")

    def test_data_line(self) -> None:
        assert classify_frame(data_line("hi")) is FrameType.DATA
        assert not is_terminator(data_line("hi"))


class TestDecodeChunk:
    def test_content_and_finish_reason(self) -> None:
        chunk = decode_chunk(data_line("Hi", finish_reason="stop")[len("data: "):])
        assert chunk.content == "Hi"
        assert chunk.finish_reason == "stop"

    def test_role_only_delta(self) -> None:
        payload = json.dumps({"choices": [{"delta": {"role": "assistant"}}]})
        chunk = decode_chunk(payload)
        assert chunk.content is None
        assert chunk.role == "assistant"

    @pytest.mark.parametrize(
        "payload",
        [
            "not json",
            "[]",
            json.dumps({"choices": []}),
            json.dumps({"choices": [{"message": {}}]}),
            json.dumps({"choices": [{"delta": {"content": 3}}]}),
        ],
    )
    def test_malformed_payload_raises(self, payload: str) -> None:
        with pytest.raises(DecodeError):
            decode_chunk(payload)


class TestDecodeDataLine:
    def test_extracts_chunk(self) -> None:
        chunk = decode_data_line(data_line("Hello"))
        assert chunk is not None
        assert chunk.content == "Hello"

    @pytest.mark.parametrize("line", [DONE_LINE, ": ping", "", "event: message"])
    def test_lines_without_data_yield_none(self, line: str) -> None:
        assert decode_data_line(line) is None

    def test_malformed_data_line_raises(self) -> None:
        with pytest.raises(DecodeError):
            decode_data_line("data: {broken")


class TestDecodeCompletion:
    def test_first_choice_content(self) -> None:
        completion = decode_completion(completion_body("Hello!"))
        assert completion.content == "Hello!"
        assert completion.finish_reason == "stop"
        assert completion.usage is not None
        assert completion.usage.total_tokens == 7

    def test_without_usage(self) -> None:
        assert decode_completion(completion_body("x", usage=False)).usage is None

    def test_empty_choices_decode_to_empty_text(self) -> None:
        assert parse_completion(completion_body(None)) == ""

    def test_empty_choices_strict_raises(self) -> None:
        with pytest.raises(UpstreamEmptyError):
            decode_completion(completion_body(None), strict=True)

    def test_null_content_is_empty(self) -> None:
        body = json.dumps({"choices": [{"message": {"content": None}}]})
        assert parse_completion(body) == ""

    def test_multi_part_content_keeps_text(self) -> None:
        body = json.dumps(
            {
                "choices": [
                    {
                        "message": {
                            "content": [
                                {"type": "text", "text": "a"},
                                {"type": "text", "text": "b"},
                            ]
                        }
                    }
                ]
            }
        )
        assert parse_completion(body) == "ab"

    @pytest.mark.parametrize(
        "body",
        ["<html>", "42", json.dumps({"choices": [{"text": "legacy"}]})],
    )
    def test_malformed_body_raises(self, body: str) -> None:
        with pytest.raises(DecodeError):
            decode_completion(body)


class TestParseErrorMessage:
    def test_error_envelope(self) -> None:
        assert parse_error_message(error_body("rate limited")) == "rate limited"

    @pytest.mark.parametrize(
        "body",
        ["Bad Gateway", "", json.dumps({"detail": "x"}), json.dumps({"error": "x"})],
    )
    def test_not_an_envelope(self, body: str) -> None:
        assert parse_error_message(body) is None
