"""Shared test fixtures for LLM Stream Chat."""

from __future__ import annotations

import pytest

from helpers import FakeProvider
from llm_stream_chat.history import HistoryBuffer


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def history() -> HistoryBuffer:
    return HistoryBuffer("You are a helpful assistant")
