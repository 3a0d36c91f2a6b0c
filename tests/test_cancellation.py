"""Tests for CancellationToken."""

from __future__ import annotations

import asyncio

import pytest

from llm_stream_chat.cancellation import CancellationToken
from llm_stream_chat.errors import Cancelled


class TestCallbacks:
    def test_cancel_runs_callbacks_once(self) -> None:
        token = CancellationToken()
        calls: list[str] = []
        token.add_callback(lambda: calls.append("a"))
        token.cancel()
        token.cancel()
        assert calls == ["a"]
        assert token.cancelled is True

    def test_callback_added_after_cancel_runs_immediately(self) -> None:
        token = CancellationToken()
        token.cancel()
        calls: list[str] = []
        token.add_callback(lambda: calls.append("late"))
        assert calls == ["late"]

    def test_removed_callback_does_not_run(self) -> None:
        token = CancellationToken()
        calls: list[str] = []

        def callback() -> None:
            calls.append("x")

        token.add_callback(callback)
        token.remove_callback(callback)
        token.remove_callback(callback)
        token.cancel()
        assert calls == []

    def test_failing_callback_does_not_stop_others(self) -> None:
        token = CancellationToken()
        calls: list[str] = []

        def boom() -> None:
            raise RuntimeError("boom")

        token.add_callback(boom)
        token.add_callback(lambda: calls.append("ok"))
        token.cancel()
        assert calls == ["ok"]

    def test_raise_if_cancelled(self) -> None:
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel()
        with pytest.raises(Cancelled, match="The response was cancelled"):
            token.raise_if_cancelled()


class TestGuard:
    @pytest.mark.asyncio
    async def test_returns_result(self) -> None:
        token = CancellationToken()

        async def work() -> int:
            return 42

        assert await token.guard(work()) == 42

    @pytest.mark.asyncio
    async def test_propagates_exception(self) -> None:
        token = CancellationToken()

        async def work() -> int:
            raise ValueError("bad")

        with pytest.raises(ValueError):
            await token.guard(work())

    @pytest.mark.asyncio
    async def test_already_cancelled_raises_without_running(self) -> None:
        token = CancellationToken()
        token.cancel()
        started = False

        async def work() -> None:
            nonlocal started
            started = True

        with pytest.raises(Cancelled):
            await token.guard(work())
        assert started is False

    @pytest.mark.asyncio
    async def test_cancel_interrupts_pending_wait(self) -> None:
        token = CancellationToken()
        never = asyncio.Event()
        interrupted = False

        async def work() -> None:
            nonlocal interrupted
            try:
                await never.wait()
            except asyncio.CancelledError:
                interrupted = True
                raise

        task = asyncio.create_task(token.guard(work()))
        await asyncio.sleep(0)
        token.cancel()

        with pytest.raises(Cancelled):
            await asyncio.wait_for(task, timeout=1)
        assert interrupted is True

    @pytest.mark.asyncio
    async def test_outer_task_cancellation_propagates(self) -> None:
        token = CancellationToken()
        task = asyncio.create_task(token.guard(asyncio.sleep(10)))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert token.cancelled is False
