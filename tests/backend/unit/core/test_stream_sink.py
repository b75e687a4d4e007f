"""Tests for TurnSink and CancellationToken."""

from __future__ import annotations

import pytest

from core.cancellation import CancellationToken
from core.exceptions import CancellationError, TransportError
from core.stream_sink import SinkEventType, TurnSink


class TestCancellationToken:
    """Tests for CancellationToken."""

    def test_initial_state(self) -> None:
        token = CancellationToken()
        assert token.is_cancelled is False
        assert token.cancel_reason is None
        token.check()

    def test_cancel_sets_reason_once(self) -> None:
        token = CancellationToken()

        assert token.cancel("first") is True
        assert token.cancel("second") is False
        assert token.cancel_reason == "first"

    def test_check_raises_after_cancel(self) -> None:
        token = CancellationToken()
        token.cancel("client disconnected")

        with pytest.raises(CancellationError) as exc_info:
            token.check()
        assert exc_info.value.reason == "client disconnected"

    def test_callbacks_run_on_cancel(self) -> None:
        token = CancellationToken()
        calls: list[str] = []
        token.on_cancel(lambda: calls.append("a"))
        token.on_cancel(lambda: calls.append("b"))

        token.cancel()
        token.cancel()

        assert calls == ["a", "b"]

    def test_callback_registered_after_cancel_runs_immediately(self) -> None:
        token = CancellationToken()
        token.cancel()
        calls: list[int] = []

        token.on_cancel(lambda: calls.append(1))

        assert calls == [1]

    def test_failing_callback_does_not_stop_others(self) -> None:
        token = CancellationToken()
        calls: list[int] = []

        def boom() -> None:
            raise RuntimeError("boom")

        token.on_cancel(boom)
        token.on_cancel(lambda: calls.append(1))
        token.cancel()

        assert calls == [1]


class TestTurnSink:
    """Tests for TurnSink."""

    @pytest.mark.asyncio
    async def test_content_then_done(self) -> None:
        sink = TurnSink()
        sink.emit("Hel")
        sink.emit("lo")
        sink.complete()

        events = [event async for event in sink.events()]

        assert [e.type for e in events] == [SinkEventType.CONTENT, SinkEventType.CONTENT, SinkEventType.DONE]
        assert "".join(e.text or "" for e in events[:-1]) == "Hello"
        assert events[-1].finish_reason == "stop"

    def test_completion_delivered_exactly_once(self) -> None:
        sink = TurnSink()

        assert sink.complete() is True
        assert sink.fail(TransportError("late")) is False
        assert sink.cancel() is False
        assert sink.emit("after") is False

        drained = sink.drain_nowait()
        assert len(drained) == 1
        assert drained[0].type is SinkEventType.DONE

    def test_empty_fragment_is_not_queued(self) -> None:
        sink = TurnSink()
        assert sink.emit("") is True
        assert sink.drain_nowait() == []

    def test_fail_carries_error(self) -> None:
        sink = TurnSink()
        error = TransportError("boom")

        sink.fail(error)

        terminal = sink.terminal_event
        assert terminal is not None
        assert terminal.type is SinkEventType.ERROR
        assert terminal.error is error

    def test_token_cancel_closes_sink_immediately(self) -> None:
        token = CancellationToken()
        sink = TurnSink(token)
        sink.emit("partial")

        token.cancel("User interrupt")

        assert sink.is_closed
        events = sink.drain_nowait()
        assert [e.type for e in events] == [SinkEventType.CONTENT, SinkEventType.CANCELLED]
        assert events[-1].text == "User interrupt"
        assert events[-1].finish_reason == "interrupted"

    def test_complete_after_cancellation_reports_cancelled(self) -> None:
        token = CancellationToken()
        sink = TurnSink(token)
        token.cancel()

        sink.complete()

        assert sink.terminal_event is not None
        assert sink.terminal_event.type is SinkEventType.CANCELLED
