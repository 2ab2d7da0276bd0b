"""
Tests for turn submission, context enrichment and turn tracing
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from unittest.mock import MagicMock

import httpx
import openai
import pytest

from conftest import FakeAssistantProvider, active_run, collect, run_update
from infrastructure.external.langfuse_client import TurnTrace
from services.assistant_service.models import CancelToken, EventType
from services.assistant_service.provider import TextDelta
from services.assistant_service.run_guard import RunGuard
from services.assistant_service.run_coordinator import RunCoordinator
from services.assistant_service.service import (
    AssistantService,
    MESSAGE_REJECTED,
    MISSING_INPUT,
    compose_user_message,
)
from services.errors import (
    AuthenticationRequiredError,
    InputValidationError,
    MessageRejectedError,
    RunConflictError,
)
from services.tool_service.models import ExecutionContext, UserContext, UserLocation


NOW = datetime(2024, 5, 1, 16, 30, tzinfo=timezone.utc)


class FakeTracer:
    """Tracer yielding TurnTrace objects over mock spans"""

    def __init__(self):
        self.traces = []

    @contextmanager
    def trace_turn(self, thread_id, user_id=None):
        trace = TurnTrace(MagicMock())
        self.traces.append((thread_id, user_id, trace))
        try:
            yield trace
        finally:
            trace.finish()


class TestComposeUserMessage:
    """Context block appended to user messages"""

    def test_without_context_text_is_unchanged(self):
        """Test that a message without context is sent as typed"""
        assert compose_user_message("Book lunch", None) == "Book lunch"
        assert compose_user_message("Book lunch", UserContext()) == "Book lunch"

    def test_context_block_uses_local_time(self):
        """Test context block rendering in the user's timezone"""
        context = UserContext(location=UserLocation(city="Paris", country="France"), timezone="Europe/Paris")

        text = compose_user_message("Schedule gym at 6 PM", context, now=NOW)

        assert text.startswith("Schedule gym at 6 PM\n\n[CURRENT CONTEXT: ")
        assert "User location: Paris, France" in text
        assert "User timezone: Europe/Paris" in text
        assert "ISO time: 2024-05-01T16:30:00+00:00" in text
        assert "24h time: 18:30" in text
        assert text.endswith("]")

    def test_unknown_timezone_falls_back_to_utc(self):
        """Test fallback to UTC for an unknown timezone"""
        text = compose_user_message("hi", UserContext(timezone="Mars/Olympus"), now=NOW)

        assert "24h time: 16:30" in text

    def test_location_without_timezone(self):
        """Test context block with a location but no timezone"""
        text = compose_user_message("hi", UserContext(location=UserLocation(city="Oslo")), now=NOW)

        assert text == "hi\n\n[CURRENT CONTEXT: User location: Oslo]"


class TestAddUserMessage:
    """Message submission and its failure modes"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("thread_id,text", [("", "hi"), ("thread_1", ""), ("thread_1", "   ")])
    async def test_missing_input(self, service, provider, thread_id, text):
        """Test validation of thread id and message text"""
        with pytest.raises(InputValidationError) as exc_info:
            await service.add_user_message(thread_id, text)

        assert exc_info.value.message == MISSING_INPUT
        assert provider.list_active_calls == 0

    @pytest.mark.asyncio
    async def test_rejected_message(self, service, provider):
        """Test provider refusal wrapped as a rejected message"""
        provider.add_message_error = RuntimeError("thread is locked")

        with pytest.raises(MessageRejectedError) as exc_info:
            await service.add_user_message("thread_1", "hello")

        assert exc_info.value.message == MESSAGE_REJECTED
        assert exc_info.value.detail == "thread is locked"

    @pytest.mark.asyncio
    async def test_provider_credentials_rejected(self, service, provider):
        """Test bad provider credentials reported as an auth error"""
        response = httpx.Response(401, request=httpx.Request("POST", "https://api.openai.com/v1/threads"))
        provider.add_message_error = openai.AuthenticationError("bad key", response=response, body=None)

        with pytest.raises(AuthenticationRequiredError):
            await service.add_user_message("thread_1", "hello")

    @pytest.mark.asyncio
    async def test_stuck_run_rejects_message(self, guard_config):
        """A run that cannot be cancelled surfaces as a rejected message"""
        provider = FakeAssistantProvider(active_runs=[[active_run()] for _ in range(50)])
        provider.cancel_error = RuntimeError("cannot cancel run")
        guard = RunGuard(provider, guard_config)
        service = AssistantService(provider, RunCoordinator(provider, None, guard), guard)

        with pytest.raises(MessageRejectedError) as exc_info:
            await service.add_user_message("thread_1", "hello")

        assert exc_info.value.message == MESSAGE_REJECTED
        assert exc_info.value.detail == "cannot cancel run"
        assert provider.added == []

    @pytest.mark.asyncio
    async def test_run_listing_failure_rejects_message(self, service, provider):
        """Provider errors while checking for active runs are wrapped too"""
        async def unavailable(thread_id):
            raise RuntimeError("upstream timeout")

        provider.list_active_runs = unavailable

        with pytest.raises(MessageRejectedError) as exc_info:
            await service.add_user_message("thread_1", "hello")

        assert exc_info.value.message == MESSAGE_REJECTED
        assert exc_info.value.detail == "upstream timeout"

    @pytest.mark.asyncio
    async def test_cancelled_while_waiting_for_active_run(self, guard_config):
        """Test cancellation while an earlier run is still active"""
        provider = FakeAssistantProvider(active_runs=[[active_run()] for _ in range(50)])
        guard = RunGuard(provider, guard_config)
        service = AssistantService(provider, RunCoordinator(provider, None, guard), guard)
        token = CancelToken()
        token.cancel()

        assert await service.add_user_message("thread_1", "hello", cancel_token=token) is None
        assert provider.added == []

    @pytest.mark.asyncio
    async def test_get_messages_requires_thread(self, service):
        """Test message listing without a thread id"""
        with pytest.raises(InputValidationError):
            await service.get_messages("")


class TestTurns:
    """Leased turns"""

    @pytest.mark.asyncio
    async def test_turn_runs_and_releases_lease(self, service, provider, guard):
        """Test a full turn holds and then releases the thread lease"""
        provider.segments = [[TextDelta("Hi!"), run_update("completed")]]
        context = ExecutionContext(user_context=UserContext(timezone="UTC"))

        turn = await service.start_turn("thread_1", "hello", context)
        assert guard.is_leased("thread_1")

        events = await collect(turn.events())

        assert [e.type for e in events] == [EventType.CONTENT, EventType.COMPLETE]
        assert not guard.is_leased("thread_1")
        thread_id, content = provider.added[0]
        assert thread_id == "thread_1"
        assert content.startswith("hello\n\n[CURRENT CONTEXT: User timezone: UTC")

    @pytest.mark.asyncio
    async def test_failed_submission_releases_lease(self, service, provider, guard):
        """Test lease release when the message is rejected"""
        provider.add_message_error = RuntimeError("nope")

        with pytest.raises(MessageRejectedError):
            await service.start_turn("thread_1", "hello", ExecutionContext())

        assert not guard.is_leased("thread_1")

    @pytest.mark.asyncio
    async def test_concurrent_turn_on_same_thread_conflicts(self, service, guard):
        """Test a second turn on a leased thread conflicts"""
        turn = await service.start_turn("thread_1", "first", ExecutionContext())
        with pytest.raises(RunConflictError):
            await service.start_turn("thread_1", "second", ExecutionContext())

        turn.release()
        assert not guard.is_leased("thread_1")

    @pytest.mark.asyncio
    async def test_events_consumed_once(self, service, provider):
        """Test turn events cannot be replayed"""
        provider.segments = [[run_update("completed")]]
        turn = await service.start_turn("thread_1", "hello", ExecutionContext())
        await collect(turn.events())

        with pytest.raises(RuntimeError):
            await collect(turn.events())

    @pytest.mark.asyncio
    async def test_turn_is_traced(self, provider, coordinator, guard):
        """Test turn outcome recorded on the trace span"""
        tracer = FakeTracer()
        service = AssistantService(provider, coordinator, guard, tracer=tracer)
        provider.segments = [[TextDelta("Sunny"), run_update("failed", last_error="Rate limit")]]

        turn = await service.start_turn("thread_1", "weather?", ExecutionContext())
        await collect(turn.events())

        thread_id, _, trace = tracer.traces[0]
        assert thread_id == "thread_1"
        assert trace.summary()["outcome"] == "error"
        assert trace.summary()["text_length"] == len("Sunny")
        trace.span.update.assert_called_once()
        assert trace.span.update.call_args.kwargs["level"] == "ERROR"
        trace.span.end.assert_called_once()
