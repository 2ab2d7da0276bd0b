"""
Tests for the OpenAI Assistants adapter
"""

from types import SimpleNamespace as NS
from unittest.mock import AsyncMock, MagicMock

import pytest

from config.app_config import AppConfig, RetryConfig
from infrastructure.external.openai_client import OpenAIAssistantClient
from infrastructure.resilience.retry_service import RetryService
from services.assistant_service.models import RunStatus
from services.assistant_service.provider import RunUpdate, TextDelta, ToolCallDelta, ToolCallStarted
from services.errors import AuthenticationRequiredError, ProviderError


class FakeStreamManager:
    """Async context manager yielding scripted SDK events"""

    def __init__(self, events):
        self.events = events
        self.exited = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.exited = True
        return False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for event in self.events:
            yield event


def text_delta(value):
    block = NS(type="text", text=NS(value=value))
    return NS(event="thread.message.delta", data=NS(delta=NS(content=[block])))


def tool_delta(step_id, index, call_id=None, name=None, arguments=None):
    call = NS(type="function", index=index, id=call_id, function=NS(name=name, arguments=arguments))
    details = NS(type="tool_calls", tool_calls=[call])
    return NS(event="thread.run.step.delta", data=NS(id=step_id, delta=NS(step_details=details)))


def run_event(status, calls=None, last_error=None):
    action = None
    if calls:
        action = NS(submit_tool_outputs=NS(tool_calls=[
            NS(id=call_id, function=NS(name=name, arguments=args)) for call_id, name, args in calls
        ]))
    data = NS(
        id="run_1",
        thread_id="thread_1",
        status=status,
        required_action=action,
        last_error=NS(message=last_error) if last_error else None,
    )
    return NS(event=f"thread.run.{status}", data=data)


def sdk_message(message_id, role, text, created_at=1714579200):
    return NS(
        id=message_id,
        role=role,
        content=[NS(type="text", text=NS(value=text))],
        created_at=created_at,
        run_id=None,
    )


@pytest.fixture
def adapter():
    config = AppConfig()
    return OpenAIAssistantClient(config, client=MagicMock(), retry=RetryService(RetryConfig(max_retries=0)))


async def normalise(adapter, events):
    return [event async for event in adapter._normalise(FakeStreamManager(events))]


class TestNormalise:
    """SDK stream to provider events"""

    @pytest.mark.asyncio
    async def test_text_and_run_status(self, adapter):
        """Test text deltas and run status events"""
        events = await normalise(adapter, [
            run_event("queued"),
            text_delta("Hello"),
            text_delta(""),
            run_event("completed"),
        ])

        assert isinstance(events[0], RunUpdate)
        assert events[1] == TextDelta("Hello")
        assert len(events) == 3
        assert events[-1].run.status == RunStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_tool_call_fragments_are_mapped_to_call_ids(self, adapter):
        """Test tool call fragments mapped back to their call ids"""
        events = await normalise(adapter, [
            tool_delta("step_1", 0, call_id="call_a", name="get_weather", arguments=""),
            tool_delta("step_1", 1, call_id="call_b", name="get_calendar_events", arguments="{"),
            tool_delta("step_1", 0, arguments='{"location": "Oslo"}'),
            tool_delta("step_1", 1, arguments="}"),
            run_event("requires_action", calls=[
                ("call_a", "get_weather", '{"location": "Oslo"}'),
                ("call_b", "get_calendar_events", "{}"),
            ]),
        ])

        assert events[0] == ToolCallStarted("call_a", "get_weather", "")
        assert events[1] == ToolCallStarted("call_b", "get_calendar_events", "{")
        assert events[2] == ToolCallDelta("call_a", '{"location": "Oslo"}')
        assert events[3] == ToolCallDelta("call_b", "}")
        run = events[4].run
        assert run.status == RunStatus.REQUIRES_ACTION
        assert [call.id for call in run.required_tool_calls] == ["call_a", "call_b"]

    @pytest.mark.asyncio
    async def test_failed_run_carries_last_error(self, adapter):
        """Test failed run keeps the provider error"""
        events = await normalise(adapter, [run_event("failed", last_error="Rate limit reached")])

        assert events[0].run.last_error == "Rate limit reached"

    @pytest.mark.asyncio
    async def test_error_event_raises(self, adapter):
        """Test stream error events close the stream and raise"""
        manager = FakeStreamManager([text_delta("Hi"), NS(event="error", data=NS(message="server_error"))])

        with pytest.raises(ProviderError) as exc_info:
            async for _ in adapter._normalise(manager):
                pass

        assert exc_info.value.detail == "server_error"
        assert manager.exited

    @pytest.mark.asyncio
    async def test_unrelated_events_are_skipped(self, adapter):
        """Test unrelated stream events are ignored"""
        events = await normalise(adapter, [
            NS(event="thread.created", data=NS()),
            NS(event="thread.run.step.delta", data=NS(id="s", delta=NS(step_details=NS(type="message_creation")))),
        ])

        assert events == []


class TestThreadsAndRuns:
    """Request-response calls"""

    @pytest.mark.asyncio
    async def test_list_messages_oldest_first(self, adapter):
        """Test messages returned oldest first"""
        adapter.client.beta.threads.messages.list = AsyncMock(return_value=NS(data=[
            sdk_message("m2", "assistant", "Done"),
            sdk_message("m1", "user", "Book it"),
        ]))

        messages = await adapter.list_messages("thread_1", limit=20)

        assert [m.id for m in messages] == ["m1", "m2"]
        adapter.client.beta.threads.messages.list.assert_awaited_once_with(
            thread_id="thread_1", order="desc", limit=20
        )

    @pytest.mark.asyncio
    async def test_list_active_runs_filters_terminal(self, adapter):
        """Test finished runs are not reported as active"""
        adapter.client.beta.threads.runs.list = AsyncMock(return_value=NS(data=[
            run_event("in_progress").data,
            NS(id="run_0", thread_id="thread_1", status="completed", required_action=None, last_error=None),
        ]))

        runs = await adapter.list_active_runs("thread_1")

        assert [run.id for run in runs] == ["run_1"]

    @pytest.mark.asyncio
    async def test_latest_run_none_when_thread_has_no_runs(self, adapter):
        """Test latest run on a thread without runs"""
        adapter.client.beta.threads.runs.list = AsyncMock(return_value=NS(data=[]))

        assert await adapter.retrieve_latest_run("thread_1") is None

    @pytest.mark.asyncio
    async def test_configured_assistant_is_reused(self, adapter):
        """Test configured assistant reused without updates"""
        adapter.config.api.openai_assistant_id = "asst_1"
        tools = [NS(type="function", function=NS(name=name)) for name in (
            "get_calendar_events", "create_calendar_event", "update_calendar_event",
            "delete_calendar_event", "check_calendar_availability", "get_weather",
        )] + [NS(type="file_search")]
        adapter.client.beta.assistants.retrieve = AsyncMock(return_value=NS(id="asst_1", tools=tools))
        adapter.client.beta.assistants.update = AsyncMock()

        assert await adapter.get_or_create_assistant() == "asst_1"
        assert await adapter.get_or_create_assistant() == "asst_1"
        adapter.client.beta.assistants.retrieve.assert_awaited_once()
        adapter.client.beta.assistants.update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stale_assistant_is_updated(self, adapter):
        """Test assistant with an outdated tool set is updated"""
        adapter.config.api.openai_assistant_id = "asst_1"
        adapter.client.beta.assistants.retrieve = AsyncMock(return_value=NS(id="asst_1", tools=[]))
        adapter.client.beta.assistants.update = AsyncMock()

        await adapter.get_or_create_assistant()

        adapter.client.beta.assistants.update.assert_awaited_once()

    def test_missing_api_key(self):
        """Test client creation without an API key"""
        config = AppConfig()
        config.api.openai_api_key = ""

        with pytest.raises(AuthenticationRequiredError):
            OpenAIAssistantClient(config).client

    @pytest.mark.asyncio
    async def test_get_and_delete_thread(self, adapter):
        """Test thread retrieval and deletion"""
        adapter.client.beta.threads.retrieve = AsyncMock(
            return_value=NS(id="thread_1", created_at=1714579200, metadata={"user_id": "u1"})
        )
        adapter.client.beta.threads.delete = AsyncMock(return_value=NS(deleted=True))

        thread = await adapter.get_thread("thread_1")

        assert thread.user_id == "u1"
        assert thread.created_at.year == 2024
        assert await adapter.delete_thread("thread_1") is True
