"""
Shared fixtures: a scripted assistant provider and fast guard timings.
"""

import asyncio
from contextlib import aclosing
from typing import Any, Dict, List, Optional

import pytest

from config.app_config import GuardConfig
from services.assistant_service.models import Message, Run, RunStatus, Thread
from services.assistant_service.provider import RunUpdate
from services.assistant_service.run_coordinator import RunCoordinator
from services.assistant_service.run_guard import RunGuard
from services.assistant_service.service import AssistantService
from services.tool_service.models import ToolCall, ToolResult
from services.tool_service.registry import Tool, ToolRegistry


def run_update(status: str, calls: Optional[List[ToolCall]] = None,
               last_error: Optional[str] = None, run_id: str = "run_1") -> RunUpdate:
    return RunUpdate(Run(
        id=run_id,
        thread_id="thread_1",
        status=RunStatus(status),
        required_tool_calls=calls or [],
        last_error=last_error,
    ))


def active_run(run_id: str = "run_old", status: str = "in_progress") -> Run:
    return Run(id=run_id, thread_id="thread_1", status=RunStatus(status))


class Hold:
    """Segment item that blocks the stream until released"""

    def __init__(self):
        self.reached = asyncio.Event()
        self.release = asyncio.Event()


class FakeAssistantProvider:
    """
    Scripted provider: each stream call plays the next segment. A segment
    item may be a provider event, an exception to raise, or a Hold.
    """

    def __init__(
        self,
        segments: Optional[List[List[Any]]] = None,
        messages: Optional[List[Message]] = None,
        active_runs: Optional[List[List[Run]]] = None,
        latest_run: Optional[Run] = None
    ):
        self.segments = list(segments or [])
        self.messages = list(messages or [])
        self.active_runs = list(active_runs or [])
        self.latest_run = latest_run

        self.stream_calls: List[tuple] = []
        self.added: List[tuple] = []
        self.cancelled: List[str] = []
        self.list_active_calls = 0
        self.add_message_error: Optional[Exception] = None
        self.cancel_error: Optional[Exception] = None
        self.closed_streams = 0

    async def create_thread(self, user_id: Optional[str] = None) -> Thread:
        return Thread(id="thread_new", user_id=user_id)

    async def add_message(self, thread_id: str, content: str) -> Message:
        if self.add_message_error is not None:
            raise self.add_message_error
        self.added.append((thread_id, content))
        message = Message(id=f"msg_{len(self.added)}", role="user", content=content)
        self.messages.append(message)
        return message

    async def list_messages(self, thread_id: str, limit: int = 50) -> List[Message]:
        return list(self.messages)[-limit:]

    async def list_active_runs(self, thread_id: str) -> List[Run]:
        self.list_active_calls += 1
        if self.active_runs:
            return self.active_runs.pop(0)
        return []

    async def cancel_run(self, thread_id: str, run_id: str) -> None:
        if self.cancel_error is not None:
            raise self.cancel_error
        self.cancelled.append(run_id)

    async def retrieve_latest_run(self, thread_id: str) -> Optional[Run]:
        return self.latest_run

    async def _play(self):
        segment = self.segments.pop(0) if self.segments else []
        try:
            for item in segment:
                if isinstance(item, Exception):
                    raise item
                if isinstance(item, Hold):
                    item.reached.set()
                    await item.release.wait()
                    continue
                yield item
        finally:
            self.closed_streams += 1

    async def stream_run(self, thread_id: str):
        self.stream_calls.append(("run", thread_id))
        async with aclosing(self._play()) as events:
            async for event in events:
                yield event

    async def stream_tool_outputs(self, thread_id: str, run_id: str, outputs: List[Dict[str, str]]):
        self.stream_calls.append(("outputs", thread_id, run_id, outputs))
        async with aclosing(self._play()) as events:
            async for event in events:
                yield event


def echo_registry(calls: Optional[list] = None) -> ToolRegistry:
    """Registry with an echo tool, a failing tool and a weather stub"""
    seen = calls if calls is not None else []

    async def echo(args, context):
        seen.append(("echo", args))
        return {"echo": args}

    async def broken(args, context):
        seen.append(("broken", args))
        raise RuntimeError("access expired")

    async def weather(args, context):
        seen.append(("get_weather", args))
        return ToolResult.ok({"location": args.get("location", "here"), "temperature": 21})

    return ToolRegistry([
        Tool("echo", echo),
        Tool("broken", broken),
        Tool("get_weather", weather),
    ])


@pytest.fixture
def guard_config():
    return GuardConfig(poll_interval=0.01, wait_timeout=0.05, post_cancel_pause=0.01, lease_timeout=0.2)


@pytest.fixture
def provider():
    return FakeAssistantProvider()


@pytest.fixture
def tool_calls_seen():
    return []


@pytest.fixture
def registry(tool_calls_seen):
    return echo_registry(tool_calls_seen)


@pytest.fixture
def guard(provider, guard_config):
    return RunGuard(provider, guard_config)


@pytest.fixture
def coordinator(provider, registry, guard):
    return RunCoordinator(provider, registry, guard)


@pytest.fixture
def service(provider, coordinator, guard):
    return AssistantService(provider, coordinator, guard)


async def collect(events) -> list:
    return [event async for event in events]
