"""
Provider-neutral contract for the hosted assistant.

Streams are normalised into a small set of events so the run coordinator
never sees SDK objects.
"""

from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional, Protocol, Union

from .models import Message, Run, Thread


@dataclass
class TextDelta:
    """Fragment of visible assistant text"""
    text: str


@dataclass
class ToolCallStarted:
    """First fragment of a tool call; later fragments carry the same id"""
    id: str
    name: str
    arguments: str = ""


@dataclass
class ToolCallDelta:
    """Further argument fragment for an already-started tool call"""
    id: str
    arguments: str


@dataclass
class RunUpdate:
    """Run status change (requires_action or a terminal status)"""
    run: Run


ProviderEvent = Union[TextDelta, ToolCallStarted, ToolCallDelta, RunUpdate]


class AssistantProvider(Protocol):
    """Operations the services need from the hosted assistant"""

    async def create_thread(self, user_id: Optional[str] = None) -> Thread: ...

    async def add_message(self, thread_id: str, content: str) -> Message: ...

    async def list_messages(self, thread_id: str, limit: int = 50) -> List[Message]: ...

    async def list_active_runs(self, thread_id: str) -> List[Run]: ...

    async def cancel_run(self, thread_id: str, run_id: str) -> None: ...

    async def retrieve_latest_run(self, thread_id: str) -> Optional[Run]: ...

    def stream_run(self, thread_id: str) -> AsyncIterator[ProviderEvent]: ...

    def stream_tool_outputs(
        self, thread_id: str, run_id: str, outputs: List[Dict[str, str]]
    ) -> AsyncIterator[ProviderEvent]: ...
