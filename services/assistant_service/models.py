"""
Assistant service data models for threads, runs and turn events.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from services.tool_service.models import ToolCall, ToolResult


@dataclass
class Message:
    """Message stored on a provider thread"""
    id: str
    role: str  # "user", "assistant", "system"
    content: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    run_id: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.created_at.isoformat(),
        }


@dataclass
class Thread:
    """Provider conversation thread"""
    id: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    user_id: Optional[str] = None


class RunStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    CANCELLING = "cancelling"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    INCOMPLETE = "incomplete"

    @property
    def is_active(self) -> bool:
        return self in _ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return not self.is_active


_ACTIVE_STATUSES = frozenset({
    RunStatus.QUEUED,
    RunStatus.IN_PROGRESS,
    RunStatus.REQUIRES_ACTION,
    RunStatus.CANCELLING,
})


@dataclass
class Run:
    """Snapshot of a provider run"""
    id: str
    thread_id: str
    status: RunStatus
    required_tool_calls: List[ToolCall] = field(default_factory=list)
    last_error: Optional[str] = None


class RunPhase(str, Enum):
    """Lifecycle phase of one conversational turn"""
    STARTING = "starting"
    STREAMING = "streaming"
    AWAITING_TOOLS = "awaiting_tools"
    DISPATCHING = "dispatching"
    TERMINAL = "terminal"


class EventType(str, Enum):
    CONTENT = "content"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    TOOL_ERROR = "tool_error"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class RunEvent:
    """Event emitted to the client during a turn"""
    type: EventType
    data: Any

    @property
    def is_terminal(self) -> bool:
        return self.type in (EventType.COMPLETE, EventType.ERROR)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "data": self.data}

    @classmethod
    def content(cls, text: str) -> 'RunEvent':
        return cls(EventType.CONTENT, text)

    @classmethod
    def tool_call(cls, call: ToolCall) -> 'RunEvent':
        return cls(EventType.TOOL_CALL, {"id": call.id, "name": call.name, "args": call.arguments})

    @classmethod
    def tool_outcome(cls, call: ToolCall, result: ToolResult) -> 'RunEvent':
        """tool_result for a successful dispatch, tool_error otherwise"""
        if result.success:
            return cls(EventType.TOOL_RESULT, {
                "id": call.id,
                "name": call.name,
                "result": result.data,
                "success": True,
                "error": None,
            })
        return cls(EventType.TOOL_ERROR, {"id": call.id, "name": call.name, "error": result.error})

    @classmethod
    def complete(cls, messages: List[Message]) -> 'RunEvent':
        return cls(EventType.COMPLETE, {"messages": [m.to_wire() for m in messages]})

    @classmethod
    def error(cls, message: str) -> 'RunEvent':
        return cls(EventType.ERROR, {"error": message})


class CancelToken:
    """One-shot cancellation flag shared by a turn and its consumer"""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def sleep(self, delay: float) -> bool:
        """
        Sleep for ``delay`` seconds unless cancelled first

        Returns:
            bool: True if the token was cancelled during the sleep
        """
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True
