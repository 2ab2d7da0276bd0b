"""
Chat service data models for the client-side view of a conversation.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ChatMessage:
    """Message as displayed by the chat client"""
    id: str
    role: str  # "user", "assistant", "system"
    content: str
    created_at: datetime = field(default_factory=_now)
    is_streaming: bool = False

    @classmethod
    def from_wire(cls, payload: Dict[str, Any]) -> 'ChatMessage':
        timestamp = payload.get("timestamp")
        return cls(
            id=payload["id"],
            role=payload["role"],
            content=payload.get("content", ""),
            created_at=datetime.fromisoformat(timestamp) if timestamp else _now(),
        )


@dataclass
class ActiveTool:
    """Display-only progress of a tool call during the current turn"""
    id: str
    name: str
    status: str = "running"  # "running", "completed", "failed"
    start_time: datetime = field(default_factory=_now)
    error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self.status == "running"
