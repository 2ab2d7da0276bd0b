"""
Assistant service - run coordination, concurrency guard and turn submission.
"""

from .models import (
    CancelToken,
    EventType,
    Message,
    Run,
    RunEvent,
    RunPhase,
    RunStatus,
    Thread,
)
from .provider import (
    AssistantProvider,
    RunUpdate,
    TextDelta,
    ToolCallDelta,
    ToolCallStarted,
)
from .tool_calls import ToolCallAccumulator
from .run_guard import RunGuard
from .run_coordinator import RunCoordinator
from .service import AssistantService, Turn, compose_user_message

__all__ = [
    'CancelToken',
    'EventType',
    'Message',
    'Run',
    'RunEvent',
    'RunPhase',
    'RunStatus',
    'Thread',
    'AssistantProvider',
    'RunUpdate',
    'TextDelta',
    'ToolCallDelta',
    'ToolCallStarted',
    'ToolCallAccumulator',
    'RunGuard',
    'RunCoordinator',
    'AssistantService',
    'Turn',
    'compose_user_message'
]
