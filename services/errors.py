"""
Error taxonomy shared by the assistant services.

Every error carries a human-readable ``message`` that is safe to show to the
user, and an optional ``detail`` that only goes to the logs.
"""

from typing import Optional


class AssistantError(Exception):
    """Base class for errors surfaced by the assistant services"""

    code = "assistant_error"

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class InputValidationError(AssistantError):
    """Rejected before any provider call (missing thread id, empty message)"""

    code = "invalid_input"


class AuthenticationRequiredError(AssistantError):
    """An external credential is missing, expired or rejected"""

    code = "authentication_required"


class ToolExecutionError(AssistantError):
    """A tool capability failed; contained to the single tool call"""

    code = "tool_error"


class ProviderError(AssistantError):
    """The assistant provider failed the run or the stream"""

    code = "provider_error"


class RunConflictError(AssistantError):
    """A stuck run on the thread could not be resolved"""

    code = "run_conflict"


class MessageRejectedError(AssistantError):
    """The user message could not be appended to the thread"""

    code = "message_rejected"


class CalendarError(ToolExecutionError):
    """Calendar provider failure"""


class WeatherError(ToolExecutionError):
    """Weather provider failure"""
