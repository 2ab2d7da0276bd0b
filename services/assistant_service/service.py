"""
Assistant service facade used by the HTTP layer.
"""

from contextlib import aclosing, nullcontext
from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from services.errors import (
    AssistantError,
    AuthenticationRequiredError,
    InputValidationError,
    MessageRejectedError,
    RunConflictError,
)
from services.tool_service.models import ExecutionContext, UserContext
from infrastructure.resilience.retry_service import is_authentication_error
from utils.logging_config import get_logger

from .models import CancelToken, Message, RunEvent, Thread
from .provider import AssistantProvider
from .run_coordinator import RunCoordinator
from .run_guard import Lease, RunGuard

MISSING_INPUT = "Thread ID and message are required"
MESSAGE_REJECTED = "Failed to add message to conversation"
PROVIDER_AUTH_ERROR = "The assistant service rejected its credentials"


def compose_user_message(text: str, user_context: Optional[UserContext] = None,
                         now: Optional[datetime] = None) -> str:
    """
    Append a [CURRENT CONTEXT: ...] block so the assistant resolves relative
    times against the user's clock rather than its own

    Args:
        text: Message typed by the user
        user_context: Location and timezone, if the client sent them
        now: Current instant (defaults to the wall clock)

    Returns:
        str: The text, enriched when there is context to add
    """
    if user_context is None or (user_context.location is None and not user_context.timezone):
        return text

    parts = []
    location = user_context.location
    if location is not None:
        parts.append(
            f"User location: {location.city}{', ' + location.country if location.country else ''}"
        )

    if user_context.timezone:
        parts.append(f"User timezone: {user_context.timezone}")

        now = now or datetime.now(timezone.utc)
        try:
            local = now.astimezone(ZoneInfo(user_context.timezone))
        except (ZoneInfoNotFoundError, ValueError):
            local = now.astimezone(timezone.utc)

        parts.append(f"Current time: {local.strftime('%A, %B %d, %Y at %I:%M:%S %p %Z')}")
        parts.append(f"ISO time: {now.astimezone(timezone.utc).isoformat()}")
        parts.append(f"24h time: {local.strftime('%H:%M')}")

    return f"{text}\n\n[CURRENT CONTEXT: {'; '.join(parts)}]"


class Turn:
    """
    One user turn whose message is already on the thread.
    Holds the thread lease until its events have been consumed.
    """

    def __init__(self, service: 'AssistantService', thread_id: str,
                 context: ExecutionContext, lease: Lease):
        self.service = service
        self.thread_id = thread_id
        self.context = context
        self.lease = lease
        self._consumed = False

    async def events(self, cancel_token: Optional[CancelToken] = None) -> AsyncIterator[RunEvent]:
        if self._consumed:
            raise RuntimeError("Turn events can only be consumed once")
        self._consumed = True

        tracer = self.service.tracer
        trace_cm = (
            tracer.trace_turn(self.thread_id, self.context.auth.user_id)
            if tracer is not None else nullcontext()
        )
        try:
            with trace_cm as trace:
                coordinator = self.service.coordinator
                async with aclosing(coordinator.run_turn(self.thread_id, self.context, cancel_token)) as events:
                    async for event in events:
                        if trace is not None:
                            trace.record(event)
                        yield event
        finally:
            self.lease.release()

    def release(self):
        """Give up the turn without running it"""
        self.lease.release()


class AssistantService:
    """
    Thread management and turn submission on top of the run coordinator.
    """

    def __init__(
        self,
        provider: AssistantProvider,
        coordinator: RunCoordinator,
        guard: RunGuard,
        tracer=None,
        message_limit: int = 50
    ):
        self.logger = get_logger(__name__)
        self.provider = provider
        self.coordinator = coordinator
        self.guard = guard
        self.tracer = tracer
        self.message_limit = message_limit

    async def create_thread(self, user_id: Optional[str] = None) -> Thread:
        thread = await self.provider.create_thread(user_id)
        self.logger.info(f"Created thread {thread.id}")
        return thread

    async def get_messages(self, thread_id: str) -> List[Message]:
        if not thread_id:
            raise InputValidationError("Thread ID is required")
        return await self.provider.list_messages(thread_id, limit=self.message_limit)

    async def add_user_message(
        self,
        thread_id: str,
        text: str,
        user_context: Optional[UserContext] = None,
        cancel_token: Optional[CancelToken] = None
    ) -> Optional[Message]:
        """
        Append a user message once the thread has no active run

        Returns:
            Optional[Message]: The stored message, or None if cancelled while waiting

        Raises:
            InputValidationError: Missing thread id or empty text
            AuthenticationRequiredError: The provider rejected its credentials
            MessageRejectedError: A stuck run could not be cancelled, or the
                provider refused the message
        """
        if not thread_id or not text or not text.strip():
            raise InputValidationError(MISSING_INPUT)

        try:
            if not await self.guard.ensure_idle(thread_id, cancel_token):
                return None
            return await self.provider.add_message(thread_id, compose_user_message(text, user_context))
        except RunConflictError as e:
            self.logger.error(f"Thread {thread_id} still has an active run: {e.detail or e.message}")
            raise MessageRejectedError(MESSAGE_REJECTED, detail=e.detail or e.message) from e
        except AssistantError:
            raise
        except Exception as e:
            if is_authentication_error(e):
                raise AuthenticationRequiredError(PROVIDER_AUTH_ERROR, detail=str(e)) from e
            self.logger.error(f"Failed to add message to {thread_id}: {e}")
            raise MessageRejectedError(MESSAGE_REJECTED, detail=str(e)) from e

    async def start_turn(self, thread_id: str, text: str, context: ExecutionContext) -> Turn:
        """
        Lease the thread, append the message and hand back the runnable turn

        The lease is released if the message cannot be appended.
        """
        if not thread_id or not text or not text.strip():
            raise InputValidationError(MISSING_INPUT)

        lease = await self.guard.acquire(thread_id)
        try:
            await self.add_user_message(thread_id, text, context.user_context)
        except BaseException:
            lease.release()
            raise

        return Turn(self, thread_id, context, lease)
