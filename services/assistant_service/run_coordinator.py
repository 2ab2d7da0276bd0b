"""
Run coordinator: drives one conversational turn against the hosted assistant.

A turn streams the run, dispatches every batch of tool calls the run asks
for, resumes it with the outputs and finishes with exactly one terminal
event (complete or error) unless the caller cancels it first.
"""

import asyncio
from contextlib import aclosing
from typing import AsyncIterator, Dict, List, Optional, Set

from services.errors import AssistantError
from services.tool_service.models import ExecutionContext, ToolCall, ToolResult
from services.tool_service.registry import ToolRegistry
from infrastructure.resilience.retry_service import user_facing_error
from utils.logging_config import get_logger, log_run_event

from .models import CancelToken, Run, RunEvent, RunPhase, RunStatus
from .provider import AssistantProvider, RunUpdate, TextDelta, ToolCallDelta, ToolCallStarted
from .run_guard import RunGuard
from .tool_calls import ToolCallAccumulator

_TRANSITIONS: Dict[RunPhase, Set[RunPhase]] = {
    RunPhase.STARTING: {RunPhase.STREAMING, RunPhase.TERMINAL},
    RunPhase.STREAMING: {RunPhase.AWAITING_TOOLS, RunPhase.TERMINAL},
    RunPhase.AWAITING_TOOLS: {RunPhase.DISPATCHING, RunPhase.TERMINAL},
    RunPhase.DISPATCHING: {RunPhase.STREAMING, RunPhase.TERMINAL},
    RunPhase.TERMINAL: set(),
}


class TurnState:
    """Phase tracker for a single turn"""

    def __init__(self, thread_id: str):
        self.thread_id = thread_id
        self.phase = RunPhase.STARTING
        self.run_id: Optional[str] = None
        self.tool_rounds = 0

    def advance(self, phase: RunPhase):
        if phase not in _TRANSITIONS[self.phase]:
            raise RuntimeError(f"Illegal run phase transition {self.phase.value} -> {phase.value}")
        self.phase = phase


def failure_message(run: Run) -> str:
    """Human-readable reason for a run that ended without completing"""
    if run.status == RunStatus.FAILED:
        return run.last_error or "Assistant run failed"
    if run.status == RunStatus.EXPIRED:
        return "Assistant run expired"
    if run.status == RunStatus.CANCELLED:
        return "Assistant run was cancelled"
    if run.status == RunStatus.INCOMPLETE:
        return run.last_error or "Assistant run ended before finishing its response"
    return f"Unexpected run status: {run.status.value}"


class RunCoordinator:
    """
    Streams runs and runs the tool-call loop for a thread.
    """

    def __init__(
        self,
        provider: AssistantProvider,
        registry: ToolRegistry,
        guard: RunGuard,
        message_limit: int = 50
    ):
        self.logger = get_logger(__name__)
        self.provider = provider
        self.registry = registry
        self.guard = guard
        self.message_limit = message_limit

    async def run_turn(
        self,
        thread_id: str,
        context: ExecutionContext,
        cancel_token: Optional[CancelToken] = None
    ) -> AsyncIterator[RunEvent]:
        """
        Run the assistant on a thread whose latest message is the user's turn

        Args:
            thread_id: Thread to run
            context: Execution context handed to every tool
            cancel_token: Stops the turn silently when cancelled

        Yields:
            RunEvent: content, tool_call, tool_result/tool_error, then one
            complete or error event
        """
        token = cancel_token or CancelToken()
        state = TurnState(thread_id)

        try:
            async with aclosing(self._drive(state, context, token)) as events:
                async for event in events:
                    yield event
        except AssistantError as e:
            self.logger.warning(f"Turn on {thread_id} failed: {e.message} ({e.detail})")
            yield self._fail(state, e.message)
        except Exception as e:
            self.logger.exception(f"Turn on {thread_id} failed unexpectedly")
            yield self._fail(state, user_facing_error(e))

    def _fail(self, state: TurnState, message: str) -> RunEvent:
        state.phase = RunPhase.TERMINAL
        log_run_event(self.logger, "error", state.thread_id, run_id=state.run_id, error=message)
        return RunEvent.error(message)

    async def _drive(
        self,
        state: TurnState,
        context: ExecutionContext,
        token: CancelToken
    ) -> AsyncIterator[RunEvent]:
        thread_id = state.thread_id

        if not await self.guard.ensure_idle(thread_id, token) or token.cancelled:
            return

        log_run_event(self.logger, "started", thread_id)
        outputs: Optional[List[Dict[str, str]]] = None

        while True:
            if token.cancelled:
                return

            if outputs is None:
                source = self.provider.stream_run(thread_id)
            else:
                source = self.provider.stream_tool_outputs(thread_id, state.run_id, outputs)
            state.advance(RunPhase.STREAMING)

            accumulator = ToolCallAccumulator()
            run: Optional[Run] = None

            async with aclosing(source) as events:
                async for provider_event in events:
                    if token.cancelled:
                        return

                    if isinstance(provider_event, TextDelta):
                        yield RunEvent.content(provider_event.text)
                    elif isinstance(provider_event, ToolCallStarted):
                        accumulator.start(provider_event.id, provider_event.name, provider_event.arguments)
                    elif isinstance(provider_event, ToolCallDelta):
                        accumulator.append(provider_event.id, provider_event.arguments)
                    elif isinstance(provider_event, RunUpdate):
                        run = provider_event.run
                        state.run_id = run.id
                        if run.status == RunStatus.REQUIRES_ACTION or run.status.is_terminal:
                            break

            if token.cancelled:
                return

            if run is None or (run.status.is_active and run.status != RunStatus.REQUIRES_ACTION):
                # Stream ended without a final status; ask the provider how the run ended
                run = await self.provider.retrieve_latest_run(thread_id)
                if token.cancelled:
                    return
                if run is None:
                    raise AssistantError("The assistant did not start a response. Please try again.")
                state.run_id = run.id

            if run.status == RunStatus.REQUIRES_ACTION:
                state.advance(RunPhase.AWAITING_TOOLS)
                calls = accumulator.finalize(run.required_tool_calls)
                log_run_event(self.logger, "requires_action", thread_id, run_id=run.id,
                              tools=[call.name for call in calls])

                for call in calls:
                    yield RunEvent.tool_call(call)

                state.advance(RunPhase.DISPATCHING)
                results = await self._dispatch(calls, context)
                state.tool_rounds += 1

                for call, result in zip(calls, results):
                    yield RunEvent.tool_outcome(call, result)

                outputs = [
                    {"tool_call_id": call.id, "output": result.to_output()}
                    for call, result in zip(calls, results)
                ]
                continue

            if run.status == RunStatus.COMPLETED:
                messages = await self.provider.list_messages(thread_id, limit=self.message_limit)
                if token.cancelled:
                    return
                state.advance(RunPhase.TERMINAL)
                log_run_event(self.logger, "completed", thread_id, run_id=run.id,
                              tool_rounds=state.tool_rounds, message_count=len(messages))
                yield RunEvent.complete(messages)
                return

            yield self._fail(state, failure_message(run))
            return

    async def _dispatch(self, calls: List[ToolCall], context: ExecutionContext) -> List[ToolResult]:
        """Dispatch a batch concurrently; results keep call order"""
        return list(await asyncio.gather(
            *(self.registry.dispatch(call, context) for call in calls)
        ))
