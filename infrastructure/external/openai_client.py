"""
OpenAI client adapter for the application.
Wraps the Assistants API (threads, messages, streamed runs) behind the
provider contract used by the assistant service.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import openai
from openai import AsyncOpenAI

from config.app_config import AppConfig, get_config
from infrastructure.resilience.retry_service import RetryService
from services.assistant_service.models import Message, Run, RunStatus, Thread
from services.assistant_service.provider import (
    ProviderEvent,
    RunUpdate,
    TextDelta,
    ToolCallDelta,
    ToolCallStarted,
)
from services.errors import AuthenticationRequiredError, ProviderError
from services.tool_service.definitions import tool_definitions
from services.tool_service.models import ToolCall
from utils.logging_config import get_logger, log_async_execution_time

_RUN_EVENTS = {
    "thread.run.created",
    "thread.run.queued",
    "thread.run.in_progress",
    "thread.run.requires_action",
    "thread.run.cancelling",
    "thread.run.completed",
    "thread.run.failed",
    "thread.run.cancelled",
    "thread.run.expired",
    "thread.run.incomplete",
}


def _to_run(data: Any) -> Run:
    """Convert an SDK run object into a Run snapshot"""
    required: List[ToolCall] = []
    action = getattr(data, "required_action", None)
    if action is not None and action.submit_tool_outputs is not None:
        required = [
            ToolCall(id=call.id, name=call.function.name, arguments=call.function.arguments or "")
            for call in action.submit_tool_outputs.tool_calls
        ]

    last_error = getattr(data, "last_error", None)
    return Run(
        id=data.id,
        thread_id=data.thread_id,
        status=RunStatus(data.status),
        required_tool_calls=required,
        last_error=last_error.message if last_error is not None else None,
    )


def _to_message(data: Any) -> Message:
    text = "".join(
        block.text.value for block in data.content or []
        if block.type == "text" and block.text is not None
    )
    return Message(
        id=data.id,
        role=data.role,
        content=text,
        created_at=datetime.fromtimestamp(data.created_at, tz=timezone.utc),
        run_id=data.run_id,
    )


class OpenAIAssistantClient:
    """
    Adapter for the OpenAI Assistants API.
    Streams are normalised into provider events; idempotent reads are retried.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        client: Optional[AsyncOpenAI] = None,
        retry: Optional[RetryService] = None
    ):
        self.logger = get_logger(__name__)
        self.config = config or get_config()
        self.retry = retry or RetryService(self.config.retry)
        self._client = client
        self._assistant_id: Optional[str] = None
        self._assistant_lock = asyncio.Lock()

    @property
    def client(self) -> AsyncOpenAI:
        """
        Get configured AsyncOpenAI client

        Returns:
            AsyncOpenAI: Configured client
        """
        if self._client is None:
            api_key = self.config.api.openai_api_key
            if not api_key:
                raise AuthenticationRequiredError("OpenAI API key not configured")

            self._client = AsyncOpenAI(api_key=api_key)
            self.logger.info("OpenAI client initialized")

        return self._client

    async def get_or_create_assistant(self) -> str:
        """
        Resolve the hosted assistant id

        Reuses OPENAI_ASSISTANT_ID when set, updating its tools and
        instructions if they drifted; creates a new assistant otherwise.

        Returns:
            str: Assistant id
        """
        if self._assistant_id:
            return self._assistant_id

        async with self._assistant_lock:
            if self._assistant_id:
                return self._assistant_id

            settings = self.config.assistant
            tools = tool_definitions(settings.enable_file_search)
            configured_id = self.config.api.openai_assistant_id

            if configured_id:
                try:
                    existing = await self.client.beta.assistants.retrieve(configured_id)
                    if self._is_stale(existing, tools):
                        self.logger.info(f"Updating assistant {configured_id} tool set")
                        await self.client.beta.assistants.update(
                            configured_id,
                            tools=tools,
                            instructions=settings.instructions,
                            model=settings.model,
                        )
                    self._assistant_id = configured_id
                    return configured_id
                except openai.NotFoundError:
                    self.logger.warning(f"Configured assistant {configured_id} not found, creating a new one")

            created = await self.client.beta.assistants.create(tools=tools, **settings.to_dict())
            self.logger.info(f"Created assistant {created.id}; set OPENAI_ASSISTANT_ID to reuse it")
            self._assistant_id = created.id
            return created.id

    @staticmethod
    def _is_stale(assistant: Any, tools: List[Dict[str, Any]]) -> bool:
        def names(items) -> set:
            result = set()
            for item in items:
                kind = item["type"] if isinstance(item, dict) else item.type
                if kind == "function":
                    fn = item["function"] if isinstance(item, dict) else item.function
                    result.add(fn["name"] if isinstance(fn, dict) else fn.name)
                else:
                    result.add(kind)
            return result

        return names(assistant.tools or []) != names(tools)

    async def create_thread(self, user_id: Optional[str] = None) -> Thread:
        metadata = {"user_id": user_id} if user_id else {}
        async with log_async_execution_time(self.logger, "openai.create_thread"):
            thread = await self.client.beta.threads.create(metadata=metadata)
        return Thread(
            id=thread.id,
            created_at=datetime.fromtimestamp(thread.created_at, tz=timezone.utc),
            user_id=user_id,
        )

    async def get_thread(self, thread_id: str) -> Thread:
        thread = await self.retry.retry_with_backoff(
            lambda: self.client.beta.threads.retrieve(thread_id), "retrieve thread"
        )
        return Thread(
            id=thread.id,
            created_at=datetime.fromtimestamp(thread.created_at, tz=timezone.utc),
            user_id=(thread.metadata or {}).get("user_id"),
        )

    async def delete_thread(self, thread_id: str) -> bool:
        result = await self.client.beta.threads.delete(thread_id)
        return bool(result.deleted)

    async def add_message(self, thread_id: str, content: str) -> Message:
        message = await self.client.beta.threads.messages.create(
            thread_id=thread_id, role="user", content=content
        )
        return _to_message(message)

    async def list_messages(self, thread_id: str, limit: int = 50) -> List[Message]:
        """Latest ``limit`` messages, oldest first"""
        page = await self.retry.retry_with_backoff(
            lambda: self.client.beta.threads.messages.list(thread_id=thread_id, order="desc", limit=limit),
            "list messages"
        )
        return [_to_message(item) for item in reversed(page.data)]

    async def list_active_runs(self, thread_id: str) -> List[Run]:
        page = await self.retry.retry_with_backoff(
            lambda: self.client.beta.threads.runs.list(
                thread_id=thread_id, limit=self.config.guard.active_runs_page_size, order="desc"
            ),
            "list runs"
        )
        runs = [_to_run(item) for item in page.data]
        return [run for run in runs if run.status.is_active]

    async def cancel_run(self, thread_id: str, run_id: str) -> None:
        await self.client.beta.threads.runs.cancel(run_id=run_id, thread_id=thread_id)

    async def retrieve_latest_run(self, thread_id: str) -> Optional[Run]:
        page = await self.retry.retry_with_backoff(
            lambda: self.client.beta.threads.runs.list(thread_id=thread_id, limit=1, order="desc"),
            "retrieve latest run"
        )
        return _to_run(page.data[0]) if page.data else None

    async def stream_run(self, thread_id: str, assistant_id: Optional[str] = None) -> AsyncIterator[ProviderEvent]:
        assistant_id = assistant_id or await self.get_or_create_assistant()
        manager = self.client.beta.threads.runs.stream(thread_id=thread_id, assistant_id=assistant_id)
        async for event in self._normalise(manager):
            yield event

    async def stream_tool_outputs(
        self, thread_id: str, run_id: str, outputs: List[Dict[str, str]]
    ) -> AsyncIterator[ProviderEvent]:
        manager = self.client.beta.threads.runs.submit_tool_outputs_stream(
            run_id=run_id, thread_id=thread_id, tool_outputs=outputs
        )
        async for event in self._normalise(manager):
            yield event

    async def _normalise(self, manager) -> AsyncIterator[ProviderEvent]:
        """
        Translate SDK stream events into provider events

        Tool-call deltas identify calls by (step, index); only the first
        delta of a call carries its id, so later fragments are mapped back.
        """
        call_ids: Dict[Tuple[str, int], str] = {}

        async with manager as stream:
            async for event in stream:
                kind = event.event

                if kind == "thread.message.delta":
                    for block in event.data.delta.content or []:
                        if block.type == "text" and block.text is not None and block.text.value:
                            yield TextDelta(block.text.value)

                elif kind == "thread.run.step.delta":
                    details = event.data.delta.step_details
                    if details is None or details.type != "tool_calls":
                        continue
                    for call in details.tool_calls or []:
                        if call.type != "function" or call.function is None:
                            continue
                        key = (event.data.id, call.index)
                        if call.id:
                            call_ids[key] = call.id
                            yield ToolCallStarted(call.id, call.function.name or "", call.function.arguments or "")
                        elif key in call_ids and call.function.arguments:
                            yield ToolCallDelta(call_ids[key], call.function.arguments)

                elif kind in _RUN_EVENTS:
                    yield RunUpdate(_to_run(event.data))

                elif kind == "error":
                    message = getattr(event.data, "message", None) or "Assistant stream error"
                    raise ProviderError("The assistant stream failed. Please try again.", detail=message)
