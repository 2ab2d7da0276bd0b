"""
Client session controller for the assistant.

Owns the conversation state shown by the chat UI, talks to the assistant
server over HTTP and applies the server-sent events of each turn.
"""

import asyncio
import json
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from services.errors import (
    AssistantError,
    AuthenticationRequiredError,
    InputValidationError,
    ProviderError,
)
from services.tool_service.models import UserContext
from utils.logging_config import get_logger

from .models import ActiveTool, ChatMessage

logger = get_logger(__name__)

CHAT_ENDPOINT = "/api/chat/assistant"
UNREACHABLE_SERVER = "Could not reach the assistant server. Check that it is running and try again."


def parse_sse_frames(buffer: str) -> Tuple[List[Dict[str, Any]], str]:
    """
    Split a text buffer into complete SSE frames

    Args:
        buffer: Text received so far

    Returns:
        Tuple of the decoded events and the unfinished remainder
    """
    buffer = buffer.replace("\r\n", "\n")
    *frames, remainder = buffer.split("\n\n")

    events = []
    for frame in frames:
        data = "\n".join(
            line[5:].lstrip(" ") for line in frame.split("\n") if line.startswith("data:")
        )
        if not data:
            continue
        try:
            event = json.loads(data)
        except json.JSONDecodeError:
            logger.warning(f"Skipping malformed SSE frame: {frame[:200]!r}")
            continue
        if not isinstance(event, dict) or "type" not in event:
            logger.warning(f"Skipping SSE frame without an event type: {frame[:200]!r}")
            continue
        events.append(event)

    return events, remainder


class ThreadStore:
    """Caches the current thread id in a small JSON file"""

    def __init__(self, path: str):
        self.path = Path(path)

    def load(self) -> Optional[str]:
        try:
            return json.loads(self.path.read_text(encoding="utf-8")).get("thread_id")
        except FileNotFoundError:
            return None
        except (OSError, ValueError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable thread cache {self.path}: {e}")
            return None

    def save(self, thread_id: str):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps({"thread_id": thread_id}), encoding="utf-8")

    def clear(self):
        self.path.unlink(missing_ok=True)


class AssistantSession:
    """
    Conversation state and turn submission for one chat client.
    """

    def __init__(
        self,
        base_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        thread_store: Optional[ThreadStore] = None,
        on_update: Optional[Callable[['AssistantSession'], None]] = None,
        access_token: Optional[str] = None,
        user_id: Optional[str] = None,
        user_context: Optional[UserContext] = None
    ):
        self.base_url = base_url
        self.transport = transport
        self.thread_store = thread_store
        self.on_update = on_update
        self.access_token = access_token
        self.user_id = user_id
        self.user_context = user_context

        self.thread_id: Optional[str] = None
        self.messages: List[ChatMessage] = []
        self.active_tools: Dict[str, ActiveTool] = {}
        self.is_loading = False
        self.error: Optional[str] = None
        self.calendar_changed = False

        self._task: Optional[asyncio.Task] = None
        self._cancelled_tasks: set = set()

    # ── HTTP ─────────────────────────────────────────────────────

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            transport=self.transport,
            timeout=httpx.Timeout(30.0, read=120.0),
        )

    def _headers(self) -> Dict[str, str]:
        headers = {}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        if self.user_id:
            headers["X-User-Id"] = self.user_id
        return headers

    @staticmethod
    def _raise_for_failure(status_code: int, body: bytes):
        try:
            error = json.loads(body).get("error") or f"HTTP {status_code}"
        except (ValueError, AttributeError):
            error = f"HTTP {status_code}"

        if status_code == 401:
            raise AuthenticationRequiredError(error)
        if status_code == 400:
            raise InputValidationError(error)
        raise ProviderError(error, detail=f"HTTP {status_code}")

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.post(CHAT_ENDPOINT, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            raise ProviderError(UNREACHABLE_SERVER, detail=str(e)) from e

        if response.is_error:
            self._raise_for_failure(response.status_code, response.content)
        return response.json()

    # ── Thread lifecycle ─────────────────────────────────────────

    async def _create_thread(self) -> str:
        data = await self._post({"action": "create_thread"})
        thread_id = data["thread"]["id"]
        self.thread_id = thread_id
        if self.thread_store is not None:
            self.thread_store.save(thread_id)
        logger.info(f"Created thread {thread_id}")
        return thread_id

    async def _fetch_messages(self, thread_id: str) -> List[ChatMessage]:
        data = await self._post({"action": "get_messages", "threadId": thread_id})
        return [ChatMessage.from_wire(m) for m in data.get("messages", [])]

    async def initialize(self):
        """
        Resume the cached thread, or start a new one
        """
        cached = self.thread_store.load() if self.thread_store is not None else None
        if cached:
            try:
                self.messages = await self._fetch_messages(cached)
                self.thread_id = cached
                logger.info(f"Resumed thread {cached} with {len(self.messages)} messages")
                self._notify()
                return
            except AuthenticationRequiredError:
                raise
            except AssistantError as e:
                logger.warning(f"Cached thread {cached} unavailable, starting a new one: {e.message}")
                self.thread_store.clear()

        await self._create_thread()
        self.messages = []
        self._notify()

    # ── Turns ────────────────────────────────────────────────────

    async def send_message(self, text: str):
        """
        Submit one user turn and apply its events until it ends

        Raises:
            InputValidationError: Empty message (nothing is sent)
            AuthenticationRequiredError: The server answered 401
            AssistantError: The turn failed; the optimistic user message is removed
        """
        if not text or not text.strip():
            raise InputValidationError("Message cannot be empty")

        if self.thread_id is None:
            await self.initialize()

        self.cancel_request()

        task = asyncio.create_task(self._run_turn(text))
        self._task = task
        try:
            await task
        except asyncio.CancelledError:
            if task in self._cancelled_tasks:
                self._cancelled_tasks.discard(task)
                logger.info("Request was cancelled")
                return
            raise
        finally:
            if self._task is task:
                self._task = None

    async def _run_turn(self, text: str):
        user_message = ChatMessage(id=f"user-{uuid.uuid4().hex}", role="user", content=text)
        self.messages.append(user_message)
        self.is_loading = True
        self.error = None
        self.calendar_changed = False
        self._notify()

        payload: Dict[str, Any] = {
            "action": "send_message",
            "threadId": self.thread_id,
            "message": text,
        }
        if self.user_context is not None:
            payload["userContext"] = self.user_context.model_dump(by_alias=True, exclude_none=True)

        placeholder: Optional[ChatMessage] = None
        try:
            async with self._client() as client:
                async with client.stream("POST", CHAT_ENDPOINT, json=payload, headers=self._headers()) as response:
                    if response.is_error:
                        self._raise_for_failure(response.status_code, await response.aread())

                    placeholder = ChatMessage(
                        id=f"assistant-{uuid.uuid4().hex}", role="assistant", content="", is_streaming=True
                    )
                    self.messages.append(placeholder)
                    self._notify()

                    buffer = ""
                    async for chunk in response.aiter_text():
                        buffer += chunk
                        events, buffer = parse_sse_frames(buffer)
                        for event in events:
                            self._apply(event, placeholder)

        except (AssistantError, httpx.HTTPError) as e:
            message = e.message if isinstance(e, AssistantError) else UNREACHABLE_SERVER
            logger.error(f"Failed to send message: {message}")
            self.error = message
            self.messages = [
                m for m in self.messages
                if m is not user_message and not (m is placeholder and not m.content)
            ]
            if isinstance(e, AssistantError):
                raise
            raise ProviderError(UNREACHABLE_SERVER, detail=str(e)) from e

        finally:
            if placeholder is not None:
                placeholder.is_streaming = False
            # A superseded turn leaves the shared state to the one that replaced it
            if asyncio.current_task() is self._task:
                self.is_loading = False
                self.active_tools = {}
            self._notify()

    def _apply(self, event: Dict[str, Any], placeholder: ChatMessage):
        kind = event.get("type")
        data = event.get("data")

        if kind == "content":
            placeholder.content += data or ""

        elif kind == "tool_call":
            self.active_tools[data["id"]] = ActiveTool(id=data["id"], name=data["name"])

        elif kind == "tool_result":
            tool = self.active_tools.get(data["id"])
            if tool is not None:
                tool.status = "completed" if data.get("success", True) else "failed"
                if tool.status == "completed" and "calendar" in tool.name and tool.name != "get_calendar_events":
                    self.calendar_changed = True

        elif kind == "tool_error":
            tool = self.active_tools.get(data["id"])
            if tool is not None:
                tool.status = "failed"
                tool.error = data.get("error")

        elif kind == "complete":
            placeholder.is_streaming = False
            self.active_tools = {}

        elif kind == "error":
            raise ProviderError((data or {}).get("error") or "Assistant run failed")

        else:
            logger.warning(f"Unknown stream event type: {kind}")
            return

        self._notify()

    def cancel_request(self):
        """
        Stop the in-flight turn; messages received so far are kept
        """
        task = self._task
        # A task left behind by an interrupted script run belongs to a closed loop
        if task is not None and not task.done() and not task.get_loop().is_closed():
            self._cancelled_tasks.add(task)
            task.cancel()
        elif not self.is_loading and not self.active_tools:
            return
        self._task = None
        self.active_tools = {}
        self.is_loading = False
        self._notify()

    async def clear_conversation(self):
        """Abandon the current thread and start a fresh one"""
        self.cancel_request()
        if self.thread_store is not None:
            self.thread_store.clear()
        self.active_tools = {}
        await self._create_thread()
        self.messages = []
        self.error = None
        self._notify()

    def _notify(self):
        if self.on_update is None:
            return
        try:
            self.on_update(self)
        except Exception:
            logger.exception("Session update callback failed")
