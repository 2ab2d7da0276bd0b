"""
Callback handlers - render session updates into Streamlit placeholders while a turn streams.
"""

import time
from typing import Optional

from services.chat_service.models import ActiveTool
from services.chat_service.session_controller import AssistantSession
from utils.logging_config import get_logger

_TOOL_ICONS = {
    "running": "⏳",
    "completed": "✅",
    "failed": "❌",
}

_TOOL_LABELS = {
    "get_calendar_events": "Reading your calendar",
    "create_calendar_event": "Creating an event",
    "update_calendar_event": "Updating an event",
    "delete_calendar_event": "Deleting an event",
    "check_calendar_availability": "Checking availability",
    "get_weather": "Checking the weather",
}


def describe_tool(tool: ActiveTool) -> str:
    label = _TOOL_LABELS.get(tool.name, tool.name)
    line = f"{_TOOL_ICONS.get(tool.status, '•')} {label}"
    if tool.error:
        line += f" ({tool.error})"
    return line


class SessionStreamRenderer:
    """Streams the assistant placeholder and tool progress into Streamlit"""

    def __init__(self, text_placeholder, tools_placeholder, update_every: int = 1):
        self.text_placeholder = text_placeholder
        self.tools_placeholder = tools_placeholder
        self.update_every = update_every
        self.counter = 0
        self.start_time = time.time()
        self.first_token_time: Optional[float] = None
        self.seen_tools: dict = {}

        # Logger for performance metrics
        self.logger = get_logger("streaming_metrics")

    def __call__(self, session: AssistantSession):
        self._render_tools(session)

        last = session.messages[-1] if session.messages else None
        if last is None or last.role != "assistant":
            return

        if last.content and self.first_token_time is None:
            self.first_token_time = time.time()
            ttft = (self.first_token_time - self.start_time) * 1000
            self.logger.info(f"[TTFT] Time to First Token (TTFT): {ttft:.1f}ms")

        self.counter += 1
        if last.is_streaming:
            if self.counter % self.update_every == 0:
                self.text_placeholder.markdown(last.content + "▌")
        else:
            self.text_placeholder.markdown(last.content)

    def _render_tools(self, session: AssistantSession):
        # Keep finished tools visible after the session clears them on completion
        for tool_id, tool in session.active_tools.items():
            self.seen_tools[tool_id] = tool
        if not self.seen_tools:
            return
        self.tools_placeholder.markdown(
            "\n".join(f"- {describe_tool(tool)}" for tool in self.seen_tools.values())
        )

    def finish(self):
        if self.first_token_time is not None:
            total = (time.time() - self.start_time) * 1000
            self.logger.info(f"Turn rendered in {total:.1f}ms ({self.counter} updates)")
