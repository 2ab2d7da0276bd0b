"""
Tool registry and dispatcher.

Maps tool names to handlers and turns every outcome, including unknown
names, malformed arguments and handler exceptions, into a ToolResult.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from services.errors import AssistantError, AuthenticationRequiredError
from utils.logging_config import get_logger, log_tool_execution

from .models import ExecutionContext, ToolCall, ToolResult

ToolHandler = Callable[[Dict[str, Any], ExecutionContext], Awaitable[Any]]


@dataclass
class Tool:
    """A named capability the assistant can invoke"""
    name: str
    handler: ToolHandler
    required: Tuple[str, ...] = field(default_factory=tuple)


class ToolRegistry:
    """
    Registry of tools available to the assistant.
    """

    def __init__(self, tools: Optional[List[Tool]] = None):
        self.logger = get_logger(__name__)
        self._tools: Dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool):
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def names(self) -> List[str]:
        return list(self._tools)

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    async def execute(self, name: str, args: Any, context: ExecutionContext) -> ToolResult:
        """
        Run a tool by name; never raises

        Args:
            name: Tool name requested by the assistant
            args: Parsed arguments; anything but a JSON object is rejected
            context: Execution context (auth, user context)

        Returns:
            ToolResult: success with data, or failure with an error message
        """
        tool = self._tools.get(name)
        if tool is None:
            self.logger.error(f"Unknown tool: {name}")
            return ToolResult.failure(f"Unknown tool: {name}", tool=name)

        if not isinstance(args, dict):
            self.logger.warning(f"Invalid arguments for {name}: expected a JSON object, got {type(args).__name__}")
            return ToolResult.failure(f"Invalid arguments for {name}: expected a JSON object", tool=name)

        missing = [key for key in tool.required if args.get(key) in (None, "")]
        if missing:
            return ToolResult.failure(f"Missing required argument: {missing[0]}", tool=name)

        start = time.monotonic()
        try:
            outcome = await tool.handler(args, context)
            result = outcome if isinstance(outcome, ToolResult) else ToolResult.ok(outcome, tool=name)
        except AuthenticationRequiredError as e:
            result = ToolResult.failure(e.message, tool=name, auth_required=True)
        except AssistantError as e:
            result = ToolResult.failure(e.message, tool=name)
        except Exception as e:
            self.logger.exception(f"Tool {name} raised an unexpected error")
            result = ToolResult.failure(str(e) or "Tool execution failed", tool=name)

        if result.tool is None:
            result.tool = name

        log_tool_execution(
            self.logger, name, result.success, time.monotonic() - start,
            error=result.error, auth_required=result.auth_required
        )
        return result

    async def dispatch(self, call: ToolCall, context: ExecutionContext) -> ToolResult:
        """
        Parse a finalized tool call's arguments and execute it

        Malformed JSON never reaches the handler.
        """
        try:
            args = call.parse_arguments()
        except ValueError as e:
            self.logger.warning(f"Invalid arguments for {call.name} ({call.id}): {e}")
            return ToolResult.failure(f"Invalid arguments for {call.name}: {e}", tool=call.name)

        return await self.execute(call.name, args, context)
