"""
Tool service - tool registry, dispatch and the calendar/weather tools.
"""

from .models import (
    ToolCall,
    ToolResult,
    AuthContext,
    ExecutionContext,
    UserContext,
)
from .registry import Tool, ToolRegistry
from .definitions import FUNCTION_SCHEMAS, tool_definitions, build_default_registry

__all__ = [
    'ToolCall',
    'ToolResult',
    'AuthContext',
    'ExecutionContext',
    'UserContext',
    'Tool',
    'ToolRegistry',
    'FUNCTION_SCHEMAS',
    'tool_definitions',
    'build_default_registry'
]
