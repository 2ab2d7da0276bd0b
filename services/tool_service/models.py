"""
Tool service data models for tool calls, results and execution context.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


@dataclass
class ToolCall:
    """A tool invocation requested by the assistant"""
    id: str
    name: str
    arguments: str = ""  # raw JSON string, possibly fragmented while streaming

    def parse_arguments(self) -> Dict[str, Any]:
        """
        Parse the assembled argument string

        Returns:
            Dict[str, Any]: Parsed arguments ({} for an empty string)

        Raises:
            ValueError: If the string is not a JSON object
        """
        if not self.arguments.strip():
            return {}

        parsed = json.loads(self.arguments)
        if not isinstance(parsed, dict):
            raise ValueError(f"expected a JSON object, got {type(parsed).__name__}")
        return parsed


@dataclass
class ToolResult:
    """Outcome of a single tool dispatch"""
    success: bool
    data: Any = None
    error: Optional[str] = None
    tool: Optional[str] = None
    auth_required: bool = False

    @classmethod
    def ok(cls, data: Any, tool: Optional[str] = None) -> 'ToolResult':
        return cls(success=True, data=data, tool=tool)

    @classmethod
    def failure(cls, error: str, tool: Optional[str] = None, auth_required: bool = False) -> 'ToolResult':
        return cls(success=False, error=error, tool=tool, auth_required=auth_required)

    def to_output(self) -> str:
        """Render the JSON payload submitted back to the assistant"""
        payload: Dict[str, Any] = {"success": self.success}
        if self.success:
            payload["data"] = self.data
        else:
            payload["error"] = self.error
            payload["tool"] = self.tool
            if self.auth_required:
                payload["authRequired"] = True
        return json.dumps(payload, ensure_ascii=False, default=str)


class Coordinates(BaseModel):
    lat: float
    lon: float


class UserLocation(BaseModel):
    city: str
    country: str = ""
    coordinates: Optional[Coordinates] = None


class UserPreferences(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    weather_unit: Optional[str] = Field(default=None, alias="weatherUnit")  # "celsius" | "fahrenheit"
    time_format: Optional[str] = Field(default=None, alias="timeFormat")    # "12h" | "24h"


class UserContext(BaseModel):
    """Ambient user context sent with each turn"""
    model_config = ConfigDict(populate_by_name=True)

    location: Optional[UserLocation] = None
    timezone: Optional[str] = None
    preferences: Optional[UserPreferences] = None


@dataclass
class AuthContext:
    """Credentials of the user on whose behalf tools run"""
    user_id: Optional[str] = None
    access_token: Optional[str] = None


@dataclass
class ExecutionContext:
    """Everything a tool may consult besides its arguments"""
    auth: AuthContext = field(default_factory=AuthContext)
    user_context: Optional[UserContext] = None

    @property
    def user_location(self) -> Optional[UserLocation]:
        return self.user_context.location if self.user_context else None

    @property
    def timezone(self) -> Optional[str]:
        return self.user_context.timezone if self.user_context else None

    @property
    def preferences(self) -> Optional[UserPreferences]:
        return self.user_context.preferences if self.user_context else None
