"""
Assembly of streamed tool-call fragments.
"""

from typing import Dict, List

from services.tool_service.models import ToolCall
from utils.logging_config import get_logger


class ToolCallAccumulator:
    """
    Collects tool-call fragments keyed by call id until the run asks for
    outputs. Arguments are never parsed here; ``finalize`` hands back
    complete calls and closes the accumulator.
    """

    def __init__(self):
        self.logger = get_logger(__name__)
        self._names: Dict[str, str] = {}
        self._fragments: Dict[str, List[str]] = {}
        self._finalized = False

    @property
    def finalized(self) -> bool:
        return self._finalized

    def __len__(self) -> int:
        return len(self._fragments)

    def _check_open(self):
        if self._finalized:
            raise RuntimeError("Tool calls already finalized")

    def start(self, call_id: str, name: str, arguments: str = ""):
        self._check_open()
        if call_id in self._fragments:
            # Some streams repeat the header fragment
            self._fragments[call_id].append(arguments)
            return
        self._names[call_id] = name
        self._fragments[call_id] = [arguments]

    def append(self, call_id: str, fragment: str):
        self._check_open()
        if call_id not in self._fragments:
            self.logger.warning(f"Argument fragment for unknown tool call {call_id} ignored")
            return
        self._fragments[call_id].append(fragment)

    def arguments(self, call_id: str) -> str:
        return "".join(self._fragments.get(call_id, []))

    def finalize(self, required: List[ToolCall]) -> List[ToolCall]:
        """
        Resolve the final call set in the order the run requires them

        Streamed arguments win when any were received for a call; otherwise
        the arguments carried by the run itself are used.

        Args:
            required: Calls listed by the run's requires_action payload

        Returns:
            List[ToolCall]: Complete calls ready for dispatch
        """
        self._check_open()
        self._finalized = True

        calls = []
        for call in required:
            streamed = self.arguments(call.id)
            calls.append(ToolCall(
                id=call.id,
                name=call.name or self._names.get(call.id, ""),
                arguments=streamed if streamed else call.arguments,
            ))

        orphaned = set(self._fragments) - {call.id for call in required}
        if orphaned:
            self.logger.warning(f"Streamed tool calls not required by the run: {sorted(orphaned)}")

        return calls
