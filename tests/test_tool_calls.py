"""
Tests for streamed tool-call assembly
"""

import pytest

from services.assistant_service.tool_calls import ToolCallAccumulator
from services.tool_service.models import ToolCall


class TestToolCallAccumulator:
    """Fragment collection and finalization"""

    def test_fragments_are_concatenated(self):
        """Test argument fragments concatenated"""
        acc = ToolCallAccumulator()
        acc.start("call_1", "create_calendar_event", '{"title": "Gy')
        acc.append("call_1", 'm", "start')
        acc.append("call_1", 'Time": "2024-05-01T18:00:00"}')

        assert acc.arguments("call_1") == '{"title": "Gym", "startTime": "2024-05-01T18:00:00"}'
        assert len(acc) == 1

    def test_finalize_uses_run_order(self):
        """Test finalized calls follow the run's order"""
        acc = ToolCallAccumulator()
        acc.start("b", "get_weather", '{"location": "Paris"}')
        acc.start("a", "get_calendar_events", "{}")

        calls = acc.finalize([ToolCall("a", "get_calendar_events"), ToolCall("b", "get_weather")])

        assert [call.id for call in calls] == ["a", "b"]
        assert calls[1].parse_arguments() == {"location": "Paris"}

    def test_payload_arguments_used_when_nothing_streamed(self):
        """Test payload arguments used when nothing was streamed"""
        acc = ToolCallAccumulator()
        calls = acc.finalize([ToolCall("a", "get_weather", '{"location": "Oslo"}')])

        assert calls[0].arguments == '{"location": "Oslo"}'

    def test_streamed_name_fills_missing_payload_name(self):
        """Test streamed name fills a missing payload name"""
        acc = ToolCallAccumulator()
        acc.start("a", "delete_calendar_event", '{"eventId": "e1"}')

        calls = acc.finalize([ToolCall("a", "")])

        assert calls[0].name == "delete_calendar_event"

    def test_unknown_fragment_is_ignored(self):
        """Test fragment for an unknown call ignored"""
        acc = ToolCallAccumulator()
        acc.append("ghost", '{"x": 1}')

        assert len(acc) == 0
        assert acc.arguments("ghost") == ""

    def test_finalize_is_single_use(self):
        """Test finalize can only run once"""
        acc = ToolCallAccumulator()
        acc.finalize([])

        assert acc.finalized
        with pytest.raises(RuntimeError):
            acc.finalize([])
        with pytest.raises(RuntimeError):
            acc.start("late", "get_weather")

    def test_arguments_are_not_parsed_while_streaming(self):
        """Test arguments left unparsed while streaming"""
        acc = ToolCallAccumulator()
        acc.start("a", "get_weather", "{not json")

        calls = acc.finalize([ToolCall("a", "get_weather")])

        assert calls[0].arguments == "{not json"
        with pytest.raises(ValueError):
            calls[0].parse_arguments()
