"""Unit tests for the trace accumulator and history trimming."""

from hitl_agent.domain.context.history import append_and_trim, trim_history
from hitl_agent.domain.models.agent_state import Message, MessageRole
from hitl_agent.domain.tracing.trace_accumulator import DebugToolCall, TraceAccumulator


def turns(count: int):
    return [Message(role=MessageRole.USER, content=str(i)) for i in range(count)]


class TestTraceAccumulator:
    """Append-only request trace."""

    def test_records_in_order(self):
        trace = TraceAccumulator()
        trace.record_span("router", "s1", 2)
        trace.record_span("hitl", "s2", 40, parent_span_id="root")
        trace.record_tool_call(DebugToolCall(name="bash", arguments={"command": "ls"}))
        trace.add_warning("slow")
        trace.add_error("boom")
        trace.llm_ms = 35

        summary = trace.summary()

        assert summary["agents"] == ["router", "hitl"]
        assert summary["tool_calls"] == ["bash"]
        assert summary["warnings"] == 1
        assert summary["errors"] == 1
        assert summary["llm_ms"] == 35
        assert trace.agent_chain[1].parent_span_id == "root"

    def test_survives_serialization(self):
        trace = TraceAccumulator()
        trace.record_span("simple", "s1", 5)

        restored = TraceAccumulator.model_validate_json(trace.model_dump_json())

        assert restored.summary() == trace.summary()


class TestHistory:
    """FIFO history cap."""

    def test_trim_keeps_newest(self):
        trimmed = trim_history(turns(5), 3)
        assert [m.content for m in trimmed] == ["2", "3", "4"]

    def test_trim_under_cap_is_unchanged(self):
        assert [m.content for m in trim_history(turns(2), 3)] == ["0", "1"]

    def test_zero_cap(self):
        assert trim_history(turns(2), 0) == []

    def test_append_and_trim(self):
        result = append_and_trim(turns(3), turns(2), 4)
        assert len(result) == 4
        assert [m.content for m in result] == ["1", "2", "0", "1"]
