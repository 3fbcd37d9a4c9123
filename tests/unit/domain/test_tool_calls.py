"""Unit tests for tool call extraction from LLM output."""

from hitl_agent.domain.tool.tool_calls import extract_tool_calls


class TestExtractToolCalls:
    """Native and content-embedded tool calls."""

    def test_tag_format(self):
        content = 'Cleaning up. <tool_call name="bash">{"command": "rm -rf /tmp/x"}</tool_call>'
        calls = extract_tool_calls(content)

        assert len(calls) == 1
        assert calls[0].tool_name == "bash"
        assert calls[0].tool_args == {"command": "rm -rf /tmp/x"}
        assert calls[0].description == "Execute bash with provided arguments"

    def test_tag_without_arguments(self):
        calls = extract_tool_calls('<tool_call name="list_files"></tool_call>')
        assert calls[0].tool_args == {}

    def test_function_format(self):
        content = 'I will run {"function": "bash", "arguments": {"command": "ls"}} now'
        calls = extract_tool_calls(content)

        assert [(c.tool_name, c.tool_args) for c in calls] == [("bash", {"command": "ls"})]

    def test_invalid_json_is_skipped(self):
        content = '<tool_call name="bash">{not json}</tool_call><tool_call name="ls">{}</tool_call>'
        assert [c.tool_name for c in extract_tool_calls(content)] == ["ls"]

    def test_plain_text_has_no_calls(self):
        assert extract_tool_calls("Paris is the capital of France.") == []

    def test_native_openai_style(self):
        native = [{"id": "call_1", "type": "function",
                   "function": {"name": "deploy", "arguments": '{"env": "prod"}'}}]
        calls = extract_tool_calls("ignored <tool_call name=\"x\">{}</tool_call>", native)

        assert [(c.tool_name, c.tool_args) for c in calls] == [("deploy", {"env": "prod"})]

    def test_native_flat_style(self):
        calls = extract_tool_calls("", [{"name": "search", "arguments": {"q": "python"}}, {"arguments": {}}])
        assert [(c.tool_name, c.tool_args) for c in calls] == [("search", {"q": "python"})]
