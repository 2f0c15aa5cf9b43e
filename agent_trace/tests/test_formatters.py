import json
import unittest

from agent_trace.models import ToolResultBlock, ToolUseBlock
from agent_trace.timeline.formatters import (
    FORMATTERS,
    NEEDS_FORMATTER,
    ToolKind,
    byte_size,
    content_text,
    format_tool,
    has_heredoc,
    is_blocklisted,
    mcp_display_name,
    read_operation,
    tool_label,
)


def _call(name: str, tool_id: str = "toolu_1", **tool_input) -> ToolUseBlock:
    return ToolUseBlock(id=tool_id, name=name, input=tool_input)


def _result(content, **extra) -> ToolResultBlock:
    return ToolResultBlock(tool_use_id="toolu_1", content=content, **extra)


class ToolKindTests(unittest.TestCase):
    def test_classify_known_mcp_and_unknown(self) -> None:
        self.assertIs(ToolKind.classify("Read"), ToolKind.READ)
        self.assertIs(ToolKind.classify("AskUserQuestion"), ToolKind.ASK_USER_QUESTION)
        self.assertIs(ToolKind.classify("mcp__github__create_issue"), ToolKind.MCP)
        self.assertIs(ToolKind.classify("FancyNewTool"), ToolKind.UNKNOWN)
        self.assertIs(ToolKind.classify("unknown"), ToolKind.UNKNOWN)
        self.assertIs(ToolKind.classify(""), ToolKind.UNKNOWN)

    def test_every_kind_has_a_formatter(self) -> None:
        self.assertEqual(set(FORMATTERS), set(ToolKind))

    def test_blocklist_respects_mcp_namespace(self) -> None:
        self.assertTrue(is_blocklisted("TodoWrite"))
        self.assertTrue(is_blocklisted("KillShell"))
        self.assertFalse(is_blocklisted("mcp__tools__TodoWrite"))
        self.assertFalse(is_blocklisted("Bash"))

    def test_tool_labels(self) -> None:
        self.assertEqual(tool_label(_call("Bash")), "Bash")
        self.assertEqual(tool_label(_call("mcp__a__b")), "MCP")
        self.assertEqual(tool_label(_call("Frobnicate")), "Frobnicate")


class FormatterTests(unittest.TestCase):
    def test_unknown_tool_is_flagged(self) -> None:
        line = format_tool(_call("Frobnicate", level=3), _result("done"), "+2s")
        self.assertEqual(line, f"[+2s in=11b out=4b] Frobnicate: {NEEDS_FORMATTER}")
        self.assertEqual(format_tool(_call("Frobnicate"), None, ""), f"[in=2b] Frobnicate: {NEEDS_FORMATTER}")

    def test_mcp_renders_full_parameter_list(self) -> None:
        params = {"title": "Bug " * 30, "labels": ["a", "b"], "count": 2}
        line = format_tool(_call("mcp__github__create_issue", **params), None, "")
        in_bytes = len(json.dumps(params, separators=(",", ":")))
        self.assertEqual(
            line,
            f'MCP: [in={in_bytes}b] github.create_issue(title={"Bug " * 30}, labels=["a","b"], count=2)',
        )
        self.assertEqual(mcp_display_name("mcp__plugin__server__tool"), "plugin.server.tool")

    def test_task_with_and_without_description(self) -> None:
        self.assertEqual(
            format_tool(_call("Task", subagent_type="code-reviewer", description="Review diff"), None, "+4s"),
            'Task: [+4s] code-reviewer ("Review diff")',
        )
        self.assertEqual(format_tool(_call("Task"), None, ""), "Task: unknown")

    def test_ask_user_question_truncates_to_sixty(self) -> None:
        question = "Which of the following deployment strategies should we adopt for production?"
        line = format_tool(_call("AskUserQuestion", questions=[{"question": question}]), None, "")
        self.assertEqual(line, f'Asked: "{question[:57]}..."')

        timed = format_tool(_call("AskUserQuestion", questions=[{"question": "Ship it?"}]), None, "+7s")
        self.assertEqual(timed, '[+7s] Asked: "Ship it?"')
        self.assertEqual(format_tool(_call("AskUserQuestion"), None, ""), 'Asked: "User question"')

    def test_web_fetch_and_search(self) -> None:
        url = "https://example.com/" + "a" * 60
        fetch = format_tool(_call("WebFetch", url=url, prompt="summarize"), _result("page body"), "")
        self.assertEqual(fetch, f"[in=9b out=9b] WebFetch: {url[:47]}...")

        search = format_tool(_call("WebSearch", query="pydantic discriminated unions"), _result([{"type": "text", "text": "hits"}]), "+1s")
        self.assertEqual(search, '[+1s out=4b] WebSearch: "pydantic discriminated unions"')

    def test_bash_hides_zero_exit_code(self) -> None:
        line = format_tool(_call("Bash", command="echo hi"), _result("hi\n", exit_code=0), "")
        self.assertEqual(line, "Bash: [cmd=7b out=3b] echo hi")

    def test_heredoc_detection(self) -> None:
        self.assertTrue(has_heredoc("cat << EOF\nx\nEOF"))
        self.assertTrue(has_heredoc('python - <<"PY"\nprint(1)\nPY'))
        self.assertTrue(has_heredoc("cat <<-END\n\tx\nEND"))
        self.assertFalse(has_heredoc("grep foo <<< \"$var\""))
        self.assertFalse(has_heredoc("ls -la"))

    def test_read_operation_range_uses_offset_and_content_lines(self) -> None:
        op = read_operation(_call("Read", file_path="/a/b/c.py", offset=10), _result("1\n2\n3"))
        self.assertEqual((op.filename, op.bytes, op.line_range), ("c.py", 5, "L11-L13"))

        op = read_operation(_call("Read", file_path="/a/b/c.py", offset=10, limit=50), None)
        self.assertEqual(op.line_range, "L11-L60")
        self.assertEqual(op.bytes, 0)

    def test_content_text_flattens_text_blocks(self) -> None:
        self.assertEqual(content_text([{"type": "text", "text": "a"}, "b"]), "a\nb")
        self.assertEqual(content_text({"k": 1}), '{"k":1}')
        self.assertEqual(content_text([{"type": "image", "source": {}}]), '[{"type":"image","source":{}}]')
        self.assertEqual(content_text(None), "")

    def test_byte_size_counts_utf8_bytes(self) -> None:
        self.assertEqual(byte_size("héllo"), 6)
        self.assertEqual(byte_size(None), 0)


if __name__ == "__main__":
    unittest.main()
