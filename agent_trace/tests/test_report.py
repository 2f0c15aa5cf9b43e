import json
import os
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from agent_trace.discovery import (
    find_conversation_files,
    mapped_project_name,
    resolve_conversation_dirs,
    select_recent,
)
from agent_trace.models import Conversation
from agent_trace.parsers.conversations import parse_records
from agent_trace.pricing import DEFAULT_PRICING
from agent_trace.report import ReportStore, aggregate_usage, format_bytes, generate_report, tool_usage
from agent_trace.timeline.compiler import compile_conversation


def _assistant(timestamp: str, tool_id: str, name: str, tool_input: dict, model: str = "claude-sonnet-4-5-20250929") -> dict:
    return {
        "type": "assistant",
        "timestamp": timestamp,
        "message": {
            "role": "assistant",
            "model": model,
            "usage": {"input_tokens": 100, "output_tokens": 20},
            "content": [{"type": "tool_use", "id": tool_id, "name": name, "input": tool_input}],
        },
    }


def _result(timestamp: str, tool_id: str, content: str) -> dict:
    return {
        "type": "user",
        "timestamp": timestamp,
        "message": {"role": "user", "content": [{"type": "tool_result", "tool_use_id": tool_id, "content": content}]},
    }


def _compiled(file_path: str, rows: list[dict]):
    records = parse_records(json.dumps(row) for row in rows)
    return compile_conversation(Conversation(file_path=file_path, records=records), DEFAULT_PRICING)


class ReportGenerationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.older = _compiled(
            "/tmp/older.jsonl",
            [
                _assistant("2026-02-16T09:00:00Z", "a1", "Bash", {"command": "make test"}),
                _result("2026-02-16T09:00:03Z", "a1", "ok"),
            ],
        )
        self.newer = _compiled(
            "/tmp/newer.jsonl",
            [
                _assistant("2026-02-16T10:00:00Z", "b1", "Read", {"file_path": "/repo/big.py"}),
                _result("2026-02-16T10:00:01Z", "b1", "y" * 4000),
                _assistant("2026-02-16T10:00:10Z", "b2", "Bash", {"command": "git status"}),
                _result("2026-02-16T10:00:11Z", "b2", "clean"),
            ],
        )

    def test_usage_and_tool_distribution(self) -> None:
        totals, models = aggregate_usage([self.older, self.newer], DEFAULT_PRICING)
        self.assertEqual((totals.input_tokens, totals.output_tokens), (300, 60))
        self.assertAlmostEqual(totals.input_cost, 0.0009)
        self.assertAlmostEqual(totals.output_cost, 0.0009)
        self.assertEqual(models, ["claude-sonnet-4-5-20250929"])
        self.assertEqual(tool_usage([self.older, self.newer]), {"Bash": 2, "Read": 1})

    def test_report_sections_and_session_order(self) -> None:
        report = generate_report([self.older, self.newer], DEFAULT_PRICING)

        self.assertTrue(report.startswith("# Conversation History Analysis\n"))
        self.assertIn("- Total Conversations: 2\n", report)
        self.assertIn("- Total Actions: 3\n", report)
        self.assertNotIn("Total Tool Calls", report)
        self.assertIn("- Model: Claude Sonnet 4.5\n", report)
        self.assertIn("- Total Cost: $0.0018 (in: $0.0009, out: $0.0009)\n", report)
        self.assertIn("- Bash: 2 calls\n- Read: 1 calls\n", report)
        self.assertIn("## Extracting Heredoc Commands", report)
        self.assertLess(report.index("### Session newer ["), report.index("### Session older ["))
        self.assertIn("1. Bash: [in=100t out=20t $0.0006 cmd=9b out=2b] make test", report)
        self.assertTrue(report.endswith("\n"))

    def test_unknown_model_is_labelled(self) -> None:
        compiled = _compiled(
            "/tmp/synthetic.jsonl",
            [_assistant("2026-02-16T10:00:00Z", "c1", "Bash", {"command": "ls"}, model="<synthetic>")],
        )
        report = generate_report([compiled], DEFAULT_PRICING)
        self.assertIn("- Model: unknown (default pricing assumed)", report)

    def test_format_bytes(self) -> None:
        self.assertEqual(format_bytes(512), "512B")
        self.assertEqual(format_bytes(2048), "2.0KB")
        self.assertEqual(format_bytes(3 * 1024 * 1024), "3.0MB")


class ReportStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = Path(tmpdir.name)
        self.project = self.root / "work" / "app"
        self.project.mkdir(parents=True)

    def test_save_and_list_newest_first(self) -> None:
        store = ReportStore(self.root / "reports", self.project)
        self.assertEqual(store.directory.name, mapped_project_name(self.project))
        self.assertIsNone(store.latest())

        first = store.save("# one\n", now=datetime(2026, 2, 16, 9, 0, tzinfo=timezone.utc))
        second = store.save("# two\n", now=datetime(2026, 2, 16, 10, 30, 5, tzinfo=timezone.utc))
        os.utime(first, (1_700_000_000, 1_700_000_000))
        os.utime(second, (1_700_000_100, 1_700_000_100))

        self.assertEqual(second.name, "report-2026-02-16-10-30-05.md")
        reports = store.list_reports()
        self.assertEqual([report.path for report in reports], [second, first])
        self.assertEqual(reports[0].stamp, "2026-02-16-10-30-05")
        self.assertEqual(reports[0].size, len("# two\n"))
        self.assertEqual(store.latest().path, second)


class DiscoveryTests(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = Path(tmpdir.name)

    def test_transcript_directory_is_used_directly(self) -> None:
        (self.root / "a.jsonl").write_text("{}\n", encoding="utf-8")
        self.assertEqual(resolve_conversation_dirs(self.root), [self.root.resolve()])

    def test_project_path_maps_into_projects_dir(self) -> None:
        project = self.root / "src" / "my-app"
        project.mkdir(parents=True)
        projects_dir = self.root / "claude-projects"
        mapped = projects_dir / mapped_project_name(project)
        mapped.mkdir(parents=True)

        self.assertTrue(mapped.name.startswith("-"))
        self.assertNotIn("/", mapped.name)
        self.assertEqual(resolve_conversation_dirs(project, projects_dir), [mapped])

    def test_missing_paths_raise(self) -> None:
        with self.assertRaises(FileNotFoundError):
            resolve_conversation_dirs(self.root / "missing")
        project = self.root / "no-history"
        project.mkdir()
        with self.assertRaises(FileNotFoundError):
            resolve_conversation_dirs(project, self.root / "empty-projects")

    def test_find_and_select_recent(self) -> None:
        paths = []
        for i, name in enumerate(["b.jsonl", "a.jsonl", "c.jsonl"]):
            path = self.root / name
            path.write_text("{}\n", encoding="utf-8")
            os.utime(path, (1_700_000_000 + i, 1_700_000_000 + i))
            paths.append(path)
        (self.root / "notes.txt").write_text("x", encoding="utf-8")

        found = find_conversation_files(self.root)
        self.assertEqual([path.name for path in found], ["a.jsonl", "b.jsonl", "c.jsonl"])
        self.assertEqual([path.name for path in select_recent(found)], ["c.jsonl", "a.jsonl", "b.jsonl"])
        self.assertEqual([path.name for path in select_recent(found, 2)], ["c.jsonl", "a.jsonl"])


if __name__ == "__main__":
    unittest.main()
