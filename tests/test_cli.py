import contextlib
import io
import json
import tempfile
import unittest
from pathlib import Path

from chatprofile.cli import build_parser, main

from export_fixtures import raw_conversation, ts


class StatsCommandTests(unittest.TestCase):
    def test_writes_report(self):
        export = [raw_conversation("a", [("user", "hello there", ts(2024, 1, 1, 9)), ("assistant", "hi", ts(2024, 1, 1, 9, 1))])]
        with tempfile.TemporaryDirectory() as tmp:
            src = Path(tmp) / "conversations.json"
            src.write_text(json.dumps(export), encoding="utf-8")
            out = Path(tmp) / "stats.json"
            stdout = io.StringIO()
            with contextlib.redirect_stdout(stdout):
                code = main(["stats", str(src), "--out", str(out)])
            data = json.loads(out.read_text(encoding="utf-8"))

        self.assertEqual(code, 0)
        self.assertEqual(data["parse"]["total_conversations"], 1)
        self.assertEqual(data["statistics"]["basic"]["total_messages"], 2)
        self.assertIn("# Chat history statistics", stdout.getvalue())

    def test_bad_export_returns_2(self):
        with tempfile.TemporaryDirectory() as tmp:
            src = Path(tmp) / "conversations.json"
            src.write_text("{broken", encoding="utf-8")
            stderr = io.StringIO()
            with contextlib.redirect_stderr(stderr):
                code = main(["stats", str(src)])
        self.assertEqual(code, 2)
        self.assertIn("INVALID_JSON", stderr.getvalue())

    def test_unknown_timezone_returns_2(self):
        export = [raw_conversation("a", [("user", "hello", ts(2024, 1, 1, 9))])]
        with tempfile.TemporaryDirectory() as tmp:
            src = Path(tmp) / "conversations.json"
            src.write_text(json.dumps(export), encoding="utf-8")
            stderr = io.StringIO()
            with contextlib.redirect_stderr(stderr):
                code = main(["stats", str(src), "--timezone", "Mars/Olympus"])
        self.assertEqual(code, 2)
        self.assertIn("error: unknown timezone 'Mars/Olympus'", stderr.getvalue())



class ParserTests(unittest.TestCase):
    def test_analyze_defaults(self):
        args = build_parser().parse_args(["analyze", "export.json", "--timezone", "Asia/Tokyo"])
        self.assertEqual(args.command, "analyze")
        self.assertEqual(args.export, Path("export.json"))
        self.assertEqual(args.timezone, "Asia/Tokyo")
        self.assertIsNone(args.out)


if __name__ == "__main__":
    unittest.main()
