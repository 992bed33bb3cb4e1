"""
Command line entrypoint.

Usage:
  chatprofile stats conversations.json [--out stats.json] [--timezone Asia/Tokyo]
  chatprofile analyze conversations.json [--out analysis.json] [--model gpt-5-nano]

`stats` runs only the local statistics. `analyze` additionally runs the
OpenAI-backed analysis pipeline (needs OPENAI_API_KEY, read from .env too).
Ctrl-C during `analyze` stops the pipeline and keeps the partial results.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path
from typing import Optional, Sequence
from zoneinfo import ZoneInfoNotFoundError

from dotenv import load_dotenv

load_dotenv()

from chatprofile.config import MODEL, get_timezone  # noqa: E402
from chatprofile.errors import ExportParseError  # noqa: E402
from chatprofile.export_parser import parse_export_file  # noqa: E402
from chatprofile.llm_client import OpenAIClient  # noqa: E402
from chatprofile.orchestrator import AnalysisOrchestrator, AnalysisResults  # noqa: E402
from chatprofile.report import build_statistics_report, summary_lines, write_json  # noqa: E402

logger = logging.getLogger(__name__)


def _print_progress(percent: int, label: str) -> None:
    print(f"[{percent:3d}%] {label}", flush=True)


async def _run_analysis(orchestrator: AnalysisOrchestrator, conversations) -> AnalysisResults:
    loop = asyncio.get_running_loop()
    # add_signal_handler is unavailable on Windows event loops
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, orchestrator.abort)
    try:
        return await orchestrator.run_all_analyses(conversations, _print_progress)
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chatprofile", description="Analyze a ChatGPT data export.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    stats = sub.add_parser("stats", help="Local statistics only")
    stats.add_argument("export", type=Path, help="conversations.json or chat.html")
    stats.add_argument("--out", type=Path, default=None, help="Write the full report as JSON")
    stats.add_argument("--timezone", default=None, help="IANA timezone for calendar metrics (default UTC)")

    analyze = sub.add_parser("analyze", help="Statistics plus the AI analysis pipeline")
    analyze.add_argument("export", type=Path, help="conversations.json or chat.html")
    analyze.add_argument("--out", type=Path, default=None, help="Write statistics and analysis as JSON")
    analyze.add_argument("--timezone", default=None, help="IANA timezone for calendar metrics (default UTC)")
    analyze.add_argument("--model", default=MODEL, help="OpenAI model for text generation")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        tz = get_timezone(args.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        print(f"error: unknown timezone {args.timezone!r}", file=sys.stderr)
        return 2

    try:
        parsed = parse_export_file(args.export)
    except ExportParseError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    stats = build_statistics_report(parsed.conversations, tz=tz)
    print("\n".join(summary_lines(stats)))

    if args.command == "stats":
        if args.out:
            write_json({"parse": parsed.stats, "statistics": stats}, args.out)
            print(f"Wrote {args.out}")
        return 0

    orchestrator = AnalysisOrchestrator(OpenAIClient(model=args.model))
    results = asyncio.run(_run_analysis(orchestrator, parsed.conversations))
    print(f"Analysis {orchestrator.state.value}: {', '.join(results.completed()) or 'no results'}")
    if args.out:
        write_json({"parse": parsed.stats, "statistics": stats, "analysis": results}, args.out)
        print(f"Wrote {args.out}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
