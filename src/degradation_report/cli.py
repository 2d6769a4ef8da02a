#!/usr/bin/env python3
"""
Command-line entry point.

Usage:
    degradation-report resolve Paracetamol
    degradation-report resolve "Ácido acetilsalicílico" --format markdown
    degradation-report stats --limit 5
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from degradation_report.errors import StoreError
from degradation_report.models import RequestMeta
from degradation_report.observability import setup_structured_logging
from degradation_report.orchestrator import build_orchestrator
from degradation_report.output import output_to_csv, output_to_json, output_to_markdown


def setup_logging(verbose: bool) -> None:
    """Configure package logging and quiet noisy libraries."""
    setup_structured_logging(level=logging.DEBUG if verbose else logging.WARNING)
    for name in ("httpx", "httpcore", "urllib3", "anthropic"):
        logging.getLogger(name).setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="degradation-report",
        description="Look up or generate degradation product reports",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose pipeline logging"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    resolve = subparsers.add_parser("resolve", help="Resolve a report for a substance")
    resolve.add_argument("substance", help="Substance name, e.g. Paracetamol")
    resolve.add_argument(
        "--format", "-f",
        choices=["json", "markdown", "csv"],
        default="json",
        help="Output format (default: json)"
    )
    resolve.add_argument("--ip", default="unknown", help="Client IP recorded in the audit trail")
    resolve.add_argument("--user-agent", default="degradation-report-cli", help="User agent recorded in the audit trail")

    stats = subparsers.add_parser("stats", help="Show search statistics")
    stats.add_argument("--limit", type=int, default=10, help="Number of rows per table")

    return parser


def run_resolve(args: argparse.Namespace) -> int:
    orc = build_orchestrator()
    try:
        resolution = orc.resolve(
            args.substance,
            RequestMeta(client_ip=args.ip, user_agent=args.user_agent),
        )
    finally:
        orc.close()

    if args.format == "markdown":
        print(output_to_markdown(resolution.report, resolution.search_term.strip()))
    elif args.format == "csv":
        print(output_to_csv(resolution.report), end="")
    else:
        print(output_to_json(resolution))

    print(
        f"source={resolution.source} cached={resolution.was_cached} "
        f"time={resolution.processing_time_ms}ms",
        file=sys.stderr,
    )
    return 0


def run_stats(args: argparse.Namespace) -> int:
    orc = build_orchestrator()
    try:
        if orc.store is None:
            print("ERROR: no store configured", file=sys.stderr)
            return 1
        statistics = orc.store.search_statistics(limit=args.limit)
        recent = orc.store.recent_searches(limit=args.limit)
    except StoreError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    finally:
        orc.close()

    print("=" * 60)
    print("SEARCH STATISTICS")
    print("=" * 60)
    if not statistics:
        print("No searches recorded")
    for stat in statistics:
        last = stat.last_searched.strftime("%Y-%m-%d %H:%M") if stat.last_searched else "-"
        print(f"{stat.substance_name:<30} {stat.search_count:>6} searches {stat.unique_users:>4} users  last {last}")

    print("\n" + "=" * 60)
    print("RECENT SEARCHES")
    print("=" * 60)
    for search in recent:
        print(f"{search.search_timestamp:%Y-%m-%d %H:%M:%S}  {search.search_term}  ({search.user_ip or '-'})")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    if args.command == "resolve":
        return run_resolve(args)
    return run_stats(args)


if __name__ == "__main__":
    sys.exit(main())
