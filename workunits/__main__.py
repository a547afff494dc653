"""CLI entry point for work-unit discovery.

Usage:
    python -m workunits discover ./discovery.yaml
    python -m workunits discover ./discovery.yaml --output work_units.json
    python -m workunits commit ./discovery.yaml work_units.json
    python -m workunits watermarks ./discovery.yaml
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from workunits.lib.config_loader import load_discovery_config
from workunits.lib.errors import DiscoveryError
from workunits.lib.observability import setup_logging
from workunits.lib.runner import commit_work_units, discover_work_units
from workunits.lib.units import UnitOfWork
from workunits.lib.watermark import build_watermark_store

logger = logging.getLogger(__name__)


def _write_json(payload: Any, output: Optional[str]) -> None:
    text = json.dumps(payload, indent=2, sort_keys=True)
    if output:
        Path(output).write_text(text + "\n", encoding="utf-8")
        logger.info("Wrote %s", output)
    else:
        print(text)


def discover_command(args: argparse.Namespace) -> int:
    """Run discovery and emit the work units as JSON."""
    config = load_discovery_config(args.config)
    result = discover_work_units(config)

    payload = result.to_dict() if args.summary else [wu.to_dict() for wu in result.work_units]
    _write_json(payload, args.output)
    return 0


def commit_command(args: argparse.Namespace) -> int:
    """Persist the expected high watermark of processed work units."""
    config = load_discovery_config(args.config)
    store = build_watermark_store(config.watermarks, config.base_dir)

    try:
        data = json.loads(Path(args.work_units).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error: cannot read work units from {args.work_units}: {e}", file=sys.stderr)
        return 1

    if isinstance(data, dict):
        run_id = data.get("run_id")
        entries = data.get("work_units", [])
    else:
        run_id = None
        entries = data

    try:
        work_units = [UnitOfWork.from_dict(entry) for entry in entries]
    except (KeyError, TypeError, ValueError) as e:
        print(f"Error: malformed work unit in {args.work_units}: {e}", file=sys.stderr)
        return 1

    count = commit_work_units(store, work_units, run_id=run_id)
    print(f"Committed {count} watermark(s)")
    return 0


def watermarks_command(args: argparse.Namespace) -> int:
    """List stored watermarks."""
    config = load_discovery_config(args.config)
    store = build_watermark_store(config.watermarks, config.base_dir)

    records = store.list_watermarks()
    if not records:
        print("No watermarks stored.")
        return 0

    width = max(len(r.unit_key) for r in records)
    print(f"  {'Unit':<{width}}  {'Watermark':>15}  Updated")
    print(f"  {'-' * width}  {'-' * 15}  {'-' * 20}")
    for record in records:
        print(
            f"  {record.unit_key:<{width}}  {record.watermark_value:>15}  "
            f"{record.updated_at or record.created_at or ''}"
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workunits",
        description="Discover incremental work units for changed tables and partitions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Emit work units for every table/partition changed since the last run
    python -m workunits discover ./discovery.yaml

    # Write them to a file, with the run summary
    python -m workunits discover ./discovery.yaml --output wu.json --summary

    # After processing, advance the watermarks
    python -m workunits commit ./discovery.yaml wu.json

    # Show stored watermarks
    python -m workunits watermarks ./discovery.yaml
        """,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--json-log",
        action="store_true",
        help="Output logs in JSON format (for log aggregation systems)",
    )
    parser.add_argument(
        "--log-file",
        help="Write logs to a file in addition to console",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    discover = subparsers.add_parser("discover", help="Find changed units and emit work units")
    discover.add_argument("config", help="Path to the discovery YAML config")
    discover.add_argument("--output", "-o", help="Write JSON to this file instead of stdout")
    discover.add_argument(
        "--summary",
        action="store_true",
        help="Include run id, counters and events alongside the work units",
    )
    discover.set_defaults(handler=discover_command)

    commit = subparsers.add_parser("commit", help="Advance watermarks for processed work units")
    commit.add_argument("config", help="Path to the discovery YAML config")
    commit.add_argument("work_units", help="JSON file written by 'discover'")
    commit.set_defaults(handler=commit_command)

    watermarks = subparsers.add_parser("watermarks", help="List stored watermarks")
    watermarks.add_argument("config", help="Path to the discovery YAML config")
    watermarks.set_defaults(handler=watermarks_command)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose, json_format=args.json_log, log_file=args.log_file)

    try:
        return args.handler(args)
    except DiscoveryError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
