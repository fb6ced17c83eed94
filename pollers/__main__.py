"""CLI for inspecting and administering source offsets.

Usage:
    python -m pollers plan ./sources.yaml
    python -m pollers offsets list
    python -m pollers offsets show https://api.example.com/v1/orders
    python -m pollers offsets reset ./sources.yaml crm.accounts

``reset`` is the only way an offset goes back to its configured initial
value; normal polling never does it.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from pollers.lib.config import SourceConfig, load_sources
from pollers.lib.errors import PollerError
from pollers.lib.logging import setup_logging
from pollers.lib.poller import SourcePoller
from pollers.lib.state_store import FileOffsetStore

logger = logging.getLogger(__name__)


def _find_source(sources: List[SourceConfig], source_id: str) -> SourceConfig:
    for source in sources:
        if source.source_id == source_id:
            return source
    known = ", ".join(s.source_id for s in sources) or "(none)"
    raise PollerError(
        f"Unknown source '{source_id}'",
        suggestion=f"Known sources: {known}",
    )


def cmd_plan(args: argparse.Namespace, store: FileOffsetStore) -> int:
    """Show where each source would resume and what it would request."""
    sources = load_sources(args.config)
    for source in sources:
        poller = SourcePoller(source, store)
        request = poller.next_request()
        print(f"{source.source_id} ({source.kind.value})")
        print(f"  partition: {poller.partition}")
        print(f"  state:     {poller.state.describe()}")
        print(f"  next:      {request.method} {request.url}")
        print(f"  interval:  {poller.next_delay_ms()} ms")
    return 0


def cmd_offsets(args: argparse.Namespace, store: FileOffsetStore) -> int:
    if args.offsets_command == "list":
        offsets = store.list_offsets()
        if not offsets:
            print(f"No stored offsets in {store.state_dir}")
            return 0
        for partition, entry in sorted(offsets.items()):
            print(f"{partition}\t{entry.get('offset')}\t{entry.get('updated_at', '')}")
        return 0

    if args.offsets_command == "show":
        entry = store.load(args.partition)
        if entry is None:
            print(f"No stored offset for {args.partition}")
            return 1
        print(json.dumps(entry, indent=2))
        return 0

    if args.offsets_command == "reset":
        source = _find_source(load_sources(args.config), args.source_id)
        poller = SourcePoller(source, store)
        state = poller.reset()
        print(f"Reset {source.source_id} to {state.describe()}")
        return 0

    return 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="poller-offsets",
        description="Inspect and administer API polling offsets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Where would each configured source resume?
    python -m pollers plan ./sources.yaml

    # Stored offsets in a custom state directory
    python -m pollers --state-dir /var/lib/pollers offsets list

    # Start a source over from its configured initial offset
    python -m pollers offsets reset ./sources.yaml crm.accounts
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--json-log",
        action="store_true",
        help="Output logs in JSON format (for log aggregation systems)",
    )
    parser.add_argument("--log-file", help="Write logs to a file in addition to console")
    parser.add_argument(
        "--state-dir",
        help="Offset state directory (default: $POLLER_STATE_DIR or .state)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    plan = commands.add_parser("plan", help="Show the next request for each source")
    plan.add_argument("config", help="YAML file with a 'sources:' list")

    offsets = commands.add_parser("offsets", help="Stored offset commands")
    offset_commands = offsets.add_subparsers(dest="offsets_command", required=True)
    offset_commands.add_parser("list", help="List stored offsets")
    show = offset_commands.add_parser("show", help="Show one stored offset")
    show.add_argument("partition", help="Source partition (full base URL)")
    reset = offset_commands.add_parser("reset", help="Reset a source to its initial offset")
    reset.add_argument("config", help="YAML file with a 'sources:' list")
    reset.add_argument("source_id", help="Source to reset")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose, json_format=args.json_log, log_file=args.log_file)
    store = FileOffsetStore(args.state_dir)

    try:
        if args.command == "plan":
            return cmd_plan(args, store)
        return cmd_offsets(args, store)
    except PollerError as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
