#!/usr/bin/env python
"""Project a source snapshot into the Neo4j graph and print the outcome."""

import argparse
import asyncio
import logging
import sys
from datetime import datetime

from rich.console import Console

from contextgraph.exceptions import ContextGraphError
from contextgraph.gateway import GraphGateway
from contextgraph.logging_config import configure_logging
from contextgraph.reporting import (
    graph_status_table,
    reconcile_table,
    schema_info_table,
    sync_result_table,
)
from contextgraph.settings import load_settings
from contextgraph.sync.source import SnapshotSource

console = Console()
logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sync project entities into the knowledge graph")
    parser.add_argument("snapshot", help="JSON snapshot exported from the primary store")
    parser.add_argument("--project", "-p", required=True, help="Project id to sync")
    parser.add_argument(
        "--incremental",
        action="store_true",
        help="Only sync rows changed since the last sync (or --since)",
    )
    parser.add_argument("--since", type=datetime.fromisoformat, help="ISO-8601 lower bound")
    parser.add_argument("--timeout", type=float, help="Cancel the run after this many seconds")
    parser.add_argument(
        "--reconcile",
        action="store_true",
        help="After syncing, list graph nodes whose source rows are gone",
    )
    parser.add_argument(
        "--prune",
        action="store_true",
        help="With --reconcile, delete the stale nodes instead of only listing them",
    )
    return parser.parse_args()


async def main() -> int:
    args = parse_args()

    try:
        settings = load_settings()
    except ContextGraphError as e:
        console.print(f"[red]✗ Failed to load settings: {e}[/red]")
        console.print("Make sure CONTEXTGRAPH_NEO4J_PASSWORD is set (or a .env file exists)")
        return 1

    configure_logging(settings.log_level)
    source = SnapshotSource.from_json_file(args.snapshot)

    try:
        async with GraphGateway(settings, source) as gateway:
            await gateway.initialize_schema()
            if gateway.schema is not None:
                console.print(schema_info_table(await gateway.schema.get_schema_info()))

            if args.incremental or args.since:
                result = await gateway.run_incremental_sync(
                    args.project, args.since, timeout=args.timeout
                )
            else:
                result = await gateway.run_full_sync(args.project, timeout=args.timeout)
            console.print(sync_result_table(result))

            if args.reconcile:
                report = await gateway.reconcile(args.project, dry_run=not args.prune)
                console.print(reconcile_table(report))

            console.print(graph_status_table(await gateway.graph_status(args.project)))
    except ContextGraphError as e:
        logger.exception("graph_sync_failed", extra={"error": str(e)})
        console.print(f"[red]✗ Sync failed: {e}[/red]")
        return 1

    return 0 if result.ok else 2


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
