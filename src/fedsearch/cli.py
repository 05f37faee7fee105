"""CLI entry point for FedSearch."""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fedsearch.config.settings import Settings
    from fedsearch.models.filters import Filter


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fedsearch",
        description="FedSearch — Federated OpenSearch catalog queries",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--endpoint",
        type=str,
        default=None,
        help="OpenSearch endpoint URL (overrides config)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "warning", "error"],
        default=None,
        help="Log level (overrides config)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"FedSearch {_get_version()}",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    query = commands.add_parser("query", help="Run a contextual search and print the results as JSON")
    query.add_argument("phrase", help="Search phrase")
    query.add_argument("--start", type=int, default=1, help="1-based index of the first result")
    query.add_argument("--count", type=int, default=10, help="Page size")
    query.add_argument("--dtstart", type=datetime.fromisoformat, default=None, help="Temporal lower bound (ISO-8601)")
    query.add_argument("--dtend", type=datetime.fromisoformat, default=None, help="Temporal upper bound (ISO-8601)")
    query.add_argument(
        "--point",
        type=float,
        nargs=3,
        metavar=("LAT", "LON", "RADIUS"),
        default=None,
        help="Point-radius filter (radius in meters)",
    )
    query.add_argument(
        "--bbox",
        type=float,
        nargs=4,
        metavar=("WEST", "SOUTH", "EAST", "NORTH"),
        default=None,
        help="Bounding-box filter",
    )
    query.add_argument("--local", action="store_true", help="Restrict the remote to its local catalog")

    fetch = commands.add_parser("fetch", help="Fetch a single record by identifier")
    fetch.add_argument("id", help="Record identifier")

    commands.add_parser("probe", help="Check whether the endpoint is available")

    resource = commands.add_parser("resource-url", help="Print the resource URL for a record identifier")
    resource.add_argument("id", help="Record identifier")

    return parser


def build_filter(args: argparse.Namespace) -> Filter:
    """Combine the query sub-command's options into a filter tree."""
    from fedsearch.models.filters import (
        And,
        BBoxPredicate,
        ContextualPredicate,
        PointRadiusPredicate,
        TemporalPredicate,
    )

    filters: list[Filter] = [ContextualPredicate(phrase=args.phrase)]
    if args.dtstart or args.dtend:
        filters.append(
            TemporalPredicate(
                start=args.dtstart or datetime.min,
                end=args.dtend or datetime.max,
            )
        )
    if args.point:
        lat, lon, radius = args.point
        filters.append(PointRadiusPredicate(lat=lat, lon=lon, radius=radius))
    elif args.bbox:
        west, south, east, north = args.bbox
        filters.append(BBoxPredicate(west=west, south=south, east=east, north=north))

    return filters[0] if len(filters) == 1 else And(filters=filters)


async def _run(args: argparse.Namespace, settings: Settings) -> int:
    from fedsearch.adapters.opensearch.adapter import OpenSearchSource
    from fedsearch.models.filters import IdEqualsPredicate, Query, QueryRequest

    source = OpenSearchSource.from_settings(settings.source)

    if args.command == "resource-url":
        url = source.resource_url(args.id)
        if url is None:
            print(f"Error: cannot build a resource URL from {source.endpoint_url}", file=sys.stderr)
            return 1
        print(url)
        return 0

    await source.initialize()
    try:
        if args.command == "probe":
            available = await source.is_available()
            print("available" if available else "unavailable")
            return 0 if available else 1

        if args.command == "fetch":
            request = QueryRequest(query=Query(filter=IdEqualsPredicate(value=args.id)), metacard_id=args.id)
        else:
            request = QueryRequest(
                query=Query(filter=build_filter(args), start_index=args.start, page_size=args.count),
            )
        outcome = await source.query(request)
        print(outcome.model_dump_json(indent=2))
        return 0
    finally:
        await source.shutdown()


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    from fedsearch.adapters.base.exceptions import AdapterError
    from fedsearch.config.settings import Settings
    from fedsearch.observability.logging import setup_logging

    if args.config:
        config_path = Path(args.config)
        if not config_path.exists():
            print(f"Error: Config file not found: {config_path}", file=sys.stderr)
            sys.exit(1)
        settings = Settings.from_yaml(config_path)
    else:
        settings = Settings()

    # Apply CLI overrides
    if args.endpoint:
        settings.source.endpoint_url = args.endpoint
    if args.log_level:
        settings.observability.log_level = args.log_level
    if getattr(args, "local", False):
        settings.source.local_query_only = True

    setup_logging(settings.observability)

    try:
        code = asyncio.run(_run(args, settings))
    except AdapterError as e:
        print(f"Error: {e}", file=sys.stderr)
        code = 1
    sys.exit(code)


def _get_version() -> str:
    """Get the package version."""
    try:
        from fedsearch import __version__

        return __version__
    except ImportError:
        return "unknown"


if __name__ == "__main__":
    main()
