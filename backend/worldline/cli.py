"""
Command-line entry point for offline timeline maintenance.

Usage:
    python -m worldline.cli migrate-legacy --database world
    python -m worldline.cli migrate-legacy --database world --keep-legacy
"""

import argparse
import asyncio
import sys

from worldline.logging import setup_logging, get_logger
from worldline.models import MigrationOptions
from worldline.services.timeline_migration import LegacyTimelineMigrationService

logger = get_logger('cli')


async def _migrate_legacy(database: str, keep_legacy: bool) -> int:
    service = LegacyTimelineMigrationService()
    try:
        report = await service.migrate(database, MigrationOptions(delete_legacy=not keep_legacy))
    except Exception as exc:
        logger.error(f"Legacy timeline migration failed for '{database}': {exc}")
        return 1
    print(report.model_dump_json(indent=2))
    if report.unresolved_legacy_event_links:
        logger.warning(
            f"{report.unresolved_legacy_event_links} legacy event link(s) unresolved; legacy data kept"
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="worldline", description="Worldline maintenance commands")
    subparsers = parser.add_subparsers(dest="command", required=True)

    migrate = subparsers.add_parser(
        "migrate-legacy",
        help="Convert legacy timelines and event links into the timeline hierarchy",
    )
    migrate.add_argument("--database", required=True, help="Logical database name")
    migrate.add_argument(
        "--keep-legacy",
        action="store_true",
        help="Keep legacy timelines and event links after migrating",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    # stdout carries the report
    setup_logging(stream=sys.stderr)
    if args.command == "migrate-legacy":
        return asyncio.run(_migrate_legacy(args.database, args.keep_legacy))
    return 2


if __name__ == "__main__":
    sys.exit(main())
