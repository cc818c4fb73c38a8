#!/usr/bin/env python3
"""
Export Outlook calendar events for one or more users.

Resolves each user token (me, a directory ID or a mail address), fetches
their calendar view for the date range and writes an Excel workbook, a JSON
document, or uploads either to SharePoint/OneDrive.

Usage:
    uv run python src/scripts/export_events.py --start 20240101 --end 20240131 alice@example.com
    uv run python src/scripts/export_events.py --output - --exclude me
    uv run python src/scripts/export_events.py --output "https://contoso.sharepoint.com/sites/team/Shared Documents/events.xlsx"
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.auth import acquire_credential
from core.config import (
    DEFAULT_OUTPUT,
    GRAPH_APP_ID,
    GRAPH_CLIENT_SECRET,
    GRAPH_SCOPES,
    GRAPH_TENANT_ID,
    LOG_LEVEL,
    PREFERRED_TIMEZONE,
    SELF_TOKEN,
    TOKEN_CACHE_PATH,
)
from core.errors import CalendarExportError
from core.graph_client import build_graph_client
from core.logging import configure_logging
from models.export import Destination
from services.calendar import build_date_range, collect_user_events
from services.delivery import deliver
from services.reports import render_export

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Export Outlook calendar events")
    parser.add_argument("--tenant-id", default=GRAPH_TENANT_ID, help="Tenant ID")
    parser.add_argument("--client-id", default=GRAPH_APP_ID, help="Client ID")
    parser.add_argument("--token-cache-path", default=TOKEN_CACHE_PATH, help="Token cache path")
    parser.add_argument(
        "--output",
        default=DEFAULT_OUTPUT,
        help="Output path (.xlsx or .json), '-' for stdout, or an https:// SharePoint URL",
    )
    parser.add_argument("--start", help="Start day (YYYYMMDD) or month (YYYYMM). Defaults to today.")
    parser.add_argument("--end", help="End day (YYYYMMDD) or month (YYYYMM), inclusive. Defaults to start.")
    parser.add_argument(
        "--exclude", action="store_true", help="Exclude calendar owner from attendees"
    )
    parser.add_argument(
        "--time-zone",
        default=PREFERRED_TIMEZONE,
        help="Timezone Graph reports event times in (IANA name)",
    )
    parser.add_argument("--log-level", default=LOG_LEVEL, help="Logging level")
    parser.add_argument(
        "users",
        nargs="*",
        default=[SELF_TOKEN],
        help="User IDs or mail addresses, 'me' for the signed-in user",
    )
    return parser


async def main(args: argparse.Namespace):
    """Main entry point."""
    # Reject bad flags before anyone is asked to sign in
    date_range = build_date_range(args.start, args.end)
    destination = Destination.parse(args.output)
    logger.info("Exporting events from %s until %s", date_range.start, date_range.end)

    credential = acquire_credential(
        args.tenant_id,
        args.client_id,
        GRAPH_SCOPES,
        args.token_cache_path,
        client_secret=GRAPH_CLIENT_SECRET,
    )
    graph = build_graph_client(credential)

    collections = await collect_user_events(
        graph, args.users, date_range, exclude_self=args.exclude, time_zone=args.time_zone
    )

    data = render_export(collections, destination.export_format)
    await deliver(data, destination, graph=graph, credential=credential)


def run(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        asyncio.run(main(args))
    except (CalendarExportError, ValueError) as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(run())
