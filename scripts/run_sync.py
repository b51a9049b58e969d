#!/usr/bin/env python3
"""
Command-line script to run one listing synchronization.

Fetches the listing feed, reconciles it into the configured database and
prints the run totals. It is the entry point for cron-style scheduling; the
HTTP service exposes the same run through POST /sync/start.

Usage:
  - Full sync with the configured defaults:
    python scripts/run_sync.py

  - Quick check of ten listings without images:
    python scripts/run_sync.py --limit 10 --no-images

  - Resync a single listing:
    python scripts/run_sync.py --ref 261
"""

import argparse
import asyncio
import sys
from typing import Optional, Tuple

import httpx

from property_sync_service.config import settings
from property_sync_service.db import AsyncSessionLocal, engine, init_models
from property_sync_service.exceptions import (
    SourceApiError,
    SyncAlreadyRunningError,
    SyncFatalError,
)
from property_sync_service.models.execution import SyncTriggerEnum
from property_sync_service.schemas.listing_payload import ApiFilters
from property_sync_service.schemas.sync import SyncOptions, SyncStatistics
from property_sync_service.services.sync_runner import run_sync
from property_sync_service.utils.logging_config import configure_logging


# --- Helper Functions for Colored Output ---
def print_color(text, color):
    """Prints text in a given color for better readability in the terminal."""
    colors = {
        "green": "\033[92m",
        "yellow": "\033[93m",
        "red": "\033[91m",
        "blue": "\033[94m",
        "reset": "\033[0m",
    }
    print(f"{colors.get(color, '')}{text}{colors['reset']}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Synchronize listings from the source API into the local database."
    )
    parser.add_argument("--limit", type=int, help="Process at most N listings")
    parser.add_argument("--batch-size", type=int, help="Listings processed concurrently")
    parser.add_argument(
        "--no-images", action="store_true", help="Skip image download and reconciliation"
    )
    parser.add_argument(
        "--no-changes", action="store_true", help="Do not record field-level changes"
    )
    parser.add_argument(
        "--mark-inactive",
        action="store_true",
        help="Deactivate listings that are missing from the feed",
    )
    parser.add_argument(
        "--scheduled", action="store_true", help="Record the run as scheduled"
    )

    filters = parser.add_argument_group("API filters")
    filters.add_argument("--ref", type=int, help="Only this listing reference")
    filters.add_argument("--sync-code", help="Only the listing with this sync code")
    filters.add_argument("--city", help="Only listings in this city")
    filters.add_argument("--use-id", type=int, help="Source use id")
    filters.add_argument("--status-ids", help="Comma separated source status ids")
    return parser


def options_from_args(args: argparse.Namespace) -> Tuple[SyncOptions, Optional[ApiFilters]]:
    options = SyncOptions.from_settings(
        settings,
        batch_size=args.batch_size,
        limit=args.limit,
        download_images=False if args.no_images else None,
        track_changes=False if args.no_changes else None,
        mark_inactive=True if args.mark_inactive else None,
    )
    filters = ApiFilters(
        ref=args.ref,
        sync_code=args.sync_code,
        city=args.city,
        use_id=args.use_id,
        status_ids_csv=args.status_ids,
    )
    return options, None if filters.is_empty() else filters


def print_summary(stats: SyncStatistics) -> None:
    print_color("=" * 60, "blue")
    print_color("Synchronization summary", "blue")
    for key, value in stats.counters().items():
        color = "red" if key in ("errors", "image_errors") and value else "reset"
        print_color(f"  {key:<18} {value}", color)
    if stats.duration_seconds is not None:
        print_color(f"  {'duration':<18} {stats.duration_seconds:.1f}s", "reset")
    print_color("=" * 60, "blue")


async def main_async(args: argparse.Namespace) -> int:
    configure_logging()
    options, filters = options_from_args(args)
    trigger = SyncTriggerEnum.SCHEDULED if args.scheduled else SyncTriggerEnum.MANUAL

    try:
        await init_models(engine)
        async with httpx.AsyncClient(
            timeout=settings.SOURCE_API_TIMEOUT_SECONDS, follow_redirects=True
        ) as client:
            stats = await run_sync(
                AsyncSessionLocal,
                client,
                options=options,
                filters=filters,
                trigger=trigger,
                triggered_by="cli",
            )
    except SyncAlreadyRunningError as e:
        print_color(f"⚠️  {e} (started at {e.started_at})", "yellow")
        return 2
    except (SourceApiError, SyncFatalError) as e:
        print_color(f"❌ Synchronization failed: {e}", "red")
        return 1
    finally:
        await engine.dispose()

    print_summary(stats)
    print_color("✅ Synchronization completed", "green")
    return 0


def main() -> None:
    args = build_parser().parse_args()
    sys.exit(asyncio.run(main_async(args)))


if __name__ == "__main__":
    main()
