#!/usr/bin/env python3
"""
Prune stale refresh sessions from the database.

Removes sessions that are:
- Past their expiry time
- Revoked longer ago than the retention window

The arq worker runs the same cleanup hourly; this script is for one-off runs
(e.g. after a mass revocation) or deployments without a worker.

Usage:
    # Dry run (shows how many rows would be deleted)
    python scripts/prune_sessions.py --dry-run

    # Delete stale sessions
    python scripts/prune_sessions.py --confirm

    # Keep revoked sessions for 30 days instead of the configured default
    python scripts/prune_sessions.py --retention-days 30 --confirm
"""

import argparse
import asyncio
from datetime import timedelta

from app.config import settings
from app.core.database import engine, get_async_session
from app.models.base import utc_now
from app.services.session_store import SessionStore


async def prune(retention_days: int, dry_run: bool) -> int:
    """
    Count or delete stale sessions.

    Returns:
        Number of sessions that were (or would be) deleted
    """
    now = utc_now()
    revoked_before = now - timedelta(days=retention_days)

    async with get_async_session() as db:
        store = SessionStore(db)
        if dry_run:
            return await store.count_stale(now, revoked_before)
        return await store.delete_stale(now, revoked_before)


async def main() -> None:
    parser = argparse.ArgumentParser(description="Prune stale refresh sessions")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show how many sessions would be deleted without deleting",
    )
    parser.add_argument(
        "--confirm",
        action="store_true",
        help="Actually delete the sessions (required to make changes)",
    )
    parser.add_argument(
        "--retention-days",
        type=int,
        default=settings.SESSION_REVOKED_RETENTION_DAYS,
        help="Keep revoked sessions for N days (default: %(default)s)",
    )

    args = parser.parse_args()

    if not args.dry_run and not args.confirm:
        print("\nERROR: Must specify --dry-run or --confirm")
        print("       Use --dry-run to preview what would be deleted")
        print("       Use --confirm to actually delete sessions")
        return

    try:
        count = await prune(args.retention_days, dry_run=args.dry_run)
    finally:
        await engine.dispose()

    if args.dry_run:
        print(f"\n[DRY RUN] {count} stale sessions would be deleted")
    else:
        print(f"\n✓ Deleted {count} stale sessions")


if __name__ == "__main__":
    asyncio.run(main())
