"""Backfill a full season of stats and history-based projections.

Usage:
    python scripts/backfill_season.py 2024
    python scripts/backfill_season.py 2024 --weeks 1-5 --stats-only
"""

import argparse
import asyncio

from main import parse_weeks
from roster_advisor import build_advisor
from roster_advisor.utils.logging_config import setup_logging


async def backfill(season, weeks, stats_only, projections_only):
    advisor = build_advisor()
    try:
        print("Syncing players first...")
        await advisor.tasks.sync_players()
        return await advisor.tasks.backfill_season(
            season, weeks, stats_only=stats_only, projections_only=projections_only)
    finally:
        await advisor.store.flush()
        advisor.close()


def main():
    parser = argparse.ArgumentParser(description="Backfill a season of stats and projections")
    parser.add_argument("season", type=int)
    parser.add_argument("--weeks", help="Weeks as '1-5' or '1,3,5'")
    parser.add_argument("--stats-only", action="store_true")
    parser.add_argument("--projections-only", action="store_true")
    args = parser.parse_args()

    setup_logging("INFO")
    result = asyncio.run(backfill(args.season, parse_weeks(args.weeks),
                                  args.stats_only, args.projections_only))

    print(f"\n✅ Backfill {args.season} complete: created={result.created}, updated={result.updated}")
    if result.errors:
        print(f"⚠️  {len(result.errors)} errors, first few:")
        for error in result.errors[:5]:
            print(f"  {error}")


if __name__ == "__main__":
    main()
