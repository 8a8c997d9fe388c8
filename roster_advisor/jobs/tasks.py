"""Named sync tasks shared by the scheduler, the CLI and manual triggers."""

import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from ..data.records import SyncResult, utc_now
from ..data.stats_service import StatsService
from ..data.store import Store
from ..data.sync import PlayerSync
from ..data.sleeper_client import SleeperClient
from ..models.opponent_learning import OpponentLearner
from ..models.projection_engine import ProjectionEngine
from ..utils.nfl import REGULAR_SEASON_WEEKS, current_week_and_season, next_week

logger = logging.getLogger(__name__)


def merge_results(results: List[SyncResult]) -> SyncResult:
    merged = SyncResult(success=all(r.success for r in results) if results else True)
    for r in results:
        merged.total += r.total
        merged.created += r.created
        merged.updated += r.updated
        merged.skipped += r.skipped
        merged.errors.extend(r.errors)
    return merged


class SyncTasks:
    """Task bodies for player, projection, stat and transaction syncs."""

    def __init__(self, store: Store, feed: SleeperClient, player_sync: PlayerSync,
                 stats_service: StatsService, projection_engine: ProjectionEngine,
                 learner: OpponentLearner, week_delay: float = 1.0,
                 clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.feed = feed
        self.player_sync = player_sync
        self.stats_service = stats_service
        self.projection_engine = projection_engine
        self.learner = learner
        self.week_delay = week_delay
        self.clock = clock or utc_now

    async def resolve_week(self) -> Tuple[int, int]:
        """Current (week, season) from the feed, or the calendar when it is unavailable."""
        state = await self.feed.get_nfl_state()
        if state is not None:
            week = state.week if state.season_type == 'regular' else 0
            return min(week, REGULAR_SEASON_WEEKS), state.season
        logger.warning("NFL state unavailable, falling back to calendar week")
        return current_week_and_season(self.clock())

    async def sync_players(self) -> SyncResult:
        result = await self.player_sync.sync_players()
        await self.store.flush()
        return result

    async def sync_projections(self) -> SyncResult:
        """Project the current week, the next week and the rest of season."""
        week, season = await self.resolve_week()
        upcoming = next_week(week)

        results = []
        if week > 0:
            logger.info(f"Syncing projections for week {week}, season {season}")
            results.append(await self.projection_engine.sync_week_projections(week, season))
        if upcoming != week:
            logger.info(f"Syncing projections for week {upcoming}, season {season}")
            results.append(await self.projection_engine.sync_week_projections(upcoming, season))

        logger.info(f"Syncing rest-of-season projections for season {season}")
        results.append(await self.projection_engine.sync_week_projections(0, season))

        await self.store.flush()
        return merge_results(results)

    async def sync_weekly_stats(self) -> SyncResult:
        """Load the week that just finished, then refresh current-week projections."""
        week, season = await self.resolve_week()
        if week == 0:
            logger.info("Offseason, skipping stats sync")
            return SyncResult(success=True)

        previous = max(1, week - 1)
        logger.info(f"Syncing stats for week {previous}, season {season}")
        result = await self.stats_service.sync_week_stats(season, previous)
        if not result.success:
            logger.error(f"Stats sync failed: {result.errors[:5]}")
            await self.store.flush()
            return result

        logger.info(f"Regenerating projections for week {week} with new stats")
        projections = await self.projection_engine.sync_week_projections(week, season)
        await self.store.flush()
        return merge_results([result, projections])

    async def sync_transactions(self) -> SyncResult:
        """Replay this week's transactions into every active league's opponent profiles."""
        week, season = await self.resolve_week()
        if week == 0:
            logger.info("Offseason, skipping transaction sync")
            return SyncResult(success=True)

        leagues = await self.store.list_active_leagues()
        logger.info(f"Syncing transactions for {len(leagues)} active leagues")

        results = []
        for league in leagues:
            result = await self.learner.sync_league_transactions(league.id, season, week)
            if not result.success:
                logger.error(f"Failed to sync transactions for league {league.id}: {result.errors}")
            results.append(result)

        await self.store.flush()
        return merge_results(results)

    async def backfill_season(self, season: int, weeks: Optional[List[int]] = None,
                              stats_only: bool = False, projections_only: bool = False) -> SyncResult:
        """Load stats and rebuild projections for past weeks of a season.

        Weeks are processed one at a time with a delay between them to stay
        under the feed's rate limits.

        Args:
            season: Season to backfill
            weeks: Weeks to process (default 1-18)
            stats_only: Only load actual stats
            projections_only: Only rebuild projections from stored stats

        Returns:
            Combined result across all weeks
        """
        weeks = weeks or list(range(1, REGULAR_SEASON_WEEKS + 1))
        logger.info(f"Backfilling season {season}, weeks {weeks[0]}-{weeks[-1]}")

        results = []
        for i, week in enumerate(weeks):
            if not projections_only:
                stats = await self.stats_service.sync_week_stats(season, week)
                logger.info(f"Week {week} stats: created={stats.created}, updated={stats.updated}, "
                            f"errors={len(stats.errors)}")
                results.append(stats)
            if not stats_only:
                projections = await self.projection_engine.sync_week_projections(week, season)
                results.append(projections)

            await self.store.flush()
            if i < len(weeks) - 1 and self.week_delay > 0:
                await asyncio.sleep(self.week_delay)

        merged = merge_results(results)
        logger.info(f"Backfill complete for {season}: created={merged.created}, updated={merged.updated}, "
                    f"errors={len(merged.errors)}")
        return merged
