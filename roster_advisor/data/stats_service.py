"""Stats store adapter: read-through access to weekly stats and projections."""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError

from .cache import CacheKeys, CacheService, TTL_PROJECTION, TTL_WEEKLY_STATS
from .records import Projection, SyncResult, WeeklyStat
from .sleeper_client import SleeperClient
from .store import Store

logger = logging.getLogger(__name__)


def chunked(items: List, size: int) -> Iterable[List]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class StatsService:
    """Fetches and persists weekly stats and projections.

    Reads go cache -> store; writes go store first, then cache on a
    best-effort basis.
    """

    def __init__(self, store: Store, cache: CacheService, feed: SleeperClient,
                 chunk_size: int = 100):
        """Initialize the adapter.

        Args:
            store: Authoritative store
            cache: Read-through cache
            feed: External sports-data feed
            chunk_size: Items processed concurrently per chunk during syncs
        """
        self.store = store
        self.cache = cache
        self.feed = feed
        self.chunk_size = chunk_size

    # Projections

    async def get_projection(self, player_id: str, week: int, season: int) -> Optional[Projection]:
        """Get a projection, reading through the cache."""
        key = CacheKeys.projection(player_id, week, season)
        cached = await self.cache.get(key)
        if cached is not None:
            try:
                return Projection.model_validate(cached)
            except ValidationError as e:
                logger.warning(f"Discarding malformed cached projection {key}: {e}")

        projection = await self.store.get_projection(player_id, week, season)
        if projection is not None:
            await self.cache.set(key, projection.model_dump(mode="json"), TTL_PROJECTION)
        return projection

    async def get_week_projections(self, week: int, season: int) -> List[Projection]:
        """All projections for a week, highest projected points first."""
        key = CacheKeys.week_projections(week, season)
        cached = await self.cache.get(key)
        if cached is not None:
            try:
                return [Projection.model_validate(item) for item in cached]
            except ValidationError as e:
                logger.warning(f"Discarding malformed cached week projections {key}: {e}")

        projections = await self.store.list_projections(week, season)
        await self.cache.set(key, [p.model_dump(mode="json") for p in projections], TTL_PROJECTION)
        return projections

    async def get_players_projections(self, player_ids: List[str], week: int,
                                      season: int) -> Dict[str, Projection]:
        projections = await asyncio.gather(*(self.get_projection(pid, week, season) for pid in player_ids))
        return {pid: p for pid, p in zip(player_ids, projections) if p is not None}

    async def get_top_projected_players(self, week: int, season: int,
                                        position: Optional[str] = None,
                                        limit: int = 50) -> List[Projection]:
        projections = await self.get_week_projections(week, season)
        if position:
            players = await self.store.get_players(p.player_id for p in projections)
            projections = [p for p in projections
                           if p.player_id in players and players[p.player_id].position.value == position]
        return projections[:limit]

    async def save_projection(self, projection: Projection) -> bool:
        """Upsert a projection; returns True when it was new."""
        created = await self.store.upsert_projection(projection)
        await self.cache.delete(CacheKeys.projection(projection.player_id, projection.week, projection.season))
        await self.cache.delete(CacheKeys.week_projections(projection.week, projection.season))
        return created

    async def invalidate_week_cache(self, week: int, season: int) -> int:
        removed = await self.cache.delete_pattern(f"projection:*:{week}:{season}")
        await self.cache.delete(CacheKeys.week_projections(week, season))
        logger.info(f"Invalidated {removed} cached projections for week {week} {season}")
        return removed

    # Weekly stats

    async def get_week_stat(self, player_id: str, week: int, season: int) -> Optional[WeeklyStat]:
        key = CacheKeys.weekly_stats(player_id, week, season)
        cached = await self.cache.get(key)
        if cached is not None:
            try:
                return WeeklyStat.model_validate(cached)
            except ValidationError as e:
                logger.warning(f"Discarding malformed cached stats {key}: {e}")

        stat = await self.store.get_weekly_stat(player_id, week, season)
        if stat is not None:
            await self.cache.set(key, stat.model_dump(mode="json"), TTL_WEEKLY_STATS)
        return stat

    async def get_recent_stats(self, player_id: str, season: int, before_week: int,
                               lookback: int) -> List[WeeklyStat]:
        """Up to ``lookback`` weekly stats strictly before a week, most recent first."""
        return await self.store.get_recent_weekly_stats(player_id, season, before_week, lookback)

    async def sync_week_stats(self, season: int, week: int) -> SyncResult:
        """Fetch one week of stats from the feed and upsert it.

        Players the store does not know about are skipped. Chunks run one
        after another; items inside a chunk run concurrently.
        """
        logger.info(f"Syncing stats for {season} week {week}")
        result = SyncResult()

        bags = await self.feed.get_week_stats(season, week)
        if bags is None:
            result.success = False
            result.errors.append(f"Failed to fetch stats for {season} week {week}")
            return result

        known = await self.store.get_players(bags.keys())
        items = list(bags.items())
        result.total = len(items)

        for chunk in chunked(items, self.chunk_size):
            outcomes = await asyncio.gather(
                *(self._upsert_stat(player_id, bag, week, season, known) for player_id, bag in chunk),
                return_exceptions=True,
            )
            for (player_id, _), outcome in zip(chunk, outcomes):
                if isinstance(outcome, Exception):
                    result.errors.append(f"{player_id}: {outcome}")
                elif outcome is None:
                    result.skipped += 1
                elif outcome:
                    result.created += 1
                else:
                    result.updated += 1

        result.success = result.created + result.updated > 0 or not result.errors
        logger.info(
            f"Stats sync {season} week {week}: created={result.created}, updated={result.updated}, "
            f"skipped={result.skipped}, errors={len(result.errors)}"
        )
        return result

    async def _upsert_stat(self, player_id: str, bag: Dict[str, float], week: int, season: int,
                           known: Dict) -> Optional[bool]:
        if player_id not in known:
            return None

        stat = WeeklyStat(
            player_id=player_id,
            week=week,
            season=season,
            stats=bag,
            ppr_points=bag.get("pts_ppr"),
            half_ppr_points=bag.get("pts_half_ppr"),
            std_points=bag.get("pts_std"),
        )
        created = await self.store.upsert_weekly_stat(stat)
        await self.cache.set(CacheKeys.weekly_stats(player_id, week, season),
                             stat.model_dump(mode="json"), TTL_WEEKLY_STATS)
        return created
