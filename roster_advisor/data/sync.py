"""Player and league roster synchronization from the Sleeper feed."""

import asyncio
import logging
from typing import List, Optional

from ..models.injury_gate import get_injury_summary, log_injury_summary, normalize_status
from .records import FANTASY_POSITIONS, League, Player, RosterSlot, SyncResult, utc_now
from .sleeper_client import SleeperClient, SleeperPlayer
from .stats_service import chunked
from .store import Store

logger = logging.getLogger(__name__)


def player_from_feed(feed_player: SleeperPlayer) -> Optional[Player]:
    """Convert a feed player into a store record; None for non-fantasy positions."""
    if feed_player.position not in FANTASY_POSITIONS:
        return None

    return Player(
        id=feed_player.player_id,
        full_name=feed_player.display_name,
        position=feed_player.position,
        team=feed_player.team or None,
        status=normalize_status(feed_player.status, feed_player.injury_status, feed_player.active),
        injury_designation=feed_player.injury_body_part,
    )


class PlayerSync:
    """Keeps players and league rosters in step with the feed."""

    def __init__(self, store: Store, feed: SleeperClient, chunk_size: int = 100):
        self.store = store
        self.feed = feed
        self.chunk_size = chunk_size
        self._is_syncing = False

    @property
    def is_syncing(self) -> bool:
        return self._is_syncing

    async def sync_players(self) -> SyncResult:
        """Upsert every fantasy-relevant player from the feed."""
        if self._is_syncing:
            logger.warning("Player sync already in progress, skipping")
            return SyncResult(success=False, errors=["Sync already in progress"])

        self._is_syncing = True
        try:
            return await self._sync_players()
        finally:
            self._is_syncing = False

    async def _sync_players(self) -> SyncResult:
        result = SyncResult()

        feed_players = await self.feed.get_players()
        if feed_players is None:
            result.success = False
            result.errors.append("Failed to fetch players from Sleeper")
            return result

        players: List[Player] = []
        for feed_player in feed_players.values():
            player = player_from_feed(feed_player)
            if player is None:
                result.skipped += 1
            else:
                players.append(player)

        result.total = len(feed_players)
        log_injury_summary(get_injury_summary(p.status for p in players), source="sleeper")

        for chunk in chunked(players, self.chunk_size):
            outcomes = await asyncio.gather(*(self.store.upsert_player(p) for p in chunk),
                                            return_exceptions=True)
            for player, outcome in zip(chunk, outcomes):
                if isinstance(outcome, Exception):
                    result.errors.append(f"{player.id}: {outcome}")
                elif outcome:
                    result.created += 1
                else:
                    result.updated += 1

        result.success = result.created + result.updated > 0 or not result.errors
        logger.info(
            f"Player sync complete: total={result.total}, created={result.created}, "
            f"updated={result.updated}, skipped={result.skipped}, errors={len(result.errors)}"
        )
        return result

    async def sync_league(self, league_id: str) -> Optional[League]:
        """Replace a league's roster wholesale from the feed.

        Returns:
            The refreshed league, or None if the league or its feed data is missing
        """
        league = await self.store.get_league(league_id)
        if league is None:
            logger.warning(f"League {league_id} not found")
            return None

        feed_league = await self.feed.get_league(league.platform_league_id)
        rosters = await self.feed.get_rosters(league.platform_league_id)
        if feed_league is None or rosters is None:
            logger.error(f"Could not fetch league {league.platform_league_id} from Sleeper")
            return None

        my_roster = next((r for r in rosters if r.owner_id == league.platform_team_id), None)
        if my_roster is None:
            logger.warning(f"No roster owned by {league.platform_team_id} in league {league_id}")
            return None

        known = await self.store.get_players(my_roster.players)
        starters = set(my_roster.starters)
        slots = [
            RosterSlot(
                league_id=league_id,
                player_id=player_id,
                roster_slot="ST" if player_id in starters else "BN",
                is_starting=player_id in starters,
            )
            for player_id in my_roster.players if player_id in known
        ]
        await self.store.replace_roster(league_id, slots)

        updates = {
            "league_name": feed_league.name or league.league_name,
            "scoring_settings": feed_league.scoring_settings,
            "roster_positions": feed_league.roster_positions,
            "faab_budget": feed_league.waiver_budget,
            "last_synced": utc_now(),
        }
        if feed_league.waiver_budget is not None and my_roster.waiver_budget_used is not None:
            updates["current_faab"] = feed_league.waiver_budget - my_roster.waiver_budget_used
        league = league.model_copy(update=updates)
        await self.store.upsert_league(league)

        logger.info(f"Synced league {league_id}: {len(slots)} rostered players, {len(starters)} starters")
        return league
