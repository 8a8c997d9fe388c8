"""Opponent profile learning from observed trades.

Each opposing roster in a league has one profile. Preferences move toward
positions the opponent acquires and away from positions it gives up, using an
exponential moving average so recent behavior gradually dominates.
"""

import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..data.records import OpponentProfile, SyncResult, Transaction, utc_now
from ..data.sleeper_client import SleeperClient, SleeperTransaction
from ..data.store import Store

logger = logging.getLogger(__name__)

LEARNING_RATE = 0.2
PREFERENCE_POSITIONS = ('QB', 'RB', 'WR', 'TE')


class TradeOutcome(BaseModel):
    """One observed trade from the opponent's side."""
    positions_gained: List[str] = Field(default_factory=list)
    positions_lost: List[str] = Field(default_factory=list)
    accepted: bool
    initiated_by_opponent: bool = False


def apply_trade_outcome(profile: OpponentProfile, outcome: TradeOutcome,
                        alpha: float = LEARNING_RATE) -> OpponentProfile:
    """Return the profile updated with one trade outcome.

    Args:
        profile: Current profile
        outcome: Observed trade
        alpha: EMA learning rate

    Returns:
        New profile; the input is not modified
    """
    updates: Dict = {}

    for position in outcome.positions_gained:
        field = _preference_field(position)
        if field:
            current = updates.get(field, getattr(profile, field))
            updates[field] = current * (1 - alpha) + 1.0 * alpha

    for position in outcome.positions_lost:
        field = _preference_field(position)
        if field:
            current = updates.get(field, getattr(profile, field))
            updates[field] = current * (1 - alpha / 2)

    proposed = profile.total_trades_proposed + 1
    accepted = profile.total_trades_accepted
    rejected = profile.total_trades_rejected
    if outcome.accepted:
        accepted += 1
        updates['last_trade_date'] = utc_now()
    else:
        rejected += 1

    updates['total_trades_proposed'] = proposed
    updates['total_trades_accepted'] = accepted
    updates['total_trades_rejected'] = rejected
    # Always from the full running totals, whichever counter moved
    updates['acceptance_rate'] = accepted / proposed

    if outcome.initiated_by_opponent:
        updates['total_trades_initiated'] = profile.total_trades_initiated + 1
        updates['trading_activity'] = min(1.0, profile.trading_activity * (1 - alpha) + 1.0 * alpha)

    gained, lost = len(outcome.positions_gained), len(outcome.positions_lost)
    if gained < lost:
        updates['prefers_stars'] = True
        updates['prefers_depth'] = False
    elif gained > lost:
        updates['prefers_stars'] = False
        updates['prefers_depth'] = True

    updates['data_points'] = profile.data_points + 1
    updates['last_updated'] = utc_now()

    return profile.model_copy(update=updates)


def _preference_field(position: str) -> Optional[str]:
    position = (position or '').upper()
    if position not in PREFERENCE_POSITIONS:
        return None
    return f"{position.lower()}_preference"


class OpponentLearner:
    """Maintains opponent profiles for a league."""

    def __init__(self, store: Store, feed: SleeperClient):
        self.store = store
        self.feed = feed

    async def get_or_create_profile(self, league_id: str, team_id: str,
                                    team_name: Optional[str] = None) -> OpponentProfile:
        """Fetch a profile, creating it with neutral defaults on first use."""
        profile = await self.store.get_opponent_profile(league_id, team_id)
        if profile is not None:
            return profile

        profile = OpponentProfile(league_id=league_id, opponent_team_id=team_id,
                                  opponent_team_name=team_name)
        await self.store.save_opponent_profile(profile)
        logger.info(f"Created opponent profile for team {team_id} in league {league_id}")
        return profile

    async def get_profiles(self, league_id: str) -> List[OpponentProfile]:
        return await self.store.list_opponent_profiles(league_id)

    async def record_trade_outcome(self, league_id: str, team_id: str,
                                   outcome: TradeOutcome) -> OpponentProfile:
        """Apply one trade outcome to an opponent's profile and persist it."""
        profile = await self.get_or_create_profile(league_id, team_id)
        profile = apply_trade_outcome(profile, outcome)
        await self.store.save_opponent_profile(profile)
        logger.debug(
            f"Updated profile {team_id}: acceptance_rate={profile.acceptance_rate:.2f}, "
            f"data_points={profile.data_points}"
        )
        return profile

    async def initialize_profiles(self, league_id: str) -> List[OpponentProfile]:
        """Create profiles for every opposing roster owner in the league."""
        league = await self.store.get_league(league_id)
        if league is None:
            logger.warning(f"League {league_id} not found")
            return []

        rosters = await self.feed.get_rosters(league.platform_league_id)
        users = await self.feed.get_league_users(league.platform_league_id)
        if rosters is None:
            logger.error(f"Could not fetch rosters for league {league_id}")
            return []

        names = {u.user_id: u.team_name for u in users or []}
        profiles = []
        for roster in rosters:
            if not roster.owner_id or roster.owner_id == league.platform_team_id:
                continue
            profiles.append(await self.get_or_create_profile(
                league_id, roster.owner_id, names.get(roster.owner_id)))
        return profiles

    async def sync_league_transactions(self, league_id: str, season: int, week: int) -> SyncResult:
        """Replay a week's feed trades into opponent profiles.

        Every transaction is stored once, keyed by its external id; already
        stored transactions are skipped so replays never double count.
        """
        result = SyncResult()

        league = await self.store.get_league(league_id)
        if league is None:
            result.success = False
            result.errors.append(f"League {league_id} not found")
            return result

        transactions = await self.feed.get_transactions(league.platform_league_id, week)
        rosters = await self.feed.get_rosters(league.platform_league_id)
        if transactions is None or rosters is None:
            result.success = False
            result.errors.append(f"Failed to fetch transactions for league {league_id} week {week}")
            return result

        owners = {r.roster_id: r.owner_id for r in rosters if r.owner_id}
        result.total = len(transactions)

        for txn in transactions:
            try:
                if await self.store.get_transaction(league_id, txn.transaction_id):
                    result.skipped += 1
                    continue

                if txn.type == 'trade':
                    await self._replay_trade(league_id, league.platform_team_id, txn, owners)

                await self.store.add_transaction(Transaction(
                    league_id=league_id,
                    platform_transaction_id=txn.transaction_id,
                    transaction_type=txn.type,
                    status=txn.status,
                    week=week,
                    season=season,
                    roster_ids=txn.roster_ids,
                    adds=txn.adds,
                    drops=txn.drops,
                    creator=txn.creator,
                    waiver_bid=txn.waiver_bid,
                    completed_at=txn.completed_at,
                ))
                result.created += 1
            except Exception as e:
                logger.error(f"Failed to process transaction {txn.transaction_id}: {e}")
                result.errors.append(f"{txn.transaction_id}: {e}")

        result.success = result.created + result.skipped > 0 or not result.errors
        logger.info(f"Transaction sync league {league_id} week {week}: stored={result.created}, "
                    f"skipped={result.skipped}, errors={len(result.errors)}")
        return result

    async def _replay_trade(self, league_id: str, my_team_id: Optional[str], txn: SleeperTransaction,
                            owners: Dict[int, str]) -> None:
        player_ids = set(txn.adds) | set(txn.drops)
        players = await self.store.get_players(player_ids)

        for roster_id in txn.roster_ids:
            owner_id = owners.get(roster_id)
            if not owner_id or owner_id == my_team_id:
                continue

            gained = [players[pid].position.value for pid, rid in txn.adds.items()
                      if rid == roster_id and pid in players]
            lost = [players[pid].position.value for pid, rid in txn.drops.items()
                    if rid == roster_id and pid in players]

            outcome = TradeOutcome(
                positions_gained=gained,
                positions_lost=lost,
                accepted=txn.status == 'complete',
                initiated_by_opponent=txn.creator == owner_id,
            )
            await self.record_trade_outcome(league_id, owner_id, outcome)
