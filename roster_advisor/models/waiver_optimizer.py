"""Waiver target identification and FAAB bid calculation."""

import logging
import math
from typing import Dict, List, Optional

import numpy as np
from pydantic import BaseModel

from ..data.records import (
    FANTASY_POSITIONS,
    League,
    Player,
    PlayerStatus,
    RecommendationStatus,
    UrgencyLevel,
    WaiverRecommendation,
)
from ..data.sleeper_client import SleeperClient
from ..data.stats_service import StatsService
from ..data.store import Store
from ..errors import NotFoundError
from .projection_engine import POSITION_BASE_POINTS, week_points

logger = logging.getLogger(__name__)

DEFAULT_BASE_BID = 5
HISTORY_SAMPLE = 5
MAX_BUDGET_SHARE = 0.4
URGENT_ADD_TREND = 20.0

STARTER_REQUIREMENTS = {
    'QB': 1,
    'RB': 2,
    'WR': 2,
    'TE': 1,
    'K': 1,
    'DEF': 1,
}

# Status and scarcity contributions to the opportunity score
STATUS_OPPORTUNITY = {
    PlayerStatus.ACTIVE: 0.7,
    PlayerStatus.QUESTIONABLE: 0.4,
}
SCARCITY_OPPORTUNITY = {
    'RB': 0.6,
    'TE': 0.6,
    'WR': 0.5,
}

MIN_OPPORTUNITY = 0.3
RECENT_WEEKS = 3


class FaabBid(BaseModel):
    recommended_bid: int
    min_bid: int
    max_bid: int
    median_historical_bid: float


class PositionalNeed(BaseModel):
    position: str
    need_score: float
    current_starters: int
    required_starters: int
    bench_depth: int
    avg_starter_value: float


class WaiverTarget(BaseModel):
    player: Player
    opportunity_score: float
    projected_points: float
    recent_performance: float
    add_trend_percentage: float = 0.0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def median_bid(historical_bids: List[int]) -> float:
    """Median of the most recent winning bids, or the default with too few."""
    recent = historical_bids[:HISTORY_SAMPLE]
    if len(recent) < HISTORY_SAMPLE:
        return float(DEFAULT_BASE_BID)
    return float(np.median(recent))


def calculate_bid(remaining_budget: float, opportunity_score: float, positional_need: float,
                  add_trend_percentage: float, historical_bids: Optional[List[int]] = None) -> FaabBid:
    """FAAB bid for one claim.

    Args:
        remaining_budget: League FAAB the user has left
        opportunity_score: Player opportunity in [0, 1]
        positional_need: Roster need at the player's position in [0, 1]
        add_trend_percentage: Share of leagues adding the player recently
        historical_bids: Winning bids for comparable claims, newest first

    Returns:
        Recommended, minimum and maximum bids plus the median used as base
    """
    median = median_bid(historical_bids or [])

    bid = median
    bid *= 1 + opportunity_score * 0.5
    bid *= 1 + positional_need * 0.3
    if add_trend_percentage > URGENT_ADD_TREND:
        bid *= 1.2

    cap = remaining_budget * MAX_BUDGET_SHARE
    bid = min(bid, cap)

    # Rounding must never push the bid past the cap
    recommended = min(round_half_up(bid), int(math.floor(cap)))
    if cap >= 1:
        recommended = max(1, recommended)

    return FaabBid(
        recommended_bid=recommended,
        min_bid=round_half_up(recommended * 0.5),
        max_bid=recommended,
        median_historical_bid=median,
    )


def need_score(player_count: int, required: int, avg_starter_value: float) -> float:
    if player_count < required:
        return 1.0
    if player_count == required:
        return 0.8
    if player_count == required + 1:
        return 0.5
    if avg_starter_value < 8.0:
        return 0.6
    return 0.2


def waiver_urgency(opportunity_score: float, add_trend_percentage: float) -> UrgencyLevel:
    if opportunity_score > 0.8 or add_trend_percentage > 30:
        return UrgencyLevel.CRITICAL
    if opportunity_score > 0.6:
        return UrgencyLevel.HIGH
    if opportunity_score < 0.4:
        return UrgencyLevel.LOW
    return UrgencyLevel.MEDIUM


def waiver_reasoning(target: WaiverTarget, positional_need: float, would_start: bool,
                     bid: Optional[int] = None) -> str:
    reasoning = f"{target.player.full_name} ({target.player.position.value})"

    if target.opportunity_score > 0.7:
        reasoning += " has excellent opportunity with high projected value."
    elif target.opportunity_score > 0.5:
        reasoning += " shows strong upside potential."
    else:
        reasoning += " presents a solid waiver option."

    if would_start:
        reasoning += " Would start immediately based on roster needs."
    elif positional_need > 0.5:
        reasoning += f" Fills a need at {target.player.position.value}."

    if bid is not None:
        reasoning += f" Recommended FAAB bid: ${bid}."

    return reasoning


class WaiverOptimizer:
    """Scores available players and prices waiver claims."""

    def __init__(self, store: Store, stats_service: StatsService, feed: SleeperClient,
                 default_budget: int = 100, max_recommendations: int = 10):
        self.store = store
        self.stats_service = stats_service
        self.feed = feed
        self.default_budget = default_budget
        self.max_recommendations = max_recommendations

    async def _league(self, league_id: str) -> League:
        league = await self.store.get_league(league_id)
        if league is None:
            raise NotFoundError(f"League {league_id} not found")
        return league

    async def historical_bids(self, league_id: str, season: int, position: str) -> List[int]:
        """Winning waiver bids for players at a position, newest first."""
        transactions = await self.store.list_transactions(league_id, season, 'waiver')
        added = {pid for t in transactions for pid in t.adds}
        players = await self.store.get_players(added)

        bids = []
        for txn in transactions:
            if txn.status != 'complete' or not txn.waiver_bid:
                continue
            if any(pid in players and players[pid].position.value == position for pid in txn.adds):
                bids.append(txn.waiver_bid)
        return bids

    async def calculate_faab_bid(self, league_id: str, player_id: str, opportunity_score: float,
                                 positional_need: float, add_trend_percentage: float,
                                 season: int) -> FaabBid:
        """Price a claim using the league's budget and bid history."""
        league = await self._league(league_id)
        player = await self.store.get_player(player_id)
        if player is None:
            raise NotFoundError(f"Player {player_id} not found")

        remaining = league.current_faab if league.current_faab is not None else self.default_budget
        history = await self.historical_bids(league_id, season, player.position.value)
        return calculate_bid(remaining, opportunity_score, positional_need, add_trend_percentage, history)

    async def calculate_opportunity_score(self, player: Player, season: int, current_week: int) -> float:
        """Opportunity in [0, 1] from projection, recent form and availability.

        Projection and recent form are each scaled against 1.5x the position
        average; a player without a ROS projection scores 0.
        """
        projection = await self.stats_service.get_projection(player.id, 0, season)
        if projection is None:
            return 0.0

        position = player.position.value
        reference = POSITION_BASE_POINTS.get(position, 10.0) * 1.5
        projection_score = min(1.0, projection.projected_points / reference)

        recent = await self.stats_service.get_recent_stats(player.id, season, current_week, RECENT_WEEKS)
        if recent:
            recent_average = float(np.mean([week_points(s) for s in recent]))
            performance_score = min(1.0, recent_average / reference)
        else:
            performance_score = 0.5

        factors = [f for f in (STATUS_OPPORTUNITY.get(player.status), SCARCITY_OPPORTUNITY.get(position))
                   if f is not None]
        opportunity_factors = sum(factors) / len(factors) if factors else 0.5

        score = projection_score * 0.4 + performance_score * 0.3 + opportunity_factors * 0.3
        return max(0.0, min(1.0, score))

    async def analyze_positional_needs(self, league_id: str, season: int) -> Dict[str, PositionalNeed]:
        slots = await self.store.get_roster(league_id)
        players = await self.store.get_players(s.player_id for s in slots)
        projections = await self.stats_service.get_players_projections(list(players), 0, season)

        needs = {}
        for position in FANTASY_POSITIONS:
            required = STARTER_REQUIREMENTS.get(position, 0)
            values = sorted(
                (projections[pid].projected_points if pid in projections else 0.0
                 for pid, p in players.items() if p.position.value == position),
                reverse=True,
            )
            starters = values[:required]
            avg_starter_value = sum(starters) / len(starters) if starters else 0.0

            needs[position] = PositionalNeed(
                position=position,
                need_score=need_score(len(values), required, avg_starter_value),
                current_starters=min(len(values), required),
                required_starters=required,
                bench_depth=max(0, len(values) - required),
                avg_starter_value=avg_starter_value,
            )
        return needs

    async def _add_trends(self) -> Dict[str, float]:
        """Add-trend percentages relative to the most-added player."""
        trending = await self.feed.get_trending('add')
        if not trending:
            return {}
        top = max(t.count for t in trending) or 1
        return {t.player_id: 100.0 * t.count / top for t in trending}

    async def identify_waiver_targets(self, league: League, season: int,
                                      current_week: int) -> List[WaiverTarget]:
        """Unrostered Active/Questionable players with opportunity above 0.3."""
        rosters = await self.feed.get_rosters(league.platform_league_id)
        if rosters is None:
            logger.error(f"Could not fetch rosters for league {league.id}")
            return []

        rostered = {pid for roster in rosters for pid in roster.players}
        candidates = await self.store.list_players(
            positions=FANTASY_POSITIONS,
            statuses=[PlayerStatus.ACTIVE, PlayerStatus.QUESTIONABLE],
        )
        trends = await self._add_trends()

        targets = []
        for player in candidates:
            if player.id in rostered:
                continue
            score = await self.calculate_opportunity_score(player, season, current_week)
            if score <= MIN_OPPORTUNITY:
                continue

            projection = await self.stats_service.get_projection(player.id, 0, season)
            recent = await self.stats_service.get_recent_stats(player.id, season, current_week, RECENT_WEEKS)
            targets.append(WaiverTarget(
                player=player,
                opportunity_score=score,
                projected_points=projection.projected_points if projection else 0.0,
                recent_performance=float(np.mean([week_points(s) for s in recent])) if recent else 0.0,
                add_trend_percentage=trends.get(player.id, 0.0),
            ))

        targets.sort(key=lambda t: t.opportunity_score, reverse=True)
        return targets

    async def find_drop_candidate(self, league_id: str, season: int) -> Optional[Dict]:
        """Lowest-projected rostered player."""
        slots = await self.store.get_roster(league_id)
        if not slots:
            return None

        players = await self.store.get_players(s.player_id for s in slots)
        projections = await self.stats_service.get_players_projections(list(players), 0, season)
        values = [
            (projections[pid].projected_points if pid in projections else 0.0, player)
            for pid, player in players.items()
        ]
        if not values:
            return None

        value, player = min(values, key=lambda item: item[0])
        return {'player_id': player.id, 'player_name': player.full_name, 'value': value}

    async def generate_recommendations(self, league_id: str, season: int, week: int,
                                       use_faab: bool = True,
                                       max_recommendations: Optional[int] = None) -> List[WaiverRecommendation]:
        """Rank waiver claims for a league.

        Args:
            league_id: League to analyze
            season: Season
            week: Current week
            use_faab: Price claims in FAAB instead of waiver priority
            max_recommendations: Number of claims returned

        Returns:
            Recommendations ordered by opportunity x confidence
        """
        limit = max_recommendations or self.max_recommendations
        league = await self._league(league_id)
        logger.info(f"Generating waiver recommendations for league {league_id}")

        targets = await self.identify_waiver_targets(league, season, week)
        needs = await self.analyze_positional_needs(league_id, season)
        drop = await self.find_drop_candidate(league_id, season)
        remaining = league.current_faab if league.current_faab is not None else self.default_budget

        recommendations = []
        for target in targets[:limit * 2]:
            position = target.player.position.value
            need = needs[position].need_score if position in needs else 0.5
            would_start = need > 0.7

            bid = None
            priority_rank = 0
            should_claim = False
            if use_faab:
                history = await self.historical_bids(league_id, season, position)
                bid = calculate_bid(remaining, target.opportunity_score, need,
                                    target.add_trend_percentage, history)
            else:
                composite = (target.opportunity_score * 0.5 + need * 0.3
                             + target.projected_points / 20 * 0.2)
                priority_rank = round_half_up(composite * 100)
                should_claim = composite > 0.4

            recommendations.append(WaiverRecommendation(
                league_id=league_id,
                week=week,
                season=season,
                player_id=target.player.id,
                player_name=target.player.full_name,
                position=position,
                team=target.player.team,
                opportunity_score=target.opportunity_score,
                projected_points=target.projected_points,
                recent_performance=target.recent_performance,
                add_trend_percentage=target.add_trend_percentage,
                positional_need=need,
                would_start_immediately=would_start,
                bench_depth_score=target.opportunity_score * (1 - need * 0.3),
                recommended_bid=bid.recommended_bid if bid else None,
                min_bid=bid.min_bid if bid else None,
                max_bid=bid.max_bid if bid else None,
                median_historical_bid=bid.median_historical_bid if bid else None,
                priority_rank=priority_rank,
                should_claim=should_claim,
                suggested_drop_player_id=drop['player_id'] if drop else None,
                suggested_drop_player_name=drop['player_name'] if drop else None,
                drop_player_value=drop['value'] if drop else None,
                reasoning=waiver_reasoning(target, need, would_start, bid.recommended_bid if bid else None),
                confidence=target.opportunity_score * 0.7 + need * 0.3,
                urgency=waiver_urgency(target.opportunity_score, target.add_trend_percentage),
            ))

        recommendations.sort(key=lambda r: r.opportunity_score * r.confidence, reverse=True)
        return recommendations[:limit]

    async def save_recommendations(self, league_id: str, week: int, season: int,
                                   recommendations: List[WaiverRecommendation]) -> List[WaiverRecommendation]:
        """Replace the league's waiver recommendations for the week."""
        ranked = [
            rec.model_copy(update={'priority_rank': rec.priority_rank or i + 1})
            for i, rec in enumerate(recommendations)
        ]
        await self.store.replace_waiver_recommendations(league_id, week, season, ranked)
        return ranked

    async def get_recommendations(self, league_id: str, week: int, season: int) -> List[WaiverRecommendation]:
        return await self.store.list_waiver_recommendations(
            league_id, week, season, RecommendationStatus.PENDING.value)
