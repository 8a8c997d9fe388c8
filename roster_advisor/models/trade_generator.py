"""Trade package generation, scoring and ranking."""

import logging
from itertools import combinations
from typing import List, Optional, Sequence

from pydantic import BaseModel

from ..data.records import (
    League,
    OpponentProfile,
    PlayerValue,
    RecommendationStatus,
    TradeRecommendation,
    utc_now,
)
from ..data.store import Store
from ..errors import InvalidRequestError, NotFoundError
from .opponent_learning import OpponentLearner, TradeOutcome
from .valuation import ValuationEngine

logger = logging.getLogger(__name__)

FAIR_VALUE_RATIO = 0.8
MIN_FAIRNESS = 0.6
MIN_ACCEPTANCE = 0.25
FAIRNESS_WEIGHT = 1.5
PREFERENCE_WEIGHT = 0.2
RISK_PENALTY = 0.1
RISK_THRESHOLD = 0.3
STYLE_BONUS = 0.1

# Rosters are truncated to their most valuable players beyond this size
MAX_ROSTER_SIZE = 25
MAX_PLAYERS_PER_SIDE = 3


class TradePackage(BaseModel):
    """A scored trade candidate, before persistence."""
    trade_type: str
    my_players: List[PlayerValue]
    target_players: List[PlayerValue]
    target_team_id: str
    target_team_name: str = ""
    fairness_score: float
    acceptance_probability: float
    my_value_gain: float
    target_value_gain: float
    reasoning: str
    confidence: float

    @property
    def ranking_score(self) -> float:
        return self.acceptance_probability * self.fairness_score * self.my_value_gain


def side_value(players: Sequence[PlayerValue]) -> float:
    return sum(p.projected_value for p in players)


def fairness_score(side_a: Sequence[PlayerValue], side_b: Sequence[PlayerValue]) -> float:
    """Fairness of a trade in [0, 1]; 1.0 once the value ratio reaches 0.8."""
    value_a, value_b = side_value(side_a), side_value(side_b)
    if value_a <= 0 or value_b <= 0:
        return 0.0
    ratio = min(value_a, value_b) / max(value_a, value_b)
    return min(1.0, ratio / FAIR_VALUE_RATIO)


def acceptance_probability(profile: OpponentProfile, my_players: Sequence[PlayerValue],
                           target_players: Sequence[PlayerValue], fairness: float) -> float:
    """Predicted chance the opponent accepts.

    Args:
        profile: Opponent's learned profile
        my_players: Players the opponent would receive
        target_players: Players the opponent would give up
        fairness: Fairness score of the trade

    Returns:
        Probability clamped to [0, 1]
    """
    probability = profile.acceptance_rate * (fairness * FAIRNESS_WEIGHT)

    for player in my_players:
        preference = profile.position_preference(player.position)
        if preference is not None:
            probability += (preference - 0.5) * PREFERENCE_WEIGHT

    if my_players:
        average_risk = sum(p.injury_risk for p in my_players) / len(my_players)
        if average_risk > RISK_THRESHOLD and profile.values_safety:
            probability -= RISK_PENALTY

    if profile.prefers_stars and len(target_players) > len(my_players):
        probability += STYLE_BONUS
    if profile.prefers_depth and len(my_players) > len(target_players):
        probability += STYLE_BONUS

    return max(0.0, min(1.0, probability))


def trade_reasoning(my_players: Sequence[PlayerValue], target_players: Sequence[PlayerValue],
                    my_value_gain: float, fairness: float) -> str:
    parts = []

    sell_high = [p.player_name for p in my_players if p.is_sell_high]
    if sell_high:
        parts.append(f"Sell high on {', '.join(sell_high)} who are performing above expectations.")

    buy_low = [p.player_name for p in target_players if p.is_buy_low]
    if buy_low:
        parts.append(f"Buy low on {', '.join(buy_low)} who are undervalued.")

    if my_value_gain > 0:
        parts.append(f"This trade gains you {my_value_gain:.1f} projected points.")

    if fairness > 0.8:
        parts.append("Very fair value exchange.")
    elif fairness > MIN_FAIRNESS:
        parts.append("Reasonably fair trade.")

    return " ".join(parts)


def score_package(trade_type: str, my_players: Sequence[PlayerValue],
                  target_players: Sequence[PlayerValue], profile: OpponentProfile) -> TradePackage:
    fairness = fairness_score(my_players, target_players)
    acceptance = acceptance_probability(profile, my_players, target_players, fairness)
    my_value_gain = side_value(target_players) - side_value(my_players)

    return TradePackage(
        trade_type=trade_type,
        my_players=list(my_players),
        target_players=list(target_players),
        target_team_id=profile.opponent_team_id,
        target_team_name=profile.opponent_team_name or "",
        fairness_score=fairness,
        acceptance_probability=acceptance,
        my_value_gain=my_value_gain,
        target_value_gain=-my_value_gain,
        reasoning=trade_reasoning(my_players, target_players, my_value_gain, fairness),
        confidence=fairness * acceptance,
    )


def is_viable(package: TradePackage) -> bool:
    return package.fairness_score > MIN_FAIRNESS and package.acceptance_probability > MIN_ACCEPTANCE


def viable_package(trade_type: str, my_players: Sequence[PlayerValue],
                   target_players: Sequence[PlayerValue],
                   profile: OpponentProfile) -> Optional[TradePackage]:
    """Scored package, or None when it fails the fairness or acceptance cut."""
    fairness = fairness_score(my_players, target_players)
    if fairness <= MIN_FAIRNESS:
        return None
    if acceptance_probability(profile, my_players, target_players, fairness) <= MIN_ACCEPTANCE:
        return None
    return score_package(trade_type, my_players, target_players, profile)


def _bounded(roster: List[PlayerValue]) -> List[PlayerValue]:
    if len(roster) <= MAX_ROSTER_SIZE:
        return roster
    logger.warning(f"Roster of {len(roster)} players truncated to {MAX_ROSTER_SIZE}")
    return sorted(roster, key=lambda p: p.projected_value, reverse=True)[:MAX_ROSTER_SIZE]


def candidate_packages(my_roster: List[PlayerValue], their_roster: List[PlayerValue],
                       profile: OpponentProfile) -> List[TradePackage]:
    """Viable 1-for-1, 2-for-1 and 2-for-2 candidates against one opponent.

    Each candidate includes at least one of the user's sell-high players or
    one of the opponent's buy-low players.
    """
    my_roster = _bounded(my_roster)
    their_roster = _bounded(their_roster)
    sell_high = [p for p in my_roster if p.is_sell_high]
    buy_low = [p for p in their_roster if p.is_buy_low]
    if not sell_high and not buy_low:
        return []

    def anchored(mine, theirs) -> bool:
        return any(p.is_sell_high for p in mine) or any(p.is_buy_low for p in theirs)

    candidates = []

    for mine in sell_high:
        for theirs in buy_low:
            candidates.append(viable_package('1-for-1', [mine], [theirs], profile))

    my_pairs = list(combinations(my_roster, 2))
    for pair in my_pairs:
        for theirs in their_roster:
            if anchored(pair, [theirs]):
                candidates.append(viable_package('2-for-1', list(pair), [theirs], profile))

    their_pairs = list(combinations(their_roster, 2))
    for pair in my_pairs:
        for other in their_pairs:
            if anchored(pair, other):
                candidates.append(viable_package('2-for-2', list(pair), list(other), profile))

    return [p for p in candidates if p is not None]


def rank_packages(packages: List[TradePackage], limit: int) -> List[TradePackage]:
    viable = [p for p in packages if is_viable(p)]
    viable.sort(key=lambda p: p.ranking_score, reverse=True)
    return viable[:limit]


class TradeGenerator:
    """Builds, ranks and persists trade recommendations for a league."""

    def __init__(self, store: Store, valuation: ValuationEngine, learner: OpponentLearner,
                 max_packages: int = 10):
        """Initialize the generator.

        Args:
            store: Store for leagues and recommendations
            valuation: Valuation engine for both sides of every trade
            learner: Opponent profile source
            max_packages: Number of recommendations kept per run
        """
        self.store = store
        self.valuation = valuation
        self.learner = learner
        self.max_packages = max_packages

    async def _league(self, league_id: str) -> League:
        league = await self.store.get_league(league_id)
        if league is None:
            raise NotFoundError(f"League {league_id} not found")
        if not league.platform_team_id:
            raise NotFoundError(f"League {league_id} has no team for the user")
        return league

    async def generate_trade_packages(self, league_id: str, season: int, week: int,
                                      max_packages: Optional[int] = None) -> List[TradePackage]:
        """Score every candidate against every opponent and keep the best.

        Returns:
            Top packages by acceptance x fairness x value gained
        """
        league = await self._league(league_id)
        league_values = await self.valuation.get_league_values(league, season, week)

        my_roster = league_values.pop(league.platform_team_id, None)
        if my_roster is None:
            my_roster = await self.valuation.get_roster_values(league, season, week)

        packages: List[TradePackage] = []
        for team_id, their_roster in league_values.items():
            profile = await self.learner.get_or_create_profile(league_id, team_id)
            packages.extend(candidate_packages(my_roster, their_roster, profile))

        ranked = rank_packages(packages, max_packages or self.max_packages)
        logger.info(f"League {league_id}: {len(packages)} candidates, {len(ranked)} recommended")
        return ranked

    async def generate_and_save(self, league_id: str, season: int, week: int,
                                max_packages: Optional[int] = None) -> List[TradeRecommendation]:
        packages = await self.generate_trade_packages(league_id, season, week, max_packages)
        return await self.save_recommendations(league_id, week, season, packages)

    async def save_recommendations(self, league_id: str, week: int, season: int,
                                   packages: List[TradePackage]) -> List[TradeRecommendation]:
        """Replace the league's recommendations for the week with ``packages``."""
        recommendations = [
            TradeRecommendation(
                league_id=league_id,
                week=week,
                season=season,
                priority=len(packages) - i,
                **package.model_dump(),
            )
            for i, package in enumerate(packages)
        ]
        await self.store.replace_trade_recommendations(league_id, week, season, recommendations)
        return recommendations

    async def get_recommendations(self, league_id: str, week: int, season: int,
                                  status: Optional[str] = RecommendationStatus.PENDING.value
                                  ) -> List[TradeRecommendation]:
        return await self.store.list_trade_recommendations(league_id, week, season, status)

    async def evaluate_custom_trade(self, league_id: str, my_player_ids: List[str],
                                    target_player_ids: List[str], target_team_id: str,
                                    season: int, week: int) -> TradePackage:
        """Score a user-specified trade against one opponent."""
        for side, ids in (("my_player_ids", my_player_ids), ("target_player_ids", target_player_ids)):
            if not 1 <= len(ids) <= MAX_PLAYERS_PER_SIDE:
                raise InvalidRequestError(f"{side} must name 1 to {MAX_PLAYERS_PER_SIDE} players")

        await self._league(league_id)
        my_players = await self.valuation.get_players_values(my_player_ids, league_id, season, week)
        target_players = await self.valuation.get_players_values(target_player_ids, league_id, season, week)
        if len(my_players) != len(my_player_ids) or len(target_players) != len(target_player_ids):
            raise NotFoundError("One or more players have no valuation")

        profile = await self.learner.get_or_create_profile(league_id, target_team_id)
        trade_type = f"{len(my_players)}-for-{len(target_players)}"
        return score_package(trade_type, my_players, target_players, profile)

    async def track_response(self, recommendation_id: str,
                             status: RecommendationStatus) -> TradeRecommendation:
        """Record the user's response to a recommendation.

        Accepted and rejected responses feed the opponent's profile.
        """
        recommendation = await self.store.get_trade_recommendation(recommendation_id)
        if recommendation is None:
            raise NotFoundError(f"Trade recommendation {recommendation_id} not found")

        recommendation = recommendation.model_copy(update={'status': status, 'responded_at': utc_now()})
        await self.store.save_trade_recommendation(recommendation)

        if status in (RecommendationStatus.ACCEPTED, RecommendationStatus.REJECTED):
            await self.learner.record_trade_outcome(
                recommendation.league_id,
                recommendation.target_team_id,
                TradeOutcome(
                    positions_gained=[p.position for p in recommendation.my_players],
                    positions_lost=[p.position for p in recommendation.target_players],
                    accepted=status == RecommendationStatus.ACCEPTED,
                ),
            )
        return recommendation
