"""Player valuation: projection vs. recent performance, relative to peers."""

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from pydantic import ValidationError

from ..config.scoring import detect_scoring_type, points_for_week
from ..data.cache import CacheKeys, CacheService, TTL_VALUATION
from ..data.records import League, Player, PlayerValue, TrendLabel
from ..data.sleeper_client import SleeperClient
from ..data.stats_service import StatsService
from ..data.store import Store, projection_rank
from .injury_gate import injury_risk

logger = logging.getLogger(__name__)

MIN_MATCHED_WEEKS = 2
MIN_PEERS = 10

# Reference distribution of performance ratios when peers are scarce
CANONICAL_RATIO_MEAN = 1.0
CANONICAL_RATIO_STDEV = 0.15

TREND_UP_RATIO = 1.1
TREND_DOWN_RATIO = 0.9
SELL_HIGH_RATIO = 1.15
SELL_HIGH_Z = 0.5
BUY_LOW_UNDERPERFORMANCE = 0.2
BUY_LOW_MAX_RISK = 0.3


def performance_ratio(actual: List[float], projected: List[float]) -> Optional[float]:
    """Average actual over average projected for matched weeks.

    Returns:
        The ratio, or None with fewer than two matched weeks or no projection
    """
    if len(actual) < MIN_MATCHED_WEEKS or len(actual) != len(projected):
        return None
    mean_projected = float(np.mean(projected))
    if mean_projected <= 0:
        return None
    return float(np.mean(actual)) / mean_projected


def z_score(ratio: float, peer_ratios: List[float]) -> float:
    """Z-score of a ratio against peers, or the canonical distribution."""
    if len(peer_ratios) >= MIN_PEERS:
        mean = float(np.mean(peer_ratios))
        stdev = float(np.std(peer_ratios, ddof=1))
        if stdev > 0:
            return (ratio - mean) / stdev
    return (ratio - CANONICAL_RATIO_MEAN) / CANONICAL_RATIO_STDEV


def trend_label(ratio: float) -> TrendLabel:
    if ratio > TREND_UP_RATIO:
        return TrendLabel.UP
    if ratio < TREND_DOWN_RATIO:
        return TrendLabel.DOWN
    return TrendLabel.STABLE


def classify(ratio: float, z: float, risk: float) -> Tuple[bool, bool]:
    """Sell-high and buy-low flags for a ratio/z/risk triple."""
    is_sell_high = ratio > SELL_HIGH_RATIO and z > SELL_HIGH_Z
    is_buy_low = (1 - ratio) > BUY_LOW_UNDERPERFORMANCE and risk < BUY_LOW_MAX_RISK
    return is_sell_high, is_buy_low


class ValuationEngine:
    """Computes player values for trade and waiver decisions."""

    def __init__(self, store: Store, stats_service: StatsService, cache: CacheService,
                 feed: Optional[SleeperClient] = None, lookback: int = 4):
        """Initialize the valuation engine.

        Args:
            store: Store for players, leagues, stats and projections
            stats_service: Adapter for projection reads
            cache: Cache for computed valuations
            feed: Feed used to read every roster in a league
            lookback: Weeks in the performance window
        """
        self.store = store
        self.stats_service = stats_service
        self.cache = cache
        self.feed = feed
        self.lookback = lookback

    def _window(self, current_week: int) -> List[int]:
        return list(range(max(1, current_week - self.lookback), current_week))

    async def _ratio_frame(self, player_ids: List[str], season: int, current_week: int,
                           scoring_settings: Optional[Dict[str, float]]) -> pd.DataFrame:
        """Matched (actual, projected) points per player and week."""
        weeks = self._window(current_week)
        if not weeks:
            return pd.DataFrame(columns=['player_id', 'week', 'actual', 'projected'])

        stats = await self.store.list_weekly_stats(season, weeks, player_ids)
        projections = await self.store.list_projections_for_weeks(season, weeks, player_ids)

        actual = pd.DataFrame(
            [{'player_id': s.player_id, 'week': s.week, 'actual': points_for_week(s, scoring_settings)}
             for s in stats],
            columns=['player_id', 'week', 'actual'],
        )
        # One projection per player-week, the latest recomputation
        latest = {}
        for p in sorted(projections, key=projection_rank):
            latest[(p.player_id, p.week)] = p
        projected = pd.DataFrame(
            [{'player_id': p.player_id, 'week': p.week, 'projected': p.projected_points}
             for p in latest.values()],
            columns=['player_id', 'week', 'projected'],
        )
        return actual.merge(projected, on=['player_id', 'week'], how='inner')

    async def get_performance_ratio(self, player_id: str, season: int, current_week: int,
                                    scoring_settings: Optional[Dict[str, float]] = None) -> Optional[float]:
        frame = await self._ratio_frame([player_id], season, current_week, scoring_settings)
        return performance_ratio(frame['actual'].tolist(), frame['projected'].tolist())

    async def get_peer_ratios(self, position: str, season: int, current_week: int,
                              scoring_settings: Optional[Dict[str, float]] = None,
                              memo: Optional[Dict[Tuple, List[float]]] = None) -> List[float]:
        """Performance ratios of every player at a position with enough matched weeks.

        Args:
            memo: Ratios already computed in the current valuation run; without
                one the ratios are always read fresh from the store
        """
        key = (position, season, current_week, detect_scoring_type(scoring_settings).value,
               tuple(sorted((scoring_settings or {}).items())))
        if memo is not None and key in memo:
            return memo[key]

        peers = await self.store.list_players(positions=[position])
        frame = await self._ratio_frame([p.id for p in peers], season, current_week, scoring_settings)

        ratios = []
        for _, group in frame.groupby('player_id'):
            ratio = performance_ratio(group['actual'].tolist(), group['projected'].tolist())
            if ratio is not None:
                ratios.append(ratio)

        if memo is not None:
            memo[key] = ratios
        logger.debug(f"{len(ratios)} peer ratios for {position}, {season} week {current_week}")
        return ratios

    async def calculate_player_value(self, player_id: str, league_id: Optional[str], season: int,
                                     current_week: int,
                                     peer_memo: Optional[Dict[Tuple, List[float]]] = None
                                     ) -> Optional[PlayerValue]:
        """Value one player in a league's scoring.

        Args:
            peer_memo: Peer ratios shared by the players of one valuation run

        Returns:
            Valuation, or None when the player or their ROS projection is missing
        """
        cache_key = CacheKeys.valuation(league_id or 'default', player_id, current_week, season)
        cached = await self.cache.get(cache_key)
        if cached is not None:
            try:
                return PlayerValue.model_validate(cached)
            except ValidationError as e:
                logger.warning(f"Discarding malformed cached valuation {cache_key}: {e}")

        player = await self.store.get_player(player_id)
        if player is None:
            return None

        ros = await self.stats_service.get_projection(player_id, 0, season)
        if ros is None:
            logger.debug(f"No ROS projection for {player_id}, skipping valuation")
            return None

        league = await self.store.get_league(league_id) if league_id else None
        scoring_settings = league.scoring_settings if league and league.scoring_settings else None

        value = await self._value(player, ros.projected_points, season, current_week, scoring_settings, peer_memo)
        await self.cache.set(cache_key, value.model_dump(mode='json'), TTL_VALUATION)
        return value

    async def _value(self, player: Player, ros_points: float, season: int, current_week: int,
                     scoring_settings: Optional[Dict[str, float]],
                     peer_memo: Optional[Dict[Tuple, List[float]]] = None) -> PlayerValue:
        ratio = await self.get_performance_ratio(player.id, season, current_week, scoring_settings)
        if ratio is None:
            ratio, z = 1.0, 0.0
        else:
            peers = await self.get_peer_ratios(player.position.value, season, current_week, scoring_settings,
                                               memo=peer_memo)
            z = z_score(ratio, peers)

        risk = injury_risk(player.status)
        is_sell_high, is_buy_low = classify(ratio, z, risk)

        return PlayerValue(
            player_id=player.id,
            player_name=player.full_name,
            position=player.position.value,
            team=player.team,
            current_value=ros_points * ratio,
            projected_value=ros_points,
            performance_ratio=ratio,
            z_score=z,
            trend=trend_label(ratio),
            injury_risk=risk,
            is_sell_high=is_sell_high,
            is_buy_low=is_buy_low,
        )

    async def get_players_values(self, player_ids: List[str], league_id: Optional[str], season: int,
                                 current_week: int,
                                 peer_memo: Optional[Dict[Tuple, List[float]]] = None) -> List[PlayerValue]:
        """Values for several players; players without a valuation are left out.

        Peer ratios are computed once per call and shared by every player in it.
        """
        peer_memo = {} if peer_memo is None else peer_memo
        values = []
        for player_id in player_ids:
            value = await self.calculate_player_value(player_id, league_id, season, current_week, peer_memo)
            if value is not None:
                values.append(value)
        return values

    async def get_roster_values(self, league: League, season: int, current_week: int) -> List[PlayerValue]:
        """Values for the user's stored roster."""
        slots = await self.store.get_roster(league.id)
        return await self.get_players_values([s.player_id for s in slots], league.id, season, current_week)

    async def get_league_values(self, league: League, season: int,
                                current_week: int) -> Dict[str, List[PlayerValue]]:
        """Values for every roster in the league, keyed by roster owner id.

        An unavailable feed yields an empty mapping.
        """
        if self.feed is None:
            return {}

        rosters = await self.feed.get_rosters(league.platform_league_id)
        if rosters is None:
            logger.error(f"Could not fetch rosters for league {league.id}")
            return {}

        values = {}
        peer_memo: Dict[Tuple, List[float]] = {}
        for roster in rosters:
            if not roster.owner_id:
                continue
            values[roster.owner_id] = await self.get_players_values(
                roster.players, league.id, season, current_week, peer_memo)
        return values
