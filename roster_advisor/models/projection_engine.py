"""Projection engine: turns recent actuals into forward points estimates."""

import asyncio
import logging
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from pydantic import BaseModel

from ..config.scoring import ScoringSystem, ScoringType
from ..data.records import (
    FANTASY_POSITIONS,
    Player,
    PlayerStatus,
    Projection,
    ProjectionSource,
    SyncResult,
    WeeklyStat,
)
from ..data.stats_service import StatsService, chunked
from ..data.store import Store
from .injury_gate import apply_availability

logger = logging.getLogger(__name__)

# Average weekly points by position, used when history is too thin
POSITION_BASE_POINTS = {
    'QB': 18.5,
    'RB': 12.0,
    'WR': 11.0,
    'TE': 8.5,
    'K': 8.0,
    'DEF': 7.0,
}

# Historical projections ran low against actuals; these correct the bias
BIAS_CORRECTION = {
    'QB': 1.40,
    'RB': 1.28,
    'WR': 1.30,
    'TE': 1.26,
    'K': 1.32,
    'DEF': 1.32,
}
ELITE_BIAS_MULTIPLIER = 1.08

ELITE_THRESHOLDS = {
    'QB': 22.0,
    'RB': 16.0,
    'WR': 15.0,
    'TE': 12.0,
    'K': 10.0,
    'DEF': 10.0,
}

# Most recent week first
RECENCY_WEIGHTS = [0.35, 0.30, 0.20, 0.10, 0.05]
DEFAULT_WEIGHT = 0.05
WEIGHTED_WINDOW = 5

TREND_FLOOR = 0.85
TREND_CEILING = 1.15
ELITE_TREND_CEILING = 1.20

# Coefficient of variation scaling per position
VOLATILITY_ADJUSTMENT = {
    'QB': 0.9,
    'WR': 0.9,
    'RB': 1.1,
    'TE': 1.1,
}
MIN_CONFIDENCE = 0.3
FALLBACK_CONFIDENCE = 0.2
BASIC_CONFIDENCE = 0.5

# Typical weekly stat lines for the basic algorithm
BASIC_STAT_LINES = {
    'QB': {'pass_yd': 250.0, 'pass_td': 1.8, 'pass_int': 0.8, 'rush_yd': 15.0},
    'RB': {'rush_yd': 60.0, 'rush_td': 0.5, 'rec': 2.5, 'rec_yd': 20.0},
    'WR': {'rec': 5.0, 'rec_yd': 65.0, 'rec_td': 0.4},
    'TE': {'rec': 4.0, 'rec_yd': 45.0, 'rec_td': 0.3},
    'K': {'fgm': 1.7, 'xpm': 2.3},
    'DEF': {'sack': 2.5, 'int': 0.8, 'fum_rec': 0.6},
}

_PPR = ScoringSystem.get_scoring_system(ScoringType.PPR)


class ProjectionEstimate(BaseModel):
    """Output of the projection formula for one player history."""
    projected_points: float
    confidence: float
    source: ProjectionSource
    is_elite: bool = False
    trend_multiplier: float = 1.0


def weighted_recent_average(points: List[float]) -> float:
    """Recency-weighted mean of the most recent points (most recent first)."""
    window = points[:WEIGHTED_WINDOW]
    weights = [RECENCY_WEIGHTS[i] if i < len(RECENCY_WEIGHTS) else DEFAULT_WEIGHT
               for i in range(len(window))]
    return float(np.dot(window, weights) / sum(weights))


def is_elite(points: List[float], position: str) -> bool:
    if len(points) < 3:
        return False
    return float(np.mean(points)) >= ELITE_THRESHOLDS.get(position, float('inf'))


def trend_multiplier(points: List[float], elite: bool = False) -> float:
    """Multiplier from the slope of points against week index.

    Index 0 is the most recent week, so a rising player has a negative slope
    and gets a multiplier above 1.
    """
    if len(points) < 2:
        return 1.0

    mean = float(np.mean(points))
    if mean == 0:
        return 1.0

    slope = np.polyfit(np.arange(len(points)), np.asarray(points, dtype=float), 1)[0]
    ceiling = ELITE_TREND_CEILING if elite else TREND_CEILING
    return float(np.clip(1.0 - slope / mean, TREND_FLOOR, ceiling))


def confidence_score(points: List[float], position: str) -> float:
    """1 - position-adjusted coefficient of variation, clamped to [0.3, 1.0]."""
    mean = float(np.mean(points))
    if mean <= 0:
        return MIN_CONFIDENCE

    cv = float(np.std(points)) / mean
    cv *= VOLATILITY_ADJUSTMENT.get(position, 1.0)
    return float(np.clip(1.0 - cv, MIN_CONFIDENCE, 1.0))


def position_average_estimate(position: str, status: PlayerStatus) -> ProjectionEstimate:
    base = POSITION_BASE_POINTS.get(position, 10.0) * BIAS_CORRECTION.get(position, 1.0)
    return ProjectionEstimate(
        projected_points=apply_availability(base, status),
        confidence=FALLBACK_CONFIDENCE,
        source=ProjectionSource.POSITION_AVERAGE,
    )


def estimate_from_history(points: List[float], position: str,
                          status: PlayerStatus = PlayerStatus.ACTIVE) -> ProjectionEstimate:
    """Projection formula for one player.

    Args:
        points: Recent weekly fantasy points, most recent first
        position: Player position
        status: Availability status used for the final discount

    Returns:
        Projected points, confidence and diagnostics
    """
    if len(points) < 2:
        return position_average_estimate(position, status)

    elite = is_elite(points, position)
    trend = trend_multiplier(points, elite)

    projected = weighted_recent_average(points) * trend
    projected *= BIAS_CORRECTION.get(position, 1.0)
    if elite:
        projected *= ELITE_BIAS_MULTIPLIER

    return ProjectionEstimate(
        projected_points=apply_availability(projected, status),
        confidence=confidence_score(points, position),
        source=ProjectionSource.HISTORICAL_ANALYSIS,
        is_elite=elite,
        trend_multiplier=trend,
    )


def week_points(stat: WeeklyStat) -> float:
    """PPR points for a week, computed from the raw stats when not precomputed."""
    if stat.ppr_points is not None:
        return stat.ppr_points
    return _PPR.calculate_fantasy_points(stat.stats)


class ProjectionEngine:
    """Generates projections from stored weekly actuals."""

    def __init__(self, store: Store, stats_service: StatsService,
                 lookback: int = 6, chunk_size: int = 50):
        """Initialize the projection engine.

        Args:
            store: Store for player lookups
            stats_service: Adapter for stats and projection persistence
            lookback: Number of prior weeks considered
            chunk_size: Players projected concurrently per chunk in bulk runs
        """
        self.store = store
        self.stats_service = stats_service
        self.lookback = lookback
        self.chunk_size = chunk_size

    async def generate_projection_from_history(self, player_id: str, season: int, week: int,
                                               lookback: Optional[int] = None) -> Optional[Projection]:
        """Project a player's points for a week from their recent actuals.

        Returns:
            Projection record, or None when the player is unknown
        """
        player = await self.store.get_player(player_id)
        if player is None:
            logger.warning(f"Player {player_id} not found")
            return None

        recent = await self.stats_service.get_recent_stats(player_id, season, week, lookback or self.lookback)
        return self._build_projection(player, recent, week, season)

    def _build_projection(self, player: Player, recent: List[WeeklyStat], week: int,
                          season: int) -> Projection:
        points = [week_points(stat) for stat in recent]
        position = player.position.value
        estimate = estimate_from_history(points, position, player.status)

        return Projection(
            player_id=player.id,
            week=week,
            season=season,
            projected_points=estimate.projected_points,
            stats=self._stat_breakdown(recent) if len(points) >= 2 else {},
            confidence=estimate.confidence,
            source=estimate.source,
        )

    @staticmethod
    def _stat_breakdown(recent: List[WeeklyStat]) -> Dict[str, float]:
        frame = pd.DataFrame([stat.stats for stat in recent])
        frame = frame.drop(columns=[c for c in frame.columns if c.startswith('pts_')])
        means = frame.fillna(0).mean(numeric_only=True)
        return {name: round(float(value), 2) for name, value in means.items() if value}

    def basic_projection(self, player: Player, week: int, season: int) -> Projection:
        """Position-average projection with a typical stat line."""
        position = player.position.value
        return Projection(
            player_id=player.id,
            week=week,
            season=season,
            projected_points=apply_availability(POSITION_BASE_POINTS.get(position, 10.0), player.status),
            stats=dict(BASIC_STAT_LINES.get(position, {})),
            confidence=BASIC_CONFIDENCE,
            source=ProjectionSource.BASIC_ALGORITHM,
        )

    async def generate_ros_projection(self, player_id: str, season: int,
                                      current_week: int) -> Optional[Projection]:
        """Rest-of-season projection, stored at week 0 in per-game points."""
        projection = await self.generate_projection_from_history(player_id, season, current_week)
        if projection is None:
            return None
        return projection.model_copy(update={'week': 0})

    async def sync_week_projections(self, week: int, season: int,
                                    positions: Optional[List[str]] = None,
                                    basic: bool = False) -> SyncResult:
        """Project and persist every fantasy-position player for a week.

        Args:
            week: Target week; 0 builds rest-of-season projections
            season: Target season
            positions: Positions to include (default: all fantasy positions)
            basic: Use the basic algorithm instead of history

        Returns:
            Batch result with per-player errors
        """
        players = await self.store.list_players(positions=positions or FANTASY_POSITIONS)
        result = SyncResult(total=len(players))
        logger.info(f"Generating projections for {len(players)} players, {season} week {week}")

        for chunk in chunked(players, self.chunk_size):
            outcomes = await asyncio.gather(*(self._project_and_save(p, week, season, basic) for p in chunk),
                                            return_exceptions=True)
            for player, outcome in zip(chunk, outcomes):
                if isinstance(outcome, Exception):
                    logger.error(f"Error projecting player {player.id}: {outcome}")
                    result.errors.append(f"{player.id}: {outcome}")
                elif outcome:
                    result.created += 1
                else:
                    result.updated += 1

        result.success = result.created + result.updated > 0 or not result.errors
        logger.info(f"Projection sync week {week}: created={result.created}, updated={result.updated}, "
                    f"errors={len(result.errors)}")
        return result

    async def _project_and_save(self, player: Player, week: int, season: int, basic: bool) -> bool:
        if basic:
            projection = self.basic_projection(player, week, season)
        else:
            # Rest-of-season projections look back from the upcoming week
            target_week = week if week > 0 else await self._latest_completed_week(player.id, season) + 1
            recent = await self.stats_service.get_recent_stats(player.id, season, target_week, self.lookback)
            projection = self._build_projection(player, recent, week, season)
        return await self.stats_service.save_projection(projection)

    async def _latest_completed_week(self, player_id: str, season: int) -> int:
        recent = await self.stats_service.get_recent_stats(player_id, season, 99, 1)
        return recent[0].week if recent else 0

    async def weekly_projections_frame(self, week: int, season: int,
                                       positions: Optional[List[str]] = None) -> pd.DataFrame:
        """Stored projections for a week as a DataFrame sorted by points."""
        projections = await self.stats_service.get_week_projections(week, season)
        players = await self.store.get_players(p.player_id for p in projections)

        rows = []
        for projection in projections:
            player = players.get(projection.player_id)
            if player is None or (positions and player.position.value not in positions):
                continue
            rows.append({
                'player_id': player.id,
                'player_name': player.full_name,
                'position': player.position.value,
                'team': player.team or '',
                'status': player.status.value,
                'projected_points': round(projection.projected_points, 2),
                'confidence': round(projection.confidence, 2),
                'source': projection.source.value,
                'week': week,
                'season': season,
            })

        if not rows:
            return pd.DataFrame()
        return pd.DataFrame(rows).sort_values('projected_points', ascending=False).reset_index(drop=True)
