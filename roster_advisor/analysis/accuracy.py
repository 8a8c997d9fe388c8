"""Projection accuracy against actual PPR points."""

import logging
from typing import Dict, Iterable, Optional

import numpy as np
import pandas as pd

from ..data.records import ProjectionSource
from ..data.store import Store
from ..models.projection_engine import week_points
from ..utils.nfl import REGULAR_SEASON_WEEKS

logger = logging.getLogger(__name__)

METRIC_COLUMNS = ['projections', 'mae', 'rmse', 'bias', 'within_5', 'within_10']


async def matched_projections(store: Store, season: int, weeks: Optional[Iterable[int]] = None,
                              position: Optional[str] = None) -> pd.DataFrame:
    """History-based projections joined with the actual points for the same week."""
    weeks = list(weeks or range(1, REGULAR_SEASON_WEEKS + 1))
    projections = await store.list_projections_for_weeks(
        season, weeks, source=ProjectionSource.HISTORICAL_ANALYSIS)
    player_ids = {p.player_id for p in projections}
    stats = await store.list_weekly_stats(season, weeks, player_ids)
    players = await store.get_players(player_ids)

    projected = pd.DataFrame(
        [{'player_id': p.player_id, 'week': p.week, 'projected': p.projected_points} for p in projections],
        columns=['player_id', 'week', 'projected'],
    )
    actual = pd.DataFrame(
        [{'player_id': s.player_id, 'week': s.week, 'actual': week_points(s)} for s in stats],
        columns=['player_id', 'week', 'actual'],
    )
    frame = projected.merge(actual, on=['player_id', 'week'], how='inner')
    frame['position'] = frame['player_id'].map(
        lambda pid: players[pid].position.value if pid in players else None)
    frame['player_name'] = frame['player_id'].map(
        lambda pid: players[pid].full_name if pid in players else pid)

    frame['error'] = frame['projected'] - frame['actual']
    if position:
        frame = frame[frame['position'] == position]
    return frame.reset_index(drop=True)


def summarize(frame: pd.DataFrame) -> Dict[str, float]:
    """MAE, RMSE, mean bias (projected - actual) and hit rates within 5 and 10 points."""
    if frame.empty:
        return {name: 0.0 for name in METRIC_COLUMNS}

    errors = frame['error'].to_numpy(dtype=float)
    abs_errors = np.abs(errors)
    return {
        'projections': float(len(errors)),
        'mae': float(abs_errors.mean()),
        'rmse': float(np.sqrt((errors ** 2).mean())),
        'bias': float(errors.mean()),
        'within_5': float((abs_errors <= 5).mean() * 100),
        'within_10': float((abs_errors <= 10).mean() * 100),
    }


def _grouped(frame: pd.DataFrame, column: str) -> pd.DataFrame:
    if frame.empty:
        return pd.DataFrame(columns=[column] + METRIC_COLUMNS)
    rows = [{column: key, **summarize(group)} for key, group in frame.groupby(column)]
    return pd.DataFrame(rows, columns=[column] + METRIC_COLUMNS).round(2)


async def accuracy_report(store: Store, season: int, weeks: Optional[Iterable[int]] = None,
                          position: Optional[str] = None) -> Dict:
    """Accuracy of stored projections for a season.

    Returns:
        Dict with the overall summary and per-position / per-week DataFrames
    """
    frame = await matched_projections(store, season, weeks, position)
    logger.info(f"Evaluating {len(frame)} projections for season {season}")
    return {
        'season': season,
        'overall': summarize(frame),
        'by_position': _grouped(frame, 'position'),
        'by_week': _grouped(frame, 'week'),
    }
