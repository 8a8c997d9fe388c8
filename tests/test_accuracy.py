"""Tests for the projection accuracy report."""

import asyncio
import math

import pytest

from roster_advisor.analysis.accuracy import accuracy_report, matched_projections, summarize
from roster_advisor.data.records import ProjectionSource

from conftest import SEASON, make_player, make_projection, make_stat


@pytest.fixture
def seeded(store):
    """Two matched projections, one without actuals and one basic projection."""
    async def seed():
        await store.upsert_player(make_player('wr', 'WR', name='Receiver'))
        await store.upsert_player(make_player('qb', 'QB', name='Passer'))
        await store.upsert_player(make_player('rb', 'RB'))
        await store.upsert_projection(make_projection('wr', 1, 10.0))
        await store.upsert_projection(make_projection('qb', 2, 20.0))
        await store.upsert_projection(make_projection('rb', 1, 12.0))
        await store.upsert_projection(make_projection('rb', 2, 9.0, source=ProjectionSource.BASIC_ALGORITHM))
        await store.upsert_weekly_stat(make_stat('wr', 1, 12.0))
        await store.upsert_weekly_stat(make_stat('qb', 2, 26.0))
        await store.upsert_weekly_stat(make_stat('rb', 2, 15.0))

    asyncio.run(seed())
    return store


class TestMatchedProjections:
    """Test joining projections to actual points."""

    def test_only_matched_history_projections(self, seeded):
        frame = asyncio.run(matched_projections(seeded, SEASON))
        assert sorted(frame['player_id']) == ['qb', 'wr']
        row = frame[frame['player_id'] == 'wr'].iloc[0]
        assert row['error'] == -2.0
        assert row['position'] == 'WR'
        assert row['player_name'] == 'Receiver'

    def test_position_filter(self, seeded):
        frame = asyncio.run(matched_projections(seeded, SEASON, position='QB'))
        assert list(frame['player_id']) == ['qb']

    def test_week_filter(self, seeded):
        frame = asyncio.run(matched_projections(seeded, SEASON, weeks=[2]))
        assert list(frame['player_id']) == ['qb']


class TestSummarize:

    def test_empty(self, store):
        frame = asyncio.run(matched_projections(store, SEASON))
        assert summarize(frame) == {'projections': 0.0, 'mae': 0.0, 'rmse': 0.0, 'bias': 0.0,
                                    'within_5': 0.0, 'within_10': 0.0}


class TestAccuracyReport:
    """Test the full report."""

    def test_overall(self, seeded):
        """Test errors of -2 and -6 points."""
        report = asyncio.run(accuracy_report(seeded, SEASON))
        overall = report['overall']

        assert report['season'] == SEASON
        assert overall['projections'] == 2
        assert overall['mae'] == pytest.approx(4.0)
        assert overall['rmse'] == pytest.approx(math.sqrt(20))
        assert overall['bias'] == pytest.approx(-4.0)
        assert overall['within_5'] == pytest.approx(50.0)
        assert overall['within_10'] == pytest.approx(100.0)

    def test_grouped_frames(self, seeded):
        report = asyncio.run(accuracy_report(seeded, SEASON))

        by_position = report['by_position'].set_index('position')
        assert list(by_position.index) == ['QB', 'WR']
        assert by_position.loc['QB', 'mae'] == 6.0
        assert by_position.loc['WR', 'bias'] == -2.0

        by_week = report['by_week'].set_index('week')
        assert list(by_week.index) == [1, 2]
        assert by_week.loc[2, 'projections'] == 1

    def test_empty_report(self, store):
        report = asyncio.run(accuracy_report(store, SEASON, weeks=[1]))
        assert report['overall']['projections'] == 0
        assert report['by_position'].empty
        assert report['by_week'].empty
