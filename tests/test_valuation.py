"""Tests for player valuation."""

import asyncio
import random
import statistics
from unittest.mock import AsyncMock, patch

import pytest

from roster_advisor.data.cache import CacheKeys
from roster_advisor.data.records import PlayerStatus, TrendLabel
from roster_advisor.data.sleeper_client import SleeperRoster
from roster_advisor.models.valuation import (
    ValuationEngine,
    classify,
    performance_ratio,
    trend_label,
    z_score,
)

from conftest import SEASON, make_player, make_projection, make_stat


async def seed_history(store, player_id, actual, projected, weeks=range(1, 5), ros=15.0):
    for week in weeks:
        await store.upsert_weekly_stat(make_stat(player_id, week, actual))
        await store.upsert_projection(make_projection(player_id, week, projected))
    await store.upsert_projection(make_projection(player_id, 0, ros))


class TestValuationMath:
    """Test the pure valuation helpers."""

    def test_performance_ratio(self):
        """Test the ratio of means over matched weeks."""
        assert performance_ratio([20.0, 10.0], [10.0, 10.0]) == pytest.approx(1.5)
        assert performance_ratio([20.0], [10.0]) is None
        assert performance_ratio([20.0, 10.0], [0.0, 0.0]) is None

    def test_z_score_against_peers(self):
        """Test the sample standard deviation is used with enough peers."""
        peers = [0.7, 0.8, 0.9, 0.95, 1.0, 1.0, 1.05, 1.1, 1.2, 1.3]
        expected = (1.4 - statistics.mean(peers)) / statistics.stdev(peers)
        assert z_score(1.4, peers) == pytest.approx(expected)

    def test_z_score_canonical_fallback(self):
        """Test too few peers or no spread falls back to the canonical distribution."""
        assert z_score(1.3, [1.0, 1.2]) == pytest.approx(2.0)
        assert z_score(1.3, [1.0] * 12) == pytest.approx(2.0)

    def test_trend_label(self):
        """Test trend thresholds are exclusive."""
        assert trend_label(1.11) == TrendLabel.UP
        assert trend_label(1.1) == TrendLabel.STABLE
        assert trend_label(0.9) == TrendLabel.STABLE
        assert trend_label(0.89) == TrendLabel.DOWN

    @pytest.mark.parametrize('ratio, z, risk, expected', [
        (1.3, 1.0, 0.0, (True, False)),
        (1.3, 0.4, 0.0, (False, False)),
        (0.7, -2.0, 0.0, (False, True)),
        (0.7, -2.0, 0.3, (False, False)),
        (1.0, 0.0, 0.0, (False, False)),
        # Thresholds are strict
        (1.15, 2.0, 0.0, (False, False)),
        (1.16, 0.5, 0.0, (False, False)),
        (1.16, 0.51, 0.3, (True, False)),
        (0.8, -2.0, 0.0, (False, False)),
        (0.79, -2.0, 0.29, (False, True)),
        (0.79, -2.0, 0.3, (False, False)),
    ])
    def test_classify(self, ratio, z, risk, expected):
        """Test sell-high and buy-low flags at and around their thresholds."""
        assert classify(ratio, z, risk) == expected

    def test_classify_random_triples(self):
        """Test both flags match their defining conditions for random inputs."""
        rng = random.Random(7)
        for _ in range(2000):
            ratio = rng.uniform(0.0, 2.5)
            z = rng.uniform(-3.0, 3.0)
            risk = rng.choice([0.0, 0.1, 0.3, 0.5, 1.0, rng.random()])
            is_sell_high, is_buy_low = classify(ratio, z, risk)
            assert is_sell_high == (ratio > 1.15 and z > 0.5)
            assert is_buy_low == ((1 - ratio) > 0.2 and risk < 0.3)


class TestValuationEngine:
    """Test valuation against the store."""

    def test_overperformer_is_sell_high(self, store, stats_service, cache):
        """Test a player doubling their projections."""
        async def run():
            await store.upsert_player(make_player('p1', 'WR'))
            await seed_history(store, 'p1', actual=20.0, projected=10.0)
            engine = ValuationEngine(store, stats_service, cache)
            return await engine.calculate_player_value('p1', None, SEASON, 5)

        value = asyncio.run(run())
        assert value.performance_ratio == pytest.approx(2.0)
        assert value.z_score == pytest.approx((2.0 - 1.0) / 0.15)
        assert value.current_value == pytest.approx(30.0)
        assert value.projected_value == pytest.approx(15.0)
        assert value.trend == TrendLabel.UP
        assert value.is_sell_high
        assert not value.is_buy_low

    def test_underperformer_is_buy_low(self, store, stats_service, cache):
        """Test a healthy player at half their projections."""
        async def run():
            await store.upsert_player(make_player('p1', 'RB'))
            await seed_history(store, 'p1', actual=5.0, projected=10.0)
            engine = ValuationEngine(store, stats_service, cache)
            return await engine.calculate_player_value('p1', None, SEASON, 5)

        value = asyncio.run(run())
        assert value.performance_ratio == pytest.approx(0.5)
        assert value.is_buy_low
        assert value.trend == TrendLabel.DOWN

    def test_injured_underperformer_not_buy_low(self, store, stats_service, cache):
        """Test injury risk blocks the buy-low flag."""
        async def run():
            await store.upsert_player(make_player('p1', 'RB', status=PlayerStatus.QUESTIONABLE))
            await seed_history(store, 'p1', actual=5.0, projected=10.0)
            engine = ValuationEngine(store, stats_service, cache)
            return await engine.calculate_player_value('p1', None, SEASON, 5)

        value = asyncio.run(run())
        assert value.injury_risk == 0.3
        assert not value.is_buy_low

    def test_thin_history_is_neutral(self, store, stats_service, cache):
        """Test fewer than two matched weeks gives ratio 1.0 and z 0."""
        async def run():
            await store.upsert_player(make_player('p1', 'WR'))
            await seed_history(store, 'p1', actual=30.0, projected=10.0, weeks=[4])
            engine = ValuationEngine(store, stats_service, cache)
            return await engine.calculate_player_value('p1', None, SEASON, 5)

        value = asyncio.run(run())
        assert value.performance_ratio == 1.0
        assert value.z_score == 0.0
        assert value.current_value == value.projected_value
        assert not value.is_sell_high and not value.is_buy_low

    def test_missing_ros_projection(self, store, stats_service, cache):
        """Test players without a ROS projection are not valued."""
        async def run():
            await store.upsert_player(make_player('p1', 'WR'))
            engine = ValuationEngine(store, stats_service, cache)
            unknown = await engine.calculate_player_value('missing', None, SEASON, 5)
            no_ros = await engine.calculate_player_value('p1', None, SEASON, 5)
            return unknown, no_ros

        assert asyncio.run(run()) == (None, None)

    def test_valuation_is_cached(self, store, stats_service, cache):
        """Test computed valuations are served from the cache."""
        async def run():
            await store.upsert_player(make_player('p1', 'WR'))
            await seed_history(store, 'p1', actual=20.0, projected=10.0)
            engine = ValuationEngine(store, stats_service, cache)
            first = await engine.calculate_player_value('p1', None, SEASON, 5)
            store.weekly_stats.clear()
            second = await engine.calculate_player_value('p1', None, SEASON, 5)
            cached = await cache.get(CacheKeys.valuation('default', 'p1', 5, SEASON))
            return first, second, cached

        first, second, cached = asyncio.run(run())
        assert cached is not None
        assert second.performance_ratio == first.performance_ratio

    def test_league_scoring_applies(self, store, stats_service, cache, league):
        """Test custom league scoring recomputes actual points from raw stats."""
        async def run():
            league.scoring_settings = {'rec': 0.25, 'rec_yd': 0.1}
            await store.upsert_league(league)
            await store.upsert_player(make_player('p1', 'WR'))
            await seed_history(store, 'p1', actual=99.0, projected=7.25)
            engine = ValuationEngine(store, stats_service, cache)
            return await engine.calculate_player_value('p1', league.id, SEASON, 5)

        # 5 rec * 0.25 + 60 yd * 0.1 = 7.25 per week
        assert asyncio.run(run()).performance_ratio == pytest.approx(1.0)

    def test_get_league_values(self, store, stats_service, cache, feed, league):
        """Test values are grouped by roster owner."""
        async def run():
            await store.upsert_league(league)
            await store.upsert_player(make_player('p1', 'WR'))
            await seed_history(store, 'p1', actual=10.0, projected=10.0)
            feed.rosters = [
                SleeperRoster(roster_id=1, owner_id='owner-x', players=['p1', 'unknown']),
                SleeperRoster(roster_id=2, owner_id=None, players=['p1']),
            ]
            engine = ValuationEngine(store, stats_service, cache, feed=feed)
            return await engine.get_league_values(league, SEASON, 5)

        values = asyncio.run(run())
        assert list(values) == ['owner-x']
        assert [v.player_id for v in values['owner-x']] == ['p1']

    def test_league_values_without_feed(self, store, stats_service, cache, league):
        """Test no feed means no league values."""
        engine = ValuationEngine(store, stats_service, cache)
        assert asyncio.run(engine.get_league_values(league, SEASON, 5)) == {}


class TestPeerRatios:
    """Test z-scores against same-position peers."""

    PEER_ACTUALS = [6.0, 7.0, 8.0, 9.0, 10.0, 11.0, 12.0, 13.0, 14.0, 15.0, 16.0]

    async def seed_peers(self, store):
        for i, actual in enumerate(self.PEER_ACTUALS):
            await store.upsert_player(make_player(f'peer{i}', 'WR'))
            await seed_history(store, f'peer{i}', actual=actual, projected=10.0)
        # Other positions and thin histories are not peers
        await store.upsert_player(make_player('rb', 'RB'))
        await seed_history(store, 'rb', actual=30.0, projected=10.0)
        await store.upsert_player(make_player('thin', 'WR'))
        await seed_history(store, 'thin', actual=30.0, projected=10.0, weeks=[4])

    def test_z_score_against_peers(self, store, stats_service, cache):
        """Test z is measured against the sample spread of qualifying peers."""
        async def run():
            await self.seed_peers(store)
            await store.upsert_player(make_player('star', 'WR'))
            await seed_history(store, 'star', actual=20.0, projected=10.0)
            engine = ValuationEngine(store, stats_service, cache)
            peers = await engine.get_peer_ratios('WR', SEASON, 5)
            value = await engine.calculate_player_value('star', None, SEASON, 5)
            return peers, value

        peers, value = asyncio.run(run())
        ratios = [a / 10.0 for a in self.PEER_ACTUALS] + [2.0]
        assert sorted(peers) == pytest.approx(sorted(ratios))
        expected = (2.0 - statistics.mean(ratios)) / statistics.stdev(ratios)
        assert value.z_score == pytest.approx(expected)
        assert value.z_score != pytest.approx((2.0 - 1.0) / 0.15)

    def test_peers_read_fresh_between_valuations(self, store, stats_service, cache):
        """Test peers added after an earlier valuation count for the next one."""
        async def run():
            engine = ValuationEngine(store, stats_service, cache)
            await store.upsert_player(make_player('early', 'WR'))
            await seed_history(store, 'early', actual=20.0, projected=10.0)
            early = await engine.calculate_player_value('early', None, SEASON, 5)

            await self.seed_peers(store)
            await store.upsert_player(make_player('late', 'WR'))
            await seed_history(store, 'late', actual=20.0, projected=10.0)
            late = await engine.calculate_player_value('late', None, SEASON, 5)
            peers = await engine.get_peer_ratios('WR', SEASON, 5)
            return early, late, peers

        early, late, peers = asyncio.run(run())
        assert early.z_score == pytest.approx((2.0 - 1.0) / 0.15)
        assert len(peers) == len(self.PEER_ACTUALS) + 2
        expected = (2.0 - statistics.mean(peers)) / statistics.stdev(peers)
        assert late.z_score == pytest.approx(expected)

    def test_peers_shared_within_one_run(self, store, stats_service, cache):
        """Test one batch of valuations reads each position's peers once."""
        async def run():
            await self.seed_peers(store)
            engine = ValuationEngine(store, stats_service, cache)
            list_players = AsyncMock(side_effect=store.list_players)
            with patch.object(store, 'list_players', list_players):
                values = await engine.get_players_values(['peer0', 'peer1', 'rb'], None, SEASON, 5)
            return values, list_players

        values, list_players = asyncio.run(run())
        assert [v.player_id for v in values] == ['peer0', 'peer1', 'rb']
        assert [c.kwargs['positions'] for c in list_players.await_args_list] == [['WR'], ['RB']]
