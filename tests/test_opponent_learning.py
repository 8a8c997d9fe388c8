"""Tests for opponent profile learning."""

import asyncio

import pytest

from roster_advisor.data.records import OpponentProfile
from roster_advisor.data.sleeper_client import SleeperRoster, SleeperTransaction, SleeperUser
from roster_advisor.models.opponent_learning import OpponentLearner, TradeOutcome, apply_trade_outcome

from conftest import SEASON, make_player


def neutral_profile():
    return OpponentProfile(league_id='league-1', opponent_team_id='owner-x')


class TestApplyTradeOutcome:
    """Test the exponential moving average update."""

    def test_gained_and_lost_positions(self):
        """Test gained positions move toward 1 and lost positions decay."""
        outcome = TradeOutcome(positions_gained=['RB'], positions_lost=['WR'], accepted=True)
        profile = apply_trade_outcome(neutral_profile(), outcome)

        assert profile.rb_preference == pytest.approx(0.6)
        assert profile.wr_preference == pytest.approx(0.45)
        assert profile.qb_preference == 0.5
        assert profile.te_preference == 0.5

    def test_input_not_modified(self):
        """Test the update returns a new profile."""
        original = neutral_profile()
        apply_trade_outcome(original, TradeOutcome(positions_gained=['QB'], accepted=True))
        assert original.qb_preference == 0.5
        assert original.data_points == 0

    def test_positions_without_preference_ignored(self):
        """Test kickers and defenses have no preference."""
        outcome = TradeOutcome(positions_gained=['K'], positions_lost=['DEF'], accepted=True)
        profile = apply_trade_outcome(neutral_profile(), outcome)
        assert profile.data_points == 1
        assert profile.qb_preference == profile.rb_preference == 0.5

    def test_acceptance_rate_from_totals(self):
        """Test the acceptance rate is recomputed on acceptance and rejection."""
        profile = neutral_profile()
        profile = apply_trade_outcome(profile, TradeOutcome(accepted=True))
        assert profile.acceptance_rate == pytest.approx(1.0)
        assert profile.last_trade_date is not None

        profile = apply_trade_outcome(profile, TradeOutcome(accepted=False))
        assert profile.total_trades_proposed == 2
        assert profile.total_trades_rejected == 1
        assert profile.acceptance_rate == pytest.approx(0.5)

        profile = apply_trade_outcome(profile, TradeOutcome(accepted=False))
        assert profile.acceptance_rate == pytest.approx(1 / 3)

    def test_trading_activity(self):
        """Test opponent-initiated trades raise trading activity."""
        profile = apply_trade_outcome(neutral_profile(),
                                      TradeOutcome(accepted=True, initiated_by_opponent=True))
        assert profile.total_trades_initiated == 1
        assert profile.trading_activity == pytest.approx(0.6)

    def test_star_and_depth_flags(self):
        """Test consolidation marks stars and spreading marks depth."""
        stars = apply_trade_outcome(neutral_profile(),
                                    TradeOutcome(positions_gained=['RB'], positions_lost=['WR', 'TE'],
                                                 accepted=True))
        assert stars.prefers_stars and not stars.prefers_depth

        depth = apply_trade_outcome(stars, TradeOutcome(positions_gained=['RB', 'WR'], positions_lost=['QB'],
                                                        accepted=True))
        assert depth.prefers_depth and not depth.prefers_stars


class TestOpponentLearner:
    """Test profile persistence and transaction replay."""

    def test_get_or_create_profile(self, store, feed):
        """Test profiles are created once with neutral defaults."""
        async def run():
            learner = OpponentLearner(store, feed)
            first = await learner.get_or_create_profile('league-1', 'owner-x', 'Team X')
            await learner.record_trade_outcome('league-1', 'owner-x', TradeOutcome(accepted=True))
            second = await learner.get_or_create_profile('league-1', 'owner-x')
            return first, second

        first, second = asyncio.run(run())
        assert first.acceptance_rate == 0.3
        assert first.opponent_team_name == 'Team X'
        assert second.data_points == 1

    def test_initialize_profiles_skips_own_roster(self, store, feed, league):
        """Test a profile is created for every opposing owner."""
        async def run():
            await store.upsert_league(league)
            feed.rosters = [
                SleeperRoster(roster_id=1, owner_id='owner-me'),
                SleeperRoster(roster_id=2, owner_id='owner-x'),
                SleeperRoster(roster_id=3, owner_id=None),
            ]
            feed.users = [SleeperUser(user_id='owner-x', display_name='x', metadata={'team_name': 'The X'})]
            return await OpponentLearner(store, feed).initialize_profiles(league.id)

        profiles = asyncio.run(run())
        assert [p.opponent_team_id for p in profiles] == ['owner-x']
        assert profiles[0].opponent_team_name == 'The X'

    def test_sync_transactions_replays_trades_once(self, store, feed, league):
        """Test trades update profiles and replays are skipped."""
        async def run():
            await store.upsert_league(league)
            await store.upsert_player(make_player('rb1', 'RB'))
            await store.upsert_player(make_player('wr1', 'WR'))
            feed.rosters = [
                SleeperRoster(roster_id=1, owner_id='owner-me'),
                SleeperRoster(roster_id=2, owner_id='owner-x'),
            ]
            feed.transactions = {3: [
                SleeperTransaction(transaction_id='t1', type='trade', status='complete', roster_ids=[1, 2],
                                   adds={'rb1': 2, 'wr1': 1}, drops={'rb1': 1, 'wr1': 2},
                                   creator='owner-x'),
                SleeperTransaction(transaction_id='t2', type='waiver', status='complete', roster_ids=[2],
                                   adds={'wr1': 2}, settings={'waiver_bid': 12}),
            ]}
            learner = OpponentLearner(store, feed)
            first = await learner.sync_league_transactions(league.id, SEASON, 3)
            second = await learner.sync_league_transactions(league.id, SEASON, 3)
            profile = await store.get_opponent_profile(league.id, 'owner-x')
            mine = await store.get_opponent_profile(league.id, 'owner-me')
            waivers = await store.list_transactions(league.id, SEASON, 'waiver')
            return first, second, profile, mine, waivers

        first, second, profile, mine, waivers = asyncio.run(run())
        assert first.created == 2
        assert second.created == 0
        assert second.skipped == 2
        assert profile.data_points == 1
        assert profile.rb_preference == pytest.approx(0.6)
        assert profile.wr_preference == pytest.approx(0.45)
        assert profile.total_trades_initiated == 1
        assert mine is None
        assert waivers[0].waiver_bid == 12

    def test_sync_unknown_league(self, store, feed):
        """Test an unknown league is reported as a failure."""
        result = asyncio.run(OpponentLearner(store, feed).sync_league_transactions('missing', SEASON, 1))
        assert not result.success
        assert result.errors
