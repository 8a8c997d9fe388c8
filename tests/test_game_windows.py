"""Tests for game windows, the weekly schedule and kickoff urgency."""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from roster_advisor.data.records import UrgencyLevel
from roster_advisor.monitoring.game_windows import (
    GameInfo,
    build_weekly_schedule,
    find_game,
    in_alert_window,
    is_within_game_window,
    polling_interval,
    urgency_for,
    week_anchor,
)

from conftest import utc

EASTERN = ZoneInfo('America/New_York')
TEAMS = ['ARI', 'ATL', 'BAL', 'BUF', 'CAR', 'CHI', 'CIN', 'CLE', 'DAL', 'DEN', 'DET', 'GB', 'HOU', 'IND']


def game(kickoff, home='KC', away='BAL'):
    return GameInfo(game_id='g', kickoff=kickoff, home_team=home, away_team=away)


class TestGameWindow:
    """Test the monitoring window check."""

    def test_sunday(self):
        """Test the Sunday window opens two hours before the early slate."""
        # 2024-09-08 is a Sunday; EDT is UTC-4
        assert is_within_game_window(utc(2024, 9, 8, 14, 0))
        assert is_within_game_window(utc(2024, 9, 8, 20, 0))
        assert not is_within_game_window(utc(2024, 9, 8, 13, 59))

    def test_thursday_and_monday(self):
        """Test prime-time windows."""
        assert is_within_game_window(utc(2024, 9, 5, 21, 0))
        assert is_within_game_window(utc(2024, 9, 9, 23, 30))
        assert not is_within_game_window(utc(2024, 9, 9, 15, 0))

    def test_window_closes_at_end_hour(self):
        """Test the window ends on the hour rather than at the end of the final hour."""
        # Sunday 23:00 and 23:01 EDT
        assert is_within_game_window(utc(2024, 9, 9, 3, 0))
        assert not is_within_game_window(utc(2024, 9, 9, 3, 1))
        # Thursday 16:00 EDT opens the prime-time window
        assert is_within_game_window(utc(2024, 9, 5, 20, 0))
        assert not is_within_game_window(utc(2024, 9, 5, 19, 59))

    def test_no_games_midweek(self):
        """Test Tuesday and Wednesday are outside every window."""
        assert not is_within_game_window(utc(2024, 9, 10, 22, 0))
        assert not is_within_game_window(utc(2024, 9, 11, 22, 0))

    def test_timezone(self):
        """Test the window is evaluated in the configured timezone."""
        now = utc(2024, 9, 8, 17, 30)
        assert is_within_game_window(now, 'America/New_York')
        assert not is_within_game_window(now, 'Asia/Tokyo')


class TestUrgency:
    """Test kickoff urgency tiers."""

    @pytest.mark.parametrize('minutes, level, urgent', [
        (8, UrgencyLevel.CRITICAL, True),
        (-5, UrgencyLevel.CRITICAL, True),
        (10, UrgencyLevel.HIGH, False),
        (25, UrgencyLevel.HIGH, False),
        (30, UrgencyLevel.MEDIUM, False),
        (45, UrgencyLevel.MEDIUM, False),
        (60, UrgencyLevel.LOW, False),
        (90, UrgencyLevel.LOW, False),
    ])
    def test_urgency_for(self, minutes, level, urgent):
        """Test each tier boundary."""
        assert urgency_for(minutes) == (level, urgent)

    def test_alert_window(self):
        """Test alerts fire from two hours before until 30 minutes after kickoff."""
        assert in_alert_window(120)
        assert not in_alert_window(121)
        assert in_alert_window(0)
        assert in_alert_window(-29)
        assert not in_alert_window(-30)

    def test_minutes_to_kickoff_floors(self):
        """Test partial minutes round down."""
        kickoff = utc(2024, 9, 8, 17, 0)
        assert game(kickoff).minutes_to_kickoff(kickoff - timedelta(seconds=89 * 60 + 30)) == 89
        assert game(kickoff).minutes_to_kickoff(kickoff + timedelta(seconds=30)) == -1


class TestSchedule:
    """Test the approximate weekly schedule."""

    def test_week_anchor(self):
        """Test Monday night still belongs to the week opened the previous Tuesday."""
        # Monday 23:00 Eastern
        anchor = week_anchor(utc(2024, 9, 10, 3, 0), 'America/New_York')
        assert anchor == datetime(2024, 9, 3, tzinfo=EASTERN)
        assert week_anchor(utc(2024, 9, 10, 5, 0), 'America/New_York') == datetime(2024, 9, 10, tzinfo=EASTERN)

    def test_kickoff_slots(self):
        """Test pairings are spread across the standard slots."""
        games = build_weekly_schedule(TEAMS, 1, 2024, utc(2024, 9, 8, 15, 0))

        assert len(games) == 7
        assert [g.game_id for g in games] == [
            '2024_1_TNF', '2024_1_SUN_EARLY_1', '2024_1_SUN_EARLY_2', '2024_1_SUN_EARLY_3',
            '2024_1_SUN_LATE_4', '2024_1_SNF', '2024_1_MNF',
        ]
        assert games[0].kickoff == datetime(2024, 9, 5, 20, 15, tzinfo=EASTERN)
        assert games[1].kickoff == datetime(2024, 9, 8, 13, 0, tzinfo=EASTERN)
        assert games[4].kickoff == datetime(2024, 9, 8, 16, 25, tzinfo=EASTERN)
        assert games[5].kickoff == datetime(2024, 9, 8, 20, 20, tzinfo=EASTERN)
        assert games[6].kickoff == datetime(2024, 9, 9, 20, 15, tzinfo=EASTERN)

    def test_pairing_is_deterministic(self):
        """Test teams are sorted and deduplicated before pairing."""
        games = build_weekly_schedule(['BUF', 'ARI', None, 'BAL', 'ATL', 'ARI'], 2, 2024, utc(2024, 9, 8))
        assert [(g.home_team, g.away_team) for g in games] == [('ARI', 'ATL'), ('BAL', 'BUF')]

    def test_find_game(self):
        """Test lookup by team."""
        games = build_weekly_schedule(TEAMS, 1, 2024, utc(2024, 9, 8, 15, 0))
        found = find_game(games, 'ATL')
        assert found.game_id == '2024_1_TNF'
        assert found.opponent_of('ATL') == 'ARI'
        assert find_game(games, 'KC') is None
        assert find_game(games, None) is None


class TestPollingInterval:
    """Test adaptive polling."""

    def test_intervals(self):
        """Test the interval tightens inside 30 minutes of the next kickoff."""
        now = utc(2024, 9, 8, 16, 0)
        assert polling_interval([game(now + timedelta(minutes=20))], now) == 60
        assert polling_interval([game(now + timedelta(minutes=45))], now) == 120
        assert polling_interval([game(now - timedelta(minutes=5))], now) == 120
        assert polling_interval([], now) == 120
