"""Tests for scoring system functionality."""

import pytest

from roster_advisor.config.scoring import (
    ScoringSystem,
    ScoringType,
    detect_scoring_type,
    points_for_week,
)
from roster_advisor.data.records import WeeklyStat


class TestScoringSystem:
    """Test scoring system calculations."""

    def test_standard_scoring(self):
        """Test standard scoring system."""
        scoring = ScoringSystem.get_scoring_system(ScoringType.STANDARD)

        qb_stats = {
            'pass_yd': 300,
            'pass_td': 2,
            'pass_int': 1,
            'rush_yd': 20,
            'rush_td': 1,
        }

        expected = round((300 / 25) + (2 * 4) + (1 * -2) + (20 / 10) + (1 * 6), 2)
        assert scoring.calculate_fantasy_points(qb_stats) == pytest.approx(expected)

    def test_ppr_scoring(self):
        """Test PPR scoring system."""
        scoring = ScoringSystem.get_scoring_system(ScoringType.PPR)

        wr_stats = {
            'rec_yd': 100,
            'rec_td': 1,
            'rec': 8,
            'fum_lost': 1,
        }

        expected = (100 / 10) + (1 * 6) + (8 * 1) + (1 * -2)
        assert scoring.calculate_fantasy_points(wr_stats) == pytest.approx(expected)

    def test_half_ppr_scoring(self):
        """Test half PPR scoring system."""
        scoring = ScoringSystem.get_scoring_system(ScoringType.HALF_PPR)

        te_stats = {'rec_yd': 50, 'rec': 4}
        assert scoring.calculate_fantasy_points(te_stats) == pytest.approx(5.0 + 2.0)

    def test_missing_and_null_stats(self):
        """Test that absent or null stats contribute nothing."""
        scoring = ScoringSystem.get_scoring_system(ScoringType.PPR)
        assert scoring.calculate_fantasy_points({}) == 0.0
        assert scoring.calculate_fantasy_points({'rec': None, 'rec_yd': 10}) == pytest.approx(1.0)

    def test_custom_scoring_type_rejected(self):
        """Test that CUSTOM has no predefined system."""
        with pytest.raises(ValueError):
            ScoringSystem.get_scoring_system(ScoringType.CUSTOM)


class TestLeagueScoring:
    """Test scoring derived from league settings."""

    def test_detect_scoring_type(self):
        """Test detection from the reception multiplier."""
        assert detect_scoring_type({'rec': 1.0}) == ScoringType.PPR
        assert detect_scoring_type({'rec': 0.5}) == ScoringType.HALF_PPR
        assert detect_scoring_type({'rec': 0}) == ScoringType.STANDARD
        assert detect_scoring_type({}) == ScoringType.STANDARD
        assert detect_scoring_type(None) == ScoringType.STANDARD
        assert detect_scoring_type({'rec': 0.25}) == ScoringType.CUSTOM

    def test_from_league_settings_missing_keys_score_zero(self):
        """Test that stats absent from league settings are worth nothing."""
        scoring = ScoringSystem.from_league_settings({'rec': 0.25, 'rec_yd': 0.1})
        assert scoring.rec == 0.25
        assert scoring.pass_td == 0.0
        assert scoring.calculate_fantasy_points({'rec': 4, 'rec_yd': 50, 'pass_td': 1}) == pytest.approx(6.0)

    def test_yardage_bonus(self):
        """Test yardage bonuses apply at their thresholds."""
        scoring = ScoringSystem.from_league_settings({'rush_yd': 0.1, 'bonus_rush_yd_100': 3})
        assert scoring.calculate_fantasy_points({'rush_yd': 99}) == pytest.approx(9.9)
        assert scoring.calculate_fantasy_points({'rush_yd': 100}) == pytest.approx(13.0)

    def test_points_for_week_uses_precomputed_totals(self):
        """Test precomputed platform totals are used for standard types."""
        stat = WeeklyStat(player_id='1', week=1, season=2024, stats={'rec': 5, 'rec_yd': 50},
                          ppr_points=20.0, half_ppr_points=17.5, std_points=15.0)

        assert points_for_week(stat, None) == 20.0
        assert points_for_week(stat, {'rec': 1}) == 20.0
        assert points_for_week(stat, {'rec': 0.5}) == 17.5
        assert points_for_week(stat, {'rec': 0}) == 15.0

    def test_points_for_week_custom_scoring(self):
        """Test custom leagues are scored from the raw stats."""
        stat = WeeklyStat(player_id='1', week=1, season=2024, stats={'rec': 4, 'rec_yd': 50},
                          ppr_points=9.0)
        assert points_for_week(stat, {'rec': 0.25, 'rec_yd': 0.1}) == pytest.approx(6.0)

    def test_points_for_week_without_totals(self):
        """Test PPR is computed from raw stats when no total is stored."""
        stat = WeeklyStat(player_id='1', week=1, season=2024, stats={'rec': 4, 'rec_yd': 50})
        assert points_for_week(stat, None) == pytest.approx(9.0)
