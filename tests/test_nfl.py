"""Tests for the NFL calendar helpers."""

from datetime import date, datetime

from roster_advisor.utils.nfl import (
    current_nfl_season,
    current_nfl_week,
    current_week_and_season,
    next_week,
    season_kickoff,
)


class TestNflCalendar:

    def test_season_kickoff(self):
        """Test week 1 opens on the first Thursday of September."""
        assert season_kickoff(2024) == date(2024, 9, 5)
        assert season_kickoff(2022) == date(2022, 9, 1)

    def test_current_nfl_week(self):
        """Test week boundaries fall on Thursdays."""
        assert current_nfl_week(datetime(2024, 9, 4)) == 0
        assert current_nfl_week(datetime(2024, 9, 5)) == 1
        assert current_nfl_week(datetime(2024, 9, 11)) == 1
        assert current_nfl_week(datetime(2024, 9, 12)) == 2
        assert current_nfl_week(datetime(2024, 12, 31)) == 17

    def test_current_nfl_season(self):
        """Test the season rolls over in August."""
        assert current_nfl_season(datetime(2025, 1, 15)) == 2024
        assert current_nfl_season(datetime(2025, 7, 31)) == 2024
        assert current_nfl_season(datetime(2025, 8, 1)) == 2025

    def test_next_week(self):
        assert next_week(0) == 1
        assert next_week(5) == 6
        assert next_week(18) == 18

    def test_current_week_and_season(self):
        assert current_week_and_season(datetime(2024, 10, 1)) == (4, 2024)
