"""NFL calendar helpers."""

from datetime import date, datetime, timedelta
from typing import Optional, Tuple

REGULAR_SEASON_WEEKS = 18


def season_kickoff(year: int) -> date:
    """First Thursday of September, the approximate week 1 kickoff."""
    september_first = date(year, 9, 1)
    days_until_thursday = (3 - september_first.weekday()) % 7
    return september_first + timedelta(days=days_until_thursday)


def current_nfl_week(now: Optional[datetime] = None) -> int:
    """Regular-season week (1-18) for a date, 0 before the season starts."""
    today = (now or datetime.now()).date()
    kickoff = season_kickoff(today.year)
    if today < kickoff:
        return 0
    week = (today - kickoff).days // 7 + 1
    return min(week, REGULAR_SEASON_WEEKS)


def current_nfl_season(now: Optional[datetime] = None) -> int:
    """Season year; January through July still belong to the previous season."""
    now = now or datetime.now()
    if now.month < 8:
        return now.year - 1
    return now.year


def next_week(week: int) -> int:
    if week == 0:
        return 1
    return min(week + 1, REGULAR_SEASON_WEEKS)


def current_week_and_season(now: Optional[datetime] = None) -> Tuple[int, int]:
    return current_nfl_week(now), current_nfl_season(now)
