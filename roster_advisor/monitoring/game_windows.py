"""NFL game windows, an approximate weekly schedule, and kickoff urgency."""

from datetime import datetime, time, timedelta
from typing import Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from pydantic import BaseModel

from ..data.records import UrgencyLevel

PRE_WINDOW_HOURS = 2

NORMAL_INTERVAL_SECONDS = 120
URGENT_INTERVAL_SECONDS = 60
URGENT_KICKOFF_MINUTES = 30

# Alerts fire from 2 hours before kickoff until 30 minutes after
ALERT_WINDOW_BEFORE_MINUTES = 120
ALERT_WINDOW_AFTER_MINUTES = 30


class GameWindow(BaseModel):
    name: str
    weekday: int
    start_hour: int
    end_hour: int


# Weekdays follow datetime.weekday(): Monday is 0, Sunday is 6
GAME_WINDOWS = [
    GameWindow(name='thursday', weekday=3, start_hour=18, end_hour=23),
    GameWindow(name='sunday_early', weekday=6, start_hour=12, end_hour=16),
    GameWindow(name='sunday_late', weekday=6, start_hour=16, end_hour=20),
    GameWindow(name='sunday_night', weekday=6, start_hour=20, end_hour=23),
    GameWindow(name='monday', weekday=0, start_hour=18, end_hour=23),
]

# Kickoff slots as (days after the Tuesday that opens the week, local kickoff)
TNF_KICKOFF = (2, time(20, 15))
SUNDAY_EARLY_KICKOFF = (5, time(13, 0))
SUNDAY_LATE_KICKOFF = (5, time(16, 25))
SNF_KICKOFF = (5, time(20, 20))
MNF_KICKOFF = (6, time(20, 15))


class GameInfo(BaseModel):
    game_id: str
    kickoff: datetime
    home_team: str
    away_team: str

    def involves(self, team: Optional[str]) -> bool:
        return team is not None and team in (self.home_team, self.away_team)

    def opponent_of(self, team: str) -> str:
        return self.away_team if team == self.home_team else self.home_team

    def minutes_to_kickoff(self, now: datetime) -> int:
        return int((self.kickoff - now).total_seconds() // 60)


def is_within_game_window(now: datetime, timezone: str = 'America/New_York') -> bool:
    """Whether monitoring should run at this moment in the league timezone."""
    local = now.astimezone(ZoneInfo(timezone))
    for window in GAME_WINDOWS:
        if local.weekday() != window.weekday:
            continue
        opens = time(window.start_hour - PRE_WINDOW_HOURS)
        if opens <= local.time() <= time(window.end_hour):
            return True
    return False


def urgency_for(minutes_to_kickoff: int) -> Tuple[UrgencyLevel, bool]:
    """Urgency tier and the isUrgent flag for minutes remaining before kickoff."""
    if minutes_to_kickoff < 10:
        return UrgencyLevel.CRITICAL, True
    if minutes_to_kickoff < 30:
        return UrgencyLevel.HIGH, False
    if minutes_to_kickoff < 60:
        return UrgencyLevel.MEDIUM, False
    return UrgencyLevel.LOW, False


def in_alert_window(minutes_to_kickoff: int) -> bool:
    return -ALERT_WINDOW_AFTER_MINUTES < minutes_to_kickoff <= ALERT_WINDOW_BEFORE_MINUTES


def week_anchor(now: datetime, timezone: str) -> datetime:
    """Local midnight of the Tuesday that opens the NFL week containing now."""
    local = now.astimezone(ZoneInfo(timezone))
    days_since_tuesday = (local.weekday() - 1) % 7
    tuesday = local.date() - timedelta(days=days_since_tuesday)
    return datetime.combine(tuesday, time(0, 0), tzinfo=ZoneInfo(timezone))


def _kickoff(anchor: datetime, slot: Tuple[int, time]) -> datetime:
    days, kickoff_time = slot
    day = anchor.date() + timedelta(days=days)
    return datetime.combine(day, kickoff_time, tzinfo=anchor.tzinfo)


def build_weekly_schedule(teams: Iterable[str], week: int, season: int, now: datetime,
                          timezone: str = 'America/New_York') -> List[GameInfo]:
    """Pair teams into matchups spread over the standard kickoff slots.

    The first pairing plays Thursday night, the last two Sunday and Monday
    night, the first half of the rest Sunday early and the remainder Sunday
    late. Kickoffs fall in the NFL week that contains ``now``.
    """
    ordered = sorted(set(t for t in teams if t))
    pairs = [(ordered[i], ordered[i + 1]) for i in range(0, len(ordered) - 1, 2)]
    anchor = week_anchor(now, timezone)

    games = []
    last = len(pairs) - 1
    for i, (home, away) in enumerate(pairs):
        if i == 0:
            slot, label = TNF_KICKOFF, 'TNF'
        elif i == last:
            slot, label = MNF_KICKOFF, 'MNF'
        elif i == last - 1:
            slot, label = SNF_KICKOFF, 'SNF'
        elif i <= len(pairs) / 2:
            slot, label = SUNDAY_EARLY_KICKOFF, f'SUN_EARLY_{i}'
        else:
            slot, label = SUNDAY_LATE_KICKOFF, f'SUN_LATE_{i}'

        games.append(GameInfo(
            game_id=f'{season}_{week}_{label}',
            kickoff=_kickoff(anchor, slot),
            home_team=home,
            away_team=away,
        ))
    return games


def find_game(games: Iterable[GameInfo], team: Optional[str]) -> Optional[GameInfo]:
    for game in games:
        if game.involves(team):
            return game
    return None


def polling_interval(games: Iterable[GameInfo], now: datetime) -> int:
    """Seconds between polls: tighter once the nearest kickoff is under 30 minutes away."""
    upcoming = [g.kickoff - now for g in games if g.kickoff > now]
    if not upcoming:
        return NORMAL_INTERVAL_SECONDS
    if min(upcoming) < timedelta(minutes=URGENT_KICKOFF_MINUTES):
        return URGENT_INTERVAL_SECONDS
    return NORMAL_INTERVAL_SECONDS
