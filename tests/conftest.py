"""Shared fixtures: in-memory store, fake Sleeper feed, cache and a sample league."""

from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from roster_advisor.data.cache import CacheService, InMemoryBackend
from roster_advisor.data.records import (
    League,
    Player,
    PlayerStatus,
    Position,
    Projection,
    ProjectionSource,
    RosterSlot,
    User,
    WeeklyStat,
)
from roster_advisor.data.sleeper_client import (
    NflState,
    SleeperLeague,
    SleeperPlayer,
    SleeperRoster,
    SleeperTransaction,
    SleeperUser,
    TrendingPlayer,
)
from roster_advisor.data.stats_service import StatsService
from roster_advisor.data.store import InMemoryStore

SEASON = 2024


class FakeFeed:
    """Stands in for SleeperClient with canned responses."""

    def __init__(self):
        self.league: Optional[SleeperLeague] = None
        self.rosters: Optional[List[SleeperRoster]] = []
        self.users: Optional[List[SleeperUser]] = []
        self.players: Optional[Dict[str, SleeperPlayer]] = {}
        self.transactions: Dict[int, List[SleeperTransaction]] = {}
        self.week_stats: Dict[int, Dict[str, Dict[str, float]]] = {}
        self.trending: List[TrendingPlayer] = []
        self.state: Optional[NflState] = NflState(week=5, season=SEASON)
        self.closed = False

    async def get_league(self, league_id):
        return self.league

    async def get_rosters(self, league_id):
        return self.rosters

    async def get_league_users(self, league_id):
        return self.users

    async def get_players(self):
        return self.players

    async def get_transactions(self, league_id, week):
        return self.transactions.get(week, [])

    async def get_week_stats(self, season, week):
        return self.week_stats.get(week)

    async def get_trending(self, kind="add", lookback_hours=24, limit=25):
        return self.trending

    async def get_nfl_state(self):
        return self.state

    def close(self):
        self.closed = True


def make_player(player_id: str, position: str = "WR", team: str = "KC",
                status: PlayerStatus = PlayerStatus.ACTIVE, name: Optional[str] = None) -> Player:
    return Player(id=player_id, full_name=name or f"Player {player_id}",
                  position=Position(position), team=team, status=status)


def make_stat(player_id: str, week: int, points: float, season: int = SEASON) -> WeeklyStat:
    return WeeklyStat(player_id=player_id, week=week, season=season,
                      stats={"rec": 5.0, "rec_yd": 60.0}, ppr_points=points)


def make_projection(player_id: str, week: int, points: float, season: int = SEASON,
                    source: ProjectionSource = ProjectionSource.HISTORICAL_ANALYSIS) -> Projection:
    return Projection(player_id=player_id, week=week, season=season, projected_points=points,
                      confidence=0.8, source=source)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def feed():
    return FakeFeed()


@pytest.fixture
def cache():
    return CacheService(InMemoryBackend())


@pytest.fixture
def stats_service(store, cache, feed):
    return StatsService(store, cache, feed, chunk_size=50)


@pytest.fixture
def user():
    return User(id="user-1", email="owner@example.com")


@pytest.fixture
def league():
    return League(
        id="league-1",
        user_id="user-1",
        platform_league_id="sleeper-league-1",
        league_name="Test League",
        platform_team_id="owner-me",
        scoring_settings={"rec": 1.0, "pass_td": 4.0, "rec_yd": 0.1},
        faab_budget=100,
        current_faab=100,
    )


async def seed_league(store, user, league, roster: List[Player], starters=()):
    """Store a user, a league and the user's roster."""
    await store.upsert_user(user)
    await store.upsert_league(league)
    for player in roster:
        await store.upsert_player(player)
    await store.replace_roster(league.id, [
        RosterSlot(league_id=league.id, player_id=p.id,
                   roster_slot="ST" if p.id in starters else "BN",
                   is_starting=p.id in starters)
        for p in roster
    ])


def utc(year, month, day, hour=0, minute=0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)
