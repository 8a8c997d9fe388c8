"""Relational store interface and its in-memory / JSON-file implementations.

The engines only see the :class:`Store` interface. Upserts are keyed by the
natural composite keys of each record (player+week+season for stats,
player+week+season+source for projections, and so on).
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .records import (
    InjuryAlert,
    League,
    OpponentProfile,
    Player,
    PlayerStatus,
    Projection,
    ProjectionSource,
    RosterSlot,
    TradeRecommendation,
    Transaction,
    User,
    WaiverRecommendation,
    WeeklyStat,
    utc_now,
)

logger = logging.getLogger(__name__)

# Preferred source between projections generated at the same instant
SOURCE_PRIORITY = [
    ProjectionSource.HISTORICAL_ANALYSIS,
    ProjectionSource.BASIC_ALGORITHM,
    ProjectionSource.POSITION_AVERAGE,
]


def projection_rank(projection: Projection) -> Tuple[datetime, int]:
    """Sort key for unsourced lookups: the latest recomputation wins."""
    return projection.updated_at, -SOURCE_PRIORITY.index(projection.source)


class Store(ABC):
    """Persistence operations the engines depend on."""

    async def flush(self) -> None:
        """Persist pending writes; a no-op for stores that write through."""

    # Players
    @abstractmethod
    async def get_player(self, player_id: str) -> Optional[Player]:
        pass

    @abstractmethod
    async def get_players(self, player_ids: Iterable[str]) -> Dict[str, Player]:
        pass

    @abstractmethod
    async def list_players(self, positions: Optional[List[str]] = None,
                           statuses: Optional[List[PlayerStatus]] = None) -> List[Player]:
        pass

    @abstractmethod
    async def upsert_player(self, player: Player) -> bool:
        """Insert or update a player; returns True when the player was new."""

    @abstractmethod
    async def update_player_status(self, player_id: str, status: PlayerStatus,
                                   injury_designation: Optional[str] = None) -> None:
        pass

    # Weekly stats
    @abstractmethod
    async def upsert_weekly_stat(self, stat: WeeklyStat) -> bool:
        pass

    @abstractmethod
    async def get_weekly_stat(self, player_id: str, week: int, season: int) -> Optional[WeeklyStat]:
        pass

    @abstractmethod
    async def get_recent_weekly_stats(self, player_id: str, season: int, before_week: int,
                                      limit: int) -> List[WeeklyStat]:
        """Most recent first, strictly before ``before_week``."""

    @abstractmethod
    async def list_weekly_stats(self, season: int, weeks: Iterable[int],
                                player_ids: Optional[Iterable[str]] = None) -> List[WeeklyStat]:
        pass

    # Projections
    @abstractmethod
    async def upsert_projection(self, projection: Projection) -> bool:
        pass

    @abstractmethod
    async def get_projection(self, player_id: str, week: int, season: int,
                             source: Optional[ProjectionSource] = None) -> Optional[Projection]:
        """Projection from one source, or the most recently generated one when unsourced."""

    @abstractmethod
    async def list_projections(self, week: int, season: int,
                               player_ids: Optional[Iterable[str]] = None) -> List[Projection]:
        """One projection per player (most recently generated), highest points first."""

    @abstractmethod
    async def list_projections_for_weeks(self, season: int, weeks: Iterable[int],
                                         player_ids: Optional[Iterable[str]] = None,
                                         source: Optional[ProjectionSource] = None) -> List[Projection]:
        pass

    # Users and leagues
    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    async def upsert_user(self, user: User) -> None:
        pass

    @abstractmethod
    async def get_league(self, league_id: str) -> Optional[League]:
        pass

    @abstractmethod
    async def list_active_leagues(self) -> List[League]:
        pass

    @abstractmethod
    async def upsert_league(self, league: League) -> None:
        pass

    # Rosters
    @abstractmethod
    async def get_roster(self, league_id: str, is_starting: Optional[bool] = None) -> List[RosterSlot]:
        pass

    @abstractmethod
    async def replace_roster(self, league_id: str, slots: List[RosterSlot]) -> None:
        """Delete every slot of the league, then insert ``slots``."""

    # Opponent profiles
    @abstractmethod
    async def get_opponent_profile(self, league_id: str, team_id: str) -> Optional[OpponentProfile]:
        pass

    @abstractmethod
    async def save_opponent_profile(self, profile: OpponentProfile) -> None:
        pass

    @abstractmethod
    async def list_opponent_profiles(self, league_id: str) -> List[OpponentProfile]:
        pass

    # Transactions
    @abstractmethod
    async def get_transaction(self, league_id: str, platform_transaction_id: str) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def add_transaction(self, transaction: Transaction) -> None:
        pass

    @abstractmethod
    async def list_transactions(self, league_id: str, season: int,
                                transaction_type: Optional[str] = None) -> List[Transaction]:
        """Newest first."""

    # Recommendations
    @abstractmethod
    async def replace_trade_recommendations(self, league_id: str, week: int, season: int,
                                            recommendations: List[TradeRecommendation]) -> None:
        pass

    @abstractmethod
    async def list_trade_recommendations(self, league_id: str, week: int, season: int,
                                         status: Optional[str] = None) -> List[TradeRecommendation]:
        """Highest priority first."""

    @abstractmethod
    async def get_trade_recommendation(self, recommendation_id: str) -> Optional[TradeRecommendation]:
        pass

    @abstractmethod
    async def save_trade_recommendation(self, recommendation: TradeRecommendation) -> None:
        pass

    @abstractmethod
    async def replace_waiver_recommendations(self, league_id: str, week: int, season: int,
                                             recommendations: List[WaiverRecommendation]) -> None:
        pass

    @abstractmethod
    async def list_waiver_recommendations(self, league_id: str, week: int, season: int,
                                          status: Optional[str] = None) -> List[WaiverRecommendation]:
        """Lowest priority rank first."""

    # Injury alerts
    @abstractmethod
    async def add_injury_alert(self, alert: InjuryAlert) -> None:
        pass

    @abstractmethod
    async def save_injury_alert(self, alert: InjuryAlert) -> None:
        pass

    @abstractmethod
    async def get_injury_alert(self, alert_id: str) -> Optional[InjuryAlert]:
        pass

    @abstractmethod
    async def list_injury_alerts(self, league_ids: Iterable[str],
                                 unacknowledged_only: bool = False) -> List[InjuryAlert]:
        """Newest first."""


class InMemoryStore(Store):
    """Dictionary-backed store; records are copied in and out."""

    def __init__(self):
        self.players: Dict[str, Player] = {}
        self.weekly_stats: Dict[Tuple[str, int, int], WeeklyStat] = {}
        self.projections: Dict[Tuple[str, int, int, str], Projection] = {}
        self.users: Dict[str, User] = {}
        self.leagues: Dict[str, League] = {}
        self.rosters: Dict[str, List[RosterSlot]] = {}
        self.opponent_profiles: Dict[Tuple[str, str], OpponentProfile] = {}
        self.transactions: Dict[Tuple[str, str], Transaction] = {}
        self.trade_recommendations: Dict[str, TradeRecommendation] = {}
        self.waiver_recommendations: Dict[str, WaiverRecommendation] = {}
        self.injury_alerts: Dict[str, InjuryAlert] = {}

    def _changed(self) -> None:
        """Hook called after every write."""

    # Players
    async def get_player(self, player_id):
        player = self.players.get(player_id)
        return player.model_copy() if player else None

    async def get_players(self, player_ids):
        return {pid: self.players[pid].model_copy() for pid in player_ids if pid in self.players}

    async def list_players(self, positions=None, statuses=None):
        players = self.players.values()
        if positions:
            players = [p for p in players if p.position.value in positions]
        if statuses:
            players = [p for p in players if p.status in statuses]
        return [p.model_copy() for p in players]

    async def upsert_player(self, player):
        created = player.id not in self.players
        self.players[player.id] = player.model_copy()
        self._changed()
        return created

    async def update_player_status(self, player_id, status, injury_designation=None):
        player = self.players.get(player_id)
        if player is None:
            return
        self.players[player_id] = player.model_copy(update={
            "status": status,
            "injury_designation": injury_designation,
            "last_updated": utc_now(),
        })
        self._changed()

    # Weekly stats
    async def upsert_weekly_stat(self, stat):
        key = (stat.player_id, stat.week, stat.season)
        created = key not in self.weekly_stats
        self.weekly_stats[key] = stat.model_copy()
        self._changed()
        return created

    async def get_weekly_stat(self, player_id, week, season):
        stat = self.weekly_stats.get((player_id, week, season))
        return stat.model_copy() if stat else None

    async def get_recent_weekly_stats(self, player_id, season, before_week, limit):
        stats = [
            s for (pid, week, s_season), s in self.weekly_stats.items()
            if pid == player_id and s_season == season and week < before_week
        ]
        stats.sort(key=lambda s: s.week, reverse=True)
        return [s.model_copy() for s in stats[:limit]]

    async def list_weekly_stats(self, season, weeks, player_ids=None):
        weeks = set(weeks)
        wanted = set(player_ids) if player_ids is not None else None
        return [
            s.model_copy() for (pid, week, s_season), s in self.weekly_stats.items()
            if s_season == season and week in weeks and (wanted is None or pid in wanted)
        ]

    # Projections
    async def upsert_projection(self, projection):
        key = (projection.player_id, projection.week, projection.season, projection.source.value)
        created = key not in self.projections
        self.projections[key] = projection.model_copy()
        self._changed()
        return created

    async def get_projection(self, player_id, week, season, source=None):
        sources = [source] if source else SOURCE_PRIORITY
        found = [
            self.projections[key] for key in
            ((player_id, week, season, candidate.value) for candidate in sources)
            if key in self.projections
        ]
        return max(found, key=projection_rank).model_copy() if found else None

    async def list_projections(self, week, season, player_ids=None):
        wanted = set(player_ids) if player_ids is not None else None
        best: Dict[str, Projection] = {}
        for (pid, p_week, p_season, _), projection in self.projections.items():
            if p_week != week or p_season != season or (wanted is not None and pid not in wanted):
                continue
            current = best.get(pid)
            if current is None or projection_rank(projection) > projection_rank(current):
                best[pid] = projection
        ordered = sorted(best.values(), key=lambda p: p.projected_points, reverse=True)
        return [p.model_copy() for p in ordered]

    async def list_projections_for_weeks(self, season, weeks, player_ids=None, source=None):
        weeks = set(weeks)
        wanted = set(player_ids) if player_ids is not None else None
        return [
            p.model_copy() for (pid, week, p_season, p_source), p in self.projections.items()
            if p_season == season and week in weeks
            and (wanted is None or pid in wanted)
            and (source is None or p_source == source.value)
        ]

    # Users and leagues
    async def get_user(self, user_id):
        user = self.users.get(user_id)
        return user.model_copy() if user else None

    async def upsert_user(self, user):
        self.users[user.id] = user.model_copy()
        self._changed()

    async def get_league(self, league_id):
        league = self.leagues.get(league_id)
        return league.model_copy() if league else None

    async def list_active_leagues(self):
        return [league.model_copy() for league in self.leagues.values() if league.is_active]

    async def upsert_league(self, league):
        self.leagues[league.id] = league.model_copy()
        self._changed()

    # Rosters
    async def get_roster(self, league_id, is_starting=None):
        slots = self.rosters.get(league_id, [])
        if is_starting is not None:
            slots = [s for s in slots if s.is_starting == is_starting]
        return [s.model_copy() for s in slots]

    async def replace_roster(self, league_id, slots):
        self.rosters[league_id] = [s.model_copy() for s in slots]
        self._changed()

    # Opponent profiles
    async def get_opponent_profile(self, league_id, team_id):
        profile = self.opponent_profiles.get((league_id, team_id))
        return profile.model_copy() if profile else None

    async def save_opponent_profile(self, profile):
        self.opponent_profiles[(profile.league_id, profile.opponent_team_id)] = profile.model_copy()
        self._changed()

    async def list_opponent_profiles(self, league_id):
        return [p.model_copy() for (lid, _), p in self.opponent_profiles.items() if lid == league_id]

    # Transactions
    async def get_transaction(self, league_id, platform_transaction_id):
        transaction = self.transactions.get((league_id, platform_transaction_id))
        return transaction.model_copy() if transaction else None

    async def add_transaction(self, transaction):
        self.transactions[(transaction.league_id, transaction.platform_transaction_id)] = transaction.model_copy()
        self._changed()

    async def list_transactions(self, league_id, season, transaction_type=None):
        transactions = [
            t for t in self.transactions.values()
            if t.league_id == league_id and t.season == season
            and (transaction_type is None or t.transaction_type == transaction_type)
        ]
        transactions.sort(key=lambda t: (t.completed_at or datetime.min.replace(tzinfo=timezone.utc), t.week),
                          reverse=True)
        return [t.model_copy() for t in transactions]

    # Recommendations
    async def replace_trade_recommendations(self, league_id, week, season, recommendations):
        self.trade_recommendations = {
            rid: rec for rid, rec in self.trade_recommendations.items()
            if not (rec.league_id == league_id and rec.week == week and rec.season == season)
        }
        for rec in recommendations:
            self.trade_recommendations[rec.id] = rec.model_copy()
        self._changed()

    async def list_trade_recommendations(self, league_id, week, season, status=None):
        recs = [
            r for r in self.trade_recommendations.values()
            if r.league_id == league_id and r.week == week and r.season == season
            and (status is None or r.status == status)
        ]
        recs.sort(key=lambda r: r.priority, reverse=True)
        return [r.model_copy() for r in recs]

    async def get_trade_recommendation(self, recommendation_id):
        rec = self.trade_recommendations.get(recommendation_id)
        return rec.model_copy() if rec else None

    async def save_trade_recommendation(self, recommendation):
        self.trade_recommendations[recommendation.id] = recommendation.model_copy()
        self._changed()

    async def replace_waiver_recommendations(self, league_id, week, season, recommendations):
        self.waiver_recommendations = {
            rid: rec for rid, rec in self.waiver_recommendations.items()
            if not (rec.league_id == league_id and rec.week == week and rec.season == season)
        }
        for rec in recommendations:
            self.waiver_recommendations[rec.id] = rec.model_copy()
        self._changed()

    async def list_waiver_recommendations(self, league_id, week, season, status=None):
        recs = [
            r for r in self.waiver_recommendations.values()
            if r.league_id == league_id and r.week == week and r.season == season
            and (status is None or r.status == status)
        ]
        recs.sort(key=lambda r: r.priority_rank)
        return [r.model_copy() for r in recs]

    # Injury alerts
    async def add_injury_alert(self, alert):
        self.injury_alerts[alert.id] = alert.model_copy()
        self._changed()

    async def save_injury_alert(self, alert):
        self.injury_alerts[alert.id] = alert.model_copy()
        self._changed()

    async def get_injury_alert(self, alert_id):
        alert = self.injury_alerts.get(alert_id)
        return alert.model_copy() if alert else None

    async def list_injury_alerts(self, league_ids, unacknowledged_only=False):
        league_ids = set(league_ids)
        alerts = [
            a for a in self.injury_alerts.values()
            if a.league_id in league_ids and not (unacknowledged_only and a.user_acknowledged)
        ]
        alerts.sort(key=lambda a: a.detected_at, reverse=True)
        return [a.model_copy() for a in alerts]


# Snapshot sections: attribute name -> (record type, key function)
_SNAPSHOT_SECTIONS = {
    "players": (Player, lambda r: r.id),
    "weekly_stats": (WeeklyStat, lambda r: (r.player_id, r.week, r.season)),
    "projections": (Projection, lambda r: (r.player_id, r.week, r.season, r.source.value)),
    "users": (User, lambda r: r.id),
    "leagues": (League, lambda r: r.id),
    "opponent_profiles": (OpponentProfile, lambda r: (r.league_id, r.opponent_team_id)),
    "transactions": (Transaction, lambda r: (r.league_id, r.platform_transaction_id)),
    "trade_recommendations": (TradeRecommendation, lambda r: r.id),
    "waiver_recommendations": (WaiverRecommendation, lambda r: r.id),
    "injury_alerts": (InjuryAlert, lambda r: r.id),
}


class JsonFileStore(InMemoryStore):
    """In-memory store persisted as a JSON snapshot on flush."""

    def __init__(self, path: str):
        """Initialize the store.

        Args:
            path: Snapshot file; loaded if it exists
        """
        super().__init__()
        self.path = Path(path)
        self._dirty = False
        self._load()

    def _changed(self) -> None:
        self._dirty = True

    async def flush(self) -> None:
        if not self._dirty:
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)
        snapshot = {
            name: [record.model_dump(mode="json") for record in getattr(self, name).values()]
            for name in _SNAPSHOT_SECTIONS
        }
        snapshot["rosters"] = {
            league_id: [slot.model_dump(mode="json") for slot in slots]
            for league_id, slots in self.rosters.items()
        }
        snapshot["timestamp"] = utc_now().isoformat()

        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            json.dump(snapshot, f)
        tmp_path.replace(self.path)
        self._dirty = False
        logger.debug(f"Saved store snapshot to {self.path}")

    def _load(self) -> None:
        if not self.path.exists():
            return

        with open(self.path, "r") as f:
            snapshot = json.load(f)

        for name, (record_type, key) in _SNAPSHOT_SECTIONS.items():
            records = (record_type.model_validate(item) for item in snapshot.get(name, []))
            setattr(self, name, {key(record): record for record in records})

        self.rosters = {
            league_id: [RosterSlot.model_validate(slot) for slot in slots]
            for league_id, slots in snapshot.get("rosters", {}).items()
        }
        logger.info(f"Loaded store snapshot from {self.path} ({len(self.players)} players)")
