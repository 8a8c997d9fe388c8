"""Injury monitoring around kickoff.

The monitor polls the feed during game windows, compares each rostered
player's status with the last status it saw, and raises an alert when a
player turns Out close to kickoff. Alerts carry the best bench substitute and
are handed to the notification dispatcher.
"""

import asyncio
import logging
from collections import OrderedDict
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel

from ..data.records import (
    InjuryAlert,
    League,
    Player,
    PlayerStatus,
    User,
    utc_now,
)
from ..data.sleeper_client import SleeperClient, SleeperPlayer
from ..data.stats_service import StatsService
from ..data.store import Store
from ..models.injury_gate import normalize_status
from ..notifications import AlertNotification, NotificationDispatcher
from ..utils.nfl import current_nfl_season, current_nfl_week
from .game_windows import (
    NORMAL_INTERVAL_SECONDS,
    GameInfo,
    build_weekly_schedule,
    find_game,
    in_alert_window,
    is_within_game_window,
    polling_interval,
    urgency_for,
)

logger = logging.getLogger(__name__)

SUBSTITUTE_STATUSES = (PlayerStatus.ACTIVE, PlayerStatus.QUESTIONABLE)


class StatusCache:
    """Last-seen player statuses, bounded with least-recently-used eviction."""

    def __init__(self, max_size: int = 5000):
        self.max_size = max_size
        self._statuses: "OrderedDict[str, str]" = OrderedDict()

    def get(self, player_id: str) -> Optional[str]:
        status = self._statuses.get(player_id)
        if status is not None:
            self._statuses.move_to_end(player_id)
        return status

    def set(self, player_id: str, status: str) -> None:
        self._statuses[player_id] = status
        self._statuses.move_to_end(player_id)
        while len(self._statuses) > self.max_size:
            self._statuses.popitem(last=False)

    def clear(self) -> None:
        self._statuses.clear()

    def __len__(self) -> int:
        return len(self._statuses)


class Substitution(BaseModel):
    player: Player
    projected_points: float
    kickoff: Optional[datetime] = None


class InjuryMonitor:
    """Polls player statuses for every active league while games approach."""

    def __init__(self, store: Store, feed: SleeperClient, stats_service: StatsService,
                 dispatcher: NotificationDispatcher, timezone: str = 'America/New_York',
                 clock: Optional[Callable[[], datetime]] = None, cache_size: int = 5000):
        """Initialize the monitor.

        Args:
            store: Store for leagues, rosters, users and alerts
            feed: Feed providing fresh player statuses
            stats_service: Projection reads for substitute ranking
            dispatcher: Notification delivery channel
            timezone: League timezone used for game windows and kickoffs
            clock: Returns the current aware datetime; defaults to UTC now
            cache_size: Maximum players kept in the status cache
        """
        self.store = store
        self.feed = feed
        self.stats_service = stats_service
        self.dispatcher = dispatcher
        self.timezone = timezone
        self.clock = clock or utc_now
        self.status_cache = StatusCache(cache_size)

        self._task: Optional[asyncio.Task] = None
        self._interval = NORMAL_INTERVAL_SECONDS
        self._last_poll: Optional[datetime] = None

    @property
    def is_monitoring(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_monitoring:
            logger.info("Injury monitor already running")
            return

        logger.info("Starting injury monitor")
        self._interval = NORMAL_INTERVAL_SECONDS
        self._task = asyncio.create_task(self._run_loop())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        self.status_cache.clear()
        logger.info("Injury monitor stopped")

    async def _run_loop(self) -> None:
        await self.poll_once()
        while True:
            await asyncio.sleep(self._interval)
            if is_within_game_window(self.clock(), self.timezone):
                await self.poll_once()
            else:
                logger.debug("Outside game window, skipping status check")

    async def poll_once(self) -> List[InjuryAlert]:
        """Run one status check across all active leagues.

        Exceptions are logged and swallowed so the next poll still runs.
        """
        try:
            return await self._poll()
        except Exception:
            logger.exception("Error during injury monitoring")
            return []

    async def _poll(self) -> List[InjuryAlert]:
        now = self.clock()
        self._last_poll = now
        logger.info(f"Running status check at {now.isoformat()}")

        leagues = await self.store.list_active_leagues()
        if not leagues:
            logger.info("No active leagues to monitor")
            return []

        fresh_players = await self.feed.get_players()
        if fresh_players is None:
            logger.warning("Player feed unavailable, skipping status check")
            return []

        week, season = current_nfl_week(now), current_nfl_season(now)

        rosters: Dict[str, List[str]] = {}
        for league in leagues:
            rosters[league.id] = [slot.player_id for slot in await self.store.get_roster(league.id)]
        rostered = await self.store.get_players(pid for ids in rosters.values() for pid in ids)

        games = build_weekly_schedule((p.team for p in rostered.values()), week, season, now, self.timezone)
        changes = self._detect_changes(rostered, fresh_players)

        alerts = []
        for league in leagues:
            for player_id in rosters[league.id]:
                if player_id not in changes:
                    continue
                previous, fresh = changes[player_id]
                alert = await self._check_player(league, rostered[player_id], previous, fresh,
                                                 games, now, week, season)
                if alert is not None:
                    alerts.append(alert)

        for player_id, player in rostered.items():
            fresh = fresh_players.get(player_id)
            if fresh is None:
                continue
            status = normalize_status(fresh.status, fresh.injury_status, fresh.active)
            self.status_cache.set(player_id, status.value)
            if status != player.status or fresh.injury_body_part != player.injury_designation:
                await self.store.update_player_status(player_id, status, fresh.injury_body_part)
        await self.store.flush()

        new_interval = polling_interval(games, now)
        if new_interval != self._interval:
            logger.info(f"Adjusting polling interval to {new_interval}s")
            self._interval = new_interval

        return alerts

    def _detect_changes(self, rostered: Dict[str, Player],
                        fresh_players: Dict[str, SleeperPlayer]) -> Dict[str, Tuple[str, SleeperPlayer]]:
        """Players whose fresh status is Out and differs from the last one seen."""
        changes = {}
        for player_id, player in rostered.items():
            fresh = fresh_players.get(player_id)
            if fresh is None:
                continue
            previous = self.status_cache.get(player_id) or player.status.value
            current = normalize_status(fresh.status, fresh.injury_status, fresh.active)
            if previous != current.value and current == PlayerStatus.OUT:
                changes[player_id] = (previous, fresh)
        return changes

    async def _check_player(self, league: League, player: Player, previous: str, fresh: SleeperPlayer,
                            games: List[GameInfo], now: datetime, week: int,
                            season: int) -> Optional[InjuryAlert]:
        team = fresh.team or player.team
        game = find_game(games, team)
        if game is None:
            return None

        minutes = game.minutes_to_kickoff(now)
        if not in_alert_window(minutes):
            return None

        return await self._handle_alert(league, player, previous, fresh, team, game, games, minutes, week, season)

    async def _handle_alert(self, league: League, player: Player, previous: str, fresh: SleeperPlayer,
                            team: str, game: GameInfo, games: List[GameInfo], minutes: int, week: int,
                            season: int) -> InjuryAlert:
        logger.warning(f"Injury alert: {player.full_name} is OUT, {minutes} min to kickoff")

        substitution = await self.find_best_substitution(
            league.id, player.id, player.position.value, game.kickoff, season, week, games)
        urgency, is_urgent = urgency_for(minutes)

        alert = InjuryAlert(
            league_id=league.id,
            week=week,
            season=season,
            injured_player_id=player.id,
            injured_player_name=player.full_name,
            position=player.position.value,
            team=team,
            previous_status=previous,
            new_status=PlayerStatus.OUT.value,
            injury_designation=fresh.injury_body_part,
            game_time=game.kickoff,
            game_id=game.game_id,
            opponent=game.opponent_of(team),
            minutes_to_kickoff=minutes,
            is_urgent=is_urgent,
            urgency_level=urgency,
            recommended_sub_player_id=substitution.player.id if substitution else None,
            recommended_sub_player_name=substitution.player.full_name if substitution else None,
            recommended_sub_projection=substitution.projected_points if substitution else None,
        )
        await self.store.add_injury_alert(alert)

        user = await self.store.get_user(league.user_id)
        if user is not None:
            if user.notification_preferences.auto_substitute and substitution is not None:
                # Advisory only; the feed is read-only
                logger.info(f"Auto-substitute {player.full_name} -> {substitution.player.full_name}")
                alert.auto_substituted = True

            if user.notification_preferences.injury_alerts:
                await self._notify(user, alert)

        await self.store.save_injury_alert(alert)
        return alert

    async def _notify(self, user: User, alert: InjuryAlert) -> None:
        try:
            sent = await self.dispatcher.send(user, AlertNotification.from_alert(alert))
        except Exception as e:
            logger.error(f"Failed to send injury notification to {user.email}: {e}")
            return

        if sent:
            alert.notification_sent = True
            alert.notification_sent_at = self.clock()

    async def find_best_substitution(self, league_id: str, injured_player_id: str, position: str,
                                     injured_kickoff: datetime, season: int, week: int,
                                     games: Optional[List[GameInfo]] = None) -> Optional[Substitution]:
        """Best bench player at the same position whose game has not started.

        Candidates are ranked by projected points; ties go to the later
        kickoff. Bench players without a known game are assumed to play at
        the injured player's kickoff.
        """
        now = self.clock()
        bench = await self.store.get_roster(league_id, is_starting=False)
        players = await self.store.get_players(s.player_id for s in bench if s.player_id != injured_player_id)
        candidates = [p for p in players.values()
                      if p.position.value == position and p.status in SUBSTITUTE_STATUSES]
        if not candidates:
            return None

        if games is None:
            roster = await self.store.get_players(s.player_id for s in await self.store.get_roster(league_id))
            games = build_weekly_schedule((p.team for p in roster.values()), week, season, now, self.timezone)

        options = []
        for candidate in candidates:
            game = find_game(games, candidate.team)
            kickoff = game.kickoff if game else injured_kickoff
            if kickoff <= now:
                continue
            projection = await self.stats_service.get_projection(candidate.id, week, season)
            if projection is None:
                projection = await self.stats_service.get_projection(candidate.id, 0, season)
            points = projection.projected_points if projection else 0.0
            options.append(Substitution(player=candidate, projected_points=points, kickoff=kickoff))

        if not options:
            return None
        return max(options, key=lambda s: (s.projected_points, s.kickoff))

    def get_status(self) -> Dict:
        now = self.clock()
        return {
            'is_monitoring': self.is_monitoring,
            'is_within_game_window': is_within_game_window(now, self.timezone),
            'cached_players': len(self.status_cache),
            'polling_interval_seconds': self._interval,
            'last_poll': self._last_poll.isoformat() if self._last_poll else None,
        }
