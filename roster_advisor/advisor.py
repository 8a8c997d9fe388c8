"""Programmatic entry points for projections, trades, waivers and injury alerts.

``RosterAdvisor`` validates arguments, delegates to the engines and owns the
lifecycle of the long-running components (injury monitor and job scheduler).
``build_advisor`` wires every component from ``Settings``.
"""

import logging
from typing import Dict, List, Optional

from .config.settings import Settings
from .data.cache import CacheService, create_backend
from .data.records import (
    InjuryAlert,
    Projection,
    RecommendationStatus,
    TradeRecommendation,
    WaiverRecommendation,
    utc_now,
)
from .data.sleeper_client import SleeperClient
from .data.stats_service import StatsService
from .data.store import JsonFileStore, Store
from .data.sync import PlayerSync
from .errors import InvalidRequestError, NotFoundError
from .jobs.scheduler import JobScheduler
from .jobs.tasks import SyncTasks
from .models.opponent_learning import OpponentLearner
from .models.projection_engine import ProjectionEngine
from .models.trade_generator import MAX_PLAYERS_PER_SIDE, TradeGenerator, TradePackage
from .models.valuation import ValuationEngine
from .models.waiver_optimizer import FaabBid, WaiverOptimizer
from .monitoring.injury_monitor import InjuryMonitor
from .notifications import LoggingDispatcher, NotificationDispatcher
from .utils.nfl import REGULAR_SEASON_WEEKS

logger = logging.getLogger(__name__)

RESPONSE_STATUSES = (
    RecommendationStatus.VIEWED,
    RecommendationStatus.ACCEPTED,
    RecommendationStatus.REJECTED,
    RecommendationStatus.DISMISSED,
)


def _require_id(name: str, value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequestError(f"{name} must be a non-empty string")
    return value


def _require_week(week, allow_season: bool = True) -> int:
    lowest = 0 if allow_season else 1
    if not isinstance(week, int) or isinstance(week, bool) or not lowest <= week <= REGULAR_SEASON_WEEKS:
        raise InvalidRequestError(f"week must be an integer between {lowest} and {REGULAR_SEASON_WEEKS}")
    return week


def _require_season(season) -> int:
    if not isinstance(season, int) or isinstance(season, bool) or season < 1999:
        raise InvalidRequestError("season must be a year")
    return season


def _require_unit(name: str, value) -> float:
    if not isinstance(value, (int, float)) or isinstance(value, bool) or not 0.0 <= value <= 1.0:
        raise InvalidRequestError(f"{name} must be between 0 and 1")
    return float(value)


def _require_player_ids(name: str, ids) -> List[str]:
    if not isinstance(ids, (list, tuple)) or not 1 <= len(ids) <= MAX_PLAYERS_PER_SIDE:
        raise InvalidRequestError(f"{name} must name 1 to {MAX_PLAYERS_PER_SIDE} players")
    return [_require_id(name, pid) for pid in ids]


class RosterAdvisor:
    """Facade over the projection, trade, waiver and injury components."""

    def __init__(self, store: Store, cache: CacheService, feed: SleeperClient,
                 stats_service: StatsService, projection_engine: ProjectionEngine,
                 valuation: ValuationEngine, learner: OpponentLearner,
                 trade_generator: TradeGenerator, waiver_optimizer: WaiverOptimizer,
                 monitor: InjuryMonitor, scheduler: JobScheduler,
                 player_sync: PlayerSync, tasks: SyncTasks):
        self.store = store
        self.cache = cache
        self.feed = feed
        self.stats_service = stats_service
        self.projection_engine = projection_engine
        self.valuation = valuation
        self.learner = learner
        self.trade_generator = trade_generator
        self.waiver_optimizer = waiver_optimizer
        self.monitor = monitor
        self.scheduler = scheduler
        self.player_sync = player_sync
        self.tasks = tasks

    # Lifecycle

    async def start(self) -> None:
        await self.monitor.start()
        await self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()
        await self.monitor.stop()
        await self.store.flush()

    def close(self) -> None:
        self.cache.close()
        self.feed.close()

    # Projections

    async def get_projection(self, player_id: str, week: int, season: int) -> Optional[Projection]:
        """Projection for one player; None when none has been generated yet."""
        _require_id("player_id", player_id)
        _require_week(week)
        _require_season(season)
        if await self.store.get_player(player_id) is None:
            raise NotFoundError(f"Player {player_id} not found")
        return await self.stats_service.get_projection(player_id, week, season)

    async def get_projections(self, player_ids: List[str], week: int, season: int) -> Dict[str, Projection]:
        if not isinstance(player_ids, (list, tuple)) or not player_ids:
            raise InvalidRequestError("player_ids must be a non-empty list")
        ids = [_require_id("player_ids", pid) for pid in player_ids]
        _require_week(week)
        _require_season(season)
        return await self.stats_service.get_players_projections(ids, week, season)

    async def get_top_projections(self, week: int, season: int, position: Optional[str] = None,
                                  limit: int = 50) -> List[Projection]:
        _require_week(week)
        _require_season(season)
        if not isinstance(limit, int) or limit < 1:
            raise InvalidRequestError("limit must be a positive integer")
        return await self.stats_service.get_top_projected_players(
            week, season, position.upper() if position else None, limit)

    # Trades

    async def generate_trade_recommendations(self, league_id: str, season: int, week: int,
                                             max_packages: Optional[int] = None) -> List[TradeRecommendation]:
        _require_id("league_id", league_id)
        _require_season(season)
        _require_week(week, allow_season=False)
        recommendations = await self.trade_generator.generate_and_save(league_id, season, week, max_packages)
        await self.store.flush()
        return recommendations

    async def get_trade_recommendations(self, league_id: str, week: int, season: int,
                                        status: Optional[str] = RecommendationStatus.PENDING.value
                                        ) -> List[TradeRecommendation]:
        _require_id("league_id", league_id)
        _require_week(week, allow_season=False)
        _require_season(season)
        return await self.trade_generator.get_recommendations(league_id, week, season, status)

    async def evaluate_trade(self, league_id: str, my_player_ids: List[str], target_player_ids: List[str],
                             target_team_id: str, season: int, week: int) -> TradePackage:
        _require_id("league_id", league_id)
        my_ids = _require_player_ids("my_player_ids", my_player_ids)
        target_ids = _require_player_ids("target_player_ids", target_player_ids)
        _require_id("target_team_id", target_team_id)
        _require_season(season)
        _require_week(week, allow_season=False)
        return await self.trade_generator.evaluate_custom_trade(
            league_id, my_ids, target_ids, target_team_id, season, week)

    async def track_trade_response(self, recommendation_id: str, status: str) -> TradeRecommendation:
        _require_id("recommendation_id", recommendation_id)
        try:
            response = RecommendationStatus(status)
        except ValueError:
            raise InvalidRequestError(f"Unknown response status: {status}")
        if response not in RESPONSE_STATUSES:
            raise InvalidRequestError(f"Unknown response status: {status}")

        recommendation = await self.trade_generator.track_response(recommendation_id, response)
        await self.store.flush()
        return recommendation

    # Waivers

    async def generate_waiver_recommendations(self, league_id: str, season: int, week: int,
                                              use_faab: bool = True,
                                              max_recommendations: Optional[int] = None
                                              ) -> List[WaiverRecommendation]:
        _require_id("league_id", league_id)
        _require_season(season)
        _require_week(week, allow_season=False)
        recommendations = await self.waiver_optimizer.generate_recommendations(
            league_id, season, week, use_faab, max_recommendations)
        saved = await self.waiver_optimizer.save_recommendations(league_id, week, season, recommendations)
        await self.store.flush()
        return saved

    async def get_waiver_recommendations(self, league_id: str, week: int,
                                         season: int) -> List[WaiverRecommendation]:
        _require_id("league_id", league_id)
        _require_week(week, allow_season=False)
        _require_season(season)
        return await self.waiver_optimizer.get_recommendations(league_id, week, season)

    async def calculate_faab_bid(self, league_id: str, player_id: str, opportunity_score: float,
                                 positional_need: float, add_trend_percentage: float,
                                 season: int) -> FaabBid:
        _require_id("league_id", league_id)
        _require_id("player_id", player_id)
        _require_unit("opportunity_score", opportunity_score)
        _require_unit("positional_need", positional_need)
        if not isinstance(add_trend_percentage, (int, float)) or add_trend_percentage < 0:
            raise InvalidRequestError("add_trend_percentage must be a non-negative number")
        _require_season(season)
        return await self.waiver_optimizer.calculate_faab_bid(
            league_id, player_id, opportunity_score, positional_need, add_trend_percentage, season)

    # Injury alerts

    async def get_injury_alerts(self, user_id: str, unacknowledged_only: bool = False) -> List[InjuryAlert]:
        _require_id("user_id", user_id)
        if await self.store.get_user(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        leagues = [league.id for league in await self.store.list_active_leagues() if league.user_id == user_id]
        return await self.store.list_injury_alerts(leagues, unacknowledged_only)

    async def acknowledge_alert(self, alert_id: str, substituted: bool = False) -> InjuryAlert:
        _require_id("alert_id", alert_id)
        if not isinstance(substituted, bool):
            raise InvalidRequestError("substituted must be a boolean")

        alert = await self.store.get_injury_alert(alert_id)
        if alert is None:
            raise NotFoundError(f"Injury alert {alert_id} not found")

        alert = alert.model_copy(update={
            'user_acknowledged': True,
            'acknowledged_at': utc_now(),
            'user_substituted': substituted,
        })
        await self.store.save_injury_alert(alert)
        await self.store.flush()
        return alert

    def get_monitoring_status(self) -> Dict:
        status = self.monitor.get_status()
        status['scheduler_running'] = self.scheduler.is_running
        return status


def build_advisor(settings: Optional[Settings] = None, store: Optional[Store] = None,
                  feed: Optional[SleeperClient] = None,
                  dispatcher: Optional[NotificationDispatcher] = None) -> RosterAdvisor:
    """Wire every component from settings; collaborators can be swapped for tests."""
    settings = settings or Settings()
    store = store or JsonFileStore(settings.store_path)
    feed = feed or SleeperClient.from_settings(settings)
    cache = CacheService(create_backend(settings.redis_url, settings.cache_prefix))

    stats_service = StatsService(store, cache, feed, chunk_size=settings.sync_chunk_size)
    projection_engine = ProjectionEngine(store, stats_service, lookback=settings.projection_lookback,
                                         chunk_size=settings.projection_chunk_size)
    valuation = ValuationEngine(store, stats_service, cache, feed, lookback=settings.valuation_lookback)
    learner = OpponentLearner(store, feed)
    trade_generator = TradeGenerator(store, valuation, learner, max_packages=settings.max_trade_packages)
    waiver_optimizer = WaiverOptimizer(store, stats_service, feed,
                                       default_budget=settings.default_faab_budget,
                                       max_recommendations=settings.max_waiver_recommendations)
    player_sync = PlayerSync(store, feed, chunk_size=settings.sync_chunk_size)
    tasks = SyncTasks(store, feed, player_sync, stats_service, projection_engine, learner,
                      week_delay=settings.backfill_week_delay)
    monitor = InjuryMonitor(store, feed, stats_service, dispatcher or LoggingDispatcher(),
                            timezone=settings.league_timezone, cache_size=settings.status_cache_size)
    scheduler = JobScheduler(tasks)

    return RosterAdvisor(
        store=store,
        cache=cache,
        feed=feed,
        stats_service=stats_service,
        projection_engine=projection_engine,
        valuation=valuation,
        learner=learner,
        trade_generator=trade_generator,
        waiver_optimizer=waiver_optimizer,
        monitor=monitor,
        scheduler=scheduler,
        player_sync=player_sync,
        tasks=tasks,
    )
