"""Domain records shared by the stores, engines and monitors."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class Position(str, Enum):
    """Fantasy positions."""
    QB = "QB"
    RB = "RB"
    WR = "WR"
    TE = "TE"
    K = "K"
    DEF = "DEF"


FANTASY_POSITIONS = [p.value for p in Position]


class PlayerStatus(str, Enum):
    """Player availability."""
    ACTIVE = "Active"
    QUESTIONABLE = "Questionable"
    DOUBTFUL = "Doubtful"
    OUT = "Out"
    INACTIVE = "Inactive"


class ProjectionSource(str, Enum):
    HISTORICAL_ANALYSIS = "historical_analysis"
    POSITION_AVERAGE = "position_average"
    BASIC_ALGORITHM = "basic_algorithm"


class TrendLabel(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class UrgencyLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RecommendationStatus(str, Enum):
    PENDING = "pending"
    VIEWED = "viewed"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    DISMISSED = "dismissed"


class Player(BaseModel):
    """An NFL player as tracked by the store."""
    id: str
    full_name: str
    position: Position
    team: Optional[str] = None
    status: PlayerStatus = PlayerStatus.ACTIVE
    injury_designation: Optional[str] = None
    last_updated: datetime = Field(default_factory=utc_now)


class WeeklyStat(BaseModel):
    """Actual stats for one player in one week."""
    player_id: str
    week: int
    season: int
    stats: Dict[str, float] = Field(default_factory=dict)
    ppr_points: Optional[float] = None
    half_ppr_points: Optional[float] = None
    std_points: Optional[float] = None


class Projection(BaseModel):
    """Projected points; week 0 is a rest-of-season projection."""
    player_id: str
    week: int
    season: int
    projected_points: float
    stats: Dict[str, float] = Field(default_factory=dict)
    confidence: float = Field(ge=0.2, le=1.0)
    source: ProjectionSource
    updated_at: datetime = Field(default_factory=utc_now)


class RosterSlot(BaseModel):
    league_id: str
    player_id: str
    roster_slot: str = "BN"
    is_starting: bool = False


class NotificationPreferences(BaseModel):
    injury_alerts: bool = True
    trade_suggestions: bool = True
    waiver_reminders: bool = True
    auto_substitute: bool = False


class User(BaseModel):
    id: str
    email: str
    push_token: Optional[str] = None
    notification_preferences: NotificationPreferences = Field(default_factory=NotificationPreferences)


class League(BaseModel):
    """A user's connected league."""
    id: str
    user_id: str
    platform_league_id: str
    league_name: str = ""
    platform_team_id: Optional[str] = None
    scoring_settings: Dict[str, float] = Field(default_factory=dict)
    roster_positions: List[str] = Field(default_factory=list)
    faab_budget: Optional[int] = None
    current_faab: Optional[int] = None
    is_active: bool = True
    last_synced: Optional[datetime] = None


class OpponentProfile(BaseModel):
    """Learned preferences of one opposing roster in a league."""
    league_id: str
    opponent_team_id: str
    opponent_team_name: Optional[str] = None

    qb_preference: float = Field(default=0.5, ge=0.0, le=1.0)
    rb_preference: float = Field(default=0.5, ge=0.0, le=1.0)
    wr_preference: float = Field(default=0.5, ge=0.0, le=1.0)
    te_preference: float = Field(default=0.5, ge=0.0, le=1.0)

    risk_tolerance: float = Field(default=0.5, ge=0.0, le=1.0)
    trading_activity: float = Field(default=0.5, ge=0.0, le=1.0)
    acceptance_rate: float = Field(default=0.3, ge=0.0, le=1.0)

    total_trades_proposed: int = 0
    total_trades_accepted: int = 0
    total_trades_rejected: int = 0
    total_trades_initiated: int = 0

    prefers_stars: bool = False
    prefers_depth: bool = False
    values_safety: bool = True

    data_points: int = 0
    last_trade_date: Optional[datetime] = None
    last_updated: datetime = Field(default_factory=utc_now)

    def position_preference(self, position: str) -> Optional[float]:
        """Preference for a position, None for positions without one."""
        return getattr(self, f"{str(position).lower()}_preference", None)


class Transaction(BaseModel):
    """Local copy of a feed transaction, keyed by its external id."""
    id: str = Field(default_factory=new_id)
    league_id: str
    platform_transaction_id: str
    transaction_type: str
    status: str
    week: int
    season: int
    roster_ids: List[int] = Field(default_factory=list)
    adds: Dict[str, int] = Field(default_factory=dict)
    drops: Dict[str, int] = Field(default_factory=dict)
    creator: Optional[str] = None
    waiver_bid: Optional[int] = None
    completed_at: Optional[datetime] = None


class PlayerValue(BaseModel):
    """Valuation of one player relative to expectations."""
    player_id: str
    player_name: str
    position: str
    team: Optional[str] = None
    current_value: float
    projected_value: float
    performance_ratio: float
    z_score: float
    trend: TrendLabel
    injury_risk: float
    is_sell_high: bool
    is_buy_low: bool


class TradeRecommendation(BaseModel):
    """A ranked trade package for one (league, week, season)."""
    id: str = Field(default_factory=new_id)
    league_id: str
    week: int
    season: int
    trade_type: str
    my_players: List[PlayerValue]
    target_players: List[PlayerValue]
    target_team_id: str
    target_team_name: str = ""
    fairness_score: float
    acceptance_probability: float
    my_value_gain: float
    target_value_gain: float
    reasoning: str = ""
    confidence: float = 0.0
    priority: int = 0
    status: RecommendationStatus = RecommendationStatus.PENDING
    created_at: datetime = Field(default_factory=utc_now)
    responded_at: Optional[datetime] = None


class WaiverRecommendation(BaseModel):
    """A ranked waiver claim for one (league, week, season)."""
    id: str = Field(default_factory=new_id)
    league_id: str
    week: int
    season: int
    player_id: str
    player_name: str
    position: str
    team: Optional[str] = None
    opportunity_score: float
    projected_points: float
    recent_performance: float = 0.0
    add_trend_percentage: float = 0.0
    positional_need: float
    would_start_immediately: bool = False
    bench_depth_score: float = 0.0
    recommended_bid: Optional[int] = None
    min_bid: Optional[int] = None
    max_bid: Optional[int] = None
    median_historical_bid: Optional[float] = None
    priority_rank: int = 0
    should_claim: bool = False
    suggested_drop_player_id: Optional[str] = None
    suggested_drop_player_name: Optional[str] = None
    drop_player_value: Optional[float] = None
    reasoning: str = ""
    confidence: float = 0.0
    urgency: UrgencyLevel = UrgencyLevel.MEDIUM
    status: RecommendationStatus = RecommendationStatus.PENDING


class InjuryAlert(BaseModel):
    """One detected status transition for a rostered player near kickoff."""
    id: str = Field(default_factory=new_id)
    league_id: str
    week: int
    season: int
    injured_player_id: str
    injured_player_name: str
    position: str
    team: Optional[str] = None
    previous_status: str
    new_status: str
    injury_designation: Optional[str] = None
    game_time: datetime
    game_id: str
    opponent: Optional[str] = None
    minutes_to_kickoff: int
    is_urgent: bool = False
    urgency_level: UrgencyLevel
    recommended_sub_player_id: Optional[str] = None
    recommended_sub_player_name: Optional[str] = None
    recommended_sub_projection: Optional[float] = None
    auto_substituted: bool = False
    notification_sent: bool = False
    notification_sent_at: Optional[datetime] = None
    user_acknowledged: bool = False
    acknowledged_at: Optional[datetime] = None
    user_substituted: bool = False
    detected_at: datetime = Field(default_factory=utc_now)


class SyncResult(BaseModel):
    """Outcome of a batch operation; per-item failures land in ``errors``."""
    success: bool = True
    total: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[str] = Field(default_factory=list)
