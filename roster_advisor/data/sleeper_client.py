"""Sleeper API client for league, player, stat and transaction data.

Raw feed payloads are decoded into the typed records below at this boundary;
nothing past this module handles untyped JSON.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..config.settings import Settings

logger = logging.getLogger(__name__)

SLEEPER_BASE_URL = "https://api.sleeper.app/v1"


class _FeedRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")


class SleeperLeague(_FeedRecord):
    league_id: str
    name: str = ""
    season: str = ""
    settings: Dict[str, Any] = Field(default_factory=dict)
    scoring_settings: Dict[str, float] = Field(default_factory=dict)
    roster_positions: List[str] = Field(default_factory=list)

    @property
    def waiver_budget(self) -> Optional[int]:
        return self.settings.get("waiver_budget")


class SleeperRoster(_FeedRecord):
    roster_id: int
    owner_id: Optional[str] = None
    players: List[str] = Field(default_factory=list)
    starters: List[str] = Field(default_factory=list)
    settings: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("players", "starters", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return value or []

    @property
    def waiver_budget_used(self) -> Optional[int]:
        used = self.settings.get("waiver_budget_used")
        return None if used is None else int(used)


class SleeperUser(_FeedRecord):
    user_id: str
    display_name: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def _none_to_dict(cls, value):
        return value or {}

    @property
    def team_name(self) -> str:
        return self.metadata.get("team_name") or self.display_name


class SleeperPlayer(_FeedRecord):
    player_id: str
    full_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    position: Optional[str] = None
    team: Optional[str] = None
    status: Optional[str] = None
    injury_status: Optional[str] = None
    injury_body_part: Optional[str] = None
    active: bool = True

    @property
    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        return " ".join(part for part in (self.first_name, self.last_name) if part) or self.player_id


class SleeperTransaction(_FeedRecord):
    transaction_id: str
    type: str
    status: str = ""
    roster_ids: List[int] = Field(default_factory=list)
    adds: Dict[str, int] = Field(default_factory=dict)
    drops: Dict[str, int] = Field(default_factory=dict)
    creator: Optional[str] = None
    settings: Dict[str, Any] = Field(default_factory=dict)
    leg: Optional[int] = None
    status_updated: Optional[int] = None

    @field_validator("roster_ids", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return value or []

    @field_validator("adds", "drops", "settings", mode="before")
    @classmethod
    def _none_to_dict(cls, value):
        return value or {}

    @property
    def waiver_bid(self) -> Optional[int]:
        return self.settings.get("waiver_bid")

    @property
    def completed_at(self) -> Optional[datetime]:
        if self.status_updated is None:
            return None
        return datetime.fromtimestamp(self.status_updated / 1000, tz=timezone.utc)


class TrendingPlayer(_FeedRecord):
    player_id: str
    count: int = 0


class NflState(_FeedRecord):
    week: int = 0
    season: int
    season_type: str = "regular"


class SleeperClient:
    """Fetches data from the Sleeper API with retries.

    Transport is synchronous ``requests``; the public coroutine methods run it
    in a worker thread so callers stay on the event loop.
    """

    def __init__(self,
                 base_url: str = SLEEPER_BASE_URL,
                 timeout: float = 20,
                 max_retries: int = 2,
                 backoff_factor: float = 0.5,
                 session: Optional[requests.Session] = None):
        """Initialize the client.

        Args:
            base_url: API root
            timeout: Per-request timeout in seconds
            max_retries: Retries after the first failed attempt
            backoff_factor: Base of the exponential backoff between attempts
            session: Optional requests session to reuse
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "SleeperClient":
        return cls(base_url=settings.sleeper_base_url,
                   timeout=settings.request_timeout,
                   max_retries=settings.max_retries,
                   backoff_factor=settings.backoff_factor)

    def close(self) -> None:
        self.session.close()

    def fetch_json(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        """Fetch a JSON document with retries.

        Args:
            endpoint: Path below the API root, e.g. ``/league/123``
            params: Optional query parameters

        Returns:
            Decoded JSON or None if every attempt failed
        """
        url = f"{self.base_url}{endpoint}"

        for attempt in range(self.max_retries + 1):
            try:
                logger.debug(f"GET {url} (attempt {attempt + 1})")
                response = self.session.get(url, params=params, timeout=self.timeout)
                response.raise_for_status()
                return response.json()

            except (requests.exceptions.RequestException, ValueError) as e:
                logger.warning(f"Sleeper request {endpoint} attempt {attempt + 1} failed: {e}")
                if attempt < self.max_retries:
                    time.sleep(self.backoff_factor * (2 ** attempt))

        logger.error(f"All attempts failed to fetch {endpoint}")
        return None

    async def _get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        return await asyncio.to_thread(self.fetch_json, endpoint, params)

    async def get_league(self, league_id: str) -> Optional[SleeperLeague]:
        data = await self._get(f"/league/{league_id}")
        return _decode_one(SleeperLeague, data)

    async def get_rosters(self, league_id: str) -> Optional[List[SleeperRoster]]:
        data = await self._get(f"/league/{league_id}/rosters")
        return _decode_many(SleeperRoster, data)

    async def get_league_users(self, league_id: str) -> Optional[List[SleeperUser]]:
        data = await self._get(f"/league/{league_id}/users")
        return _decode_many(SleeperUser, data)

    async def get_players(self) -> Optional[Dict[str, SleeperPlayer]]:
        """Fetch every NFL player keyed by player id."""
        data = await self._get("/players/nfl")
        if not isinstance(data, dict):
            return None

        players = {}
        for player_id, player_data in data.items():
            if not isinstance(player_data, dict):
                continue
            try:
                players[player_id] = SleeperPlayer.model_validate({**player_data, "player_id": player_id})
            except ValidationError as e:
                logger.debug(f"Skipping malformed player {player_id}: {e}")

        logger.info(f"Fetched {len(players)} players from Sleeper")
        return players

    async def get_transactions(self, league_id: str, week: int) -> Optional[List[SleeperTransaction]]:
        data = await self._get(f"/league/{league_id}/transactions/{week}")
        return _decode_many(SleeperTransaction, data)

    async def get_week_stats(self, season: int, week: int) -> Optional[Dict[str, Dict[str, float]]]:
        """Fetch the regular-season stat bags for one week.

        Returns:
            Mapping of player id to numeric stats, or None on failure
        """
        data = await self._get(f"/stats/nfl/regular/{season}/{week}")
        if data is None:
            return None

        if isinstance(data, list):
            items = ((row.get("player_id"), row.get("stats")) for row in data if isinstance(row, dict))
        elif isinstance(data, dict):
            items = data.items()
        else:
            return None

        stats = {}
        for player_id, bag in items:
            if not player_id or not isinstance(bag, dict):
                continue
            stats[str(player_id)] = {
                key: float(value) for key, value in bag.items()
                if isinstance(value, (int, float)) and not isinstance(value, bool)
            }
        return stats

    async def get_trending(self, kind: str = "add", lookback_hours: int = 24,
                           limit: int = 25) -> List[TrendingPlayer]:
        data = await self._get(f"/players/nfl/trending/{kind}",
                               {"lookback_hours": lookback_hours, "limit": limit})
        return _decode_many(TrendingPlayer, data) or []

    async def get_nfl_state(self) -> Optional[NflState]:
        data = await self._get("/state/nfl")
        return _decode_one(NflState, data)


def _decode_one(model, data):
    if not isinstance(data, dict):
        return None
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.error(f"Malformed {model.__name__} payload: {e}")
        return None


def _decode_many(model, data):
    if not isinstance(data, list):
        return None
    records = []
    for item in data:
        if not isinstance(item, dict):
            continue
        try:
            records.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping malformed {model.__name__}: {e}")
    return records
