"""Fantasy football scoring system configurations."""

from enum import Enum
from typing import Dict, Optional
from pydantic import BaseModel


class ScoringType(str, Enum):
    """Supported fantasy scoring systems."""
    STANDARD = "standard"
    PPR = "ppr"
    HALF_PPR = "half_ppr"
    CUSTOM = "custom"


# Yardage bonuses: (setting key, stat key, threshold)
YARDAGE_BONUSES = [
    ("bonus_pass_yd_300", "pass_yd", 300),
    ("bonus_pass_yd_400", "pass_yd", 400),
    ("bonus_rush_yd_100", "rush_yd", 100),
    ("bonus_rush_yd_200", "rush_yd", 200),
    ("bonus_rec_yd_100", "rec_yd", 100),
    ("bonus_rec_yd_200", "rec_yd", 200),
]


class ScoringSystem(BaseModel):
    """Fantasy football scoring configuration keyed by feed stat names."""

    # Passing
    pass_yd: float = 0.04  # 1 point per 25 yards
    pass_td: float = 4.0
    pass_int: float = -2.0
    pass_2pt: float = 2.0

    # Rushing
    rush_yd: float = 0.1  # 1 point per 10 yards
    rush_td: float = 6.0
    rush_2pt: float = 2.0

    # Receiving
    rec: float = 0.0  # PPR bonus
    rec_yd: float = 0.1
    rec_td: float = 6.0
    rec_2pt: float = 2.0

    # Fumbles
    fum_lost: float = -2.0

    # Bonuses
    bonus_pass_yd_300: float = 0.0
    bonus_pass_yd_400: float = 0.0
    bonus_rush_yd_100: float = 0.0
    bonus_rush_yd_200: float = 0.0
    bonus_rec_yd_100: float = 0.0
    bonus_rec_yd_200: float = 0.0

    @classmethod
    def get_scoring_system(cls, scoring_type: ScoringType) -> "ScoringSystem":
        """Get predefined scoring system."""
        if scoring_type == ScoringType.STANDARD:
            return cls()
        elif scoring_type == ScoringType.PPR:
            return cls(rec=1.0)
        elif scoring_type == ScoringType.HALF_PPR:
            return cls(rec=0.5)
        else:
            raise ValueError(f"Unknown scoring type: {scoring_type}")

    @classmethod
    def from_league_settings(cls, scoring_settings: Dict[str, float]) -> "ScoringSystem":
        """Build a scoring system from a league's scoring settings.

        Stats the league does not mention score zero, matching how the
        platform treats absent keys.
        """
        values = {name: float(scoring_settings.get(name, 0.0)) for name in cls.model_fields}
        return cls(**values)

    def calculate_fantasy_points(self, stats: Dict[str, float]) -> float:
        """Calculate fantasy points for a raw stat bag."""
        points = 0.0

        for stat in ("pass_yd", "pass_td", "pass_int", "pass_2pt",
                     "rush_yd", "rush_td", "rush_2pt",
                     "rec", "rec_yd", "rec_td", "rec_2pt", "fum_lost"):
            points += (stats.get(stat) or 0) * getattr(self, stat)

        for setting, stat, threshold in YARDAGE_BONUSES:
            bonus = getattr(self, setting)
            if bonus and (stats.get(stat) or 0) >= threshold:
                points += bonus

        return round(points, 2)


def detect_scoring_type(scoring_settings: Optional[Dict[str, float]]) -> ScoringType:
    """Detect the scoring type from league settings.

    Args:
        scoring_settings: League scoring settings (may be None)

    Returns:
        PPR for 1 point per reception, HALF_PPR for 0.5, STANDARD for 0 or
        missing, CUSTOM otherwise
    """
    rec_points = (scoring_settings or {}).get("rec", 0) or 0

    if rec_points == 1:
        return ScoringType.PPR
    if rec_points == 0.5:
        return ScoringType.HALF_PPR
    if rec_points == 0:
        return ScoringType.STANDARD
    return ScoringType.CUSTOM


def points_for_week(stat, scoring_settings: Optional[Dict[str, float]]) -> float:
    """Fantasy points for one weekly stat record under a league's scoring.

    Precomputed platform totals are used for the standard scoring types when
    present; anything else is scored from the raw stat bag.

    Args:
        stat: WeeklyStat record
        scoring_settings: League scoring settings (None means PPR)

    Returns:
        Fantasy points for the week
    """
    if scoring_settings is None:
        if stat.ppr_points is not None:
            return stat.ppr_points
        return ScoringSystem.get_scoring_system(ScoringType.PPR).calculate_fantasy_points(stat.stats)

    scoring_type = detect_scoring_type(scoring_settings)

    if scoring_type == ScoringType.PPR and stat.ppr_points is not None:
        return stat.ppr_points
    if scoring_type == ScoringType.HALF_PPR and stat.half_ppr_points is not None:
        return stat.half_ppr_points
    if scoring_type == ScoringType.STANDARD and stat.std_points is not None:
        return stat.std_points

    return ScoringSystem.from_league_settings(scoring_settings).calculate_fantasy_points(stat.stats)
