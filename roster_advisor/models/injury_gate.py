"""Injury gate policy layer - deterministic rules for availability."""

from typing import Dict, Iterable, Optional
import logging

from ..data.records import PlayerStatus

logger = logging.getLogger(__name__)

# Roster statuses that mean the player will not play this week
LONG_TERM_ABSENCE = ['IR', 'INJURED RESERVE', 'PUP', 'NFI', 'SUS', 'SUSPENDED', 'COV']

AVAILABILITY_DISCOUNT = {
    PlayerStatus.QUESTIONABLE: 0.95,
    PlayerStatus.DOUBTFUL: 0.6,
    PlayerStatus.OUT: 0.0,
}

INJURY_RISK = {
    PlayerStatus.OUT: 1.0,
    PlayerStatus.DOUBTFUL: 0.8,
    PlayerStatus.QUESTIONABLE: 0.3,
}


def normalize_status(status: Optional[str], injury_status: Optional[str],
                     active: bool = True) -> PlayerStatus:
    """Map feed status fields onto a player availability status.

    Args:
        status: Player roster status (Active, Inactive, Injured Reserve, etc.)
        injury_status: Injury status (Out, Doubtful, Questionable, IR, etc.)
        active: Whether the feed lists the player as active at all

    Returns:
        Availability status
    """
    status_upper = (status or "").upper()
    injury_status_upper = (injury_status or "").upper()

    if injury_status_upper == 'QUESTIONABLE':
        return PlayerStatus.QUESTIONABLE
    if injury_status_upper == 'DOUBTFUL':
        return PlayerStatus.DOUBTFUL
    if injury_status_upper == 'OUT' or injury_status_upper in LONG_TERM_ABSENCE:
        return PlayerStatus.OUT
    if status_upper in LONG_TERM_ABSENCE:
        return PlayerStatus.OUT
    if injury_status_upper == 'NA' or status_upper == 'INACTIVE' or not active:
        return PlayerStatus.INACTIVE

    return PlayerStatus.ACTIVE


def availability_multiplier(status: PlayerStatus) -> float:
    """Discount applied to projected points for a player's status."""
    return AVAILABILITY_DISCOUNT.get(status, 1.0)


def apply_availability(points: float, status: PlayerStatus) -> float:
    """Apply the availability discount to projected points.

    Out is forced to exactly 0 rather than multiplied.
    """
    if status == PlayerStatus.OUT:
        return 0.0
    return points * availability_multiplier(status)


def injury_risk(status: PlayerStatus) -> float:
    """Injury risk in [0, 1] used by valuation and trade scoring."""
    return INJURY_RISK.get(status, 0.0)


def get_injury_summary(statuses: Iterable[PlayerStatus]) -> Dict[str, int]:
    """Get summary statistics for a batch of player statuses.

    Args:
        statuses: Normalized statuses

    Returns:
        Dictionary with counts by category
    """
    summary = {
        'out': 0,
        'doubtful': 0,
        'questionable': 0,
        'active': 0,
        'total': 0
    }

    for status in statuses:
        summary['total'] += 1
        if status == PlayerStatus.OUT:
            summary['out'] += 1
        elif status == PlayerStatus.DOUBTFUL:
            summary['doubtful'] += 1
        elif status == PlayerStatus.QUESTIONABLE:
            summary['questionable'] += 1
        else:
            summary['active'] += 1

    return summary


def log_injury_summary(summary: Dict[str, int], source: str = "unknown") -> None:
    """Log injury summary.

    Args:
        summary: Injury summary statistics
        source: Data source description
    """
    logger.info(
        f"InjuryGate: out={summary['out']}, "
        f"doubtful={summary['doubtful']}, "
        f"questionable={summary['questionable']}, "
        f"active={summary['active']}, "
        f"source={source}"
    )
