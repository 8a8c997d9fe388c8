"""Fantasy Football Roster Advisor

Projections, player valuation, trade and waiver recommendations, and
game-day injury monitoring for Sleeper leagues.
"""

__version__ = "0.2.0"
__author__ = "Fantasy Football Analytics"

from .advisor import RosterAdvisor, build_advisor
from .config.scoring import ScoringSystem
from .config.settings import Settings
from .models.projection_engine import ProjectionEngine

__all__ = ["RosterAdvisor", "build_advisor", "ScoringSystem", "Settings", "ProjectionEngine"]
