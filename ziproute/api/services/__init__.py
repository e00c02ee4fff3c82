"""Service layer: planning sessions and usage gating."""

from .planner_service import PlannerSessionManager, RoutePlanner
from .usage_service import UsageMeter

__all__ = ['PlannerSessionManager', 'RoutePlanner', 'UsageMeter']
