# ziproute/routes/__init__.py
from .planner import create_planner_blueprint

__all__ = ['create_planner_blueprint']
