"""Admin analytics."""

from .dashboard import get_dashboard_stats

__all__ = ["get_dashboard_stats"]
