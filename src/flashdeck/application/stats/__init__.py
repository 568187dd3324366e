# Application Stats Package
from .metrics_calculator import StatisticsAggregator
from .service import StatsService

__all__ = ["StatisticsAggregator", "StatsService"]
