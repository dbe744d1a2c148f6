"""
Statistics Service Module
"""

from examkit.application.stats.service import LearnerStatsService, PlatformAnalyticsService

__all__ = ["LearnerStatsService", "PlatformAnalyticsService"]
