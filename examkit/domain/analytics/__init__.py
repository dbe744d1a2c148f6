"""
Analytics domain package.
"""

from .services import (
    AttemptTally,
    DomainActivity,
    DomainPerformance,
    LearnerStatsCalculator,
    MonthlyProgress,
    PlatformAnalytics,
    PlatformAnalyticsCalculator,
    RecentActivity,
    TestRanking,
    TestSummary,
    UserStats,
)

__all__ = [
    "AttemptTally",
    "DomainActivity",
    "DomainPerformance",
    "LearnerStatsCalculator",
    "MonthlyProgress",
    "PlatformAnalytics",
    "PlatformAnalyticsCalculator",
    "RecentActivity",
    "TestRanking",
    "TestSummary",
    "UserStats",
]
