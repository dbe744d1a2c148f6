"""
ExamKit - Statistics Services
Learner dashboards from finished attempts, and platform analytics for admins
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog

from examkit.application.repositories import (
    AttemptRepository,
    DomainRepository,
    TestRepository,
)
from examkit.domain.analytics import (
    LearnerStatsCalculator,
    PlatformAnalytics,
    PlatformAnalyticsCalculator,
    UserStats,
)

logger = structlog.get_logger(__name__)


class LearnerStatsService:
    """Dashboard statistics for a signed-in learner."""

    def __init__(
        self,
        attempts: AttemptRepository,
        tests: TestRepository,
        domains: DomainRepository,
    ):
        self._attempts = attempts
        self._tests = tests
        self._domains = domains

    async def user_stats(self, user_id: str, now: Optional[datetime] = None) -> UserStats:
        attempts = await self._attempts.list_finished_for_user(user_id)

        test_ids = sorted({a.test_id for a in attempts}, key=str)
        tests = {t.id: t for t in await self._tests.get_many(test_ids)}

        domains = {}
        for domain_id in {t.domain_id for t in tests.values() if t.domain_id}:
            domain = await self._domains.get(domain_id)
            if domain is not None:
                domains[domain.id] = domain

        stats = LearnerStatsCalculator(tests, domains).calculate(attempts, now=now)
        logger.debug("Computed learner stats", user_id=user_id, total_tests=stats.total_tests)
        return stats


class PlatformAnalyticsService:
    """Admin dashboard figures built from repository aggregates."""

    def __init__(
        self,
        tests: TestRepository,
        attempts: AttemptRepository,
        domains: DomainRepository,
    ):
        self._tests = tests
        self._attempts = attempts
        self._domains = domains

    async def dashboard(self, now: Optional[datetime] = None) -> PlatformAnalytics:
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(days=PlatformAnalyticsCalculator.RECENT_DAYS)

        calculator = PlatformAnalyticsCalculator(await self._domains.list_all())
        analytics = calculator.calculate(
            tests=await self._tests.list_summaries(),
            tallies=await self._attempts.tally_by_test(),
            questions_by_difficulty=await self._tests.count_questions_by_difficulty(),
            total_learners=await self._attempts.count_learners(),
            new_attempts=await self._attempts.count_started_since(since),
            now=now,
        )
        logger.info(
            "Computed platform analytics",
            total_tests=analytics.total_tests,
            total_attempts=analytics.total_attempts,
        )
        return analytics
