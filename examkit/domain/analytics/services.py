"""
Learner statistics over finished test attempts, and the admin dashboard
over per-test aggregates.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence
from uuid import UUID

from examkit.domain.catalog.entities import Domain
from examkit.domain.exams.attempts import TestAttempt
from examkit.domain.exams.entities import Difficulty, Test, TestStatus

UNCATEGORISED = "General"


def round_half_up(value: Decimal | float) -> int:
    """Round to the nearest integer, halves towards positive infinity (-2.5 gives -2)."""
    return int((Decimal(str(value)) + Decimal("0.5")).to_integral_value(rounding=ROUND_FLOOR))


def round_cents(value: Decimal | float) -> float:
    """round_half_up to two decimal places."""
    return round_half_up(Decimal(str(value)) * 100) / 100


def _average(values: Sequence[Decimal]) -> Decimal:
    return sum(values, Decimal("0")) / len(values)


@dataclass
class DomainPerformance:
    """Aggregate scores for one domain."""
    name: str
    attempts: int
    average_score: int
    best_score: float


@dataclass
class MonthlyProgress:
    month: str  # YYYY-MM
    attempts: int
    average_score: int


@dataclass
class RecentActivity:
    attempt_id: UUID
    test_title: str
    domain: str
    score: float
    passed: bool
    completed_at: Optional[datetime]
    time_spent_seconds: Optional[int]


@dataclass
class UserStats:
    """Headline figures for a learner's dashboard."""
    total_tests: int = 0
    average_score: int = 0
    time_spent_minutes: int = 0
    improvement_rate: int = 0
    pass_rate: int = 0
    best_score: float = 0.0
    recent_activity: List[RecentActivity] = field(default_factory=list)
    domain_performance: List[DomainPerformance] = field(default_factory=list)
    monthly_progress: List[MonthlyProgress] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_tests": self.total_tests,
            "average_score": self.average_score,
            "time_spent_minutes": self.time_spent_minutes,
            "improvement_rate": self.improvement_rate,
            "pass_rate": self.pass_rate,
            "best_score": self.best_score,
            "recent_activity": [
                {
                    "attempt_id": str(a.attempt_id),
                    "test_title": a.test_title,
                    "domain": a.domain,
                    "score": a.score,
                    "passed": a.passed,
                    "completed_at": a.completed_at.isoformat() if a.completed_at else None,
                    "time_spent_seconds": a.time_spent_seconds,
                }
                for a in self.recent_activity
            ],
            "domain_performance": [
                {
                    "name": d.name,
                    "attempts": d.attempts,
                    "average_score": d.average_score,
                    "best_score": d.best_score,
                }
                for d in self.domain_performance
            ],
            "monthly_progress": [
                {"month": m.month, "attempts": m.attempts, "average_score": m.average_score}
                for m in self.monthly_progress
            ],
        }


class LearnerStatsCalculator:
    """
    Computes a learner's statistics from finished attempts.

    Only attempts carrying an evaluation are counted. Pure computation;
    loading attempts and tests is the caller's job.
    """

    RECENT_ACTIVITY_LIMIT = 10
    MONTHLY_WINDOW = 6  # months, including the current one
    MIN_ATTEMPTS_FOR_TREND = 4

    def __init__(
        self,
        tests: Mapping[UUID, Test],
        domains: Mapping[UUID, Domain],
    ):
        self._tests = tests
        self._domains = domains

    def _domain_label(self, test: Optional[Test]) -> str:
        if test is None or test.domain_id is None:
            return UNCATEGORISED
        domain = self._domains.get(test.domain_id)
        return domain.display_name if domain else UNCATEGORISED

    def calculate(
        self,
        attempts: Sequence[TestAttempt],
        now: Optional[datetime] = None,
    ) -> UserStats:
        """
        Args:
            attempts: the learner's finished attempts, in any order
            now: reference time for the monthly window
        """
        scored = sorted(
            (a for a in attempts if a.evaluation is not None),
            key=lambda a: a.completed_at or a.started_at,
            reverse=True,
        )
        if not scored:
            return UserStats()

        percentages = [a.evaluation.percentage for a in scored]
        total_seconds = sum(a.time_spent_seconds or 0 for a in scored)
        passed = sum(1 for a in scored if a.evaluation.passed)

        return UserStats(
            total_tests=len(scored),
            average_score=round_half_up(_average(percentages)),
            time_spent_minutes=round_half_up(Decimal(total_seconds) / 60),
            improvement_rate=self.improvement_rate(percentages),
            pass_rate=round_half_up(Decimal(passed * 100) / len(scored)),
            best_score=float(max(percentages)),
            recent_activity=self.recent_activity(scored),
            domain_performance=self.domain_performance(scored),
            monthly_progress=self.monthly_progress(scored, now or datetime.now(timezone.utc)),
        )

    def improvement_rate(self, newest_first: Sequence[Decimal]) -> int:
        """Average of the newer half minus average of the older half."""
        if len(newest_first) < self.MIN_ATTEMPTS_FOR_TREND:
            return 0
        half = len(newest_first) // 2
        newer = newest_first[:half]
        older = newest_first[-half:]
        return round_half_up(_average(newer) - _average(older))

    def recent_activity(self, newest_first: Sequence[TestAttempt]) -> List[RecentActivity]:
        activity = []
        for attempt in newest_first[: self.RECENT_ACTIVITY_LIMIT]:
            test = self._tests.get(attempt.test_id)
            activity.append(RecentActivity(
                attempt_id=attempt.id,
                test_title=test.title if test else "Deleted test",
                domain=self._domain_label(test),
                score=float(attempt.evaluation.percentage),
                passed=attempt.evaluation.passed,
                completed_at=attempt.completed_at,
                time_spent_seconds=attempt.time_spent_seconds,
            ))
        return activity

    def domain_performance(self, attempts: Sequence[TestAttempt]) -> List[DomainPerformance]:
        grouped: Dict[str, List[Decimal]] = {}
        for attempt in attempts:
            label = self._domain_label(self._tests.get(attempt.test_id))
            grouped.setdefault(label, []).append(attempt.evaluation.percentage)

        return [
            DomainPerformance(
                name=name,
                attempts=len(scores),
                average_score=round_half_up(_average(scores)),
                best_score=float(max(scores)),
            )
            for name, scores in sorted(grouped.items())
        ]

    def monthly_progress(
        self,
        attempts: Sequence[TestAttempt],
        now: datetime,
    ) -> List[MonthlyProgress]:
        """Per-month averages for the recent window, oldest month first."""
        first_year, first_month = now.year, now.month - (self.MONTHLY_WINDOW - 1)
        while first_month <= 0:
            first_month += 12
            first_year -= 1
        window_start = f"{first_year:04d}-{first_month:02d}"

        buckets: Dict[str, List[Decimal]] = OrderedDict()
        for attempt in sorted(attempts, key=lambda a: a.completed_at or a.started_at):
            if attempt.completed_at is None:
                continue
            month = attempt.completed_at.strftime("%Y-%m")
            if month < window_start:
                continue
            buckets.setdefault(month, []).append(attempt.evaluation.percentage)

        return [
            MonthlyProgress(
                month=month,
                attempts=len(scores),
                average_score=round_half_up(_average(scores)),
            )
            for month, scores in buckets.items()
        ]


# =============================================================================
# Admin dashboard
# =============================================================================

@dataclass(frozen=True)
class TestSummary:
    """A test without its questions, as counted for the dashboard."""
    __test__ = False

    test_id: UUID
    title: str
    domain_id: Optional[UUID]
    status: TestStatus
    question_count: int
    created_at: datetime


@dataclass(frozen=True)
class AttemptTally:
    """Attempt counts for one test. Scored attempts are the finished ones."""
    test_id: UUID
    attempts: int
    scored: int
    percentage_sum: Decimal


@dataclass
class TestRanking:
    __test__ = False

    test_id: UUID
    title: str
    attempts: int
    average_score: float
    domain: str


@dataclass
class DomainActivity:
    domain_id: UUID
    name: str
    display_name: str
    tests_count: int
    questions_count: int
    attempts_count: int
    average_score: float


@dataclass
class PlatformAnalytics:
    """Totals and breakdowns for the admin dashboard."""
    total_tests: int = 0
    total_questions: int = 0
    total_attempts: int = 0
    total_learners: int = 0
    total_domains: int = 0
    new_tests: int = 0
    new_questions: int = 0
    new_attempts: int = 0
    tests_by_status: Dict[str, int] = field(default_factory=dict)
    questions_by_difficulty: Dict[str, int] = field(default_factory=dict)
    top_performing_tests: List[TestRanking] = field(default_factory=list)
    domain_stats: List[DomainActivity] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_tests": self.total_tests,
            "total_questions": self.total_questions,
            "total_attempts": self.total_attempts,
            "total_learners": self.total_learners,
            "total_domains": self.total_domains,
            "recent_activity": {
                "new_tests": self.new_tests,
                "new_questions": self.new_questions,
                "new_attempts": self.new_attempts,
            },
            "tests_by_status": dict(self.tests_by_status),
            "questions_by_difficulty": dict(self.questions_by_difficulty),
            "top_performing_tests": [
                {
                    "id": str(t.test_id),
                    "title": t.title,
                    "attempts": t.attempts,
                    "average_score": t.average_score,
                    "domain": t.domain,
                }
                for t in self.top_performing_tests
            ],
            "domain_stats": [
                {
                    "id": str(d.domain_id),
                    "name": d.name,
                    "display_name": d.display_name,
                    "tests_count": d.tests_count,
                    "questions_count": d.questions_count,
                    "attempts_count": d.attempts_count,
                    "average_score": d.average_score,
                }
                for d in self.domain_stats
            ],
        }


class PlatformAnalyticsCalculator:
    """
    Builds the admin dashboard from per-test aggregates.

    Averages are taken over scored attempts, so a domain's average weights
    every attempt equally rather than averaging test averages.
    """

    RECENT_DAYS = 7
    TOP_TESTS_LIMIT = 10

    def __init__(self, domains: Sequence[Domain]):
        self._domains = {d.id: d for d in domains}

    def calculate(
        self,
        tests: Sequence[TestSummary],
        tallies: Sequence[AttemptTally],
        questions_by_difficulty: Mapping[Difficulty, int],
        total_learners: int = 0,
        new_attempts: int = 0,
        now: Optional[datetime] = None,
    ) -> PlatformAnalytics:
        since = (now or datetime.now(timezone.utc)) - timedelta(days=self.RECENT_DAYS)
        by_test = {t.test_id: t for t in tallies}
        recent = [t for t in tests if t.created_at >= since]

        return PlatformAnalytics(
            total_tests=len(tests),
            total_questions=sum(t.question_count for t in tests),
            total_attempts=sum(t.attempts for t in tallies),
            total_learners=total_learners,
            total_domains=len(self._domains),
            new_tests=len(recent),
            new_questions=sum(t.question_count for t in recent),
            new_attempts=new_attempts,
            tests_by_status={
                status.value.lower(): sum(1 for t in tests if t.status == status)
                for status in TestStatus
            },
            questions_by_difficulty={
                difficulty.value.lower(): questions_by_difficulty.get(difficulty, 0)
                for difficulty in Difficulty
            },
            top_performing_tests=self.top_performing_tests(tests, by_test),
            domain_stats=self.domain_stats(tests, by_test),
        )

    def _domain_label(self, domain_id: Optional[UUID]) -> str:
        domain = self._domains.get(domain_id) if domain_id else None
        return domain.display_name if domain else UNCATEGORISED

    def top_performing_tests(
        self,
        tests: Sequence[TestSummary],
        by_test: Mapping[UUID, AttemptTally],
    ) -> List[TestRanking]:
        """Published tests with scored attempts, most attempted first."""
        ranked = []
        for test in tests:
            tally = by_test.get(test.test_id)
            if test.status != TestStatus.PUBLISHED or tally is None or tally.scored == 0:
                continue
            ranked.append(TestRanking(
                test_id=test.test_id,
                title=test.title,
                attempts=tally.attempts,
                average_score=round_cents(tally.percentage_sum / tally.scored),
                domain=self._domain_label(test.domain_id),
            ))
        ranked.sort(key=lambda r: (-r.attempts, r.title))
        return ranked[: self.TOP_TESTS_LIMIT]

    def domain_stats(
        self,
        tests: Sequence[TestSummary],
        by_test: Mapping[UUID, AttemptTally],
    ) -> List[DomainActivity]:
        rows = []
        for domain in sorted(self._domains.values(), key=lambda d: d.display_name):
            domain_tests = [t for t in tests if t.domain_id == domain.id]
            tallies = [by_test[t.test_id] for t in domain_tests if t.test_id in by_test]
            scored = sum(t.scored for t in tallies)
            percentage_sum = sum((t.percentage_sum for t in tallies), Decimal("0"))
            rows.append(DomainActivity(
                domain_id=domain.id,
                name=domain.name,
                display_name=domain.display_name,
                tests_count=len(domain_tests),
                questions_count=sum(t.question_count for t in domain_tests),
                attempts_count=sum(t.attempts for t in tallies),
                average_score=round_cents(percentage_sum / scored) if scored else 0.0,
            ))
        return rows
