"""
In-memory repositories and cache used by service and API tests.

Entities are deep-copied on the way in and out so a test only sees
changes a service actually saved.
"""

import copy
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

import pytest

from examkit.application.repositories import (
    AttemptRepository,
    DomainRepository,
    TestRepository,
    TransactionManager,
)
from examkit.domain.analytics import AttemptTally, TestSummary
from examkit.domain.catalog.entities import Domain
from examkit.domain.exams.attempts import AttemptStatus, TestAttempt
from examkit.domain.exams.entities import Difficulty, Test, TestStatus
from examkit.domain.exceptions import AttemptClosedError

FINISHED = (AttemptStatus.COMPLETED, AttemptStatus.TIMED_OUT)


class InMemoryDomainRepository(DomainRepository):
    def __init__(self):
        self.rows: Dict[UUID, Domain] = {}

    async def add(self, domain: Domain) -> None:
        self.rows[domain.id] = copy.deepcopy(domain)

    async def get(self, domain_id: UUID) -> Optional[Domain]:
        return copy.deepcopy(self.rows.get(domain_id))

    async def get_by_name(self, name: str) -> Optional[Domain]:
        found = next((d for d in self.rows.values() if d.name == name), None)
        return copy.deepcopy(found)

    async def list_active(self) -> List[Domain]:
        active = [d for d in self.rows.values() if d.is_active]
        return copy.deepcopy(sorted(active, key=lambda d: d.display_name))

    async def list_all(self) -> List[Domain]:
        return copy.deepcopy(sorted(self.rows.values(), key=lambda d: d.display_name))


class InMemoryTestRepository(TestRepository):
    def __init__(self):
        self.rows: Dict[UUID, Test] = {}
        self.get_calls = 0

    async def add(self, test: Test) -> None:
        self.rows[test.id] = copy.deepcopy(test)

    async def get(self, test_id: UUID) -> Optional[Test]:
        self.get_calls += 1
        return copy.deepcopy(self.rows.get(test_id))

    async def save(self, test: Test) -> None:
        if test.id not in self.rows:
            raise LookupError(f"Test not found: {test.id}")
        self.rows[test.id] = copy.deepcopy(test)

    async def list_published(
        self,
        domain_id: Optional[UUID],
        offset: int,
        limit: int,
    ) -> Tuple[List[Test], int]:
        matches = [
            t for t in self.rows.values()
            if t.status == TestStatus.PUBLISHED
            and t.settings.is_public
            and (domain_id is None or t.domain_id == domain_id)
        ]
        matches.sort(key=lambda t: t.published_at or t.created_at, reverse=True)
        return copy.deepcopy(matches[offset:offset + limit]), len(matches)

    async def list_by_status(
        self,
        status: TestStatus,
        domain_id: Optional[UUID] = None,
    ) -> List[Test]:
        matches = [
            t for t in self.rows.values()
            if t.status == status and (domain_id is None or t.domain_id == domain_id)
        ]
        return copy.deepcopy(sorted(matches, key=lambda t: t.created_at))

    async def get_many(self, test_ids: Sequence[UUID]) -> List[Test]:
        return [copy.deepcopy(self.rows[i]) for i in test_ids if i in self.rows]

    async def list_summaries(self) -> List[TestSummary]:
        return [
            TestSummary(
                test_id=t.id,
                title=t.title,
                domain_id=t.domain_id,
                status=t.status,
                question_count=len(t.questions),
                created_at=t.created_at,
            )
            for t in sorted(self.rows.values(), key=lambda t: t.created_at)
        ]

    async def count_questions_by_difficulty(self) -> Dict[Difficulty, int]:
        counts: Dict[Difficulty, int] = {}
        for test in self.rows.values():
            for question in test.questions:
                counts[question.difficulty] = counts.get(question.difficulty, 0) + 1
        return counts


class InMemoryAttemptRepository(AttemptRepository):
    def __init__(self):
        self.rows: Dict[UUID, TestAttempt] = {}

    async def add(self, attempt: TestAttempt) -> None:
        self.rows[attempt.id] = copy.deepcopy(attempt)

    async def get(self, attempt_id: UUID) -> Optional[TestAttempt]:
        return copy.deepcopy(self.rows.get(attempt_id))

    async def save(self, attempt: TestAttempt) -> None:
        stored = self.rows.get(attempt.id)
        if stored is None or stored.status != AttemptStatus.IN_PROGRESS:
            raise AttemptClosedError(f"Attempt {attempt.id} is no longer in progress")
        self.rows[attempt.id] = copy.deepcopy(attempt)

    async def count_finished(self, test_id: UUID, user_id: str) -> int:
        return sum(
            1 for a in self.rows.values()
            if a.test_id == test_id and a.user_id == user_id and a.status in FINISHED
        )

    async def list_finished_for_user(self, user_id: str) -> List[TestAttempt]:
        finished = [
            a for a in self.rows.values()
            if a.user_id == user_id and a.status in FINISHED
        ]
        finished.sort(key=lambda a: a.completed_at, reverse=True)
        return copy.deepcopy(finished)

    async def tally_by_test(self) -> List[AttemptTally]:
        tallies: Dict[UUID, AttemptTally] = {}
        for attempt in self.rows.values():
            tally = tallies.get(attempt.test_id, AttemptTally(attempt.test_id, 0, 0, Decimal("0")))
            scored = attempt.status in FINISHED and attempt.evaluation is not None
            tallies[attempt.test_id] = AttemptTally(
                test_id=attempt.test_id,
                attempts=tally.attempts + 1,
                scored=tally.scored + (1 if scored else 0),
                percentage_sum=tally.percentage_sum
                + (attempt.evaluation.percentage if scored else Decimal("0")),
            )
        return list(tallies.values())

    async def count_started_since(self, since: datetime) -> int:
        return sum(1 for a in self.rows.values() if a.started_at >= since)

    async def count_learners(self) -> int:
        return len({a.user_id for a in self.rows.values() if a.user_id is not None})


class FakeTransactionManager(TransactionManager):
    def __init__(self):
        self.commits = 0

    async def commit(self) -> None:
        self.commits += 1


class FakeCache:
    """Dict-backed stand-in for CacheManager's JSON helpers."""

    def __init__(self):
        self.store: Dict[str, Any] = {}

    def key(self, *parts: object) -> str:
        return "examkit:" + ":".join(str(p) for p in parts)

    async def get_json(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self.store.get(key))

    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        self.store[key] = copy.deepcopy(value)
        return True

    async def delete(self, key: str) -> bool:
        return self.store.pop(key, None) is not None


@pytest.fixture
def domain_repo() -> InMemoryDomainRepository:
    return InMemoryDomainRepository()


@pytest.fixture
def exam_repo() -> InMemoryTestRepository:
    return InMemoryTestRepository()


@pytest.fixture
def attempt_repo() -> InMemoryAttemptRepository:
    return InMemoryAttemptRepository()


@pytest.fixture
def uow() -> FakeTransactionManager:
    return FakeTransactionManager()


@pytest.fixture
def fake_cache() -> FakeCache:
    return FakeCache()
