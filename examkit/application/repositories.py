"""
ExamKit - Repository Interfaces

Persistence seams the application services depend on. The SQLAlchemy
implementations live in examkit.infrastructure.repositories.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from examkit.domain.analytics import AttemptTally, TestSummary
from examkit.domain.catalog.entities import Domain
from examkit.domain.exams.attempts import TestAttempt
from examkit.domain.exams.entities import Difficulty, Test, TestStatus


class DomainRepository(ABC):
    @abstractmethod
    async def add(self, domain: Domain) -> None: ...

    @abstractmethod
    async def get(self, domain_id: UUID) -> Optional[Domain]: ...

    @abstractmethod
    async def get_by_name(self, name: str) -> Optional[Domain]: ...

    @abstractmethod
    async def list_active(self) -> List[Domain]:
        """Active domains ordered by display name."""

    @abstractmethod
    async def list_all(self) -> List[Domain]:
        """Every domain, active or not, ordered by display name."""


class TestRepository(ABC):
    __test__ = False

    @abstractmethod
    async def add(self, test: Test) -> None: ...

    @abstractmethod
    async def get(self, test_id: UUID) -> Optional[Test]: ...

    @abstractmethod
    async def save(self, test: Test) -> None:
        """Persist status and review fields; questions are immutable."""

    @abstractmethod
    async def list_published(
        self,
        domain_id: Optional[UUID],
        offset: int,
        limit: int,
    ) -> Tuple[List[Test], int]:
        """Public published tests, newest first, with the total count."""

    @abstractmethod
    async def list_by_status(
        self,
        status: TestStatus,
        domain_id: Optional[UUID] = None,
    ) -> List[Test]:
        """Tests in a status, oldest first."""

    @abstractmethod
    async def get_many(self, test_ids: Sequence[UUID]) -> List[Test]: ...

    @abstractmethod
    async def list_summaries(self) -> List[TestSummary]:
        """Every test with its question count, oldest first."""

    @abstractmethod
    async def count_questions_by_difficulty(self) -> Dict[Difficulty, int]: ...


class AttemptRepository(ABC):
    @abstractmethod
    async def add(self, attempt: TestAttempt) -> None: ...

    @abstractmethod
    async def get(self, attempt_id: UUID) -> Optional[TestAttempt]: ...

    @abstractmethod
    async def save(self, attempt: TestAttempt) -> None:
        """
        Persist an attempt that is still in progress in storage.

        Raises:
            AttemptClosedError: the stored attempt has already finished
        """

    @abstractmethod
    async def count_finished(self, test_id: UUID, user_id: str) -> int:
        """Completed or timed-out attempts by a user on a test."""

    @abstractmethod
    async def list_finished_for_user(self, user_id: str) -> List[TestAttempt]:
        """Completed or timed-out attempts by a user, newest first."""

    @abstractmethod
    async def tally_by_test(self) -> List[AttemptTally]:
        """Attempt counts and finished-score sums per test."""

    @abstractmethod
    async def count_started_since(self, since: datetime) -> int: ...

    @abstractmethod
    async def count_learners(self) -> int:
        """Distinct signed-in users with at least one attempt."""


class TransactionManager(ABC):
    """Commit boundary shared by the repositories of one request."""

    @abstractmethod
    async def commit(self) -> None: ...
