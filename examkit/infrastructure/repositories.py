"""
ExamKit - SQLAlchemy Repositories
Maps ORM rows to domain entities and back
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from examkit.application.repositories import (
    AttemptRepository,
    DomainRepository,
    TestRepository,
)
from examkit.domain.analytics import AttemptTally, TestSummary
from examkit.domain.catalog.entities import Domain, DomainConfig
from examkit.domain.exams.attempts import AttemptStatus, TestAttempt
from examkit.domain.exams.entities import (
    Difficulty,
    Option,
    Question,
    QuestionType,
    Test,
    TestSettings,
    TestStatus,
)
from examkit.domain.exams.evaluation import EvaluationResult
from examkit.domain.exceptions import AttemptClosedError
from examkit.infrastructure.models import (
    AttemptModel,
    DomainModel,
    OptionModel,
    QuestionModel,
    TestModel,
)

FINISHED_STATUSES = (AttemptStatus.COMPLETED.value, AttemptStatus.TIMED_OUT.value)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive timestamps
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# Mapping
# =============================================================================

def to_domain_entity(row: DomainModel) -> Domain:
    return Domain(
        id=row.id,
        name=row.name,
        display_name=row.display_name,
        description=row.description,
        is_active=row.is_active,
        config=DomainConfig.from_dict(row.config),
        created_at=_aware(row.created_at),
    )


def to_test_entity(row: TestModel) -> Test:
    questions = [
        Question(
            id=q.id,
            stem=q.stem,
            question_type=QuestionType(q.question_type),
            explanation=q.explanation,
            points=Decimal(q.points),
            difficulty=Difficulty(q.difficulty),
            tags=list(q.tags or []),
            order_index=q.order_index,
            options=[
                Option(
                    id=o.id,
                    label=o.label,
                    is_correct=o.is_correct,
                    feedback=o.feedback,
                    order_index=o.order_index,
                )
                for o in q.options
            ],
        )
        for q in row.questions
    ]
    return Test(
        id=row.id,
        title=row.title,
        description=row.description,
        domain_id=row.domain_id,
        creator_id=row.creator_id,
        pass_percentage=Decimal(row.pass_percentage),
        time_limit_minutes=row.time_limit_minutes,
        questions=questions,
        settings=TestSettings.from_dict(row.settings),
        status=TestStatus(row.status),
        submission_note=row.submission_note,
        reviewer_id=row.reviewer_id,
        review_note=row.review_note,
        reviewed_at=_aware(row.reviewed_at),
        published_at=_aware(row.published_at),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def to_test_row(test: Test) -> TestModel:
    return TestModel(
        id=test.id,
        title=test.title,
        description=test.description,
        domain_id=test.domain_id,
        creator_id=test.creator_id,
        status=test.status.value,
        pass_percentage=test.pass_percentage,
        time_limit_minutes=test.time_limit_minutes,
        is_public=test.settings.is_public,
        settings=test.settings.to_dict(),
        submission_note=test.submission_note,
        reviewer_id=test.reviewer_id,
        review_note=test.review_note,
        reviewed_at=test.reviewed_at,
        published_at=test.published_at,
        created_at=test.created_at,
        updated_at=test.updated_at,
        questions=[
            QuestionModel(
                id=q.id,
                stem=q.stem,
                question_type=q.question_type.value,
                explanation=q.explanation,
                points=q.points,
                difficulty=q.difficulty.value,
                tags=list(q.tags),
                order_index=q.order_index,
                options=[
                    OptionModel(
                        id=o.id,
                        label=o.label,
                        is_correct=o.is_correct,
                        feedback=o.feedback,
                        order_index=o.order_index,
                    )
                    for o in q.options
                ],
            )
            for q in test.questions
        ],
    )


def to_attempt_entity(row: AttemptModel) -> TestAttempt:
    return TestAttempt(
        id=row.id,
        test_id=row.test_id,
        user_id=row.user_id,
        session_id=row.session_id,
        status=AttemptStatus(row.status),
        answers=dict(row.answers or {}),
        started_at=_aware(row.started_at),
        completed_at=_aware(row.completed_at),
        time_spent_seconds=row.time_spent_seconds,
        evaluation=EvaluationResult.from_dict(row.evaluation) if row.evaluation else None,
    )


def attempt_values(attempt: TestAttempt) -> Dict[str, Any]:
    """Mutable columns of an attempt row."""
    values: Dict[str, Any] = {
        "status": attempt.status.value,
        "answers": dict(attempt.answers),
        "completed_at": attempt.completed_at,
        "time_spent_seconds": attempt.time_spent_seconds,
        "score": None,
        "percentage": None,
        "passed": None,
        "evaluation": None,
    }
    evaluation = attempt.evaluation
    if evaluation is not None:
        values.update(
            score=evaluation.earned_points,
            percentage=evaluation.percentage.quantize(Decimal("0.01")),
            passed=evaluation.passed,
            evaluation=evaluation.to_dict(),
        )
    return values


# =============================================================================
# Repositories
# =============================================================================

class SqlDomainRepository(DomainRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, domain: Domain) -> None:
        self._session.add(DomainModel(
            id=domain.id,
            name=domain.name,
            display_name=domain.display_name,
            description=domain.description,
            is_active=domain.is_active,
            config=domain.config.to_dict(),
            created_at=domain.created_at,
        ))
        await self._session.flush()

    async def get(self, domain_id: UUID) -> Optional[Domain]:
        row = await self._session.get(DomainModel, domain_id)
        return to_domain_entity(row) if row else None

    async def get_by_name(self, name: str) -> Optional[Domain]:
        result = await self._session.execute(
            select(DomainModel).where(DomainModel.name == name)
        )
        row = result.scalar_one_or_none()
        return to_domain_entity(row) if row else None

    async def list_active(self) -> List[Domain]:
        result = await self._session.execute(
            select(DomainModel)
            .where(DomainModel.is_active.is_(True))
            .order_by(DomainModel.display_name)
        )
        return [to_domain_entity(row) for row in result.scalars()]

    async def list_all(self) -> List[Domain]:
        result = await self._session.execute(
            select(DomainModel).order_by(DomainModel.display_name)
        )
        return [to_domain_entity(row) for row in result.scalars()]


class SqlTestRepository(TestRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, test: Test) -> None:
        self._session.add(to_test_row(test))
        await self._session.flush()

    async def get(self, test_id: UUID) -> Optional[Test]:
        row = await self._session.get(TestModel, test_id)
        return to_test_entity(row) if row else None

    async def save(self, test: Test) -> None:
        row = await self._session.get(TestModel, test.id)
        if row is None:
            raise LookupError(f"Test not found: {test.id}")
        row.status = test.status.value
        row.submission_note = test.submission_note
        row.reviewer_id = test.reviewer_id
        row.review_note = test.review_note
        row.reviewed_at = test.reviewed_at
        row.published_at = test.published_at
        row.updated_at = test.updated_at
        await self._session.flush()

    async def list_published(
        self,
        domain_id: Optional[UUID],
        offset: int,
        limit: int,
    ) -> Tuple[List[Test], int]:
        conditions = [
            TestModel.status == TestStatus.PUBLISHED.value,
            TestModel.is_public.is_(True),
        ]
        if domain_id is not None:
            conditions.append(TestModel.domain_id == domain_id)

        total = await self._session.scalar(
            select(func.count()).select_from(TestModel).where(*conditions)
        )
        result = await self._session.execute(
            select(TestModel)
            .where(*conditions)
            .order_by(TestModel.published_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return [to_test_entity(row) for row in result.scalars()], int(total or 0)

    async def list_by_status(
        self,
        status: TestStatus,
        domain_id: Optional[UUID] = None,
    ) -> List[Test]:
        query = select(TestModel).where(TestModel.status == status.value)
        if domain_id is not None:
            query = query.where(TestModel.domain_id == domain_id)
        result = await self._session.execute(query.order_by(TestModel.created_at))
        return [to_test_entity(row) for row in result.scalars()]

    async def get_many(self, test_ids: Sequence[UUID]) -> List[Test]:
        if not test_ids:
            return []
        result = await self._session.execute(
            select(TestModel).where(TestModel.id.in_(list(test_ids)))
        )
        return [to_test_entity(row) for row in result.scalars()]

    async def list_summaries(self) -> List[TestSummary]:
        question_counts = (
            select(
                QuestionModel.test_id,
                func.count(QuestionModel.id).label("question_count"),
            )
            .group_by(QuestionModel.test_id)
            .subquery()
        )
        result = await self._session.execute(
            select(
                TestModel.id,
                TestModel.title,
                TestModel.domain_id,
                TestModel.status,
                TestModel.created_at,
                func.coalesce(question_counts.c.question_count, 0),
            )
            .outerjoin(question_counts, question_counts.c.test_id == TestModel.id)
            .order_by(TestModel.created_at)
        )
        return [
            TestSummary(
                test_id=test_id,
                title=title,
                domain_id=domain_id,
                status=TestStatus(status),
                question_count=int(question_count),
                created_at=_aware(created_at),
            )
            for test_id, title, domain_id, status, created_at, question_count in result.all()
        ]

    async def count_questions_by_difficulty(self) -> Dict[Difficulty, int]:
        result = await self._session.execute(
            select(QuestionModel.difficulty, func.count(QuestionModel.id))
            .group_by(QuestionModel.difficulty)
        )
        return {Difficulty(difficulty): int(count) for difficulty, count in result.all()}


class SqlAttemptRepository(AttemptRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, attempt: TestAttempt) -> None:
        self._session.add(AttemptModel(
            id=attempt.id,
            test_id=attempt.test_id,
            user_id=attempt.user_id,
            session_id=attempt.session_id,
            started_at=attempt.started_at,
            **attempt_values(attempt),
        ))
        await self._session.flush()

    async def get(self, attempt_id: UUID) -> Optional[TestAttempt]:
        row = await self._session.get(AttemptModel, attempt_id)
        return to_attempt_entity(row) if row else None

    async def save(self, attempt: TestAttempt) -> None:
        # Only a row still IN_PROGRESS may change; a concurrent finish wins
        result = await self._session.execute(
            update(AttemptModel)
            .where(
                AttemptModel.id == attempt.id,
                AttemptModel.status == AttemptStatus.IN_PROGRESS.value,
            )
            .values(**attempt_values(attempt))
        )
        if result.rowcount == 0:
            raise AttemptClosedError(f"Attempt {attempt.id} is no longer in progress")

    async def count_finished(self, test_id: UUID, user_id: str) -> int:
        total = await self._session.scalar(
            select(func.count())
            .select_from(AttemptModel)
            .where(
                AttemptModel.test_id == test_id,
                AttemptModel.user_id == user_id,
                AttemptModel.status.in_(FINISHED_STATUSES),
            )
        )
        return int(total or 0)

    async def list_finished_for_user(self, user_id: str) -> List[TestAttempt]:
        result = await self._session.execute(
            select(AttemptModel)
            .where(
                AttemptModel.user_id == user_id,
                AttemptModel.status.in_(FINISHED_STATUSES),
            )
            .order_by(AttemptModel.completed_at.desc())
        )
        return [to_attempt_entity(row) for row in result.scalars()]

    async def tally_by_test(self) -> List[AttemptTally]:
        finished = AttemptModel.status.in_(FINISHED_STATUSES)
        result = await self._session.execute(
            select(
                AttemptModel.test_id,
                func.count(AttemptModel.id),
                func.sum(case((finished, 1), else_=0)),
                func.sum(case((finished, AttemptModel.percentage), else_=0)),
            )
            .group_by(AttemptModel.test_id)
        )
        return [
            AttemptTally(
                test_id=test_id,
                attempts=int(attempts),
                scored=int(scored or 0),
                percentage_sum=Decimal(str(percentage_sum or 0)),
            )
            for test_id, attempts, scored, percentage_sum in result.all()
        ]

    async def count_started_since(self, since: datetime) -> int:
        total = await self._session.scalar(
            select(func.count())
            .select_from(AttemptModel)
            .where(AttemptModel.started_at >= since)
        )
        return int(total or 0)

    async def count_learners(self) -> int:
        total = await self._session.scalar(
            select(func.count(func.distinct(AttemptModel.user_id)))
        )
        return int(total or 0)
