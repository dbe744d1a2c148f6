"""
ExamKit - Test Authoring & Review Service
Creating tests, the moderation workflow and the published catalogue
"""

import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Generic, List, Optional, TypeVar
from uuid import UUID

import structlog

from examkit.application.exams.lookup import TestLookup
from examkit.application.repositories import (
    DomainRepository,
    TestRepository,
    TransactionManager,
)
from examkit.domain.catalog.entities import Domain
from examkit.domain.exams.entities import (
    Difficulty,
    QuestionType,
    Test,
    TestSettings,
    TestStatus,
)
from examkit.domain.exceptions import (
    DomainNotFoundError,
    ExamValidationError,
    TestNotFoundError,
)
from examkit.infrastructure import metrics

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Reviewer recorded on tests published by domain auto-approval
AUTO_REVIEWER = "system"


@dataclass
class OptionDraft:
    label: str
    is_correct: bool = False
    feedback: Optional[str] = None


@dataclass
class QuestionDraft:
    stem: str
    question_type: QuestionType = QuestionType.SINGLE_CHOICE
    options: List[OptionDraft] = field(default_factory=list)
    points: Decimal = field(default_factory=lambda: Decimal("1"))
    explanation: Optional[str] = None
    difficulty: Difficulty = Difficulty.MEDIUM
    tags: List[str] = field(default_factory=list)


@dataclass
class TestDraft:
    """Author input for a new test. Unset limits fall back to domain defaults."""
    __test__ = False

    title: str
    questions: List[QuestionDraft] = field(default_factory=list)
    description: Optional[str] = None
    domain_id: Optional[UUID] = None
    pass_percentage: Optional[Decimal] = None
    time_limit_minutes: Optional[int] = None
    settings: TestSettings = field(default_factory=TestSettings)
    submission_note: Optional[str] = None


@dataclass
class Page(Generic[T]):
    """One page of a listing."""
    items: List[T]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def pagination(self) -> dict:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "pages": self.pages,
        }


class TestAuthoringService:
    """
    Service for test authoring and moderation.

    New tests wait in PENDING_REVIEW for an admin unless their domain
    publishes without review.
    """
    __test__ = False

    def __init__(
        self,
        tests: TestRepository,
        domains: DomainRepository,
        uow: TransactionManager,
        lookup: Optional[TestLookup] = None,
        default_pass_percentage: Decimal = Decimal("70"),
        max_page_size: int = 100,
    ):
        self._tests = tests
        self._domains = domains
        self._uow = uow
        self._lookup = lookup or TestLookup(tests)
        self._default_pass_percentage = default_pass_percentage
        self._max_page_size = max_page_size

    def _build_test(
        self,
        draft: TestDraft,
        creator_id: str,
        domain: Optional[Domain],
    ) -> Test:
        if draft.pass_percentage is not None:
            pass_percentage = Decimal(str(draft.pass_percentage))
        elif domain is not None:
            pass_percentage = domain.config.default_pass_percentage
        else:
            pass_percentage = self._default_pass_percentage

        time_limit = draft.time_limit_minutes
        if time_limit is None and domain is not None:
            time_limit = domain.config.default_time_limit

        test = Test(
            title=draft.title.strip(),
            description=draft.description,
            domain_id=domain.id if domain else None,
            creator_id=creator_id,
            pass_percentage=pass_percentage,
            time_limit_minutes=time_limit,
            settings=draft.settings,
        )
        for question_draft in draft.questions:
            question = test.add_question(
                stem=question_draft.stem,
                question_type=question_draft.question_type,
                points=question_draft.points,
                explanation=question_draft.explanation,
            )
            question.difficulty = question_draft.difficulty
            question.tags = list(question_draft.tags)
            for option in question_draft.options:
                question.add_option(option.label, option.is_correct, option.feedback)
        return test

    async def _get_domain(self, domain_id: UUID) -> Domain:
        domain = await self._domains.get(domain_id)
        if domain is None or not domain.is_active:
            raise DomainNotFoundError(domain_id)
        return domain

    async def create_test(self, draft: TestDraft, creator_id: str) -> Test:
        """
        Validate and store a new test.

        Raises:
            ExamValidationError: listing every authoring problem found
            DomainNotFoundError: the domain is unknown or inactive
        """
        domain = await self._get_domain(draft.domain_id) if draft.domain_id else None
        test = self._build_test(draft, creator_id, domain)

        errors: List[str] = []
        try:
            test.validate()
        except ExamValidationError as exc:
            errors.extend(exc.errors)
        if domain is not None:
            errors.extend(domain.config.check_test(test))
        if errors:
            raise ExamValidationError("Invalid test definition", errors)

        test.submit_for_review(draft.submission_note)
        if domain is not None and domain.config.publishes_without_review:
            test.approve(AUTO_REVIEWER, note="Auto-approved by domain configuration")

        await self._tests.add(test)
        await self._uow.commit()

        logger.info(
            "Test created",
            test_id=str(test.id),
            creator_id=creator_id,
            status=test.status.value,
            question_count=len(test.questions),
        )
        return test

    async def get_test(self, test_id: UUID) -> Test:
        return await self._lookup.get(test_id)

    async def list_published_tests(
        self,
        domain_id: Optional[UUID] = None,
        domain_name: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page[Test]:
        """
        Public published tests, newest first.

        A domain name that matches no domain yields an empty page.
        """
        page = max(page, 1)
        limit = min(max(limit, 1), self._max_page_size)

        if domain_id is None and domain_name:
            domain = await self._domains.get_by_name(domain_name)
            if domain is None:
                return Page(items=[], page=page, limit=limit, total=0)
            domain_id = domain.id

        items, total = await self._tests.list_published(
            domain_id, offset=(page - 1) * limit, limit=limit
        )
        return Page(items=items, page=page, limit=limit, total=total)

    async def list_tests_for_review(self, domain_id: Optional[UUID] = None) -> List[Test]:
        return await self._tests.list_by_status(TestStatus.PENDING_REVIEW, domain_id)

    async def _load_for_update(self, test_id: UUID) -> Test:
        # Always read through the repository; cached copies are read-only
        test = await self._tests.get(test_id)
        if test is None:
            raise TestNotFoundError(test_id)
        return test

    async def _store(self, test: Test) -> None:
        await self._tests.save(test)
        await self._uow.commit()
        await self._lookup.invalidate(test.id)

    async def approve_test(
        self,
        test_id: UUID,
        reviewer_id: str,
        note: Optional[str] = None,
    ) -> Test:
        test = await self._load_for_update(test_id)
        test.approve(reviewer_id, note)
        await self._store(test)
        metrics.TESTS_REVIEWED.labels(action="approve").inc()
        logger.info("Test approved", test_id=str(test_id), reviewer_id=reviewer_id)
        return test

    async def reject_test(self, test_id: UUID, reviewer_id: str, note: str) -> Test:
        test = await self._load_for_update(test_id)
        test.reject(reviewer_id, note)
        await self._store(test)
        metrics.TESTS_REVIEWED.labels(action="reject").inc()
        logger.info("Test rejected", test_id=str(test_id), reviewer_id=reviewer_id)
        return test

    async def archive_test(self, test_id: UUID) -> Test:
        test = await self._load_for_update(test_id)
        test.archive()
        await self._store(test)
        logger.info("Test archived", test_id=str(test_id))
        return test
