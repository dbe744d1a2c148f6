"""
ExamKit - Attempt Application Service
Starting, answering, submitting and reviewing test attempts
"""

import hashlib
import hmac
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional
from uuid import UUID, uuid4

import structlog

from examkit.application.exams.lookup import TestLookup
from examkit.application.repositories import AttemptRepository, TransactionManager
from examkit.domain.exams.attempts import TestAttempt, generate_guest_session_id
from examkit.domain.exams.entities import Option, Question, Test, TestSettings
from examkit.domain.exceptions import (
    AttemptAccessDeniedError,
    AttemptLimitReachedError,
    AttemptNotFoundError,
    ExamValidationError,
)
from examkit.infrastructure import metrics

logger = structlog.get_logger(__name__)


@dataclass
class PresentedQuestion:
    """Question as shown to a learner: options in display order, no answers."""
    question: Question
    options: List[Option]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.question.id),
            "stem": self.question.stem,
            "type": self.question.question_type.value,
            "points": float(self.question.points),
            "difficulty": self.question.difficulty.value,
            "options": [{"id": str(o.id), "label": o.label} for o in self.options],
        }


@dataclass
class QuestionPaper:
    """An attempt together with the questions it presents."""
    attempt: TestAttempt
    test: Test
    questions: List[PresentedQuestion]

    @property
    def deadline(self) -> Optional[datetime]:
        return self.attempt.deadline(self.test)

    def to_dict(self) -> Dict[str, Any]:
        deadline = self.deadline
        return {
            "attempt": self.attempt.to_dict(),
            "test": self.test.to_dict(),
            "deadline": deadline.isoformat() if deadline else None,
            "questions": [q.to_dict() for q in self.questions],
        }


def build_review(attempt: TestAttempt, test: Test) -> Dict[str, Any]:
    """
    Result of a finished attempt, filtered by the test's review settings.

    show_results off hides the per-question breakdown; show_correct_answers
    and show_explanations hide those fields within it.
    """
    evaluation = attempt.evaluation
    if evaluation is None:
        raise ExamValidationError(
            f"Attempt {attempt.id} has no result ({attempt.status.value.lower()})"
        )

    settings: TestSettings = test.settings
    review: Dict[str, Any] = {
        "attempt": attempt.to_dict(),
        "test_id": str(test.id),
        "test_title": test.title,
        "total_questions": evaluation.total_questions,
        "correct_answers": evaluation.correct_count,
        "incorrect_answers": evaluation.incorrect_count,
        "skipped_answers": evaluation.skipped_count,
        "total_points": float(evaluation.total_points),
        "score": float(evaluation.earned_points),
        "percentage": float(evaluation.percentage),
        "pass_percentage": float(evaluation.pass_percentage),
        "passed": evaluation.passed,
        "time_spent_seconds": attempt.time_spent_seconds,
    }
    if not settings.show_results:
        return review

    question_results = []
    for result in evaluation.question_results:
        item = result.to_dict()
        if not settings.show_correct_answers:
            item.pop("correct_answers")
        if settings.show_explanations:
            question = test.get_question(result.question_id)
            item["explanation"] = question.explanation if question else None
        question_results.append(item)
    review["question_results"] = question_results
    return review


class AttemptService:
    """
    Service for test attempts.

    Question papers are shuffled per attempt with an HMAC seed, so a
    resumed attempt shows the same order while other attempts differ.
    """

    def __init__(
        self,
        attempts: AttemptRepository,
        lookup: TestLookup,
        uow: TransactionManager,
        shuffle_secret: str = "examkit-shuffle-secret",
    ):
        self._attempts = attempts
        self._lookup = lookup
        self._uow = uow
        self._shuffle_secret = shuffle_secret

    def _generate_shuffle_seed(self, test_id: UUID, attempt_id: UUID) -> str:
        data = f"{test_id}:{attempt_id}"
        return hmac.new(
            self._shuffle_secret.encode(),
            data.encode(),
            hashlib.sha256,
        ).hexdigest()

    def build_paper(self, attempt: TestAttempt, test: Test) -> QuestionPaper:
        """Questions and options in presentation order for one attempt."""
        seed = self._generate_shuffle_seed(test.id, attempt.id)

        questions = list(test.questions)
        if test.settings.shuffle_questions:
            random.Random(seed).shuffle(questions)

        presented = []
        for question in questions:
            options = list(question.options)
            if test.settings.shuffle_answers:
                random.Random(seed + str(question.id)).shuffle(options)
            presented.append(PresentedQuestion(question=question, options=options))

        return QuestionPaper(attempt=attempt, test=test, questions=presented)

    async def _check_attempt_limit(self, test: Test, user_id: str) -> None:
        settings = test.settings
        if settings.allow_retakes and settings.max_attempts is None:
            return

        finished = await self._attempts.count_finished(test.id, user_id)
        if not settings.allow_retakes and finished >= 1:
            raise AttemptLimitReachedError("Retakes are not allowed for this test")
        if settings.max_attempts is not None and finished >= settings.max_attempts:
            raise AttemptLimitReachedError(
                f"Maximum attempts ({settings.max_attempts}) reached"
            )

    async def start_attempt(
        self,
        test_id: UUID,
        user_id: Optional[str] = None,
    ) -> QuestionPaper:
        """
        Open a new attempt on a published test.

        Guests (no user_id) get a generated session id and no attempt limits.
        """
        test = await self._lookup.get(test_id)
        if not test.is_published:
            raise ExamValidationError("Only published tests can be attempted")

        if user_id is not None:
            await self._check_attempt_limit(test, user_id)

        attempt = TestAttempt(
            id=uuid4(),
            test_id=test.id,
            user_id=user_id,
            session_id=None if user_id else generate_guest_session_id(),
        )
        await self._attempts.add(attempt)
        await self._uow.commit()

        metrics.ATTEMPTS_STARTED.labels(audience="user" if user_id else "guest").inc()
        logger.info(
            "Attempt started",
            attempt_id=str(attempt.id),
            test_id=str(test.id),
            user_id=user_id,
            guest=user_id is None,
        )
        return self.build_paper(attempt, test)

    async def _load(self, attempt_id: UUID, user_id: Optional[str]) -> TestAttempt:
        attempt = await self._attempts.get(attempt_id)
        if attempt is None:
            raise AttemptNotFoundError(attempt_id)
        if attempt.user_id is not None and attempt.user_id != user_id:
            raise AttemptAccessDeniedError(f"Attempt {attempt_id} belongs to another user")
        return attempt

    async def get_paper(self, attempt_id: UUID, user_id: Optional[str] = None) -> QuestionPaper:
        attempt = await self._load(attempt_id, user_id)
        test = await self._lookup.get(attempt.test_id)
        return self.build_paper(attempt, test)

    async def save_answers(
        self,
        attempt_id: UUID,
        answers: Mapping[Any, Optional[Iterable[Any]]],
        user_id: Optional[str] = None,
    ) -> TestAttempt:
        attempt = await self._load(attempt_id, user_id)
        attempt.record_answers(answers)
        await self._attempts.save(attempt)
        await self._uow.commit()
        logger.debug("Answers saved", attempt_id=str(attempt_id), answered=len(attempt.answers))
        return attempt

    async def complete_attempt(
        self,
        attempt_id: UUID,
        answers: Optional[Mapping[Any, Optional[Iterable[Any]]]] = None,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Submit an attempt and return its filtered result.

        Raises:
            AttemptClosedError: the attempt was already finished
        """
        attempt = await self._load(attempt_id, user_id)
        test = await self._lookup.get(attempt.test_id)

        if answers is not None:
            attempt.record_answers(answers)
        evaluation = attempt.complete(test)

        await self._attempts.save(attempt)
        await self._uow.commit()

        metrics.ATTEMPTS_FINISHED.labels(
            status=attempt.status.value, passed=str(evaluation.passed).lower()
        ).inc()
        metrics.ATTEMPT_PERCENTAGE.observe(float(evaluation.percentage))
        logger.info(
            "Attempt completed",
            attempt_id=str(attempt.id),
            test_id=str(test.id),
            status=attempt.status.value,
            percentage=float(evaluation.percentage),
            passed=evaluation.passed,
        )
        return build_review(attempt, test)

    async def abandon_attempt(
        self,
        attempt_id: UUID,
        user_id: Optional[str] = None,
    ) -> TestAttempt:
        attempt = await self._load(attempt_id, user_id)
        attempt.abandon()
        await self._attempts.save(attempt)
        await self._uow.commit()

        metrics.ATTEMPTS_FINISHED.labels(status=attempt.status.value, passed="false").inc()
        logger.info("Attempt abandoned", attempt_id=str(attempt.id))
        return attempt

    async def get_attempt_result(
        self,
        attempt_id: UUID,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        attempt = await self._load(attempt_id, user_id)
        test = await self._lookup.get(attempt.test_id)
        return build_review(attempt, test)
