"""
ExamKit - Test Attempts

One learner's timed run through a test. The attempt holds the answers
while in progress and the evaluation once it is finished.
"""

import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional
from uuid import UUID, uuid4

from examkit.domain.exams.entities import Test, normalize_id, utcnow
from examkit.domain.exams.evaluation import EvaluationResult, evaluate
from examkit.domain.exceptions import AttemptClosedError

_GUEST_ALPHABET = string.ascii_lowercase + string.digits


class AttemptStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"
    TIMED_OUT = "TIMED_OUT"

    @property
    def is_finished(self) -> bool:
        return self != AttemptStatus.IN_PROGRESS


def generate_guest_session_id() -> str:
    """Session id for attempts started without a signed-in user."""
    suffix = "".join(secrets.choice(_GUEST_ALPHABET) for _ in range(9))
    return f"guest_{int(time.time() * 1000)}_{suffix}"


def normalize_answers(answers: Mapping[Any, Optional[Iterable[Any]]]) -> Dict[str, List[str]]:
    """JSON-friendly answers map with de-duplicated, canonical ids."""
    normalized: Dict[str, List[str]] = {}
    for question_id, selected in answers.items():
        ids = sorted({normalize_id(v) for v in (selected or ())})
        normalized[normalize_id(question_id)] = ids
    return normalized


@dataclass
class TestAttempt:
    """Attempt aggregate. The evaluation is set exactly once."""
    __test__ = False

    id: UUID = field(default_factory=uuid4)
    test_id: UUID = field(default_factory=uuid4)
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    answers: Dict[str, List[str]] = field(default_factory=dict)
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    time_spent_seconds: Optional[int] = None
    evaluation: Optional[EvaluationResult] = None

    @property
    def is_in_progress(self) -> bool:
        return self.status == AttemptStatus.IN_PROGRESS

    def _ensure_in_progress(self) -> None:
        if not self.is_in_progress:
            raise AttemptClosedError(
                f"Attempt {self.id} is {self.status.value.lower()}"
            )

    def deadline(self, test: Test) -> Optional[datetime]:
        if test.time_limit_seconds is None:
            return None
        return self.started_at + timedelta(seconds=test.time_limit_seconds)

    def is_expired(self, test: Test, now: Optional[datetime] = None) -> bool:
        deadline = self.deadline(test)
        return deadline is not None and (now or utcnow()) > deadline

    def record_answers(self, answers: Mapping[Any, Optional[Iterable[Any]]]) -> None:
        """Replace the stored answers while the attempt is open."""
        self._ensure_in_progress()
        self.answers = normalize_answers(answers)

    def complete(self, test: Test, now: Optional[datetime] = None) -> EvaluationResult:
        """
        Finish the attempt and evaluate it.

        An attempt past the test's time limit is still scored but ends
        as TIMED_OUT instead of COMPLETED.
        """
        self._ensure_in_progress()
        now = now or utcnow()

        self.evaluation = evaluate(test, self.answers)
        self.status = (
            AttemptStatus.TIMED_OUT if self.is_expired(test, now)
            else AttemptStatus.COMPLETED
        )
        self.completed_at = now
        self.time_spent_seconds = max(0, int((now - self.started_at).total_seconds()))
        return self.evaluation

    def abandon(self, now: Optional[datetime] = None) -> None:
        self._ensure_in_progress()
        now = now or utcnow()
        self.status = AttemptStatus.ABANDONED
        self.completed_at = now
        self.time_spent_seconds = max(0, int((now - self.started_at).total_seconds()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "test_id": str(self.test_id),
            "user_id": self.user_id,
            "session_id": self.session_id,
            "status": self.status.value,
            "answers": self.answers,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "time_spent_seconds": self.time_spent_seconds,
        }
