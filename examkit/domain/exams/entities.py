"""
ExamKit - Exam Domain Entities
Tests, questions and options, plus the review workflow on a test
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional
from uuid import UUID, uuid4

from examkit.domain.exceptions import ExamValidationError, InvalidTransitionError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_id(value: Any) -> str:
    """Canonical string form of an id; UUID-like values are lowercased."""
    text = str(value).strip()
    try:
        return str(UUID(text))
    except ValueError:
        return text


class QuestionType(str, Enum):
    """Question types. Only choice-based types carry correct options."""
    SINGLE_CHOICE = "SINGLE_CHOICE"
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    TRUE_FALSE = "TRUE_FALSE"
    FILL_IN_BLANK = "FILL_IN_BLANK"
    ESSAY = "ESSAY"

    @property
    def has_options(self) -> bool:
        return self in (
            QuestionType.SINGLE_CHOICE,
            QuestionType.MULTIPLE_CHOICE,
            QuestionType.TRUE_FALSE,
        )


class Difficulty(str, Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


class TestStatus(str, Enum):
    """Test lifecycle statuses."""
    __test__ = False

    DRAFT = "DRAFT"
    PENDING_REVIEW = "PENDING_REVIEW"
    PUBLISHED = "PUBLISHED"
    REJECTED = "REJECTED"
    ARCHIVED = "ARCHIVED"


@dataclass
class Option:
    """Value object for a selectable answer."""
    id: UUID = field(default_factory=uuid4)
    label: str = ""
    is_correct: bool = False
    feedback: Optional[str] = None
    order_index: int = 0

    def to_dict(self, include_answer: bool = False) -> Dict[str, Any]:
        """Convert to dictionary."""
        result = {
            "id": str(self.id),
            "label": self.label,
            "order_index": self.order_index,
        }
        if include_answer:
            result["is_correct"] = self.is_correct
            result["feedback"] = self.feedback
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Option":
        return cls(
            id=UUID(data["id"]),
            label=data["label"],
            is_correct=data.get("is_correct", False),
            feedback=data.get("feedback"),
            order_index=data.get("order_index", 0),
        )


@dataclass
class Question:
    """A single prompt with its options and point value."""
    id: UUID = field(default_factory=uuid4)
    stem: str = ""
    question_type: QuestionType = QuestionType.SINGLE_CHOICE
    options: List[Option] = field(default_factory=list)
    points: Decimal = field(default_factory=lambda: Decimal("1"))
    explanation: Optional[str] = None
    difficulty: Difficulty = Difficulty.MEDIUM
    tags: List[str] = field(default_factory=list)
    order_index: int = 0

    def add_option(self, label: str, is_correct: bool = False,
                   feedback: Optional[str] = None) -> Option:
        """Append an option to the question."""
        option = Option(
            label=label,
            is_correct=is_correct,
            feedback=feedback,
            order_index=len(self.options),
        )
        self.options.append(option)
        return option

    def get_correct_options(self) -> List[Option]:
        return [opt for opt in self.options if opt.is_correct]

    def correct_option_ids(self) -> FrozenSet[str]:
        return frozenset(normalize_id(opt.id) for opt in self.options if opt.is_correct)

    def validation_errors(self) -> List[str]:
        """Authoring rules for a question; empty list means valid."""
        errors: List[str] = []
        label = f"Question {self.order_index + 1}"

        if not self.stem.strip():
            errors.append(f"{label}: stem must not be empty")
        if self.points <= 0:
            errors.append(f"{label}: points must be positive")

        if not self.question_type.has_options:
            return errors

        if any(not opt.label.strip() for opt in self.options):
            errors.append(f"{label}: option labels must not be empty")

        correct_count = len(self.get_correct_options())
        if self.question_type == QuestionType.TRUE_FALSE and len(self.options) != 2:
            errors.append(f"{label}: true/false questions must have exactly 2 options")
        elif len(self.options) < 2:
            errors.append(f"{label}: at least 2 options required")

        if self.question_type in (QuestionType.SINGLE_CHOICE, QuestionType.TRUE_FALSE):
            if correct_count != 1:
                errors.append(f"{label}: exactly 1 correct option required")
        elif correct_count == 0:
            errors.append(f"{label}: at least one option must be correct")

        return errors

    def to_dict(self, include_answers: bool = False) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": str(self.id),
            "stem": self.stem,
            "type": self.question_type.value,
            "points": float(self.points),
            "difficulty": self.difficulty.value,
            "tags": list(self.tags),
            "order_index": self.order_index,
            "explanation": self.explanation if include_answers else None,
            "options": [opt.to_dict(include_answer=include_answers)
                        for opt in self.options],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Question":
        return cls(
            id=UUID(data["id"]),
            stem=data["stem"],
            question_type=QuestionType(data["type"]),
            points=Decimal(str(data["points"])),
            explanation=data.get("explanation"),
            difficulty=Difficulty(data.get("difficulty", Difficulty.MEDIUM.value)),
            tags=list(data.get("tags", [])),
            order_index=data.get("order_index", 0),
            options=[Option.from_dict(o) for o in data.get("options", [])],
        )


@dataclass
class TestSettings:
    """Per-test behaviour for attempts and result review."""
    __test__ = False

    shuffle_questions: bool = False
    shuffle_answers: bool = False
    show_results: bool = True
    show_correct_answers: bool = True
    show_explanations: bool = True
    allow_retakes: bool = True
    max_attempts: Optional[int] = None
    is_public: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "shuffle_questions": self.shuffle_questions,
            "shuffle_answers": self.shuffle_answers,
            "show_results": self.show_results,
            "show_correct_answers": self.show_correct_answers,
            "show_explanations": self.show_explanations,
            "allow_retakes": self.allow_retakes,
            "max_attempts": self.max_attempts,
            "is_public": self.is_public,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "TestSettings":
        data = data or {}
        known = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in data.items() if k in known})


# Allowed review workflow moves: current status -> reachable statuses
_TRANSITIONS: Dict[TestStatus, FrozenSet[TestStatus]] = {
    TestStatus.DRAFT: frozenset({TestStatus.PENDING_REVIEW}),
    TestStatus.PENDING_REVIEW: frozenset({TestStatus.PUBLISHED, TestStatus.REJECTED}),
    TestStatus.REJECTED: frozenset({TestStatus.PENDING_REVIEW}),
    TestStatus.PUBLISHED: frozenset({TestStatus.ARCHIVED}),
    TestStatus.ARCHIVED: frozenset(),
}


@dataclass
class Test:
    """
    Test aggregate root.

    A titled, ordered collection of questions with a pass threshold.
    Published tests are read-only; scoring never mutates them.
    """
    __test__ = False

    id: UUID = field(default_factory=uuid4)
    title: str = ""
    description: Optional[str] = None
    domain_id: Optional[UUID] = None
    creator_id: Optional[str] = None
    pass_percentage: Decimal = field(default_factory=lambda: Decimal("70"))
    time_limit_minutes: Optional[int] = None
    questions: List[Question] = field(default_factory=list)
    settings: TestSettings = field(default_factory=TestSettings)

    # Review workflow
    status: TestStatus = TestStatus.DRAFT
    submission_note: Optional[str] = None
    reviewer_id: Optional[str] = None
    review_note: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    published_at: Optional[datetime] = None

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def add_question(self, stem: str,
                     question_type: QuestionType = QuestionType.SINGLE_CHOICE,
                     points: Decimal | int = 1,
                     explanation: Optional[str] = None) -> Question:
        """Append a question to the test."""
        question = Question(
            stem=stem,
            question_type=question_type,
            points=Decimal(str(points)),
            explanation=explanation,
            order_index=len(self.questions),
        )
        self.questions.append(question)
        self.updated_at = utcnow()
        return question

    def get_question(self, question_id: UUID | str) -> Optional[Question]:
        wanted = normalize_id(question_id)
        return next((q for q in self.questions if normalize_id(q.id) == wanted), None)

    def get_total_points(self) -> Decimal:
        return sum((q.points for q in self.questions), Decimal("0"))

    @property
    def is_published(self) -> bool:
        return self.status == TestStatus.PUBLISHED

    @property
    def time_limit_seconds(self) -> Optional[int]:
        if self.time_limit_minutes is None:
            return None
        return self.time_limit_minutes * 60

    def validate(self) -> None:
        """Raise ExamValidationError listing every authoring problem."""
        errors: List[str] = []
        if not self.title.strip() or len(self.title) > 200:
            errors.append("Title must be between 1 and 200 characters")
        if not (Decimal("1") <= self.pass_percentage <= Decimal("100")):
            errors.append("Pass percentage must be between 1 and 100")
        if self.time_limit_minutes is not None and self.time_limit_minutes <= 0:
            errors.append("Time limit must be positive")
        if self.settings.max_attempts is not None and self.settings.max_attempts < 1:
            errors.append("Max attempts must be at least 1")
        if not self.questions:
            errors.append("A test needs at least one question")
        for question in self.questions:
            errors.extend(question.validation_errors())

        if errors:
            raise ExamValidationError("Invalid test definition", errors)

    # Review workflow

    def _move_to(self, target: TestStatus) -> None:
        if target not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Cannot move test from {self.status.value} to {target.value}"
            )
        self.status = target
        self.updated_at = utcnow()

    def submit_for_review(self, note: Optional[str] = None) -> None:
        self._move_to(TestStatus.PENDING_REVIEW)
        if note is not None:
            self.submission_note = note

    def approve(self, reviewer_id: str, note: Optional[str] = None) -> None:
        self._move_to(TestStatus.PUBLISHED)
        now = utcnow()
        self.reviewer_id = reviewer_id
        self.review_note = note
        self.reviewed_at = now
        self.published_at = now

    def reject(self, reviewer_id: str, note: str) -> None:
        if not note or not note.strip():
            raise ExamValidationError("Review note is required for rejection")
        self._move_to(TestStatus.REJECTED)
        self.reviewer_id = reviewer_id
        self.review_note = note
        self.reviewed_at = utcnow()

    def archive(self) -> None:
        self._move_to(TestStatus.ARCHIVED)

    def to_dict(self, include_questions: bool = False,
                include_answers: bool = False) -> Dict[str, Any]:
        """Convert to dictionary."""
        result: Dict[str, Any] = {
            "id": str(self.id),
            "title": self.title,
            "description": self.description,
            "domain_id": str(self.domain_id) if self.domain_id else None,
            "creator_id": self.creator_id,
            "status": self.status.value,
            "pass_percentage": float(self.pass_percentage),
            "time_limit_minutes": self.time_limit_minutes,
            "total_questions": len(self.questions),
            "total_points": float(self.get_total_points()),
            "settings": self.settings.to_dict(),
            "submission_note": self.submission_note,
            "reviewer_id": self.reviewer_id,
            "review_note": self.review_note,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "created_at": self.created_at.isoformat(),
        }
        if include_questions:
            result["questions"] = [
                q.to_dict(include_answers=include_answers) for q in self.questions
            ]
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Test":
        """Rebuild a test from to_dict(include_questions=True, include_answers=True)."""

        def _dt(value: Optional[str]) -> Optional[datetime]:
            return datetime.fromisoformat(value) if value else None

        created_at = _dt(data.get("created_at")) or utcnow()
        return cls(
            id=UUID(data["id"]),
            title=data["title"],
            description=data.get("description"),
            domain_id=UUID(data["domain_id"]) if data.get("domain_id") else None,
            creator_id=data.get("creator_id"),
            pass_percentage=Decimal(str(data["pass_percentage"])),
            time_limit_minutes=data.get("time_limit_minutes"),
            questions=[Question.from_dict(q) for q in data.get("questions", [])],
            settings=TestSettings.from_dict(data.get("settings")),
            status=TestStatus(data["status"]),
            submission_note=data.get("submission_note"),
            reviewer_id=data.get("reviewer_id"),
            review_note=data.get("review_note"),
            reviewed_at=_dt(data.get("reviewed_at")),
            published_at=_dt(data.get("published_at")),
            created_at=created_at,
            updated_at=created_at,
        )
