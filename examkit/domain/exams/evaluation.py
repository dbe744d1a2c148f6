"""
ExamKit - Attempt Evaluation

Scores a learner's answers against a test definition. A question is
correct only when the selected option ids equal the correct option ids as
sets; there is no partial credit and no penalty for wrong answers.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

from examkit.domain.exams.entities import Question, Test, normalize_id

HUNDRED = Decimal("100")

AnswerMap = Mapping[Any, Optional[Iterable[Any]]]


@dataclass(frozen=True)
class QuestionResult:
    """Outcome for one question, enough to highlight right and wrong options."""
    question_id: str
    is_correct: bool
    skipped: bool
    user_answers: Tuple[str, ...]
    correct_answers: Tuple[str, ...]
    points: Decimal
    earned_points: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_id": self.question_id,
            "is_correct": self.is_correct,
            "skipped": self.skipped,
            "user_answers": list(self.user_answers),
            "correct_answers": list(self.correct_answers),
            "points": float(self.points),
            "earned_points": float(self.earned_points),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuestionResult":
        return cls(
            question_id=data["question_id"],
            is_correct=data["is_correct"],
            skipped=data.get("skipped", not data.get("user_answers")),
            user_answers=tuple(data.get("user_answers", ())),
            correct_answers=tuple(data.get("correct_answers", ())),
            points=Decimal(str(data["points"])),
            earned_points=Decimal(str(data["earned_points"])),
        )


@dataclass(frozen=True)
class EvaluationResult:
    """Scored outcome of one attempt. Never mutated after creation."""
    test_id: str
    question_results: Tuple[QuestionResult, ...]
    total_points: Decimal
    earned_points: Decimal
    percentage: Decimal
    pass_percentage: Decimal
    passed: bool
    correct_count: int
    incorrect_count: int
    skipped_count: int

    @property
    def total_questions(self) -> int:
        return len(self.question_results)

    def result_for(self, question_id: Any) -> Optional[QuestionResult]:
        wanted = normalize_id(question_id)
        return next(
            (r for r in self.question_results if r.question_id == wanted), None
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "test_id": self.test_id,
            "total_questions": self.total_questions,
            "correct_answers": self.correct_count,
            "incorrect_answers": self.incorrect_count,
            "skipped_answers": self.skipped_count,
            "total_points": float(self.total_points),
            "score": float(self.earned_points),
            "percentage": float(self.percentage),
            "pass_percentage": float(self.pass_percentage),
            "passed": self.passed,
            "question_results": [r.to_dict() for r in self.question_results],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EvaluationResult":
        return cls(
            test_id=data["test_id"],
            question_results=tuple(
                QuestionResult.from_dict(r) for r in data["question_results"]
            ),
            total_points=Decimal(str(data["total_points"])),
            earned_points=Decimal(str(data["score"])),
            percentage=Decimal(str(data["percentage"])),
            pass_percentage=Decimal(str(data["pass_percentage"])),
            passed=data["passed"],
            correct_count=data["correct_answers"],
            incorrect_count=data["incorrect_answers"],
            skipped_count=data["skipped_answers"],
        )


def _selected_ids(answers: AnswerMap, question: Question) -> FrozenSet[str]:
    # Keys may arrive as UUIDs or strings in any case
    wanted = normalize_id(question.id)
    for key, selected in answers.items():
        if normalize_id(key) == wanted:
            return frozenset(normalize_id(v) for v in (selected or ()))
    return frozenset()


def evaluate_question(question: Question, selected: FrozenSet[str]) -> QuestionResult:
    """Score a single question from the learner's selected option ids."""
    correct = question.correct_option_ids()
    skipped = not selected
    is_correct = not skipped and selected == correct

    return QuestionResult(
        question_id=normalize_id(question.id),
        is_correct=is_correct,
        skipped=skipped,
        user_answers=tuple(sorted(selected)),
        correct_answers=tuple(sorted(correct)),
        points=question.points,
        earned_points=question.points if is_correct else Decimal("0"),
    )


def evaluate(test: Test, answers: AnswerMap) -> EvaluationResult:
    """
    Evaluate a learner's answers for a test.

    Args:
        test: Test definition with questions and options
        answers: question id -> selected option ids; absent or empty
            entries count as skipped

    Returns:
        EvaluationResult with per-question outcomes and totals. When the
        test carries no points the percentage is 0 and the attempt fails.
    """
    results = tuple(
        evaluate_question(question, _selected_ids(answers, question))
        for question in test.questions
    )

    total_points = sum((r.points for r in results), Decimal("0"))
    earned_points = sum((r.earned_points for r in results), Decimal("0"))

    if total_points > 0:
        percentage = earned_points / total_points * HUNDRED
        passed = percentage >= test.pass_percentage
    else:
        percentage = Decimal("0")
        passed = False

    correct_count = sum(1 for r in results if r.is_correct)
    skipped_count = sum(1 for r in results if r.skipped)

    return EvaluationResult(
        test_id=normalize_id(test.id),
        question_results=results,
        total_points=total_points,
        earned_points=earned_points,
        percentage=percentage,
        pass_percentage=test.pass_percentage,
        passed=passed,
        correct_count=correct_count,
        incorrect_count=len(results) - correct_count - skipped_count,
        skipped_count=skipped_count,
    )
