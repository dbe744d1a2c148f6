"""
Exam domain package.
"""

from .attempts import AttemptStatus, TestAttempt
from .entities import (
    Difficulty,
    Option,
    Question,
    QuestionType,
    Test,
    TestSettings,
    TestStatus,
)
from .evaluation import EvaluationResult, QuestionResult, evaluate

__all__ = [
    "AttemptStatus",
    "Difficulty",
    "EvaluationResult",
    "Option",
    "Question",
    "QuestionResult",
    "QuestionType",
    "Test",
    "TestAttempt",
    "TestSettings",
    "TestStatus",
    "evaluate",
]
