"""
Exam Application Services Module
"""

from examkit.application.exams.attempts import (
    AttemptService,
    PresentedQuestion,
    QuestionPaper,
    build_review,
)
from examkit.application.exams.authoring import (
    OptionDraft,
    Page,
    QuestionDraft,
    TestAuthoringService,
    TestDraft,
)
from examkit.application.exams.lookup import TestLookup

__all__ = [
    "AttemptService",
    "OptionDraft",
    "Page",
    "PresentedQuestion",
    "QuestionDraft",
    "QuestionPaper",
    "TestAuthoringService",
    "TestDraft",
    "TestLookup",
    "build_review",
]
