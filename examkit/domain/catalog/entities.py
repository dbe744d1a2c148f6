"""
ExamKit - Catalog Domain Entities
Subject domains (e.g. Life in the UK, driving theory) that group tests
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from examkit.domain.exams.entities import QuestionType, Test, utcnow
from examkit.domain.exceptions import ExamValidationError


@dataclass
class DomainConfig:
    """Authoring defaults and limits for tests in a domain."""
    default_time_limit: int = 45  # minutes
    default_pass_percentage: Decimal = field(default_factory=lambda: Decimal("70"))
    allowed_question_types: List[QuestionType] = field(
        default_factory=lambda: [
            QuestionType.SINGLE_CHOICE,
            QuestionType.MULTIPLE_CHOICE,
            QuestionType.TRUE_FALSE,
        ]
    )
    max_questions_per_test: int = 100
    enable_auto_approval: bool = False
    require_review: bool = True
    custom_fields: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.default_time_limit <= 0:
            raise ExamValidationError("Default time limit must be positive")
        if not (Decimal("1") <= Decimal(str(self.default_pass_percentage)) <= Decimal("100")):
            raise ExamValidationError("Default pass percentage must be between 1 and 100")
        if self.max_questions_per_test <= 0:
            raise ExamValidationError("Max questions per test must be positive")

    def check_test(self, test: Test) -> List[str]:
        """Domain-level limits a test must respect."""
        errors: List[str] = []
        if len(test.questions) > self.max_questions_per_test:
            errors.append(
                f"Test has {len(test.questions)} questions; "
                f"domain allows at most {self.max_questions_per_test}"
            )
        allowed = set(self.allowed_question_types)
        for question in test.questions:
            if question.question_type not in allowed:
                errors.append(
                    f"Question {question.order_index + 1}: type "
                    f"{question.question_type.value} is not allowed in this domain"
                )
        return errors

    @property
    def publishes_without_review(self) -> bool:
        return self.enable_auto_approval and not self.require_review

    def to_dict(self) -> Dict[str, Any]:
        return {
            "default_time_limit": self.default_time_limit,
            "default_pass_percentage": float(self.default_pass_percentage),
            "allowed_question_types": [t.value for t in self.allowed_question_types],
            "max_questions_per_test": self.max_questions_per_test,
            "enable_auto_approval": self.enable_auto_approval,
            "require_review": self.require_review,
            "custom_fields": self.custom_fields,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "DomainConfig":
        data = dict(data or {})
        if "allowed_question_types" in data:
            data["allowed_question_types"] = [
                QuestionType(t) for t in data["allowed_question_types"]
            ]
        if "default_pass_percentage" in data:
            data["default_pass_percentage"] = Decimal(str(data["default_pass_percentage"]))
        known = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class Domain:
    """A subject area such as 'life-in-uk' or 'driving-theory'."""
    id: UUID = field(default_factory=uuid4)
    name: str = ""
    display_name: str = ""
    description: Optional[str] = None
    is_active: bool = True
    config: DomainConfig = field(default_factory=DomainConfig)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "display_name": self.display_name,
            "description": self.description,
            "is_active": self.is_active,
            "config": self.config.to_dict(),
            "created_at": self.created_at.isoformat(),
        }
