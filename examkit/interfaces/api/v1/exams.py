"""
ExamKit - Test Endpoints
Published catalogue, test authoring and starting attempts
"""

from decimal import Decimal
from typing import Annotated, Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import Field

from examkit.application.exams import (
    AttemptService,
    OptionDraft,
    QuestionDraft,
    TestAuthoringService,
    TestDraft,
)
from examkit.domain.exams.entities import Difficulty, QuestionType, TestSettings
from examkit.domain.exceptions import TestNotFoundError
from examkit.interfaces.api.v1.auth import get_current_user, get_optional_user, is_admin
from examkit.interfaces.api.v1.dependencies import (
    get_attempt_service,
    get_authoring_service,
)
from examkit.interfaces.api.v1.schemas import CamelModel

router = APIRouter()


# =============================================================================
# Request Models
# =============================================================================

class OptionRequest(CamelModel):
    label: str = Field(min_length=1, max_length=1000)
    is_correct: bool = False
    feedback: str | None = Field(default=None, max_length=2000)


class QuestionRequest(CamelModel):
    stem: str = Field(min_length=1, max_length=5000)
    type: QuestionType = QuestionType.SINGLE_CHOICE
    options: List[OptionRequest] = Field(default_factory=list)
    points: Decimal = Field(default=Decimal("1"), gt=0, max_digits=8, decimal_places=2)
    explanation: str | None = Field(default=None, max_length=5000)
    difficulty: Difficulty = Difficulty.MEDIUM
    tags: List[str] = Field(default_factory=list)


class TestSettingsRequest(CamelModel):
    shuffle_questions: bool = False
    shuffle_answers: bool = False
    show_results: bool = True
    show_correct_answers: bool = True
    show_explanations: bool = True
    allow_retakes: bool = True
    max_attempts: int | None = Field(default=None, ge=1)
    is_public: bool = True


class TestCreateRequest(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    domain_id: UUID | None = None
    pass_percentage: Decimal | None = Field(default=None, ge=1, le=100, decimal_places=2)
    time_limit: int | None = Field(default=None, gt=0, description="Minutes")
    settings: TestSettingsRequest = Field(default_factory=TestSettingsRequest)
    submission_note: str | None = Field(default=None, max_length=2000)
    questions: List[QuestionRequest] = Field(min_length=1)

    def to_draft(self) -> TestDraft:
        return TestDraft(
            title=self.title,
            description=self.description,
            domain_id=self.domain_id,
            pass_percentage=self.pass_percentage,
            time_limit_minutes=self.time_limit,
            settings=TestSettings(**self.settings.model_dump()),
            submission_note=self.submission_note,
            questions=[
                QuestionDraft(
                    stem=q.stem,
                    question_type=q.type,
                    points=q.points,
                    explanation=q.explanation,
                    difficulty=q.difficulty,
                    tags=list(q.tags),
                    options=[
                        OptionDraft(label=o.label, is_correct=o.is_correct, feedback=o.feedback)
                        for o in q.options
                    ],
                )
                for q in self.questions
            ],
        )


# =============================================================================
# Endpoints
# =============================================================================

@router.get(
    "",
    summary="List Published Tests",
    description="Public published tests, newest first. `category` is a domain name alias.",
)
async def list_published_tests(
    authoring: Annotated[TestAuthoringService, Depends(get_authoring_service)],
    domain_id: Annotated[Optional[UUID], Query(alias="domainId")] = None,
    domain_name: Annotated[Optional[str], Query(alias="domainName")] = None,
    category: Optional[str] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1)] = 20,
) -> Dict[str, Any]:
    result = await authoring.list_published_tests(
        domain_id=domain_id,
        domain_name=domain_name or category,
        page=page,
        limit=limit,
    )
    return {
        "tests": [t.to_dict() for t in result.items],
        "pagination": result.pagination(),
    }


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create Test",
    description="Submit a new test. It is published once an admin approves it.",
)
async def create_test(
    body: TestCreateRequest,
    current_user: Annotated[dict, Depends(get_current_user)],
    authoring: Annotated[TestAuthoringService, Depends(get_authoring_service)],
) -> Dict[str, Any]:
    test = await authoring.create_test(body.to_draft(), creator_id=current_user["id"])
    return test.to_dict(include_questions=True, include_answers=True)


@router.get(
    "/{test_id}",
    summary="Get Test",
    description="Answers are only included for the author and admins.",
)
async def get_test(
    test_id: UUID,
    request: Request,
    current_user: Annotated[Optional[dict], Depends(get_optional_user)],
    authoring: Annotated[TestAuthoringService, Depends(get_authoring_service)],
    include_questions: Annotated[bool, Query(alias="includeQuestions")] = False,
) -> Dict[str, Any]:
    test = await authoring.get_test(test_id)

    privileged = is_admin(current_user, request.app.state.settings) or (
        current_user is not None and current_user["id"] == test.creator_id
    )
    # Unpublished tests are invisible to everyone else
    if not test.is_published and not privileged:
        raise TestNotFoundError(test_id)

    return test.to_dict(include_questions=include_questions, include_answers=privileged)


@router.post(
    "/{test_id}/attempts",
    status_code=status.HTTP_201_CREATED,
    summary="Start Attempt",
    description="Start an attempt. Without a token the attempt is a guest attempt.",
    responses={403: {"description": "Attempt limit reached"}},
)
async def start_attempt(
    test_id: UUID,
    current_user: Annotated[Optional[dict], Depends(get_optional_user)],
    attempts: Annotated[AttemptService, Depends(get_attempt_service)],
) -> Dict[str, Any]:
    paper = await attempts.start_attempt(
        test_id,
        user_id=current_user["id"] if current_user else None,
    )
    return paper.to_dict()
