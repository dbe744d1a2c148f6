"""
ExamKit - Attempt Endpoints
Answering, submitting and reviewing test attempts
"""

from typing import Annotated, Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends

from examkit.application.exams import AttemptService
from examkit.interfaces.api.v1.auth import get_optional_user
from examkit.interfaces.api.v1.dependencies import get_attempt_service
from examkit.interfaces.api.v1.schemas import AnswersRequest

router = APIRouter()

CurrentUser = Annotated[Optional[dict], Depends(get_optional_user)]
Attempts = Annotated[AttemptService, Depends(get_attempt_service)]


def _user_id(user: Optional[dict]) -> Optional[str]:
    return user["id"] if user else None


@router.get(
    "/{attempt_id}",
    summary="Resume Attempt",
    description="The attempt with its question paper in presentation order.",
)
async def get_attempt(
    attempt_id: UUID,
    current_user: CurrentUser,
    attempts: Attempts,
) -> Dict[str, Any]:
    paper = await attempts.get_paper(attempt_id, _user_id(current_user))
    return paper.to_dict()


@router.put(
    "/{attempt_id}",
    summary="Save Answers",
    description="Replace the stored answers of an attempt in progress.",
)
async def save_answers(
    attempt_id: UUID,
    body: AnswersRequest,
    current_user: CurrentUser,
    attempts: Attempts,
) -> Dict[str, Any]:
    attempt = await attempts.save_answers(attempt_id, body.answers, _user_id(current_user))
    return attempt.to_dict()


@router.post(
    "/{attempt_id}/complete",
    summary="Submit Attempt",
    description="Optionally save final answers, then score the attempt once.",
)
async def complete_attempt(
    attempt_id: UUID,
    current_user: CurrentUser,
    attempts: Attempts,
    body: Annotated[Optional[AnswersRequest], Body()] = None,
) -> Dict[str, Any]:
    return await attempts.complete_attempt(
        attempt_id,
        answers=body.answers if body is not None else None,
        user_id=_user_id(current_user),
    )


@router.post(
    "/{attempt_id}/abandon",
    summary="Abandon Attempt",
)
async def abandon_attempt(
    attempt_id: UUID,
    current_user: CurrentUser,
    attempts: Attempts,
) -> Dict[str, Any]:
    attempt = await attempts.abandon_attempt(attempt_id, _user_id(current_user))
    return attempt.to_dict()


@router.get(
    "/{attempt_id}/result",
    summary="Attempt Result",
    description="Score and per-question review, filtered by the test's settings.",
)
async def get_attempt_result(
    attempt_id: UUID,
    current_user: CurrentUser,
    attempts: Attempts,
) -> Dict[str, Any]:
    return await attempts.get_attempt_result(attempt_id, _user_id(current_user))
