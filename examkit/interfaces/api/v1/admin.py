"""
ExamKit - Admin Endpoints
Moderation queue for submitted tests and platform analytics
"""

from typing import Annotated, Any, Dict, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from examkit.application.exams import TestAuthoringService
from examkit.application.stats import PlatformAnalyticsService
from examkit.interfaces.api.v1.auth import require_admin
from examkit.interfaces.api.v1.dependencies import (
    get_analytics_service,
    get_authoring_service,
)
from examkit.interfaces.api.v1.schemas import CamelModel

router = APIRouter()

AdminUser = Annotated[dict, Depends(require_admin)]
Authoring = Annotated[TestAuthoringService, Depends(get_authoring_service)]


class ReviewRequest(CamelModel):
    action: Literal["approve", "reject"]
    review_note: str | None = Field(default=None, max_length=2000)


@router.get(
    "/tests/review",
    summary="Pending Tests",
    description="Tests awaiting review, oldest first.",
)
async def list_tests_for_review(
    current_user: AdminUser,
    authoring: Authoring,
    domain_id: Annotated[Optional[UUID], Query(alias="domainId")] = None,
) -> Dict[str, Any]:
    tests = await authoring.list_tests_for_review(domain_id)
    return {
        "tests": [t.to_dict(include_questions=True, include_answers=True) for t in tests],
        "total": len(tests),
    }


@router.post(
    "/tests/{test_id}/review",
    summary="Review Test",
    description="Approve (publish) or reject a pending test. Rejection needs a note.",
)
async def review_test(
    test_id: UUID,
    body: ReviewRequest,
    current_user: AdminUser,
    authoring: Authoring,
) -> Dict[str, Any]:
    if body.action == "approve":
        test = await authoring.approve_test(test_id, current_user["id"], body.review_note)
    else:
        test = await authoring.reject_test(test_id, current_user["id"], body.review_note or "")
    return test.to_dict()


@router.post(
    "/tests/{test_id}/archive",
    summary="Archive Test",
)
async def archive_test(
    test_id: UUID,
    current_user: AdminUser,
    authoring: Authoring,
) -> Dict[str, Any]:
    test = await authoring.archive_test(test_id)
    return test.to_dict()


@router.get(
    "/analytics",
    summary="Platform Analytics",
    description="Totals, last-seven-days activity, status and difficulty breakdowns, "
                "most attempted tests and per-domain figures.",
)
async def platform_analytics(
    current_user: AdminUser,
    analytics: Annotated[PlatformAnalyticsService, Depends(get_analytics_service)],
) -> Dict[str, Any]:
    result = await analytics.dashboard()
    return result.to_dict()
