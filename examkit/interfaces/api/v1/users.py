"""
ExamKit - User Endpoints
"""

from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends

from examkit.application.stats import LearnerStatsService
from examkit.interfaces.api.v1.auth import get_current_user
from examkit.interfaces.api.v1.dependencies import get_stats_service

router = APIRouter()


@router.get(
    "/me/stats",
    summary="My Statistics",
    description="Scores, trends and per-domain performance over finished attempts.",
)
async def get_my_stats(
    current_user: Annotated[dict, Depends(get_current_user)],
    stats: Annotated[LearnerStatsService, Depends(get_stats_service)],
) -> Dict[str, Any]:
    result = await stats.user_stats(current_user["id"])
    return result.to_dict()
