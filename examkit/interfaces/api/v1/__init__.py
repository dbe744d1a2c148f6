"""
ExamKit - API v1 Router
Aggregates all API endpoints
"""

from fastapi import APIRouter

from examkit.interfaces.api.v1.admin import router as admin_router
from examkit.interfaces.api.v1.attempts import router as attempts_router
from examkit.interfaces.api.v1.domains import router as domains_router
from examkit.interfaces.api.v1.exams import router as exams_router
from examkit.interfaces.api.v1.health import router as health_router
from examkit.interfaces.api.v1.users import router as users_router

api_router = APIRouter()

# Health check endpoints
api_router.include_router(
    health_router,
    prefix="/health",
    tags=["Health"],
)

# Subject domains
api_router.include_router(
    domains_router,
    prefix="/domains",
    tags=["Domains"],
)

# Tests and starting attempts
api_router.include_router(
    exams_router,
    prefix="/tests",
    tags=["Tests"],
)

# Attempt lifecycle
api_router.include_router(
    attempts_router,
    prefix="/attempts",
    tags=["Attempts"],
)

# Moderation
api_router.include_router(
    admin_router,
    prefix="/admin",
    tags=["Admin"],
)

# Learner dashboard
api_router.include_router(
    users_router,
    prefix="/users",
    tags=["Users"],
)
