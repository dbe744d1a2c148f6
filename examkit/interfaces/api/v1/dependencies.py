"""
ExamKit - API Dependencies
Per-request sessions, repositories and services
"""

from decimal import Decimal
from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from examkit.application.catalog import CatalogService
from examkit.application.exams import AttemptService, TestAuthoringService, TestLookup
from examkit.application.repositories import (
    AttemptRepository,
    DomainRepository,
    TestRepository,
    TransactionManager,
)
from examkit.application.stats import LearnerStatsService, PlatformAnalyticsService
from examkit.core.config import Settings
from examkit.infrastructure.cache import CacheManager
from examkit.infrastructure.database import UnitOfWork
from examkit.infrastructure.repositories import (
    SqlAttemptRepository,
    SqlDomainRepository,
    SqlTestRepository,
)


async def get_settings_dependency(request: Request) -> Settings:
    return request.app.state.settings


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """One database session per request."""
    async with request.app.state.db.session() as session:
        yield session


async def get_cache(request: Request) -> Optional[CacheManager]:
    """Cache manager, or None when caching is disabled."""
    return getattr(request.app.state, "cache", None)


async def get_transaction_manager(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> TransactionManager:
    return UnitOfWork(session)


async def get_domain_repository(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DomainRepository:
    return SqlDomainRepository(session)


async def get_test_repository(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> TestRepository:
    return SqlTestRepository(session)


async def get_attempt_repository(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> AttemptRepository:
    return SqlAttemptRepository(session)


async def get_test_lookup(
    tests: Annotated[TestRepository, Depends(get_test_repository)],
    cache: Annotated[Optional[CacheManager], Depends(get_cache)],
    settings: Annotated[Settings, Depends(get_settings_dependency)],
) -> TestLookup:
    return TestLookup(tests, cache, ttl=settings.test_cache_ttl)


async def get_catalog_service(
    domains: Annotated[DomainRepository, Depends(get_domain_repository)],
    uow: Annotated[TransactionManager, Depends(get_transaction_manager)],
) -> CatalogService:
    return CatalogService(domains, uow)


async def get_authoring_service(
    tests: Annotated[TestRepository, Depends(get_test_repository)],
    domains: Annotated[DomainRepository, Depends(get_domain_repository)],
    uow: Annotated[TransactionManager, Depends(get_transaction_manager)],
    lookup: Annotated[TestLookup, Depends(get_test_lookup)],
    settings: Annotated[Settings, Depends(get_settings_dependency)],
) -> TestAuthoringService:
    return TestAuthoringService(
        tests,
        domains,
        uow,
        lookup=lookup,
        default_pass_percentage=Decimal(str(settings.default_pass_percentage)),
        max_page_size=settings.max_page_size,
    )


async def get_attempt_service(
    attempts: Annotated[AttemptRepository, Depends(get_attempt_repository)],
    lookup: Annotated[TestLookup, Depends(get_test_lookup)],
    uow: Annotated[TransactionManager, Depends(get_transaction_manager)],
    settings: Annotated[Settings, Depends(get_settings_dependency)],
) -> AttemptService:
    return AttemptService(attempts, lookup, uow, shuffle_secret=settings.shuffle_secret)


async def get_stats_service(
    attempts: Annotated[AttemptRepository, Depends(get_attempt_repository)],
    tests: Annotated[TestRepository, Depends(get_test_repository)],
    domains: Annotated[DomainRepository, Depends(get_domain_repository)],
) -> LearnerStatsService:
    return LearnerStatsService(attempts, tests, domains)


async def get_analytics_service(
    tests: Annotated[TestRepository, Depends(get_test_repository)],
    attempts: Annotated[AttemptRepository, Depends(get_attempt_repository)],
    domains: Annotated[DomainRepository, Depends(get_domain_repository)],
) -> PlatformAnalyticsService:
    return PlatformAnalyticsService(tests, attempts, domains)
