"""
ExamKit - Test Lookup
Loads tests through the repository with a read-through cache for
published definitions.
"""

from typing import Optional
from uuid import UUID

import structlog

from examkit.application.repositories import TestRepository
from examkit.domain.exams.entities import Test
from examkit.domain.exceptions import TestNotFoundError
from examkit.infrastructure.cache import CacheManager

logger = structlog.get_logger(__name__)


class TestLookup:
    """
    Fetch tests by id.

    Only published tests are cached; their questions never change, and any
    status change goes through invalidate().
    """
    __test__ = False

    def __init__(
        self,
        tests: TestRepository,
        cache: Optional[CacheManager] = None,
        ttl: int = 300,
    ):
        self._tests = tests
        self._cache = cache
        self._ttl = ttl

    def _key(self, test_id: UUID) -> str:
        return self._cache.key("test", test_id)

    async def get(self, test_id: UUID) -> Test:
        """
        Load a test or raise TestNotFoundError.
        """
        if self._cache is not None:
            cached = await self._cache.get_json(self._key(test_id))
            if cached is not None:
                return Test.from_dict(cached)

        test = await self._tests.get(test_id)
        if test is None:
            raise TestNotFoundError(test_id)

        if self._cache is not None and test.is_published:
            await self._cache.set_json(
                self._key(test_id),
                test.to_dict(include_questions=True, include_answers=True),
                ttl=self._ttl,
            )
        return test

    async def invalidate(self, test_id: UUID) -> None:
        if self._cache is not None:
            await self._cache.delete(self._key(test_id))
            logger.debug("Test cache invalidated", test_id=str(test_id))
