"""
ExamKit - Catalog Application Service
Subject domains that group tests
"""

import re
from typing import List, Optional

import structlog

from examkit.application.repositories import DomainRepository, TransactionManager
from examkit.domain.catalog.entities import Domain, DomainConfig
from examkit.domain.exceptions import (
    DomainNotFoundError,
    DuplicateDomainError,
    ExamValidationError,
)

logger = structlog.get_logger(__name__)

# Domain names are URL slugs, e.g. "life-in-uk"
DOMAIN_NAME_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


class CatalogService:
    """Service for managing subject domains."""

    def __init__(self, domains: DomainRepository, uow: TransactionManager):
        self._domains = domains
        self._uow = uow

    async def create_domain(
        self,
        name: str,
        display_name: str,
        description: Optional[str] = None,
        config: Optional[DomainConfig] = None,
    ) -> Domain:
        """
        Create a domain.

        Raises:
            ExamValidationError: name or display name is invalid
            DuplicateDomainError: a domain with this name exists
        """
        name = name.strip().lower()
        display_name = display_name.strip()

        errors = []
        if not DOMAIN_NAME_PATTERN.match(name):
            errors.append("Name must be a lowercase slug (letters, digits and hyphens)")
        if not display_name:
            errors.append("Display name is required")
        if errors:
            raise ExamValidationError("Invalid domain", errors)

        if await self._domains.get_by_name(name) is not None:
            raise DuplicateDomainError(f"Domain already exists: {name}")

        domain = Domain(
            name=name,
            display_name=display_name,
            description=description,
            config=config or DomainConfig(),
        )
        await self._domains.add(domain)
        await self._uow.commit()

        logger.info("Domain created", domain_id=str(domain.id), name=name)
        return domain

    async def list_domains(self) -> List[Domain]:
        return await self._domains.list_active()

    async def get_domain_by_name(self, name: str) -> Domain:
        domain = await self._domains.get_by_name(name.strip().lower())
        if domain is None:
            raise DomainNotFoundError(name)
        return domain
