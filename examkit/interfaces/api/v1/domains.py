"""
ExamKit - Domain Endpoints
Subject domains that group tests
"""

from decimal import Decimal
from typing import Annotated, Any, Dict, List

from fastapi import APIRouter, Depends, status
from pydantic import Field

from examkit.application.catalog import CatalogService
from examkit.domain.catalog.entities import DomainConfig
from examkit.domain.exams.entities import QuestionType
from examkit.interfaces.api.v1.auth import require_admin
from examkit.interfaces.api.v1.dependencies import get_catalog_service
from examkit.interfaces.api.v1.schemas import CamelModel

router = APIRouter()


class DomainConfigRequest(CamelModel):
    default_time_limit: int = Field(default=45, gt=0)
    default_pass_percentage: Decimal = Field(default=Decimal("70"), ge=1, le=100, decimal_places=2)
    allowed_question_types: List[QuestionType] = Field(
        default_factory=lambda: [
            QuestionType.SINGLE_CHOICE,
            QuestionType.MULTIPLE_CHOICE,
            QuestionType.TRUE_FALSE,
        ],
        min_length=1,
    )
    max_questions_per_test: int = Field(default=100, gt=0)
    enable_auto_approval: bool = False
    require_review: bool = True
    custom_fields: Dict[str, Any] = Field(default_factory=dict)

    def to_config(self) -> DomainConfig:
        return DomainConfig(**self.model_dump())


class DomainCreateRequest(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    display_name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    config: DomainConfigRequest = Field(default_factory=DomainConfigRequest)


@router.get(
    "",
    summary="List Domains",
    description="Active subject domains ordered by display name",
)
async def list_domains(
    catalog: Annotated[CatalogService, Depends(get_catalog_service)],
) -> Dict[str, Any]:
    domains = await catalog.list_domains()
    return {"domains": [d.to_dict() for d in domains]}


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create Domain",
    responses={409: {"description": "Domain name already taken"}},
)
async def create_domain(
    body: DomainCreateRequest,
    current_user: Annotated[dict, Depends(require_admin)],
    catalog: Annotated[CatalogService, Depends(get_catalog_service)],
) -> Dict[str, Any]:
    domain = await catalog.create_domain(
        name=body.name,
        display_name=body.display_name,
        description=body.description,
        config=body.config.to_config(),
    )
    return domain.to_dict()


@router.get(
    "/{name}",
    summary="Get Domain",
)
async def get_domain(
    name: str,
    catalog: Annotated[CatalogService, Depends(get_catalog_service)],
) -> Dict[str, Any]:
    domain = await catalog.get_domain_by_name(name)
    return domain.to_dict()
