"""
ExamKit - Shared API Models
"""

from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts camelCase or snake_case field names."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AnswersRequest(CamelModel):
    """Question id -> selected option ids. An empty list means skipped."""
    answers: Dict[str, List[str]] = Field(default_factory=dict)
