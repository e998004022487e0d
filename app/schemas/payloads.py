"""Shapes the model is asked to return, one per pipeline stage."""
from __future__ import annotations

from typing import Any, List

from pydantic import BaseModel, Field, field_validator

from app.schemas.analysis import CamelModel


class TaskListPayload(BaseModel):
    # records are validated one at a time by the extractor
    tasks: List[Any]


class CategoryEntry(CamelModel):
    name: str
    description: str = ""
    task_ids: List[str]

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("category name is empty")
        return v.strip()

    @field_validator("task_ids", mode="before")
    @classmethod
    def _ids_as_strings(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [str(x).strip() for x in v if isinstance(x, (str, int))]
        return v


class CategoryListPayload(BaseModel):
    # categories are validated one at a time by the categorizer
    categories: List[Any]


class SummaryPayload(CamelModel):
    project_description: str = Field(min_length=1)
    milestones: List[str] = Field(default_factory=list)
    resources: List[str] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)

    @field_validator("milestones", "resources", "risks", "recommendations", mode="before")
    @classmethod
    def _keep_strings(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, list):
            return [x.strip() for x in v if isinstance(x, str) and x.strip()]
        return v
