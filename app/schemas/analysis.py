from __future__ import annotations

import math
import re
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class DocumentType(str, Enum):
    MEETING_MINUTES = "meeting_minutes"
    PROJECT_PLAN = "project_plan"
    CONTRACT = "contract"
    EMAIL = "email"
    INVOICE = "invoice"
    RESUME = "resume"
    RESEARCH_PAPER = "research_paper"
    MANUAL = "manual"
    GENERAL_DOCUMENT = "general_document"


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


# higher wins when two tasks are merged
PRIORITY_RANK = {
    Priority.CRITICAL: 4,
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
    Priority.NONE: 0,
}


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"


class AnalysisOutcome(str, Enum):
    SUCCESS = "success"
    NO_TASKS_FOUND = "no_tasks_found"
    FAILURE = "failure"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TextChunk(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    content: str
    index: int = Field(ge=0)
    is_first: bool


_PRIORITY_VALUES = {p.value for p in Priority}

_HIGH_KEYWORDS = ("urgent", "asap", "critical", "important", "priority", "immediately", "emergency")
_MEDIUM_KEYWORDS = ("soon", "review", "check", "update", "prepare")

_STATUS_ALIASES = {
    "todo": TaskStatus.TODO,
    "to do": TaskStatus.TODO,
    "pending": TaskStatus.TODO,
    "open": TaskStatus.TODO,
    "in_progress": TaskStatus.IN_PROGRESS,
    "in progress": TaskStatus.IN_PROGRESS,
    "in-progress": TaskStatus.IN_PROGRESS,
    "ongoing": TaskStatus.IN_PROGRESS,
    "review": TaskStatus.REVIEW,
    "in review": TaskStatus.REVIEW,
    "done": TaskStatus.DONE,
    "complete": TaskStatus.DONE,
    "completed": TaskStatus.DONE,
}


def infer_priority(text: str) -> Priority:
    """Keyword guess used when the model gives no usable priority."""
    lowered = (text or "").lower()
    if any(k in lowered for k in _HIGH_KEYWORDS):
        return Priority.HIGH
    if any(k in lowered for k in _MEDIUM_KEYWORDS):
        return Priority.MEDIUM
    return Priority.LOW


def _pop_either(data: dict, snake: str, camel: str) -> Any:
    if snake in data:
        return data.pop(snake)
    return data.pop(camel, None)


def _string_list(value: Any) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if isinstance(v, (str, int, float)) and str(v).strip()]


def _optional_text(value: Any) -> Optional[str]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip()


def _minutes(value: Any) -> Optional[float]:
    """Estimate in minutes, or None when missing, negative, non-finite or too large for a float."""
    if isinstance(value, bool):
        return None
    amount: Optional[float] = None
    try:
        if isinstance(value, (int, float)):
            amount = float(value)
        elif isinstance(value, str):
            m = re.match(r"\s*(\d+(?:\.\d+)?)\s*(h|hr|hrs|hour|hours)?\b", value.lower())
            if m:
                amount = float(m.group(1)) * (60 if m.group(2) else 1)
    except OverflowError:
        return None
    if amount is None or not math.isfinite(amount) or amount < 0:
        return None
    return amount


class TaskFields(CamelModel):
    content: str
    priority: Priority = Priority.MEDIUM
    status: TaskStatus = TaskStatus.TODO
    estimated_time: Optional[float] = Field(default=None, ge=0)  # minutes
    deadline: Optional[str] = None
    assignee: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)

        content = data.get("content")
        if not isinstance(content, str) or not content.strip():
            raise ValueError("task content must be a non-empty string")
        data["content"] = content.strip()

        priority = data.get("priority")
        if isinstance(priority, Priority):
            pass
        elif isinstance(priority, str) and priority.strip().lower() in _PRIORITY_VALUES:
            data["priority"] = priority.strip().lower()
        else:
            data["priority"] = infer_priority(data["content"])

        status = data.get("status")
        if not isinstance(status, TaskStatus):
            key = status.strip().lower() if isinstance(status, str) else ""
            data["status"] = _STATUS_ALIASES.get(key, TaskStatus.TODO)

        estimated = _pop_either(data, "estimated_time", "estimatedTime")
        data["estimated_time"] = _minutes(estimated)

        for field in ("deadline", "assignee"):
            data[field] = _optional_text(data.get(field))
        for field in ("tags", "dependencies"):
            data[field] = _string_list(data.get(field))
        return data


class RawTaskRecord(TaskFields):
    """A candidate task as the model produced it, before ids are assigned."""

    subtasks: List[TaskFields] = Field(default_factory=list)

    @field_validator("subtasks", mode="before")
    @classmethod
    def _usable_subtasks(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        out = []
        for item in value:
            if isinstance(item, str) and item.strip():
                out.append({"content": item})
            elif isinstance(item, dict) and isinstance(item.get("content"), str) and item["content"].strip():
                out.append(item)
            elif isinstance(item, TaskFields):
                out.append(item)
        return out


class Subtask(TaskFields):
    id: str
    completed: bool = False
    created_at: datetime


class Task(TaskFields):
    id: str
    completed: bool = False
    created_at: datetime
    subtasks: List[Subtask] = Field(default_factory=list)


class TaskGroup(CamelModel):
    id: str
    name: str
    description: str = ""
    tasks: List[Task] = Field(default_factory=list)


class AnalysisSummary(CamelModel):
    project_description: str
    milestones: List[str] = Field(default_factory=list)
    resources: List[str] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class ProcessingStats(CamelModel):
    tokens_used: int = 0
    processing_time: int = 0  # milliseconds
    model_calls: int = 0
    chunks_total: int = 0
    chunks_failed: int = 0
    truncated: bool = False


class AnalysisResult(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    total_tasks: int
    groups: List[TaskGroup]
    summary: AnalysisSummary
    file_name: Optional[str] = None
    processed_at: datetime
    processing_stats: ProcessingStats
    analysis_outcome: AnalysisOutcome
    outcome_message: str = ""
    document_type: DocumentType = DocumentType.GENERAL_DOCUMENT
    estimated_total_time: str = ""


class AnalyzeRequest(CamelModel):
    content: str
    file_name: Optional[str] = None
