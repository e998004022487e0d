from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from app.schemas.analysis import (
    PRIORITY_RANK,
    Priority,
    RawTaskRecord,
    Subtask,
    Task,
    TaskStatus,
)

FALLBACK_TASK_CONTENT = "Review the document and identify the action items manually"

# used for tasks without an estimate when totalling time
DEFAULT_TASK_MINUTES = 15

# anything that is not a word character or whitespace, in any script
_PUNCT = re.compile(r"[^\w\s]|_")
_SPACES = re.compile(r"\s+")


def dedup_key(content: str) -> str:
    s = _PUNCT.sub("", (content or "").lower())
    return _SPACES.sub(" ", s).strip()


def _union(first: Iterable[str], second: Iterable[str]) -> List[str]:
    out: List[str] = []
    seen = set()
    for item in list(first) + list(second):
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def higher_priority(a: Priority, b: Priority) -> Priority:
    return a if PRIORITY_RANK[a] >= PRIORITY_RANK[b] else b


def _max_time(a: Optional[float], b: Optional[float]) -> Optional[float]:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def merge_pair(kept: RawTaskRecord, dup: RawTaskRecord) -> RawTaskRecord:
    return kept.model_copy(
        update={
            "tags": _union(kept.tags, dup.tags),
            "dependencies": _union(kept.dependencies, dup.dependencies),
            "priority": higher_priority(kept.priority, dup.priority),
            "estimated_time": _max_time(kept.estimated_time, dup.estimated_time),
            "subtasks": list(kept.subtasks) + list(dup.subtasks),
            "deadline": kept.deadline or dup.deadline,
            "assignee": kept.assignee or dup.assignee,
        }
    )


def merge_tasks(records: Iterable[RawTaskRecord]) -> List[RawTaskRecord]:
    """Collapse near-duplicate tasks. Output keeps first-seen order."""
    merged: Dict[str, RawTaskRecord] = {}
    for record in records:
        key = dedup_key(record.content)
        if not key:
            continue
        if key in merged:
            merged[key] = merge_pair(merged[key], record)
        else:
            merged[key] = record
    return list(merged.values())


def fallback_task() -> RawTaskRecord:
    return RawTaskRecord(
        content=FALLBACK_TASK_CONTENT,
        priority=Priority.MEDIUM,
        status=TaskStatus.TODO,
        tags=["review"],
    )


def ensure_minimum(records: List[RawTaskRecord]) -> Tuple[List[RawTaskRecord], bool]:
    """Returns (records, synthesized). Never returns an empty list."""
    if records:
        return records, False
    return [fallback_task()], True


def assign_ids(records: List[RawTaskRecord], now: Optional[datetime] = None) -> List[Task]:
    now = now or datetime.now(timezone.utc)
    tasks: List[Task] = []
    for i, record in enumerate(records, start=1):
        task_id = f"task-{i}"
        subtasks = [
            Subtask(**sub.model_dump(), id=f"{task_id}-{j}", created_at=now)
            for j, sub in enumerate(record.subtasks, start=1)
        ]
        tasks.append(
            Task(
                **record.model_dump(exclude={"subtasks"}),
                id=task_id,
                created_at=now,
                subtasks=subtasks,
            )
        )
    return tasks


def format_estimated_time(tasks: List[Task]) -> str:
    total = 0.0
    for t in tasks:
        total += t.estimated_time if t.estimated_time is not None else DEFAULT_TASK_MINUTES
    if not math.isfinite(total):
        return "unknown"
    minutes = int(round(total))

    if minutes < 60:
        return f"{minutes} minutes"
    hours, rest = divmod(minutes, 60)
    return f"{hours}h {rest}m" if rest else f"{hours} hours"
