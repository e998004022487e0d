from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from pydantic import ValidationError

from app.core.errors import ModelCallFailed
from app.core.logging import get_logger
from app.schemas.analysis import Task, TaskGroup
from app.schemas.payloads import CategoryEntry, CategoryListPayload
from app.services.llm_client import CancellationToken, ModelClient
from app.services.prompts import CATEGORIZATION_SYSTEM, CATEGORIZATION_USER_TMPL
from app.services.response_parser import parse_payload

log = get_logger(__name__)

MIN_GROUPS = 2
MAX_GROUPS = 6
SUMMARY_CHARS = 100

UNCATEGORIZED_ID = "group-uncategorized"
UNCATEGORIZED_NAME = "Uncategorized"
DEFAULT_GROUP_NAME = "Document Tasks"


@dataclass
class CategorizationResult:
    groups: List[TaskGroup]
    degraded: bool = False


def task_lines(tasks: List[Task]) -> str:
    return "\n".join(f"{t.id}: {t.content[:SUMMARY_CHARS]}" for t in tasks)


def default_group(tasks: List[Task], file_name: Optional[str] = None) -> TaskGroup:
    return TaskGroup(
        id="group-1",
        name=file_name or DEFAULT_GROUP_NAME,
        description="All tasks found in the document",
        tasks=list(tasks),
    )


def build_groups(raw_categories: List[object], tasks: List[Task], request_id: str = "-") -> List[TaskGroup]:
    """
    Turn the model's categories into groups. Unknown ids are dropped, a task
    lands in the first category that claims it, and anything left over goes
    to a trailing Uncategorized group.
    """
    by_id: Dict[str, Task] = {t.id: t for t in tasks}
    claimed: set = set()
    groups: List[TaskGroup] = []

    for raw in raw_categories:
        if len(groups) >= MAX_GROUPS:
            break
        try:
            entry = CategoryEntry.model_validate(raw)
        except (ValidationError, TypeError, ValueError):
            log.warning(f"[{request_id}] skipping_malformed_category item={str(raw)[:120]!r}")
            continue

        members: List[Task] = []
        for task_id in entry.task_ids:
            if task_id not in by_id or task_id in claimed:
                continue
            claimed.add(task_id)
            members.append(by_id[task_id])

        if members:
            groups.append(
                TaskGroup(
                    id=f"group-{len(groups) + 1}",
                    name=entry.name,
                    description=entry.description,
                    tasks=members,
                )
            )

    leftovers = [t for t in tasks if t.id not in claimed]
    if leftovers:
        groups.append(
            TaskGroup(
                id=UNCATEGORIZED_ID,
                name=UNCATEGORIZED_NAME,
                description="Tasks not assigned to a category",
                tasks=leftovers,
            )
        )
    return groups


def categorize(
    tasks: List[Task],
    client: ModelClient,
    *,
    file_name: Optional[str] = None,
    cancel: Optional[CancellationToken] = None,
) -> CategorizationResult:
    rid = client.request_id
    settings = client.settings

    try:
        reply = client.complete(
            CATEGORIZATION_SYSTEM,
            CATEGORIZATION_USER_TMPL.format(
                min_groups=MIN_GROUPS,
                max_groups=MAX_GROUPS,
                task_lines=task_lines(tasks),
            ),
            stage="categorization",
            temperature=settings.temperature_categorization,
            max_tokens=settings.max_tokens_categorization,
            cancel=cancel,
        )
    except ModelCallFailed as e:
        log.warning(f"[{rid}] categorizer_error: {e}")
        return CategorizationResult(groups=[default_group(tasks, file_name)], degraded=True)

    parsed = parse_payload(reply.content, CategoryListPayload)
    if not parsed.ok:
        log.warning(f"[{rid}] categorizer_unparseable reason={parsed.reason}")
        return CategorizationResult(groups=[default_group(tasks, file_name)], degraded=True)

    groups = build_groups(parsed.value.categories, tasks, rid)
    log.info(f"[{rid}] categorized groups={len(groups)}")
    return CategorizationResult(groups=groups)
