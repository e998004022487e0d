from __future__ import annotations

from typing import List, Optional, Tuple

from app.core.errors import ModelCallFailed
from app.core.logging import get_logger
from app.schemas.analysis import AnalysisSummary, DocumentType, Task
from app.schemas.payloads import SummaryPayload
from app.services.categorizer import task_lines
from app.services.llm_client import CancellationToken, ModelClient
from app.services.prompts import SUMMARY_SYSTEM, SUMMARY_USER_TMPL, doc_label
from app.services.response_parser import parse_payload

log = get_logger(__name__)


def summarize(
    tasks: List[Task],
    client: ModelClient,
    *,
    document_type: DocumentType = DocumentType.GENERAL_DOCUMENT,
    file_name: Optional[str] = None,
    cancel: Optional[CancellationToken] = None,
) -> Tuple[AnalysisSummary, bool]:
    """Returns (summary, degraded)."""
    rid = client.request_id
    settings = client.settings

    try:
        reply = client.complete(
            SUMMARY_SYSTEM,
            SUMMARY_USER_TMPL.format(
                count=len(tasks),
                doc_label=doc_label(document_type),
                task_lines=task_lines(tasks),
            ),
            stage="summary",
            temperature=settings.temperature_summary,
            max_tokens=settings.max_tokens_summary,
            cancel=cancel,
        )
    except ModelCallFailed as e:
        log.warning(f"[{rid}] summarizer_error: {e}")
        return fallback_summary(len(tasks), file_name), True

    parsed = parse_payload(reply.content, SummaryPayload)
    if not parsed.ok:
        log.warning(f"[{rid}] summarizer_unparseable reason={parsed.reason}")
        return fallback_summary(len(tasks), file_name), True

    return AnalysisSummary(**parsed.value.model_dump()), False


def fallback_summary(task_count: int, file_name: Optional[str] = None, note: Optional[str] = None) -> AnalysisSummary:
    source = f" in {file_name}" if file_name else ""
    noun = "task" if task_count == 1 else "tasks"
    recommendations = ["Review the extracted tasks and adjust priorities as needed."]
    if note:
        recommendations.append(note)
    return AnalysisSummary(
        project_description=f"Found {task_count} {noun}{source}. A detailed summary could not be generated.",
        milestones=[],
        resources=[],
        risks=[],
        recommendations=recommendations,
    )
