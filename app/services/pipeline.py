"""
Document → tasks pipeline.

Stages run in a fixed order and each one degrades instead of raising:

    PREPROCESSING → LENGTH_CHECK → CHUNKING → EXTRACTING → MERGING
    → MINIMUM_TASK_GUARANTEE → CATEGORIZING → SUMMARIZING → ASSEMBLING → DONE

Too-short input, or any exception that escapes a stage, ends in FALLBACK_DONE
with a placeholder result. analyze_document never raises.
"""
from __future__ import annotations

import time
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from app.core.config import Settings, load_settings
from app.core.errors import ExtractionUnavailable
from app.core.logging import get_logger, new_request_id
from app.schemas.analysis import (
    AnalysisOutcome,
    AnalysisResult,
    AnalysisSummary,
    DocumentType,
    ProcessingStats,
    RawTaskRecord,
    TaskGroup,
)
from app.services.action_extractor import extract_tasks
from app.services.categorizer import categorize, default_group
from app.services.chunker import chunk_text
from app.services.llm_client import CancellationToken, ModelClient
from app.services.preprocessor import is_too_short, preprocess
from app.services.summarizer import fallback_summary, summarize
from app.services.task_merger import (
    assign_ids,
    ensure_minimum,
    fallback_task,
    format_estimated_time,
    merge_tasks,
)

log = get_logger(__name__)

MAX_ERROR_CHARS = 200


class PipelineStage(str, Enum):
    PREPROCESSING = "preprocessing"
    LENGTH_CHECK = "length_check"
    CHUNKING = "chunking"
    EXTRACTING = "extracting"
    MERGING = "merging"
    MINIMUM_TASK_GUARANTEE = "minimum_task_guarantee"
    CATEGORIZING = "categorizing"
    SUMMARIZING = "summarizing"
    ASSEMBLING = "assembling"
    DONE = "done"
    FALLBACK_DONE = "fallback_done"


def _truncate(message: str, limit: int = MAX_ERROR_CHARS) -> str:
    return message if len(message) <= limit else message[: limit - 3] + "..."


def build_fallback_result(
    *,
    outcome: AnalysisOutcome,
    message: str,
    file_name: Optional[str] = None,
    stats: Optional[ProcessingStats] = None,
    document_type: DocumentType = DocumentType.GENERAL_DOCUMENT,
    summary: Optional[AnalysisSummary] = None,
) -> AnalysisResult:
    """A well-formed result holding only the placeholder task."""
    tasks = assign_ids([fallback_task()])
    group = default_group(tasks, file_name)
    return AnalysisResult(
        total_tasks=len(tasks),
        groups=[group],
        summary=summary or fallback_summary(len(tasks), file_name),
        file_name=file_name,
        processed_at=datetime.now(timezone.utc),
        processing_stats=stats or ProcessingStats(),
        analysis_outcome=outcome,
        outcome_message=message,
        document_type=document_type,
        estimated_total_time=format_estimated_time(tasks),
    )


class PipelineOrchestrator:
    def __init__(
        self,
        settings: Settings,
        client: Optional[ModelClient] = None,
        *,
        request_id: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ):
        self.settings = settings
        self.request_id = request_id or new_request_id()
        self.client = client or ModelClient(settings, request_id=self.request_id)
        self.client.request_id = self.request_id
        self.cancel = cancel
        self.stage = PipelineStage.PREPROCESSING
        self.stats = ProcessingStats()
        self.document_type = DocumentType.GENERAL_DOCUMENT

        self._started = 0.0
        self._calls_before = 0
        self._tokens_before = 0

    def _enter(self, stage: PipelineStage) -> None:
        self.stage = stage
        log.debug(f"[{self.request_id}] stage={stage.value}")

    def _snapshot_stats(self) -> ProcessingStats:
        return self.stats.model_copy(
            update={
                "tokens_used": self.client.tokens_used - self._tokens_before,
                "model_calls": self.client.calls - self._calls_before,
                "processing_time": int((time.monotonic() - self._started) * 1000),
            }
        )

    def run(self, content: str, file_name: Optional[str] = None) -> AnalysisResult:
        self._started = time.monotonic()
        self._calls_before = self.client.calls
        self._tokens_before = self.client.tokens_used
        chars = len(content) if isinstance(content, str) else 0
        log.info(f"[{self.request_id}] analysis START file={file_name!r} chars={chars}")

        try:
            result = self._run(content, file_name)
        except Exception as e:
            failed_in = self.stage
            self._enter(PipelineStage.FALLBACK_DONE)
            log.exception(f"[{self.request_id}] analysis_failed stage={failed_in.value}")
            message = _truncate(f"Analysis failed during {failed_in.value}: {type(e).__name__}: {e}")
            return build_fallback_result(
                outcome=AnalysisOutcome.FAILURE,
                message=message,
                file_name=file_name,
                stats=self._snapshot_stats(),
                document_type=self.document_type,
                summary=fallback_summary(1, file_name, note=message),
            )

        log.info(
            f"[{self.request_id}] analysis END outcome={result.analysis_outcome.value} "
            f"tasks={result.total_tasks} tokens={result.processing_stats.tokens_used}"
        )
        return result

    def _run(self, content: str, file_name: Optional[str]) -> AnalysisResult:
        settings = self.settings
        rid = self.request_id

        self._enter(PipelineStage.PREPROCESSING)
        text = content if isinstance(content, str) else ""
        if len(text) > settings.max_input_chars:
            log.warning(f"[{rid}] input_truncated chars={len(text)} limit={settings.max_input_chars}")
            text = text[: settings.max_input_chars]
            self.stats.truncated = True
        pre = preprocess(text)
        self.document_type = pre.document_type
        log.info(f"[{rid}] preprocessed type={pre.document_type.value} chars={len(pre.processed_content)}")

        self._enter(PipelineStage.LENGTH_CHECK)
        if is_too_short(pre.processed_content, settings.min_content_chars):
            self._enter(PipelineStage.FALLBACK_DONE)
            log.info(f"[{rid}] content_too_short, skipping model calls")
            return build_fallback_result(
                outcome=AnalysisOutcome.NO_TASKS_FOUND,
                message="The document does not contain enough text to analyze.",
                file_name=file_name,
                stats=self._snapshot_stats(),
                document_type=pre.document_type,
            )

        self._enter(PipelineStage.CHUNKING)
        chunking = chunk_text(
            pre.processed_content,
            settings.chunk_max_chars,
            overlap=settings.chunk_overlap,
            max_chunks=settings.max_chunks,
        )
        if chunking.truncated:
            log.warning(f"[{rid}] chunk_limit_reached max_chunks={settings.max_chunks}")
            self.stats.truncated = True
        self.stats.chunks_total = len(chunking.chunks)

        self._enter(PipelineStage.EXTRACTING)
        raw: List[RawTaskRecord] = []
        calls_failed = 0
        for chunk in chunking.chunks:
            if chunk.index > 0:
                self.client.throttle()
            extraction = extract_tasks(
                chunk, len(chunking.chunks), pre.document_type, self.client, cancel=self.cancel
            )
            if extraction.call_failed:
                calls_failed += 1
            if extraction.call_failed or extraction.parse_failed:
                self.stats.chunks_failed += 1
            raw.extend(extraction.tasks)

        if chunking.chunks and calls_failed == len(chunking.chunks):
            raise ExtractionUnavailable(f"the model could not be reached for any of {calls_failed} chunk(s)")

        self._enter(PipelineStage.MERGING)
        merged = merge_tasks(raw)
        log.info(f"[{rid}] merged raw={len(raw)} unique={len(merged)}")

        self._enter(PipelineStage.MINIMUM_TASK_GUARANTEE)
        merged, synthesized = ensure_minimum(merged)
        tasks = assign_ids(merged)

        self._enter(PipelineStage.CATEGORIZING)
        if synthesized:
            groups: List[TaskGroup] = [default_group(tasks, file_name)]
            categorization_degraded = False
        else:
            categorization = categorize(tasks, self.client, file_name=file_name, cancel=self.cancel)
            groups = categorization.groups
            categorization_degraded = categorization.degraded

        self._enter(PipelineStage.SUMMARIZING)
        if synthesized:
            summary_degraded = False
            summary = AnalysisSummary(
                project_description="No actionable tasks were found in the document.",
                recommendations=["Check that the uploaded file contains readable text."],
            )
        else:
            summary, summary_degraded = summarize(
                tasks,
                self.client,
                document_type=pre.document_type,
                file_name=file_name,
                cancel=self.cancel,
            )

        self._enter(PipelineStage.ASSEMBLING)
        total = sum(len(g.tasks) for g in groups)
        if synthesized:
            outcome = AnalysisOutcome.NO_TASKS_FOUND
            message = "No actionable tasks were found in the document."
        else:
            outcome = AnalysisOutcome.SUCCESS
            message = f"Found {total} tasks in {len(groups)} groups."

        notes = []
        if self.stats.chunks_failed:
            notes.append(f"{self.stats.chunks_failed} of {self.stats.chunks_total} sections could not be analyzed")
        if categorization_degraded:
            notes.append("tasks were not categorized")
        if summary_degraded:
            notes.append("summary unavailable")
        if self.stats.truncated:
            notes.append("document was truncated")
        if notes:
            message = f"{message} Note: {'; '.join(notes)}."

        result = AnalysisResult(
            total_tasks=total,
            groups=groups,
            summary=summary,
            file_name=file_name,
            processed_at=datetime.now(timezone.utc),
            processing_stats=self._snapshot_stats(),
            analysis_outcome=outcome,
            outcome_message=message,
            document_type=pre.document_type,
            estimated_total_time=format_estimated_time(tasks),
        )
        self._enter(PipelineStage.DONE)
        return result


def analyze_document(
    content: str,
    file_name: Optional[str] = None,
    *,
    settings: Optional[Settings] = None,
    client: Optional[ModelClient] = None,
    cancel: Optional[CancellationToken] = None,
    request_id: Optional[str] = None,
) -> AnalysisResult:
    """
    Turn document text into grouped tasks plus a summary.

    Always returns a result. Callers should check analysis_outcome:
    anything other than "success" means the result is partial or a placeholder.
    """
    try:
        settings = settings or load_settings()
        orchestrator = PipelineOrchestrator(settings, client, request_id=request_id, cancel=cancel)
    except Exception as e:
        log.exception("analysis_setup_failed")
        message = _truncate(f"Analysis failed during setup: {type(e).__name__}: {e}")
        return build_fallback_result(
            outcome=AnalysisOutcome.FAILURE,
            message=message,
            file_name=file_name,
            summary=fallback_summary(1, file_name, note=message),
        )
    return orchestrator.run(content, file_name)
