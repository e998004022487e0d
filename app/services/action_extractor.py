from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional

from pydantic import ValidationError

from app.core.errors import ModelCallFailed
from app.core.logging import get_logger
from app.schemas.analysis import DocumentType, RawTaskRecord, TextChunk
from app.schemas.payloads import TaskListPayload
from app.services.llm_client import CancellationToken, ModelClient
from app.services.prompts import EXTRACTION_SYSTEM, extraction_prompt
from app.services.response_parser import parse_payload

log = get_logger(__name__)


@dataclass
class ChunkExtraction:
    tasks: List[RawTaskRecord] = field(default_factory=list)
    call_failed: bool = False
    parse_failed: bool = False


def parse_tasks(items: List[Any], request_id: str = "-") -> List[RawTaskRecord]:
    out: List[RawTaskRecord] = []
    for item in items:
        try:
            out.append(RawTaskRecord.model_validate(item))
        except (ValidationError, TypeError, ValueError):
            log.warning(f"[{request_id}] skipping_malformed_task item={str(item)[:120]!r}")
    return out


def extract_tasks(
    chunk: TextChunk,
    total_chunks: int,
    doc_type: DocumentType,
    client: ModelClient,
    cancel: Optional[CancellationToken] = None,
) -> ChunkExtraction:
    """
    One model call for one chunk. Failures become an empty task list; the
    flags tell the caller why.
    """
    rid = client.request_id
    settings = client.settings

    try:
        reply = client.complete(
            EXTRACTION_SYSTEM,
            extraction_prompt(chunk.content, doc_type, chunk.index, total_chunks),
            stage=f"extraction[{chunk.index}]",
            temperature=settings.temperature_extraction,
            max_tokens=settings.max_tokens,
            cancel=cancel,
        )
    except ModelCallFailed as e:
        log.warning(f"[{rid}] chunk_failed index={chunk.index} error={e}")
        return ChunkExtraction(call_failed=True)

    parsed = parse_payload(reply.content, TaskListPayload)
    if not parsed.ok:
        log.warning(f"[{rid}] chunk_unparseable index={chunk.index} reason={parsed.reason}")
        return ChunkExtraction(parse_failed=True)

    tasks = parse_tasks(parsed.value.tasks, rid)
    log.info(f"[{rid}] chunk_tasks index={chunk.index} count={len(tasks)}")
    return ChunkExtraction(tasks=tasks)
