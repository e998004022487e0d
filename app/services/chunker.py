from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional

from app.schemas.analysis import TextChunk

# how far back from the hard limit we look for a natural break
BREAK_SEARCH_WINDOW = 1000

_SENTENCE_END = re.compile(r"[.!?][\"')\]]?(?=\s)")


@dataclass
class ChunkingResult:
    chunks: List[TextChunk] = field(default_factory=list)
    truncated: bool = False


def _find_break(text: str, cursor: int, end: int) -> int:
    """
    Best split point in (cursor, end]: paragraph break, then sentence end,
    then the hard boundary.
    """
    window_start = max(cursor + 1, end - BREAK_SEARCH_WINDOW)

    para = text.rfind("\n\n", window_start, end)
    if para > cursor:
        return para

    last_sentence = None
    for m in _SENTENCE_END.finditer(text, window_start, end):
        last_sentence = m
    if last_sentence is not None and last_sentence.end() > cursor:
        return last_sentence.end()

    return end


def _skip_whitespace(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos


def chunk_text(
    text: str,
    max_chunk_size: int,
    overlap: int = 0,
    max_chunks: Optional[int] = None,
) -> ChunkingResult:
    if max_chunk_size <= 0:
        raise ValueError("max_chunk_size must be positive")
    overlap = max(0, min(overlap, max_chunk_size // 2))

    if len(text) <= max_chunk_size:
        return ChunkingResult(chunks=[TextChunk(content=text, index=0, is_first=True)])

    result = ChunkingResult()
    cursor = _skip_whitespace(text, 0)

    while cursor < len(text):
        if max_chunks is not None and len(result.chunks) >= max_chunks:
            result.truncated = True
            break

        end = min(cursor + max_chunk_size, len(text))
        brk = end if end == len(text) else _find_break(text, cursor, end)

        piece = text[cursor:brk].strip()
        if piece:
            result.chunks.append(
                TextChunk(content=piece, index=len(result.chunks), is_first=not result.chunks)
            )

        if brk >= len(text):
            break

        nxt = brk - overlap if overlap else brk
        if nxt <= cursor:
            nxt = brk
        cursor = _skip_whitespace(text, nxt)

    return result
