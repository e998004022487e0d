from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Tuple

from app.schemas.analysis import DocumentType


@dataclass(frozen=True)
class PreprocessResult:
    processed_content: str
    document_type: DocumentType


_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_INLINE_SPACE = re.compile(r"[ \t\u00a0]+")
_TRAILING_SPACE = re.compile(r" +\n")
_EXTRA_BLANK_LINES = re.compile(r"\n{3,}")

# (type, keywords, hits needed). Order matters: first match wins.
_CLASSIFIERS: List[Tuple[DocumentType, Tuple[str, ...], int]] = [
    (
        DocumentType.MEETING_MINUTES,
        ("meeting minutes", "minutes of", "attendees", "agenda", "action items", "present:", "apologies", "next meeting"),
        2,
    ),
    (
        DocumentType.PROJECT_PLAN,
        ("project plan", "milestone", "deliverable", "timeline", "phase 1", "scope", "gantt", "sprint", "roadmap"),
        2,
    ),
    (
        DocumentType.CONTRACT,
        ("agreement", "hereinafter", "party", "parties", "whereas", "termination", "indemnif", "governing law"),
        3,
    ),
    (
        DocumentType.EMAIL,
        ("from:", "to:", "subject:", "sent:", "cc:", "dear ", "best regards", "kind regards"),
        2,
    ),
    (
        DocumentType.INVOICE,
        ("invoice", "bill to", "amount due", "subtotal", "payment terms", "due date", "qty", "unit price"),
        2,
    ),
    (
        DocumentType.RESUME,
        ("resume", "curriculum vitae", "work experience", "education", "skills", "references available"),
        2,
    ),
    (
        DocumentType.RESEARCH_PAPER,
        ("abstract", "introduction", "methodology", "results", "conclusion", "references", "et al."),
        3,
    ),
    (
        DocumentType.MANUAL,
        ("user manual", "instructions", "step 1", "troubleshooting", "warning:", "installation", "how to"),
        2,
    ),
]

_PAGE_FOOTER = re.compile(r"^\s*page \d+( of \d+)?\s*$", re.IGNORECASE | re.MULTILINE)

_BOILERPLATE: Dict[DocumentType, List[re.Pattern]] = {
    DocumentType.EMAIL: [
        re.compile(r"^(from|to|cc|bcc|sent|date|subject)\s*:.*$", re.IGNORECASE | re.MULTILINE),
        re.compile(r"^>.*$", re.MULTILINE),
        re.compile(r"^sent from my \w+.*$", re.IGNORECASE | re.MULTILINE),
    ],
    DocumentType.INVOICE: [
        re.compile(
            r"^\s*(sub\s?total|total|tax|vat|gst|amount due|balance due|grand total)\b.*$",
            re.IGNORECASE | re.MULTILINE,
        ),
    ],
    DocumentType.MEETING_MINUTES: [
        re.compile(r"^\s*(attendees|present|absent|apologies|invitees)\s*:.*$", re.IGNORECASE | re.MULTILINE),
    ],
    DocumentType.CONTRACT: [_PAGE_FOOTER],
    DocumentType.MANUAL: [_PAGE_FOOTER],
    DocumentType.RESEARCH_PAPER: [
        _PAGE_FOOTER,
        # everything from the reference list on
        re.compile(r"^\s*(references|bibliography)\s*$[\s\S]*", re.IGNORECASE | re.MULTILINE),
    ],
}


def normalize_whitespace(text: str) -> str:
    s = _CONTROL_CHARS.sub("", text)
    s = s.replace("\r\n", "\n").replace("\r", "\n")
    s = _INLINE_SPACE.sub(" ", s)
    s = _TRAILING_SPACE.sub("\n", s)
    s = _EXTRA_BLANK_LINES.sub("\n\n", s)
    return s.strip()


def classify_document(text: str) -> DocumentType:
    lowered = text.lower()
    for doc_type, keywords, needed in _CLASSIFIERS:
        hits = sum(1 for k in keywords if k in lowered)
        if hits >= needed:
            return doc_type
    return DocumentType.GENERAL_DOCUMENT


def strip_boilerplate(text: str, doc_type: DocumentType) -> str:
    s = text
    for pattern in _BOILERPLATE.get(doc_type, []):
        s = pattern.sub("", s)
    return s


def preprocess(raw: str) -> PreprocessResult:
    cleaned = normalize_whitespace(raw or "")
    doc_type = classify_document(cleaned)
    stripped = normalize_whitespace(strip_boilerplate(cleaned, doc_type))
    return PreprocessResult(processed_content=stripped, document_type=doc_type)


def is_too_short(text: str, minimum: int) -> bool:
    return len((text or "").strip()) < minimum
