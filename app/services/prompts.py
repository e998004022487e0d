from app.schemas.analysis import DocumentType

EXTRACTION_SYSTEM = (
    "You extract actionable tasks from documents. "
    "Return ONLY valid JSON in the format described by the user message. "
    "Do not invent tasks that the text does not support. "
    "If there are no actionable tasks, return {\"tasks\": []}."
)

EXTRACTION_USER_TMPL = """Extract every actionable task from this {doc_label}{part_label}.

{guidance}

Rules:
- One task per concrete action; merge obvious duplicates.
- priority is one of: critical, high, medium, low, none.
- status is one of: todo, in_progress, review, done.
- estimatedTime is a number of minutes, or null.
- deadline and assignee only if explicitly present in the text, else null.
- subtasks use the same fields (without nested subtasks).
- Output MUST be valid JSON only, no markdown.

Format:
{{"tasks": [{{"content": "...", "priority": "medium", "status": "todo", "estimatedTime": 30,
"deadline": null, "assignee": null, "tags": ["..."], "dependencies": ["..."], "subtasks": []}}]}}

DOCUMENT:
{content}
"""

# extra instructions per document type
EXTRACTION_GUIDANCE = {
    DocumentType.MEETING_MINUTES: "Focus on action items, owners and follow-ups agreed in the meeting.",
    DocumentType.PROJECT_PLAN: "Focus on deliverables, milestones and the work needed to reach them; keep dependencies between tasks.",
    DocumentType.CONTRACT: "Focus on obligations, renewal and termination dates, payments and notices each party must act on.",
    DocumentType.EMAIL: "Focus on requests and commitments made in the email and their deadlines.",
    DocumentType.INVOICE: "Focus on payments to make, due dates and any discrepancies to check.",
    DocumentType.RESUME: "Focus on follow-up steps a reviewer or the candidate should take.",
    DocumentType.RESEARCH_PAPER: "Focus on future work, experiments to reproduce and open questions that imply action.",
    DocumentType.MANUAL: "Focus on setup, maintenance and safety steps the reader must perform.",
    DocumentType.GENERAL_DOCUMENT: "Focus on anything the reader is expected to do.",
}

CATEGORIZATION_SYSTEM = (
    "You organize tasks into categories. "
    "Return ONLY valid JSON. Use only task ids that appear in the input."
)

CATEGORIZATION_USER_TMPL = """Group these tasks into {min_groups} to {max_groups} named categories.
Every task id should appear in exactly one category.

Format:
{{"categories": [{{"name": "...", "description": "...", "taskIds": ["task-1", "task-2"]}}]}}

TASKS:
{task_lines}
"""

SUMMARY_SYSTEM = (
    "You write short project summaries from task lists. "
    "Return ONLY valid JSON."
)

SUMMARY_USER_TMPL = """Summarize the work described by these {count} tasks from a {doc_label}.

Format:
{{"projectDescription": "2-3 sentences", "milestones": ["..."], "resources": ["..."],
"risks": ["..."], "recommendations": ["..."]}}

TASKS:
{task_lines}
"""


def doc_label(doc_type: DocumentType) -> str:
    return doc_type.value.replace("_", " ")


def extraction_prompt(content: str, doc_type: DocumentType, index: int, total: int) -> str:
    part = f" (part {index + 1} of {total})" if total > 1 else ""
    return EXTRACTION_USER_TMPL.format(
        doc_label=doc_label(doc_type),
        part_label=part,
        guidance=EXTRACTION_GUIDANCE.get(doc_type, EXTRACTION_GUIDANCE[DocumentType.GENERAL_DOCUMENT]),
        content=content,
    )
