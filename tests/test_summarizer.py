"""Tests for the narrative summary stage."""
import json

from app.schemas.analysis import DocumentType, RawTaskRecord
from app.services.summarizer import fallback_summary, summarize
from app.services.task_merger import assign_ids
from conftest import completion, timeout_error


def _tasks():
    return assign_ids([RawTaskRecord(content="Draft the launch plan"), RawTaskRecord(content="Book the venue")])


def test_summary_from_model(make_client):
    reply = "Here is the JSON:\n" + json.dumps({
        "projectDescription": "Product launch preparation.",
        "milestones": ["Plan drafted"],
        "resources": ["Marketing team"],
        "risks": ["Venue availability"],
        "recommendations": ["Book early"],
    })
    client = make_client([completion(reply)])
    summary, degraded = summarize(_tasks(), client, document_type=DocumentType.PROJECT_PLAN)
    assert not degraded
    assert summary.project_description == "Product launch preparation."
    assert summary.risks == ["Venue availability"]


def test_unparseable_summary_uses_default(make_client):
    client = make_client([completion("The project is about a launch.")])
    summary, degraded = summarize(_tasks(), client, file_name="plan.docx")
    assert degraded
    assert "2 tasks in plan.docx" in summary.project_description
    assert summary.milestones == []
    assert summary.recommendations


def test_call_failure_uses_default(make_client):
    def always_timeout(**kwargs):
        raise timeout_error()

    client = make_client(always_timeout)
    summary, degraded = summarize(_tasks(), client)
    assert degraded
    assert summary.project_description


def test_fallback_summary_note():
    summary = fallback_summary(1, note="Analysis failed")
    assert "1 task." in summary.project_description
    assert summary.recommendations[-1] == "Analysis failed"
