"""Shared fakes for the OpenAI client and ModelClient."""
import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest
from openai import APIStatusError, APITimeoutError

from app.core.config import Settings
from app.services.llm_client import ModelClient
from app.services.prompts import CATEGORIZATION_SYSTEM, EXTRACTION_SYSTEM, SUMMARY_SYSTEM

_URL = "https://llm.example.test/v1/chat/completions"


def completion(content, total_tokens=42):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(role="assistant", content=content))],
        usage=SimpleNamespace(prompt_tokens=30, completion_tokens=12, total_tokens=total_tokens),
    )


def status_error(code, headers=None):
    request = httpx.Request("POST", _URL)
    response = httpx.Response(code, request=request, headers=headers or {})
    return APIStatusError(f"HTTP {code}", response=response, body=None)


def timeout_error():
    return APITimeoutError(request=httpx.Request("POST", _URL))


def fake_openai(side_effect):
    client = MagicMock()
    client.chat.completions.create.side_effect = side_effect
    return client


class RoutedCompletions:
    """
    Stands in for chat.completions.create and answers by pipeline stage.
    Each stage gets a list of replies (str, dict or Exception) used in order;
    the last one repeats.
    """

    def __init__(self, extraction=None, categorization=None, summary=None):
        self.replies = {
            EXTRACTION_SYSTEM: list(extraction or [{"tasks": []}]),
            CATEGORIZATION_SYSTEM: list(categorization or [{"categories": []}]),
            SUMMARY_SYSTEM: list(summary or [{"projectDescription": "A project."}]),
        }
        self.calls = []

    def __call__(self, **kwargs):
        system = kwargs["messages"][0]["content"]
        self.calls.append(system)
        queue = self.replies[system]
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, dict):
            reply = json.dumps(reply)
        return completion(reply)

    def count(self, system):
        return sum(1 for s in self.calls if s == system)


@pytest.fixture
def settings():
    return Settings(
        api_key="test-key",
        base_url="https://llm.example.test/v1",
        model="test-model",
        max_retries=3,
        retry_base_delay=1.0,
        retry_max_delay=30.0,
        retry_jitter=0.0,
    )


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_client(settings, sleeps):
    def _make(side_effect, **overrides):
        s = settings.model_copy(update=overrides) if overrides else settings
        return ModelClient(s, fake_openai(side_effect), sleep=sleeps.append, rand=lambda: 0.0)

    return _make
