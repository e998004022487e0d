from __future__ import annotations

import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from app.core.errors import ConfigurationError

load_dotenv()


class Settings(BaseModel):
    """
    Everything the pipeline is allowed to read from the environment.
    Built once (see load_settings) and handed to each component.
    """

    model_config = ConfigDict(frozen=True)

    api_key: Optional[str] = None
    base_url: Optional[str] = None
    model: str = "gpt-4o-mini"

    temperature_extraction: float = 0.2
    temperature_categorization: float = 0.3
    temperature_summary: float = 0.4
    top_p: float = 1.0
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0

    max_tokens: int = Field(default=4000, gt=0)
    max_tokens_categorization: int = Field(default=2000, gt=0)
    max_tokens_summary: int = Field(default=1500, gt=0)
    timeout_seconds: float = Field(default=60.0, gt=0)

    max_retries: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=1.0, ge=0)
    retry_max_delay: float = Field(default=30.0, ge=0)
    retry_jitter: float = Field(default=1.0, ge=0)

    chunk_max_chars: int = Field(default=10000, gt=0)
    chunk_overlap: int = Field(default=0, ge=0)
    max_input_chars: int = Field(default=200000, gt=0)
    max_chunks: int = Field(default=20, ge=1)
    min_content_chars: int = Field(default=10, ge=0)
    throttle_seconds: float = Field(default=0.0, ge=0)


# env var -> Settings field
_ENV_FIELDS = {
    "AZURE_OPENAI_API_KEY": "api_key",
    "AZURE_OPENAI_BASE_URL": "base_url",
    "AZURE_OPENAI_DEPLOYMENT": "model",
    "LLM_TEMPERATURE_EXTRACTION": "temperature_extraction",
    "LLM_TEMPERATURE_CATEGORIZATION": "temperature_categorization",
    "LLM_TEMPERATURE_SUMMARY": "temperature_summary",
    "LLM_TOP_P": "top_p",
    "LLM_FREQUENCY_PENALTY": "frequency_penalty",
    "LLM_PRESENCE_PENALTY": "presence_penalty",
    "LLM_MAX_TOKENS": "max_tokens",
    "LLM_MAX_TOKENS_CATEGORIZATION": "max_tokens_categorization",
    "LLM_MAX_TOKENS_SUMMARY": "max_tokens_summary",
    "LLM_TIMEOUT_SECONDS": "timeout_seconds",
    "LLM_MAX_RETRIES": "max_retries",
    "LLM_RETRY_BASE_DELAY": "retry_base_delay",
    "LLM_RETRY_MAX_DELAY": "retry_max_delay",
    "LLM_RETRY_JITTER": "retry_jitter",
    "CHUNK_MAX_CHARS": "chunk_max_chars",
    "CHUNK_OVERLAP": "chunk_overlap",
    "MAX_INPUT_CHARS": "max_input_chars",
    "MAX_CHUNKS": "max_chunks",
    "MIN_CONTENT_CHARS": "min_content_chars",
    "LLM_THROTTLE_SECONDS": "throttle_seconds",
}


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if environ is None else environ

    values = {}
    for var, field in _ENV_FIELDS.items():
        raw = env.get(var)
        if raw is None or not raw.strip():
            continue
        values[field] = raw.strip()

    try:
        return Settings(**values)
    except ValueError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
