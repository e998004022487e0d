from __future__ import annotations

from typing import Optional


class AgentError(Exception):
    """Base class for errors raised inside the analysis pipeline."""


class ConfigurationError(AgentError):
    pass


class EmptyCompletion(AgentError):
    """The model answered, but without any message content."""


class ModelCallFailed(AgentError):
    """
    Raised by ModelClient once a call is given up on: retries exhausted,
    a non-retryable HTTP status, or cancellation.
    """

    def __init__(
        self,
        stage: str,
        attempts: int,
        cause: Optional[BaseException] = None,
        status_code: Optional[int] = None,
    ):
        self.stage = stage
        self.attempts = attempts
        self.cause = cause
        self.status_code = status_code

        detail = f"{type(cause).__name__}: {cause}" if cause is not None else "unknown error"
        status = f" status={status_code}" if status_code is not None else ""
        super().__init__(f"{stage} model call failed after {attempts} attempt(s){status}: {detail}")


class ExtractionUnavailable(AgentError):
    """No chunk could be sent to the model successfully."""
