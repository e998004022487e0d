from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from openai import APIConnectionError, APIStatusError, OpenAI

from app.core.config import Settings
from app.core.errors import EmptyCompletion, ModelCallFailed
from app.core.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")


def get_client(settings: Settings) -> OpenAI:
    if not settings.api_key or not settings.base_url:
        raise RuntimeError("Missing AZURE_OPENAI_API_KEY or AZURE_OPENAI_BASE_URL in .env")
    # retrying is done by ModelClient so the SDK must not retry on its own
    return OpenAI(api_key=settings.api_key, base_url=settings.base_url, max_retries=0)


class CancellationToken:
    """Checked by ModelClient before every attempt."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class CallCancelled(Exception):
    pass


class RetryError(Exception):
    """Raised by with_retry when it stops trying; wraps the last error."""

    def __init__(self, cause: BaseException, attempts: int):
        self.cause = cause
        self.attempts = attempts
        super().__init__(f"gave up after {attempts} attempt(s): {type(cause).__name__}: {cause}")


def status_code_of(exc: BaseException) -> Optional[int]:
    if isinstance(exc, APIStatusError):
        return exc.status_code
    return None


def retry_after_of(exc: BaseException) -> Optional[float]:
    """Seconds from a 429's retry-after header, if it has a usable one."""
    if not isinstance(exc, APIStatusError) or exc.status_code != 429:
        return None
    value = exc.response.headers.get("retry-after")
    if value is None:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def is_retryable(exc: BaseException) -> bool:
    # APITimeoutError is a subclass of APIConnectionError
    if isinstance(exc, (APIConnectionError, EmptyCompletion)):
        return True
    status = status_code_of(exc)
    if status is None:
        return False
    return status == 429 or status >= 500


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 1.0
    retryable: Callable[[BaseException], bool] = is_retryable

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_retries,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            jitter=settings.retry_jitter,
        )

    def delay(self, attempt: int, base: float, rand: Callable[[], float]) -> float:
        """Exponential backoff for the wait after `attempt` (1-based), plus jitter, capped."""
        return min(self.max_delay, base * (2 ** (attempt - 1)) + rand() * self.jitter)


def with_retry(
    fn: Callable[[int], T],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    rand: Callable[[], float] = random.random,
    before_attempt: Optional[Callable[[int], None]] = None,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
) -> T:
    """
    Call fn(attempt) until it returns or the policy gives up.

    A non-retryable error stops the loop at once; otherwise it stops after
    policy.max_attempts. Either way a RetryError carrying the last error and
    the attempt count is raised. Errors from before_attempt are not caught.
    """
    base = policy.base_delay
    attempt = 1
    while True:
        if before_attempt is not None:
            before_attempt(attempt)
        try:
            return fn(attempt)
        except Exception as e:
            if not policy.retryable(e) or attempt >= policy.max_attempts:
                raise RetryError(e, attempt) from e

            hinted = retry_after_of(e)
            if hinted is not None:
                base = hinted

            wait = policy.delay(attempt, base, rand)
            if on_retry is not None:
                on_retry(attempt, e, wait)
            sleep(wait)
            attempt += 1


@dataclass(frozen=True)
class Completion:
    content: str
    usage: Optional[int] = None  # total tokens


def estimate_tokens(*texts: str) -> int:
    # same len//4 heuristic the usage log has always used
    return max(1, sum(len(t or "") for t in texts) // 4)


class ModelClient:
    """
    The only place that talks to the completion endpoint or sleeps.
    """

    def __init__(
        self,
        settings: Settings,
        client: Optional[OpenAI] = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        rand: Callable[[], float] = random.random,
        request_id: str = "-",
    ):
        self.settings = settings
        self._client = client
        self._sleep = sleep
        self._rand = rand
        self.policy = RetryPolicy.from_settings(settings)
        self.request_id = request_id
        self.calls = 0
        self.tokens_used = 0

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = get_client(self.settings)
        return self._client

    def throttle(self) -> None:
        if self.settings.throttle_seconds > 0:
            self._sleep(self.settings.throttle_seconds)

    def _request(self, system: str, user: str, temperature: float, max_tokens: int, timeout: float) -> Completion:
        resp = self.client.chat.completions.create(
            model=self.settings.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
            top_p=self.settings.top_p,
            frequency_penalty=self.settings.frequency_penalty,
            presence_penalty=self.settings.presence_penalty,
            timeout=timeout,
        )

        choices = getattr(resp, "choices", None) or []
        message = getattr(choices[0], "message", None) if choices else None
        content = getattr(message, "content", None)
        if not isinstance(content, str) or not content.strip():
            raise EmptyCompletion("response has no message content")

        usage = getattr(resp, "usage", None)
        total = getattr(usage, "total_tokens", None)
        if not isinstance(total, int):
            total = estimate_tokens(system, user, content)
        return Completion(content=content, usage=total)

    def complete(
        self,
        system: str,
        user: str,
        *,
        stage: str,
        temperature: float,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Completion:
        rid = self.request_id
        max_tokens = max_tokens or self.settings.max_tokens
        timeout = timeout or self.settings.timeout_seconds

        def check_cancel(attempt: int) -> None:
            if cancel is not None and cancel.cancelled:
                raise ModelCallFailed(stage, attempt - 1, CallCancelled(f"cancelled before attempt {attempt}"))

        def attempt_call(attempt: int) -> Completion:
            self.calls += 1
            log.info(f"[{rid}] calling_llm stage={stage} attempt={attempt} chars={len(user)}")
            return self._request(system, user, temperature, max_tokens, timeout)

        def report_retry(attempt: int, exc: BaseException, wait: float) -> None:
            log.warning(
                f"[{rid}] llm_retry stage={stage} attempt={attempt} "
                f"error={type(exc).__name__} status={status_code_of(exc)} wait={wait:.2f}s"
            )

        try:
            result = with_retry(
                attempt_call,
                self.policy,
                sleep=self._sleep,
                rand=self._rand,
                before_attempt=check_cancel,
                on_retry=report_retry,
            )
        except RetryError as e:
            cause = e.cause
            log.error(
                f"[{rid}] llm_failed stage={stage} attempts={e.attempts} "
                f"error={type(cause).__name__}: {cause}"
            )
            raise ModelCallFailed(stage, e.attempts, cause, status_code_of(cause)) from cause

        self.tokens_used += result.usage or 0
        log.info(f"[{rid}] llm_returned stage={stage} tokens={result.usage}")
        log.debug(f"[{rid}] LLM_RAW: {result.content}")
        return result
