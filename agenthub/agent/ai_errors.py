"""
AI Errors — Typed errors for upstream AI calls and a bounded retry helper.

Every failure coming back from the LLM, search or voice providers is
classified into one of a small set of error types. Each type knows
whether it is worth retrying; `retry_with_backoff` only retries those.

Usage:
    from agenthub.agent.ai_errors import retry_with_backoff, classify_error

    result = await retry_with_backoff(lambda: llm.send(prompt))
"""

import asyncio
import logging
import re
from typing import Any, Awaitable, Callable, Optional, TypeVar

import anthropic
import httpx

from agenthub.agent.structured_logging import Subsystem, get_subsystem_logger
from agenthub.config import settings

logger = logging.getLogger(__name__)
llm_log = get_subsystem_logger(Subsystem.LLM)

T = TypeVar("T")

MAX_INPUT_LENGTH = 10000


class AIError(Exception):
    """Base error for upstream AI calls."""

    code = "UNKNOWN_ERROR"
    retryable = False

    def __init__(self, message: str, code: Optional[str] = None, retryable: Optional[bool] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "retryable": self.retryable}


class RateLimitExceeded(AIError):
    code = "RATE_LIMIT"
    retryable = True

    def __init__(self, message: str = "Rate limit exceeded. Please try again later.", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class QuotaExceeded(AIError):
    code = "QUOTA_EXCEEDED"
    retryable = False

    def __init__(self, message: str = "API quota exceeded. Please check your account."):
        super().__init__(message)


class InvalidUpstreamResponse(AIError):
    code = "INVALID_RESPONSE"
    retryable = True

    def __init__(self, message: str = "Invalid response from AI service.", raw: str = ""):
        super().__init__(message)
        self.raw = raw


class TransientServiceError(AIError):
    code = "SERVICE_ERROR"
    retryable = True


class ValidationError(AIError):
    code = "VALIDATION_ERROR"
    retryable = False


_NETWORK_MARKERS = ("ECONNRESET", "ETIMEDOUT", "connection reset", "timed out")


def error_for_status(status: int, message: str = "") -> AIError:
    """Map an HTTP status code from a provider to the error taxonomy."""
    if status == 429:
        return RateLimitExceeded(message or "Rate limit exceeded. Please try again later.")
    if status in (402, 403):
        return QuotaExceeded(message or "API quota exceeded. Please check your account.")
    if status in (400, 422):
        return ValidationError(message or "The AI service rejected the request as malformed.")
    if status >= 500:
        return TransientServiceError(message or "AI service temporarily unavailable.")
    return AIError(message or f"Unexpected status {status} from AI service.")


def classify_error(exc: BaseException) -> AIError:
    """Translate any exception raised by a provider SDK into an AIError."""
    if isinstance(exc, AIError):
        return exc
    if isinstance(exc, anthropic.RateLimitError):
        return RateLimitExceeded(str(exc))
    if isinstance(exc, (anthropic.APIConnectionError, anthropic.APITimeoutError)):
        return TransientServiceError(str(exc) or "Connection to AI service failed.")
    if isinstance(exc, anthropic.APIStatusError):
        return error_for_status(exc.status_code, str(exc))
    if isinstance(exc, httpx.HTTPStatusError):
        return error_for_status(exc.response.status_code, str(exc))
    if isinstance(exc, (httpx.TransportError, ConnectionError, asyncio.TimeoutError, TimeoutError)):
        return TransientServiceError(str(exc) or type(exc).__name__)
    text = str(exc)
    if any(marker.lower() in text.lower() for marker in _NETWORK_MARKERS):
        return TransientServiceError(text)
    return AIError(text or type(exc).__name__)


def is_retryable_error(exc: BaseException) -> bool:
    return classify_error(exc).retryable


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_retries: Optional[int] = None,
    initial_delay: Optional[float] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Call `fn` until it succeeds or fails with a non-retryable error.

    Args:
        fn: Zero-argument coroutine factory.
        max_retries: Total attempts (default from settings).
        initial_delay: Seconds before the first retry, doubled each time.
        sleep: Injected for tests.

    Raises:
        AIError: the classified error of the last attempt.
    """
    attempts = max_retries if max_retries is not None else settings.llm_max_retries
    delay = initial_delay if initial_delay is not None else settings.llm_retry_initial_delay
    attempts = max(1, attempts)

    for attempt in range(attempts):
        try:
            return await fn()
        except Exception as exc:
            error = classify_error(exc)
            if not error.retryable or attempt == attempts - 1:
                if error is exc:
                    raise
                raise error from exc
            wait = delay * (2 ** attempt)
            logger.warning(
                "[RETRY] %s (attempt %d/%d), retrying in %.1fs",
                error.code, attempt + 1, attempts, wait,
            )
            await sleep(wait)

    raise AIError("Max retries exceeded")  # unreachable with attempts >= 1


def sanitize_input(text: str) -> str:
    """Trim, collapse whitespace and cap the length of user input."""
    if not isinstance(text, str):
        raise ValidationError("Message must be a string")
    cleaned = re.sub(r"\s+", " ", text.strip())
    return cleaned[:MAX_INPUT_LENGTH]


def get_user_friendly_message(error: BaseException) -> str:
    error = classify_error(error)
    if isinstance(error, RateLimitExceeded):
        return "The AI service is busy right now. Please wait a moment and try again."
    if isinstance(error, QuotaExceeded):
        return "The AI service quota has been reached. Please check your API key or plan."
    if isinstance(error, InvalidUpstreamResponse):
        return "The AI service returned an unexpected response. Please try again."
    if isinstance(error, ValidationError):
        return error.message
    return "Something went wrong while contacting the AI service. Please try again."


def log_ai_error(
    error: BaseException,
    operation: str,
    user_id: Optional[str] = None,
    agent_id: Optional[str] = None,
) -> None:
    """Log an upstream failure with the operation, user and agent it belongs to."""
    classified = classify_error(error)
    llm_log.warning(
        f"[{operation}] {classified.code}: {classified.message}",
        data={
            "operation": operation,
            "user_id": user_id,
            "agent_id": agent_id,
            "code": classified.code,
            "retryable": classified.retryable,
            "error_type": type(error).__name__,
        },
    )
