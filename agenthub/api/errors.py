"""HTTP mapping for service errors and limit rejections."""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from agenthub.agent.ai_errors import (
    AIError,
    QuotaExceeded,
    RateLimitExceeded,
    ValidationError,
    get_user_friendly_message,
)
from agenthub.agent.rate_limiter import RateLimitDecision, format_reset_time

logger = logging.getLogger(__name__)


def status_for_error(error: AIError) -> int:
    if isinstance(error, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, QuotaExceeded):
        return status.HTTP_402_PAYMENT_REQUIRED
    if isinstance(error, RateLimitExceeded):
        return status.HTTP_429_TOO_MANY_REQUESTS
    return status.HTTP_503_SERVICE_UNAVAILABLE


async def ai_error_handler(request: Request, exc: AIError) -> JSONResponse:
    code = status_for_error(exc)
    if code >= 500:
        logger.error("[API] %s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.code)
    body = exc.to_dict()
    body["error"] = get_user_friendly_message(exc)
    return JSONResponse(status_code=code, content=body)


def rate_limited(decision: RateLimitDecision, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "error": message,
            "remaining": decision.remaining,
            "resetTime": decision.reset_time,
            "retryAfter": format_reset_time(decision.reset_time),
        },
    )
