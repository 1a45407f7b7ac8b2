"""Error taxonomy for the meme service.

Provider adapters raise :class:`ProviderError` with a structured
:class:`ProviderErrorKind`. The pipeline turns the kind of the last failed
attempt into a :class:`GenerationError` subclass through a pure mapping, so
HTTP status codes and public error codes never depend on message text.
"""

import asyncio
from enum import Enum
from typing import Optional, List, Any


class ProviderErrorKind(Enum):
    """Failure categories reported by provider adapters."""
    TIMEOUT = "timeout"
    QUOTA_EXCEEDED = "quota_exceeded"
    CONTENT_POLICY = "content_policy"
    UNCONFIGURED = "unconfigured"
    VERIFICATION_REQUIRED = "verification_required"
    INTERNAL = "internal"


class MemeTeeError(Exception):
    """Base class for errors that are rendered as JSON error responses.

    Attributes:
        code: Public error code (e.g. "QUOTA_EXCEEDED")
        status_code: HTTP status code
        public_message: Message safe to show to end users
    """

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    public_message: str = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None, public_message: Optional[str] = None):
        super().__init__(message or public_message or self.public_message)
        if public_message is not None:
            self.public_message = public_message

    def to_dict(self, include_details: bool = False) -> dict:
        """Render the error as a response body."""
        body = {
            "success": False,
            "error": self.public_message,
            "code": self.code,
        }
        if include_details:
            body["details"] = str(self)
        return body


class InputValidationError(MemeTeeError):
    """Request payload has the wrong shape, size or encoding."""

    code = "VALIDATION_ERROR"
    status_code = 400
    public_message = "Invalid request."

    def __init__(self, message: str):
        super().__init__(message, public_message=message)


class RateLimitedError(MemeTeeError):
    """Client exceeded its request budget for the current window."""

    code = "RATE_LIMITED"
    status_code = 429
    public_message = "Too many requests, please try again in 5 minutes."

    def __init__(self, retry_after: Optional[int] = None):
        super().__init__()
        self.retry_after = retry_after


class ProviderError(Exception):
    """Failure of a single provider call, raised by adapters.

    Attributes:
        kind: Structured failure category
        provider: Name of the provider that failed
    """

    def __init__(self, kind: ProviderErrorKind, message: str, provider: str = "unknown"):
        super().__init__(message)
        self.kind = kind
        self.provider = provider

    def __repr__(self) -> str:
        return f"ProviderError(kind={self.kind.value}, provider='{self.provider}', message='{self}')"


class GenerationError(MemeTeeError):
    """Terminal failure of the generation pipeline after every strategy failed."""

    kind: ProviderErrorKind = ProviderErrorKind.INTERNAL
    public_message = "Meme generation failed. Please try again."

    def __init__(self, message: str, attempts: Optional[List[Any]] = None):
        super().__init__(message)
        self.attempts = attempts or []


class ProviderTimeout(GenerationError):
    kind = ProviderErrorKind.TIMEOUT
    code = "TIMEOUT"
    status_code = 408
    public_message = "Meme generation timed out. Please try again."


class ProviderQuotaExceeded(GenerationError):
    kind = ProviderErrorKind.QUOTA_EXCEEDED
    code = "QUOTA_EXCEEDED"
    status_code = 402
    public_message = "AI service quota exceeded. Please try again later or contact support."


class ProviderContentPolicy(GenerationError):
    kind = ProviderErrorKind.CONTENT_POLICY
    code = "CONTENT_POLICY"
    status_code = 400
    public_message = "Image content not suitable for meme generation. Please try a different image."


class ProviderUnconfigured(GenerationError):
    kind = ProviderErrorKind.UNCONFIGURED
    code = "SERVICE_UNAVAILABLE"
    status_code = 503
    public_message = "AI service is not configured. Please try again later."


class ProviderVerificationRequired(GenerationError):
    kind = ProviderErrorKind.VERIFICATION_REQUIRED
    code = "VERIFICATION_REQUIRED"
    status_code = 403
    public_message = "AI service requires account verification. Please contact support."


class ProviderInternal(GenerationError):
    kind = ProviderErrorKind.INTERNAL
    code = "INTERNAL_ERROR"
    status_code = 500


_ERRORS_BY_KIND = {
    cls.kind: cls
    for cls in (
        ProviderTimeout,
        ProviderQuotaExceeded,
        ProviderContentPolicy,
        ProviderUnconfigured,
        ProviderVerificationRequired,
        ProviderInternal,
    )
}


def generation_error_for(
    kind: ProviderErrorKind,
    message: str,
    attempts: Optional[List[Any]] = None
) -> GenerationError:
    """Build the terminal error for a provider failure kind.

    Args:
        kind: Failure category of the last attempt
        message: Underlying provider message (logged, shown only in development)
        attempts: Attempts trace collected by the pipeline

    Returns:
        The matching GenerationError subclass instance
    """
    return _ERRORS_BY_KIND.get(kind, ProviderInternal)(message, attempts=attempts)


# Evaluated in order; first match wins.
_MESSAGE_RULES = [
    (ProviderErrorKind.TIMEOUT, ("timeout", "timed out")),
    (ProviderErrorKind.QUOTA_EXCEEDED, ("quota", "billing", "insufficient credit")),
    (ProviderErrorKind.CONTENT_POLICY, ("content policy", "content_policy", "safety")),
    (ProviderErrorKind.UNCONFIGURED, ("not configured", "api key", "api_key", "missing token")),
    (ProviderErrorKind.VERIFICATION_REQUIRED, (
        "must be verified", "verify your organization", "organization verification", "not verified",
    )),
]


def classify_message(message: str) -> ProviderErrorKind:
    """Classify a provider error message that carries no structured information.

    Args:
        message: Raw error text

    Returns:
        The first matching ProviderErrorKind, INTERNAL if nothing matches
    """
    text = (message or "").lower()
    for kind, needles in _MESSAGE_RULES:
        if any(needle in text for needle in needles):
            return kind
    return ProviderErrorKind.INTERNAL


def classify_exception(error: BaseException, provider: str = "unknown") -> ProviderError:
    """Coerce any exception into a ProviderError.

    ProviderErrors pass through unchanged; asyncio/builtin timeouts become
    TIMEOUT; everything else is classified from its message.
    """
    if isinstance(error, ProviderError):
        return error
    if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
        return ProviderError(ProviderErrorKind.TIMEOUT, str(error) or "Request timed out", provider)
    return ProviderError(classify_message(str(error)), str(error), provider)
