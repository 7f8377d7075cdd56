"""Error taxonomy for the translation pipeline."""

from __future__ import annotations

from typing import Optional

MAX_ERROR_TEXT_CHARS = 4000


class TranslationError(RuntimeError):
    error_type = "error"

    def __init__(
        self,
        message: str,
        *,
        error_type: str | None = None,
        status_code: int | None = None,
        url: str | None = None,
        response_text: str | None = None,
    ) -> None:
        super().__init__(message)
        if error_type:
            self.error_type = error_type
        self.status_code = status_code
        self.url = url
        self.response_text = (
            response_text[:MAX_ERROR_TEXT_CHARS] if response_text else response_text
        )


class ConfigError(TranslationError):
    """Missing credentials or unknown engine; the run never starts."""

    error_type = "invalid_config"


class SessionError(TranslationError):
    """Token session could not be acquired or parsed."""

    error_type = "session"


class RateLimitError(TranslationError):
    error_type = "rate_limited"


class TransportError(TranslationError):
    error_type = "http_error"


class ParseError(TranslationError):
    error_type = "invalid_response"


class CountMismatchError(TranslationError):
    error_type = "count_mismatch"

    def __init__(self, message: str, *, expected: int, actual: int) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class StaleRunError(TranslationError):
    """A newer run (or a navigation) superseded this one."""

    error_type = "stale"


def describe_error(exc: BaseException) -> str:
    message = str(exc) or exc.__class__.__name__
    status: Optional[int] = getattr(exc, "status_code", None)
    if status is not None and str(status) not in message:
        return f"{message} (HTTP {status})"
    return message
