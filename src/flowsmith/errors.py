"""Application-level exception types for Flowsmith."""

from __future__ import annotations

from typing import Any


class FlowsmithError(Exception):
    """Base exception for Flowsmith.

    ``user_message`` is a fixed, classified string that is safe to show to an
    end user. ``context`` holds safe structured details such as retry counts.
    The exception's own message may carry provider text and is meant for logs.
    """

    user_message = "An unexpected error occurred in the AI service."

    def __init__(self, message: str | None = None, *, user_message: str | None = None, **context: Any) -> None:
        super().__init__(message or self.user_message)
        if user_message is not None:
            self.user_message = user_message
        self.context: dict[str, Any] = context


class ConfigurationError(FlowsmithError):
    """Raised for a missing credential or malformed local input."""

    def __init__(self, message: str, **context: Any) -> None:
        # Local validation messages are actionable and carry no provider text.
        super().__init__(message, user_message=message, **context)


class ProviderError(FlowsmithError):
    """Raised when the provider rejects a request with a non-retryable error."""

    user_message = "The AI service rejected the request."

    def __init__(self, message: str, *, code: int | str | None = None) -> None:
        user_message = self.user_message if code is None else f"The AI service rejected the request (code {code})."
        super().__init__(message, user_message=user_message, code=code)
        self.code = code


class ServiceUnavailableError(FlowsmithError):
    """Raised when transient failures exhaust the retry budget."""

    def __init__(self, *, attempts: int, code: int | str | None = None) -> None:
        super().__init__(
            f"Retry budget exhausted after {attempts} attempt(s) (last code: {code})",
            user_message=(
                f"The AI service is temporarily unavailable after {attempts} attempt(s). Please try again shortly."
            ),
            attempts=attempts,
            code=code,
        )
        self.attempts = attempts
        self.code = code


class AttemptTimeoutError(FlowsmithError):
    """Raised when one attempt exceeds its deadline."""

    user_message = "The AI service did not answer in time."

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(f"Attempt exceeded its {timeout_seconds:g}s deadline", timeout_seconds=timeout_seconds)
        self.timeout_seconds = timeout_seconds


class MalformedOutputError(FlowsmithError):
    """Raised when the provider replied but the content violates the structured contract."""

    user_message = "The AI returned a response that did not match the expected format. Please run the request again."

    def __init__(self, message: str, *, raw_text: str | None = None, path: str | None = None) -> None:
        super().__init__(message, path=path)
        self.raw_text = raw_text
        self.path = path


class TraceMismatchError(FlowsmithError):
    """Raised when a simulation trace is inconsistent with its blueprint."""

    user_message = "The simulation report was inconsistent with the blueprint and was discarded."


class InvalidEncodingError(FlowsmithError):
    """Raised for malformed base64 input or invalid PCM framing."""

    user_message = "The supplied data is not correctly encoded."
