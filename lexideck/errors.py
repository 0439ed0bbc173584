"""Exception hierarchy shared across LexiDeck components."""

from __future__ import annotations


class LexiDeckError(Exception):
    """Base class for all LexiDeck failures."""


class ConfigurationError(LexiDeckError):
    """Required settings are missing or invalid; fatal at startup."""


class RateLimitedError(LexiDeckError):
    """The remote service asked us to slow down."""


class CompletionError(LexiDeckError):
    """The completion service failed or returned an unusable payload."""


class SpeechGenerationError(LexiDeckError):
    def __init__(
        self,
        message: str,
        *,
        text: str,
        output_file: str,
        code: int | None = None,
        stderr: str = "",
        stdout: str = "",
    ) -> None:
        super().__init__(message)
        self.text = text
        self.output_file = output_file
        self.code = code
        self.stderr = stderr
        self.stdout = stdout


class RetriesExhaustedError(LexiDeckError):
    """A rate-limited task kept failing after every permitted retry."""

    def __init__(self, retries: int, last_error: BaseException | None) -> None:
        detail = str(last_error) if last_error is not None else "unknown error"
        super().__init__(f"Failed after {retries} retries: {detail}")
        self.retries = retries
        self.last_error = last_error


class QueueClosedError(LexiDeckError):
    """Raised when work is submitted to a closed task queue."""


__all__ = [
    "LexiDeckError",
    "ConfigurationError",
    "RateLimitedError",
    "CompletionError",
    "SpeechGenerationError",
    "RetriesExhaustedError",
    "QueueClosedError",
]
