"""
SalesIQ — Error Taxonomy

Every failure the pipeline can surface is one of these types. Each carries
the sentence shown to the user, so the controller never has to guess a
message from an arbitrary exception string.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


GENERIC_FAILURE_MESSAGE = (
    "Failed to analyze audio. Please try again with a valid audio file."
)


class SalesIQError(Exception):
    """Base class for all application errors."""

    user_message: str = GENERIC_FAILURE_MESSAGE

    def __init__(self, detail: str = "", user_message: Optional[str] = None) -> None:
        super().__init__(detail or self.user_message)
        if user_message is not None:
            self.user_message = user_message


class ConfigurationError(SalesIQError):
    """Missing credentials. Blocks every analysis attempt."""

    user_message = (
        "Missing API key: set GEMINI_API_KEY in your environment or .env file "
        "before analyzing a call."
    )


class UnsupportedFormatError(SalesIQError):
    user_message = (
        "This file could not be decoded as audio. "
        "Please choose a valid audio recording."
    )


class EncodingError(SalesIQError):
    user_message = (
        "The file could not be read. It may have been moved or changed "
        "during upload."
    )


class ProviderErrorKind(str, Enum):
    """Remote failure categories, each with its own user-facing sentence."""
    TOO_LARGE = "too_large"
    RATE_LIMITED = "rate_limited"
    UNSUPPORTED_MEDIA = "unsupported_media"
    CONTENT_FILTERED = "content_filtered"
    GENERIC = "generic"


_PROVIDER_MESSAGES = {
    ProviderErrorKind.TOO_LARGE: (
        "This recording is too large to analyze. "
        "Please upload a shorter or compressed file."
    ),
    ProviderErrorKind.RATE_LIMITED: (
        "The analysis service is receiving too many requests. "
        "Please wait a minute and try again."
    ),
    ProviderErrorKind.UNSUPPORTED_MEDIA: (
        "The analysis service does not support this audio format. "
        "Please try an MP3, WAV or M4A file."
    ),
    ProviderErrorKind.CONTENT_FILTERED: (
        "The analysis was blocked by the provider's safety filters."
    ),
    ProviderErrorKind.GENERIC: GENERIC_FAILURE_MESSAGE,
}


class ProviderError(SalesIQError):
    def __init__(self, kind: ProviderErrorKind, detail: str = "") -> None:
        self.kind = kind
        super().__init__(detail or kind.value, user_message=_PROVIDER_MESSAGES[kind])


class MalformedResponseError(SalesIQError):
    """The provider reply was empty, not JSON, or missed required fields."""


class PersistenceWarning(SalesIQError):
    """Optional-store failure. Never aborts the pipeline."""

    user_message = (
        "The analysis finished but could not be saved to history storage."
    )


class SessionNotFoundError(SalesIQError, LookupError):
    user_message = "That session is no longer available."
