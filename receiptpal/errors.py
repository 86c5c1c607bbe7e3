"""Exception hierarchy shared by services, the analysis trigger and the API."""

from __future__ import annotations

RATE_LIMIT_MESSAGE = "Rate limit reached. Please wait a minute and try again."


class ReceiptPalError(Exception):
    """Base class for all receiptpal errors."""


class AIServiceError(ReceiptPalError):
    """The upstream AI service failed or returned something unusable."""


class RateLimitError(AIServiceError):
    """The AI service answered HTTP 429."""

    def __init__(self, message: str = RATE_LIMIT_MESSAGE) -> None:
        super().__init__(message)


class AIConfigurationError(AIServiceError):
    """No API key (or SDK) is available for the configured backend."""


class ResponseParseError(AIServiceError):
    """The AI text response could not be parsed as the expected JSON."""


class NotFoundError(ReceiptPalError):
    """A requested record does not exist or is not visible to the user."""


class ValidationError(ReceiptPalError):
    """Input failed validation. ``errors`` holds one message per problem."""

    def __init__(self, errors: list[str] | str) -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors = errors
        super().__init__(", ".join(errors))


class HouseholdError(ReceiptPalError):
    """Household membership operation was rejected."""


class InvalidTransitionError(ReceiptPalError):
    """A receipt analysis status change was not allowed from its current state."""
