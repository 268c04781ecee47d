"""Error taxonomy shared by every context.

Domain code raises these; ``shared.api.register_exception_handlers`` turns them
into HTTP responses at the FastAPI boundary.
"""

from typing import Any


class StorefrontError(Exception):
    """Base class for all errors raised by the order subsystem."""

    def __init__(self, message: str = "", details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return self.message or self.__class__.__name__


class ValidationError(StorefrontError):
    """Bad input, caught before any network or storage call.

    ``messages`` follows the ``{"field": ["problem", ...]}`` shape.
    """

    def __init__(self, messages: dict[str, list[str]]) -> None:
        self.messages = messages
        flat = "; ".join(f"{field}: {', '.join(errors)}" for field, errors in messages.items())
        super().__init__(flat, details=messages)


class NotFound(StorefrontError):
    """Unknown order or courier id."""


class InvalidTransition(StorefrontError):
    """A lifecycle operation was called from a state that forbids it."""


class ConcurrentModification(StorefrontError):
    """A save was attempted against a stale record version."""


class PermissionDenied(StorefrontError):
    """The caller is not allowed to act on this resource."""


class CredentialsMissing(StorefrontError):
    """Payment provider credentials are not configured."""


class UpstreamError(StorefrontError):
    """Base for failures reported by (or while reaching) the payment provider."""

    def __init__(self, message: str = "", details: Any = None, status_code: int | None = None) -> None:
        super().__init__(message, details=details)
        self.status_code = status_code


class UpstreamAuthFailure(UpstreamError):
    """The provider refused to issue an access token."""


class UpstreamRejected(UpstreamError):
    """The provider rejected a payment request."""


class UpstreamTimeout(UpstreamError):
    """The provider did not answer within the configured timeout."""


class UpstreamUnavailable(UpstreamError):
    """The provider could not be reached at all."""
