"""
Exception classes for the domain sniper.

All exceptions inherit from SniperError and provide structured
error information with codes, messages, and optional details.
"""

from typing import Optional

from .enums import RejectionReason


class SniperError(Exception):
    """Base exception for all domain sniper errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(SniperError):
    """Raised when a domain name or request payload is invalid."""

    pass


class ConfigurationError(SniperError):
    """Raised when required configuration is missing or malformed."""

    pass


class TransportError(SniperError):
    """Raised when a remote call fails at the network level (connect, timeout)."""

    pass


class VendorRejection(SniperError):
    """Raised when the registrar answers a request with an error response."""

    def __init__(
        self,
        reason: RejectionReason,
        message: str,
        http_status: Optional[int] = None,
        details: Optional[dict] = None,
    ) -> None:
        self.reason = reason
        self.http_status = http_status
        super().__init__(code=reason.value, message=message, details=details)


class PersistenceError(SniperError):
    """Raised when a store operation fails."""

    pass


class UniqueViolation(PersistenceError):
    """Raised when a watched domain name already exists in the store."""

    pass


class NotFoundError(PersistenceError):
    """Raised when a referenced row does not exist."""

    pass


class NotInitializedError(SniperError):
    """Raised when a dependent service (registrar client, scheduler) is not configured."""

    pass
