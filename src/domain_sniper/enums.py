"""
Enumeration types for the domain sniper.

These enums provide type-safe constants for domain lifecycle states,
probe outcomes, vendor rejection reasons and log levels.
"""

from enum import Enum


class DomainStatus(Enum):
    """Lifecycle status of a watched domain."""

    PENDING = "pending"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    PURCHASED = "purchased"
    ERROR = "error"


class CheckStatus(Enum):
    """Outcome recorded for a single poll attempt."""

    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    ERROR = "error"


class PurchaseStatus(Enum):
    """Status of a purchase attempt."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Availability(Enum):
    """Result of an availability probe against the registrar."""

    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    INDETERMINATE = "indeterminate"


class RejectionReason(Enum):
    """Classified reason for a registrar rejecting a request."""

    NOT_AVAILABLE = "not_available"
    PERMISSION_DENIED = "permission_denied"
    MALFORMED_REQUEST = "malformed_request"
    UNKNOWN = "unknown"


class RegistrarErrorCode(Enum):
    """Error codes for transport-level registrar and RDAP failures."""

    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    PARSE_ERROR = "parse_error"
    SERVER_ERROR = "server_error"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class SchedulerState(Enum):
    """Lifecycle state of the monitor scheduler."""

    IDLE = "idle"
    RUNNING = "running"


class DomainValidationErrorCode(Enum):
    """Error codes for domain validation failures."""

    FORBIDDEN_CHARS = "forbidden_chars"
    INVALID_LABEL = "invalid_label"
    MISSING_TLD = "missing_tld"
    IDNA_ERROR = "idna_error"
    EMPTY_INPUT = "empty_input"
