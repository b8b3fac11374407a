"""
Data models for the domain sniper.

This module defines the stored entities (watched domains, check history,
purchases, system logs) and the result types exchanged between the
registrar client, the monitor loop and the HTTP API.
"""

from dataclasses import asdict, dataclass, field
from typing import Optional

from .enums import (
    Availability,
    CheckStatus,
    DomainStatus,
    LogLevel,
    PurchaseStatus,
    RejectionReason,
)


@dataclass
class WatchedDomain:
    """A domain name under watch."""

    id: int
    name: str  # Canonical form, unique
    monitoring_enabled: bool
    auto_purchase_enabled: bool
    status: DomainStatus
    created_at: str
    updated_at: str
    expiry_date: Optional[str] = None
    estimated_release_date: Optional[str] = None
    days_until_expiry: Optional[int] = None
    registrar: Optional[str] = None
    last_checked_at: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass
class DomainCheck:
    """One poll attempt for one domain. Never mutated after creation."""

    id: int
    domain_id: int
    status: CheckStatus
    available: bool
    checked_at: str
    notes: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass
class Purchase:
    """A purchase attempt and its terminal outcome."""

    id: int
    domain_id: Optional[int]
    domain_name: str
    purchase_date: str
    status: PurchaseStatus
    order_id: Optional[str] = None
    price: Optional[float] = None
    notes: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass
class SystemLogEntry:
    """Persisted audit trail entry."""

    id: int
    level: LogLevel
    message: str
    created_at: str
    domain: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["level"] = self.level.value
        return data


@dataclass
class AnalyticsRow:
    """Check counts for a single day."""

    date: str
    total_checks: int
    available_count: int
    error_count: int


@dataclass
class ExpirationInfo:
    """Registration expiry details for a watched domain."""

    expiry_date: Optional[str]
    estimated_release_date: Optional[str]
    days_until_expiry: Optional[int]
    registrar: Optional[str]


@dataclass
class AvailabilityResult:
    """Outcome of a single availability probe."""

    domain: str
    availability: Availability
    reason: Optional[RejectionReason] = None
    error: Optional[str] = None


@dataclass
class FinalizedOrder:
    """A checked-out registrar order."""

    order_id: str
    price: Optional[float] = None
    price_text: Optional[str] = None


@dataclass
class PurchaseResult:
    """Outcome of a purchase attempt."""

    success: bool
    order_id: Optional[str] = None
    price: Optional[float] = None
    price_text: Optional[str] = None
    reason: Optional[RejectionReason] = None
    error: Optional[str] = None


@dataclass
class BalanceResult:
    """Account balance lookup; balance is None when the query was refused."""

    balance: Optional[float]
    currency: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ConnectionStatus:
    """Result of a credential round trip."""

    success: bool
    account: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ConsumerKeyRequest:
    """A freshly requested consumer key awaiting validation."""

    consumer_key: str
    validation_url: str
    state: Optional[str] = None


@dataclass
class DomainOutcome:
    """What happened to one domain during a cycle."""

    domain: str
    check_status: CheckStatus
    domain_status: DomainStatus
    purchase_attempted: bool = False
    purchase: Optional[PurchaseResult] = None
    error: Optional[str] = None


@dataclass
class CycleResult:
    """Summary of one monitor cycle."""

    started_at: str
    finished_at: Optional[str] = None
    skipped: bool = False
    stopped_early: bool = False
    outcomes: list[DomainOutcome] = field(default_factory=list)

    @property
    def checked(self) -> int:
        return len(self.outcomes)

    @property
    def available(self) -> list[str]:
        return [o.domain for o in self.outcomes if o.check_status == CheckStatus.AVAILABLE]

    @property
    def purchased(self) -> list[str]:
        return [o.domain for o in self.outcomes if o.domain_status == DomainStatus.PURCHASED]
