"""
Domain Sniper - registrar polling and automatic domain purchase.

This package watches a list of domain names at the OVH registrar, records
every availability check, and can order a domain the moment it becomes
available.
"""

__version__ = "0.1.0"
__author__ = "Domain Sniper Team"

from domain_sniper.exceptions import (
    SniperError,
    ValidationError,
    ConfigurationError,
    TransportError,
    VendorRejection,
    PersistenceError,
    UniqueViolation,
    NotFoundError,
    NotInitializedError,
)
from domain_sniper.enums import (
    Availability,
    CheckStatus,
    DomainStatus,
    DomainValidationErrorCode,
    LogLevel,
    PurchaseStatus,
    RegistrarErrorCode,
    RejectionReason,
    SchedulerState,
)
from domain_sniper.config import (
    ApiConfig,
    LoggingConfig,
    MonitorConfig,
    PersistenceConfig,
    RegistrarConfig,
    RetryConfig,
    SystemConfig,
    load_config_from_env,
)
from domain_sniper.models import (
    AnalyticsRow,
    AvailabilityResult,
    BalanceResult,
    ConnectionStatus,
    ConsumerKeyRequest,
    CycleResult,
    DomainCheck,
    DomainOutcome,
    ExpirationInfo,
    FinalizedOrder,
    Purchase,
    PurchaseResult,
    SystemLogEntry,
    WatchedDomain,
)
from domain_sniper.domain_validator import (
    DomainValidator,
    DomainValidationResult,
    DomainValidationError,
)
from domain_sniper.audit_logger import (
    AuditLogger,
    LogEntry,
)
from domain_sniper.retry_manager import (
    RetryManager,
    RetryResult,
)
from domain_sniper.rejection_classifier import RejectionClassifier
from domain_sniper.registrar_client import RegistrarClient
from domain_sniper.rdap_client import RDAPClient
from domain_sniper.store import Store
from domain_sniper.monitor import DomainMonitor
from domain_sniper.scheduler import MonitorScheduler
from domain_sniper.self_test import (
    SelfTest,
    SelfTestResult,
    ConfigValidationResult,
    run_self_test,
)
from domain_sniper.service import SniperService

__all__ = [
    # Exceptions
    "SniperError",
    "ValidationError",
    "ConfigurationError",
    "TransportError",
    "VendorRejection",
    "PersistenceError",
    "UniqueViolation",
    "NotFoundError",
    "NotInitializedError",
    # Enums
    "Availability",
    "CheckStatus",
    "DomainStatus",
    "DomainValidationErrorCode",
    "LogLevel",
    "PurchaseStatus",
    "RegistrarErrorCode",
    "RejectionReason",
    "SchedulerState",
    # Configuration
    "ApiConfig",
    "LoggingConfig",
    "MonitorConfig",
    "PersistenceConfig",
    "RegistrarConfig",
    "RetryConfig",
    "SystemConfig",
    "load_config_from_env",
    # Models
    "AnalyticsRow",
    "AvailabilityResult",
    "BalanceResult",
    "ConnectionStatus",
    "ConsumerKeyRequest",
    "CycleResult",
    "DomainCheck",
    "DomainOutcome",
    "ExpirationInfo",
    "FinalizedOrder",
    "Purchase",
    "PurchaseResult",
    "SystemLogEntry",
    "WatchedDomain",
    # Domain Validator
    "DomainValidator",
    "DomainValidationResult",
    "DomainValidationError",
    # Audit Logger
    "AuditLogger",
    "LogEntry",
    # Retry Manager
    "RetryManager",
    "RetryResult",
    # Registrar
    "RejectionClassifier",
    "RegistrarClient",
    "RDAPClient",
    # Persistence
    "Store",
    # Monitoring
    "DomainMonitor",
    "MonitorScheduler",
    # Self-Test
    "SelfTest",
    "SelfTestResult",
    "ConfigValidationResult",
    "run_self_test",
    # Service
    "SniperService",
]
