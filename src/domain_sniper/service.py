"""
Service wiring for the domain sniper.

Builds the store, audit logger, registrar client, monitor and scheduler from
a SystemConfig and exposes the domain-management operations shared by the
HTTP API and the CLI. Without registrar credentials the service runs in
CRUD-only mode: registrar-dependent operations raise NotInitializedError.
"""

from datetime import datetime, timezone
from typing import Optional, TextIO

from .audit_logger import AuditLogger, LogEntry
from .config import SystemConfig
from .domain_validator import DomainValidator
from .enums import DomainStatus, LogLevel, PurchaseStatus
from .exceptions import ConfigurationError, NotInitializedError
from .models import WatchedDomain
from .monitor import DomainMonitor
from .rdap_client import RDAPClient
from .registrar_client import RegistrarClient
from .retry_manager import RetryManager
from .scheduler import MonitorScheduler
from .store import Store


COMPONENT = "service"


def parse_log_level(value: str) -> LogLevel:
    """
    Map a configured level name to a LogLevel.

    Raises:
        ConfigurationError: If the name is unknown
    """
    aliases = {"warn": "warning", "err": "error"}
    name = aliases.get(value.lower(), value.lower())
    try:
        return LogLevel(name)
    except ValueError as e:
        raise ConfigurationError(
            code="invalid_log_level",
            message=f"Unknown log level: {value}",
            details={"allowed": [level.value for level in LogLevel]},
        ) from e


class SniperService:
    """
    Owns the long-lived components of a running sniper.
    """

    def __init__(
        self,
        config: SystemConfig,
        store: Optional[Store] = None,
        registrar: Optional[RegistrarClient] = None,
        expiry_lookup: Optional[RDAPClient] = None,
        logger: Optional[AuditLogger] = None,
        log_stream: Optional[TextIO] = None,
    ) -> None:
        """
        Build the service.

        Args:
            config: System configuration
            store: Store to use instead of opening the configured database
            registrar: Registrar client to use instead of building one
            expiry_lookup: RDAP client to use instead of building one
            logger: Audit logger to use instead of building one
            log_stream: Stream for the built logger (defaults to stderr)
        """
        self.config = config
        self.store = store or Store(config.persistence.database_path)
        self.logger = logger or AuditLogger(
            output_format=config.logging.output_format,
            output_stream=log_stream,
            min_level=parse_log_level(config.logging.level),
        )
        self.logger.set_sink(self._persist_log)
        self.validator = DomainValidator()

        if registrar is None and config.registrar_configured:
            registrar = RegistrarClient(
                config.registrar,
                retry_manager=RetryManager(config.retry),
                logger=self.logger,
            )
        self.registrar = registrar

        if expiry_lookup is None and config.monitor.expiry_lookup:
            expiry_lookup = RDAPClient(
                endpoint=config.monitor.rdap_endpoint,
                timeout=config.registrar.timeout_seconds,
            )
        self.expiry_lookup = expiry_lookup

        self.monitor: Optional[DomainMonitor] = None
        self.scheduler: Optional[MonitorScheduler] = None
        if self.registrar is not None:
            self.monitor = DomainMonitor(
                self.store,
                self.registrar,
                config.monitor,
                logger=self.logger,
                expiry_lookup=self.expiry_lookup,
            )
            self.scheduler = MonitorScheduler(self.monitor, logger=self.logger)

    def _persist_log(self, entry: LogEntry) -> None:
        domain = entry.data.get("domain")
        self.store.add_log(entry.level, entry.message, domain if isinstance(domain, str) else None)

    @property
    def registrar_ready(self) -> bool:
        return self.registrar is not None

    def require_registrar(self) -> RegistrarClient:
        """
        Raises:
            NotInitializedError: If no registrar credentials are configured
        """
        if self.registrar is None:
            raise NotInitializedError(
                code="registrar_not_configured",
                message="Registrar credentials are not configured",
                details={"missing": self.config.registrar.missing_credentials},
            )
        return self.registrar

    def require_scheduler(self) -> MonitorScheduler:
        """
        Raises:
            NotInitializedError: If monitoring cannot run without a registrar
        """
        self.require_registrar()
        return self.scheduler

    # ------------------------------------------------------------------
    # Domain management
    # ------------------------------------------------------------------

    def add_domain(
        self,
        raw_domain: str,
        monitoring_enabled: bool = True,
        auto_purchase_enabled: bool = False,
    ) -> WatchedDomain:
        """
        Validate, canonicalize and store a new watched domain.

        Raises:
            ValidationError: If the name is not a valid domain
            UniqueViolation: If the name is already watched
        """
        name = self.validator.canonicalize(raw_domain)
        domain = self.store.add_domain(name, monitoring_enabled, auto_purchase_enabled)
        self.logger.info(
            COMPONENT,
            f"Domain added: {name}",
            {"domain": name, "auto_purchase": auto_purchase_enabled},
        )
        return domain

    def update_domain(
        self,
        domain_id: int,
        monitoring_enabled: Optional[bool] = None,
        auto_purchase_enabled: Optional[bool] = None,
    ) -> WatchedDomain:
        domain = self.store.update_domain_settings(domain_id, monitoring_enabled, auto_purchase_enabled)
        self.logger.info(COMPONENT, f"Settings updated for {domain.name}", {"domain": domain.name})
        return domain

    def remove_domain(self, domain_id: int) -> WatchedDomain:
        domain = self.store.get_domain(domain_id)
        self.store.delete_domain(domain_id)
        self.logger.info(COMPONENT, f"Domain removed: {domain.name}", {"domain": domain.name})
        return domain

    async def dashboard(self) -> dict:
        """Counts, monitoring state, balance and the latest log entries."""
        domains = self.store.list_domains()
        purchases = self.store.list_purchases()
        checked = [d.last_checked_at for d in domains if d.last_checked_at]

        balance = currency = None
        if self.registrar is not None:
            result = await self.registrar.get_account_balance()
            balance, currency = result.balance, result.currency

        return {
            "total_domains": len(domains),
            "active_domains": sum(1 for d in domains if d.monitoring_enabled),
            "available_domains": sum(1 for d in domains if d.status == DomainStatus.AVAILABLE),
            "purchased_domains": sum(1 for p in purchases if p.status == PurchaseStatus.COMPLETED),
            "is_monitoring": self.scheduler is not None and self.scheduler.is_running(),
            "balance": balance,
            "currency": currency,
            "last_check": max(checked) if checked else None,
            "services_ready": self.registrar_ready,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "recent_logs": [entry.to_dict() for entry in self.store.recent_logs(10)],
        }

    async def shutdown(self) -> None:
        """Stop monitoring and release HTTP clients. The store stays open."""
        if self.scheduler is not None and self.scheduler.stop():
            await self.scheduler.wait_stopped()
        if self.registrar is not None:
            await self.registrar.close()
        if self.expiry_lookup is not None:
            await self.expiry_lookup.close()

    async def close(self) -> None:
        """Shut down and close the store."""
        await self.shutdown()
        self.logger.set_sink(None)
        self.store.close()
