"""
Monitor loop for watched domains.

One cycle walks the active domains sequentially. Each domain is probed
against the registrar, exactly one check row is recorded, the domain status
is updated, and an automatic purchase is attempted when the domain turned
out to be available and auto-purchase is enabled for it.

At most one cycle runs at a time; a cycle requested while another is in
flight is reported as skipped.
"""

import asyncio
from datetime import date, datetime, timezone
from typing import Awaitable, Callable, Optional

from .audit_logger import AuditLogger
from .config import MonitorConfig
from .enums import Availability, CheckStatus, DomainStatus, PurchaseStatus, RejectionReason
from .exceptions import SniperError
from .models import CycleResult, DomainOutcome, PurchaseResult, WatchedDomain
from .rdap_client import RDAPClient
from .registrar_client import RegistrarClient
from .store import Store


COMPONENT = "monitor"

CHECK_STATUS_FOR = {
    Availability.AVAILABLE: CheckStatus.AVAILABLE,
    Availability.UNAVAILABLE: CheckStatus.UNAVAILABLE,
    Availability.INDETERMINATE: CheckStatus.ERROR,
}

DOMAIN_STATUS_FOR = {
    CheckStatus.AVAILABLE: DomainStatus.AVAILABLE,
    CheckStatus.UNAVAILABLE: DomainStatus.UNAVAILABLE,
    CheckStatus.ERROR: DomainStatus.ERROR,
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _always() -> bool:
    return True


class DomainMonitor:
    """
    Runs monitor cycles over the store's active domains.

    The registrar client decides availability; RDAP, when given, only
    refreshes the informational expiry fields (at most once a day per domain).
    """

    def __init__(
        self,
        store: Store,
        registrar: RegistrarClient,
        config: Optional[MonitorConfig] = None,
        logger: Optional[AuditLogger] = None,
        expiry_lookup: Optional[RDAPClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the monitor.

        Args:
            store: Persistence store
            registrar: Registrar client used for probes and purchases
            config: Cadence and purchase policy
            logger: Optional audit logger
            expiry_lookup: Optional RDAP client for expiry refreshes
            sleep: Awaitable used for the delay between domains
        """
        self._store = store
        self._registrar = registrar
        self._config = config or MonitorConfig()
        self._logger = logger
        self._expiry_lookup = expiry_lookup
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._expiry_refreshed: dict[int, date] = {}
        self._last_cycle: Optional[CycleResult] = None

    @property
    def config(self) -> MonitorConfig:
        return self._config

    @property
    def cycle_in_progress(self) -> bool:
        return self._lock.locked()

    @property
    def last_cycle(self) -> Optional[CycleResult]:
        return self._last_cycle

    async def run_cycle(self, should_continue: Callable[[], bool] = _always) -> CycleResult:
        """
        Check every active domain once.

        Args:
            should_continue: Consulted before each domain; a False answer
                stops the cycle without starting further domains

        Returns:
            CycleResult; ``skipped`` is set when another cycle was in flight
        """
        if self._lock.locked():
            self._log_info("Cycle already in progress, skipping")
            now = _now_iso()
            return CycleResult(started_at=now, finished_at=now, skipped=True)

        async with self._lock:
            result = CycleResult(started_at=_now_iso())
            domains = self._store.list_active_domains()

            if not domains:
                self._log_info("No active domains to check")
            else:
                self._log_info(f"Checking {len(domains)} domain(s)", {"count": len(domains)})

            for index, domain in enumerate(domains):
                if index > 0:
                    await self._sleep(self._config.domain_delay_seconds)
                if not should_continue():
                    result.stopped_early = True
                    self._log("warning", "Cycle stopped before all domains were checked")
                    break
                result.outcomes.append(await self._check_safely(domain))

            result.finished_at = _now_iso()
            if domains:
                self._log(
                    "success",
                    f"Cycle finished for {result.checked} domain(s)",
                    {"available": result.available, "purchased": result.purchased},
                )
            self._last_cycle = result
            return result

    async def _check_safely(self, domain: WatchedDomain) -> DomainOutcome:
        try:
            return await self.check_domain(domain)
        except Exception as e:
            # Store failures land here; the cycle goes on with the next domain
            if self._logger:
                self._logger.log_error(
                    COMPONENT, f"Check failed for {domain.name}", error=e,
                    additional_data={"domain": domain.name},
                )
            return DomainOutcome(
                domain=domain.name,
                check_status=CheckStatus.ERROR,
                domain_status=DomainStatus.ERROR,
                error=str(e),
            )

    async def check_domain(self, domain: WatchedDomain) -> DomainOutcome:
        """
        Probe one domain, record the check, update status and maybe purchase.
        """
        await self._refresh_expiry(domain)

        self._log_info(f"Checking {domain.name}", {"domain": domain.name})
        try:
            probe = await self._registrar.check_availability(domain.name)
            check_status = CHECK_STATUS_FOR[probe.availability]
            notes = probe.error
        except Exception as e:
            if self._logger:
                self._logger.log_error(
                    COMPONENT, f"Probe raised for {domain.name}", error=e,
                    additional_data={"domain": domain.name},
                )
            check_status = CheckStatus.ERROR
            notes = str(e)

        self._store.add_check(domain.id, check_status, notes)
        domain_status = DOMAIN_STATUS_FOR[check_status]
        self._store.update_domain_status(domain.id, domain_status)

        outcome = DomainOutcome(
            domain=domain.name,
            check_status=check_status,
            domain_status=domain_status,
            error=notes if check_status == CheckStatus.ERROR else None,
        )

        if check_status == CheckStatus.ERROR:
            self._log("warning", f"{domain.name}: could not determine availability", {"domain": domain.name, "error": notes})
            return outcome

        if check_status == CheckStatus.UNAVAILABLE:
            self._log_info(f"{domain.name}: unavailable", {"domain": domain.name})
            return outcome

        self._log("success", f"Domain available: {domain.name}", {"domain": domain.name})
        if domain.auto_purchase_enabled:
            outcome.purchase_attempted = True
            outcome.purchase = await self._purchase(domain)
            if outcome.purchase.success:
                outcome.domain_status = DomainStatus.PURCHASED

        return outcome

    async def _purchase(self, domain: WatchedDomain) -> PurchaseResult:
        self._log_info(f"Auto-purchase enabled, ordering {domain.name}", {"domain": domain.name})
        attempt = self._store.create_purchase(domain.id, domain.name)

        try:
            result = await self._registrar.purchase(domain.name)
        except Exception as e:
            if self._logger:
                self._logger.log_error(
                    COMPONENT, f"Purchase raised for {domain.name}", error=e,
                    additional_data={"domain": domain.name},
                )
            result = PurchaseResult(success=False, reason=RejectionReason.UNKNOWN, error=str(e))

        if result.success:
            self._store.resolve_purchase(
                attempt.id,
                PurchaseStatus.COMPLETED,
                order_id=result.order_id,
                price=result.price,
                notes=result.price_text,
            )
            self._store.update_domain_status(domain.id, DomainStatus.PURCHASED, checked=False)
            if self._config.disable_monitoring_on_purchase:
                self._store.update_domain_settings(domain.id, monitoring_enabled=False)
            self._log(
                "success",
                f"Purchase completed for {domain.name}",
                {"domain": domain.name, "order_id": result.order_id, "price": result.price_text},
            )
        else:
            reason = (result.reason or RejectionReason.UNKNOWN).value
            self._store.resolve_purchase(
                attempt.id,
                PurchaseStatus.FAILED,
                notes=f"{reason}: {result.error}" if result.error else reason,
            )
            if self._logger:
                self._logger.log_error(
                    COMPONENT,
                    f"Purchase failed for {domain.name}",
                    additional_data={"domain": domain.name, "reason": reason, "error": result.error},
                )

        return result

    async def _refresh_expiry(self, domain: WatchedDomain) -> None:
        if self._expiry_lookup is None:
            return
        today = datetime.now(timezone.utc).date()
        if self._expiry_refreshed.get(domain.id) == today:
            return
        try:
            info = await self._expiry_lookup.lookup_expiration(domain.name)
            self._store.update_expiration_info(domain.id, info)
            self._expiry_refreshed[domain.id] = today
        except Exception as e:
            # Expiry data is advisory; the availability check still runs
            error = e.message if isinstance(e, SniperError) else str(e)
            self._log("warning", f"Expiry lookup failed for {domain.name}", {"domain": domain.name, "error": error})

    def _log(self, level: str, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            getattr(self._logger, level)(COMPONENT, message, data)

    def _log_info(self, message: str, data: Optional[dict] = None) -> None:
        self._log("info", message, data)
