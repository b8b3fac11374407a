"""
OVH registrar client.

This module talks to the OVH API over signed HTTPS requests. Availability is
established by asking the registrar itself: a throwaway order (cart) is
created, the domain is added to it, and the order is always discarded
afterwards. Purchases use the same order endpoints and go through checkout.

There is no heuristic fallback: when the registrar cannot give a definite
answer the result is INDETERMINATE.
"""

import asyncio
import hashlib
import json
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional

import httpx

from .audit_logger import AuditLogger
from .config import DEFAULT_ACCESS_RULES, RegistrarConfig, RetryConfig
from .enums import Availability, RegistrarErrorCode, RejectionReason
from .exceptions import ConfigurationError, SniperError, TransportError, VendorRejection
from .models import (
    AvailabilityResult,
    BalanceResult,
    ConnectionStatus,
    ConsumerKeyRequest,
    FinalizedOrder,
    PurchaseResult,
)
from .rejection_classifier import RejectionClassifier
from .retry_manager import RetryManager


COMPONENT = "registrar"


class RegistrarClient:
    """
    Async OVH API client.

    Usable as an async context manager; the underlying ``httpx.AsyncClient``
    is otherwise created lazily on first use and released by ``close()``.
    """

    def __init__(
        self,
        config: RegistrarConfig,
        retry_manager: Optional[RetryManager] = None,
        logger: Optional[AuditLogger] = None,
        classifier: Optional[RejectionClassifier] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the registrar client.

        Args:
            config: Endpoint, credentials and ordering defaults
            retry_manager: Retry policy for idempotent reads
            logger: Optional audit logger
            classifier: Vendor error classifier
            transport: Optional httpx transport (used to stub the API in tests)
            clock: Source of the local unix time used for request signing
        """
        self._config = config
        self._retry = retry_manager or RetryManager(RetryConfig())
        self._logger = logger
        self._classifier = classifier or RejectionClassifier()
        self._transport = transport
        self._clock = clock
        self._client: Optional[httpx.AsyncClient] = None
        self._time_delta: Optional[int] = None

    async def __aenter__(self) -> "RegistrarClient":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def config(self) -> RegistrarConfig:
        return self._config

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                verify=True,
                timeout=httpx.Timeout(self._config.timeout_seconds),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Transport and signing
    # ------------------------------------------------------------------

    def sign(self, method: str, url: str, body: str, timestamp: int) -> str:
        """
        Compute the OVH request signature.

        ``"$1$" + sha1(secret+consumer_key+METHOD+url+body+timestamp)``
        """
        payload = "+".join([
            self._config.app_secret or "",
            self._config.consumer_key or "",
            method.upper(),
            url,
            body,
            str(timestamp),
        ])
        return "$1$" + hashlib.sha1(payload.encode("utf-8")).hexdigest()

    async def _server_time_delta(self) -> int:
        """Offset between the registrar clock and ours, fetched once."""
        if self._time_delta is None:
            server_time = await self._retry.call(
                lambda: self._request("GET", "/auth/time", authenticated=False)
            )
            try:
                self._time_delta = int(server_time) - int(self._clock())
            except (TypeError, ValueError) as e:
                raise TransportError(
                    code=RegistrarErrorCode.PARSE_ERROR.value,
                    message=f"Unexpected /auth/time answer: {server_time!r}",
                ) from e
        return self._time_delta

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Any] = None,
        authenticated: bool = True,
    ) -> Any:
        """
        Perform one API call and decode its JSON answer.

        Raises:
            ConfigurationError: If credentials are needed but missing
            TransportError: On connect errors, timeouts, 5xx or undecodable bodies
            VendorRejection: On a 4xx answer, with a classified reason
        """
        if not self._config.app_key:
            raise ConfigurationError(
                code="missing_credentials",
                message="OVH_APP_KEY is not configured",
            )

        url = f"{self._config.base_url}{path}"
        body = "" if payload is None else json.dumps(payload, separators=(",", ":"))
        headers = {
            "X-Ovh-Application": self._config.app_key,
            "Accept": "application/json",
        }
        if payload is not None:
            headers["Content-Type"] = "application/json"

        if authenticated:
            if not self._config.app_secret or not self._config.consumer_key:
                raise ConfigurationError(
                    code="missing_credentials",
                    message="OVH_APP_SECRET and OVH_CONSUMER_KEY are required",
                )
            timestamp = int(self._clock()) + await self._server_time_delta()
            headers["X-Ovh-Consumer"] = self._config.consumer_key
            headers["X-Ovh-Timestamp"] = str(timestamp)
            headers["X-Ovh-Signature"] = self.sign(method, url, body, timestamp)

        client = self._ensure_client()
        try:
            response = await client.request(
                method, url, content=body.encode("utf-8") if body else None, headers=headers
            )
        except httpx.TimeoutException as e:
            raise TransportError(
                code=RegistrarErrorCode.TIMEOUT.value,
                message=f"{method} {path} timed out after {self._config.timeout_seconds}s",
                details={"path": path},
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(
                code=RegistrarErrorCode.NETWORK_ERROR.value,
                message=f"{method} {path} failed: {e}",
                details={"path": path},
            ) from e

        if response.status_code >= 500:
            raise TransportError(
                code=RegistrarErrorCode.SERVER_ERROR.value,
                message=f"{method} {path} returned {response.status_code}",
                details={"path": path, "http_status": response.status_code},
            )

        if response.status_code >= 400:
            raise self._rejection(response, method, path)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(
                code=RegistrarErrorCode.PARSE_ERROR.value,
                message=f"{method} {path} returned a non-JSON body",
                details={"path": path},
            ) from e

    def _rejection(self, response: httpx.Response, method: str, path: str) -> VendorRejection:
        try:
            body = response.json()
        except ValueError:
            body = response.text

        reason = self._classifier.classify_body(response.status_code, body)
        if isinstance(body, dict):
            message = body.get("message") or f"HTTP {response.status_code}"
            details = {
                "path": path,
                "error_class": body.get("class"),
                "error_code": body.get("errorCode"),
            }
        else:
            message = str(body) or f"HTTP {response.status_code}"
            details = {"path": path}

        return VendorRejection(
            reason=reason,
            message=f"{method} {path}: {message}",
            http_status=response.status_code,
            details=details,
        )

    def _log(self, level: str, message: str, data: Optional[dict] = None) -> None:
        if self._logger is not None:
            getattr(self._logger, level)(COMPONENT, message, data)

    # ------------------------------------------------------------------
    # Order capability
    # ------------------------------------------------------------------

    async def create_probe_order(self) -> str:
        """Create an empty order (cart) and return its id."""
        cart = await self._request(
            "POST",
            "/order/cart",
            {"ovhSubsidiary": self._config.subsidiary, "description": "domain-sniper"},
        )
        if not isinstance(cart, dict) or not cart.get("cartId"):
            raise TransportError(
                code=RegistrarErrorCode.PARSE_ERROR.value,
                message="Order creation returned no cartId",
            )
        return str(cart["cartId"])

    async def add_domain_to_order(
        self, order_id: str, domain: str, duration: Optional[str] = None
    ) -> Any:
        """Add a domain registration item to an order."""
        return await self._request(
            "POST",
            f"/order/cart/{order_id}/domain",
            {"domain": domain, "duration": duration or self._config.order_duration},
        )

    async def assign_order(self, order_id: str) -> None:
        """Attach the order to the authenticated account."""
        await self._request("POST", f"/order/cart/{order_id}/assign")

    async def finalize_order(self, order_id: str) -> FinalizedOrder:
        """Check the order out and return the resulting order id and price."""
        order = await self._request("POST", f"/order/cart/{order_id}/checkout")
        if not isinstance(order, dict) or order.get("orderId") is None:
            raise TransportError(
                code=RegistrarErrorCode.PARSE_ERROR.value,
                message="Checkout returned no orderId",
            )

        # The order is placed at this point; an odd price shape only loses the price
        price = price_text = None
        prices = order.get("prices")
        with_tax = prices.get("withTax") if isinstance(prices, dict) else None
        if isinstance(with_tax, dict):
            text = with_tax.get("text")
            price_text = text if isinstance(text, str) else None
            value = with_tax.get("value")
            if isinstance(value, (int, float, str)) and not isinstance(value, bool):
                try:
                    price = float(value)
                except ValueError:
                    price = None

        return FinalizedOrder(order_id=str(order["orderId"]), price=price, price_text=price_text)

    async def discard_order(self, order_id: str) -> None:
        """Delete an order that will not be checked out."""
        await self._request("DELETE", f"/order/cart/{order_id}")

    async def _discard_quietly(self, order_id: str) -> None:
        try:
            await self.discard_order(order_id)
        except SniperError as e:
            # Unchecked-out carts expire on the registrar side
            self._log("warning", "Could not discard order", {"order_id": order_id, "error": str(e)})

    @asynccontextmanager
    async def probe_order(self) -> AsyncIterator[str]:
        """Create an order that is always discarded when the block exits."""
        order_id = await self.create_probe_order()
        try:
            yield order_id
        finally:
            await self._discard_quietly(order_id)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def check_availability(self, domain: str) -> AvailabilityResult:
        """
        Ask the registrar whether ``domain`` can be ordered right now.

        Never raises for remote failures; those yield INDETERMINATE.
        """
        try:
            async with self.probe_order() as order_id:
                await self.add_domain_to_order(order_id, domain)
        except VendorRejection as e:
            if e.reason == RejectionReason.NOT_AVAILABLE:
                return AvailabilityResult(
                    domain=domain,
                    availability=Availability.UNAVAILABLE,
                    reason=e.reason,
                    error=e.message,
                )
            self._log("warning", "Availability probe rejected", {"domain": domain, "reason": e.reason.value})
            return AvailabilityResult(
                domain=domain,
                availability=Availability.INDETERMINATE,
                reason=e.reason,
                error=e.message,
            )
        except (TransportError, ConfigurationError) as e:
            self._log("warning", "Availability probe failed", {"domain": domain, "error": e.message})
            return AvailabilityResult(
                domain=domain,
                availability=Availability.INDETERMINATE,
                error=e.message,
            )

        return AvailabilityResult(domain=domain, availability=Availability.AVAILABLE)

    async def purchase(self, domain: str) -> PurchaseResult:
        """
        Order ``domain``: re-verify, create, add, assign, settle, checkout.

        Any failure discards the order and returns a classified reason.
        """
        verified = await self.check_availability(domain)
        if verified.availability != Availability.AVAILABLE:
            reason = (
                RejectionReason.NOT_AVAILABLE
                if verified.availability == Availability.UNAVAILABLE
                else RejectionReason.UNKNOWN
            )
            return PurchaseResult(
                success=False,
                reason=reason,
                error=verified.error or "Domain no longer available at purchase time",
            )

        try:
            order_id = await self.create_probe_order()
        except (VendorRejection, TransportError, ConfigurationError) as e:
            return self._purchase_failure(domain, e)

        try:
            await self.add_domain_to_order(order_id, domain)
            await self.assign_order(order_id)
            await asyncio.sleep(self._config.settle_delay_seconds)
            order = await self.finalize_order(order_id)
        except (VendorRejection, TransportError, ConfigurationError) as e:
            await self._discard_quietly(order_id)
            return self._purchase_failure(domain, e)

        self._log("success", "Order checked out", {"domain": domain, "order_id": order.order_id})
        return PurchaseResult(
            success=True,
            order_id=order.order_id,
            price=order.price,
            price_text=order.price_text,
        )

    def _purchase_failure(self, domain: str, error: SniperError) -> PurchaseResult:
        reason = error.reason if isinstance(error, VendorRejection) else RejectionReason.UNKNOWN
        self._log("warning", "Purchase failed", {"domain": domain, "reason": reason.value, "error": error.message})
        return PurchaseResult(success=False, reason=reason, error=error.message)

    async def get_account_balance(self) -> BalanceResult:
        """Best-effort prepaid balance lookup."""
        try:
            account = await self._retry.call(lambda: self._request("GET", "/me/prepaidAccount"))
        except SniperError as e:
            return BalanceResult(balance=None, error=e.message)

        balance = account.get("balance") if isinstance(account, dict) else None
        if isinstance(balance, dict):
            value = balance.get("value")
            currency = balance.get("currencyCode")
        else:
            value = balance
            currency = None

        try:
            return BalanceResult(balance=float(value), currency=currency)
        except (TypeError, ValueError):
            return BalanceResult(balance=None, error="No prepaid balance reported")

    async def test_connection(self) -> ConnectionStatus:
        """Verify the credentials with a single ``GET /me``."""
        try:
            me = await self._retry.call(lambda: self._request("GET", "/me"))
        except SniperError as e:
            return ConnectionStatus(success=False, error=e.message)

        account = me.get("nichandle") if isinstance(me, dict) else None
        return ConnectionStatus(success=True, account=account)

    async def request_consumer_key(
        self,
        access_rules: Optional[list[dict]] = None,
        redirection: Optional[str] = None,
    ) -> ConsumerKeyRequest:
        """
        Ask for a new consumer key carrying the given access rules.

        The key becomes usable once the account owner visits the validation URL.
        """
        payload: dict = {"accessRules": access_rules or DEFAULT_ACCESS_RULES}
        if redirection:
            payload["redirection"] = redirection

        answer = await self._request("POST", "/auth/credential", payload, authenticated=False)
        if not isinstance(answer, dict) or not answer.get("consumerKey"):
            raise TransportError(
                code=RegistrarErrorCode.PARSE_ERROR.value,
                message="Credential request returned no consumerKey",
            )
        return ConsumerKeyRequest(
            consumer_key=answer["consumerKey"],
            validation_url=answer.get("validationUrl", ""),
            state=answer.get("state"),
        )
