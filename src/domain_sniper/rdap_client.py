"""
RDAP client for registration expiry lookups.

Watched domains carry informational expiry fields (expiry date, estimated
release date, days left, sponsoring registrar). They are filled from the
public RDAP record of the domain. RDAP is never consulted to decide
availability; only the registrar's order endpoints do that.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Optional
from urllib.parse import urlparse

import httpx

from .enums import RegistrarErrorCode
from .exceptions import TransportError
from .models import ExpirationInfo


# Auto-renew grace (30) + redemption (30) + pending delete (5)
RELEASE_DELAY_DAYS = 65


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class RDAPClient:
    """
    Async RDAP client with TLS enforcement.

    Queries ``<endpoint><domain>`` and extracts only the expiration event and
    the registrar entity; all other fields are ignored.
    """

    def __init__(
        self,
        endpoint: str = "https://rdap.org/domain/",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        today: Callable[[], date] = _utc_today,
    ) -> None:
        """
        Initialize the RDAP client.

        Args:
            endpoint: Base URL the domain name is appended to (must be HTTPS)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used to stub RDAP in tests)
            today: Source of the current date for days-until-expiry

        Raises:
            TransportError: If the endpoint does not use HTTPS
        """
        if urlparse(endpoint).scheme.lower() != "https":
            raise TransportError(
                code=RegistrarErrorCode.NETWORK_ERROR.value,
                message=f"RDAP endpoint must use HTTPS: {endpoint}",
                details={"endpoint": endpoint},
            )
        self._endpoint = endpoint if endpoint.endswith("/") else endpoint + "/"
        self._timeout = timeout
        self._transport = transport
        self._today = today
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "RDAPClient":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                verify=True,
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def lookup_expiration(self, domain: str) -> ExpirationInfo:
        """
        Fetch expiry information for a registered domain.

        A domain without an RDAP record (404) yields an ExpirationInfo with
        every field empty.

        Raises:
            TransportError: On network failures, timeouts, 5xx or bad JSON
        """
        url = f"{self._endpoint}{domain}"
        client = self._ensure_client()

        try:
            response = await client.get(
                url,
                headers={"Accept": "application/rdap+json, application/json"},
            )
        except httpx.TimeoutException as e:
            raise TransportError(
                code=RegistrarErrorCode.TIMEOUT.value,
                message=f"RDAP request timed out after {self._timeout}s",
                details={"domain": domain},
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(
                code=RegistrarErrorCode.NETWORK_ERROR.value,
                message=f"RDAP connection error: {e}",
                details={"domain": domain},
            ) from e

        if response.status_code == 404:
            return ExpirationInfo(None, None, None, None)

        if response.status_code != 200:
            raise TransportError(
                code=RegistrarErrorCode.SERVER_ERROR.value,
                message=f"RDAP server returned {response.status_code}",
                details={"domain": domain, "http_status": response.status_code},
            )

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(
                code=RegistrarErrorCode.PARSE_ERROR.value,
                message="RDAP response is not valid JSON",
                details={"domain": domain},
            ) from e

        return self.parse_expiration(data)

    def parse_expiration(self, data: Any) -> ExpirationInfo:
        """Extract expiry fields from a decoded RDAP domain object."""
        if not isinstance(data, dict):
            return ExpirationInfo(None, None, None, None)

        expiry = self._expiration_date(data.get("events"))
        registrar = self._registrar_name(data.get("entities"))

        if expiry is None:
            return ExpirationInfo(None, None, None, registrar)

        try:
            release = expiry + timedelta(days=RELEASE_DELAY_DAYS)
        except OverflowError:
            # Placeholder expiries such as 9999-12-31 carry no usable date
            return ExpirationInfo(None, None, None, registrar)
        return ExpirationInfo(
            expiry_date=expiry.isoformat(),
            estimated_release_date=release.isoformat(),
            days_until_expiry=(expiry - self._today()).days,
            registrar=registrar,
        )

    @staticmethod
    def _expiration_date(events: Any) -> Optional[date]:
        if not isinstance(events, list):
            return None
        for event in events:
            if not isinstance(event, dict) or event.get("eventAction") != "expiration":
                continue
            raw = str(event.get("eventDate", ""))
            try:
                return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
            except ValueError:
                return None
        return None

    @staticmethod
    def _registrar_name(entities: Any) -> Optional[str]:
        if not isinstance(entities, list):
            return None
        for entity in entities:
            if not isinstance(entity, dict) or "registrar" not in (entity.get("roles") or []):
                continue
            # vcardArray: ["vcard", [["version", {}, "text", "4.0"], ["fn", {}, "text", "Name"]]]
            vcard = entity.get("vcardArray")
            if isinstance(vcard, list) and len(vcard) == 2 and isinstance(vcard[1], list):
                for item in vcard[1]:
                    if isinstance(item, list) and len(item) >= 4 and item[0] == "fn":
                        return str(item[3])
            return entity.get("handle")
        return None
