"""
Property-based tests for the RDAP expiry lookup client.
"""

import asyncio
from datetime import date, timedelta

import httpx
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_sniper.exceptions import TransportError
from domain_sniper.rdap_client import RELEASE_DELAY_DAYS, RDAPClient


TODAY = date(2026, 10, 17)


def rdap_record(expiry: date, registrar: str = "Example Registrar, Inc.") -> dict:
    return {
        "objectClassName": "domain",
        "ldhName": "example.com",
        "events": [
            {"eventAction": "registration", "eventDate": "2001-01-10T00:00:00Z"},
            {"eventAction": "expiration", "eventDate": f"{expiry.isoformat()}T04:59:59Z"},
        ],
        "entities": [
            {
                "objectClassName": "entity",
                "roles": ["registrar"],
                "handle": "292",
                "vcardArray": ["vcard", [["version", {}, "text", "4.0"], ["fn", {}, "text", registrar]]],
            }
        ],
    }


def make_client(handler) -> RDAPClient:
    return RDAPClient(
        endpoint="https://rdap.example.test/domain",
        transport=httpx.MockTransport(handler),
        today=lambda: TODAY,
    )


async def _lookup(client: RDAPClient, domain: str):
    async with client:
        return await client.lookup_expiration(domain)


class TestExpirationParsingProperty:
    """
    **Property 1: Release date and countdown derive from the expiration event**
    """

    @given(offset=st.integers(min_value=-400, max_value=3650))
    @settings(max_examples=100)
    def test_expiry_fields(self, offset: int) -> None:
        """
        *For any* expiration date, the release estimate SHALL be 65 days
        later and the countdown SHALL be the days left from today.
        """
        expiry = TODAY + timedelta(days=offset)
        client = RDAPClient(today=lambda: TODAY)

        info = client.parse_expiration(rdap_record(expiry))

        assert info.expiry_date == expiry.isoformat()
        assert info.estimated_release_date == (expiry + timedelta(days=RELEASE_DELAY_DAYS)).isoformat()
        assert info.days_until_expiry == offset
        assert info.registrar == "Example Registrar, Inc."

    def test_registrar_handle_used_without_vcard(self) -> None:
        record = rdap_record(TODAY)
        del record["entities"][0]["vcardArray"]

        info = RDAPClient(today=lambda: TODAY).parse_expiration(record)

        assert info.registrar == "292"

    @pytest.mark.parametrize("data", [
        None,
        [],
        {"events": "nope"},
        {"events": [{"eventAction": "expiration", "eventDate": "not a date"}]},
        {"events": [{"eventAction": "expiration", "eventDate": "9999-12-01T00:00:00Z"}]},
    ])
    def test_missing_or_malformed_events(self, data) -> None:
        info = RDAPClient().parse_expiration(data)
        assert info.expiry_date is None
        assert info.days_until_expiry is None


class TestLookupTransportProperty:
    """
    **Property 2: HTTP outcomes map to data or TransportError**
    """

    def test_lookup_requests_domain_url(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json=rdap_record(TODAY + timedelta(days=30)))

        info = asyncio.run(_lookup(make_client(handler), "example.com"))

        assert seen == ["https://rdap.example.test/domain/example.com"]
        assert info.days_until_expiry == 30

    def test_not_found_is_empty_info(self) -> None:
        info = asyncio.run(_lookup(make_client(lambda r: httpx.Response(404)), "free-name.com"))

        assert (info.expiry_date, info.estimated_release_date, info.days_until_expiry, info.registrar) == (
            None, None, None, None,
        )

    @given(status=st.sampled_from([400, 403, 429, 500, 502, 503]))
    @settings(max_examples=20, deadline=None)
    def test_error_statuses_raise(self, status: int) -> None:
        with pytest.raises(TransportError) as exc_info:
            asyncio.run(_lookup(make_client(lambda r: httpx.Response(status)), "example.com"))
        assert exc_info.value.code == "server_error"

    def test_invalid_json_raises_parse_error(self) -> None:
        client = make_client(lambda r: httpx.Response(200, content=b"<html>"))

        with pytest.raises(TransportError) as exc_info:
            asyncio.run(_lookup(client, "example.com"))
        assert exc_info.value.code == "parse_error"

    @pytest.mark.parametrize("exc_type, code", [
        (httpx.ReadTimeout, "timeout"),
        (httpx.ConnectError, "network_error"),
    ])
    def test_transport_failures(self, exc_type, code) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise exc_type("boom", request=request)

        with pytest.raises(TransportError) as exc_info:
            asyncio.run(_lookup(make_client(handler), "example.com"))
        assert exc_info.value.code == code

    def test_plain_http_endpoint_rejected(self) -> None:
        with pytest.raises(TransportError):
            RDAPClient(endpoint="http://rdap.example.test/domain/")
