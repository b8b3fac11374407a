"""
Property-based tests for the OVH registrar client.

The OVH API is replaced by the in-memory FakeOVH served through
httpx.MockTransport, so every request, cart and order can be inspected.
"""

import asyncio
import hashlib
import io
import json
from typing import Optional

from hypothesis import given, settings
from hypothesis import strategies as st

from domain_sniper.audit_logger import AuditLogger
from domain_sniper.config import DEFAULT_ACCESS_RULES
from domain_sniper.enums import Availability, LogLevel, RejectionReason

from ovh_stub import FORBIDDEN_BODY, FakeOVH, make_client, make_config


# Strategies for generating test data

@st.composite
def domain_name_strategy(draw) -> str:
    label = draw(st.text(
        alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz0123456789"),
        min_size=1,
        max_size=15,
    ))
    return f"{label}.{draw(st.sampled_from(['com', 'net', 'fr']))}"


# Failure injected into the "add domain" step of a probe
probe_failure_strategy = st.sampled_from([None, "forbidden", "timeout", "server_error"])


def inject(fake: FakeOVH, action: str, failure: Optional[str]) -> None:
    if failure == "forbidden":
        fake.fail[action] = (403, FORBIDDEN_BODY)
    elif failure == "timeout":
        fake.timeouts.add(action)
    elif failure == "server_error":
        fake.fail[action] = (503, {"message": "Service unavailable"})


async def _check(fake: FakeOVH, domain: str, **kwargs):
    async with make_client(fake, **kwargs) as client:
        return await client.check_availability(domain)


async def _purchase(fake: FakeOVH, domain: str):
    async with make_client(fake) as client:
        return await client.purchase(domain)


class TestRequestSigningProperty:
    """
    **Property 1: Authenticated requests carry a valid OVH signature**
    """

    @given(
        method=st.sampled_from(["GET", "POST", "DELETE"]),
        path=st.sampled_from(["/me", "/order/cart", "/order/cart/42/domain"]),
        body=st.sampled_from(["", '{"domain":"example.com"}']),
        timestamp=st.integers(min_value=1_600_000_000, max_value=1_900_000_000),
    )
    @settings(max_examples=50)
    def test_signature_format(self, method: str, path: str, body: str, timestamp: int) -> None:
        """
        *For any* request, the signature SHALL be ``$1$`` followed by the
        sha1 of secret, consumer key, method, url, body and timestamp joined by ``+``.
        """
        client = make_client(FakeOVH())
        url = "https://eu.api.ovh.com/1.0" + path

        expected = "$1$" + hashlib.sha1(
            f"app-secret+consumer-key+{method}+{url}+{body}+{timestamp}".encode()
        ).hexdigest()

        assert client.sign(method, url, body, timestamp) == expected

    @given(skew=st.integers(min_value=-600, max_value=600))
    @settings(max_examples=30, deadline=None)
    def test_timestamp_follows_server_clock(self, skew: int) -> None:
        """
        *For any* clock skew, signed requests SHALL use the registrar's time
        and the signature SHALL verify against the request actually sent.
        """
        fake = FakeOVH(available={"example.com"}, server_time=1_700_000_000 + skew)
        asyncio.run(_check(fake, "example.com"))

        signed = [r for r in fake.requests if "X-Ovh-Signature" in r.headers]
        assert signed, "probe requests must be signed"

        client = make_client(fake)
        for request in signed:
            timestamp = int(request.headers["X-Ovh-Timestamp"])
            assert timestamp == 1_700_000_000 + skew
            assert request.headers["X-Ovh-Consumer"] == "consumer-key"
            assert request.headers["X-Ovh-Application"] == "app-key"
            assert request.headers["X-Ovh-Signature"] == client.sign(
                request.method, str(request.url), request.content.decode(), timestamp
            )

        # Server time is fetched once per client, unsigned
        assert fake.calls["time"] == 1
        time_request = next(r for r in fake.requests if r.url.path.endswith("/auth/time"))
        assert "X-Ovh-Signature" not in time_request.headers


class TestProbeOrderDiscardProperty:
    """
    **Property 2: Probe orders are always discarded**
    """

    @given(
        domain=domain_name_strategy(),
        is_available=st.booleans(),
        failure=probe_failure_strategy,
    )
    @settings(max_examples=50, deadline=None)
    def test_no_probe_cart_left_open(
        self, domain: str, is_available: bool, failure: Optional[str]
    ) -> None:
        """
        *For any* probe outcome, every cart created by the probe SHALL be
        deleted and none SHALL be checked out.
        """
        fake = FakeOVH(available={domain} if is_available else ())
        inject(fake, "add", failure)

        asyncio.run(_check(fake, domain))

        assert len(fake.carts) == 1
        assert fake.open_carts == []
        assert fake.orders == []
        assert all(cart["deleted"] for cart in fake.carts.values())


class TestAvailabilityClassificationProperty:
    """
    **Property 3: Only a definite registrar answer is AVAILABLE or UNAVAILABLE**
    """

    @given(domain=domain_name_strategy())
    @settings(max_examples=30, deadline=None)
    def test_accepted_item_is_available(self, domain: str) -> None:
        result = asyncio.run(_check(FakeOVH(available={domain}), domain))

        assert result.availability == Availability.AVAILABLE
        assert result.reason is None

    @given(domain=domain_name_strategy())
    @settings(max_examples=30, deadline=None)
    def test_refused_item_is_unavailable(self, domain: str) -> None:
        result = asyncio.run(_check(FakeOVH(), domain))

        assert result.availability == Availability.UNAVAILABLE
        assert result.reason == RejectionReason.NOT_AVAILABLE

    @given(
        domain=domain_name_strategy(),
        failure=st.sampled_from(["forbidden", "timeout", "server_error"]),
        step=st.sampled_from(["create", "add"]),
    )
    @settings(max_examples=50, deadline=None)
    def test_failures_are_indeterminate(self, domain: str, failure: str, step: str) -> None:
        """
        *For any* permission error, timeout or server error, the probe SHALL
        report INDETERMINATE, even when the domain could be ordered.
        """
        fake = FakeOVH(available={domain})
        inject(fake, step, failure)

        result = asyncio.run(_check(fake, domain))

        assert result.availability == Availability.INDETERMINATE
        assert result.error
        if failure == "forbidden":
            assert result.reason == RejectionReason.PERMISSION_DENIED

    def test_server_time_failure_is_indeterminate(self) -> None:
        fake = FakeOVH(available={"example.com"})
        fake.timeouts.add("time")

        result = asyncio.run(_check(fake, "example.com", retries=2))

        assert result.availability == Availability.INDETERMINATE
        # Initial attempt plus two retries, no order created
        assert fake.calls["time"] == 3
        assert fake.carts == {}

    def test_missing_credentials_send_nothing(self) -> None:
        fake = FakeOVH(available={"example.com"})

        result = asyncio.run(_check(fake, "example.com", config=make_config(consumer_key=None)))

        assert result.availability == Availability.INDETERMINATE
        assert fake.requests == []

    def test_discard_failure_is_logged_not_raised(self) -> None:
        fake = FakeOVH()
        fake.fail["discard"] = (404, {"class": "Client::NotFound", "message": "Cart expired"})
        stream = io.StringIO()
        logger = AuditLogger(output_format="text", output_stream=stream)

        result = asyncio.run(_check(fake, "example.com", logger=logger))

        assert result.availability == Availability.UNAVAILABLE
        warnings = [e for e in logger.entries if e.level == LogLevel.WARNING]
        assert any("discard" in e.message.lower() for e in warnings)


class TestPurchaseFlowProperty:
    """
    **Property 4: Purchases re-verify, check out once, and never leak carts**
    """

    @given(domain=domain_name_strategy())
    @settings(max_examples=30, deadline=None)
    def test_successful_purchase(self, domain: str) -> None:
        fake = FakeOVH(available={domain})

        result = asyncio.run(_purchase(fake, domain))

        assert result.success is True
        assert result.order_id == "4200"
        assert result.price == 9.99
        assert result.price_text == "9.99 €"

        assert len(fake.orders) == 1
        assert fake.orders[0]["domains"] == [domain]
        assert fake.open_carts == []
        purchase_cart = next(c for c in fake.carts.values() if c["checked_out"])
        assert purchase_cart["assigned"] is True
        assert purchase_cart["items"][0]["duration"] == "P1Y"
        assert purchase_cart["subsidiary"] == "FR"

    @given(domain=domain_name_strategy())
    @settings(max_examples=30, deadline=None)
    def test_unavailable_at_purchase_time(self, domain: str) -> None:
        """
        *For any* domain that is no longer available when the purchase
        starts, no order SHALL be checked out.
        """
        fake = FakeOVH()

        result = asyncio.run(_purchase(fake, domain))

        assert result.success is False
        assert result.reason == RejectionReason.NOT_AVAILABLE
        assert "checkout" not in fake.calls
        assert fake.open_carts == []

    @given(
        domain=domain_name_strategy(),
        step=st.sampled_from(["assign", "checkout"]),
        failure=st.sampled_from(["forbidden", "timeout", "server_error"]),
    )
    @settings(max_examples=50, deadline=None)
    def test_failed_purchase_discards_order(self, domain: str, step: str, failure: str) -> None:
        """
        *For any* failure after the order was created, the order SHALL be
        discarded and the failure reported with a classified reason.
        """
        fake = FakeOVH(available={domain})
        inject(fake, step, failure)

        result = asyncio.run(_purchase(fake, domain))

        assert result.success is False
        assert result.error
        assert fake.orders == []
        assert all(cart["deleted"] for cart in fake.carts.values())
        expected = RejectionReason.PERMISSION_DENIED if failure == "forbidden" else RejectionReason.UNKNOWN
        assert result.reason == expected

    @given(
        prices=st.sampled_from([
            None,
            "9.99",
            {"withTax": None},
            {"withTax": "9.99 €"},
            {"withTax": {"value": {"amount": 9.99}, "text": "9.99 €"}},
            {"withTax": {"value": "nine", "text": 9.99}},
            {"withTax": {"value": [9.99]}},
        ]),
    )
    @settings(max_examples=20, deadline=None)
    def test_placed_order_with_odd_price_succeeds(self, prices: object) -> None:
        """
        *For any* price shape in the checkout answer, a placed order SHALL be
        reported as a success with its order id.
        """
        fake = FakeOVH(available={"example.com"})
        fake.order_prices = prices

        result = asyncio.run(_purchase(fake, "example.com"))

        assert result.success is True
        assert result.order_id == "4200"
        assert result.price is None
        assert len(fake.orders) == 1

    def test_numeric_string_price_is_parsed(self) -> None:
        fake = FakeOVH(available={"example.com"})
        fake.order_prices = {"withTax": {"value": "12.49", "text": "12.49 €"}}

        result = asyncio.run(_purchase(fake, "example.com"))

        assert result.success is True
        assert result.price == 12.49
        assert result.price_text == "12.49 €"


class TestAccountQueriesProperty:
    """
    **Property 5: Account queries report failures as values**
    """

    @given(
        body=st.sampled_from([
            ({"balance": {"value": 12.5, "currencyCode": "EUR"}}, 12.5, "EUR"),
            ({"balance": 3}, 3.0, None),
            ({"balance": "7.25"}, 7.25, None),
            ({}, None, None),
        ])
    )
    @settings(max_examples=20, deadline=None)
    def test_balance_parsing(self, body: tuple) -> None:
        payload, expected_balance, expected_currency = body
        fake = FakeOVH()
        fake.balance_body = payload

        async def scenario():
            async with make_client(fake) as client:
                return await client.get_account_balance()

        result = asyncio.run(scenario())

        assert result.balance == expected_balance
        assert result.currency == expected_currency
        if expected_balance is None:
            assert result.error

    def test_balance_refused(self) -> None:
        fake = FakeOVH()
        fake.fail["balance"] = (403, FORBIDDEN_BODY)

        async def scenario():
            async with make_client(fake) as client:
                return await client.get_account_balance()

        result = asyncio.run(scenario())

        assert result.balance is None
        assert "not been granted" in result.error
        # Rejections are not retried
        assert fake.calls["balance"] == 1

    def test_connection(self) -> None:
        async def scenario(fake):
            async with make_client(fake) as client:
                return await client.test_connection()

        ok = asyncio.run(scenario(FakeOVH()))
        assert ok.success is True
        assert ok.account == "ab12345-ovh"

        refused = FakeOVH()
        refused.fail["me"] = (403, {"class": "Client::Forbidden", "message": "Invalid signature"})
        failed = asyncio.run(scenario(refused))
        assert failed.success is False
        assert failed.account is None

    def test_transient_connection_failure_is_retried(self) -> None:
        fake = FakeOVH()
        fake.timeouts.add("me")

        async def scenario():
            async with make_client(fake, retries=2) as client:
                return await client.test_connection()

        result = asyncio.run(scenario())

        assert result.success is False
        assert fake.calls["me"] == 3

    def test_request_consumer_key(self) -> None:
        fake = FakeOVH()
        config = make_config(consumer_key=None, app_secret=None)

        async def scenario():
            async with make_client(fake, config=config) as client:
                return await client.request_consumer_key(redirection="https://example.org/done")

        request = asyncio.run(scenario())

        assert request.consumer_key == "new-consumer-key"
        assert request.validation_url.startswith("https://")
        assert request.state == "pendingValidation"

        sent = fake.requests[-1]
        assert "X-Ovh-Signature" not in sent.headers
        payload = json.loads(sent.content)
        assert payload["accessRules"] == DEFAULT_ACCESS_RULES
        assert payload["redirection"] == "https://example.org/done"
