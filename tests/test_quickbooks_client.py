"""Tests for the QuickBooks client: retries, idempotency keys and token handling."""
import asyncio
import datetime as dt
import json
from datetime import timedelta
from decimal import Decimal

import httpx
import pytest
from conftest import TENANT

from kyte_qbo.domain.orders.estimate_builder import EstimateLine, EstimatePayload
from kyte_qbo.exceptions import RemoteApiError
from kyte_qbo.models_quickbooks import QuickBooksIntegration
from kyte_qbo.services.quickbooks_service import (
    QuickBooksClient,
    QuickBooksSession,
    encrypt_token,
    get_quickbooks_session,
)
from kyte_qbo.shared.validators import utcnow

REALM = "9130"


def sandbox_session(tenant: str) -> QuickBooksSession:
    return QuickBooksSession(realm_id=REALM, access_token="access-123", environment="sandbox")


def make_payload() -> EstimatePayload:
    return EstimatePayload(
        tenant=TENANT,
        orderNumber="1001",
        customerRef="58",
        txnDate=dt.date(2024, 3, 5),
        lines=[
            EstimateLine(
                itemRef="101",
                description="Blue Widget",
                quantity=2,
                unitPrice=Decimal("9.99"),
                amount=Decimal("19.98"),
                taxCodeRef="TAX",
            )
        ],
        totalAmount=Decimal("19.98"),
        customerMemo="Imported from Kyte - Order 1001",
        privateNote="Imported from Kyte - Order 1001",
    )


class Recorder:
    """MockTransport handler that replays a scripted list of responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_client(handler, **kwargs):
    delays = []

    async def fake_sleep(seconds):
        delays.append(seconds)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("max_attempts", 3)
    kwargs.setdefault("backoff_base", 0.5)
    kwargs.setdefault("backoff_max", 8)
    client = QuickBooksClient(sandbox_session, http_client=http_client, sleep=fake_sleep, **kwargs)
    return client, delays


def estimate_ok(estimate_id="177", doc_number="1001"):
    return httpx.Response(200, json={"Estimate": {"Id": estimate_id, "DocNumber": doc_number}})


def test_create_estimate_posts_payload_and_builds_url():
    handler = Recorder(estimate_ok())
    client, delays = make_client(handler)

    result = asyncio.run(client.create_estimate(TENANT, make_payload()))

    assert result.estimate_id == "177"
    assert result.estimate_number == "1001"
    assert result.url == "https://sandbox.qbo.intuit.com/app/estimate?txnId=177"
    assert delays == []

    request = handler.requests[0]
    assert request.method == "POST"
    assert request.url.path == f"/v3/company/{REALM}/estimate"
    assert request.url.host == "sandbox-quickbooks.api.intuit.com"
    assert request.url.params["minorversion"]
    assert request.headers["Authorization"] == "Bearer access-123"
    body = json.loads(request.content)
    assert body["CustomerRef"] == {"value": "58"}
    assert body["TotalAmt"] == 19.98


def test_transient_failure_is_retried_with_the_same_request_id():
    handler = Recorder(httpx.Response(503, text="Service Unavailable"), estimate_ok())
    client, delays = make_client(handler)

    result = asyncio.run(client.create_estimate(TENANT, make_payload()))

    assert result.estimate_id == "177"
    request_ids = {r.url.params["requestid"] for r in handler.requests}
    assert len(handler.requests) == 2
    assert len(request_ids) == 1
    assert delays == [0.5]


def test_each_create_call_gets_its_own_request_id():
    handler = Recorder(estimate_ok("1"), estimate_ok("2"))
    client, _ = make_client(handler)

    async def create_twice():
        await client.create_estimate(TENANT, make_payload())
        await client.create_estimate(TENANT, make_payload())

    asyncio.run(create_twice())

    first, second = (r.url.params["requestid"] for r in handler.requests)
    assert first != second


def test_validation_fault_is_not_retried():
    fault = {"Fault": {"Error": [{"Message": "Invalid Reference Id", "Detail": "Item 101 is inactive", "code": "2500"}]}}
    handler = Recorder(httpx.Response(400, json=fault))
    client, delays = make_client(handler)

    with pytest.raises(RemoteApiError) as exc_info:
        asyncio.run(client.create_estimate(TENANT, make_payload()))

    assert exc_info.value.message == "QuickBooks API Error (2500): Invalid Reference Id - Item 101 is inactive"
    assert exc_info.value.remote_status == 400
    assert exc_info.value.transient is False
    assert len(handler.requests) == 1
    assert delays == []


def test_rate_limit_honours_retry_after():
    handler = Recorder(httpx.Response(429, headers={"Retry-After": "3"}, text="Too Many Requests"), estimate_ok())
    client, delays = make_client(handler)

    asyncio.run(client.create_estimate(TENANT, make_payload()))

    assert delays == [3.0]


def test_backoff_doubles_and_is_capped():
    handler = Recorder(
        httpx.ConnectError("connection refused"),
        httpx.ReadTimeout("read timed out"),
        httpx.Response(502, text="Bad Gateway"),
        estimate_ok(),
    )
    client, delays = make_client(handler, max_attempts=4, backoff_base=1.0, backoff_max=3.0)

    asyncio.run(client.create_estimate(TENANT, make_payload()))

    assert delays == [1.0, 2.0, 3.0]


def test_retries_are_bounded():
    handler = Recorder(*(httpx.Response(500, text="boom") for _ in range(3)))
    client, delays = make_client(handler, max_attempts=3)

    with pytest.raises(RemoteApiError) as exc_info:
        asyncio.run(client.create_estimate(TENANT, make_payload()))

    assert exc_info.value.transient is True
    assert exc_info.value.remote_status == 500
    assert len(handler.requests) == 3
    assert len(delays) == 2


def test_fault_inside_success_response_is_an_error():
    fault = {"Fault": {"Error": [{"Message": "Duplicate Document Number Error", "code": "6140"}]}}
    handler = Recorder(httpx.Response(200, json=fault))
    client, _ = make_client(handler)

    with pytest.raises(RemoteApiError, match="6140"):
        asyncio.run(client.create_estimate(TENANT, make_payload()))


def test_missing_estimate_id_is_malformed():
    handler = Recorder(httpx.Response(200, json={"Estimate": {}}))
    client, _ = make_client(handler)

    with pytest.raises(RemoteApiError, match="estimate id missing"):
        asyncio.run(client.create_estimate(TENANT, make_payload()))


def test_fetch_customer_returns_snapshot():
    customer = {"Id": "58", "DisplayName": "Padaria Central", "SyncToken": "3"}
    handler = Recorder(httpx.Response(200, json={"Customer": customer}))
    client, _ = make_client(handler)

    record = asyncio.run(client.fetch_customer(TENANT, "58"))

    assert record.id == "58"
    assert record.display_name == "Padaria Central"
    assert handler.requests[0].method == "GET"
    assert handler.requests[0].url.path == f"/v3/company/{REALM}/customer/58"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(404, text="Not Found"),
        httpx.Response(400, json={"Fault": {"Error": [{"Message": "Object Not Found", "code": "610"}]}}),
    ],
)
def test_fetch_customer_not_found_is_none(response):
    client, _ = make_client(Recorder(response))

    assert asyncio.run(client.fetch_customer(TENANT, "404")) is None


def add_integration(db, expires_in: timedelta, token: str) -> QuickBooksIntegration:
    integration = QuickBooksIntegration(
        company_id=TENANT,
        access_token=token,
        token_expires_at=utcnow() + expires_in,
        realm_id=REALM,
        environment="sandbox",
    )
    db.add(integration)
    db.commit()
    return integration


def test_session_from_stored_integration(db):
    add_integration(db, timedelta(hours=1), encrypt_token("access-xyz"))

    session = get_quickbooks_session(db, TENANT)

    assert session.realm_id == REALM
    assert session.access_token == "access-xyz"
    assert session.api_base_url == "https://sandbox-quickbooks.api.intuit.com"


def test_session_requires_integration(db):
    with pytest.raises(RemoteApiError, match="not connected") as exc_info:
        get_quickbooks_session(db, TENANT)

    assert exc_info.value.remote_status == 401


def test_session_rejects_expired_token(db):
    add_integration(db, timedelta(seconds=-5), encrypt_token("access-xyz"))

    with pytest.raises(RemoteApiError, match="expired"):
        get_quickbooks_session(db, TENANT)


def test_session_rejects_unreadable_token(db):
    add_integration(db, timedelta(hours=1), "not-a-fernet-token")

    with pytest.raises(RemoteApiError, match="unreadable"):
        get_quickbooks_session(db, TENANT)
