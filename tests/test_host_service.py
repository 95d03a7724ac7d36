"""Tests for the host bridge: HTTP collaborators and transaction persistence"""
import json
from typing import Any, Dict, List
from unittest.mock import MagicMock

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cloudpay.core.exceptions import (
    ExternalServiceError,
    OrderNotFoundError,
    TransportError,
)
from cloudpay.models import Base, PaymentTransaction
from cloudpay.repositories.transaction_repository import TransactionRepository
from cloudpay.schemas.cloudpayments import (
    InvoiceIdentifier,
    StoredTransaction,
    TransactionRecord,
)
from cloudpay.services.host_service import HostService


@pytest_asyncio.fixture
async def db_session():
    """In-memory sqlite session with the schema created"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        yield session

    await engine.dispose()


def _host(routes: Dict[str, httpx.Response], calls: List[httpx.Request], session=None) -> HostService:
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return routes.get(f"{request.method} {request.url.path}", httpx.Response(404))

    return HostService(
        session or MagicMock(),
        base_url="http://host.test/api",
        api_key="host-key",
        transport=httpx.MockTransport(handler),
    )


def _record(**overrides) -> TransactionRecord:
    fields = dict(
        native_id=504,
        amount=12.35,
        currency_id="RUB",
        order_id="ORD-99",
        view_data="Номер карты: 424242****4242",
    )
    fields.update(overrides)
    return TransactionRecord(**fields)


# ── HTTP collaborators ──────────────────────────────────────────────


@pytest.mark.asyncio
async def test_get_order():
    calls: List[httpx.Request] = []
    host = _host(
        {
            "GET /api/orders/ORD-99": httpx.Response(
                200,
                json={
                    "order": {
                        "id": "ORD-99",
                        "amount": 12.345,
                        "currency": "RUB",
                        "description": "Подписка",
                        "customer_contact_id": "contact-1",
                        "items": [],
                    }
                },
            )
        },
        calls,
    )

    order = await host.get_order("ORD-99")

    assert order.id == "ORD-99"
    assert order.amount == 12.345
    assert order.customer_contact_id == "contact-1"
    assert calls[0].headers["authorization"] == "Bearer host-key"


@pytest.mark.asyncio
async def test_get_order_not_found():
    host = _host({}, [])

    with pytest.raises(OrderNotFoundError):
        await host.get_order("missing")


@pytest.mark.asyncio
async def test_get_order_host_failure():
    host = _host({"GET /api/orders/1": httpx.Response(500, text="boom")}, [])

    with pytest.raises(ExternalServiceError):
        await host.get_order("1")


@pytest.mark.asyncio
async def test_get_customer_email():
    host = _host(
        {
            "GET /api/contacts/contact-1": httpx.Response(200, json={"email": "buyer@example.com"}),
            "GET /api/contacts/contact-2": httpx.Response(200, json={"email": ""}),
        },
        [],
    )

    assert await host.get_customer_email("contact-1") == "buyer@example.com"
    assert await host.get_customer_email("contact-2") is None
    assert await host.get_customer_email("contact-3") is None


@pytest.mark.asyncio
async def test_host_connection_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    host = HostService(
        MagicMock(),
        base_url="http://host.test/api",
        transport=httpx.MockTransport(handler),
    )

    with pytest.raises(TransportError):
        await host.get_order("ORD-99")


@pytest.mark.asyncio
async def test_dispatch_posts_event_and_returns_host_answer():
    calls: List[httpx.Request] = []
    host = _host({"POST /api/orders/ORD-99/events": httpx.Response(200, json={"ok": True})}, calls)
    stored = StoredTransaction(id="ptx_1", **_record().model_dump())

    result = await host.dispatch("payment", stored)

    assert result == {"ok": True}
    sent: Dict[str, Any] = json.loads(calls[0].content)
    assert sent["event"] == "payment"
    assert sent["transaction"]["id"] == "ptx_1"
    assert sent["transaction"]["type"] == "authorization-only"


@pytest.mark.asyncio
async def test_dispatch_validation_error_is_returned_not_raised():
    host = _host(
        {"POST /api/orders/ORD-99/events": httpx.Response(422, json={"error": "Order already paid"})},
        [],
    )
    stored = StoredTransaction(id="ptx_1", **_record().model_dump())

    result = await host.dispatch("payment", stored)

    assert result["error"] == "Order already paid"


@pytest.mark.asyncio
async def test_dispatch_client_error_without_body_still_reports_error():
    host = _host({"POST /api/orders/ORD-99/events": httpx.Response(403)}, [])
    stored = StoredTransaction(id="ptx_1", **_record().model_dump())

    result = await host.dispatch("payment", stored)

    assert result["error"] == "HTTP 403"


@pytest.mark.asyncio
async def test_ids_are_escaped_as_single_path_segments():
    calls: List[httpx.Request] = []
    host = _host({}, calls)

    with pytest.raises(OrderNotFoundError):
        await host.get_order("../contacts/contact-1")
    with pytest.raises(OrderNotFoundError):
        await host.get_order("ORD?admin=1")
    with pytest.raises(OrderNotFoundError):
        await host.get_order("..")
    await host.get_customer_email("c#1")
    await host.dispatch(
        "payment", StoredTransaction(id="ptx_1", **_record(order_id="A/B").model_dump())
    )

    assert [request.url.raw_path for request in calls] == [
        b"/api/orders/..%2Fcontacts%2Fcontact-1",
        b"/api/orders/ORD%3Fadmin%3D1",
        b"/api/orders/%2E%2E",
        b"/api/contacts/c%231",
        b"/api/orders/A%2FB/events",
    ]
    assert all(request.url.query == b"" for request in calls)


@pytest.mark.asyncio
async def test_get_order_invalid_payload_is_external_service_error():
    host = _host(
        {"GET /api/orders/ORD-1": httpx.Response(200, json={"order": {"id": "ORD-1"}})},
        [],
    )

    with pytest.raises(ExternalServiceError) as exc_info:
        await host.get_order("ORD-1")

    assert exc_info.value.status_code == 502
    assert exc_info.value.message == "Host order lookup returned an invalid order"


# ── Persistence ─────────────────────────────────────────────────────


async def _count_rows(session) -> int:
    result = await session.execute(select(func.count()).select_from(PaymentTransaction))
    return result.scalar_one()


@pytest.mark.asyncio
async def test_save_transaction_persists_row(db_session):
    host = _host({}, [], session=db_session)
    raw = {"TransactionId": 504, "InvoiceId": "app7_m42_ORD-99", "CardType": "Visa"}

    stored = await host.save_transaction(
        _record(), raw, InvoiceIdentifier("app7", "m42", "ORD-99")
    )

    assert stored.id.startswith("ptx_")
    assert stored.native_id == "504"
    assert stored.result == 1
    assert stored.type == "authorization-only"
    assert stored.app_id == "app7"
    assert stored.merchant_id == "m42"
    assert stored.created_at is not None

    row = await TransactionRepository(db_session).get_by_native_id("504", "authorization-only")
    assert row is not None
    assert row.id == stored.id
    assert row.amount == 12.35
    assert row.raw_data["CardType"] == "Visa"


@pytest.mark.asyncio
async def test_resent_callback_does_not_duplicate_row(db_session):
    host = _host({}, [], session=db_session)
    identifier = InvoiceIdentifier("app7", "m42", "ORD-99")

    first = await host.save_transaction(_record(), {"TransactionId": 504}, identifier)
    second = await host.save_transaction(_record(), {"TransactionId": 504}, identifier)
    other = await host.save_transaction(_record(native_id=505), {"TransactionId": 505}, identifier)

    assert second.id == first.id
    assert other.id != first.id
    assert await _count_rows(db_session) == 2


@pytest.mark.asyncio
async def test_repository_lookup_by_native_id(db_session):
    repository = TransactionRepository(db_session)
    await repository.create(
        type="authorization-only",
        native_id="1",
        order_id="A",
        amount=1.0,
        currency_id="USD",
        result=1,
        view_data="Номер карты: ****",
    )
    await repository.commit()

    found = await repository.get_by_native_id("1", "authorization-only")

    assert found is not None
    assert found.order_id == "A"
    assert await repository.get_by_native_id("2", "authorization-only") is None
    assert await repository.get_by_native_id("1", "charge") is None
