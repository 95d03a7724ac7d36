"""Pytest configuration and fixtures"""
import base64
import hashlib
import hmac
import os
from typing import Any, Dict, List, Optional, Tuple

import pytest

# Set test environment variables before the settings module is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CLOUDPAYMENTS_PUBLIC_ID", "pk_test_public")
os.environ.setdefault("CLOUDPAYMENTS_API_SECRET", "test_api_secret")
os.environ.setdefault("CLOUDPAYMENTS_APP_ID", "app7")
os.environ.setdefault("CLOUDPAYMENTS_MERCHANT_ID", "m42")
os.environ.setdefault("CLOUDPAYMENTS_DEFAULT_EMAIL", "shop@example.com")
os.environ.setdefault("SLACK_ALERTS_URL", "")

from cloudpay.core.exceptions import OrderNotFoundError  # noqa: E402
from cloudpay.schemas.cloudpayments import (  # noqa: E402
    InvoiceIdentifier,
    OrderData,
    StoredTransaction,
    TransactionRecord,
)

API_SECRET = os.environ["CLOUDPAYMENTS_API_SECRET"]


def sign(body: bytes, secret: str = API_SECRET) -> str:
    """base64(HMAC-SHA256(body, secret)), as CloudPayments sends it"""
    return base64.b64encode(
        hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    ).decode("ascii")


class FakeHost:
    """In-memory stand-in for the host application bridge"""

    def __init__(
        self,
        orders: Optional[Dict[str, OrderData]] = None,
        emails: Optional[Dict[str, str]] = None,
        dispatch_result: Optional[Dict[str, Any]] = None,
    ):
        self.orders = orders or {}
        self.emails = emails or {}
        self.dispatch_result = dispatch_result or {}
        self.saved: List[Tuple[StoredTransaction, Dict[str, Any]]] = []
        self.dispatched: List[Tuple[str, StoredTransaction]] = []

    async def get_order(self, order_id: str) -> OrderData:
        if order_id not in self.orders:
            raise OrderNotFoundError(f"Order {order_id} not found")
        return self.orders[order_id]

    async def get_customer_email(self, contact_id: str) -> Optional[str]:
        return self.emails.get(contact_id)

    async def save_transaction(
        self,
        record: TransactionRecord,
        raw: Dict[str, Any],
        identifier: Optional[InvoiceIdentifier] = None,
    ) -> StoredTransaction:
        stored = StoredTransaction(
            id=f"ptx_{len(self.saved) + 1}",
            app_id=identifier.app_id if identifier else None,
            merchant_id=identifier.merchant_id if identifier else None,
            **record.model_dump(),
        )
        self.saved.append((stored, raw))
        return stored

    async def dispatch(self, event: str, record: StoredTransaction) -> Dict[str, Any]:
        self.dispatched.append((event, record))
        return dict(self.dispatch_result)


@pytest.fixture
def sample_order():
    """Sample host order"""
    return OrderData(
        id="ORD-99",
        amount=12.345,
        currency="RUB",
        description="Подписка на журнал",
        customer_contact_id="contact-1",
    )


@pytest.fixture
def fake_host(sample_order):
    return FakeHost(
        orders={sample_order.id: sample_order},
        emails={"contact-1": "buyer@example.com"},
    )


@pytest.fixture
def callback_fields():
    """Typical CloudPayments Pay notification"""
    return {
        "TransactionId": "504",
        "Amount": "12.35",
        "Currency": "RUB",
        "DateTime": "2026-10-19 10:00:00",
        "CardFirstSix": "424242",
        "CardLastFour": "4242",
        "CardType": "Visa",
        "Status": "Authorized",
        "OperationType": "Payment",
        "InvoiceId": "app7_m42_ORD-99",
        "Description": "Подписка на журнал",
        "Name": "IVAN PETROV",
        "Email": "buyer@example.com",
        "Data": "",
    }
