"""
Host application bridge.

The gateway flows depend on four collaborator contracts of the host
commerce application: order lookup, customer email lookup, transaction
persistence and business-event dispatch. ``PaymentHost`` is that
contract; ``HostService`` is the default implementation, talking to the
host over its HTTP API and persisting transactions in our own database.
"""

import logging
from typing import Any, Optional, Protocol
from urllib.parse import quote

import httpx
from fastapi import Depends, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from cloudpay.core.config import settings
from cloudpay.core.database import get_db_session
from cloudpay.core.exceptions import (
    ExternalServiceError,
    OrderNotFoundError,
    TransportError,
)
from cloudpay.repositories.transaction_repository import TransactionRepository
from cloudpay.schemas.cloudpayments import (
    InvoiceIdentifier,
    OrderData,
    StoredTransaction,
    TransactionRecord,
)

logger = logging.getLogger(__name__)


def _segment(value: str) -> str:
    """Escape an id for use as a single URL path segment."""
    # quote() leaves "." alone; dot segments would still be resolved
    if value in (".", ".."):
        return value.replace(".", "%2E")
    return quote(value, safe="")


class PaymentHost(Protocol):
    async def get_order(self, order_id: str) -> OrderData: ...

    async def get_customer_email(self, contact_id: str) -> Optional[str]: ...

    async def save_transaction(
        self,
        record: TransactionRecord,
        raw: dict[str, Any],
        identifier: Optional[InvoiceIdentifier] = None,
    ) -> StoredTransaction: ...

    async def dispatch(self, event: str, record: StoredTransaction) -> dict[str, Any]: ...


class HostService:
    def __init__(
        self,
        session: AsyncSession,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.transactions = TransactionRepository(session)
        self.base_url = (base_url or settings.HOST_BASE_URL).rstrip("/")
        self.api_key = settings.HOST_API_KEY if api_key is None else api_key
        self.timeout = timeout or settings.HOST_TIMEOUT
        self._transport = transport

    async def execute_request(
        self,
        endpoint: str,
        method: str = "GET",
        payload: dict[str, Any] | None = None,
    ) -> httpx.Response:
        url = f"{self.base_url}{endpoint}"
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                return await client.request(
                    method=method,
                    url=url,
                    json=payload,
                    headers=headers,
                )
        except httpx.TransportError as e:
            logger.error(f"Host request {method} {endpoint} failed: {e}")
            raise TransportError(
                f"Cannot connect to host application at {url}",
                details={"error": str(e)},
            ) from e

    @staticmethod
    def _json_or_error(response: httpx.Response, what: str) -> dict[str, Any]:
        if response.status_code >= status.HTTP_400_BAD_REQUEST:
            logger.error(
                f"Host {what} failed: HTTP {response.status_code} {response.text[:500]}"
            )
            raise ExternalServiceError(
                f"Host {what} failed",
                details={"status_code": response.status_code},
            )
        try:
            data = response.json()
        except ValueError as e:
            raise ExternalServiceError(
                f"Host {what} returned non-JSON response"
            ) from e
        return data if isinstance(data, dict) else {}

    async def get_order(self, order_id: str) -> OrderData:
        response = await self.execute_request(f"/orders/{_segment(order_id)}")
        if response.status_code == status.HTTP_404_NOT_FOUND:
            raise OrderNotFoundError(f"Order {order_id} not found")
        data = self._json_or_error(response, "order lookup")
        try:
            return OrderData.model_validate(data.get("order", data))
        except ValidationError as e:
            logger.error(f"Host returned an invalid order {order_id}: {e}")
            raise ExternalServiceError(
                "Host order lookup returned an invalid order",
                details={"order_id": order_id},
            ) from e

    async def get_customer_email(self, contact_id: str) -> Optional[str]:
        response = await self.execute_request(f"/contacts/{_segment(contact_id)}")
        if response.status_code == status.HTTP_404_NOT_FOUND:
            logger.info(f"Contact {contact_id} not found, no email")
            return None
        data = self._json_or_error(response, "contact lookup")
        email = data.get("email")
        return email if isinstance(email, str) and email else None

    async def save_transaction(
        self,
        record: TransactionRecord,
        raw: dict[str, Any],
        identifier: Optional[InvoiceIdentifier] = None,
    ) -> StoredTransaction:
        fields = record.model_dump()
        fields["native_id"] = str(record.native_id)

        # Gateway resends after a rejected or failed delivery
        existing = await self.transactions.get_by_native_id(
            fields["native_id"], record.type
        )
        if existing is not None:
            logger.info(
                f"Transaction {fields['native_id']} already saved as {existing.id}, "
                f"skipping insert"
            )
            return StoredTransaction.model_validate(existing)

        try:
            transaction = await self.transactions.create(
                **fields,
                app_id=identifier.app_id if identifier else None,
                merchant_id=identifier.merchant_id if identifier else None,
                raw_data=raw,
            )
            await self.transactions.commit()
        except Exception:
            await self.transactions.rollback()
            raise

        logger.info(
            f"Saved transaction {transaction.id} for order {transaction.order_id}"
        )
        return StoredTransaction.model_validate(transaction)

    async def dispatch(self, event: str, record: StoredTransaction) -> dict[str, Any]:
        response = await self.execute_request(
            f"/orders/{_segment(record.order_id)}/events",
            method="POST",
            payload={
                "event": event,
                "transaction": record.model_dump(mode="json"),
            },
        )
        if response.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            raise ExternalServiceError(
                "Host event dispatch failed",
                details={"status_code": response.status_code},
            )
        # 4xx answers carry the host's validation error in the body
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        if response.status_code >= status.HTTP_400_BAD_REQUEST and not data.get("error"):
            data["error"] = f"HTTP {response.status_code}"
        return data


async def get_payment_host(
    session: AsyncSession = Depends(get_db_session),
) -> PaymentHost:
    return HostService(session)
