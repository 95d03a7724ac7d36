import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cloudpay.models.transaction import PaymentTransaction

logger = logging.getLogger(__name__)


class TransactionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **fields) -> PaymentTransaction:
        transaction = PaymentTransaction(**fields)
        self.session.add(transaction)
        await self.session.flush()
        await self.session.refresh(transaction)
        return transaction

    async def get_by_native_id(
        self, native_id: str, type_: str
    ) -> PaymentTransaction | None:
        result = await self.session.execute(
            select(PaymentTransaction)
            .where(
                PaymentTransaction.native_id == native_id,
                PaymentTransaction.type == type_,
            )
            .order_by(PaymentTransaction.created_at)
            .limit(1)
        )
        return result.scalars().first()

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
