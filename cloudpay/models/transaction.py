from sqlalchemy import JSON, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cloudpay.models.base import Base, TimestampMixin, generate_prefixed_id


def generate_transaction_id() -> str:
    return generate_prefixed_id("ptx")


class PaymentTransaction(TimestampMixin, Base):
    __tablename__ = "payment_transactions"

    id: Mapped[str] = mapped_column(
        String(50), primary_key=True, default=generate_transaction_id
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    native_id: Mapped[str] = mapped_column(String(64), index=True)
    order_id: Mapped[str] = mapped_column(String(255), index=True)
    app_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    merchant_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    amount: Mapped[float] = mapped_column(
        Numeric(14, 2, asdecimal=False), nullable=False
    )
    currency_id: Mapped[str] = mapped_column(String(3), nullable=False)
    result: Mapped[int] = mapped_column(Integer, nullable=False)
    view_data: Mapped[str] = mapped_column(Text, nullable=False, default="")
    raw_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<PaymentTransaction {self.id} order={self.order_id} native={self.native_id}>"
