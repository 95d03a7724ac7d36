from cloudpay.models.base import Base, TimestampMixin
from cloudpay.models.transaction import PaymentTransaction

__all__ = [
    "Base",
    "TimestampMixin",
    "PaymentTransaction",
]
