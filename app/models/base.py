"""
ZimPay Payroll - Base Model

Declarative base for payroll records plus the column helpers shared by
the payslip and configuration tables.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Numeric, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base

# Amounts are held to the cent; rates carry six places.
MONEY = Numeric(precision=15, scale=2)
EXCHANGE_RATE = Numeric(precision=18, scale=6)
PERCENTAGE = Numeric(precision=7, scale=4)


def money_column(**kwargs):
    """Non-null money column defaulting to 0.00."""
    kwargs.setdefault("default", Decimal("0.00"))
    kwargs.setdefault("nullable", False)
    return mapped_column(MONEY, **kwargs)


class TimestampMixin:
    """created_at / updated_at maintained by the database."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class BaseModel(Base, TimestampMixin):
    """Payroll record keyed by a UUID."""

    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(id={self.id})>"
