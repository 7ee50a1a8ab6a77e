"""
ZimPay Payroll - Currency Models

Effective-dated currency splits per cost center and exchange rates between
currency pairs. The row with the latest effective date on or before the
target date applies.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean, Date, ForeignKey, Numeric, Uuid,
    Enum as SQLEnum, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, EXCHANGE_RATE
from app.models.enums import Currency

if TYPE_CHECKING:
    from app.models.employee import CostCenter


class CurrencySplit(BaseModel):
    """
    Percentage of pay issued in ZWG and USD for a cost center.

    ZWG% + USD% must equal 100 (checked when the split is saved).
    """

    __tablename__ = "currency_splits"

    center_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("cost_centers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    zwg_percentage: Mapped[Decimal] = mapped_column(
        Numeric(precision=7, scale=4), nullable=False,
    )
    usd_percentage: Mapped[Decimal] = mapped_column(
        Numeric(precision=7, scale=4), nullable=False,
    )
    effective_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    center: Mapped["CostCenter"] = relationship(
        "CostCenter", back_populates="currency_splits",
    )

    def __repr__(self) -> str:
        return (
            f"<CurrencySplit(center_id={self.center_id}, zwg={self.zwg_percentage}, "
            f"usd={self.usd_percentage}, effective={self.effective_date})>"
        )


class ExchangeRate(BaseModel):
    """Directional rate: 1 unit of from_currency = rate units of to_currency."""

    __tablename__ = "exchange_rates"

    from_currency: Mapped[Currency] = mapped_column(SQLEnum(Currency), nullable=False)
    to_currency: Mapped[Currency] = mapped_column(SQLEnum(Currency), nullable=False)
    rate: Mapped[Decimal] = mapped_column(
        EXCHANGE_RATE, nullable=False,
    )
    effective_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint(
            'from_currency', 'to_currency', 'effective_date',
            name='uq_exchange_rate_pair_date',
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ExchangeRate({self.from_currency.value}->{self.to_currency.value}="
            f"{self.rate} on {self.effective_date})>"
        )
