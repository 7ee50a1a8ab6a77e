"""
ZimPay Payroll - Currency Resolver

Point-in-time lookup of currency splits and exchange rates.

Effective-dated rows are sorted once and searched with bisect: the row
with the latest effective_date on or before the target date applies.
Rates are directional; a missing direction is derived as 1/rate of the
reverse row, but an explicit row for the requested direction always wins.
"""

import logging
import uuid
from bisect import bisect_right
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, Generic, Iterable, List, Optional, Sequence, Tuple, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.currency import CurrencySplit, ExchangeRate
from app.models.enums import Currency, CurrencyMode
from app.utils.error_handling import NoApplicableConfiguration

logger = logging.getLogger(__name__)

T = TypeVar("T")

TWO_PLACES = Decimal("0.01")
HUNDRED = Decimal("100")


class EffectiveDatedIndex(Generic[T]):
    """Rows sorted by effective date with a latest-on-or-before lookup."""

    def __init__(self, rows: Iterable[T], key: Callable[[T], date] = lambda row: row.effective_date):
        ordered = sorted(rows, key=key)
        self._dates: List[date] = [key(row) for row in ordered]
        self._rows: List[T] = ordered

    def __len__(self) -> int:
        return len(self._rows)

    def at(self, on_date: date) -> Optional[T]:
        position = bisect_right(self._dates, on_date)
        if position == 0:
            return None
        return self._rows[position - 1]


@dataclass(frozen=True)
class SplitResult:
    """Resolved ZWG/USD percentage split."""
    zwg_percentage: Decimal
    usd_percentage: Decimal
    effective_date: Optional[date] = None

    def share(self, currency: Currency) -> Decimal:
        if currency == Currency.ZWG:
            return self.zwg_percentage
        return self.usd_percentage


FULL_USD = SplitResult(zwg_percentage=Decimal("0"), usd_percentage=HUNDRED)
FULL_ZWG = SplitResult(zwg_percentage=HUNDRED, usd_percentage=Decimal("0"))


class CurrencyTables:
    """
    In-memory snapshot of split and rate rows.

    Built once per batch so every employee resolves against the same data.
    """

    def __init__(
        self,
        splits: Sequence[CurrencySplit] = (),
        rates: Sequence[ExchangeRate] = (),
    ):
        by_center: Dict[uuid.UUID, List[CurrencySplit]] = defaultdict(list)
        for split in splits:
            if split.is_active:
                by_center[split.center_id].append(split)
        self._splits = {
            center_id: EffectiveDatedIndex(rows) for center_id, rows in by_center.items()
        }

        by_pair: Dict[Tuple[Currency, Currency], List[ExchangeRate]] = defaultdict(list)
        for rate in rates:
            by_pair[(rate.from_currency, rate.to_currency)].append(rate)
        self._rates = {pair: EffectiveDatedIndex(rows) for pair, rows in by_pair.items()}

    def resolve_split(self, center_id: uuid.UUID, on_date: date) -> SplitResult:
        index = self._splits.get(center_id)
        row = index.at(on_date) if index else None
        if row is None:
            raise NoApplicableConfiguration("currency split", on_date, center_id=center_id)
        return SplitResult(
            zwg_percentage=Decimal(row.zwg_percentage),
            usd_percentage=Decimal(row.usd_percentage),
            effective_date=row.effective_date,
        )

    def split_for_mode(self, mode: CurrencyMode, center_id: uuid.UUID, on_date: date) -> SplitResult:
        """Split implied by a center currency mode."""
        if mode == CurrencyMode.USD:
            return FULL_USD
        if mode == CurrencyMode.ZWG:
            return FULL_ZWG
        return self.resolve_split(center_id, on_date)

    def resolve_rate(self, from_currency: Currency, to_currency: Currency, on_date: date) -> Decimal:
        """Units of to_currency per 1 from_currency on the given date."""
        from_currency = Currency(from_currency)
        to_currency = Currency(to_currency)
        if from_currency == to_currency:
            return Decimal("1")

        direct = self._rates.get((from_currency, to_currency))
        row = direct.at(on_date) if direct else None
        if row is not None:
            return Decimal(row.rate)

        reverse = self._rates.get((to_currency, from_currency))
        row = reverse.at(on_date) if reverse else None
        if row is not None:
            return Decimal("1") / Decimal(row.rate)

        raise NoApplicableConfiguration(
            "exchange rate",
            on_date,
            from_currency=from_currency.value,
            to_currency=to_currency.value,
        )

    def convert(
        self,
        amount: Decimal,
        from_currency: Currency,
        to_currency: Currency,
        on_date: date,
    ) -> Tuple[Decimal, Decimal]:
        """Returns (converted_amount, rate_used)."""
        rate = self.resolve_rate(from_currency, to_currency, on_date)
        converted = (Decimal(amount) * rate).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
        return converted, rate


class CurrencyResolver:
    """Database-backed resolver for splits and exchange rates."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def load_tables(self, center_ids: Optional[Sequence[uuid.UUID]] = None) -> CurrencyTables:
        """Load active splits (optionally for some centers) and all rates."""
        split_query = select(CurrencySplit).where(CurrencySplit.is_active == True)  # noqa: E712
        if center_ids is not None:
            split_query = split_query.where(CurrencySplit.center_id.in_(list(center_ids)))

        splits = (await self.db.execute(split_query)).scalars().all()
        rates = (await self.db.execute(select(ExchangeRate))).scalars().all()

        logger.debug(f"Loaded {len(splits)} currency splits and {len(rates)} exchange rates")
        return CurrencyTables(splits=splits, rates=rates)

    async def resolve_split(self, center_id: uuid.UUID, on_date: date) -> SplitResult:
        tables = await self.load_tables(center_ids=[center_id])
        return tables.resolve_split(center_id, on_date)

    async def resolve_rate(
        self,
        from_currency: Currency,
        to_currency: Currency,
        on_date: date,
    ) -> Decimal:
        tables = await self.load_tables(center_ids=[])
        return tables.resolve_rate(from_currency, to_currency, on_date)

    async def convert_amount(
        self,
        amount: Decimal,
        from_currency: Currency,
        to_currency: Currency,
        on_date: date,
    ) -> Tuple[Decimal, Decimal]:
        tables = await self.load_tables(center_ids=[])
        return tables.convert(amount, from_currency, to_currency, on_date)
