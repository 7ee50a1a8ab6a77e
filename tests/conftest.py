"""
ZimPay Payroll - Test Configuration

Pytest fixtures and configuration.

Every test gets its own SQLite file so that several sessions can share one
database, which the concurrency tests rely on.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, List, Optional
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from app.database import Base, get_async_session
from app.models import (
    AccountingPeriod,
    CostCenter,
    CurrencySplit,
    Employee,
    ExchangeRate,
    Payroll,
    TaxBand,
    payroll_employees,
)
from app.models.enums import Currency, PayrollType, PeriodType, TaxMethod
from app.services.period_lock import PeriodLockRegistry, get_period_locks
from main import app


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """SQLite database file for one test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'payroll.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def locks() -> PeriodLockRegistry:
    """Lock registry private to one test."""
    return PeriodLockRegistry()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, locks: PeriodLockRegistry) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session
    app.dependency_overrides[get_period_locks] = lambda: locks

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# DATA FIXTURES
# ===========================================

@dataclass
class PayrollSetup:
    """
    Seeded payroll with one center, one period and two employees.

    The plain ids stay readable after a failed batch rolls the session back
    and expires the ORM objects.
    """
    payroll: Payroll
    center: CostCenter
    period: AccountingPeriod
    employees: List[Employee] = field(default_factory=list)
    payroll_id: Optional[UUID] = None
    center_id: Optional[UUID] = None
    period_id: Optional[UUID] = None
    employee_ids: List[UUID] = field(default_factory=list)


async def add_employee(
    db: AsyncSession,
    payroll: Payroll,
    center: CostCenter,
    emp_system_id: str,
    basic_salary: str,
    **attributes,
) -> Employee:
    """Active employee on the payroll, assigned to the center."""
    employee = Employee(
        id=uuid4(),
        emp_system_id=emp_system_id,
        firstname=attributes.pop("firstname", "Test"),
        surname=attributes.pop("surname", emp_system_id),
        center_id=center.id,
        basic_salary=Decimal(basic_salary),
        dependents=attributes.pop("dependents", 0),
        disability_status=attributes.pop("disability_status", False),
        is_blind=attributes.pop("is_blind", False),
        is_active=attributes.pop("is_active", True),
        is_ex=attributes.pop("is_ex", False),
        **attributes,
    )
    db.add(employee)
    await db.flush()
    await db.execute(
        insert(payroll_employees).values(
            payroll_id=payroll.id,
            employee_id=employee.id,
            is_active=True,
        )
    )
    return employee


async def add_center(db: AsyncSession, code: str, split=("30", "70")) -> CostCenter:
    """Active center with a split effective from 2025-01-01."""
    center = CostCenter(id=uuid4(), center_code=code, center_name=f"Center {code}", is_active=True)
    db.add(center)
    await db.flush()
    if split is not None:
        db.add(CurrencySplit(
            center_id=center.id,
            zwg_percentage=Decimal(split[0]),
            usd_percentage=Decimal(split[1]),
            effective_date=date(2025, 1, 1),
            is_active=True,
        ))
    return center


def usd_monthly_bands() -> List[TaxBand]:
    return [
        TaxBand(
            currency=Currency.USD,
            period_type=PeriodType.MONTHLY,
            min_salary=Decimal("0"),
            max_salary=Decimal("500"),
            tax_rate=Decimal("0"),
            tax_amount=Decimal("0"),
            is_active=True,
        ),
        TaxBand(
            currency=Currency.USD,
            period_type=PeriodType.MONTHLY,
            min_salary=Decimal("500"),
            max_salary=None,
            tax_rate=Decimal("0.20"),
            tax_amount=Decimal("0"),
            is_active=True,
        ),
    ]


@pytest_asyncio.fixture
async def payroll_setup(db_session: AsyncSession) -> PayrollSetup:
    """
    USD payroll for January 2025.

    - Center C001 split ZWG 30 / USD 70
    - 1 USD = 25 ZWG
    - USD monthly bands: 0-500 at 0%, 500+ at 20%
    - E001 earns 800, E002 earns 1000
    """
    payroll = Payroll(
        id=uuid4(),
        payroll_name="Monthly Staff",
        payroll_type=PayrollType.PERIOD,
        payroll_period=12,
        tax_method=TaxMethod.MONTHLY,
        payroll_currency=Currency.USD,
        is_active=True,
    )
    db_session.add(payroll)
    center = await add_center(db_session, "C001")
    period = AccountingPeriod(
        id=uuid4(),
        payroll_id=payroll.id,
        month_name="January",
        month_index=1,
        period_year=2025,
        period_start=date(2025, 1, 1),
        period_end=date(2025, 1, 31),
    )
    db_session.add(period)
    db_session.add(ExchangeRate(
        from_currency=Currency.USD,
        to_currency=Currency.ZWG,
        rate=Decimal("25"),
        effective_date=date(2025, 1, 1),
    ))
    db_session.add_all(usd_monthly_bands())
    await db_session.flush()

    employees = [
        await add_employee(db_session, payroll, center, "E001", "800"),
        await add_employee(db_session, payroll, center, "E002", "1000"),
    ]
    await db_session.commit()
    return PayrollSetup(
        payroll=payroll,
        center=center,
        period=period,
        employees=employees,
        payroll_id=payroll.id,
        center_id=center.id,
        period_id=period.id,
        employee_ids=[employee.id for employee in employees],
    )
