"""
ZimPay Payroll - Period Processing Service

State machine for one (accounting period, cost center):

    NotStarted --run--> Completed --refresh--> Completed --close--> Closed

Run and Refresh are batches over every payable employee of the center:
1. Acquire the (period, center) lease (PeriodBusy when held)
2. Check the transition against CenterPeriodStatus (StateError)
3. Snapshot configuration, transactions, employees and YTD totals
4. Build payslips in parallel worker threads, bounded by
   settings.payroll_worker_pool_size
5. Collect per-employee failures; any failure rolls the batch back
6. Write payslips and the status change, then commit once

Close is terminal: no payslip amount of a closed (period, center) changes.
"""

import asyncio
import calendar
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Set, Tuple

from sqlalchemy import select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.models.employee import CostCenter
from app.models.enums import CurrencyMode, PayslipStatus, PeriodClassification, PeriodState
from app.models.payroll import AccountingPeriod, CenterPeriodStatus, Payroll, Payslip
from app.services.payroll_context import EmployeeProfile
from app.services.payslip_builder import PayrollSnapshot, PayrollSnapshotLoader, PayslipDraft
from app.services.period_lock import PeriodLockRegistry, period_locks
from app.utils.error_handling import (
    AppException,
    BatchCancelled,
    ErrorCode,
    NotFoundException,
    PayrollBatchError,
    StateError,
)

logger = logging.getLogger(__name__)


# ===========================================
# RESULT TYPES
# ===========================================

@dataclass
class PeriodRunResult:
    """Outcome of a committed run or refresh."""
    period_id: uuid.UUID
    center_id: uuid.UUID
    operation: str
    state: PeriodState
    currency_mode: CurrencyMode
    employee_count: int
    payslip_ids: List[uuid.UUID] = field(default_factory=list)
    removed_payslips: int = 0
    duration_seconds: float = 0.0
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period_id": str(self.period_id),
            "center_id": str(self.center_id),
            "operation": self.operation,
            "state": self.state.value,
            "currency_mode": self.currency_mode.value,
            "employee_count": self.employee_count,
            "payslip_ids": [str(payslip_id) for payslip_id in self.payslip_ids],
            "removed_payslips": self.removed_payslips,
            "duration_seconds": self.duration_seconds,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class CenterStatusView:
    """Read-only status of one (period, center)."""
    period_id: uuid.UUID
    center_id: uuid.UUID
    center_code: str
    center_name: str
    state: PeriodState
    status_display: str
    period_currency: CurrencyMode = CurrencyMode.DEFAULT
    period_run_date: Optional[datetime] = None
    pay_run_date: Optional[datetime] = None
    is_closed_confirmed: bool = False
    closed_at: Optional[datetime] = None
    employee_count: int = 0
    can_be_run: bool = True
    can_be_refreshed: bool = False
    can_be_closed: bool = False


@dataclass
class PeriodSummary:
    """All centers of one period with completion progress."""
    period_id: uuid.UUID
    payroll_id: uuid.UUID
    display_name: str
    period_start: date
    period_end: date
    classification: PeriodClassification
    completion_percentage: Decimal
    centers: List[CenterStatusView] = field(default_factory=list)
    active_operations: List[Dict[str, str]] = field(default_factory=list)


@dataclass
class _BuildOutcome:
    employee: EmployeeProfile
    draft: Optional[PayslipDraft] = None
    error: Optional[Exception] = None

    @property
    def skipped(self) -> bool:
        return self.draft is None and self.error is None


def _failure(employee: EmployeeProfile, error: Exception) -> Dict[str, str]:
    """Per-employee entry of PayrollBatchError.failures."""
    if isinstance(error, AppException):
        code, message = error.code.value, error.message
    else:
        code, message = ErrorCode.INTERNAL_ERROR.value, str(error) or type(error).__name__
    return {
        "employee_id": str(employee.id),
        "emp_system_id": employee.emp_system_id,
        "code": code,
        "message": message,
    }


# ===========================================
# SERVICE
# ===========================================

class PayrollPeriodService:
    """Run, refresh and close payroll periods per cost center."""

    def __init__(self, db: AsyncSession, locks: Optional[PeriodLockRegistry] = None):
        self.db = db
        self.locks = locks or period_locks
        self.loader = PayrollSnapshotLoader(db)

    # ===========================================
    # LOOKUPS
    # ===========================================

    async def get_center(self, center_id: uuid.UUID) -> CostCenter:
        center = await self.db.get(CostCenter, center_id)
        if center is None:
            raise NotFoundException("Cost center", center_id)
        return center

    async def get_center_status(
        self,
        period_id: uuid.UUID,
        center_id: uuid.UUID,
    ) -> Optional[CenterPeriodStatus]:
        result = await self.db.execute(
            select(CenterPeriodStatus).where(
                and_(
                    CenterPeriodStatus.period_id == period_id,
                    CenterPeriodStatus.center_id == center_id,
                )
            )
        )
        return result.scalar_one_or_none()

    async def get_or_create_center_status(
        self,
        period_id: uuid.UUID,
        center_id: uuid.UUID,
    ) -> CenterPeriodStatus:
        """Existing status row, or a new NotStarted one added to the session."""
        status = await self.get_center_status(period_id, center_id)
        if status is None:
            status = CenterPeriodStatus(
                period_id=period_id,
                center_id=center_id,
                period_currency=CurrencyMode.DEFAULT,
                is_closed_confirmed=False,
                employee_count=0,
            )
            self.db.add(status)
        return status

    # ===========================================
    # RUN / REFRESH
    # ===========================================

    async def run_period(
        self,
        period_id: uuid.UUID,
        center_id: uuid.UUID,
        currency_mode: Optional[CurrencyMode] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PeriodRunResult:
        """
        First computation of a (period, center).

        Raises:
            PeriodBusy: another operation holds the (period, center)
            StateError: already run, or closed
            PayrollBatchError: one or more employees failed; nothing committed
            BatchCancelled: cancel_event was set before commit
        """
        with self.locks.hold(period_id, center_id, "run"):
            return await self._process(period_id, center_id, currency_mode, "run", cancel_event)

    async def refresh_period(
        self,
        period_id: uuid.UUID,
        center_id: uuid.UUID,
        currency_mode: Optional[CurrencyMode] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PeriodRunResult:
        """
        Recompute a run (period, center), overwriting its payslips in place.

        Without currency_mode the mode stored by the last run is reused.
        """
        with self.locks.hold(period_id, center_id, "refresh"):
            return await self._process(period_id, center_id, currency_mode, "refresh", cancel_event)

    async def _process(
        self,
        period_id: uuid.UUID,
        center_id: uuid.UUID,
        currency_mode: Optional[CurrencyMode],
        operation: str,
        cancel_event: Optional[asyncio.Event],
    ) -> PeriodRunResult:
        started = time.perf_counter()
        try:
            await self.loader.get_period(period_id)
            await self.get_center(center_id)
            status = await self.get_or_create_center_status(period_id, center_id)
            self._check_transition(status, operation)

            mode = CurrencyMode(currency_mode or status.period_currency or CurrencyMode.DEFAULT)
            snapshot = await self.loader.load(period_id, center_id, mode)
            logger.info(
                f"Starting payroll {operation} for period {period_id}, center {center_id}: "
                f"{len(snapshot.employees)} employees, mode {mode.value}"
            )

            drafts = await self._build_all(snapshot, cancel_event)
            payslips, removed = await self._apply(snapshot, drafts)

            now = datetime.utcnow()
            if operation == "run":
                status.period_run_date = now
            status.pay_run_date = now
            status.period_currency = mode
            status.employee_count = len(payslips)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        duration = round(time.perf_counter() - started, 3)
        logger.info(
            f"Payroll {operation} completed for period {period_id}, center {center_id}: "
            f"{len(payslips)} payslips, {removed} removed, {duration}s"
        )
        return PeriodRunResult(
            period_id=period_id,
            center_id=center_id,
            operation=operation,
            state=PeriodState.COMPLETED,
            currency_mode=mode,
            employee_count=len(payslips),
            payslip_ids=[payslip.id for payslip in payslips],
            removed_payslips=removed,
            duration_seconds=duration,
            completed_at=now,
        )

    @staticmethod
    def _check_transition(status: CenterPeriodStatus, operation: str) -> None:
        if status.is_closed_confirmed:
            raise StateError(
                f"Period is closed for this center; {operation} is not allowed",
                current_state=status.state.value,
                operation=operation,
                code=ErrorCode.PERIOD_CLOSED,
            )
        if operation == "run" and not status.can_be_run:
            raise StateError(
                "Period has already been run for this center; use refresh",
                current_state=status.state.value,
                operation=operation,
            )
        if operation == "refresh" and not status.can_be_refreshed:
            raise StateError(
                "Period has not been run for this center yet",
                current_state=status.state.value,
                operation=operation,
            )

    async def _build_all(
        self,
        snapshot: PayrollSnapshot,
        cancel_event: Optional[asyncio.Event],
    ) -> List[PayslipDraft]:
        """Build every employee's payslip, or raise without writing anything."""
        context = snapshot.context
        semaphore = asyncio.Semaphore(max(1, settings.payroll_worker_pool_size))

        async def build_one(employee: EmployeeProfile) -> _BuildOutcome:
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    return _BuildOutcome(employee=employee)
                try:
                    draft = await asyncio.to_thread(snapshot.builder.build_for, employee)
                except AppException as exc:
                    logger.warning(
                        f"Payslip failed for employee {employee.emp_system_id} "
                        f"in period {context.period_id}: {exc.message}"
                    )
                    return _BuildOutcome(employee=employee, error=exc)
                except Exception as exc:
                    logger.exception(
                        f"Unexpected error building payslip for employee {employee.emp_system_id} "
                        f"in period {context.period_id}"
                    )
                    return _BuildOutcome(employee=employee, error=exc)
                return _BuildOutcome(employee=employee, draft=draft)

        outcomes = await asyncio.gather(*(build_one(employee) for employee in snapshot.employees))

        if cancel_event is not None and cancel_event.is_set():
            processed = sum(1 for outcome in outcomes if not outcome.skipped)
            logger.info(
                f"Payroll batch cancelled for period {context.period_id}, "
                f"center {context.center_id} after {processed} employees"
            )
            raise BatchCancelled(context.period_id, context.center_id, processed)

        failures = [
            _failure(outcome.employee, outcome.error)
            for outcome in outcomes
            if outcome.error is not None
        ]
        if failures:
            raise PayrollBatchError(context.period_id, context.center_id, failures)

        return [outcome.draft for outcome in outcomes]

    async def _closed_centers(self, period_id: uuid.UUID, center_ids: Set[uuid.UUID]) -> Set[uuid.UUID]:
        if not center_ids:
            return set()
        result = await self.db.execute(
            select(CenterPeriodStatus.center_id).where(
                and_(
                    CenterPeriodStatus.period_id == period_id,
                    CenterPeriodStatus.center_id.in_(list(center_ids)),
                    CenterPeriodStatus.is_closed_confirmed == True,  # noqa: E712
                )
            )
        )
        return set(result.scalars().all())

    async def _apply(
        self,
        snapshot: PayrollSnapshot,
        drafts: List[PayslipDraft],
    ) -> Tuple[List[Payslip], int]:
        """
        Stage every payslip write of the batch in the session.

        An employee who moved here keeps a single payslip per period: the
        one written by the previous center is taken over, unless that
        center is closed, which fails the employee with PERIOD_CLOSED.
        """
        context = snapshot.context
        employee_ids = [draft.employee.id for draft in drafts]

        conditions = [Payslip.center_id == context.center_id]
        if employee_ids:
            conditions.append(Payslip.employee_id.in_(employee_ids))
        result = await self.db.execute(
            select(Payslip)
            .where(and_(Payslip.period_id == context.period_id, or_(*conditions)))
            .options(selectinload(Payslip.transactions))
        )
        existing = {payslip.employee_id: payslip for payslip in result.scalars().all()}

        closed = await self._closed_centers(
            context.period_id,
            {payslip.center_id for payslip in existing.values() if payslip.center_id != context.center_id},
        )
        failures = []
        for draft in drafts:
            previous = existing.get(draft.employee.id)
            if previous is not None and previous.center_id in closed:
                failures.append(_failure(draft.employee, StateError(
                    f"Payslip {previous.payslip_number} belongs to a center already closed for this period",
                    current_state=PeriodState.CLOSED.value,
                    operation="transfer_payslip",
                    code=ErrorCode.PERIOD_CLOSED,
                )))
        if failures:
            raise PayrollBatchError(context.period_id, context.center_id, failures)

        payslips = []
        for draft in drafts:
            payslip = existing.pop(draft.employee.id, None)
            if payslip is None:
                payslip = draft.to_model()
                payslip.finalize()
                self.db.add(payslip)
            else:
                draft.apply_to(payslip)
                if payslip.status == PayslipStatus.DRAFT:
                    payslip.finalize()
            payslips.append(payslip)

        # Employees no longer payable in this center
        removed = 0
        for stale in existing.values():
            if stale.center_id == context.center_id:
                await self.db.delete(stale)
                removed += 1

        await self.db.flush()
        return payslips, removed

    # ===========================================
    # CLOSE / CURRENCY
    # ===========================================

    async def close_period(self, period_id: uuid.UUID, center_id: uuid.UUID) -> CenterPeriodStatus:
        """
        Confirm a (period, center). Terminal.

        Raises:
            PeriodBusy: another operation holds the (period, center)
            StateError: not run yet, or already closed
        """
        with self.locks.hold(period_id, center_id, "close"):
            try:
                await self.loader.get_period(period_id)
                await self.get_center(center_id)
                status = await self.get_center_status(period_id, center_id)
                if status is not None and status.is_closed_confirmed:
                    raise StateError(
                        "Period is already closed for this center",
                        current_state=status.state.value,
                        operation="close",
                        code=ErrorCode.PERIOD_CLOSED,
                    )
                if status is None or not status.can_be_closed:
                    raise StateError(
                        "Period must be run before it can be closed",
                        current_state=PeriodState.NOT_STARTED.value,
                        operation="close",
                    )

                status.is_closed_confirmed = True
                status.closed_at = datetime.utcnow()
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        logger.info(f"Closed period {period_id} for center {center_id}")
        return status

    async def update_currency(
        self,
        period_id: uuid.UUID,
        center_id: uuid.UUID,
        currency_mode: CurrencyMode,
    ) -> CenterPeriodStatus:
        """Change the stored currency mode of a (period, center) not yet run."""
        with self.locks.hold(period_id, center_id, "update_currency"):
            try:
                await self.loader.get_period(period_id)
                await self.get_center(center_id)
                status = await self.get_or_create_center_status(period_id, center_id)
                if not status.can_be_run:
                    raise StateError(
                        "Currency can only be changed before the period is run",
                        current_state=status.state.value,
                        operation="update_currency",
                        code=ErrorCode.PERIOD_CLOSED if status.is_closed_confirmed else ErrorCode.INVALID_STATE,
                    )
                status.period_currency = CurrencyMode(currency_mode)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        logger.info(f"Currency for period {period_id}, center {center_id} set to {status.period_currency.value}")
        return status

    # ===========================================
    # STATUS VIEWS
    # ===========================================

    def _status_view(
        self,
        period_id: uuid.UUID,
        center: CostCenter,
        status: Optional[CenterPeriodStatus],
    ) -> CenterStatusView:
        view = CenterStatusView(
            period_id=period_id,
            center_id=center.id,
            center_code=center.center_code,
            center_name=center.center_name,
            state=PeriodState.NOT_STARTED,
            status_display="Pending",
        )
        if status is not None:
            view.state = status.state
            view.status_display = status.status_display
            view.period_currency = status.period_currency
            view.period_run_date = status.period_run_date
            view.pay_run_date = status.pay_run_date
            view.is_closed_confirmed = status.is_closed_confirmed
            view.closed_at = status.closed_at
            view.employee_count = status.employee_count
            view.can_be_run = status.can_be_run
            view.can_be_refreshed = status.can_be_refreshed
            view.can_be_closed = status.can_be_closed
        if self.locks.is_locked(period_id, center.id):
            view.state = PeriodState.RUNNING
        return view

    async def center_status(self, period_id: uuid.UUID, center_id: uuid.UUID) -> CenterStatusView:
        await self.loader.get_period(period_id)
        center = await self.get_center(center_id)
        status = await self.get_center_status(period_id, center_id)
        return self._status_view(period_id, center, status)

    async def period_summary(self, period_id: uuid.UUID, today: Optional[date] = None) -> PeriodSummary:
        """Statuses of every active center with the share already closed."""
        period = await self.loader.get_period(period_id)

        centers = (
            await self.db.execute(
                select(CostCenter)
                .where(CostCenter.is_active == True)  # noqa: E712
                .order_by(CostCenter.center_code)
            )
        ).scalars().all()
        statuses = {
            status.center_id: status
            for status in (
                await self.db.execute(
                    select(CenterPeriodStatus).where(CenterPeriodStatus.period_id == period_id)
                )
            ).scalars().all()
        }

        views = [self._status_view(period_id, center, statuses.get(center.id)) for center in centers]
        closed = sum(1 for view in views if view.is_closed_confirmed)
        completion = Decimal("0.00")
        if views:
            completion = (Decimal(closed) * 100 / Decimal(len(views))).quantize(
                Decimal("0.01"), rounding=ROUND_HALF_UP
            )

        return PeriodSummary(
            period_id=period.id,
            payroll_id=period.payroll_id,
            display_name=period.display_name,
            period_start=period.period_start,
            period_end=period.period_end,
            classification=period.classify(today),
            completion_percentage=completion,
            centers=views,
            active_operations=[
                lease.to_dict() for lease in self.locks.active_leases() if lease.period_id == period_id
            ],
        )

    # ===========================================
    # PERIOD SETUP
    # ===========================================

    async def generate_periods(self, payroll_id: uuid.UUID, year: int) -> List[AccountingPeriod]:
        """Create the monthly periods of a year that do not exist yet."""
        payroll = await self.db.get(Payroll, payroll_id)
        if payroll is None:
            raise NotFoundException("Payroll", payroll_id)

        result = await self.db.execute(
            select(AccountingPeriod).where(
                and_(
                    AccountingPeriod.payroll_id == payroll_id,
                    AccountingPeriod.period_year == year,
                )
            )
        )
        periods = {period.month_index: period for period in result.scalars().all()}

        created = 0
        for month in range(1, 13):
            if month in periods:
                continue
            period = AccountingPeriod(
                payroll_id=payroll_id,
                month_name=calendar.month_name[month],
                month_index=month,
                period_year=year,
                period_start=date(year, month, 1),
                period_end=date(year, month, calendar.monthrange(year, month)[1]),
            )
            self.db.add(period)
            periods[month] = period
            created += 1

        if created:
            await self.db.commit()
            logger.info(f"Generated {created} periods for payroll {payroll.payroll_name}, {year}")

        return [periods[month] for month in sorted(periods)]
