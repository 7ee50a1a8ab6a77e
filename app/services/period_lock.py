"""
ZimPay Payroll - Period Lock Registry

Exclusive leases keyed by (period_id, center_id). At most one run, refresh
or close may hold the lease of a (period, center); a second caller fails
fast with PeriodBusy instead of waiting.

The registry is process-local. Deployments running several API or worker
processes against one database rely on the unique constraints of
center_period_statuses and payslips as the backstop.
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

from app.utils.error_handling import PeriodBusy

logger = logging.getLogger(__name__)

LockKey = Tuple[uuid.UUID, uuid.UUID]


@dataclass
class PeriodLease:
    """Token held by the operation owning a (period, center)."""
    period_id: uuid.UUID
    center_id: uuid.UUID
    operation: str
    token: str = field(default_factory=lambda: uuid.uuid4().hex)
    acquired_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def key(self) -> LockKey:
        return (self.period_id, self.center_id)

    def to_dict(self) -> Dict[str, str]:
        return {
            "period_id": str(self.period_id),
            "center_id": str(self.center_id),
            "operation": self.operation,
            "acquired_at": self.acquired_at.isoformat(),
        }


class PeriodLockRegistry:
    """Fail-fast lease registry for (period, center) operations."""

    def __init__(self):
        self._leases: Dict[LockKey, PeriodLease] = {}
        self._lock = threading.Lock()

    def try_acquire(
        self,
        period_id: uuid.UUID,
        center_id: uuid.UUID,
        operation: str,
    ) -> Optional[PeriodLease]:
        """Lease for the key, or None when another operation holds it."""
        key = (period_id, center_id)
        with self._lock:
            if key in self._leases:
                return None
            lease = PeriodLease(period_id=period_id, center_id=center_id, operation=operation)
            self._leases[key] = lease
            return lease

    def release(self, lease: PeriodLease) -> bool:
        """Release a lease. Stale tokens are ignored."""
        with self._lock:
            current = self._leases.get(lease.key)
            if current is None or current.token != lease.token:
                logger.warning(
                    f"Ignoring release of stale lease for period {lease.period_id}, "
                    f"center {lease.center_id}"
                )
                return False
            del self._leases[lease.key]
            return True

    @contextmanager
    def hold(
        self,
        period_id: uuid.UUID,
        center_id: uuid.UUID,
        operation: str,
    ) -> Iterator[PeriodLease]:
        """
        Hold the lease for the duration of the block.

        Raises:
            PeriodBusy: another operation holds the (period, center)
        """
        lease = self.try_acquire(period_id, center_id, operation)
        if lease is None:
            holder = self.holder(period_id, center_id)
            logger.info(
                f"{operation} rejected for period {period_id}, center {center_id}: "
                f"{holder.operation if holder else 'another operation'} in progress"
            )
            raise PeriodBusy(period_id, center_id)
        try:
            yield lease
        finally:
            self.release(lease)

    def holder(self, period_id: uuid.UUID, center_id: uuid.UUID) -> Optional[PeriodLease]:
        with self._lock:
            return self._leases.get((period_id, center_id))

    def is_locked(self, period_id: uuid.UUID, center_id: uuid.UUID) -> bool:
        return self.holder(period_id, center_id) is not None

    def active_leases(self) -> List[PeriodLease]:
        with self._lock:
            return list(self._leases.values())


# Shared by the API and in-process workers
period_locks = PeriodLockRegistry()


def get_period_locks() -> PeriodLockRegistry:
    return period_locks
