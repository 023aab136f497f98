"""
OutstandingGuard -- per-farmer serialization for anything that lowers
a farmer's outstanding.

Responsibility:
    Owns FarmerOutstandingLock.  Deductions take the lock before reading
    the outstanding; cancelling or reversing a voucher with tagged advance
    lines takes the same lock and refuses the change when it would leave a
    category below zero.

Architecture position:
    Kernel > Services.  Used by VoucherService and OutstandingService.

Invariants enforced:
    - Every change that lowers a (farmer, category) outstanding runs with
      that farmer's lock row held and bumps the row's version.
    - Outstanding per category never drops below zero through a cancel or
      a reversal.

Failure modes:
    - OutstandingAlreadyRecoveredError when the change would overdraw.
    - ConcurrentOutstandingConflictError when another transaction moved the
      lock row first (version mismatch, or a concurrent first insert).
"""

from collections import defaultdict
from collections.abc import Iterable, Mapping
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from dairy_kernel.db.types import ZERO
from dairy_kernel.domain.values import Side
from dairy_kernel.exceptions import (
    ConcurrentOutstandingConflictError,
    OutstandingAlreadyRecoveredError,
)
from dairy_kernel.logging_config import LogContext, get_logger
from dairy_kernel.models.outstanding import FarmerOutstandingLock
from dairy_kernel.selectors.balance_selector import BalanceSelector

logger = get_logger("services.outstanding_guard")


def outstanding_change(lines: Iterable) -> dict[tuple[str, str], Decimal]:
    """
    Net change each tagged line makes to outstanding, keyed by
    (farmer_id, category).  Works on Posting rows and LineSpec inputs alike:
    a Dr raises the outstanding, a Cr lowers it.
    """
    change: dict[tuple[str, str], Decimal] = defaultdict(lambda: ZERO)
    for line in lines:
        if line.farmer_id is None:
            continue
        key = (line.farmer_id, line.outstanding_category)
        if Side(line.side) is Side.DR:
            change[key] += line.amount
        else:
            change[key] -= line.amount
    return dict(change)


class OutstandingGuard:
    def __init__(self, session: Session):
        self.session = session
        self._balances = BalanceSelector(session)

    def lock_farmer(self, farmer_id: str) -> FarmerOutstandingLock:
        """
        Load the farmer's lock row, creating it on first use.

        PostgreSQL also takes FOR UPDATE so a competing writer waits rather
        than failing at flush.
        """
        query = select(FarmerOutstandingLock).where(
            FarmerOutstandingLock.farmer_id == farmer_id
        )
        if self.session.get_bind().dialect.name == "postgresql":
            query = query.with_for_update()
        lock = self.session.execute(
            query.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if lock is not None:
            return lock

        lock = FarmerOutstandingLock(farmer_id=farmer_id)
        self.session.add(lock)
        try:
            self.session.flush()
        except IntegrityError as exc:
            # Another transaction opened the lock row first
            raise ConcurrentOutstandingConflictError(farmer_id, 1) from exc
        logger.debug("outstanding_lock_created", extra={"farmer_id": farmer_id})
        return lock

    def touch(
        self,
        lock: FarmerOutstandingLock,
        voucher_id: UUID,
        actor_id: UUID | None = None,
    ) -> None:
        """Record ``voucher_id`` on the lock and move its version on."""
        lock.last_voucher_id = voucher_id
        lock.updated_by_id = actor_id
        flag_modified(lock, "last_voucher_id")
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "outstanding_lock_stale",
                extra={"farmer_id": lock.farmer_id, "expected_version": lock.version},
            )
            raise ConcurrentOutstandingConflictError(lock.farmer_id, 1) from exc

    def check_change(
        self,
        change: Mapping[tuple[str, str], Decimal],
        voucher_id: UUID,
        actor_id: UUID | None = None,
    ) -> None:
        """
        Refuse ``change`` if it would leave any (farmer, category) below
        zero.  Only lowering entries are checked; each affected farmer is
        locked in farmer_id order and its lock version bumped.
        """
        lowering: dict[str, dict[str, Decimal]] = defaultdict(dict)
        for (farmer_id, category), amount in change.items():
            if amount < ZERO:
                lowering[farmer_id][category] = amount
        if not lowering:
            return

        for farmer_id in sorted(lowering):
            categories = lowering[farmer_id]
            with LogContext.bind(farmer_id=farmer_id):
                lock = self.lock_farmer(farmer_id)
                current = self._balances.outstanding_by_category(
                    farmer_id, sorted(categories)
                )
                for category, amount in categories.items():
                    if current[category] + amount < ZERO:
                        logger.warning(
                            "outstanding_change_rejected",
                            extra={
                                "category": category,
                                "removing": str(-amount),
                                "available": str(current[category]),
                            },
                        )
                        raise OutstandingAlreadyRecoveredError(
                            farmer_id,
                            category,
                            str(-amount),
                            str(current[category]),
                        )
                self.touch(lock, voucher_id, actor_id)
