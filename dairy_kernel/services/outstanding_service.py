"""
OutstandingService -- the outstanding waterfall resolver.

Responsibility:
    Grants farmer advances, and recovers them from a milk payment in the
    server-side priority order (Loan -> CF -> Cash by default).  A
    deduction runs Gather -> Allocate -> Commit -> Recompute inside one
    transaction; OutstandingResolver wraps that in a retry loop with a fresh
    session per attempt.

Architecture position:
    Kernel > Services -- imperative shell around domain/waterfall.py.
    Reads outstanding through BalanceSelector, locks through
    OutstandingGuard and writes through VoucherService; never touches
    postings directly.

Invariants enforced:
    - Outstanding is derived from tagged advance-ledger postings on every
      read (granted Dr less recovered Cr); it is never stored.
    - A request that overdraws any category writes nothing.
    - Deductions for one farmer are serialized on FarmerOutstandingLock:
      SELECT ... FOR UPDATE on PostgreSQL, and the lock's version column
      everywhere.  A lost race surfaces as ConcurrentOutstandingConflictError.
    - After commit, every category's outstanding is still >= 0.
    - Welfare recovery is taken at most once per calendar month, and only
      at the policy's fixed amount.

Failure modes:
    - UnknownOutstandingCategoryError, InvalidDeductionError,
      DeductionExceedsOutstandingError from allocation.
    - WelfareAlreadyRecoveredError for a second welfare recovery in a month;
      InvalidWelfareAmountError for any amount other than the policy's.
    - ConcurrentOutstandingConflictError when another deduction for the same
      farmer won; OutstandingResolver retries up to max_conflict_retries.

Audit relevance:
    Each deduction is one Journal voucher whose credit lines carry
    (farmer_id, category, Recovery) tags, so the farmer's outstanding
    history is the posting history.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from dairy_kernel.db.engine import session_scope
from dairy_kernel.db.types import ZERO, to_money
from dairy_kernel.domain.clock import Clock, SystemClock
from dairy_kernel.domain.date_filters import DateRange, month_range
from dairy_kernel.domain.dtos import LineSpec
from dairy_kernel.domain.values import (
    LinkedEntityType,
    OutstandingEffect,
    VoucherType,
)
from dairy_kernel.domain.waterfall import (
    WELFARE_RECOVERY,
    Allocation,
    RecoveryPolicy,
    allocate,
    compute_net_payable,
    suggest_allocation,
)
from dairy_kernel.exceptions import (
    ConcurrentOutstandingConflictError,
    InvalidDeductionError,
    InvalidWelfareAmountError,
    OutstandingError,
    WelfareAlreadyRecoveredError,
)
from dairy_kernel.logging_config import LogContext, get_logger
from dairy_kernel.models.ledger import Ledger
from dairy_kernel.models.outstanding import FarmerOutstandingLock
from dairy_kernel.selectors.balance_selector import BalanceSelector
from dairy_kernel.services.ledger_registry import LedgerRegistry
from dairy_kernel.services.outstanding_guard import OutstandingGuard
from dairy_kernel.services.voucher_service import VoucherService

logger = get_logger("services.outstanding")


@dataclass(frozen=True)
class DeductionRequest:
    """
    One milk payment's deductions for a farmer.

    ``deductions`` maps category name to the amount the operator entered.
    The milk and other figures only feed the net payable; they are not
    posted here.
    """

    farmer_id: str
    payment_date: date
    voucher_number: str
    deductions: Mapping[str, Decimal] = field(default_factory=dict)
    milk_amount: Decimal = ZERO
    welfare_recovery: Decimal = ZERO
    other_deductions: Decimal = ZERO
    previous_balance: Decimal = ZERO
    farmer_name: str | None = None
    narration: str | None = None


@dataclass(frozen=True)
class DeductionResult:
    farmer_id: str
    voucher_id: UUID | None
    allocation: Allocation
    outstanding_before: dict[str, Decimal]
    outstanding_after: dict[str, Decimal]
    welfare_recovered: Decimal
    net_payable: Decimal

    @property
    def total_deducted(self) -> Decimal:
        return self.allocation.total_deducted


@dataclass(frozen=True)
class WelfareStatus:
    farmer_id: str
    month: DateRange
    recovered: Decimal
    amount: Decimal

    @property
    def is_due(self) -> bool:
        return self.recovered <= ZERO


class OutstandingService:
    """
    Advance grants and recoveries within the caller's transaction.

    Usage:
        with session_scope() as session:
            service = OutstandingService(session, policy)
            result = service.apply_payment_deductions(
                DeductionRequest(
                    farmer_id="F-101",
                    payment_date=date(2024, 4, 15),
                    voucher_number="JV24040007",
                    deductions={"Loan Advance": Decimal("3000")},
                    milk_amount=Decimal("8000"),
                )
            )
    """

    def __init__(
        self,
        session: Session,
        policy: RecoveryPolicy | None = None,
        clock: Clock | None = None,
    ):
        self.session = session
        self._policy = policy or RecoveryPolicy()
        self._clock = clock or SystemClock()
        self._vouchers = VoucherService(session, clock=self._clock)
        self._ledgers = LedgerRegistry(session)
        self._balances = BalanceSelector(session)
        self._guard = OutstandingGuard(session)

    @property
    def policy(self) -> RecoveryPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def outstanding(self, farmer_id: str, as_of: date | None = None) -> dict[str, Decimal]:
        """Outstanding per category, in priority order."""
        return self._balances.outstanding_by_category(
            farmer_id, self._policy.priority, as_of=as_of
        )

    def suggest_allocation(
        self, farmer_id: str, available_amount: Decimal
    ) -> dict[str, Decimal]:
        """Priority fill of ``available_amount`` against current outstanding."""
        return suggest_allocation(
            self.outstanding(farmer_id),
            to_money(available_amount),
            self._policy.priority,
        )

    def welfare_status(self, farmer_id: str, on_date: date) -> WelfareStatus:
        month = month_range(on_date.year, on_date.month)
        totals = self._balances.tag_totals(
            farmer_id, [WELFARE_RECOVERY], start=month.start, end=month.end
        ).get(WELFARE_RECOVERY)
        recovered = (totals.credit - totals.debit) if totals else ZERO
        return WelfareStatus(
            farmer_id=farmer_id,
            month=month,
            recovered=recovered,
            amount=self._policy.welfare_amount,
        )

    def welfare_recovery_due(self, farmer_id: str, on_date: date) -> bool:
        """True when no welfare recovery stands for the farmer this month."""
        return self.welfare_status(farmer_id, on_date).is_due

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def grant_advance(
        self,
        farmer_id: str,
        category: str,
        amount: Decimal,
        voucher_date: date,
        voucher_number: str,
        *,
        paid_from: str = "Cash",
        narration: str | None = None,
        actor_id: UUID | None = None,
    ) -> UUID:
        """
        Pay an advance out to a farmer: Dr the category's advance ledger
        (tagged Grant), Cr ``paid_from``.
        """
        advance_ledger = self._policy.advance_ledger(category)
        voucher_id = self._vouchers.post_voucher(
            VoucherType.PAYMENT,
            voucher_date,
            voucher_number,
            [
                LineSpec.dr(
                    advance_ledger,
                    amount,
                    farmer_id=farmer_id,
                    outstanding_category=category,
                    outstanding_effect=OutstandingEffect.GRANT,
                ),
                LineSpec.cr(paid_from, amount),
            ],
            narration=narration or f"{category} to farmer {farmer_id}",
            reference_type="farmer",
            reference_id=farmer_id,
            actor_id=actor_id,
        )
        logger.info(
            "advance_granted",
            extra={
                "farmer_id": farmer_id,
                "category": category,
                "amount": str(to_money(amount)),
                "voucher_id": str(voucher_id),
            },
        )
        return voucher_id

    def apply_payment_deductions(
        self,
        request: DeductionRequest,
        *,
        actor_id: UUID | None = None,
    ) -> DeductionResult:
        """
        Validate and post one payment's advance and welfare recoveries.

        Preconditions:
            Every deduction names a configured category, is >= 0, and is
            no larger than that category's outstanding.
        Postconditions:
            At most one Journal voucher is flushed; the farmer's lock row
            version has moved on if anything was posted.  On any error
            nothing has been added to the session except, on first use,
            the farmer's lock row.

        Raises:
            DeductionExceedsOutstandingError: a category is overdrawn.
            ConcurrentOutstandingConflictError: another deduction for this
                farmer committed after this one read the outstanding.
        """
        farmer_id = request.farmer_id
        with LogContext.bind(farmer_id=farmer_id):
            lock = self._lock_farmer(farmer_id)

            # Gather
            before = self.outstanding(farmer_id)

            # Allocate
            requested = {k: to_money(v) for k, v in request.deductions.items()}
            try:
                allocation = allocate(
                    farmer_id, before, requested, self._policy.priority
                )
            except OutstandingError as exc:
                logger.warning(
                    "deduction_rejected",
                    extra={
                        "error_code": exc.code,
                        "requested": {k: str(v) for k, v in requested.items()},
                    },
                )
                raise
            welfare = self._check_welfare(request)

            # Commit
            voucher_id = None
            lines = self._recovery_lines(request, allocation, welfare)
            if lines:
                voucher_id = self._vouchers._post_voucher(
                    VoucherType.JOURNAL,
                    request.payment_date,
                    request.voucher_number,
                    lines,
                    narration=request.narration
                    or f"Payment deductions for farmer {farmer_id}",
                    reference_type="farmer",
                    reference_id=farmer_id,
                    actor_id=actor_id,
                )
                self._guard.touch(lock, voucher_id, actor_id)

            # Recompute
            after = self.outstanding(farmer_id)
            if any(amount < ZERO for amount in after.values()):
                logger.error(
                    "outstanding_negative_after_commit",
                    extra={"after": {k: str(v) for k, v in after.items()}},
                )
                raise ConcurrentOutstandingConflictError(farmer_id, 1)

            net_payable = compute_net_payable(
                to_money(request.milk_amount),
                welfare_recovery=welfare,
                advance_deductions=allocation.total_deducted,
                other_deductions=to_money(request.other_deductions),
                previous_balance=to_money(request.previous_balance),
            )
            logger.info(
                "deduction_committed",
                extra={
                    "voucher_id": str(voucher_id) if voucher_id else None,
                    "deducted": {
                        line.category: str(line.deducted)
                        for line in allocation.nonzero_lines
                    },
                    "welfare_recovered": str(welfare),
                    "net_payable": str(net_payable),
                },
            )
            return DeductionResult(
                farmer_id=farmer_id,
                voucher_id=voucher_id,
                allocation=allocation,
                outstanding_before=before,
                outstanding_after=after,
                welfare_recovered=welfare,
                net_payable=net_payable,
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_farmer(self, farmer_id: str) -> FarmerOutstandingLock:
        return self._guard.lock_farmer(farmer_id)

    def _check_welfare(self, request: DeductionRequest) -> Decimal:
        amount = to_money(request.welfare_recovery)
        if amount < ZERO:
            raise InvalidDeductionError(WELFARE_RECOVERY, str(amount))
        if amount == ZERO:
            return ZERO
        if amount != self._policy.welfare_amount:
            raise InvalidWelfareAmountError(
                request.farmer_id, str(amount), str(self._policy.welfare_amount)
            )
        status = self.welfare_status(request.farmer_id, request.payment_date)
        if not status.is_due:
            raise WelfareAlreadyRecoveredError(
                request.farmer_id, status.month.start.strftime("%Y-%m")
            )
        return amount

    def _farmer_ledger(self, request: DeductionRequest) -> Ledger:
        return self._ledgers.ensure_linked_ledger(
            LinkedEntityType.FARMER,
            request.farmer_id,
            request.farmer_name or f"Farmer {request.farmer_id}",
        )

    def _recovery_lines(
        self,
        request: DeductionRequest,
        allocation: Allocation,
        welfare: Decimal,
    ) -> list[LineSpec]:
        recoveries = [
            (self._policy.advance_ledger(line.category), line.category, line.deducted)
            for line in allocation.nonzero_lines
        ]
        if welfare > ZERO:
            recoveries.append((self._policy.welfare_ledger, WELFARE_RECOVERY, welfare))
        if not recoveries:
            return []

        farmer_ledger = self._farmer_ledger(request)
        lines = []
        for ledger_name, category, amount in recoveries:
            lines.append(
                LineSpec.dr(farmer_ledger.id, amount, narration=f"{category} recovery")
            )
            lines.append(
                LineSpec.cr(
                    ledger_name,
                    amount,
                    farmer_id=request.farmer_id,
                    outstanding_category=category,
                    outstanding_effect=OutstandingEffect.RECOVERY,
                )
            )
        return lines


class OutstandingResolver:
    """
    Runs each deduction in its own transaction and retries lost races.

    Every attempt opens a fresh session so the retry re-reads the
    outstanding the winning transaction left behind.

    Usage:
        resolver = OutstandingResolver(get_session_factory(), policy)
        result = resolver.apply_payment_deductions(request)
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        policy: RecoveryPolicy | None = None,
        clock: Clock | None = None,
    ):
        self._factory = session_factory
        self._policy = policy or RecoveryPolicy()
        self._clock = clock

    def apply_payment_deductions(
        self,
        request: DeductionRequest,
        *,
        actor_id: UUID | None = None,
    ) -> DeductionResult:
        max_attempts = self._policy.max_conflict_retries
        for attempt in range(1, max_attempts + 1):
            try:
                with session_scope(self._factory) as session:
                    service = OutstandingService(session, self._policy, self._clock)
                    return service.apply_payment_deductions(
                        request, actor_id=actor_id
                    )
            except ConcurrentOutstandingConflictError:
                logger.warning(
                    "outstanding_conflict_retry",
                    extra={
                        "farmer_id": request.farmer_id,
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                    },
                )

        logger.error(
            "outstanding_conflict_exhausted",
            extra={"farmer_id": request.farmer_id, "attempts": max_attempts},
        )
        raise ConcurrentOutstandingConflictError(request.farmer_id, max_attempts)
