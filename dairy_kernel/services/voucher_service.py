"""
VoucherService -- the write side of the voucher posting store.

Responsibility:
    Accepts balanced vouchers, cancels them (status flip), and reverses them
    with a linked correction voucher.  Postings are append-only: nothing
    here ever updates or deletes a posting.

Architecture position:
    Kernel > Services.  Uses LedgerRegistry for ledger resolution,
    SequenceService for ordering and OutstandingGuard for the farmer lock.
    Read models live in selectors/posting_selector.py and
    selectors/balance_selector.py.

Invariants enforced:
    - Per voucher, sum(Dr) == sum(Cr) within BALANCE_TOLERANCE.
    - Every line amount > 0; every ledger exists and is active.
    - (voucher_type, voucher_number) is unique.
    - All validation runs before anything is added to the session, so a
      rejected voucher writes nothing.
    - Active -> Cancelled is one-way; cancelled postings stay stored.
    - post_voucher never lowers a farmer's outstanding; recovery lines come
      only from OutstandingService.
    - Cancelling or reversing a voucher with tagged advance lines never
      leaves a farmer's outstanding below zero.

Failure modes:
    - EmptyVoucherError, InvalidAmountError, UnbalancedVoucherError,
      UnknownLedgerError, LedgerInactiveError, DuplicateVoucherNumberError,
      RecoveryOutsideResolverError from post_voucher().
    - VoucherNotFoundError, AlreadyCancelledError from cancel_voucher().
    - AlreadyReversedError from reverse_voucher().
    - OutstandingAlreadyRecoveredError, ConcurrentOutstandingConflictError
      from cancel_voucher() and reverse_voucher() on advance grants.
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from dairy_kernel.db.types import BALANCE_TOLERANCE
from dairy_kernel.domain.clock import Clock, SystemClock
from dairy_kernel.domain.dtos import LineSpec
from dairy_kernel.domain.values import (
    OutstandingEffect,
    Side,
    VoucherStatus,
    VoucherType,
)
from dairy_kernel.exceptions import (
    AlreadyCancelledError,
    AlreadyReversedError,
    DuplicateVoucherNumberError,
    EmptyVoucherError,
    InvalidAmountError,
    LedgerInactiveError,
    RecoveryOutsideResolverError,
    UnbalancedVoucherError,
    VoucherNotFoundError,
)
from dairy_kernel.logging_config import LogContext, get_logger
from dairy_kernel.models.ledger import Ledger
from dairy_kernel.models.voucher import Posting, Voucher
from dairy_kernel.services.base import BaseService
from dairy_kernel.services.ledger_registry import LedgerRegistry
from dairy_kernel.services.outstanding_guard import OutstandingGuard, outstanding_change
from dairy_kernel.services.sequence_service import SequenceService

logger = get_logger("services.voucher")

_FLIPPED_EFFECT = {
    OutstandingEffect.GRANT.value: OutstandingEffect.RECOVERY.value,
    OutstandingEffect.RECOVERY.value: OutstandingEffect.GRANT.value,
}


class VoucherService(BaseService[Voucher]):
    """
    Posts, cancels and reverses vouchers within the caller's transaction.

    Usage:
        with session_scope() as session:
            voucher_id = VoucherService(session).post_voucher(
                VoucherType.RECEIPT,
                date(2024, 4, 2),
                "RV24040001",
                [LineSpec.dr("Cash", "500"), LineSpec.cr("Sales A/c", "500")],
            )
    """

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        tolerance: Decimal = BALANCE_TOLERANCE,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._tolerance = tolerance
        self._ledgers = LedgerRegistry(session)
        self._sequences = SequenceService(session)
        self._guard = OutstandingGuard(session)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _resolve_ledger(self, ref: str | UUID) -> Ledger:
        if isinstance(ref, UUID):
            ledger = self._ledgers.get(ref)
        else:
            ledger = self._ledgers.resolve(ref)
        if not ledger.is_active:
            raise LedgerInactiveError(str(ledger.id), ledger.name)
        return ledger

    def _validate(
        self,
        voucher_type: VoucherType,
        voucher_number: str,
        lines: Sequence[LineSpec],
    ) -> list[Ledger]:
        if not lines:
            raise EmptyVoucherError(voucher_number)

        for line_seq, line in enumerate(lines, start=1):
            if line.amount <= 0:
                raise InvalidAmountError(str(line.amount), line_seq)

        debits = sum((l.amount for l in lines if l.side is Side.DR), Decimal("0"))
        credits = sum((l.amount for l in lines if l.side is Side.CR), Decimal("0"))
        if abs(debits - credits) > self._tolerance:
            logger.warning(
                "voucher_rejected_unbalanced",
                extra={
                    "voucher_number": voucher_number,
                    "debits": str(debits),
                    "credits": str(credits),
                },
            )
            raise UnbalancedVoucherError(
                str(debits), str(credits), str(self._tolerance)
            )

        ledgers = [self._resolve_ledger(line.ledger) for line in lines]

        if self.find_by_number(voucher_type, voucher_number) is not None:
            raise DuplicateVoucherNumberError(voucher_type.value, voucher_number)

        return ledgers

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def post_voucher(
        self,
        voucher_type: VoucherType | str,
        voucher_date: date,
        voucher_number: str,
        lines: Sequence[LineSpec],
        *,
        narration: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        actor_id: UUID | None = None,
    ) -> UUID:
        """
        Validate and write a voucher with its postings.

        Preconditions:
            Lines are non-empty, positive, balanced, and name active ledgers;
            the number is unused for this voucher type.  Tagged lines may
            only grant (Dr the advance ledger); recoveries go through
            OutstandingService.apply_payment_deductions.
        Postconditions:
            Voucher and postings are flushed in the caller's transaction
            and the voucher ID is returned.  On any validation error nothing
            has been added to the session.
        """
        for line in lines:
            if line.is_tagged and (
                line.side is Side.CR
                or line.outstanding_effect == OutstandingEffect.RECOVERY
            ):
                logger.warning(
                    "voucher_rejected_direct_recovery",
                    extra={
                        "voucher_number": voucher_number,
                        "farmer_id": line.farmer_id,
                        "category": line.outstanding_category,
                    },
                )
                raise RecoveryOutsideResolverError(
                    line.farmer_id, line.outstanding_category
                )
        return self._post_voucher(
            voucher_type,
            voucher_date,
            voucher_number,
            lines,
            narration=narration,
            reference_type=reference_type,
            reference_id=reference_id,
            actor_id=actor_id,
        )

    def _post_voucher(
        self,
        voucher_type: VoucherType | str,
        voucher_date: date,
        voucher_number: str,
        lines: Sequence[LineSpec],
        *,
        narration: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        reversal_of_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> UUID:
        """
        Write path shared by post_voucher, reverse_voucher and
        OutstandingService.  Accepts recovery lines: callers that lower
        outstanding must already hold the farmer lock and have checked the
        amounts.
        """
        voucher_type = VoucherType(voucher_type)
        ledgers = self._validate(voucher_type, voucher_number, lines)
        seq = self._sequences.next_value(SequenceService.VOUCHER)

        voucher = Voucher(
            voucher_type=voucher_type.value,
            voucher_number=voucher_number,
            voucher_date=voucher_date,
            status=VoucherStatus.ACTIVE.value,
            narration=narration,
            reference_type=reference_type,
            reference_id=reference_id,
            reversal_of_id=reversal_of_id,
            seq=seq,
            created_by_id=actor_id,
        )
        for line_seq, (line, ledger) in enumerate(zip(lines, ledgers), start=1):
            voucher.postings.append(
                Posting(
                    ledger_id=ledger.id,
                    posting_date=voucher_date,
                    voucher_seq=seq,
                    side=line.side.value,
                    amount=line.amount,
                    narration=line.narration or narration,
                    line_seq=line_seq,
                    farmer_id=line.farmer_id,
                    outstanding_category=line.outstanding_category,
                    outstanding_effect=(
                        OutstandingEffect(line.outstanding_effect).value
                        if line.outstanding_effect is not None
                        else None
                    ),
                    created_by_id=actor_id,
                )
            )

        self.session.add(voucher)
        try:
            self.session.flush()
        except IntegrityError as exc:
            # Lost a race on the (type, number) unique constraint
            if "uq_voucher_type_number" in str(exc.orig) or "voucher_number" in str(exc.orig):
                raise DuplicateVoucherNumberError(
                    voucher_type.value, voucher_number
                ) from exc
            raise

        with LogContext.bind(
            voucher_id=str(voucher.id),
            actor_id=str(actor_id) if actor_id else None,
        ):
            logger.info(
                "voucher_posted",
                extra={
                    "voucher_type": voucher_type.value,
                    "voucher_number": voucher_number,
                    "voucher_date": voucher_date,
                    "seq": seq,
                    "line_count": len(lines),
                    "total": str(voucher.total_debits),
                },
            )
        return voucher.id

    def cancel_voucher(
        self,
        voucher_id: UUID,
        reason: str | None = None,
        *,
        actor_id: UUID | None = None,
    ) -> Voucher:
        """
        Flip an Active voucher to Cancelled.

        No postings are written; every balance query stops counting the
        voucher's postings from this point on.

        Raises:
            VoucherNotFoundError: unknown voucher.
            AlreadyCancelledError: voucher is not Active.
            OutstandingAlreadyRecoveredError: the voucher grants an advance
                that has already been partly or fully recovered.
        """
        voucher = self.session.execute(
            select(Voucher).where(Voucher.id == voucher_id).with_for_update()
        ).scalar_one_or_none()
        if voucher is None:
            raise VoucherNotFoundError(str(voucher_id))
        if voucher.status != VoucherStatus.ACTIVE:
            raise AlreadyCancelledError(str(voucher_id), voucher.voucher_number)

        # Dropping the voucher undoes its tagged lines
        change = outstanding_change(voucher.postings)
        self._guard.check_change(
            {key: -amount for key, amount in change.items()}, voucher_id, actor_id
        )

        voucher.status = VoucherStatus.CANCELLED.value
        voucher.cancelled_at = self._clock.now()
        voucher.cancellation_reason = reason
        voucher.updated_by_id = actor_id
        self.session.flush()

        with LogContext.bind(voucher_id=str(voucher_id)):
            logger.info(
                "voucher_cancelled",
                extra={
                    "voucher_type": voucher.voucher_type,
                    "voucher_number": voucher.voucher_number,
                    "reason": reason,
                },
            )
        return voucher

    def reverse_voucher(
        self,
        voucher_id: UUID,
        voucher_date: date,
        voucher_number: str,
        *,
        narration: str | None = None,
        actor_id: UUID | None = None,
    ) -> UUID:
        """
        Post a Journal voucher that mirrors ``voucher_id`` with every side
        flipped.  Outstanding tags are carried over with the effect flipped,
        so a reversed advance grant also reverses the farmer's outstanding.

        Raises:
            VoucherNotFoundError: unknown voucher.
            AlreadyCancelledError: the original is not Active.
            AlreadyReversedError: the original already has a reversal.
            OutstandingAlreadyRecoveredError: the original grants an advance
                that has already been partly or fully recovered.
        """
        original = self.get_voucher(voucher_id)
        if not original.is_active:
            raise AlreadyCancelledError(str(voucher_id), original.voucher_number)

        existing = self.session.execute(
            select(Voucher.id).where(
                Voucher.reversal_of_id == voucher_id,
                Voucher.status == VoucherStatus.ACTIVE.value,
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise AlreadyReversedError(str(voucher_id), str(existing))

        lines = [
            LineSpec(
                ledger=p.ledger_id,
                side=Side(p.side).opposite,
                amount=p.amount,
                narration=p.narration,
                farmer_id=p.farmer_id,
                outstanding_category=p.outstanding_category,
                outstanding_effect=(
                    _FLIPPED_EFFECT[p.outstanding_effect]
                    if p.outstanding_effect is not None
                    else None
                ),
            )
            for p in original.postings
        ]
        self._guard.check_change(outstanding_change(lines), voucher_id, actor_id)
        reversal_id = self._post_voucher(
            VoucherType.JOURNAL,
            voucher_date,
            voucher_number,
            lines,
            narration=narration or f"Reversal of {original.voucher_number}",
            reference_type=original.reference_type,
            reference_id=original.reference_id,
            reversal_of_id=voucher_id,
            actor_id=actor_id,
        )
        logger.info(
            "voucher_reversed",
            extra={
                "original_voucher_id": str(voucher_id),
                "reversal_voucher_id": str(reversal_id),
            },
        )
        return reversal_id

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_voucher(self, voucher_id: UUID) -> Voucher:
        """
        Raises:
            VoucherNotFoundError: unknown voucher.
        """
        voucher = self.session.get(Voucher, voucher_id)
        if voucher is None:
            raise VoucherNotFoundError(str(voucher_id))
        return voucher

    def find_by_number(
        self, voucher_type: VoucherType | str, voucher_number: str
    ) -> Voucher | None:
        return self.session.execute(
            select(Voucher).where(
                Voucher.voucher_type == VoucherType(voucher_type).value,
                Voucher.voucher_number == voucher_number,
            )
        ).scalar_one_or_none()

    def check_double_entry(self, voucher_id: UUID) -> bool:
        """True when the stored postings of the voucher balance."""
        return self.get_voucher(voucher_id).is_balanced
