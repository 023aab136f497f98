"""
Module: dairy_kernel.selectors.posting_selector
Responsibility: Read side of the voucher posting store -- ordered posting
    streams per ledger and voucher listings per date window.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Order is (posting_date, voucher_seq, line_seq) everywhere.
    - Only Active vouchers are returned unless a status is asked for.
    - PostingSequence is lazy and restartable: every iteration re-runs the
      query and streams rows with yield_per, so a caller can walk a long
      ledger twice without holding it in memory.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from dairy_kernel.domain.values import Side, VoucherStatus, VoucherType
from dairy_kernel.models.voucher import Posting, Voucher
from dairy_kernel.selectors.base import BaseSelector

STREAM_BATCH_SIZE = 500


@dataclass(frozen=True)
class PostingLine:
    """One posting as seen by readers."""

    posting_id: UUID
    voucher_id: UUID
    voucher_type: VoucherType
    voucher_number: str
    posting_date: date
    voucher_seq: int
    line_seq: int
    ledger_id: UUID
    side: Side
    amount: Decimal
    narration: str | None
    farmer_id: str | None
    outstanding_category: str | None

    @property
    def debit(self) -> Decimal:
        return self.amount if self.side is Side.DR else Decimal("0")

    @property
    def credit(self) -> Decimal:
        return self.amount if self.side is Side.CR else Decimal("0")


@dataclass(frozen=True)
class VoucherSummary:
    voucher_id: UUID
    voucher_type: VoucherType
    voucher_number: str
    voucher_date: date
    status: VoucherStatus
    narration: str | None
    total: Decimal
    reversal_of_id: UUID | None


def _to_line(posting: Posting, voucher_type: str, voucher_number: str) -> PostingLine:
    return PostingLine(
        posting_id=posting.id,
        voucher_id=posting.voucher_id,
        voucher_type=VoucherType(voucher_type),
        voucher_number=voucher_number,
        posting_date=posting.posting_date,
        voucher_seq=posting.voucher_seq,
        line_seq=posting.line_seq,
        ledger_id=posting.ledger_id,
        side=Side(posting.side),
        amount=posting.amount,
        narration=posting.narration,
        farmer_id=posting.farmer_id,
        outstanding_category=posting.outstanding_category,
    )


class PostingSequence:
    """
    Lazy, restartable iterable of PostingLine.

    Holds only the query; nothing is read until iteration starts, and each
    new iteration starts from the first row again.
    """

    def __init__(self, session: Session, query: Select):
        self._session = session
        self._query = query

    def __iter__(self) -> Iterator[PostingLine]:
        result = self._session.execute(
            self._query.execution_options(yield_per=STREAM_BATCH_SIZE)
        )
        for posting, voucher_type, voucher_number in result:
            yield _to_line(posting, voucher_type, voucher_number)

    def count(self) -> int:
        return sum(1 for _ in self)


class PostingSelector(BaseSelector[Posting]):
    """Selector for posting and voucher reads."""

    def _base_query(
        self,
        start: date | None,
        end: date | None,
        status: VoucherStatus | None,
    ) -> Select:
        query = select(Posting, Voucher.voucher_type, Voucher.voucher_number).join(
            Voucher, Posting.voucher_id == Voucher.id
        )
        if status is not None:
            query = query.where(Voucher.status == VoucherStatus(status).value)
        if start is not None:
            query = query.where(Posting.posting_date >= start)
        if end is not None:
            query = query.where(Posting.posting_date <= end)
        return query.order_by(
            Posting.posting_date, Posting.voucher_seq, Posting.line_seq
        )

    def postings_for(
        self,
        ledger_id: UUID,
        start: date | None = None,
        end: date | None = None,
        status: VoucherStatus | None = VoucherStatus.ACTIVE,
    ) -> PostingSequence:
        """
        Ordered postings of one ledger with start <= posting_date <= end.

        Either bound may be None for an open window.  Pass status=None to
        include cancelled vouchers.
        """
        query = self._base_query(start, end, status).where(
            Posting.ledger_id == ledger_id
        )
        return PostingSequence(self.session, query)

    def postings_between(
        self,
        start: date,
        end: date,
        ledger_ids: list[UUID] | None = None,
        status: VoucherStatus | None = VoucherStatus.ACTIVE,
    ) -> PostingSequence:
        """Every posting in the window, optionally limited to some ledgers."""
        query = self._base_query(start, end, status)
        if ledger_ids is not None:
            query = query.where(Posting.ledger_id.in_(ledger_ids))
        return PostingSequence(self.session, query)

    def voucher_lines(self, voucher_id: UUID) -> list[PostingLine]:
        query = (
            select(Posting, Voucher.voucher_type, Voucher.voucher_number)
            .join(Voucher, Posting.voucher_id == Voucher.id)
            .where(Posting.voucher_id == voucher_id)
            .order_by(Posting.line_seq)
        )
        return [_to_line(*row) for row in self.session.execute(query)]

    def vouchers_between(
        self,
        start: date,
        end: date,
        status: VoucherStatus | None = None,
        voucher_type: VoucherType | None = None,
    ) -> list[VoucherSummary]:
        query = (
            select(Voucher)
            .where(Voucher.voucher_date >= start, Voucher.voucher_date <= end)
            .order_by(Voucher.voucher_date, Voucher.seq)
        )
        if status is not None:
            query = query.where(Voucher.status == VoucherStatus(status).value)
        if voucher_type is not None:
            query = query.where(Voucher.voucher_type == VoucherType(voucher_type).value)

        return [
            VoucherSummary(
                voucher_id=v.id,
                voucher_type=VoucherType(v.voucher_type),
                voucher_number=v.voucher_number,
                voucher_date=v.voucher_date,
                status=VoucherStatus(v.status),
                narration=v.narration,
                total=v.total_debits,
                reversal_of_id=v.reversal_of_id,
            )
            for v in self.session.execute(query).scalars()
        ]
