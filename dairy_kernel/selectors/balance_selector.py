"""
Module: dairy_kernel.selectors.balance_selector
Responsibility: The balance accumulator.  Derives opening, period and
    closing balances for any ledger and any inclusive date window, the
    batched abstract over all ledgers, ledger statements with running
    balances, the trial balance and farmer outstanding by category.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - No stored balances.  Every figure is recomputed from postings of
      Active vouchers at query time.
    - opening(start) = brought-forward + sum(Dr) - sum(Cr) of postings
      dated strictly before start.
    - closing(start, end) = opening(start) + Dr - Cr within [start, end],
      so closing(a, b) == opening(b + 1 day) for adjacent windows.
    - Balances are reported on the side they fall; an abnormal balance
      moves to the opposite side and is never clamped.  Zero reports on
      the ledger's natural side.
    - Period totals are gross Dr and Cr, never netted.

Failure modes:
    - UnknownLedgerError for a ledger ID that does not exist.
    - InvalidPeriodError when start > end.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, case, exists, func, or_, select

from dairy_kernel.db.types import BALANCE_TOLERANCE
from dairy_kernel.domain.values import (
    BalanceAmount,
    BalanceSnapshot,
    LedgerType,
    PeriodTotals,
    Side,
    VoucherStatus,
    VoucherType,
    natural_side,
)
from dairy_kernel.exceptions import InvalidPeriodError, UnknownLedgerError
from dairy_kernel.logging_config import get_logger
from dairy_kernel.models.ledger import Ledger
from dairy_kernel.models.voucher import Posting, Voucher
from dairy_kernel.selectors.base import BaseSelector
from dairy_kernel.selectors.posting_selector import (
    STREAM_BATCH_SIZE,
    PostingSelector,
)

logger = get_logger("selectors.balance")

ZERO = Decimal("0")

# Particulars shown when a voucher has more than one contra ledger
VARIOUS = "Various"


@dataclass(frozen=True)
class StatementLine:
    """One row of a ledger statement with the running balance after it."""

    posting_date: date
    voucher_id: UUID
    voucher_type: VoucherType
    voucher_number: str
    particulars: str
    narration: str | None
    debit: Decimal
    credit: Decimal
    balance: BalanceAmount


@dataclass(frozen=True)
class LedgerStatement:
    """General-ledger view of one ledger over a window."""

    snapshot: BalanceSnapshot
    lines: tuple[StatementLine, ...]

    @property
    def opening(self) -> BalanceAmount:
        return self.snapshot.opening

    @property
    def closing(self) -> BalanceAmount:
        return self.snapshot.closing


@dataclass(frozen=True)
class TrialBalanceRow:
    ledger_id: UUID
    ledger_name: str
    ledger_type: LedgerType
    category: str
    debit: Decimal
    credit: Decimal


@dataclass(frozen=True)
class TrialBalance:
    as_of: date
    rows: tuple[TrialBalanceRow, ...] = field(default_factory=tuple)

    @property
    def total_debit(self) -> Decimal:
        return sum((r.debit for r in self.rows), ZERO)

    @property
    def total_credit(self) -> Decimal:
        return sum((r.credit for r in self.rows), ZERO)

    @property
    def difference(self) -> Decimal:
        return self.total_debit - self.total_credit

    @property
    def is_balanced(self) -> bool:
        return abs(self.difference) <= BALANCE_TOLERANCE


def _check_window(start: date, end: date) -> None:
    if start > end:
        raise InvalidPeriodError(str(start), str(end))


def _side_sum(side: Side, condition=None):
    when = Posting.side == side.value
    if condition is not None:
        when = and_(condition, when)
    return func.sum(case((when, Posting.amount), else_=ZERO))


def _dr(condition=None):
    return _side_sum(Side.DR, condition)


def _cr(condition=None):
    return _side_sum(Side.CR, condition)


def _active_postings():
    return (
        select()
        .select_from(Posting)
        .join(Voucher, Posting.voucher_id == Voucher.id)
        .where(Voucher.status == VoucherStatus.ACTIVE.value)
    )


class BalanceSelector(BaseSelector[Posting]):
    """
    Balance computations over postings.

    Every method issues fresh queries; nothing is cached between calls, so a
    cancellation committed by another session is visible on the next call.
    """

    def _ledger(self, ledger_id: UUID) -> Ledger:
        ledger = self.session.get(Ledger, ledger_id)
        if ledger is None:
            raise UnknownLedgerError(str(ledger_id))
        return ledger

    def _movement(
        self,
        ledger_id: UUID,
        start: date | None,
        end: date | None,
        end_exclusive: bool = False,
    ) -> PeriodTotals:
        conditions = [Posting.ledger_id == ledger_id]
        if start is not None:
            conditions.append(Posting.posting_date >= start)
        if end is not None:
            conditions.append(
                Posting.posting_date < end if end_exclusive else Posting.posting_date <= end
            )
        row = self.session.execute(
            _active_postings()
            .add_columns(
                _dr().label("debit"),
                _cr().label("credit"),
            )
            .where(*conditions)
        ).one()
        return PeriodTotals(row.debit or ZERO, row.credit or ZERO)

    # ------------------------------------------------------------------
    # Single ledger
    # ------------------------------------------------------------------

    def opening_balance(self, ledger_id: UUID, as_of: date) -> BalanceAmount:
        """Balance brought forward into ``as_of`` (postings dated before it)."""
        ledger = self._ledger(ledger_id)
        before = self._movement(ledger_id, None, as_of, end_exclusive=True)
        return ledger.brought_forward.apply(
            before.debit, before.credit, ledger.natural_side
        )

    def period_totals(self, ledger_id: UUID, start: date, end: date) -> PeriodTotals:
        """Gross Dr and Cr within the inclusive window."""
        _check_window(start, end)
        self._ledger(ledger_id)
        return self._movement(ledger_id, start, end)

    def closing_balance(self, ledger_id: UUID, start: date, end: date) -> BalanceAmount:
        return self.snapshot(ledger_id, start, end).closing

    def balance_as_of(self, ledger_id: UUID, as_of: date) -> BalanceAmount:
        """Balance including every posting dated on or before ``as_of``."""
        return self.opening_balance(ledger_id, as_of + timedelta(days=1))

    def snapshot(self, ledger_id: UUID, start: date, end: date) -> BalanceSnapshot:
        """Opening, movement and closing in one aggregate query."""
        _check_window(start, end)
        ledger = self._ledger(ledger_id)
        in_period = Posting.posting_date >= start
        before = Posting.posting_date < start
        row = self.session.execute(
            _active_postings()
            .add_columns(
                _dr(before).label("before_dr"),
                _cr(before).label("before_cr"),
                _dr(in_period).label("period_dr"),
                _cr(in_period).label("period_cr"),
            )
            .where(Posting.ledger_id == ledger_id, Posting.posting_date <= end)
        ).one()
        return self._build_snapshot(
            ledger,
            start,
            end,
            row.before_dr or ZERO,
            row.before_cr or ZERO,
            row.period_dr or ZERO,
            row.period_cr or ZERO,
        )

    @staticmethod
    def _build_snapshot(
        ledger: Ledger,
        start: date,
        end: date,
        before_dr: Decimal,
        before_cr: Decimal,
        period_dr: Decimal,
        period_cr: Decimal,
    ) -> BalanceSnapshot:
        natural = natural_side(ledger.ledger_type)
        opening = ledger.brought_forward.apply(before_dr, before_cr, natural)
        closing = opening.apply(period_dr, period_cr, natural)
        return BalanceSnapshot(
            ledger_id=ledger.id,
            ledger_name=ledger.name,
            ledger_type=LedgerType(ledger.ledger_type),
            category=ledger.category,
            period_start=start,
            period_end=end,
            opening=opening,
            period_debit=period_dr,
            period_credit=period_cr,
            closing=closing,
        )

    # ------------------------------------------------------------------
    # All ledgers
    # ------------------------------------------------------------------

    def abstract_all(
        self,
        start: date,
        end: date,
        offset: int | None = None,
        limit: int | None = None,
        ledger_ids: Iterable[UUID] | None = None,
    ) -> Iterator[BalanceSnapshot]:
        """
        Snapshot of every ledger that has ever been posted to or carries a
        brought-forward balance, ordered by ledger name.

        One grouped aggregate over the postings dated up to ``end`` is
        outer-joined to the ledgers, so ledgers with no activity in the
        window still appear with their carried-forward balance.  Rows are
        streamed; ``offset``/``limit`` page through them.
        """
        _check_window(start, end)
        before = Posting.posting_date < start
        in_period = Posting.posting_date >= start

        movement = (
            _active_postings()
            .add_columns(
                Posting.ledger_id.label("ledger_id"),
                _dr(before).label("before_dr"),
                _cr(before).label("before_cr"),
                _dr(in_period).label("period_dr"),
                _cr(in_period).label("period_cr"),
            )
            .where(Posting.posting_date <= end)
            .group_by(Posting.ledger_id)
            .subquery("movement")
        )

        ever_posted = exists().where(Posting.ledger_id == Ledger.id)
        query = (
            select(
                Ledger,
                movement.c.before_dr,
                movement.c.before_cr,
                movement.c.period_dr,
                movement.c.period_cr,
            )
            .outerjoin(movement, movement.c.ledger_id == Ledger.id)
            .where(or_(Ledger.opening_balance != ZERO, ever_posted))
            .order_by(Ledger.name, Ledger.id)
        )
        if ledger_ids is not None:
            query = query.where(Ledger.id.in_(list(ledger_ids)))
        if offset is not None:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        result = self.session.execute(
            query.execution_options(yield_per=STREAM_BATCH_SIZE)
        )
        count = 0
        for ledger, before_dr, before_cr, period_dr, period_cr in result:
            count += 1
            yield self._build_snapshot(
                ledger,
                start,
                end,
                before_dr or ZERO,
                before_cr or ZERO,
                period_dr or ZERO,
                period_cr or ZERO,
            )
        logger.debug(
            "abstract_streamed",
            extra={
                "period_start": start,
                "period_end": end,
                "offset": offset,
                "limit": limit,
                "ledgers": count,
            },
        )

    def trial_balance(self, as_of: date) -> TrialBalance:
        """
        Closing balances as of a date, split into Dr and Cr columns.

        Ledgers whose balance is within the tolerance of zero are left out.
        """
        rows = []
        for snap in self.abstract_all(as_of, as_of):
            if snap.closing.amount <= BALANCE_TOLERANCE:
                continue
            is_dr = snap.closing.side is Side.DR
            rows.append(
                TrialBalanceRow(
                    ledger_id=snap.ledger_id,
                    ledger_name=snap.ledger_name,
                    ledger_type=snap.ledger_type,
                    category=snap.category,
                    debit=snap.closing.amount if is_dr else ZERO,
                    credit=ZERO if is_dr else snap.closing.amount,
                )
            )
        return TrialBalance(as_of=as_of, rows=tuple(rows))

    # ------------------------------------------------------------------
    # Ledger statement (General Ledger / Cash Book)
    # ------------------------------------------------------------------

    def _contra_particulars(
        self, ledger_id: UUID, voucher_ids: set[UUID]
    ) -> dict[tuple[UUID, str], str]:
        """
        Map (voucher_id, side of our line) -> name of the contra ledger.

        Contra ledgers are those on the opposite side of the same voucher.
        More than one becomes "Various".
        """
        if not voucher_ids:
            return {}
        rows = self.session.execute(
            select(Posting.voucher_id, Posting.side, Ledger.name)
            .join(Ledger, Posting.ledger_id == Ledger.id)
            .where(
                Posting.voucher_id.in_(list(voucher_ids)),
                Posting.ledger_id != ledger_id,
            )
            .order_by(Posting.voucher_id, Posting.line_seq)
        ).all()

        names: dict[tuple[UUID, str], list[str]] = {}
        for voucher_id, side, name in rows:
            # A contra posted on Cr faces our Dr line, and vice versa
            key = (voucher_id, Side(side).opposite.value)
            bucket = names.setdefault(key, [])
            if name not in bucket:
                bucket.append(name)

        return {
            key: bucket[0] if len(bucket) == 1 else VARIOUS
            for key, bucket in names.items()
        }

    def ledger_statement(self, ledger_id: UUID, start: date, end: date) -> LedgerStatement:
        """
        Posting-by-posting view with running balance and contra particulars.

        The last running balance always equals the snapshot's closing.
        """
        snap = self.snapshot(ledger_id, start, end)
        natural = natural_side(snap.ledger_type)
        postings = list(PostingSelector(self.session).postings_for(ledger_id, start, end))
        particulars = self._contra_particulars(
            ledger_id, {p.voucher_id for p in postings}
        )

        running = snap.opening
        lines = []
        for p in postings:
            running = running.apply(p.debit, p.credit, natural)
            lines.append(
                StatementLine(
                    posting_date=p.posting_date,
                    voucher_id=p.voucher_id,
                    voucher_type=p.voucher_type,
                    voucher_number=p.voucher_number,
                    particulars=particulars.get((p.voucher_id, p.side.value), snap.ledger_name),
                    narration=p.narration,
                    debit=p.debit,
                    credit=p.credit,
                    balance=running,
                )
            )
        return LedgerStatement(snapshot=snap, lines=tuple(lines))

    # ------------------------------------------------------------------
    # Farmer outstanding
    # ------------------------------------------------------------------

    def tag_totals(
        self,
        farmer_id: str,
        categories: Iterable[str] | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> dict[str, PeriodTotals]:
        """Gross Dr/Cr of postings tagged for a farmer, per category."""
        query = (
            _active_postings()
            .add_columns(
                Posting.outstanding_category,
                _dr().label("debit"),
                _cr().label("credit"),
            )
            .where(Posting.farmer_id == farmer_id)
            .group_by(Posting.outstanding_category)
        )
        if categories is not None:
            query = query.where(Posting.outstanding_category.in_(list(categories)))
        if start is not None:
            query = query.where(Posting.posting_date >= start)
        if end is not None:
            query = query.where(Posting.posting_date <= end)

        return {
            category: PeriodTotals(debit or ZERO, credit or ZERO)
            for category, debit, credit in self.session.execute(query)
        }

    def outstanding_by_category(
        self,
        farmer_id: str,
        categories: Iterable[str],
        as_of: date | None = None,
    ) -> dict[str, Decimal]:
        """
        Outstanding per advance category: granted (Dr on the advance
        ledger) less recovered (Cr).  Categories with no postings read zero.
        """
        categories = list(categories)
        totals = self.tag_totals(farmer_id, categories, end=as_of)
        outstanding = {}
        for category in categories:
            t = totals.get(category, PeriodTotals())
            outstanding[category] = t.debit - t.credit
        return outstanding

    def outstanding_for(self, farmer_id: str, category: str) -> Decimal:
        return self.outstanding_by_category(farmer_id, [category])[category]
