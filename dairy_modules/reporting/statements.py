"""
Pure financial statement transformation functions.

These functions turn balance snapshots, ledger statements and posting
streams into the report dataclasses of ``models.py``.  ZERO I/O. ZERO side
effects.

Functions in this module follow the dairy_kernel/domain/ purity convention:
- No database access
- No clock access
- No logging
- Deterministic: same inputs always produce same outputs
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from dairy_kernel.domain.values import BalanceAmount, BalanceSnapshot, Side
from dairy_kernel.selectors.balance_selector import LedgerStatement, TrialBalance
from dairy_kernel.selectors.posting_selector import PostingLine
from dairy_modules.reporting.classifier import StatementClassifier
from dairy_modules.reporting.models import (
    COST_TAGS,
    REVENUE_TAGS,
    BalanceSheetReport,
    CashBookLine,
    CashBookReport,
    DayBookEntry,
    DayBookLine,
    DayBookReport,
    HeadTotal,
    LedgerAbstractReport,
    ProfitLossReport,
    ReceiptsDisbursementReport,
    ReportMetadata,
    SectionLine,
    SectionTag,
    StatementSection,
    TradingAccountReport,
    TrialBalanceLineItem,
    TrialBalanceReport,
)

ZERO = Decimal("0")


# =========================================================================
# Helpers
# =========================================================================


def period_amount(snapshot: BalanceSnapshot, tag: SectionTag) -> Decimal:
    """Period movement signed towards the section's side."""
    net_debit = snapshot.period_debit - snapshot.period_credit
    return net_debit if tag.side is Side.DR else -net_debit


def closing_amount(snapshot: BalanceSnapshot, tag: SectionTag) -> Decimal:
    """Closing balance signed towards the section's side."""
    return snapshot.closing.natural_amount(tag.side)


def group_by_tag(
    snapshots: Iterable[BalanceSnapshot],
    classifier: StatementClassifier,
) -> dict[SectionTag, list[BalanceSnapshot]]:
    groups: dict[SectionTag, list[BalanceSnapshot]] = {tag: [] for tag in SectionTag}
    for snap in snapshots:
        groups[classifier.classify_snapshot(snap)].append(snap)
    return groups


def _make_section(
    tag: SectionTag,
    snapshots: list[BalanceSnapshot],
    amount_of,
) -> StatementSection:
    lines = []
    for snap in snapshots:
        amount = amount_of(snap, tag)
        if amount != ZERO:
            lines.append(SectionLine(snap.ledger_id, snap.ledger_name, amount))
    lines.sort(key=lambda line: line.ledger_name)
    return StatementSection(
        tag=tag,
        lines=tuple(lines),
        total=sum((line.amount for line in lines), ZERO),
    )


def _sum_tags(
    groups: Mapping[SectionTag, list[BalanceSnapshot]],
    tags: Iterable[SectionTag],
    amount_of,
) -> Decimal:
    return sum(
        (amount_of(snap, tag) for tag in tags for snap in groups[tag]),
        ZERO,
    )


# =========================================================================
# 1. TRADING ACCOUNT
# =========================================================================


def build_trading_account(
    snapshots: Iterable[BalanceSnapshot],
    classifier: StatementClassifier,
    metadata: ReportMetadata,
    opening_stock: Decimal = ZERO,
    closing_stock: Decimal = ZERO,
) -> TradingAccountReport:
    """
    Trading account for the snapshots' window.

    Gross profit or loss is the balancing figure: credit side less debit
    side.  A positive figure is a profit carried on the debit side, a
    negative one a loss carried on the credit side.  Stock values come from
    the inventory module and default to zero.
    """
    groups = group_by_tag(snapshots, classifier)
    purchases = _make_section(SectionTag.PURCHASES, groups[SectionTag.PURCHASES], period_amount)
    trade_expenses = _make_section(
        SectionTag.TRADE_EXPENSES, groups[SectionTag.TRADE_EXPENSES], period_amount
    )
    sales = _make_section(SectionTag.SALES, groups[SectionTag.SALES], period_amount)
    trade_income = _make_section(
        SectionTag.TRADE_INCOME, groups[SectionTag.TRADE_INCOME], period_amount
    )

    debit = opening_stock + purchases.total + trade_expenses.total
    credit = sales.total + trade_income.total + closing_stock
    balance = credit - debit

    return TradingAccountReport(
        metadata=metadata,
        opening_stock=opening_stock,
        purchases=purchases,
        trade_expenses=trade_expenses,
        gross_profit=balance if balance > ZERO else ZERO,
        sales=sales,
        trade_income=trade_income,
        closing_stock=closing_stock,
        gross_loss=-balance if balance < ZERO else ZERO,
    )


# =========================================================================
# 2. PROFIT & LOSS
# =========================================================================


def build_profit_loss(
    snapshots: Iterable[BalanceSnapshot],
    classifier: StatementClassifier,
    metadata: ReportMetadata,
    trading: TradingAccountReport,
) -> ProfitLossReport:
    """Income against expenses, carrying gross profit/loss from Trading."""
    groups = group_by_tag(snapshots, classifier)
    income = _make_section(SectionTag.INCOME, groups[SectionTag.INCOME], period_amount)
    expenses = _make_section(SectionTag.EXPENSE, groups[SectionTag.EXPENSE], period_amount)

    total_income = income.total + trading.gross_profit
    total_expense = expenses.total + trading.gross_loss

    return ProfitLossReport(
        metadata=metadata,
        gross_profit=trading.gross_profit,
        gross_loss=trading.gross_loss,
        income=income,
        expenses=expenses,
        total_income=total_income,
        total_expense=total_expense,
        net_profit=total_income - total_expense,
    )


# =========================================================================
# 3. BALANCE SHEET
# =========================================================================


def build_balance_sheet(
    snapshots: Iterable[BalanceSnapshot],
    classifier: StatementClassifier,
    metadata: ReportMetadata,
    tolerance: Decimal,
) -> BalanceSheetReport:
    """
    Balance sheet from closing balances.

    Net profit is every revenue section less every cost section at the
    closing date, so that for a balanced book
    assets = liabilities + capital + net profit exactly.
    """
    groups = group_by_tag(snapshots, classifier)
    assets = _make_section(SectionTag.ASSETS, groups[SectionTag.ASSETS], closing_amount)
    liabilities = _make_section(
        SectionTag.LIABILITIES, groups[SectionTag.LIABILITIES], closing_amount
    )
    capital = _make_section(SectionTag.CAPITAL, groups[SectionTag.CAPITAL], closing_amount)
    net_profit = _sum_tags(groups, REVENUE_TAGS, closing_amount) - _sum_tags(
        groups, COST_TAGS, closing_amount
    )

    total_l_and_c = liabilities.total + capital.total + net_profit
    imbalance = assets.total - total_l_and_c

    unclassified = tuple(
        SectionLine(snap.ledger_id, snap.ledger_name, snap.closing.net_debit)
        for snap in groups[SectionTag.OTHER]
        if not snap.closing.is_zero
    )

    return BalanceSheetReport(
        metadata=metadata,
        assets=assets,
        liabilities=liabilities,
        capital=capital,
        net_profit=net_profit,
        total_assets=assets.total,
        total_liabilities_and_capital=total_l_and_c,
        imbalance=imbalance,
        is_balanced=abs(imbalance) <= tolerance,
        unclassified=unclassified,
    )


# =========================================================================
# 4. RECEIPTS & DISBURSEMENT, CASH BOOK
# =========================================================================


def combined_balance(balances: Iterable[BalanceAmount]) -> BalanceAmount:
    """Sum of several cash/bank balances, zero on the Dr side."""
    return BalanceAmount.from_net(sum((b.net_debit for b in balances), ZERO), Side.DR)


def build_receipts_disbursement(
    statements: Iterable[LedgerStatement],
    head_tags: Mapping[str, SectionTag],
    metadata: ReportMetadata,
) -> ReceiptsDisbursementReport:
    """
    Cash and bank movements grouped by contra head.

    Every Dr on a cash/bank ledger is a receipt and every Cr a payment,
    filed under the contra ledger's name ("Various" for split vouchers).
    Transfers between two cash/bank ledgers appear on both sides, so
    closing = opening + receipts - payments holds for the combined balance.
    """
    statements = list(statements)
    receipts: dict[str, Decimal] = {}
    payments: dict[str, Decimal] = {}
    for statement in statements:
        for line in statement.lines:
            if line.debit > ZERO:
                receipts[line.particulars] = receipts.get(line.particulars, ZERO) + line.debit
            if line.credit > ZERO:
                payments[line.particulars] = payments.get(line.particulars, ZERO) + line.credit

    def heads(totals: dict[str, Decimal]) -> tuple[HeadTotal, ...]:
        return tuple(
            HeadTotal(head, head_tags.get(head, SectionTag.OTHER), amount)
            for head, amount in sorted(totals.items())
        )

    opening = combined_balance(s.opening for s in statements)
    total_receipts = sum(receipts.values(), ZERO)
    total_payments = sum(payments.values(), ZERO)

    return ReceiptsDisbursementReport(
        metadata=metadata,
        cash_ledgers=tuple(s.snapshot.ledger_name for s in statements),
        opening_balance=opening,
        receipts=heads(receipts),
        payments=heads(payments),
        total_receipts=total_receipts,
        total_payments=total_payments,
        closing_balance=opening.apply(total_receipts, total_payments, Side.DR),
    )


def build_cash_book(
    statement: LedgerStatement,
    metadata: ReportMetadata,
) -> CashBookReport:
    """Receipts (Dr) and payments (Cr) of one cash or bank ledger."""
    receipts, payments = [], []
    for line in statement.lines:
        entry = CashBookLine(
            posting_date=line.posting_date,
            voucher_type=line.voucher_type,
            voucher_number=line.voucher_number,
            particulars=line.particulars,
            narration=line.narration,
            amount=line.debit or line.credit,
        )
        (receipts if line.debit > ZERO else payments).append(entry)

    return CashBookReport(
        metadata=metadata,
        ledger_name=statement.snapshot.ledger_name,
        opening_balance=statement.opening,
        receipts=tuple(receipts),
        payments=tuple(payments),
        total_receipts=sum((e.amount for e in receipts), ZERO),
        total_payments=sum((e.amount for e in payments), ZERO),
        closing_balance=statement.closing,
    )


# =========================================================================
# 5. DAY BOOK
# =========================================================================


def build_day_book(
    postings: Iterable[PostingLine],
    ledger_names: Mapping[UUID, str],
    cash_ledger_ids: set[UUID],
    cash_opening: BalanceAmount,
    cash_closing: BalanceAmount,
    metadata: ReportMetadata,
) -> DayBookReport:
    """
    Every voucher in the window in posting order, with its lines.

    ``postings`` must be ordered (date, voucher_seq, line_seq) so that each
    voucher's lines arrive together.
    """
    entries: list[DayBookEntry] = []
    current: list[PostingLine] = []

    def flush() -> None:
        if not current:
            return
        head = current[0]
        entries.append(
            DayBookEntry(
                voucher_id=head.voucher_id,
                voucher_date=head.posting_date,
                voucher_type=head.voucher_type,
                voucher_number=head.voucher_number,
                narration=head.narration,
                lines=tuple(
                    DayBookLine(ledger_names.get(p.ledger_id, str(p.ledger_id)), p.debit, p.credit)
                    for p in current
                ),
                cash_receipt=sum(
                    (p.debit for p in current if p.ledger_id in cash_ledger_ids), ZERO
                ),
                cash_payment=sum(
                    (p.credit for p in current if p.ledger_id in cash_ledger_ids), ZERO
                ),
            )
        )
        current.clear()

    for posting in postings:
        if current and posting.voucher_id != current[0].voucher_id:
            flush()
        current.append(posting)
    flush()

    return DayBookReport(
        metadata=metadata,
        entries=tuple(entries),
        cash_opening=cash_opening,
        cash_closing=cash_closing,
        total_receipts=sum((e.cash_receipt for e in entries), ZERO),
        total_payments=sum((e.cash_payment for e in entries), ZERO),
        total_debit=sum((line.debit for e in entries for line in e.lines), ZERO),
        total_credit=sum((line.credit for e in entries for line in e.lines), ZERO),
    )


# =========================================================================
# 6. TRIAL BALANCE, LEDGER ABSTRACT
# =========================================================================


def build_trial_balance(
    trial_balance: TrialBalance,
    classifier: StatementClassifier,
    metadata: ReportMetadata,
) -> TrialBalanceReport:
    lines = tuple(
        TrialBalanceLineItem(
            ledger_id=row.ledger_id,
            ledger_name=row.ledger_name,
            tag=classifier.classify_parts(row.ledger_type, row.category, row.ledger_name),
            debit=row.debit,
            credit=row.credit,
        )
        for row in trial_balance.rows
    )
    return TrialBalanceReport(
        metadata=metadata,
        lines=lines,
        total_debit=trial_balance.total_debit,
        total_credit=trial_balance.total_credit,
        difference=trial_balance.difference,
        is_balanced=trial_balance.is_balanced,
    )


def _side_total(balances: Iterable[BalanceAmount], side: Side) -> Decimal:
    return sum((b.amount for b in balances if b.side is side), ZERO)


def build_ledger_abstract(
    snapshots: Iterable[BalanceSnapshot],
    metadata: ReportMetadata,
) -> LedgerAbstractReport:
    rows = tuple(snapshots)
    return LedgerAbstractReport(
        metadata=metadata,
        rows=rows,
        opening_debit=_side_total((r.opening for r in rows), Side.DR),
        opening_credit=_side_total((r.opening for r in rows), Side.CR),
        period_debit=sum((r.period_debit for r in rows), ZERO),
        period_credit=sum((r.period_credit for r in rows), ZERO),
        closing_debit=_side_total((r.closing for r in rows), Side.DR),
        closing_credit=_side_total((r.closing for r in rows), Side.CR),
    )


# =========================================================================
# 7. RENDERER (dict/JSON output)
# =========================================================================


def render_to_dict(obj: object) -> dict | list | str | int | float | bool | None:
    """
    Convert any report dataclass to a plain dict for JSON serialization.

    Decimal and UUID become strings, dates ISO strings, enums their value;
    nested dataclasses become nested dicts and tuples lists.
    """
    if obj is None:
        return None
    if isinstance(obj, (Decimal, UUID)):
        return str(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (list, tuple)):
        return [render_to_dict(item) for item in obj]
    if isinstance(obj, dict):
        return {str(k): render_to_dict(v) for k, v in obj.items()}
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {
            f.name: render_to_dict(getattr(obj, f.name))
            for f in dataclasses.fields(obj)
        }
    if isinstance(obj, (str, int, float, bool)):
        return obj
    return str(obj)
