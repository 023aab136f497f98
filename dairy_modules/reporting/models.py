"""
Financial Reporting Domain Models (``dairy_modules.reporting.models``).

Responsibility
--------------
Frozen dataclass value objects for every report the reporting service
returns: Trading Account, Profit & Loss, Balance Sheet, Receipts &
Disbursement, Day Book, Cash Book, Trial Balance and Ledger Abstract.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* Section amounts are signed towards the section's side: an abnormal
  ledger balance shows as a negative line, it is never dropped.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from dairy_kernel.domain.values import BalanceAmount, BalanceSnapshot, Side, VoucherType

ZERO = Decimal("0")


# =========================================================================
# Enums
# =========================================================================


class ReportType(str, Enum):
    TRADING_ACCOUNT = "trading_account"
    PROFIT_LOSS = "profit_loss"
    BALANCE_SHEET = "balance_sheet"
    RECEIPTS_DISBURSEMENT = "receipts_disbursement"
    DAY_BOOK = "day_book"
    CASH_BOOK = "cash_book"
    TRIAL_BALANCE = "trial_balance"
    LEDGER_ABSTRACT = "ledger_abstract"


class SectionTag(str, Enum):
    """Statement section a ledger is reported under."""

    PURCHASES = "Purchases"
    TRADE_EXPENSES = "Trade Expenses"
    SALES = "Sales"
    TRADE_INCOME = "Trade Income"
    INCOME = "Income"
    EXPENSE = "Expense"
    ASSETS = "Assets"
    LIABILITIES = "Liabilities"
    CAPITAL = "Capital"
    OTHER = "Other"

    @property
    def side(self) -> Side | None:
        """Side a positive amount in this section sits on; None for Other."""
        return _SECTION_SIDE.get(self)


_SECTION_SIDE = {
    SectionTag.PURCHASES: Side.DR,
    SectionTag.TRADE_EXPENSES: Side.DR,
    SectionTag.EXPENSE: Side.DR,
    SectionTag.ASSETS: Side.DR,
    SectionTag.SALES: Side.CR,
    SectionTag.TRADE_INCOME: Side.CR,
    SectionTag.INCOME: Side.CR,
    SectionTag.LIABILITIES: Side.CR,
    SectionTag.CAPITAL: Side.CR,
}

TRADING_DEBIT_TAGS = (SectionTag.PURCHASES, SectionTag.TRADE_EXPENSES)
TRADING_CREDIT_TAGS = (SectionTag.SALES, SectionTag.TRADE_INCOME)
REVENUE_TAGS = (SectionTag.SALES, SectionTag.TRADE_INCOME, SectionTag.INCOME)
COST_TAGS = (SectionTag.PURCHASES, SectionTag.TRADE_EXPENSES, SectionTag.EXPENSE)


# =========================================================================
# Common
# =========================================================================


@dataclass(frozen=True)
class ReportMetadata:
    """Metadata attached to every report."""

    report_type: ReportType
    organisation: str
    currency: str
    generated_at: str  # ISO timestamp from the injected clock
    period_start: date | None = None
    period_end: date | None = None
    as_of_date: date | None = None


@dataclass(frozen=True)
class SectionLine:
    ledger_id: UUID
    ledger_name: str
    amount: Decimal


@dataclass(frozen=True)
class StatementSection:
    tag: SectionTag
    lines: tuple[SectionLine, ...]
    total: Decimal

    @classmethod
    def empty(cls, tag: SectionTag) -> StatementSection:
        return cls(tag=tag, lines=(), total=ZERO)


# =========================================================================
# Trading Account and Profit & Loss
# =========================================================================


@dataclass(frozen=True)
class TradingAccountReport:
    """
    T-account of trading activity.

    Exactly one of gross_profit / gross_loss is non-zero unless the
    account balances exactly; both sides then total the same.
    """

    metadata: ReportMetadata
    opening_stock: Decimal
    purchases: StatementSection
    trade_expenses: StatementSection
    gross_profit: Decimal
    sales: StatementSection
    trade_income: StatementSection
    closing_stock: Decimal
    gross_loss: Decimal

    @property
    def debit_total(self) -> Decimal:
        return (
            self.opening_stock
            + self.purchases.total
            + self.trade_expenses.total
            + self.gross_profit
        )

    @property
    def credit_total(self) -> Decimal:
        return (
            self.sales.total
            + self.trade_income.total
            + self.closing_stock
            + self.gross_loss
        )


@dataclass(frozen=True)
class ProfitLossReport:
    metadata: ReportMetadata
    gross_profit: Decimal
    gross_loss: Decimal
    income: StatementSection
    expenses: StatementSection
    total_income: Decimal  # income + gross profit
    total_expense: Decimal  # expenses + gross loss
    net_profit: Decimal  # negative for a net loss

    @property
    def is_loss(self) -> bool:
        return self.net_profit < ZERO


# =========================================================================
# Balance Sheet
# =========================================================================


@dataclass(frozen=True)
class BalanceSheetReport:
    """
    Assets against liabilities, capital and net profit.

    ``imbalance`` = assets - (liabilities + capital + net profit).  A
    non-zero imbalance is reported here, never raised.  Ledgers the
    classifier could not place are listed under ``unclassified`` and are
    not in any total.
    """

    metadata: ReportMetadata
    assets: StatementSection
    liabilities: StatementSection
    capital: StatementSection
    net_profit: Decimal
    total_assets: Decimal
    total_liabilities_and_capital: Decimal
    imbalance: Decimal
    is_balanced: bool
    unclassified: tuple[SectionLine, ...] = ()


# =========================================================================
# Receipts & Disbursement, Day Book, Cash Book
# =========================================================================


@dataclass(frozen=True)
class HeadTotal:
    """Cash/bank movement against one contra head."""

    head: str
    tag: SectionTag
    amount: Decimal


@dataclass(frozen=True)
class ReceiptsDisbursementReport:
    metadata: ReportMetadata
    cash_ledgers: tuple[str, ...]
    opening_balance: BalanceAmount
    receipts: tuple[HeadTotal, ...]
    payments: tuple[HeadTotal, ...]
    total_receipts: Decimal
    total_payments: Decimal
    closing_balance: BalanceAmount


@dataclass(frozen=True)
class DayBookLine:
    ledger_name: str
    debit: Decimal
    credit: Decimal


@dataclass(frozen=True)
class DayBookEntry:
    voucher_id: UUID
    voucher_date: date
    voucher_type: VoucherType
    voucher_number: str
    narration: str | None
    lines: tuple[DayBookLine, ...]
    cash_receipt: Decimal  # cash/bank Dr in this voucher
    cash_payment: Decimal  # cash/bank Cr in this voucher

    @property
    def total(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)


@dataclass(frozen=True)
class DayBookReport:
    metadata: ReportMetadata
    entries: tuple[DayBookEntry, ...]
    cash_opening: BalanceAmount
    cash_closing: BalanceAmount
    total_receipts: Decimal
    total_payments: Decimal
    total_debit: Decimal
    total_credit: Decimal


@dataclass(frozen=True)
class CashBookLine:
    posting_date: date
    voucher_type: VoucherType
    voucher_number: str
    particulars: str
    narration: str | None
    amount: Decimal


@dataclass(frozen=True)
class CashBookReport:
    metadata: ReportMetadata
    ledger_name: str
    opening_balance: BalanceAmount
    receipts: tuple[CashBookLine, ...]
    payments: tuple[CashBookLine, ...]
    total_receipts: Decimal
    total_payments: Decimal
    closing_balance: BalanceAmount


# =========================================================================
# Trial Balance and Ledger Abstract
# =========================================================================


@dataclass(frozen=True)
class TrialBalanceLineItem:
    ledger_id: UUID
    ledger_name: str
    tag: SectionTag
    debit: Decimal
    credit: Decimal


@dataclass(frozen=True)
class TrialBalanceReport:
    metadata: ReportMetadata
    lines: tuple[TrialBalanceLineItem, ...]
    total_debit: Decimal
    total_credit: Decimal
    difference: Decimal
    is_balanced: bool


@dataclass(frozen=True)
class LedgerAbstractReport:
    """Opening, period Dr/Cr and closing of every ledger, with summary totals."""

    metadata: ReportMetadata
    rows: tuple[BalanceSnapshot, ...]
    opening_debit: Decimal
    opening_credit: Decimal
    period_debit: Decimal
    period_credit: Decimal
    closing_debit: Decimal
    closing_credit: Decimal
