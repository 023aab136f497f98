"""
Values -- Immutable domain value objects for ledger balances.

Responsibility:
    Defines the enumerations shared by every layer (ledger type, posting
    side, voucher type/status, outstanding effect) and the computed balance
    values returned by the accumulator.  Nothing here is ever stored.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - natural_side() is total over LedgerType: Asset/Expense are Dr,
      Liability/Capital/Income are Cr.
    - BalanceAmount.amount is never negative; an abnormal balance is
      reported on the opposite side, never clamped.
    - A zero balance is reported on the ledger's natural side.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

ZERO = Decimal("0")


class Side(str, Enum):
    """Which side of the ledger a posting or balance sits on."""

    DR = "Dr"
    CR = "Cr"

    @property
    def opposite(self) -> Side:
        return Side.CR if self is Side.DR else Side.DR


class LedgerType(str, Enum):
    """Top-level nature of a ledger."""

    ASSET = "Asset"
    LIABILITY = "Liability"
    CAPITAL = "Capital"
    INCOME = "Income"
    EXPENSE = "Expense"


class LinkedEntityType(str, Enum):
    """Kind of party a ledger is opened for."""

    FARMER = "Farmer"
    CUSTOMER = "Customer"
    SUPPLIER = "Supplier"


class VoucherType(str, Enum):
    """Discriminant for vouchers.  All types share one posting shape."""

    RECEIPT = "Receipt"
    PAYMENT = "Payment"
    JOURNAL = "Journal"
    SALES = "Sales"
    PURCHASE = "Purchase"
    CONTRA = "Contra"


class VoucherStatus(str, Enum):
    """Active -> Cancelled is the only transition."""

    ACTIVE = "Active"
    CANCELLED = "Cancelled"


class OutstandingEffect(str, Enum):
    """How a tagged posting moves a farmer's outstanding."""

    GRANT = "Grant"
    RECOVERY = "Recovery"


_NATURAL_SIDE: dict[LedgerType, Side] = {
    LedgerType.ASSET: Side.DR,
    LedgerType.EXPENSE: Side.DR,
    LedgerType.LIABILITY: Side.CR,
    LedgerType.CAPITAL: Side.CR,
    LedgerType.INCOME: Side.CR,
}


def natural_side(ledger_type: LedgerType | str) -> Side:
    """Return the side on which a ledger of this type normally carries its balance."""
    return _NATURAL_SIDE[LedgerType(ledger_type)]


def signed(amount: Decimal, side: Side | str) -> Decimal:
    """Dr-positive signed amount."""
    return amount if Side(side) is Side.DR else -amount


@dataclass(frozen=True, slots=True)
class BalanceAmount:
    """
    A non-negative balance together with the side it sits on.

    Build from a Dr-positive net with from_net(); the natural side of the
    ledger decides where a zero lands.
    """

    amount: Decimal
    side: Side

    @classmethod
    def from_net(cls, net_debit: Decimal, natural: Side) -> BalanceAmount:
        if net_debit == ZERO:
            return cls(ZERO, natural)
        if net_debit > ZERO:
            return cls(net_debit, Side.DR)
        return cls(-net_debit, Side.CR)

    @classmethod
    def zero(cls, natural: Side) -> BalanceAmount:
        return cls(ZERO, natural)

    @property
    def net_debit(self) -> Decimal:
        return signed(self.amount, self.side)

    def natural_amount(self, natural: Side) -> Decimal:
        """Signed amount where positive means on the natural side."""
        return self.amount if self.side is natural else -self.amount

    def apply(
        self, debit: Decimal, credit: Decimal, natural: Side
    ) -> BalanceAmount:
        return BalanceAmount.from_net(self.net_debit + debit - credit, natural)

    @property
    def is_zero(self) -> bool:
        return self.amount == ZERO

    def __str__(self) -> str:
        return f"{self.amount} {self.side.value}"


@dataclass(frozen=True, slots=True)
class PeriodTotals:
    """Gross Dr and Cr movement of a ledger within a window.  Never netted."""

    debit: Decimal = ZERO
    credit: Decimal = ZERO

    def __add__(self, other: PeriodTotals) -> PeriodTotals:
        return PeriodTotals(self.debit + other.debit, self.credit + other.credit)


@dataclass(frozen=True, slots=True)
class BalanceSnapshot:
    """Opening, movement and closing of one ledger for one window."""

    ledger_id: UUID
    ledger_name: str
    ledger_type: LedgerType
    category: str
    period_start: date
    period_end: date
    opening: BalanceAmount
    period_debit: Decimal
    period_credit: Decimal
    closing: BalanceAmount

    @property
    def opening_balance(self) -> Decimal:
        return self.opening.amount

    @property
    def opening_side(self) -> Side:
        return self.opening.side

    @property
    def closing_balance(self) -> Decimal:
        return self.closing.amount

    @property
    def closing_side(self) -> Side:
        return self.closing.side

    @property
    def has_activity(self) -> bool:
        return self.period_debit != ZERO or self.period_credit != ZERO
