"""
Waterfall -- pure allocation of a milk payment against farmer advances.

Responsibility:
    Validates a requested per-category deduction against the farmer's
    outstanding (Gather -> Allocate), produces the allocation lines the
    resolver commits, suggests a priority fill for the payment screen, and
    computes the net payable figure.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  The resolver in
    services/outstanding_service.py gathers the outstanding and commits the
    result.

Invariants enforced:
    - Categories are visited in the server-side priority order, never the
      order the caller supplied them in.
    - All categories are validated before any allocation is returned, so a
      single violation rejects the whole request.
    - after = before - deducted and after >= 0 for every line.

Failure modes:
    - UnknownOutstandingCategoryError for a category outside the priority.
    - InvalidDeductionError for a negative request.
    - DeductionExceedsOutstandingError when requested > outstanding.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from dairy_kernel.exceptions import (
    DeductionExceedsOutstandingError,
    InvalidDeductionError,
    UnknownOutstandingCategoryError,
)

ZERO = Decimal("0")


class AdvanceCategory(str, Enum):
    LOAN_ADVANCE = "Loan Advance"
    CF_ADVANCE = "CF Advance"
    CASH_ADVANCE = "Cash Advance"


DEFAULT_PRIORITY: tuple[str, ...] = (
    AdvanceCategory.LOAN_ADVANCE.value,
    AdvanceCategory.CF_ADVANCE.value,
    AdvanceCategory.CASH_ADVANCE.value,
)

# Posting tag for the once-a-month welfare fund recovery
WELFARE_RECOVERY = "Welfare Recovery"


@dataclass(frozen=True, slots=True)
class AllocationLine:
    category: str
    before: Decimal
    deducted: Decimal

    @property
    def after(self) -> Decimal:
        return self.before - self.deducted


@dataclass(frozen=True, slots=True)
class Allocation:
    farmer_id: str
    lines: tuple[AllocationLine, ...]

    @property
    def total_deducted(self) -> Decimal:
        return sum((line.deducted for line in self.lines), ZERO)

    def deducted(self, category: str) -> Decimal:
        for line in self.lines:
            if line.category == category:
                return line.deducted
        return ZERO

    @property
    def nonzero_lines(self) -> tuple[AllocationLine, ...]:
        return tuple(line for line in self.lines if line.deducted > ZERO)


def _category_name(category) -> str:
    return category.value if isinstance(category, Enum) else str(category)


def allocate(
    farmer_id: str,
    outstanding: Mapping[str, Decimal],
    requested: Mapping[str, Decimal],
    priority: Sequence[str] = DEFAULT_PRIORITY,
) -> Allocation:
    """
    Validate ``requested`` against ``outstanding`` and return the allocation.

    Categories missing from ``requested`` deduct zero.  Categories missing
    from ``outstanding`` have zero available.  The first violation found in
    priority order is raised.
    """
    wanted = {_category_name(k): v for k, v in requested.items()}
    for category in wanted:
        if category not in priority:
            raise UnknownOutstandingCategoryError(category)

    lines = []
    for category in priority:
        amount = wanted.get(category, ZERO)
        available = outstanding.get(category, ZERO)
        if amount < ZERO:
            raise InvalidDeductionError(category, str(amount))
        if amount > available:
            raise DeductionExceedsOutstandingError(
                farmer_id=farmer_id,
                category=category,
                requested=str(amount),
                available=str(available),
            )
        lines.append(AllocationLine(category, available, amount))

    return Allocation(farmer_id=farmer_id, lines=tuple(lines))


def suggest_allocation(
    outstanding: Mapping[str, Decimal],
    available_amount: Decimal,
    priority: Sequence[str] = DEFAULT_PRIORITY,
) -> dict[str, Decimal]:
    """
    Fill categories in priority order from ``available_amount``.

    Each category takes min(remaining, outstanding).  Used to pre-fill the
    payment entry screen; the operator may lower any figure before posting.
    """
    remaining = max(available_amount, ZERO)
    suggestion: dict[str, Decimal] = {}
    for category in priority:
        take = min(remaining, outstanding.get(category, ZERO))
        suggestion[category] = take
        remaining -= take
    return suggestion


def compute_net_payable(
    milk_amount: Decimal,
    welfare_recovery: Decimal = ZERO,
    advance_deductions: Decimal = ZERO,
    other_deductions: Decimal = ZERO,
    previous_balance: Decimal = ZERO,
) -> Decimal:
    """
    net = milk - welfare - (loan + cf + cash) - other - previous balance.

    The result may be negative; the caller decides whether to carry it
    forward.
    """
    return (
        milk_amount
        - welfare_recovery
        - advance_deductions
        - other_deductions
        - previous_balance
    )


@dataclass(frozen=True)
class RecoveryPolicy:
    """
    Server-side settings for advance recovery.

    ``priority`` fixes the order categories are validated and posted in;
    ``advance_ledgers`` names the ledger each category's grants sit on.
    """

    priority: tuple[str, ...] = DEFAULT_PRIORITY
    advance_ledgers: Mapping[str, str] = field(
        default_factory=lambda: {
            AdvanceCategory.LOAN_ADVANCE.value: "Loan Advance to Farmers",
            AdvanceCategory.CF_ADVANCE.value: "CF Advance to Farmers",
            AdvanceCategory.CASH_ADVANCE.value: "Cash Advance to Farmers",
        }
    )
    welfare_ledger: str = "Farmers Welfare Fund"
    welfare_amount: Decimal = Decimal("20")
    max_conflict_retries: int = 3

    def __post_init__(self) -> None:
        missing = [c for c in self.priority if c not in self.advance_ledgers]
        if missing:
            raise ValueError(f"No advance ledger configured for {missing}")
        if len(set(self.priority)) != len(self.priority):
            raise ValueError(f"Duplicate category in priority {self.priority}")
        if self.max_conflict_retries < 1:
            raise ValueError("max_conflict_retries must be at least 1")

    def advance_ledger(self, category: str) -> str:
        if category not in self.advance_ledgers:
            raise UnknownOutstandingCategoryError(category)
        return self.advance_ledgers[category]
