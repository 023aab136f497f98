"""
DTOs -- Pure domain data transfer objects for voucher posting.

Responsibility:
    LineSpec is what callers hand to VoucherService.post_voucher: one line
    naming a ledger (by name or ID), a side and an amount, plus optional
    outstanding tags.  Validation of amounts and ledgers happens in the
    service so that every problem surfaces as a typed error.

Architecture position:
    Kernel > Domain -- pure, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from dairy_kernel.db.types import to_money
from dairy_kernel.domain.values import OutstandingEffect, Side


@dataclass(frozen=True)
class LineSpec:
    """
    Input for one posting line.

    ``ledger`` is a ledger name or a ledger ID.  ``farmer_id`` and
    ``outstanding_category`` are set together on lines that grant or
    recover a farmer advance.
    """

    ledger: str | UUID
    side: Side
    amount: Decimal
    narration: str | None = None
    farmer_id: str | None = None
    outstanding_category: str | None = None
    outstanding_effect: OutstandingEffect | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "side", Side(self.side))
        object.__setattr__(self, "amount", to_money(self.amount))
        if (self.farmer_id is None) != (self.outstanding_category is None):
            raise ValueError(
                "farmer_id and outstanding_category must be given together"
            )

    @classmethod
    def dr(cls, ledger: str | UUID, amount, **kwargs) -> LineSpec:
        return cls(ledger=ledger, side=Side.DR, amount=amount, **kwargs)

    @classmethod
    def cr(cls, ledger: str | UUID, amount, **kwargs) -> LineSpec:
        return cls(ledger=ledger, side=Side.CR, amount=amount, **kwargs)

    @property
    def is_tagged(self) -> bool:
        return self.farmer_id is not None
