"""
Module: dairy_kernel.models.ledger
Responsibility: ORM persistence for ledgers -- the target of every posting.
Architecture position: Kernel > Models.  May import from db/ and domain/values.

Invariants enforced:
    - name is unique (uq_ledger_name).
    - name, ledger_type and the opening balance are frozen once any posting
      references the ledger (db/immutability.py).
    - At most one ledger per linked entity (uq_ledger_linked_entity).

Failure modes:
    - UnknownLedgerError when a posting references a missing ledger.
    - LedgerInactiveError when a posting targets a deactivated ledger.
"""

from decimal import Decimal

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from dairy_kernel.db.base import TrackedBase
from dairy_kernel.domain.values import (
    BalanceAmount,
    LedgerType,
    LinkedEntityType,
    Side,
    natural_side,
    signed,
)


class Ledger(TrackedBase):
    """
    A named account in the dairy's chart of accounts.

    ``category`` is the free-text grouping the statement classifier keys on
    ("Cash", "Bank", "Sales A/c", "Trade Expenses", ...).  The opening
    balance is the amount brought forward when the ledger was set up; it
    counts as dated before every posting.
    """

    __tablename__ = "ledgers"

    __table_args__ = (
        UniqueConstraint("name", name="uq_ledger_name"),
        UniqueConstraint(
            "linked_entity_type",
            "linked_entity_id",
            name="uq_ledger_linked_entity",
        ),
        Index("idx_ledger_type", "ledger_type"),
        Index("idx_ledger_active", "is_active"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    ledger_type: Mapped[LedgerType] = mapped_column(String(20), nullable=False)

    category: Mapped[str] = mapped_column(String(100), nullable=False)

    parent_group: Mapped[str | None] = mapped_column(String(100), nullable=True)

    opening_balance: Mapped[Decimal] = mapped_column(
        default=Decimal("0"),
        nullable=False,
    )

    opening_side: Mapped[Side] = mapped_column(String(2), nullable=False)

    linked_entity_type: Mapped[LinkedEntityType | None] = mapped_column(
        String(20),
        nullable=True,
    )

    linked_entity_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Ledger {self.name} ({self.ledger_type})>"

    @property
    def natural_side(self) -> Side:
        return natural_side(self.ledger_type)

    @property
    def brought_forward(self) -> BalanceAmount:
        """Seeded opening balance as a signed balance on its recorded side."""
        net = signed(self.opening_balance, self.opening_side)
        return BalanceAmount.from_net(net, self.natural_side)
