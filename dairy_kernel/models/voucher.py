"""
Module: dairy_kernel.models.voucher
Responsibility: ORM persistence for vouchers (headers) and postings (lines).
Architecture position: Kernel > Models.  May import from db/ and domain/values.

Invariants enforced:
    - (voucher_type, voucher_number) is unique (uq_voucher_type_number).
    - Per voucher, sum(Dr) == sum(Cr) within tolerance.  Enforced by
      VoucherService before insert; is_balanced is the read-side check.
    - Posting.amount > 0 (ck_posting_amount_positive); side carries the sign.
    - Postings are immutable once written.  The only voucher change allowed
      is the one-way Active -> Cancelled flip (db/immutability.py).
    - Cancelled vouchers keep their postings; every balance query excludes
      them by joining on Voucher.status.

Ordering:
    Postings are ordered by (posting_date, voucher_seq, line_seq).
    voucher_seq is the global insertion order allocated by SequenceService
    and copied onto every line so a single index serves ledger scans.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dairy_kernel.db.base import TrackedBase, UUIDString
from dairy_kernel.db.types import within_tolerance
from dairy_kernel.domain.values import (
    OutstandingEffect,
    Side,
    VoucherStatus,
    VoucherType,
    signed,
)


class Voucher(TrackedBase):
    """
    A dated accounting document grouping balanced postings.

    voucher_type is a discriminant only: every type shares the same posting
    shape.  A correction is a new voucher whose reversal_of_id points at the
    voucher it reverses.
    """

    __tablename__ = "vouchers"

    __table_args__ = (
        UniqueConstraint(
            "voucher_type", "voucher_number", name="uq_voucher_type_number"
        ),
        UniqueConstraint("seq", name="uq_voucher_seq"),
        Index("idx_voucher_date", "voucher_date"),
        Index("idx_voucher_status", "status"),
        Index("idx_voucher_reference", "reference_type", "reference_id"),
    )

    voucher_type: Mapped[VoucherType] = mapped_column(String(20), nullable=False)

    voucher_number: Mapped[str] = mapped_column(String(50), nullable=False)

    voucher_date: Mapped[date] = mapped_column(nullable=False)

    status: Mapped[VoucherStatus] = mapped_column(
        String(20),
        default=VoucherStatus.ACTIVE,
        nullable=False,
    )

    narration: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # Collaborator document this voucher was raised for (Sales, Purchase, ...)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("vouchers.id"),
        nullable=True,
    )

    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    cancellation_reason: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    postings: Mapped[list["Posting"]] = relationship(
        back_populates="voucher",
        lazy="selectin",
        order_by="Posting.line_seq",
    )

    reversal_of: Mapped["Voucher | None"] = relationship(
        remote_side="Voucher.id",
        foreign_keys=[reversal_of_id],
    )

    def __repr__(self) -> str:
        return f"<Voucher {self.voucher_type} {self.voucher_number} status={self.status}>"

    @property
    def is_active(self) -> bool:
        return self.status == VoucherStatus.ACTIVE

    @property
    def is_cancelled(self) -> bool:
        return self.status == VoucherStatus.CANCELLED

    @property
    def total_debits(self) -> Decimal:
        return sum(
            (p.amount for p in self.postings if p.side == Side.DR),
            Decimal("0"),
        )

    @property
    def total_credits(self) -> Decimal:
        return sum(
            (p.amount for p in self.postings if p.side == Side.CR),
            Decimal("0"),
        )

    @property
    def is_balanced(self) -> bool:
        return within_tolerance(self.total_debits, self.total_credits)


class Posting(TrackedBase):
    """
    One side of a double entry: a positive amount against one ledger.

    Optional outstanding tags mark postings that grant or recover a farmer
    advance; the resolver derives outstanding from them.
    """

    __tablename__ = "postings"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_posting_amount_positive"),
        Index("idx_posting_ledger_order", "ledger_id", "posting_date", "voucher_seq"),
        Index("idx_posting_voucher", "voucher_id"),
        Index("idx_posting_outstanding", "farmer_id", "outstanding_category"),
    )

    voucher_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("vouchers.id"),
        nullable=False,
    )

    ledger_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledgers.id"),
        nullable=False,
    )

    # Copied from the voucher so ledger scans never need the header
    posting_date: Mapped[date] = mapped_column(nullable=False)
    voucher_seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    side: Mapped[Side] = mapped_column(String(2), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    narration: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    line_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    farmer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    outstanding_category: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    outstanding_effect: Mapped[OutstandingEffect | None] = mapped_column(
        String(20),
        nullable=True,
    )

    voucher: Mapped["Voucher"] = relationship(back_populates="postings")

    ledger: Mapped["Ledger"] = relationship()  # noqa: F821

    def __repr__(self) -> str:
        return f"<Posting {self.side} {self.amount} ledger={self.ledger_id}>"

    @property
    def is_debit(self) -> bool:
        return self.side == Side.DR

    @property
    def signed_amount(self) -> Decimal:
        """Dr-positive amount."""
        return signed(self.amount, self.side)
