"""
Module: dairy_kernel.models.sequence
Responsibility: Ordering sources backing SequenceService.
Architecture position: Kernel > Models.

PostgreSQL draws voucher order from the ``voucher_seq`` database sequence:
``nextval`` takes no row lock, so postings for unrelated farmers never wait
on one another.  SQLite has no sequences and serializes writers anyway, so
it keeps a named counter row.
"""

from sqlalchemy import BigInteger, Sequence, String
from sqlalchemy.orm import Mapped, mapped_column

from dairy_kernel.db.base import Base

# Created and dropped with the metadata on dialects that support sequences
VOUCHER_SEQUENCE = Sequence("voucher_seq", start=1, metadata=Base.metadata)


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is a named sequence with its current value.  Row-level locking
    keeps allocation monotonic where no database sequence is available.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
