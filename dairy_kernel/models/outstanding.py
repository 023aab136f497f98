"""
Module: dairy_kernel.models.outstanding
Responsibility: Per-farmer serialization row for advance recovery.
Architecture position: Kernel > Models.

Invariants enforced:
    - One row per farmer (uq_outstanding_lock_farmer).
    - ``version`` is SQLAlchemy's version_id_col: an UPDATE whose version no
      longer matches raises StaleDataError, which the resolver turns into
      ConcurrentOutstandingConflictError and retries.

The outstanding amounts themselves are never stored; they are derived from
tagged postings on every read.
"""

from uuid import UUID

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from dairy_kernel.db.base import TrackedBase, UUIDString


class FarmerOutstandingLock(TrackedBase):
    __tablename__ = "farmer_outstanding_locks"

    __table_args__ = (
        UniqueConstraint("farmer_id", name="uq_outstanding_lock_farmer"),
    )

    farmer_id: Mapped[str] = mapped_column(String(64), nullable=False)

    version: Mapped[int] = mapped_column(nullable=False)

    # Last voucher that changed the farmer's outstanding under this lock
    last_voucher_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<FarmerOutstandingLock {self.farmer_id} v{self.version}>"
