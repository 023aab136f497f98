"""ORM models for the dairy ledger kernel."""

from dairy_kernel.models.ledger import Ledger
from dairy_kernel.models.outstanding import FarmerOutstandingLock
from dairy_kernel.models.sequence import SequenceCounter
from dairy_kernel.models.voucher import Posting, Voucher

__all__ = [
    "Ledger",
    "Voucher",
    "Posting",
    "FarmerOutstandingLock",
    "SequenceCounter",
]
