"""Kernel services: the write side of the ledger."""

from dairy_kernel.services.ledger_registry import LedgerRegistry
from dairy_kernel.services.outstanding_guard import OutstandingGuard
from dairy_kernel.services.outstanding_service import (
    DeductionRequest,
    DeductionResult,
    OutstandingResolver,
    OutstandingService,
    WelfareStatus,
)
from dairy_kernel.services.sequence_service import SequenceService
from dairy_kernel.services.voucher_service import VoucherService

__all__ = [
    "DeductionRequest",
    "DeductionResult",
    "LedgerRegistry",
    "OutstandingGuard",
    "OutstandingResolver",
    "OutstandingService",
    "SequenceService",
    "VoucherService",
    "WelfareStatus",
]
