"""Read-only selectors over vouchers and postings."""

from dairy_kernel.selectors.balance_selector import (
    BalanceSelector,
    LedgerStatement,
    StatementLine,
    TrialBalance,
    TrialBalanceRow,
)
from dairy_kernel.selectors.posting_selector import (
    PostingLine,
    PostingSelector,
    PostingSequence,
)

__all__ = [
    "BalanceSelector",
    "LedgerStatement",
    "StatementLine",
    "TrialBalance",
    "TrialBalanceRow",
    "PostingLine",
    "PostingSelector",
    "PostingSequence",
]
