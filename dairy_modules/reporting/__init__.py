"""
Financial Reporting Module (``dairy_modules.reporting``).

Responsibility
--------------
Read-only module that builds the society's statements from the ledger:
Trading Account, Profit & Loss, Balance Sheet, Receipts & Disbursement,
Day Book, Cash Book, Trial Balance and Ledger Abstract.  Ledgers are
placed in statement sections by ``StatementClassifier``.

Invariants enforced
-------------------
* No vouchers are posted by this module.
* Every statement derives from postings at call time; no stored balances.

Failure modes
-------------
* A ledger no classification rule matches is reported under Other, not
  rejected.
* A balance sheet that does not balance carries its ``imbalance``.
"""

from dairy_modules.reporting.classifier import StatementClassifier
from dairy_modules.reporting.config import ReportingConfig
from dairy_modules.reporting.models import (
    BalanceSheetReport,
    CashBookLine,
    CashBookReport,
    DayBookEntry,
    DayBookLine,
    DayBookReport,
    HeadTotal,
    LedgerAbstractReport,
    ProfitLossReport,
    ReceiptsDisbursementReport,
    ReportMetadata,
    ReportType,
    SectionLine,
    SectionTag,
    StatementSection,
    TradingAccountReport,
    TrialBalanceLineItem,
    TrialBalanceReport,
)
from dairy_modules.reporting.service import ReportingService

__all__ = [
    # Service
    "ReportingService",
    # Config
    "ReportingConfig",
    "StatementClassifier",
    # Models
    "ReportType",
    "SectionTag",
    "ReportMetadata",
    "SectionLine",
    "StatementSection",
    "TradingAccountReport",
    "ProfitLossReport",
    "BalanceSheetReport",
    "HeadTotal",
    "ReceiptsDisbursementReport",
    "DayBookLine",
    "DayBookEntry",
    "DayBookReport",
    "CashBookLine",
    "CashBookReport",
    "TrialBalanceLineItem",
    "TrialBalanceReport",
    "LedgerAbstractReport",
]
