"""
Reporting Module Service (``dairy_modules.reporting.service``).

Responsibility
--------------
Bridges the balance accumulator (``BalanceSelector``, ``PostingSelector``)
to the pure builders in ``statements.py`` for every report: Trading
Account, Profit & Loss, Balance Sheet, Receipts & Disbursement, Day Book,
Cash Book, Trial Balance and Ledger Abstract.  Read-only: nothing is
posted.

Architecture position
---------------------
**Modules layer** -- thin glue.  Constructor: ``session`` + ``clock`` +
``config``.

Invariants enforced
-------------------
* Read-only -- no writes to vouchers or postings.
* Every figure is recomputed from postings for each call.
* A balance sheet that does not balance is returned with its imbalance
  and logged as ``statement_imbalance``; it is never raised.

Failure modes
-------------
* ``InvalidPeriodError`` when start > end, before any query runs.
* ``UnknownLedgerError`` for a cash book on a ledger that does not exist.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from dairy_kernel.domain.clock import Clock, SystemClock
from dairy_kernel.domain.date_filters import DatePreset, DateRange, resolve_date_range
from dairy_kernel.domain.values import BalanceSnapshot
from dairy_kernel.exceptions import InvalidPeriodError
from dairy_kernel.logging_config import get_logger
from dairy_kernel.models.ledger import Ledger
from dairy_kernel.selectors.balance_selector import BalanceSelector, VARIOUS
from dairy_kernel.selectors.posting_selector import PostingSelector
from dairy_kernel.services.ledger_registry import LedgerRegistry
from dairy_modules.reporting.classifier import StatementClassifier
from dairy_modules.reporting.config import ReportingConfig
from dairy_modules.reporting.models import (
    BalanceSheetReport,
    CashBookReport,
    DayBookReport,
    LedgerAbstractReport,
    ProfitLossReport,
    ReceiptsDisbursementReport,
    ReportMetadata,
    ReportType,
    SectionTag,
    TradingAccountReport,
    TrialBalanceReport,
)
from dairy_modules.reporting.statements import (
    build_balance_sheet,
    build_cash_book,
    build_day_book,
    build_ledger_abstract,
    build_profit_loss,
    build_receipts_disbursement,
    build_trading_account,
    build_trial_balance,
    combined_balance,
    render_to_dict,
)

logger = get_logger("modules.reporting.service")

ZERO = Decimal("0")


class ReportingService:
    """
    Financial statement generation service.

    Every public method returns a frozen report dataclass and is
    read-only.  Report logic lives in ``statements.py``; this class only
    loads snapshots and stamps metadata.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: ReportingConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or ReportingConfig.with_defaults()
        self._classifier = StatementClassifier(self._config.rules)
        self._balances = BalanceSelector(session)
        self._postings = PostingSelector(session)
        self._ledgers = LedgerRegistry(session)

    @property
    def classifier(self) -> StatementClassifier:
        return self._classifier

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _metadata(
        self,
        report_type: ReportType,
        period_start: date | None = None,
        period_end: date | None = None,
        as_of_date: date | None = None,
    ) -> ReportMetadata:
        return ReportMetadata(
            report_type=report_type,
            organisation=self._config.organisation,
            currency=self._config.currency,
            generated_at=self._clock.now().isoformat(),
            period_start=period_start,
            period_end=period_end,
            as_of_date=as_of_date,
        )

    @staticmethod
    def _check_window(start: date, end: date) -> None:
        if start > end:
            raise InvalidPeriodError(str(start), str(end))

    def _snapshots(self, start: date, end: date) -> list[BalanceSnapshot]:
        return list(self._balances.abstract_all(start, end))

    def _cash_ledgers(self) -> list[Ledger]:
        return [
            ledger
            for ledger in self._ledgers.list_ledgers()
            if ledger.category in self._config.cash_categories
        ]

    def resolve_period(
        self,
        preset: DatePreset | str,
        custom_start: date | None = None,
        custom_end: date | None = None,
    ) -> DateRange:
        """Turn a date preset into concrete dates using the service clock."""
        return resolve_date_range(
            preset,
            self._clock.today(),
            custom_start=custom_start,
            custom_end=custom_end,
            fy_start_month=self._config.financial_year_start_month,
        )

    # =========================================================================
    # Public API
    # =========================================================================

    def trading_account(
        self,
        start: date,
        end: date,
        opening_stock: Decimal = ZERO,
        closing_stock: Decimal = ZERO,
    ) -> TradingAccountReport:
        self._check_window(start, end)
        report = build_trading_account(
            self._snapshots(start, end),
            self._classifier,
            self._metadata(ReportType.TRADING_ACCOUNT, start, end),
            opening_stock=opening_stock,
            closing_stock=closing_stock,
        )
        logger.info(
            "trading_account_generated",
            extra={
                "period_start": start,
                "period_end": end,
                "gross_profit": str(report.gross_profit),
                "gross_loss": str(report.gross_loss),
            },
        )
        return report

    def profit_and_loss(
        self,
        start: date,
        end: date,
        opening_stock: Decimal = ZERO,
        closing_stock: Decimal = ZERO,
    ) -> ProfitLossReport:
        """Profit & Loss carrying the gross figure of the same window's Trading Account."""
        self._check_window(start, end)
        snapshots = self._snapshots(start, end)
        trading = build_trading_account(
            snapshots,
            self._classifier,
            self._metadata(ReportType.TRADING_ACCOUNT, start, end),
            opening_stock=opening_stock,
            closing_stock=closing_stock,
        )
        report = build_profit_loss(
            snapshots,
            self._classifier,
            self._metadata(ReportType.PROFIT_LOSS, start, end),
            trading,
        )
        logger.info(
            "profit_loss_generated",
            extra={
                "period_start": start,
                "period_end": end,
                "net_profit": str(report.net_profit),
            },
        )
        return report

    def balance_sheet(self, as_of: date) -> BalanceSheetReport:
        """
        Balance sheet as of a date.

        Returns:
            BalanceSheetReport; check ``is_balanced`` / ``imbalance``.
        """
        report = build_balance_sheet(
            self._snapshots(as_of, as_of),
            self._classifier,
            self._metadata(ReportType.BALANCE_SHEET, as_of_date=as_of),
            self._config.imbalance_tolerance,
        )
        if not report.is_balanced:
            logger.warning(
                "statement_imbalance",
                extra={
                    "as_of_date": as_of,
                    "total_assets": str(report.total_assets),
                    "total_liabilities_and_capital": str(
                        report.total_liabilities_and_capital
                    ),
                    "imbalance": str(report.imbalance),
                    "unclassified": [line.ledger_name for line in report.unclassified],
                },
            )
        logger.info(
            "balance_sheet_generated",
            extra={"as_of_date": as_of, "is_balanced": report.is_balanced},
        )
        return report

    def receipts_and_disbursement(self, start: date, end: date) -> ReceiptsDisbursementReport:
        self._check_window(start, end)
        statements = [
            self._balances.ledger_statement(ledger.id, start, end)
            for ledger in self._cash_ledgers()
        ]
        head_tags = {
            ledger.name: self._classifier.classify(ledger)
            for ledger in self._ledgers.list_ledgers()
        }
        head_tags[VARIOUS] = SectionTag.OTHER

        report = build_receipts_disbursement(
            statements,
            head_tags,
            self._metadata(ReportType.RECEIPTS_DISBURSEMENT, start, end),
        )
        logger.info(
            "receipts_disbursement_generated",
            extra={
                "period_start": start,
                "period_end": end,
                "total_receipts": str(report.total_receipts),
                "total_payments": str(report.total_payments),
            },
        )
        return report

    def day_book(self, start: date, end: date) -> DayBookReport:
        self._check_window(start, end)
        cash_ledgers = self._cash_ledgers()
        cash_ids = {ledger.id for ledger in cash_ledgers}
        snapshots = [self._balances.snapshot(lid, start, end) for lid in cash_ids]
        names = {ledger.id: ledger.name for ledger in self._ledgers.list_ledgers()}

        report = build_day_book(
            self._postings.postings_between(start, end),
            names,
            cash_ids,
            combined_balance(s.opening for s in snapshots),
            combined_balance(s.closing for s in snapshots),
            self._metadata(ReportType.DAY_BOOK, start, end),
        )
        logger.info(
            "day_book_generated",
            extra={
                "period_start": start,
                "period_end": end,
                "voucher_count": len(report.entries),
            },
        )
        return report

    def cash_book(
        self,
        start: date,
        end: date,
        ledger_name: str | None = None,
    ) -> CashBookReport:
        """Cash book of ``ledger_name`` (default: the configured cash ledger)."""
        self._check_window(start, end)
        ledger = self._ledgers.resolve(ledger_name or self._config.cash_book_ledger)
        report = build_cash_book(
            self._balances.ledger_statement(ledger.id, start, end),
            self._metadata(ReportType.CASH_BOOK, start, end),
        )
        logger.info(
            "cash_book_generated",
            extra={
                "ledger_name": ledger.name,
                "period_start": start,
                "period_end": end,
            },
        )
        return report

    def trial_balance(self, as_of: date) -> TrialBalanceReport:
        report = build_trial_balance(
            self._balances.trial_balance(as_of),
            self._classifier,
            self._metadata(ReportType.TRIAL_BALANCE, as_of_date=as_of),
        )
        logger.info(
            "trial_balance_generated",
            extra={
                "as_of_date": as_of,
                "line_count": len(report.lines),
                "is_balanced": report.is_balanced,
            },
        )
        return report

    def ledger_abstract(
        self,
        start: date,
        end: date,
        page: int | None = None,
    ) -> LedgerAbstractReport:
        """
        Ledger abstract for a window.

        ``page`` (0-based) limits the rows to one page of
        ``abstract_page_size``; the summary totals then cover that page only.
        """
        self._check_window(start, end)
        offset = limit = None
        if page is not None:
            limit = self._config.abstract_page_size
            offset = page * limit
        report = build_ledger_abstract(
            self._balances.abstract_all(start, end, offset=offset, limit=limit),
            self._metadata(ReportType.LEDGER_ABSTRACT, start, end),
        )
        logger.info(
            "ledger_abstract_generated",
            extra={
                "period_start": start,
                "period_end": end,
                "page": page,
                "row_count": len(report.rows),
            },
        )
        return report

    def to_dict(self, report: object) -> dict:
        return render_to_dict(report)
