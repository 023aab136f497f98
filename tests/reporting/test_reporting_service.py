"""
End-to-end statement tests for ReportingService.

One April 2024 book is posted through the voucher service and every report
is checked against hand-worked figures:

    04-01  Cash               / Share Capital          10000
    04-02  Bank               / Cash                    4000  (contra)
    04-05  Milk Purchase A/c  / Cash                    5000
    04-10  Bank               / Milk Sales A/c          9000
    04-12  Trade Expenses     / Cash                     500
    04-15  Cash               / Miscellaneous Income     300
    04-20  Establishment Ch.  / Bank                     700

Cash closes at 800 Dr, Bank at 12300 Dr; gross profit 3500, net profit 3100.
"""

from datetime import date
from decimal import Decimal

import pytest

from dairy_kernel.domain.values import BalanceAmount, Side
from dairy_kernel.exceptions import InvalidPeriodError, UnknownLedgerError
from dairy_modules.reporting.config import ReportingConfig
from dairy_modules.reporting.models import ReportType, SectionTag
from dairy_modules.reporting.service import ReportingService

APRIL_START = date(2024, 4, 1)
APRIL_END = date(2024, 4, 30)


@pytest.fixture
def april_book(post):
    post("Cash", "Share Capital", "10000", date(2024, 4, 1))
    post("Bank", "Cash", "4000", date(2024, 4, 2))
    post("Milk Purchase A/c", "Cash", "5000", date(2024, 4, 5))
    post("Bank", "Milk Sales A/c", "9000", date(2024, 4, 10))
    post("Trade Expenses", "Cash", "500", date(2024, 4, 12))
    post("Cash", "Miscellaneous Income", "300", date(2024, 4, 15))
    post("Establishment Charges", "Bank", "700", date(2024, 4, 20))


def _lines(section) -> dict[str, Decimal]:
    return {line.ledger_name: line.amount for line in section.lines}


class TestTradingAccount:
    def test_gross_profit(self, reporting, april_book):
        report = reporting.trading_account(APRIL_START, APRIL_END)

        assert _lines(report.purchases) == {"Milk Purchase A/c": Decimal("5000")}
        assert _lines(report.trade_expenses) == {"Trade Expenses": Decimal("500")}
        assert _lines(report.sales) == {"Milk Sales A/c": Decimal("9000")}
        assert report.trade_income.lines == ()
        assert report.gross_profit == Decimal("3500")
        assert report.gross_loss == Decimal("0")
        assert report.debit_total == report.credit_total == Decimal("9000")

    def test_gross_loss_before_sales(self, reporting, april_book):
        report = reporting.trading_account(APRIL_START, date(2024, 4, 9))

        assert report.gross_profit == Decimal("0")
        assert report.gross_loss == Decimal("5000")
        assert report.debit_total == report.credit_total

    def test_closing_stock_on_credit_side(self, reporting, april_book):
        report = reporting.trading_account(
            APRIL_START, APRIL_END, closing_stock=Decimal("1000")
        )
        assert report.gross_profit == Decimal("4500")
        assert report.credit_total == Decimal("10000")

    def test_metadata(self, reporting, april_book):
        report = reporting.trading_account(APRIL_START, APRIL_END)

        assert report.metadata.report_type == ReportType.TRADING_ACCOUNT
        assert report.metadata.period_start == APRIL_START
        assert report.metadata.period_end == APRIL_END
        assert report.metadata.generated_at.startswith("2024-04-15T10:00:00")

    def test_only_window_movement_counts(self, reporting, post, april_book):
        post("Bank", "Milk Sales A/c", "2000", date(2024, 5, 3))
        report = reporting.trading_account(APRIL_START, APRIL_END)
        assert report.sales.total == Decimal("9000")


class TestProfitAndLoss:
    def test_net_profit(self, reporting, april_book):
        report = reporting.profit_and_loss(APRIL_START, APRIL_END)

        assert report.gross_profit == Decimal("3500")
        assert _lines(report.income) == {"Miscellaneous Income": Decimal("300")}
        assert _lines(report.expenses) == {"Establishment Charges": Decimal("700")}
        assert report.total_income == Decimal("3800")
        assert report.total_expense == Decimal("700")
        assert report.net_profit == Decimal("3100")
        assert not report.is_loss

    def test_net_loss_carries_gross_loss(self, reporting, april_book):
        report = reporting.profit_and_loss(APRIL_START, date(2024, 4, 9))

        assert report.gross_loss == Decimal("5000")
        assert report.net_profit == Decimal("-5000")
        assert report.is_loss


class TestBalanceSheet:
    def test_balances(self, reporting, april_book):
        report = reporting.balance_sheet(APRIL_END)

        assert _lines(report.assets) == {
            "Bank": Decimal("12300"),
            "Cash": Decimal("800"),
        }
        assert _lines(report.capital) == {"Share Capital": Decimal("10000")}
        assert report.liabilities.total == Decimal("0")
        assert report.net_profit == Decimal("3100")
        assert report.total_assets == Decimal("13100")
        assert report.total_liabilities_and_capital == Decimal("13100")
        assert report.imbalance == Decimal("0")
        assert report.is_balanced
        assert report.unclassified == ()

    def test_as_of_mid_month(self, reporting, april_book):
        report = reporting.balance_sheet(date(2024, 4, 2))

        assert _lines(report.assets) == {
            "Bank": Decimal("4000"),
            "Cash": Decimal("6000"),
        }
        assert report.net_profit == Decimal("0")
        assert report.is_balanced

    def test_missing_rule_reports_imbalance(
        self, session, deterministic_clock, reporting_config, april_book, captured_logs
    ):
        rules = tuple(r for r in reporting_config.rules if r.tag != "Assets")
        service = ReportingService(
            session,
            clock=deterministic_clock,
            config=ReportingConfig(rules=rules),
        )

        report = service.balance_sheet(APRIL_END)

        assert not report.is_balanced
        assert report.total_assets == Decimal("0")
        assert report.imbalance == Decimal("-13100")
        assert {line.ledger_name for line in report.unclassified} == {"Bank", "Cash"}
        warning = next(
            r for r in captured_logs() if r["message"] == "statement_imbalance"
        )
        assert Decimal(warning["imbalance"]) == Decimal("-13100")
        assert sorted(warning["unclassified"]) == ["Bank", "Cash"]


class TestTrialBalance:
    def test_totals_agree(self, reporting, april_book):
        report = reporting.trial_balance(APRIL_END)

        assert len(report.lines) == 8
        assert report.total_debit == report.total_credit == Decimal("19300")
        assert report.difference == Decimal("0")
        assert report.is_balanced

    def test_lines_carry_section(self, reporting, april_book):
        tags = {line.ledger_name: line.tag for line in reporting.trial_balance(APRIL_END).lines}

        assert tags["Cash"] is SectionTag.ASSETS
        assert tags["Milk Purchase A/c"] is SectionTag.PURCHASES
        assert tags["Miscellaneous Income"] is SectionTag.INCOME
        assert tags["Share Capital"] is SectionTag.CAPITAL


class TestReceiptsAndDisbursement:
    def test_totals_and_closing(self, reporting, april_book):
        report = reporting.receipts_and_disbursement(APRIL_START, APRIL_END)

        assert report.cash_ledgers == ("Bank", "Cash")
        assert report.opening_balance == BalanceAmount(Decimal("0"), Side.DR)
        assert report.total_receipts == Decimal("23300")
        assert report.total_payments == Decimal("10200")
        assert report.closing_balance == BalanceAmount(Decimal("13100"), Side.DR)

    def test_grouped_by_head(self, reporting, april_book):
        report = reporting.receipts_and_disbursement(APRIL_START, APRIL_END)

        receipts = {h.head: h.amount for h in report.receipts}
        assert receipts == {
            "Cash": Decimal("4000"),
            "Milk Sales A/c": Decimal("9000"),
            "Miscellaneous Income": Decimal("300"),
            "Share Capital": Decimal("10000"),
        }
        payments = {h.head: (h.tag, h.amount) for h in report.payments}
        assert payments["Bank"] == (SectionTag.ASSETS, Decimal("4000"))
        assert payments["Milk Purchase A/c"] == (SectionTag.PURCHASES, Decimal("5000"))

    def test_opening_from_earlier_month(self, reporting, april_book):
        report = reporting.receipts_and_disbursement(date(2024, 5, 1), date(2024, 5, 31))

        assert report.opening_balance == BalanceAmount(Decimal("13100"), Side.DR)
        assert report.receipts == ()
        assert report.closing_balance == report.opening_balance


class TestDayBook:
    def test_every_voucher_in_order(self, reporting, april_book):
        report = reporting.day_book(APRIL_START, APRIL_END)

        assert [e.voucher_number for e in report.entries] == [
            f"T{n:05d}" for n in range(1, 8)
        ]
        assert report.total_debit == report.total_credit == Decimal("29500")
        assert report.total_receipts == Decimal("23300")
        assert report.total_payments == Decimal("10200")

    def test_contra_counts_both_ways(self, reporting, april_book):
        report = reporting.day_book(date(2024, 4, 2), date(2024, 4, 2))

        (entry,) = report.entries
        assert entry.cash_receipt == entry.cash_payment == Decimal("4000")
        assert [line.ledger_name for line in entry.lines] == ["Bank", "Cash"]
        assert entry.total == Decimal("4000")

    def test_cash_opening_and_closing(self, reporting, april_book):
        report = reporting.day_book(date(2024, 4, 5), date(2024, 4, 10))

        assert report.cash_opening == BalanceAmount(Decimal("10000"), Side.DR)
        assert report.cash_closing == BalanceAmount(Decimal("14000"), Side.DR)

    def test_cancelled_voucher_left_out(self, reporting, vouchers, post, april_book):
        vouchers.cancel_voucher(post("Cash", "Trade Income", "50", date(2024, 4, 25)))
        assert len(reporting.day_book(APRIL_START, APRIL_END).entries) == 7


class TestCashBook:
    def test_default_cash_ledger(self, reporting, april_book):
        report = reporting.cash_book(APRIL_START, APRIL_END)

        assert report.ledger_name == "Cash"
        assert [line.amount for line in report.receipts] == [
            Decimal("10000"),
            Decimal("300"),
        ]
        assert [line.particulars for line in report.payments] == [
            "Bank",
            "Milk Purchase A/c",
            "Trade Expenses",
        ]
        assert report.total_receipts == Decimal("10300")
        assert report.total_payments == Decimal("9500")
        assert report.closing_balance == BalanceAmount(Decimal("800"), Side.DR)

    def test_bank_book(self, reporting, april_book):
        report = reporting.cash_book(APRIL_START, APRIL_END, ledger_name="Bank")
        assert report.closing_balance == BalanceAmount(Decimal("12300"), Side.DR)

    def test_unknown_ledger(self, reporting, april_book):
        with pytest.raises(UnknownLedgerError):
            reporting.cash_book(APRIL_START, APRIL_END, ledger_name="Petty Cash")


class TestLedgerAbstract:
    def test_all_rows_and_totals(self, reporting, april_book):
        report = reporting.ledger_abstract(APRIL_START, APRIL_END)

        assert len(report.rows) == 8
        assert report.period_debit == report.period_credit == Decimal("29500")
        assert report.closing_debit == report.closing_credit == Decimal("19300")
        assert report.opening_debit == report.opening_credit == Decimal("0")

    def test_paged(self, session, deterministic_clock, reporting_config, april_book):
        config = ReportingConfig(rules=reporting_config.rules, abstract_page_size=3)
        service = ReportingService(session, clock=deterministic_clock, config=config)

        pages = [service.ledger_abstract(APRIL_START, APRIL_END, page=n) for n in range(3)]

        assert [len(p.rows) for p in pages] == [3, 3, 2]
        names = [row.ledger_name for p in pages for row in p.rows]
        assert names == sorted(names)
        assert len(set(names)) == 8


class TestPeriods:
    def test_inverted_window_rejected(self, reporting, chart):
        with pytest.raises(InvalidPeriodError):
            reporting.trading_account(APRIL_END, APRIL_START)
        with pytest.raises(InvalidPeriodError):
            reporting.day_book(APRIL_END, APRIL_START)

    def test_resolve_period_uses_clock(self, reporting):
        month = reporting.resolve_period("thisMonth")
        assert (month.start, month.end) == (APRIL_START, APRIL_END)

        year = reporting.resolve_period("financialYear")
        assert (year.start, year.end) == (date(2024, 4, 1), date(2025, 3, 31))

    def test_unknown_preset_rejected(self, reporting):
        with pytest.raises(InvalidPeriodError):
            reporting.resolve_period("fortnight")


class TestToDict:
    def test_serializes_report(self, reporting, april_book):
        data = reporting.to_dict(reporting.balance_sheet(APRIL_END))

        assert data["metadata"]["report_type"] == "balance_sheet"
        assert data["metadata"]["as_of_date"] == "2024-04-30"
        assert Decimal(data["net_profit"]) == Decimal("3100")
        assert data["assets"]["tag"] == "Assets"
        assert [line["ledger_name"] for line in data["assets"]["lines"]] == ["Bank", "Cash"]
        assert data["is_balanced"] is True
