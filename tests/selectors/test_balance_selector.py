"""
Tests for the balance accumulator (dairy_kernel/selectors/balance_selector.py).

Every figure is derived from postings of Active vouchers; these tests pin
the opening/period/closing arithmetic, window continuity, abnormal
balances and the batched abstract.
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from dairy_kernel.domain.dtos import LineSpec
from dairy_kernel.domain.values import BalanceAmount, LedgerType, Side, VoucherType
from dairy_kernel.exceptions import InvalidPeriodError, UnknownLedgerError
from dairy_kernel.selectors.balance_selector import VARIOUS

APRIL_START = date(2024, 4, 1)
APRIL_END = date(2024, 4, 30)


def _dr(amount) -> BalanceAmount:
    return BalanceAmount(Decimal(amount), Side.DR)


def _cr(amount) -> BalanceAmount:
    return BalanceAmount(Decimal(amount), Side.CR)


@pytest.fixture
def main_cash(registry, chart):
    """Asset ledger brought forward at 1000 Dr."""
    return registry.register_ledger(
        "Main Cash", LedgerType.ASSET, "Cash", opening_balance="1000"
    )


class TestSingleLedger:
    def test_opening_movement_closing(self, balances, post, main_cash):
        """1000 Dr brought forward, +500, -200 closes at 1300 Dr."""
        post("Main Cash", "Milk Sales A/c", "500", date(2024, 4, 5))
        post("Establishment Charges", "Main Cash", "200", date(2024, 4, 10))

        snap = balances.snapshot(main_cash.id, APRIL_START, APRIL_END)

        assert snap.opening == _dr("1000")
        assert snap.period_debit == Decimal("500")
        assert snap.period_credit == Decimal("200")
        assert snap.closing == _dr("1300")
        assert snap.has_activity

    def test_period_totals_are_gross(self, balances, post, main_cash):
        post("Main Cash", "Milk Sales A/c", "500", date(2024, 4, 5))
        post("Milk Sales A/c", "Main Cash", "500", date(2024, 4, 6))

        totals = balances.period_totals(main_cash.id, APRIL_START, APRIL_END)
        assert totals.debit == Decimal("500")
        assert totals.credit == Decimal("500")

    def test_adjacent_windows_are_continuous(self, balances, post, main_cash):
        post("Main Cash", "Milk Sales A/c", "500", date(2024, 4, 5))
        post("Establishment Charges", "Main Cash", "200", date(2024, 4, 10))
        post("Main Cash", "Trade Income", "75", date(2024, 4, 20))

        for split in (date(2024, 4, 5), date(2024, 4, 9), date(2024, 4, 10)):
            first = balances.snapshot(main_cash.id, APRIL_START, split)
            second = balances.snapshot(main_cash.id, split + timedelta(days=1), APRIL_END)
            assert first.closing == second.opening
            assert first.closing == balances.opening_balance(
                main_cash.id, split + timedelta(days=1)
            )

    def test_postings_on_boundaries_are_inclusive(self, balances, post, main_cash):
        post("Main Cash", "Milk Sales A/c", "10", APRIL_START)
        post("Main Cash", "Milk Sales A/c", "20", APRIL_END)

        snap = balances.snapshot(main_cash.id, APRIL_START, APRIL_END)
        assert snap.period_debit == Decimal("30")
        assert balances.opening_balance(main_cash.id, APRIL_START) == _dr("1000")

    def test_balance_as_of(self, balances, post, main_cash):
        post("Main Cash", "Milk Sales A/c", "500", date(2024, 4, 5))
        post("Establishment Charges", "Main Cash", "200", date(2024, 4, 10))

        assert balances.balance_as_of(main_cash.id, date(2024, 4, 7)) == _dr("1500")
        assert balances.closing_balance(main_cash.id, APRIL_START, date(2024, 4, 7)) == _dr(
            "1500"
        )

    def test_abnormal_balance_not_clamped(self, balances, post, chart):
        """Cash paid out with nothing in hand shows a Cr balance."""
        post("Establishment Charges", "Cash", "300", date(2024, 4, 3))

        snap = balances.snapshot(chart["Cash"].id, APRIL_START, APRIL_END)
        assert snap.closing == _cr("300")

    def test_untouched_ledger_zero_on_natural_side(self, balances, chart):
        snap = balances.snapshot(chart["Milk Sales A/c"].id, APRIL_START, APRIL_END)
        assert snap.opening == _cr("0")
        assert snap.closing == _cr("0")
        assert not snap.has_activity

    def test_credit_opening_balance(self, registry, balances, chart):
        ledger = registry.register_ledger(
            "Overdraft", LedgerType.ASSET, "Bank", opening_balance="250", opening_side=Side.CR
        )
        assert balances.opening_balance(ledger.id, APRIL_START) == _cr("250")

    def test_cancelled_voucher_excluded(self, balances, vouchers, post, main_cash):
        post("Main Cash", "Milk Sales A/c", "500", date(2024, 4, 5))
        mistake = post("Main Cash", "Milk Sales A/c", "40", date(2024, 4, 6))
        vouchers.cancel_voucher(mistake)

        snap = balances.snapshot(main_cash.id, APRIL_START, APRIL_END)
        assert snap.period_debit == Decimal("500")
        assert snap.closing == _dr("1500")

    def test_inverted_window_rejected(self, balances, main_cash):
        with pytest.raises(InvalidPeriodError):
            balances.snapshot(main_cash.id, APRIL_END, APRIL_START)

    def test_unknown_ledger_rejected(self, balances, chart):
        with pytest.raises(UnknownLedgerError):
            balances.snapshot(uuid4(), APRIL_START, APRIL_END)


class TestAbstract:
    """Batched snapshot of every active-in-history ledger."""

    @pytest.fixture
    def activity(self, post, chart):
        post("Cash", "Milk Sales A/c", "500", date(2024, 4, 5))
        post("Establishment Charges", "Cash", "200", date(2024, 4, 10))
        post("Cash", "Milk Sales A/c", "900", date(2024, 5, 2))

    def test_only_posted_or_brought_forward_ledgers(self, balances, activity):
        names = [s.ledger_name for s in balances.abstract_all(APRIL_START, APRIL_END)]
        assert names == ["Cash", "Establishment Charges", "Milk Sales A/c"]

    def test_later_postings_excluded_from_window(self, balances, activity, chart):
        rows = {s.ledger_name: s for s in balances.abstract_all(APRIL_START, APRIL_END)}
        assert rows["Cash"].closing == _dr("300")
        assert rows["Milk Sales A/c"].closing == _cr("500")

    def test_matches_single_ledger_snapshot(self, balances, activity, chart):
        for row in balances.abstract_all(date(2024, 4, 8), date(2024, 5, 31)):
            single = balances.snapshot(row.ledger_id, date(2024, 4, 8), date(2024, 5, 31))
            assert row == single

    def test_pagination(self, balances, activity):
        first = list(balances.abstract_all(APRIL_START, APRIL_END, offset=0, limit=2))
        rest = list(balances.abstract_all(APRIL_START, APRIL_END, offset=2, limit=2))
        assert [s.ledger_name for s in first] == ["Cash", "Establishment Charges"]
        assert [s.ledger_name for s in rest] == ["Milk Sales A/c"]

    def test_filter_by_ledger_ids(self, balances, activity, chart):
        rows = list(
            balances.abstract_all(APRIL_START, APRIL_END, ledger_ids=[chart["Cash"].id])
        )
        assert [s.ledger_name for s in rows] == ["Cash"]

    def test_brought_forward_ledger_included_without_postings(
        self, balances, activity, main_cash
    ):
        names = [s.ledger_name for s in balances.abstract_all(APRIL_START, APRIL_END)]
        assert "Main Cash" in names


class TestLedgerStatement:
    def test_running_balance_and_particulars(self, balances, vouchers, post, chart):
        post("Cash", "Milk Sales A/c", "500", date(2024, 4, 2), VoucherType.RECEIPT)
        vouchers.post_voucher(
            VoucherType.RECEIPT,
            date(2024, 4, 4),
            "RV-SPLIT",
            [
                LineSpec.dr("Cash", "300"),
                LineSpec.cr("Milk Sales A/c", "200"),
                LineSpec.cr("Trade Income", "100"),
            ],
        )
        post("Establishment Charges", "Cash", "200", date(2024, 4, 6), VoucherType.PAYMENT)

        statement = balances.ledger_statement(chart["Cash"].id, APRIL_START, APRIL_END)

        assert [line.particulars for line in statement.lines] == [
            "Milk Sales A/c",
            VARIOUS,
            "Establishment Charges",
        ]
        assert [line.balance for line in statement.lines] == [
            _dr("500"),
            _dr("800"),
            _dr("600"),
        ]
        assert statement.lines[-1].balance == statement.closing
        assert statement.lines[1].voucher_number == "RV-SPLIT"

    def test_contra_side_of_split_line(self, balances, vouchers, chart):
        """The single Cr line of a split receipt sees only the Dr contra."""
        vouchers.post_voucher(
            VoucherType.RECEIPT,
            date(2024, 4, 4),
            "RV-SPLIT",
            [
                LineSpec.dr("Cash", "300"),
                LineSpec.cr("Milk Sales A/c", "200"),
                LineSpec.cr("Trade Income", "100"),
            ],
        )
        statement = balances.ledger_statement(
            chart["Trade Income"].id, APRIL_START, APRIL_END
        )
        assert statement.lines[0].particulars == "Cash"
        assert statement.lines[0].balance == _cr("100")

    def test_lines_in_posting_order(self, balances, post, chart):
        post("Cash", "Milk Sales A/c", "10", date(2024, 4, 20))
        post("Cash", "Milk Sales A/c", "20", date(2024, 4, 5))
        post("Cash", "Milk Sales A/c", "30", date(2024, 4, 5))

        statement = balances.ledger_statement(chart["Cash"].id, APRIL_START, APRIL_END)
        assert [line.debit for line in statement.lines] == [
            Decimal("20"),
            Decimal("30"),
            Decimal("10"),
        ]

    def test_opening_carried_into_window(self, balances, post, chart):
        post("Cash", "Milk Sales A/c", "100", date(2024, 3, 31))
        post("Cash", "Milk Sales A/c", "50", date(2024, 4, 1))

        statement = balances.ledger_statement(chart["Cash"].id, APRIL_START, APRIL_END)
        assert statement.opening == _dr("100")
        assert statement.lines[0].balance == _dr("150")


class TestTrialBalance:
    def test_debits_equal_credits(self, balances, post, chart):
        post("Cash", "Milk Sales A/c", "500", date(2024, 4, 5))
        post("Cash", "Trade Income", "100", date(2024, 4, 6))
        post("Establishment Charges", "Cash", "200", date(2024, 4, 10))

        tb = balances.trial_balance(APRIL_END)

        rows = {r.ledger_name: (r.debit, r.credit) for r in tb.rows}
        assert rows == {
            "Cash": (Decimal("400"), Decimal("0")),
            "Establishment Charges": (Decimal("200"), Decimal("0")),
            "Milk Sales A/c": (Decimal("0"), Decimal("500")),
            "Trade Income": (Decimal("0"), Decimal("100")),
        }
        assert tb.total_debit == tb.total_credit == Decimal("600")
        assert tb.is_balanced

    def test_zero_balances_left_out(self, balances, post, chart):
        post("Cash", "Milk Sales A/c", "500", date(2024, 4, 5))
        post("Milk Sales A/c", "Cash", "500", date(2024, 4, 6))

        assert balances.trial_balance(APRIL_END).rows == ()
