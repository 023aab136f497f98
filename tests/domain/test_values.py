"""Tests for balance value objects (dairy_kernel/domain/values.py)."""

from decimal import Decimal

import pytest

from dairy_kernel.domain.values import (
    BalanceAmount,
    LedgerType,
    PeriodTotals,
    Side,
    natural_side,
    signed,
)


class TestNaturalSide:
    """Asset and Expense carry Dr balances; the rest carry Cr."""

    @pytest.mark.parametrize(
        "ledger_type,expected",
        [
            (LedgerType.ASSET, Side.DR),
            (LedgerType.EXPENSE, Side.DR),
            (LedgerType.LIABILITY, Side.CR),
            (LedgerType.CAPITAL, Side.CR),
            (LedgerType.INCOME, Side.CR),
        ],
    )
    def test_natural_side(self, ledger_type, expected):
        assert natural_side(ledger_type) is expected

    def test_accepts_stored_string(self):
        assert natural_side("Income") is Side.CR

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            natural_side("Stock")

    def test_opposite(self):
        assert Side.DR.opposite is Side.CR
        assert Side.CR.opposite is Side.DR

    def test_signed_is_debit_positive(self):
        assert signed(Decimal("10"), Side.DR) == Decimal("10")
        assert signed(Decimal("10"), "Cr") == Decimal("-10")


class TestBalanceAmount:
    """Side-aware balances: never negative, never clamped."""

    def test_zero_reports_on_natural_side(self):
        assert BalanceAmount.from_net(Decimal("0"), Side.CR) == BalanceAmount(
            Decimal("0"), Side.CR
        )
        assert BalanceAmount.zero(Side.DR).side is Side.DR

    def test_positive_net_is_debit(self):
        balance = BalanceAmount.from_net(Decimal("1300"), Side.DR)
        assert balance.amount == Decimal("1300")
        assert balance.side is Side.DR

    def test_abnormal_asset_moves_to_credit(self):
        """An overdrawn cash ledger shows a Cr balance, not a negative Dr."""
        balance = BalanceAmount.from_net(Decimal("-50"), Side.DR)
        assert balance.amount == Decimal("50")
        assert balance.side is Side.CR

    def test_apply_movement(self):
        opening = BalanceAmount(Decimal("1000"), Side.DR)
        after_receipt = opening.apply(Decimal("500"), Decimal("0"), Side.DR)
        closing = after_receipt.apply(Decimal("0"), Decimal("200"), Side.DR)
        assert closing == BalanceAmount(Decimal("1300"), Side.DR)

    def test_apply_across_zero_flips_side(self):
        opening = BalanceAmount(Decimal("100"), Side.CR)
        closing = opening.apply(Decimal("150"), Decimal("0"), Side.CR)
        assert closing == BalanceAmount(Decimal("50"), Side.DR)

    def test_net_debit(self):
        assert BalanceAmount(Decimal("75"), Side.CR).net_debit == Decimal("-75")

    def test_natural_amount(self):
        balance = BalanceAmount(Decimal("40"), Side.CR)
        assert balance.natural_amount(Side.CR) == Decimal("40")
        assert balance.natural_amount(Side.DR) == Decimal("-40")

    def test_str(self):
        assert str(BalanceAmount(Decimal("12.50"), Side.DR)) == "12.50 Dr"


class TestPeriodTotals:
    def test_addition_keeps_gross_figures(self):
        total = PeriodTotals(Decimal("100"), Decimal("40")) + PeriodTotals(
            Decimal("5"), Decimal("60")
        )
        assert total.debit == Decimal("105")
        assert total.credit == Decimal("100")

    def test_defaults_are_zero(self):
        assert PeriodTotals() == PeriodTotals(Decimal("0"), Decimal("0"))
