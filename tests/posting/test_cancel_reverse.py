"""
Tests for voucher cancellation and reversal.

A cancelled voucher keeps its postings but stops counting; a reversal is a
new Journal voucher with every side flipped that points back at the
original.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from dairy_kernel.domain.values import (
    BalanceAmount,
    OutstandingEffect,
    Side,
    VoucherStatus,
    VoucherType,
)
from dairy_kernel.exceptions import (
    AlreadyCancelledError,
    AlreadyReversedError,
    OutstandingAlreadyRecoveredError,
    VoucherNotFoundError,
)
from dairy_kernel.models.outstanding import FarmerOutstandingLock
from dairy_kernel.models.voucher import Posting
from dairy_kernel.services.outstanding_service import DeductionRequest

APRIL_START = date(2024, 4, 1)
APRIL_END = date(2024, 4, 30)

FARMER = "F-101"
LOAN = "Loan Advance"
CF = "CF Advance"


class TestCancelVoucher:
    def test_cancel_flips_status(self, vouchers, post, deterministic_clock):
        voucher_id = post("Cash", "Milk Sales A/c", "500", date(2024, 4, 2))

        voucher = vouchers.cancel_voucher(voucher_id, "Entered twice")

        assert voucher.status == VoucherStatus.CANCELLED
        assert voucher.is_cancelled
        assert voucher.cancelled_at == deterministic_clock.now()
        assert voucher.cancellation_reason == "Entered twice"

    def test_postings_are_kept(self, session, vouchers, post):
        voucher_id = post("Cash", "Milk Sales A/c", "500", date(2024, 4, 2))
        vouchers.cancel_voucher(voucher_id)

        stored = session.execute(
            select(func.count()).select_from(Posting).where(Posting.voucher_id == voucher_id)
        ).scalar_one()
        assert stored == 2

    def test_cancelled_postings_stop_counting(self, vouchers, balances, post, chart):
        post("Cash", "Milk Sales A/c", "500", date(2024, 4, 2))
        mistake = post("Cash", "Milk Sales A/c", "200", date(2024, 4, 3))

        assert balances.balance_as_of(chart["Cash"].id, APRIL_END) == BalanceAmount(
            Decimal("700"), Side.DR
        )
        vouchers.cancel_voucher(mistake)
        assert balances.balance_as_of(chart["Cash"].id, APRIL_END) == BalanceAmount(
            Decimal("500"), Side.DR
        )

    def test_cancel_twice_rejected(self, vouchers, post):
        voucher_id = post("Cash", "Milk Sales A/c", "500", date(2024, 4, 2))
        vouchers.cancel_voucher(voucher_id)
        with pytest.raises(AlreadyCancelledError):
            vouchers.cancel_voucher(voucher_id)

    def test_cancel_unknown_rejected(self, vouchers, chart):
        with pytest.raises(VoucherNotFoundError):
            vouchers.cancel_voucher(uuid4())

    def test_cancel_logged(self, vouchers, post, captured_logs):
        voucher_id = post("Cash", "Milk Sales A/c", "500", date(2024, 4, 2))
        vouchers.cancel_voucher(voucher_id, "typo")
        cancelled = [r for r in captured_logs() if r["message"] == "voucher_cancelled"]
        assert cancelled[0]["voucher_id"] == str(voucher_id)
        assert cancelled[0]["reason"] == "typo"


class TestReverseVoucher:
    def test_reversal_mirrors_original(self, vouchers, post):
        original_id = post("Cash", "Milk Sales A/c", "500", date(2024, 4, 2))

        reversal_id = vouchers.reverse_voucher(original_id, date(2024, 4, 9), "JV-R1")

        reversal = vouchers.get_voucher(reversal_id)
        assert reversal.voucher_type == VoucherType.JOURNAL
        assert reversal.reversal_of_id == original_id
        assert reversal.narration.startswith("Reversal of")
        original = vouchers.get_voucher(original_id)
        for before, after in zip(original.postings, reversal.postings):
            assert after.ledger_id == before.ledger_id
            assert after.amount == before.amount
            assert Side(after.side) is Side(before.side).opposite
        # The original stays Active
        assert original.is_active

    def test_reversal_nets_balance_to_zero(self, vouchers, balances, post, chart):
        original_id = post("Cash", "Milk Sales A/c", "500", date(2024, 4, 2))
        vouchers.reverse_voucher(original_id, date(2024, 4, 9), "JV-R1")

        snap = balances.snapshot(chart["Cash"].id, APRIL_START, APRIL_END)
        assert snap.period_debit == Decimal("500")
        assert snap.period_credit == Decimal("500")
        assert snap.closing.is_zero

    def test_reverse_twice_rejected(self, vouchers, post):
        original_id = post("Cash", "Milk Sales A/c", "500", date(2024, 4, 2))
        vouchers.reverse_voucher(original_id, date(2024, 4, 9), "JV-R1")
        with pytest.raises(AlreadyReversedError):
            vouchers.reverse_voucher(original_id, date(2024, 4, 10), "JV-R2")

    def test_reverse_cancelled_rejected(self, vouchers, post):
        original_id = post("Cash", "Milk Sales A/c", "500", date(2024, 4, 2))
        vouchers.cancel_voucher(original_id)
        with pytest.raises(AlreadyCancelledError):
            vouchers.reverse_voucher(original_id, date(2024, 4, 9), "JV-R1")

    def test_original_can_be_reversed_again_after_reversal_cancelled(self, vouchers, post):
        original_id = post("Cash", "Milk Sales A/c", "500", date(2024, 4, 2))
        first = vouchers.reverse_voucher(original_id, date(2024, 4, 9), "JV-R1")
        vouchers.cancel_voucher(first)

        second = vouchers.reverse_voucher(original_id, date(2024, 4, 10), "JV-R2")
        assert vouchers.get_voucher(second).reversal_of_id == original_id


class TestRecoveredAdvances:
    """Cancelling or reversing a grant may only take back what is still owed."""

    @pytest.fixture
    def loan_grant(self, outstanding, chart):
        return outstanding.grant_advance(FARMER, LOAN, Decimal("300"), date(2024, 4, 2), "PV0001")

    def _recover(self, outstanding, amount, number="JV0001"):
        return outstanding.apply_payment_deductions(
            DeductionRequest(
                farmer_id=FARMER,
                payment_date=date(2024, 4, 15),
                voucher_number=number,
                deductions={LOAN: Decimal(amount)},
            )
        )

    def test_cancel_fully_recovered_grant_rejected(self, vouchers, outstanding, loan_grant):
        self._recover(outstanding, "300")

        with pytest.raises(OutstandingAlreadyRecoveredError) as exc_info:
            vouchers.cancel_voucher(loan_grant)

        assert exc_info.value.category == LOAN
        assert Decimal(exc_info.value.removing) == Decimal("300")
        assert Decimal(exc_info.value.available) == Decimal("0")
        assert vouchers.get_voucher(loan_grant).is_active
        assert outstanding.outstanding(FARMER)[LOAN] == Decimal("0")

    def test_cancel_partly_recovered_grant_rejected(self, vouchers, outstanding, loan_grant):
        self._recover(outstanding, "100")

        with pytest.raises(OutstandingAlreadyRecoveredError) as exc_info:
            vouchers.cancel_voucher(loan_grant)

        assert Decimal(exc_info.value.available) == Decimal("200")
        assert outstanding.outstanding(FARMER)[LOAN] == Decimal("200")

    def test_other_categories_still_deductible(self, vouchers, outstanding, loan_grant):
        self._recover(outstanding, "300")
        with pytest.raises(OutstandingAlreadyRecoveredError):
            vouchers.cancel_voucher(loan_grant)

        outstanding.grant_advance(FARMER, CF, Decimal("50"), date(2024, 4, 16), "PV0002")
        result = outstanding.apply_payment_deductions(
            DeductionRequest(
                farmer_id=FARMER,
                payment_date=date(2024, 4, 20),
                voucher_number="JV0002",
                deductions={CF: Decimal("50"), LOAN: Decimal("0")},
            )
        )
        assert result.outstanding_after[CF] == Decimal("0")
        assert result.outstanding_after[LOAN] == Decimal("0")

    def test_cancel_unrecovered_grant_allowed(
        self, session, vouchers, outstanding, loan_grant
    ):
        vouchers.cancel_voucher(loan_grant)

        assert outstanding.outstanding(FARMER)[LOAN] == Decimal("0")
        lock = session.execute(
            select(FarmerOutstandingLock).where(FarmerOutstandingLock.farmer_id == FARMER)
        ).scalar_one()
        assert lock.last_voucher_id == loan_grant

    def test_cancel_takes_farmer_lock(self, session, vouchers, outstanding, loan_grant):
        self._recover(outstanding, "100")
        lock = session.execute(
            select(FarmerOutstandingLock).where(FarmerOutstandingLock.farmer_id == FARMER)
        ).scalar_one()
        version = lock.version

        second = outstanding.grant_advance(
            FARMER, LOAN, Decimal("100"), date(2024, 4, 16), "PV0002"
        )
        vouchers.cancel_voucher(second)

        assert lock.version == version + 1
        assert outstanding.outstanding(FARMER)[LOAN] == Decimal("200")

    def test_reverse_recovered_grant_rejected(self, vouchers, outstanding, loan_grant):
        self._recover(outstanding, "300")

        with pytest.raises(OutstandingAlreadyRecoveredError):
            vouchers.reverse_voucher(loan_grant, date(2024, 4, 20), "JV-R1")

        assert vouchers.find_by_number(VoucherType.JOURNAL, "JV-R1") is None
        assert outstanding.outstanding(FARMER)[LOAN] == Decimal("0")

    def test_reverse_allowed_while_enough_is_owed(self, vouchers, outstanding, loan_grant):
        outstanding.grant_advance(FARMER, LOAN, Decimal("200"), date(2024, 4, 3), "PV0002")
        self._recover(outstanding, "200")

        reversal_id = vouchers.reverse_voucher(loan_grant, date(2024, 4, 20), "JV-R1")

        assert outstanding.outstanding(FARMER)[LOAN] == Decimal("0")
        flipped = vouchers.get_voucher(reversal_id).postings[0]
        assert flipped.outstanding_effect == OutstandingEffect.RECOVERY

    def test_reversing_a_recovery_restores_outstanding(
        self, vouchers, outstanding, loan_grant
    ):
        result = self._recover(outstanding, "120")
        vouchers.reverse_voucher(result.voucher_id, date(2024, 4, 20), "JV-R1")
        assert outstanding.outstanding(FARMER)[LOAN] == Decimal("300")
