"""
Tests for SettlementService.

This module tests:
- Settlement writes entry, payment, amount_paid and status together
- Status transitions open -> partial -> paid
- Rejections for paid obligations and a concurrently paid row
- Reversal when the settling entry is deleted
- Audit repair of amount_paid drift
"""

import datetime
from decimal import Decimal

import pytest

from bookkeeping.exceptions import (
    ConcurrentModification,
    ConsistencyViolation,
    ErrorCode,
    InactiveAccount,
)
from bookkeeping.models import (
    ObligationKind,
    ObligationStatus,
    Payable,
    PayablePayment,
    Receivable,
    ReceivablePayment,
    Transaction,
    TransactionType,
)
from bookkeeping.services import SettlementService, ledger
from bookkeeping.tests.factories import PayableFactory, ReceivableFactory
from bookkeeping.types import ObligationParams, SettlementParams
from core.exceptions import ValidationError

DAY = datetime.date(2025, 1, 20)


def _pay(account, amount, **kwargs):
    return SettlementParams(account_id=account.id, amount=amount, paid_at=DAY, **kwargs)


@pytest.fixture
def payable(db, owner_id, contact):
    return PayableFactory(owner_id=owner_id, contact=contact, amount_total=Decimal("100"))


@pytest.fixture
def receivable(db, owner_id, contact):
    return ReceivableFactory(owner_id=owner_id, contact=contact, amount_total=Decimal("80"))


@pytest.mark.django_db
class TestSettle:
    """Tests for SettlementService.settle()."""

    def test_partial_payment(self, owner_id, account, payable):
        """A partial payment should write an expense and mark the payable partial."""
        payment = SettlementService.settle(owner_id, payable, _pay(account, "40"))

        payable.refresh_from_db()
        assert payable.amount_paid == Decimal("40")
        assert payable.status == ObligationStatus.PARTIAL
        assert payment.transaction.type == TransactionType.EXPENSE
        assert payment.transaction.account_id == account.id
        assert payment.transaction.amount == Decimal("40")
        assert payment.transaction.description == "Payment to Alex"

    def test_full_payment_marks_paid(self, owner_id, account, payable):
        """Payments adding up to the total should mark the payable paid."""
        SettlementService.settle(owner_id, payable, _pay(account, "40"))
        SettlementService.settle(owner_id, payable, _pay(account, "60", note="final"))

        payable.refresh_from_db()
        assert payable.status == ObligationStatus.PAID
        assert PayablePayment.objects.filter(payable=payable).count() == 2
        assert Transaction.objects.filter(description="Payment to Alex: final").exists()

    def test_receivable_settles_as_income(self, owner_id, account, receivable):
        """A receivable settlement should be written as income."""
        payment = SettlementService.settle(owner_id, receivable, _pay(account, "80"))

        assert payment.transaction.type == TransactionType.INCOME
        assert payment.transaction.description == "Payment from Alex"
        assert receivable.status == ObligationStatus.PAID

    def test_caller_copy_refreshed_in_place(self, owner_id, account, payable):
        """The caller's instance should reflect the new paid amount."""
        SettlementService.settle(owner_id, payable, _pay(account, "25"))

        assert payable.amount_paid == Decimal("25")
        assert payable.status == ObligationStatus.PARTIAL

    def test_already_paid_rejected(self, owner_id, account, payable):
        """Should reject settling an obligation already known to be paid."""
        SettlementService.settle(owner_id, payable, _pay(account, "100"))

        with pytest.raises(ValidationError) as exc_info:
            SettlementService.settle(owner_id, payable, _pay(account, "1"))

        assert exc_info.value.error_code == ErrorCode.OBLIGATION_ALREADY_PAID

    def test_paid_between_read_and_lock(self, owner_id, account, payable):
        """
        The caller's stale copy says open, the locked row says paid.

        Why it matters: Without the locked re-read the obligation would be
        paid twice.
        """
        stale = Payable.objects.get(pk=payable.pk)
        SettlementService.settle(owner_id, payable, _pay(account, "100"))

        with pytest.raises(ConcurrentModification):
            SettlementService.settle(owner_id, stale, _pay(account, "100"))

        assert PayablePayment.objects.count() == 1

    def test_stale_paid_copy_settles_after_total_raised(self, owner_id, account, payable):
        """Should decide from the locked row when the caller's paid copy is stale."""
        SettlementService.settle(owner_id, payable, _pay(account, "100"))
        assert payable.status == ObligationStatus.PAID

        SettlementService.update_obligation(owner_id, payable, amount_total=Decimal("150"))
        SettlementService.settle(owner_id, payable, _pay(account, "50"))

        payable.refresh_from_db()
        assert payable.amount_paid == Decimal("150")
        assert payable.status == ObligationStatus.PAID
        assert PayablePayment.objects.filter(payable=payable).count() == 2

    def test_non_positive_amount_rejected(self, account):
        """Should reject a zero payment."""
        with pytest.raises(ValidationError):
            _pay(account, "0")

    def test_inactive_account_rolls_back(self, owner_id, inactive_account, payable):
        """A bad paying account should leave nothing written."""
        with pytest.raises(InactiveAccount):
            SettlementService.settle(owner_id, payable, _pay(inactive_account, "10"))

        payable.refresh_from_db()
        assert payable.amount_paid == Decimal("0")
        assert not Transaction.objects.exists()
        assert not PayablePayment.objects.exists()


@pytest.mark.django_db
class TestReversal:
    """Tests for SettlementService.reverse_payment_for_entry()."""

    def test_deleting_entry_reverses_settlement(self, owner_id, account, payable):
        """Deleting a settlement entry should roll back the paid amount."""
        SettlementService.settle(owner_id, payable, _pay(account, "40"))
        second = SettlementService.settle(owner_id, payable, _pay(account, "60"))
        assert Payable.objects.get(pk=payable.pk).status == ObligationStatus.PAID

        ledger.delete_transaction(owner_id, second.transaction_id)

        payable.refresh_from_db()
        assert payable.amount_paid == Decimal("40")
        assert payable.status == ObligationStatus.PARTIAL
        assert not PayablePayment.objects.filter(pk=second.pk).exists()
        SettlementService.verify_obligation(payable)

    def test_reversal_of_receivable(self, owner_id, account, receivable):
        """Should reverse a receivable settlement back to open."""
        payment = SettlementService.settle(owner_id, receivable, _pay(account, "30"))

        ledger.delete_transaction(owner_id, payment.transaction_id)

        receivable.refresh_from_db()
        assert receivable.amount_paid == Decimal("0")
        assert receivable.status == ObligationStatus.OPEN
        assert not ReceivablePayment.objects.exists()

    def test_entry_without_payment_reverses_nothing(self, owner_id, account):
        """An entry that settles nothing should return None."""
        entry = Transaction.objects.create(
            owner_id=owner_id,
            account=account,
            type=TransactionType.INCOME,
            amount=Decimal("5"),
            transaction_date=DAY,
        )

        assert SettlementService.reverse_payment_for_entry(entry) is None


@pytest.mark.django_db
class TestConsistency:
    """Tests for obligation verification and audit."""

    def test_verify_detects_drift(self, owner_id, account, payable):
        """Should raise ConsistencyViolation when amount_paid drifts."""
        SettlementService.settle(owner_id, payable, _pay(account, "40"))
        Payable.objects.filter(pk=payable.pk).update(amount_paid=Decimal("55"))
        payable.refresh_from_db()

        with pytest.raises(ConsistencyViolation) as exc_info:
            SettlementService.verify_obligation(payable)

        assert exc_info.value.expected == Decimal("40")
        assert exc_info.value.actual == Decimal("55")

    def test_audit_repairs_from_payments(self, owner_id, account, payable):
        """Should rewrite amount_paid and status from the payment rows."""
        SettlementService.settle(owner_id, payable, _pay(account, "40"))
        Payable.objects.filter(pk=payable.pk).update(
            amount_paid=Decimal("100"), status=ObligationStatus.PAID
        )

        repaired = SettlementService.audit_obligations(ObligationKind.PAYABLE)

        payable.refresh_from_db()
        assert repaired == 1
        assert payable.amount_paid == Decimal("40")
        assert payable.status == ObligationStatus.PARTIAL

    def test_audit_leaves_consistent_rows(self, owner_id, account, receivable):
        """Consistent obligations should not be counted as repaired."""
        SettlementService.settle(owner_id, receivable, _pay(account, "10"))

        assert SettlementService.audit_obligations("receivable") == 0


@pytest.mark.django_db
class TestObligations:
    """Tests for obligation creation and editing."""

    def test_create_receivable(self, owner_id, contact):
        """Should create an open receivable with a lowercased currency."""
        receivable = SettlementService.create_obligation(
            owner_id,
            "receivable",
            ObligationParams(contact_id=contact.id, amount_total="45", currency="EUR"),
        )

        assert isinstance(receivable, Receivable)
        assert receivable.status == ObligationStatus.OPEN
        assert receivable.currency == "eur"

    def test_update_total_rederives_status(self, owner_id, account, payable):
        """Lowering the total to the paid amount should mark it paid."""
        SettlementService.settle(owner_id, payable, _pay(account, "40"))

        updated = SettlementService.update_obligation(
            owner_id, payable, amount_total=Decimal("40")
        )

        assert updated.status == ObligationStatus.PAID

    def test_unknown_contact_rejected(self, owner_id):
        """Should reject a contact the owner does not have."""
        with pytest.raises(ValidationError):
            SettlementService.create_obligation(
                owner_id,
                "payable",
                ObligationParams(contact_id=999999, amount_total="10"),
            )
