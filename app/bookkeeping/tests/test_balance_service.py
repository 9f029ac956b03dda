"""
Tests for BalanceRecalculator.

This module tests:
- Running balances follow (transaction_date, id) order, including backdating
- Soft-deleted entries drop out of both recomputations
- Recomputation is idempotent and leaves unchanged rows alone
- Transfer in-leg balances are mirrored onto the out-leg
- Jobs are enqueued only after commit
"""

import datetime
from decimal import Decimal

import pytest
from django.db import transaction

from bookkeeping.models import Account, Transaction, TransactionType
from bookkeeping.services import BalanceRecalculator
from bookkeeping.tests.factories import AccountFactory, TransactionFactory


def _running(account):
    return [
        entry.running_balance
        for entry in Transaction.objects.filter(account=account).order_by(
            "transaction_date", "id"
        )
    ]


@pytest.mark.django_db
class TestRecalculateRunningBalances:
    """Tests for BalanceRecalculator.recalculate_running_balances()."""

    def test_backdated_insert_rewrites_later_rows(self, account):
        """
        A row dated between two existing rows shifts every later balance.

        Why it matters: Incremental patching would leave [100, 150, 130].
        """
        TransactionFactory(
            account=account, type=TransactionType.INCOME, amount=Decimal("100"),
            transaction_date=datetime.date(2025, 1, 2),
        )
        TransactionFactory(
            account=account, type=TransactionType.INCOME, amount=Decimal("50"),
            transaction_date=datetime.date(2025, 1, 5),
        )
        BalanceRecalculator.recalculate_running_balances(account.id)

        TransactionFactory(
            account=account, type=TransactionType.EXPENSE, amount=Decimal("20"),
            transaction_date=datetime.date(2025, 1, 3),
        )
        balance = BalanceRecalculator.recalculate_running_balances(account.id)

        assert _running(account) == [Decimal("100"), Decimal("80"), Decimal("130")]
        assert balance == Decimal("130")
        account.refresh_from_db()
        assert account.balance == Decimal("130")

    def test_same_day_entries_ordered_by_id(self, account):
        """Entries on the same date should be applied in insertion order."""
        day = datetime.date(2025, 1, 2)
        first = TransactionFactory(account=account, amount=Decimal("10"), transaction_date=day)
        second = TransactionFactory(
            account=account, type=TransactionType.EXPENSE, amount=Decimal("4"),
            transaction_date=day,
        )

        BalanceRecalculator.recalculate_running_balances(account.id)

        first.refresh_from_db()
        second.refresh_from_db()
        assert first.running_balance == Decimal("10")
        assert second.running_balance == Decimal("6")

    def test_empty_account_has_zero_balance(self, account):
        """Should reset a stale balance to zero when the account has no entries."""
        account.balance = Decimal("42")
        account.save()

        balance = BalanceRecalculator.recalculate_running_balances(account.id)

        assert balance == Decimal("0")
        account.refresh_from_db()
        assert account.balance == Decimal("0")

    def test_soft_deleted_entries_are_skipped(self, account):
        """Soft-deleted entries should not contribute to the balance."""
        TransactionFactory(account=account, amount=Decimal("100"))
        gone = TransactionFactory(
            account=account, type=TransactionType.EXPENSE, amount=Decimal("30"),
        )
        gone.soft_delete()

        assert BalanceRecalculator.recalculate_running_balances(account.id) == Decimal("100")

    def test_rerun_writes_nothing(self, account):
        """A second pass over unchanged rows should not save anything."""
        TransactionFactory(account=account, amount=Decimal("100"))
        BalanceRecalculator.recalculate_running_balances(account.id)

        before = list(Transaction.objects.filter(account=account).values("id", "updated_at"))
        BalanceRecalculator.recalculate_running_balances(account.id)
        after = list(Transaction.objects.filter(account=account).values("id", "updated_at"))

        assert before == after

    def test_transfer_in_leg_mirrored_on_out_leg(self, account, savings):
        """The out-leg should carry the destination's running balance."""
        TransactionFactory(account=savings, amount=Decimal("500"))
        out_leg = TransactionFactory(
            account=account,
            type=TransactionType.TRANSFER_OUT,
            amount=Decimal("75"),
            destination_account=savings,
            transaction_date=datetime.date(2025, 1, 3),
        )
        in_leg = TransactionFactory(
            account=savings,
            type=TransactionType.TRANSFER_IN,
            amount=Decimal("75"),
            related_transaction=out_leg,
            transaction_date=datetime.date(2025, 1, 3),
        )
        out_leg.related_transaction = in_leg
        out_leg.save()

        BalanceRecalculator.recalculate_running_balances(savings.id)

        out_leg.refresh_from_db()
        assert out_leg.destination_running_balance == Decimal("575")

    def test_missing_account_returns_none(self, db):
        """Should return None for an unknown account."""
        assert BalanceRecalculator.recalculate_running_balances(987654) is None


@pytest.mark.django_db
class TestRecalculateBalance:
    """Tests for BalanceRecalculator.recalculate_balance()."""

    def test_sums_signed_amounts(self, account):
        """Should add positive types and subtract negative ones."""
        TransactionFactory(account=account, type=TransactionType.INITIAL, amount=Decimal("200"))
        TransactionFactory(account=account, type=TransactionType.EXPENSE, amount=Decimal("35.5"))
        TransactionFactory(
            account=account, type=TransactionType.ADJUSTMENT_NEGATIVE, amount=Decimal("4.5"),
        )

        assert BalanceRecalculator.recalculate_balance(account.id) == Decimal("160")
        assert Account.objects.get(pk=account.id).balance == Decimal("160")

    def test_other_accounts_untouched(self, account):
        """Entries of another account should not be counted."""
        other = AccountFactory(owner_id=account.owner_id)
        TransactionFactory(account=other, amount=Decimal("99"))

        assert BalanceRecalculator.compute_balance(account.id) == Decimal("0")

    def test_missing_account_returns_none(self, db):
        """Should return None for an unknown account."""
        assert BalanceRecalculator.recalculate_balance(987654) is None


@pytest.mark.django_db
class TestScheduleRecalculation:
    """Tests for BalanceRecalculator.schedule_recalculation()."""

    def test_enqueued_after_commit_for_each_account(
        self, account, savings, recalc_tasks, django_capture_on_commit_callbacks
    ):
        """Should enqueue one job pair per distinct account once the block commits."""
        balance_job, running_job = recalc_tasks

        with django_capture_on_commit_callbacks(execute=False) as callbacks:
            BalanceRecalculator.schedule_recalculation([account.id, savings.id, account.id])

        running_job.assert_not_called()
        assert len(callbacks) == 1

        callbacks[0]()

        assert sorted(c.args[0] for c in running_job.call_args_list) == sorted(
            [account.id, savings.id]
        )
        assert balance_job.call_count == 2

    def test_nothing_enqueued_on_rollback(
        self, account, recalc_tasks, django_capture_on_commit_callbacks
    ):
        """Should not enqueue anything when the transaction rolls back."""
        _, running_job = recalc_tasks

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            with pytest.raises(RuntimeError):
                with transaction.atomic():
                    BalanceRecalculator.schedule_recalculation([account.id])
                    raise RuntimeError("write failed")

        assert callbacks == []
        running_job.assert_not_called()

    def test_no_accounts_no_hook(self, db, django_capture_on_commit_callbacks):
        """Should not register a commit hook without account ids."""
        with django_capture_on_commit_callbacks() as callbacks:
            BalanceRecalculator.schedule_recalculation([None])

        assert callbacks == []
