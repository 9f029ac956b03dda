"""
Tests for bookkeeping Celery tasks.

Tasks are called synchronously; enqueues are patched.
"""

import datetime
from decimal import Decimal

import pytest
from freezegun import freeze_time

from bookkeeping.models import ObligationStatus, Payable, PayablePayment, TransactionType
from bookkeeping.tasks import (
    TRANSIENT_ERRORS,
    audit_obligation_totals,
    generate_payable_occurrences,
    generate_receivable_occurrences,
    recalculate_account_balance,
    recalculate_all_balances,
    recalculate_running_balances,
)
from bookkeeping.tests.factories import (
    AccountFactory,
    PayableFactory,
    PayableSeriesFactory,
    TransactionFactory,
)


@pytest.mark.django_db
class TestBalanceTasks:
    """Tests for the balance recalculation tasks."""

    def test_recalculate_account_balance(self, account):
        """Should return the recomputed balance."""
        TransactionFactory(account=account, amount=Decimal("12.5"))

        result = recalculate_account_balance(account.id)

        assert result["account_id"] == account.id
        assert Decimal(result["balance"]) == Decimal("12.5")

    def test_recalculate_running_balances(self, account):
        """Should return the final running balance."""
        TransactionFactory(account=account, type=TransactionType.EXPENSE, amount=Decimal("3"))

        result = recalculate_running_balances(account.id)

        assert Decimal(result["balance"]) == Decimal("-3")

    def test_missing_account(self, db):
        """Should report a None balance for an unknown account."""
        assert recalculate_running_balances(424242) == {"account_id": 424242, "balance": None}

    def test_retry_policy_on_transient_errors(self):
        """Balance jobs should retry transient errors with backoff."""
        assert recalculate_running_balances.autoretry_for == TRANSIENT_ERRORS
        assert recalculate_running_balances.retry_backoff is True
        assert recalculate_account_balance.retry_kwargs == {"max_retries": 5}

    def test_recalculate_all_queues_active_accounts(self, owner_id, recalc_tasks):
        """Should queue every active account in id order."""
        first = AccountFactory(owner_id=owner_id)
        second = AccountFactory(owner_id=owner_id)
        AccountFactory(owner_id=owner_id, is_active=False)
        _, running_job = recalc_tasks

        result = recalculate_all_balances()

        assert result == {"queued_count": 2}
        assert [c.args[0] for c in running_job.call_args_list] == [first.id, second.id]


@pytest.mark.django_db
class TestScheduledTasks:
    """Tests for the periodic recurrence and audit tasks."""

    @freeze_time("2025-03-15 12:00:00")
    def test_generate_payable_occurrences(self, owner_id, contact):
        """Should catch up a series and report the counts."""
        PayableSeriesFactory(
            owner_id=owner_id,
            contact=contact,
            recurrence_rule={"day_of_month": 1},
            next_due_date=datetime.date(2025, 1, 1),
        )

        assert generate_payable_occurrences() == {"created": 3, "processed": 1, "failed": 0}

    def test_generate_receivable_occurrences_with_nothing_due(self, db):
        """Should report zero counts when nothing is due."""
        assert generate_receivable_occurrences() == {"created": 0, "processed": 0, "failed": 0}

    def test_audit_repairs_drift(self, owner_id, contact):
        """Should repair a payable whose amount_paid has no payments."""
        payable = PayableFactory(
            owner_id=owner_id,
            contact=contact,
            amount_paid=Decimal("20"),
            status=ObligationStatus.PARTIAL,
        )

        result = audit_obligation_totals()

        assert result == {"repaired": {"payable": 1, "receivable": 0}}
        payable.refresh_from_db()
        assert payable.amount_paid == Decimal("0")
        assert payable.status == ObligationStatus.OPEN
        assert not PayablePayment.objects.exists()
        assert Payable.objects.count() == 1
