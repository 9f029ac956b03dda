"""
End-to-end ledger workflows.

Enqueued balance jobs are run inline as soon as the write commits, the
way a worker would pick them up, and the derived state is checked
against a direct sum of the ledger afterwards.
"""

import datetime
from decimal import Decimal

import pytest

from bookkeeping.models import Account, ObligationStatus, Payable, Transaction
from bookkeeping.services import BudgetService, RecurrenceGenerator, SettlementService, ledger
from bookkeeping.tasks import recalculate_account_balance, recalculate_running_balances
from bookkeeping.tests.factories import BudgetFactory, PayableSeriesFactory
from bookkeeping.types import SettlementParams, TransactionParams


@pytest.fixture
def worker(recalc_tasks):
    """Run enqueued balance jobs synchronously."""
    balance_job, running_job = recalc_tasks
    balance_job.side_effect = lambda account_id: recalculate_account_balance(account_id)
    running_job.side_effect = lambda account_id: recalculate_running_balances(account_id)
    return recalc_tasks


def assert_balances_sound(account):
    """Balance and every running balance equal a direct ordered sum."""
    account.refresh_from_db()
    total = Decimal("0")
    for entry in Transaction.objects.filter(account=account).order_by("transaction_date", "id"):
        total += entry.signed_amount
        assert entry.running_balance == total, entry
    assert account.balance == total


@pytest.mark.django_db
class TestLedgerJourney:
    """End-to-end ledger workflows with jobs run inline."""

    def test_accounts_transfers_and_settlements_stay_consistent(
        self, owner_id, groceries, salary, contact, january, worker,
        django_capture_on_commit_callbacks,
    ):
        """Balances, obligations and budgets should agree after writes and deletes."""
        with django_capture_on_commit_callbacks(execute=True):
            checking = ledger.create_account(
                owner_id, name="Checking", opening_balance="1000",
                opening_date=datetime.date(2025, 1, 1),
            )
        with django_capture_on_commit_callbacks(execute=True):
            wallet = ledger.create_account(owner_id, name="Euro wallet", currency="eur")
        budget = BudgetFactory(
            owner_id=owner_id, budget_period=january, category=groceries, amount=Decimal("300")
        )
        assert BudgetService.get_budget_summary(owner_id, budget.id).total_spent == 0

        with django_capture_on_commit_callbacks(execute=True):
            ledger.create_transaction(
                owner_id,
                TransactionParams(
                    account_id=checking.id,
                    type="income",
                    amount="2500",
                    transaction_date=datetime.date(2025, 1, 25),
                    category_id=salary.id,
                ),
            )
        with django_capture_on_commit_callbacks(execute=True):
            groceries_entry = ledger.create_transaction(
                owner_id,
                TransactionParams(
                    account_id=checking.id,
                    type="expense",
                    amount="120",
                    transaction_date=datetime.date(2025, 1, 10),
                    category_id=groceries.id,
                ),
            )
        with django_capture_on_commit_callbacks(execute=True):
            transfer = ledger.create_transaction(
                owner_id,
                TransactionParams(
                    account_id=checking.id,
                    type="transfer",
                    amount="200",
                    transaction_date=datetime.date(2025, 1, 12),
                    destination_account_id=wallet.id,
                    conversion_rate="0.9",
                ),
            )

        # Recurring rent for January and February
        PayableSeriesFactory(
            owner_id=owner_id,
            contact=contact,
            default_amount=Decimal("800"),
            recurrence_rule={"day_of_month": 31},
            next_due_date=datetime.date(2025, 1, 31),
        )
        RecurrenceGenerator.generate_due_occurrences("payable", today=datetime.date(2025, 2, 28))
        rent = Payable.objects.filter(owner_id=owner_id).order_by("due_date").first()
        assert rent.due_date == datetime.date(2025, 1, 31)
        with django_capture_on_commit_callbacks(execute=True):
            payment = SettlementService.settle(
                owner_id,
                rent,
                SettlementParams(
                    account_id=checking.id, amount="800", paid_at=datetime.date(2025, 1, 31)
                ),
            )
        assert rent.status == ObligationStatus.PAID

        assert_balances_sound(checking)
        assert_balances_sound(wallet)
        assert Account.objects.get(pk=checking.pk).balance == Decimal("2380")
        assert Account.objects.get(pk=wallet.pk).balance == Decimal("180")
        assert BudgetService.get_budget_summary(owner_id, budget.id).total_spent == Decimal("120")

        # Undo the groceries, the transfer and the rent payment
        with django_capture_on_commit_callbacks(execute=True):
            ledger.delete_transaction(owner_id, groceries_entry.id)
        with django_capture_on_commit_callbacks(execute=True):
            ledger.delete_transaction(owner_id, transfer.related_transaction_id)
        with django_capture_on_commit_callbacks(execute=True):
            ledger.delete_transaction(owner_id, payment.transaction_id)

        assert_balances_sound(checking)
        assert_balances_sound(wallet)
        assert Account.objects.get(pk=checking.pk).balance == Decimal("3500")
        assert Account.objects.get(pk=wallet.pk).balance == Decimal("0")
        rent.refresh_from_db()
        assert rent.status == ObligationStatus.OPEN
        SettlementService.verify_obligation(rent)
        assert BudgetService.get_budget_summary(owner_id, budget.id).total_spent == 0

    def test_backdated_entry_recomputes_history(
        self, owner_id, account, salary, groceries, worker, django_capture_on_commit_callbacks
    ):
        """A backdated entry should rewrite every later running balance."""
        for amount, day, entry_type, category in [
            ("100", datetime.date(2025, 1, 2), "income", salary),
            ("50", datetime.date(2025, 1, 5), "income", salary),
            ("20", datetime.date(2025, 1, 3), "expense", groceries),
        ]:
            with django_capture_on_commit_callbacks(execute=True):
                ledger.create_transaction(
                    owner_id,
                    TransactionParams(
                        account_id=account.id,
                        type=entry_type,
                        amount=amount,
                        transaction_date=day,
                        category_id=category.id,
                    ),
                )

        running = list(
            ledger.list_transactions(owner_id, account.id).values_list(
                "running_balance", flat=True
            )
        )
        assert running == [Decimal("100"), Decimal("80"), Decimal("130")]
        assert_balances_sound(account)
