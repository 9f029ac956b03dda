"""
Pytest fixtures for bookkeeping tests.

Every fixture is scoped to a single owner so services see a consistent
owner across accounts, categories and contacts.

Background jobs are never enqueued from tests: ``recalc_tasks`` patches
the ``.delay`` of both balance jobs for every test. Tests that need
derived balances run the recalculator directly.

Usage:
    def test_expense_lowers_balance(owner_id, account, groceries):
        ledger.create_transaction(owner_id, TransactionParams(...))
        BalanceRecalculator.recalculate_running_balances(account.id)
"""

import datetime
import uuid

import pytest

from bookkeeping.models import CategoryType
from bookkeeping.tests.factories import (
    AccountFactory,
    BudgetPeriodFactory,
    CategoryFactory,
    ContactFactory,
)


@pytest.fixture(autouse=True)
def recalc_tasks(mocker):
    """Patch the enqueue of both balance jobs; yields (balance, running) mocks."""
    balance = mocker.patch("bookkeeping.tasks.recalculate_account_balance.delay")
    running = mocker.patch("bookkeeping.tasks.recalculate_running_balances.delay")
    return balance, running


@pytest.fixture
def owner_id():
    return uuid.uuid4()


@pytest.fixture
def today():
    return datetime.date(2025, 1, 15)


# =============================================================================
# Accounts
# =============================================================================


@pytest.fixture
def account(db, owner_id):
    """Active USD checking account."""
    return AccountFactory(owner_id=owner_id, name="Checking")


@pytest.fixture
def savings(db, owner_id):
    return AccountFactory(owner_id=owner_id, name="Savings")


@pytest.fixture
def eur_account(db, owner_id):
    return AccountFactory(owner_id=owner_id, name="Euro wallet", currency="eur")


@pytest.fixture
def inactive_account(db, owner_id):
    return AccountFactory(owner_id=owner_id, name="Closed", is_active=False)


# =============================================================================
# Reference data
# =============================================================================


@pytest.fixture
def groceries(db, owner_id):
    return CategoryFactory(owner_id=owner_id, name="Groceries")


@pytest.fixture
def dining(db, owner_id):
    return CategoryFactory(owner_id=owner_id, name="Dining")


@pytest.fixture
def salary(db, owner_id):
    return CategoryFactory(owner_id=owner_id, name="Salary", type=CategoryType.INCOME)


@pytest.fixture
def contact(db, owner_id):
    return ContactFactory(owner_id=owner_id, name="Alex")


# =============================================================================
# Budgets
# =============================================================================


@pytest.fixture
def january(db, owner_id):
    """Budget period covering January 2025."""
    return BudgetPeriodFactory(
        owner_id=owner_id,
        name="January",
        start_date=datetime.date(2025, 1, 1),
        end_date=datetime.date(2025, 1, 31),
    )


@pytest.fixture
def december(db, owner_id):
    return BudgetPeriodFactory(
        owner_id=owner_id,
        name="December",
        start_date=datetime.date(2024, 12, 1),
        end_date=datetime.date(2024, 12, 31),
    )
