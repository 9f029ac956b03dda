"""
Account model.

An account holds money in one currency. Its ``balance`` column is a
cache of the sum of its live ledger entries; only the balance
recalculator writes it.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from core.models import BaseModel


class AccountType(models.TextChoices):
    """
    Kinds of accounts a user can hold.

    The two control types back the receivable and payable books and
    are never offered in account pickers.
    """

    SAVINGS = "savings", "Savings"
    CHECKING = "checking", "Checking"
    CASH = "cash", "Cash"
    BANK = "bank", "Bank"
    CREDIT_CARD = "credit_card", "Credit card"
    GENERAL = "general", "General"
    INVESTMENT = "investment", "Investment"
    DEBIT_CARD = "debit_card", "Debit card"
    RECEIVABLE_CONTROL = "receivable_control", "Receivable control"
    PAYABLE_CONTROL = "payable_control", "Payable control"


class Account(BaseModel):
    """
    A money container owned by one user.

    Fields:
        owner_id: UUID of the owning user
        name: Display name
        currency: ISO 4217 currency code
        type: Account category (savings, cash, credit card, ...)
        balance: Cached sum of signed amounts of live transactions
        description: Optional free text
        is_active: Inactive accounts reject new entries

    Note:
        ``balance`` is eventually consistent: it is rewritten by a
        background job after every committed ledger mutation.
    """

    owner_id = models.UUIDField(
        db_index=True,
        help_text="UUID of the user who owns this account",
    )
    name = models.CharField(max_length=100)
    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code",
    )
    type = models.CharField(
        max_length=30,
        choices=AccountType.choices,
        default=AccountType.GENERAL,
    )
    balance = models.DecimalField(
        max_digits=20,
        decimal_places=4,
        default=Decimal("0"),
        help_text="Derived; written only by the balance recalculator",
    )
    description = models.TextField(null=True, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ["name", "id"]
        indexes = [
            models.Index(fields=["owner_id", "is_active"], name="account_owner_active_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.currency.upper()})"
