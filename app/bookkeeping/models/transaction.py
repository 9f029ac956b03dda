"""
Ledger entry models.

- Transaction: one signed monetary movement on exactly one account
- TransactionSplit: sub-categorization of a transaction's amount

Every transaction type has a fixed polarity. Positive types increase
the account balance, negative types decrease it:

    positive: income, transfer_in, initial, adjustment_positive
    negative: expense, transfer, transfer_out, adjustment_negative

Only income, expense and transfer may be created directly by a user;
the remaining types are produced by the transfer, settlement and
account services.

Usage:
    from bookkeeping.models import Transaction, TransactionType

    TransactionType.EXPENSE.is_positive   # False
    TransactionType.INITIAL.is_creatable  # False
    entry.signed_amount                   # Decimal("-25.0000")
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.db.models import Q

from core.managers import SoftDeleteManager
from core.model_mixins import SoftDeleteMixin
from core.models import BaseModel


class TransactionType(models.TextChoices):
    """
    Types of ledger entries.

    Use ``is_positive`` for the sign and ``is_creatable`` to know
    whether a user may create the type directly. Both raise ValueError
    for a type missing from the polarity tables, so a new member must
    be classified before it can be stored.
    """

    INCOME = "income", "Income"
    EXPENSE = "expense", "Expense"
    TRANSFER = "transfer", "Transfer"
    TRANSFER_IN = "transfer_in", "Transfer in"
    TRANSFER_OUT = "transfer_out", "Transfer out"
    INITIAL = "initial", "Initial balance"
    ADJUSTMENT_POSITIVE = "adjustment_positive", "Positive adjustment"
    ADJUSTMENT_NEGATIVE = "adjustment_negative", "Negative adjustment"

    @property
    def is_positive(self) -> bool:
        if self in POSITIVE_TYPES:
            return True
        if self in NEGATIVE_TYPES:
            return False
        raise ValueError(f"Transaction type {self.value!r} has no polarity")

    @property
    def sign(self) -> int:
        return 1 if self.is_positive else -1

    @property
    def is_creatable(self) -> bool:
        if self not in POSITIVE_TYPES and self not in NEGATIVE_TYPES:
            raise ValueError(f"Transaction type {self.value!r} has no polarity")
        return self in CREATABLE_TYPES

    @property
    def is_transfer_leg(self) -> bool:
        return self in (TransactionType.TRANSFER_IN, TransactionType.TRANSFER_OUT)


POSITIVE_TYPES = frozenset(
    {
        TransactionType.INCOME,
        TransactionType.TRANSFER_IN,
        TransactionType.INITIAL,
        TransactionType.ADJUSTMENT_POSITIVE,
    }
)
NEGATIVE_TYPES = frozenset(
    {
        TransactionType.EXPENSE,
        TransactionType.TRANSFER,
        TransactionType.TRANSFER_OUT,
        TransactionType.ADJUSTMENT_NEGATIVE,
    }
)
CREATABLE_TYPES = frozenset(
    {
        TransactionType.INCOME,
        TransactionType.EXPENSE,
        TransactionType.TRANSFER,
    }
)
CATEGORIZED_TYPES = frozenset({TransactionType.INCOME, TransactionType.EXPENSE})


class Transaction(SoftDeleteMixin, BaseModel):
    """
    A single signed movement on one account.

    Fields:
        owner_id: UUID of the owning user (same as the account's owner)
        account: Account whose balance this entry affects
        type: TransactionType value, fixes the sign
        amount: Non-negative magnitude
        personal_amount: Owner's own share of a shared expense
        transaction_date: Ordering and budget-period membership date
        description: Free text
        category: Optional category (required for income/expense
            without splits)
        destination_account: Counter-account of a transfer
        related_transaction: The paired leg of a two-row transfer
        conversion_rate: Rate applied when currencies differ
        converted_amount: amount * conversion_rate
        running_balance: Derived; balance after this entry in
            (transaction_date, id) order
        destination_running_balance: Derived; on a transfer out-leg,
            the running balance of its in-leg on the destination account

    Managers:
        objects: Live entries only
        all_objects: Includes soft-deleted entries
    """

    owner_id = models.UUIDField(
        db_index=True,
        help_text="UUID of the user who owns this entry",
    )
    account = models.ForeignKey(
        "bookkeeping.Account",
        on_delete=models.CASCADE,
        related_name="transactions",
    )
    type = models.CharField(max_length=30, choices=TransactionType.choices)
    amount = models.DecimalField(max_digits=15, decimal_places=4)
    personal_amount = models.DecimalField(
        max_digits=15,
        decimal_places=4,
        null=True,
        blank=True,
    )
    transaction_date = models.DateField(db_index=True)
    description = models.TextField(null=True, blank=True)
    category = models.ForeignKey(
        "bookkeeping.Category",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
    )
    destination_account = models.ForeignKey(
        "bookkeeping.Account",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="incoming_transfers",
    )
    related_transaction = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    conversion_rate = models.DecimalField(
        max_digits=15,
        decimal_places=6,
        null=True,
        blank=True,
    )
    converted_amount = models.DecimalField(
        max_digits=15,
        decimal_places=4,
        null=True,
        blank=True,
    )
    running_balance = models.DecimalField(
        max_digits=15,
        decimal_places=4,
        default=Decimal("0"),
    )
    destination_running_balance = models.DecimalField(
        max_digits=15,
        decimal_places=4,
        null=True,
        blank=True,
    )

    objects = SoftDeleteManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ["transaction_date", "id"]
        indexes = [
            models.Index(
                fields=["account", "transaction_date", "id"],
                name="txn_account_order_idx",
            ),
            models.Index(fields=["owner_id", "transaction_date"], name="txn_owner_date_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gte=0),
                name="transaction_amount_non_negative",
            )
        ]

    def __str__(self) -> str:
        return f"{self.get_type_display()}: {self.amount} on {self.transaction_date}"

    @property
    def entry_type(self) -> TransactionType:
        return TransactionType(self.type)

    @property
    def signed_amount(self) -> Decimal:
        return self.amount * self.entry_type.sign


class TransactionSplit(BaseModel):
    """
    A share of a transaction's amount assigned to a category.

    When a transaction has splits, budgets read the splits instead of
    the transaction's own category.
    """

    transaction = models.ForeignKey(
        Transaction,
        on_delete=models.CASCADE,
        related_name="splits",
    )
    category = models.ForeignKey(
        "bookkeeping.Category",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="splits",
    )
    amount = models.DecimalField(max_digits=15, decimal_places=4)

    class Meta:
        ordering = ["id"]

    def __str__(self) -> str:
        return f"Split of {self.amount} on transaction {self.transaction_id}"
