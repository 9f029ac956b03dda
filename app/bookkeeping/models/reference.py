"""
Reference data consumed by the ledger.

Categories and contacts are owned by other parts of the product (the
category taxonomy, the contact book). The ledger only needs enough of
them to link entries, budgets and obligations to a row.
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel


class CategoryType(models.TextChoices):
    """Whether a category classifies money going out or coming in."""

    EXPENSE = "expense", "Expense"
    INCOME = "income", "Income"


class Category(BaseModel):
    """A spending or income category belonging to one owner."""

    owner_id = models.UUIDField(
        db_index=True,
        help_text="UUID of the user who owns this category",
    )
    name = models.CharField(max_length=100)
    type = models.CharField(
        max_length=20,
        choices=CategoryType.choices,
        default=CategoryType.EXPENSE,
    )

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "categories"

    def __str__(self) -> str:
        return self.name


class Contact(BaseModel):
    """A counterparty the owner can owe money to or be owed money by."""

    owner_id = models.UUIDField(
        db_index=True,
        help_text="UUID of the user who owns this contact",
    )
    name = models.CharField(max_length=150)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name
