"""
Core base model shared by every bookkeeping model.

Base Classes:
    BaseModel: Abstract model with timestamps (created_at, updated_at)

For the soft delete mixin, see core.model_mixins.

Usage:
    from core.models import BaseModel
    from core.model_mixins import SoftDeleteMixin

    class Transaction(SoftDeleteMixin, BaseModel):
        amount = models.DecimalField(max_digits=15, decimal_places=4)

Note:
    - Always list mixins before BaseModel in inheritance
    - Ledger rows keep Django's integer primary key; the ordering of
      entries that share a date relies on ids growing with insertion.
"""

from __future__ import annotations

from django.db import models


class BaseModel(models.Model):
    """
    Abstract base model providing creation and modification timestamps.

    Fields:
        created_at: Automatically set when the object is first created
        updated_at: Automatically updated whenever the object is saved

    Note:
        This is an abstract model (Meta.abstract = True) so it doesn't
        create a database table. Fields are added to inheriting models.
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this record was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="Timestamp when this record was last modified",
    )

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        """Default string representation using primary key."""
        return f"{self.__class__.__name__}(id={self.pk})"
