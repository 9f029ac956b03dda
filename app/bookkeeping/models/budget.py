"""
Budget models.

A BudgetPeriod is a named date range. A Budget caps spending for one
category, either inside a period (``type=period``) or over its own
explicit date range (``type=one_time``). Summaries over budgets are
computed and cached by the budget service, never stored here.
"""

from __future__ import annotations

import datetime

from django.db import models
from django.db.models import F, Q

from core.managers import SoftDeleteManager
from core.model_mixins import SoftDeleteMixin
from core.models import BaseModel


class BudgetPeriodType(models.TextChoices):
    MONTHLY = "monthly", "Monthly"
    WEEKLY = "weekly", "Weekly"
    YEARLY = "yearly", "Yearly"
    CUSTOM = "custom", "Custom"


class BudgetType(models.TextChoices):
    """
    Values:
        PERIOD: Bound to a BudgetPeriod's date range
        ONE_TIME: Carries its own start and end dates
    """

    PERIOD = "period", "Period"
    ONE_TIME = "one_time", "One time"


class BudgetPeriod(BaseModel):
    """
    A bounded date range budgets are measured against.

    Both ends are inclusive. Names are unique per owner.
    """

    owner_id = models.UUIDField(db_index=True)
    name = models.CharField(max_length=100)
    type = models.CharField(
        max_length=10,
        choices=BudgetPeriodType.choices,
        default=BudgetPeriodType.MONTHLY,
    )
    start_date = models.DateField()
    end_date = models.DateField()
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["-start_date", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["owner_id", "name"],
                name="unique_budget_period_name_per_owner",
            ),
            models.CheckConstraint(
                condition=Q(end_date__gte=F("start_date")),
                name="budget_period_end_after_start",
            ),
        ]
        indexes = [
            models.Index(
                fields=["owner_id", "start_date", "end_date"],
                name="budget_period_range_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.start_date} - {self.end_date})"

    def contains(self, day: datetime.date) -> bool:
        return self.start_date <= day <= self.end_date

    def is_current(self, today: datetime.date | None = None) -> bool:
        return self.contains(today or datetime.date.today())


class Budget(SoftDeleteMixin, BaseModel):
    """
    A spending cap for one category.

    Fields:
        owner_id: UUID of the owning user
        name: Optional label
        category: Category whose entries count against the budget
        type: Period-bound or one-time
        budget_period: Period for period-bound budgets, else null
        amount: Budgeted amount
        start_date / end_date: Explicit range for one-time budgets
        is_active: Inactive budgets are kept but not reported

    At most one live budget exists per (owner, category, period).
    """

    owner_id = models.UUIDField(db_index=True)
    name = models.CharField(max_length=100, blank=True, default="")
    category = models.ForeignKey(
        "bookkeeping.Category",
        on_delete=models.CASCADE,
        related_name="budgets",
    )
    type = models.CharField(
        max_length=10,
        choices=BudgetType.choices,
        default=BudgetType.PERIOD,
    )
    budget_period = models.ForeignKey(
        BudgetPeriod,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="budgets",
    )
    amount = models.DecimalField(max_digits=15, decimal_places=4)
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    is_active = models.BooleanField(default=True)

    objects = SoftDeleteManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(
                fields=["owner_id", "category", "budget_period"],
                condition=Q(is_deleted=False),
                name="unique_live_budget_per_category_period",
            ),
        ]

    def __str__(self) -> str:
        return self.name or f"Budget {self.pk} ({self.amount})"

    def date_range(self) -> tuple[datetime.date | None, datetime.date | None]:
        """
        Return the inclusive range this budget aggregates over.

        Period budgets use their period's range. One-time budgets use
        their own dates; either end may be open.
        """
        if self.type == BudgetType.PERIOD and self.budget_period_id:
            return self.budget_period.start_date, self.budget_period.end_date
        return self.start_date, self.end_date
