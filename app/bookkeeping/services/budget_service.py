"""
Budgets, budget periods and their cached summaries.

Two kinds of cached values exist:

- ``BudgetSummary`` per budget (key ``bookkeeping:budget_summary:<id>``)
- ``PeriodSummary`` per past period (key
  ``bookkeeping:budget_period_summary:<id>``); the current period is
  always computed fresh

``BudgetCacheInvalidator`` is called explicitly by every service that
writes an entry, split, budget or period. It computes the affected keys
inside the write and deletes them once the write commits. A cache outage
never fails the write; the stale value lives until its TTL runs out.

Usage:
    from bookkeeping.services import BudgetService

    summary = BudgetService.get_budget_summary(owner_id, budget.id)
    summary.remaining  # Decimal("120.0000")
"""

from __future__ import annotations

import datetime
import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.cache import cache
from django.db import IntegrityError
from django.db.models import Q
from django.utils import timezone

from core.exceptions import NotFoundError, ValidationError
from core.services import BaseService

from ..exceptions import ErrorCode
from ..models import (
    Budget,
    BudgetPeriod,
    BudgetType,
    CategoryType,
    Transaction,
    TransactionSplit,
)
from ..types import ZERO, BudgetSummary, Money, PeriodSummary
from .lookups import check_categories

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable

    from ..types import BudgetParams, BudgetPeriodParams

logger = logging.getLogger(__name__)

BUDGET_SUMMARY_KEY = "bookkeeping:budget_summary:{budget_id}"
PERIOD_SUMMARY_KEY = "bookkeeping:budget_period_summary:{period_id}"


def budget_summary_key(budget_id: int) -> str:
    return BUDGET_SUMMARY_KEY.format(budget_id=budget_id)


def period_summary_key(period_id: int) -> str:
    return PERIOD_SUMMARY_KEY.format(period_id=period_id)


def _summary_ttl() -> int:
    return settings.BOOKKEEPING_SUMMARY_CACHE_TTL


class BudgetCacheInvalidator(BaseService):
    """
    Evicts cached summaries affected by a write.

    Keys are resolved at call time, against the row state the caller
    passes in, and deleted after commit. Call once with the old state and
    once with the new state when a write moves an entry between dates or
    categories.
    """

    @staticmethod
    def keys_for_entry(
        owner_id: uuid.UUID,
        transaction_date: datetime.date,
        category_ids: Iterable[int | None],
    ) -> set[str]:
        """
        Keys touched by an entry dated ``transaction_date``.

        Uncategorized entries touch nothing. Otherwise every period of
        the owner containing the date is evicted, along with the summaries
        of budgets in those categories whose range contains the date.
        """
        categories = {pk for pk in category_ids if pk is not None}
        if not categories:
            return set()

        period_ids = list(
            BudgetPeriod.objects.filter(
                owner_id=owner_id,
                start_date__lte=transaction_date,
                end_date__gte=transaction_date,
            ).values_list("id", flat=True)
        )
        one_time_in_range = (
            Q(type=BudgetType.ONE_TIME)
            & (Q(start_date__isnull=True) | Q(start_date__lte=transaction_date))
            & (Q(end_date__isnull=True) | Q(end_date__gte=transaction_date))
        )
        budget_ids = Budget.objects.filter(
            owner_id=owner_id,
            category_id__in=categories,
        ).filter(Q(budget_period_id__in=period_ids) | one_time_in_range).values_list(
            "id", flat=True
        )

        keys = {period_summary_key(pk) for pk in period_ids}
        keys.update(budget_summary_key(pk) for pk in budget_ids)
        return keys

    @classmethod
    def invalidate_for_entries(cls, entries: Iterable[Transaction]) -> None:
        """Evict summaries fed by the entries and their splits."""
        keys: set[str] = set()
        for entry in entries:
            category_ids = [entry.category_id]
            if entry.pk:
                category_ids.extend(
                    TransactionSplit.objects.filter(transaction_id=entry.pk).values_list(
                        "category_id", flat=True
                    )
                )
            keys |= cls.keys_for_entry(
                entry.owner_id, entry.transaction_date, category_ids
            )
        cls.evict_after_commit(keys)

    @classmethod
    def invalidate_for_budget(
        cls, budget: Budget, previous_period_id: int | None = None
    ) -> None:
        keys = {budget_summary_key(budget.pk)}
        for period_id in (budget.budget_period_id, previous_period_id):
            if period_id:
                keys.add(period_summary_key(period_id))
        cls.evict_after_commit(keys)

    @classmethod
    def invalidate_for_period(cls, period: BudgetPeriod) -> None:
        keys = {period_summary_key(period.pk)}
        keys.update(
            budget_summary_key(pk)
            for pk in Budget.all_objects.filter(budget_period_id=period.pk).values_list(
                "id", flat=True
            )
        )
        cls.evict_after_commit(keys)

    @classmethod
    def evict_after_commit(cls, keys: set[str]) -> None:
        if not keys:
            return
        ordered = sorted(keys)

        def _evict() -> None:
            try:
                cache.delete_many(ordered)
            except Exception:
                logger.warning(
                    "Budget summary cache invalidation failed",
                    exc_info=True,
                    extra={"keys": ordered},
                )
            else:
                logger.debug("Budget summaries evicted", extra={"keys": ordered})

        cls.after_commit(_evict)


class BudgetService(BaseService):
    """
    Budget and period management plus summary computation.

    All methods take ``owner_id`` and only see that owner's rows.
    """

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @staticmethod
    def get_budget(
        owner_id: uuid.UUID, budget_id: int, *, include_deleted: bool = False
    ) -> Budget:
        manager = Budget.all_objects if include_deleted else Budget.objects
        budget = (
            manager.select_related("budget_period", "category")
            .filter(owner_id=owner_id, pk=budget_id)
            .first()
        )
        if budget is None:
            raise NotFoundError(
                f"Budget {budget_id} not found",
                error_code="BUDGET_NOT_FOUND",
                details={"budget_id": budget_id},
            )
        return budget

    @staticmethod
    def get_period(owner_id: uuid.UUID, period_id: int) -> BudgetPeriod:
        period = BudgetPeriod.objects.filter(owner_id=owner_id, pk=period_id).first()
        if period is None:
            raise NotFoundError(
                f"Budget period {period_id} not found",
                error_code="BUDGET_PERIOD_NOT_FOUND",
                details={"budget_period_id": period_id},
            )
        return period

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    @staticmethod
    def _to_base_currency(entry: Transaction, amount: Decimal) -> Money:
        base = settings.BOOKKEEPING_BASE_CURRENCY
        money = Money(amount, entry.account.currency)
        if money.currency != base and entry.conversion_rate:
            return money.convert(entry.conversion_rate, base)
        # No rate recorded: counted as stored
        return Money(money.amount, base)

    @classmethod
    def calculate_budget_summary(cls, budget: Budget) -> BudgetSummary:
        """
        Compute spending against ``budget`` without touching the cache.

        Counts live entries in the budget's category and range that have
        no splits (using the owner's personal share of shared expenses),
        plus splits in the category whose parent entry is live and in range.
        """
        start, end = budget.date_range()
        date_filter = Q()
        if start is not None:
            date_filter &= Q(transaction_date__gte=start)
        if end is not None:
            date_filter &= Q(transaction_date__lte=end)

        direct = (
            Transaction.objects.filter(
                owner_id=budget.owner_id,
                category_id=budget.category_id,
                splits__isnull=True,
            )
            .filter(date_filter)
            .select_related("account")
            .distinct()
        )
        split_filter = Q()
        if start is not None:
            split_filter &= Q(transaction__transaction_date__gte=start)
        if end is not None:
            split_filter &= Q(transaction__transaction_date__lte=end)
        splits = TransactionSplit.objects.filter(
            category_id=budget.category_id,
            transaction__owner_id=budget.owner_id,
            transaction__is_deleted=False,
        ).filter(split_filter).select_related("transaction__account")

        spent = Money(ZERO, settings.BOOKKEEPING_BASE_CURRENCY)
        count = 0
        for entry in direct:
            base = entry.personal_amount if entry.personal_amount is not None else entry.amount
            spent += cls._to_base_currency(entry, base)
            count += 1
        for split in splits:
            spent += cls._to_base_currency(split.transaction, split.amount)
            count += 1
        total_spent = spent.amount

        remaining = budget.amount - total_spent
        if budget.amount > 0:
            percentage = (total_spent / budget.amount * 100).quantize(Decimal("0.01"))
        else:
            percentage = Decimal("0.00")

        return BudgetSummary(
            budget_id=budget.pk,
            amount=budget.amount,
            total_spent=total_spent,
            remaining=remaining,
            percentage_used=percentage,
            is_over_budget=remaining < 0,
            transaction_count=count,
            start_date=start,
            end_date=end,
            currency=spent.currency,
        )

    @classmethod
    def get_budget_summary(cls, owner_id: uuid.UUID, budget_id: int) -> BudgetSummary:
        """Cached summary of one budget."""
        budget = cls.get_budget(owner_id, budget_id)
        return cache.get_or_set(
            budget_summary_key(budget.pk),
            lambda: cls.calculate_budget_summary(budget),
            timeout=_summary_ttl(),
        )

    @classmethod
    def calculate_period_summary(cls, period: BudgetPeriod) -> PeriodSummary:
        summary = PeriodSummary(period_id=period.pk)
        budgets = Budget.objects.filter(budget_period=period).select_related(
            "category", "budget_period"
        )
        for budget in budgets:
            spent = cls.calculate_budget_summary(budget).total_spent
            if budget.category.type == CategoryType.EXPENSE:
                summary.total_expense_spent += spent
            elif budget.category.type == CategoryType.INCOME:
                summary.total_income_received += spent
        return summary

    @classmethod
    def get_period_summary(
        cls,
        owner_id: uuid.UUID,
        period_id: int,
        today: datetime.date | None = None,
    ) -> PeriodSummary:
        """
        Income/expense totals of a period's budgets.

        The current period is computed fresh on every call. Past and
        future periods are cached.
        """
        period = cls.get_period(owner_id, period_id)
        if period.is_current(today or timezone.localdate()):
            return cls.calculate_period_summary(period)
        return cache.get_or_set(
            period_summary_key(period.pk),
            lambda: cls.calculate_period_summary(period),
            timeout=_summary_ttl(),
        )

    # ------------------------------------------------------------------
    # Budgets
    # ------------------------------------------------------------------

    @staticmethod
    def _duplicate_budget_error() -> ValidationError:
        return ValidationError(
            "A budget for this category and period already exists",
            error_code=ErrorCode.DUPLICATE_BUDGET,
            details={"category_id": ["A budget for this category already exists."]},
        )

    @classmethod
    def _check_unique(
        cls,
        owner_id: uuid.UUID,
        category_id: int,
        period_id: int | None,
        exclude_id: int | None = None,
    ) -> None:
        if period_id is None:
            return
        queryset = Budget.objects.filter(
            owner_id=owner_id, category_id=category_id, budget_period_id=period_id
        )
        if exclude_id is not None:
            queryset = queryset.exclude(pk=exclude_id)
        if queryset.exists():
            raise cls._duplicate_budget_error()

    @classmethod
    def create_budget(cls, owner_id: uuid.UUID, params: BudgetParams) -> Budget:
        """
        Create a budget.

        Raises:
            ValidationError: DUPLICATE_BUDGET when a live budget already
                covers the category in the same period
        """
        check_categories(owner_id, [params.category_id])
        if params.budget_period_id is not None:
            cls.get_period(owner_id, params.budget_period_id)

        with cls.atomic():
            cls._check_unique(owner_id, params.category_id, params.budget_period_id)
            try:
                with cls.atomic():
                    budget = Budget.objects.create(
                        owner_id=owner_id,
                        name=params.name,
                        category_id=params.category_id,
                        type=params.type,
                        budget_period_id=params.budget_period_id,
                        amount=params.amount,
                        start_date=params.start_date,
                        end_date=params.end_date,
                        is_active=params.is_active,
                    )
            except IntegrityError as e:
                raise cls._duplicate_budget_error() from e
            BudgetCacheInvalidator.invalidate_for_budget(budget)

        logger.info(
            "Budget created",
            extra={"budget_id": budget.pk, "owner_id": str(owner_id)},
        )
        return budget

    @classmethod
    def update_budget(
        cls, owner_id: uuid.UUID, budget_id: int, params: BudgetParams
    ) -> Budget:
        check_categories(owner_id, [params.category_id])
        if params.budget_period_id is not None:
            cls.get_period(owner_id, params.budget_period_id)

        with cls.atomic():
            budget = cls.get_budget(owner_id, budget_id)
            previous_period_id = budget.budget_period_id
            cls._check_unique(
                owner_id, params.category_id, params.budget_period_id, exclude_id=budget.pk
            )
            budget.name = params.name
            budget.category_id = params.category_id
            budget.type = params.type
            budget.budget_period_id = params.budget_period_id
            budget.amount = params.amount
            budget.start_date = params.start_date
            budget.end_date = params.end_date
            budget.is_active = params.is_active
            budget.save()
            BudgetCacheInvalidator.invalidate_for_budget(budget, previous_period_id)

        logger.info("Budget updated", extra={"budget_id": budget.pk})
        return budget

    @classmethod
    def delete_budget(cls, owner_id: uuid.UUID, budget_id: int) -> None:
        with cls.atomic():
            budget = cls.get_budget(owner_id, budget_id)
            budget.soft_delete()
            BudgetCacheInvalidator.invalidate_for_budget(budget)
        logger.info("Budget deleted", extra={"budget_id": budget_id})

    @classmethod
    def restore_budget(cls, owner_id: uuid.UUID, budget_id: int) -> Budget:
        with cls.atomic():
            budget = cls.get_budget(owner_id, budget_id, include_deleted=True)
            if budget.is_deleted:
                cls._check_unique(owner_id, budget.category_id, budget.budget_period_id)
                budget.restore()
                BudgetCacheInvalidator.invalidate_for_budget(budget)
        logger.info("Budget restored", extra={"budget_id": budget_id})
        return budget

    @classmethod
    def force_delete_budget(cls, owner_id: uuid.UUID, budget_id: int) -> None:
        with cls.atomic():
            budget = cls.get_budget(owner_id, budget_id, include_deleted=True)
            BudgetCacheInvalidator.invalidate_for_budget(budget)
            budget.hard_delete()
        logger.info("Budget permanently deleted", extra={"budget_id": budget_id})

    # ------------------------------------------------------------------
    # Periods
    # ------------------------------------------------------------------

    @staticmethod
    def _check_period_name(
        owner_id: uuid.UUID, name: str, exclude_id: int | None = None
    ) -> None:
        queryset = BudgetPeriod.objects.filter(owner_id=owner_id, name=name)
        if exclude_id is not None:
            queryset = queryset.exclude(pk=exclude_id)
        if queryset.exists():
            raise ValidationError(
                "A budget period with this name already exists",
                details={"name": ["A budget period with this name already exists."]},
            )

    @classmethod
    def create_period(
        cls, owner_id: uuid.UUID, params: BudgetPeriodParams
    ) -> BudgetPeriod:
        with cls.atomic():
            cls._check_period_name(owner_id, params.name)
            period = BudgetPeriod.objects.create(
                owner_id=owner_id,
                name=params.name,
                type=params.type,
                start_date=params.start_date,
                end_date=params.end_date,
                is_active=params.is_active,
            )
        logger.info("Budget period created", extra={"budget_period_id": period.pk})
        return period

    @classmethod
    def update_period(
        cls, owner_id: uuid.UUID, period_id: int, params: BudgetPeriodParams
    ) -> BudgetPeriod:
        """Update a period; summaries of the period and its budgets are evicted."""
        with cls.atomic():
            period = cls.get_period(owner_id, period_id)
            cls._check_period_name(owner_id, params.name, exclude_id=period.pk)
            period.name = params.name
            period.type = params.type
            period.start_date = params.start_date
            period.end_date = params.end_date
            period.is_active = params.is_active
            period.save()
            BudgetCacheInvalidator.invalidate_for_period(period)
        return period

    @classmethod
    def delete_period(cls, owner_id: uuid.UUID, period_id: int) -> None:
        """Hard-delete a period together with its budgets."""
        with cls.atomic():
            period = cls.get_period(owner_id, period_id)
            BudgetCacheInvalidator.invalidate_for_period(period)
            period.delete()
        logger.info("Budget period deleted", extra={"budget_period_id": period_id})

    @classmethod
    def duplicate_period(
        cls,
        owner_id: uuid.UUID,
        period_id: int,
        params: BudgetPeriodParams,
    ) -> BudgetPeriod:
        """
        Copy a period and its live budgets into a new date range.

        Example:
            june = BudgetService.duplicate_period(
                owner_id,
                may.id,
                BudgetPeriodParams("June", date(2025, 6, 1), date(2025, 6, 30)),
            )
        """
        with cls.atomic():
            source = cls.get_period(owner_id, period_id)
            copy = cls.create_period(owner_id, params)
            Budget.objects.bulk_create(
                [
                    Budget(
                        owner_id=owner_id,
                        name=budget.name,
                        category_id=budget.category_id,
                        type=BudgetType.PERIOD,
                        budget_period=copy,
                        amount=budget.amount,
                        is_active=budget.is_active,
                    )
                    for budget in Budget.objects.filter(budget_period=source)
                ]
            )
        logger.info(
            "Budget period duplicated",
            extra={"source_period_id": period_id, "budget_period_id": copy.pk},
        )
        return copy
