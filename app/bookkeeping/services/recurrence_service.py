"""
Recurring payable/receivable generation.

Runs once a day. For every recurring series whose ``next_due_date`` is on
or before today, one occurrence is created per elapsed month (catching up
on missed runs) and ``next_due_date`` is advanced past today.

The advance of ``next_due_date`` is what makes the run idempotent: a
second run on the same day finds nothing due. Each series is processed
in its own transaction with the series row locked, so a failure on one
series is logged and counted without affecting the others.

Usage:
    from bookkeeping.services import RecurrenceGenerator

    report = RecurrenceGenerator.generate_due_occurrences("payable")
    report.to_dict()  # {"created": 3, "processed": 1, "failed": 0}
"""

from __future__ import annotations

import calendar
import datetime
import logging
from typing import TYPE_CHECKING

from django.utils import timezone

from core.services import BaseService

from ..models import ObligationKind, ObligationStatus
from ..types import ZERO, GenerationReport, RecurrenceRule
from .settlement_service import BOOKS

if TYPE_CHECKING:
    from .settlement_service import Book

logger = logging.getLogger(__name__)


def add_month_clamped(day: datetime.date, day_of_month: int) -> datetime.date:
    """
    Move to ``day_of_month`` of the following month, clamped to its end.

    Example:
        add_month_clamped(date(2025, 1, 31), 31)  # date(2025, 2, 28)
        add_month_clamped(date(2025, 2, 28), 31)  # date(2025, 3, 31)
    """
    if day.month == 12:
        year, month = day.year + 1, 1
    else:
        year, month = day.year, day.month + 1
    last_day = calendar.monthrange(year, month)[1]
    return datetime.date(year, month, min(day_of_month, last_day))


class RecurrenceGenerator(BaseService):
    """Materializes due occurrences from recurring series."""

    @classmethod
    def generate_due_occurrences(
        cls,
        kind: ObligationKind | str,
        today: datetime.date | None = None,
    ) -> GenerationReport:
        """
        Generate every due occurrence of one kind.

        Args:
            kind: payable or receivable
            today: Cut-off date, defaults to the local date

        Returns:
            GenerationReport with rows created, series processed and
            series that failed
        """
        book = BOOKS[ObligationKind(kind)]
        today = today or timezone.localdate()
        report = GenerationReport()

        due_ids = list(
            book.series_model.objects.filter(
                is_recurring=True,
                next_due_date__isnull=False,
                next_due_date__lte=today,
            )
            .order_by("id")
            .values_list("id", flat=True)
        )

        for series_id in due_ids:
            report.processed += 1
            try:
                report.created += cls.generate_for_series(book, series_id, today)
            except Exception:
                report.failed += 1
                logger.exception(
                    "Failed to generate occurrences for series",
                    extra={"kind": book.kind.value, "series_id": series_id},
                )

        logger.info(
            "Recurring occurrences generated",
            extra={
                "kind": book.kind.value,
                "today": today.isoformat(),
                "occurrences_created": report.created,
                "series_processed": report.processed,
                "series_failed": report.failed,
            },
        )
        return report

    @classmethod
    def generate_for_series(cls, book: Book, series_id: int, today: datetime.date) -> int:
        """
        Generate the due occurrences of one series.

        The series is re-read under lock; if another run already advanced
        it, nothing is created.

        Returns:
            Number of occurrences created
        """
        with cls.atomic():
            series = (
                book.series_model.objects.select_for_update()
                .filter(pk=series_id, is_recurring=True, next_due_date__lte=today)
                .first()
            )
            if series is None:
                return 0

            rule = RecurrenceRule.from_raw(series.recurrence_rule)
            cursor = series.next_due_date
            occurrences = []
            while cursor <= today:
                occurrences.append(
                    book.obligation_model(
                        owner_id=series.owner_id,
                        contact_id=series.contact_id,
                        currency=series.currency,
                        amount_total=series.default_amount,
                        amount_paid=ZERO,
                        status=ObligationStatus.OPEN,
                        due_date=cursor,
                        description=series.name,
                        series=series,
                    )
                )
                cursor = add_month_clamped(cursor, rule.day_of_month or cursor.day)

            book.obligation_model.objects.bulk_create(occurrences)
            series.next_due_date = cursor
            series.save(update_fields=["next_due_date", "updated_at"])

        logger.info(
            "Series advanced",
            extra={
                "kind": book.kind.value,
                "series_id": series_id,
                "occurrences_created": len(occurrences),
                "next_due_date": cursor.isoformat(),
            },
        )
        return len(occurrences)
