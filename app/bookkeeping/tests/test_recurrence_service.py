"""
Tests for RecurrenceGenerator.

This module tests:
- One occurrence per elapsed month, with catch-up
- Re-running on the same day creates nothing
- Month-end clamping of day_of_month
- A failing series does not stop the others
"""

import datetime
from decimal import Decimal

import pytest
from freezegun import freeze_time

from bookkeeping.models import ObligationKind, ObligationStatus, Payable, Receivable
from bookkeeping.services import RecurrenceGenerator, add_month_clamped
from bookkeeping.tests.factories import PayableSeriesFactory, ReceivableSeriesFactory


class TestAddMonthClamped:
    """Tests for add_month_clamped()."""

    @pytest.mark.parametrize(
        "day,day_of_month,expected",
        [
            (datetime.date(2025, 1, 31), 31, datetime.date(2025, 2, 28)),
            (datetime.date(2024, 1, 31), 31, datetime.date(2024, 2, 29)),
            (datetime.date(2025, 2, 28), 31, datetime.date(2025, 3, 31)),
            (datetime.date(2025, 12, 15), 15, datetime.date(2026, 1, 15)),
            (datetime.date(2025, 3, 31), 30, datetime.date(2025, 4, 30)),
        ],
    )
    def test_clamps_to_month_end(self, day, day_of_month, expected):
        """Should clamp the day to the next month's length."""
        assert add_month_clamped(day, day_of_month) == expected


@pytest.mark.django_db
class TestGenerateDueOccurrences:
    """Tests for RecurrenceGenerator.generate_due_occurrences()."""

    def test_catch_up_creates_one_per_month(self, owner_id, contact):
        """Should create one occurrence per missed month."""
        series = PayableSeriesFactory(
            owner_id=owner_id,
            contact=contact,
            recurrence_rule={"day_of_month": 1},
            next_due_date=datetime.date(2025, 1, 1),
        )

        report = RecurrenceGenerator.generate_due_occurrences(
            ObligationKind.PAYABLE, today=datetime.date(2025, 3, 15)
        )

        dates = list(
            Payable.objects.filter(series=series).order_by("due_date").values_list(
                "due_date", flat=True
            )
        )
        assert dates == [
            datetime.date(2025, 1, 1),
            datetime.date(2025, 2, 1),
            datetime.date(2025, 3, 1),
        ]
        series.refresh_from_db()
        assert series.next_due_date == datetime.date(2025, 4, 1)
        assert report.to_dict() == {"created": 3, "processed": 1, "failed": 0}

    def test_rerun_same_day_is_noop(self, owner_id, contact):
        """A second run on the same day should create nothing."""
        PayableSeriesFactory(
            owner_id=owner_id,
            contact=contact,
            recurrence_rule={"day_of_month": 1},
            next_due_date=datetime.date(2025, 1, 1),
        )
        today = datetime.date(2025, 3, 15)
        RecurrenceGenerator.generate_due_occurrences("payable", today=today)

        report = RecurrenceGenerator.generate_due_occurrences("payable", today=today)

        assert report.created == 0
        assert Payable.objects.count() == 3

    def test_month_end_clamping(self, owner_id, contact):
        """A day-31 series should land on the last day of February."""
        series = PayableSeriesFactory(
            owner_id=owner_id,
            contact=contact,
            recurrence_rule={"day_of_month": 31},
            next_due_date=datetime.date(2025, 1, 31),
        )

        RecurrenceGenerator.generate_due_occurrences("payable", today=datetime.date(2025, 1, 31))

        series.refresh_from_db()
        assert series.next_due_date == datetime.date(2025, 2, 28)

    def test_clamped_day_recovers_in_longer_month(self, owner_id, contact):
        """The configured day should return once the month is long enough."""
        series = PayableSeriesFactory(
            owner_id=owner_id,
            contact=contact,
            recurrence_rule={"day_of_month": 31},
            next_due_date=datetime.date(2025, 1, 31),
        )

        RecurrenceGenerator.generate_due_occurrences("payable", today=datetime.date(2025, 3, 31))

        due_dates = set(Payable.objects.values_list("due_date", flat=True))
        assert due_dates == {
            datetime.date(2025, 1, 31),
            datetime.date(2025, 2, 28),
            datetime.date(2025, 3, 31),
        }
        series.refresh_from_db()
        assert series.next_due_date == datetime.date(2025, 4, 30)

    def test_occurrence_copies_series(self, owner_id, contact):
        """Occurrences should copy contact, currency, amount and name from the series."""
        series = ReceivableSeriesFactory(
            owner_id=owner_id,
            contact=contact,
            currency="eur",
            name="Tutoring",
            default_amount=Decimal("75"),
            recurrence_rule=None,
            next_due_date=datetime.date(2025, 1, 10),
        )

        RecurrenceGenerator.generate_due_occurrences("receivable", today=datetime.date(2025, 1, 10))

        occurrence = Receivable.objects.get(series=series)
        assert occurrence.contact_id == contact.id
        assert occurrence.currency == "eur"
        assert occurrence.amount_total == Decimal("75")
        assert occurrence.amount_paid == Decimal("0")
        assert occurrence.status == ObligationStatus.OPEN
        assert occurrence.origin_transaction_id is None
        assert occurrence.description == "Tutoring"
        series.refresh_from_db()
        assert series.next_due_date == datetime.date(2025, 2, 10)

    def test_future_and_non_recurring_series_skipped(self, owner_id, contact):
        """Should skip series not yet due and series that do not recur."""
        PayableSeriesFactory(
            owner_id=owner_id, contact=contact, next_due_date=datetime.date(2025, 6, 1)
        )
        PayableSeriesFactory(owner_id=owner_id, contact=contact, is_recurring=False)

        report = RecurrenceGenerator.generate_due_occurrences(
            "payable", today=datetime.date(2025, 2, 1)
        )

        assert report.processed == 0
        assert not Payable.objects.exists()

    def test_failing_series_isolated(self, owner_id, contact):
        """One broken series should not stop the others."""
        broken = PayableSeriesFactory(
            owner_id=owner_id,
            contact=contact,
            recurrence_rule={"day_of_month": "last"},
            next_due_date=datetime.date(2025, 1, 5),
        )
        healthy = PayableSeriesFactory(
            owner_id=owner_id,
            contact=contact,
            recurrence_rule={"day_of_month": 5},
            next_due_date=datetime.date(2025, 1, 5),
        )

        report = RecurrenceGenerator.generate_due_occurrences(
            "payable", today=datetime.date(2025, 1, 20)
        )

        assert report.to_dict() == {"created": 1, "processed": 2, "failed": 1}
        assert Payable.objects.filter(series=healthy).count() == 1
        assert not Payable.objects.filter(series=broken).exists()
        broken.refresh_from_db()
        assert broken.next_due_date == datetime.date(2025, 1, 5)

    @freeze_time("2025-02-01 08:00:00")
    def test_defaults_to_local_date(self, owner_id, contact):
        """Should use today's date when none is given."""
        PayableSeriesFactory(
            owner_id=owner_id,
            contact=contact,
            recurrence_rule={"day_of_month": 1},
            next_due_date=datetime.date(2025, 1, 1),
        )

        report = RecurrenceGenerator.generate_due_occurrences("payable")

        assert report.created == 2
