"""
Payables, receivables, their payments and the series that generate them.

Payables ("I owe") and receivables ("owed to me") are structurally
identical, so each concrete pair shares an abstract base:

- Obligation -> Payable, Receivable
- Payment -> PayablePayment, ReceivablePayment
- Series -> PayableSeries, ReceivableSeries

``amount_paid`` and ``status`` are derived from the payment rows and are
written only by the settlement service.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.db.models import Q

from core.models import BaseModel


class ObligationKind(models.TextChoices):
    PAYABLE = "payable", "Payable"
    RECEIVABLE = "receivable", "Receivable"


class ObligationStatus(models.TextChoices):
    """
    Settlement state of a payable or receivable.

    Values:
        OPEN: Nothing paid yet
        PARTIAL: Some but not all of the total paid
        PAID: Paid in full (or overpaid)
    """

    OPEN = "open", "Open"
    PARTIAL = "partial", "Partial"
    PAID = "paid", "Paid"

    @classmethod
    def derive(cls, amount_paid: Decimal, amount_total: Decimal) -> ObligationStatus:
        if amount_paid >= amount_total:
            return cls.PAID
        if amount_paid > 0:
            return cls.PARTIAL
        return cls.OPEN


class Obligation(BaseModel):
    """
    Abstract base for an amount owed to or by a contact.

    Fields:
        owner_id: UUID of the owning user
        contact: Counterparty
        currency: ISO 4217 currency code
        amount_total: Amount originally owed
        amount_paid: Derived; sum of the payment rows
        status: Derived from amount_paid vs amount_total
        description: Optional free text
        due_date: When the amount falls due
        origin_transaction: Entry that gave rise to the obligation,
            e.g. a shared expense
    """

    owner_id = models.UUIDField(db_index=True)
    contact = models.ForeignKey(
        "bookkeeping.Contact",
        on_delete=models.CASCADE,
        related_name="+",
    )
    currency = models.CharField(max_length=3, default="usd")
    amount_total = models.DecimalField(max_digits=15, decimal_places=4)
    amount_paid = models.DecimalField(
        max_digits=15,
        decimal_places=4,
        default=Decimal("0"),
    )
    status = models.CharField(
        max_length=10,
        choices=ObligationStatus.choices,
        default=ObligationStatus.OPEN,
        db_index=True,
    )
    description = models.TextField(null=True, blank=True)
    due_date = models.DateField(null=True, blank=True)
    origin_transaction = models.ForeignKey(
        "bookkeeping.Transaction",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        abstract = True
        ordering = ["due_date", "id"]

    def __str__(self) -> str:
        return f"{self.contact_id}: {self.amount_paid}/{self.amount_total} ({self.status})"

    @property
    def outstanding(self) -> Decimal:
        return max(self.amount_total - self.amount_paid, Decimal("0"))


class Series(BaseModel):
    """
    Abstract template that periodically generates obligations.

    ``recurrence_rule`` is a JSON object; the only key read today is
    ``day_of_month``. ``next_due_date`` is advanced exclusively by the
    recurrence generator.
    """

    owner_id = models.UUIDField(db_index=True)
    contact = models.ForeignKey(
        "bookkeeping.Contact",
        on_delete=models.CASCADE,
        related_name="+",
    )
    currency = models.CharField(max_length=3, default="usd")
    name = models.CharField(max_length=150)
    default_amount = models.DecimalField(max_digits=15, decimal_places=4)
    is_recurring = models.BooleanField(default=False)
    recurrence_rule = models.JSONField(null=True, blank=True)
    next_due_date = models.DateField(null=True, blank=True, db_index=True)

    class Meta:
        abstract = True
        ordering = ["name", "id"]

    def __str__(self) -> str:
        return self.name


class PayableSeries(Series):
    class Meta(Series.Meta):
        verbose_name_plural = "payable series"


class ReceivableSeries(Series):
    class Meta(Series.Meta):
        verbose_name_plural = "receivable series"


class Payable(Obligation):
    """An amount the owner owes to a contact."""

    series = models.ForeignKey(
        PayableSeries,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="occurrences",
    )

    class Meta(Obligation.Meta):
        constraints = [
            models.CheckConstraint(
                condition=Q(amount_paid__gte=0),
                name="payable_amount_paid_non_negative",
            )
        ]


class Receivable(Obligation):
    """An amount a contact owes to the owner."""

    series = models.ForeignKey(
        ReceivableSeries,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="occurrences",
    )

    class Meta(Obligation.Meta):
        constraints = [
            models.CheckConstraint(
                condition=Q(amount_paid__gte=0),
                name="receivable_amount_paid_non_negative",
            )
        ]


class Payment(BaseModel):
    """
    Abstract base for one settlement against an obligation.

    The linked ``transaction`` is the real ledger movement. Deleting that
    entry hard-deletes the payment and rolls back the obligation.
    """

    account = models.ForeignKey(
        "bookkeeping.Account",
        on_delete=models.CASCADE,
        related_name="+",
    )
    amount = models.DecimalField(max_digits=15, decimal_places=4)
    paid_at = models.DateField()
    note = models.TextField(null=True, blank=True)
    category = models.ForeignKey(
        "bookkeeping.Category",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        abstract = True
        ordering = ["paid_at", "id"]

    def __str__(self) -> str:
        return f"Payment of {self.amount} on {self.paid_at}"


class PayablePayment(Payment):
    payable = models.ForeignKey(
        Payable,
        on_delete=models.CASCADE,
        related_name="payments",
    )
    transaction = models.OneToOneField(
        "bookkeeping.Transaction",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payable_payment",
    )


class ReceivablePayment(Payment):
    receivable = models.ForeignKey(
        Receivable,
        on_delete=models.CASCADE,
        related_name="payments",
    )
    transaction = models.OneToOneField(
        "bookkeeping.Transaction",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="receivable_payment",
    )
