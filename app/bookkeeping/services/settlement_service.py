"""
Settlement of payables and receivables.

A settlement writes four things as one unit: a ledger entry on the
paying/receiving account, a payment row linking obligation, account and
entry, the obligation's new ``amount_paid`` and its re-derived
``status``. Deleting the entry reverses all of it (see
``reverse_payment_for_entry``, called by the ledger service).

``amount_paid`` and ``status`` are written only by this module.

Usage:
    from bookkeeping.services import SettlementService
    from bookkeeping.types import SettlementParams

    payment = SettlementService.settle(
        owner_id,
        payable,
        SettlementParams(account_id=checking.id, amount="40", paid_at=today),
    )
    payable.status  # "partial"
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from django.db.models import DecimalField, Sum, Value
from django.db.models.functions import Coalesce

from core.exceptions import ValidationError
from core.services import BaseService

from ..exceptions import (
    ConcurrentModification,
    ConsistencyViolation,
    ErrorCode,
    ObligationNotFound,
)
from ..models import (
    ObligationKind,
    ObligationStatus,
    Payable,
    PayablePayment,
    PayableSeries,
    Receivable,
    ReceivablePayment,
    ReceivableSeries,
    Transaction,
    TransactionType,
)
from ..types import ZERO, to_amount
from .balance_service import BalanceRecalculator
from .budget_service import BudgetCacheInvalidator
from .lookups import check_categories, get_account, get_contact

if TYPE_CHECKING:
    import datetime
    import uuid
    from decimal import Decimal

    from django.db import models

    from ..types import ObligationParams, SeriesParams, SettlementParams

logger = logging.getLogger(__name__)

AnyObligation = Union[Payable, Receivable]
AnyPayment = Union[PayablePayment, ReceivablePayment]


@dataclass(frozen=True)
class Book:
    """
    The models and ledger rules of one side of the obligation books.

    Attributes:
        kind: payable or receivable
        obligation_model / payment_model / series_model: Concrete models
        parent_field: Name of the payment's FK to its obligation
        entry_type: Ledger entry type written by a settlement
        direction: "to" or "from", used in entry descriptions
    """

    kind: ObligationKind
    obligation_model: type[models.Model]
    payment_model: type[models.Model]
    series_model: type[models.Model]
    parent_field: str
    entry_type: TransactionType
    direction: str

    def describe(self, contact_name: str, note: str | None) -> str:
        description = f"Payment {self.direction} {contact_name}"
        if note:
            description = f"{description}: {note}"
        return description


BOOKS: dict[ObligationKind, Book] = {
    ObligationKind.PAYABLE: Book(
        kind=ObligationKind.PAYABLE,
        obligation_model=Payable,
        payment_model=PayablePayment,
        series_model=PayableSeries,
        parent_field="payable",
        entry_type=TransactionType.EXPENSE,
        direction="to",
    ),
    ObligationKind.RECEIVABLE: Book(
        kind=ObligationKind.RECEIVABLE,
        obligation_model=Receivable,
        payment_model=ReceivablePayment,
        series_model=ReceivableSeries,
        parent_field="receivable",
        entry_type=TransactionType.INCOME,
        direction="from",
    ),
}


def book_for(obligation: AnyObligation) -> Book:
    if isinstance(obligation, Payable):
        return BOOKS[ObligationKind.PAYABLE]
    if isinstance(obligation, Receivable):
        return BOOKS[ObligationKind.RECEIVABLE]
    raise TypeError(f"Not an obligation: {type(obligation).__name__}")


class SettlementService(BaseService):
    """
    Service class for obligations and their settlements.

    Key features:
    - Settlement writes are atomic (entry, payment, amount_paid, status)
    - The obligation row is locked and re-validated before writing
    - Reversal on entry deletion restores the paid-amount invariant
    """

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @staticmethod
    def get_obligation(
        owner_id: uuid.UUID,
        kind: ObligationKind | str,
        obligation_id: int,
        *,
        lock: bool = False,
    ) -> AnyObligation:
        book = BOOKS[ObligationKind(kind)]
        queryset = book.obligation_model.objects.filter(owner_id=owner_id, pk=obligation_id)
        if lock:
            queryset = queryset.select_for_update()
        obligation = queryset.first()
        if obligation is None:
            raise ObligationNotFound(
                f"{book.kind.label} {obligation_id} not found",
                details={f"{book.kind.value}_id": obligation_id},
            )
        return obligation

    @staticmethod
    def paid_total(obligation: AnyObligation) -> Decimal:
        """Sum of the obligation's payment rows."""
        return obligation.payments.aggregate(
            total=Coalesce(
                Sum("amount"),
                Value(ZERO),
                output_field=DecimalField(max_digits=15, decimal_places=4),
            )
        )["total"]

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    @classmethod
    def settle(
        cls,
        owner_id: uuid.UUID,
        obligation: AnyObligation,
        params: SettlementParams,
    ) -> AnyPayment:
        """
        Record a payment against a payable or receivable.

        A payable settlement writes an expense on the paying account, a
        receivable settlement an income on the receiving account.

        Args:
            owner_id: Owner of the obligation and the account
            obligation: The obligation as the caller last read it
            params: Account, amount, date, note and category

        Returns:
            The created payment; ``obligation`` is refreshed in place

        Raises:
            ValidationError: OBLIGATION_ALREADY_PAID if the locked row is
                paid and the caller's copy agrees
            ConcurrentModification: If the locked row was paid in full
                after the caller read it
            AccountNotFound / InactiveAccount: For a bad paying account
        """
        book = book_for(obligation)
        check_categories(owner_id, [params.category_id])

        with cls.atomic():
            locked = cls.get_obligation(owner_id, book.kind, obligation.pk, lock=True)
            if locked.status == ObligationStatus.PAID:
                if obligation.status == ObligationStatus.PAID:
                    raise ValidationError(
                        f"{book.kind.label} is already paid",
                        error_code=ErrorCode.OBLIGATION_ALREADY_PAID,
                        details={"amount": ["This obligation is already paid."]},
                    )
                raise ConcurrentModification(
                    f"{book.kind.label} {locked.pk} was paid by another request",
                    details={f"{book.kind.value}_id": locked.pk},
                )
            account = get_account(owner_id, params.account_id, require_active=True)

            entry = Transaction.objects.create(
                owner_id=owner_id,
                account=account,
                type=book.entry_type,
                amount=params.amount,
                transaction_date=params.paid_at,
                description=book.describe(locked.contact.name, params.note),
                category_id=params.category_id,
            )
            payment = book.payment_model.objects.create(
                **{book.parent_field: locked},
                account=account,
                amount=params.amount,
                paid_at=params.paid_at,
                note=params.note,
                category_id=params.category_id,
                transaction=entry,
            )
            locked.amount_paid += params.amount
            locked.status = ObligationStatus.derive(locked.amount_paid, locked.amount_total)
            locked.save(update_fields=["amount_paid", "status", "updated_at"])

            BalanceRecalculator.schedule_recalculation([account.pk])
            BudgetCacheInvalidator.invalidate_for_entries([entry])

        obligation.amount_paid = locked.amount_paid
        obligation.status = locked.status
        logger.info(
            "Obligation settled",
            extra={
                "kind": book.kind.value,
                "obligation_id": locked.pk,
                "payment_id": payment.pk,
                "transaction_id": entry.pk,
                "amount": str(params.amount),
                "status": locked.status,
            },
        )
        return payment

    @classmethod
    def reverse_payment_for_entry(cls, entry: Transaction) -> AnyObligation | None:
        """
        Undo the settlement backed by ``entry``, if any.

        Hard-deletes the payment, decrements ``amount_paid`` (never below
        zero) and re-derives the status. Must run inside the caller's
        atomic block that soft-deletes the entry.

        Returns:
            The updated obligation, or None if the entry settles nothing
        """
        for book in BOOKS.values():
            payment = (
                book.payment_model.objects.select_for_update()
                .filter(transaction_id=entry.pk)
                .first()
            )
            if payment is None:
                continue

            obligation = (
                book.obligation_model.objects.select_for_update()
                .filter(pk=getattr(payment, f"{book.parent_field}_id"))
                .get()
            )
            obligation.amount_paid = max(ZERO, obligation.amount_paid - payment.amount)
            obligation.status = ObligationStatus.derive(
                obligation.amount_paid, obligation.amount_total
            )
            obligation.save(update_fields=["amount_paid", "status", "updated_at"])
            payment.delete()

            logger.info(
                "Settlement reversed",
                extra={
                    "kind": book.kind.value,
                    "obligation_id": obligation.pk,
                    "transaction_id": entry.pk,
                    "amount": str(payment.amount),
                    "status": obligation.status,
                },
            )
            return obligation
        return None

    @classmethod
    def sync_payment_from_entry(cls, entry: Transaction) -> AnyObligation | None:
        """
        Carry an edited entry's amount, account and date onto its payment.

        Raises:
            ValidationError: NON_CREATABLE_TYPE if the edit changed the
                entry type a settlement writes

        Returns:
            The recomputed obligation, or None if the entry settles nothing
        """
        for book in BOOKS.values():
            payment = (
                book.payment_model.objects.select_for_update()
                .filter(transaction_id=entry.pk)
                .first()
            )
            if payment is None:
                continue
            if entry.type != book.entry_type:
                raise ValidationError(
                    f"A {book.kind.value} settlement must stay a {book.entry_type.value} entry",
                    error_code=ErrorCode.NON_CREATABLE_TYPE,
                    details={"type": [f"Settlement entries are {book.entry_type.value} entries."]},
                )
            payment.amount = entry.amount
            payment.account_id = entry.account_id
            payment.paid_at = entry.transaction_date
            payment.save(update_fields=["amount", "account", "paid_at", "updated_at"])
            return cls.recompute_obligation(getattr(payment, book.parent_field))
        return None

    # ------------------------------------------------------------------
    # Consistency
    # ------------------------------------------------------------------

    @classmethod
    def recompute_obligation(cls, obligation: AnyObligation) -> AnyObligation:
        """Rewrite ``amount_paid`` and ``status`` from the payment rows."""
        book = book_for(obligation)
        with cls.atomic():
            locked = book.obligation_model.objects.select_for_update().get(pk=obligation.pk)
            locked.amount_paid = cls.paid_total(locked)
            locked.status = ObligationStatus.derive(locked.amount_paid, locked.amount_total)
            locked.save(update_fields=["amount_paid", "status", "updated_at"])
        obligation.amount_paid = locked.amount_paid
        obligation.status = locked.status
        return obligation

    @classmethod
    def verify_obligation(cls, obligation: AnyObligation) -> None:
        """
        Raise ConsistencyViolation if the derived fields disagree with
        the payment rows.
        """
        expected = cls.paid_total(obligation)
        if obligation.amount_paid != expected:
            raise ConsistencyViolation(
                f"amount_paid of {book_for(obligation).kind.value} "
                f"{obligation.pk} does not match its payments",
                expected=expected,
                actual=obligation.amount_paid,
                details={"obligation_id": obligation.pk},
            )
        status = ObligationStatus.derive(obligation.amount_paid, obligation.amount_total)
        if obligation.status != status:
            raise ConsistencyViolation(
                f"status of {book_for(obligation).kind.value} {obligation.pk} "
                f"is {obligation.status}, expected {status}",
                expected=status,
                actual=obligation.status,
                details={"obligation_id": obligation.pk},
            )

    @classmethod
    def audit_obligations(cls, kind: ObligationKind | str) -> int:
        """
        Verify every obligation of ``kind`` and repair the broken ones.

        Returns:
            Number of obligations repaired
        """
        book = BOOKS[ObligationKind(kind)]
        repaired = 0
        for obligation in book.obligation_model.objects.order_by("id").iterator():
            try:
                cls.verify_obligation(obligation)
            except ConsistencyViolation as e:
                logger.warning(
                    "Repairing obligation with inconsistent payments",
                    extra={"kind": book.kind.value, **e.details},
                )
                cls.recompute_obligation(obligation)
                repaired += 1
        return repaired

    # ------------------------------------------------------------------
    # Obligations and series
    # ------------------------------------------------------------------

    @classmethod
    def create_obligation(
        cls,
        owner_id: uuid.UUID,
        kind: ObligationKind | str,
        params: ObligationParams,
    ) -> AnyObligation:
        book = BOOKS[ObligationKind(kind)]
        contact = get_contact(owner_id, params.contact_id)
        if params.origin_transaction_id is not None and not Transaction.all_objects.filter(
            owner_id=owner_id, pk=params.origin_transaction_id
        ).exists():
            raise ValidationError(
                "Unknown origin transaction",
                details={"origin_transaction_id": ["Invalid transaction."]},
            )

        obligation = book.obligation_model.objects.create(
            owner_id=owner_id,
            contact=contact,
            currency=params.currency,
            amount_total=params.amount_total,
            amount_paid=ZERO,
            status=ObligationStatus.OPEN,
            due_date=params.due_date,
            description=params.description,
            origin_transaction_id=params.origin_transaction_id,
        )
        logger.info(
            "Obligation created",
            extra={"kind": book.kind.value, "obligation_id": obligation.pk},
        )
        return obligation

    @classmethod
    def update_obligation(
        cls,
        owner_id: uuid.UUID,
        obligation: AnyObligation,
        *,
        amount_total: Decimal | None = None,
        due_date: datetime.date | None = None,
        description: str | None = None,
    ) -> AnyObligation:
        """
        Edit total, due date or description; ``None`` leaves a field as is.

        The status is re-derived against the new total.
        """
        book = book_for(obligation)
        with cls.atomic():
            locked = cls.get_obligation(owner_id, book.kind, obligation.pk, lock=True)
            if amount_total is not None:
                amount_total = to_amount(amount_total, "amount_total")
                if amount_total <= 0:
                    raise ValidationError(
                        "amount_total must be greater than zero",
                        error_code=ErrorCode.INVALID_AMOUNT,
                        details={"amount_total": ["Ensure this value is greater than 0."]},
                    )
                locked.amount_total = amount_total
            if due_date is not None:
                locked.due_date = due_date
            if description is not None:
                locked.description = description
            locked.status = ObligationStatus.derive(locked.amount_paid, locked.amount_total)
            locked.save()
        logger.info(
            "Obligation updated",
            extra={"kind": book.kind.value, "obligation_id": locked.pk},
        )
        return locked

    @classmethod
    def create_series(
        cls,
        owner_id: uuid.UUID,
        kind: ObligationKind | str,
        params: SeriesParams,
    ):
        book = BOOKS[ObligationKind(kind)]
        contact = get_contact(owner_id, params.contact_id)
        series = book.series_model.objects.create(
            owner_id=owner_id,
            contact=contact,
            currency=params.currency,
            name=params.name,
            default_amount=params.default_amount,
            is_recurring=params.is_recurring,
            recurrence_rule=params.rule.to_raw(),
            next_due_date=params.next_due_date,
        )
        logger.info(
            "Series created",
            extra={"kind": book.kind.value, "series_id": series.pk},
        )
        return series
