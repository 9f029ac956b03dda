"""
Balance recalculation for accounts.

Two independent recomputations keep an account's derived state in line
with its live ledger entries:

- recalculate_balance: sums signed amounts into ``Account.balance``
- recalculate_running_balances: walks entries in (transaction_date, id)
  order and rewrites every ``running_balance``

Both are full, idempotent recomputations. They are never called inline
by a write; ``schedule_recalculation`` enqueues the Celery jobs after the
enclosing database transaction commits.

Usage:
    from bookkeeping.services import BalanceRecalculator

    BalanceRecalculator.schedule_recalculation({account.id})

    # Inside a worker
    BalanceRecalculator.recalculate_running_balances(account_id)
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from django.db.models import DecimalField, Q, Sum, Value
from django.db.models.functions import Coalesce

from core.services import BaseService

from ..models import NEGATIVE_TYPES, POSITIVE_TYPES, Account, Transaction, TransactionType
from ..types import ZERO

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

_POSITIVE_VALUES = sorted(t.value for t in POSITIVE_TYPES)
_NEGATIVE_VALUES = sorted(t.value for t in NEGATIVE_TYPES)


def _signed_sum(type_values: list[str]) -> Coalesce:
    return Coalesce(
        Sum("amount", filter=Q(type__in=type_values)),
        Value(ZERO),
        output_field=DecimalField(max_digits=20, decimal_places=4),
    )


class BalanceRecalculator(BaseService):
    """
    Recomputes derived balances from the ledger.

    ``Account.balance``, ``Transaction.running_balance`` and
    ``Transaction.destination_running_balance`` are written only here.
    """

    @staticmethod
    def compute_balance(account_id: int) -> Decimal:
        """Return the signed sum of the account's live entries (0 if none)."""
        totals = Transaction.objects.filter(account_id=account_id).aggregate(
            positive=_signed_sum(_POSITIVE_VALUES),
            negative=_signed_sum(_NEGATIVE_VALUES),
        )
        return totals["positive"] - totals["negative"]

    @classmethod
    def recalculate_balance(cls, account_id: int) -> Decimal | None:
        """
        Rewrite ``Account.balance`` from a direct sum.

        Returns:
            The new balance, or None if the account no longer exists
        """
        with cls.atomic():
            account = Account.objects.select_for_update().filter(pk=account_id).first()
            if account is None:
                logger.warning(
                    "Skipping balance recalculation for missing account",
                    extra={"account_id": account_id},
                )
                return None

            balance = cls.compute_balance(account_id)
            if account.balance != balance:
                Account.objects.filter(pk=account_id).update(balance=balance)
                logger.info(
                    "Account balance updated",
                    extra={
                        "account_id": account_id,
                        "old_balance": str(account.balance),
                        "new_balance": str(balance),
                    },
                )
        return balance

    @classmethod
    def recalculate_running_balances(cls, account_id: int) -> Decimal | None:
        """
        Rewrite every running balance of the account in (date, id) order.

        The account row is locked for the duration so two workers handling
        the same account serialize. Only rows whose value changes are
        written. The final running total is also stored as the balance.

        On a transfer in-leg, the computed running balance is copied to the
        paired out-leg's ``destination_running_balance``.

        Returns:
            The final running total, or None if the account no longer exists
        """
        with cls.atomic():
            account = Account.objects.select_for_update().filter(pk=account_id).first()
            if account is None:
                logger.warning(
                    "Skipping running balance recalculation for missing account",
                    extra={"account_id": account_id},
                )
                return None

            entries = list(
                Transaction.objects.filter(account_id=account_id).order_by(
                    "transaction_date", "id"
                )
            )

            running = ZERO
            changed: list[Transaction] = []
            for entry in entries:
                running += entry.signed_amount
                if entry.running_balance != running:
                    entry.running_balance = running
                    changed.append(entry)

            if changed:
                Transaction.objects.bulk_update(
                    changed, ["running_balance"], batch_size=500
                )

            for entry in entries:
                if entry.type == TransactionType.TRANSFER_IN and entry.related_transaction_id:
                    Transaction.all_objects.filter(
                        pk=entry.related_transaction_id
                    ).exclude(
                        destination_running_balance=entry.running_balance
                    ).update(destination_running_balance=entry.running_balance)

            if account.balance != running:
                Account.objects.filter(pk=account_id).update(balance=running)

        logger.info(
            "Running balances recalculated",
            extra={
                "account_id": account_id,
                "entries": len(entries),
                "changed": len(changed),
                "balance": str(running),
            },
        )
        return running

    @classmethod
    def schedule_recalculation(cls, account_ids: Iterable[int | None]) -> None:
        """
        Enqueue balance and running-balance jobs once the write commits.

        Nothing is enqueued if the enclosing transaction rolls back.
        """
        ids = sorted({account_id for account_id in account_ids if account_id})
        if not ids:
            return

        def _enqueue() -> None:
            from ..tasks import recalculate_account_balance, recalculate_running_balances

            for account_id in ids:
                recalculate_account_balance.delay(account_id)
                recalculate_running_balances.delay(account_id)

        cls.after_commit(_enqueue)
