"""
Transfers between two accounts.

A transfer is two ledger rows written in one atomic block: a
``transfer_out`` on the source and a ``transfer_in`` on the destination,
each pointing at the other through ``related_transaction``. Both carry
the conversion metadata when the accounts' currencies differ.

Usage:
    from bookkeeping.services import TransferService
    from bookkeeping.types import TransferParams

    result = TransferService.create_transfer(
        owner_id,
        TransferParams(
            source_account_id=usd.id,
            destination_account_id=eur.id,
            amount="100",
            transaction_date=today,
            conversion_rate="0.92",
        ),
    )
    result.in_leg.amount  # Decimal("92.0000")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from core.exceptions import ValidationError
from core.services import BaseService

from ..exceptions import AccountNotFound, ErrorCode, InactiveAccount
from ..models import Account, Transaction, TransactionType
from ..types import Money, TransferResult, to_rate
from .balance_service import BalanceRecalculator

if TYPE_CHECKING:
    import uuid
    from decimal import Decimal

    from ..types import TransactionParams, TransferParams

logger = logging.getLogger(__name__)


class TransferService(BaseService):
    """
    Creates, edits and deletes two-leg transfers.

    Deleting either leg goes through the ledger service's cascade, which
    removes the pair together.
    """

    @staticmethod
    def _lock_accounts(
        owner_id: uuid.UUID, source_id: int, destination_id: int
    ) -> tuple[Account, Account]:
        # Lock in id order so concurrent transfers between the same
        # accounts cannot deadlock.
        accounts = {
            account.pk: account
            for account in Account.objects.filter(
                owner_id=owner_id, pk__in=[source_id, destination_id]
            )
            .select_for_update()
            .order_by("id")
        }
        for account_id in (source_id, destination_id):
            if account_id not in accounts:
                raise AccountNotFound(
                    f"Account {account_id} not found",
                    details={"account_id": account_id},
                )
            if not accounts[account_id].is_active:
                raise InactiveAccount(
                    f"Account {account_id} is inactive",
                    details={"account_id": account_id},
                )
        return accounts[source_id], accounts[destination_id]

    @staticmethod
    def resolve_received_amount(
        source: Account,
        destination: Account,
        amount: Decimal,
        conversion_rate: Decimal | None,
        received_amount: Decimal | None,
    ) -> tuple[Decimal, Decimal | None, Decimal | None]:
        """
        Work out what lands on the destination.

        Returns:
            (received, conversion_rate, converted_amount). An explicit
            received amount wins; otherwise the rate applies when the
            currencies differ; otherwise the amount is unchanged and no
            conversion metadata is recorded.
        """
        cross_currency = source.currency != destination.currency
        if received_amount is not None:
            if conversion_rate is None and cross_currency:
                conversion_rate = to_rate(received_amount / amount)
            return received_amount, conversion_rate, received_amount
        if cross_currency and conversion_rate is not None:
            converted = Money(amount, source.currency).convert(
                conversion_rate, destination.currency
            )
            return converted.amount, conversion_rate, converted.amount
        return amount, None, None

    @classmethod
    def create_transfer(cls, owner_id: uuid.UUID, params: TransferParams) -> TransferResult:
        """
        Write both legs of a transfer atomically.

        Raises:
            ValidationError: SAME_ACCOUNT_TRANSFER (raised by TransferParams)
            AccountNotFound / InactiveAccount: For either account
        """
        with cls.atomic():
            source, destination = cls._lock_accounts(
                owner_id, params.source_account_id, params.destination_account_id
            )
            received, rate, converted = cls.resolve_received_amount(
                source,
                destination,
                params.amount,
                params.conversion_rate,
                params.received_amount,
            )

            out_leg = Transaction.objects.create(
                owner_id=owner_id,
                account=source,
                type=TransactionType.TRANSFER_OUT,
                amount=params.amount,
                transaction_date=params.transaction_date,
                description=params.description,
                destination_account=destination,
                conversion_rate=rate,
                converted_amount=converted,
            )
            in_leg = Transaction.objects.create(
                owner_id=owner_id,
                account=destination,
                type=TransactionType.TRANSFER_IN,
                amount=received,
                transaction_date=params.transaction_date,
                description=params.description,
                related_transaction=out_leg,
                conversion_rate=rate,
                converted_amount=converted,
            )
            out_leg.related_transaction = in_leg
            out_leg.save(update_fields=["related_transaction", "updated_at"])

            result = TransferResult(out_leg=out_leg, in_leg=in_leg)
            BalanceRecalculator.schedule_recalculation(result.account_ids)

        logger.info(
            "Transfer recorded",
            extra={
                "owner_id": str(owner_id),
                "out_transaction_id": out_leg.pk,
                "in_transaction_id": in_leg.pk,
                "amount": str(params.amount),
                "received_amount": str(received),
            },
        )
        return result

    @staticmethod
    def legs_of(entry: Transaction) -> tuple[Transaction, Transaction | None]:
        """
        Return (out_leg, in_leg) for either leg, locking the pair.

        The in-leg is None when a legacy out-leg has no pair.
        """
        paired = None
        if entry.related_transaction_id:
            paired = (
                Transaction.objects.select_for_update()
                .filter(pk=entry.related_transaction_id)
                .first()
            )
        if entry.type == TransactionType.TRANSFER_IN:
            if paired is None:
                raise ValidationError(
                    "Incoming transfer leg has no outgoing leg",
                    details={"transaction_id": [f"Unpaired transfer {entry.pk}."]},
                )
            return paired, entry
        return entry, paired

    @classmethod
    def update_transfer(
        cls,
        owner_id: uuid.UUID,
        entry: Transaction,
        params: TransactionParams,
    ) -> TransferResult:
        """
        Apply an edit to both legs of the transfer ``entry`` belongs to.

        The out-leg takes the sent amount, the in-leg the received amount;
        both share date and description. Must run inside the caller's
        atomic block with ``entry`` locked.
        """
        if params.type != TransactionType.TRANSFER:
            raise ValidationError(
                "Transfer legs cannot change type",
                error_code=ErrorCode.NON_CREATABLE_TYPE,
                details={"type": ["A transfer cannot become income or expense."]},
            )
        if params.account_id == params.destination_account_id:
            raise ValidationError(
                "Source and destination accounts must differ",
                error_code=ErrorCode.SAME_ACCOUNT_TRANSFER,
                details={
                    "destination_account_id": [
                        "Destination must differ from the source account."
                    ]
                },
            )

        out_leg, in_leg = cls.legs_of(entry)
        touched = {out_leg.account_id}
        if in_leg is not None:
            touched.add(in_leg.account_id)

        source, destination = cls._lock_accounts(
            owner_id, params.account_id, params.destination_account_id
        )
        received, rate, converted = cls.resolve_received_amount(
            source,
            destination,
            params.amount,
            params.conversion_rate,
            params.received_amount,
        )

        out_leg.account = source
        out_leg.destination_account = destination
        out_leg.amount = params.amount
        out_leg.transaction_date = params.transaction_date
        out_leg.description = params.description
        out_leg.conversion_rate = rate
        out_leg.converted_amount = converted
        out_leg.save()

        if in_leg is not None:
            in_leg.account = destination
            in_leg.amount = received
            in_leg.transaction_date = params.transaction_date
            in_leg.description = params.description
            in_leg.conversion_rate = rate
            in_leg.converted_amount = converted
            in_leg.save()

        touched.update({source.pk, destination.pk})
        BalanceRecalculator.schedule_recalculation(touched)
        logger.info(
            "Transfer updated",
            extra={"out_transaction_id": out_leg.pk, "amount": str(params.amount)},
        )
        return TransferResult(out_leg=out_leg, in_leg=in_leg)

    @staticmethod
    def delete_transfer(owner_id: uuid.UUID, transaction_id: int) -> list[Transaction]:
        """Soft-delete both legs; either leg's id may be given."""
        from .ledger_service import LedgerService

        return LedgerService.delete_transaction(owner_id, transaction_id)
