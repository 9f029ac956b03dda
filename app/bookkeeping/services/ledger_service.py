"""
Ledger service layer: accounts and ledger entries.

All ledger writes go through this service. Each public mutation runs in
one atomic block, applies the cascade rules, and then explicitly:

1. schedules balance recalculation for every touched account (after
   commit), and
2. evicts the budget summaries fed by the entry, before and after the
   change.

Cascade rules on delete:
- the paired leg of a transfer is soft-deleted with the entry
- a settlement payment backed by the entry is hard-deleted and its
  obligation's paid amount rolled back

Usage:
    from bookkeeping.services import ledger
    from bookkeeping.types import TransactionParams

    account = ledger.create_account(owner_id, name="Checking", opening_balance="250")
    entry = ledger.create_transaction(owner_id, TransactionParams(
        account_id=account.id,
        type="expense",
        amount="12.50",
        transaction_date=date(2025, 1, 3),
        category_id=groceries.id,
    ))
    ledger.delete_transaction(owner_id, entry.id)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db.models import Q
from django.utils import timezone

from core.exceptions import ValidationError
from core.services import BaseService

from ..exceptions import ErrorCode
from ..models import (
    CATEGORIZED_TYPES,
    Account,
    AccountType,
    ObligationKind,
    Transaction,
    TransactionSplit,
    TransactionType,
)
from ..types import ZERO, ObligationParams, SettlementParams, TransferParams, to_amount
from .balance_service import BalanceRecalculator
from .budget_service import BudgetCacheInvalidator
from .lookups import check_categories, get_account, get_contact, get_entry
from .settlement_service import SettlementService
from .transfer_service import TransferService

if TYPE_CHECKING:
    import datetime
    import uuid
    from decimal import Decimal

    from ..types import SharedShareParams, SplitParams, TransactionParams

logger = logging.getLogger(__name__)


class LedgerService(BaseService):
    """
    Service class for accounts and ledger entries.

    Key features:
    - Type rules enforced on create (category, creatable types)
    - Transfers delegated to TransferService, settlements reversed
      through SettlementService
    - Explicit recalculation and cache-eviction hooks on every write

    All methods are class or static methods; no instance state.
    """

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    @staticmethod
    def get_account(owner_id: uuid.UUID, account_id: int) -> Account:
        return get_account(owner_id, account_id)

    @classmethod
    def create_account(
        cls,
        owner_id: uuid.UUID,
        *,
        name: str,
        currency: str = "usd",
        type: str = AccountType.GENERAL,
        description: str | None = None,
        opening_balance: Decimal | str | None = None,
        opening_date: datetime.date | None = None,
    ) -> Account:
        """
        Create an account, optionally with an opening balance.

        A positive opening balance becomes an ``initial`` entry, a
        negative one an ``adjustment_negative`` entry, dated
        ``opening_date`` (default today).
        """
        account_type = AccountType(type)
        with cls.atomic():
            account = Account.objects.create(
                owner_id=owner_id,
                name=name,
                currency=currency.lower(),
                type=account_type,
                description=description,
            )
            if opening_balance is not None:
                cls._write_opening_balance(
                    account,
                    to_amount(opening_balance, "opening_balance"),
                    opening_date or timezone.localdate(),
                )

        logger.info(
            "Account created",
            extra={
                "account_id": account.pk,
                "owner_id": str(owner_id),
                "type": account_type.value,
                "currency": account.currency,
            },
        )
        return account

    @classmethod
    def _write_opening_balance(
        cls, account: Account, balance: Decimal, on: datetime.date
    ) -> Transaction | None:
        if balance == 0:
            return None
        entry = Transaction.objects.create(
            owner_id=account.owner_id,
            account=account,
            type=(
                TransactionType.INITIAL
                if balance > 0
                else TransactionType.ADJUSTMENT_NEGATIVE
            ),
            amount=abs(balance),
            transaction_date=on,
            description="Initial balance",
        )
        BalanceRecalculator.schedule_recalculation([account.pk])
        return entry

    @classmethod
    def update_account(
        cls,
        owner_id: uuid.UUID,
        account_id: int,
        *,
        name: str | None = None,
        type: str | None = None,
        description: str | None = None,
    ) -> Account:
        """Edit account metadata. The balance is never edited here."""
        with cls.atomic():
            account = get_account(owner_id, account_id, lock=True)
            if name is not None:
                account.name = name
            if type is not None:
                account.type = AccountType(type)
            if description is not None:
                account.description = description
            account.save(update_fields=["name", "type", "description", "updated_at"])
        return account

    @classmethod
    def deactivate_account(cls, owner_id: uuid.UUID, account_id: int) -> Account:
        """Inactive accounts keep their history but reject new entries."""
        with cls.atomic():
            account = get_account(owner_id, account_id, lock=True)
            account.is_active = False
            account.save(update_fields=["is_active", "updated_at"])
        logger.info("Account deactivated", extra={"account_id": account_id})
        return account

    @classmethod
    def reactivate_account(cls, owner_id: uuid.UUID, account_id: int) -> Account:
        with cls.atomic():
            account = get_account(owner_id, account_id, lock=True)
            account.is_active = True
            account.save(update_fields=["is_active", "updated_at"])
        logger.info("Account reactivated", extra={"account_id": account_id})
        return account

    @classmethod
    def adjust_balance(
        cls,
        owner_id: uuid.UUID,
        account_id: int,
        target_balance: Decimal | str,
        adjustment_date: datetime.date | None = None,
        description: str | None = None,
    ) -> Transaction | None:
        """
        Bring the account to ``target_balance`` with an adjustment entry.

        The difference is taken against the balance computed from the
        ledger, not the cached column.

        Returns:
            The adjustment entry, or None when no adjustment is needed
        """
        target = to_amount(target_balance, "target_balance")
        with cls.atomic():
            account = get_account(owner_id, account_id, require_active=True, lock=True)
            difference = target - BalanceRecalculator.compute_balance(account.pk)
            if difference == 0:
                return None
            entry = Transaction.objects.create(
                owner_id=owner_id,
                account=account,
                type=(
                    TransactionType.ADJUSTMENT_POSITIVE
                    if difference > 0
                    else TransactionType.ADJUSTMENT_NEGATIVE
                ),
                amount=abs(difference),
                transaction_date=adjustment_date or timezone.localdate(),
                description=description or "Balance adjustment",
            )
            BalanceRecalculator.schedule_recalculation([account.pk])

        logger.info(
            "Balance adjusted",
            extra={
                "account_id": account_id,
                "transaction_id": entry.pk,
                "difference": str(difference),
            },
        )
        return entry

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    @staticmethod
    def get_transaction(owner_id: uuid.UUID, transaction_id: int) -> Transaction:
        return get_entry(owner_id, transaction_id)

    @staticmethod
    def list_transactions(owner_id: uuid.UUID, account_id: int):
        """Live entries of an account in running-balance order."""
        return Transaction.objects.filter(
            owner_id=owner_id, account_id=account_id
        ).order_by("transaction_date", "id")

    @staticmethod
    def _write_splits(entry: Transaction, splits: list[SplitParams]) -> None:
        TransactionSplit.objects.bulk_create(
            [
                TransactionSplit(
                    transaction=entry,
                    category_id=split.category_id,
                    amount=split.amount,
                )
                for split in splits
            ]
        )

    @classmethod
    def create_transaction(
        cls, owner_id: uuid.UUID, params: TransactionParams
    ) -> Transaction:
        """
        Record an income, expense or transfer.

        Transfers are written as two legs by TransferService; the out-leg
        is returned. Shared expenses also create one receivable per share,
        settled right away when the share names an account.

        Raises:
            ValidationError: For category, split or ownership problems
            AccountNotFound / InactiveAccount: For a bad account
        """
        if params.type == TransactionType.TRANSFER:
            result = TransferService.create_transfer(
                owner_id,
                TransferParams(
                    source_account_id=params.account_id,
                    destination_account_id=params.destination_account_id,
                    amount=params.amount,
                    transaction_date=params.transaction_date,
                    conversion_rate=params.conversion_rate,
                    received_amount=params.received_amount,
                    description=params.description,
                ),
            )
            return result.out_leg

        check_categories(
            owner_id, [params.category_id, *(s.category_id for s in params.splits)]
        )

        with cls.atomic():
            account = get_account(owner_id, params.account_id, require_active=True)
            entry = Transaction.objects.create(
                owner_id=owner_id,
                account=account,
                type=params.type,
                amount=params.amount,
                personal_amount=params.personal_amount,
                transaction_date=params.transaction_date,
                description=params.description,
                category_id=params.category_id,
            )
            cls._write_splits(entry, params.splits)
            if params.shares:
                cls._record_shares(owner_id, entry, params.shares)

            BalanceRecalculator.schedule_recalculation([account.pk])
            BudgetCacheInvalidator.invalidate_for_entries([entry])

        logger.info(
            "Transaction created",
            extra={
                "transaction_id": entry.pk,
                "account_id": account.pk,
                "type": entry.type,
                "amount": str(entry.amount),
                "splits": len(params.splits),
                "shares": len(params.shares),
            },
        )
        return entry

    @staticmethod
    def _record_shares(
        owner_id: uuid.UUID, entry: Transaction, shares: list[SharedShareParams]
    ) -> None:
        for share in shares:
            contact = get_contact(owner_id, share.contact_id)
            receivable = SettlementService.create_obligation(
                owner_id,
                ObligationKind.RECEIVABLE,
                ObligationParams(
                    contact_id=contact.pk,
                    amount_total=share.amount,
                    currency=entry.account.currency,
                    due_date=entry.transaction_date,
                    description=entry.description or f"Shared expense {entry.pk}",
                    origin_transaction_id=entry.pk,
                ),
            )
            if share.settle_account_id is not None:
                SettlementService.settle(
                    owner_id,
                    receivable,
                    SettlementParams(
                        account_id=share.settle_account_id,
                        amount=share.amount,
                        paid_at=entry.transaction_date,
                    ),
                )

    @classmethod
    def update_transaction(
        cls,
        owner_id: uuid.UUID,
        transaction_id: int,
        params: TransactionParams,
    ) -> Transaction:
        """
        Rewrite an entry.

        Editing either leg of a transfer edits both. Splits are replaced
        wholesale. An entry backing a settlement carries its new amount,
        account and date onto the payment, and the obligation is
        recomputed. Budget summaries for the old and the new date and
        categories are evicted.
        """
        with cls.atomic():
            entry = get_entry(owner_id, transaction_id, lock=True)
            kind = entry.entry_type

            if kind.is_transfer_leg or kind == TransactionType.TRANSFER:
                result = TransferService.update_transfer(owner_id, entry, params)
                return result.out_leg if entry.pk == result.out_leg.pk else result.in_leg

            if kind not in CATEGORIZED_TYPES:
                raise ValidationError(
                    f"{kind.label} entries cannot be edited",
                    error_code=ErrorCode.NON_CREATABLE_TYPE,
                    details={"type": [f"{kind.value!r} entries are system-managed."]},
                )
            if params.type not in CATEGORIZED_TYPES:
                raise ValidationError(
                    "Income and expense entries cannot become transfers",
                    error_code=ErrorCode.NON_CREATABLE_TYPE,
                    details={"type": ["Delete the entry and record a transfer instead."]},
                )
            if params.shares:
                raise ValidationError(
                    "Shares can only be given when the expense is created",
                    details={"shares": ["Not allowed on update."]},
                )
            check_categories(
                owner_id, [params.category_id, *(s.category_id for s in params.splits)]
            )
            account = get_account(owner_id, params.account_id, require_active=True)

            BudgetCacheInvalidator.invalidate_for_entries([entry])
            previous_account_id = entry.account_id

            if entry.personal_amount is not None:
                shared = entry.amount - entry.personal_amount
                entry.personal_amount = max(params.amount - shared, ZERO)
            entry.account = account
            entry.type = params.type
            entry.amount = params.amount
            entry.transaction_date = params.transaction_date
            entry.description = params.description
            entry.category_id = params.category_id
            entry.save()

            entry.splits.all().delete()
            cls._write_splits(entry, params.splits)

            SettlementService.sync_payment_from_entry(entry)
            BalanceRecalculator.schedule_recalculation([previous_account_id, account.pk])
            BudgetCacheInvalidator.invalidate_for_entries([entry])

        logger.info(
            "Transaction updated",
            extra={"transaction_id": entry.pk, "amount": str(entry.amount)},
        )
        return entry

    @classmethod
    def delete_transaction(
        cls, owner_id: uuid.UUID, transaction_id: int
    ) -> list[Transaction]:
        """
        Soft-delete an entry together with everything that depends on it.

        Returns:
            The entries deleted (the entry and, for transfers, its pair)
        """
        with cls.atomic():
            entry = get_entry(owner_id, transaction_id, lock=True)
            paired = list(
                Transaction.objects.select_for_update()
                .filter(
                    Q(pk=entry.related_transaction_id) | Q(related_transaction_id=entry.pk)
                )
                .exclude(pk=entry.pk)
            )
            deleted = [entry, *paired]

            for row in deleted:
                BudgetCacheInvalidator.invalidate_for_entries([row])
                SettlementService.reverse_payment_for_entry(row)
                row.soft_delete()

            BalanceRecalculator.schedule_recalculation(row.account_id for row in deleted)

        logger.info(
            "Transaction deleted",
            extra={
                "transaction_id": entry.pk,
                "cascaded": [row.pk for row in paired],
            },
        )
        return deleted

    @classmethod
    def restore_transaction(
        cls, owner_id: uuid.UUID, transaction_id: int
    ) -> list[Transaction]:
        """
        Restore a soft-deleted entry and its soft-deleted transfer pair.

        Settlement payments removed by the delete are not recreated.
        """
        with cls.atomic():
            entry = get_entry(owner_id, transaction_id, lock=True, deleted=True)
            paired = list(
                Transaction.all_objects.select_for_update()
                .filter(is_deleted=True)
                .filter(
                    Q(pk=entry.related_transaction_id) | Q(related_transaction_id=entry.pk)
                )
                .exclude(pk=entry.pk)
            )
            restored = [entry, *paired]

            for row in restored:
                row.restore()
                BudgetCacheInvalidator.invalidate_for_entries([row])

            BalanceRecalculator.schedule_recalculation(row.account_id for row in restored)

        logger.info(
            "Transaction restored",
            extra={
                "transaction_id": entry.pk,
                "cascaded": [row.pk for row in paired],
            },
        )
        return restored


# Singleton instance for convenience
ledger = LedgerService()
