"""
Owner-scoped lookups shared by the bookkeeping services.

Every lookup filters on ``owner_id``; a row owned by someone else is
reported exactly like a missing row.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import ValidationError

from ..exceptions import AccountNotFound, InactiveAccount, TransactionNotFound
from ..models import Account, Category, Contact, Transaction

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable


def get_account(
    owner_id: uuid.UUID,
    account_id: int,
    *,
    require_active: bool = False,
    lock: bool = False,
) -> Account:
    """
    Fetch an account owned by ``owner_id``.

    Raises:
        AccountNotFound: If it doesn't exist or belongs to someone else
        InactiveAccount: If ``require_active`` and the account is inactive
    """
    queryset = Account.objects.filter(owner_id=owner_id, pk=account_id)
    if lock:
        queryset = queryset.select_for_update()
    account = queryset.first()
    if account is None:
        raise AccountNotFound(
            f"Account {account_id} not found",
            details={"account_id": account_id},
        )
    if require_active and not account.is_active:
        raise InactiveAccount(
            f"Account {account_id} is inactive",
            details={"account_id": account_id},
        )
    return account


def get_entry(
    owner_id: uuid.UUID,
    transaction_id: int,
    *,
    lock: bool = False,
    deleted: bool = False,
) -> Transaction:
    """
    Fetch a live (or, with ``deleted=True``, a soft-deleted) entry.

    Raises:
        TransactionNotFound: If no matching entry exists
    """
    manager = Transaction.all_objects if deleted else Transaction.objects
    queryset = manager.filter(owner_id=owner_id, pk=transaction_id)
    if deleted:
        queryset = queryset.filter(is_deleted=True)
    if lock:
        queryset = queryset.select_for_update()
    entry = queryset.first()
    if entry is None:
        raise TransactionNotFound(
            f"Transaction {transaction_id} not found",
            details={"transaction_id": transaction_id},
        )
    return entry


def check_categories(owner_id: uuid.UUID, category_ids: Iterable[int | None]) -> None:
    """Raise ValidationError unless every given category belongs to the owner."""
    wanted = {category_id for category_id in category_ids if category_id is not None}
    if not wanted:
        return
    found = set(
        Category.objects.filter(owner_id=owner_id, pk__in=wanted).values_list(
            "id", flat=True
        )
    )
    missing = sorted(wanted - found)
    if missing:
        raise ValidationError(
            "Unknown category",
            details={"category_id": [f"Invalid category: {pk}" for pk in missing]},
        )


def get_contact(owner_id: uuid.UUID, contact_id: int) -> Contact:
    contact = Contact.objects.filter(owner_id=owner_id, pk=contact_id).first()
    if contact is None:
        raise ValidationError(
            "Unknown contact",
            details={"contact_id": [f"Invalid contact: {contact_id}"]},
        )
    return contact
