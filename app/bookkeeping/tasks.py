"""
Celery tasks for bookkeeping background work.

This module provides async tasks for:
- Recomputing account balances after ledger writes (enqueued after commit)
- Generating recurring payable/receivable occurrences (daily, celery-beat)
- Auditing obligation paid amounts against their payments (celery-beat)
- Recomputing every active account as a safety net (celery-beat)

Balance jobs are full, idempotent recomputations: they are delivered
at least once and retried with exponential backoff on transient
database or broker failures.

Usage:
    from bookkeeping.tasks import recalculate_running_balances

    recalculate_running_balances.delay(account.id)
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.conf import settings
from django.db import OperationalError

from .models import Account, ObligationKind
from .services import BalanceRecalculator, RecurrenceGenerator, SettlementService

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

TRANSIENT_ERRORS = (OperationalError, ConnectionError, TimeoutError)
RECALC_MAX_RETRIES = getattr(settings, "BOOKKEEPING_RECALC_MAX_RETRIES", 5)
RECALC_RETRY_BACKOFF_MAX = getattr(settings, "BOOKKEEPING_RECALC_RETRY_BACKOFF_MAX", 300)


# =============================================================================
# Balance Recalculation
# =============================================================================


@shared_task(
    autoretry_for=TRANSIENT_ERRORS,
    retry_backoff=True,
    retry_backoff_max=RECALC_RETRY_BACKOFF_MAX,
    retry_kwargs={"max_retries": RECALC_MAX_RETRIES},
    acks_late=True,
)
def recalculate_account_balance(account_id: int) -> dict:
    """
    Rewrite an account's balance from a direct sum of its entries.

    Args:
        account_id: Account to recompute

    Returns:
        Dict with account_id and the new balance (None if the account
        no longer exists)
    """
    balance = BalanceRecalculator.recalculate_balance(account_id)
    return {
        "account_id": account_id,
        "balance": str(balance) if balance is not None else None,
    }


@shared_task(
    autoretry_for=TRANSIENT_ERRORS,
    retry_backoff=True,
    retry_backoff_max=RECALC_RETRY_BACKOFF_MAX,
    retry_kwargs={"max_retries": RECALC_MAX_RETRIES},
    acks_late=True,
)
def recalculate_running_balances(account_id: int) -> dict:
    """
    Rewrite every running balance of an account in (date, id) order.

    Safe to run any number of times; the last run to finish leaves the
    correct state.
    """
    balance = BalanceRecalculator.recalculate_running_balances(account_id)
    return {
        "account_id": account_id,
        "balance": str(balance) if balance is not None else None,
    }


@shared_task
def recalculate_all_balances() -> dict:
    """
    Periodic task that queues a full recomputation of every active account.

    Catches drift left by jobs that exhausted their retries.
    """
    account_ids = list(
        Account.objects.filter(is_active=True).order_by("id").values_list("id", flat=True)
    )
    for account_id in account_ids:
        recalculate_running_balances.delay(account_id)

    logger.info("Queued full balance recalculation", extra={"accounts": len(account_ids)})
    return {"queued_count": len(account_ids)}


# =============================================================================
# Recurrence
# =============================================================================


@shared_task
def generate_payable_occurrences() -> dict:
    """
    Daily task generating due payables from recurring series.

    Returns:
        Dict with created, processed and failed counts
    """
    return RecurrenceGenerator.generate_due_occurrences(ObligationKind.PAYABLE).to_dict()


@shared_task
def generate_receivable_occurrences() -> dict:
    """Daily task generating due receivables from recurring series."""
    return RecurrenceGenerator.generate_due_occurrences(ObligationKind.RECEIVABLE).to_dict()


# =============================================================================
# Consistency Audit
# =============================================================================


@shared_task
def audit_obligation_totals() -> dict:
    """
    Periodic task checking amount_paid == sum(payments) on every obligation.

    Mismatches are repaired from the payment rows and logged as warnings.
    """
    repaired = {
        kind.value: SettlementService.audit_obligations(kind) for kind in ObligationKind
    }
    if any(repaired.values()):
        logger.warning("Obligation audit repaired rows", extra={"repaired": repaired})
    return {"repaired": repaired}
