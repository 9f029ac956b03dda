"""
Bookkeeping services.

- LedgerService (``ledger``): accounts and ledger entries
- BalanceRecalculator: derived balances
- TransferService: two-leg transfers
- SettlementService: payables, receivables and their payments
- RecurrenceGenerator: daily occurrence generation
- BudgetService / BudgetCacheInvalidator: budgets and cached summaries
"""

from .balance_service import BalanceRecalculator
from .budget_service import BudgetCacheInvalidator, BudgetService
from .ledger_service import LedgerService, ledger
from .recurrence_service import RecurrenceGenerator, add_month_clamped
from .settlement_service import BOOKS, SettlementService
from .transfer_service import TransferService

__all__ = [
    "BOOKS",
    "BalanceRecalculator",
    "BudgetCacheInvalidator",
    "BudgetService",
    "LedgerService",
    "RecurrenceGenerator",
    "SettlementService",
    "TransferService",
    "add_month_clamped",
    "ledger",
]
