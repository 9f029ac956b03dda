"""
Bookkeeping app configuration.

This app provides the ledger consistency engine:
- Accounts and signed ledger entries with running balances
- Two-leg transfers with optional currency conversion
- Payables/receivables with settlements and recurring series
- Budgets, budget periods and cached spending summaries
"""

from django.apps import AppConfig


class BookkeepingConfig(AppConfig):
    """Configuration for the bookkeeping application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "bookkeeping"
    verbose_name = "Bookkeeping"
