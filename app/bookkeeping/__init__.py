"""
Bookkeeping app: the ledger consistency engine.

This app handles:
- Account balances kept equal to the sum of their live entries
- Transfers and settlements written as atomic multi-row units
- Daily generation of recurring payables and receivables
- Eviction of cached budget summaries when their inputs change

Every service takes an explicit ``owner_id``; nothing reads a current
user from ambient state.

Usage:
    from bookkeeping.services import ledger
    from bookkeeping.types import TransactionParams

    entry = ledger.create_transaction(owner_id, TransactionParams(...))
"""
