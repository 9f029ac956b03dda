from .account import Account, AccountType
from .budget import Budget, BudgetPeriod, BudgetPeriodType, BudgetType
from .obligation import (
    ObligationKind,
    ObligationStatus,
    Payable,
    PayablePayment,
    PayableSeries,
    Receivable,
    ReceivablePayment,
    ReceivableSeries,
)
from .reference import Category, CategoryType, Contact
from .transaction import (
    CATEGORIZED_TYPES,
    CREATABLE_TYPES,
    NEGATIVE_TYPES,
    POSITIVE_TYPES,
    Transaction,
    TransactionSplit,
    TransactionType,
)

__all__ = [
    "Account",
    "AccountType",
    "Budget",
    "BudgetPeriod",
    "BudgetPeriodType",
    "BudgetType",
    "CATEGORIZED_TYPES",
    "CREATABLE_TYPES",
    "Category",
    "CategoryType",
    "Contact",
    "NEGATIVE_TYPES",
    "ObligationKind",
    "ObligationStatus",
    "POSITIVE_TYPES",
    "Payable",
    "PayablePayment",
    "PayableSeries",
    "Receivable",
    "ReceivablePayment",
    "ReceivableSeries",
    "Transaction",
    "TransactionSplit",
    "TransactionType",
]
