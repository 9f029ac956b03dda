"""
Data types for bookkeeping operations.

This module defines the dataclasses that carry validated input into the
services and structured results back out. Params validate themselves in
``__post_init__`` and raise core.exceptions.ValidationError with
field-level details, so a request layer can surface them directly.

Types:
    Money: Decimal amount with currency; summed and converted by the
        transfer and budget services
    TransactionParams / SplitParams / SharedShareParams: Ledger entry input
    TransferParams: Two-leg transfer input
    SettlementParams: Payment against a payable or receivable
    ObligationParams / SeriesParams / RecurrenceRule: Obligation input
    BudgetParams / BudgetPeriodParams: Budget input
    TransferResult / BudgetSummary / PeriodSummary / GenerationReport: Results

Usage:
    from bookkeeping.types import TransactionParams

    params = TransactionParams(
        account_id=account.id,
        type="expense",
        amount="12.50",
        transaction_date=date(2025, 1, 3),
        category_id=groceries.id,
    )
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from core.exceptions import ValidationError

from .exceptions import ErrorCode
from .models import BudgetType, TransactionType

if TYPE_CHECKING:
    from .models import Transaction

AMOUNT_QUANTUM = Decimal("0.0001")
RATE_QUANTUM = Decimal("0.000001")
ZERO = Decimal("0")


def _quantize(value: Any, quantum: Decimal, field_name: str) -> Decimal:
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValidationError(
            f"{field_name} must be a decimal number",
            error_code=ErrorCode.INVALID_AMOUNT,
            details={field_name: [f"Invalid decimal value: {value!r}"]},
        ) from e


def to_amount(value: Any, field_name: str = "amount") -> Decimal:
    """Coerce to a Decimal with four places, half-up."""
    return _quantize(value, AMOUNT_QUANTUM, field_name)


def to_rate(value: Any, field_name: str = "conversion_rate") -> Decimal:
    """Coerce to a Decimal with six places, half-up."""
    return _quantize(value, RATE_QUANTUM, field_name)


def _require_positive(value: Decimal, field_name: str) -> None:
    if value <= 0:
        raise ValidationError(
            f"{field_name} must be greater than zero",
            error_code=ErrorCode.INVALID_AMOUNT,
            details={field_name: ["Ensure this value is greater than 0."]},
        )


def _require_non_negative(value: Decimal, field_name: str) -> None:
    if value < 0:
        raise ValidationError(
            f"{field_name} must not be negative",
            error_code=ErrorCode.INVALID_AMOUNT,
            details={field_name: ["Ensure this value is greater than or equal to 0."]},
        )


def _require_ordered(
    start: datetime.date | None,
    end: datetime.date | None,
) -> None:
    if start is not None and end is not None and end < start:
        raise ValidationError(
            "end_date must be on or after start_date",
            error_code=ErrorCode.INVALID_DATE_RANGE,
            details={"end_date": ["End date must be on or after start date."]},
        )


@dataclass
class Money:
    """
    A decimal amount in one currency.

    Example:
        Money(Decimal("50"), "usd") + Money(Decimal("2.5"), "usd")
        # Money(amount=Decimal('52.5000'), currency='usd')
    """

    amount: Decimal
    currency: str = "usd"

    def __post_init__(self) -> None:
        self.amount = to_amount(self.amount)
        self.currency = self.currency.lower()

    def __str__(self) -> str:
        return f"{self.amount:.2f} {self.currency.upper()}"

    def _check_currency(self, other: Money) -> None:
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot combine Money with different currencies: "
                f"{self.currency} and {other.currency}"
            )

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(self.amount - other.amount, self.currency)

    def convert(self, rate: Decimal, currency: str) -> Money:
        """Express this amount in ``currency`` at ``rate`` units per unit."""
        return Money(self.amount * rate, currency)


@dataclass
class SplitParams:
    """One category share of an income or expense."""

    category_id: int | None
    amount: Decimal

    def __post_init__(self) -> None:
        self.amount = to_amount(self.amount)
        _require_positive(self.amount, "amount")
        if self.category_id is None:
            raise ValidationError(
                "Each split requires a category",
                error_code=ErrorCode.CATEGORY_REQUIRED,
                details={"splits": ["Each split requires a category."]},
            )


@dataclass
class SharedShareParams:
    """
    Part of a shared expense owed back by a contact.

    When ``settle_account_id`` is given, the share is recorded as
    received into that account right away.
    """

    contact_id: int
    amount: Decimal
    settle_account_id: int | None = None

    def __post_init__(self) -> None:
        self.amount = to_amount(self.amount)
        _require_positive(self.amount, "amount")


@dataclass
class TransactionParams:
    """
    Input for creating or updating a ledger entry.

    Required Attributes:
        account_id: Account the entry is recorded on
        type: income, expense or transfer
        amount: Positive magnitude
        transaction_date: Date used for ordering and budgets

    Optional Attributes:
        description: Free text
        category_id: Required for income/expense unless splits are given
        destination_account_id: Required for transfers
        conversion_rate: Rate when the accounts' currencies differ
        received_amount: Exact amount landing on the destination
        splits: Category shares of the amount
        shares: Contacts owing part of an expense
    """

    account_id: int
    type: str
    amount: Decimal
    transaction_date: datetime.date
    description: str | None = None
    category_id: int | None = None
    destination_account_id: int | None = None
    conversion_rate: Decimal | None = None
    received_amount: Decimal | None = None
    splits: list[SplitParams] = field(default_factory=list)
    shares: list[SharedShareParams] = field(default_factory=list)

    def __post_init__(self) -> None:
        try:
            self.type = TransactionType(self.type)
        except ValueError as e:
            raise ValidationError(
                f"Unknown transaction type {self.type!r}",
                error_code=ErrorCode.NON_CREATABLE_TYPE,
                details={"type": [f"{self.type!r} is not a valid choice."]},
            ) from e
        if not self.type.is_creatable:
            raise ValidationError(
                f"{self.type.label} entries cannot be created directly",
                error_code=ErrorCode.NON_CREATABLE_TYPE,
                details={"type": [f"{self.type.value!r} is not user-creatable."]},
            )

        self.amount = to_amount(self.amount)
        _require_positive(self.amount, "amount")
        if self.conversion_rate is not None:
            self.conversion_rate = to_rate(self.conversion_rate)
            _require_positive(self.conversion_rate, "conversion_rate")
        if self.received_amount is not None:
            self.received_amount = to_amount(self.received_amount, "received_amount")
            _require_positive(self.received_amount, "received_amount")

        if self.type == TransactionType.TRANSFER:
            if self.destination_account_id is None:
                raise ValidationError(
                    "Transfers require a destination account",
                    error_code=ErrorCode.DESTINATION_REQUIRED,
                    details={"destination_account_id": ["This field is required."]},
                )
            if self.splits or self.shares:
                raise ValidationError(
                    "Transfers cannot be split or shared",
                    details={"splits": ["Not allowed on transfers."]},
                )
            return

        if self.category_id is None and not self.splits:
            raise ValidationError(
                "Income and expense entries require a category",
                error_code=ErrorCode.CATEGORY_REQUIRED,
                details={"category_id": ["This field is required."]},
            )

        split_total = sum((s.amount for s in self.splits), ZERO)
        if split_total > self.amount:
            raise ValidationError(
                "Split amounts exceed the transaction amount",
                error_code=ErrorCode.SPLITS_EXCEED_AMOUNT,
                details={
                    "splits": [
                        f"Splits total {split_total} but the amount is {self.amount}."
                    ]
                },
            )

        if self.shares:
            if self.type != TransactionType.EXPENSE:
                raise ValidationError(
                    "Only expenses can be shared",
                    details={"shares": ["Only expenses can be shared."]},
                )
            if self.shared_total > self.amount:
                raise ValidationError(
                    "Shared amounts exceed the transaction amount",
                    error_code=ErrorCode.INVALID_AMOUNT,
                    details={"shares": ["Shares cannot exceed the amount."]},
                )

    @property
    def shared_total(self) -> Decimal:
        return sum((s.amount for s in self.shares), ZERO)

    @property
    def personal_amount(self) -> Decimal | None:
        """The owner's own part of a shared expense, else None."""
        if not self.shares:
            return None
        return self.amount - self.shared_total


@dataclass
class TransferParams:
    """
    Input for a two-leg transfer.

    ``received_amount`` wins over ``conversion_rate`` when both are given.
    """

    source_account_id: int
    destination_account_id: int
    amount: Decimal
    transaction_date: datetime.date
    conversion_rate: Decimal | None = None
    received_amount: Decimal | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        if self.source_account_id == self.destination_account_id:
            raise ValidationError(
                "Source and destination accounts must differ",
                error_code=ErrorCode.SAME_ACCOUNT_TRANSFER,
                details={
                    "destination_account_id": [
                        "Destination must differ from the source account."
                    ]
                },
            )
        self.amount = to_amount(self.amount)
        _require_positive(self.amount, "amount")
        if self.conversion_rate is not None:
            self.conversion_rate = to_rate(self.conversion_rate)
            _require_positive(self.conversion_rate, "conversion_rate")
        if self.received_amount is not None:
            self.received_amount = to_amount(self.received_amount, "received_amount")
            _require_positive(self.received_amount, "received_amount")


@dataclass
class SettlementParams:
    """A payment of ``amount`` from/into ``account_id`` on ``paid_at``."""

    account_id: int
    amount: Decimal
    paid_at: datetime.date
    note: str | None = None
    category_id: int | None = None

    def __post_init__(self) -> None:
        self.amount = to_amount(self.amount)
        _require_positive(self.amount, "amount")


@dataclass
class ObligationParams:
    contact_id: int
    amount_total: Decimal
    currency: str = "usd"
    due_date: datetime.date | None = None
    description: str | None = None
    origin_transaction_id: int | None = None

    def __post_init__(self) -> None:
        self.amount_total = to_amount(self.amount_total, "amount_total")
        _require_positive(self.amount_total, "amount_total")
        self.currency = self.currency.lower()


@dataclass(frozen=True)
class RecurrenceRule:
    """
    Parsed ``recurrence_rule`` of a series.

    ``day_of_month`` of None means "keep the day of the current due date".
    """

    day_of_month: int | None = None

    @classmethod
    def from_raw(cls, raw: Any) -> RecurrenceRule:
        """
        Parse a stored JSON rule.

        Raises:
            ValidationError: INVALID_RECURRENCE_RULE when the rule is not
                an object or day_of_month is not an integer in 1..31
        """
        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            raise ValidationError(
                "Recurrence rule must be an object",
                error_code=ErrorCode.INVALID_RECURRENCE_RULE,
                details={"recurrence_rule": ["Expected an object."]},
            )
        day = raw.get("day_of_month")
        if day is None:
            return cls()
        if isinstance(day, bool) or not isinstance(day, int) or not 1 <= day <= 31:
            raise ValidationError(
                "day_of_month must be an integer between 1 and 31",
                error_code=ErrorCode.INVALID_RECURRENCE_RULE,
                details={"recurrence_rule": [f"Invalid day_of_month: {day!r}"]},
            )
        return cls(day_of_month=day)

    def to_raw(self) -> dict[str, int] | None:
        if self.day_of_month is None:
            return None
        return {"day_of_month": self.day_of_month}


@dataclass
class SeriesParams:
    contact_id: int
    name: str
    default_amount: Decimal
    currency: str = "usd"
    is_recurring: bool = False
    recurrence_rule: dict[str, Any] | None = None
    next_due_date: datetime.date | None = None

    def __post_init__(self) -> None:
        self.default_amount = to_amount(self.default_amount, "default_amount")
        _require_positive(self.default_amount, "default_amount")
        self.currency = self.currency.lower()
        self.rule = RecurrenceRule.from_raw(self.recurrence_rule)
        if self.is_recurring and self.next_due_date is None:
            raise ValidationError(
                "Recurring series need a first due date",
                error_code=ErrorCode.INVALID_RECURRENCE_RULE,
                details={"next_due_date": ["This field is required."]},
            )


@dataclass
class BudgetPeriodParams:
    name: str
    start_date: datetime.date
    end_date: datetime.date
    type: str = "monthly"
    is_active: bool = True

    def __post_init__(self) -> None:
        _require_ordered(self.start_date, self.end_date)


@dataclass
class BudgetParams:
    """
    Input for a budget.

    Period budgets need ``budget_period_id``; one-time budgets use
    ``start_date``/``end_date`` instead.
    """

    category_id: int
    amount: Decimal
    type: str = BudgetType.PERIOD
    budget_period_id: int | None = None
    start_date: datetime.date | None = None
    end_date: datetime.date | None = None
    name: str = ""
    is_active: bool = True

    def __post_init__(self) -> None:
        self.type = BudgetType(self.type)
        self.amount = to_amount(self.amount)
        _require_non_negative(self.amount, "amount")
        if self.type == BudgetType.PERIOD:
            if self.budget_period_id is None:
                raise ValidationError(
                    "Period budgets require a budget period",
                    details={"budget_period_id": ["This field is required."]},
                )
            self.start_date = None
            self.end_date = None
        else:
            self.budget_period_id = None
            _require_ordered(self.start_date, self.end_date)


@dataclass
class TransferResult:
    out_leg: Transaction
    in_leg: Transaction

    @property
    def account_ids(self) -> set[int]:
        return {self.out_leg.account_id, self.in_leg.account_id}


@dataclass
class BudgetSummary:
    """
    Spending measured against one budget.

    ``percentage_used`` is 0 for a zero budget.
    """

    budget_id: int
    amount: Decimal
    total_spent: Decimal
    remaining: Decimal
    percentage_used: Decimal
    is_over_budget: bool
    transaction_count: int
    start_date: datetime.date | None
    end_date: datetime.date | None
    currency: str = "usd"

    def to_dict(self) -> dict[str, Any]:
        return {
            "budget_id": self.budget_id,
            "amount": str(self.amount),
            "total_spent": str(self.total_spent),
            "remaining": str(self.remaining),
            "percentage_used": str(self.percentage_used),
            "is_over_budget": self.is_over_budget,
            "transaction_count": self.transaction_count,
            "currency": self.currency,
            "date_range": {
                "start": self.start_date.isoformat() if self.start_date else None,
                "end": self.end_date.isoformat() if self.end_date else None,
            },
        }


@dataclass
class PeriodSummary:
    period_id: int
    total_expense_spent: Decimal = ZERO
    total_income_received: Decimal = ZERO

    def to_dict(self) -> dict[str, Any]:
        return {
            "period_id": self.period_id,
            "total_expense_spent": str(self.total_expense_spent),
            "total_income_received": str(self.total_income_received),
        }


@dataclass
class GenerationReport:
    """Outcome of one recurrence run; ``failed`` counts series, not rows."""

    created: int = 0
    processed: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "created": self.created,
            "processed": self.processed,
            "failed": self.failed,
        }
