from decimal import Decimal

import django.db.models.deletion
from django.db import migrations, models


def _timestamps():
    return [
        (
            "created_at",
            models.DateTimeField(
                auto_now_add=True,
                db_index=True,
                help_text="Timestamp when this record was created",
            ),
        ),
        (
            "updated_at",
            models.DateTimeField(
                auto_now=True,
                help_text="Timestamp when this record was last modified",
            ),
        ),
    ]


def _soft_delete():
    return [
        (
            "is_deleted",
            models.BooleanField(
                db_index=True,
                default=False,
                help_text="Whether this record has been soft deleted",
            ),
        ),
        (
            "deleted_at",
            models.DateTimeField(
                blank=True,
                null=True,
                help_text="Timestamp when this record was soft deleted",
            ),
        ),
    ]


def _id():
    return (
        "id",
        models.BigAutoField(
            auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
        ),
    )


def _series_fields():
    return [
        _id(),
        *_timestamps(),
        ("owner_id", models.UUIDField(db_index=True)),
        ("currency", models.CharField(default="usd", max_length=3)),
        ("name", models.CharField(max_length=150)),
        ("default_amount", models.DecimalField(decimal_places=4, max_digits=15)),
        ("is_recurring", models.BooleanField(default=False)),
        ("recurrence_rule", models.JSONField(blank=True, null=True)),
        ("next_due_date", models.DateField(blank=True, db_index=True, null=True)),
        (
            "contact",
            models.ForeignKey(
                on_delete=django.db.models.deletion.CASCADE,
                related_name="+",
                to="bookkeeping.contact",
            ),
        ),
    ]


def _obligation_fields(series_model):
    return [
        _id(),
        *_timestamps(),
        ("owner_id", models.UUIDField(db_index=True)),
        ("currency", models.CharField(default="usd", max_length=3)),
        ("amount_total", models.DecimalField(decimal_places=4, max_digits=15)),
        (
            "amount_paid",
            models.DecimalField(decimal_places=4, default=Decimal("0"), max_digits=15),
        ),
        (
            "status",
            models.CharField(
                choices=[("open", "Open"), ("partial", "Partial"), ("paid", "Paid")],
                db_index=True,
                default="open",
                max_length=10,
            ),
        ),
        ("description", models.TextField(blank=True, null=True)),
        ("due_date", models.DateField(blank=True, null=True)),
        (
            "contact",
            models.ForeignKey(
                on_delete=django.db.models.deletion.CASCADE,
                related_name="+",
                to="bookkeeping.contact",
            ),
        ),
        (
            "origin_transaction",
            models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="+",
                to="bookkeeping.transaction",
            ),
        ),
        (
            "series",
            models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="occurrences",
                to=series_model,
            ),
        ),
    ]


def _payment_fields(parent_field, parent_model, transaction_related_name):
    return [
        _id(),
        *_timestamps(),
        ("amount", models.DecimalField(decimal_places=4, max_digits=15)),
        ("paid_at", models.DateField()),
        ("note", models.TextField(blank=True, null=True)),
        (
            "account",
            models.ForeignKey(
                on_delete=django.db.models.deletion.CASCADE,
                related_name="+",
                to="bookkeeping.account",
            ),
        ),
        (
            "category",
            models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="+",
                to="bookkeeping.category",
            ),
        ),
        (
            parent_field,
            models.ForeignKey(
                on_delete=django.db.models.deletion.CASCADE,
                related_name="payments",
                to=parent_model,
            ),
        ),
        (
            "transaction",
            models.OneToOneField(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name=transaction_related_name,
                to="bookkeeping.transaction",
            ),
        ),
    ]


TRANSACTION_TYPES = [
    ("income", "Income"),
    ("expense", "Expense"),
    ("transfer", "Transfer"),
    ("transfer_in", "Transfer in"),
    ("transfer_out", "Transfer out"),
    ("initial", "Initial balance"),
    ("adjustment_positive", "Positive adjustment"),
    ("adjustment_negative", "Negative adjustment"),
]

ACCOUNT_TYPES = [
    ("savings", "Savings"),
    ("checking", "Checking"),
    ("cash", "Cash"),
    ("bank", "Bank"),
    ("credit_card", "Credit card"),
    ("general", "General"),
    ("investment", "Investment"),
    ("debit_card", "Debit card"),
    ("receivable_control", "Receivable control"),
    ("payable_control", "Payable control"),
]


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Category",
            fields=[
                _id(),
                *_timestamps(),
                (
                    "owner_id",
                    models.UUIDField(
                        db_index=True, help_text="UUID of the user who owns this category"
                    ),
                ),
                ("name", models.CharField(max_length=100)),
                (
                    "type",
                    models.CharField(
                        choices=[("expense", "Expense"), ("income", "Income")],
                        default="expense",
                        max_length=20,
                    ),
                ),
            ],
            options={"ordering": ["name"], "verbose_name_plural": "categories"},
        ),
        migrations.CreateModel(
            name="Contact",
            fields=[
                _id(),
                *_timestamps(),
                (
                    "owner_id",
                    models.UUIDField(
                        db_index=True, help_text="UUID of the user who owns this contact"
                    ),
                ),
                ("name", models.CharField(max_length=150)),
            ],
            options={"ordering": ["name"]},
        ),
        migrations.CreateModel(
            name="Account",
            fields=[
                _id(),
                *_timestamps(),
                (
                    "owner_id",
                    models.UUIDField(
                        db_index=True, help_text="UUID of the user who owns this account"
                    ),
                ),
                ("name", models.CharField(max_length=100)),
                (
                    "currency",
                    models.CharField(
                        default="usd", help_text="ISO 4217 currency code", max_length=3
                    ),
                ),
                (
                    "type",
                    models.CharField(
                        choices=ACCOUNT_TYPES, default="general", max_length=30
                    ),
                ),
                (
                    "balance",
                    models.DecimalField(
                        decimal_places=4,
                        default=Decimal("0"),
                        help_text="Derived; written only by the balance recalculator",
                        max_digits=20,
                    ),
                ),
                ("description", models.TextField(blank=True, null=True)),
                ("is_active", models.BooleanField(db_index=True, default=True)),
            ],
            options={
                "ordering": ["name", "id"],
                "indexes": [
                    models.Index(
                        fields=["owner_id", "is_active"], name="account_owner_active_idx"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Transaction",
            fields=[
                _id(),
                *_timestamps(),
                *_soft_delete(),
                (
                    "owner_id",
                    models.UUIDField(
                        db_index=True, help_text="UUID of the user who owns this entry"
                    ),
                ),
                ("type", models.CharField(choices=TRANSACTION_TYPES, max_length=30)),
                ("amount", models.DecimalField(decimal_places=4, max_digits=15)),
                (
                    "personal_amount",
                    models.DecimalField(
                        blank=True, decimal_places=4, max_digits=15, null=True
                    ),
                ),
                ("transaction_date", models.DateField(db_index=True)),
                ("description", models.TextField(blank=True, null=True)),
                (
                    "conversion_rate",
                    models.DecimalField(
                        blank=True, decimal_places=6, max_digits=15, null=True
                    ),
                ),
                (
                    "converted_amount",
                    models.DecimalField(
                        blank=True, decimal_places=4, max_digits=15, null=True
                    ),
                ),
                (
                    "running_balance",
                    models.DecimalField(
                        decimal_places=4, default=Decimal("0"), max_digits=15
                    ),
                ),
                (
                    "destination_running_balance",
                    models.DecimalField(
                        blank=True, decimal_places=4, max_digits=15, null=True
                    ),
                ),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="transactions",
                        to="bookkeeping.account",
                    ),
                ),
                (
                    "category",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="transactions",
                        to="bookkeeping.category",
                    ),
                ),
                (
                    "destination_account",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="incoming_transfers",
                        to="bookkeeping.account",
                    ),
                ),
                (
                    "related_transaction",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to="bookkeeping.transaction",
                    ),
                ),
            ],
            options={
                "ordering": ["transaction_date", "id"],
                "indexes": [
                    models.Index(
                        fields=["account", "transaction_date", "id"],
                        name="txn_account_order_idx",
                    ),
                    models.Index(
                        fields=["owner_id", "transaction_date"],
                        name="txn_owner_date_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gte", 0)),
                        name="transaction_amount_non_negative",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="TransactionSplit",
            fields=[
                _id(),
                *_timestamps(),
                ("amount", models.DecimalField(decimal_places=4, max_digits=15)),
                (
                    "category",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="splits",
                        to="bookkeeping.category",
                    ),
                ),
                (
                    "transaction",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="splits",
                        to="bookkeeping.transaction",
                    ),
                ),
            ],
            options={"ordering": ["id"]},
        ),
        migrations.CreateModel(
            name="BudgetPeriod",
            fields=[
                _id(),
                *_timestamps(),
                ("owner_id", models.UUIDField(db_index=True)),
                ("name", models.CharField(max_length=100)),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("monthly", "Monthly"),
                            ("weekly", "Weekly"),
                            ("yearly", "Yearly"),
                            ("custom", "Custom"),
                        ],
                        default="monthly",
                        max_length=10,
                    ),
                ),
                ("start_date", models.DateField()),
                ("end_date", models.DateField()),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={
                "ordering": ["-start_date", "id"],
                "indexes": [
                    models.Index(
                        fields=["owner_id", "start_date", "end_date"],
                        name="budget_period_range_idx",
                    )
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("owner_id", "name"),
                        name="unique_budget_period_name_per_owner",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("end_date__gte", models.F("start_date"))),
                        name="budget_period_end_after_start",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Budget",
            fields=[
                _id(),
                *_timestamps(),
                *_soft_delete(),
                ("owner_id", models.UUIDField(db_index=True)),
                ("name", models.CharField(blank=True, default="", max_length=100)),
                (
                    "type",
                    models.CharField(
                        choices=[("period", "Period"), ("one_time", "One time")],
                        default="period",
                        max_length=10,
                    ),
                ),
                ("amount", models.DecimalField(decimal_places=4, max_digits=15)),
                ("start_date", models.DateField(blank=True, null=True)),
                ("end_date", models.DateField(blank=True, null=True)),
                ("is_active", models.BooleanField(default=True)),
                (
                    "budget_period",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="budgets",
                        to="bookkeeping.budgetperiod",
                    ),
                ),
                (
                    "category",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="budgets",
                        to="bookkeeping.category",
                    ),
                ),
            ],
            options={
                "ordering": ["id"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("is_deleted", False)),
                        fields=("owner_id", "category", "budget_period"),
                        name="unique_live_budget_per_category_period",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="PayableSeries",
            fields=_series_fields(),
            options={
                "ordering": ["name", "id"],
                "abstract": False,
                "verbose_name_plural": "payable series",
            },
        ),
        migrations.CreateModel(
            name="ReceivableSeries",
            fields=_series_fields(),
            options={
                "ordering": ["name", "id"],
                "abstract": False,
                "verbose_name_plural": "receivable series",
            },
        ),
        migrations.CreateModel(
            name="Payable",
            fields=_obligation_fields("bookkeeping.payableseries"),
            options={
                "ordering": ["due_date", "id"],
                "abstract": False,
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount_paid__gte", 0)),
                        name="payable_amount_paid_non_negative",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Receivable",
            fields=_obligation_fields("bookkeeping.receivableseries"),
            options={
                "ordering": ["due_date", "id"],
                "abstract": False,
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount_paid__gte", 0)),
                        name="receivable_amount_paid_non_negative",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="PayablePayment",
            fields=_payment_fields("payable", "bookkeeping.payable", "payable_payment"),
            options={"ordering": ["paid_at", "id"], "abstract": False},
        ),
        migrations.CreateModel(
            name="ReceivablePayment",
            fields=_payment_fields(
                "receivable", "bookkeeping.receivable", "receivable_payment"
            ),
            options={"ordering": ["paid_at", "id"], "abstract": False},
        ),
    ]
