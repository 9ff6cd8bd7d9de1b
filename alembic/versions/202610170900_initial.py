"""initial schema

Revision ID: 202610170900
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610170900"
down_revision = None
branch_labels = None
depends_on = None


CURRENCIES = ("PLN", "USD", "EUR", "GBP")


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=True),
        sa.Column("image", sa.String(length=500), nullable=True),
        sa.Column("locale", sa.String(length=20), nullable=True),
        sa.Column("providers", sa.JSON(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "user_settings",
        sa.Column(
            "user_id", sa.String(length=32), sa.ForeignKey("users.id"), primary_key=True
        ),
        sa.Column(
            "default_currency",
            sa.Enum(*CURRENCIES, name="currencycode"),
            nullable=True,
        ),
        sa.Column(
            "preferred_date_format",
            sa.Enum("DD/MM/YYYY", "MM/DD/YYYY", "YYYY-MM-DD", name="dateformat"),
            nullable=True,
        ),
        sa.Column("custom_name", sa.String(length=100), nullable=True),
        sa.Column(
            "preferred_theme", sa.Enum("light", "dark", name="theme"), nullable=True
        ),
        sa.Column(
            "language", sa.Enum("en", "pl", "es", "fr", name="language"), nullable=True
        ),
        sa.Column("notify_push", sa.Boolean(), nullable=True),
        sa.Column("notify_email", sa.Boolean(), nullable=True),
        sa.Column("notify_budget_alerts", sa.Boolean(), nullable=True),
        sa.Column("monthly_limit", sa.Numeric(14, 2), nullable=True),
        sa.Column(
            "data_retention",
            sa.Enum("6months", "1year", "2years", "forever", name="dataretention"),
            nullable=True,
        ),
        sa.Column(
            "updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.CheckConstraint(
            "monthly_limit IS NULL OR monthly_limit >= 0",
            name="ck_user_settings_monthly_limit_non_negative",
        ),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column(
            "user_id", sa.String(length=32), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "type", sa.Enum("income", "expense", name="transactiontype"), nullable=False
        ),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column(
            "currency", sa.Enum(*CURRENCIES, name="currencycode"), nullable=False
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column(
            "category",
            sa.Enum(
                "Survival",
                "Growth",
                "Fun",
                "Restaurants",
                "Mobility",
                "Groceries",
                "Other",
                name="expensecategory",
            ),
            nullable=True,
        ),
        sa.Column(
            "income_type",
            sa.Enum(
                "salary",
                "investment",
                "transfer",
                "gift",
                "other",
                "refund",
                name="incometype",
            ),
            nullable=True,
        ),
        sa.Column("return_percentage", sa.Float(), nullable=True),
        sa.Column("source", sa.String(length=255), nullable=True),
        sa.Column(
            "linked_transaction_id",
            sa.String(length=32),
            sa.ForeignKey("transactions.id"),
            nullable=True,
        ),
        sa.Column("notes", sa.String(length=500), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        sa.CheckConstraint(
            "return_percentage IS NULL OR "
            "(return_percentage >= 0 AND return_percentage <= 100)",
            name="ck_transactions_return_percentage_range",
        ),
    )
    op.create_index(
        "ix_transactions_user_date", "transactions", ["user_id", "date"]
    )
    op.create_index(
        "ix_transactions_user_type_date", "transactions", ["user_id", "type", "date"]
    )

    op.create_table(
        "user_transactions",
        sa.Column(
            "user_id", sa.String(length=32), sa.ForeignKey("users.id"), primary_key=True
        ),
        sa.Column(
            "transaction_id",
            sa.String(length=32),
            sa.ForeignKey("transactions.id"),
            primary_key=True,
        ),
    )


def downgrade():
    op.drop_table("user_transactions")
    op.drop_index("ix_transactions_user_type_date", table_name="transactions")
    op.drop_index("ix_transactions_user_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("user_settings")
    op.drop_table("users")
