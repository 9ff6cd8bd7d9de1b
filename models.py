import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Table,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


def new_id() -> str:
    return uuid.uuid4().hex


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class CurrencyCode(str, Enum):
    pln = "PLN"
    usd = "USD"
    eur = "EUR"
    gbp = "GBP"


class ExpenseCategory(str, Enum):
    survival = "Survival"
    growth = "Growth"
    fun = "Fun"
    restaurants = "Restaurants"
    mobility = "Mobility"
    groceries = "Groceries"
    other = "Other"


class IncomeType(str, Enum):
    salary = "salary"
    investment = "investment"
    transfer = "transfer"
    gift = "gift"
    other = "other"
    refund = "refund"


class DateFormat(str, Enum):
    day_first = "DD/MM/YYYY"
    month_first = "MM/DD/YYYY"
    iso = "YYYY-MM-DD"


class Theme(str, Enum):
    light = "light"
    dark = "dark"


class Language(str, Enum):
    en = "en"
    pl = "pl"
    es = "es"
    fr = "fr"


class DataRetention(str, Enum):
    six_months = "6months"
    one_year = "1year"
    two_years = "2years"
    forever = "forever"


def _values_enum(enum_cls: type[Enum], name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda cls: [member.value for member in cls],
    )


CURRENCY_CODE_ENUM = _values_enum(CurrencyCode, "currencycode")


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


# Owner-side list of transaction references, kept in step with
# transactions.user_id by TransactionService.
user_transactions = Table(
    "user_transactions",
    Base.metadata,
    Column("user_id", String(32), ForeignKey("users.id"), primary_key=True),
    Column(
        "transaction_id",
        String(32),
        ForeignKey("transactions.id"),
        primary_key=True,
    ),
)


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    name: Mapped[Optional[str]] = mapped_column(String(200))
    image: Mapped[Optional[str]] = mapped_column(String(500))
    locale: Mapped[Optional[str]] = mapped_column(String(20))
    providers: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)

    settings: Mapped["UserSettings"] = relationship(
        "UserSettings",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )
    transaction_refs: Mapped[list["Transaction"]] = relationship(
        "Transaction", secondary="user_transactions", viewonly=True
    )


class UserSettings(Base):
    __tablename__ = "user_settings"

    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id"), primary_key=True
    )
    default_currency: Mapped[Optional[CurrencyCode]] = mapped_column(
        CURRENCY_CODE_ENUM
    )
    preferred_date_format: Mapped[Optional[DateFormat]] = mapped_column(
        _values_enum(DateFormat, "dateformat")
    )
    custom_name: Mapped[Optional[str]] = mapped_column(String(100))
    preferred_theme: Mapped[Optional[Theme]] = mapped_column(
        _values_enum(Theme, "theme")
    )
    language: Mapped[Optional[Language]] = mapped_column(
        _values_enum(Language, "language")
    )
    notify_push: Mapped[Optional[bool]] = mapped_column(Boolean)
    notify_email: Mapped[Optional[bool]] = mapped_column(Boolean)
    notify_budget_alerts: Mapped[Optional[bool]] = mapped_column(Boolean)
    monthly_limit: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2))
    data_retention: Mapped[Optional[DataRetention]] = mapped_column(
        _values_enum(DataRetention, "dataretention")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    user: Mapped["User"] = relationship("User", back_populates="settings")

    __table_args__ = (
        CheckConstraint(
            "monthly_limit IS NULL OR monthly_limit >= 0",
            name="ck_user_settings_monthly_limit_non_negative",
        ),
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[CurrencyCode] = mapped_column(CURRENCY_CODE_ENUM, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[Optional[ExpenseCategory]] = mapped_column(
        _values_enum(ExpenseCategory, "expensecategory")
    )
    income_type: Mapped[Optional[IncomeType]] = mapped_column(
        _values_enum(IncomeType, "incometype")
    )
    return_percentage: Mapped[Optional[float]] = mapped_column(Float)
    source: Mapped[Optional[str]] = mapped_column(String(255))
    linked_transaction_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("transactions.id")
    )
    notes: Mapped[Optional[str]] = mapped_column(String(500))
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_user_type_date", "user_id", "type", "date"),
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        CheckConstraint(
            "return_percentage IS NULL OR "
            "(return_percentage >= 0 AND return_percentage <= 100)",
            name="ck_transactions_return_percentage_range",
        ),
    )
