import datetime as dt
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from models import (
    CurrencyCode,
    DataRetention,
    DateFormat,
    ExpenseCategory,
    IncomeType,
    Language,
    Theme,
    TransactionType,
)


TRANSACTION_ID_PATTERN = r"^[0-9a-f]{32}$"

_CENT = Decimal("0.01")
# Numeric(14, 2) holds twelve integer digits.
MAX_MONEY = Decimal(10) ** 12


def parse_money(value: object, label: str) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise ValueError(f"{label} must be a number")
    amount = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    if not amount.is_finite():
        raise ValueError(f"{label} must be a finite number")
    if abs(amount) >= MAX_MONEY:
        raise ValueError(f"{label} must be less than 1,000,000,000,000")
    try:
        cents = amount.quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"{label} must be a number") from exc
    if abs(cents) >= MAX_MONEY:
        raise ValueError(f"{label} must be less than 1,000,000,000,000")
    return cents


def parse_calendar_date(value: object) -> object:
    """Accept ISO dates and ISO datetimes; datetimes keep only their date."""
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, str):
        raw = value.strip()
        try:
            return dt.date.fromisoformat(raw)
        except ValueError:
            pass
        try:
            return dt.datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
        except ValueError as exc:
            raise ValueError("Date must be an ISO 8601 date") from exc
    return value


def resolve_expense_category(value: object) -> ExpenseCategory:
    if isinstance(value, ExpenseCategory):
        return value
    if isinstance(value, str):
        needle = value.strip().lower()
        for member in ExpenseCategory:
            if member.value.lower() == needle:
                return member
    raise ValueError(
        "Category must be one of: " + ", ".join(c.value for c in ExpenseCategory)
    )


def resolve_income_type(value: object) -> IncomeType:
    if isinstance(value, IncomeType):
        return value
    if isinstance(value, str):
        try:
            return IncomeType(value.strip().lower())
        except ValueError:
            pass
    raise ValueError(
        "Income type must be one of: " + ", ".join(t.value for t in IncomeType)
    )


def _upper_currency(value: object) -> object:
    if isinstance(value, str):
        return value.strip().upper()
    return value


def _blank_to_none(value: object) -> object:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class _TransactionFields(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        str_strip_whitespace=True,
        alias_generator=to_camel,
    )

    @field_validator("amount", mode="before", check_fields=False)
    @classmethod
    def _amount(cls, value: object) -> object:
        if value is None:
            return value
        amount = parse_money(value, "Amount")
        if amount <= 0:
            raise ValueError("Amount must be a positive number")
        return amount

    @field_validator("currency", mode="before", check_fields=False)
    @classmethod
    def _currency(cls, value: object) -> object:
        return _upper_currency(value)

    @field_validator("date", mode="before", check_fields=False)
    @classmethod
    def _date(cls, value: object) -> object:
        return parse_calendar_date(value)

    @field_validator(
        "source", "notes", "linked_transaction_id", mode="before", check_fields=False
    )
    @classmethod
    def _optional_text(cls, value: object) -> object:
        return _blank_to_none(value)


class _TransactionCreateBase(_TransactionFields):
    amount: Decimal
    currency: CurrencyCode
    date: dt.date
    description: str = Field(..., min_length=1, max_length=255)
    source: Optional[str] = Field(default=None, max_length=255)
    linked_transaction_id: Optional[str] = Field(
        default=None, pattern=TRANSACTION_ID_PATTERN
    )
    notes: Optional[str] = Field(default=None, max_length=500)


class ExpenseTransactionIn(_TransactionCreateBase):
    type: Literal["expense"]
    category: ExpenseCategory

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, value: object) -> ExpenseCategory:
        return resolve_expense_category(value)


class IncomeTransactionIn(_TransactionCreateBase):
    type: Literal["income"]
    income_type: IncomeType
    return_percentage: Optional[float] = Field(default=None, ge=0, le=100)

    @model_validator(mode="before")
    @classmethod
    def _category_as_income_type(cls, data: object) -> object:
        # Older clients send the income classification in "category".
        if isinstance(data, dict):
            if data.get("incomeType") in (None, "") and "income_type" not in data:
                data = dict(data)
                data["incomeType"] = data.get("category")
        return data

    @field_validator("income_type", mode="before")
    @classmethod
    def _income_type(cls, value: object) -> IncomeType:
        return resolve_income_type(value)

    @field_validator("return_percentage", mode="before")
    @classmethod
    def _return_percentage(cls, value: object) -> object:
        if isinstance(value, bool):
            raise ValueError("Return percentage must be a number")
        return value

    @model_validator(mode="after")
    def _refund_only_percentage(self) -> "IncomeTransactionIn":
        if self.income_type != IncomeType.refund:
            self.return_percentage = None
        return self


CREATE_MODELS: dict[TransactionType, type[_TransactionCreateBase]] = {
    TransactionType.expense: ExpenseTransactionIn,
    TransactionType.income: IncomeTransactionIn,
}


class TransactionUpdate(_TransactionFields):
    amount: Optional[Decimal] = None
    currency: Optional[CurrencyCode] = None
    date: Optional[dt.date] = None
    description: Optional[str] = Field(default=None, min_length=1, max_length=255)
    category: Optional[str] = Field(default=None, max_length=100)
    source: Optional[str] = Field(default=None, max_length=255)
    income_type: Optional[str] = Field(default=None, max_length=100)
    return_percentage: Optional[float] = Field(default=None, ge=0, le=100)
    linked_transaction_id: Optional[str] = Field(
        default=None, pattern=TRANSACTION_ID_PATTERN
    )
    notes: Optional[str] = Field(default=None, max_length=500)


class TransactionOut(BaseModel):
    model_config = ConfigDict(
        from_attributes=True, alias_generator=to_camel, populate_by_name=True
    )

    id: str
    user_id: str
    type: TransactionType
    amount: float
    currency: CurrencyCode
    date: dt.date
    description: str
    category: Optional[ExpenseCategory] = None
    income_type: Optional[IncomeType] = None
    return_percentage: Optional[float] = None
    source: Optional[str] = None
    linked_transaction_id: Optional[str] = None
    notes: Optional[str] = None
    version: int
    created_at: dt.datetime
    updated_at: dt.datetime


class _SettingsFields(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        str_strip_whitespace=True,
        alias_generator=to_camel,
    )


class NotificationsIn(_SettingsFields):
    push: Optional[StrictBool] = None
    email: Optional[StrictBool] = None
    budget_alerts: Optional[StrictBool] = None


class BudgetSettingsIn(_SettingsFields):
    monthly_limit: Optional[Decimal] = None

    @field_validator("monthly_limit", mode="before")
    @classmethod
    def _monthly_limit(cls, value: object) -> object:
        if value is None:
            return value
        limit = parse_money(value, "Monthly limit")
        if limit < 0:
            raise ValueError("Monthly limit must be a non-negative number")
        return limit


class PrivacyIn(_SettingsFields):
    data_retention: Optional[DataRetention] = None


class SettingsUpdate(_SettingsFields):
    default_currency: Optional[CurrencyCode] = None
    preferred_date_format: Optional[DateFormat] = None
    custom_name: Optional[str] = Field(default=None, max_length=100)
    preferred_theme: Optional[Theme] = None
    language: Optional[Language] = None
    notifications: Optional[NotificationsIn] = None
    budget: Optional[BudgetSettingsIn] = None
    privacy: Optional[PrivacyIn] = None

    @field_validator("default_currency", mode="before")
    @classmethod
    def _currency(cls, value: object) -> object:
        return _upper_currency(value)
