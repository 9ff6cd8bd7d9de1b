from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Iterator, Optional

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from errors import Conflict, NotFound, PersistenceFailure, ValidationError
from models import (
    CurrencyCode,
    DataRetention,
    DateFormat,
    IncomeType,
    Language,
    Theme,
    Transaction,
    TransactionType,
    User,
    UserSettings,
    user_transactions,
)
from periods import Period, current_month
from schemas import resolve_expense_category, resolve_income_type
from validation import validate_settings_update


logger = logging.getLogger(__name__)


SETTINGS_DEFAULTS: dict[str, object] = {
    "default_currency": CurrencyCode.pln,
    "preferred_date_format": DateFormat.day_first,
    "custom_name": "",
    "preferred_theme": Theme.light,
    "language": Language.en,
    "notify_push": True,
    "notify_email": False,
    "notify_budget_alerts": True,
    "monthly_limit": Decimal("0"),
    "data_retention": DataRetention.one_year,
}

@contextmanager
def atomic(session: Session) -> Iterator[None]:
    """Commit everything done in the block as one database transaction."""
    try:
        yield
        session.commit()
    except Exception as exc:
        session.rollback()
        if isinstance(exc, StaleDataError):
            raise Conflict() from exc
        if isinstance(exc, SQLAlchemyError):
            raise PersistenceFailure() from exc
        raise


def _money(value: Optional[Decimal]) -> float:
    return float(value or 0)


def settings_to_dict(row: Optional[UserSettings]) -> dict[str, object]:
    def value(column: str) -> object:
        stored = getattr(row, column) if row is not None else None
        return SETTINGS_DEFAULTS[column] if stored is None else stored

    return {
        "defaultCurrency": value("default_currency").value,
        "preferredDateFormat": value("preferred_date_format").value,
        "customName": value("custom_name"),
        "preferredTheme": value("preferred_theme").value,
        "language": value("language").value,
        "notifications": {
            "push": value("notify_push"),
            "email": value("notify_email"),
            "budgetAlerts": value("notify_budget_alerts"),
        },
        "budget": {"monthlyLimit": _money(value("monthly_limit"))},
        "privacy": {"dataRetention": value("data_retention").value},
        "updatedAt": row.updated_at.isoformat() if row is not None else None,
    }


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: str) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        return user

    def get_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(User.email == email.strip().lower())
        return self.session.scalar(stmt)

    def sign_in(
        self,
        email: str,
        *,
        name: Optional[str] = None,
        image: Optional[str] = None,
        provider: Optional[str] = None,
        locale: Optional[str] = None,
    ) -> User:
        """Create the user on first sign-in, refresh the profile afterwards."""
        clean_email = email.strip().lower()
        if not clean_email:
            raise ValidationError("email", "email is required")

        with atomic(self.session):
            user = self.get_by_email(clean_email)
            created = user is None
            if created:
                user = User(
                    email=clean_email,
                    name=name,
                    image=image,
                    locale=locale,
                    providers=[provider] if provider else [],
                )
                user.settings = UserSettings(**SETTINGS_DEFAULTS)
                self.session.add(user)
            else:
                if name:
                    user.name = name
                if image:
                    user.image = image
                if locale:
                    user.locale = locale
                if provider and provider not in user.providers:
                    user.providers = [*user.providers, provider]
            self.session.flush()

        self.session.refresh(user)
        logger.info(f"user_sign_in: user_id={user.id} created={created}")
        return user


class TransactionService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, transaction_id: str) -> Transaction:
        stmt = select(Transaction).where(
            Transaction.id == transaction_id, Transaction.user_id == self.user_id
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise NotFound("Transaction not found or does not belong to user")
        return txn

    def create(self, fields: dict[str, object]) -> Transaction:
        with atomic(self.session):
            if self.session.get(User, self.user_id) is None:
                raise PersistenceFailure("Owner record missing")
            linked_id = fields.get("linked_transaction_id")
            if linked_id:
                self._check_link(str(linked_id))
            txn = Transaction(user_id=self.user_id, **fields)
            self.session.add(txn)
            self.session.flush()
            self._link_to_owner(txn.id)

        self.session.refresh(txn)
        logger.info(
            f"transaction_created: user_id={self.user_id} id={txn.id} type={txn.type.value}"
        )
        return txn

    def update(
        self,
        transaction_id: str,
        fields: dict[str, object],
        *,
        expected_version: Optional[int] = None,
    ) -> Transaction:
        with atomic(self.session):
            txn = self.get(transaction_id)
            if expected_version is not None and txn.version != expected_version:
                raise Conflict()
            changes = self._normalize_changes(txn, fields)
            linked_id = changes.get("linked_transaction_id")
            if linked_id:
                self._check_link(str(linked_id), self_id=txn.id)
            for name, value in changes.items():
                setattr(txn, name, value)
            self.session.flush()

        self.session.refresh(txn)
        logger.info(
            f"transaction_updated: user_id={self.user_id} id={txn.id} "
            f"fields={sorted(changes)} version={txn.version}"
        )
        return txn

    def delete(self, transaction_id: str) -> dict[str, object]:
        with atomic(self.session):
            txn = self.get(transaction_id)
            deleted = {
                "id": txn.id,
                "description": txn.description,
                "amount": _money(txn.amount),
            }
            self._clear_links_to([txn.id])
            self._unlink_from_owner([txn.id])
            self._delete_row(txn)

        logger.info(f"transaction_deleted: user_id={self.user_id} id={deleted['id']}")
        return deleted

    def list_for_period(self, period: Period) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.date.between(period.start, period.end),
            )
            .order_by(
                Transaction.date.desc(),
                Transaction.created_at.desc(),
                Transaction.id.desc(),
            )
        )
        return list(self.session.scalars(stmt).all())

    def list_current_month(self, today: Optional[date] = None) -> list[Transaction]:
        return self.list_for_period(current_month(today))

    def _normalize_changes(
        self, txn: Transaction, fields: dict[str, object]
    ) -> dict[str, object]:
        changes = {
            k: v
            for k, v in fields.items()
            if k not in ("category", "income_type", "return_percentage")
        }
        try:
            if txn.type == TransactionType.expense:
                for name, label in (
                    ("income_type", "incomeType"),
                    ("return_percentage", "returnPercentage"),
                ):
                    if fields.get(name) is not None:
                        raise ValidationError(
                            label, f"{label} only applies to income transactions"
                        )
                if "category" in fields:
                    changes["category"] = resolve_expense_category(fields["category"])
                return changes

            if "income_type" in fields:
                changes["income_type"] = resolve_income_type(fields["income_type"])
            elif "category" in fields:
                changes["income_type"] = resolve_income_type(fields["category"])
        except ValidationError:
            raise
        except ValueError as exc:
            field = "category" if txn.type == TransactionType.expense else "incomeType"
            raise ValidationError(field, str(exc)) from exc

        income_type = changes.get("income_type", txn.income_type)
        if income_type == IncomeType.refund:
            if "return_percentage" in fields:
                changes["return_percentage"] = fields["return_percentage"]
        elif txn.return_percentage is not None or "return_percentage" in fields:
            changes["return_percentage"] = None
        return changes

    def _check_link(self, linked_id: str, *, self_id: Optional[str] = None) -> None:
        if linked_id == self_id:
            raise ValidationError(
                "linkedTransactionId", "A transaction cannot link to itself"
            )
        exists = self.session.scalar(
            select(func.count(Transaction.id)).where(
                Transaction.id == linked_id, Transaction.user_id == self.user_id
            )
        )
        if not exists:
            raise ValidationError("linkedTransactionId", "Linked transaction not found")

    def _link_to_owner(self, transaction_id: str) -> None:
        self.session.execute(
            insert(user_transactions).values(
                user_id=self.user_id, transaction_id=transaction_id
            )
        )

    def _unlink_from_owner(self, transaction_ids: list[str]) -> None:
        self.session.execute(
            delete(user_transactions).where(
                user_transactions.c.user_id == self.user_id,
                user_transactions.c.transaction_id.in_(transaction_ids),
            )
        )

    def _clear_links_to(self, transaction_ids: list[str]) -> None:
        self.session.execute(
            update(Transaction)
            .where(
                Transaction.linked_transaction_id.in_(transaction_ids),
                Transaction.id.not_in(transaction_ids),
            )
            .values(linked_transaction_id=None, version=Transaction.version + 1)
            .execution_options(synchronize_session="fetch")
        )

    def _delete_row(self, txn: Transaction) -> None:
        self.session.delete(txn)
        self.session.flush()


class SettingsService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def get(self) -> dict[str, object]:
        user = UserService(self.session).get(self.user_id)
        return settings_to_dict(user.settings)

    def update(self, payload: object) -> dict[str, object]:
        changes = validate_settings_update(payload)

        with atomic(self.session):
            user = UserService(self.session).get(self.user_id)
            row = user.settings
            if row is None:
                row = UserSettings(user_id=user.id)
                user.settings = row
            for column, value in changes.items():
                setattr(row, column, value)
            row.updated_at = datetime.utcnow()
            user.updated_at = row.updated_at

        logger.info(
            f"settings_updated: user_id={self.user_id} fields={sorted(changes)}"
        )
        return settings_to_dict(row)


class MetricsService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def summary(self, period: Optional[Period] = None) -> dict[str, object]:
        period = period or current_month()
        user = UserService(self.session).get(self.user_id)
        settings = settings_to_dict(user.settings)

        rows = self.session.execute(
            select(
                Transaction.currency,
                Transaction.type,
                Transaction.category,
                Transaction.income_type,
                func.coalesce(func.sum(Transaction.amount), 0).label("total"),
                func.count(Transaction.id).label("count"),
            )
            .where(
                Transaction.user_id == self.user_id,
                Transaction.date.between(period.start, period.end),
            )
            .group_by(
                Transaction.currency,
                Transaction.type,
                Transaction.category,
                Transaction.income_type,
            )
        ).all()

        currencies: dict[str, dict[str, object]] = {}
        count = 0
        for row in rows:
            total = Decimal(str(row.total))
            count += int(row.count)
            bucket = currencies.setdefault(
                row.currency.value,
                {
                    "income": Decimal("0"),
                    "expense": Decimal("0"),
                    "expenseByCategory": {},
                    "incomeByType": {},
                },
            )
            if row.type == TransactionType.income:
                bucket["income"] += total
                key = row.income_type.value if row.income_type else "other"
                by_type = bucket["incomeByType"]
                by_type[key] = by_type.get(key, Decimal("0")) + total
            else:
                bucket["expense"] += total
                key = row.category.value if row.category else "Other"
                by_category = bucket["expenseByCategory"]
                by_category[key] = by_category.get(key, Decimal("0")) + total

        shaped: dict[str, dict[str, object]] = {}
        for code, bucket in sorted(currencies.items()):
            shaped[code] = {
                "income": _money(bucket["income"]),
                "expense": _money(bucket["expense"]),
                "balance": _money(bucket["income"] - bucket["expense"]),
                "expenseByCategory": {
                    k: _money(v) for k, v in sorted(bucket["expenseByCategory"].items())
                },
                "incomeByType": {
                    k: _money(v) for k, v in sorted(bucket["incomeByType"].items())
                },
            }

        budget_currency = settings["defaultCurrency"]
        limit = settings["budget"]["monthlyLimit"]
        spent = shaped.get(budget_currency, {}).get("expense", 0.0)
        over_budget = limit > 0 and spent > limit
        budget = {
            "currency": budget_currency,
            "limit": limit,
            "spent": spent,
            "remaining": round(limit - spent, 2) if limit > 0 else None,
            "overBudget": over_budget,
            "alert": over_budget and bool(settings["notifications"]["budgetAlerts"]),
        }

        return {
            "period": {
                "slug": period.slug,
                "start": period.start.isoformat(),
                "end": period.end.isoformat(),
            },
            "count": count,
            "currencies": shaped,
            "budget": budget,
        }

