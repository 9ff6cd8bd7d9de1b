from datetime import date, datetime

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from database import Base
from errors import Conflict, NotFound, ValidationError
from models import IncomeType, Transaction, user_transactions
from services import TransactionService, UserService
from validation import validate_transaction


def make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def expense(**overrides) -> dict:
    payload = {
        "type": "expense",
        "amount": 120,
        "currency": "PLN",
        "date": "2025-03-10",
        "description": "Dinner",
        "category": "Restaurants",
    }
    payload.update(overrides)
    return validate_transaction(payload, "create")


def income(**overrides) -> dict:
    payload = {
        "type": "income",
        "amount": 5000,
        "currency": "PLN",
        "date": "2025-03-01",
        "description": "Paycheck",
        "incomeType": "salary",
    }
    payload.update(overrides)
    return validate_transaction(payload, "create")


def owner_refs(session: Session, user_id: str) -> list[str]:
    rows = session.execute(
        select(user_transactions.c.transaction_id).where(
            user_transactions.c.user_id == user_id
        )
    ).all()
    return sorted(row[0] for row in rows)


def transaction_count(session: Session) -> int:
    return session.execute(select(func.count(Transaction.id))).scalar_one()


def test_create_appends_reference_to_owner() -> None:
    session = make_session()
    user = UserService(session).sign_in("ada@example.com")
    txns = TransactionService(session, user.id)

    first = txns.create(expense())
    assert owner_refs(session, user.id) == [first.id]

    second = txns.create(income())
    assert owner_refs(session, user.id) == sorted([first.id, second.id])
    assert second.amount > 0
    assert second.version == 1
    assert {t.id for t in user.transaction_refs} == {first.id, second.id}


def test_create_rolls_back_when_owner_link_fails(monkeypatch) -> None:
    session = make_session()
    user = UserService(session).sign_in("ada@example.com")

    def boom(self, transaction_id):
        raise RuntimeError("link failed")

    monkeypatch.setattr(TransactionService, "_link_to_owner", boom)

    with pytest.raises(RuntimeError):
        TransactionService(session, user.id).create(expense())

    assert transaction_count(session) == 0
    assert owner_refs(session, user.id) == []


def test_get_hides_transactions_of_other_users() -> None:
    session = make_session()
    ada = UserService(session).sign_in("ada@example.com")
    bob = UserService(session).sign_in("bob@example.com")
    txn = TransactionService(session, ada.id).create(expense())

    with pytest.raises(NotFound):
        TransactionService(session, bob.id).get(txn.id)
    with pytest.raises(NotFound):
        TransactionService(session, ada.id).get("0" * 32)


def test_delete_removes_row_and_owner_reference() -> None:
    session = make_session()
    user = UserService(session).sign_in("ada@example.com")
    txns = TransactionService(session, user.id)
    keep = txns.create(income())
    drop = txns.create(expense())

    deleted = txns.delete(drop.id)

    assert deleted == {"id": drop.id, "description": "Dinner", "amount": 120.0}
    assert owner_refs(session, user.id) == [keep.id]
    with pytest.raises(NotFound):
        txns.get(drop.id)


def test_delete_of_missing_or_foreign_transaction_changes_nothing() -> None:
    session = make_session()
    ada = UserService(session).sign_in("ada@example.com")
    bob = UserService(session).sign_in("bob@example.com")
    txn = TransactionService(session, ada.id).create(expense())

    with pytest.raises(NotFound):
        TransactionService(session, bob.id).delete(txn.id)
    with pytest.raises(NotFound):
        TransactionService(session, ada.id).delete("f" * 32)

    assert owner_refs(session, ada.id) == [txn.id]
    assert transaction_count(session) == 1


def test_delete_rolls_back_both_writes_on_failure(monkeypatch) -> None:
    session = make_session()
    user = UserService(session).sign_in("ada@example.com")
    txns = TransactionService(session, user.id)
    txn = txns.create(expense())

    def boom(self, row):
        raise RuntimeError("delete failed")

    monkeypatch.setattr(TransactionService, "_delete_row", boom)

    with pytest.raises(RuntimeError):
        txns.delete(txn.id)

    assert owner_refs(session, user.id) == [txn.id]
    assert txns.get(txn.id).description == "Dinner"


def test_delete_clears_links_pointing_at_removed_transaction() -> None:
    session = make_session()
    user = UserService(session).sign_in("ada@example.com")
    txns = TransactionService(session, user.id)
    original = txns.create(expense())
    refund = txns.create(
        income(incomeType="refund", returnPercentage=50, linkedTransactionId=original.id)
    )
    assert refund.linked_transaction_id == original.id

    txns.delete(original.id)

    assert txns.get(refund.id).linked_transaction_id is None


def test_linked_transaction_must_belong_to_same_user() -> None:
    session = make_session()
    ada = UserService(session).sign_in("ada@example.com")
    bob = UserService(session).sign_in("bob@example.com")
    foreign = TransactionService(session, bob.id).create(expense())

    with pytest.raises(ValidationError) as exc_info:
        TransactionService(session, ada.id).create(
            income(incomeType="refund", linkedTransactionId=foreign.id)
        )
    assert exc_info.value.field == "linkedTransactionId"
    assert owner_refs(session, ada.id) == []


def test_update_merges_allowed_fields() -> None:
    session = make_session()
    user = UserService(session).sign_in("ada@example.com")
    txns = TransactionService(session, user.id)
    txn = txns.create(expense(notes="with friends"))

    updated = txns.update(
        txn.id, validate_transaction({"amount": 99.99, "category": "fun"}, "update")
    )

    assert float(updated.amount) == 99.99
    assert updated.category.value == "Fun"
    assert updated.description == "Dinner"
    assert updated.notes == "with friends"
    assert updated.version == 2


def test_update_keeps_classification_consistent_with_type() -> None:
    session = make_session()
    user = UserService(session).sign_in("ada@example.com")
    txns = TransactionService(session, user.id)
    spent = txns.create(expense())
    earned = txns.create(income(incomeType="refund", returnPercentage=25))

    with pytest.raises(ValidationError) as exc_info:
        txns.update(spent.id, validate_transaction({"category": "Salary"}, "update"))
    assert exc_info.value.field == "category"

    with pytest.raises(ValidationError) as exc_info:
        txns.update(spent.id, validate_transaction({"incomeType": "gift"}, "update"))
    assert exc_info.value.field == "incomeType"

    with pytest.raises(ValidationError) as exc_info:
        txns.update(earned.id, validate_transaction({"category": "Groceries"}, "update"))
    assert exc_info.value.field == "incomeType"

    changed = txns.update(earned.id, validate_transaction({"category": "Gift"}, "update"))
    assert changed.income_type == IncomeType.gift
    assert changed.category is None
    assert changed.return_percentage is None


def test_update_rejects_self_link() -> None:
    session = make_session()
    user = UserService(session).sign_in("ada@example.com")
    txns = TransactionService(session, user.id)
    txn = txns.create(income(incomeType="refund"))

    with pytest.raises(ValidationError):
        txns.update(
            txn.id, validate_transaction({"linkedTransactionId": txn.id}, "update")
        )


def test_update_with_stale_version_conflicts() -> None:
    session = make_session()
    user = UserService(session).sign_in("ada@example.com")
    txns = TransactionService(session, user.id)
    txn = txns.create(expense())

    txns.update(txn.id, validate_transaction({"amount": 80}, "update"), expected_version=1)

    with pytest.raises(Conflict):
        txns.update(
            txn.id, validate_transaction({"amount": 70}, "update"), expected_version=1
        )
    assert float(txns.get(txn.id).amount) == 80.0


def test_update_of_foreign_transaction_is_not_found() -> None:
    session = make_session()
    ada = UserService(session).sign_in("ada@example.com")
    bob = UserService(session).sign_in("bob@example.com")
    txn = TransactionService(session, ada.id).create(expense())

    with pytest.raises(NotFound):
        TransactionService(session, bob.id).update(
            txn.id, validate_transaction({"amount": 1}, "update")
        )


def test_current_month_window_and_ordering() -> None:
    session = make_session()
    user = UserService(session).sign_in("ada@example.com")
    txns = TransactionService(session, user.id)

    first_day = txns.create(expense(date="2025-03-01", description="first"))
    last_day = txns.create(expense(date="2025-03-31", description="last"))
    txns.create(expense(date="2025-02-28", description="previous month"))
    txns.create(expense(date="2025-04-01", description="next month"))
    early = txns.create(expense(date="2025-03-15", description="early"))
    late = txns.create(expense(date="2025-03-15", description="late"))
    early.created_at = datetime(2025, 3, 15, 8, 0)
    late.created_at = datetime(2025, 3, 15, 18, 0)
    session.commit()

    listed = txns.list_current_month(today=date(2025, 3, 20))

    assert [t.id for t in listed] == [last_day.id, late.id, early.id, first_day.id]

