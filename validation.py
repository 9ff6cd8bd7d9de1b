"""Payload validation for transaction and settings writes.

Everything here is pure: a raw JSON payload goes in, a normalized dict of
column values comes out, or :class:`errors.ValidationError` is raised naming
the first offending field. Nothing touches the database.
"""

from typing import Literal, Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from errors import ValidationError
from models import TransactionType
from schemas import CREATE_MODELS, SettingsUpdate, TransactionUpdate


TRANSACTION_UPDATE_FIELDS = (
    "amount",
    "currency",
    "date",
    "description",
    "category",
    "source",
    "income_type",
    "return_percentage",
    "linked_transaction_id",
    "notes",
)

_NON_NULLABLE_UPDATE_FIELDS = ("amount", "currency", "date", "description")

_SETTINGS_COLUMNS = {
    "default_currency": "default_currency",
    "preferred_date_format": "preferred_date_format",
    "custom_name": "custom_name",
    "preferred_theme": "preferred_theme",
    "language": "language",
}

_NESTED_SETTINGS_COLUMNS = {
    "notifications": {
        "push": "notify_push",
        "email": "notify_email",
        "budget_alerts": "notify_budget_alerts",
    },
    "budget": {"monthly_limit": "monthly_limit"},
    "privacy": {"data_retention": "data_retention"},
}


def _first_error(exc: PydanticValidationError) -> ValidationError:
    error = exc.errors()[0]
    field = ".".join(str(part) for part in error.get("loc", ())) or None
    if error.get("type") == "value_error" and "error" in error.get("ctx", {}):
        message = str(error["ctx"]["error"])
    else:
        message = error.get("msg", "Invalid value")
    if field and error.get("type") == "missing":
        message = f"{field} is required"
    elif field and not message.lower().startswith(field.lower()):
        message = f"{field}: {message}"
    return ValidationError(field, message)


def _parse(model: type[BaseModel], payload: dict) -> BaseModel:
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise _first_error(exc) from exc


def _require_object(payload: object) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError(None, "Request body must be a JSON object")
    return payload


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def validate_transaction(
    payload: object, mode: Literal["create", "update"]
) -> dict[str, object]:
    payload = _require_object(payload)
    if mode == "create":
        return _validate_create(payload)
    if mode == "update":
        return _validate_update(payload)
    raise ValueError(f"Unknown validation mode: {mode}")


def _validate_create(payload: dict) -> dict[str, object]:
    raw_type = payload.get("type")
    try:
        txn_type = TransactionType(raw_type)
    except ValueError:
        raise ValidationError("type", "type must be 'income' or 'expense'") from None

    parsed = _parse(CREATE_MODELS[txn_type], payload)
    fields = parsed.model_dump(exclude={"type"})
    fields["type"] = txn_type
    fields.setdefault("category", None)
    fields.setdefault("income_type", None)
    fields.setdefault("return_percentage", None)
    return fields


def _validate_update(payload: dict) -> dict[str, object]:
    for name in _NON_NULLABLE_UPDATE_FIELDS:
        key = _camel(name)
        if (key in payload and payload[key] is None) or (
            name in payload and payload[name] is None
        ):
            raise ValidationError(key, f"{key} cannot be null")

    parsed = _parse(TransactionUpdate, payload)
    fields = {
        name: getattr(parsed, name)
        for name in TRANSACTION_UPDATE_FIELDS
        if name in parsed.model_fields_set
    }
    if not fields:
        raise ValidationError(None, "No valid fields to update")
    return fields


def validate_settings_update(payload: object) -> dict[str, object]:
    """Flatten a partial settings payload into ``user_settings`` column values.

    Only keys present in the payload appear in the result, so callers can
    merge it over the stored row without touching anything else.
    """
    payload = _require_object(payload)
    parsed = _parse(SettingsUpdate, payload)

    update: dict[str, object] = {}
    for name, column in _SETTINGS_COLUMNS.items():
        if name not in parsed.model_fields_set:
            continue
        value = getattr(parsed, name)
        if value is None:
            if name != "custom_name":
                raise ValidationError(_camel(name), f"{_camel(name)} cannot be null")
            value = ""
        update[column] = value

    for group, columns in _NESTED_SETTINGS_COLUMNS.items():
        if group not in parsed.model_fields_set:
            continue
        nested: Optional[BaseModel] = getattr(parsed, group)
        if nested is None:
            raise ValidationError(group, f"{group} must be an object")
        for name, column in columns.items():
            if name not in nested.model_fields_set:
                continue
            value = getattr(nested, name)
            if value is None:
                field = f"{group}.{_camel(name)}"
                raise ValidationError(field, f"{field} cannot be null")
            update[column] = value

    if not update:
        raise ValidationError(None, "No valid fields to update")
    return update
