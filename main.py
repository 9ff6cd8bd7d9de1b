import logging
import re
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth import require_owner
from config import get_settings
from database import dispose_engine, get_sessionmaker
from errors import FinanceError, ValidationError
from models import Transaction
from periods import Period, resolve_period
from schemas import TRANSACTION_ID_PATTERN, TransactionOut
from services import MetricsService, SettingsService, TransactionService
from validation import validate_transaction


logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Tracker")

_TRANSACTION_ID_RE = re.compile(TRANSACTION_ID_PATTERN)


def get_db():
    db = get_sessionmaker()()
    try:
        yield db
    finally:
        db.close()


async def json_body(request: Request) -> object:
    try:
        return await request.json()
    except ValueError as exc:
        raise ValidationError(None, "Request body must be valid JSON") from exc


@app.on_event("shutdown")
def shutdown_event():
    dispose_engine()


@app.exception_handler(FinanceError)
async def finance_error_handler(request: Request, exc: FinanceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            f"request_failed: method={request.method} path={request.url.path}",
            exc_info=exc,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": "Internal server error"},
        )
    content: dict[str, object] = {"success": False, "error": exc.message}
    if isinstance(exc, ValidationError) and exc.field:
        content["field"] = exc.field
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=400, content={"success": False, "error": "Invalid request"}
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"unhandled_error: method={request.method} path={request.url.path}",
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500, content={"success": False, "error": "Internal server error"}
    )


def transaction_to_dict(txn: Transaction) -> dict[str, object]:
    return TransactionOut.model_validate(txn).model_dump(by_alias=True, mode="json")


def period_from_request(request: Request) -> Period:
    period_slug = request.query_params.get("period")
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    try:
        return resolve_period(period_slug, start, end)
    except ValueError as exc:
        raise ValidationError("period", str(exc)) from exc


def checked_transaction_id(transaction_id: str) -> str:
    if not _TRANSACTION_ID_RE.fullmatch(transaction_id):
        raise ValidationError("transactionId", "Invalid transaction ID format")
    return transaction_id


def expected_version_from(request: Request) -> Optional[int]:
    raw = request.headers.get("If-Match")
    if raw is None:
        return None
    cleaned = raw.strip()
    if cleaned.startswith("W/"):
        cleaned = cleaned[2:]
    cleaned = cleaned.strip('"')
    try:
        return int(cleaned)
    except ValueError as exc:
        raise ValidationError("If-Match", "If-Match must be a version number") from exc


@app.get("/healthz")
def healthz(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError:
        logger.exception("healthz: database unavailable")
        database = "unavailable"
    return {"status": "ok", "database": database}


@app.get("/users/{user_id}/transaction")
def list_transactions(
    request: Request,
    owner_id: str = Depends(require_owner),
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    transactions = TransactionService(db, owner_id).list_for_period(period)
    return {
        "success": True,
        "transactions": [transaction_to_dict(txn) for txn in transactions],
    }


@app.post("/users/{user_id}/transaction", status_code=201)
def create_transaction(
    owner_id: str = Depends(require_owner),
    db: Session = Depends(get_db),
    payload: object = Depends(json_body),
):
    fields = validate_transaction(payload, "create")
    txn = TransactionService(db, owner_id).create(fields)
    return {"success": True, "transaction": transaction_to_dict(txn), "id": txn.id}


@app.get("/users/{user_id}/summary")
def transaction_summary(
    request: Request,
    owner_id: str = Depends(require_owner),
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    summary = MetricsService(db, owner_id).summary(period)
    return {"success": True, "summary": summary}


@app.get("/users/{user_id}/transaction/{transaction_id}")
def get_transaction(
    transaction_id: str,
    owner_id: str = Depends(require_owner),
    db: Session = Depends(get_db),
):
    txn = TransactionService(db, owner_id).get(checked_transaction_id(transaction_id))
    return {"success": True, "transaction": transaction_to_dict(txn)}


@app.put("/users/{user_id}/transaction/{transaction_id}")
def update_transaction(
    transaction_id: str,
    request: Request,
    owner_id: str = Depends(require_owner),
    db: Session = Depends(get_db),
    payload: object = Depends(json_body),
):
    transaction_id = checked_transaction_id(transaction_id)
    expected_version = expected_version_from(request)
    fields = validate_transaction(payload, "update")
    txn = TransactionService(db, owner_id).update(
        transaction_id, fields, expected_version=expected_version
    )
    return {"success": True, "transaction": transaction_to_dict(txn)}


@app.delete("/users/{user_id}/transaction/{transaction_id}")
def delete_transaction(
    transaction_id: str,
    owner_id: str = Depends(require_owner),
    db: Session = Depends(get_db),
):
    deleted = TransactionService(db, owner_id).delete(
        checked_transaction_id(transaction_id)
    )
    return {
        "success": True,
        "message": "Transaction deleted successfully",
        "deletedTransaction": deleted,
    }


@app.get("/users/{user_id}/settings")
def get_settings_endpoint(
    owner_id: str = Depends(require_owner),
    db: Session = Depends(get_db),
):
    return {"success": True, "settings": SettingsService(db, owner_id).get()}


@app.api_route("/users/{user_id}/settings", methods=["POST", "PUT"])
def update_settings_endpoint(
    owner_id: str = Depends(require_owner),
    db: Session = Depends(get_db),
    payload: object = Depends(json_body),
):
    settings = SettingsService(db, owner_id).update(payload)
    return {
        "success": True,
        "message": "Settings updated successfully",
        "settings": settings,
    }


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
