import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Response
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal
from errors import LedgerError, NotFoundError, StoreTransactionError, ValidationError
from models import Transaction
from scheduler import SchedulerManager
from schemas import (
    DashboardOut,
    ExpenseCreate,
    ExpenseInsightsOut,
    ExpenseOut,
    ExpenseReportFilter,
    ExpenseReportOut,
    ExpenseUpdate,
    ParsedTransaction,
    TransactionCreate,
    TransactionOut,
    TransactionUpdate,
)
from services import DashboardService, ExpenseService, TransactionService


logger = logging.getLogger(__name__)

app = FastAPI(title="Net-worth Ledger")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    if get_settings().scheduler_enabled:
        scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def _http_error(exc: LedgerError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, StoreTransactionError):
        logger.error(f"store_transaction_failed: {exc}")
        return HTTPException(status_code=500, detail="Could not save changes")
    return HTTPException(status_code=500, detail=str(exc))


@app.post("/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(
    payload: TransactionCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return TransactionService(db, user_id).create(payload)
    except LedgerError as exc:
        raise _http_error(exc) from exc


@app.get("/transactions", response_model=list[TransactionOut])
def list_transactions(
    accountId: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    return TransactionService(db, user_id).list(account_id=accountId)


@app.get("/transactions/dashboard", response_model=DashboardOut)
def transactions_dashboard(
    period: Optional[str] = None,
    startDate: Optional[str] = None,
    endDate: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return DashboardService(db, user_id).dashboard(period, startDate, endDate)
    except LedgerError as exc:
        raise _http_error(exc) from exc


@app.post("/transactions/parsed", status_code=201)
def create_parsed_transaction(
    payload: ParsedTransaction,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        result = TransactionService(db, user_id).create_from_parsed(payload)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    if isinstance(result, Transaction):
        return TransactionOut.model_validate(result).model_dump(
            mode="json", by_alias=True
        )
    return result


@app.get("/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return TransactionService(db, user_id).get(transaction_id)
    except LedgerError as exc:
        raise _http_error(exc) from exc


@app.patch("/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: str,
    payload: TransactionUpdate,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return TransactionService(db, user_id).update(transaction_id, payload)
    except LedgerError as exc:
        raise _http_error(exc) from exc


@app.delete("/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        TransactionService(db, user_id).remove(transaction_id)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.get("/expenses", response_model=list[ExpenseOut])
def list_expenses(
    db: Session = Depends(get_db), user_id: str = Depends(current_user_id)
):
    return ExpenseService(db, user_id).list()


@app.post("/expenses", response_model=ExpenseOut, status_code=201)
def create_expense(
    payload: ExpenseCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return ExpenseService(db, user_id).create(payload)
    except LedgerError as exc:
        raise _http_error(exc) from exc


@app.get("/expenses/insights", response_model=ExpenseInsightsOut)
def expense_insights(
    db: Session = Depends(get_db), user_id: str = Depends(current_user_id)
):
    return ExpenseService(db, user_id).insights()


@app.post("/expenses/report", response_model=ExpenseReportOut)
def expense_report(
    payload: ExpenseReportFilter,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return ExpenseService(db, user_id).report(payload)
    except LedgerError as exc:
        raise _http_error(exc) from exc


@app.get("/expenses/{expense_id}", response_model=ExpenseOut)
def get_expense(
    expense_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return ExpenseService(db, user_id).get(expense_id)
    except LedgerError as exc:
        raise _http_error(exc) from exc


@app.patch("/expenses/{expense_id}", response_model=ExpenseOut)
def update_expense(
    expense_id: str,
    payload: ExpenseUpdate,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return ExpenseService(db, user_id).update(expense_id, payload)
    except LedgerError as exc:
        raise _http_error(exc) from exc


@app.delete("/expenses/{expense_id}", status_code=204)
def delete_expense(
    expense_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        ExpenseService(db, user_id).delete(expense_id)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)
