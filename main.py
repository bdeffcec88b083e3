import logging
from datetime import date, datetime
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import SessionLocal
from models import Bank, Category, Rule
from parsers import PARSER_OPTIONS
from schemas import (
    BankIn,
    BankUpdate,
    CategoryIn,
    RuleIn,
    RuleUpdate,
    SettingIn,
    SyncIn,
    TransactionUpdate,
)
from services import (
    BankService,
    BankTransactionsService,
    CategoryService,
    DashboardService,
    NotFoundError,
    RuleService,
    SettingsService,
    SyncService,
    TransactionService,
    transaction_to_dict,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Tracker")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.exception_handler(SQLAlchemyError)
def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception(f"database_error: path={request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Database error"})


def raise_http(exc: ValueError) -> None:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    raise HTTPException(status_code=400, detail=str(exc)) from exc


def int_param(request: Request, name: str, default: Optional[int] = None) -> Optional[int]:
    raw = request.query_params.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {name}") from exc


def datetime_param(request: Request, name: str, *, end_of_day: bool = False) -> Optional[datetime]:
    raw = request.query_params.get(name)
    if not raw:
        return None
    try:
        if len(raw) == 10:
            day = date.fromisoformat(raw)
            if end_of_day:
                return datetime(day.year, day.month, day.day, 23, 59, 59)
            return datetime(day.year, day.month, day.day)
        return datetime.fromisoformat(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {name}") from exc


def bank_to_dict(bank: Bank) -> dict[str, object]:
    return {
        "id": bank.id,
        "name": bank.name,
        "email_filter": bank.email_filter,
        "statement_day": bank.statement_day,
        "due_day": bank.due_day,
        "bank_type": bank.bank_type.value,
        "color": bank.color,
        "parser_type": bank.parser_type,
    }


def rule_to_dict(rule: Rule) -> dict[str, object]:
    return {
        "id": rule.id,
        "condition": rule.condition.value,
        "condition_value": rule.condition_value,
        "category": rule.category,
        "priority": rule.priority,
        "bank_type": rule.bank_type.value if rule.bank_type else None,
    }


def category_to_dict(category: Category) -> dict[str, object]:
    return {"id": category.id, "name": category.name, "color": category.color}


@app.get("/api/banks")
def api_list_banks(db: Session = Depends(get_db)):
    return [bank_to_dict(bank) for bank in BankService(db).list_all()]


@app.post("/api/banks", status_code=201)
def api_create_bank(payload: BankIn, db: Session = Depends(get_db)):
    bank = BankService(db).create(payload)
    return bank_to_dict(bank)


@app.get("/api/banks/{bank_id}")
def api_get_bank(bank_id: int, db: Session = Depends(get_db)):
    try:
        bank = BankService(db).get(bank_id)
    except ValueError as exc:
        raise_http(exc)
    return bank_to_dict(bank)


@app.put("/api/banks/{bank_id}")
def api_update_bank(bank_id: int, payload: BankUpdate, db: Session = Depends(get_db)):
    try:
        bank = BankService(db).update(bank_id, payload)
    except ValueError as exc:
        raise_http(exc)
    return bank_to_dict(bank)


@app.delete("/api/banks/{bank_id}", status_code=204)
def api_delete_bank(bank_id: int, db: Session = Depends(get_db)):
    try:
        BankService(db).delete(bank_id)
    except ValueError as exc:
        raise_http(exc)
    return Response(status_code=204)


@app.get("/api/rules")
def api_list_rules(db: Session = Depends(get_db)):
    return [rule_to_dict(rule) for rule in RuleService(db).list_all()]


@app.post("/api/rules", status_code=201)
def api_create_rule(payload: RuleIn, db: Session = Depends(get_db)):
    rule = RuleService(db).create(payload)
    return rule_to_dict(rule)


@app.post("/api/rules/reclassify")
def api_reclassify(request: Request, db: Session = Depends(get_db)):
    bank_id = int_param(request, "bank_id")
    try:
        if bank_id is not None:
            BankService(db).get(bank_id)
        updated = RuleService(db).reclassify(bank_id)
    except ValueError as exc:
        raise_http(exc)
    return {"updated": updated}


@app.put("/api/rules/{rule_id}")
def api_update_rule(rule_id: int, payload: RuleUpdate, db: Session = Depends(get_db)):
    try:
        rule = RuleService(db).update(rule_id, payload)
    except ValueError as exc:
        raise_http(exc)
    return rule_to_dict(rule)


@app.delete("/api/rules/{rule_id}", status_code=204)
def api_delete_rule(rule_id: int, db: Session = Depends(get_db)):
    try:
        RuleService(db).delete(rule_id)
    except ValueError as exc:
        raise_http(exc)
    return Response(status_code=204)


@app.get("/api/transactions")
def api_transactions(request: Request, db: Session = Depends(get_db)):
    bank_id = int_param(request, "bank_id")
    month_offset = int_param(request, "month_offset", 0)
    start = datetime_param(request, "start")
    end = datetime_param(request, "end", end_of_day=True)
    try:
        return BankTransactionsService(db).view(bank_id, start, end, month_offset)
    except ValueError as exc:
        raise_http(exc)


@app.patch("/api/transactions/{transaction_id}")
def api_update_transaction(
    transaction_id: int, payload: TransactionUpdate, db: Session = Depends(get_db)
):
    try:
        txn = TransactionService(db).update(transaction_id, payload)
    except ValueError as exc:
        raise_http(exc)
    return transaction_to_dict(txn)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def api_delete_transaction(transaction_id: int, db: Session = Depends(get_db)):
    try:
        TransactionService(db).delete(transaction_id)
    except ValueError as exc:
        raise_http(exc)
    return Response(status_code=204)


@app.get("/api/settings")
def api_settings(db: Session = Depends(get_db)):
    return SettingsService(db).all()


@app.put("/api/settings")
def api_update_setting(payload: SettingIn, db: Session = Depends(get_db)):
    try:
        setting = SettingsService(db).upsert(payload.key, payload.value)
    except ValueError as exc:
        raise_http(exc)
    return {"key": setting.key, "value": setting.value}


@app.get("/api/categories")
def api_categories(db: Session = Depends(get_db)):
    return CategoryService(db).list_names()


@app.post("/api/categories", status_code=201)
def api_create_category(payload: CategoryIn, db: Session = Depends(get_db)):
    try:
        category = CategoryService(db).create(payload)
    except ValueError as exc:
        raise_http(exc)
    return category_to_dict(category)


@app.get("/api/parsers")
def api_parsers():
    return [{"value": value, "label": label} for value, label in PARSER_OPTIONS]


@app.post("/api/sync/preview")
def api_sync_preview(payload: SyncIn, db: Session = Depends(get_db)):
    try:
        transactions = SyncService(db).preview(payload.bank_id, payload.emails)
    except ValueError as exc:
        raise_http(exc)
    return {"transactions": transactions}


@app.post("/api/sync")
def api_sync(payload: SyncIn, db: Session = Depends(get_db)):
    try:
        result = SyncService(db).import_emails(payload.bank_id, payload.emails)
    except ValueError as exc:
        raise_http(exc)
    return result


@app.get("/api/salary-dashboard")
def api_salary_dashboard(request: Request, db: Session = Depends(get_db)):
    month_offset = int_param(request, "month_offset", 0)
    return DashboardService(db).salary_dashboard(month_offset)
