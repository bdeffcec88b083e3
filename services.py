from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from config import get_settings
from installments import (
    INSTALLMENT_OPTIONS,
    InstallmentInfo,
    get_active_installments,
    get_effective_amount,
    is_installment,
    round_half_up,
)
from models import Bank, BankType, Category, Rule, Setting, SyncLog, Transaction
from parsers import PARSERS, parse_transaction
from payment_matching import (
    is_in_payment_window,
    match_debit_to_cc,
    payment_statement_period,
)
from periods import (
    BillingPeriod,
    day_progress,
    get_billing_period,
    get_calendar_month,
    local_now,
    months_before,
    to_local_naive,
)
from rules_engine import apply_rules, classification_text
from schemas import (
    BankIn,
    BankUpdate,
    CategoryIn,
    EmailIn,
    RuleIn,
    RuleUpdate,
    TransactionUpdate,
)
from spending import (
    CC_PAYMENT_CATEGORY,
    CHART_COLORS,
    NON_SPENDING_CATEGORIES,
    CategoryBreakdown,
    DailySpending,
    Projections,
    SpendingItem,
    aggregate_by_category,
    aggregate_by_day,
    calculate_projections,
    calculate_spending_totals,
    spending_amount,
)


logger = logging.getLogger(__name__)

SALARY_SETTING_KEY = "salary.monthlyAmount"


class NotFoundError(ValueError):
    pass


def transaction_to_dict(txn: Transaction) -> dict[str, object]:
    return {
        "id": txn.id,
        "bank_id": txn.bank_id,
        "amount": txn.amount,
        "currency": txn.currency,
        "idr_amount": txn.idr_amount,
        "merchant": txn.merchant,
        "category": txn.category,
        "date": txn.date.isoformat(),
        "installment_terms": txn.installment_terms,
        "bank": {
            "name": txn.bank.name,
            "color": txn.bank.color,
            "statement_day": txn.bank.statement_day,
        }
        if txn.bank
        else None,
    }


class BankService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Bank]:
        stmt = select(Bank).order_by(Bank.name, Bank.id)
        return list(self.session.scalars(stmt).all())

    def get(self, bank_id: int) -> Bank:
        bank = self.session.get(Bank, bank_id)
        if not bank:
            raise NotFoundError("Bank not found")
        return bank

    def create(self, data: BankIn) -> Bank:
        parser_type = data.parser_type if data.parser_type in PARSERS else "generic"
        bank = Bank(
            name=data.name.strip(),
            email_filter=data.email_filter.strip(),
            statement_day=data.statement_day,
            due_day=data.due_day if data.bank_type == BankType.credit else None,
            bank_type=data.bank_type,
            color=data.color or CHART_COLORS[0],
            parser_type=parser_type,
        )
        self.session.add(bank)
        self.session.commit()
        self.session.refresh(bank)
        return bank

    def update(self, bank_id: int, data: BankUpdate) -> Bank:
        bank = self.get(bank_id)
        fields = data.model_fields_set

        if data.parser_type is not None and data.parser_type not in PARSERS:
            raise ValueError(f"Unknown parser type: {data.parser_type}")

        if data.name:
            bank.name = data.name.strip()
        if data.email_filter:
            bank.email_filter = data.email_filter.strip()
        if data.statement_day is not None:
            bank.statement_day = data.statement_day
        if "due_day" in fields:
            bank.due_day = data.due_day
        if data.color:
            bank.color = data.color
        if data.parser_type:
            bank.parser_type = data.parser_type
        if data.bank_type is not None:
            bank.bank_type = data.bank_type
        if bank.bank_type != BankType.credit:
            bank.due_day = None

        self.session.commit()
        self.session.refresh(bank)
        return bank

    def delete(self, bank_id: int) -> None:
        bank = self.get(bank_id)
        self.session.delete(bank)
        self.session.commit()


class TransactionService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(
        self,
        bank_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        *,
        newest_first: bool = True,
    ) -> list[Transaction]:
        stmt = select(Transaction).options(joinedload(Transaction.bank))
        if bank_id is not None:
            stmt = stmt.where(Transaction.bank_id == bank_id)
        if start is not None:
            stmt = stmt.where(Transaction.date >= start)
        if end is not None:
            stmt = stmt.where(Transaction.date <= end)
        if newest_first:
            stmt = stmt.order_by(Transaction.date.desc(), Transaction.id.desc())
        else:
            stmt = stmt.order_by(Transaction.date.asc(), Transaction.id.asc())
        return list(self.session.scalars(stmt).all())

    def installment_transactions(
        self, bank_ids: Sequence[int], since: datetime
    ) -> list[Transaction]:
        """Multi-term purchases on the given banks dated on or after ``since``."""
        if not bank_ids:
            return []
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.bank))
            .where(
                Transaction.bank_id.in_(bank_ids),
                Transaction.installment_terms > 1,
                Transaction.date >= since,
            )
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def update(self, transaction_id: int, data: TransactionUpdate) -> Transaction:
        txn = self.get(transaction_id)
        fields = data.model_fields_set
        changed = False

        if "category" in fields and data.category is not None:
            txn.category = data.category.strip()
            changed = True

        if "installment_terms" in fields:
            terms = data.installment_terms
            if terms is None or terms == 1:
                txn.installment_terms = None
            elif terms in INSTALLMENT_OPTIONS:
                txn.installment_terms = terms
            else:
                raise ValueError(
                    "Invalid installment terms. Must be 1, 3, 6, 12, or 24"
                )
            changed = True

        if not changed:
            raise ValueError("No valid fields to update")

        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()


class RuleService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Rule]:
        stmt = select(Rule).order_by(Rule.priority.desc(), Rule.id.asc())
        return list(self.session.scalars(stmt).all())

    def get(self, rule_id: int) -> Rule:
        rule = self.session.get(Rule, rule_id)
        if not rule:
            raise NotFoundError("Rule not found")
        return rule

    def create(self, data: RuleIn) -> Rule:
        rule = Rule(
            condition=data.condition,
            condition_value=data.condition_value.strip(),
            category=data.category.strip(),
            priority=data.priority,
            bank_type=data.bank_type,
        )
        self.session.add(rule)
        self.session.commit()
        self.session.refresh(rule)
        return rule

    def update(self, rule_id: int, data: RuleUpdate) -> Rule:
        rule = self.get(rule_id)
        fields = data.model_fields_set

        if data.condition is not None:
            rule.condition = data.condition
        if data.condition_value:
            rule.condition_value = data.condition_value.strip()
        if data.category:
            rule.category = data.category.strip()
        if data.priority is not None:
            rule.priority = data.priority
        if "bank_type" in fields:
            rule.bank_type = data.bank_type

        self.session.commit()
        self.session.refresh(rule)
        return rule

    def delete(self, rule_id: int) -> None:
        rule = self.get(rule_id)
        self.session.delete(rule)
        self.session.commit()

    def reclassify(self, bank_id: Optional[int] = None) -> int:
        """Re-run the rules over stored transactions; returns how many changed."""
        rules = self.list_all()
        transactions = TransactionService(self.session).list(bank_id)

        changed = 0
        for txn in transactions:
            text = classification_text(txn.merchant, "", txn.raw_content or "")
            category = apply_rules(text, rules, txn.bank.bank_type, txn.merchant)
            if category != txn.category:
                txn.category = category
                changed += 1

        self.session.commit()
        logger.info(
            f"reclassify: bank_id={bank_id} scanned={len(transactions)} changed={changed}"
        )
        return changed


class SettingsService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def all(self) -> dict[str, str]:
        rows = self.session.scalars(select(Setting).order_by(Setting.key)).all()
        return {row.key: row.value for row in rows}

    def get(self, key: str) -> Setting:
        setting = self.session.get(Setting, key)
        if not setting:
            raise NotFoundError("Setting not found")
        return setting

    @staticmethod
    def _validate(key: str, value: object) -> None:
        if key != SALARY_SETTING_KEY:
            return
        try:
            amount = float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError("Salary must be a valid number") from exc
        if not math.isfinite(amount):
            raise ValueError("Salary must be a valid number")
        if amount <= 0:
            raise ValueError("Salary must be a positive number")

    def upsert(self, key: str, value: object) -> Setting:
        clean_key = key.strip()
        if not clean_key:
            raise ValueError("Missing required field: key")
        if value is None:
            raise ValueError("Missing required field: value")
        self._validate(clean_key, value)

        setting = self.session.get(Setting, clean_key)
        if setting:
            setting.value = str(value)
        else:
            setting = Setting(key=clean_key, value=str(value))
            self.session.add(setting)
        self.session.commit()
        self.session.refresh(setting)
        return setting

    def salary(self) -> float:
        default = get_settings().default_salary
        setting = self.session.get(Setting, SALARY_SETTING_KEY)
        if not setting:
            return default
        try:
            amount = float(setting.value)
        except ValueError:
            return default
        if not math.isfinite(amount) or amount <= 0:
            return default
        return amount


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_names(self) -> list[str]:
        names = set(self.session.scalars(select(Category.name)).all())
        names.update(self.session.scalars(select(Transaction.category).distinct()).all())
        names.update(self.session.scalars(select(Rule.category).distinct()).all())
        return sorted(names)

    def create(self, data: CategoryIn) -> Category:
        clean_name = data.name.strip()
        if not clean_name:
            raise ValueError("Category name is required")
        existing = self.session.scalar(select(Category).where(Category.name == clean_name))
        if existing:
            raise ValueError("Category already exists")

        category = Category(name=clean_name, color=data.color or CHART_COLORS[-1])
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category


@dataclass(frozen=True)
class PreviewTransaction:
    email_id: str
    email_subject: str
    transaction_type: str
    merchant: str
    amount: float
    currency: str
    idr_amount: Optional[float]
    category: str
    date: datetime
    raw_content: str


@dataclass(frozen=True)
class SyncResult:
    emails_found: int
    new_transactions: int


class SyncService:
    """Imports already-fetched notification emails for one bank."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.banks = BankService(session)

    def since(self, bank_id: int, now: Optional[datetime] = None) -> datetime:
        now = now or local_now()
        last = self.session.scalar(
            select(SyncLog.synced_at)
            .where(SyncLog.bank_id == bank_id)
            .order_by(SyncLog.synced_at.desc())
            .limit(1)
        )
        if last:
            return last
        return now - timedelta(days=get_settings().sync_lookback_days)

    def _known_email_ids(self, email_ids: Sequence[str]) -> set[str]:
        if not email_ids:
            return set()
        stmt = select(Transaction.email_id).where(Transaction.email_id.in_(email_ids))
        return set(self.session.scalars(stmt).all())

    def preview(self, bank_id: int, emails: Sequence[EmailIn]) -> list[PreviewTransaction]:
        bank = self.banks.get(bank_id)
        rules = RuleService(self.session).list_all()
        seen = self._known_email_ids([email.id for email in emails])

        previews: list[PreviewTransaction] = []
        for email in emails:
            if email.id in seen:
                continue
            seen.add(email.id)

            parsed = parse_transaction(bank.parser_type, email.content)
            text = classification_text(parsed.merchant, email.subject, email.content)
            previews.append(
                PreviewTransaction(
                    email_id=email.id,
                    email_subject=email.subject,
                    transaction_type=parsed.transaction_type,
                    merchant=parsed.merchant,
                    amount=parsed.amount,
                    currency=parsed.currency,
                    idr_amount=parsed.idr_amount,
                    category=apply_rules(text, rules, bank.bank_type, parsed.merchant),
                    date=to_local_naive(email.received_at),
                    raw_content=email.content,
                )
            )
        return previews

    def import_emails(
        self,
        bank_id: int,
        emails: Sequence[EmailIn],
        *,
        now: Optional[datetime] = None,
    ) -> SyncResult:
        previews = self.preview(bank_id, emails)
        for item in previews:
            self.session.add(
                Transaction(
                    bank_id=bank_id,
                    email_id=item.email_id,
                    raw_content=item.raw_content,
                    amount=item.amount,
                    currency=item.currency,
                    idr_amount=item.idr_amount,
                    merchant=item.merchant,
                    category=item.category,
                    date=item.date,
                )
            )
        self.session.add(
            SyncLog(
                bank_id=bank_id,
                synced_at=now or local_now(),
                email_count=len(previews),
            )
        )
        self.session.commit()
        logger.info(
            f"sync_import: bank_id={bank_id} emails_found={len(emails)} new={len(previews)}"
        )
        return SyncResult(emails_found=len(emails), new_transactions=len(previews))


@dataclass(frozen=True)
class DashboardPeriod:
    start_date: str
    end_date: str
    label: str


@dataclass(frozen=True)
class CcPaymentDetail:
    bank_id: int
    bank_name: str
    statement_period: str
    amount: float


@dataclass(frozen=True)
class CcPaymentMade:
    bank_name: str
    merchant: str
    date: str
    amount: float
    for_cc: Optional[str] = None
    statement_period: Optional[str] = None


@dataclass
class BankSpending:
    bank_id: int
    bank_name: str
    bank_type: BankType
    total_spending: float = 0


@dataclass(frozen=True)
class SalaryDashboard:
    period: DashboardPeriod
    salary: float
    debit_spending: float
    cc_payment_due: float
    cc_payment_details: list[CcPaymentDetail]
    cc_payments_made: list[CcPaymentMade]
    total_spending: float
    remaining_balance: float
    category_breakdown: list[CategoryBreakdown]
    daily_spending: list[DailySpending]
    projections: Projections
    bank_summary: list[BankSpending]
    active_installments: list[InstallmentInfo]


@dataclass
class _CardStatement:
    """Running state while one credit card's statement is worked out."""

    bank: Bank
    period: BillingPeriod
    bill: float = 0
    items: list[SpendingItem] = field(default_factory=list)


class DashboardService:
    """
    Salary dashboard for one calendar month.

    Debit accounts count by calendar day. Each credit card counts by the
    statement that closes inside the viewed month, with installment purchases
    contributing only the share due on that statement. Card payments found in
    the payment window are netted against the card bills.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self.settings = get_settings()
        self.banks = BankService(session)
        self.transactions = TransactionService(session)
        self.settings_service = SettingsService(session)

    def salary_dashboard(
        self, month_offset: int = 0, *, now: Optional[datetime] = None
    ) -> SalaryDashboard:
        now = now or local_now()
        calendar = get_calendar_month(month_offset, now=now)
        personal_excluded = self.settings.personal_excluded_categories
        grace_days = self.settings.payment_grace_days

        # The store is a synchronous Session, so these run one after another.
        salary = self.settings_service.salary()
        banks = self.banks.list_all()
        debit_banks = [b for b in banks if b.bank_type == BankType.debit]
        credit_banks = [b for b in banks if b.bank_type == BankType.credit]

        # Anchored at the 1st, every card resolves to the statement closing this month.
        statements = [
            _CardStatement(
                bank=bank,
                period=get_billing_period(bank.statement_day, 0, calendar.start_date),
            )
            for bank in credit_banks
        ]
        fetch_start = min(
            [calendar.start_date] + [s.period.start_date for s in statements]
        )
        fetch_end = max([calendar.end_date] + [s.period.end_date for s in statements])

        transactions = self.transactions.list(
            start=fetch_start, end=fetch_end, newest_first=False
        )
        older_installments = self.transactions.installment_transactions(
            [bank.id for bank in credit_banks],
            months_before(calendar.start_date, self.settings.installment_lookback_months),
        )

        debit_ids = {bank.id for bank in debit_banks}
        debit_transactions = [
            txn
            for txn in transactions
            if txn.bank_id in debit_ids
            and calendar.start_date <= txn.date <= calendar.end_date
        ]
        debit_cc_payments = [
            txn for txn in debit_transactions if txn.category == CC_PAYMENT_CATEGORY
        ]

        cc_payment_details: list[CcPaymentDetail] = []
        cc_payments_made: list[CcPaymentMade] = []
        credit_items: list[SpendingItem] = []
        active_installments: list[InstallmentInfo] = []
        processed_payment_ids: set[int] = set()
        cc_bill_total = 0

        for statement in statements:
            bank = statement.bank
            period = statement.period
            card_transactions = [
                txn
                for txn in transactions
                if txn.bank_id == bank.id
                and period.start_date <= txn.date <= period.end_date
            ]
            card_installments = [
                txn for txn in older_installments if txn.bank_id == bank.id
            ]

            counted_ids: set[int] = set()
            for txn in card_transactions:
                if txn.category == CC_PAYMENT_CATEGORY:
                    continue
                counted_ids.add(txn.id)
                self._add_card_spending(statement, txn, calendar.start_date)
            for txn in card_installments:
                if txn.id in counted_ids:
                    continue
                self._add_card_spending(statement, txn, calendar.start_date)

            cc_bill_total += statement.bill
            credit_items.extend(
                item for item in statement.items if item.category not in personal_excluded
            )
            active_installments.extend(
                get_active_installments(
                    card_installments, bank.statement_day, 0, calendar.start_date
                )
            )
            if statement.bill > 0:
                cc_payment_details.append(
                    CcPaymentDetail(
                        bank_id=bank.id,
                        bank_name=bank.name,
                        statement_period=period.label,
                        amount=statement.bill,
                    )
                )

            if not bank.due_day:
                continue

            self_payments = [
                txn for txn in card_transactions if txn.category == CC_PAYMENT_CATEGORY
            ]
            for payment in self_payments + debit_cc_payments:
                if payment.id in processed_payment_ids:
                    continue
                if payment.bank_id != bank.id and not match_debit_to_cc(
                    payment.bank.name, [bank]
                ):
                    continue
                if not is_in_payment_window(
                    payment.date, bank.statement_day, bank.due_day, grace_days
                ):
                    continue
                settled = payment_statement_period(
                    payment.date, bank.statement_day, bank.due_day, grace_days
                )
                cc_payments_made.append(
                    CcPaymentMade(
                        bank_name=payment.bank.name,
                        merchant=payment.merchant,
                        date=payment.date.isoformat(),
                        amount=spending_amount(payment),
                        for_cc=bank.name,
                        statement_period=settled.statement_period.label,
                    )
                )
                processed_payment_ids.add(payment.id)

        spending_debit = [
            txn
            for txn in debit_transactions
            if txn.category not in NON_SPENDING_CATEGORIES
            and txn.category not in personal_excluded
        ]
        debit_spending = sum(spending_amount(txn) for txn in spending_debit)
        cc_spending_total = sum(item.amount for item in credit_items)
        cc_payments_made_total = sum(payment.amount for payment in cc_payments_made)
        total_spending = debit_spending + cc_spending_total

        # Card spending follows statement cycles, so the daily trend is debit only.
        category_breakdown = aggregate_by_category([*spending_debit, *credit_items], [])
        daily_spending = aggregate_by_day(
            spending_debit, calendar.start_date, calendar.end_date
        )

        days_elapsed, days_remaining = day_progress(calendar, now)
        projections = calculate_projections(
            salary, total_spending, days_elapsed, days_remaining
        )

        banks_by_id = {bank.id: bank for bank in banks}
        summary: dict[int, BankSpending] = {}
        for bank_id, amount in [
            *((txn.bank_id, spending_amount(txn)) for txn in spending_debit),
            *((item.bank_id, item.amount) for item in credit_items),
        ]:
            if bank_id not in summary:
                bank = banks_by_id[bank_id]
                summary[bank_id] = BankSpending(
                    bank_id=bank.id, bank_name=bank.name, bank_type=bank.bank_type
                )
            summary[bank_id].total_spending += amount
        bank_summary = sorted(
            summary.values(), key=lambda row: row.total_spending, reverse=True
        )

        logger.info(
            f"salary_dashboard: period={calendar.label!r} debit_banks={len(debit_banks)} "
            f"credit_banks={len(credit_banks)} transactions={len(transactions)} "
            f"total_spending={total_spending} cc_bill={cc_bill_total}"
        )

        return SalaryDashboard(
            period=DashboardPeriod(
                start_date=calendar.start_date.isoformat(),
                end_date=calendar.end_date.isoformat(),
                label=calendar.label,
            ),
            salary=salary,
            debit_spending=debit_spending,
            cc_payment_due=cc_bill_total - cc_payments_made_total,
            cc_payment_details=cc_payment_details,
            cc_payments_made=cc_payments_made,
            total_spending=total_spending,
            remaining_balance=salary - total_spending,
            category_breakdown=category_breakdown,
            daily_spending=daily_spending,
            projections=projections,
            bank_summary=bank_summary,
            active_installments=active_installments,
        )

    @staticmethod
    def _add_card_spending(
        statement: _CardStatement, txn: Transaction, reference_date: datetime
    ) -> None:
        if txn.category in NON_SPENDING_CATEGORIES:
            return
        amount = get_effective_amount(
            spending_amount(txn),
            txn.installment_terms,
            txn.date,
            statement.bank.statement_day,
            0,
            reference_date,
        )
        if is_installment(txn.installment_terms) and amount == 0:
            return
        statement.bill += amount
        statement.items.append(
            SpendingItem(
                category=txn.category,
                amount=amount,
                idr_amount=amount,
                date=txn.date,
                bank_id=txn.bank_id,
            )
        )


@dataclass(frozen=True)
class ChartSlice:
    name: str
    value: float
    percentage: int


@dataclass(frozen=True)
class BankTransactionsView:
    transactions: list[dict[str, object]]
    chart_data: list[ChartSlice]
    total: float
    total_spending: float
    active_installments: list[InstallmentInfo]


class BankTransactionsService:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.settings = get_settings()
        self.banks = BankService(session)
        self.transactions = TransactionService(session)

    def view(
        self,
        bank_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        month_offset: int = 0,
        *,
        now: Optional[datetime] = None,
    ) -> BankTransactionsView:
        now = now or local_now()
        bank = self.banks.get(bank_id) if bank_id is not None else None
        statement_day = bank.statement_day if bank else 1
        is_credit_card = bank is not None and bank.bank_type == BankType.credit

        transactions = self.transactions.list(bank_id, start, end)
        older_installments: list[Transaction] = []
        if is_credit_card:
            older_installments = self.transactions.installment_transactions(
                [bank.id],
                months_before(now, self.settings.installment_lookback_months),
            )

        listed_ids = {txn.id for txn in transactions}
        combined = transactions + [
            txn for txn in older_installments if txn.id not in listed_ids
        ]
        totals = calculate_spending_totals(
            combined,
            is_credit_card=is_credit_card,
            statement_day=statement_day,
            month_offset=month_offset,
            reference_date=now,
            personal_excluded_categories=self.settings.personal_excluded_categories,
        )

        my_spending = totals.my_spending
        chart_data = [
            ChartSlice(
                name=name,
                value=value,
                percentage=round_half_up(value / my_spending * 100)
                if my_spending > 0
                else 0,
            )
            for name, value in totals.category_totals.items()
        ]
        active_installments = (
            get_active_installments(older_installments, statement_day, month_offset, now)
            if is_credit_card
            else []
        )

        return BankTransactionsView(
            transactions=[transaction_to_dict(txn) for txn in transactions],
            chart_data=chart_data,
            total=my_spending,
            total_spending=totals.total_spending,
            active_installments=active_installments,
        )
