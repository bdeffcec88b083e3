from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from periods import get_billing_period, shift_month


INSTALLMENT_OPTIONS = (1, 3, 6, 12, 24)


@dataclass(frozen=True)
class InstallmentInfo:
    transaction_id: int
    merchant: str
    total_amount: float
    monthly_amount: float
    terms: int
    current_installment: int
    is_active: bool
    start_date: datetime
    transaction_date: datetime


def round_half_up(value: float) -> int:
    # Halves round towards +inf: 2.5 -> 3, -2.5 -> -2.
    return math.floor(value + 0.5)


def is_installment(terms: Optional[int]) -> bool:
    return bool(terms) and terms > 1


def get_monthly_amount(total_amount: float, terms: Optional[int]) -> float:
    """
    Per-period share of an installment purchase.

    Every period is rounded on its own; the last one is not adjusted, so the
    shares may drift from the total by up to ``terms - 1`` units.
    """
    if not is_installment(terms):
        return total_amount
    return round_half_up(total_amount / terms)


def billing_month_for(transaction_date: datetime, statement_day: int) -> tuple[int, int]:
    """(year, month) of the statement a purchase is first billed on."""
    if transaction_date.day >= statement_day:
        return shift_month(transaction_date.year, transaction_date.month, 1)
    return transaction_date.year, transaction_date.month


def get_installment_number(
    transaction_date: datetime,
    statement_day: int,
    view_month_offset: int,
    reference_date: Optional[datetime] = None,
) -> int:
    """
    Installment index due in the viewed billing period.

    1 is the first installment; values below 1 mean the plan has not started
    yet and values above the term count mean it is paid off.
    """
    bill_year, bill_month = billing_month_for(transaction_date, statement_day)

    view_period = get_billing_period(statement_day, view_month_offset, reference_date)
    view_year = view_period.end_date.year
    view_month = view_period.end_date.month

    return (view_year * 12 + view_month) - (bill_year * 12 + bill_month) + 1


def is_installment_active_for_period(
    transaction_date: datetime,
    terms: int,
    statement_day: int,
    view_month_offset: int,
    reference_date: Optional[datetime] = None,
) -> bool:
    number = get_installment_number(
        transaction_date, statement_day, view_month_offset, reference_date
    )
    return 1 <= number <= terms


def get_effective_amount(
    amount: float,
    terms: Optional[int],
    transaction_date: datetime,
    statement_day: int,
    view_month_offset: int,
    reference_date: Optional[datetime] = None,
) -> float:
    """Amount a transaction contributes to the viewed period (0 when inactive)."""
    if not is_installment(terms):
        return amount

    if is_installment_active_for_period(
        transaction_date, terms, statement_day, view_month_offset, reference_date
    ):
        return get_monthly_amount(amount, terms)
    return 0


def get_active_installments(
    transactions: Iterable,
    statement_day: int,
    view_month_offset: int,
    reference_date: Optional[datetime] = None,
) -> list[InstallmentInfo]:
    installments: list[InstallmentInfo] = []

    for txn in transactions:
        terms = txn.installment_terms
        if not is_installment(terms):
            continue

        number = get_installment_number(
            txn.date, statement_day, view_month_offset, reference_date
        )
        if not 1 <= number <= terms:
            continue

        total_amount = txn.idr_amount if txn.idr_amount is not None else txn.amount
        installments.append(
            InstallmentInfo(
                transaction_id=txn.id,
                merchant=txn.merchant,
                total_amount=total_amount,
                monthly_amount=get_monthly_amount(total_amount, terms),
                terms=terms,
                current_installment=number,
                is_active=True,
                start_date=txn.date,
                transaction_date=txn.date,
            )
        )

    installments.sort(key=lambda info: info.current_installment)
    return installments
