from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Sequence, Union

from installments import get_effective_amount, is_installment, round_half_up
from periods import to_local_naive


TRANSFER_CATEGORY = "Transfer"
CC_PAYMENT_CATEGORY = "Credit Card Payment"
NON_SPENDING_CATEGORIES = (TRANSFER_CATEGORY, CC_PAYMENT_CATEGORY)

CHART_COLORS = (
    "#3B82F6",  # blue
    "#10B981",  # green
    "#F59E0B",  # amber
    "#EF4444",  # red
    "#8B5CF6",  # purple
    "#EC4899",  # pink
    "#6B7280",  # gray
)

DateLike = Union[datetime, date, str]


@dataclass(frozen=True)
class Projections:
    days_elapsed: int
    days_remaining: int
    average_daily_spending: float
    projected_month_end_spending: float
    projected_remaining_balance: float
    daily_budget_remaining: float


@dataclass(frozen=True)
class CategoryBreakdown:
    name: str
    value: float
    percentage: int
    color: str


@dataclass(frozen=True)
class DailySpending:
    date: str
    amount: float
    cumulative_amount: float


@dataclass(frozen=True)
class SpendingItem:
    """An amount already resolved for the viewed period (e.g. one installment)."""

    category: str
    amount: float
    idr_amount: Optional[float] = None
    date: Optional[DateLike] = None
    bank_id: Optional[int] = None


@dataclass
class SpendingTotals:
    my_spending: float = 0
    total_spending: float = 0
    category_totals: dict[str, float] = field(default_factory=dict)


def spending_amount(txn) -> float:
    return txn.idr_amount if txn.idr_amount is not None else txn.amount


def calculate_projections(
    salary: float,
    total_spending: float,
    days_elapsed: int,
    days_remaining: int,
) -> Projections:
    remaining_balance = salary - total_spending
    average_daily_spending = total_spending / days_elapsed if days_elapsed > 0 else 0
    projected_month_end_spending = total_spending + average_daily_spending * days_remaining
    daily_budget_remaining = (
        remaining_balance / days_remaining if days_remaining > 0 else 0
    )
    return Projections(
        days_elapsed=days_elapsed,
        days_remaining=days_remaining,
        average_daily_spending=average_daily_spending,
        projected_month_end_spending=projected_month_end_spending,
        projected_remaining_balance=salary - projected_month_end_spending,
        daily_budget_remaining=daily_budget_remaining,
    )


def aggregate_by_category(
    transactions: Iterable, exclude_categories: Sequence[str]
) -> list[CategoryBreakdown]:
    """
    Per-category sums with percentages of the post-exclusion total.

    Percentages are rounded one by one and need not add up to 100. Colors
    follow the order in which categories are first seen.
    """
    totals: dict[str, float] = {}
    for txn in transactions:
        if txn.category in exclude_categories:
            continue
        totals[txn.category] = totals.get(txn.category, 0) + spending_amount(txn)

    if not totals:
        return []

    grand_total = sum(totals.values())
    breakdown = []
    for index, (name, value) in enumerate(totals.items()):
        percentage = round_half_up(value / grand_total * 100) if grand_total else 0
        breakdown.append(
            CategoryBreakdown(
                name=name,
                value=value,
                percentage=percentage,
                color=CHART_COLORS[index % len(CHART_COLORS)],
            )
        )
    breakdown.sort(key=lambda item: item.value, reverse=True)
    return breakdown


def _local_date(value: DateLike) -> date:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime):
        return to_local_naive(value).date()
    return value


def date_key(value: DateLike) -> str:
    return _local_date(value).isoformat()


def aggregate_by_day(
    transactions: Iterable, start_date: DateLike, end_date: DateLike
) -> list[DailySpending]:
    """One entry per calendar day in [start_date, end_date], zero days included."""
    by_day: dict[str, float] = {}
    for txn in transactions:
        key = date_key(txn.date)
        by_day[key] = by_day.get(key, 0) + spending_amount(txn)

    result: list[DailySpending] = []
    cumulative = 0
    current = _local_date(start_date)
    last = _local_date(end_date)
    while current <= last:
        key = current.isoformat()
        amount = by_day.get(key, 0)
        cumulative += amount
        result.append(DailySpending(date=key, amount=amount, cumulative_amount=cumulative))
        current += timedelta(days=1)
    return result


def calculate_spending_totals(
    transactions: Iterable,
    *,
    is_credit_card: bool,
    statement_day: int,
    month_offset: int,
    reference_date: Optional[datetime] = None,
    personal_excluded_categories: Sequence[str] = (),
) -> SpendingTotals:
    """
    Bank-level totals for the viewed period.

    ``total_spending`` is everything except transfers and card payments (what
    a card bill has to cover); ``my_spending`` and ``category_totals`` also
    leave out the personal exclusions. Card amounts are installment-aware.
    """
    totals = SpendingTotals()
    for txn in transactions:
        if txn.category in NON_SPENDING_CATEGORIES:
            continue

        amount = spending_amount(txn)
        if is_credit_card:
            amount = get_effective_amount(
                amount,
                txn.installment_terms,
                txn.date,
                statement_day,
                month_offset,
                reference_date,
            )
            if is_installment(txn.installment_terms) and amount == 0:
                continue

        totals.total_spending += amount
        if txn.category in personal_excluded_categories:
            continue
        totals.my_spending += amount
        totals.category_totals[txn.category] = (
            totals.category_totals.get(txn.category, 0) + amount
        )
    return totals
