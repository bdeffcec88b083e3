"""
Credit-card payment attribution.

A payment made between the statement day and the due day (plus a few grace
days) settles the statement that just closed; a payment outside that window is
an early payment towards the cycle still running.

Example (statement day 21, due day 5, grace 3):

- paid Feb 1: inside Jan 21 - Feb 8, settles Dec 21 - Jan 20
- paid Feb 10: outside the window, settles Jan 21 - Feb 20

Both checks only look at the day of the month, so a payment from an unrelated
month whose day happens to fall in range is also counted. Results computed in
the past depend on that, keep it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Optional, Sequence

from periods import rolled_datetime

if TYPE_CHECKING:  # pragma: no cover
    from models import Bank


@dataclass(frozen=True)
class StatementPeriod:
    start_date: datetime
    end_date: datetime
    label: str


@dataclass(frozen=True)
class PaymentMatchResult:
    statement_period: StatementPeriod
    is_for_previous_period: bool


def is_in_payment_window(
    payment_date: datetime,
    statement_day: int,
    due_day: int,
    grace_days: int = 3,
) -> bool:
    day = payment_date.day
    window_end = due_day + grace_days
    if due_day > statement_day:
        return statement_day <= day <= window_end
    return day >= statement_day or day <= window_end


def _short_label(value: datetime) -> str:
    return f"{value.strftime('%b')} {value.day}"


def payment_statement_period(
    payment_date: datetime,
    statement_day: int,
    due_day: int,
    grace_days: int = 3,
) -> PaymentMatchResult:
    in_window = is_in_payment_window(payment_date, statement_day, due_day, grace_days)
    year, month = payment_date.year, payment_date.month
    after_statement = payment_date.day >= statement_day

    if in_window:
        # the statement that closed most recently
        first_month = month - 1 if after_statement else month - 2
    else:
        first_month = month if after_statement else month - 1

    start_date = rolled_datetime(year, first_month, statement_day)
    end_date = rolled_datetime(year, first_month + 1, statement_day - 1, 23, 59, 59)

    return PaymentMatchResult(
        statement_period=StatementPeriod(
            start_date=start_date,
            end_date=end_date,
            label=f"{_short_label(start_date)} - {_short_label(end_date)}",
        ),
        is_for_previous_period=in_window,
    )


def match_debit_to_cc(
    debit_bank_name: str, credit_banks: Sequence["Bank"]
) -> Optional["Bank"]:
    """
    First credit bank sharing a name token (3+ chars) with the debit bank.

    No scoring: when several cards match, list order decides.
    """
    debit_name = debit_bank_name.lower()
    for credit_bank in credit_banks:
        for part in credit_bank.name.lower().split():
            if len(part) >= 3 and part in debit_name:
                return credit_bank
    return None
