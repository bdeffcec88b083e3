from datetime import datetime, timedelta

from periods import (
    day_progress,
    get_billing_period,
    get_calendar_month,
    month_label,
    months_before,
    rolled_datetime,
    shift_month,
)


def test_calendar_month_covers_whole_leap_february() -> None:
    month = get_calendar_month(0, now=datetime(2024, 2, 10, 9, 30))

    assert month.start_date == datetime(2024, 2, 1, 0, 0, 0)
    assert month.end_date == datetime(2024, 2, 29, 23, 59, 59)
    assert month.days_in_month == 29
    assert month.label == "February 2024"


def test_calendar_month_offsets_cross_year_boundaries() -> None:
    previous = get_calendar_month(-1, now=datetime(2024, 1, 15))
    assert previous.start_date == datetime(2023, 12, 1)
    assert previous.days_in_month == 31
    assert previous.label == "December 2023"

    far = get_calendar_month(13, now=datetime(2023, 11, 3))
    assert far.start_date == datetime(2024, 12, 1)
    assert far.end_date == datetime(2024, 12, 31, 23, 59, 59)

    back = get_calendar_month(-25, now=datetime(2024, 1, 31))
    assert back.start_date == datetime(2021, 12, 1)


def test_shift_month_keeps_month_in_range() -> None:
    assert shift_month(2024, 1, -1) == (2023, 12)
    assert shift_month(2024, 12, 1) == (2025, 1)
    assert shift_month(2024, 0, 0) == (2023, 12)
    assert shift_month(2024, 14, 0) == (2025, 2)


def test_rolled_datetime_spills_into_neighbouring_months() -> None:
    assert rolled_datetime(2024, 3, 0) == datetime(2024, 2, 29)
    assert rolled_datetime(2024, 4, 31) == datetime(2024, 5, 1)
    assert rolled_datetime(2023, 2, 31, 23, 59, 59) == datetime(2023, 3, 3, 23, 59, 59)


def test_billing_period_before_statement_day_is_previous_cycle() -> None:
    period = get_billing_period(21, 0, datetime(2024, 1, 10))

    assert period.start_date == datetime(2023, 12, 21)
    assert period.end_date == datetime(2024, 1, 20, 23, 59, 59)
    assert period.label == "January 2024"


def test_billing_period_on_statement_day_is_still_closed_cycle() -> None:
    period = get_billing_period(21, 0, datetime(2024, 1, 21, 8, 0))

    assert period.start_date == datetime(2023, 12, 21)
    assert period.end_date == datetime(2024, 1, 20, 23, 59, 59)


def test_billing_period_after_statement_day_is_running_cycle() -> None:
    period = get_billing_period(21, 0, datetime(2024, 1, 22))

    assert period.start_date == datetime(2024, 1, 21)
    assert period.end_date == datetime(2024, 2, 20, 23, 59, 59)
    assert period.label == "February 2024"


def test_billing_period_offset_moves_whole_cycles() -> None:
    period = get_billing_period(21, -1, datetime(2024, 1, 10))

    assert period.start_date == datetime(2023, 11, 21)
    assert period.end_date == datetime(2023, 12, 20, 23, 59, 59)
    assert period.label == "December 2023"


def test_billing_period_statement_day_31_rolls_over_short_months() -> None:
    period = get_billing_period(31, 0, datetime(2024, 3, 15))

    # February 31st does not exist and becomes March 2nd
    assert period.start_date == datetime(2024, 3, 2)
    assert period.end_date == datetime(2024, 3, 30, 23, 59, 59)
    assert period.label == "March 2024"


def test_day_progress_clamps_to_the_month() -> None:
    february = get_calendar_month(0, now=datetime(2024, 2, 1))

    assert day_progress(february, datetime(2024, 2, 10, 12, 0)) == (10, 19)
    assert day_progress(february, datetime(2024, 2, 1, 0, 0)) == (1, 28)
    assert day_progress(february, datetime(2024, 3, 5)) == (29, 0)
    assert day_progress(february, datetime(2024, 1, 31)) == (0, 29)


def test_months_before_returns_first_of_month() -> None:
    assert months_before(datetime(2024, 3, 15, 10, 0), 24) == datetime(2022, 3, 1)
    assert months_before(datetime(2024, 1, 1), 1) == datetime(2023, 12, 1)


def test_billing_period_statement_day_1_after_statement_day() -> None:
    period = get_billing_period(1, 0, datetime(2024, 3, 2))

    assert period.start_date == datetime(2024, 3, 1)
    assert period.end_date == datetime(2024, 3, 31, 23, 59, 59)
    assert period.label == "March 2024"


def test_billing_period_statement_day_1_on_statement_day() -> None:
    period = get_billing_period(1, 0, datetime(2024, 3, 1))

    assert period.start_date == datetime(2024, 2, 1)
    assert period.end_date == datetime(2024, 2, 29, 23, 59, 59)
    assert period.label == "February 2024"


def test_billing_periods_are_one_month_long_and_back_to_back() -> None:
    one_second = timedelta(seconds=1)
    for reference in (datetime(2024, 1, 15), datetime(2024, 2, 29), datetime(2023, 12, 31)):
        for statement_day in range(1, 32):
            for offset in range(-14, 14):
                period = get_billing_period(statement_day, offset, reference)
                following = get_billing_period(statement_day, offset + 1, reference)

                assert period.label == month_label(period.end_date)
                assert period.label == period.end_date.strftime("%B %Y")
                assert 28 <= (period.end_date + one_second - period.start_date).days <= 31
                assert period.end_date + one_second == following.start_date
