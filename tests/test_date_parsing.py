from datetime import datetime, timedelta

from paperworth.domain.helpers.date_parsing import month_key, parse_purchase_date
from paperworth.domain.models import utcnow


def test_day_first_wins_for_ambiguous_dates():
    assert parse_purchase_date("03/04/2024") == datetime(2024, 4, 3, 12, 0, 0)


def test_month_first_when_day_first_is_impossible():
    assert parse_purchase_date("12/31/2023") == datetime(2023, 12, 31, 12, 0, 0)


def test_other_date_only_formats_are_noon():
    assert parse_purchase_date("2024-02-29") == datetime(2024, 2, 29, 12, 0, 0)
    assert parse_purchase_date("15-08-2024") == datetime(2024, 8, 15, 12, 0, 0)
    assert parse_purchase_date("2024/01/05") == datetime(2024, 1, 5, 12, 0, 0)
    assert parse_purchase_date("24.12.2023") == datetime(2023, 12, 24, 12, 0, 0)


def test_date_time_formats_keep_time():
    assert parse_purchase_date("03/04/2024 08:15:00") == datetime(2024, 4, 3, 8, 15, 0)
    assert parse_purchase_date("2024-04-03 21:05:09") == datetime(2024, 4, 3, 21, 5, 9)
    assert parse_purchase_date("2024-04-03T21:05:09") == datetime(2024, 4, 3, 21, 5, 9)
    assert parse_purchase_date("2024-04-03T21:05:09.123Z") == datetime(
        2024, 4, 3, 21, 5, 9, 123000
    )


def test_unparseable_and_empty_fall_back_to_now():
    for value in ("yesterday", "", None):
        parsed = parse_purchase_date(value)
        assert abs(parsed - utcnow()) < timedelta(seconds=5)


def test_month_key():
    assert month_key(datetime(2024, 3, 9, 12)) == "2024-03"
