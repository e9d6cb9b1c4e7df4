from datetime import datetime, timezone

from biasbrief.news.dates import EARLIEST, parse_article_date, sort_key


def test_iso_date():
    assert parse_article_date("2023-06-01") == datetime(2023, 6, 1, tzinfo=timezone.utc)


def test_iso_datetime_with_offset_is_converted_to_utc():
    parsed = parse_article_date("2024-03-14T04:12:00+02:00")
    assert parsed == datetime(2024, 3, 14, 2, 12, tzinfo=timezone.utc)


def test_long_form_with_us_timezone():
    parsed = parse_article_date("June 5, 2023 at 10:00:00 AM EDT")
    assert parsed == datetime(2023, 6, 5, 14, 0, tzinfo=timezone.utc)


def test_naive_datetime_is_taken_as_utc():
    parsed = parse_article_date("2024-01-02 08:30")
    assert parsed.tzinfo is not None
    assert parsed == datetime(2024, 1, 2, 8, 30, tzinfo=timezone.utc)


def test_unparsable_and_empty_values():
    assert parse_article_date("not yet published") is None
    assert parse_article_date("") is None
    assert parse_article_date("   ") is None
    assert parse_article_date(None) is None


def test_sort_key_puts_unparsable_dates_first():
    assert sort_key("garbage") == EARLIEST
    assert sort_key("1970-01-01") > EARLIEST


def test_out_of_range_offset_datetime_is_unparsable():
    # Converting to UTC would step before year 1
    assert parse_article_date("0001-01-01T00:00:00+05:00") is None
    assert sort_key("0001-01-01T00:00:00+05:00") == EARLIEST
