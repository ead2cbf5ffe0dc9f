"""Tests for date-literal parsing into epoch milliseconds."""

from datetime import date, datetime, timezone

import numpy as np
import pytest

from pivot_host.core.dates import DateParser, from_epoch_ms, is_valid_date, to_epoch_ms

NEW_YEAR_2020_MS = 1577836800000


@pytest.mark.parametrize(
    "value",
    [
        "2020-01-01",
        "2020-01-01T00:00:00",
        "2020-01-01T00:00:00Z",
        "2020-01-01 00:00:00",
        "2020/01/01",
        "01/01/2020",
        "Jan 01 2020",
        "01/01/2020 12:00:00 AM",
        "Wed, 01 Jan 2020 01:00:00 +0100",
        datetime(2020, 1, 1),
        datetime(2020, 1, 1, tzinfo=timezone.utc),
        date(2020, 1, 1),
        np.datetime64("2020-01-01"),
    ],
    ids=[
        "iso-date",
        "iso-datetime",
        "iso-zulu",
        "space-datetime",
        "slashed-ymd",
        "us-mdy",
        "month-name",
        "twelve-hour",
        "rfc-2822",
        "naive-datetime",
        "aware-datetime",
        "date",
        "datetime64",
    ],
)
def test_parse_new_year(value):
    assert DateParser().parse(value) == NEW_YEAR_2020_MS


def test_parse_numbers_are_epoch_ms():
    assert DateParser().parse(1234) == 1234
    assert DateParser().parse(12.9) == 12


def test_parse_unparseable_is_none():
    parser = DateParser()
    assert parser.parse("not a date") is None
    assert parser.parse(None) is None
    assert parser.parse(np.datetime64("NaT")) is None


def test_parser_remembers_last_format():
    parser = DateParser()
    parser.parse("01/02/2020")
    assert parser._format == "%m/%d/%Y"
    # Cached format is tried first but others still match
    assert parser.parse("2020-01-01") == NEW_YEAR_2020_MS
    assert parser._format == "%Y-%m-%d"


def test_offsets_are_normalized_to_utc():
    assert DateParser().parse("2020-01-01T01:00:00+01:00") == NEW_YEAR_2020_MS


@pytest.mark.parametrize(
    "text,expected",
    [("2020-01-01", True), ("12/31/1999", True), ("hello", False), ("", False), ("42", False)],
)
def test_is_valid_date(text, expected):
    assert is_valid_date(text) is expected


def test_epoch_round_trip():
    moment = datetime(2021, 6, 15, 12, 30, tzinfo=timezone.utc)
    assert from_epoch_ms(to_epoch_ms(moment)) == moment


def test_formats_must_match_the_whole_literal():
    parser = DateParser()
    assert parser.parse("2020-01-01T06:30") == NEW_YEAR_2020_MS + 23_400_000
    assert parser.parse("2020-01-01 trailing") is None
    assert isinstance(parser.parse("2020-01-01"), int)
