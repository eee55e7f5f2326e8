"""
Unit tests for value converters.
It asserts expected behavior and guards against regressions in the corresponding component.
These tests are executed by `pytest` locally and in CI and should remain deterministic.
"""

from datetime import date, datetime

import pytest
from sqlalchemy.dialects import sqlite

from src.data.entities import AgeRating
from src.data.errors import FormatError
from src.data.value_converters import Char8Date, DateToChar8Converter, EnumToInt


@pytest.mark.parametrize(
    ("value", "encoded"),
    [
        (date(2009, 7, 15), "20090715"),
        (date(1997, 1, 1), "19970101"),
        (date(1, 1, 1), "00010101"),
        (date(9999, 12, 31), "99991231"),
        (date(2024, 2, 29), "20240229"),
    ],
)
def test_date_round_trips_through_char8(value: date, encoded: str) -> None:
    assert DateToChar8Converter.encode(value) == encoded
    assert DateToChar8Converter.decode(encoded) == value


def test_encoded_dates_sort_like_dates() -> None:
    dates = [date(2010, 1, 1), date(999, 12, 31), date(1997, 1, 1), date(1996, 12, 31)]
    encoded = sorted(DateToChar8Converter.encode(value) for value in dates)
    assert encoded == [DateToChar8Converter.encode(value) for value in sorted(dates)]


def test_encode_drops_time_component() -> None:
    assert DateToChar8Converter.encode(datetime(2009, 7, 15, 23, 59)) == "20090715"


def test_encode_rejects_non_dates() -> None:
    with pytest.raises(TypeError):
        DateToChar8Converter.encode("20090715")  # type: ignore[arg-type]


@pytest.mark.parametrize(
    "stored",
    ["2009071", "200907150", "2009-7-1", "20091315", "20090230", "00000101", "２００９０７１５", ""],
)
def test_decode_rejects_malformed_values(stored: str) -> None:
    with pytest.raises(FormatError):
        DateToChar8Converter.decode(stored)


def test_format_error_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        DateToChar8Converter.decode("garbage!")


def test_char8_column_type_passes_none_through() -> None:
    column_type = Char8Date()
    dialect = sqlite.dialect()
    assert column_type.process_bind_param(None, dialect) is None
    assert column_type.process_result_value(None, dialect) is None
    assert column_type.process_bind_param(date(2009, 7, 15), dialect) == "20090715"


def test_enum_column_type_round_trips_members() -> None:
    column_type = EnumToInt(AgeRating)
    dialect = sqlite.dialect()
    assert column_type.process_bind_param(AgeRating.ADOLESCENT, dialect) == 3
    assert column_type.process_result_value(3, dialect) is AgeRating.ADOLESCENT


def test_enum_column_type_rejects_unknown_stored_value() -> None:
    with pytest.raises(FormatError, match="AgeRating"):
        EnumToInt(AgeRating).process_result_value(42, sqlite.dialect())
