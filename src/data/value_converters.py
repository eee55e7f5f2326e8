"""
Value converters between application types and their stored representations.
Release dates live in the store as fixed-width `YYYYMMDD` text; enums live as integers.
Both converters are wired into column types, so every read, write, and filter comparison
passes through them without callers knowing the stored form.
"""

from __future__ import annotations

from datetime import date
from enum import IntEnum
from typing import Any

from sqlalchemy import CHAR, Integer
from sqlalchemy.engine import Dialect
from sqlalchemy.types import TypeDecorator

from src.data.errors import FormatError

CHAR8_WIDTH = 8


class DateToChar8Converter:
    """Bidirectional `date` <-> `YYYYMMDD` transform using a fixed, locale-independent calendar."""

    @staticmethod
    def encode(value: date) -> str:
        if not isinstance(value, date):
            raise TypeError(f"Expected a date, got {type(value).__name__}")
        # datetime is a date subclass; the time component is dropped.
        return f"{value.year:04d}{value.month:02d}{value.day:02d}"

    @staticmethod
    def decode(text: str) -> date:
        if not isinstance(text, str) or len(text) != CHAR8_WIDTH:
            raise FormatError(f"Stored date must be exactly {CHAR8_WIDTH} characters, got {text!r}")
        if not (text.isascii() and text.isdigit()):
            raise FormatError(f"Stored date must contain only digits, got {text!r}")
        try:
            return date(int(text[0:4]), int(text[4:6]), int(text[6:8]))
        except ValueError as exc:
            raise FormatError(f"Stored date {text!r} is not a valid calendar date") from exc


class Char8Date(TypeDecorator):
    """Column type storing a `date` as `CHAR(8)`."""

    impl = CHAR(CHAR8_WIDTH)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Dialect) -> str | None:
        if value is None:
            return None
        return DateToChar8Converter.encode(value)

    def process_result_value(self, value: Any, dialect: Dialect) -> date | None:
        if value is None:
            return None
        return DateToChar8Converter.decode(value)


class EnumToInt(TypeDecorator):
    """Column type storing an `IntEnum` member by its integer value."""

    impl = Integer
    cache_ok = True

    def __init__(self, enum_type: type[IntEnum]) -> None:
        super().__init__()
        self.enum_type = enum_type

    def process_bind_param(self, value: Any, dialect: Dialect) -> int | None:
        if value is None:
            return None
        return int(self.enum_type(value))

    def process_result_value(self, value: Any, dialect: Dialect) -> IntEnum | None:
        if value is None:
            return None
        try:
            return self.enum_type(int(value))
        except ValueError as exc:
            raise FormatError(
                f"Stored value {value!r} is not a member of {self.enum_type.__name__}"
            ) from exc
