"""Map observed Python values (or driver scan types) onto portable SQL type tokens."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import DateTime, Integer, Numeric, Text
from sqlalchemy.types import TypeEngine

from dbprofiler.exceptions import UnsupportedTypeError

SQL_INT = "int"
SQL_TEXT = "text"
SQL_TIMESTAMPTZ = "timestamptz"
SQL_NUMERIC = "numeric"

# Drivers hand back arbitrary-precision numbers as raw bytes, Decimal or float;
# all of them are stored as numeric.
_BYTE_SEQUENCE_TYPES = (bytes, bytearray, memoryview)
_NUMERIC_TYPES = (Decimal, float)
_TIMESTAMP_TYPES = (datetime, date)


def _classify(python_type: type) -> str:
    if issubclass(python_type, bool):
        raise UnsupportedTypeError(f"no defined sql type for python type {python_type.__name__}")
    if issubclass(python_type, int):
        return SQL_INT
    if issubclass(python_type, str):
        return SQL_TEXT
    if issubclass(python_type, _TIMESTAMP_TYPES):
        return SQL_TIMESTAMPTZ
    if issubclass(python_type, _BYTE_SEQUENCE_TYPES):
        return SQL_NUMERIC
    if issubclass(python_type, _NUMERIC_TYPES):
        return SQL_NUMERIC
    raise UnsupportedTypeError(f"no defined sql type for python type {python_type.__name__}")


def resolve_sql_type(value: Any, fallback_scan_type: Optional[type]) -> str:
    """Return the SQL type token for *value*, or for *fallback_scan_type* when the value is null."""

    if value is not None:
        return _classify(type(value))
    if fallback_scan_type is None:
        raise UnsupportedTypeError(
            "data type is missing, this is likely due to a null value which cannot be interpreted to a data type"
        )
    if not isinstance(fallback_scan_type, type):
        raise UnsupportedTypeError(f"scan type {fallback_scan_type!r} is not a python type")
    return _classify(fallback_scan_type)


_SQLALCHEMY_TYPES: dict[str, type[TypeEngine]] = {
    SQL_INT: Integer,
    SQL_TEXT: Text,
    SQL_NUMERIC: Numeric,
}


def sqlalchemy_type(token: str) -> TypeEngine:
    """Column type used in DDL for a SQL type token."""

    if token == SQL_TIMESTAMPTZ:
        return DateTime(timezone=True)
    try:
        return _SQLALCHEMY_TYPES[token]()
    except KeyError as exc:
        raise UnsupportedTypeError(f"no column type registered for sql type token {token!r}") from exc


__all__ = [
    "SQL_INT",
    "SQL_NUMERIC",
    "SQL_TEXT",
    "SQL_TIMESTAMPTZ",
    "resolve_sql_type",
    "sqlalchemy_type",
]
