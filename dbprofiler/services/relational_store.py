"""SQLAlchemy-backed access to the profiled database and to the profile store.

Every public method is one store round-trip and therefore a suspension point:
it checks the current run's cancel token before touching the database.

Identifiers are validated against a plain-identifier grammar and quoted by the
dialect before they are interpolated. Values are always bound as parameters.
The only raw SQL that reaches the database unvalidated is the custom column
expression of a profile definition, which is operator-authored trusted input.
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterator, Mapping, Optional, Sequence

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import Column, UniqueConstraint, and_, column, inspect, select, table
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import CompileError, IntegrityError, SQLAlchemyError
from sqlalchemy.types import TypeEngine

from dbprofiler.database import create_database_engine
from dbprofiler.exceptions import ProfilerError, QueryError, SchemaError, StoreConnectionError
from dbprofiler.services.concurrency import checkpoint
from dbprofiler.services.naming import validate_identifier, validate_qualified_name

logger = logging.getLogger(__name__)

# PostgreSQL type OIDs reported in cursor descriptions by psycopg2 / psycopg.
_POSTGRES_TYPE_NAMES: dict[int, str] = {
    16: "BOOL",
    17: "BYTEA",
    18: "CHAR",
    19: "NAME",
    20: "INT8",
    21: "INT2",
    23: "INT4",
    25: "TEXT",
    26: "OID",
    114: "JSON",
    700: "FLOAT4",
    701: "FLOAT8",
    1042: "BPCHAR",
    1043: "VARCHAR",
    1082: "DATE",
    1083: "TIME",
    1114: "TIMESTAMP",
    1184: "TIMESTAMPTZ",
    1186: "INTERVAL",
    1700: "NUMERIC",
    2950: "UUID",
    3802: "JSONB",
}

# Used when the driver reports no type (sqlite): name the type of the sampled value.
_PYTHON_TYPE_NAMES: tuple[tuple[type, str], ...] = (
    (bool, "BOOLEAN"),
    (int, "INTEGER"),
    (float, "REAL"),
    (Decimal, "NUMERIC"),
    (str, "TEXT"),
    (bytes, "BLOB"),
    (datetime, "TIMESTAMP"),
    (date, "DATE"),
)

_SCAN_TYPES: dict[str, type] = {
    "BOOL": bool,
    "BOOLEAN": bool,
    "INT": int,
    "INT2": int,
    "INT4": int,
    "INT8": int,
    "INTEGER": int,
    "SMALLINT": int,
    "BIGINT": int,
    "OID": int,
    "NUMERIC": Decimal,
    "DECIMAL": Decimal,
    "FLOAT": float,
    "FLOAT4": float,
    "FLOAT8": float,
    "REAL": float,
    "DOUBLE": float,
    "DOUBLE PRECISION": float,
    "TEXT": str,
    "VARCHAR": str,
    "BPCHAR": str,
    "CHAR": str,
    "CHARACTER": str,
    "CHARACTER VARYING": str,
    "NAME": str,
    "NVARCHAR": str,
    "CLOB": str,
    "TIMESTAMP": datetime,
    "TIMESTAMPTZ": datetime,
    "DATETIME": datetime,
    "TIMESTAMP WITH TIME ZONE": datetime,
    "TIMESTAMP WITHOUT TIME ZONE": datetime,
    "DATE": date,
    "BYTEA": bytes,
    "BLOB": bytes,
}

_NUMERIC_FAMILY = frozenset(
    {
        "INT",
        "INT2",
        "INT4",
        "INT8",
        "INTEGER",
        "SMALLINT",
        "BIGINT",
        "NUMERIC",
        "DECIMAL",
        "FLOAT",
        "FLOAT4",
        "FLOAT8",
        "REAL",
        "DOUBLE",
        "DOUBLE PRECISION",
    }
)
_TEMPORAL_FAMILY = frozenset(
    {
        "TIMESTAMP",
        "TIMESTAMPTZ",
        "DATE",
        "DATETIME",
        "TIMESTAMP WITH TIME ZONE",
        "TIMESTAMP WITHOUT TIME ZONE",
    }
)
_TEXT_FAMILY = frozenset({"VARCHAR", "BPCHAR", "TEXT", "CHAR", "CHARACTER", "CHARACTER VARYING", "NVARCHAR"})

UNKNOWN_TYPE_NAME = "UNKNOWN"

_TYPE_PARAMETERS = re.compile(r"\(.*?\)")
_WHITESPACE = re.compile(r"\s+")


def normalize_type_name(raw: str) -> str:
    """``varchar(20)`` -> ``VARCHAR``, ``numeric(10, 2)`` -> ``NUMERIC``."""

    cleaned = _TYPE_PARAMETERS.sub("", raw or "")
    return _WHITESPACE.sub(" ", cleaned).strip().upper()


def scan_type_for(database_type_name: str) -> Optional[type]:
    return _SCAN_TYPES.get(normalize_type_name(database_type_name))


def profiles_by_type(database_type_name: str) -> dict[str, str]:
    """Aggregate templates (alias -> SQL with a ``{column}`` placeholder) for a driver type."""

    type_name = normalize_type_name(database_type_name)
    if type_name in _NUMERIC_FAMILY:
        return {
            "maximum": "max({column})",
            "minimum": "min({column})",
            "average": "avg({column})",
        }
    if type_name in _TEMPORAL_FAMILY:
        return {
            "maximum": "max({column})",
            "minimum": "min({column})",
        }
    if type_name in _TEXT_FAMILY:
        return {
            "max_length": "max(length({column}))",
            "avg_length": "avg(length({column}))",
        }
    return {}


@dataclass(frozen=True)
class ColumnMetadata:
    name: str
    database_type_name: str
    scan_type: Optional[type]


@dataclass(frozen=True)
class SampleResult:
    columns: tuple[ColumnMetadata, ...]
    row: Optional[tuple[Any, ...]]

    @property
    def has_row(self) -> bool:
        return self.row is not None

    def value(self, index: int) -> Any:
        if self.row is None:
            return None
        return self.row[index]


class RelationalStore:
    """Thin wrapper around an SQLAlchemy engine shared by every profiling task."""

    def __init__(self, engine: Engine, *, label: str = "database") -> None:
        self._engine = engine
        self._label = label
        self._preparer = engine.dialect.identifier_preparer

    @classmethod
    def from_connection_string(cls, db_type: str, connection_string: str | None, *, label: str = "database") -> "RelationalStore":
        return cls(create_database_engine(db_type, connection_string), label=label)

    @property
    def engine(self) -> Engine:
        return self._engine

    def dispose(self) -> None:
        self._engine.dispose()

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------
    @contextmanager
    def _connection(self, error_cls: type[ProfilerError], action: str) -> Iterator[Connection]:
        checkpoint()
        try:
            connection = self._engine.connect()
        except SQLAlchemyError as exc:
            raise StoreConnectionError(f"unable to connect to {self._label}: {exc}") from exc
        try:
            with connection:
                yield connection
                connection.commit()
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            raise error_cls(f"{action} failed: {exc}") from exc

    def probe(self) -> None:
        """Open one connection so misconfigured databases fail before any work starts."""

        with self._connection(StoreConnectionError, f"connecting to {self._label}") as connection:
            connection.exec_driver_sql("SELECT 1")

    # ------------------------------------------------------------------
    # Identifiers
    # ------------------------------------------------------------------
    def quote_identifier(self, name: str) -> str:
        return self._preparer.quote(validate_identifier(name))

    def quote_table(self, name: str) -> str:
        return ".".join(self._preparer.quote(part) for part in validate_qualified_name(name))

    @staticmethod
    def _split_table(name: str) -> tuple[Optional[str], str]:
        parts = validate_qualified_name(name)
        if len(parts) == 2:
            return parts[0], parts[1]
        return None, parts[0]

    # ------------------------------------------------------------------
    # Sampling and aggregate queries against the profiled database
    # ------------------------------------------------------------------
    def select_all_columns_single(self, table_name: str) -> SampleResult:
        """One-row ``SELECT *`` returning the table's column metadata (and its first row, if any)."""

        return self._select_single(table_name, ["*"], use_declared_types=True)

    def select_single(self, table_name: str, selects: Sequence[str], *, use_declared_types: bool = False) -> SampleResult:
        """One-row select of the given select expressions."""

        if not selects:
            raise QueryError(f"no select expressions given for {table_name}")
        return self._select_single(table_name, selects, use_declared_types=use_declared_types)

    def select_row(self, table_name: str, selects: Sequence[str]) -> SampleResult:
        """Run an aggregate select over the whole table and return its single result row."""

        if not selects:
            raise QueryError(f"no select expressions given for {table_name}")
        statement = f"SELECT {', '.join(selects)} FROM {self.quote_table(table_name)}"
        with self._connection(QueryError, f"querying {table_name}") as connection:
            result = connection.execution_options(no_parameters=True).exec_driver_sql(statement)
            description = result.cursor.description if result.cursor is not None else ()
            row = result.fetchone()
        return SampleResult(
            columns=self._describe(description, row, declared={}),
            row=tuple(row) if row is not None else None,
        )

    def get_table_row_count(self, table_name: str) -> int:
        statement = f"SELECT count(*) AS count FROM {self.quote_table(table_name)}"
        with self._connection(QueryError, f"counting rows of {table_name}") as connection:
            value = connection.execution_options(no_parameters=True).exec_driver_sql(statement).scalar()
        return int(value or 0)

    def _select_single(self, table_name: str, selects: Sequence[str], *, use_declared_types: bool) -> SampleResult:
        statement = f"SELECT {', '.join(selects)} FROM {self.quote_table(table_name)} LIMIT 1"
        with self._connection(QueryError, f"sampling {table_name}") as connection:
            result = connection.execution_options(no_parameters=True).exec_driver_sql(statement)
            description = result.cursor.description if result.cursor is not None else ()
            row = result.fetchone()
            declared: dict[str, str] = {}
            if use_declared_types and not self._driver_reports_types(description):
                declared = self._declared_types(connection, table_name)
        return SampleResult(
            columns=self._describe(description, row, declared=declared),
            row=tuple(row) if row is not None else None,
        )

    @staticmethod
    def _driver_reports_types(description: Sequence[Sequence[Any]]) -> bool:
        return bool(description) and all(isinstance(entry[1], int) for entry in description)

    def _declared_types(self, connection: Connection, table_name: str) -> dict[str, str]:
        schema, name = self._split_table(table_name)
        declared: dict[str, str] = {}
        for info in inspect(connection).get_columns(name, schema=schema):
            column_type = info["type"]
            try:
                rendered = column_type.compile(dialect=self._engine.dialect)
            except CompileError:
                rendered = type(column_type).__name__
            declared[info["name"]] = normalize_type_name(rendered)
        return declared

    @staticmethod
    def _describe(
        description: Sequence[Sequence[Any]],
        row: Optional[Sequence[Any]],
        *,
        declared: Mapping[str, str],
    ) -> tuple[ColumnMetadata, ...]:
        columns: list[ColumnMetadata] = []
        for index, entry in enumerate(description or ()):
            name, type_code = entry[0], entry[1]
            type_name: Optional[str] = None
            if isinstance(type_code, int):
                type_name = _POSTGRES_TYPE_NAMES.get(type_code, f"OID{type_code}")
            elif name in declared:
                type_name = declared[name]
            elif row is not None and row[index] is not None:
                type_name = _python_type_name(row[index])
            type_name = type_name or UNKNOWN_TYPE_NAME
            columns.append(ColumnMetadata(name=name, database_type_name=type_name, scan_type=scan_type_for(type_name)))
        return tuple(columns)

    # ------------------------------------------------------------------
    # Row access on the profile store
    # ------------------------------------------------------------------
    def select_ids_where(
        self,
        table_name: str,
        wheres: Mapping[str, Any],
        *,
        id_column: str = "id",
        limit: Optional[int] = None,
    ) -> list[int]:
        """Ids of rows whose columns equal every value in *wheres*, lowest id first."""

        id_col = column(validate_identifier(id_column))
        target = table(validate_identifier(table_name), id_col, *(column(validate_identifier(key)) for key in wheres))
        conditions = [target.c[key] == value for key, value in wheres.items()]
        stmt = select(target.c[id_column]).select_from(target)
        if conditions:
            stmt = stmt.where(and_(*conditions))
        stmt = stmt.order_by(target.c[id_column].asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._connection(QueryError, f"selecting from {table_name}") as connection:
            return [int(value) for value in connection.execute(stmt).scalars().all()]

    def insert_row_and_return_id(
        self,
        table_name: str,
        values: Mapping[str, Any],
        *,
        id_column: str = "id",
        column_types: Optional[Mapping[str, TypeEngine]] = None,
    ) -> int:
        """Insert one row and return its generated id.

        Integrity violations (unique natural keys) are re-raised untranslated so
        callers can resolve the collision.
        """

        column_types = column_types or {}
        id_col = column(validate_identifier(id_column))
        target = table(
            validate_identifier(table_name),
            id_col,
            *(column(validate_identifier(key), column_types.get(key)) for key in values),
        )
        stmt = target.insert().values(**{key: value for key, value in values.items()})
        returning = bool(getattr(self._engine.dialect, "insert_returning", False))
        if returning:
            stmt = stmt.returning(target.c[id_column])
        with self._connection(QueryError, f"inserting into {table_name}") as connection:
            result = connection.execute(stmt)
            new_id = result.scalar_one() if returning else result.lastrowid
        if new_id is None:
            raise QueryError(f"insert into {table_name} did not return an id")
        return int(new_id)

    # ------------------------------------------------------------------
    # DDL
    # ------------------------------------------------------------------
    def does_table_exist(self, table_name: str) -> bool:
        schema, name = self._split_table(table_name)
        with self._connection(SchemaError, f"checking table {table_name}") as connection:
            return inspect(connection).has_table(name, schema=schema)

    def get_table_columns(self, table_name: str) -> set[str]:
        schema, name = self._split_table(table_name)
        with self._connection(SchemaError, f"reading columns of {table_name}") as connection:
            return {info["name"] for info in inspect(connection).get_columns(name, schema=schema)}

    def create_table(
        self,
        table_name: str,
        columns: Sequence[Column],
        *,
        unique_columns: Sequence[str] = (),
        unique_constraint_name: Optional[str] = None,
    ) -> None:
        validate_identifier(table_name)
        for col in columns:
            validate_identifier(col.name)
        elements: list[Any] = list(columns)
        if unique_columns:
            name = validate_identifier(unique_constraint_name) if unique_constraint_name else None
            elements.append(UniqueConstraint(*unique_columns, name=name))
        with self._connection(SchemaError, f"creating table {table_name}") as connection:
            operations = Operations(MigrationContext.configure(connection))
            operations.create_table(table_name, *elements)
        logger.info("Created table %s on %s", table_name, self._label)

    def add_table_column(self, table_name: str, new_column: Column) -> None:
        validate_identifier(table_name)
        validate_identifier(new_column.name)
        with self._connection(SchemaError, f"adding column {new_column.name} to {table_name}") as connection:
            operations = Operations(MigrationContext.configure(connection))
            operations.add_column(table_name, new_column)
        logger.info("Added column %s to table %s on %s", new_column.name, table_name, self._label)


def _python_type_name(value: Any) -> Optional[str]:
    for python_type, type_name in _PYTHON_TYPE_NAMES:
        if isinstance(value, python_type):
            return type_name
    return None


__all__ = [
    "ColumnMetadata",
    "RelationalStore",
    "SampleResult",
    "UNKNOWN_TYPE_NAME",
    "normalize_type_name",
    "profiles_by_type",
    "scan_type_for",
]
