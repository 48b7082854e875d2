"""Static schema descriptors for the fixed profile store tables.

Each descriptor lists its columns in declaration order together with the
portable SQL type token used to create them. The identity column is created
by the store and never written by inserts. ``natural_key`` names the columns
whose combined values identify a row; the store adds a unique constraint over
them.
"""

from __future__ import annotations

from dataclasses import dataclass

from dbprofiler.constants import profile_store as names


@dataclass(frozen=True)
class StoreColumn:
    name: str
    type_token: str
    is_identity: bool = False


@dataclass(frozen=True)
class StoreTable:
    name: str
    columns: tuple[StoreColumn, ...]
    natural_key: tuple[str, ...] = ()

    @property
    def identity_column(self) -> StoreColumn:
        for column in self.columns:
            if column.is_identity:
                return column
        raise ValueError(f"Store table {self.name} has no identity column.")

    @property
    def insert_columns(self) -> tuple[StoreColumn, ...]:
        return tuple(column for column in self.columns if not column.is_identity)


def _identity() -> StoreColumn:
    return StoreColumn(names.ID_COLUMN, "int", is_identity=True)


PROFILE_RECORD = StoreTable(
    name=names.PROFILE_RECORDS_TABLE,
    columns=(
        _identity(),
        StoreColumn(names.PROFILE_DATE, "timestamptz"),
    ),
)

TABLE_NAME = StoreTable(
    name=names.TABLE_NAMES_TABLE,
    columns=(
        _identity(),
        StoreColumn(names.TABLE_NAME, "text"),
    ),
    natural_key=(names.TABLE_NAME,),
)

TABLE_PROFILE = StoreTable(
    name=names.TABLE_PROFILES_TABLE,
    columns=(
        _identity(),
        StoreColumn(names.TABLE_NAME_ID, "int"),
        StoreColumn(names.TABLE_ROW_COUNT, "int"),
        StoreColumn(names.PROFILE_RECORD_ID, "int"),
    ),
    natural_key=(names.TABLE_NAME_ID, names.PROFILE_RECORD_ID),
)

TABLE_COLUMN_NAME = StoreTable(
    name=names.TABLE_COLUMN_NAMES_TABLE,
    columns=(
        _identity(),
        StoreColumn(names.TABLE_NAME_ID, "int"),
        StoreColumn(names.TABLE_COLUMN_NAME, "text"),
        StoreColumn(names.TABLE_COLUMN_TYPE_ID, "int"),
    ),
    natural_key=(names.TABLE_NAME_ID, names.TABLE_COLUMN_NAME, names.TABLE_COLUMN_TYPE_ID),
)

TABLE_CUSTOM_COLUMN_NAME = StoreTable(
    name=names.TABLE_CUSTOM_COLUMN_NAMES_TABLE,
    columns=(
        _identity(),
        StoreColumn(names.TABLE_NAME_ID, "int"),
        StoreColumn(names.TABLE_COLUMN_NAME, "text"),
        StoreColumn(names.TABLE_COLUMN_TYPE_ID, "int"),
        StoreColumn(names.TABLE_CUSTOM_COLUMN_DEFINITION, "text"),
    ),
    natural_key=(
        names.TABLE_NAME_ID,
        names.TABLE_COLUMN_NAME,
        names.TABLE_COLUMN_TYPE_ID,
        names.TABLE_CUSTOM_COLUMN_DEFINITION,
    ),
)

TABLE_COLUMN_TYPE = StoreTable(
    name=names.TABLE_COLUMN_TYPES_TABLE,
    columns=(
        _identity(),
        StoreColumn(names.TABLE_COLUMN_TYPE, "text"),
    ),
    natural_key=(names.TABLE_COLUMN_TYPE,),
)

STORE_TABLES: tuple[StoreTable, ...] = (
    PROFILE_RECORD,
    TABLE_NAME,
    TABLE_PROFILE,
    TABLE_COLUMN_NAME,
    TABLE_CUSTOM_COLUMN_NAME,
    TABLE_COLUMN_TYPE,
)
