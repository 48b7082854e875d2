"""Creates the profile store tables and grows the per-type fact tables on write."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import Column, Integer
from sqlalchemy.types import TypeEngine

from dbprofiler.constants import profile_store as names
from dbprofiler.exceptions import SchemaError
from dbprofiler.models import STORE_TABLES, StoreTable
from dbprofiler.services.concurrency import KeyedLock
from dbprofiler.services.naming import NamingConvention, type_name_suffix
from dbprofiler.services.relational_store import ColumnMetadata, RelationalStore
from dbprofiler.services.type_mapper import resolve_sql_type, sqlalchemy_type

logger = logging.getLogger(__name__)

# Values the driver may not bind natively (sqlite); bound through their column type.
_CONVERTED_BIND_TYPES = (datetime, date, Decimal)


@dataclass(frozen=True)
class ColumnProfileData:
    """One aggregate (or raw) value about to be written to a fact table column."""

    name: str
    value: Any
    scan_type: Optional[type]


class SchemaSynthesizer:
    """Owns every DDL statement issued against the profile store.

    Fact tables are named after the driver type of the profiled column and only
    ever gain columns. All DDL and the fact insert for one fact table run under
    a lock keyed by the table name, so tasks that discover a new type or a new
    aggregate at the same time create the table once and never miss a column a
    sibling just added.
    """

    def __init__(self, store: RelationalStore, naming: NamingConvention) -> None:
        self._store = store
        self._naming = naming
        self._locks = KeyedLock()
        self._known_columns: dict[str, set[str]] = {}

    # ------------------------------------------------------------------
    # Fixed tables
    # ------------------------------------------------------------------
    def scaffold(self) -> None:
        """Create the fixed dimension and fact tables that do not exist yet."""

        for entity in STORE_TABLES:
            self._create_store_table(entity)

    def _create_store_table(self, entity: StoreTable) -> None:
        table_name = self._naming.apply(entity.name)
        with self._locks.hold(table_name):
            if self._store.does_table_exist(table_name):
                return
            columns = [self._store_column(column.name, column.type_token, column.is_identity) for column in entity.columns]
            unique_columns = [self._naming.apply(name) for name in entity.natural_key]
            self._store.create_table(
                table_name,
                columns,
                unique_columns=unique_columns,
                unique_constraint_name=self._naming.apply(f"uq_{entity.name}") if unique_columns else None,
            )

    def _store_column(self, name: str, type_token: str, is_identity: bool = False) -> Column:
        if is_identity:
            return Column(self._naming.apply(name), Integer, primary_key=True, autoincrement=True)
        return Column(self._naming.apply(name), sqlalchemy_type(type_token))

    # ------------------------------------------------------------------
    # Fact tables
    # ------------------------------------------------------------------
    def column_profile_table_name(self, database_type_name: str) -> str:
        return self._naming.apply(f"{names.TABLE_COLUMN_PROFILE_PREFIX}{type_name_suffix(database_type_name)}")

    def custom_column_profile_table_name(self, database_type_name: str) -> str:
        return self._naming.apply(f"{names.TABLE_CUSTOM_COLUMN_PROFILE_PREFIX}{type_name_suffix(database_type_name)}")

    def store_column_profile_data(
        self,
        column_name_id: int,
        database_type_name: str,
        profile_record_id: int,
        profile_results: Sequence[ColumnProfileData],
    ) -> bool:
        """Write the aggregates of one column; returns False when the run already has a row for it."""

        return self._write_fact(
            self.column_profile_table_name(database_type_name),
            names.TABLE_COLUMN_NAME_ID,
            column_name_id,
            profile_record_id,
            profile_results,
        )

    def store_custom_column_profile_data(
        self,
        custom_column_name_id: int,
        column: ColumnMetadata,
        profile_record_id: int,
        profile_value: Any,
    ) -> bool:
        """Write the sampled value of one custom column into the custom fact table of its type."""

        return self._write_fact(
            self.custom_column_profile_table_name(column.database_type_name),
            names.TABLE_CUSTOM_COLUMN_NAME_ID,
            custom_column_name_id,
            profile_record_id,
            [ColumnProfileData(name=names.CUSTOM_COLUMN_VALUE, value=profile_value, scan_type=column.scan_type)],
        )

    def known_columns(self, table_name: str) -> frozenset[str]:
        return frozenset(self._known_columns.get(table_name, ()))

    def _write_fact(
        self,
        table_name: str,
        key_column: str,
        key_value: int,
        profile_record_id: int,
        profile_results: Sequence[ColumnProfileData],
    ) -> bool:
        key_column = self._naming.apply(key_column)
        run_column = self._naming.apply(names.PROFILE_RECORD_ID)
        id_column = self._naming.apply(names.ID_COLUMN)

        with self._locks.hold(table_name):
            self._ensure_fact_table(table_name, key_column, run_column, profile_results)

            wheres = {key_column: key_value, run_column: profile_record_id}
            if self._store.select_ids_where(table_name, wheres, id_column=id_column, limit=1):
                logger.debug("Skipping duplicate fact row in %s for %r", table_name, wheres)
                return False

            values: dict[str, Any] = dict(wheres)
            for result in profile_results:
                values[self._naming.apply(result.name)] = result.value
            self._store.insert_row_and_return_id(
                table_name,
                values,
                id_column=id_column,
                column_types=self._bind_types(profile_results),
            )
            return True

    def _bind_types(self, profile_results: Sequence[ColumnProfileData]) -> dict[str, TypeEngine]:
        return {
            self._naming.apply(result.name): sqlalchemy_type(resolve_sql_type(result.value, result.scan_type))
            for result in profile_results
            if isinstance(result.value, _CONVERTED_BIND_TYPES)
        }

    def _ensure_fact_table(
        self,
        table_name: str,
        key_column: str,
        run_column: str,
        profile_results: Sequence[ColumnProfileData],
    ) -> None:
        known = self._known_columns.get(table_name)
        if known is None:
            known = self._create_or_load_fact_table(table_name, key_column, run_column, profile_results)
            self._known_columns[table_name] = known

        for result in profile_results:
            column_name = self._naming.apply(result.name)
            if column_name in known:
                continue
            new_column = Column(column_name, sqlalchemy_type(resolve_sql_type(result.value, result.scan_type)))
            try:
                self._store.add_table_column(table_name, new_column)
            except SchemaError:
                # Added by another process since the column set was cached.
                known.update(self._store.get_table_columns(table_name))
                if column_name not in known:
                    raise
                continue
            known.add(column_name)

    def _create_or_load_fact_table(
        self,
        table_name: str,
        key_column: str,
        run_column: str,
        profile_results: Sequence[ColumnProfileData],
    ) -> set[str]:
        if self._store.does_table_exist(table_name):
            return self._store.get_table_columns(table_name)

        columns = [
            Column(self._naming.apply(names.ID_COLUMN), Integer, primary_key=True, autoincrement=True),
            Column(key_column, Integer),
            Column(run_column, Integer),
        ]
        for result in profile_results:
            columns.append(
                Column(
                    self._naming.apply(result.name),
                    sqlalchemy_type(resolve_sql_type(result.value, result.scan_type)),
                )
            )
        try:
            self._store.create_table(table_name, columns)
        except SchemaError:
            if not self._store.does_table_exist(table_name):
                raise
            return self._store.get_table_columns(table_name)
        return {col.name for col in columns}


__all__ = ["ColumnProfileData", "SchemaSynthesizer"]
