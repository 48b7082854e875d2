from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.types import TypeEngine

from dbprofiler.constants import profile_store as names
from dbprofiler.exceptions import DuplicateDimensionRaceError, QueryError
from dbprofiler.models import (
    PROFILE_RECORD,
    TABLE_COLUMN_NAME,
    TABLE_COLUMN_TYPE,
    TABLE_CUSTOM_COLUMN_NAME,
    TABLE_NAME,
    TABLE_PROFILE,
    StoreTable,
)
from dbprofiler.services.concurrency import KeyedLock
from dbprofiler.services.naming import NamingConvention
from dbprofiler.services.relational_store import RelationalStore
from dbprofiler.services.type_mapper import sqlalchemy_type

logger = logging.getLogger(__name__)

NaturalKey = Sequence[tuple[str, Any]]


class DimensionRegistry:
    """Lookup-or-insert of dimension rows by natural key.

    Registration of a given natural key is serialised by a keyed lock so two
    tasks discovering the same table, column or type at once cannot both
    insert it. Dimension tables also carry a unique constraint on the natural
    key; if another process wins the insert, the registry re-reads and returns
    the existing id.
    """

    def __init__(self, store: RelationalStore, naming: NamingConvention) -> None:
        self._store = store
        self._naming = naming
        self._locks = KeyedLock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def new_profile_record(self, profile_date: Optional[datetime] = None) -> int:
        """Open a profile run. Every call creates a new row."""

        profile_date = profile_date or datetime.now(timezone.utc)
        return self._insert(PROFILE_RECORD, {names.PROFILE_DATE: profile_date})

    def register_table(self, table_name: str) -> int:
        return self.get_or_create(TABLE_NAME, [(names.TABLE_NAME, table_name)])

    def register_table_column_type(self, column_type: str) -> int:
        return self.get_or_create(TABLE_COLUMN_TYPE, [(names.TABLE_COLUMN_TYPE, column_type)])

    def register_table_column(self, table_name_id: int, column_type_id: int, column_name: str) -> int:
        return self.get_or_create(
            TABLE_COLUMN_NAME,
            [
                (names.TABLE_NAME_ID, table_name_id),
                (names.TABLE_COLUMN_NAME, column_name),
                (names.TABLE_COLUMN_TYPE_ID, column_type_id),
            ],
        )

    def register_table_custom_column(
        self,
        table_name_id: int,
        column_type_id: int,
        column_name: str,
        column_definition: str,
    ) -> int:
        return self.get_or_create(
            TABLE_CUSTOM_COLUMN_NAME,
            [
                (names.TABLE_NAME_ID, table_name_id),
                (names.TABLE_COLUMN_NAME, column_name),
                (names.TABLE_COLUMN_TYPE_ID, column_type_id),
                (names.TABLE_CUSTOM_COLUMN_DEFINITION, column_definition),
            ],
        )

    def record_table_profile(self, table_name_id: int, row_count: int, profile_record_id: int) -> int:
        """Record the row count of a table for a run; the first count recorded for the run is kept."""

        return self.get_or_create(
            TABLE_PROFILE,
            [
                (names.TABLE_NAME_ID, table_name_id),
                (names.PROFILE_RECORD_ID, profile_record_id),
            ],
            extra_values={names.TABLE_ROW_COUNT: row_count},
        )

    def get_or_create(
        self,
        entity: StoreTable,
        natural_key: NaturalKey,
        *,
        extra_values: Optional[Mapping[str, Any]] = None,
    ) -> int:
        table_name = self._naming.apply(entity.name)
        wheres = self._naming.apply_keys(dict(natural_key))
        lock_key = (table_name, tuple(wheres.items()))

        with self._locks.hold(lock_key):
            existing = self._lookup(table_name, wheres)
            if existing is not None:
                return existing

            values = dict(wheres)
            values.update(self._naming.apply_keys(extra_values or {}))
            try:
                new_id = self._store.insert_row_and_return_id(
                    table_name,
                    values,
                    id_column=self._naming.apply(entity.identity_column.name),
                    column_types=self._column_types(entity),
                )
            except IntegrityError as exc:
                # Another process inserted the same natural key first.
                existing = self._lookup(table_name, wheres)
                if existing is not None:
                    return existing
                raise DuplicateDimensionRaceError(
                    f"concurrent insert into {table_name} for {dict(natural_key)!r} is not visible yet"
                ) from exc
            logger.debug("Registered %s id=%s for %r", table_name, new_id, dict(natural_key))
            return new_id

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _lookup(self, table_name: str, wheres: Mapping[str, Any]) -> Optional[int]:
        ids = self._store.select_ids_where(
            table_name,
            wheres,
            id_column=self._naming.apply(names.ID_COLUMN),
            limit=2,
        )
        if not ids:
            return None
        if len(ids) > 1:
            logger.warning("Duplicate rows in %s for %r; using id %s", table_name, dict(wheres), ids[0])
        return ids[0]

    def _insert(self, entity: StoreTable, values: Mapping[str, Any]) -> int:
        table_name = self._naming.apply(entity.name)
        try:
            return self._store.insert_row_and_return_id(
                table_name,
                self._naming.apply_keys(values),
                id_column=self._naming.apply(entity.identity_column.name),
                column_types=self._column_types(entity),
            )
        except IntegrityError as exc:
            raise QueryError(f"inserting into {table_name} failed: {exc}") from exc

    def _column_types(self, entity: StoreTable) -> dict[str, TypeEngine]:
        return {
            self._naming.apply(col.name): sqlalchemy_type(col.type_token)
            for col in entity.insert_columns
        }


__all__ = ["DimensionRegistry"]
