"""Concurrent multi-table profiling.

A run allocates one ``profile_records`` row, fans one task per table (and one
per custom table definition) out to a bounded thread pool, and joins every
task's outcome. The run's error is the first task error observed; the
orchestrator never returns before every task has finished, so no task is left
running against the stores after the caller regains control.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from decimal import Decimal
from functools import partial
from typing import Callable, Iterable, Optional, Sequence

from dbprofiler.config import Settings
from dbprofiler.exceptions import ProfileRunCancelledError, ProfilerError, QueryError
from dbprofiler.schemas import ProfileDefinition, TableDefinition
from dbprofiler.services.concurrency import CancelToken, use_cancel_token
from dbprofiler.services.dimension_registry import DimensionRegistry
from dbprofiler.services.naming import NamingConvention
from dbprofiler.services.relational_store import ColumnMetadata, RelationalStore, profiles_by_type
from dbprofiler.services.schema_synthesizer import ColumnProfileData, SchemaSynthesizer

logger = logging.getLogger(__name__)

# Scan types assumed for aggregates that come back NULL from a driver that
# reports no result types (e.g. sqlite over an empty table).
_AGGREGATE_SCAN_TYPES: dict[str, type] = {
    "average": Decimal,
    "max_length": int,
    "avg_length": Decimal,
}


@dataclass(frozen=True)
class ProfilerOptions:
    use_pascal_case: bool = False
    max_workers: int = 8
    run_timeout_seconds: Optional[float] = None
    fail_fast: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProfilerOptions":
        return cls(
            use_pascal_case=settings.use_pascal_case,
            max_workers=settings.max_workers,
            run_timeout_seconds=settings.run_timeout_seconds,
            fail_fast=settings.fail_fast,
        )


@dataclass(frozen=True)
class TaskOutcome:
    label: str
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class ProfileRunResult:
    profile_record_id: int
    outcomes: list[TaskOutcome] = field(default_factory=list)

    @property
    def error(self) -> Optional[BaseException]:
        for outcome in self.outcomes:
            if outcome.error is not None:
                return outcome.error
        return None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def failed_tasks(self) -> list[TaskOutcome]:
        return [outcome for outcome in self.outcomes if outcome.error is not None]

    def raise_for_error(self) -> None:
        error = self.error
        if error is not None:
            raise error


_Task = tuple[str, Callable[[], None]]


class Profiler:
    """Profiles tables of a target database into a profile store.

    Args:
        target_store: database being profiled.
        profile_store: database receiving the profile tables.
        options: run options; the identifier casing is fixed for the lifetime
            of the profiler.
    """

    def __init__(
        self,
        target_store: RelationalStore,
        profile_store: RelationalStore,
        options: Optional[ProfilerOptions] = None,
    ) -> None:
        self._target = target_store
        self._profile_store = profile_store
        self._options = options or ProfilerOptions()
        self._naming = NamingConvention(use_pascal_case=self._options.use_pascal_case)
        self._registry = DimensionRegistry(profile_store, self._naming)
        self._synthesizer = SchemaSynthesizer(profile_store, self._naming)
        self._synthesizer.scaffold()

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------
    def profile_tables_by_name(
        self,
        table_names: Iterable[str],
        *,
        cancel_token: Optional[CancelToken] = None,
    ) -> ProfileRunResult:
        definition = ProfileDefinition(full_profile_tables=list(table_names))
        return self.run_profile(definition, cancel_token=cancel_token)

    def run_profile(
        self,
        profile: ProfileDefinition,
        *,
        cancel_token: Optional[CancelToken] = None,
    ) -> ProfileRunResult:
        token = cancel_token or CancelToken()
        self._target.probe()

        started = time.perf_counter()
        profile_record_id = self._registry.new_profile_record()
        logger.info(
            "Starting profile run %s: %s full tables, %s custom tables",
            profile_record_id,
            len(profile.full_profile_tables),
            len(profile.custom_profile_tables),
        )

        tasks: list[_Task] = []
        for table_name in profile.full_profile_tables:
            tasks.append((table_name, partial(self._profile_table, table_name, profile_record_id)))
        for table_def in profile.custom_profile_tables:
            tasks.append(
                (
                    f"{table_def.table_name} (custom)",
                    partial(self._profile_table_custom_columns, table_def, profile_record_id),
                )
            )

        result = ProfileRunResult(profile_record_id=profile_record_id, outcomes=self._fan_out(tasks, token))
        elapsed = time.perf_counter() - started
        if result.succeeded:
            logger.info("Profile run %s finished in %.2fs", profile_record_id, elapsed)
        else:
            logger.error(
                "Profile run %s incomplete after %.2fs: %s of %s tables failed, first error: %s",
                profile_record_id,
                elapsed,
                len(result.failed_tasks),
                len(result.outcomes),
                result.error,
            )
        return result

    def _fan_out(self, tasks: Sequence[_Task], token: CancelToken) -> list[TaskOutcome]:
        if not tasks:
            return []

        outcomes: list[TaskOutcome] = []
        workers = max(1, min(self._options.max_workers, len(tasks)))
        timeout = self._options.run_timeout_seconds
        deadline = time.monotonic() + timeout if timeout else None

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="profiler") as executor:
            pending: set[Future[TaskOutcome]] = {
                executor.submit(self._run_task, label, task, token) for label, task in tasks
            }
            while pending:
                wait_for = max(deadline - time.monotonic(), 0) if deadline is not None else None
                done, pending = wait(pending, timeout=wait_for, return_when=FIRST_COMPLETED)
                if not done:
                    token.cancel(f"profile run timed out after {timeout}s")
                    deadline = None
                    continue
                for future in done:
                    outcome = future.result()
                    outcomes.append(outcome)
                    if outcome.error is not None and self._options.fail_fast:
                        token.cancel(f"profile run cancelled after {outcome.label} failed")
        return outcomes

    @staticmethod
    def _run_task(label: str, task: Callable[[], None], token: CancelToken) -> TaskOutcome:
        with use_cancel_token(token):
            try:
                token.raise_if_cancelled()
                logger.info("Profiling %s", label)
                task()
            except ProfileRunCancelledError as exc:
                logger.info("Profiling %s cancelled: %s", label, exc)
                return TaskOutcome(label=label, error=exc)
            except ProfilerError as exc:
                logger.error("Profiling %s failed: %s", label, exc)
                return TaskOutcome(label=label, error=exc)
            except Exception as exc:
                logger.exception("Profiling %s failed: %s", label, exc)
                return TaskOutcome(label=label, error=exc)
        logger.info("Profiled %s", label)
        return TaskOutcome(label=label)

    # ------------------------------------------------------------------
    # Full table profiles
    # ------------------------------------------------------------------
    def _profile_table(self, table_name: str, profile_record_id: int) -> None:
        sample = self._target.select_all_columns_single(table_name)
        self._profile_table_with_columns(table_name, profile_record_id, sample.columns)

    def _profile_table_defined_columns(self, table_name: str, profile_record_id: int, columns: Sequence[str]) -> None:
        selects = [self._target.quote_identifier(column) for column in columns]
        sample = self._target.select_single(table_name, selects, use_declared_types=True)
        self._profile_table_with_columns(table_name, profile_record_id, sample.columns)

    def _profile_table_with_columns(
        self,
        table_name: str,
        profile_record_id: int,
        columns: Sequence[ColumnMetadata],
    ) -> None:
        table_name_id = self._registry.register_table(table_name)
        for column in columns:
            self._profile_table_column(table_name, table_name_id, profile_record_id, column)
        self._record_table_row_count(table_name, table_name_id, profile_record_id)

    def _record_table_row_count(self, table_name: str, table_name_id: int, profile_record_id: int) -> None:
        row_count = self._target.get_table_row_count(table_name)
        self._registry.record_table_profile(table_name_id, row_count, profile_record_id)

    def _profile_table_column(
        self,
        table_name: str,
        table_name_id: int,
        profile_record_id: int,
        column: ColumnMetadata,
    ) -> None:
        profile_results = self._compute_aggregates(table_name, column)

        column_type_id = self._registry.register_table_column_type(column.database_type_name)
        column_name_id = self._registry.register_table_column(table_name_id, column_type_id, column.name)

        if not profile_results:
            logger.debug("No aggregates defined for %s.%s (%s)", table_name, column.name, column.database_type_name)
            return
        self._synthesizer.store_column_profile_data(
            column_name_id,
            column.database_type_name,
            profile_record_id,
            profile_results,
        )

    def _compute_aggregates(self, table_name: str, column: ColumnMetadata) -> list[ColumnProfileData]:
        profiles = profiles_by_type(column.database_type_name)
        if not profiles:
            return []

        quoted_column = self._target.quote_identifier(column.name)
        selects = [
            f"{template.format(column=quoted_column)} AS {self._target.quote_identifier(alias)}"
            for alias, template in profiles.items()
        ]
        aggregates = self._target.select_row(table_name, selects)
        return [
            ColumnProfileData(
                name=meta.name,
                value=aggregates.value(index),
                scan_type=meta.scan_type or _AGGREGATE_SCAN_TYPES.get(meta.name, column.scan_type),
            )
            for index, meta in enumerate(aggregates.columns)
        ]

    # ------------------------------------------------------------------
    # Custom column profiles
    # ------------------------------------------------------------------
    def _profile_table_custom_columns(self, table_def: TableDefinition, profile_record_id: int) -> None:
        table_name_id = self._registry.register_table(table_def.table_name)

        if table_def.custom_columns:
            selects = [
                f"{custom.column_definition} AS {self._target.quote_identifier(custom.column_name)}"
                for custom in table_def.custom_columns
            ]
            sample = self._target.select_single(table_def.table_name, selects)
            if not sample.has_row:
                raise QueryError(f"failed to get results from custom column query on {table_def.table_name}")

            definitions = {custom.column_name.lower(): custom.column_definition for custom in table_def.custom_columns}
            for index, column in enumerate(sample.columns):
                column_type_id = self._registry.register_table_column_type(column.database_type_name)
                custom_column_name_id = self._registry.register_table_custom_column(
                    table_name_id,
                    column_type_id,
                    column.name,
                    definitions.get(column.name.lower(), ""),
                )
                self._synthesizer.store_custom_column_profile_data(
                    custom_column_name_id,
                    column,
                    profile_record_id,
                    sample.value(index),
                )

        if table_def.columns:
            self._profile_table_defined_columns(table_def.table_name, profile_record_id, table_def.columns)


__all__ = ["ProfileRunResult", "Profiler", "ProfilerOptions", "TaskOutcome"]
