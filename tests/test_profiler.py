from __future__ import annotations

import logging
import time

import pytest

from conftest import execute_statements, fetch_all
from dbprofiler.exceptions import ProfileRunCancelledError, QueryError, StoreConnectionError
from dbprofiler.schemas import ProfileDefinition
from dbprofiler.services.concurrency import CancelToken
from dbprofiler.services.profiler import Profiler, ProfilerOptions
from dbprofiler.services.relational_store import RelationalStore


def _profiler(target_store: RelationalStore, profile_store: RelationalStore, **options) -> Profiler:
    return Profiler(target_store, profile_store, ProfilerOptions(**options))


def _wait_for_cancel(token: CancelToken, limit: float = 5.0) -> None:
    deadline = time.monotonic() + limit
    while not token.cancelled and time.monotonic() < deadline:
        time.sleep(0.01)


def test_full_table_profile(target_store: RelationalStore, profile_store: RelationalStore):
    profiler = _profiler(target_store, profile_store)

    result = profiler.profile_tables_by_name(["orders"])

    assert result.succeeded
    result.raise_for_error()
    run_id = result.profile_record_id
    assert fetch_all(profile_store, "SELECT id FROM profile_records") == [(run_id,)]

    (table_id,) = fetch_all(profile_store, "SELECT id FROM table_names WHERE table_name = 'orders'")[0]
    assert fetch_all(profile_store, "SELECT table_name_id, table_row_count, profile_record_id FROM table_profiles") == [
        (table_id, 3, run_id)
    ]

    types = {row[0] for row in fetch_all(profile_store, "SELECT table_column_type FROM table_column_types")}
    assert types == {"INTEGER", "NUMERIC", "TIMESTAMP", "VARCHAR", "BOOLEAN"}
    columns = {row[0] for row in fetch_all(profile_store, "SELECT table_column_name FROM table_column_names")}
    assert columns == {"id", "amount", "placed_at", "customer", "shipped"}

    amount = fetch_all(
        profile_store,
        "SELECT p.maximum, p.minimum, p.average, p.profile_record_id "
        "FROM table_column_profiles_numeric p "
        "JOIN table_column_names c ON c.id = p.table_column_name_id "
        "WHERE c.table_column_name = 'amount'",
    )
    assert len(amount) == 1
    maximum, minimum, average, fact_run_id = amount[0]
    assert (maximum, minimum, fact_run_id) == (30.75, 10.5, run_id)
    assert average == pytest.approx(20.5)

    assert fetch_all(profile_store, "SELECT maximum, minimum FROM table_column_profiles_integer") == [(3, 1)]
    assert fetch_all(profile_store, "SELECT maximum, minimum FROM table_column_profiles_timestamp") == [
        ("2024-03-15 18:45:00", "2024-01-01 10:00:00")
    ]
    (max_length, avg_length) = fetch_all(profile_store, "SELECT max_length, avg_length FROM table_column_profiles_varchar")[0]
    assert max_length == 5
    assert avg_length == pytest.approx(13 / 3)

    assert not profile_store.does_table_exist("table_column_profiles_boolean")


def test_second_run_reuses_dimensions_and_appends_facts(target_store: RelationalStore, profile_store: RelationalStore):
    profiler = _profiler(target_store, profile_store)

    first = profiler.profile_tables_by_name(["orders"])
    second = profiler.profile_tables_by_name(["orders"])

    assert first.succeeded and second.succeeded
    assert second.profile_record_id != first.profile_record_id
    assert len(fetch_all(profile_store, "SELECT id FROM table_names")) == 1
    assert len(fetch_all(profile_store, "SELECT id FROM table_column_names")) == 5
    assert len(fetch_all(profile_store, "SELECT id FROM table_profiles")) == 2
    assert len(fetch_all(profile_store, "SELECT id FROM table_column_profiles_numeric")) == 2


def test_custom_table_profile(target_store: RelationalStore, profile_store: RelationalStore):
    definition = ProfileDefinition.model_validate(
        {
            "CustomProfileTables": [
                {
                    "TableName": "readings",
                    "Columns": ["sensor"],
                    "CustomColumns": [
                        {"ColumnName": "avg_reading", "ColumnDefinition": "avg(reading)"},
                        {"ColumnName": "Reading_Count", "ColumnDefinition": "count(*)"},
                    ],
                }
            ]
        }
    )
    profiler = _profiler(target_store, profile_store)

    result = profiler.run_profile(definition)

    assert result.succeeded
    run_id = result.profile_record_id
    customs = fetch_all(
        profile_store,
        "SELECT table_column_name, table_custom_column_definition FROM table_custom_column_names ORDER BY id",
    )
    assert customs == [("avg_reading", "avg(reading)"), ("Reading_Count", "count(*)")]

    real_values = fetch_all(profile_store, "SELECT value, profile_record_id FROM table_custom_column_profiles_real")
    assert real_values == [(3.0, run_id)]
    assert fetch_all(profile_store, "SELECT value FROM table_custom_column_profiles_integer") == [(3,)]

    assert fetch_all(profile_store, "SELECT table_column_name FROM table_column_names") == [("sensor",)]
    assert fetch_all(profile_store, "SELECT max_length FROM table_column_profiles_varchar") == [(5,)]
    assert fetch_all(profile_store, "SELECT table_row_count FROM table_profiles") == [(3,)]


def test_custom_query_without_rows_fails_the_task(target_store: RelationalStore, profile_store: RelationalStore):
    execute_statements(target_store, ["CREATE TABLE empty_readings (reading REAL)"])
    definition = ProfileDefinition(
        custom_profile_tables=[
            {"TableName": "empty_readings", "CustomColumns": [{"ColumnName": "r", "ColumnDefinition": "reading"}]}
        ]
    )

    result = _profiler(target_store, profile_store).run_profile(definition)

    assert isinstance(result.error, QueryError)
    with pytest.raises(QueryError, match="empty_readings"):
        result.raise_for_error()


def test_empty_table_writes_null_aggregates(target_store: RelationalStore, profile_store: RelationalStore):
    execute_statements(target_store, ["CREATE TABLE empty_orders (id INTEGER, note TEXT)"])

    result = _profiler(target_store, profile_store).profile_tables_by_name(["empty_orders"])

    assert result.succeeded
    assert fetch_all(profile_store, "SELECT maximum, minimum, average FROM table_column_profiles_integer") == [
        (None, None, None)
    ]
    assert fetch_all(profile_store, "SELECT max_length, avg_length FROM table_column_profiles_text") == [(None, None)]
    assert fetch_all(profile_store, "SELECT table_row_count FROM table_profiles") == [(0,)]


def test_failing_table_does_not_stop_siblings(target_store: RelationalStore, profile_store: RelationalStore):
    result = _profiler(target_store, profile_store).profile_tables_by_name(["missing_table", "orders"])

    assert not result.succeeded
    assert isinstance(result.error, QueryError)
    assert [outcome.label for outcome in result.failed_tasks] == ["missing_table"]
    assert len(result.outcomes) == 2
    assert len(fetch_all(profile_store, "SELECT id FROM table_profiles")) == 1


def test_task_failures_log_traceback_only_when_unexpected(
    target_store: RelationalStore,
    profile_store: RelationalStore,
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
):
    profiler = _profiler(target_store, profile_store)

    with caplog.at_level(logging.ERROR, logger="dbprofiler.services.profiler"):
        profiler.profile_tables_by_name(["missing_table"])

    (record,) = [r for r in caplog.records if "Profiling missing_table failed" in r.getMessage()]
    assert record.levelno == logging.ERROR
    assert record.exc_info is None

    def broken_profile_table(table_name: str, profile_record_id: int) -> None:
        raise RuntimeError("driver exploded")

    monkeypatch.setattr(profiler, "_profile_table", broken_profile_table)
    caplog.clear()
    with caplog.at_level(logging.ERROR, logger="dbprofiler.services.profiler"):
        result = profiler.profile_tables_by_name(["orders"])

    assert isinstance(result.error, RuntimeError)
    (record,) = [r for r in caplog.records if "Profiling orders failed" in r.getMessage()]
    assert record.exc_info is not None


def test_concurrent_tables_share_new_type_tables(target_store: RelationalStore, profile_store: RelationalStore):
    tables = [f"metrics_{index}" for index in range(6)]
    statements: list[str] = []
    for index, table_name in enumerate(tables):
        statements.append(f"CREATE TABLE {table_name} (reading INTEGER, label VARCHAR(10))")
        statements.append(f"INSERT INTO {table_name} VALUES ({index}, 'm{index}')")
    execute_statements(target_store, statements)

    result = _profiler(target_store, profile_store, max_workers=6).profile_tables_by_name(tables)

    assert result.succeeded
    assert sorted(row[0] for row in fetch_all(profile_store, "SELECT table_column_type FROM table_column_types")) == [
        "INTEGER",
        "VARCHAR",
    ]
    assert len(fetch_all(profile_store, "SELECT id FROM table_column_profiles_integer")) == 6
    assert len(fetch_all(profile_store, "SELECT id FROM table_column_profiles_varchar")) == 6


def test_cancelled_run_drains_every_task(target_store: RelationalStore, profile_store: RelationalStore):
    token = CancelToken()
    token.cancel("operator abort")

    result = _profiler(target_store, profile_store).profile_tables_by_name(["orders", "readings"], cancel_token=token)

    assert len(result.outcomes) == 2
    assert all(isinstance(outcome.error, ProfileRunCancelledError) for outcome in result.outcomes)
    assert fetch_all(profile_store, "SELECT id FROM table_profiles") == []
    assert len(fetch_all(profile_store, "SELECT id FROM profile_records")) == 1


def test_fail_fast_cancels_in_flight_tables(
    target_store: RelationalStore,
    profile_store: RelationalStore,
    monkeypatch: pytest.MonkeyPatch,
):
    token = CancelToken()
    profiler = _profiler(target_store, profile_store, max_workers=2, fail_fast=True)
    real_profile_table = profiler._profile_table

    def slow_profile_table(table_name: str, profile_record_id: int) -> None:
        if table_name == "orders":
            _wait_for_cancel(token)
        real_profile_table(table_name, profile_record_id)

    monkeypatch.setattr(profiler, "_profile_table", slow_profile_table)

    result = profiler.profile_tables_by_name(["missing_table", "orders"], cancel_token=token)

    assert isinstance(result.error, QueryError)
    outcomes = {outcome.label: outcome for outcome in result.outcomes}
    assert isinstance(outcomes["orders"].error, ProfileRunCancelledError)
    assert "missing_table" in (token.reason or "")
    assert fetch_all(profile_store, "SELECT id FROM table_profiles") == []


def test_run_timeout_cancels_slow_tables(
    target_store: RelationalStore,
    profile_store: RelationalStore,
    monkeypatch: pytest.MonkeyPatch,
):
    token = CancelToken()
    profiler = _profiler(target_store, profile_store, run_timeout_seconds=0.2)
    real_profile_table = profiler._profile_table

    def slow_profile_table(table_name: str, profile_record_id: int) -> None:
        _wait_for_cancel(token)
        real_profile_table(table_name, profile_record_id)

    monkeypatch.setattr(profiler, "_profile_table", slow_profile_table)

    result = profiler.profile_tables_by_name(["orders"], cancel_token=token)

    assert isinstance(result.error, ProfileRunCancelledError)
    assert "timed out" in (token.reason or "")


def test_pascal_case_run(target_store: RelationalStore, profile_store: RelationalStore):
    result = _profiler(target_store, profile_store, use_pascal_case=True).profile_tables_by_name(["readings"])

    assert result.succeeded
    assert profile_store.does_table_exist("TableColumnProfilesVarchar")
    assert profile_store.get_table_columns("TableColumnProfilesVarchar") == {
        "id",
        "TableColumnNameId",
        "ProfileRecordId",
        "MaxLength",
        "AvgLength",
    }
    assert profile_store.get_table_columns("TableColumnProfilesReal") == {
        "id",
        "TableColumnNameId",
        "ProfileRecordId",
        "maximum",
        "minimum",
        "average",
    }


def test_empty_definition_opens_a_run(target_store: RelationalStore, profile_store: RelationalStore):
    result = _profiler(target_store, profile_store).run_profile(ProfileDefinition())

    assert result.succeeded
    assert result.outcomes == []
    assert fetch_all(profile_store, "SELECT id FROM profile_records") == [(result.profile_record_id,)]


def test_unreachable_target_is_fatal(tmp_path, profile_store: RelationalStore):
    target = RelationalStore.from_connection_string("sqlite", str(tmp_path / "missing" / "target.db"))
    profiler = Profiler(target, profile_store)

    with pytest.raises(StoreConnectionError):
        profiler.profile_tables_by_name(["orders"])

    assert fetch_all(profile_store, "SELECT id FROM profile_records") == []


def test_options_from_settings():
    from dbprofiler.config import Settings

    settings = Settings(use_pascal_case=True, max_workers=3, run_timeout_seconds=12.5, fail_fast=True)

    assert ProfilerOptions.from_settings(settings) == ProfilerOptions(
        use_pascal_case=True,
        max_workers=3,
        run_timeout_seconds=12.5,
        fail_fast=True,
    )
