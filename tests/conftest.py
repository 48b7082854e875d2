import os
import sys
from pathlib import Path

from collections.abc import Generator, Iterable

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from dbprofiler.database import DB_TYPE_SQLITE  # noqa: E402
from dbprofiler.services.naming import NamingConvention  # noqa: E402
from dbprofiler.services.relational_store import RelationalStore  # noqa: E402


ORDERS_DDL = (
    "CREATE TABLE orders ("
    "id INTEGER PRIMARY KEY, "
    "amount NUMERIC(10, 2), "
    "placed_at TIMESTAMP, "
    "customer VARCHAR(40), "
    "shipped BOOLEAN)"
)
ORDERS_ROWS = (
    "INSERT INTO orders (id, amount, placed_at, customer, shipped) VALUES "
    "(1, 10.5, '2024-01-01 10:00:00', 'alice', 1), "
    "(2, 20.25, '2024-02-01 09:30:00', 'bob', 0), "
    "(3, 30.75, '2024-03-15 18:45:00', 'carol', 1)"
)
READINGS_DDL = "CREATE TABLE readings (sensor VARCHAR(20), reading REAL)"
READINGS_ROWS = "INSERT INTO readings (sensor, reading) VALUES ('north', 1.5), ('south', 2.5), ('east', 5.0)"


def execute_statements(store: RelationalStore, statements: Iterable[str]) -> None:
    with store.engine.begin() as connection:
        for statement in statements:
            connection.exec_driver_sql(statement)


def fetch_all(store: RelationalStore, statement: str) -> list[tuple]:
    with store.engine.connect() as connection:
        return [tuple(row) for row in connection.exec_driver_sql(statement).fetchall()]


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep PROFILER_* variables and stray .env files out of the settings under test."""

    for key in list(os.environ):
        if key.upper().startswith("PROFILER_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def target_db_path(tmp_path: Path) -> Path:
    return tmp_path / "target.db"


@pytest.fixture
def profile_db_path(tmp_path: Path) -> Path:
    return tmp_path / "profile.db"


@pytest.fixture
def target_store(target_db_path: Path) -> Generator[RelationalStore, None, None]:
    store = RelationalStore.from_connection_string(DB_TYPE_SQLITE, str(target_db_path), label="target database")
    execute_statements(store, [ORDERS_DDL, ORDERS_ROWS, READINGS_DDL, READINGS_ROWS])
    yield store
    store.dispose()


@pytest.fixture
def profile_store(profile_db_path: Path) -> Generator[RelationalStore, None, None]:
    store = RelationalStore.from_connection_string(DB_TYPE_SQLITE, str(profile_db_path), label="profile database")
    yield store
    store.dispose()


@pytest.fixture
def naming() -> NamingConvention:
    return NamingConvention()
