from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.pool import StaticPool

from dbprofiler.exceptions import StoreConnectionError

DB_TYPE_POSTGRES = "postgres"
DB_TYPE_SQLITE = "sqlite"

_SUPPORTED_DB_TYPES: dict[str, str] = {
    DB_TYPE_POSTGRES: "postgresql+psycopg2",
    DB_TYPE_SQLITE: "sqlite",
}

_SQLITE_BUSY_TIMEOUT_SECONDS = 30


def resolve_database_url(db_type: str, connection_string: str | None) -> str:
    """Turn a database type name and a connection string into an SQLAlchemy URL string."""

    connection_string = (connection_string or "").strip()
    if not connection_string:
        raise StoreConnectionError("database connection string is required")

    db_type = (db_type or "").strip().lower()
    if db_type not in _SUPPORTED_DB_TYPES:
        raise StoreConnectionError(
            f"database connection type not found, looking for {db_type!r}. "
            f"Supported types: {', '.join(sorted(_SUPPORTED_DB_TYPES))}."
        )

    drivername = _SUPPORTED_DB_TYPES[db_type]
    if db_type == DB_TYPE_SQLITE:
        if connection_string.startswith("sqlite"):
            return connection_string
        return f"sqlite:///{connection_string}"

    for prefix in ("postgres://", "postgresql://"):
        if connection_string.startswith(prefix):
            return connection_string.replace(prefix, f"{drivername}://", 1)
    return connection_string


def _create_engine_with_fallback(url: str) -> Engine:
    engine_kwargs: dict[str, object] = {"future": True}
    if url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": _SQLITE_BUSY_TIMEOUT_SECONDS,
        }
        if make_url(url).database in (None, "", ":memory:"):
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs["pool_pre_ping"] = True

    try:
        return create_engine(url, **engine_kwargs)
    except ModuleNotFoundError as exc:
        if "psycopg2" in str(exc) and "psycopg2" in url:
            fallback_url = url.replace("psycopg2", "psycopg")
            try:
                __import__("psycopg")
            except ModuleNotFoundError:
                raise
            return create_engine(fallback_url, **engine_kwargs)
        raise


def create_database_engine(db_type: str, connection_string: str | None) -> Engine:
    url = resolve_database_url(db_type, connection_string)
    try:
        return _create_engine_with_fallback(url)
    except (ArgumentError, ModuleNotFoundError) as exc:
        raise StoreConnectionError(f"error creating {db_type} database engine: {exc}") from exc
