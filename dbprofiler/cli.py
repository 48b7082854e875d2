"""Command line entry point: profile the tables of a target database into a profile store."""

from __future__ import annotations

import argparse
import logging
import time
from typing import Any, Optional

from pydantic import ValidationError

from dbprofiler.config import Settings
from dbprofiler.exceptions import ProfileDefinitionError, ProfilerError, StoreConnectionError
from dbprofiler.services.definition_loader import load_profile_definition
from dbprofiler.services.profiler import Profiler, ProfilerOptions
from dbprofiler.services.relational_store import RelationalStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INCOMPLETE = 1
EXIT_CONFIGURATION = 2

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dbprofiler",
        description=(
            "Profile the tables of a target database and store the results in a profile "
            "database. Options default to PROFILER_* environment variables."
        ),
    )
    parser.add_argument("--target-db-type", dest="target_db_type", help="Target database type: postgres or sqlite.")
    parser.add_argument("--target-db", dest="target_db", help="Target database connection string.")
    parser.add_argument("--profile-db-type", dest="profile_db_type", help="Profile database type: postgres or sqlite.")
    parser.add_argument("--profile-db", dest="profile_db", help="Profile database connection string.")
    parser.add_argument(
        "--profile-definition",
        dest="profile_definition",
        help="Path to the JSON file listing the tables and custom columns to profile.",
    )
    parser.add_argument(
        "--use-pascal-case",
        dest="use_pascal_case",
        action="store_true",
        default=None,
        help="Name profile database tables and columns in PascalCase.",
    )
    parser.add_argument("--max-workers", dest="max_workers", type=int, help="Tables profiled concurrently.")
    parser.add_argument(
        "--timeout",
        dest="run_timeout_seconds",
        type=float,
        help="Cancel the run when it has not finished after this many seconds.",
    )
    parser.add_argument(
        "--fail-fast",
        dest="fail_fast",
        action="store_true",
        default=None,
        help="Cancel the remaining tables as soon as one table fails.",
    )
    parser.add_argument("--log-level", dest="log_level", help="Logging verbosity (e.g. INFO, DEBUG).")
    return parser


def _resolve_settings(args: argparse.Namespace) -> Settings:
    overrides: dict[str, Any] = {key: value for key, value in vars(args).items() if value is not None}
    return Settings(**overrides)


def _configure_logging(log_level: str) -> None:
    level = getattr(logging, (log_level or "INFO").upper(), logging.INFO)
    logging.basicConfig(format=_LOG_FORMAT)
    logging.getLogger("dbprofiler").setLevel(level)


def run(settings: Settings) -> int:
    if not settings.profile_definition:
        logger.error("A profile definition file is required (--profile-definition).")
        return EXIT_CONFIGURATION

    started = time.perf_counter()
    try:
        definition = load_profile_definition(settings.profile_definition)
        target_store = RelationalStore.from_connection_string(
            settings.target_db_type, settings.target_db, label="target database"
        )
        profile_store = RelationalStore.from_connection_string(
            settings.profile_db_type, settings.profile_db, label="profile database"
        )
    except (ProfileDefinitionError, StoreConnectionError) as exc:
        logger.error("%s", exc)
        return EXIT_CONFIGURATION

    try:
        profile_store.probe()
        profiler = Profiler(target_store, profile_store, ProfilerOptions.from_settings(settings))
        result = profiler.run_profile(definition)
    except StoreConnectionError as exc:
        logger.error("%s", exc)
        return EXIT_CONFIGURATION
    except ProfilerError as exc:
        logger.error("Profiling failed: %s", exc)
        return EXIT_INCOMPLETE
    finally:
        target_store.dispose()
        profile_store.dispose()

    logger.info("Time taken: %.2fs", time.perf_counter() - started)
    if not result.succeeded:
        return EXIT_INCOMPLETE
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        settings = _resolve_settings(args)
    except ValidationError as exc:
        _configure_logging(getattr(args, "log_level", None) or "INFO")
        logger.error("Invalid configuration: %s", exc)
        return EXIT_CONFIGURATION

    _configure_logging(settings.log_level)
    logger.info("Starting profiler")
    return run(settings)


if __name__ == "__main__":
    raise SystemExit(main())
