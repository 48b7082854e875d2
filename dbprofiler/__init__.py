from dbprofiler.exceptions import (
    DuplicateDimensionRaceError,
    ProfileDefinitionError,
    ProfileRunCancelledError,
    ProfilerError,
    QueryError,
    SchemaError,
    StoreConnectionError,
    UnsupportedTypeError,
)
from dbprofiler.schemas import CustomColumnDefinition, ProfileDefinition, TableDefinition
from dbprofiler.services import (
    CancelToken,
    Profiler,
    ProfileRunResult,
    ProfilerOptions,
    RelationalStore,
    load_profile_definition,
)

__version__ = "0.1.0"

__all__ = [
    "CancelToken",
    "CustomColumnDefinition",
    "DuplicateDimensionRaceError",
    "ProfileDefinition",
    "ProfileDefinitionError",
    "ProfileRunCancelledError",
    "ProfileRunResult",
    "Profiler",
    "ProfilerError",
    "ProfilerOptions",
    "QueryError",
    "RelationalStore",
    "SchemaError",
    "StoreConnectionError",
    "TableDefinition",
    "UnsupportedTypeError",
    "load_profile_definition",
]
