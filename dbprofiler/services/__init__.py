from .concurrency import CancelToken, KeyedLock, checkpoint, use_cancel_token
from .definition_loader import load_profile_definition, parse_profile_definition
from .dimension_registry import DimensionRegistry
from .naming import NamingConvention
from .profiler import Profiler, ProfileRunResult, ProfilerOptions, TaskOutcome
from .relational_store import ColumnMetadata, RelationalStore, SampleResult
from .schema_synthesizer import ColumnProfileData, SchemaSynthesizer
from .type_mapper import resolve_sql_type

__all__ = [
    "CancelToken",
    "ColumnMetadata",
    "ColumnProfileData",
    "DimensionRegistry",
    "KeyedLock",
    "NamingConvention",
    "ProfileRunResult",
    "Profiler",
    "ProfilerOptions",
    "RelationalStore",
    "SampleResult",
    "SchemaSynthesizer",
    "TaskOutcome",
    "checkpoint",
    "load_profile_definition",
    "parse_profile_definition",
    "resolve_sql_type",
    "use_cancel_token",
]
