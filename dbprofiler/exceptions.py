"""Error taxonomy shared by the relational store, the profile store and the profiler."""

from __future__ import annotations


class ProfilerError(Exception):
    """Base exception for profiling failures."""

    retryable = False


class StoreConnectionError(ProfilerError):
    """Raised when a database cannot be reached or its connection string is misconfigured."""


class UnsupportedTypeError(ProfilerError):
    """Raised when a value or driver scan type has no portable SQL type."""


class SchemaError(ProfilerError):
    """Raised when creating or altering a profile store table fails."""


class QueryError(ProfilerError):
    """Raised when a sample, aggregate or lookup query fails or returns no rows."""


class DuplicateDimensionRaceError(ProfilerError):
    """Raised when a concurrent writer inserted a dimension row this process cannot see yet."""

    retryable = True


class ProfileDefinitionError(ProfilerError):
    """Raised when a profile definition file cannot be read or validated."""


class ProfileRunCancelledError(ProfilerError):
    """Raised inside a profiling task once its run has been cancelled."""


__all__ = [
    "DuplicateDimensionRaceError",
    "ProfileDefinitionError",
    "ProfileRunCancelledError",
    "ProfilerError",
    "QueryError",
    "SchemaError",
    "StoreConnectionError",
    "UnsupportedTypeError",
]
