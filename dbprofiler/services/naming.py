from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping

from dbprofiler.exceptions import SchemaError

_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_MAX_IDENTIFIER_LENGTH = 63
_TYPE_NAME_PATTERN = re.compile(r"[^A-Za-z0-9]+")


class InvalidIdentifierError(SchemaError, ValueError):
    """Raised when a name cannot be safely used as a SQL identifier."""


def validate_identifier(name: str) -> str:
    """Return *name* if it is a plain SQL identifier, otherwise raise."""

    if not isinstance(name, str) or not _IDENTIFIER_PATTERN.match(name):
        raise InvalidIdentifierError(f"Invalid SQL identifier: {name!r}")
    if len(name) > _MAX_IDENTIFIER_LENGTH:
        raise InvalidIdentifierError(f"SQL identifier exceeds {_MAX_IDENTIFIER_LENGTH} characters: {name!r}")
    return name


def validate_qualified_name(name: str) -> tuple[str, ...]:
    """Split ``schema.table`` (or ``table``) and validate every part."""

    parts = tuple((name or "").split("."))
    if len(parts) > 2:
        raise InvalidIdentifierError(f"Invalid qualified table name: {name!r}")
    return tuple(validate_identifier(part) for part in parts)


def type_name_suffix(database_type_name: str) -> str:
    """Lower-case a driver type name and collapse anything that is not alphanumeric into ``_``."""

    cleaned = _TYPE_NAME_PATTERN.sub("_", (database_type_name or "").strip()).strip("_")
    if not cleaned:
        raise InvalidIdentifierError(f"Driver type name {database_type_name!r} cannot form a table name.")
    return cleaned.lower()


def snake_to_pascal(name: str) -> str:
    if "_" not in name:
        return name
    return "".join(word[:1].upper() + word[1:] for word in name.split("_"))


@dataclass(frozen=True)
class NamingConvention:
    """Casing applied to every identifier the profile store emits.

    The default keeps the snake_case names as they are; ``use_pascal_case``
    joins the words with each first letter capitalised (``table_name`` becomes
    ``TableName``). Names without a separator are left unchanged.
    """

    use_pascal_case: bool = False

    def apply(self, name: str) -> str:
        if self.use_pascal_case:
            return snake_to_pascal(name)
        return name

    def apply_keys(self, data: Mapping[str, Any]) -> dict[str, Any]:
        return {self.apply(key): value for key, value in data.items()}


__all__ = [
    "InvalidIdentifierError",
    "NamingConvention",
    "snake_to_pascal",
    "type_name_suffix",
    "validate_identifier",
    "validate_qualified_name",
]
