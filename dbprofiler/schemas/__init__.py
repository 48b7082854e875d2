from .profile_definition import CustomColumnDefinition, ProfileDefinition, TableDefinition

__all__ = [
    "CustomColumnDefinition",
    "ProfileDefinition",
    "TableDefinition",
]
