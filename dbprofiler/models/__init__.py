from .store_tables import (
    PROFILE_RECORD,
    STORE_TABLES,
    TABLE_COLUMN_NAME,
    TABLE_COLUMN_TYPE,
    TABLE_CUSTOM_COLUMN_NAME,
    TABLE_NAME,
    TABLE_PROFILE,
    StoreColumn,
    StoreTable,
)

__all__ = [
    "PROFILE_RECORD",
    "STORE_TABLES",
    "TABLE_COLUMN_NAME",
    "TABLE_COLUMN_TYPE",
    "TABLE_CUSTOM_COLUMN_NAME",
    "TABLE_NAME",
    "TABLE_PROFILE",
    "StoreColumn",
    "StoreTable",
]
