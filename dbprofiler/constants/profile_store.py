"""Identifiers of the profile store tables and columns (snake_case form)."""

PROFILE_RECORDS_TABLE = "profile_records"
TABLE_NAMES_TABLE = "table_names"
TABLE_PROFILES_TABLE = "table_profiles"
TABLE_COLUMN_NAMES_TABLE = "table_column_names"
TABLE_CUSTOM_COLUMN_NAMES_TABLE = "table_custom_column_names"
TABLE_COLUMN_TYPES_TABLE = "table_column_types"

ID_COLUMN = "id"
PROFILE_DATE = "profile_date"
TABLE_NAME = "table_name"
TABLE_NAME_ID = "table_name_id"
TABLE_ROW_COUNT = "table_row_count"
TABLE_COLUMN_NAME = "table_column_name"
TABLE_COLUMN_TYPE = "table_column_type"
TABLE_COLUMN_TYPE_ID = "table_column_type_id"
TABLE_CUSTOM_COLUMN_DEFINITION = "table_custom_column_definition"

PROFILE_RECORD_ID = "profile_record_id"
TABLE_COLUMN_NAME_ID = "table_column_name_id"
TABLE_CUSTOM_COLUMN_NAME_ID = "table_custom_column_name_id"
CUSTOM_COLUMN_VALUE = "value"

TABLE_COLUMN_PROFILE_PREFIX = "table_column_profiles_"
TABLE_CUSTOM_COLUMN_PROFILE_PREFIX = "table_custom_column_profiles_"
