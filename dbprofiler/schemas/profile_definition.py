from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CustomColumnDefinition(BaseModel):
    """A named, raw SQL expression evaluated against one sampled row of a table.

    ``column_definition`` is interpolated into the sample query verbatim. The
    profile definition file is trusted input written by the operator; it is
    never built from end-user data.
    """

    model_config = ConfigDict(populate_by_name=True)

    column_name: str = Field(..., alias="ColumnName", min_length=1)
    column_definition: str = Field(..., alias="ColumnDefinition", min_length=1)

    @field_validator("column_name", "column_definition")
    @classmethod
    def _strip(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped


class TableDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    table_name: str = Field(..., alias="TableName", min_length=1)
    columns: List[str] = Field(default_factory=list, alias="Columns")
    custom_columns: List[CustomColumnDefinition] = Field(default_factory=list, alias="CustomColumns")

    @field_validator("table_name")
    @classmethod
    def _strip_table_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped

    @field_validator("columns", "custom_columns", mode="before")
    @classmethod
    def _null_as_empty(cls, value):
        return [] if value is None else value

    @field_validator("columns")
    @classmethod
    def _strip_columns(cls, value: List[str]) -> List[str]:
        return [column.strip() for column in value if column and column.strip()]


class ProfileDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    full_profile_tables: List[str] = Field(default_factory=list, alias="FullProfileTables")
    custom_profile_tables: List[TableDefinition] = Field(default_factory=list, alias="CustomProfileTables")

    @field_validator("full_profile_tables", "custom_profile_tables", mode="before")
    @classmethod
    def _null_as_empty(cls, value):
        return [] if value is None else value

    @field_validator("full_profile_tables")
    @classmethod
    def _strip_tables(cls, value: List[str]) -> List[str]:
        return [table.strip() for table in value if table and table.strip()]

    @property
    def task_count(self) -> int:
        return len(self.full_profile_tables) + len(self.custom_profile_tables)
