from datetime import date, datetime, time
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, computed_field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# A single cell value. Driver values outside this set are normalised in db.py.
Scalar = Union[None, bool, int, float, str, datetime, date, time]
Row = Dict[str, Scalar]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


# ---------- Schema context ----------

class ColumnInfo(_Frozen):
    name: str
    data_type: str


class TableInfo(_Frozen):
    name: str
    columns: Tuple[ColumnInfo, ...] = ()


class SchemaContext(_Frozen):
    tables: Tuple[TableInfo, ...] = ()

    def render(self) -> str:
        """
        Renders the schema the way the model sees it:

          Table `users`:
            - id (integer)
            - name (text)

        Tables are separated by a blank line.
        """
        lines: List[str] = []
        for table in self.tables:
            lines.append(f"Table `{table.name}`:")
            for col in table.columns:
                lines.append(f"  - {col.name} ({col.data_type})")
            lines.append("")
        return "\n".join(lines)


# ---------- Pipeline ----------

class TaskKind(str, Enum):
    GENERATE = "generate"
    REFINE = "refine"
    EXPLAIN = "explain"


class GenerationRequest(_Frozen):
    kind: TaskKind
    text: str
    schema_context: SchemaContext
    previous_sql: Optional[str] = None

    @model_validator(mode="after")
    def _previous_sql_only_for_refine(self):
        if self.kind is TaskKind.REFINE and not self.previous_sql:
            raise ValueError("refine requires previous_sql")
        if self.kind is not TaskKind.REFINE and self.previous_sql is not None:
            raise ValueError("previous_sql is only used by refine")
        return self


class QueryResult(_Frozen):
    success: bool
    columns: List[str] = []
    data: List[Row] = []
    row_count: int = 0
    executed_sql: str
    error: Optional[str] = None

    @model_validator(mode="after")
    def _consistent(self):
        if self.success:
            if self.error is not None:
                raise ValueError("a successful result cannot carry an error")
            if self.row_count != len(self.data):
                raise ValueError("row_count does not match data")
        return self


class QueryResponse(_Frozen):
    original_query: str
    generated_sql: str
    previous_sql: Optional[str] = None
    execution_result: QueryResult

    @computed_field
    @property
    def success(self) -> bool:
        return self.execution_result.success


# ---------- Request bodies ----------

def _not_blank(value: str, message: str) -> str:
    if value is None or not value.strip():
        raise ValueError(message)
    return value


class QueryIn(_Frozen):
    query: str

    @field_validator("query")
    @classmethod
    def _check(cls, v: str) -> str:
        return _not_blank(v, "Query cannot be empty")


class RefineIn(_Frozen):
    original_sql: str
    refinement_request: str

    @field_validator("original_sql")
    @classmethod
    def _check_sql(cls, v: str) -> str:
        return _not_blank(v, "Original SQL cannot be empty")

    @field_validator("refinement_request")
    @classmethod
    def _check_request(cls, v: str) -> str:
        return _not_blank(v, "Refinement request cannot be empty")


class SqlIn(_Frozen):
    sql: str

    @field_validator("sql")
    @classmethod
    def _check(cls, v: str) -> str:
        return _not_blank(v, "SQL cannot be empty")
