"""Database metadata models produced by introspection.

Every model is frozen: a metadata tree is built once per introspection run
and shared read-only afterwards. A fresh run produces a fresh tree.
"""

import json
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field, model_validator
from typing_extensions import Annotated


class _Frozen(BaseModel):
    class Config:
        frozen = True


# ---------------------------------------------------------------------------
# Normalized type model
# ---------------------------------------------------------------------------


class TextType(_Frozen):
    kind: Literal["text"] = "text"


class IntegerType(_Frozen):
    kind: Literal["integer"] = "integer"
    bits: int


class FloatType(_Frozen):
    kind: Literal["float"] = "float"
    bits: int


class NumericType(_Frozen):
    kind: Literal["numeric"] = "numeric"


class BooleanType(_Frozen):
    kind: Literal["boolean"] = "boolean"


class DateType(_Frozen):
    kind: Literal["date"] = "date"


class TimeType(_Frozen):
    kind: Literal["time"] = "time"


class TimestampType(_Frozen):
    kind: Literal["timestamp"] = "timestamp"


class TimestampTzType(_Frozen):
    kind: Literal["timestamptz"] = "timestamptz"


class BytesType(_Frozen):
    kind: Literal["bytes"] = "bytes"


class UuidType(_Frozen):
    kind: Literal["uuid"] = "uuid"


class JsonType(_Frozen):
    kind: Literal["json"] = "json"


class JsonBinaryType(_Frozen):
    kind: Literal["jsonb"] = "jsonb"


class NetworkAddressType(_Frozen):
    kind: Literal["network_address"] = "network_address"


class EnumType(_Frozen):
    """Reference to a user-defined type by name (usually an enumeration)."""
    kind: Literal["enum"] = "enum"
    name: str


class ArrayType(_Frozen):
    kind: Literal["array"] = "array"
    element: "NormalizedType"


class UnsupportedType(_Frozen):
    """A catalog type with no normalized counterpart.

    This is an ordinary value, not an error: consumers decide what to do
    with it.
    """
    kind: Literal["unsupported"] = "unsupported"
    raw: str


NormalizedType = Annotated[
    Union[
        TextType,
        IntegerType,
        FloatType,
        NumericType,
        BooleanType,
        DateType,
        TimeType,
        TimestampType,
        TimestampTzType,
        BytesType,
        UuidType,
        JsonType,
        JsonBinaryType,
        NetworkAddressType,
        EnumType,
        ArrayType,
        UnsupportedType,
    ],
    Field(discriminator="kind"),
]

ArrayType.model_rebuild()


def describe_type(data_type: Any) -> str:
    """Render a normalized type as a short human-readable string."""
    if isinstance(data_type, (IntegerType, FloatType)):
        return f"{data_type.kind}({data_type.bits})"
    if isinstance(data_type, EnumType):
        return f"enum({data_type.name})"
    if isinstance(data_type, ArrayType):
        return f"array({describe_type(data_type.element)})"
    if isinstance(data_type, UnsupportedType):
        return f"unsupported({data_type.raw!r})"
    return data_type.kind


# ---------------------------------------------------------------------------
# Entity metadata
# ---------------------------------------------------------------------------


class ForeignKeyReference(_Frozen):
    """Target of a foreign key. Not checked against the introspected set."""
    schema_name: str = Field(alias="schema")
    table: str
    column: str

    class Config:
        frozen = True
        populate_by_name = True


class ColumnMetadata(_Frozen):
    """Represents a table or view column."""
    name: str
    ordinal_position: int
    sql_type_name: str
    udt_name: Optional[str] = None
    data_type: NormalizedType
    is_nullable: bool = True
    is_primary_key: bool = False
    default_value: Optional[str] = None
    comment: Optional[str] = None
    foreign_key: Optional[ForeignKeyReference] = None


def _check_ordinals(owner: str, columns: Tuple[ColumnMetadata, ...]) -> None:
    for expected, column in enumerate(columns, start=1):
        if column.ordinal_position != expected:
            raise ValueError(
                f"{owner}: column '{column.name}' has ordinal position "
                f"{column.ordinal_position}, expected {expected}"
            )


class TableMetadata(_Frozen):
    """Represents a database table."""
    schema_name: str = Field(alias="schema")
    name: str
    columns: Tuple[ColumnMetadata, ...] = ()
    primary_key_columns: Tuple[str, ...] = ()
    comment: Optional[str] = None

    class Config:
        frozen = True
        populate_by_name = True

    @model_validator(mode="after")
    def _check_invariants(self) -> "TableMetadata":
        _check_ordinals(f"{self.schema_name}.{self.name}", self.columns)
        names = {c.name for c in self.columns}
        missing = [pk for pk in self.primary_key_columns if pk not in names]
        if missing:
            raise ValueError(
                f"{self.schema_name}.{self.name}: primary key columns {missing} are not table columns"
            )
        return self

    def get_column(self, name: str) -> Optional[ColumnMetadata]:
        for column in self.columns:
            if column.name == name:
                return column
        return None


class ViewMetadata(_Frozen):
    """Represents a database view. Views never carry keys."""
    schema_name: str = Field(alias="schema")
    name: str
    columns: Tuple[ColumnMetadata, ...] = ()
    definition: Optional[str] = None
    comment: Optional[str] = None

    class Config:
        frozen = True
        populate_by_name = True

    @model_validator(mode="after")
    def _check_invariants(self) -> "ViewMetadata":
        _check_ordinals(f"{self.schema_name}.{self.name}", self.columns)
        for column in self.columns:
            if column.is_primary_key or column.foreign_key is not None:
                raise ValueError(
                    f"{self.schema_name}.{self.name}: view column '{column.name}' cannot carry keys"
                )
        return self


class EnumMetadata(_Frozen):
    """An enumeration. ``values`` keep the catalog's declared sort order."""
    schema_name: str = Field(alias="schema")
    name: str
    values: Tuple[str, ...] = ()
    comment: Optional[str] = None

    class Config:
        frozen = True
        populate_by_name = True


class RoutineKind(str, Enum):
    """Kinds of stored routines."""
    FUNCTION = "function"
    PROCEDURE = "procedure"
    AGGREGATE = "aggregate"
    WINDOW = "window"
    TRIGGER = "trigger"


class ParameterMode(str, Enum):
    IN = "in"
    OUT = "out"
    INOUT = "inout"
    VARIADIC = "variadic"
    TABLE = "table"


class ParameterMetadata(_Frozen):
    """A routine parameter, or a column of a table-returning routine."""
    name: Optional[str] = None
    ordinal_position: int
    mode: ParameterMode = ParameterMode.IN
    sql_type_name: str
    udt_name: Optional[str] = None
    data_type: NormalizedType
    default_value: Optional[str] = None


class FunctionMetadata(_Frozen):
    """A stored function, procedure, aggregate, window or trigger function."""
    schema_name: str = Field(alias="schema")
    name: str
    kind: RoutineKind = RoutineKind.FUNCTION
    parameters: Tuple[ParameterMetadata, ...] = ()
    return_type: Optional[NormalizedType] = None
    return_columns: Tuple[ParameterMetadata, ...] = ()
    language: Optional[str] = None
    volatility: Optional[str] = None
    is_strict: Optional[bool] = None
    definition: Optional[str] = None
    comment: Optional[str] = None

    class Config:
        frozen = True
        populate_by_name = True

    def signature(self) -> str:
        """Return ``name(type, ...)`` over the input parameters."""
        args = ", ".join(p.sql_type_name for p in self.parameters)
        return f"{self.name}({args})"


class SchemaMetadata(_Frozen):
    """Represents a database schema."""
    name: str
    tables: Dict[str, TableMetadata] = Field(default_factory=dict)
    views: Dict[str, ViewMetadata] = Field(default_factory=dict)
    enums: Dict[str, EnumMetadata] = Field(default_factory=dict)
    functions: Dict[str, FunctionMetadata] = Field(default_factory=dict)

    def counts(self) -> Dict[str, int]:
        """Count entities per category, routines split by kind."""
        counts = {
            "tables": len(self.tables),
            "views": len(self.views),
            "enums": len(self.enums),
        }
        for kind in RoutineKind:
            counts[f"{kind.value}s"] = sum(1 for f in self.functions.values() if f.kind == kind)
        return counts


class DatabaseMetadata(_Frozen):
    """The complete metadata tree of one introspection run."""
    schemas: Dict[str, SchemaMetadata] = Field(default_factory=dict)

    def get_table(self, schema: str, name: str) -> Optional[TableMetadata]:
        schema_meta = self.schemas.get(schema)
        if schema_meta is None:
            return None
        return schema_meta.tables.get(name)

    def get_all_tables(self) -> List[TableMetadata]:
        """Get all tables across all schemas."""
        tables = []
        for schema in self.schemas.values():
            tables.extend(schema.tables.values())
        return tables

    def summary(self) -> Dict[str, Dict[str, int]]:
        return {name: schema.counts() for name, schema in self.schemas.items()}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a nested, JSON-compatible document."""
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DatabaseMetadata":
        return cls.model_validate(data)

    @classmethod
    def from_json(cls, text: str) -> "DatabaseMetadata":
        return cls.from_dict(json.loads(text))
