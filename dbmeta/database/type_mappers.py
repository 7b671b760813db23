"""Database-specific type mapping strategies.

A type mapper turns the raw type descriptor a catalog reports for a column
or parameter into a normalized type. Mappers are pure and total: anything
they do not recognize becomes ``UnsupportedType``.
"""

import re
from abc import ABC, abstractmethod
from typing import Dict, Optional

from .models import (
    ArrayType,
    BooleanType,
    BytesType,
    DateType,
    EnumType,
    FloatType,
    IntegerType,
    JsonBinaryType,
    JsonType,
    NetworkAddressType,
    NormalizedType,
    NumericType,
    TextType,
    TimestampType,
    TimestampTzType,
    TimeType,
    UnsupportedType,
    UuidType,
)

# Postgres caps arrays at 6 dimensions; anything deeper is malformed metadata.
MAX_ARRAY_DEPTH = 6

_MODIFIERS = re.compile(r"\([^)]*\)")
_WHITESPACE = re.compile(r"\s+")


def _canonical_key(raw: str) -> str:
    """Lowercase, drop type modifiers like ``(10,2)`` and collapse spaces."""
    key = _MODIFIERS.sub("", raw.lower())
    return _WHITESPACE.sub(" ", key).strip()


class TypeMapper(ABC):
    """Abstract base class for database type mapping."""

    ARRAY_MARKER: Optional[str] = None
    UDT_MARKER: Optional[str] = "USER-DEFINED"
    FAMILIES: Dict[str, NormalizedType] = {}

    def map(self, raw: str, udt_name: Optional[str] = None) -> NormalizedType:
        """Map a raw catalog descriptor (and underlying type name) to a normalized type."""
        return self._map(raw or "", udt_name, 0)

    def _map(self, raw: str, udt_name: Optional[str], depth: int) -> NormalizedType:
        element = self.array_element(raw, udt_name)
        if element is not None:
            if depth >= MAX_ARRAY_DEPTH:
                return UnsupportedType(raw=raw)
            element_raw, element_udt = element
            return ArrayType(element=self._map(element_raw, element_udt, depth + 1))

        special = self.map_special(raw, udt_name)
        if special is not None:
            return special

        if self.UDT_MARKER and raw.upper() == self.UDT_MARKER and udt_name:
            return EnumType(name=udt_name)

        return self.lookup(raw)

    def lookup(self, raw: str) -> NormalizedType:
        """Canonical family lookup, falling back to ``UnsupportedType``."""
        found = self.FAMILIES.get(_canonical_key(raw))
        if found is None:
            return UnsupportedType(raw=raw)
        return found

    def map_special(self, raw: str, udt_name: Optional[str]) -> Optional[NormalizedType]:
        """Hook for dialect types resolved before UDT detection."""
        return None

    @abstractmethod
    def array_element(self, raw: str, udt_name: Optional[str]):
        """Return ``(element_raw, element_udt)`` if the descriptor is an array, else None.

        Implementations must strip exactly one array level.
        """
        pass


def _families(groups) -> Dict[str, NormalizedType]:
    table = {}
    for aliases, normalized in groups:
        for alias in aliases:
            table[alias] = normalized
    return table


class PostgresTypeMapper(TypeMapper):
    """Type mapper for PostgreSQL catalog types.

    ``information_schema`` reports arrays as ``ARRAY`` with the element type
    in ``udt_name`` prefixed by ``_`` (``_int4``), and enums, composites and
    domains all as ``USER-DEFINED``.
    """

    ARRAY_MARKER = "ARRAY"

    # Extension types that carry key/value documents rather than enum labels.
    SEMI_STRUCTURED = {"hstore"}

    FAMILIES = _families([
        (("uuid",), UuidType()),
        (("integer", "int", "int4", "serial", "serial4"), IntegerType(bits=32)),
        (("bigint", "int8", "bigserial", "serial8"), IntegerType(bits=64)),
        (("smallint", "int2", "smallserial", "serial2"), IntegerType(bits=16)),
        (("character varying", "varchar", "text", "name", "citext",
          "character", "char", "bpchar"), TextType()),
        (("boolean", "bool"), BooleanType()),
        (("date",), DateType()),
        (("time without time zone", "time"), TimeType()),
        (("timestamp without time zone", "timestamp"), TimestampType()),
        (("timestamp with time zone", "timestamptz"), TimestampTzType()),
        (("numeric", "decimal"), NumericType()),
        (("real", "float4"), FloatType(bits=32)),
        (("double precision", "float8"), FloatType(bits=64)),
        (("bytea",), BytesType()),
        (("json",), JsonType()),
        (("jsonb",), JsonBinaryType()),
        (("inet", "cidr"), NetworkAddressType()),
    ])

    def __init__(self, hstore_as_json: bool = False):
        self.hstore_as_json = hstore_as_json

    def array_element(self, raw: str, udt_name: Optional[str]):
        if raw.upper() == self.ARRAY_MARKER:
            if udt_name and udt_name.startswith("_"):
                element = udt_name[1:]
                return element, element
            return None
        if udt_name and udt_name.startswith("_") and raw == udt_name:
            element = udt_name[1:]
            return element, element
        if raw.endswith("[]"):
            element = raw[:-2]
            element_udt = udt_name[1:] if udt_name and udt_name.startswith("_") else None
            return element, element_udt
        return None

    def map_special(self, raw: str, udt_name: Optional[str]) -> Optional[NormalizedType]:
        name = (udt_name if raw.upper() == self.UDT_MARKER else raw) or ""
        if name.lower() in self.SEMI_STRUCTURED:
            if self.hstore_as_json:
                return JsonType()
            return UnsupportedType(raw=name)
        return None


class DuckDBTypeMapper(TypeMapper):
    """Type mapper for DuckDB types.

    DuckDB spells lists as ``INTEGER[]`` and fixed arrays as ``INTEGER[3]``.
    Enum columns are reported by their expanded labels, ``ENUM('a', 'b')``;
    the introspector resolves the type name and passes it as ``udt_name``.
    """

    _ARRAY_SUFFIX = re.compile(r"\[\d*\]$")

    FAMILIES = _families([
        (("uuid",), UuidType()),
        (("integer", "int", "int4", "signed"), IntegerType(bits=32)),
        (("bigint", "int8", "long"), IntegerType(bits=64)),
        (("smallint", "int2", "short"), IntegerType(bits=16)),
        (("tinyint", "int1"), IntegerType(bits=8)),
        (("hugeint",), IntegerType(bits=128)),
        (("varchar", "text", "string", "char", "bpchar"), TextType()),
        (("boolean", "bool", "logical"), BooleanType()),
        (("date",), DateType()),
        (("time",), TimeType()),
        (("timestamp", "datetime", "timestamp_us", "timestamp_ms",
          "timestamp_s", "timestamp_ns"), TimestampType()),
        (("timestamp with time zone", "timestamptz"), TimestampTzType()),
        (("decimal", "numeric"), NumericType()),
        (("real", "float", "float4"), FloatType(bits=32)),
        (("double", "float8"), FloatType(bits=64)),
        (("blob", "bytea", "binary", "varbinary"), BytesType()),
        (("json",), JsonType()),
        (("inet",), NetworkAddressType()),
    ])

    def array_element(self, raw: str, udt_name: Optional[str]):
        stripped = raw.strip()
        match = self._ARRAY_SUFFIX.search(stripped)
        if match is None:
            return None
        element = stripped[:match.start()]
        return element, udt_name

    def map_special(self, raw: str, udt_name: Optional[str]) -> Optional[NormalizedType]:
        if not udt_name:
            return None
        if raw.strip().upper().startswith("ENUM(") or raw == udt_name:
            return EnumType(name=udt_name)
        return None
