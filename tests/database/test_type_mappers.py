"""Tests for dialect type mappers."""

import pytest

from dbmeta.database.models import (
    ArrayType,
    BooleanType,
    BytesType,
    EnumType,
    FloatType,
    IntegerType,
    JsonBinaryType,
    JsonType,
    NetworkAddressType,
    NumericType,
    TextType,
    TimestampType,
    TimestampTzType,
    UnsupportedType,
    UuidType,
)
from dbmeta.database.type_mappers import (
    MAX_ARRAY_DEPTH,
    DuckDBTypeMapper,
    PostgresTypeMapper,
)


class TestPostgresScalarTypes:
    """Test mapping of PostgreSQL scalar descriptors."""

    def test_integer_without_udt(self, pg_mapper):
        """Test that 'integer' maps to a 32-bit integer."""
        assert pg_mapper.map("integer") == IntegerType(bits=32)

    @pytest.mark.parametrize("raw,expected", [
        ("bigint", IntegerType(bits=64)),
        ("int8", IntegerType(bits=64)),
        ("smallint", IntegerType(bits=16)),
        ("serial", IntegerType(bits=32)),
        ("character varying", TextType()),
        ("bpchar", TextType()),
        ("boolean", BooleanType()),
        ("timestamp without time zone", TimestampType()),
        ("timestamp with time zone", TimestampTzType()),
        ("numeric", NumericType()),
        ("real", FloatType(bits=32)),
        ("double precision", FloatType(bits=64)),
        ("bytea", BytesType()),
        ("uuid", UuidType()),
        ("json", JsonType()),
        ("jsonb", JsonBinaryType()),
        ("inet", NetworkAddressType()),
        ("cidr", NetworkAddressType()),
    ])
    def test_family_lookup(self, pg_mapper, raw, expected):
        """Test canonical type families."""
        assert pg_mapper.map(raw) == expected

    def test_case_and_modifiers_are_ignored(self, pg_mapper):
        """Test that casing and type modifiers do not affect the family."""
        assert pg_mapper.map("NUMERIC(10,2)") == NumericType()
        assert pg_mapper.map("Character  Varying(255)") == TextType()

    def test_unknown_type_is_unsupported_with_raw_text(self, pg_mapper):
        """Test that unknown descriptors keep the raw text verbatim."""
        assert pg_mapper.map("tsvector") == UnsupportedType(raw="tsvector")
        assert pg_mapper.map("Money(4)") == UnsupportedType(raw="Money(4)")

    @pytest.mark.parametrize("raw", ["", "   ", "()", "[]", "ARRAY", "USER-DEFINED", "\x00"])
    def test_mapping_is_total(self, pg_mapper, raw):
        """Test that odd descriptors never raise."""
        result = pg_mapper.map(raw)
        assert result is not None

    def test_none_descriptor(self, pg_mapper):
        """Test that a missing descriptor maps to unsupported."""
        assert pg_mapper.map(None) == UnsupportedType(raw="")


class TestPostgresArrays:
    """Test array descriptors and recursion."""

    def test_array_marker_with_underscore_udt(self, pg_mapper):
        """Test ARRAY with udt '_int4' maps to an array of int32."""
        assert pg_mapper.map("ARRAY", "_int4") == ArrayType(element=IntegerType(bits=32))

    def test_nested_array(self, pg_mapper):
        """Test that a doubly prefixed udt nests arrays."""
        assert pg_mapper.map("ARRAY", "__int4") == ArrayType(
            element=ArrayType(element=IntegerType(bits=32))
        )

    def test_bracket_suffix(self, pg_mapper):
        """Test 'text[]' style descriptors."""
        assert pg_mapper.map("text[]") == ArrayType(element=TextType())
        assert pg_mapper.map("integer[][]") == ArrayType(element=ArrayType(element=IntegerType(bits=32)))

    def test_array_marker_without_element(self, pg_mapper):
        """Test that ARRAY without an element udt is unsupported."""
        assert pg_mapper.map("ARRAY") == UnsupportedType(raw="ARRAY")

    def test_array_of_unknown_element(self, pg_mapper):
        """Test that unknown elements stay inside the array."""
        assert pg_mapper.map("ARRAY", "_tsvector") == ArrayType(element=UnsupportedType(raw="tsvector"))

    def test_array_of_enum_element_is_unsupported(self, pg_mapper):
        """Test that enum arrays lose the enum marker and keep the element name."""
        assert pg_mapper.map("ARRAY", "_status") == ArrayType(element=UnsupportedType(raw="status"))

    def test_depth_guard(self, pg_mapper):
        """Test that malformed deep nesting stops at the depth limit."""
        udt = "_" * (MAX_ARRAY_DEPTH + 3) + "int4"
        result = pg_mapper.map("ARRAY", udt)

        depth = 0
        while isinstance(result, ArrayType):
            depth += 1
            result = result.element
        assert depth == MAX_ARRAY_DEPTH
        assert isinstance(result, UnsupportedType)

    def test_depth_guard_on_bracket_suffix(self, pg_mapper):
        """Test the depth limit applies to '[]' descriptors too."""
        result = pg_mapper.map("int" + "[]" * 50)

        depth = 0
        while isinstance(result, ArrayType):
            depth += 1
            result = result.element
        assert depth == MAX_ARRAY_DEPTH
        assert isinstance(result, UnsupportedType)


class TestPostgresUserDefined:
    """Test USER-DEFINED descriptors."""

    def test_user_defined_is_enum(self, pg_mapper):
        """Test USER-DEFINED with udt 'mood' maps to Enum('mood')."""
        assert pg_mapper.map("USER-DEFINED", "mood") == EnumType(name="mood")

    def test_user_defined_without_udt(self, pg_mapper):
        """Test USER-DEFINED with no udt name is unsupported."""
        assert pg_mapper.map("USER-DEFINED") == UnsupportedType(raw="USER-DEFINED")

    def test_hstore_unsupported_by_default(self, pg_mapper):
        """Test that hstore is not mistaken for an enum."""
        assert pg_mapper.map("USER-DEFINED", "hstore") == UnsupportedType(raw="hstore")
        assert pg_mapper.map("hstore") == UnsupportedType(raw="hstore")

    def test_hstore_as_json(self):
        """Test that hstore normalizes to json when enabled."""
        mapper = PostgresTypeMapper(hstore_as_json=True)
        assert mapper.map("USER-DEFINED", "hstore") == JsonType()
        assert mapper.map("ARRAY", "_hstore") == ArrayType(element=JsonType())

    def test_hstore_flag_does_not_affect_enums(self):
        """Test that other user-defined types are still enums."""
        mapper = PostgresTypeMapper(hstore_as_json=True)
        assert mapper.map("USER-DEFINED", "mood") == EnumType(name="mood")


class TestDuckDBTypeMapper:
    """Test DuckDB type spellings."""

    @pytest.fixture
    def mapper(self):
        return DuckDBTypeMapper()

    @pytest.mark.parametrize("raw,expected", [
        ("INTEGER", IntegerType(bits=32)),
        ("BIGINT", IntegerType(bits=64)),
        ("TINYINT", IntegerType(bits=8)),
        ("HUGEINT", IntegerType(bits=128)),
        ("VARCHAR", TextType()),
        ("DOUBLE", FloatType(bits=64)),
        ("FLOAT", FloatType(bits=32)),
        ("DECIMAL(18,3)", NumericType()),
        ("BLOB", BytesType()),
        ("TIMESTAMP", TimestampType()),
        ("TIMESTAMP WITH TIME ZONE", TimestampTzType()),
        ("JSON", JsonType()),
        ("UUID", UuidType()),
    ])
    def test_family_lookup(self, mapper, raw, expected):
        """Test canonical DuckDB families."""
        assert mapper.map(raw) == expected

    def test_list_and_fixed_arrays(self, mapper):
        """Test list and fixed-size array suffixes."""
        assert mapper.map("INTEGER[]") == ArrayType(element=IntegerType(bits=32))
        assert mapper.map("VARCHAR[3][]") == ArrayType(element=ArrayType(element=TextType()))

    def test_unsigned_and_nested_types_unsupported(self, mapper):
        """Test types with no normalized family."""
        assert mapper.map("UBIGINT") == UnsupportedType(raw="UBIGINT")
        assert mapper.map("STRUCT(a INTEGER)") == UnsupportedType(raw="STRUCT(a INTEGER)")

    def test_named_enum(self, mapper):
        """Test that the enum marker passed by the introspector gives Enum."""
        assert mapper.map("USER-DEFINED", "mood") == EnumType(name="mood")

    def test_expanded_enum_spelling(self, mapper):
        """Test that an ENUM(...) spelling with a resolved name gives Enum."""
        assert mapper.map("ENUM('sad', 'ok')", "mood") == EnumType(name="mood")
        assert mapper.map("ENUM('sad', 'ok')[]", "mood") == ArrayType(element=EnumType(name="mood"))
        assert mapper.map("mood[]", "mood") == ArrayType(element=EnumType(name="mood"))

    def test_anonymous_enum_unsupported(self, mapper):
        """Test that an ENUM(...) spelling without a type name stays unsupported."""
        assert mapper.map("ENUM('a', 'b')") == UnsupportedType(raw="ENUM('a', 'b')")
