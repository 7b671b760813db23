"""Tests for the DuckDB introspector against an in-memory database."""

import pytest

duckdb = pytest.importorskip("duckdb")

from dbmeta.database.duckdb import DuckDBIntrospector, enum_type_name, quote_ident
from dbmeta.database.models import (
    ArrayType,
    EnumType,
    ForeignKeyReference,
    IntegerType,
    NumericType,
    TextType,
)
from dbmeta.database.providers import DuckDBProvider
from dbmeta.errors import EntityNotFoundError, ProviderQueryError


@pytest.fixture
def duckdb_provider():
    connection = duckdb.connect(":memory:")
    connection.execute("CREATE TYPE mood AS ENUM ('sad', 'ok', 'happy')")
    connection.execute(
        "CREATE TABLE customers (id INTEGER PRIMARY KEY, name VARCHAR NOT NULL, tags VARCHAR[])"
    )
    connection.execute(
        "CREATE TABLE orders ("
        " id BIGINT PRIMARY KEY,"
        " customer_id INTEGER REFERENCES customers(id),"
        " amount DECIMAL(10, 2),"
        " feeling mood,"
        " past_feelings mood[])"
    )
    connection.execute("COMMENT ON TABLE orders IS 'All orders'")
    connection.execute("CREATE VIEW big_orders AS SELECT id, amount FROM orders WHERE amount > 100")
    connection.execute("CREATE MACRO add_tax(x) AS x * 1.2")
    provider = DuckDBProvider.from_connection(connection)
    yield provider
    provider.close()


@pytest.fixture
def duckdb_introspector(duckdb_provider):
    return DuckDBIntrospector(duckdb_provider)


class TestDuckDBIntrospection:
    """Test catalog reads from a live DuckDB connection."""

    @pytest.mark.asyncio
    async def test_lists_main_schema(self, duckdb_introspector):
        """Test that the default schema is discovered and system schemas are not."""
        schemas = await duckdb_introspector.list_user_schemas()
        assert "main" in schemas
        assert "information_schema" not in schemas

    @pytest.mark.asyncio
    async def test_table_columns_and_keys(self, duckdb_introspector):
        """Test columns, primary keys and foreign keys."""
        orders = await duckdb_introspector.introspect_table("main", "orders")

        assert [c.name for c in orders.columns] == ["id", "customer_id", "amount", "feeling", "past_feelings"]
        assert [c.ordinal_position for c in orders.columns] == [1, 2, 3, 4, 5]
        assert orders.primary_key_columns == ("id",)
        assert orders.comment == "All orders"
        assert orders.get_column("id").data_type == IntegerType(bits=64)
        assert orders.get_column("amount").data_type == NumericType()
        assert orders.get_column("customer_id").foreign_key == ForeignKeyReference(
            schema="main", table="customers", column="id"
        )

    @pytest.mark.asyncio
    async def test_enum_columns(self, duckdb_introspector):
        """Test that enum and enum-list columns resolve to the named enum type."""
        orders = await duckdb_introspector.introspect_table("main", "orders")

        feeling = orders.get_column("feeling")
        assert feeling.data_type == EnumType(name="mood")
        assert feeling.udt_name == "mood"

        past = orders.get_column("past_feelings")
        assert past.data_type == ArrayType(element=EnumType(name="mood"))
        assert past.udt_name == "mood"

    @pytest.mark.asyncio
    async def test_nullability_and_lists(self, duckdb_introspector):
        """Test NOT NULL flags and list columns."""
        customers = await duckdb_introspector.introspect_table("main", "customers")

        assert customers.get_column("name").is_nullable is False
        assert customers.get_column("tags").is_nullable is True
        assert customers.get_column("tags").data_type == ArrayType(element=TextType())

    @pytest.mark.asyncio
    async def test_view(self, duckdb_introspector):
        """Test view columns and definition."""
        view = await duckdb_introspector.introspect_view("main", "big_orders")

        assert [c.name for c in view.columns] == ["id", "amount"]
        assert "100" in view.definition

    @pytest.mark.asyncio
    async def test_enum_values_in_declared_order(self, duckdb_introspector):
        """Test that enum values come back in declaration order."""
        enums = await duckdb_introspector.introspect_enums_for_schema("main")
        assert enums["mood"].values == ("sad", "ok", "happy")

    @pytest.mark.asyncio
    async def test_macros(self, duckdb_introspector):
        """Test that scalar macros are reported as SQL functions."""
        functions = await duckdb_introspector.introspect_functions_for_schema("main")

        assert functions["add_tax"].language == "sql"
        assert [p.name for p in functions["add_tax"].parameters] == ["x"]

    @pytest.mark.asyncio
    async def test_whole_database(self, duckdb_introspector):
        """Test a full run through the aggregator."""
        result = await duckdb_introspector.introspect(["main"])

        main = result.metadata.schemas["main"]
        assert set(main.tables) == {"customers", "orders"}
        assert set(main.views) == {"big_orders"}
        assert "mood" in main.enums
        assert result.ok

    @pytest.mark.asyncio
    async def test_missing_table(self, duckdb_introspector):
        """Test that absent tables are reported as not found."""
        with pytest.raises(EntityNotFoundError):
            await duckdb_introspector.introspect_table("main", "ghost")


class TestEnumTypeName:
    """Test resolving enum type names from column type spellings."""

    ENUMS = [
        {"schema_name": "main", "type_name": "mood", "labels": ["sad", "ok"]},
        {"schema_name": "sales", "type_name": "feeling", "labels": ["sad", "ok"]},
        {"schema_name": "main", "type_name": "quote", "labels": ["it's", "fine"]},
    ]

    def test_expanded_spelling(self):
        """Test matching an expanded spelling on its labels."""
        assert enum_type_name("main", "ENUM('sad', 'ok')", self.ENUMS) == "mood"

    def test_prefers_column_schema(self):
        """Test that a same-labelled enum in the column's schema wins."""
        assert enum_type_name("sales", "ENUM('sad', 'ok')", self.ENUMS) == "feeling"

    def test_list_suffix_and_escaped_quotes(self):
        """Test list suffixes and doubled quotes inside labels."""
        assert enum_type_name("main", "ENUM('it''s', 'fine')[]", self.ENUMS) == "quote"

    def test_plain_type_name(self):
        """Test a column reported by the enum's own name."""
        assert enum_type_name("main", "mood[]", self.ENUMS) == "mood"

    def test_not_an_enum(self):
        """Test that anonymous enums and other types are not resolved."""
        assert enum_type_name("main", "ENUM('x', 'y')", self.ENUMS) is None
        assert enum_type_name("main", "VARCHAR", self.ENUMS) is None


class TestDuckDBProvider:
    """Test the DuckDB query provider."""

    @pytest.mark.asyncio
    async def test_rows_are_dicts(self, duckdb_provider):
        """Test that rows come back keyed by column name."""
        rows = await duckdb_provider.fetch_all("SELECT 1 AS a, 'x' AS b")
        assert rows == [{"a": 1, "b": "x"}]

    @pytest.mark.asyncio
    async def test_parameters(self, duckdb_provider):
        """Test positional parameters."""
        row = await duckdb_provider.fetch_optional("SELECT ? + 1 AS n", (41,))
        assert row == {"n": 42}

    @pytest.mark.asyncio
    async def test_bad_query(self, duckdb_provider):
        """Test that query errors are wrapped."""
        with pytest.raises(ProviderQueryError):
            await duckdb_provider.fetch_all("SELECT * FROM no_such_table")

    @pytest.mark.asyncio
    async def test_in_memory_path(self):
        """Test opening an in-memory database from a URL."""
        provider = DuckDBProvider("duckdb://:memory:")
        try:
            await provider.ping()
        finally:
            provider.close()

    def test_quote_ident(self):
        assert quote_ident('we"ird') == '"we""ird"'
