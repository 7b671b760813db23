"""Shared pytest fixtures for dbmeta tests."""

import pytest

from dbmeta.database.models import (
    ColumnMetadata,
    DatabaseMetadata,
    EnumMetadata,
    EnumType,
    ForeignKeyReference,
    FunctionMetadata,
    IntegerType,
    ArrayType,
    ParameterMetadata,
    RoutineKind,
    SchemaMetadata,
    TableMetadata,
    TextType,
    TimestampTzType,
    UnsupportedType,
    ViewMetadata,
    NumericType,
)
from dbmeta.database.postgres import PostgresIntrospector
from dbmeta.database.type_mappers import PostgresTypeMapper

from .database.fixtures import FakeProvider, install_shop_catalog


@pytest.fixture
def fake_provider():
    """A fresh scripted provider with no responses."""
    return FakeProvider()


@pytest.fixture
def shop_provider():
    """A scripted provider serving the two-schema shop catalog."""
    return install_shop_catalog(FakeProvider())


@pytest.fixture
def pg_introspector(shop_provider):
    return PostgresIntrospector(shop_provider)


@pytest.fixture
def pg_mapper():
    return PostgresTypeMapper()


@pytest.fixture
def sample_metadata():
    """A hand-built metadata tree exercising every model."""
    orders = TableMetadata(
        schema="app",
        name="orders",
        columns=[
            ColumnMetadata(
                name="id", ordinal_position=1, sql_type_name="integer", udt_name="int4",
                data_type=IntegerType(bits=32), is_nullable=False, is_primary_key=True,
            ),
            ColumnMetadata(
                name="customer_id", ordinal_position=2, sql_type_name="integer", udt_name="int4",
                data_type=IntegerType(bits=32), is_nullable=False,
                foreign_key=ForeignKeyReference(schema="billing", table="accounts", column="id"),
            ),
            ColumnMetadata(
                name="status", ordinal_position=3, sql_type_name="USER-DEFINED", udt_name="status",
                data_type=EnumType(name="status"), default_value="'pending'::status",
            ),
            ColumnMetadata(
                name="matrix", ordinal_position=4, sql_type_name="ARRAY", udt_name="__int4",
                data_type=ArrayType(element=ArrayType(element=IntegerType(bits=32))),
            ),
            ColumnMetadata(
                name="location", ordinal_position=5, sql_type_name="USER-DEFINED", udt_name="geometry",
                data_type=UnsupportedType(raw="geometry"), comment="PostGIS point",
            ),
        ],
        primary_key_columns=["id"],
        comment="Customer orders",
    )
    totals = ViewMetadata(
        schema="app",
        name="order_totals",
        columns=[
            ColumnMetadata(name="customer_id", ordinal_position=1, sql_type_name="integer",
                           data_type=IntegerType(bits=32)),
            ColumnMetadata(name="total", ordinal_position=2, sql_type_name="numeric",
                           data_type=NumericType()),
        ],
        definition="SELECT customer_id, sum(amount) AS total FROM app.orders GROUP BY customer_id",
    )
    status = EnumMetadata(schema="app", name="status", values=["pending", "active", "closed"])
    touch = FunctionMetadata(
        schema="app",
        name="touch_updated_at",
        kind=RoutineKind.TRIGGER,
        return_type=UnsupportedType(raw="trigger"),
        language="plpgsql",
        volatility="VOLATILE",
    )
    search = FunctionMetadata(
        schema="app",
        name="search_orders",
        parameters=[
            ParameterMetadata(name="term", ordinal_position=1, sql_type_name="text",
                              data_type=TextType()),
        ],
        return_type=UnsupportedType(raw="record"),
        return_columns=[
            ParameterMetadata(name="created_at", ordinal_position=2, mode="table",
                              sql_type_name="timestamp with time zone", data_type=TimestampTzType()),
        ],
    )
    return DatabaseMetadata(schemas={
        "app": SchemaMetadata(
            name="app",
            tables={"orders": orders},
            views={"order_totals": totals},
            enums={"status": status},
            functions={"touch_updated_at": touch, "search_orders": search},
        ),
        "empty": SchemaMetadata(name="empty"),
    })
