"""Test fixtures package."""

from .fake_provider import FakeProvider, pg_column
from .catalogs import install_shop_catalog

__all__ = [
    "FakeProvider",
    "pg_column",
    "install_shop_catalog",
]
