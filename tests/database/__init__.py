"""Tests for the database introspection package."""
