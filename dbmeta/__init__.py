"""dbmeta - introspect relational databases into a normalized metadata tree."""

__version__ = "0.1.0"
