"""
DDL generation from entity metadata.
"""

from .builder import SchemaBuilder, SchemaError

__all__ = ["SchemaBuilder", "SchemaError"]
