"""
Listing filters and their SQL compilation.
"""

from .compiler import QueryError, SQLCompiler
from .expressions import Q

__all__ = ["Q", "QueryError", "SQLCompiler"]
