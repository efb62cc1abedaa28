"""
Validation utilities exposed at the package level.
"""

from .errors import ValidationError
from .pipeline import validate_instance

__all__ = ["ValidationError", "validate_instance"]
