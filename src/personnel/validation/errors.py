"""
Validation error raised before a row reaches the store.
"""

from __future__ import annotations

from typing import Dict, List, Mapping

from ..errors import ConstraintViolation


class ValidationError(ConstraintViolation):
    """
    Aggregated validation error storing field-to-messages mapping.
    """

    def __init__(self, errors: Mapping[str, List[str]]) -> None:
        self.errors: Dict[str, List[str]] = {
            key: list(messages) for key, messages in errors.items()
        }
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        segments = []
        for field, messages in self.errors.items():
            prefix = field if field != "__all__" else "non-field"
            segments.append(f"{prefix}: {'; '.join(messages)}")
        return "; ".join(segments)
