"""
Input sanitization and small business-rule validators shared by the domain.

Validators raise ``ValidationError`` from ``exceptions`` so that malformed
input surfaces with the same error kind no matter which entity checks it.
"""

import re
from decimal import Decimal

from .exceptions import ValidationError

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x84\x86-\x9f]")


class DataSanitizer:
    """Utilities for cleaning and sanitizing free-text input."""

    @staticmethod
    def sanitize_string(
        value: str,
        field_name: str = "input",
        max_length: int | None = None,
        allow_empty: bool = True,
    ) -> str:
        """
        Strip whitespace and control characters from a string.

        Raises:
            ValidationError: If the value is not a string, is empty when not
                allowed, or exceeds ``max_length``
        """
        if not isinstance(value, str):
            raise ValidationError(field_name, value, "Input must be a string", "INVALID_TYPE")

        value = _CONTROL_CHARS.sub("", value.strip())

        if not allow_empty and not value:
            raise ValidationError(field_name, value, "Value cannot be empty", "EMPTY_VALUE")

        if max_length and len(value) > max_length:
            raise ValidationError(
                field_name,
                value,
                f"Value exceeds maximum length of {max_length}",
                "TOO_LONG",
            )
        return value


class BusinessRuleValidators:
    """Common business rule checks."""

    @staticmethod
    def require_text(field_name: str, value: str | None, max_length: int = 2000) -> str:
        """Return the sanitized text, rejecting ``None`` and blank strings."""
        if value is None:
            raise ValidationError(field_name, value, "Value is required", "REQUIRED")
        return DataSanitizer.sanitize_string(
            value, field_name=field_name, max_length=max_length, allow_empty=False
        )

    @staticmethod
    def require_non_negative(field_name: str, value: int | float | Decimal) -> None:
        if value is None or value < 0:
            raise ValidationError(
                field_name, value, "Value must be non-negative", "NEGATIVE_VALUE"
            )

    @staticmethod
    def require_identifier(field_name: str, value: str | None) -> str:
        if value is None or not str(value).strip():
            raise ValidationError(field_name, value, "Identifier is required", "REQUIRED")
        return str(value).strip()
