"""
Validation functions for configuration values.

This module provides the small set of validators used when loading job
settings and checking that required environment values are present.
"""

import re
from typing import Any, List, Mapping, Optional

from .exceptions import ValidationError


def validate_positive_integer(
    value: Any,
    min_value: int = 1,
    max_value: Optional[int] = None,
    field_name: str = "value"
) -> int:
    """
    Validate that a value is a positive integer.

    Args:
        value: Value to validate
        min_value: Minimum allowed value (inclusive)
        max_value: Maximum allowed value (inclusive), None for no limit
        field_name: Name of the field being validated

    Returns:
        Validated integer value

    Raises:
        ValidationError: If validation fails
    """
    if isinstance(value, bool):
        raise ValidationError(
            f"{field_name} must be a valid integer, got {value}",
            field_name=field_name,
            value=value
        )
    try:
        int_value = int(value)
    except (ValueError, TypeError):
        raise ValidationError(
            f"{field_name} must be a valid integer, got {value}",
            field_name=field_name,
            value=value
        )
    if int_value < min_value:
        raise ValidationError(
            f"{field_name} must be >= {min_value}, got {int_value}",
            field_name=field_name,
            value=value
        )
    if max_value is not None and int_value > max_value:
        raise ValidationError(
            f"{field_name} must be <= {max_value}, got {int_value}",
            field_name=field_name,
            value=value
        )
    return int_value


def validate_positive_float(
    value: Any,
    min_value: float = 0.0,
    max_value: Optional[float] = None,
    field_name: str = "value"
) -> float:
    """
    Validate that a value is a positive float.

    Args:
        value: Value to validate
        min_value: Minimum allowed value (inclusive)
        max_value: Maximum allowed value (inclusive), None for no limit
        field_name: Name of the field being validated

    Returns:
        Validated float value

    Raises:
        ValidationError: If validation fails
    """
    if isinstance(value, bool):
        raise ValidationError(
            f"{field_name} must be a valid number, got {value}",
            field_name=field_name,
            value=value
        )
    try:
        float_value = float(value)
    except (ValueError, TypeError):
        raise ValidationError(
            f"{field_name} must be a valid number, got {value}",
            field_name=field_name,
            value=value
        )
    if float_value < min_value:
        raise ValidationError(
            f"{field_name} must be >= {min_value}, got {float_value}",
            field_name=field_name,
            value=value
        )
    if max_value is not None and float_value > max_value:
        raise ValidationError(
            f"{field_name} must be <= {max_value}, got {float_value}",
            field_name=field_name,
            value=value
        )
    return float_value


def validate_non_empty_string(value: Any, field_name: str = "value") -> str:
    """
    Validate that a value is a string with visible content.

    Raises:
        ValidationError: If the value is not a non-empty string
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(
            f"{field_name} must be a non-empty string",
            field_name=field_name,
            value=value
        )
    return value


def validate_env_prefix(prefix: Any, field_name: str = "env_prefix") -> str:
    """
    Validate an environment variable name prefix (e.g. ``PROJECT_ENVIRONMENT_``).

    Raises:
        ValidationError: If the prefix is not a valid variable-name fragment
    """
    validate_non_empty_string(prefix, field_name)
    if not re.match(r'^[A-Za-z_][A-Za-z0-9_]*$', prefix):
        raise ValidationError(
            f"{field_name} must contain only letters, digits and underscores: {prefix}",
            field_name=field_name,
            value=prefix
        )
    return prefix


def validate_required_fields(
    values: Mapping[str, Any],
    context: str = "configuration"
) -> None:
    """
    Check that every required value is present and non-empty.

    All fields are checked before failing, so the error names every missing
    field rather than only the first one encountered.

    Args:
        values: Mapping of field name to its (possibly missing) value
        context: Description used in the error message

    Raises:
        ValidationError: If one or more fields are missing
    """
    missing: List[str] = [
        name for name, value in values.items()
        if value is None or (isinstance(value, str) and not value.strip())
    ]
    if missing:
        raise ValidationError(
            f"Missing required {context}: {', '.join(missing)}",
            missing_fields=missing
        )
