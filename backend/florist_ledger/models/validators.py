"""Model-level validation utilities for data integrity.

Reusable validators that enforce business rules at the ORM level,
preventing invalid data from reaching the database regardless of which
API endpoint or service writes the data.
"""


def non_negative(key: str, value):
    """Validate that a numeric value is >= 0."""
    if value is not None and value < 0:
        raise ValueError(f"{key} cannot be negative, got {value}")
    return value


def percentage(key: str, value):
    """Validate that a value is between 0 and 100 inclusive."""
    if value is not None:
        v = float(value)
        if v < 0 or v > 100:
            raise ValueError(f"{key} must be between 0 and 100, got {value}")
    return value


def required_text(key: str, value):
    """Validate that a string value is present and not blank."""
    if value is None or not str(value).strip():
        raise ValueError(f"{key} is required")
    return value
