from __future__ import annotations

from typing import Any


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., product already on a stocktake)."""


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for ids and quantities coming from JSON or forms.

    Accepts ints and plain digit strings (optional leading minus).
    Rejects bools, floats, decimals and scientific notation.
    """
    if value is None:
        raise ValidationError(f"{field} is required")

    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value

    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")

    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")

    raise ValidationError(f"{field} must be an integer")


def coerce_id(value: Any, field: str) -> int:
    """Database identifiers: integers >= 1."""
    ident = coerce_int(value, field)
    if ident < 1:
        raise ValidationError(f"{field} must be a positive integer")
    return ident


def clean_text(value: Any, *, default: str = "") -> str:
    """Trim free text; None or blank falls back to default."""
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def optional_text(value: Any) -> str | None:
    """Trim free text but keep None as 'not supplied'."""
    if value is None:
        return None
    return str(value).strip()
