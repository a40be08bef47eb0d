from __future__ import annotations

from typing import Any


# Upper bound for a single manual adjustment; keeps typos like 1e9 out of the ledger
MAX_ADJUSTMENT_POINTS = 10_000_000


class ValidationError(ValueError):
    """400-level input problem."""


def parse_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for JSON payloads.

    Accepts ints (not bools) and plain digit strings with an optional
    leading minus. Rejects floats, decimals and scientific notation.
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


def clamp_query_int(raw: str | None, default: int, minimum: int, maximum: int) -> int:
    """Lenient query-string integer: unparsable -> default, then clamp."""
    if raw is None or not raw.strip():
        return default
    try:
        parsed = int(raw.strip())
    except ValueError:
        return default
    return min(max(parsed, minimum), maximum)


def parse_adjustment_payload(payload: dict | None) -> tuple[int, int, str]:
    """
    Validate a manual adjustment request.

    Returns (customer_id, amount, reason).
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    customer_id = parse_int(payload.get("customer_id"), "customer_id")
    amount = parse_int(payload.get("amount"), "amount")
    if amount == 0:
        raise ValidationError("amount must be non-zero")
    if abs(amount) > MAX_ADJUSTMENT_POINTS:
        raise ValidationError(f"amount must be between -{MAX_ADJUSTMENT_POINTS} and {MAX_ADJUSTMENT_POINTS}")

    reason = payload.get("reason")
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("reason is required")
    reason = reason.strip()
    if len(reason) > 255:
        raise ValidationError("reason must be at most 255 characters")

    return customer_id, amount, reason
