"""
Business-rule validation for item fields and settings values.

Each validator returns a tuple of (is_valid, error_message), or
(value, error_message) for the parsers.
"""
from typing import Any, Dict, Optional, Tuple

PAINT_TYPES = ("paint", "primer", "clear", "stain", "dye")


def validate_item_fields(fields: Dict[str, Any]) -> Tuple[bool, str]:
    """
    Validate item fields for business rules.

    Only the keys present are checked, so this works for both creates and
    partial updates.

    Args:
        fields: Item fields keyed by attribute name

    Returns:
        Tuple of (is_valid, error_message)
    """
    if "name" in fields and not (fields["name"] or "").strip():
        return False, "Name is required"

    quantity = fields.get("quantity")
    if quantity is not None:
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            return False, "Quantity must be a whole number of gallons"
        if quantity < 0:
            return False, "Quantity cannot be negative"

    min_quantity = fields.get("min_quantity")
    if min_quantity is not None:
        if isinstance(min_quantity, bool) or not isinstance(min_quantity, int):
            return False, "Minimum quantity must be a whole number"
        if min_quantity < 0:
            return False, "Minimum quantity cannot be negative"

    price = fields.get("price")
    if price is not None and price < 0:
        return False, "Price cannot be negative"

    item_type = fields.get("type")
    if item_type is not None and item_type not in PAINT_TYPES:
        return False, f"Type must be one of: {', '.join(PAINT_TYPES)}"

    return True, ""


def validate_custom_id(requested_id: Optional[str]) -> Tuple[bool, str]:
    """
    Validate an admin-supplied item ID.

    Any non-empty string is accepted; only generated IDs follow the code shape.
    """
    if requested_id is None or not str(requested_id).strip():
        return False, "ID cannot be empty"
    return True, ""


def parse_min_quantity(value: Any) -> Tuple[Optional[int], str]:
    """
    Parse a global minimum quantity from an int or numeric string.

    Returns:
        Tuple of (parsed_value or None, error_message)
    """
    if isinstance(value, bool):
        return None, "Minimum quantity must be a whole number"
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return None, "Minimum quantity must be a whole number"
    if parsed < 0:
        return None, "Minimum quantity cannot be negative"
    return parsed, ""


def parse_magnitude(value: Any) -> Tuple[Optional[int], str]:
    """
    Parse a check-in/check-out amount.

    Returns:
        Tuple of (absolute amount or None, error_message)
    """
    if isinstance(value, bool):
        return None, "Quantity must be a whole number of gallons"
    if isinstance(value, float):
        if not value.is_integer():
            return None, "Quantity must be a whole number of gallons"
        value = int(value)
    if not isinstance(value, int):
        return None, "Quantity must be a whole number of gallons"
    if value == 0:
        return None, "Quantity must be greater than zero"
    return abs(value), ""
