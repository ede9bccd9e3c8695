"""
Global low-stock threshold stored in settings.
"""
import logging
from typing import Any

from sqlalchemy.orm import Session

from . import audit, crud
from .auth import Actor, is_authorized
from .config import DEFAULT_MIN_QUANTITY
from .errors import ErrorKind, Result
from .validators import parse_min_quantity

logger = logging.getLogger(__name__)


def get_min_quantity(db: Session) -> int:
    value = crud.get_setting(db, crud.MIN_QUANTITY_KEY)
    try:
        return int(value)
    except (TypeError, ValueError):
        return DEFAULT_MIN_QUANTITY


def set_min_quantity(db: Session, value: Any, actor: Actor) -> Result:
    """
    Change the global threshold (admin only).

    Returns:
        Result carrying the new threshold
    """
    if not is_authorized(actor, "set_min_quantity"):
        return Result.fail(ErrorKind.NOT_AUTHORIZED, "Only admin can change the minimum quantity.")

    min_quantity, error = parse_min_quantity(value)
    if min_quantity is None:
        return Result.fail(ErrorKind.INVALID_INPUT, error)

    old_min_quantity = get_min_quantity(db)
    crud.set_setting(db, crud.MIN_QUANTITY_KEY, str(min_quantity))
    logger.info(f"{actor.name} set minimum quantity {old_min_quantity} -> {min_quantity}")

    audit.record(
        db,
        "set_min_quantity",
        None,
        actor.name,
        {"minQuantity": min_quantity, "oldMinQuantity": old_min_quantity},
    )
    return Result.ok(min_quantity)
