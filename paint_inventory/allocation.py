"""
Item ID allocation.

Auto-generated IDs come from the ``next_id`` cursor in settings. The cursor is
either a numeric counter (encoded with the codec) or a literal string set by an
admin, which is handed out once. Every cursor advance is a compare-and-swap on
the settings row, so two concurrent allocations can never return the same ID.
"""
import logging
from typing import Any, Optional, Tuple

from sqlalchemy.orm import Session

from . import audit, codec, crud, models
from .auth import Actor, is_authorized
from .config import CAS_MAX_RETRIES
from .errors import ErrorKind, Result
from .validators import validate_custom_id

logger = logging.getLogger(__name__)

# Numeric counter in force when an admin switched the cursor to a literal
COUNTER_KEY = "next_id_counter"


def _is_counter(value: str) -> bool:
    return value.isdigit() and int(value) >= 1


def _read_cursor(db: Session) -> str:
    """Read the cursor, taking a row lock where the database supports it."""
    row = (
        db.query(models.Setting)
        .filter(models.Setting.key == crud.NEXT_ID_KEY)
        .populate_existing()
        .with_for_update()
        .first()
    )
    if row is None:
        crud.ensure_default_settings(db)
        return crud.get_setting(db, crud.NEXT_ID_KEY, "1")
    return row.value


def _underlying_counter(db: Session) -> int:
    value = crud.get_setting(db, COUNTER_KEY, "1")
    return int(value) if _is_counter(value) else 1


def get_next_cursor(db: Session) -> Tuple[Any, str]:
    """
    Current cursor and how the next auto ID will look.

    Returns:
        Tuple of (cursor, formatted): an int counter and its code, or a
        literal cursor twice
    """
    value = crud.get_setting(db, crud.NEXT_ID_KEY)
    if value is None:
        crud.ensure_default_settings(db)
        value = crud.get_setting(db, crud.NEXT_ID_KEY, "1")
    if _is_counter(value):
        counter = int(value)
        try:
            return counter, codec.encode(counter)
        except ValueError:
            logger.warning(f"Stored next ID {counter} is outside the code range")
            return counter, value
    return value, value


def allocate_auto(db: Session) -> Result:
    """
    Hand out the next auto-generated ID.

    A numeric cursor is encoded and advanced by one, skipping counters whose
    code is already taken by an item. A literal cursor is returned as-is and
    replaced by the counter that was in force when it was set, plus one.

    Returns:
        Result carrying the ID, or a failure if the literal is taken or the
        cursor kept changing underneath us
    """
    for attempt in range(CAS_MAX_RETRIES):
        cursor = _read_cursor(db)

        if _is_counter(cursor):
            counter = int(cursor)
            try:
                candidate = codec.encode(counter)
            except ValueError as e:
                db.rollback()
                return Result.fail(ErrorKind.INVALID_INPUT, str(e))
            following = str(counter + 1)
        else:
            candidate = cursor
            if crud.get_item(db, candidate) is not None:
                # The literal stays in place until an admin replaces it
                db.rollback()
                logger.warning(f"Literal next ID {candidate} already in use")
                return Result.fail(ErrorKind.DUPLICATE_ID, f"ID {candidate} is already in use by another paint.")
            following = str(_underlying_counter(db) + 1)

        if not crud.compare_and_set_setting(db, crud.NEXT_ID_KEY, cursor, following):
            logger.warning(f"next_id changed during allocation (attempt {attempt + 1}), retrying")
            continue

        if crud.get_item(db, candidate) is not None:
            logger.warning(f"Generated ID {candidate} already in use, skipping")
            continue

        logger.info(f"Allocated ID {candidate}")
        return Result.ok(candidate)

    return Result.fail(ErrorKind.UNREACHABLE, "Could not allocate an ID, please try again")


def allocate_custom(db: Session, requested_id: Optional[str]) -> Result:
    """
    Accept an admin-supplied ID.

    Any non-empty string is accepted after normalization; the only other
    check is that no item already uses it.

    Returns:
        Result carrying the normalized ID, or an InvalidInput/DuplicateId failure
    """
    is_valid, error = validate_custom_id(requested_id)
    if not is_valid:
        return Result.fail(ErrorKind.INVALID_INPUT, error)

    item_id = codec.normalize_id(requested_id)
    if crud.get_item(db, item_id) is not None:
        return Result.fail(ErrorKind.DUPLICATE_ID, f"ID {item_id} is already in use by another paint.")
    return Result.ok(item_id)


def _parse_counter(counter: int) -> Tuple[Optional[str], str]:
    if counter < 1:
        return None, "Next ID must be a positive number."
    if counter > codec.MAX_COUNTER:
        return None, f"Next ID must be at most {codec.MAX_COUNTER}."
    return str(counter), ""


def _parse_cursor(value: Any) -> Tuple[Optional[str], str]:
    """
    Turn an admin-supplied next ID into a stored cursor.

    Integers and numeric strings must be positive; a valid code is stored as
    its counter; any other non-empty string is stored as a literal.
    """
    if isinstance(value, bool):
        return None, "Next ID must be a positive number or a non-empty ID."
    if isinstance(value, int):
        return _parse_counter(value)

    text = ("" if value is None else str(value)).strip()
    if not text:
        return None, "Next ID cannot be empty."
    if text.lstrip("-").isdigit():
        return _parse_counter(int(text))
    counter = codec.decode(text.upper())
    if counter is not None:
        return str(counter), ""
    return text, ""


def set_next_cursor(db: Session, value: Any, actor: Actor) -> Result:
    """
    Set the cursor for the next auto-generated ID (admin only).

    No collision check happens here; it happens when the cursor is consumed.

    Returns:
        Result carrying the stored cursor
    """
    if not is_authorized(actor, "set_next_id"):
        return Result.fail(ErrorKind.NOT_AUTHORIZED, "Only admin can change the next ID.")

    cursor, error = _parse_cursor(value)
    if cursor is None:
        return Result.fail(ErrorKind.INVALID_INPUT, error)

    current = crud.get_setting(db, crud.NEXT_ID_KEY)
    if current is not None and _is_counter(current) and not _is_counter(cursor):
        # Remember the counter to resume from once the literal is used
        crud.set_setting(db, COUNTER_KEY, current)
    crud.set_setting(db, crud.NEXT_ID_KEY, cursor)
    logger.info(f"{actor.name} set next ID to {cursor}")

    stored: Any = int(cursor) if _is_counter(cursor) else cursor
    audit.record(db, "set_next_id", None, actor.name, {"nextId": stored})
    return Result.ok(stored)
