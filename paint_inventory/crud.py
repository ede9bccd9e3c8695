"""
CRUD (Create, Read, Update, Delete) operations for the Paint Inventory service.

This module is the item store and the settings store. Item mutations return a
``Result`` instead of raising for missing or duplicate keys.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .config import DEFAULT_MIN_QUANTITY
from .errors import ErrorKind, Result
from .timestamps import now_iso

logger = logging.getLogger(__name__)

# Columns writable through update_item; the key itself only changes via rename_item
UPDATABLE_FIELDS = (
    "name",
    "quantity",
    "min_quantity",
    "price",
    "type",
    "location",
    "description",
    "last_scanned",
    "last_scanned_by",
)

CREATABLE_FIELDS = UPDATABLE_FIELDS + ("id", "created_at")

NEXT_ID_KEY = "next_id"
MIN_QUANTITY_KEY = "min_quantity"


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------

def get_item(db: Session, item_id: str) -> Optional[models.Item]:
    """
    Retrieve a single item by ID.

    Args:
        db: Database session
        item_id: ID of the item to retrieve

    Returns:
        Item object or None if not found
    """
    return db.query(models.Item).filter(models.Item.id == item_id).first()


def get_item_for_update(db: Session, item_id: str) -> Optional[models.Item]:
    """
    Fresh read of an item, row-locked on databases that support FOR UPDATE.
    """
    return (
        db.query(models.Item)
        .filter(models.Item.id == item_id)
        .populate_existing()
        .with_for_update()
        .first()
    )


def get_items(db: Session) -> List[models.Item]:
    """
    Retrieve all items ordered by ID.

    Args:
        db: Database session

    Returns:
        List of Item objects
    """
    return db.query(models.Item).order_by(models.Item.id).all()


def create_item(db: Session, fields: Dict[str, Any]) -> Result:
    """
    Create a new item in the database.

    Args:
        db: Database session
        fields: Item attributes; must include ``id`` and ``name``

    Returns:
        Result carrying the created Item, or a DuplicateId failure
    """
    item_id = fields.get("id")
    if not item_id:
        return Result.fail(ErrorKind.INVALID_INPUT, "ID cannot be empty")
    if get_item(db, item_id) is not None:
        return Result.fail(ErrorKind.DUPLICATE_ID, f"ID {item_id} is already in use by another paint.")

    now = now_iso()
    values = {key: value for key, value in fields.items() if key in CREATABLE_FIELDS}
    values.setdefault("quantity", 0)
    values.setdefault("location", "")
    values.setdefault("description", "")
    values.setdefault("created_at", now)
    values["updated_at"] = now

    db_item = models.Item(**values)
    db.add(db_item)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning(f"Concurrent create collided on item id '{item_id}'")
        return Result.fail(ErrorKind.DUPLICATE_ID, f"ID {item_id} is already in use by another paint.")
    db.refresh(db_item)
    return Result.ok(db_item)


def update_item(db: Session, item_id: str, fields: Dict[str, Any]) -> Result:
    """
    Update an existing item.

    Only whitelisted fields are written; ``id`` and unknown keys are ignored.

    Args:
        db: Database session
        item_id: ID of the item to update
        fields: Updated values (only provided keys are written)

    Returns:
        Result carrying the updated Item, or a NotFound failure
    """
    db_item = get_item(db, item_id)
    if db_item is None:
        return Result.fail(ErrorKind.NOT_FOUND, "Item not found")

    for key, value in fields.items():
        if key in UPDATABLE_FIELDS:
            setattr(db_item, key, value)
    db_item.updated_at = now_iso()

    db.commit()
    db.refresh(db_item)
    return Result.ok(db_item)


def swap_quantity(db: Session, item_id: str, expected: int, new: int, fields: Dict[str, Any]) -> bool:
    """
    Write a new quantity only if the stored one is still ``expected``.

    Args:
        db: Database session
        item_id: ID of the item to update
        expected: Quantity the caller read
        new: Quantity to store
        fields: Other whitelisted columns to write in the same statement

    Returns:
        True if the row was updated, False if another writer got there first
    """
    values = {key: value for key, value in fields.items() if key in UPDATABLE_FIELDS}
    values["quantity"] = new
    values["updated_at"] = now_iso()

    result = db.execute(
        update(models.Item)
        .where(models.Item.id == item_id, models.Item.quantity == expected)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def delete_item(db: Session, item_id: str) -> Result:
    """
    Delete an item from the database.

    Args:
        db: Database session
        item_id: ID of the item to delete

    Returns:
        Result with value True if deleted, or a NotFound failure
    """
    db_item = get_item(db, item_id)
    if db_item is None:
        return Result.fail(ErrorKind.NOT_FOUND, "Item not found")

    db.delete(db_item)
    db.commit()
    return Result.ok(True)


def rename_item(db: Session, old_id: str, new_id: str) -> Result:
    """
    Change an item's key, keeping every other field.

    Args:
        db: Database session
        old_id: Current ID
        new_id: Requested ID

    Returns:
        Result carrying the renamed Item, or a NotFound/DuplicateId failure
    """
    db_item = get_item(db, old_id)
    if db_item is None:
        return Result.fail(ErrorKind.NOT_FOUND, "Item not found")
    if new_id == old_id:
        return Result.ok(db_item)
    if get_item(db, new_id) is not None:
        return Result.fail(ErrorKind.DUPLICATE_ID, f"ID {new_id} is already in use.")

    db_item.id = new_id
    db_item.updated_at = now_iso()
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning(f"Concurrent rename collided on item id '{new_id}'")
        return Result.fail(ErrorKind.DUPLICATE_ID, f"ID {new_id} is already in use.")
    db.refresh(db_item)
    return Result.ok(db_item)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

def get_setting(db: Session, key: str, default: Optional[str] = None) -> Optional[str]:
    row = db.query(models.Setting).filter(models.Setting.key == key).first()
    return row.value if row is not None else default


def set_setting(db: Session, key: str, value: str) -> None:
    """Insert or replace a setting value."""
    row = db.query(models.Setting).filter(models.Setting.key == key).first()
    if row is None:
        db.add(models.Setting(key=key, value=str(value)))
    else:
        row.value = str(value)
    db.commit()


def compare_and_set_setting(db: Session, key: str, expected: str, new: str) -> bool:
    """
    Replace a setting only if it still holds ``expected``.

    Returns:
        True if the value was swapped, False if it changed underneath us
    """
    result = db.execute(
        update(models.Setting)
        .where(models.Setting.key == key, models.Setting.value == expected)
        .values(value=str(new))
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def ensure_default_settings(db: Session, next_id: str = "1", min_quantity: Optional[int] = None) -> None:
    """Seed the settings rows if they are missing."""
    defaults = {
        NEXT_ID_KEY: next_id,
        MIN_QUANTITY_KEY: str(DEFAULT_MIN_QUANTITY if min_quantity is None else min_quantity),
    }
    for key, value in defaults.items():
        if get_setting(db, key) is None:
            db.add(models.Setting(key=key, value=value))
    try:
        db.commit()
    except IntegrityError:
        # Another process seeded the row first
        db.rollback()
