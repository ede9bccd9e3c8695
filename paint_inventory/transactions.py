"""
Quantity transaction engine.

The only code path that changes an item's quantity. Each call performs one
item write followed by one audit append. The item write is a compare-and-swap
on the stored quantity, retried a bounded number of times, so racing
check-ins on the same item never lose an update. The audit append happens
after the item write has committed; if it fails the change stands and the
failure is logged.
"""
import enum
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, NamedTuple, Optional

from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from . import allocation, audit, cache, codec, crud, models, schemas
from .auth import Actor, is_authorized
from .config import CAS_MAX_RETRIES
from .errors import ErrorKind, Result
from .timestamps import now_iso
from .validators import parse_magnitude, validate_item_fields

logger = logging.getLogger(__name__)

# Descriptive fields an admin edits directly; quantity and scan fields go through the engine
EDITABLE_FIELDS = ("name", "min_quantity", "price", "type", "location", "description")


class TransactionKind(str, enum.Enum):
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"
    MANUAL_ADJUST = "manual_adjust"
    ADD = "add"
    DELETE = "delete"


class Applied(NamedTuple):
    """Item after the transaction (None after a delete) and the entry it logged."""
    item: Optional[models.Item]
    entry: Optional[schemas.AuditLogEntry]


class _Swap(NamedTuple):
    item: models.Item
    old_quantity: int
    new_quantity: int
    timestamp: str


def _swap(
    db: Session,
    item_id: str,
    target: Callable[[int], int],
    actor: Actor,
    extra: Optional[Dict[str, Any]] = None,
) -> Result:
    """
    Read-compute-write the quantity of one item as a compare-and-swap.

    ``target`` maps the stored quantity to the new one. The scan fields are
    stamped with the same timestamp the audit entry will carry.
    """
    for attempt in range(CAS_MAX_RETRIES):
        db_item = crud.get_item_for_update(db, item_id)
        if db_item is None:
            db.rollback()
            return Result.fail(ErrorKind.NOT_FOUND, "Item not found")

        old_quantity = db_item.quantity or 0
        new_quantity = target(old_quantity)
        timestamp = now_iso()
        fields = dict(extra or {})
        fields["last_scanned"] = timestamp
        fields["last_scanned_by"] = actor.name

        if crud.swap_quantity(db, item_id, old_quantity, new_quantity, fields):
            db.refresh(db_item)
            return Result.ok(_Swap(db_item, old_quantity, new_quantity, timestamp))
        logger.warning(f"Quantity of '{item_id}' changed underneath us (attempt {attempt + 1}), retrying")

    return Result.fail(ErrorKind.UNREACHABLE, "Item is busy, try again")


def _finish(item: Optional[models.Item], entry: Optional[schemas.AuditLogEntry]) -> Result:
    cache.invalidate_dashboard()
    return Result.ok(Applied(item, entry))


def _move(db: Session, item_id: str, quantity: Any, actor: Actor, kind: TransactionKind) -> Result:
    if not is_authorized(actor, kind.value):
        return Result.fail(ErrorKind.NOT_AUTHORIZED, "Not allowed to move stock.")

    magnitude, error = parse_magnitude(quantity)
    if magnitude is None:
        return Result.fail(ErrorKind.INVALID_INPUT, error)
    signed = magnitude if kind == TransactionKind.CHECK_IN else -magnitude

    result = _swap(db, item_id, lambda old: max(0, old + signed), actor)
    if not result.success:
        return result
    swap = result.value

    # Record what was actually applied once clamped at zero
    applied = abs(swap.new_quantity - swap.old_quantity)
    entry = audit.record(
        db,
        kind.value,
        item_id,
        actor.name,
        {
            "quantityChange": applied,
            "oldQuantity": swap.old_quantity,
            "newQuantity": swap.new_quantity,
        },
        timestamp=swap.timestamp,
    )
    logger.info(
        f"{actor.name} {kind.value} {applied} gal of '{item_id}': "
        f"{swap.old_quantity} -> {swap.new_quantity}"
    )
    return _finish(swap.item, entry)


def check_in(db: Session, item_id: str, quantity: Any, actor: Actor) -> Result:
    """Add ``|quantity|`` gallons to an item."""
    return _move(db, item_id, quantity, actor, TransactionKind.CHECK_IN)


def check_out(db: Session, item_id: str, quantity: Any, actor: Actor) -> Result:
    """Remove ``|quantity|`` gallons from an item, stopping at zero."""
    return _move(db, item_id, quantity, actor, TransactionKind.CHECK_OUT)


def _adjust(
    db: Session,
    item_id: str,
    target: Callable[[int], int],
    actor: Actor,
    changes: Optional[Dict[str, Any]] = None,
) -> Result:
    """Admin quantity change, logged as an ``update`` with the quantity fields."""
    result = _swap(db, item_id, target, actor, extra=changes)
    if not result.success:
        return result
    swap = result.value

    details = {to_camel(key): _jsonable(value) for key, value in (changes or {}).items()}
    details.update({
        "quantityChange": abs(swap.new_quantity - swap.old_quantity),
        "oldQuantity": swap.old_quantity,
        "newQuantity": swap.new_quantity,
    })
    entry = audit.record(db, "update", item_id, actor.name, details, timestamp=swap.timestamp)
    logger.info(f"{actor.name} adjusted '{item_id}': {swap.old_quantity} -> {swap.new_quantity}")
    return _finish(swap.item, entry)


def adjust_quantity(db: Session, item_id: str, new_quantity: Any, actor: Actor) -> Result:
    """
    Set an item's quantity directly (admin only).

    Args:
        db: Database session
        item_id: Item to adjust
        new_quantity: The new absolute quantity
        actor: Acting user

    Returns:
        Result carrying Applied(item, entry); no entry is written when the
        quantity is already ``new_quantity``
    """
    if not is_authorized(actor, "update"):
        return Result.fail(ErrorKind.NOT_AUTHORIZED, "Only admin can adjust quantities.")
    is_valid, error = validate_item_fields({"quantity": new_quantity})
    if not is_valid:
        return Result.fail(ErrorKind.INVALID_INPUT, error)

    db_item = crud.get_item(db, item_id)
    if db_item is None:
        return Result.fail(ErrorKind.NOT_FOUND, "Item not found")
    if db_item.quantity == new_quantity:
        return Result.ok(Applied(db_item, None))
    return _adjust(db, item_id, lambda old: new_quantity, actor)


def add_item(db: Session, fields: Dict[str, Any], actor: Actor, requested_id: Optional[str] = None) -> Result:
    """
    Create an item with its starting quantity (admin only).

    A blank ``requested_id`` gets an auto-generated ID; anything else is
    normalized and used as long as it is free.

    Returns:
        Result carrying Applied(item, entry)
    """
    if not is_authorized(actor, "add"):
        return Result.fail(ErrorKind.NOT_AUTHORIZED, "Only admin can add paints.")

    fields = dict(fields)
    fields.setdefault("name", "")
    is_valid, error = validate_item_fields(fields)
    if not is_valid:
        return Result.fail(ErrorKind.INVALID_INPUT, error)

    if requested_id is not None and str(requested_id).strip():
        allocated = allocation.allocate_custom(db, requested_id)
    else:
        allocated = allocation.allocate_auto(db)
    if not allocated.success:
        return allocated
    item_id = allocated.value

    timestamp = now_iso()
    quantity = fields.get("quantity") or 0
    values = {key: value for key, value in fields.items() if key in EDITABLE_FIELDS}
    values.update({
        "id": item_id,
        "quantity": quantity,
        "last_scanned": timestamp,
        "last_scanned_by": actor.name,
        "created_at": timestamp,
    })
    created = crud.create_item(db, values)
    if not created.success:
        return created

    entry = audit.record(
        db,
        TransactionKind.ADD.value,
        item_id,
        actor.name,
        {"name": values["name"], "quantity": quantity, "newQuantity": quantity},
        timestamp=timestamp,
    )
    logger.info(f"{actor.name} added '{item_id}' ({values['name']}) with {quantity} gal")
    return _finish(created.value, entry)


def delete_item(db: Session, item_id: str, actor: Actor) -> Result:
    """
    Hard-delete an item (admin only); the log keeps the quantity it had.

    Returns:
        Result carrying Applied(None, entry)
    """
    if not is_authorized(actor, "delete"):
        return Result.fail(ErrorKind.NOT_AUTHORIZED, "Only admin can delete paints.")

    db_item = crud.get_item(db, item_id)
    if db_item is None:
        return Result.fail(ErrorKind.NOT_FOUND, "Item not found")
    name, old_quantity = db_item.name, db_item.quantity

    deleted = crud.delete_item(db, item_id)
    if not deleted.success:
        return deleted

    entry = audit.record(
        db,
        TransactionKind.DELETE.value,
        item_id,
        actor.name,
        {"name": name, "oldQuantity": old_quantity, "newQuantity": 0},
    )
    logger.info(f"{actor.name} deleted '{item_id}' ({name}), had {old_quantity} gal")
    return _finish(None, entry)


def apply(
    db: Session,
    item_id: Optional[str],
    delta: Any,
    actor: Actor,
    kind: TransactionKind,
    fields: Optional[Dict[str, Any]] = None,
) -> Result:
    """
    Apply one quantity transaction.

    Args:
        db: Database session
        item_id: Target item; for ``add`` the requested ID (None to generate one)
        delta: Signed quantity change; for ``add`` the starting quantity,
            ignored for ``delete``
        actor: Acting user
        kind: Transaction kind
        fields: Item attributes for ``add``

    Returns:
        Result carrying Applied(item, entry)
    """
    kind = TransactionKind(kind)
    if kind in (TransactionKind.CHECK_IN, TransactionKind.CHECK_OUT):
        return _move(db, item_id, delta, actor, kind)
    if kind == TransactionKind.MANUAL_ADJUST:
        if not is_authorized(actor, "update"):
            return Result.fail(ErrorKind.NOT_AUTHORIZED, "Only admin can adjust quantities.")
        if isinstance(delta, bool) or not isinstance(delta, int):
            return Result.fail(ErrorKind.INVALID_INPUT, "Quantity must be a whole number of gallons")
        return _adjust(db, item_id, lambda old: max(0, old + delta), actor)
    if kind == TransactionKind.ADD:
        values = dict(fields or {})
        values["quantity"] = delta
        return add_item(db, values, actor, requested_id=item_id)
    return delete_item(db, item_id, actor)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    return value


def _changed_fields(db_item: models.Item, fields: Dict[str, Any]) -> Dict[str, Any]:
    changes = {}
    for key in EDITABLE_FIELDS:
        if key not in fields:
            continue
        if _jsonable(getattr(db_item, key)) != fields[key]:
            changes[key] = fields[key]
    return changes


def edit_item(db: Session, item_id: str, fields: Dict[str, Any], actor: Actor) -> Result:
    """
    Edit an item's fields (admin only).

    Only fields that actually change are written and recorded; a quantity
    change is applied through the compare-and-swap and adds the quantity
    fields to the entry. An edit that changes nothing writes nothing.

    Returns:
        Result carrying Applied(item, entry or None)
    """
    if not is_authorized(actor, "update"):
        return Result.fail(ErrorKind.NOT_AUTHORIZED, "Only admin can edit paints.")

    is_valid, error = validate_item_fields(fields)
    if not is_valid:
        return Result.fail(ErrorKind.INVALID_INPUT, error)

    db_item = crud.get_item(db, item_id)
    if db_item is None:
        return Result.fail(ErrorKind.NOT_FOUND, "Item not found")

    changes = _changed_fields(db_item, fields)
    new_quantity = fields.get("quantity")
    if new_quantity is not None and new_quantity != db_item.quantity:
        return _adjust(db, item_id, lambda old: new_quantity, actor, changes=changes)

    if not changes:
        return Result.ok(Applied(db_item, None))

    updated = crud.update_item(db, item_id, changes)
    if not updated.success:
        return updated
    details = {to_camel(key): _jsonable(value) for key, value in changes.items()}
    entry = audit.record(db, "update", item_id, actor.name, details)
    logger.info(f"{actor.name} edited '{item_id}': {', '.join(sorted(changes))}")
    return _finish(updated.value, entry)


def update_with_hints(db: Session, item_id: str, fields: Dict[str, Any], actor: Actor) -> Result:
    """
    Handle a whole-item update from older clients.

    When ``action_type`` marks the update as a check-in or check-out, the
    move is applied to the stored quantity using ``quantity_change`` (or the
    difference between the sent and stored quantity). Any other changed
    fields are then applied as an admin edit.

    Returns:
        Result carrying Applied(item, entry) of the last step taken
    """
    fields = dict(fields)
    action_type = fields.pop("action_type", None)
    quantity_change = fields.pop("quantity_change", None)
    for key in ("id", "user_name", "last_scanned", "last_scanned_by"):
        fields.pop(key, None)

    if action_type not in (TransactionKind.CHECK_IN.value, TransactionKind.CHECK_OUT.value):
        return edit_item(db, item_id, fields, actor)

    db_item = crud.get_item(db, item_id)
    if db_item is None:
        return Result.fail(ErrorKind.NOT_FOUND, "Item not found")

    sent_quantity = fields.pop("quantity", None)
    if quantity_change is None and sent_quantity is not None:
        quantity_change = sent_quantity - db_item.quantity
    if quantity_change is None:
        return Result.fail(ErrorKind.INVALID_INPUT, "Quantity change is required")

    # Other changes are authorized and validated before the stock moves
    if _changed_fields(db_item, fields):
        if not is_authorized(actor, "update"):
            return Result.fail(ErrorKind.NOT_AUTHORIZED, "Only admin can edit paints.")
        is_valid, error = validate_item_fields(fields)
        if not is_valid:
            return Result.fail(ErrorKind.INVALID_INPUT, error)

    # The hint's sign is ignored; the action type gives the direction
    moved = _move(db, item_id, quantity_change, actor, TransactionKind(action_type))
    if not moved.success:
        return moved

    if not _changed_fields(moved.value.item, fields):
        return moved
    return edit_item(db, item_id, fields, actor)


def change_item_id(db: Session, old_id: str, new_id: Optional[str], actor: Actor) -> Result:
    """
    Rename an item (admin only); the entry is logged under the old ID.

    Returns:
        Result carrying Applied(item, entry or None)
    """
    if not is_authorized(actor, "change_id"):
        return Result.fail(ErrorKind.NOT_AUTHORIZED, "Only admin can change IDs.")

    target = codec.normalize_id(new_id)
    if not target:
        return Result.fail(ErrorKind.INVALID_INPUT, "New ID cannot be empty")

    renamed = crud.rename_item(db, old_id, target)
    if not renamed.success:
        return renamed
    if target == old_id:
        return Result.ok(Applied(renamed.value, None))

    entry = audit.record(db, "change_id", old_id, actor.name, {"oldId": old_id, "newId": target})
    logger.info(f"{actor.name} changed ID '{old_id}' -> '{target}'")
    return _finish(renamed.value, entry)
