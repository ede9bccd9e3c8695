"""
Append-only audit log.

Entries are written once and never updated or deleted. Rows are decoded into
one canonical form on the way out: older rows that stored a check-in or
check-out as ``update`` + ``details._actionType`` come back as a first-class
``check_in``/``check_out`` entry with ``quantityChange`` filled in.
"""
import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models, schemas
from .auth import Actor, display_name
from .timestamps import now_iso

logger = logging.getLogger(__name__)

MOVE_ACTIONS = ("check_in", "check_out")
LEGACY_HINT_KEYS = ("_actionType", "_quantityChange")

# Entries a non-admin reader may see
USER_VISIBLE_ACTIONS = ("check_in", "check_out", "delete")


def append(
    db: Session,
    action: str,
    item_id: Optional[str],
    user_name: str,
    details: Optional[Dict[str, Any]] = None,
    timestamp: Optional[str] = None,
) -> models.AuditLog:
    """
    Append an entry to the log.

    The sequence number is assigned by the database and the timestamp is set
    here unless the caller passes the timestamp of the change it records.

    Returns:
        The stored AuditLog row
    """
    entry = models.AuditLog(
        action=action,
        item_id=item_id,
        user_name=user_name,
        details=details or {},
        timestamp=timestamp or now_iso(),
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def record(
    db: Session,
    action: str,
    item_id: Optional[str],
    user_name: str,
    details: Optional[Dict[str, Any]] = None,
    timestamp: Optional[str] = None,
) -> Optional[schemas.AuditLogEntry]:
    """
    Append an entry after a change has already been committed.

    The change stands even if this write fails: the failure is logged and
    None is returned, leaving the log one entry short.
    """
    try:
        row = append(db, action, item_id, user_name, details, timestamp)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Audit append failed for {action} on '{item_id}' by {user_name}: {e}")
        return None
    return decode_entry(row)


def _raw_fields(entry: Any) -> Dict[str, Any]:
    if isinstance(entry, dict):
        return {
            "id": entry.get("id"),
            "action": entry.get("action"),
            "item_id": entry.get("itemId", entry.get("item_id")),
            "user_name": entry.get("userName", entry.get("user_name")),
            "details": entry.get("details"),
            "timestamp": entry.get("timestamp"),
        }
    return {
        "id": entry.id,
        "action": entry.action,
        "item_id": entry.item_id,
        "user_name": entry.user_name,
        "details": entry.details,
        "timestamp": entry.timestamp,
    }


def _magnitude(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return abs(value)


def decode_entry(entry: Any) -> schemas.AuditLogEntry:
    """
    Decode a stored row (ORM object or dict) into its canonical entry.

    Raises:
        pydantic.ValidationError: if the action is unknown or the payload
            does not fit the action's shape
    """
    fields = _raw_fields(entry)
    action = fields["action"]
    details = fields["details"] or {}
    if isinstance(details, str):
        details = json.loads(details or "{}")
    details = dict(details)

    legacy = False
    if action == "update" and details.get("_actionType") in MOVE_ACTIONS:
        action = details["_actionType"]
        legacy = True

    if action in MOVE_ACTIONS:
        change = details.get("quantityChange")
        if change is None:
            change = details.get("_quantityChange")
        details["quantityChange"] = _magnitude(change)

    for key in LEGACY_HINT_KEYS:
        details.pop(key, None)

    return schemas.audit_entry_adapter.validate_python({
        "id": fields["id"],
        "action": action,
        "item_id": fields["item_id"],
        "user_name": display_name(fields["user_name"], action),
        "timestamp": fields["timestamp"],
        "details": details,
        "legacy": legacy,
    })


def canonical(entry: Any) -> schemas.AuditLogEntry:
    """Pass canonical entries through; decode anything else."""
    if isinstance(entry, schemas.AuditEntryBase):
        return entry
    return decode_entry(entry)


def decode_rows(rows: Iterable[Any]) -> List[schemas.AuditLogEntry]:
    """
    Decode rows, skipping (and logging) any that do not fit a known shape.
    """
    entries = []
    for row in rows:
        try:
            entries.append(decode_entry(row))
        except (ValidationError, ValueError) as e:
            logger.warning(f"Skipping undecodable audit row {_raw_fields(row)['id']}: {e}")
    return entries


def list_entries(db: Session, limit: int, item_id: Optional[str] = None) -> List[schemas.AuditLogEntry]:
    """
    Retrieve the newest entries first.

    Args:
        db: Database session
        limit: Maximum number of entries to return
        item_id: Only entries for this item, if given

    Returns:
        Canonical entries ordered by (timestamp, id) descending
    """
    query = db.query(models.AuditLog)
    if item_id is not None:
        query = query.filter(models.AuditLog.item_id == item_id)
    rows = (
        query.order_by(models.AuditLog.timestamp.desc(), models.AuditLog.id.desc())
        .limit(limit)
        .all()
    )
    return decode_rows(rows)


def entries_since(db: Session, since: str) -> List[schemas.AuditLogEntry]:
    """
    Every entry written on or after the day of ``since``, newest first.

    Timestamps are stored as ISO strings, so the comparison is on the date
    prefix; callers narrow to the exact window themselves.
    """
    rows = (
        db.query(models.AuditLog)
        .filter(models.AuditLog.timestamp >= since[:10])
        .order_by(models.AuditLog.timestamp.desc(), models.AuditLog.id.desc())
        .all()
    )
    return decode_rows(rows)


def visible_to(entries: Iterable[schemas.AuditLogEntry], actor: Actor) -> List[schemas.AuditLogEntry]:
    """Admins see everything; other readers see check-ins, check-outs and deletes."""
    if actor.is_admin:
        return list(entries)
    return [entry for entry in entries if entry.action in USER_VISIBLE_ACTIONS]


def search(
    entries: Iterable[schemas.AuditLogEntry],
    query: Optional[str],
    names_by_id: Optional[Dict[str, str]] = None,
) -> List[schemas.AuditLogEntry]:
    """
    Case-insensitive search over item name, actor, action and item ID.
    """
    entries = list(entries)
    needle = (query or "").strip().lower()
    if not needle:
        return entries
    names_by_id = names_by_id or {}

    def matches(entry) -> bool:
        haystack = (
            names_by_id.get(entry.item_id, "") if entry.item_id else "",
            entry.user_name or "",
            entry.action,
            entry.item_id or "",
        )
        return any(needle in value.lower() for value in haystack)

    return [entry for entry in entries if matches(entry)]
