"""
Analytics projector.

Pure functions over items and audit entries: no database access, no clock
reads unless ``now`` is omitted. Entries may be ORM rows, dicts or decoded
entries; they are canonicalized first, so the legacy ``update`` +
``_actionType`` encoding counts as the check-in or check-out it describes.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from . import audit, schemas
from .timestamps import parse_timestamp, to_iso, utc_now

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

# Actions that touch quantity and therefore stamp lastScanned
SCAN_ACTIONS = ("add", "check_in", "check_out")


def _reference(now: Optional[datetime]) -> datetime:
    return parse_timestamp(now) if now is not None else utc_now()


def _canonical(entries: Iterable[Any]) -> List[schemas.AuditLogEntry]:
    return [audit.canonical(entry) for entry in entries]


def _moment(entry: schemas.AuditLogEntry) -> datetime:
    return parse_timestamp(entry.timestamp) or _EPOCH


def _in_range(entry: schemas.AuditLogEntry, start: datetime, end: datetime) -> bool:
    moment = parse_timestamp(entry.timestamp)
    return moment is not None and start <= moment <= end


def gallons_moved(entries: Iterable[Any], direction: str, start: datetime, end: datetime) -> Any:
    """
    Total gallons checked in or out between ``start`` and ``end`` inclusive.

    Args:
        entries: Audit entries in any order
        direction: "check_in" or "check_out"
        start: Range start (aware datetime)
        end: Range end (aware datetime)
    """
    total = 0
    for entry in _canonical(entries):
        if entry.action == direction and _in_range(entry, start, end):
            total += entry.details.quantity_change
    return total


def most_active_item(
    entries: Iterable[Any],
    direction: str,
    start: datetime,
    end: datetime,
    names_by_id: Optional[Dict[str, str]] = None,
) -> Optional[schemas.ActiveItem]:
    """
    Item with the most gallons moved in ``direction`` during the range.

    Ties go to the item encountered first in the entries' order.

    Returns:
        ActiveItem, or None when nothing moved
    """
    totals: Dict[str, Any] = {}
    for entry in _canonical(entries):
        if entry.action != direction or not entry.item_id or not _in_range(entry, start, end):
            continue
        quantity = entry.details.quantity_change
        if quantity <= 0:
            continue
        totals[entry.item_id] = totals.get(entry.item_id, 0) + quantity

    best_id, best_total = None, 0
    for item_id, total in totals.items():
        if total > best_total:
            best_id, best_total = item_id, total
    if best_id is None:
        return None
    names_by_id = names_by_id or {}
    return schemas.ActiveItem(item_id=best_id, name=names_by_id.get(best_id), total_quantity=best_total)


def last_action_for_item(entries: Iterable[Any], item_id: str) -> Optional[schemas.AuditLogEntry]:
    """Most recent entry for an item: latest timestamp, then highest sequence number."""
    matching = [entry for entry in _canonical(entries) if entry.item_id == item_id]
    if not matching:
        return None
    return max(matching, key=lambda entry: (_moment(entry), entry.id))


def last_actions(entries: Iterable[Any]) -> Dict[str, schemas.AuditLogEntry]:
    """Most recent entry per item ID."""
    latest: Dict[str, schemas.AuditLogEntry] = {}
    for entry in _canonical(entries):
        if not entry.item_id:
            continue
        current = latest.get(entry.item_id)
        if current is None or (_moment(entry), entry.id) > (_moment(current), current.id):
            latest[entry.item_id] = entry
    return latest


def stale_items(items: Iterable[Any], cutoff_days: int, now: Optional[datetime] = None) -> List[Any]:
    """Items never scanned, or last scanned before ``now - cutoff_days``."""
    cutoff = _reference(now) - timedelta(days=cutoff_days)
    stale = []
    for item in items:
        scanned = parse_timestamp(item.last_scanned)
        if scanned is None or scanned < cutoff:
            stale.append(item)
    return stale


def low_stock(items: Iterable[Any], global_default: int) -> List[Any]:
    """Items below their own minimum, or the global one when they have none."""
    return [
        item for item in items
        if (item.quantity or 0) < (item.min_quantity if item.min_quantity is not None else global_default)
    ]


def out_of_stock(items: Iterable[Any]) -> List[Any]:
    return [item for item in items if (item.quantity or 0) <= 0]


def inventory_value(items: Iterable[Any]) -> float:
    """Sum of quantity x price; items without a price count as zero."""
    total = Decimal("0")
    for item in items:
        if item.price is None:
            continue
        total += Decimal(str(item.price)) * (item.quantity or 0)
    return float(round(total, 2))


def total_gallons(items: Iterable[Any]) -> int:
    return sum(item.quantity or 0 for item in items)


def week_range(now: Optional[datetime] = None) -> schemas.PeriodRange:
    """Sunday 00:00 through Saturday 23:59:59.999999 (UTC) of the week containing ``now``."""
    now = _reference(now)
    days_since_sunday = (now.weekday() + 1) % 7
    start = (now - timedelta(days=days_since_sunday)).replace(hour=0, minute=0, second=0, microsecond=0)
    end = start + timedelta(days=7) - timedelta(microseconds=1)
    label = f"{start.month}/{start.day}-{end.month}/{end.day}"
    return schemas.PeriodRange(start=to_iso(start), end=to_iso(end), label=label)


def month_range(now: Optional[datetime] = None) -> schemas.PeriodRange:
    """First through last instant (UTC) of the calendar month containing ``now``."""
    now = _reference(now)
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        following = start.replace(year=start.year + 1, month=1)
    else:
        following = start.replace(month=start.month + 1)
    end = following - timedelta(microseconds=1)
    return schemas.PeriodRange(start=to_iso(start), end=to_iso(end), label=start.strftime("%B %Y"))


def _bounds(period: schemas.PeriodRange) -> Tuple[datetime, datetime]:
    return parse_timestamp(period.start), parse_timestamp(period.end)


def rebuild_last_scanned(entries: Iterable[Any]) -> Dict[str, Tuple[str, str]]:
    """
    Recompute each item's (lastScanned, lastScannedBy) from the log.

    Adds, check-ins, check-outs and updates that changed the quantity stamp
    the item; renames carry the stamp over to the new ID.

    Returns:
        Mapping of item ID to (timestamp, user name)
    """
    ordered = sorted(_canonical(entries), key=lambda entry: (_moment(entry), entry.id))
    scans: Dict[str, Tuple[str, str]] = {}
    for entry in ordered:
        if entry.action == "change_id":
            if entry.details.old_id in scans:
                scans[entry.details.new_id] = scans.pop(entry.details.old_id)
            continue
        if entry.action == "delete":
            scans.pop(entry.item_id, None)
            continue
        if not entry.item_id:
            continue
        if entry.action in SCAN_ACTIONS or (
            entry.action == "update" and entry.details.new_quantity is not None
        ):
            scans[entry.item_id] = (entry.timestamp, entry.user_name)
    return scans


def dashboard_summary(
    items: List[Any],
    entries: Iterable[Any],
    min_quantity: int,
    period: str = "week",
    stale_days: int = 30,
    now: Optional[datetime] = None,
) -> schemas.DashboardSummary:
    """
    Project the dashboard figures.

    Args:
        items: Current items
        entries: Audit entries covering at least the selected period
        min_quantity: Global low-stock threshold
        period: "week" or "month", the window for the busiest item
        stale_days: Cutoff for stale items
        now: Reference time (defaults to the current time)
    """
    now = _reference(now)
    entries = _canonical(entries)
    week = week_range(now)
    selected = month_range(now) if period == "month" else week
    week_start, week_end = _bounds(week)
    period_start, period_end = _bounds(selected)
    names_by_id = {item.id: item.name for item in items}

    return schemas.DashboardSummary(
        gallons_out_this_week=gallons_moved(entries, "check_out", week_start, week_end),
        gallons_in_this_week=gallons_moved(entries, "check_in", week_start, week_end),
        busiest_item=most_active_item(entries, "check_out", period_start, period_end, names_by_id),
        week=week,
        period=selected,
        stale_days=stale_days,
        stale_count=len(stale_items(items, stale_days, now)),
        low_stock_count=len(low_stock(items, min_quantity)),
        out_of_stock_count=len(out_of_stock(items)),
        min_quantity=min_quantity,
        total_items=len(items),
        total_gallons=total_gallons(items),
        total_value=inventory_value(items),
    )
