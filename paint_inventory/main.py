"""
Paint Inventory Service API

This module implements the FastAPI application for the paint inventory: item
CRUD, check-in/check-out transactions, the audit log, ID settings and the
dashboard projection, with SQLAlchemy persistence.

Endpoints:
    GET /api/items: List all items
    GET /api/items/{item_id}: Get a single item
    POST /api/items: Create an item (generated or custom ID)
    PUT /api/items/{item_id}: Update an item, honoring check-in/out hints
    DELETE /api/items/{item_id}: Delete an item
    POST /api/items/{item_id}/change-id: Rename an item
    POST /api/items/{item_id}/check-in|check-out|adjust: Quantity transactions
    GET /api/items/{item_id}/audit|last-action: Item history
    GET|POST /api/settings/next-id: Next generated ID cursor
    GET|POST /api/settings/min-quantity: Global low-stock threshold
    GET /api/audit: Audit log, newest first
    GET /api/dashboard: Dashboard figures
    GET /api/export/csv: CSV export (admin)
    POST /api/auth/token: Issue a bearer token
    GET /api/health: Health check

Attributes:
    app (FastAPI): The FastAPI application instance configured with the title "paint-inventory"
"""
import csv
import io
import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.orm import Session

from . import allocation, analytics, audit, auth, cache, crud, models, schemas, thresholds, transactions
from .config import DEFAULT_AUDIT_LIMIT, MAX_AUDIT_LIMIT, STALE_DAYS
from .database import SessionLocal, engine, get_db
from .errors import Result
from .timestamps import now_iso, utc_now

logger = logging.getLogger(__name__)

__version__ = "1.0.0"

# Create database tables
models.Base.metadata.create_all(bind=engine)
with SessionLocal() as _db:
    crud.ensure_default_settings(_db)

app = FastAPI(title="paint-inventory")


@app.exception_handler(OperationalError)
@app.exception_handler(DisconnectionError)
async def storage_unavailable_handler(request: Request, exc: Exception):
    logger.error(f"Storage unavailable on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"success": False, "error": "Service unavailable"},
    )


def _failure(result: Result) -> JSONResponse:
    logger.warning(f"{result.kind.value if result.kind else 'Error'}: {result.error}")
    return JSONResponse(status_code=result.status_code, content={"success": False, "error": result.error})


def _item_result(result: Result) -> schemas.ItemResult:
    item = result.value.item
    return schemas.ItemResult(success=True, item=schemas.Item.model_validate(item) if item is not None else None)


def _transaction_result(result: Result) -> schemas.TransactionResult:
    applied = result.value
    return schemas.TransactionResult(
        success=True,
        item=schemas.Item.model_validate(applied.item) if applied.item is not None else None,
        entry=applied.entry,
    )


@app.get("/")
def root():
    """Service info."""
    return {
        "message": "Paint Inventory API",
        "version": __version__,
        "endpoints": ["/api/items", "/api/audit", "/api/settings", "/api/dashboard", "/api/health"],
    }


@app.get("/api/health", response_model=schemas.HealthResponse)
def health():
    """
    Health check endpoint.

    Returns:
        dict: {"status": "ok", "timestamp": <ISO-8601 now>}
    """
    return {"status": "ok", "timestamp": now_iso()}


@app.post("/api/auth/token", response_model=schemas.Token)
def issue_token(request: schemas.TokenRequest):
    """
    Issue a bearer token for a display name.

    The admin name yields an admin token; any other name a user token.
    """
    actor = auth.actor_from_name(request.user_name)
    return {
        "access_token": auth.create_access_token(actor),
        "token_type": "bearer",
        "role": actor.role.value,
    }


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------

@app.get("/api/items", response_model=List[schemas.Item])
def list_items(db: Session = Depends(get_db)):
    """List all items ordered by ID."""
    return crud.get_items(db)


@app.get("/api/items/{item_id}", response_model=schemas.Item)
def get_item(item_id: str, db: Session = Depends(get_db)):
    """
    Get a single item by ID.

    Raises:
        HTTPException: 404 if item not found
    """
    db_item = crud.get_item(db, item_id)
    if db_item is None:
        raise HTTPException(status_code=404, detail="Item not found")
    return db_item


@app.post("/api/items", response_model=schemas.ItemResult, status_code=status.HTTP_201_CREATED)
def create_item(
    item: schemas.ItemCreate,
    db: Session = Depends(get_db),
    token_actor: Optional[auth.Actor] = Depends(auth.get_token_actor),
):
    """
    Create an item (admin only).

    Omit ``id`` (or send it blank) to get the next generated ID.

    Returns:
        {success, item}, or {success: false, error} with 400/403
    """
    actor = auth.resolve_actor(token_actor, item.user_name)
    fields = item.model_dump(exclude={"id", "user_name"})
    result = transactions.add_item(db, fields, actor, requested_id=item.id)
    if not result.success:
        return _failure(result)
    return _item_result(result)


@app.put("/api/items/{item_id}", response_model=schemas.ItemResult)
def update_item(
    item_id: str,
    item: schemas.ItemUpdate,
    db: Session = Depends(get_db),
    token_actor: Optional[auth.Actor] = Depends(auth.get_token_actor),
):
    """
    Update an item.

    A body carrying ``_actionType`` of check_in/check_out is a stock move
    open to every user; any other change needs admin.
    """
    actor = auth.resolve_actor(token_actor, item.user_name)
    result = transactions.update_with_hints(db, item_id, item.model_dump(exclude_unset=True), actor)
    if not result.success:
        return _failure(result)
    return _item_result(result)


@app.delete("/api/items/{item_id}", response_model=schemas.OperationResponse)
def delete_item(
    item_id: str,
    body: Optional[schemas.ActorRequest] = None,
    db: Session = Depends(get_db),
    token_actor: Optional[auth.Actor] = Depends(auth.get_token_actor),
):
    """Delete an item (admin only)."""
    actor = auth.resolve_actor(token_actor, body.user_name if body else None)
    result = transactions.delete_item(db, item_id, actor)
    if not result.success:
        return _failure(result)
    return {"success": True}


@app.post("/api/items/{item_id}/change-id")
def change_item_id(
    item_id: str,
    request: schemas.ChangeIdRequest,
    db: Session = Depends(get_db),
    token_actor: Optional[auth.Actor] = Depends(auth.get_token_actor),
):
    """
    Rename an item (admin only).

    Returns:
        {success, itemId} with the normalized new ID
    """
    actor = auth.resolve_actor(token_actor, request.user_name)
    result = transactions.change_item_id(db, item_id, request.new_id, actor)
    if not result.success:
        return _failure(result)
    return {"success": True, "itemId": result.value.item.id}


@app.post("/api/items/{item_id}/check-in", response_model=schemas.TransactionResult)
def check_in(
    item_id: str,
    request: schemas.QuantityRequest,
    db: Session = Depends(get_db),
    token_actor: Optional[auth.Actor] = Depends(auth.get_token_actor),
):
    """Add gallons to an item."""
    actor = auth.resolve_actor(token_actor, request.user_name)
    result = transactions.check_in(db, item_id, request.quantity, actor)
    if not result.success:
        return _failure(result)
    return _transaction_result(result)


@app.post("/api/items/{item_id}/check-out", response_model=schemas.TransactionResult)
def check_out(
    item_id: str,
    request: schemas.QuantityRequest,
    db: Session = Depends(get_db),
    token_actor: Optional[auth.Actor] = Depends(auth.get_token_actor),
):
    """Remove gallons from an item; the quantity stops at zero."""
    actor = auth.resolve_actor(token_actor, request.user_name)
    result = transactions.check_out(db, item_id, request.quantity, actor)
    if not result.success:
        return _failure(result)
    return _transaction_result(result)


@app.post("/api/items/{item_id}/adjust", response_model=schemas.TransactionResult)
def adjust(
    item_id: str,
    request: schemas.QuantityRequest,
    db: Session = Depends(get_db),
    token_actor: Optional[auth.Actor] = Depends(auth.get_token_actor),
):
    """Set an item's quantity directly (admin only)."""
    actor = auth.resolve_actor(token_actor, request.user_name)
    result = transactions.adjust_quantity(db, item_id, request.quantity, actor)
    if not result.success:
        return _failure(result)
    return _transaction_result(result)


@app.get("/api/items/{item_id}/audit", response_model=List[schemas.AuditLogEntry])
def item_history(
    item_id: str,
    limit: int = Query(DEFAULT_AUDIT_LIMIT, ge=1),
    user_name: Optional[str] = Query(None, alias="userName"),
    db: Session = Depends(get_db),
    token_actor: Optional[auth.Actor] = Depends(auth.get_token_actor),
):
    """Audit entries for one item, newest first."""
    actor = auth.resolve_actor(token_actor, user_name)
    entries = audit.list_entries(db, min(limit, MAX_AUDIT_LIMIT), item_id=item_id)
    return audit.visible_to(entries, actor)


@app.get("/api/items/{item_id}/last-action", response_model=Optional[schemas.AuditLogEntry])
def last_action(item_id: str, db: Session = Depends(get_db)):
    """Most recent audit entry for an item, or null."""
    entries = audit.list_entries(db, MAX_AUDIT_LIMIT, item_id=item_id)
    return analytics.last_action_for_item(entries, item_id)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@app.get("/api/settings/next-id", response_model=schemas.NextIdResponse)
def get_next_id(db: Session = Depends(get_db)):
    """The cursor for the next generated ID and how that ID will look."""
    next_id, formatted = allocation.get_next_cursor(db)
    return schemas.NextIdResponse(next_id=next_id, next_id_formatted=formatted)


@app.post("/api/settings/next-id", response_model=schemas.OperationResponse)
def set_next_id(
    request: schemas.NextIdRequest,
    db: Session = Depends(get_db),
    token_actor: Optional[auth.Actor] = Depends(auth.get_token_actor),
):
    """Set the next generated ID (admin only)."""
    actor = auth.resolve_actor(token_actor, request.user_name)
    result = allocation.set_next_cursor(db, request.next_id, actor)
    if not result.success:
        return _failure(result)
    return {"success": True}


@app.get("/api/settings/min-quantity", response_model=schemas.MinQuantityResponse)
def get_min_quantity(db: Session = Depends(get_db)):
    return schemas.MinQuantityResponse(min_quantity=thresholds.get_min_quantity(db))


@app.post("/api/settings/min-quantity", response_model=schemas.OperationResponse)
def set_min_quantity(
    request: schemas.MinQuantityRequest,
    db: Session = Depends(get_db),
    token_actor: Optional[auth.Actor] = Depends(auth.get_token_actor),
):
    """Set the global low-stock threshold (admin only)."""
    actor = auth.resolve_actor(token_actor, request.user_name)
    result = thresholds.set_min_quantity(db, request.min_quantity, actor)
    if not result.success:
        return _failure(result)
    cache.invalidate_dashboard()
    return {"success": True}


# ---------------------------------------------------------------------------
# Audit log and analytics
# ---------------------------------------------------------------------------

@app.get("/api/audit", response_model=List[schemas.AuditLogEntry])
def list_audit(
    limit: int = Query(DEFAULT_AUDIT_LIMIT, ge=1),
    item_id: Optional[str] = Query(None, alias="itemId"),
    q: Optional[str] = None,
    user_name: Optional[str] = Query(None, alias="userName"),
    db: Session = Depends(get_db),
    token_actor: Optional[auth.Actor] = Depends(auth.get_token_actor),
):
    """
    Audit log, newest first.

    Args:
        limit: Maximum number of entries (capped at MAX_AUDIT_LIMIT)
        item_id: Only entries for this item
        q: Case-insensitive search over item name, actor, action and item ID
        user_name: Reader; non-admins only see check-ins, check-outs and deletes
    """
    actor = auth.resolve_actor(token_actor, user_name)
    entries = audit.list_entries(db, min(limit, MAX_AUDIT_LIMIT), item_id=item_id)
    entries = audit.visible_to(entries, actor)
    if q:
        names_by_id = {item.id: item.name for item in crud.get_items(db)}
        entries = audit.search(entries, q, names_by_id)
    return entries


@app.get("/api/dashboard", response_model=schemas.DashboardSummary)
def dashboard(
    period: str = Query("week", pattern="^(week|month)$"),
    stale_days: int = Query(STALE_DAYS, alias="staleDays", ge=1),
    db: Session = Depends(get_db),
):
    """
    Dashboard figures: gallons moved this week, busiest item of the week or
    month, stale, low-stock and out-of-stock counts, stock value.
    """
    key = cache.dashboard_key(period, stale_days)
    cached = cache.get_cache(key)
    if cached:
        return cached

    now = utc_now()
    since = min(analytics.week_range(now).start, analytics.month_range(now).start)
    summary = analytics.dashboard_summary(
        crud.get_items(db),
        audit.entries_since(db, since),
        thresholds.get_min_quantity(db),
        period=period,
        stale_days=stale_days,
    )
    cache.set_cache(key, summary.model_dump(by_alias=True))
    return summary


@app.get("/api/export/csv")
def export_csv(
    user_name: Optional[str] = Query(None, alias="userName"),
    db: Session = Depends(get_db),
    token_actor: Optional[auth.Actor] = Depends(auth.get_token_actor),
):
    """
    Export all items to CSV (admin only).

    Returns:
        CSV file with columns: Paint ID, Color Name, Quantity (gal), Type,
        Location, Description, Price, Last Scanned, Last Scanned By
    """
    actor = auth.resolve_actor(token_actor, user_name)
    if not auth.is_authorized(actor, "export"):
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"success": False, "error": "Only admin can export inventory."},
        )

    output = io.StringIO()
    writer = csv.writer(output)

    # Write header
    writer.writerow([
        "Paint ID", "Color Name", "Quantity (gal)", "Type", "Location",
        "Description", "Price", "Last Scanned", "Last Scanned By",
    ])

    # Write data
    for item in crud.get_items(db):
        writer.writerow([
            item.id,
            item.name,
            item.quantity,
            item.type or "",
            item.location or "",
            item.description or "",
            f"{float(item.price):.2f}" if item.price is not None else "",
            item.last_scanned or "",
            auth.display_name(item.last_scanned_by) if item.last_scanned_by else "",
        ])

    output.seek(0)
    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=paint_inventory.csv"},
    )
