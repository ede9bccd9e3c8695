"""
Pydantic schemas for request/response validation in the Paint Inventory service.

These schemas define the structure of data for API requests and responses.
The client speaks camelCase, so every schema serializes with camelCase aliases
while still accepting snake_case field names.
"""
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

Quantity = Union[int, float]


class CamelModel(BaseModel):
    """Base schema: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------

class ItemBase(CamelModel):
    """Base schema with common item attributes."""
    name: str
    quantity: int = 0
    min_quantity: Optional[int] = None
    price: Optional[float] = None
    type: Optional[str] = None
    location: str = ""
    description: str = ""


class ItemCreate(ItemBase):
    """Schema for creating a new item. Omit ``id`` to have one generated."""
    id: Optional[str] = None
    user_name: Optional[str] = None


class ItemUpdate(CamelModel):
    """
    Schema for updating an existing item. All fields are optional.

    ``_actionType`` and ``_quantityChange`` are hints sent by older clients to
    mark a quantity change as a check-in or check-out.
    """
    id: Optional[str] = None
    name: Optional[str] = None
    quantity: Optional[int] = None
    min_quantity: Optional[int] = None
    price: Optional[float] = None
    type: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    last_scanned: Optional[str] = None
    last_scanned_by: Optional[str] = None
    user_name: Optional[str] = None
    action_type: Optional[str] = Field(None, alias="_actionType")
    quantity_change: Optional[Quantity] = Field(None, alias="_quantityChange")


class Item(ItemBase):
    """
    Schema for item responses, includes all database fields.

    Attributes:
        id (str): Item identifier
        last_scanned (str): Timestamp of the last quantity-affecting event
        last_scanned_by (str): Actor of that event
        created_at (str): When the item was created
        updated_at (str): When the item was last modified
    """
    id: str
    last_scanned: Optional[str] = None
    last_scanned_by: Optional[str] = None
    created_at: str
    updated_at: str


class ItemResult(CamelModel):
    success: bool
    item: Optional[Item] = None
    error: Optional[str] = None


class ActorRequest(CamelModel):
    """Body for calls that only carry the acting user."""
    user_name: Optional[str] = None


class QuantityRequest(CamelModel):
    quantity: int
    user_name: Optional[str] = None


class ChangeIdRequest(CamelModel):
    new_id: str
    user_name: Optional[str] = None


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class NextIdRequest(CamelModel):
    next_id: Union[int, str]
    user_name: Optional[str] = None


class NextIdResponse(CamelModel):
    next_id: Union[int, str]
    next_id_formatted: str


class MinQuantityRequest(CamelModel):
    min_quantity: Union[int, str]
    user_name: Optional[str] = None


class MinQuantityResponse(CamelModel):
    min_quantity: int


class OperationResponse(CamelModel):
    success: bool
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------

class Details(CamelModel):
    """Action-specific payload; unknown keys are kept as written."""

    model_config = ConfigDict(extra="allow")


class AddDetails(Details):
    quantity: Quantity = 0
    new_quantity: Quantity = 0


class MoveDetails(Details):
    quantity_change: Quantity = 0
    old_quantity: Optional[Quantity] = None
    new_quantity: Optional[Quantity] = None


class UpdateDetails(Details):
    quantity_change: Optional[Quantity] = None
    old_quantity: Optional[Quantity] = None
    new_quantity: Optional[Quantity] = None


class DeleteDetails(Details):
    old_quantity: Quantity = 0
    new_quantity: Quantity = 0


class ChangeIdDetails(Details):
    old_id: str
    new_id: str


class SetNextIdDetails(Details):
    next_id: Union[int, str]


class SetMinQuantityDetails(Details):
    min_quantity: int
    old_min_quantity: Optional[int] = None


class AuditEntryBase(CamelModel):
    """
    Fields shared by every audit entry.

    Attributes:
        id (int): Sequence number
        item_id (str): Affected item, None for settings actions
        user_name (str): Actor
        timestamp (str): ISO-8601 write time
        legacy (bool): True if the stored row used the old update + _actionType encoding
    """
    id: int
    item_id: Optional[str] = None
    user_name: str
    timestamp: str
    legacy: bool = False


class AddEntry(AuditEntryBase):
    action: Literal["add"]
    details: AddDetails


class CheckInEntry(AuditEntryBase):
    action: Literal["check_in"]
    details: MoveDetails


class CheckOutEntry(AuditEntryBase):
    action: Literal["check_out"]
    details: MoveDetails


class UpdateEntry(AuditEntryBase):
    action: Literal["update"]
    details: UpdateDetails


class DeleteEntry(AuditEntryBase):
    action: Literal["delete"]
    details: DeleteDetails


class ChangeIdEntry(AuditEntryBase):
    action: Literal["change_id"]
    details: ChangeIdDetails


class SetNextIdEntry(AuditEntryBase):
    action: Literal["set_next_id"]
    details: SetNextIdDetails


class SetMinQuantityEntry(AuditEntryBase):
    action: Literal["set_min_quantity"]
    details: SetMinQuantityDetails


AuditLogEntry = Annotated[
    Union[
        AddEntry,
        CheckInEntry,
        CheckOutEntry,
        UpdateEntry,
        DeleteEntry,
        ChangeIdEntry,
        SetNextIdEntry,
        SetMinQuantityEntry,
    ],
    Field(discriminator="action"),
]

audit_entry_adapter = TypeAdapter(AuditLogEntry)


class TransactionResult(CamelModel):
    success: bool
    item: Optional[Item] = None
    entry: Optional[AuditLogEntry] = None
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

class PeriodRange(CamelModel):
    start: str
    end: str
    label: str


class ActiveItem(CamelModel):
    item_id: str
    name: Optional[str] = None
    total_quantity: Quantity


class DashboardSummary(CamelModel):
    """
    Dashboard projection of the inventory and its audit log.

    Attributes:
        gallons_out_this_week (float): Gallons checked out Sunday-Saturday
        gallons_in_this_week (float): Gallons checked in Sunday-Saturday
        busiest_item (ActiveItem): Most gallons checked out in the selected period
        period (PeriodRange): The selected week or month
        stale_count (int): Items not scanned within ``stale_days``
        low_stock_count (int): Items below their threshold
        out_of_stock_count (int): Items at zero
        total_items (int): Number of items
        total_gallons (int): Gallons on hand
        total_value (float): Sum of quantity x price
    """
    gallons_out_this_week: Quantity
    gallons_in_this_week: Quantity
    busiest_item: Optional[ActiveItem] = None
    week: PeriodRange
    period: PeriodRange
    stale_days: int
    stale_count: int
    low_stock_count: int
    out_of_stock_count: int
    min_quantity: int
    total_items: int
    total_gallons: int
    total_value: float


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

class TokenRequest(CamelModel):
    user_name: str


class Token(BaseModel):
    """JWT access token response."""
    access_token: str
    token_type: str
    role: str


class HealthResponse(BaseModel):
    status: str
    timestamp: str

