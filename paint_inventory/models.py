"""
SQLAlchemy ORM models for the Paint Inventory service.

Defines the database schema for items, the audit log and settings.
Timestamps are ISO-8601 UTC strings, the format the mobile client reads.
"""
from sqlalchemy import JSON, Column, Index, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from .database import Base


class Item(Base):
    """
    A paint/coating container in stock.

    Attributes:
        id (str): Primary key, admin-supplied text or a generated code (e.g. "H66AAA00001")
        name (str): Color name
        quantity (int): Gallons on hand, never negative
        min_quantity (int): Per-item low-stock threshold (overrides the global default)
        price (Decimal): Price per gallon
        type (str): One of paint, primer, clear, stain, dye
        location (str): Container/bin label
        description (str): Free-text notes
        last_scanned (str): Timestamp of the last quantity-affecting event
        last_scanned_by (str): Actor of the last quantity-affecting event
        created_at (str): Creation timestamp
        updated_at (str): Last modification timestamp
    """
    __tablename__ = "items"

    id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    min_quantity = Column(Integer, nullable=True)
    price = Column(Numeric(10, 2), nullable=True)
    type = Column(String, nullable=True)
    location = Column(String, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    last_scanned = Column(String, nullable=True)
    last_scanned_by = Column(String, nullable=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class AuditLog(Base):
    """
    Immutable record of something that happened to an item or a setting.

    Attributes:
        id (int): Sequence number, the total order of the log
        action (str): add, check_in, check_out, update, delete, change_id,
            set_next_id or set_min_quantity
        item_id (str): Affected item (None for settings actions)
        user_name (str): Actor display name
        details (dict): Action-specific payload
        timestamp (str): When the entry was written
    """
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    action = Column(String, nullable=False)
    item_id = Column(String, nullable=True, index=True)
    user_name = Column(String, nullable=False)
    details = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=dict)
    timestamp = Column(String, nullable=False)

    __table_args__ = (
        Index("ix_audit_log_timestamp_id", "timestamp", "id"),
    )


class Setting(Base):
    """
    Key/value settings row (next_id, min_quantity).
    """
    __tablename__ = "settings"

    key = Column(String, primary_key=True)
    value = Column(String, nullable=False)
