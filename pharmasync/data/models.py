"""
SQLAlchemy database models.

Tables:
- products           static catalog (with embedding vector)
- product_inventory  volatile stock/price, 1:1 with products
- product_cache      durable shadow of the hot cache
- sync_log           one row per sync run
"""

from datetime import datetime, timezone

from pgvector.sqlalchemy import Vector
from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, Numeric, String, Text

from pharmasync.data.database import Base

EMBEDDING_DIMENSIONS = 1536


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CatalogProduct(Base):
    """Product catalog row, keyed by the upstream PRODUCT_ID."""
    __tablename__ = "products"

    id = Column(String(50), primary_key=True)
    erp_code = Column(String(50))
    internal_code = Column(String(50), index=True)
    barcode = Column(String(50), index=True)

    name = Column(Text, nullable=False, index=True)
    generic_name = Column(Text)
    internal_name = Column(Text)
    english_name = Column(Text)

    description = Column(Text)
    ingredients = Column(Text)
    instructions = Column(Text)
    warnings = Column(Text)

    category = Column(String(100), index=True)
    category_id = Column(String(50))
    manufacturer = Column(String(255))
    brand = Column(String(255))
    volume = Column(String(50))

    is_prescription = Column(Boolean, default=False)
    is_new = Column(Boolean, default=False)
    is_exclusive = Column(Boolean, default=False)
    tags = Column(JSON, default=list)

    # pgvector on Postgres; SQLite stores the list as JSON
    embedding = Column(Vector(EMBEDDING_DIMENSIONS).with_variant(JSON(none_as_null=True), "sqlite"), nullable=True)
    searchable_text = Column(Text)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    last_synced_at = Column(DateTime(timezone=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "generic_name": self.generic_name,
            "internal_name": self.internal_name,
            "english_name": self.english_name,
            "description": self.description,
            "ingredients": self.ingredients,
            "instructions": self.instructions,
            "warnings": self.warnings,
            "category": self.category,
            "category_id": self.category_id,
            "manufacturer": self.manufacturer,
            "brand": self.brand,
            "volume": self.volume,
            "barcode": self.barcode,
            "is_prescription": bool(self.is_prescription),
            "is_new": bool(self.is_new),
            "is_exclusive": bool(self.is_exclusive),
            "tags": list(self.tags or []),
            "has_embedding": self.embedding is not None,
        }


class ProductInventory(Base):
    """
    Stock and price for one product.

    product_id is not declared as a foreign key; the stock sync checks
    the catalog before writing instead.
    """
    __tablename__ = "product_inventory"

    product_id = Column(String(50), primary_key=True)
    available = Column(Integer, default=0, nullable=False)
    onhand = Column(Integer, default=0, nullable=False)
    promise = Column(Integer, default=0, nullable=False)
    base_price = Column(Numeric(12, 2), default=0)
    is_active = Column(Boolean, default=True)
    facility_id = Column(String(50), index=True)
    facility_name = Column(String(255))
    store_id = Column(String(50))
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    last_api_sync = Column(DateTime(timezone=True))


class ProductCache(Base):
    """Shadow copy of a hot-cache inventory entry, valid until expires_at."""
    __tablename__ = "product_cache"

    product_id = Column(String(50), primary_key=True)
    cache_key = Column(String(100), nullable=False, index=True)
    cache_data = Column(JSON, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class SyncLog(Base):
    __tablename__ = "sync_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sync_type = Column(String(50), nullable=False, index=True)   # full | stock
    status = Column(String(20), nullable=False, index=True)      # running | completed | failed
    started_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    completed_at = Column(DateTime(timezone=True))
    products_processed = Column(Integer, default=0)
    products_created = Column(Integer, default=0)
    products_updated = Column(Integer, default=0)
    products_failed = Column(Integer, default=0)
    duration_ms = Column(Integer)
    error_message = Column(Text)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sync_type": self.sync_type,
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "products_processed": self.products_processed or 0,
            "products_created": self.products_created or 0,
            "products_updated": self.products_updated or 0,
            "products_failed": self.products_failed or 0,
            "duration_ms": self.duration_ms,
            "error_message": self.error_message,
        }
