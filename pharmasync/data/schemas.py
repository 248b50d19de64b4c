"""
Plain data carriers passed between the store, the cache tiers and sync.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# data_source tags for InventoryView
SOURCE_REDIS = "redis_cache"
SOURCE_SHADOW = "db_cache"
SOURCE_DATABASE = "database"
SOURCE_NO_INVENTORY = "no_inventory_record"
SOURCE_REAL_TIME = "real_time_api"


def _to_int(value: Any) -> int:
    try:
        return max(int(float(value)), 0)
    except (TypeError, ValueError):
        return 0


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


@dataclass
class InventoryView:
    """Inventory snapshot for one product plus the tier it came from."""

    product_id: str
    available: int = 0
    onhand: int = 0
    promise: int = 0
    price: float = 0.0
    is_active: bool = False
    facility_name: Optional[str] = None
    updated_at: Optional[str] = None
    data_source: str = SOURCE_DATABASE

    def to_cache_payload(self) -> Dict[str, Any]:
        """JSON shape stored under product:<id> and in product_cache."""
        return {
            "available": self.available,
            "onhand": self.onhand,
            "promise": self.promise,
            "price": self.price,
            "is_active": self.is_active,
            "facility_name": self.facility_name,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_cache_payload(cls, product_id: str, payload: Dict[str, Any], data_source: str) -> "InventoryView":
        return cls(
            product_id=product_id,
            available=_to_int(payload.get("available")),
            onhand=_to_int(payload.get("onhand")),
            promise=_to_int(payload.get("promise")),
            price=_to_float(payload.get("price")),
            is_active=bool(payload.get("is_active")),
            facility_name=payload.get("facility_name"),
            updated_at=payload.get("updated_at"),
            data_source=data_source,
        )

    @classmethod
    def from_upstream(cls, item: Dict[str, Any], data_source: str = SOURCE_REAL_TIME) -> "InventoryView":
        """Build from a raw upstream product record (first STOCKS entry)."""
        stocks = item.get("STOCKS") or [{}]
        stock = stocks[0] or {}
        return cls(
            product_id=str(item.get("PRODUCT_ID")),
            available=_to_int(stock.get("AVAILABLE")),
            onhand=_to_int(stock.get("ONHAND")),
            promise=_to_int(stock.get("PROMISE")),
            price=_to_float(item.get("BASE_PRICE")),
            is_active=str(item.get("ACTIVE")) == "1",
            facility_name=stock.get("FACILITY_NAME"),
            updated_at=datetime.now(timezone.utc).isoformat(),
            data_source=data_source,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SyncStats:
    """Counters for one sync run."""

    processed: int = 0
    created: int = 0
    updated: int = 0
    cached: int = 0
    skipped: int = 0
    failed: int = 0
    pages_failed: int = 0
    duration_ms: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
