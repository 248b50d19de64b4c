"""Search result containers."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pharmasync.data.schemas import SOURCE_NO_INVENTORY, InventoryView


def stock_status(quantity: int) -> str:
    """Human-facing stock label for an available count."""
    if quantity <= 0:
        return "out_of_stock"
    if quantity < 5:
        return "very_low_stock"
    if quantity < 20:
        return "low_stock"
    if quantity < 100:
        return "limited_stock"
    return "in_stock"


@dataclass
class SearchCandidate:
    """A catalog product joined with its inventory view and ranking output."""

    product: Dict[str, Any]
    inventory: Optional[InventoryView] = None
    similarity: float = 0.0
    final_score: float = 0.0
    ranking_reasons: List[str] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.product["id"]

    @property
    def name(self) -> str:
        return self.product.get("name") or ""

    @property
    def available(self) -> int:
        return self.inventory.available if self.inventory else 0

    @property
    def is_active(self) -> bool:
        return self.inventory.is_active if self.inventory else False

    @property
    def data_source(self) -> str:
        return self.inventory.data_source if self.inventory else SOURCE_NO_INVENTORY

    def to_dict(self) -> Dict[str, Any]:
        inv = self.inventory
        data = dict(self.product)
        data.update({
            "available": self.available,
            "onhand": inv.onhand if inv else 0,
            "promise": inv.promise if inv else 0,
            "price": inv.price if inv else 0.0,
            "is_active": self.is_active,
            "facility_name": inv.facility_name if inv else None,
            "stock_status": stock_status(self.available),
            "in_stock": self.available > 0,
            "similarity": round(self.similarity, 4),
            "final_score": round(self.final_score, 4),
            "data_source": self.data_source,
            "ranking_reasons": list(self.ranking_reasons),
        })
        return data


@dataclass
class SearchResult:
    products: List[SearchCandidate] = field(default_factory=list)
    total: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "products": [p.to_dict() for p in self.products],
            "total": self.total,
            "metadata": dict(self.metadata),
        }
