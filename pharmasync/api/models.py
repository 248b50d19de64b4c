"""
Pydantic models for pharmasync API requests and responses.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response model for health check."""
    status: str
    version: str
    database: str = Field(description="'connected' or 'disconnected'")
    cache: str = Field(description="'redis', 'database_fallback' or 'disabled'")
    products: int = 0
    scheduler_running: bool = False
    timestamp: str


class ProductOut(BaseModel):
    """A product with its inventory view and ranking details."""
    id: str
    name: str
    generic_name: Optional[str] = None
    category: Optional[str] = None
    manufacturer: Optional[str] = None
    brand: Optional[str] = None
    volume: Optional[str] = None
    is_prescription: bool = False
    description: Optional[str] = None
    ingredients: Optional[str] = None
    instructions: Optional[str] = None
    warnings: Optional[str] = None
    barcode: Optional[str] = None

    available: int = 0
    onhand: int = 0
    promise: int = 0
    price: float = 0.0
    is_active: bool = False
    facility_name: Optional[str] = None
    stock_status: str
    in_stock: bool = False
    data_source: str

    similarity: Optional[float] = None
    final_score: Optional[float] = None
    ranking_reasons: List[str] = Field(default_factory=list)


class SearchResponse(BaseModel):
    """Response model for product search."""
    query: str
    results: List[ProductOut]
    total: int = Field(description="Ranked hits before truncation to limit")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class StockResponse(BaseModel):
    """Response model for a stock check."""
    available: bool
    product_id: str
    product_name: Optional[str] = None
    current_stock: int = 0
    onhand_stock: int = 0
    promise_stock: int = 0
    requested: int = 1
    price: float = 0.0
    facility_name: Optional[str] = None
    is_low_stock: bool = False
    is_active: bool = False
    stock_status: str = "out_of_stock"
    data_source: Optional[str] = None
    alternatives: Optional[List[ProductOut]] = None


class SyncOptions(BaseModel):
    batch_size: Optional[int] = Field(default=None, ge=1, le=500)
    max_products: Optional[int] = Field(default=None, ge=1)
    generate_embeddings: bool = True


class SyncRequest(BaseModel):
    """Request model for a manual sync."""
    type: str = Field(default="stock", description="'full'/'catalog', 'stock'/'quick' or 'all'")
    options: SyncOptions = Field(default_factory=SyncOptions)


class SyncResponse(BaseModel):
    success: bool
    message: str
    result: Dict[str, Any] = Field(default_factory=dict)


class SchedulerActionResponse(BaseModel):
    success: bool
    action: str
    status: Dict[str, Any]
