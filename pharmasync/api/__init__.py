"""
API module for pharmasync.

Provides REST endpoints for product search, stock checks and sync administration.
"""
from pharmasync.api.models import (
    HealthResponse,
    ProductOut,
    SearchResponse,
    StockResponse,
    SyncRequest,
    SyncResponse,
    SchedulerActionResponse,
)

__all__ = [
    "HealthResponse",
    "ProductOut",
    "SearchResponse",
    "StockResponse",
    "SyncRequest",
    "SyncResponse",
    "SchedulerActionResponse",
]
