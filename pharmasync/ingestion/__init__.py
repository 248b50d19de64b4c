"""Catalog and stock synchronization."""

from pharmasync.ingestion.catalog_sync import CatalogSynchronizer
from pharmasync.ingestion.stock_sync import StockSynchronizer

__all__ = ["CatalogSynchronizer", "StockSynchronizer"]
