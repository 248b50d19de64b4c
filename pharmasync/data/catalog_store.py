"""
Catalog store: durable access to products, inventory, shadow cache and sync log.

All methods are blocking; async callers wrap them in asyncio.to_thread.
SQLAlchemy errors are re-raised as CatalogStoreError so callers can decide
whether a failure is per-item or fatal.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, or_, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from pharmasync.data.database import init_db, make_engine, make_session_factory, session_scope
from pharmasync.data.models import CatalogProduct, ProductCache, ProductInventory, SyncLog, utcnow
from pharmasync.data.schemas import SOURCE_DATABASE, InventoryView, SyncStats
from pharmasync.errors import CatalogStoreError
from pharmasync.utils.logger import get_logger

logger = get_logger("data.catalog_store")

PRODUCT_FIELDS = (
    "erp_code", "internal_code", "barcode", "name", "generic_name", "internal_name",
    "english_name", "description", "ingredients", "instructions", "warnings",
    "category", "category_id", "manufacturer", "brand", "volume", "is_prescription",
    "is_new", "is_exclusive", "tags", "embedding", "searchable_text", "last_synced_at",
)

INVENTORY_FIELDS = (
    "available", "onhand", "promise", "base_price", "is_active", "facility_id",
    "facility_name", "store_id", "last_api_sync",
)


def _aware(dt: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _casings(term: str) -> Iterable[str]:
    # SQLite's lower() only folds ASCII, so Cyrillic needs explicit casings
    return {term, term.lower(), term.capitalize(), term.upper()}


class CatalogStore:
    """SQLAlchemy-backed store for the catalog and its satellite tables."""

    def __init__(self, session_factory: sessionmaker, dialect: str = "postgresql"):
        self.session_factory = session_factory
        self.dialect = dialect

    @classmethod
    def from_url(cls, database_url: str, embedding_dimensions: int = 1536) -> "CatalogStore":
        engine = make_engine(database_url)
        init_db(engine, embedding_dimensions)
        return cls(make_session_factory(engine), dialect=engine.dialect.name)

    @property
    def supports_similarity(self) -> bool:
        return self.dialect == "postgresql"

    def ping(self) -> bool:
        try:
            with session_scope(self.session_factory) as session:
                session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def upsert_product(self, data: Dict[str, Any]) -> bool:
        """Insert or update a catalog row. Returns True when created."""
        product_id = data["id"]
        try:
            with session_scope(self.session_factory) as session:
                row = session.get(CatalogProduct, product_id)
                created = row is None
                if created:
                    row = CatalogProduct(id=product_id)
                    session.add(row)
                for key in PRODUCT_FIELDS:
                    if key in data:
                        setattr(row, key, data[key])
                row.updated_at = utcnow()
            return created
        except SQLAlchemyError as e:
            raise CatalogStoreError(f"upsert_product {product_id} failed: {e}") from e

    def product_exists(self, product_id: str) -> bool:
        try:
            with session_scope(self.session_factory) as session:
                return session.get(CatalogProduct, product_id) is not None
        except SQLAlchemyError as e:
            raise CatalogStoreError(f"product_exists {product_id} failed: {e}") from e

    def get_product(self, product_id: str) -> Optional[Dict[str, Any]]:
        with session_scope(self.session_factory) as session:
            row = session.get(CatalogProduct, product_id)
            return row.to_dict() if row else None

    def get_products(self, product_ids: Sequence[str]) -> Dict[str, Dict[str, Any]]:
        if not product_ids:
            return {}
        with session_scope(self.session_factory) as session:
            rows = session.scalars(
                select(CatalogProduct).where(CatalogProduct.id.in_(list(product_ids)))
            ).all()
            return {row.id: row.to_dict() for row in rows}

    def products_missing_embeddings(self, limit: int = 100) -> List[Tuple[str, str]]:
        """(id, searchable_text) for rows with no embedding yet."""
        with session_scope(self.session_factory) as session:
            rows = session.execute(
                select(CatalogProduct.id, CatalogProduct.searchable_text)
                .where(CatalogProduct.embedding.is_(None))
                .limit(limit)
            ).all()
            return [(row[0], row[1] or "") for row in rows]

    def set_embedding(self, product_id: str, embedding: List[float]) -> None:
        try:
            with session_scope(self.session_factory) as session:
                row = session.get(CatalogProduct, product_id)
                if row is not None:
                    row.embedding = embedding
        except SQLAlchemyError as e:
            raise CatalogStoreError(f"set_embedding {product_id} failed: {e}") from e

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def upsert_inventory(self, data: Dict[str, Any]) -> None:
        product_id = data["product_id"]
        try:
            with session_scope(self.session_factory) as session:
                row = session.get(ProductInventory, product_id)
                if row is None:
                    row = ProductInventory(product_id=product_id)
                    session.add(row)
                for key in INVENTORY_FIELDS:
                    if key in data:
                        setattr(row, key, data[key])
                row.updated_at = utcnow()
        except SQLAlchemyError as e:
            raise CatalogStoreError(f"upsert_inventory {product_id} failed: {e}") from e

    def get_inventory_row(self, product_id: str) -> Optional[InventoryView]:
        with session_scope(self.session_factory) as session:
            row = session.get(ProductInventory, product_id)
            if row is None:
                return None
            return InventoryView(
                product_id=row.product_id,
                available=row.available or 0,
                onhand=row.onhand or 0,
                promise=row.promise or 0,
                price=float(row.base_price or 0),
                is_active=bool(row.is_active),
                facility_name=row.facility_name,
                updated_at=_aware(row.updated_at).isoformat() if row.updated_at else None,
                data_source=SOURCE_DATABASE,
            )

    # ------------------------------------------------------------------
    # Shadow cache
    # ------------------------------------------------------------------

    def get_shadow_cache(self, product_id: str) -> Optional[Dict[str, Any]]:
        """Cached payload, or None when missing or expired."""
        with session_scope(self.session_factory) as session:
            row = session.get(ProductCache, product_id)
            if row is None:
                return None
            if _aware(row.expires_at) <= datetime.now(timezone.utc):
                return None
            return dict(row.cache_data or {})

    def set_shadow_cache(self, product_id: str, cache_key: str, payload: Dict[str, Any], ttl: int = 300) -> None:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl)
        try:
            with session_scope(self.session_factory) as session:
                row = session.get(ProductCache, product_id)
                if row is None:
                    row = ProductCache(product_id=product_id)
                    session.add(row)
                row.cache_key = cache_key
                row.cache_data = payload
                row.expires_at = expires_at
        except SQLAlchemyError as e:
            raise CatalogStoreError(f"set_shadow_cache {product_id} failed: {e}") from e

    def cleanup_expired_cache(self) -> int:
        """Delete expired shadow rows; returns the number removed."""
        now = datetime.now(timezone.utc)
        with session_scope(self.session_factory) as session:
            result = session.execute(delete(ProductCache).where(ProductCache.expires_at <= now))
            return result.rowcount or 0

    def count_shadow_cache(self) -> int:
        with session_scope(self.session_factory) as session:
            return session.scalar(select(func.count()).select_from(ProductCache)) or 0

    # ------------------------------------------------------------------
    # Sync log
    # ------------------------------------------------------------------

    def create_sync_log(self, sync_type: str) -> int:
        with session_scope(self.session_factory) as session:
            log = SyncLog(sync_type=sync_type, status="running", started_at=utcnow())
            session.add(log)
            session.flush()
            return log.id

    def complete_sync_log(self, log_id: int, stats: SyncStats, status: str = "completed",
                          error_message: Optional[str] = None) -> None:
        with session_scope(self.session_factory) as session:
            log = session.get(SyncLog, log_id)
            if log is None:
                logger.warning(f"sync_log {log_id} vanished before completion")
                return
            log.status = status
            log.completed_at = utcnow()
            log.products_processed = stats.processed
            log.products_created = stats.created
            log.products_updated = stats.updated
            log.products_failed = stats.failed
            log.duration_ms = stats.duration_ms
            log.error_message = error_message

    def latest_sync_log(self, sync_type: Optional[str] = None) -> Optional[Dict[str, Any]]:
        with session_scope(self.session_factory) as session:
            query = select(SyncLog)
            if sync_type:
                query = query.where(SyncLog.sync_type == sync_type)
            row = session.scalars(query.order_by(SyncLog.started_at.desc(), SyncLog.id.desc()).limit(1)).first()
            return row.to_dict() if row else None

    def latest_successful_sync(self) -> Optional[Dict[str, Any]]:
        with session_scope(self.session_factory) as session:
            row = session.scalars(
                select(SyncLog)
                .where(SyncLog.status == "completed")
                .order_by(SyncLog.completed_at.desc(), SyncLog.id.desc())
                .limit(1)
            ).first()
            return row.to_dict() if row else None

    # ------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------

    def counts(self) -> Dict[str, int]:
        with session_scope(self.session_factory) as session:
            products = session.scalar(select(func.count()).select_from(CatalogProduct)) or 0
            embedded = session.scalar(
                select(func.count()).select_from(CatalogProduct).where(CatalogProduct.embedding.is_not(None))
            ) or 0
            inventory = session.scalar(select(func.count()).select_from(ProductInventory)) or 0
            available = session.scalar(
                select(func.count()).select_from(ProductInventory).where(ProductInventory.available > 0)
            ) or 0
        return {
            "products": products,
            "products_with_embeddings": embedded,
            "inventory_records": inventory,
            "available_products": available,
        }

    def count_products(self) -> int:
        with session_scope(self.session_factory) as session:
            return session.scalar(select(func.count()).select_from(CatalogProduct)) or 0

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def match_products(self, embedding: Sequence[float], threshold: float, count: int,
                       category: Optional[str] = None,
                       candidate_ids: Optional[Sequence[str]] = None) -> List[Tuple[str, float]]:
        """
        Call the match_products / match_products_in SQL functions.

        Returns (product_id, similarity) pairs, best first. Raises
        CatalogStoreError on any failure, including a backend without
        the functions installed.
        """
        if not self.supports_similarity:
            raise CatalogStoreError(f"similarity search not available on {self.dialect}")

        vector_literal = "[" + ",".join(str(float(v)) for v in embedding) + "]"
        params = {"emb": vector_literal, "threshold": threshold, "count": count, "category": category}
        if candidate_ids is not None:
            sql = text(
                "SELECT id, similarity FROM match_products_in("
                "CAST(:emb AS vector), :threshold, :count, :category, CAST(:ids AS varchar[]))"
            )
            params["ids"] = list(candidate_ids)
        else:
            sql = text(
                "SELECT id, similarity FROM match_products("
                "CAST(:emb AS vector), :threshold, :count, :category)"
            )
        try:
            with session_scope(self.session_factory) as session:
                rows = session.execute(sql, params).all()
            return [(row[0], float(row[1])) for row in rows]
        except SQLAlchemyError as e:
            raise CatalogStoreError(f"match_products failed: {e}") from e

    def list_by_stock(self, category: Optional[str] = None, limit: int = 20,
                      in_stock_only: bool = True) -> List[str]:
        """Product ids ordered by available stock, most stocked first."""
        query = select(CatalogProduct.id).join(
            ProductInventory, ProductInventory.product_id == CatalogProduct.id,
            isouter=not in_stock_only,
        )
        if in_stock_only:
            query = query.where(ProductInventory.available > 0, ProductInventory.is_active.is_(True))
        if category:
            query = query.where(CatalogProduct.category == category)
        query = query.order_by(ProductInventory.available.desc(), CatalogProduct.id).limit(limit)
        with session_scope(self.session_factory) as session:
            return list(session.scalars(query).all())

    def search_names(self, terms: Sequence[str], limit: int = 50,
                     category: Optional[str] = None) -> List[str]:
        """Product ids whose name or generic name contains any of the terms."""
        patterns = set()
        for term in terms:
            term = (term or "").strip()
            if term:
                patterns.update(f"%{t}%" for t in _casings(term))
        if not patterns:
            return []

        conditions = []
        for pattern in sorted(patterns):
            conditions.append(CatalogProduct.name.ilike(pattern))
            conditions.append(CatalogProduct.generic_name.ilike(pattern))

        query = select(CatalogProduct.id).where(or_(*conditions))
        if category:
            query = query.where(CatalogProduct.category == category)
        try:
            with session_scope(self.session_factory) as session:
                return list(session.scalars(query.order_by(CatalogProduct.name).limit(limit)).all())
        except SQLAlchemyError as e:
            raise CatalogStoreError(f"search_names failed: {e}") from e
