"""
Redis hot cache for inventory snapshots and query embeddings.

Redis is ONLY a cache, never the source of truth.
The catalog store is always authoritative.

Cache keys:
- product:{product_id}        inventory view (TTL 5 min)
- embedding:{base64(text)}    query embedding vector (TTL 1 hour)

Every method swallows Redis errors and reports them as a miss (None) or a
failed write (False); callers fall through to the next tier.
"""

import base64
import json
from typing import Any, Dict, List, Optional

import redis

from pharmasync.utils.logger import get_logger

logger = get_logger("cache.hot_cache")

EMBEDDING_KEY_CHARS = 100


class HotCache:
    """
    Redis cache client with explicit TTLs.

    A HotCache built with enabled=False (or without a client) behaves as an
    always-missing cache whose writes fail, which is how "Redis not
    configured" looks to callers.
    """

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        enabled: bool = True,
        ttl_inventory: int = 300,
        ttl_embedding: int = 3600,
    ):
        self.client = client
        self.enabled = enabled and client is not None
        self.ttl_inventory = ttl_inventory
        self.ttl_embedding = ttl_embedding

    @classmethod
    def from_config(cls, config) -> "HotCache":
        """
        Build from config.

        Connection priority:
        1. REDIS_URL (e.g. rediss:// for hosted Redis)
        2. redis_host + redis_port + redis_db
        """
        if not config.enable_redis:
            logger.info("Redis disabled by configuration; hot cache off")
            return cls(client=None, enabled=False)

        if config.redis_url:
            client = redis.from_url(
                config.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
        else:
            client = redis.Redis(
                host=config.redis_host,
                port=config.redis_port,
                db=config.redis_db,
                password=config.redis_password,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
        return cls(
            client=client,
            enabled=True,
            ttl_inventory=config.ttl_inventory,
            ttl_embedding=config.ttl_embedding,
        )

    @property
    def available(self) -> bool:
        return self.enabled

    def ping(self) -> bool:
        """Check if Redis is reachable."""
        if not self.enabled:
            return False
        try:
            return bool(self.client.ping())
        except Exception:
            return False

    @staticmethod
    def inventory_key(product_id: str) -> str:
        return f"product:{product_id}"

    @staticmethod
    def embedding_key(text: str) -> str:
        encoded = base64.b64encode(text[:EMBEDDING_KEY_CHARS].encode("utf-8")).decode("ascii")
        return f"embedding:{encoded}"

    def _get_json(self, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        try:
            cached = self.client.get(key)
            if cached:
                return json.loads(cached)
            return None
        except Exception as e:
            logger.warning(f"Cache read error for {key}: {e}")
            return None

    def _set_json(self, key: str, ttl: int, value: Any) -> bool:
        if not self.enabled:
            return False
        try:
            self.client.setex(key, ttl, json.dumps(value, ensure_ascii=False))
            return True
        except Exception as e:
            logger.warning(f"Cache write error for {key}: {e}")
            return False

    # Inventory

    def get_inventory(self, product_id: str) -> Optional[Dict[str, Any]]:
        """Get cached inventory payload. Returns None on miss."""
        value = self._get_json(self.inventory_key(product_id))
        return value if isinstance(value, dict) else None

    def set_inventory(self, product_id: str, payload: Dict[str, Any]) -> bool:
        """Cache inventory payload (TTL: 5 min)."""
        return self._set_json(self.inventory_key(product_id), self.ttl_inventory, payload)

    # Embeddings

    def get_embedding(self, text: str) -> Optional[List[float]]:
        value = self._get_json(self.embedding_key(text))
        return value if isinstance(value, list) else None

    def set_embedding(self, text: str, embedding: List[float]) -> bool:
        return self._set_json(self.embedding_key(text), self.ttl_embedding, list(embedding))

    # Maintenance

    def flush_all(self) -> bool:
        """Flush the whole Redis db. Maintenance only."""
        if not self.enabled:
            return False
        try:
            self.client.flushdb()
            return True
        except Exception as e:
            logger.warning(f"Cache flush error: {e}")
            return False

    def stats(self) -> Dict[str, Any]:
        if not self.enabled:
            return {"enabled": False, "connected": False}
        try:
            return {
                "enabled": True,
                "connected": bool(self.client.ping()),
                "total_keys": self.client.dbsize(),
                "product_keys": sum(1 for _ in self.client.scan_iter(match="product:*", count=500)),
            }
        except Exception as e:
            return {"enabled": True, "connected": False, "error": str(e)}
