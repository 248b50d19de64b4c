"""
Configuration management for pharmasync.

Loads settings from a YAML config file, then applies environment-variable
overrides (12-factor style deployments set everything through env).
"""
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional
import os
import yaml

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()


def _project_root() -> Path:
    """Return project root (parent of pharmasync package)."""
    return Path(__file__).resolve().parent.parent.parent


DEFAULT_CONFIG_PATH = _project_root() / "config" / "default.yaml"


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class PharmaSyncConfig:
    """Configuration for the catalog sync and search pipeline."""

    # Storage
    database_url: str = "sqlite:///./pharmasync.db"
    embedding_dimensions: int = 1536

    # Hot cache (Redis)
    enable_redis: bool = True
    redis_url: Optional[str] = None
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None
    ttl_inventory: int = 300            # product:<id>
    ttl_embedding: int = 3600           # embedding:<b64>
    ttl_shadow_cache: int = 300         # product_cache.expires_at

    # Upstream business API
    business_api_base: str = "http://mns.bmall.mn/api"
    store_id: str = "MK001"
    start_date: str = "2025-01-01"
    end_date: str = "2025-12-31"
    upstream_timeout: float = 15.0
    realtime_timeout: float = 5.0
    page_delay: float = 0.2
    max_pages: int = 200
    max_page_failures: int = 10

    # Embeddings
    embedding_model: str = "text-embedding-3-small"
    embedding_input_chars: int = 8000
    embedding_delay: float = 0.05

    # Full sync
    full_sync_batch_size: int = 50
    full_sync_batch_delay: float = 0.1
    item_concurrency: int = 10

    # Stock sync
    stock_sync_max_products: int = 7000
    stock_batch_small: int = 20
    stock_batch_large: int = 50
    stock_batch_threshold: int = 1000

    # Search
    search_default_limit: int = 5
    search_threshold: float = 0.5
    prefilter_limit: int = 50

    # Scheduler
    enable_scheduler: bool = True
    timezone: str = "Asia/Ulaanbaatar"
    stock_sync_interval_minutes: int = 5
    full_sync_hour: int = 2
    cache_cleanup_interval_minutes: int = 60
    health_check_interval_minutes: int = 30
    scheduled_full_sync_batch_size: int = 100
    manual_full_sync_max_products: int = 500

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_yaml(cls, config_path: Optional[Path] = None) -> "PharmaSyncConfig":
        """Load configuration from YAML file, falling back to defaults."""
        path = config_path or DEFAULT_CONFIG_PATH
        data: Dict[str, Any] = {}
        if path.exists():
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}

        storage = data.get('storage', {})
        cache = data.get('cache', {})
        upstream = data.get('upstream', {})
        embeddings = data.get('embeddings', {})
        sync = data.get('sync', {})
        search = data.get('search', {})
        scheduler = data.get('scheduler', {})
        logging_config = data.get('logging', {})

        config = cls()
        config._apply({
            'database_url': storage.get('database_url'),
            'embedding_dimensions': storage.get('embedding_dimensions'),
            'enable_redis': cache.get('enable_redis'),
            'redis_host': cache.get('redis_host'),
            'redis_port': cache.get('redis_port'),
            'redis_db': cache.get('redis_db'),
            'ttl_inventory': cache.get('ttl_inventory'),
            'ttl_embedding': cache.get('ttl_embedding'),
            'ttl_shadow_cache': cache.get('ttl_shadow_cache'),
            'business_api_base': upstream.get('base_url'),
            'store_id': upstream.get('store_id'),
            'start_date': upstream.get('start_date'),
            'end_date': upstream.get('end_date'),
            'upstream_timeout': upstream.get('timeout'),
            'realtime_timeout': upstream.get('realtime_timeout'),
            'page_delay': upstream.get('page_delay'),
            'max_pages': upstream.get('max_pages'),
            'max_page_failures': upstream.get('max_page_failures'),
            'embedding_model': embeddings.get('model'),
            'embedding_input_chars': embeddings.get('input_chars'),
            'embedding_delay': embeddings.get('delay'),
            'full_sync_batch_size': sync.get('full_batch_size'),
            'full_sync_batch_delay': sync.get('full_batch_delay'),
            'item_concurrency': sync.get('item_concurrency'),
            'stock_sync_max_products': sync.get('stock_max_products'),
            'stock_batch_small': sync.get('stock_batch_small'),
            'stock_batch_large': sync.get('stock_batch_large'),
            'stock_batch_threshold': sync.get('stock_batch_threshold'),
            'search_default_limit': search.get('default_limit'),
            'search_threshold': search.get('threshold'),
            'prefilter_limit': search.get('prefilter_limit'),
            'enable_scheduler': scheduler.get('enabled'),
            'timezone': scheduler.get('timezone'),
            'stock_sync_interval_minutes': scheduler.get('stock_sync_interval_minutes'),
            'full_sync_hour': scheduler.get('full_sync_hour'),
            'cache_cleanup_interval_minutes': scheduler.get('cache_cleanup_interval_minutes'),
            'health_check_interval_minutes': scheduler.get('health_check_interval_minutes'),
            'scheduled_full_sync_batch_size': scheduler.get('full_sync_batch_size'),
            'manual_full_sync_max_products': scheduler.get('manual_full_sync_max_products'),
            'log_level': logging_config.get('level'),
        })
        config.apply_env()
        return config

    def _apply(self, values: Dict[str, Any]) -> None:
        for key, value in values.items():
            if value is not None:
                setattr(self, key, value)

    def apply_env(self) -> None:
        """Override settings from environment variables where set."""
        env_map = {
            'DATABASE_URL': ('database_url', str),
            'ENABLE_REDIS': ('enable_redis', _env_bool),
            'REDIS_URL': ('redis_url', str),
            'REDIS_HOST': ('redis_host', str),
            'REDIS_PORT': ('redis_port', int),
            'REDIS_DB': ('redis_db', int),
            'REDIS_PASSWORD': ('redis_password', str),
            'BUSINESS_API_BASE': ('business_api_base', str),
            'BUSINESS_STORE_ID': ('store_id', str),
            'EMBEDDING_MODEL': ('embedding_model', str),
            'SIMILARITY_THRESHOLD': ('search_threshold', float),
            'ENABLE_SCHEDULER': ('enable_scheduler', _env_bool),
            'SYNC_TIMEZONE': ('timezone', str),
            'LOG_LEVEL': ('log_level', str),
        }
        for env_key, (attr, cast) in env_map.items():
            raw = os.getenv(env_key)
            if raw is None or raw == "":
                continue
            try:
                setattr(self, attr, cast(raw))
            except ValueError:
                raise ValueError(f"Invalid value for {env_key}: {raw!r}")

    def to_dict(self) -> Dict[str, Any]:
        """Config snapshot with secrets masked (used by the status surface)."""
        snapshot = {f.name: getattr(self, f.name) for f in fields(self)}
        for secret in ('redis_password', 'redis_url', 'database_url'):
            if snapshot.get(secret):
                snapshot[secret] = "***"
        return snapshot


# Global config instance
_config: Optional[PharmaSyncConfig] = None


def get_config() -> PharmaSyncConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = PharmaSyncConfig.from_yaml()
    return _config


def set_config(config: PharmaSyncConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
