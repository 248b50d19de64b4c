"""Tests for YAML + environment configuration loading."""

import pytest

from pharmasync.core.config import DEFAULT_CONFIG_PATH, PharmaSyncConfig
from pharmasync.metrics import MetricsCollector


class TestConfig:
    def test_defaults(self):
        config = PharmaSyncConfig()
        assert config.ttl_inventory == 300
        assert config.ttl_embedding == 3600
        assert config.search_threshold == 0.5
        assert config.timezone == "Asia/Ulaanbaatar"

    def test_shipped_yaml_loads(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        assert DEFAULT_CONFIG_PATH.exists()
        config = PharmaSyncConfig.from_yaml()
        assert config.stock_sync_interval_minutes == 5
        assert config.full_sync_hour == 2

    def test_yaml_sections(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "cache:\n  ttl_inventory: 60\n"
            "search:\n  threshold: 0.35\n  prefilter_limit: 20\n"
            "scheduler:\n  enabled: false\n",
            encoding="utf-8",
        )
        config = PharmaSyncConfig.from_yaml(path)
        assert config.ttl_inventory == 60
        assert config.search_threshold == 0.35
        assert config.prefilter_limit == 20
        assert config.enable_scheduler is False

    def test_missing_file_uses_defaults(self, tmp_path):
        config = PharmaSyncConfig.from_yaml(tmp_path / "absent.yaml")
        assert config.max_pages == 200

    def test_env_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db/pharma")
        monkeypatch.setenv("ENABLE_REDIS", "false")
        monkeypatch.setenv("REDIS_PORT", "6380")
        monkeypatch.setenv("SIMILARITY_THRESHOLD", "0.42")
        config = PharmaSyncConfig.from_yaml(tmp_path / "absent.yaml")
        assert config.database_url == "postgresql://u:p@db/pharma"
        assert config.enable_redis is False
        assert config.redis_port == 6380
        assert config.search_threshold == 0.42

    def test_invalid_env_value(self, monkeypatch):
        monkeypatch.setenv("REDIS_PORT", "not-a-port")
        with pytest.raises(ValueError):
            PharmaSyncConfig().apply_env()

    def test_to_dict_masks_secrets(self):
        config = PharmaSyncConfig(redis_password="hunter2", database_url="postgresql://u:p@db/x")
        snapshot = config.to_dict()
        assert snapshot["redis_password"] == "***"
        assert snapshot["database_url"] == "***"
        assert snapshot["store_id"] == "MK001"


class TestMetricsCollector:
    def test_cache_hit_rate(self):
        metrics = MetricsCollector()
        metrics.record_cache_hit("redis_cache")
        metrics.record_cache_hit("redis_cache")
        metrics.record_cache_miss("redis_cache")
        assert metrics.get_cache_hit_rate("redis_cache") == pytest.approx(66.666, rel=1e-3)
        assert metrics.get_cache_hit_rate("db_cache") == 0.0

    def test_percentiles_need_samples(self):
        metrics = MetricsCollector()
        for value in range(5):
            metrics.record_latency("search", value)
        assert metrics.get_percentile("search", 50) is None
        for value in range(5, 20):
            metrics.record_latency("search", value)
        assert metrics.get_percentile("search", 50) == 10

    def test_summary_and_reset(self):
        metrics = MetricsCollector()
        metrics.record_latency("search", 12.5)
        metrics.record_error("search")
        summary = metrics.get_summary()
        assert summary["operations"]["search"]["total"] == 1
        assert summary["operations"]["search"]["errors"] == 1
        metrics.reset()
        assert metrics.get_summary()["operations"] == {}
