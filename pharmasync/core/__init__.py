"""Core configuration."""

from pharmasync.core.config import PharmaSyncConfig, get_config, set_config

__all__ = ["PharmaSyncConfig", "get_config", "set_config"]
