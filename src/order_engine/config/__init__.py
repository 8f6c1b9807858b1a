"""Configuration module."""

from order_engine.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
