"""Application configuration."""

from .settings import RSSConverterSettings, get_settings, load_settings

__all__ = ["RSSConverterSettings", "get_settings", "load_settings"]
