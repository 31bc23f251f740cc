"""Configuration module for the completion gateway."""

from gateway.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
