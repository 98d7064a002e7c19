"""Configuration module for the music card catalog."""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
