"""Configuration primitives for the Wired client."""

from .settings import WiredSettings, get_settings

__all__ = ["WiredSettings", "get_settings"]
