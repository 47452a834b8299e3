"""Application settings loading."""

from .app import AppSettings, get_settings


__all__ = ["AppSettings", "get_settings"]
