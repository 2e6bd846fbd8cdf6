# App Intelligence Utilities Package
"""
Shared utility functions for the App Intelligence core.
"""

from .helpers import load_settings, save_snapshot

__all__ = ["load_settings", "save_snapshot"]
