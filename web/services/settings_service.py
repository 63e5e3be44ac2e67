"""
Settings Service - Web Layer Service for Settings and Messages.

Thin wrapper over core.settings_core for web-specific concerns.
"""

from typing import Any

from core import settings_core


def get_setting(key: str, default: Any = None) -> Any:
    """Get a single setting value."""
    return settings_core.get_setting(key, default)


def pick_language(*candidates: str | None) -> str:
    """Resolve the request language."""
    return settings_core.pick_language(*candidates)


def get_message(lang: str, key: str, **params) -> str:
    """Get a translated message."""
    return settings_core.get_message(lang, key, **params)
