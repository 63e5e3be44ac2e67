"""
Settings Core - Settings and Message Access.

Provides configuration reads and translated messages separated from the
web layer.
"""

import logging
from typing import Any

from config import get_config
from utils.i18n import resolve_language, translate

logger = logging.getLogger(__name__)


def get_setting(key: str, default: Any = None) -> Any:
    """
    Gets a single setting value.

    Args:
        key: Setting key
        default: Default value if key not found

    Returns:
        The setting value or default
    """
    return get_config().get(key, default)


def pick_language(*candidates: str | None) -> str:
    """First supported language among the candidates, else the configured default."""
    return resolve_language(*candidates, default=get_setting("DEFAULT_LANGUAGE", "ko"))


def get_message(lang: str, key: str, **params) -> str:
    """Translated message for a dotted key."""
    return translate(lang, key, **params)
