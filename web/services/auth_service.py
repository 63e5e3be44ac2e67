"""
Auth Service - Web Layer Service for Authentication.

Handles credential checks and redirect target validation.
"""

import logging

from werkzeug.security import check_password_hash

from core import settings_core

logger = logging.getLogger(__name__)


def is_configured() -> bool:
    """True if an admin username and password hash are set."""
    return bool(
        settings_core.get_setting("ADMIN_USERNAME")
        and settings_core.get_setting("ADMIN_PASSWORD_HASH")
    )


def authenticate(username: str, provided_password: str) -> bool:
    """
    Verify the provided credential against the configured admin account.

    Args:
        username: Submitted username.
        provided_password: Submitted plain-text password.

    Returns:
        True if both match, False otherwise.
    """
    admin_username = settings_core.get_setting("ADMIN_USERNAME", "")
    password_hash = settings_core.get_setting("ADMIN_PASSWORD_HASH", "")

    if not admin_username or not password_hash:
        return False
    if username != admin_username:
        return False

    try:
        return check_password_hash(password_hash, provided_password or "")
    except ValueError as e:
        # Malformed hash in .env
        logger.error(f"Password hash check failed: {e}")
        return False


def get_redirect_target(next_param: str | None, default: str = "/backup/stats") -> str:
    """
    Determine the redirect target URL.

    Args:
        next_param: The 'next' URL parameter or form field.
        default: Default URL if next_param is invalid/missing.

    Returns:
        The target URL. Only same-site relative paths are accepted.
    """
    if not next_param:
        return default
    if not next_param.startswith("/") or next_param.startswith("//"):
        return default
    return next_param
