"""
Authentication Blueprint.

Handles login/logout routes and the login_required decorator.
"""

import logging
from functools import wraps

from flask import Blueprint, jsonify, redirect, request, session, url_for

from web.services import auth_service, settings_service

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)


def login_required(f):
    """Decorator to require authentication for Flask routes."""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not session.get("authenticated"):
            return redirect(url_for("auth.login", next=request.path))
        return f(*args, **kwargs)

    return decorated_function


@auth_bp.route("/")
def index():
    if session.get("authenticated"):
        return redirect(auth_service.get_redirect_target(None))
    return redirect(url_for("auth.login"))


@auth_bp.route("/login", methods=["GET", "POST"])
def login():
    """Login state and authentication handler."""
    lang = settings_service.pick_language(
        request.args.get("lang"), request.cookies.get("lang")
    )
    next_url = auth_service.get_redirect_target(request.args.get("next"))

    if request.method == "GET":
        return jsonify(
            {"authenticated": bool(session.get("authenticated")), "next": next_url}
        )

    data = request.get_json(silent=True) or request.form
    username = data.get("username", "")
    password = data.get("password", "")
    next_url = auth_service.get_redirect_target(data.get("next") or request.args.get("next"))

    if not auth_service.is_configured():
        logger.error("ADMIN_USERNAME or ADMIN_PASSWORD_HASH not set in .env file.")
        return (
            jsonify({"error": settings_service.get_message(lang, "auth.error_config")}),
            500,
        )

    if auth_service.authenticate(username, password):
        session["authenticated"] = True
        session["username"] = username
        logger.info("User authenticated successfully.")
        return redirect(next_url)

    logger.warning("Failed login attempt.")
    return (
        jsonify({"error": settings_service.get_message(lang, "auth.error_invalid")}),
        401,
    )


@auth_bp.route("/logout")
def logout():
    """Logout and clear session."""
    session.pop("authenticated", None)
    session.pop("username", None)
    return redirect(url_for("auth.login"))
