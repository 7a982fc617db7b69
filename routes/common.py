"""
Helpers shared by the route blueprints.

Request parsing, input sanitization and admin checks. Views return plain
dicts (Flask turns them into JSON); domain errors propagate to the app's
error handlers.
"""

from __future__ import annotations

import hmac
from typing import Any, Dict, Optional

import bleach
from flask import current_app, request
from werkzeug.exceptions import BadRequest

from core.exceptions import AdminAuthorizationError


MAX_FILENAME_LENGTH = 255
MAX_PHONE_LENGTH = 20

ADMIN_TOKEN_HEADER = "X-Admin-Token"


def get_kiosk():
    """KioskService created by the app factory."""
    return current_app.config["KIOSK_SERVICE"]


def sanitize_text(text: Optional[str], max_length: Optional[int] = None) -> str:
    """
    Sanitize user input text to prevent XSS and injection attacks.

    Args:
        text: Raw input text
        max_length: Optional maximum length to enforce

    Returns:
        Sanitized text safe for storage and display
    """
    if not text:
        return ""

    text = str(text).strip()
    text = bleach.clean(text, tags=[], strip=True)

    if max_length and len(text) > max_length:
        text = text[:max_length]

    return text


def request_data() -> Dict[str, Any]:
    """JSON body, falling back to form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def parse_int(value: Any, name: str) -> Optional[int]:
    """Optional integer field; a present but malformed value is a 400."""
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BadRequest(f"'{name}' must be an integer")


def parse_float(value: Any, name: str) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise BadRequest(f"'{name}' must be a number")


def require_session_id(data: Dict[str, Any]) -> str:
    session_id = sanitize_text(data.get("sessionId"), max_length=64).upper()
    if not session_id:
        raise BadRequest("sessionId is required")
    return session_id


def has_admin_token() -> bool:
    """True if the request carries the configured admin token."""
    expected = current_app.config.get("ADMIN_TOKEN")
    if not expected:
        return False
    supplied = request.headers.get(ADMIN_TOKEN_HEADER, "")
    return hmac.compare_digest(supplied.encode(), expected.encode())


def require_admin() -> None:
    """
    Gate for admin endpoints.

    Without a configured ADMIN_TOKEN the admin endpoints are open, as on a
    kiosk whose admin screen is only reachable from the local network.
    """
    if current_app.config.get("ADMIN_TOKEN") and not has_admin_token():
        raise AdminAuthorizationError()


def is_privileged(data: Dict[str, Any]) -> bool:
    """
    Whether the request may bypass the page limit and paper shortage.

    With ADMIN_TOKEN configured the token decides; otherwise the
    request's own ``isAdmin`` flag is honoured.
    """
    if current_app.config.get("ADMIN_TOKEN"):
        return has_admin_token()
    return parse_bool(data.get("isAdmin"))
