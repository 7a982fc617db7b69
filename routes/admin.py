"""
Admin routes.

Machine switch, session overview, printer levels, resets and the revenue /
usage reports read from the print log. All endpoints go through
require_admin() (a no-op unless ADMIN_TOKEN is configured).
"""

from datetime import date, datetime, timezone

from flask import Blueprint, request
from werkzeug.exceptions import BadRequest

from logging_config import get_logger
from routes.common import (
    get_kiosk,
    parse_bool,
    parse_float,
    parse_int,
    request_data,
    require_admin,
    sanitize_text,
)


# Module logger
logger = get_logger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


@admin_bp.before_request
def _check_admin():
    require_admin()


@admin_bp.route("/status", methods=["GET"])
def status():
    return get_kiosk().admin_status()


@admin_bp.route("/machine-toggle", methods=["POST"])
def machine_toggle():
    data = request_data()
    enabled = get_kiosk().set_machine_enabled(parse_bool(data.get("enabled")))
    return {"success": True, "status": "ENABLED" if enabled else "DISABLED"}


@admin_bp.route("/sessions", methods=["GET"])
def sessions():
    return {"sessions": [s.to_dict() for s in get_kiosk().list_sessions()]}


@admin_bp.route("/current-session", methods=["GET"])
def current_session():
    session = get_kiosk().current_session()
    return {"session": session.to_dict() if session else None}


@admin_bp.route("/printer-status", methods=["GET"])
def printer_status():
    printer_id = sanitize_text(request.args.get("printerId"), max_length=32) or None
    return {"printers": get_kiosk().printer_status(printer_id)}


@admin_bp.route("/printer-reset", methods=["POST"])
def printer_reset():
    """Refill a printer. Levels left out go back to the configured defaults."""
    data = request_data()
    printer_id = sanitize_text(data.get("printerId"), max_length=32)
    if not printer_id:
        raise BadRequest("printerId is required")

    try:
        printer = get_kiosk().reset_printer(
            printer_id,
            paper=parse_int(data.get("paper"), "paper"),
            black_ink=parse_float(data.get("blackInk"), "blackInk"),
            color_ink=parse_float(data.get("colorInk"), "colorInk"),
        )
    except ValueError as e:
        raise BadRequest(str(e))
    return {"success": True, "printer": printer}


@admin_bp.route("/reset-machine", methods=["POST"])
def reset_machine():
    logger.warning("Machine reset requested from admin panel")
    result = get_kiosk().reset_machine()
    return {"success": True, "message": "Machine reset by admin", **result}


# =============================================================================
# REPORTS
# =============================================================================

@admin_bp.route("/orders", methods=["GET"])
def orders():
    raw = request.args.get("date") or datetime.now(timezone.utc).date().isoformat()
    try:
        day = date.fromisoformat(raw)
    except ValueError:
        raise BadRequest("date must be YYYY-MM-DD")
    return {"date": day.isoformat(), "orders": get_kiosk().orders(day)}


@admin_bp.route("/summary/<period>", methods=["GET"])
def summary(period: str):
    if period not in ("today", "month"):
        return {"error": "Unknown period", "reason": "not_found", "details": {"period": period}}, 404
    rows = get_kiosk().revenue(period)
    return {
        "period": period,
        "printers": rows,
        "total": round(sum(r["revenue"] for r in rows), 2),
    }


@admin_bp.route("/usage", methods=["GET"])
def usage():
    return {"usage": get_kiosk().usage()}


@admin_bp.route("/top-printer", methods=["GET"])
def top_printer():
    return {"printer": get_kiosk().top_printer()}


@admin_bp.route("/least-printer", methods=["GET"])
def least_printer():
    return {"printer": get_kiosk().least_printer()}
