"""
Main routes (liveness and machine status).

Polled by the kiosk screen and by the hosting platform's health checks.
"""

from flask import Blueprint

from routes.common import get_kiosk

main_bp = Blueprint("main", __name__)


@main_bp.route("/", methods=["GET"])
def index():
    return "PayToPrint backend is running"


@main_bp.route("/health", methods=["GET"])
def health():
    kiosk = get_kiosk()
    return {
        "status": "ok",
        "machineEnabled": kiosk.machine_enabled,
        "printerBusy": kiosk.coordinator.any_busy(),
    }


@main_bp.route("/machine/status", methods=["GET"])
def machine_status():
    return get_kiosk().machine_status()
