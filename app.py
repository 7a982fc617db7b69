"""
PayToPrint kiosk backend - Flask Application Entry Point.

This is a slim app factory that:
1. Opens the resource ledger (SQLite, printers seeded once)
2. Creates the session store, print coordinator and kiosk service
3. Starts the session sweeper (separate thread)
4. Registers route blueprints
5. Sets up JSON error handlers and shutdown cleanup

ARCHITECTURE:
    Main Thread
    ├── Ledger initialization (schema + printer seed)
    ├── Flask request handling
    └── Cleanup on shutdown (stop sweeper, cancel pending jobs)

    Sweeper Thread (background)
    └── Expiry sweep every SWEEP_INTERVAL_SECONDS

    Print Timer Threads (one per admitted job)
    └── Ledger deduction, then session DONE, then printer IDLE
"""

from __future__ import annotations

import atexit
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from flask import Flask
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from logging_config import setup_logging, get_logger
from core.exceptions import PayToPrintError
from modules.file_storage import FileStorage
from modules.page_counter import PageCounter
from modules.pricing import PriceQuoter
from services.kiosk_service import KioskService
from services.ledger import ResourceLedger
from services.print_coordinator import PrintCoordinator
from services.session_store import SessionStore
from services.session_sweeper import SessionSweeper
from routes import register_blueprints


# Module logger (configured after setup_logging)
logger = get_logger(__name__)


def create_app(
    config_object: Any = "config.Config",
    overrides: Optional[Dict[str, Any]] = None,
) -> Flask:
    """
    Application factory - creates and configures Flask app.

    Args:
        config_object: import path or class passed to config.from_object()
        overrides: settings applied on top (tests pass tmp paths here)

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)
    app.config.from_object(config_object)
    if overrides:
        app.config.update(overrides)

    # Configure logging
    log_level = logging.DEBUG if app.config.get("DEBUG") else logging.INFO
    enable_file_logging = app.config.get("ENVIRONMENT") == "production" and not app.config.get("TESTING")

    root_logger = setup_logging(
        app_name="pay_to_print",
        log_level=log_level,
        enable_file_logging=enable_file_logging
    )

    # Set Flask's logger to use our configured logger
    app.logger.handlers = root_logger.handlers
    app.logger.setLevel(log_level)

    logger.info(f"Starting PayToPrint in {app.config.get('ENVIRONMENT')} mode")

    # Ensure upload folder exists
    upload_folder = Path(app.config["UPLOAD_FOLDER"])
    upload_folder.mkdir(parents=True, exist_ok=True)

    # =========================================================================
    # CORE INITIALIZATION (FAIL-FAST)
    # =========================================================================

    ledger = ResourceLedger.from_config(app.config)
    try:
        ledger.init()
    except Exception as e:
        logger.error(f"FATAL: Cannot open ledger at {ledger.db_path} - {e}")
        raise
    app.config["LEDGER"] = ledger

    # =========================================================================
    # SERVICES INITIALIZATION
    # =========================================================================

    storage = FileStorage(upload_folder)
    session_store = SessionStore(storage, ttl_seconds=app.config["SESSION_EXPIRE_SECONDS"])
    coordinator = PrintCoordinator.from_config(app.config, session_store, ledger)

    kiosk = KioskService(
        ledger,
        session_store,
        coordinator,
        storage,
        PageCounter(),
        PriceQuoter.from_config(app.config),
        default_printer_id=app.config["DEFAULT_PRINTER_ID"],
        max_user_pages=app.config["MAX_USER_PAGES"],
        enforce_payment_amount=app.config["ENFORCE_PAYMENT_AMOUNT"],
    )
    app.config["FILE_STORAGE"] = storage
    app.config["SESSION_STORE"] = session_store
    app.config["PRINT_COORDINATOR"] = coordinator
    app.config["KIOSK_SERVICE"] = kiosk

    sweeper = SessionSweeper(
        session_store,
        interval_seconds=app.config["SWEEP_INTERVAL_SECONDS"],
        ttl_seconds=app.config["SESSION_EXPIRE_SECONDS"],
        coordinator=coordinator,
    )
    if app.config.get("SWEEP_ENABLED"):
        sweeper.start()
        logger.info("Session sweeper started")
    app.config["SESSION_SWEEPER"] = sweeper

    # =========================================================================
    # CLEANUP REGISTRATION
    # =========================================================================

    def cleanup():
        """Cleanup on application shutdown."""
        logger.info("Shutting down...")

        sweeper.stop()
        coordinator.shutdown()

        logger.info("Shutdown complete")

    atexit.register(cleanup)

    # =========================================================================
    # REGISTER BLUEPRINTS
    # =========================================================================

    register_blueprints(app)

    # =========================================================================
    # ERROR HANDLERS
    # =========================================================================

    @app.errorhandler(PayToPrintError)
    def handle_kiosk_error(e: PayToPrintError):
        if e.http_status >= 500:
            logger.error(f"{type(e).__name__}: {e}")
        else:
            logger.info(f"Request refused ({e.reason}): {e.message}")
        return e.to_dict(), e.http_status

    @app.errorhandler(RequestEntityTooLarge)
    def handle_file_too_large(e):
        max_mb = app.config.get("MAX_CONTENT_LENGTH", 800 * 1024 * 1024) / (1024 * 1024)
        return {
            "error": f"File too large. Maximum upload size is {max_mb:.0f} MB.",
            "reason": "file_too_large",
            "details": {},
        }, 413

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return {
            "error": e.description,
            "reason": (e.name or "error").lower().replace(" ", "_"),
            "details": {},
        }, e.code

    @app.errorhandler(Exception)
    def handle_server_error(e):
        logger.error(f"500 error: {e}", exc_info=True)
        return {"error": "Server error", "reason": "server_error", "details": {}}, 500

    logger.info("Application initialized successfully")
    return app


if __name__ == "__main__":
    app = create_app()
    debug_mode = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(debug=debug_mode, threaded=True, use_reloader=False)
