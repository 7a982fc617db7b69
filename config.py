"""
Configuration for the PayToPrint kiosk backend.

All values can be overridden from the environment or a .env file next to
this module. Printer ids, consumable defaults and timing of the simulated
printer are configurable so tests can run with tiny durations.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file early so environment variables are available for Config class
# This must happen before the Config class is defined
load_dotenv(override=True)

# Base directory (where this file lives)
BASE_DIR = Path(__file__).resolve().parent


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> list:
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Config:
    """Default configuration for the Flask application."""

    # Flask settings
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    UPLOAD_FOLDER = os.environ.get(
        "UPLOAD_FOLDER", str(BASE_DIR / "temp_uploads")
    )
    MAX_CONTENT_LENGTH = 800 * 1024 * 1024  # 800 MB uploads
    ENVIRONMENT = os.environ.get("FLASK_ENV", "development")

    # Debug mode
    DEBUG = os.environ.get("FLASK_DEBUG", "1") == "1"

    # ==========================================================================
    # Resource ledger
    # ==========================================================================
    # Printers are seeded once at startup (INSERT OR IGNORE), so changing the
    # defaults below never overwrites levels of a printer that already exists.
    LEDGER_DB_PATH = os.environ.get(
        "LEDGER_DB_PATH", str(BASE_DIR / "database" / "print.db")
    )
    PRINTER_IDS = _env_list("PRINTER_IDS", "SOS,SOT,ANVI")
    DEFAULT_PRINTER_ID = os.environ.get("DEFAULT_PRINTER_ID", "SOS")
    DEFAULT_PAPER_COUNT = int(os.environ.get("DEFAULT_PAPER_COUNT", "500"))
    DEFAULT_BLACK_INK = float(os.environ.get("DEFAULT_BLACK_INK", "100"))
    DEFAULT_COLOR_INK = float(os.environ.get("DEFAULT_COLOR_INK", "100"))

    # ==========================================================================
    # Sessions
    # ==========================================================================
    MAX_USER_PAGES = int(os.environ.get("MAX_USER_PAGES", "150"))
    SESSION_EXPIRE_SECONDS = float(os.environ.get("SESSION_EXPIRE_SECONDS", "300"))
    SWEEP_INTERVAL_SECONDS = float(os.environ.get("SWEEP_INTERVAL_SECONDS", "30"))
    SWEEP_ENABLED = _env_bool("SWEEP_ENABLED", "1")

    # ==========================================================================
    # Simulated printer
    # ==========================================================================
    # Formula: seconds = clamp(pages x copies x PRINT_SECONDS_PER_PAGE,
    #                          PRINT_MIN_SECONDS, PRINT_MAX_SECONDS)
    PRINT_SECONDS_PER_PAGE = float(os.environ.get("PRINT_SECONDS_PER_PAGE", "1.0"))
    PRINT_MIN_SECONDS = float(os.environ.get("PRINT_MIN_SECONDS", "10"))
    PRINT_MAX_SECONDS = float(os.environ.get("PRINT_MAX_SECONDS", "90"))

    # ==========================================================================
    # Pricing and payment
    # ==========================================================================
    PRICE_PER_PAGE_BW = float(os.environ.get("PRICE_PER_PAGE_BW", "2"))
    PRICE_PER_PAGE_COLOR = float(os.environ.get("PRICE_PER_PAGE_COLOR", "10"))
    ENFORCE_PAYMENT_AMOUNT = _env_bool("ENFORCE_PAYMENT_AMOUNT", "0")

    # Admin endpoints are open when no token is configured
    ADMIN_TOKEN = os.environ.get("ADMIN_TOKEN") or None


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    """Testing configuration."""
    DEBUG = False
    TESTING = True
    SWEEP_ENABLED = False
    PRINT_SECONDS_PER_PAGE = 0.0
    PRINT_MIN_SECONDS = 0.05
    PRINT_MAX_SECONDS = 0.2
    ADMIN_TOKEN = None
