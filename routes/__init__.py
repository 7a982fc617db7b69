"""
Flask route blueprints for the PayToPrint kiosk.

This module contains all route handlers organized by functionality:
- main: liveness and machine status
- sessions: upload, payment and printing for one session
- admin: machine switch, printer levels, resets, reports

Each blueprint is registered with the Flask app in create_app().
"""

from .main import main_bp
from .sessions import sessions_bp
from .admin import admin_bp

__all__ = [
    "main_bp",
    "sessions_bp",
    "admin_bp",
]


def register_blueprints(app):
    """
    Register all blueprints with the Flask app.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(main_bp)
    app.register_blueprint(sessions_bp)
    app.register_blueprint(admin_bp)
