"""
Services layer for the PayToPrint kiosk.

This module contains the business logic services:
- ResourceLedger: per-printer consumables and the print log (SQLite)
- SessionStore: live upload sessions and their lifecycle
- PrintCoordinator: per-printer IDLE/BUSY gate and simulated print jobs
- SessionSweeper: background expiry sweep
- KioskService: facade used by the routes

Thread Model:
    Main Thread (Flask, one thread per request)
    ├── Sweeper thread (expiry sweep every SWEEP_INTERVAL_SECONDS)
    └── Print-<session> timer threads (one per admitted job)
"""

from .ledger import ResourceLedger
from .session_store import SessionStore
from .print_coordinator import PrintCoordinator, IDLE, BUSY
from .session_sweeper import SessionSweeper
from .kiosk_service import KioskService, StartPrintOutcome

__all__ = [
    "ResourceLedger",
    "SessionStore",
    "PrintCoordinator",
    "IDLE",
    "BUSY",
    "SessionSweeper",
    "KioskService",
    "StartPrintOutcome",
]
