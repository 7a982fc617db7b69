"""
Data models for the PayToPrint kiosk backend.

- PrintSession: one upload-to-print lifecycle (owned by SessionStore)
- Printer / PrintJobRecord: ledger snapshots and print log rows
- PrintJob: coordinator's record of a simulated print

Printer and PrintJobRecord are frozen dataclasses, safe to hand to any
thread. PrintSession and PrintJob are mutated only under their owner's lock.
"""

from .session import PrintSession, PaymentStatus, PrintStatus, PrintMode, ColorMode
from .printer import Printer, PrintJobRecord
from .print_job import PrintJob, JobStatus

__all__ = [
    # Session models
    "PrintSession",
    "PaymentStatus",
    "PrintStatus",
    "PrintMode",
    "ColorMode",
    # Ledger models
    "Printer",
    "PrintJobRecord",
    # Job models
    "PrintJob",
    "JobStatus",
]
