"""
Print job data models.

A PrintJob is created by the coordinator when a session is admitted to a
printer and is updated exactly once when the simulated job completes,
fails or is cancelled. Routes read it to report job progress.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional

from .session import ColorMode, PrintMode


class JobStatus(Enum):
    """
    Status of a print job.

    Lifecycle:
        SCHEDULED -> (COMPLETED | FAILED | CANCELLED)
    """

    SCHEDULED = "scheduled"
    """Job admitted, simulated print in progress."""

    COMPLETED = "completed"
    """Consumables deducted and session marked DONE."""

    FAILED = "failed"
    """Ledger deduction failed; session went back to WAITING."""

    CANCELLED = "cancelled"
    """Aborted by an administrative reset before completion."""


@dataclass
class PrintJob:
    """
    A simulated print job for one session on one printer.

    Thread Safety:
        Only mutated by the coordinator while it holds its lock.
    """

    session_id: str
    printer_id: str
    pages: int
    """Total pages printed across all copies."""

    copies: int
    color_mode: ColorMode
    duration_seconds: float
    print_mode: Optional[PrintMode] = None
    status: JobStatus = JobStatus.SCHEDULED
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    record_sequence: Optional[int] = None
    """Print log row written for this job."""

    notes: str = ""

    @property
    def is_finished(self) -> bool:
        return self.status is not JobStatus.SCHEDULED

    @classmethod
    def create_scheduled(
        cls,
        session_id: str,
        printer_id: str,
        pages: int,
        copies: int,
        color_mode: ColorMode,
        duration_seconds: float,
        print_mode: Optional[PrintMode] = None,
    ) -> "PrintJob":
        return cls(
            session_id=session_id,
            printer_id=printer_id,
            pages=pages,
            copies=copies,
            color_mode=color_mode,
            duration_seconds=duration_seconds,
            print_mode=print_mode,
            started_at=datetime.now(timezone.utc),
            notes="Printing.",
        )

    def mark_completed(self, record_sequence: Optional[int]) -> None:
        self.status = JobStatus.COMPLETED
        self.record_sequence = record_sequence
        self.finished_at = datetime.now(timezone.utc)
        self.notes = "Print completed."

    def mark_failed(self, error_message: str) -> None:
        self.status = JobStatus.FAILED
        self.finished_at = datetime.now(timezone.utc)
        self.notes = error_message

    def mark_cancelled(self, reason: str = "Cancelled by administrator.") -> None:
        self.status = JobStatus.CANCELLED
        self.finished_at = datetime.now(timezone.utc)
        self.notes = reason

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "printer_id": self.printer_id,
            "pages": self.pages,
            "copies": self.copies,
            "print_type": self.color_mode.value,
            "print_mode": self.print_mode.value if self.print_mode else None,
            "duration_seconds": self.duration_seconds,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "record_sequence": self.record_sequence,
            "notes": self.notes,
        }
