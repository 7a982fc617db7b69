"""
Print session data models.

A session is one user's upload-to-print lifecycle. The SessionStore owns
every PrintSession instance; routes only ever see copies produced by
to_dict().

Lifecycle:
    payment_status: PENDING -> PAID
    print_status:   WAITING -> PRINTING -> DONE
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional


class PaymentStatus(Enum):
    """Payment state of a session."""

    PENDING = "PENDING"
    PAID = "PAID"


class PrintStatus(Enum):
    """
    Print state of a session.

    Only moves forward, except that a job failing on an unknown printer
    puts PRINTING back to WAITING.
    """

    WAITING = "WAITING"
    PRINTING = "PRINTING"
    DONE = "DONE"


class PrintMode(Enum):
    """Single or double sided output."""

    SIMPLEX = "simplex"
    DUPLEX = "duplex"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["PrintMode"]:
        if not value:
            return None
        if isinstance(value, cls):
            return value
        return cls.DUPLEX if str(value).strip().lower() == "duplex" else cls.SIMPLEX


class ColorMode(Enum):
    """
    Ink used for a job.

    Values double as the ``print_type`` written to the print log.
    """

    MONOCHROME = "bw"
    COLOR = "color"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ColorMode":
        """Anything that is not explicitly colour prints black and white."""
        if isinstance(value, cls):
            return value
        if value and str(value).strip().lower() in ("color", "colour"):
            return cls.COLOR
        return cls.MONOCHROME


@dataclass
class PrintSession:
    """
    One upload and its payment/print progress.

    The session exclusively owns ``file_reference`` until it is released;
    after release the reference is None and must not be used again.
    """

    session_id: str
    """Opaque uppercase alphanumeric token."""

    file_reference: Optional[str]
    """Path of the uploaded temp file, None once released."""

    declared_page_count: int
    """Pages reported by the page counter at upload."""

    created_at: float
    """Epoch seconds when the session was created."""

    file_name: str = ""
    """Original (sanitized) upload name, for display."""

    phone: str = ""
    """Optional contact number written to the print log."""

    payment_status: PaymentStatus = PaymentStatus.PENDING
    print_status: PrintStatus = PrintStatus.WAITING

    amount: float = 0.0
    """Amount recorded by payment confirmation."""

    copies: Optional[int] = None
    print_mode: Optional[PrintMode] = None
    color_mode: Optional[ColorMode] = None

    printer_id: Optional[str] = None
    """Printer assigned when the job starts."""

    pages_to_print: Optional[int] = None
    """Pages the job will actually print (after paper shortage handling)."""

    @property
    def is_paid(self) -> bool:
        return self.payment_status is PaymentStatus.PAID

    @property
    def file_released(self) -> bool:
        return self.file_reference is None

    def age_seconds(self, now: float) -> float:
        return now - self.created_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "sessionId": self.session_id,
            "fileName": self.file_name,
            "pages": self.declared_page_count,
            "paymentStatus": self.payment_status.value,
            "printStatus": self.print_status.value,
            "createdAt": datetime.fromtimestamp(self.created_at, tz=timezone.utc).isoformat(),
            "amount": self.amount,
            "copies": self.copies,
            "printMode": self.print_mode.value if self.print_mode else None,
            "printType": self.color_mode.value if self.color_mode else None,
            "printerId": self.printer_id,
            "pagesToPrint": self.pages_to_print,
            "fileReleased": self.file_released,
        }
