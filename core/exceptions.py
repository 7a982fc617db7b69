"""
Custom exceptions for the PayToPrint kiosk backend.

Exception Hierarchy:
    PayToPrintError (base)
    ├── NotFoundError                 - session or printer does not exist
    │   ├── SessionNotFoundError
    │   └── PrinterNotFoundError
    ├── UnsupportedFileError          - file type not recognized by the page counter
    ├── EmptyFileError                - zero-byte upload or nothing to print
    ├── PreconditionFailedError       - caller may retry after resolving the condition
    │   ├── PaymentNotConfirmedError
    │   ├── PrinterBusyError
    │   ├── MachineDisabledError
    │   ├── PageLimitExceededError
    │   ├── OutOfPaperError
    │   ├── InvalidSessionStateError
    │   └── AmountMismatchError
    ├── InsufficientStateError        - ledger deduction on an unknown printer
    └── AdminAuthorizationError       - admin token missing or wrong

Every class carries ``http_status`` and ``reason`` so the HTTP layer can
turn any of them into a structured JSON outcome without a lookup table.
"""

from typing import Optional, Dict, Any


class PayToPrintError(Exception):
    """
    Base exception for all kiosk errors.

    Callers can catch every application-specific error with a single
    except clause and render it with to_dict().
    """

    http_status = 500
    reason = "error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Structured outcome for the HTTP layer."""
        return {
            "error": self.message,
            "reason": self.reason,
            "details": self.details,
        }


# =============================================================================
# NOT FOUND
# =============================================================================

class NotFoundError(PayToPrintError):
    """Referenced entity does not exist. Surfaced to the caller, never retried."""

    http_status = 404
    reason = "not_found"


class SessionNotFoundError(NotFoundError):
    """No live session with this id."""

    def __init__(self, session_id: str):
        super().__init__("Session not found", {"session_id": session_id})
        self.session_id = session_id


class PrinterNotFoundError(NotFoundError):
    """No printer with this id in the ledger."""

    def __init__(self, printer_id: str):
        super().__init__("Printer not found", {"printer_id": printer_id})
        self.printer_id = printer_id


# =============================================================================
# UPLOAD ERRORS - the uploaded file is deleted before these are raised
# =============================================================================

class UnsupportedFileError(PayToPrintError):
    """
    Uploaded file type is not recognized, or its parser rejected it.

    Supported: PDF, JPG/JPEG/PNG, DOCX, XLSX.
    """

    http_status = 400
    reason = "unsupported_file"

    def __init__(self, filename: str, message: str = "Unsupported file type"):
        super().__init__(message, {"filename": filename})
        self.filename = filename


class EmptyFileError(PayToPrintError):
    """Uploaded file is empty or has no printable pages."""

    http_status = 400
    reason = "empty_file"

    def __init__(self, filename: str):
        super().__init__("Uploaded file has no printable pages", {"filename": filename})
        self.filename = filename


# =============================================================================
# PRECONDITIONS - caller may retry once the condition is resolved
# =============================================================================

class PreconditionFailedError(PayToPrintError):
    """
    Base class for operations refused because of the current state.

    Subclasses set ``reason`` to a short machine-readable code.
    """

    http_status = 409
    reason = "precondition_failed"


class PaymentNotConfirmedError(PreconditionFailedError):
    """Printing requested before payment was confirmed."""

    reason = "payment_not_confirmed"

    def __init__(self, session_id: str):
        super().__init__("Payment not confirmed yet.", {"session_id": session_id})
        self.session_id = session_id


class PrinterBusyError(PreconditionFailedError):
    """Another session currently holds the printer."""

    reason = "printer_busy"

    def __init__(self, printer_id: str, active_session_id: Optional[str] = None):
        details = {"printer_id": printer_id}
        if active_session_id:
            details["active_session_id"] = active_session_id
        super().__init__("Printer is busy. Please wait.", details)
        self.printer_id = printer_id
        self.active_session_id = active_session_id


class MachineDisabledError(PreconditionFailedError):
    """Kiosk has been switched off by an administrator."""

    http_status = 403
    reason = "machine_disabled"

    def __init__(self):
        super().__init__("Machine is under maintenance. Please try later.")


class PageLimitExceededError(PreconditionFailedError):
    """Document has more pages than a regular user may print."""

    http_status = 400
    reason = "page_limit"

    def __init__(self, pages: int, max_pages: int):
        super().__init__(
            f"Maximum {max_pages} pages allowed per print job.",
            {"pages": pages, "max_pages": max_pages},
        )
        self.pages = pages
        self.max_pages = max_pages


class OutOfPaperError(PreconditionFailedError):
    """Forced print on a printer with no paper left at all."""

    reason = "out_of_paper"

    def __init__(self, printer_id: str):
        super().__init__(f"Printer {printer_id} has no paper left.", {"printer_id": printer_id})
        self.printer_id = printer_id


class InvalidSessionStateError(PreconditionFailedError):
    """Session is not in a state that allows the requested transition."""

    reason = "invalid_state"

    def __init__(self, session_id: str, message: str, state: Optional[str] = None):
        details = {"session_id": session_id}
        if state:
            details["print_status"] = state
        super().__init__(message, details)
        self.session_id = session_id


class AmountMismatchError(PreconditionFailedError):
    """Paid amount does not cover the quoted price."""

    http_status = 402
    reason = "amount_mismatch"

    def __init__(self, session_id: str, amount: float, expected: float):
        super().__init__(
            f"Amount {amount:.2f} does not match expected {expected:.2f}",
            {"session_id": session_id, "amount": amount, "expected": expected},
        )
        self.amount = amount
        self.expected = expected


# =============================================================================
# LEDGER / JOB ERRORS
# =============================================================================

class InsufficientStateError(PayToPrintError):
    """
    Ledger deduction targeted a printer that does not exist.

    Fatal to the print job (not retried); the coordinator puts the session
    back to WAITING so the user can retry or cancel.
    """

    reason = "insufficient_state"

    def __init__(self, printer_id: str):
        super().__init__(
            f"Cannot deduct consumables: unknown printer {printer_id}",
            {"printer_id": printer_id},
        )
        self.printer_id = printer_id


class AdminAuthorizationError(PayToPrintError):
    """Admin endpoint or privileged request without a valid admin token."""

    http_status = 403
    reason = "forbidden"

    def __init__(self):
        super().__init__("Administrator access required.")
