"""
Core module for the PayToPrint kiosk backend.

Contains the exception hierarchy shared by services, modules and routes.
"""

from .exceptions import (
    PayToPrintError,
    NotFoundError,
    SessionNotFoundError,
    PrinterNotFoundError,
    UnsupportedFileError,
    EmptyFileError,
    PreconditionFailedError,
    PaymentNotConfirmedError,
    PrinterBusyError,
    MachineDisabledError,
    PageLimitExceededError,
    OutOfPaperError,
    InvalidSessionStateError,
    AmountMismatchError,
    InsufficientStateError,
    AdminAuthorizationError,
)

__all__ = [
    "PayToPrintError",
    "NotFoundError",
    "SessionNotFoundError",
    "PrinterNotFoundError",
    "UnsupportedFileError",
    "EmptyFileError",
    "PreconditionFailedError",
    "PaymentNotConfirmedError",
    "PrinterBusyError",
    "MachineDisabledError",
    "PageLimitExceededError",
    "OutOfPaperError",
    "InvalidSessionStateError",
    "AmountMismatchError",
    "InsufficientStateError",
    "AdminAuthorizationError",
]
