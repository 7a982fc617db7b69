"""
Kiosk service - the upward operations of the print kiosk.

Wires the resource ledger, session store, print coordinator, page counter,
file storage and pricing together and holds the machine-enabled flag.
Routes call into this class only; they never touch the collaborators
directly.

Usage:
    kiosk = KioskService(ledger, store, coordinator, storage,
                         PageCounter(), PriceQuoter(2, 10))
    session = kiosk.create_session(upload)
    kiosk.confirm_payment(session.session_id, 6.0)
    outcome = kiosk.start_print(session.session_id, copies=1)
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.exceptions import (
    AmountMismatchError,
    EmptyFileError,
    MachineDisabledError,
    OutOfPaperError,
    PageLimitExceededError,
    PaymentNotConfirmedError,
    PrinterBusyError,
    UnsupportedFileError,
)
from logging_config import get_logger
from models.print_job import PrintJob
from models.printer import Printer
from models.session import ColorMode, PrintMode, PrintSession
from modules.file_storage import FileStorage
from modules.page_counter import PageCounter
from modules.pricing import PriceQuoter
from services.ledger import ResourceLedger
from services.print_coordinator import PrintCoordinator
from services.session_store import SessionStore


logger = get_logger(__name__)


@dataclass
class StartPrintOutcome:
    """
    Result of a start-print request.

    Either the job was admitted (``started``), or the printer is short of
    paper and the caller must confirm with ``force`` (``warning``).
    """

    session_id: str
    printer_id: str
    started: bool
    pages: int
    shortfall: int = 0
    available: Optional[int] = None
    duration_seconds: Optional[float] = None
    message: str = ""
    job: Optional[PrintJob] = field(default=None, repr=False)

    @property
    def warning(self) -> bool:
        return not self.started

    def to_dict(self) -> Dict[str, Any]:
        if self.warning:
            return {
                "warning": True,
                "message": self.message,
                "sessionId": self.session_id,
                "printerId": self.printer_id,
                "available": self.available,
                "required": self.pages + self.shortfall,
                "shortfall": self.shortfall,
            }
        return {
            "success": True,
            "message": self.message,
            "sessionId": self.session_id,
            "printerId": self.printer_id,
            "pages": self.pages,
            "shortfall": self.shortfall,
            "duration": self.duration_seconds,
        }


class KioskService:
    """
    Facade over the kiosk's collaborators.

    Thread Safety:
        Safe to call from concurrent request threads. Admission to a
        printer is decided by the coordinator under its own lock; the
        checks done here are early rejections only.
    """

    def __init__(
        self,
        ledger: ResourceLedger,
        session_store: SessionStore,
        coordinator: PrintCoordinator,
        storage: FileStorage,
        page_counter: PageCounter,
        pricing: PriceQuoter,
        default_printer_id: str = "SOS",
        max_user_pages: int = 150,
        enforce_payment_amount: bool = False,
    ):
        self.ledger = ledger
        self.store = session_store
        self.coordinator = coordinator
        self.storage = storage
        self.page_counter = page_counter
        self.pricing = pricing
        self.default_printer_id = default_printer_id
        self.max_user_pages = max_user_pages
        self.enforce_payment_amount = enforce_payment_amount

        self._enabled = threading.Event()
        self._enabled.set()

        logger.info(
            f"KioskService initialized (default printer: {default_printer_id}, "
            f"max pages: {max_user_pages})"
        )

    # ------------------------------------------------------------------
    # Machine switch
    # ------------------------------------------------------------------

    @property
    def machine_enabled(self) -> bool:
        return self._enabled.is_set()

    def set_machine_enabled(self, enabled: bool) -> bool:
        if enabled:
            self._enabled.set()
        else:
            self._enabled.clear()
        logger.info(f"Machine {'ENABLED' if enabled else 'DISABLED'} by admin")
        return self.machine_enabled

    def machine_status(self) -> Dict[str, Any]:
        return {"enabled": self.machine_enabled}

    def _require_enabled(self) -> None:
        if not self.machine_enabled:
            raise MachineDisabledError()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(
        self,
        upload,
        phone: str = "",
        privileged: bool = False,
        display_name: Optional[str] = None,
    ) -> PrintSession:
        """
        Store an uploaded file, count its pages and open a session for it.

        Args:
            upload: werkzeug FileStorage (anything with .filename and .save())
            phone: optional contact number, recorded on the print log
            privileged: admin upload, not subject to the page limit
            display_name: name shown to the user; defaults to the upload name

        Raises:
            MachineDisabledError: kiosk switched off (checked before and
                after page counting)
            UnsupportedFileError: unknown type or unreadable document
            EmptyFileError: zero-byte file or nothing to print
            PageLimitExceededError: too many pages for a regular user

        On any of the upload errors the stored file is deleted first.
        """
        self._require_enabled()

        filename = upload.filename or ""
        if not PageCounter.is_allowed(filename):
            raise UnsupportedFileError(filename)

        file_reference = self.storage.store(upload)
        try:
            pages = self.page_counter.count_pages(file_reference, filename)
            if pages <= 0:
                raise EmptyFileError(filename)
            if not privileged and pages > self.max_user_pages:
                raise PageLimitExceededError(pages, self.max_user_pages)
            # Page counting can take a while; an admin may have switched off meanwhile
            self._require_enabled()
        except Exception:
            self.storage.delete(file_reference)
            raise

        return self.store.create(
            file_reference,
            pages,
            file_name=display_name if display_name is not None else filename,
            phone=phone,
        )

    def get_session(self, session_id: str) -> PrintSession:
        return self.store.get(session_id)

    def get_job(self, session_id: str) -> Optional[PrintJob]:
        self.store.get(session_id)
        return self.coordinator.get_job(session_id)

    def quote(
        self,
        session_id: str,
        copies: Optional[int] = None,
        color_mode: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Price for the session's pages with the given (or recorded) options."""
        session = self.store.get(session_id)
        copies = max(1, int(copies or session.copies or 1))
        mode = ColorMode.parse(color_mode or session.color_mode)
        return {
            "sessionId": session_id,
            "pages": session.declared_page_count,
            "copies": copies,
            "printType": mode.value,
            "amount": self.pricing.quote(session.declared_page_count, copies, mode),
        }

    def confirm_payment(
        self,
        session_id: str,
        amount: Any,
        copies: Optional[int] = None,
        color_mode: Optional[str] = None,
    ) -> PrintSession:
        """
        Mark a session paid.

        The amount is trusted unless ``enforce_payment_amount`` is on, in
        which case it must cover the quote.

        Raises:
            SessionNotFoundError: unknown session
            AmountMismatchError: amount below the quote (enforcement only)
        """
        session = self.store.get(session_id)
        paid = _parse_amount(amount)

        if self.enforce_payment_amount:
            expected = self.quote(session_id, copies, color_mode)["amount"]
            if paid + 1e-9 < expected:
                logger.warning(f"Payment rejected for {session_id}: {paid:.2f} < {expected:.2f}")
                raise AmountMismatchError(session_id, paid, expected)

        if copies is not None or color_mode is not None:
            self.store.set_options(
                session.session_id,
                copies=copies,
                color_mode=ColorMode.parse(color_mode) if color_mode else None,
            )
        return self.store.confirm_payment(session_id, paid)

    def start_print(
        self,
        session_id: str,
        copies: Optional[int] = None,
        color_mode: Optional[str] = None,
        print_mode: Optional[str] = None,
        printer_id: Optional[str] = None,
        privileged: bool = False,
        force: bool = False,
    ) -> StartPrintOutcome:
        """
        Admit a paid session to a printer.

        When the printer has fewer sheets than required, a regular request
        gets a warning outcome and nothing starts; repeating it with
        ``force`` prints what the paper allows. Privileged requests print
        everything.

        Raises:
            SessionNotFoundError: unknown session
            MachineDisabledError: kiosk switched off
            PrinterNotFoundError: unknown printer
            PrinterBusyError: another session holds the printer
            PaymentNotConfirmedError: session not paid
            OutOfPaperError: forced request on a printer with no paper
            InvalidSessionStateError: session already printing or done
        """
        session = self.store.get(session_id)
        self._require_enabled()

        printer_id = printer_id or session.printer_id or self.default_printer_id
        printer = self.ledger.get_status(printer_id)

        active = self.coordinator.active_session(printer_id)
        if active is not None and active != session_id:
            raise PrinterBusyError(printer_id, active)
        if not session.is_paid:
            raise PaymentNotConfirmedError(session_id)

        copies = max(1, int(copies or session.copies or 1))
        mode = ColorMode.parse(color_mode or session.color_mode)
        layout = PrintMode.parse(print_mode) if print_mode else session.print_mode

        if self.enforce_payment_amount:
            expected = self.pricing.quote(session.declared_page_count, copies, mode)
            if session.amount + 1e-9 < expected:
                raise AmountMismatchError(session_id, session.amount, expected)

        requested = session.declared_page_count * copies
        allowed, shortfall = self.ledger.compute_feasible_pages(printer_id, requested, privileged)

        if shortfall > 0:
            if not force:
                logger.warning(
                    f"Paper shortage on {printer_id} for {session_id}: "
                    f"need {requested}, have {printer.paper_count}"
                )
                return StartPrintOutcome(
                    session_id=session_id,
                    printer_id=printer_id,
                    started=False,
                    pages=allowed,
                    shortfall=shortfall,
                    available=printer.paper_count,
                    message=(
                        f"Only {printer.paper_count} pages available. "
                        f"Print {allowed} pages now?"
                    ),
                )
            if allowed == 0:
                raise OutOfPaperError(printer_id)

        job = self.coordinator.start(
            session_id,
            printer_id,
            copies=copies,
            color_mode=mode,
            print_mode=layout,
            pages_to_print=allowed,
        )
        return StartPrintOutcome(
            session_id=session_id,
            printer_id=printer_id,
            started=True,
            pages=job.pages,
            shortfall=shortfall,
            available=printer.paper_count,
            duration_seconds=job.duration_seconds,
            message=f"Printing {job.pages} pages on {printer_id}",
            job=job,
        )

    def finish_print(self, session_id: str) -> PrintSession:
        return self.coordinator.finish(session_id)

    def cancel_session(self, session_id: str) -> None:
        self.store.cancel(session_id)
        self.coordinator.forget(session_id)

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    def admin_status(self) -> Dict[str, Any]:
        printers = {p.printer_id: self.coordinator.state(p.printer_id) for p in self.ledger.list_printers()}
        return {
            "machineEnabled": self.machine_enabled,
            "printerBusy": self.coordinator.any_busy(),
            "printers": printers,
            "activeSessions": len(self.store),
            "orphanFiles": len(self.storage.orphans),
        }

    def list_sessions(self) -> List[PrintSession]:
        return self.store.list_sessions()

    def current_session(self) -> Optional[PrintSession]:
        return self.store.latest()

    def printer_status(self, printer_id: Optional[str] = None) -> List[Dict[str, Any]]:
        printers = [self.ledger.get_status(printer_id)] if printer_id else self.ledger.list_printers()
        return [self._printer_view(p) for p in printers]

    def _printer_view(self, printer: Printer) -> Dict[str, Any]:
        view = printer.to_dict()
        view["state"] = self.coordinator.state(printer.printer_id)
        view["active_session"] = self.coordinator.active_session(printer.printer_id)
        return view

    def reset_printer(
        self,
        printer_id: str,
        paper: Optional[int] = None,
        black_ink: Optional[float] = None,
        color_ink: Optional[float] = None,
    ) -> Dict[str, Any]:
        printer = self.ledger.reset_levels(printer_id, paper=paper, black_ink=black_ink, color_ink=color_ink)
        return self._printer_view(printer)

    def reset_machine(self) -> Dict[str, int]:
        """
        Abort every pending job and drop every session.

        Best effort: a failing step is logged and the rest still runs.
        """
        cancelled = 0
        cleared = 0
        try:
            cancelled = self.coordinator.abort_all()
        except Exception as e:
            logger.error(f"Aborting print jobs failed during reset: {e}")
        try:
            cleared = self.store.clear_all()
        except Exception as e:
            logger.error(f"Clearing sessions failed during reset: {e}")
        try:
            self.coordinator.prune()
        except Exception as e:
            logger.error(f"Dropping job records failed during reset: {e}")

        logger.warning(f"Machine reset: {cancelled} job(s) cancelled, {cleared} session(s) cleared")
        return {"cancelledJobs": cancelled, "clearedSessions": cleared}

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def orders(self, day) -> List[Dict[str, Any]]:
        return [record.to_dict() for record in self.ledger.records_for_date(day)]

    def revenue(self, period: str = "today") -> List[Dict[str, Any]]:
        return self.ledger.revenue_by_printer(period)

    def usage(self) -> List[Dict[str, Any]]:
        return self.ledger.usage_by_printer()

    def top_printer(self) -> Optional[Dict[str, Any]]:
        return self.ledger.busiest_printer()

    def least_printer(self) -> Optional[Dict[str, Any]]:
        return self.ledger.least_used_printer()


def _parse_amount(value: Any) -> float:
    """Non-numeric or negative amounts count as zero."""
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    if amount != amount or amount < 0:
        return 0.0
    return round(amount, 2)
