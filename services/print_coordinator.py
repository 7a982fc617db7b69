"""
Print job coordinator with one simulated job per printer.

Each printer is either IDLE or BUSY. A session is admitted only while its
printer is IDLE, and the admission check runs under the same lock as the
session's WAITING -> PRINTING transition, so two sessions can never both
see IDLE and both start printing.

Admitted jobs run as a threading.Timer (the cancellation handle). When the
timer fires, or when finish() is called explicitly, the job completes
exactly once:

    1. ResourceLedger.reserve_and_deduct()   - consumables + print log row
    2. SessionStore.finish_print()           - DONE, file released
    3. printer back to IDLE

The ledger step always happens before the session is marked DONE, so a
client polling the session never sees DONE without a print log row.

If the ledger rejects the deduction (unknown printer) the job is FAILED,
the session goes back to WAITING and the printer becomes IDLE again.

Lock order: coordinator lock, then the session store's lock. The store
never calls back into the coordinator.

Usage:
    coordinator = PrintCoordinator(session_store, ledger)
    job = coordinator.start(session_id, "SOS", copies=2)
    coordinator.wait_for_job(session_id, timeout=120)

    # Administrative reset
    coordinator.abort_all()
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Dict, Optional

from core.exceptions import InvalidSessionStateError, PrinterBusyError, SessionNotFoundError
from logging_config import get_job_logger, get_logger, set_thread_name
from models.print_job import JobStatus, PrintJob
from models.session import ColorMode, PrintMode, PrintSession, PrintStatus
from services.ledger import ResourceLedger
from services.session_store import SessionStore


logger = get_logger(__name__)

IDLE = "IDLE"
BUSY = "BUSY"


class PrintCoordinator:
    """
    Serializes physical print operations per printer.

    Attributes:
        seconds_per_page: simulated print speed
        min_seconds / max_seconds: bounds on a job's simulated duration
    """

    def __init__(
        self,
        session_store: SessionStore,
        ledger: ResourceLedger,
        seconds_per_page: float = 1.0,
        min_seconds: float = 10.0,
        max_seconds: float = 90.0,
    ):
        if min_seconds > max_seconds:
            raise ValueError("min_seconds must not exceed max_seconds")

        self._store = session_store
        self._ledger = ledger
        self.seconds_per_page = seconds_per_page
        self.min_seconds = min_seconds
        self.max_seconds = max_seconds

        self._lock = threading.RLock()
        self._active: Dict[str, str] = {}  # printer_id -> session_id
        self._jobs: Dict[str, PrintJob] = {}  # session_id -> latest job
        self._timers: Dict[str, threading.Timer] = {}
        self._finished: Dict[str, threading.Event] = {}

        logger.info("PrintCoordinator initialized")

    @classmethod
    def from_config(cls, config, session_store: SessionStore, ledger: ResourceLedger) -> "PrintCoordinator":
        return cls(
            session_store,
            ledger,
            seconds_per_page=config["PRINT_SECONDS_PER_PAGE"],
            min_seconds=config["PRINT_MIN_SECONDS"],
            max_seconds=config["PRINT_MAX_SECONDS"],
        )

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    def state(self, printer_id: str) -> str:
        with self._lock:
            return BUSY if printer_id in self._active else IDLE

    def any_busy(self) -> bool:
        with self._lock:
            return bool(self._active)

    def active_session(self, printer_id: str) -> Optional[str]:
        with self._lock:
            return self._active.get(printer_id)

    def get_job(self, session_id: str) -> Optional[PrintJob]:
        """Copy of the latest job for a session, or None."""
        with self._lock:
            job = self._jobs.get(session_id)
            return replace(job) if job else None

    def wait_for_job(self, session_id: str, timeout: Optional[float] = None) -> bool:
        """
        Block until the session's current job has finished.

        Returns:
            True if the job finished (or there is none), False on timeout
        """
        with self._lock:
            event = self._finished.get(session_id)
        if event is None:
            return True
        return event.wait(timeout)

    def compute_duration(self, pages: int) -> float:
        """Simulated duration for ``pages`` total pages, clamped to the bounds."""
        raw = pages * self.seconds_per_page
        return max(self.min_seconds, min(self.max_seconds, raw))

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def start(
        self,
        session_id: str,
        printer_id: str,
        copies: int = 1,
        color_mode: ColorMode = ColorMode.MONOCHROME,
        print_mode: Optional[PrintMode] = None,
        pages_to_print: Optional[int] = None,
    ) -> PrintJob:
        """
        Admit a session to a printer and schedule its simulated job.

        Args:
            pages_to_print: total pages across all copies; defaults to
                declared pages x copies

        Raises:
            PrinterBusyError: printer is running another session's job
            SessionNotFoundError, PaymentNotConfirmedError,
            InvalidSessionStateError: from the session store
        """
        with self._lock:
            active = self._active.get(printer_id)
            if active is not None and active != session_id:
                raise PrinterBusyError(printer_id, active)

            if pages_to_print is None:
                pages_to_print = self._store.get(session_id).declared_page_count * max(1, int(copies or 1))

            session = self._store.begin_print(
                session_id,
                copies=copies,
                color_mode=color_mode,
                print_mode=print_mode,
                printer_id=printer_id,
                pages_to_print=pages_to_print,
            )

            job = PrintJob.create_scheduled(
                session_id=session_id,
                printer_id=printer_id,
                pages=session.pages_to_print,
                copies=session.copies,
                color_mode=session.color_mode,
                duration_seconds=self.compute_duration(session.pages_to_print),
                print_mode=session.print_mode,
            )

            timer = threading.Timer(job.duration_seconds, self._on_timer, args=(job,))
            timer.name = f"Print-{session_id}"
            timer.daemon = True

            self._active[printer_id] = session_id
            self._jobs[session_id] = job
            self._timers[session_id] = timer
            self._finished[session_id] = threading.Event()
            timer.start()

            get_job_logger(session_id).info(
                f"Job scheduled on {printer_id}: {job.pages} pages, "
                f"{job.duration_seconds:.1f}s simulated"
            )
            return replace(job)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _on_timer(self, job: PrintJob) -> None:
        set_thread_name(f"Print-{job.session_id}")
        self._complete(job)

    def _release_printer(self, job: PrintJob) -> None:
        """Caller holds the lock."""
        if self._active.get(job.printer_id) == job.session_id:
            del self._active[job.printer_id]
        self._timers.pop(job.session_id, None)
        event = self._finished.get(job.session_id)
        if event is not None:
            event.set()

    def _complete(self, job: PrintJob) -> bool:
        """
        Run the completion of ``job`` if nobody has yet.

        Returns:
            True if this call completed the job successfully
        """
        job_logger = get_job_logger(job.session_id)

        with self._lock:
            if self._jobs.get(job.session_id) is not job or job.is_finished:
                return False

            timer = self._timers.get(job.session_id)
            if timer is not None and timer is not threading.current_thread():
                timer.cancel()

            try:
                session = self._store.get(job.session_id)
                _, record = self._ledger.reserve_and_deduct(
                    job.printer_id,
                    job.pages,
                    job.color_mode,
                    session_ref=job.session_id,
                    amount=session.amount,
                    phone=session.phone,
                )
            except SessionNotFoundError as e:
                job_logger.error(f"Job failed, session vanished: {e}")
                job.mark_failed(str(e))
                self._release_printer(job)
                return False
            except Exception as e:
                job_logger.error(f"Job failed: {e}")
                job.mark_failed(str(e))
                self._store.revert_print(job.session_id)
                self._release_printer(job)
                return False

            # Consumables are spent from here on; the job counts as printed.
            job.mark_completed(record.sequence)
            try:
                self._store.finish_print(job.session_id)
            except SessionNotFoundError:
                job_logger.warning("Session removed before it could be marked DONE")
            self._release_printer(job)

        job_logger.info(f"Print completed on {job.printer_id}: {job.pages} pages")
        return True

    def finish(self, session_id: str) -> PrintSession:
        """
        Explicitly finish a printing session.

        The running job completes now (ledger first, then DONE) and its
        pending timer is cancelled. A session that is already DONE is
        returned unchanged.

        Raises:
            SessionNotFoundError: unknown session
            InvalidSessionStateError: no job is running for the session
        """
        with self._lock:
            job = self._jobs.get(session_id)
            if job is not None and job.status is JobStatus.SCHEDULED:
                self._complete(job)
                return self._store.get(session_id)

            session = self._store.get(session_id)
            if session.print_status is PrintStatus.DONE:
                return session
            raise InvalidSessionStateError(
                session_id, "No print job is running for this session", session.print_status.value
            )

    # ------------------------------------------------------------------
    # Administrative abort / shutdown
    # ------------------------------------------------------------------

    def abort_all(self, reason: str = "Cancelled by administrator.") -> int:
        """
        Cancel every pending job and force all printers IDLE.

        A cancelled timer never fires; one that already fired finds its job
        CANCELLED and does nothing.

        Returns:
            Number of jobs cancelled
        """
        with self._lock:
            cancelled = 0
            for session_id in list(self._active.values()):
                job = self._jobs.get(session_id)
                timer = self._timers.get(session_id)
                if timer is not None:
                    timer.cancel()
                if job is not None and not job.is_finished:
                    job.mark_cancelled(reason)
                    cancelled += 1
                    get_job_logger(session_id).warning(f"Job cancelled: {reason}")
                event = self._finished.get(session_id)
                if event is not None:
                    event.set()
            self._active.clear()
            self._timers.clear()

        if cancelled:
            logger.warning(f"Aborted {cancelled} print job(s); all printers IDLE")
        return cancelled

    def forget(self, session_id: str) -> None:
        """Drop job bookkeeping for a session that no longer exists."""
        with self._lock:
            if session_id in self._active.values():
                return
            self._jobs.pop(session_id, None)
            self._finished.pop(session_id, None)

    def prune(self) -> int:
        """
        Drop job bookkeeping for every session the store no longer holds.

        Called after sweeps and resets. Jobs still holding a printer are kept.

        Returns:
            Number of sessions forgotten
        """
        with self._lock:
            live = self._store.session_ids()
            running = set(self._active.values())
            stale = [sid for sid in self._jobs if sid not in live and sid not in running]
            for session_id in stale:
                del self._jobs[session_id]
                self._finished.pop(session_id, None)
        if stale:
            logger.debug(f"Forgot {len(stale)} finished job(s)")
        return len(stale)

    def shutdown(self) -> None:
        """Cancel pending timers at application exit."""
        with self._lock:
            pending = len(self._timers)
        if pending:
            logger.info(f"Cancelling {pending} pending print job(s)...")
        self.abort_all(reason="Application shutdown.")
        logger.info("Print coordinator shutdown complete")
