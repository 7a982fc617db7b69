"""
In-memory store of print sessions.

The store is an explicitly owned object created once at startup; nothing
else holds a reference to the session map. All mutations happen under one
re-entrant lock, so every read-check-write sequence is atomic.

File ownership:
    A session owns its uploaded file until the file is released. Release
    happens exactly once: on finish_print (session stays, status DONE), or
    when the session is removed (cancel, sweep, reset). After release the
    session's file_reference is None.
"""

from __future__ import annotations

import secrets
import string
import threading
import time
from typing import Callable, Dict, List, Optional, Set

from core.exceptions import (
    InvalidSessionStateError,
    PaymentNotConfirmedError,
    SessionNotFoundError,
)
from logging_config import get_logger
from models.session import (
    ColorMode,
    PaymentStatus,
    PrintMode,
    PrintSession,
    PrintStatus,
)
from modules.file_storage import FileStorage


logger = get_logger(__name__)

SESSION_ID_ALPHABET = string.ascii_uppercase + string.digits
SESSION_ID_LENGTH = 8
MAX_ID_ATTEMPTS = 32


def generate_session_id(length: int = SESSION_ID_LENGTH) -> str:
    return "".join(secrets.choice(SESSION_ID_ALPHABET) for _ in range(length))


class SessionStore:
    """
    Live upload sessions keyed by session id.

    Usage:
        store = SessionStore(storage)
        session = store.create("/tmp/x.pdf", page_count=3)
        store.confirm_payment(session.session_id, 6.0)
        store.begin_print(session.session_id)
        store.finish_print(session.session_id)

    Methods return copies of the stored sessions so callers cannot mutate
    store state outside the lock.
    """

    def __init__(
        self,
        storage: FileStorage,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = generate_session_id,
    ):
        self._storage = storage
        self._ttl = ttl_seconds
        self._clock = clock
        self._id_factory = id_factory
        self._sessions: Dict[str, PrintSession] = {}
        self._lock = threading.RLock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    # ------------------------------------------------------------------
    # Internal helpers (caller holds the lock)
    # ------------------------------------------------------------------

    def _require(self, session_id: str) -> PrintSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def _release_file(self, session: PrintSession) -> None:
        if session.file_reference is None:
            return
        reference, session.file_reference = session.file_reference, None
        self._storage.delete(reference)

    @staticmethod
    def _copy(session: PrintSession) -> PrintSession:
        return PrintSession(**vars(session))

    # ------------------------------------------------------------------
    # Creation and lookup
    # ------------------------------------------------------------------

    def create(
        self,
        file_reference: str,
        page_count: int,
        file_name: str = "",
        phone: str = "",
    ) -> PrintSession:
        """
        Register a new upload.

        The id is regenerated until it does not collide with a live session.
        """
        if page_count < 0:
            raise ValueError("page_count must be >= 0")

        with self._lock:
            for _ in range(MAX_ID_ATTEMPTS):
                session_id = self._id_factory()
                if session_id not in self._sessions:
                    break
                logger.warning(f"Session id collision on {session_id}, regenerating")
            else:
                raise RuntimeError("Could not generate a unique session id")

            session = PrintSession(
                session_id=session_id,
                file_reference=file_reference,
                declared_page_count=page_count,
                created_at=self._clock(),
                file_name=file_name,
                phone=phone,
            )
            self._sessions[session_id] = session

        logger.info(f"Session created: {session_id} | Pages: {page_count}")
        return self._copy(session)

    def get(self, session_id: str) -> PrintSession:
        with self._lock:
            return self._copy(self._require(session_id))

    def list_sessions(self) -> List[PrintSession]:
        """All live sessions, oldest first."""
        with self._lock:
            ordered = sorted(self._sessions.values(), key=lambda s: s.created_at)
            return [self._copy(s) for s in ordered]

    def latest(self) -> Optional[PrintSession]:
        sessions = self.list_sessions()
        return sessions[-1] if sessions else None

    def session_ids(self) -> Set[str]:
        with self._lock:
            return set(self._sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    def confirm_payment(self, session_id: str, amount: float) -> PrintSession:
        """Mark the session paid. The amount is trusted as given."""
        with self._lock:
            session = self._require(session_id)
            session.payment_status = PaymentStatus.PAID
            session.amount = float(amount or 0.0)
            snapshot = self._copy(session)
        logger.info(f"Payment confirmed: {session_id} | Amount: {snapshot.amount:.2f}")
        return snapshot

    def set_options(
        self,
        session_id: str,
        copies: Optional[int] = None,
        color_mode: Optional[ColorMode] = None,
        print_mode: Optional[PrintMode] = None,
    ) -> PrintSession:
        """Record print options chosen before printing starts."""
        with self._lock:
            session = self._require(session_id)
            if session.print_status is not PrintStatus.WAITING:
                raise InvalidSessionStateError(
                    session_id, "Print options can only change before printing", session.print_status.value
                )
            if copies is not None:
                session.copies = max(1, int(copies))
            if color_mode is not None:
                session.color_mode = ColorMode.parse(color_mode)
            if print_mode is not None:
                session.print_mode = PrintMode.parse(print_mode)
            return self._copy(session)

    # ------------------------------------------------------------------
    # Print lifecycle
    # ------------------------------------------------------------------

    def begin_print(
        self,
        session_id: str,
        copies: int = 1,
        color_mode: ColorMode = ColorMode.MONOCHROME,
        print_mode: Optional[PrintMode] = None,
        printer_id: Optional[str] = None,
        pages_to_print: Optional[int] = None,
    ) -> PrintSession:
        """
        WAITING -> PRINTING.

        Raises:
            SessionNotFoundError: unknown session
            PaymentNotConfirmedError: session not paid
            InvalidSessionStateError: session already printing or done
        """
        with self._lock:
            session = self._require(session_id)
            if not session.is_paid:
                raise PaymentNotConfirmedError(session_id)
            if session.print_status is not PrintStatus.WAITING:
                raise InvalidSessionStateError(
                    session_id,
                    f"Session is already {session.print_status.value.lower()}",
                    session.print_status.value,
                )

            session.print_status = PrintStatus.PRINTING
            session.copies = max(1, int(copies or 1))
            session.color_mode = ColorMode.parse(color_mode)
            session.print_mode = PrintMode.parse(print_mode) if print_mode else session.print_mode
            session.printer_id = printer_id
            session.pages_to_print = (
                session.declared_page_count if pages_to_print is None else int(pages_to_print)
            )
            snapshot = self._copy(session)

        logger.info(
            f"Print started: {session_id} | printer={printer_id} | copies={snapshot.copies} "
            f"| type={snapshot.color_mode.value}"
        )
        return snapshot

    def revert_print(self, session_id: str) -> PrintSession:
        """PRINTING -> WAITING after a failed job, so the user can retry or cancel."""
        with self._lock:
            session = self._require(session_id)
            if session.print_status is PrintStatus.PRINTING:
                session.print_status = PrintStatus.WAITING
                session.printer_id = None
                session.pages_to_print = None
                logger.warning(f"Print reverted to WAITING: {session_id}")
            return self._copy(session)

    def finish_print(self, session_id: str) -> PrintSession:
        """
        Mark the session DONE and release its file.

        Calling this again on a DONE session changes nothing.
        """
        with self._lock:
            session = self._require(session_id)
            if session.print_status is PrintStatus.DONE:
                return self._copy(session)
            session.print_status = PrintStatus.DONE
            self._release_file(session)
            snapshot = self._copy(session)
        logger.info(f"Print finished: {session_id}")
        return snapshot

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def cancel(self, session_id: str) -> None:
        """
        Release the file and drop the session.

        Raises:
            SessionNotFoundError: unknown session
            InvalidSessionStateError: session is printing
        """
        with self._lock:
            session = self._require(session_id)
            if session.print_status is PrintStatus.PRINTING:
                raise InvalidSessionStateError(
                    session_id, "Cannot cancel a session while it is printing", session.print_status.value
                )
            self._release_file(session)
            del self._sessions[session_id]
        logger.info(f"Session cancelled: {session_id}")

    def clear_all(self) -> int:
        """Release every file and drop every session. Returns the count removed."""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            for session in sessions:
                try:
                    self._release_file(session)
                except Exception as e:
                    logger.error(f"Cleanup of {session.session_id} failed: {e}")
        logger.info(f"Cleared {len(sessions)} sessions")
        return len(sessions)

    def sweep_expired(self, now: Optional[float] = None, ttl: Optional[float] = None) -> List[str]:
        """
        Remove sessions older than ``ttl`` that are not printing.

        Also retries deletion of previously orphaned files. Never raises:
        a failing cleanup is logged and skipped.

        Returns:
            Ids of the removed sessions
        """
        now = self._clock() if now is None else now
        ttl = self._ttl if ttl is None else ttl
        removed: List[str] = []

        with self._lock:
            for session_id, session in list(self._sessions.items()):
                if session.print_status is PrintStatus.PRINTING:
                    continue
                if session.age_seconds(now) <= ttl:
                    continue
                try:
                    self._release_file(session)
                except Exception as e:
                    logger.error(f"Sweep could not release {session_id}: {e}")
                del self._sessions[session_id]
                removed.append(session_id)
            remaining = len(self._sessions)

        try:
            self._storage.retry_orphans()
        except Exception as e:
            logger.error(f"Orphan retry failed: {e}")

        if removed:
            logger.info(f"Cleanup done. Removed {len(removed)}, active sessions: {remaining}")
        return removed
