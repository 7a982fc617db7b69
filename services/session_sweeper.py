"""
Background expiry sweep for abandoned sessions.

Runs SessionStore.sweep_expired() every interval on a daemon thread named
"Sweeper", then lets the print coordinator drop job records of the swept
sessions. The sweep itself never raises; anything unexpected is logged
with increasing severity and the loop keeps going.

Usage:
    sweeper = SessionSweeper(session_store, interval_seconds=30, coordinator=coordinator)
    sweeper.start()
    ...
    sweeper.stop()
"""

from __future__ import annotations

import threading
from typing import Optional

from logging_config import get_logger, set_thread_name
from services.print_coordinator import PrintCoordinator
from services.session_store import SessionStore


logger = get_logger(__name__)


class SessionSweeper:
    """
    Periodic reclamation of expired, non-printing sessions.

    Attributes:
        interval_seconds: time between sweeps
        is_running: whether the background thread is active
    """

    def __init__(
        self,
        session_store: SessionStore,
        interval_seconds: float = 30.0,
        ttl_seconds: Optional[float] = None,
        coordinator: Optional[PrintCoordinator] = None,
    ):
        self._store = session_store
        self._coordinator = coordinator
        self._interval = interval_seconds
        self._ttl = ttl_seconds

        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._is_running = False
        self._consecutive_failures = 0

        logger.info(f"SessionSweeper initialized (interval: {interval_seconds}s)")

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def interval_seconds(self) -> float:
        return self._interval

    def start(self) -> None:
        """Start the sweep thread. Safe to call multiple times."""
        if self._is_running:
            logger.warning("SessionSweeper already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._sweep_loop,
            name="Sweeper",
            daemon=True
        )
        self._is_running = True
        self._thread.start()
        logger.info("Session sweep thread started")

    def stop(self) -> None:
        """Signal the thread to stop and wait for it. Safe to call multiple times."""
        if not self._is_running:
            return

        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)
            if self._thread.is_alive():
                logger.warning("Sweep thread did not stop cleanly")

        self._is_running = False
        self._thread = None
        logger.info("Session sweep thread stopped")

    def sweep_now(self) -> bool:
        """
        Run one sweep in the calling thread.

        Returns:
            True if the sweep ran without an unexpected error
        """
        try:
            removed = self._store.sweep_expired(ttl=self._ttl)
            if removed and self._coordinator is not None:
                self._coordinator.prune()
        except Exception as e:
            self._consecutive_failures += 1
            if self._consecutive_failures <= 3:
                logger.warning(f"Session sweep failed ({self._consecutive_failures} consecutive): {e}")
            elif self._consecutive_failures % 5 == 0:
                logger.error(f"Session sweep still failing ({self._consecutive_failures} consecutive): {e}")
            return False

        if self._consecutive_failures > 0:
            logger.info(f"Session sweep recovered after {self._consecutive_failures} failures")
        self._consecutive_failures = 0
        return True

    def _sweep_loop(self) -> None:
        set_thread_name("Sweeper")
        logger.info("Session sweep loop starting")

        while not self._stop_event.wait(timeout=self._interval):
            self.sweep_now()

        logger.info("Session sweep loop exiting")
