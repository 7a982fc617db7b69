"""
Printer resource ledger backed by SQLite.

The ledger is the only writer of printer consumable levels. Every
deduction re-reads the current levels, clamps them at zero, writes them
back and appends a print log row inside one transaction.

Thread Safety:
    - One threading.Lock per printer_id serializes deductions in-process
    - BEGIN IMMEDIATE takes SQLite's write lock up front, so a second
      process running the same code cannot read a stale snapshot either
    - Each operation opens its own connection; nothing is shared

Tables:
    printer_status(printer_id, black_ink, color_ink, paper)
    print_logs(id, token, phone, printer_id, pages, print_type, amount, time)

Depleted consumables never fail a deduction. Levels clamp to zero and the
job still prints (with degraded output); keeping the kiosk printing is
preferred over refusing a paid job.
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from core.exceptions import InsufficientStateError, PrinterNotFoundError
from logging_config import get_logger
from models.printer import Printer, PrintJobRecord
from models.session import ColorMode


logger = get_logger(__name__)

# Ink percentage used per printed page
BW_BLACK_PER_PAGE = 0.3
COLOR_BLACK_PER_PAGE = 0.2
COLOR_COLOR_PER_PAGE = 0.4

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS printer_status (
        printer_id TEXT PRIMARY KEY,
        black_ink REAL NOT NULL,
        color_ink REAL NOT NULL,
        paper INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS print_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        token TEXT,
        phone TEXT,
        printer_id TEXT NOT NULL,
        pages INTEGER NOT NULL,
        print_type TEXT NOT NULL,
        amount REAL DEFAULT 0,
        time TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_print_logs_time ON print_logs(time)",
    "CREATE INDEX IF NOT EXISTS ix_print_logs_printer ON print_logs(printer_id)",
)


def ink_cost(pages: int, color_mode: ColorMode) -> Tuple[float, float]:
    """Return (black_used, color_used) for ``pages`` printed pages."""
    if ColorMode.parse(color_mode) is ColorMode.COLOR:
        return pages * COLOR_BLACK_PER_PAGE, pages * COLOR_COLOR_PER_PAGE
    return pages * BW_BLACK_PER_PAGE, 0.0


class ResourceLedger:
    """
    Consumable inventory per printer plus the append-only print log.

    Usage:
        ledger = ResourceLedger("print.db", printer_ids=["SOS"])
        ledger.init()

        allowed, shortfall = ledger.compute_feasible_pages("SOS", 12, False)
        printer, record = ledger.reserve_and_deduct("SOS", allowed, ColorMode.MONOCHROME)
    """

    def __init__(
        self,
        db_path: str | Path,
        printer_ids: Iterable[str] = ("SOS", "SOT", "ANVI"),
        default_paper: int = 500,
        default_black_ink: float = 100.0,
        default_color_ink: float = 100.0,
    ):
        self._db_path = str(db_path)
        self._printer_ids = list(printer_ids)
        self.default_paper = int(default_paper)
        self.default_black_ink = float(default_black_ink)
        self.default_color_ink = float(default_color_ink)

        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def from_config(cls, config) -> "ResourceLedger":
        return cls(
            config["LEDGER_DB_PATH"],
            printer_ids=config["PRINTER_IDS"],
            default_paper=config["DEFAULT_PAPER_COUNT"],
            default_black_ink=config["DEFAULT_BLACK_INK"],
            default_color_ink=config["DEFAULT_COLOR_INK"],
        )

    @property
    def db_path(self) -> str:
        return self._db_path

    # ------------------------------------------------------------------
    # Connection helpers
    # ------------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=30, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Write transaction: commit on success, roll back on any error."""
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def _lock_for(self, printer_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(printer_id)
            if lock is None:
                lock = self._locks[printer_id] = threading.Lock()
            return lock

    @staticmethod
    def _read_printer(conn: sqlite3.Connection, printer_id: str) -> Optional[Printer]:
        row = conn.execute(
            "SELECT * FROM printer_status WHERE printer_id = ?", (printer_id,)
        ).fetchone()
        return Printer.from_row(row) if row else None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self) -> None:
        """Create tables and seed the configured printers with default levels."""
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        with self._transaction() as conn:
            for statement in SCHEMA:
                conn.execute(statement)
            for printer_id in self._printer_ids:
                conn.execute(
                    "INSERT OR IGNORE INTO printer_status(printer_id, black_ink, color_ink, paper) "
                    "VALUES (?, ?, ?, ?)",
                    (printer_id, self.default_black_ink, self.default_color_ink, self.default_paper),
                )
        logger.info(f"Ledger ready at {self._db_path} ({len(self._printer_ids)} printers)")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_status(self, printer_id: str) -> Printer:
        """
        Current levels of one printer.

        Raises:
            PrinterNotFoundError: unknown printer_id
        """
        conn = self._connect()
        try:
            printer = self._read_printer(conn, printer_id)
        finally:
            conn.close()
        if printer is None:
            raise PrinterNotFoundError(printer_id)
        return printer

    def list_printers(self) -> List[Printer]:
        conn = self._connect()
        try:
            rows = conn.execute("SELECT * FROM printer_status ORDER BY printer_id").fetchall()
        finally:
            conn.close()
        return [Printer.from_row(row) for row in rows]

    def compute_feasible_pages(
        self, printer_id: str, requested_pages: int, is_privileged: bool
    ) -> Tuple[int, int]:
        """
        How many of ``requested_pages`` the printer can print.

        Privileged callers may print everything regardless of paper stock.

        Returns:
            (pages_allowed, shortfall)
        """
        if requested_pages < 0:
            raise ValueError("requested_pages must be >= 0")
        printer = self.get_status(printer_id)
        if is_privileged:
            allowed = requested_pages
        else:
            allowed = min(requested_pages, printer.paper_count)
        return allowed, requested_pages - allowed

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def reserve_and_deduct(
        self,
        printer_id: str,
        pages: int,
        color_mode: ColorMode,
        session_ref: str = "",
        amount: float = 0.0,
        phone: str = "",
        timestamp: Optional[datetime] = None,
    ) -> Tuple[Printer, PrintJobRecord]:
        """
        Deduct paper and ink for ``pages`` printed pages and log the job.

        Levels are re-read inside the transaction, so concurrent callers for
        the same printer always see each other's deductions.

        Returns:
            (levels after the deduction, the print log row written with it)

        Raises:
            InsufficientStateError: unknown printer_id (nothing is written)
        """
        if pages < 0:
            raise ValueError("pages must be >= 0")
        color_mode = ColorMode.parse(color_mode)
        black_used, color_used = ink_cost(pages, color_mode)
        logged_at = (timestamp or datetime.now(timezone.utc)).strftime(TIME_FORMAT)

        with self._lock_for(printer_id):
            with self._transaction() as conn:
                current = self._read_printer(conn, printer_id)
                if current is None:
                    raise InsufficientStateError(printer_id)

                updated = Printer(
                    printer_id=printer_id,
                    paper_count=max(0, current.paper_count - pages),
                    black_ink_level=max(0.0, current.black_ink_level - black_used),
                    color_ink_level=max(0.0, current.color_ink_level - color_used),
                )
                conn.execute(
                    "UPDATE printer_status SET black_ink = ?, color_ink = ?, paper = ? "
                    "WHERE printer_id = ?",
                    (updated.black_ink_level, updated.color_ink_level, updated.paper_count, printer_id),
                )
                cursor = conn.execute(
                    "INSERT INTO print_logs(token, phone, printer_id, pages, print_type, amount, time) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (session_ref, phone, printer_id, pages, color_mode.value, float(amount or 0.0), logged_at),
                )
                record = PrintJobRecord(
                    sequence=cursor.lastrowid,
                    session_ref=session_ref or "",
                    printer_id=printer_id,
                    pages_printed=pages,
                    ink_type=color_mode.value,
                    amount_charged=float(amount or 0.0),
                    timestamp=logged_at,
                    phone=phone or "",
                )

        if updated.paper_count == 0 or updated.black_ink_level == 0:
            logger.warning(
                f"Printer {printer_id} depleted: paper={updated.paper_count}, "
                f"black={updated.black_ink_level:.1f}, color={updated.color_ink_level:.1f}"
            )
        logger.info(
            f"Deducted {pages} {color_mode.value} pages on {printer_id} "
            f"(paper {current.paper_count} -> {updated.paper_count})"
        )
        return updated, record

    def reset_levels(
        self,
        printer_id: str,
        paper: Optional[int] = None,
        black_ink: Optional[float] = None,
        color_ink: Optional[float] = None,
    ) -> Printer:
        """
        Administrative refill. Unspecified levels go back to the defaults.

        Raises:
            PrinterNotFoundError: unknown printer_id
            ValueError: negative paper or ink outside 0-100
        """
        paper = self.default_paper if paper is None else int(paper)
        black_ink = self.default_black_ink if black_ink is None else float(black_ink)
        color_ink = self.default_color_ink if color_ink is None else float(color_ink)
        if paper < 0:
            raise ValueError("paper must be >= 0")
        for level in (black_ink, color_ink):
            if not 0.0 <= level <= 100.0:
                raise ValueError("ink levels must be between 0 and 100")

        with self._lock_for(printer_id):
            with self._transaction() as conn:
                if self._read_printer(conn, printer_id) is None:
                    raise PrinterNotFoundError(printer_id)
                conn.execute(
                    "UPDATE printer_status SET black_ink = ?, color_ink = ?, paper = ? "
                    "WHERE printer_id = ?",
                    (black_ink, color_ink, paper, printer_id),
                )
        logger.info(f"Printer {printer_id} reset: paper={paper}, black={black_ink}, color={color_ink}")
        return Printer(printer_id, paper, black_ink, color_ink)

    # ------------------------------------------------------------------
    # Print log / reporting
    # ------------------------------------------------------------------

    def _records(self, where: str = "", params: tuple = ()) -> List[PrintJobRecord]:
        conn = self._connect()
        try:
            rows = conn.execute(
                f"SELECT * FROM print_logs {where} ORDER BY time DESC, id DESC", params
            ).fetchall()
        finally:
            conn.close()
        return [PrintJobRecord.from_row(row) for row in rows]

    def records_for_date(self, day: date | str) -> List[PrintJobRecord]:
        """Print log rows of one UTC day, newest first."""
        return self._records("WHERE date(time) = ?", (str(day),))

    def records_for_printer(self, printer_id: str) -> List[PrintJobRecord]:
        return self._records("WHERE printer_id = ?", (printer_id,))

    def records_for_session(self, session_ref: str) -> List[PrintJobRecord]:
        return self._records("WHERE token = ?", (session_ref,))

    def revenue_by_printer(self, period: str = "today", today: Optional[date] = None) -> List[Dict]:
        """
        Revenue per printer for the current day or month.

        Args:
            period: "today" or "month"
            today: reference date (defaults to the current UTC date)
        """
        today = today or datetime.now(timezone.utc).date()
        if period == "today":
            where, param = "date(time) = ?", today.isoformat()
        elif period == "month":
            where, param = "strftime('%Y-%m', time) = ?", today.strftime("%Y-%m")
        else:
            raise ValueError(f"Unknown period: {period}")

        conn = self._connect()
        try:
            rows = conn.execute(
                f"SELECT printer_id, IFNULL(SUM(amount), 0) AS revenue FROM print_logs "
                f"WHERE {where} GROUP BY printer_id ORDER BY printer_id",
                (param,),
            ).fetchall()
        finally:
            conn.close()
        return [{"printer_id": r["printer_id"], "revenue": r["revenue"]} for r in rows]

    def usage_by_printer(self) -> List[Dict]:
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT printer_id,
                       SUM(pages) AS total_pages,
                       SUM(CASE WHEN print_type = 'bw' THEN pages ELSE 0 END) AS bw_pages,
                       SUM(CASE WHEN print_type = 'color' THEN pages ELSE 0 END) AS color_pages
                FROM print_logs
                GROUP BY printer_id
                ORDER BY printer_id
                """
            ).fetchall()
        finally:
            conn.close()
        return [dict(row) for row in rows]

    def _ranked_printer(self, order: str) -> Optional[Dict]:
        conn = self._connect()
        try:
            row = conn.execute(
                f"SELECT printer_id, SUM(pages) AS total FROM print_logs "
                f"GROUP BY printer_id ORDER BY total {order}, printer_id LIMIT 1"
            ).fetchone()
        finally:
            conn.close()
        return dict(row) if row else None

    def busiest_printer(self) -> Optional[Dict]:
        return self._ranked_printer("DESC")

    def least_used_printer(self) -> Optional[Dict]:
        return self._ranked_printer("ASC")
