"""
Shared fixtures for the kiosk tests.

Every test gets its own SQLite database and upload folder under tmp_path.
Print coordinators are shut down after each test so no timer thread
outlives it.
"""

import io
import openpyxl
import pytest
from docx import Document
from pypdf import PdfWriter
from werkzeug.datastructures import FileStorage as Upload

from modules.file_storage import FileStorage
from services.ledger import ResourceLedger
from services.print_coordinator import PrintCoordinator
from services.session_store import SessionStore


# Helpers

class FakeClock:
    """Settable clock for expiry tests."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def pdf_bytes(pages: int) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=595, height=842)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def docx_bytes(words: int) -> bytes:
    document = Document()
    if words:
        document.add_paragraph(" ".join(["word"] * words))
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def xlsx_bytes(sheets: int) -> bytes:
    workbook = openpyxl.Workbook()
    for index in range(1, sheets):
        workbook.create_sheet(f"Sheet{index + 1}")
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def make_upload(filename: str, data: bytes) -> Upload:
    """A werkzeug upload as Flask would hand it to a view."""
    return Upload(stream=io.BytesIO(data), filename=filename)


# Fixtures

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger(tmp_path):
    """Ledger with the three kiosk printers at default levels."""
    ledger = ResourceLedger(tmp_path / "print.db", printer_ids=["SOS", "SOT", "ANVI"])
    ledger.init()
    return ledger


@pytest.fixture
def storage(tmp_path):
    return FileStorage(tmp_path / "uploads")


@pytest.fixture
def store(storage, clock):
    return SessionStore(storage, ttl_seconds=300, clock=clock)


@pytest.fixture
def stored_file(storage):
    """Factory writing a file into the upload folder and returning its path."""
    counter = {"n": 0}

    def _make(name: str = "doc.pdf", data: bytes = b"%PDF-1.4 test") -> str:
        counter["n"] += 1
        path = storage.upload_folder / f"{counter['n']}_{name}"
        path.write_bytes(data)
        return str(path)

    return _make


@pytest.fixture
def paid_session(store, stored_file):
    """Factory for a paid, WAITING session."""

    def _make(pages: int = 3, amount: float = 6.0):
        session = store.create(stored_file(), pages, file_name="doc.pdf")
        return store.confirm_payment(session.session_id, amount)

    return _make


@pytest.fixture
def make_coordinator(store, ledger):
    """Factory for coordinators with chosen durations; all are shut down afterwards."""
    created = []

    def _make(min_seconds: float = 0.05, max_seconds: float = 0.2, seconds_per_page: float = 0.0):
        coordinator = PrintCoordinator(
            store,
            ledger,
            seconds_per_page=seconds_per_page,
            min_seconds=min_seconds,
            max_seconds=max_seconds,
        )
        created.append(coordinator)
        return coordinator

    yield _make

    for coordinator in created:
        coordinator.shutdown()


@pytest.fixture
def coordinator(make_coordinator):
    """Coordinator whose jobs finish in a fraction of a second."""
    return make_coordinator()


@pytest.fixture
def slow_coordinator(make_coordinator):
    """Coordinator whose jobs never finish on their own during a test."""
    return make_coordinator(min_seconds=60, max_seconds=60)
