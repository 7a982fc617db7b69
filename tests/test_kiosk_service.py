"""
Unit tests for the Kiosk Service facade and the session sweeper.

Uses a real ledger, store and coordinator; print jobs either finish in a
fraction of a second or are held open by a one-minute duration.
"""

import os
import time
from unittest.mock import Mock, patch

import pytest

from conftest import docx_bytes, make_upload, pdf_bytes
from core.exceptions import (
    AmountMismatchError,
    EmptyFileError,
    InvalidSessionStateError,
    MachineDisabledError,
    OutOfPaperError,
    PageLimitExceededError,
    PaymentNotConfirmedError,
    PrinterBusyError,
    PrinterNotFoundError,
    SessionNotFoundError,
    UnsupportedFileError,
)
from models.print_job import JobStatus
from models.session import ColorMode, PaymentStatus, PrintStatus
from modules.page_counter import PageCounter
from modules.pricing import PriceQuoter
from services.kiosk_service import KioskService
from services.session_sweeper import SessionSweeper


# Fixtures

@pytest.fixture
def make_kiosk(ledger, store, storage):
    def _make(coordinator, **kwargs):
        return KioskService(
            ledger, store, coordinator, storage, PageCounter(), PriceQuoter(2, 10), **kwargs
        )
    return _make


@pytest.fixture
def kiosk(make_kiosk, coordinator):
    return make_kiosk(coordinator)


@pytest.fixture
def slow_kiosk(make_kiosk, slow_coordinator):
    return make_kiosk(slow_coordinator)


def _uploads_left(storage):
    return sorted(os.listdir(storage.upload_folder))


def _paid(kiosk, pages=3, amount=100.0):
    session = kiosk.create_session(make_upload("doc.pdf", pdf_bytes(pages)))
    kiosk.confirm_payment(session.session_id, amount)
    return session


# Tests for Session Creation

class TestCreateSession:
    """Upload, page count and rejection with cleanup."""

    def test_creates_session_for_pdf(self, kiosk, storage):
        session = kiosk.create_session(make_upload("report.pdf", pdf_bytes(4)), phone="5550100")

        assert session.declared_page_count == 4
        assert session.file_name == "report.pdf"
        assert session.phone == "5550100"
        assert storage.exists(session.file_reference)

    def test_display_name_override(self, kiosk):
        session = kiosk.create_session(make_upload("x.pdf", pdf_bytes(1)), display_name="Clean Name.pdf")

        assert session.file_name == "Clean Name.pdf"

    def test_unsupported_type_leaves_no_file(self, kiosk, storage):
        with pytest.raises(UnsupportedFileError):
            kiosk.create_session(make_upload("notes.txt", b"hello"))

        assert _uploads_left(storage) == []
        assert len(kiosk.store) == 0

    def test_unreadable_document_deleted(self, kiosk, storage):
        with pytest.raises(UnsupportedFileError):
            kiosk.create_session(make_upload("broken.pdf", b"garbage"))

        assert _uploads_left(storage) == []

    def test_empty_document_deleted(self, kiosk, storage):
        with pytest.raises(EmptyFileError):
            kiosk.create_session(make_upload("empty.docx", docx_bytes(0)))

        assert _uploads_left(storage) == []

    def test_page_limit(self, make_kiosk, coordinator, storage):
        kiosk = make_kiosk(coordinator, max_user_pages=5)

        with pytest.raises(PageLimitExceededError):
            kiosk.create_session(make_upload("long.pdf", pdf_bytes(6)))
        assert _uploads_left(storage) == []

        session = kiosk.create_session(make_upload("long.pdf", pdf_bytes(6)), privileged=True)
        assert session.declared_page_count == 6

    def test_machine_disabled(self, kiosk, storage):
        kiosk.set_machine_enabled(False)

        with pytest.raises(MachineDisabledError):
            kiosk.create_session(make_upload("a.pdf", pdf_bytes(1)))
        assert _uploads_left(storage) == []

    def test_disabled_while_counting(self, kiosk, storage):
        real_count = kiosk.page_counter.count_pages

        def count_then_disable(*args):
            pages = real_count(*args)
            kiosk.set_machine_enabled(False)
            return pages

        with patch.object(kiosk.page_counter, "count_pages", side_effect=count_then_disable):
            with pytest.raises(MachineDisabledError):
                kiosk.create_session(make_upload("a.pdf", pdf_bytes(1)))

        assert _uploads_left(storage) == []
        assert len(kiosk.store) == 0

    def test_creation_allowed_while_printer_busy(self, slow_kiosk):
        first = _paid(slow_kiosk)
        slow_kiosk.start_print(first.session_id)

        second = slow_kiosk.create_session(make_upload("b.pdf", pdf_bytes(1)))

        assert second.print_status is PrintStatus.WAITING


# Tests for Payment and Quotes

class TestPayment:
    """Quotes and payment confirmation."""

    def test_quote(self, kiosk):
        session = kiosk.create_session(make_upload("a.pdf", pdf_bytes(3)))

        assert kiosk.quote(session.session_id)["amount"] == 6.0
        assert kiosk.quote(session.session_id, copies=2, color_mode="color")["amount"] == 60.0

    def test_confirm_payment_trusts_amount(self, kiosk):
        session = kiosk.create_session(make_upload("a.pdf", pdf_bytes(3)))

        paid = kiosk.confirm_payment(session.session_id, "1")

        assert paid.payment_status is PaymentStatus.PAID
        assert paid.amount == 1.0

    @pytest.mark.parametrize("amount", [None, "abc", -5])
    def test_bad_amount_counts_as_zero(self, kiosk, amount):
        session = kiosk.create_session(make_upload("a.pdf", pdf_bytes(1)))

        assert kiosk.confirm_payment(session.session_id, amount).amount == 0.0

    def test_confirm_payment_records_options(self, kiosk):
        session = kiosk.create_session(make_upload("a.pdf", pdf_bytes(2)))

        paid = kiosk.confirm_payment(session.session_id, 40, copies=2, color_mode="color")

        assert paid.copies == 2
        assert paid.color_mode is ColorMode.COLOR

    def test_enforced_amount(self, make_kiosk, coordinator):
        kiosk = make_kiosk(coordinator, enforce_payment_amount=True)
        session = kiosk.create_session(make_upload("a.pdf", pdf_bytes(3)))

        with pytest.raises(AmountMismatchError):
            kiosk.confirm_payment(session.session_id, 5.0)
        assert not kiosk.get_session(session.session_id).is_paid

        assert kiosk.confirm_payment(session.session_id, 6.0).is_paid

    def test_unknown_session(self, kiosk):
        with pytest.raises(SessionNotFoundError):
            kiosk.confirm_payment("NOPE0000", 1)


# Tests for Start Print

class TestStartPrint:
    """Preconditions, paper shortage advisory and admission."""

    def test_happy_path(self, kiosk, ledger):
        session = _paid(kiosk, pages=12, amount=24.0)

        outcome = kiosk.start_print(session.session_id)

        assert outcome.started
        assert outcome.pages == 12
        assert outcome.printer_id == "SOS"
        assert kiosk.coordinator.wait_for_job(session.session_id, timeout=5)
        assert kiosk.get_session(session.session_id).print_status is PrintStatus.DONE
        assert ledger.get_status("SOS").paper_count == 488

    def test_payment_required(self, kiosk):
        session = kiosk.create_session(make_upload("a.pdf", pdf_bytes(2)))

        with pytest.raises(PaymentNotConfirmedError):
            kiosk.start_print(session.session_id)

    def test_not_found_checked_first(self, kiosk):
        kiosk.set_machine_enabled(False)

        with pytest.raises(SessionNotFoundError):
            kiosk.start_print("NOPE0000")

    def test_machine_disabled(self, kiosk):
        session = _paid(kiosk)
        kiosk.set_machine_enabled(False)

        with pytest.raises(MachineDisabledError):
            kiosk.start_print(session.session_id)

    def test_unknown_printer(self, kiosk):
        session = _paid(kiosk)

        with pytest.raises(PrinterNotFoundError):
            kiosk.start_print(session.session_id, printer_id="NOPE")

    def test_printer_busy(self, slow_kiosk):
        first = _paid(slow_kiosk)
        second = _paid(slow_kiosk)
        slow_kiosk.start_print(first.session_id)

        with pytest.raises(PrinterBusyError):
            slow_kiosk.start_print(second.session_id)

        assert slow_kiosk.start_print(second.session_id, printer_id="SOT").started

    def test_paper_shortage_warns_without_starting(self, kiosk, ledger):
        ledger.reset_levels("SOS", paper=5)
        session = _paid(kiosk, pages=12)

        outcome = kiosk.start_print(session.session_id)

        assert outcome.warning
        assert outcome.available == 5
        assert outcome.shortfall == 7
        assert outcome.to_dict()["required"] == 12
        assert kiosk.get_session(session.session_id).print_status is PrintStatus.WAITING
        assert kiosk.coordinator.state("SOS") == "IDLE"

    def test_forced_print_uses_available_paper(self, kiosk, ledger):
        ledger.reset_levels("SOS", paper=5)
        session = _paid(kiosk, pages=12)

        outcome = kiosk.start_print(session.session_id, force=True)

        assert outcome.started
        assert outcome.pages == 5
        assert kiosk.coordinator.wait_for_job(session.session_id, timeout=5)
        assert ledger.get_status("SOS").paper_count == 0
        assert ledger.records_for_session(session.session_id)[0].pages_printed == 5

    def test_privileged_prints_everything(self, kiosk, ledger):
        ledger.reset_levels("SOS", paper=5)
        session = _paid(kiosk, pages=12)

        outcome = kiosk.start_print(session.session_id, privileged=True)

        assert outcome.started
        assert outcome.pages == 12
        assert kiosk.coordinator.wait_for_job(session.session_id, timeout=5)
        assert ledger.get_status("SOS").paper_count == 0
        assert ledger.records_for_session(session.session_id)[0].pages_printed == 12

    def test_forced_print_with_no_paper(self, kiosk, ledger):
        ledger.reset_levels("SOS", paper=0)
        session = _paid(kiosk)

        with pytest.raises(OutOfPaperError):
            kiosk.start_print(session.session_id, force=True)

    def test_copies_and_colour(self, kiosk, ledger):
        session = _paid(kiosk, pages=2)

        outcome = kiosk.start_print(session.session_id, copies=3, color_mode="color", print_mode="duplex")

        assert outcome.pages == 6
        assert kiosk.coordinator.wait_for_job(session.session_id, timeout=5)
        record = ledger.records_for_session(session.session_id)[0]
        assert record.ink_type == "color"
        assert record.pages_printed == 6

    def test_enforced_amount_covers_options(self, make_kiosk, coordinator):
        kiosk = make_kiosk(coordinator, enforce_payment_amount=True)
        session = kiosk.create_session(make_upload("a.pdf", pdf_bytes(2)))
        kiosk.confirm_payment(session.session_id, 4.0)

        with pytest.raises(AmountMismatchError):
            kiosk.start_print(session.session_id, copies=2)


# Tests for Finish, Cancel and Admin

class TestAdmin:
    """Finish, cancel, machine reset and status views."""

    def test_finish_print(self, slow_kiosk, ledger):
        session = _paid(slow_kiosk, pages=2)
        slow_kiosk.start_print(session.session_id)

        done = slow_kiosk.finish_print(session.session_id)

        assert done.print_status is PrintStatus.DONE
        assert ledger.get_status("SOS").paper_count == 498

    def test_finish_print_requires_running_job(self, kiosk, ledger):
        session = _paid(kiosk, pages=2)

        with pytest.raises(InvalidSessionStateError):
            kiosk.finish_print(session.session_id)

        assert kiosk.get_session(session.session_id).print_status is PrintStatus.WAITING
        assert ledger.records_for_session(session.session_id) == []

    def test_cancel_session(self, kiosk, storage):
        session = kiosk.create_session(make_upload("a.pdf", pdf_bytes(1)))

        kiosk.cancel_session(session.session_id)

        assert _uploads_left(storage) == []
        with pytest.raises(SessionNotFoundError):
            kiosk.get_session(session.session_id)

    def test_reset_machine_aborts_and_clears(self, slow_kiosk, ledger, storage):
        printing = _paid(slow_kiosk)
        slow_kiosk.start_print(printing.session_id)
        slow_kiosk.create_session(make_upload("b.pdf", pdf_bytes(1)))

        result = slow_kiosk.reset_machine()

        assert result == {"cancelledJobs": 1, "clearedSessions": 2}
        assert not slow_kiosk.coordinator.any_busy()
        assert len(slow_kiosk.store) == 0
        assert _uploads_left(storage) == []
        assert slow_kiosk.coordinator.get_job(printing.session_id) is None
        assert ledger.records_for_printer("SOS") == []

    def test_reset_machine_is_best_effort(self, slow_kiosk):
        slow_kiosk.create_session(make_upload("a.pdf", pdf_bytes(1)))

        with patch.object(slow_kiosk.coordinator, "abort_all", side_effect=RuntimeError("boom")):
            result = slow_kiosk.reset_machine()

        assert result == {"cancelledJobs": 0, "clearedSessions": 1}

    def test_admin_status(self, slow_kiosk):
        session = _paid(slow_kiosk)
        slow_kiosk.start_print(session.session_id)

        status = slow_kiosk.admin_status()

        assert status["printerBusy"] is True
        assert status["machineEnabled"] is True
        assert status["activeSessions"] == 1
        assert status["printers"] == {"ANVI": "IDLE", "SOS": "BUSY", "SOT": "IDLE"}

    def test_printer_status_and_reset(self, kiosk):
        views = {v["printer_id"]: v for v in kiosk.printer_status()}
        assert views["SOS"]["state"] == "IDLE"

        view = kiosk.reset_printer("SOT", paper=10)

        assert view["paper"] == 10
        assert kiosk.printer_status("SOT")[0]["paper"] == 10

    def test_current_session_is_latest(self, kiosk):
        assert kiosk.current_session() is None
        kiosk.create_session(make_upload("a.pdf", pdf_bytes(1)))
        latest = kiosk.create_session(make_upload("b.pdf", pdf_bytes(1)))

        assert kiosk.current_session().session_id == latest.session_id
        assert len(kiosk.list_sessions()) == 2


# Tests for the Sweeper

class TestSessionSweeper:
    """Background expiry sweep."""

    def test_sweep_now_removes_expired(self, store, stored_file, clock):
        session = store.create(stored_file(), 1)
        clock.advance(301)

        assert SessionSweeper(store).sweep_now() is True
        assert session.session_id not in store

    def test_sweep_drops_finished_jobs(self, store, coordinator, paid_session, clock):
        session = paid_session(pages=1)
        coordinator.start(session.session_id, "SOS")
        assert coordinator.wait_for_job(session.session_id, timeout=5)
        assert coordinator.get_job(session.session_id).status is JobStatus.COMPLETED
        clock.advance(301)

        assert SessionSweeper(store, coordinator=coordinator).sweep_now() is True

        assert session.session_id not in store
        assert coordinator.get_job(session.session_id) is None

    def test_sweep_now_reports_failure(self):
        failing = Mock()
        failing.sweep_expired.side_effect = RuntimeError("boom")
        sweeper = SessionSweeper(failing)

        assert sweeper.sweep_now() is False
        assert sweeper.sweep_now() is False
        failing.sweep_expired.side_effect = None
        assert sweeper.sweep_now() is True

    def test_thread_runs_periodically(self):
        store = Mock()
        sweeper = SessionSweeper(store, interval_seconds=0.02, ttl_seconds=5)

        sweeper.start()
        sweeper.start()
        try:
            deadline = time.monotonic() + 5
            while store.sweep_expired.call_count < 2 and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            sweeper.stop()

        assert store.sweep_expired.call_count >= 2
        store.sweep_expired.assert_called_with(ttl=5)
        assert not sweeper.is_running
