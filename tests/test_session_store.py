"""
Unit tests for the Session Store.

Covers id generation, the payment-before-print rule, status transitions,
file release and the expiry sweep.
"""

import os
import re
from unittest.mock import patch

import pytest

from core.exceptions import (
    InvalidSessionStateError,
    PaymentNotConfirmedError,
    SessionNotFoundError,
)
from models.session import ColorMode, PaymentStatus, PrintMode, PrintStatus
from services.session_store import SessionStore, generate_session_id


# Tests for Creation

class TestCreate:
    """Session creation and lookup."""

    def test_generated_ids_are_uppercase_alphanumeric(self):
        for _ in range(50):
            assert re.fullmatch(r"[A-Z0-9]{8}", generate_session_id())

    def test_new_session_waiting_and_unpaid(self, store, stored_file, clock):
        session = store.create(stored_file(), 3, file_name="doc.pdf", phone="5550100")

        assert session.payment_status is PaymentStatus.PENDING
        assert session.print_status is PrintStatus.WAITING
        assert session.declared_page_count == 3
        assert session.created_at == clock.now
        assert session.phone == "5550100"
        assert len(store) == 1
        assert session.session_id in store

    def test_id_collision_regenerates(self, storage, stored_file):
        ids = iter(["AAAAAAAA", "AAAAAAAA", "BBBBBBBB"])
        store = SessionStore(storage, id_factory=lambda: next(ids))

        first = store.create(stored_file(), 1)
        second = store.create(stored_file(), 1)

        assert first.session_id == "AAAAAAAA"
        assert second.session_id == "BBBBBBBB"

    def test_id_space_exhausted(self, storage, stored_file):
        store = SessionStore(storage, id_factory=lambda: "AAAAAAAA")
        store.create(stored_file(), 1)

        with pytest.raises(RuntimeError):
            store.create(stored_file(), 1)

    def test_negative_page_count_rejected(self, store, stored_file):
        with pytest.raises(ValueError):
            store.create(stored_file(), -1)

    def test_unknown_session(self, store):
        with pytest.raises(SessionNotFoundError):
            store.get("NOPE0000")

    def test_returned_sessions_are_copies(self, store, stored_file):
        session = store.create(stored_file(), 2)
        session.print_status = PrintStatus.DONE

        assert store.get(session.session_id).print_status is PrintStatus.WAITING

    def test_list_sessions_oldest_first(self, store, stored_file, clock):
        first = store.create(stored_file(), 1)
        clock.advance(5)
        second = store.create(stored_file(), 1)

        assert [s.session_id for s in store.list_sessions()] == [first.session_id, second.session_id]
        assert store.latest().session_id == second.session_id

    def test_latest_empty(self, store):
        assert store.latest() is None


# Tests for Payment and Printing

class TestPrintLifecycle:
    """WAITING -> PRINTING -> DONE and its preconditions."""

    def test_print_requires_payment(self, store, stored_file):
        session = store.create(stored_file(), 3)

        with pytest.raises(PaymentNotConfirmedError):
            store.begin_print(session.session_id)

        assert store.get(session.session_id).print_status is PrintStatus.WAITING

    def test_confirm_payment_records_amount(self, store, stored_file):
        session = store.create(stored_file(), 3)

        paid = store.confirm_payment(session.session_id, 6)

        assert paid.payment_status is PaymentStatus.PAID
        assert paid.amount == 6.0

    def test_begin_print(self, store, paid_session):
        session = paid_session()

        printing = store.begin_print(
            session.session_id, copies=2, color_mode="color", print_mode="duplex",
            printer_id="SOT", pages_to_print=6,
        )

        assert printing.print_status is PrintStatus.PRINTING
        assert printing.copies == 2
        assert printing.color_mode is ColorMode.COLOR
        assert printing.print_mode is PrintMode.DUPLEX
        assert printing.printer_id == "SOT"
        assert printing.pages_to_print == 6

    def test_begin_print_twice_rejected(self, store, paid_session):
        session = paid_session()
        store.begin_print(session.session_id)

        with pytest.raises(InvalidSessionStateError):
            store.begin_print(session.session_id)

    def test_printing_implies_paid(self, store, stored_file, paid_session):
        paid_session()
        store.create(stored_file(), 1)
        for session in store.list_sessions():
            try:
                store.begin_print(session.session_id)
            except PaymentNotConfirmedError:
                pass

        for session in store.list_sessions():
            if session.print_status is PrintStatus.PRINTING:
                assert session.is_paid

    def test_set_options_only_while_waiting(self, store, paid_session):
        session = paid_session()
        updated = store.set_options(session.session_id, copies=3, color_mode=ColorMode.COLOR)
        assert updated.copies == 3
        assert updated.color_mode is ColorMode.COLOR

        store.begin_print(session.session_id)
        with pytest.raises(InvalidSessionStateError):
            store.set_options(session.session_id, copies=1)

    def test_revert_print(self, store, paid_session):
        session = paid_session()
        store.begin_print(session.session_id, printer_id="SOS", pages_to_print=3)

        reverted = store.revert_print(session.session_id)

        assert reverted.print_status is PrintStatus.WAITING
        assert reverted.printer_id is None
        assert reverted.pages_to_print is None
        assert reverted.is_paid

    def test_finish_print_releases_file(self, store, paid_session):
        session = paid_session()
        path = session.file_reference
        store.begin_print(session.session_id)

        done = store.finish_print(session.session_id)

        assert done.print_status is PrintStatus.DONE
        assert done.file_released
        assert not os.path.exists(path)

    def test_finish_print_is_idempotent(self, store, paid_session, storage):
        session = paid_session()
        store.begin_print(session.session_id)
        first = store.finish_print(session.session_id)

        with patch.object(storage, "delete") as delete:
            second = store.finish_print(session.session_id)

        delete.assert_not_called()
        assert second == first

    def test_status_never_goes_back_after_done(self, store, paid_session):
        session = paid_session()
        store.begin_print(session.session_id)
        store.finish_print(session.session_id)

        with pytest.raises(InvalidSessionStateError):
            store.begin_print(session.session_id)
        assert store.revert_print(session.session_id).print_status is PrintStatus.DONE


# Tests for Removal

class TestRemoval:
    """Cancel, forced removal, clear and the expiry sweep."""

    def test_cancel_waiting_session(self, store, stored_file):
        path = stored_file()
        session = store.create(path, 1)

        store.cancel(session.session_id)

        assert session.session_id not in store
        assert not os.path.exists(path)

    def test_cancel_printing_session_rejected(self, store, paid_session):
        session = paid_session()
        store.begin_print(session.session_id)

        with pytest.raises(InvalidSessionStateError):
            store.cancel(session.session_id)
        assert os.path.exists(session.file_reference)

    def test_cancel_unknown(self, store):
        with pytest.raises(SessionNotFoundError):
            store.cancel("NOPE0000")

    def test_session_ids(self, store, stored_file):
        first = store.create(stored_file(), 1)
        second = store.create(stored_file(), 1)

        ids = store.session_ids()
        store.cancel(first.session_id)

        assert ids == {first.session_id, second.session_id}
        assert store.session_ids() == {second.session_id}

    def test_clear_all(self, store, stored_file, paid_session):
        paths = [stored_file(), stored_file()]
        for path in paths:
            store.create(path, 1)
        printing = paid_session()
        store.begin_print(printing.session_id)

        assert store.clear_all() == 3
        assert len(store) == 0
        assert not any(os.path.exists(p) for p in paths + [printing.file_reference])

    def test_sweep_removes_expired(self, store, stored_file, clock):
        path = stored_file()
        session = store.create(path, 1)
        clock.advance(301)

        removed = store.sweep_expired()

        assert removed == [session.session_id]
        assert session.session_id not in store
        assert not os.path.exists(path)

    def test_sweep_keeps_fresh_sessions(self, store, stored_file, clock):
        session = store.create(stored_file(), 1)
        clock.advance(299)

        assert store.sweep_expired() == []
        assert session.session_id in store

    def test_sweep_never_reaps_printing(self, store, paid_session, clock):
        session = paid_session()
        store.begin_print(session.session_id)
        clock.advance(10_000)

        assert store.sweep_expired() == []
        assert store.get(session.session_id).print_status is PrintStatus.PRINTING
        assert os.path.exists(session.file_reference)

    def test_sweep_removes_done_sessions(self, store, paid_session, clock):
        session = paid_session()
        store.begin_print(session.session_id)
        store.finish_print(session.session_id)
        clock.advance(301)

        assert store.sweep_expired() == [session.session_id]

    def test_failed_deletion_retried_by_sweep(self, store, stored_file, storage):
        path = stored_file()
        session = store.create(path, 1)

        with patch("modules.file_storage.os.remove", side_effect=PermissionError("locked")):
            store.cancel(session.session_id)

        assert session.session_id not in store
        assert path in storage.orphans
        assert os.path.exists(path)

        store.sweep_expired()

        assert storage.orphans == set()
        assert not os.path.exists(path)

    def test_sweep_survives_storage_errors(self, store, stored_file, storage, clock):
        session = store.create(stored_file(), 1)
        clock.advance(301)

        with patch.object(storage, "retry_orphans", side_effect=RuntimeError("disk gone")):
            removed = store.sweep_expired()

        assert removed == [session.session_id]
