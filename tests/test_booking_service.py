"""Tests for the booking lifecycle engine."""

import time
from datetime import date, timedelta
from unittest.mock import patch

import pytest

from mindspace_booking.booking_state import BookingStatus
from mindspace_booking.database import ApprovalStatus
from mindspace_booking.errors import (
    ConflictError,
    Forbidden,
    InvalidTransition,
    NotFound,
    Unauthenticated,
    ValidationError,
)
from mindspace_booking.identity import Principal, Role


class TestCreateBooking:
    """Tests for booking creation."""

    def test_creates_pending_booking_with_fee_snapshot(self, service, patient, future_date):
        booking = service.create_booking(patient, "therapist-1", future_date, "10:00")
        assert booking.status == BookingStatus.PENDING
        assert booking.amount == 100
        assert booking.patient_id == "patient-1"
        assert booking.therapist_id == "therapist-1"
        assert booking.session_date == future_date.isoformat()
        assert booking.created_at is not None

    def test_snapshots_patient_details(self, booking):
        assert booking.patient_name == "Pat Patient"
        assert booking.patient_email == "pat@email.com"
        assert booking.problem_description == "Panic attacks at work"

    def test_amount_does_not_follow_fee_changes(self, service, directory, patient, therapist, booking):
        directory.update_therapist(therapist, "therapist-1", {"fee": 250})
        assert service.get_booking(patient, booking.id).amount == 100

    def test_past_date_rejected(self, service, patient):
        yesterday = date.today() - timedelta(days=1)
        with pytest.raises(ValidationError) as exc_info:
            service.create_booking(patient, "therapist-1", yesterday, "10:00")
        assert exc_info.value.field == "session_date"

    def test_unapproved_therapist_not_found(self, service, therapist_repo, patient, future_date):
        therapist_repo.update("therapist-1", {"approval_status": ApprovalStatus.PENDING})
        with pytest.raises(NotFound):
            service.create_booking(patient, "therapist-1", future_date, "10:00")

    def test_inactive_therapist_not_found(self, service, therapist_repo, patient, future_date):
        therapist_repo.update("therapist-1", {"active": False})
        with pytest.raises(NotFound):
            service.create_booking(patient, "therapist-1", future_date, "10:00")

    def test_unknown_therapist_not_found(self, service, patient, future_date):
        with pytest.raises(NotFound):
            service.create_booking(patient, "therapist-404", future_date, "10:00")

    def test_therapist_cannot_book(self, service, therapist, future_date):
        with pytest.raises(Forbidden):
            service.create_booking(therapist, "therapist-2", future_date, "10:00")

    def test_claimed_patient_role_is_not_trusted(self, service, therapist, future_date):
        """A therapist claiming to be a patient is still a therapist."""
        claimed = Principal(id=therapist.id, role=Role.PATIENT)
        with pytest.raises(Forbidden):
            service.create_booking(claimed, "therapist-2", future_date, "10:00")

    def test_unauthenticated(self, service, accounts, future_date):
        with pytest.raises(Unauthenticated):
            service.create_booking(None, "therapist-1", future_date, "10:00")

    def test_creation_is_logged(self, service, patient, booking):
        history = service.get_status_history(patient, booking.id)
        assert len(history) == 1
        assert history[0]["old_status"] is None
        assert history[0]["new_status"] == "pending"
        assert history[0]["changed_by"] == "patient-1"


class TestReadAccess:
    """Tests for booking visibility."""

    def test_participants_and_admin_can_read(self, service, patient, therapist, admin, booking):
        for principal in (patient, therapist, admin):
            assert service.get_booking(principal, booking.id).id == booking.id

    def test_other_patient_cannot_see_booking(self, service, other_patient, booking):
        with pytest.raises(NotFound):
            service.get_booking(other_patient, booking.id)

    def test_hidden_and_missing_look_the_same(self, service, other_patient, booking):
        with pytest.raises(NotFound) as hidden:
            service.get_booking(other_patient, booking.id)
        with pytest.raises(NotFound) as missing:
            service.get_booking(other_patient, "no-such-booking")
        assert str(hidden.value) == str(missing.value)

    def test_not_found_is_a_forbidden(self, service, other_therapist, booking):
        with pytest.raises(Forbidden):
            service.get_booking(other_therapist, booking.id)

    def test_list_bookings_per_role(self, service, patient, other_patient, therapist, other_therapist, admin, future_date):
        first = service.create_booking(patient, "therapist-1", future_date, "09:00")
        second = service.create_booking(other_patient, "therapist-2", future_date, "11:00")

        assert [b.id for b in service.list_bookings(patient)] == [first.id]
        assert [b.id for b in service.list_bookings(other_patient)] == [second.id]
        assert [b.id for b in service.list_bookings(therapist)] == [first.id]
        assert [b.id for b in service.list_bookings(other_therapist)] == [second.id]
        assert {b.id for b in service.list_bookings(admin)} == {first.id, second.id}

    def test_list_bookings_by_status(self, service, patient, therapist, booking, future_date):
        other = service.create_booking(patient, "therapist-1", future_date, "15:00")
        service.confirm_booking(therapist, other.id)
        confirmed = service.list_bookings(patient, status="confirmed")
        assert [b.id for b in confirmed] == [other.id]

    def test_list_bookings_unknown_status(self, service, patient):
        with pytest.raises(ValidationError):
            service.list_bookings(patient, status="archived")


class TestStatusTransitions:
    """Tests for the normal transition path."""

    def test_therapist_confirms(self, service, therapist, booking):
        assert service.confirm_booking(therapist, booking.id).status == BookingStatus.CONFIRMED

    def test_therapist_rejects(self, service, therapist, booking):
        assert service.reject_booking(therapist, booking.id).status == BookingStatus.REJECTED

    def test_patient_cannot_confirm(self, service, patient, booking):
        with pytest.raises(Forbidden):
            service.confirm_booking(patient, booking.id)

    def test_admin_cannot_confirm_through_normal_path(self, service, admin, booking):
        with pytest.raises(Forbidden):
            service.confirm_booking(admin, booking.id)

    def test_unassigned_therapist_cannot_confirm(self, service, other_therapist, booking):
        with pytest.raises(Forbidden):
            service.confirm_booking(other_therapist, booking.id)

    def test_other_patient_cannot_reject(self, service, other_patient, booking):
        with pytest.raises(Forbidden):
            service.reject_booking(other_patient, booking.id)

    def test_patient_cancels_pending(self, service, patient, booking):
        assert service.cancel_booking(patient, booking.id).status == BookingStatus.CANCELLED

    def test_therapist_cancels_confirmed(self, service, therapist, confirmed_booking):
        assert service.cancel_booking(therapist, confirmed_booking.id).status == BookingStatus.CANCELLED

    def test_complete_requires_confirmation_first(self, service, therapist, booking):
        with pytest.raises(InvalidTransition):
            service.complete_booking(therapist, booking.id)

    def test_complete_attaches_notes(self, service, patient, therapist, confirmed_booking):
        completed = service.complete_booking(therapist, confirmed_booking.id, next_session_notes="Practice breathing")
        assert completed.status == BookingStatus.COMPLETED
        assert service.get_booking(patient, completed.id).next_session_notes == "Practice breathing"

    def test_patient_cannot_complete(self, service, patient, confirmed_booking):
        with pytest.raises(Forbidden):
            service.complete_booking(patient, confirmed_booking.id)

    def test_confirm_twice_is_invalid(self, service, therapist, confirmed_booking):
        with pytest.raises(InvalidTransition):
            service.confirm_booking(therapist, confirmed_booking.id)

    def test_rejected_is_terminal(self, service, patient, therapist, booking):
        service.reject_booking(therapist, booking.id)
        with pytest.raises(InvalidTransition):
            service.cancel_booking(patient, booking.id)
        with pytest.raises(InvalidTransition):
            service.confirm_booking(therapist, booking.id)

    def test_cancelled_is_terminal(self, service, patient, therapist, booking):
        service.cancel_booking(patient, booking.id)
        with pytest.raises(InvalidTransition):
            service.confirm_booking(therapist, booking.id)

    def test_transitions_are_logged(self, service, patient, therapist, confirmed_booking):
        service.complete_booking(therapist, confirmed_booking.id)
        history = service.get_status_history(patient, confirmed_booking.id)
        assert [(h["old_status"], h["new_status"]) for h in history] == [
            ("confirmed", "completed"),
            ("pending", "confirmed"),
            (None, "pending"),
        ]
        assert history[0]["changed_by"] == "therapist-1"


class TestStaleRequests:
    """Tests for re-validating preconditions at application time."""

    def test_late_confirm_after_cancel_conflicts(self, service, patient, therapist, booking):
        stale = service.get_booking(therapist, booking.id)
        service.cancel_booking(patient, booking.id)
        current = service.bookings.get_by_id(booking.id)

        with patch.object(service.bookings, "get_by_id", side_effect=[stale, current]):
            with pytest.raises(ConflictError):
                service.confirm_booking(therapist, booking.id)

        assert service.get_booking(patient, booking.id).status == BookingStatus.CANCELLED

    def test_second_accept_is_rejected(self, service, therapist, booking):
        """Two accepts racing on one pending booking: the loser gets an error."""
        stale = service.get_booking(therapist, booking.id)
        service.confirm_booking(therapist, booking.id)
        current = service.bookings.get_by_id(booking.id)

        with patch.object(service.bookings, "get_by_id", side_effect=[stale, current]):
            with pytest.raises(ConflictError):
                service.reject_booking(therapist, booking.id)

        assert service.get_booking(therapist, booking.id).status == BookingStatus.CONFIRMED

    def test_repository_transition_checks_current_status(self, service, therapist, booking):
        service.confirm_booking(therapist, booking.id)
        result = service.bookings.transition(
            booking.id, BookingStatus.PENDING, BookingStatus.REJECTED, changed_by="therapist-1"
        )
        assert result is None


class TestAdminOverride:
    """Tests for admin status overrides and deletion."""

    def test_admin_takes_valid_edge(self, service, admin, booking):
        updated = service.admin_set_status(admin, booking.id, "confirmed")
        assert updated.status == BookingStatus.CONFIRMED

    def test_admin_invalid_edge_without_force(self, service, admin, booking):
        with pytest.raises(InvalidTransition):
            service.admin_set_status(admin, booking.id, BookingStatus.COMPLETED)

    def test_admin_force_sets_exact_status(self, service, admin, patient, booking):
        updated = service.admin_set_status(admin, booking.id, BookingStatus.COMPLETED, force=True)
        assert updated.status == BookingStatus.COMPLETED
        history = service.get_status_history(admin, booking.id)
        assert history[0]["new_status"] == "completed"
        assert history[0]["forced"] == 1

    def test_admin_force_can_reopen_terminal(self, service, admin, patient, booking):
        service.cancel_booking(patient, booking.id)
        updated = service.admin_set_status(admin, booking.id, "pending", force=True)
        assert updated.status == BookingStatus.PENDING

    def test_same_status_is_invalid(self, service, admin, booking):
        with pytest.raises(InvalidTransition):
            service.admin_set_status(admin, booking.id, "pending", force=True)

    def test_non_admin_cannot_override(self, service, therapist, booking):
        with pytest.raises(Forbidden):
            service.admin_set_status(therapist, booking.id, "confirmed")

    def test_claimed_admin_role_is_not_trusted(self, service, patient, booking):
        claimed = Principal(id=patient.id, role=Role.ADMIN)
        with pytest.raises(Forbidden):
            service.admin_set_status(claimed, booking.id, "completed", force=True)
        assert service.get_booking(patient, booking.id).status == BookingStatus.PENDING

    def test_unknown_status(self, service, admin, booking):
        with pytest.raises(ValidationError):
            service.admin_set_status(admin, booking.id, "archived")

    def test_admin_deletes_booking(self, service, admin, booking):
        service.delete_booking(admin, booking.id)
        with pytest.raises(NotFound):
            service.get_booking(admin, booking.id)
        assert service.bookings.get_status_history(booking.id) == []

    def test_delete_missing_booking(self, service, admin):
        with pytest.raises(NotFound):
            service.delete_booking(admin, "no-such-booking")

    def test_patient_cannot_delete(self, service, patient, booking):
        with pytest.raises(Forbidden):
            service.delete_booking(patient, booking.id)


class TestFieldEdits:
    """Tests for meeting links and session notes."""

    def test_https_meeting_link(self, service, therapist, booking):
        updated = service.set_meeting_link(therapist, booking.id, "https://example.com/room/abc")
        assert updated.meeting_link == "https://example.com/room/abc"

    def test_http_meeting_link_rejected(self, service, therapist, booking):
        with pytest.raises(ValidationError):
            service.set_meeting_link(therapist, booking.id, "http://example.com")
        assert service.get_booking(therapist, booking.id).meeting_link is None

    def test_patient_cannot_set_meeting_link(self, service, patient, booking):
        with pytest.raises(Forbidden):
            service.set_meeting_link(patient, booking.id, "https://example.com/room/abc")

    def test_meeting_link_on_terminal_booking(self, service, patient, therapist, booking):
        service.cancel_booking(patient, booking.id)
        with pytest.raises(InvalidTransition) as exc_info:
            service.set_meeting_link(therapist, booking.id, "https://example.com/room/abc")
        assert exc_info.value.current == BookingStatus.CANCELLED
        assert exc_info.value.target is None

    def test_clear_meeting_link(self, service, therapist, booking):
        service.set_meeting_link(therapist, booking.id, "https://example.com/room/abc")
        assert service.set_meeting_link(therapist, booking.id, None).meeting_link is None

    def test_next_session_notes(self, service, patient, therapist, booking):
        service.set_next_session_notes(therapist, booking.id, "Bring your journal")
        assert service.get_booking(patient, booking.id).next_session_notes == "Bring your journal"

    def test_patient_cannot_write_notes(self, service, patient, booking):
        with pytest.raises(Forbidden):
            service.set_next_session_notes(patient, booking.id, "Self-assigned homework")

    def test_updates_refresh_updated_at(self, service, therapist, booking):
        time.sleep(0.01)
        updated = service.set_next_session_notes(therapist, booking.id, "Notes")
        assert updated.updated_at > booking.updated_at
        assert updated.created_at == booking.created_at


class TestScenarios:
    """End-to-end flows."""

    def test_book_confirm_complete_then_cancel_fails(self, service, patient, therapist, future_date):
        booking = service.create_booking(patient, "therapist-1", future_date, "10:00")
        assert booking.status == BookingStatus.PENDING
        assert booking.amount == 100

        confirmed = service.confirm_booking(therapist, booking.id)
        assert confirmed.status == BookingStatus.CONFIRMED

        completed = service.complete_booking(therapist, booking.id)
        assert completed.status == BookingStatus.COMPLETED

        with pytest.raises(InvalidTransition):
            service.cancel_booking(patient, booking.id)

    def test_patient_deletion_cascades(self, service, profiles, admin, booking):
        profiles.delete("patient-1")
        with pytest.raises(NotFound):
            service.get_booking(admin, booking.id)
