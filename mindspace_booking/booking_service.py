"""Booking lifecycle engine.

Owns status changes, field edits and reschedule negotiation for bookings.
Every operation takes the acting principal as its first argument, re-reads
that principal's role from the identity store, and re-checks its
precondition inside the UPDATE so a late request cannot act on a booking
that has moved on.
"""

import logging
import uuid
from datetime import date, datetime

from mindspace_booking.booking_state import (
    CHANNEL_OWNERS,
    OPEN_STATUSES,
    BookingStatus,
    RescheduleState,
    channel_for,
    check_reschedule_transition,
    check_transition,
    coerce_status,
    is_valid_transition,
    other_channel,
)
from mindspace_booking.database.booking_repository import (
    RESCHEDULE_COLUMNS,
    Booking,
    BookingRepository,
)
from mindspace_booking.database.therapist_repository import TherapistRepository
from mindspace_booking.errors import (
    ConflictError,
    Forbidden,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from mindspace_booking.identity import Principal, Role
from mindspace_booking.permissions import (
    actor_for,
    can_read,
    can_view_therapist_publicly,
    is_admin,
    require_admin,
    resolve_principal,
    resolve_profile,
)
from mindspace_booking.validators import (
    BookingRequest,
    MeetingLinkUpdate,
    RescheduleRequest,
    parse_input,
)

logger = logging.getLogger(__name__)


class BookingService:
    """Booking lifecycle operations for patients, therapists and admins."""

    def __init__(
        self,
        identity_store,
        bookings: BookingRepository | None = None,
        therapists: TherapistRepository | None = None,
    ):
        self.identity = identity_store
        self.bookings = bookings or BookingRepository()
        self.therapists = therapists or TherapistRepository()

    # Creation and reads

    def create_booking(
        self,
        principal: Principal | None,
        therapist_id: str,
        session_date,
        start_time: str,
        end_time: str | None = None,
        problem_description: str | None = None,
    ) -> Booking:
        """Book a session with an approved, active therapist.

        The booking starts pending and its amount is the therapist's fee at
        this moment; later fee changes do not touch it.
        """
        profile = resolve_profile(self.identity, principal)
        if profile.role != Role.PATIENT:
            raise Forbidden("Only patients can create bookings")

        request = parse_input(
            BookingRequest,
            therapist_id=therapist_id,
            session_date=session_date,
            start_time=start_time,
            end_time=end_time,
            problem_description=problem_description,
        )

        therapist = self.therapists.get_by_id(request.therapist_id)
        if therapist is None or not can_view_therapist_publicly(therapist):
            raise NotFound("Therapist")

        booking = Booking(
            id=str(uuid.uuid4()),
            patient_id=profile.id,
            therapist_id=therapist.id,
            session_date=request.session_date.isoformat(),
            start_time=request.start_time,
            end_time=request.end_time,
            amount=therapist.fee,
            status=BookingStatus.PENDING,
            patient_name=profile.full_name,
            patient_email=profile.email,
            problem_description=request.problem_description,
        )
        created = self.bookings.create(booking, changed_by=profile.id)
        logger.info(
            "Booking %s created by %s with therapist %s for %s %s",
            created.id, profile.id, therapist.id, created.session_date, created.start_time,
        )
        return created

    def get_booking(self, principal: Principal | None, booking_id: str) -> Booking:
        _, booking = self._load(principal, booking_id)
        return booking

    def list_bookings(self, principal: Principal | None, status=None) -> list[Booking]:
        """Bookings the caller takes part in; every booking for admins."""
        actor = resolve_principal(self.identity, principal)
        status = self._parse_status(status) if status is not None else None

        if is_admin(actor):
            return self.bookings.find_bookings(status=status)
        if actor.role == Role.THERAPIST:
            return self.bookings.find_bookings(therapist_id=actor.id, status=status)
        return self.bookings.find_bookings(patient_id=actor.id, status=status)

    def get_status_history(self, principal: Principal | None, booking_id: str) -> list[dict]:
        _, booking = self._load(principal, booking_id)
        return self.bookings.get_status_history(booking.id)

    # Status transitions

    def confirm_booking(self, principal: Principal | None, booking_id: str) -> Booking:
        return self._transition(principal, booking_id, BookingStatus.CONFIRMED)

    def reject_booking(self, principal: Principal | None, booking_id: str) -> Booking:
        return self._transition(principal, booking_id, BookingStatus.REJECTED)

    def complete_booking(
        self,
        principal: Principal | None,
        booking_id: str,
        next_session_notes: str | None = None,
    ) -> Booking:
        updates = {}
        if next_session_notes is not None:
            updates["next_session_notes"] = next_session_notes
        return self._transition(principal, booking_id, BookingStatus.COMPLETED, updates)

    def cancel_booking(self, principal: Principal | None, booking_id: str) -> Booking:
        return self._transition(principal, booking_id, BookingStatus.CANCELLED)

    def admin_set_status(
        self,
        principal: Principal | None,
        booking_id: str,
        status,
        force: bool = False,
    ) -> Booking:
        """Set a booking's status as an admin.

        Without ``force`` the target must be one edge away from the current
        status. With ``force`` the exact target is written directly.
        """
        admin = require_admin(self.identity, principal)
        target = self._parse_status(status)

        booking = self.bookings.get_by_id(booking_id)
        if booking is None:
            raise NotFound("Booking")

        if target == booking.status:
            raise InvalidTransition(booking.status, target, f"Booking is already '{target.value}'")
        if not force and not is_valid_transition(booking.status, target):
            raise InvalidTransition(booking.status, target)

        if force:
            logger.warning(
                "Admin %s forcing booking %s from %s to %s",
                admin.id, booking.id, booking.status.value, target.value,
            )
        return self._apply_status(booking, target, admin.id, forced=force)

    def delete_booking(self, principal: Principal | None, booking_id: str) -> None:
        """Remove a booking entirely. Admin only."""
        admin = require_admin(self.identity, principal)
        if not self.bookings.delete(booking_id):
            raise NotFound("Booking")
        logger.warning("Booking %s deleted by admin %s", booking_id, admin.id)

    # Field edits

    def set_meeting_link(self, principal: Principal | None, booking_id: str, meeting_link: str | None) -> Booking:
        """Attach (or clear, with None) the session's https meeting link."""
        actor_principal, booking = self._load(principal, booking_id)
        if actor_for(actor_principal, booking) not in (Role.THERAPIST, Role.ADMIN):
            raise Forbidden("Only the assigned therapist can set the meeting link")
        self._require_open(booking, "set a meeting link on")

        update = parse_input(MeetingLinkUpdate, meeting_link=meeting_link)
        return self._update(booking, {"meeting_link": update.meeting_link})

    def set_next_session_notes(self, principal: Principal | None, booking_id: str, notes: str | None) -> Booking:
        """Notes from the therapist that the patient sees before the next session."""
        actor_principal, booking = self._load(principal, booking_id)
        if actor_for(actor_principal, booking) not in (Role.THERAPIST, Role.ADMIN):
            raise Forbidden("Only the assigned therapist can write session notes")
        return self._update(booking, {"next_session_notes": notes})

    # Reschedule negotiation

    def propose_reschedule(
        self,
        principal: Principal | None,
        booking_id: str,
        new_date,
        new_time: str,
        reason: str | None = None,
    ) -> Booking:
        """Open (or revise) a reschedule proposal on the caller's channel.

        A proposal never changes the booking status. While the other party
        has a proposal open, a new one is refused with ConflictError.
        """
        actor_principal, booking = self._load(principal, booking_id)
        channel = channel_for(actor_for(actor_principal, booking))
        if channel is None:
            raise Forbidden("Only the booking's patient or therapist can propose a reschedule")
        self._require_open(booking, "reschedule")

        request = parse_input(RescheduleRequest, new_date=new_date, new_time=new_time, reason=reason)

        counterpart = other_channel(channel)
        if booking.proposal(counterpart).requested:
            raise ConflictError(
                f"The {counterpart.value}'s reschedule proposal must be answered first"
            )

        current = booking.proposal(channel).state
        check_reschedule_transition(current, RescheduleState.PROPOSED)

        columns = RESCHEDULE_COLUMNS[channel]
        updated = self._update(
            booking,
            {
                columns.state: RescheduleState.PROPOSED,
                columns.date: request.new_date.isoformat(),
                columns.time: request.new_time,
                columns.reason: request.reason,
            },
            expected={
                "status": booking.status,
                columns.state: current,
                RESCHEDULE_COLUMNS[counterpart].state: booking.proposal(counterpart).state,
            },
        )
        logger.info(
            "Reschedule proposed on booking %s by %s: %s %s",
            booking.id, channel.value, request.new_date.isoformat(), request.new_time,
        )
        return updated

    def accept_reschedule(self, principal: Principal | None, booking_id: str) -> Booking:
        """Move the session to the open proposal's date and time."""
        return self._resolve_reschedule(principal, booking_id, accept=True)

    def decline_reschedule(self, principal: Principal | None, booking_id: str) -> Booking:
        """Close the open proposal and keep the current date and time."""
        return self._resolve_reschedule(principal, booking_id, accept=False)

    def _resolve_reschedule(self, principal: Principal | None, booking_id: str, accept: bool) -> Booking:
        actor_principal, booking = self._load(principal, booking_id)
        self._require_open(booking, "reschedule")

        channel = booking.open_reschedule_channel
        target = RescheduleState.ACCEPTED if accept else RescheduleState.DECLINED
        if channel is None:
            raise InvalidTransition(RescheduleState.NONE, target, "No reschedule proposal is awaiting a response")

        if actor_for(actor_principal, booking) == CHANNEL_OWNERS[channel]:
            raise Forbidden("A reschedule proposal must be answered by the other party")

        proposal = booking.proposal(channel)
        check_reschedule_transition(proposal.state, target)

        columns = RESCHEDULE_COLUMNS[channel]
        updates = {columns.state: target}
        if accept:
            if date.fromisoformat(proposal.new_date) < date.today():
                raise ValidationError("proposed date has already passed", field="new_date")
            updates["session_date"] = proposal.new_date
            updates["start_time"] = proposal.new_time
            updates["end_time"] = _shift_end_time(booking.start_time, booking.end_time, proposal.new_time)

        updated = self._update(
            booking,
            updates,
            expected={
                "status": booking.status,
                columns.state: RescheduleState.PROPOSED,
                columns.date: proposal.new_date,
                columns.time: proposal.new_time,
            },
        )
        logger.info(
            "Reschedule on booking %s (%s channel) %s by %s",
            booking.id, channel.value, target.value, actor_principal.id,
        )
        return updated

    # Private helpers

    def _load(self, principal: Principal | None, booking_id: str) -> tuple[Principal, Booking]:
        """Resolve the caller and fetch a booking they may see."""
        actor = resolve_principal(self.identity, principal)
        booking = self.bookings.get_by_id(booking_id)
        if booking is None or not can_read(actor, booking):
            raise NotFound("Booking")
        return actor, booking

    def _transition(
        self,
        principal: Principal | None,
        booking_id: str,
        target: BookingStatus,
        updates: dict | None = None,
    ) -> Booking:
        actor_principal, booking = self._load(principal, booking_id)
        actor = actor_for(actor_principal, booking)
        try:
            check_transition(booking.status, target, actor)
        except Forbidden:
            logger.warning(
                "Denied %s -> %s on booking %s for %s",
                booking.status.value, target.value, booking.id, actor_principal.id,
            )
            raise
        return self._apply_status(booking, target, actor_principal.id, updates)

    def _apply_status(
        self,
        booking: Booking,
        target: BookingStatus,
        changed_by: str,
        updates: dict | None = None,
        forced: bool = False,
    ) -> Booking:
        updated = self.bookings.transition(booking.id, booking.status, target, changed_by, updates, forced)
        if updated is None:
            self._raise_stale(booking)
        logger.info(
            "Booking %s moved %s -> %s by %s",
            booking.id, booking.status.value, target.value, changed_by,
        )
        return updated

    def _update(self, booking: Booking, updates: dict, expected: dict | None = None) -> Booking:
        updated = self.bookings.update(booking.id, updates, expected or {"status": booking.status})
        if updated is None:
            self._raise_stale(booking)
        return updated

    def _raise_stale(self, booking: Booking) -> None:
        current = self.bookings.get_by_id(booking.id)
        if current is None:
            raise NotFound("Booking")
        raise ConflictError(
            f"Booking {booking.id} changed while the request was in flight "
            f"(now '{current.status.value}')"
        )

    def _require_open(self, booking: Booking, action: str) -> None:
        if booking.status not in OPEN_STATUSES:
            raise InvalidTransition(
                booking.status,
                None,
                f"Cannot {action} a booking that is '{booking.status.value}'",
            )

    def _parse_status(self, status) -> BookingStatus:
        try:
            return coerce_status(status)
        except ValueError:
            raise ValidationError(f"unknown booking status '{status}'", field="status")


def _shift_end_time(start_time: str, end_time: str | None, new_start: str) -> str | None:
    """Keep the session length when the start time moves."""
    if end_time is None:
        return None
    fmt = "%H:%M"
    duration = datetime.strptime(end_time, fmt) - datetime.strptime(start_time, fmt)
    shifted = datetime.strptime(new_start, fmt) + duration
    if shifted.date() != datetime.strptime(new_start, fmt).date():
        # Session would run past midnight; drop the end time
        return None
    return shifted.strftime(fmt)
