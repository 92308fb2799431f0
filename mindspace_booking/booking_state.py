"""State machines for the booking lifecycle and reschedule negotiation."""

from enum import Enum

from mindspace_booking.errors import Forbidden, InvalidTransition
from mindspace_booking.identity import Role


class BookingStatus(Enum):
    """Lifecycle states of a booking."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


# Bookings in these states can still be cancelled, rescheduled or given a meeting link
OPEN_STATUSES = {BookingStatus.PENDING, BookingStatus.CONFIRMED}

TERMINAL_STATUSES = {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.REJECTED}

# (from, to) -> roles allowed to take the edge through the normal path.
# Admins take no edge here; they use admin_set_status.
TRANSITIONS = {
    (BookingStatus.PENDING, BookingStatus.CONFIRMED): {Role.THERAPIST},
    (BookingStatus.PENDING, BookingStatus.REJECTED): {Role.THERAPIST},
    (BookingStatus.CONFIRMED, BookingStatus.COMPLETED): {Role.THERAPIST},
    (BookingStatus.PENDING, BookingStatus.CANCELLED): {Role.PATIENT, Role.THERAPIST},
    (BookingStatus.CONFIRMED, BookingStatus.CANCELLED): {Role.PATIENT, Role.THERAPIST},
}


def coerce_status(value) -> BookingStatus:
    """Accept a BookingStatus or its string value."""
    if isinstance(value, BookingStatus):
        return value
    return BookingStatus(value)


def allowed_targets(current: BookingStatus) -> set[BookingStatus]:
    """Statuses reachable in one step from ``current``."""
    return {target for (source, target) in TRANSITIONS if source == current}


def is_valid_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return (current, target) in TRANSITIONS


def check_transition(current: BookingStatus, target: BookingStatus, actor: Role | None) -> None:
    """Raise unless ``actor`` may move a booking from ``current`` to ``target``.

    A missing edge is an InvalidTransition whatever the actor; an existing
    edge taken by the wrong party is Forbidden.
    """
    allowed = TRANSITIONS.get((current, target))
    if allowed is None:
        if current in TERMINAL_STATUSES:
            raise InvalidTransition(
                current, target, f"Booking is already '{current.value}' and cannot change"
            )
        raise InvalidTransition(current, target)
    if actor not in allowed:
        parties = " or ".join(sorted(role.value for role in allowed))
        raise Forbidden(f"Only the {parties} can move a booking from '{current.value}' to '{target.value}'")


class RescheduleChannel(Enum):
    """Who opened a reschedule proposal."""
    PATIENT = "patient"
    THERAPIST = "therapist"


class RescheduleState(Enum):
    """State of one reschedule channel."""
    NONE = "none"
    PROPOSED = "proposed"
    ACCEPTED = "accepted"
    DECLINED = "declined"


# A proposal may be revised while open; a resolved channel may be proposed again
RESCHEDULE_TRANSITIONS = {
    RescheduleState.NONE: {RescheduleState.PROPOSED},
    RescheduleState.PROPOSED: {RescheduleState.PROPOSED, RescheduleState.ACCEPTED, RescheduleState.DECLINED},
    RescheduleState.ACCEPTED: {RescheduleState.PROPOSED},
    RescheduleState.DECLINED: {RescheduleState.PROPOSED},
}

CHANNEL_OWNERS = {
    RescheduleChannel.PATIENT: Role.PATIENT,
    RescheduleChannel.THERAPIST: Role.THERAPIST,
}


def channel_for(actor: Role | None) -> RescheduleChannel | None:
    """The channel a party proposes on; None for anyone who is not a party."""
    for channel, owner in CHANNEL_OWNERS.items():
        if owner == actor:
            return channel
    return None


def other_channel(channel: RescheduleChannel) -> RescheduleChannel:
    if channel == RescheduleChannel.PATIENT:
        return RescheduleChannel.THERAPIST
    return RescheduleChannel.PATIENT


def check_reschedule_transition(current: RescheduleState, target: RescheduleState) -> None:
    if target not in RESCHEDULE_TRANSITIONS[current]:
        if current != RescheduleState.PROPOSED:
            raise InvalidTransition(current, target, "No reschedule proposal is awaiting a response")
        raise InvalidTransition(current, target)
