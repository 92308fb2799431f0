"""Authorization predicates for bookings and therapist records.

The predicates are pure and look only at the records handed to them. The
principal they receive must come from ``resolve_principal``, which re-reads
the role from the identity store instead of trusting the caller's claim.
"""

import logging

from mindspace_booking.database.booking_repository import Booking
from mindspace_booking.database.therapist_repository import ApprovalStatus, TherapistRecord
from mindspace_booking.errors import Forbidden, NotFound, Unauthenticated
from mindspace_booking.identity import IdentityStoreError, Principal, Profile, Role

logger = logging.getLogger(__name__)


def owner_id(record) -> str | None:
    """Identity of the principal that owns a record."""
    if isinstance(record, Booking):
        return record.patient_id
    return getattr(record, "id", None)


def is_self(principal: Principal | None, record) -> bool:
    if principal is None or not principal.id:
        return False
    return owner_id(record) == principal.id


def is_assigned_therapist(principal: Principal | None, booking: Booking) -> bool:
    if principal is None or not principal.id:
        return False
    return booking.therapist_id == principal.id


def is_admin(principal: Principal | None) -> bool:
    return principal is not None and principal.role == Role.ADMIN


def can_read(principal: Principal | None, booking: Booking) -> bool:
    return is_self(principal, booking) or is_assigned_therapist(principal, booking) or is_admin(principal)


def can_write(principal: Principal | None, booking: Booking) -> bool:
    # Same actor set as reads; field-level rules live in the state machine
    return can_read(principal, booking)


def can_view_therapist_publicly(record: TherapistRecord) -> bool:
    return record.approval_status == ApprovalStatus.APPROVED and record.active


def actor_for(principal: Principal | None, booking: Booking) -> Role | None:
    """Which party the principal acts as for this booking."""
    if is_self(principal, booking):
        return Role.PATIENT
    if is_assigned_therapist(principal, booking):
        return Role.THERAPIST
    if is_admin(principal):
        return Role.ADMIN
    return None


def resolve_profile(identity_store, principal: Principal | None) -> Profile:
    """Fetch the caller's current profile, failing closed."""
    if principal is None or not principal.id:
        raise Unauthenticated()

    try:
        profile = identity_store.get_profile(principal.id)
    except IdentityStoreError as e:
        logger.error("Could not verify principal %s: %s", principal.id, e)
        raise Unauthenticated("Could not verify identity") from e

    if profile is None or profile.role is None:
        logger.warning("Denied principal %s: role could not be resolved", principal.id)
        raise Forbidden("Role could not be resolved")

    if principal.role is not None and principal.role != profile.role:
        logger.warning(
            "Principal %s claimed role %s but holds %s",
            principal.id, principal.role.value, profile.role.value,
        )
    return profile


def resolve_principal(identity_store, principal: Principal | None) -> Principal:
    """Return the principal with its role as currently stored."""
    profile = resolve_profile(identity_store, principal)
    return Principal(id=profile.id, role=profile.role, email=profile.email)


def require_admin(identity_store, principal: Principal | None) -> Principal:
    actor = resolve_principal(identity_store, principal)
    if not is_admin(actor):
        logger.warning("Denied admin operation for principal %s", actor.id)
        raise Forbidden("Admin role required")
    return actor


def assign_role(identity_store, principal: Principal | None, user_id: str, role: Role) -> Profile:
    """Change another principal's role. Admin only."""
    require_admin(identity_store, principal)
    profile = identity_store.set_role(user_id, role)
    if profile is None:
        raise NotFound("Profile")
    logger.info("Role of %s set to %s by %s", user_id, role.value, principal.id)
    return profile
