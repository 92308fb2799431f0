"""Therapist directory: signup, visibility-filtered queries and approval workflow."""

import logging

from mindspace_booking.database.therapist_repository import (
    ApprovalStatus,
    TherapistRecord,
    TherapistRepository,
)
from mindspace_booking.errors import ConflictError, Forbidden, NotFound, Unauthenticated, ValidationError
from mindspace_booking.identity import Principal, Role
from mindspace_booking.permissions import (
    can_view_therapist_publicly,
    is_admin,
    is_self,
    require_admin,
    resolve_principal,
)
from mindspace_booking.validators import TherapistSignup, TherapistUpdate, parse_input

logger = logging.getLogger(__name__)


class TherapistDirectory:
    """Directory of therapist records gated by approval and activation.

    Anonymous callers only ever see approved, active records. A therapist also
    sees their own record whatever its state, and admins see everything.
    """

    def __init__(self, identity_store, therapists: TherapistRepository | None = None):
        self.identity = identity_store
        self.therapists = therapists or TherapistRepository()

    def register_therapist(self, principal: Principal | None, **fields) -> TherapistRecord:
        """Create the caller's directory entry. It starts pending and active."""
        actor = resolve_principal(self.identity, principal)
        if actor.role != Role.THERAPIST:
            raise Forbidden("Only therapist accounts can register in the directory")
        if self.therapists.get_by_id(actor.id) is not None:
            raise ConflictError("A directory entry already exists for this therapist")

        fields.setdefault("email", actor.email)
        signup = parse_input(TherapistSignup, **fields)

        record = TherapistRecord(
            id=actor.id,
            name=signup.name,
            email=signup.email,
            phone=signup.phone,
            specialization=signup.specialization,
            fee=signup.fee,
            bio=signup.bio,
            experience=signup.experience,
            license=signup.license,
        )
        created = self.therapists.create(record)
        logger.info("Therapist %s registered, awaiting approval", created.id)
        return created

    def list_therapists(
        self,
        principal: Principal | None = None,
        specialization: str | None = None,
        search: str | None = None,
    ) -> list[TherapistRecord]:
        """List the therapists the caller may see, sorted by name."""
        viewer = self._resolve_viewer(principal)

        if is_admin(viewer):
            return self.therapists.find_therapists(
                specialization=specialization, search=search, visible_only=False
            )

        include_id = viewer.id if viewer is not None and viewer.role == Role.THERAPIST else None
        return self.therapists.find_therapists(
            specialization=specialization,
            search=search,
            visible_only=True,
            include_id=include_id,
        )

    def get_therapist(self, principal: Principal | None, therapist_id: str) -> TherapistRecord:
        viewer = self._resolve_viewer(principal)
        record = self.therapists.get_by_id(therapist_id)
        if record is None or not self._can_view(viewer, record):
            raise NotFound("Therapist")
        return record

    def set_approval_status(
        self,
        principal: Principal | None,
        therapist_id: str,
        status: ApprovalStatus | str,
    ) -> TherapistRecord:
        """Approve or reject a therapist. Admin only."""
        admin = require_admin(self.identity, principal)
        try:
            status = ApprovalStatus(status)
        except ValueError:
            raise ValidationError(f"unknown approval status '{status}'", field="approval_status")

        if self.therapists.get_by_id(therapist_id) is None:
            raise NotFound("Therapist")

        updated = self.therapists.update(therapist_id, {"approval_status": status})
        logger.info("Therapist %s set to %s by %s", therapist_id, status.value, admin.id)
        return updated

    def set_active(self, principal: Principal | None, therapist_id: str, active: bool) -> TherapistRecord:
        """Toggle the activation flag.

        Admins may set either value. The owning therapist may only deactivate;
        reactivation goes through an admin.
        """
        actor = resolve_principal(self.identity, principal)
        record = self.therapists.get_by_id(therapist_id)
        if record is None or not self._can_view(actor, record):
            raise NotFound("Therapist")

        if not is_admin(actor):
            if not is_self(actor, record):
                raise Forbidden("Only the therapist or an admin can change activation")
            if active:
                raise Forbidden("Therapists can deactivate themselves but not reactivate")

        updated = self.therapists.update(therapist_id, {"active": active})
        logger.info("Therapist %s active=%s by %s", therapist_id, active, actor.id)
        return updated

    def update_therapist(self, principal: Principal | None, therapist_id: str, updates: dict) -> TherapistRecord:
        """Edit display fields. Approval and activation are not editable here."""
        actor = resolve_principal(self.identity, principal)
        record = self.therapists.get_by_id(therapist_id)
        if record is None or not self._can_view(actor, record):
            raise NotFound("Therapist")
        if not (is_admin(actor) or is_self(actor, record)):
            raise Forbidden("Only the therapist or an admin can edit this record")

        unknown = set(updates) - set(TherapistUpdate.model_fields)
        if unknown:
            raise ValidationError(f"cannot update {', '.join(sorted(unknown))}")

        changes = parse_input(TherapistUpdate, **updates).model_dump(exclude_unset=True)
        for field in ("name", "specialization", "fee"):
            if field in changes and changes[field] is None:
                raise ValidationError("field is required", field=field)
        return self.therapists.update(therapist_id, changes)

    def _resolve_viewer(self, principal: Principal | None) -> Principal | None:
        """Resolve a reader, falling back to anonymous when that fails."""
        if principal is None:
            return None
        try:
            return resolve_principal(self.identity, principal)
        except (Unauthenticated, Forbidden):
            logger.info("Principal %s could not be resolved, listing as anonymous", principal.id)
            return None

    def _can_view(self, viewer: Principal | None, record: TherapistRecord) -> bool:
        if can_view_therapist_publicly(record):
            return True
        return is_admin(viewer) or is_self(viewer, record)
