"""Profile repository: the local Identity & Role Store."""

from datetime import datetime

from mindspace_booking.identity import Principal, Profile, Role, default_full_name

from .connection import get_connection


class ProfileRepository:
    """SQLite-backed identity store used for local development and tests.

    Local runs have no token issuer, so ``authenticate`` takes the user id
    itself and succeeds only when a profile exists for it.
    """

    def authenticate(self, user_id: str | None) -> Principal | None:
        """Resolve a user id to a principal carrying its stored role."""
        if not user_id:
            return None
        profile = self.get_profile(user_id)
        if profile is None:
            return None
        return Principal(id=profile.id, role=profile.role, email=profile.email)

    def get_profile(self, user_id: str) -> Profile | None:
        """Get a profile by user id."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM profiles WHERE id = ?", (user_id,))
        row = cursor.fetchone()
        conn.close()
        return self._row_to_profile(row) if row else None

    def create_profile(
        self,
        user_id: str,
        email: str,
        role: Role | None = None,
        full_name: str | None = None,
        phone: str | None = None,
    ) -> Profile:
        """Create the profile for a new principal. Role defaults to patient."""
        conn = get_connection()
        cursor = conn.cursor()

        role = role or Role.PATIENT
        full_name = full_name or default_full_name(email)
        now = datetime.now().isoformat()

        cursor.execute("""
            INSERT INTO profiles (id, email, role, full_name, phone, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (user_id, email, role.value, full_name, phone, now, now))

        conn.commit()
        conn.close()

        return Profile(
            id=user_id,
            email=email,
            role=role,
            full_name=full_name,
            phone=phone,
            created_at=now,
            updated_at=now,
        )

    def set_role(self, user_id: str, role: Role) -> Profile | None:
        """Overwrite a profile's role. Callers check the actor is an admin."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "UPDATE profiles SET role = ?, updated_at = ? WHERE id = ?",
            (role.value, datetime.now().isoformat(), user_id),
        )
        conn.commit()
        conn.close()
        return self.get_profile(user_id)

    def delete(self, user_id: str) -> bool:
        """Delete a profile; its therapist record and bookings go with it."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("DELETE FROM profiles WHERE id = ?", (user_id,))
        deleted = cursor.rowcount > 0
        conn.commit()
        conn.close()
        return deleted

    def _row_to_profile(self, row) -> Profile:
        """Convert a database row to a Profile object."""
        return Profile(
            id=row["id"],
            email=row["email"],
            role=Role.parse(row["role"]),
            full_name=row["full_name"],
            phone=row["phone"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
