"""Therapist directory repository with query operations."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .connection import get_connection


class ApprovalStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class TherapistRecord:
    id: str
    name: str
    email: str
    specialization: str
    fee: int
    phone: str | None = None
    bio: str | None = None
    experience: int | None = None
    license: str | None = None
    active: bool = True
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    created_at: str | None = None


class TherapistRepository:
    """Repository for therapist directory records."""

    # Fields that can be updated
    THERAPIST_FIELDS = [
        "name", "email", "phone", "specialization", "fee", "bio",
        "experience", "license", "active", "approval_status",
    ]

    def create(self, record: TherapistRecord) -> TherapistRecord:
        """Insert a new therapist record."""
        conn = get_connection()
        cursor = conn.cursor()

        now = datetime.now().isoformat()

        cursor.execute("""
            INSERT INTO therapists (
                id, name, email, phone, specialization, fee, bio,
                experience, license, active, approval_status, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            record.id, record.name, record.email, record.phone, record.specialization,
            record.fee, record.bio, record.experience, record.license,
            int(record.active), record.approval_status.value, now
        ))

        conn.commit()
        conn.close()

        record.created_at = now
        return record

    def get_by_id(self, therapist_id: str) -> TherapistRecord | None:
        """Get a therapist by ID."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM therapists WHERE id = ?", (therapist_id,))
        row = cursor.fetchone()
        conn.close()
        return self._row_to_therapist(row) if row else None

    def find_therapists(
        self,
        specialization: str | None = None,
        search: str | None = None,
        visible_only: bool = True,
        include_id: str | None = None,
    ) -> list[TherapistRecord]:
        """Find therapists matching criteria.

        With ``visible_only`` only approved and active records are returned,
        plus the record ``include_id`` when given (a therapist's own entry).
        """
        conn = get_connection()
        cursor = conn.cursor()

        query = "SELECT * FROM therapists WHERE 1 = 1"
        params = []

        if visible_only:
            visible = "(approval_status = 'approved' AND active = 1)"
            if include_id:
                query += f" AND ({visible} OR id = ?)"
                params.append(include_id)
            else:
                query += f" AND {visible}"

        if specialization:
            query += " AND LOWER(specialization) = LOWER(?)"
            params.append(specialization)

        if search:
            term = f"%{search.lower()}%"
            query += (
                " AND (LOWER(name) LIKE ? OR LOWER(specialization) LIKE ?"
                " OR LOWER(COALESCE(bio, '')) LIKE ?)"
            )
            params.extend([term, term, term])

        query += " ORDER BY name"

        cursor.execute(query, params)
        rows = cursor.fetchall()
        conn.close()

        return [self._row_to_therapist(row) for row in rows]

    def update(self, therapist_id: str, updates: dict) -> TherapistRecord | None:
        """Update whitelisted therapist fields."""
        valid_updates = {}
        for field, value in updates.items():
            if field not in self.THERAPIST_FIELDS:
                continue
            if field == "active":
                value = int(bool(value))
            elif isinstance(value, ApprovalStatus):
                value = value.value
            valid_updates[field] = value

        if valid_updates:
            conn = get_connection()
            cursor = conn.cursor()
            set_clause = ", ".join(f"{field} = ?" for field in valid_updates)
            cursor.execute(
                f"UPDATE therapists SET {set_clause} WHERE id = ?",
                list(valid_updates.values()) + [therapist_id],
            )
            conn.commit()
            conn.close()

        return self.get_by_id(therapist_id)

    def _row_to_therapist(self, row) -> TherapistRecord:
        """Convert a database row to a TherapistRecord object."""
        return TherapistRecord(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            phone=row["phone"],
            specialization=row["specialization"],
            fee=row["fee"],
            bio=row["bio"],
            experience=row["experience"],
            license=row["license"],
            active=bool(row["active"]),
            approval_status=ApprovalStatus(row["approval_status"]),
            created_at=row["created_at"],
        )
