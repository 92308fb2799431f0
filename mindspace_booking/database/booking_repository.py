"""Booking repository with conditional updates and status audit logging."""

import uuid
from dataclasses import dataclass
from datetime import datetime

from mindspace_booking.booking_state import (
    TERMINAL_STATUSES,
    BookingStatus,
    RescheduleChannel,
    RescheduleState,
)

from .connection import get_connection


@dataclass
class ChannelColumns:
    state: str
    date: str
    time: str
    reason: str


RESCHEDULE_COLUMNS = {
    RescheduleChannel.PATIENT: ChannelColumns(
        "reschedule_state", "reschedule_new_date", "reschedule_new_start_time", "reschedule_reason"
    ),
    RescheduleChannel.THERAPIST: ChannelColumns(
        "therapist_reschedule_state", "therapist_reschedule_date",
        "therapist_reschedule_time", "therapist_reschedule_reason"
    ),
}


@dataclass
class RescheduleProposal:
    channel: RescheduleChannel
    state: RescheduleState
    new_date: str | None = None
    new_time: str | None = None
    reason: str | None = None

    @property
    def requested(self) -> bool:
        return self.state == RescheduleState.PROPOSED


@dataclass
class Booking:
    id: str
    patient_id: str
    therapist_id: str
    session_date: str
    start_time: str
    amount: int
    end_time: str | None = None
    status: BookingStatus = BookingStatus.PENDING
    patient_name: str | None = None
    patient_email: str | None = None
    problem_description: str | None = None
    meeting_link: str | None = None
    session_notes: str | None = None
    next_session_notes: str | None = None
    reschedule_state: RescheduleState = RescheduleState.NONE
    reschedule_new_date: str | None = None
    reschedule_new_start_time: str | None = None
    reschedule_reason: str | None = None
    therapist_reschedule_state: RescheduleState = RescheduleState.NONE
    therapist_reschedule_date: str | None = None
    therapist_reschedule_time: str | None = None
    therapist_reschedule_reason: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def reschedule_requested(self) -> bool:
        return self.reschedule_state == RescheduleState.PROPOSED

    @property
    def therapist_reschedule_requested(self) -> bool:
        return self.therapist_reschedule_state == RescheduleState.PROPOSED

    @property
    def open_reschedule_channel(self) -> RescheduleChannel | None:
        """The channel holding a proposal that awaits a response, if any."""
        for channel in RescheduleChannel:
            if self.proposal(channel).requested:
                return channel
        return None

    def proposal(self, channel: RescheduleChannel) -> RescheduleProposal:
        columns = RESCHEDULE_COLUMNS[channel]
        return RescheduleProposal(
            channel=channel,
            state=getattr(self, columns.state),
            new_date=getattr(self, columns.date),
            new_time=getattr(self, columns.time),
            reason=getattr(self, columns.reason),
        )


class BookingRepository:
    """Repository for booking records.

    Every mutation refreshes ``updated_at``. ``patient_id``, ``therapist_id``
    and ``created_at`` are never part of an update.
    """

    # Fields that can be updated
    BOOKING_FIELDS = [
        "session_date", "start_time", "end_time", "amount", "status",
        "patient_name", "patient_email", "problem_description", "meeting_link",
        "session_notes", "next_session_notes",
        "reschedule_state", "reschedule_new_date", "reschedule_new_start_time", "reschedule_reason",
        "therapist_reschedule_state", "therapist_reschedule_date",
        "therapist_reschedule_time", "therapist_reschedule_reason",
    ]

    def create(self, booking: Booking, changed_by: str = "system") -> Booking:
        """Insert a new booking and log its initial status."""
        conn = get_connection()
        cursor = conn.cursor()

        booking.id = booking.id or str(uuid.uuid4())
        now = datetime.now().isoformat()

        cursor.execute("""
            INSERT INTO bookings (
                id, patient_id, therapist_id, session_date, start_time, end_time,
                amount, status, patient_name, patient_email, problem_description,
                meeting_link, session_notes, next_session_notes,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            booking.id, booking.patient_id, booking.therapist_id, booking.session_date,
            booking.start_time, booking.end_time, booking.amount, booking.status.value,
            booking.patient_name, booking.patient_email, booking.problem_description,
            booking.meeting_link, booking.session_notes, booking.next_session_notes,
            now, now
        ))

        self._log_status(cursor, booking.id, None, booking.status, changed_by)

        conn.commit()
        conn.close()

        booking.created_at = now
        booking.updated_at = now
        return booking

    def get_by_id(self, booking_id: str) -> Booking | None:
        """Get a booking by ID."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM bookings WHERE id = ?", (booking_id,))
        row = cursor.fetchone()
        conn.close()
        return self._row_to_booking(row) if row else None

    def find_bookings(
        self,
        patient_id: str | None = None,
        therapist_id: str | None = None,
        status: BookingStatus | None = None,
    ) -> list[Booking]:
        """Find bookings by participant and status, earliest session first."""
        conn = get_connection()
        cursor = conn.cursor()

        query = "SELECT * FROM bookings WHERE 1 = 1"
        params = []

        if patient_id:
            query += " AND patient_id = ?"
            params.append(patient_id)

        if therapist_id:
            query += " AND therapist_id = ?"
            params.append(therapist_id)

        if status:
            query += " AND status = ?"
            params.append(status.value)

        query += " ORDER BY session_date, start_time"

        cursor.execute(query, params)
        rows = cursor.fetchall()
        conn.close()

        return [self._row_to_booking(row) for row in rows]

    def update(self, booking_id: str, updates: dict, expected: dict | None = None) -> Booking | None:
        """Update whitelisted fields if the row still matches ``expected``.

        ``expected`` maps column names to the values the caller last read.
        Returns None when the booking is gone or no longer matches.
        """
        conn = get_connection()
        cursor = conn.cursor()
        try:
            if not self._apply_update(cursor, booking_id, updates, expected):
                return None
            conn.commit()
        finally:
            conn.close()
        return self.get_by_id(booking_id)

    def transition(
        self,
        booking_id: str,
        from_status: BookingStatus,
        to_status: BookingStatus,
        changed_by: str,
        updates: dict | None = None,
        forced: bool = False,
    ) -> Booking | None:
        """Move a booking from ``from_status`` to ``to_status`` and log it.

        The status check happens in the UPDATE itself, so a booking that
        changed since the caller read it is left untouched and None returned.
        Moving to a terminal status declines any proposal still awaiting a
        response.
        """
        changes = dict(updates or {})
        changes["status"] = to_status

        conn = get_connection()
        cursor = conn.cursor()
        try:
            if not self._apply_update(cursor, booking_id, changes, {"status": from_status}):
                return None
            self._log_status(cursor, booking_id, from_status, to_status, changed_by, forced)
            if to_status in TERMINAL_STATUSES:
                self._close_open_proposals(cursor, booking_id)
            conn.commit()
        finally:
            conn.close()
        return self.get_by_id(booking_id)

    def delete(self, booking_id: str) -> bool:
        """Delete a booking and its audit rows."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("DELETE FROM bookings WHERE id = ?", (booking_id,))
        deleted = cursor.rowcount > 0
        conn.commit()
        conn.close()
        return deleted

    def get_status_history(self, booking_id: str, limit: int = 50) -> list[dict]:
        """Get the status audit trail for a booking, newest first."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT * FROM booking_status_log
            WHERE booking_id = ?
            ORDER BY changed_at DESC, rowid DESC
            LIMIT ?
        """, (booking_id, limit))
        rows = cursor.fetchall()
        conn.close()
        return [dict(row) for row in rows]

    # Private helpers

    def _apply_update(self, cursor, booking_id: str, updates: dict, expected: dict | None) -> bool:
        """Run a conditional UPDATE. Returns False when no row matched."""
        valid_updates = {
            field: _to_column(value)
            for field, value in updates.items()
            if field in self.BOOKING_FIELDS
        }
        valid_updates["updated_at"] = datetime.now().isoformat()

        set_clause = ", ".join(f"{field} = ?" for field in valid_updates)
        query = f"UPDATE bookings SET {set_clause} WHERE id = ?"
        params = list(valid_updates.values()) + [booking_id]

        for field, value in (expected or {}).items():
            if value is None:
                query += f" AND {field} IS NULL"
            else:
                query += f" AND {field} = ?"
                params.append(_to_column(value))

        cursor.execute(query, params)
        return cursor.rowcount > 0

    def _close_open_proposals(self, cursor, booking_id: str) -> None:
        for columns in RESCHEDULE_COLUMNS.values():
            cursor.execute(
                f"UPDATE bookings SET {columns.state} = ? WHERE id = ? AND {columns.state} = ?",
                (RescheduleState.DECLINED.value, booking_id, RescheduleState.PROPOSED.value),
            )

    def _log_status(
        self,
        cursor,
        booking_id: str,
        old_status: BookingStatus | None,
        new_status: BookingStatus,
        changed_by: str,
        forced: bool = False,
    ) -> None:
        """Log a status change to the audit table."""
        cursor.execute("""
            INSERT INTO booking_status_log (id, booking_id, old_status, new_status, changed_by, forced, changed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            str(uuid.uuid4()), booking_id,
            old_status.value if old_status else None, new_status.value,
            changed_by, int(forced), datetime.now().isoformat()
        ))

    def _row_to_booking(self, row) -> Booking:
        """Convert a database row to a Booking object."""
        return Booking(
            id=row["id"],
            patient_id=row["patient_id"],
            therapist_id=row["therapist_id"],
            session_date=row["session_date"],
            start_time=row["start_time"],
            end_time=row["end_time"],
            amount=row["amount"],
            status=BookingStatus(row["status"]),
            patient_name=row["patient_name"],
            patient_email=row["patient_email"],
            problem_description=row["problem_description"],
            meeting_link=row["meeting_link"],
            session_notes=row["session_notes"],
            next_session_notes=row["next_session_notes"],
            reschedule_state=RescheduleState(row["reschedule_state"]),
            reschedule_new_date=row["reschedule_new_date"],
            reschedule_new_start_time=row["reschedule_new_start_time"],
            reschedule_reason=row["reschedule_reason"],
            therapist_reschedule_state=RescheduleState(row["therapist_reschedule_state"]),
            therapist_reschedule_date=row["therapist_reschedule_date"],
            therapist_reschedule_time=row["therapist_reschedule_time"],
            therapist_reschedule_reason=row["therapist_reschedule_reason"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


def _to_column(value):
    """Store enums by value."""
    return getattr(value, "value", value)
