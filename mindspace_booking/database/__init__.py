from .connection import get_connection, init_database
from .booking_repository import Booking, BookingRepository
from .profile_repository import ProfileRepository
from .therapist_repository import ApprovalStatus, TherapistRecord, TherapistRepository

__all__ = [
    "get_connection",
    "init_database",
    "ApprovalStatus",
    "Booking",
    "BookingRepository",
    "ProfileRepository",
    "TherapistRecord",
    "TherapistRepository",
]
