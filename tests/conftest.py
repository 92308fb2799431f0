"""Shared pytest fixtures."""

from datetime import date, timedelta

import pytest

from mindspace_booking.booking_service import BookingService
from mindspace_booking.database import (
    ApprovalStatus,
    ProfileRepository,
    TherapistRecord,
    TherapistRepository,
    connection,
    init_database,
)
from mindspace_booking.directory import TherapistDirectory
from mindspace_booking.identity import Principal, Role


@pytest.fixture(autouse=True)
def temp_database(tmp_path, monkeypatch):
    """Point every repository at a fresh database file."""
    monkeypatch.setattr(connection, "DB_PATH", tmp_path / "mindspace_test.db")
    init_database()
    yield


@pytest.fixture
def profiles():
    return ProfileRepository()


@pytest.fixture
def therapist_repo():
    return TherapistRepository()


@pytest.fixture
def accounts(profiles, therapist_repo):
    """Profiles for every role plus two approved therapists (fees 100 and 80)."""
    profiles.create_profile("admin-1", "admin@mindspace.test", role=Role.ADMIN, full_name="Ada Admin")
    profiles.create_profile("patient-1", "pat@email.com", full_name="Pat Patient")
    profiles.create_profile("patient-2", "other@email.com", full_name="Olive Other")
    profiles.create_profile("therapist-1", "dr.test@mindspace.test", role=Role.THERAPIST, full_name="Dr. Test")
    profiles.create_profile("therapist-2", "dr.two@mindspace.test", role=Role.THERAPIST, full_name="Dr. Two")

    therapist_repo.create(TherapistRecord(
        id="therapist-1",
        name="Dr. Test",
        email="dr.test@mindspace.test",
        specialization="Anxiety",
        fee=100,
        bio="Cognitive behavioural therapy for anxiety.",
        experience=6,
        approval_status=ApprovalStatus.APPROVED,
    ))
    therapist_repo.create(TherapistRecord(
        id="therapist-2",
        name="Dr. Two",
        email="dr.two@mindspace.test",
        specialization="Depression",
        fee=80,
        approval_status=ApprovalStatus.APPROVED,
    ))
    yield


@pytest.fixture
def patient(accounts):
    return Principal(id="patient-1")


@pytest.fixture
def other_patient(accounts):
    return Principal(id="patient-2")


@pytest.fixture
def therapist(accounts):
    return Principal(id="therapist-1")


@pytest.fixture
def other_therapist(accounts):
    return Principal(id="therapist-2")


@pytest.fixture
def admin(accounts):
    return Principal(id="admin-1")


@pytest.fixture
def service(profiles):
    return BookingService(profiles)


@pytest.fixture
def directory(profiles):
    return TherapistDirectory(profiles)


@pytest.fixture
def future_date():
    return date.today() + timedelta(days=7)


@pytest.fixture
def booking(service, patient, future_date):
    """A pending booking between patient-1 and therapist-1."""
    return service.create_booking(
        patient, "therapist-1", future_date, "10:00", "10:50",
        problem_description="Panic attacks at work",
    )


@pytest.fixture
def confirmed_booking(service, therapist, booking):
    return service.confirm_booking(therapist, booking.id)
