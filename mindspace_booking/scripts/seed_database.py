"""Seed the database with mock profiles, therapists and bookings.

Run with ``python -m mindspace_booking.scripts.seed_database``.
"""

from datetime import date, timedelta

from rich.console import Console
from rich.table import Table

from mindspace_booking.booking_service import BookingService
from mindspace_booking.config import configure_logging
from mindspace_booking.database import (
    ApprovalStatus,
    ProfileRepository,
    TherapistRecord,
    TherapistRepository,
    init_database,
)
from mindspace_booking.identity import Principal, Role

console = Console()


MOCK_PROFILES = [
    ("admin-001", "admin@mindspace.test", Role.ADMIN, "Site Admin"),
    ("p-001", "john.smith@email.com", Role.PATIENT, "John Smith"),
    ("p-002", "sarah.j@email.com", Role.PATIENT, "Sarah Johnson"),
    ("t-001", "dr.chen@mindspace.test", Role.THERAPIST, "Dr. Emily Chen"),
    ("t-002", "dr.patel@mindspace.test", Role.THERAPIST, "Dr. Raj Patel"),
    ("t-003", "dr.garcia@mindspace.test", Role.THERAPIST, "Dr. Maria Garcia"),
    ("t-004", "dr.okafor@mindspace.test", Role.THERAPIST, "Dr. Ada Okafor"),
]

MOCK_THERAPISTS = [
    TherapistRecord(
        id="t-001",
        name="Dr. Emily Chen",
        email="dr.chen@mindspace.test",
        specialization="Anxiety",
        fee=100,
        bio="CBT-focused therapist working with anxiety and panic disorders.",
        experience=8,
        license="LPC-10234",
        approval_status=ApprovalStatus.APPROVED,
    ),
    TherapistRecord(
        id="t-002",
        name="Dr. Raj Patel",
        email="dr.patel@mindspace.test",
        specialization="Depression",
        fee=120,
        bio="Supports adults through depression and life transitions.",
        experience=12,
        license="LCSW-55812",
        approval_status=ApprovalStatus.APPROVED,
    ),
    TherapistRecord(
        id="t-003",
        name="Dr. Maria Garcia",
        email="dr.garcia@mindspace.test",
        specialization="Couples Therapy",
        fee=150,
        bio="Couples and family counselling.",
        experience=5,
        license="LMFT-77120",
    ),
    TherapistRecord(
        id="t-004",
        name="Dr. Ada Okafor",
        email="dr.okafor@mindspace.test",
        specialization="Trauma",
        fee=130,
        bio="Trauma-informed care and EMDR.",
        experience=10,
        license="PSY-30411",
        active=False,
        approval_status=ApprovalStatus.APPROVED,
    ),
]


def seed_database():
    """Initialize and seed the database with mock data."""
    console.print("[bold blue]Initializing database...[/bold blue]")
    init_database()

    profiles = ProfileRepository()
    therapists = TherapistRepository()
    service = BookingService(profiles, therapists=therapists)

    console.print("Creating mock profiles...")
    for user_id, email, role, full_name in MOCK_PROFILES:
        if profiles.get_profile(user_id):
            console.print(f"  [dim]Skipping {full_name} (already exists)[/dim]")
        else:
            profiles.create_profile(user_id, email, role=role, full_name=full_name)
            console.print(f"  Created {full_name} ({role.value})")

    console.print("Creating mock therapists...")
    for record in MOCK_THERAPISTS:
        if therapists.get_by_id(record.id):
            console.print(f"  [dim]Skipping {record.name} (already exists)[/dim]")
        else:
            therapists.create(record)
            console.print(f"  Created {record.name}")

    console.print("Creating sample bookings...")
    patient = Principal(id="p-001")
    if service.list_bookings(patient):
        console.print("  [dim]Skipping bookings (already exist)[/dim]")
    else:
        next_week = date.today() + timedelta(days=7)
        first = service.create_booking(
            patient, "t-001", next_week, "10:00", "10:50",
            problem_description="Trouble sleeping before exams",
        )
        service.confirm_booking(Principal(id="t-001"), first.id)
        service.create_booking(Principal(id="p-002"), "t-002", next_week + timedelta(days=1), "14:30")
        console.print("  Created 2 bookings")

    table = Table(title="Therapist directory")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Specialization")
    table.add_column("Fee", justify="right")
    table.add_column("Approval")
    table.add_column("Active")
    for record in therapists.find_therapists(visible_only=False):
        table.add_row(
            record.id,
            record.name,
            record.specialization,
            str(record.fee),
            record.approval_status.value,
            "yes" if record.active else "no",
        )

    console.print()
    console.print(table)
    console.print("[bold green]Database seeded successfully![/bold green]")


if __name__ == "__main__":
    configure_logging()
    seed_database()
