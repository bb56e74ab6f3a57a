"""First-run demo data used when a store slot has never been written."""
from __future__ import annotations

from typing import List, Tuple

from .models import Doctor, Patient, ToothRecord, Visit

# (id, username, password, display name, role)
DEFAULT_USERS: Tuple[Tuple[str, str, str, str, str], ...] = (
    ("admin-1", "admin", "admin123", "Super Administrator", "super-admin"),
    ("doctor-1", "verkhovskyi", "doctor123", "Oleksandr Verkhovskyi", "doctor"),
    ("doctor-2", "anton", "doctor123", "Anton Yevheniiovych", "doctor"),
    ("receptionist-1", "reception", "reception123", "Clinic Administrator", "administrator"),
)

DEFAULT_SELECTED_DOCTOR = "doctor-1"


def default_doctors() -> List[Doctor]:
    return [
        Doctor(id="doctor-1", name="Dr. Smith", specialty="General Dentistry"),
        Doctor(id="doctor-2", name="Dr. Johnson", specialty="Orthodontics"),
    ]


def default_patients(now: str) -> List[Patient]:
    return [
        Patient(
            id="patient-1",
            first_name="John",
            last_name="Williams",
            phone="+380501234567",
            date_of_birth="1985-03-15",
            doctor_id="doctor-1",
            dental_chart=[
                ToothRecord(tooth_number=3, description="Cavity detected", template_id="cavity", updated_at=now),
                ToothRecord(tooth_number=14, description="Crown placed", template_id="crown", updated_at=now),
            ],
            visits=[
                Visit(id="v1", date="2025-01-15", type="past", notes="Regular checkup", doctor_id="doctor-1"),
                Visit(id="v2", date="2025-02-15", type="future", notes="Follow-up appointment", doctor_id="doctor-1"),
            ],
            created_at=now,
            updated_at=now,
        ),
        Patient(
            id="patient-2",
            first_name="Sarah",
            last_name="Davis",
            phone="+380679876543",
            date_of_birth="1990-07-22",
            doctor_id="doctor-1",
            visits=[
                Visit(id="v3", date="2025-01-20", type="past", notes="Cleaning", doctor_id="doctor-1"),
            ],
            created_at=now,
            updated_at=now,
        ),
    ]
