"""Doctors, patients and their charts, visits and change history."""
from __future__ import annotations

import base64
import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from .models import (
    GENDERS,
    HISTORY_ACTIONS,
    HISTORY_TARGETS,
    TOOTH_NUMBERS,
    VISIT_TYPES,
    ChangeHistoryEntry,
    Doctor,
    DoctorUpdate,
    FileAttachment,
    Patient,
    PatientUpdate,
    ToothRecord,
    ToothUpdate,
    Visit,
    VisitUpdate,
    find_template,
    new_id,
    utc_now,
)
from .phones import format_phone_for_save
from .seed import DEFAULT_SELECTED_DOCTOR, default_doctors, default_patients
from .storage import KeyValueStore, PersistentSlot

logger = logging.getLogger(__name__)

CLINIC_NAME_KEY = "clinic_name"
DOCTORS_KEY = "doctors"
PATIENTS_KEY = "patients"
SELECTED_DOCTOR_KEY = "selected_doctor"
SELECTED_PATIENT_KEY = "selected_patient"

ALL_DOCTORS = "all"


def _check_choice(value: Optional[str], choices, label: str, *, optional: bool = False) -> None:
    if value is None and optional:
        return
    if value not in choices:
        raise ValueError(f"Unknown {label}: {value!r}")


def _check_tooth(tooth_number: int) -> None:
    if isinstance(tooth_number, bool) or not isinstance(tooth_number, int) or tooth_number not in TOOTH_NUMBERS:
        raise ValueError(f"Tooth number must be between 1 and 32, got {tooth_number!r}")


def describe_patient_changes(before: Patient, after: Patient) -> List[str]:
    """Summarise demographic edits as ``"Field: old -> new"`` lines."""
    changes: List[str] = []
    if before.first_name != after.first_name:
        changes.append(f"First name: {before.first_name} -> {after.first_name}")
    if before.last_name != after.last_name:
        changes.append(f"Last name: {before.last_name} -> {after.last_name}")
    if (before.middle_name or "") != (after.middle_name or ""):
        changes.append(f"Middle name: {before.middle_name or '-'} -> {after.middle_name or '-'}")
    if before.phone != after.phone:
        changes.append(f"Phone: {before.phone} -> {after.phone}")
    if before.date_of_birth != after.date_of_birth:
        changes.append("Date of birth changed")
    if before.doctor_id != after.doctor_id:
        changes.append("Doctor changed")
    if (before.gender or "") != (after.gender or ""):
        changes.append(f"Gender: {before.gender or '-'} -> {after.gender or '-'}")
    return changes


class ClinicStore:
    """In-memory clinic state mirrored into the key-value store.

    Lookups by an unknown id are silent no-ops. Doctor references on patients
    and visits are never checked against the doctor list. Patient mutations do
    not write change history; callers that want an audit trail call
    :meth:`add_history_entry` themselves.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        default_clinic_name: str = "DentalCare Clinic",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.clock = clock
        self._clinic_name: PersistentSlot[str] = PersistentSlot(store, CLINIC_NAME_KEY, default_clinic_name)
        self._clinic_name.ensure_persisted()
        self._doctors: PersistentSlot[List[Doctor]] = PersistentSlot(
            store,
            DOCTORS_KEY,
            [],
            decode=lambda raw: [Doctor.from_dict(item) for item in raw],
            encode=lambda doctors: [doctor.to_dict() for doctor in doctors],
        )
        self._doctors.seed(default_doctors())
        self._patients: PersistentSlot[List[Patient]] = PersistentSlot(
            store,
            PATIENTS_KEY,
            [],
            decode=lambda raw: [Patient.from_dict(item) for item in raw],
            encode=lambda patients: [patient.to_dict() for patient in patients],
        )
        self._patients.seed(default_patients(self._now()))
        self._selected_doctor: PersistentSlot[Optional[str]] = PersistentSlot(
            store, SELECTED_DOCTOR_KEY, DEFAULT_SELECTED_DOCTOR
        )
        self._selected_patient: PersistentSlot[Optional[str]] = PersistentSlot(
            store, SELECTED_PATIENT_KEY, None
        )
        selected = self._selected_patient.value
        if selected is not None and self._patients.loaded and self.get_patient(selected) is None:
            logger.warning("Clearing selection of missing patient %r", selected)
            self._selected_patient.set(None)

    def _now(self) -> str:
        return self.clock().isoformat()

    # ------------------------------------------------------------------
    # State accessors

    @property
    def clinic_name(self) -> str:
        return self._clinic_name.value

    def set_clinic_name(self, name: str) -> None:
        self._clinic_name.set(name)

    @property
    def doctors(self) -> List[Doctor]:
        return list(self._doctors.value)

    @property
    def patients(self) -> List[Patient]:
        return list(self._patients.value)

    @property
    def selected_doctor_id(self) -> Optional[str]:
        return self._selected_doctor.value

    @property
    def selected_patient_id(self) -> Optional[str]:
        return self._selected_patient.value

    def set_selected_doctor_id(self, doctor_id: Optional[str]) -> None:
        self._selected_doctor.set(doctor_id)

    def set_selected_patient_id(self, patient_id: Optional[str]) -> None:
        if patient_id is not None and self.get_patient(patient_id) is None:
            logger.warning("Ignoring selection of unknown patient %r", patient_id)
            return
        self._selected_patient.set(patient_id)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "patients": [patient.to_dict() for patient in self._patients.value],
            "doctors": [doctor.to_dict() for doctor in self._doctors.value],
        }

    # ------------------------------------------------------------------
    # Patients

    def get_patient(self, patient_id: str) -> Optional[Patient]:
        for patient in self._patients.value:
            if patient.id == patient_id:
                return patient
        return None

    def _modify_patient(
        self, patient_id: str, build: Callable[[Patient, str], Optional[Patient]]
    ) -> Optional[Patient]:
        """Swap in ``build(patient, now)`` for one patient and persist.

        ``build`` may return None to leave the patient untouched.
        """
        now = self._now()
        updated: Optional[Patient] = None
        patients: List[Patient] = []
        for patient in self._patients.value:
            if patient.id == patient_id and updated is None:
                rebuilt = build(patient, now)
                if rebuilt is not None:
                    updated = rebuilt
                    patient = rebuilt
            patients.append(patient)
        if updated is not None:
            self._patients.set(patients)
        return updated

    def add_patient(
        self,
        first_name: str,
        last_name: str,
        phone: str,
        doctor_id: str,
        *,
        middle_name: Optional[str] = None,
        gender: Optional[str] = None,
        date_of_birth: Optional[str] = None,
    ) -> Patient:
        _check_choice(gender, GENDERS, "gender", optional=True)
        now = self._now()
        patient = Patient(
            id=new_id("patient"),
            first_name=first_name,
            last_name=last_name,
            middle_name=middle_name,
            gender=gender,
            phone=format_phone_for_save(phone),
            date_of_birth=date_of_birth,
            doctor_id=doctor_id,
            created_at=now,
            updated_at=now,
        )
        self._patients.set(self._patients.value + [patient])
        return patient

    def update_patient(self, patient_id: str, updates: PatientUpdate) -> Optional[Patient]:
        changes = updates.changes()
        if "gender" in changes:
            _check_choice(changes["gender"], GENDERS, "gender", optional=True)
        if "phone" in changes:
            changes["phone"] = format_phone_for_save(changes["phone"])
        return self._modify_patient(
            patient_id, lambda patient, now: replace(patient, **changes, updated_at=now)
        )

    def delete_patient(self, patient_id: str) -> None:
        remaining = [patient for patient in self._patients.value if patient.id != patient_id]
        if len(remaining) != len(self._patients.value):
            self._patients.set(remaining)
        if self._selected_patient.value == patient_id:
            self._selected_patient.set(None)

    def get_patients_by_doctor(self, doctor_id: str) -> List[Patient]:
        return [patient for patient in self._patients.value if patient.doctor_id == doctor_id]

    def search_patients(self, query: str, doctor_id: str) -> List[Patient]:
        """Match ``query`` against "first last" (any case) or a visit's raw date."""
        lower_query = query.lower()
        results = []
        for patient in self.get_patients_by_doctor(doctor_id):
            full_name = f"{patient.first_name} {patient.last_name}".lower()
            if lower_query in full_name or any(query in visit.date for visit in patient.visits):
                results.append(patient)
        return results

    # ------------------------------------------------------------------
    # Tooth chart

    def tooth_record(self, patient_id: str, tooth_number: int) -> Optional[ToothRecord]:
        patient = self.get_patient(patient_id)
        if patient is None:
            return None
        for record in patient.dental_chart:
            if record.tooth_number == tooth_number:
                return record
        return None

    def update_tooth_record(
        self, patient_id: str, tooth_number: int, updates: ToothUpdate
    ) -> Optional[ToothRecord]:
        """Merge into the tooth's record, creating it on first edit."""
        _check_tooth(tooth_number)
        changes = updates.changes()
        if "files" in changes:
            changes["files"] = list(changes["files"])
        result: List[ToothRecord] = []

        def build(patient: Patient, now: str) -> Patient:
            chart: List[ToothRecord] = []
            for record in patient.dental_chart:
                if record.tooth_number == tooth_number and not result:
                    record = replace(record, **changes, updated_at=now)
                    result.append(record)
                chart.append(record)
            if not result:
                record = ToothRecord(tooth_number=tooth_number, **changes, updated_at=now)
                result.append(record)
                chart.append(record)
            return replace(patient, dental_chart=chart, updated_at=now)

        if self._modify_patient(patient_id, build) is None:
            return None
        return result[0]

    def clear_tooth_record(self, patient_id: str, tooth_number: int) -> Optional[ToothRecord]:
        return self.update_tooth_record(
            patient_id,
            tooth_number,
            ToothUpdate(description="", template_id="", notes="", files=[]),
        )

    def apply_template(self, patient_id: str, tooth_number: int, template_id: str) -> Optional[ToothRecord]:
        template = find_template(template_id)
        if template is None:
            raise ValueError(f"Unknown dental template: {template_id!r}")
        return self.update_tooth_record(
            patient_id,
            tooth_number,
            ToothUpdate(template_id=template.id, description=template.description),
        )

    def attach_file(
        self,
        patient_id: str,
        tooth_number: int,
        name: str,
        mime_type: str,
        content: bytes,
    ) -> Optional[FileAttachment]:
        """Store ``content`` inline as a base64 data URL on the tooth record."""
        _check_tooth(tooth_number)
        if self.get_patient(patient_id) is None:
            return None
        encoded = base64.b64encode(content).decode("ascii")
        attachment = FileAttachment(
            id=new_id("file"),
            name=name,
            mime_type=mime_type,
            data=f"data:{mime_type};base64,{encoded}",
            uploaded_at=self._now(),
        )
        record = self.tooth_record(patient_id, tooth_number)
        files = (list(record.files) if record else []) + [attachment]
        self.update_tooth_record(patient_id, tooth_number, ToothUpdate(files=files))
        return attachment

    def remove_file(self, patient_id: str, tooth_number: int, file_id: str) -> None:
        record = self.tooth_record(patient_id, tooth_number)
        if record is None:
            return
        files = [item for item in record.files if item.id != file_id]
        if len(files) != len(record.files):
            self.update_tooth_record(patient_id, tooth_number, ToothUpdate(files=files))

    # ------------------------------------------------------------------
    # Visits

    def add_visit(
        self,
        patient_id: str,
        date: str,
        visit_type: str,
        notes: str = "",
        doctor_id: str = "",
    ) -> Optional[Visit]:
        # visit_type is chosen by the user and never derived from the date
        _check_choice(visit_type, VISIT_TYPES, "visit type")
        visit = Visit(id=new_id("visit"), date=date, type=visit_type, notes=notes, doctor_id=doctor_id)
        updated = self._modify_patient(
            patient_id,
            lambda patient, now: replace(patient, visits=patient.visits + [visit], updated_at=now),
        )
        return visit if updated is not None else None

    def update_visit(self, patient_id: str, visit_id: str, updates: VisitUpdate) -> Optional[Visit]:
        changes = updates.changes()
        if "type" in changes:
            _check_choice(changes["type"], VISIT_TYPES, "visit type")
        result: List[Visit] = []

        def build(patient: Patient, now: str) -> Optional[Patient]:
            visits: List[Visit] = []
            for visit in patient.visits:
                if visit.id == visit_id:
                    visit = replace(visit, **changes)
                    result.append(visit)
                visits.append(visit)
            if not result:
                return None
            return replace(patient, visits=visits, updated_at=now)

        self._modify_patient(patient_id, build)
        return result[0] if result else None

    def delete_visit(self, patient_id: str, visit_id: str) -> None:
        def build(patient: Patient, now: str) -> Optional[Patient]:
            visits = [visit for visit in patient.visits if visit.id != visit_id]
            if len(visits) == len(patient.visits):
                return None
            return replace(patient, visits=visits, updated_at=now)

        self._modify_patient(patient_id, build)

    def visits_by_type(self, patient_id: str) -> Tuple[List[Visit], List[Visit]]:
        """Return ``(past, future)`` visits, each newest date first."""
        patient = self.get_patient(patient_id)
        if patient is None:
            return [], []
        ordered = sorted(patient.visits, key=lambda visit: visit.date, reverse=True)
        past = [visit for visit in ordered if visit.type == "past"]
        future = [visit for visit in ordered if visit.type == "future"]
        return past, future

    # ------------------------------------------------------------------
    # Change history

    def add_history_entry(
        self,
        patient_id: str,
        *,
        user_id: str,
        user_name: str,
        action: str,
        target: str,
        details: str = "",
    ) -> Optional[ChangeHistoryEntry]:
        _check_choice(action, HISTORY_ACTIONS, "history action")
        _check_choice(target, HISTORY_TARGETS, "history target")
        entry = ChangeHistoryEntry(
            id=new_id("history"),
            timestamp=self._now(),
            user_id=user_id,
            user_name=user_name,
            action=action,
            target=target,
            details=details,
        )
        updated = self._modify_patient(
            patient_id,
            lambda patient, now: replace(
                patient, change_history=patient.change_history + [entry], updated_at=now
            ),
        )
        return entry if updated is not None else None

    def history_for(self, patient_id: str) -> List[ChangeHistoryEntry]:
        patient = self.get_patient(patient_id)
        if patient is None:
            return []
        return sorted(patient.change_history, key=lambda entry: entry.timestamp, reverse=True)

    # ------------------------------------------------------------------
    # Doctors

    def get_doctor(self, doctor_id: str) -> Optional[Doctor]:
        for doctor in self._doctors.value:
            if doctor.id == doctor_id:
                return doctor
        return None

    def add_doctor(self, name: str, specialty: str = "") -> Doctor:
        doctor = Doctor(id=new_id("doctor"), name=name, specialty=specialty)
        self._doctors.set(self._doctors.value + [doctor])
        return doctor

    def update_doctor(self, doctor_id: str, updates: DoctorUpdate) -> Optional[Doctor]:
        doctor = self.get_doctor(doctor_id)
        if doctor is None:
            return None
        updated = replace(doctor, **updates.changes())
        self._doctors.set([updated if item.id == doctor_id else item for item in self._doctors.value])
        return updated

    def delete_doctor(self, doctor_id: str) -> None:
        # patients keep their doctor_id
        remaining = [doctor for doctor in self._doctors.value if doctor.id != doctor_id]
        if len(remaining) != len(self._doctors.value):
            self._doctors.set(remaining)
