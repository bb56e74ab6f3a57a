"""Domain records kept by the clinic stores.

Every record is a frozen dataclass. Stores never mutate a record in place:
an edit builds a replacement with :func:`dataclasses.replace` and swaps it
into the owning list, so a record handed out to a caller stays stable.

``to_dict``/``from_dict`` convert to and from the JSON shape persisted in the
key-value store. ``from_dict`` is tolerant: missing keys take the dataclass
default and unknown keys are dropped.
"""
from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

ROLES = ("super-admin", "doctor", "administrator")
VISIT_TYPES = ("past", "future")
GENDERS = ("male", "female")
HISTORY_ACTIONS = ("create", "edit", "delete")
HISTORY_TARGETS = ("patient", "tooth", "visit")

# Universal Numbering System, adult dentition.
UPPER_TEETH = list(range(1, 17))
LOWER_TEETH = list(range(32, 16, -1))
TOOTH_NUMBERS = range(1, 33)


@dataclass(frozen=True)
class DentalTemplate:
    id: str
    label: str
    description: str


DENTAL_TEMPLATES: Tuple[DentalTemplate, ...] = (
    DentalTemplate("cavity", "Cavity", "Cavity requiring treatment"),
    DentalTemplate("filling", "Filling", "Existing or required filling"),
    DentalTemplate("crown", "Crown", "Crown placed or required"),
    DentalTemplate("root-canal", "Root canal", "Endodontic treatment"),
    DentalTemplate("extraction", "Extraction", "Extraction performed or planned"),
    DentalTemplate("implant", "Implant", "Dental implant"),
    DentalTemplate("bridge", "Bridge", "Dental bridge"),
    DentalTemplate("periodontal", "Periodontal", "Gum disease or treatment"),
    DentalTemplate("sensitivity", "Sensitivity", "Increased tooth sensitivity"),
    DentalTemplate("fracture", "Fracture", "Cracked or chipped tooth"),
    DentalTemplate("missing", "Missing", "Missing tooth"),
    DentalTemplate("healthy", "Healthy", "No problems found"),
)


def find_template(template_id: str) -> Optional[DentalTemplate]:
    for template in DENTAL_TEMPLATES:
        if template.id == template_id:
            return template
    return None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


def _known_fields(cls, data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {key: value for key, value in (data or {}).items() if key in names}


class _Record:
    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)  # type: ignore[call-overload]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        return cls(**_known_fields(cls, data))


@dataclass(frozen=True)
class User(_Record):
    id: str
    username: str
    password_hash: str
    name: str
    role: str
    created_at: str = ""


@dataclass(frozen=True)
class Doctor(_Record):
    id: str
    name: str
    specialty: str = ""


@dataclass(frozen=True)
class FileAttachment(_Record):
    id: str
    name: str
    mime_type: str
    data: str
    uploaded_at: str = ""


@dataclass(frozen=True)
class ToothRecord(_Record):
    tooth_number: int
    description: str = ""
    template_id: str = ""
    notes: str = ""
    files: List[FileAttachment] = field(default_factory=list)
    updated_at: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToothRecord":
        values = _known_fields(cls, data)
        values["files"] = [FileAttachment.from_dict(item) for item in values.get("files", [])]
        return cls(**values)


@dataclass(frozen=True)
class Visit(_Record):
    id: str
    date: str
    type: str
    notes: str = ""
    doctor_id: str = ""


@dataclass(frozen=True)
class ChangeHistoryEntry(_Record):
    id: str
    timestamp: str
    user_id: str
    user_name: str
    action: str
    target: str
    details: str = ""


@dataclass(frozen=True)
class Patient(_Record):
    id: str
    first_name: str
    last_name: str
    phone: str = ""
    doctor_id: str = ""
    middle_name: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[str] = None
    dental_chart: List[ToothRecord] = field(default_factory=list)
    visits: List[Visit] = field(default_factory=list)
    change_history: List[ChangeHistoryEntry] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Patient":
        values = _known_fields(cls, data)
        values["dental_chart"] = [ToothRecord.from_dict(item) for item in values.get("dental_chart", [])]
        values["visits"] = [Visit.from_dict(item) for item in values.get("visits", [])]
        values["change_history"] = [
            ChangeHistoryEntry.from_dict(item) for item in values.get("change_history", [])
        ]
        return cls(**values)


# ----------------------------------------------------------------------
# Partial updates


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


class _PartialUpdate:
    def changes(self) -> Dict[str, Any]:
        """Return only the fields the caller actually set."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)  # type: ignore[arg-type]
            if getattr(self, f.name) is not UNSET
        }


@dataclass(frozen=True)
class PatientUpdate(_PartialUpdate):
    first_name: str = UNSET
    last_name: str = UNSET
    middle_name: Optional[str] = UNSET
    gender: Optional[str] = UNSET
    phone: str = UNSET
    date_of_birth: Optional[str] = UNSET
    doctor_id: str = UNSET


@dataclass(frozen=True)
class ToothUpdate(_PartialUpdate):
    description: str = UNSET
    template_id: str = UNSET
    notes: str = UNSET
    files: List[FileAttachment] = UNSET


@dataclass(frozen=True)
class VisitUpdate(_PartialUpdate):
    date: str = UNSET
    type: str = UNSET
    notes: str = UNSET
    doctor_id: str = UNSET


@dataclass(frozen=True)
class DoctorUpdate(_PartialUpdate):
    name: str = UNSET
    specialty: str = UNSET


@dataclass(frozen=True)
class UserUpdate(_PartialUpdate):
    username: str = UNSET
    password: str = UNSET
    name: str = UNSET
    role: str = UNSET
