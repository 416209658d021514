"""
This module defines the data models for the Hospital Desk application.

The remote store owns every entity; these classes only describe records in
transit. Rows returned by Supabase are decoded into them at the boundary with
`from_row`, which raises `RemoteOperationError` when a row does not have the
expected shape, so untyped data never travels further into the app.

Joined display fields (patient name, doctor name, ...) come from embedded
resources in the select and are optional on every record.
"""
# hospital_desk/hms/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from hms.errors import RemoteOperationError, ValidationError


class Role(str, Enum):
    """The closed set of application roles."""
    DOCTOR = 'doctor'
    PATIENT = 'patient'
    RECEPTIONIST = 'receptionist'
    PHARMACIST = 'pharmacist'
    LABTECH = 'labtech'

    @property
    def label(self) -> str:
        return _ROLE_LABELS[self]

    @property
    def dashboard_path(self) -> str:
        return _ROLE_DASHBOARDS[self]

    @classmethod
    def parse(cls, value) -> 'Role':
        """Resolves a role from its value or its display label.

        Args:
            value: A `Role`, a role value such as 'labtech', or a label such as 'Lab Technician'.

        Returns:
            Role: The matching role.

        Raises:
            ValidationError: If the value is not one of the five recognized roles.
        """
        if isinstance(value, cls):
            return value
        text = str(value or '').strip().lower()
        for role in cls:
            if text == role.value or text == role.label.lower():
                return role
        raise ValidationError(f"Unrecognized role: {value!r}", field='role')

    @classmethod
    def labels(cls) -> list:
        return [role.label for role in cls]


_ROLE_LABELS = {
    Role.DOCTOR: 'Doctor',
    Role.PATIENT: 'Patient',
    Role.RECEPTIONIST: 'Receptionist',
    Role.PHARMACIST: 'Pharmacist',
    Role.LABTECH: 'Lab Technician',
}

_ROLE_DASHBOARDS = {
    Role.DOCTOR: '/doctor/dashboard',
    Role.PATIENT: '/patient/dashboard',
    Role.RECEPTIONIST: '/hospital/dashboard',
    Role.PHARMACIST: '/pharmacy/dashboard',
    Role.LABTECH: '/lab/dashboard',
}


def _check_row(row, entity: str) -> Dict[str, Any]:
    if not isinstance(row, dict):
        raise RemoteOperationError(f"Unexpected {entity} response: {type(row).__name__}", operation=entity)
    return row


def _required(row: Dict[str, Any], key: str, entity: str):
    value = row.get(key)
    if value is None:
        raise RemoteOperationError(f"Malformed {entity} record: missing '{key}'", operation=entity)
    return value


def _optional_str(value) -> Optional[str]:
    if value is None or value == '':
        return None
    return str(value)


def _embedded(row: Dict[str, Any], name: str, key: str) -> Optional[str]:
    """Reads a field from an embedded (joined) resource, if the select asked for it."""
    embedded = row.get(name)
    if isinstance(embedded, list):
        embedded = embedded[0] if embedded else None
    if not isinstance(embedded, dict):
        return None
    return _optional_str(embedded.get(key))


@dataclass(frozen=True)
class Profile:
    """Application identity binding an account to a role.

    Attributes:
        id (str): The profile row id.
        auth_uid (str): The provider account id.
        role (Role): The user's role; never changes after creation.
        full_name (str): Display name.
        email (str): Contact email.
    """
    id: str
    auth_uid: str
    role: Role
    full_name: str
    email: str

    @classmethod
    def from_row(cls, row) -> 'Profile':
        row = _check_row(row, 'profile')
        try:
            role = Role.parse(_required(row, 'role', 'profile'))
        except ValidationError as exc:
            raise RemoteOperationError(f"Malformed profile record: {exc}", operation='profile') from exc
        return cls(
            id=str(_required(row, 'id', 'profile')),
            auth_uid=str(_required(row, 'auth_uid', 'profile')),
            role=role,
            full_name=row.get('full_name') or '',
            email=row.get('email') or '',
        )


@dataclass(frozen=True)
class Patient:
    id: str
    display_name: str
    phone: Optional[str] = None
    dob: Optional[str] = None
    gender: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> 'Patient':
        row = _check_row(row, 'patient')
        return cls(
            id=str(_required(row, 'id', 'patient')),
            display_name=str(_required(row, 'display_name', 'patient')),
            phone=_optional_str(row.get('phone')),
            dob=_optional_str(row.get('dob')),
            gender=_optional_str(row.get('gender')),
            created_at=_optional_str(row.get('created_at')),
        )


@dataclass(frozen=True)
class Appointment:
    """A scheduled visit. Status transitions happen remotely; the app only reads and creates."""
    id: str
    patient_id: str
    doctor_profile_id: str
    scheduled_at: str
    status: str
    problem_summary: Optional[str] = None
    receptionist_profile_id: Optional[str] = None
    created_at: Optional[str] = None
    patient_name: Optional[str] = None
    patient_phone: Optional[str] = None
    patient_gender: Optional[str] = None
    patient_dob: Optional[str] = None
    doctor_name: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> 'Appointment':
        row = _check_row(row, 'appointment')
        return cls(
            id=str(_required(row, 'id', 'appointment')),
            patient_id=str(_required(row, 'patient_id', 'appointment')),
            doctor_profile_id=str(_required(row, 'doctor_profile_id', 'appointment')),
            scheduled_at=str(_required(row, 'scheduled_at', 'appointment')),
            status=str(_required(row, 'status', 'appointment')),
            problem_summary=_optional_str(row.get('problem_summary')),
            receptionist_profile_id=_optional_str(row.get('receptionist_profile_id')),
            created_at=_optional_str(row.get('created_at')),
            patient_name=_embedded(row, 'patients', 'display_name'),
            patient_phone=_embedded(row, 'patients', 'phone'),
            patient_gender=_embedded(row, 'patients', 'gender'),
            patient_dob=_embedded(row, 'patients', 'dob'),
            doctor_name=_embedded(row, 'profiles', 'full_name'),
        )


@dataclass(frozen=True)
class LabRequest:
    id: str
    patient_id: str
    requested_by: str
    tests: FrozenSet[str]
    status: str
    appointment_id: Optional[str] = None
    created_at: Optional[str] = None
    patient_name: Optional[str] = None
    patient_phone: Optional[str] = None
    requested_by_name: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> 'LabRequest':
        row = _check_row(row, 'lab request')
        tests = _required(row, 'tests', 'lab request')
        if not isinstance(tests, (list, tuple, set, frozenset)):
            raise RemoteOperationError("Malformed lab request record: 'tests' is not a list", operation='lab request')
        return cls(
            id=str(_required(row, 'id', 'lab request')),
            patient_id=str(_required(row, 'patient_id', 'lab request')),
            requested_by=str(_required(row, 'requested_by', 'lab request')),
            tests=frozenset(str(test) for test in tests),
            status=str(_required(row, 'status', 'lab request')),
            appointment_id=_optional_str(row.get('appointment_id')),
            created_at=_optional_str(row.get('created_at')),
            patient_name=_embedded(row, 'patients', 'display_name'),
            patient_phone=_embedded(row, 'patients', 'phone'),
            requested_by_name=_embedded(row, 'profiles', 'full_name'),
        )


@dataclass(frozen=True)
class Medication:
    """A regular medication. `end_date` of None means the course is ongoing."""
    id: str
    patient_id: str
    prescribed_by: str
    name: str
    dose: Optional[str] = None
    frequency: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None
    prescribed_by_name: Optional[str] = None

    @property
    def is_ongoing(self) -> bool:
        return self.end_date is None

    @classmethod
    def from_row(cls, row) -> 'Medication':
        row = _check_row(row, 'medication')
        return cls(
            id=str(_required(row, 'id', 'medication')),
            patient_id=str(_required(row, 'patient_id', 'medication')),
            prescribed_by=str(_required(row, 'prescribed_by', 'medication')),
            name=str(_required(row, 'name', 'medication')),
            dose=_optional_str(row.get('dose')),
            frequency=_optional_str(row.get('frequency')),
            start_date=_optional_str(row.get('start_date')),
            end_date=_optional_str(row.get('end_date')),
            notes=_optional_str(row.get('notes')),
            created_at=_optional_str(row.get('created_at')),
            prescribed_by_name=_embedded(row, 'profiles', 'full_name'),
        )


@dataclass(frozen=True)
class Allergy:
    id: str
    patient_id: str
    allergen: str
    added_by: str
    reaction: Optional[str] = None
    severity: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> 'Allergy':
        row = _check_row(row, 'allergy')
        return cls(
            id=str(_required(row, 'id', 'allergy')),
            patient_id=str(_required(row, 'patient_id', 'allergy')),
            allergen=str(_required(row, 'allergen', 'allergy')),
            added_by=str(_required(row, 'added_by', 'allergy')),
            reaction=_optional_str(row.get('reaction')),
            severity=_optional_str(row.get('severity')),
            created_at=_optional_str(row.get('created_at')),
        )


@dataclass(frozen=True)
class Prescription:
    """A doctor's prescription. `content` is stored as given (text or a JSON object)."""
    id: str
    patient_id: str
    doctor_profile_id: str
    content: Any
    appointment_id: Optional[str] = None
    created_at: Optional[str] = None
    patient_name: Optional[str] = None
    patient_phone: Optional[str] = None
    doctor_name: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> 'Prescription':
        row = _check_row(row, 'prescription')
        return cls(
            id=str(_required(row, 'id', 'prescription')),
            patient_id=str(_required(row, 'patient_id', 'prescription')),
            doctor_profile_id=str(_required(row, 'doctor_profile_id', 'prescription')),
            content=_required(row, 'content', 'prescription'),
            appointment_id=_optional_str(row.get('appointment_id')),
            created_at=_optional_str(row.get('created_at')),
            patient_name=_embedded(row, 'patients', 'display_name'),
            patient_phone=_embedded(row, 'patients', 'phone'),
            doctor_name=_embedded(row, 'profiles', 'full_name'),
        )


@dataclass(frozen=True)
class StoredObject:
    """An uploaded file.

    Attributes:
        bucket (str): The storage bucket name.
        path (str): The object key inside the bucket.
        public_url (str): A URL the UI can link to.
    """
    bucket: str
    path: str
    public_url: Optional[str] = field(default=None)
