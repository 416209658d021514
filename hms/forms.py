"""
This module holds the form and modal state used by the dashboards.

Streamlit reruns the page script on every interaction, so anything a page needs
to remember lives in `st.session_state`. The classes here are the values kept
there: small immutable objects whose transitions return new objects, so a
modal can never be "submitting" without a selection or "closed" with one.
"""
# hospital_desk/hms/forms.py

from __future__ import annotations

import datetime
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import FrozenSet, Iterable, List, Optional, Tuple

from hms.errors import ValidationError


@dataclass(frozen=True)
class LabAction:
    id: str
    label: str
    options: Tuple[str, ...]


LAB_ACTIONS = (
    LabAction('blood_test', 'Request Blood Test', ('CBC', 'Blood Sugar', 'Lipid Profile', 'Liver Function')),
    LabAction('radiology', 'Request Radiology', ('X-Ray', 'Ultrasound', 'CT Scan', 'MRI')),
)


def get_lab_action(action_id: str) -> LabAction:
    for action in LAB_ACTIONS:
        if action.id == action_id:
            return action
    raise ValueError(f"Unknown lab action: {action_id}")


@dataclass(frozen=True)
class LabTestSelection:
    """The set of tests picked in the lab request modal."""
    tests: FrozenSet[str] = field(default_factory=frozenset)

    def toggle(self, test: str) -> 'LabTestSelection':
        """Adds the test if absent, removes it if present. Toggling twice is a no-op."""
        if test in self.tests:
            return LabTestSelection(self.tests - {test})
        return LabTestSelection(self.tests | {test})

    def __contains__(self, test) -> bool:
        return test in self.tests

    def __len__(self) -> int:
        return len(self.tests)

    def ordered(self, options: Iterable[str]) -> List[str]:
        """Returns the selected tests in the order the modal lists them."""
        return [option for option in options if option in self.tests]


class ModalStatus(str, Enum):
    CLOSED = 'closed'
    OPEN = 'open'
    SUBMITTING = 'submitting'


@dataclass(frozen=True)
class ModalState:
    """Finite state of the lab request modal.

    Attributes:
        status (ModalStatus): closed, open or submitting.
        action_id (str): The open action; None when closed.
        selection (LabTestSelection): The picked tests; empty when closed.
    """
    status: ModalStatus = ModalStatus.CLOSED
    action_id: Optional[str] = None
    selection: LabTestSelection = field(default_factory=LabTestSelection)

    @classmethod
    def closed(cls) -> 'ModalState':
        return cls()

    def open(self, action_id: str) -> 'ModalState':
        if self.status is ModalStatus.SUBMITTING:
            raise ValueError("Cannot open a modal while a request is being submitted")
        get_lab_action(action_id)
        return ModalState(ModalStatus.OPEN, action_id, LabTestSelection())

    def toggle(self, test: str) -> 'ModalState':
        if self.status is not ModalStatus.OPEN:
            raise ValueError("Tests can only be changed while the modal is open")
        if test not in get_lab_action(self.action_id).options:
            raise ValueError(f"{test!r} is not offered by {self.action_id}")
        return replace(self, selection=self.selection.toggle(test))

    def submit(self) -> 'ModalState':
        if self.status is not ModalStatus.OPEN:
            raise ValueError("Only an open modal can be submitted")
        if not len(self.selection):
            raise ValidationError("Select at least one test", field='tests')
        return replace(self, status=ModalStatus.SUBMITTING)

    def close(self) -> 'ModalState':
        return ModalState.closed()

    @property
    def selected_tests(self) -> List[str]:
        if self.action_id is None:
            return []
        return self.selection.ordered(get_lab_action(self.action_id).options)


@dataclass
class MedicationForm:
    """Input from the "Add Medication" modal."""
    name: str = ''
    dose: str = ''
    frequency: str = ''
    start_date: Optional[datetime.date] = None
    end_date: Optional[datetime.date] = None
    notes: str = ''

    def validate(self):
        for name in ('name', 'dose', 'frequency'):
            if not getattr(self, name).strip():
                raise ValidationError(f"Medication {name} is required", field=name)
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValidationError("End date cannot be before the start date", field='end_date')

    def to_fields(self, patient_id: str, prescribed_by: str) -> dict:
        """Returns keyword arguments for `HospitalRecords.add_medication`."""
        self.validate()
        start = self.start_date or datetime.date.today()
        return {
            'patient_id': patient_id,
            'prescribed_by': prescribed_by,
            'name': self.name.strip(),
            'dose': self.dose.strip(),
            'frequency': self.frequency.strip(),
            'start_date': start.isoformat(),
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'notes': self.notes.strip() or None,
        }


@dataclass
class PatientRegistrationForm:
    display_name: str = ''
    phone: str = ''
    dob: Optional[datetime.date] = None
    gender: str = 'Male'
    problem_description: str = ''
    doctor_profile_id: Optional[str] = None

    def validate(self):
        if not self.display_name.strip():
            raise ValidationError("Patient name is required", field='display_name')
        if self.doctor_profile_id and not self.problem_description.strip():
            raise ValidationError("Describe the problem to book an appointment", field='problem_description')


def register_patient(records, form: PatientRegistrationForm, receptionist=None, now=None):
    """Registers a patient and, when a doctor is assigned, books an appointment.

    Args:
        records (HospitalRecords): The records facade.
        form (PatientRegistrationForm): The submitted form.
        receptionist (Profile, optional): The staff member registering the patient.
        now (datetime.datetime, optional): Appointment time; defaults to the current UTC time.

    Returns:
        tuple: The created `Patient` and the created `Appointment` or None.
    """
    form.validate()
    patient = records.create_patient(
        display_name=form.display_name.strip(),
        phone=form.phone.strip() or None,
        dob=form.dob.isoformat() if form.dob else None,
        gender=form.gender or None,
    )
    appointment = None
    if form.doctor_profile_id:
        scheduled_at = (now or datetime.datetime.now(datetime.timezone.utc)).isoformat()
        appointment = records.create_appointment(
            patient_id=patient.id,
            doctor_profile_id=form.doctor_profile_id,
            scheduled_at=scheduled_at,
            problem_summary=form.problem_description.strip(),
            receptionist_profile_id=receptionist.id if receptionist else None,
        )
    return patient, appointment


def search_patients(patients, term: str) -> list:
    """Filters patients whose name or id contains `term`, ignoring case."""
    term = (term or '').strip().lower()
    if not term:
        return list(patients)
    return [p for p in patients if term in p.display_name.lower() or term in p.id.lower()]


def medication_period(medication) -> str:
    start = medication.start_date or 'Unknown'
    return f"{start} - {medication.end_date}" if medication.end_date else f"{start} - Ongoing"
