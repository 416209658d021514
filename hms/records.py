"""
This module provides the records facade for the Hospital Desk application.

It defines the `HospitalRecords` class, which wraps every domain query and
mutation the dashboards need:
- Patients, appointments, lab requests, prescriptions, medications and allergies.
- Doctor and staff profile listings for assignment pickers.
- Uploads of lab reports and prescription documents to Supabase storage.

Each operation checks that required fields are present, issues one remote
request, and decodes the response into the typed records of `hms.models`.
Any failure reported by Supabase or the network is raised as
`RemoteOperationError`. Nothing is retried, cached or paginated here.
"""
# hospital_desk/hms/records.py

from __future__ import annotations

import logging
import os
import time
from typing import Any, Callable, Iterable, List, Optional

import httpx
from supabase import AuthError, PostgrestAPIError, StorageException

from hms.errors import RemoteOperationError, ValidationError
from hms.models import (
    Allergy,
    Appointment,
    LabRequest,
    Medication,
    Patient,
    Prescription,
    Profile,
    Role,
    StoredObject,
)

logger = logging.getLogger(__name__)

LAB_REPORTS_BUCKET = 'lab-reports'
PRESCRIPTIONS_BUCKET = 'prescriptions'

# Embedded selects: the join happens in the query so the read is a single request.
APPOINTMENT_SELECT = (
    "*, patients (display_name, phone, dob, gender), "
    "profiles!appointments_doctor_profile_id_fkey (full_name)"
)
LAB_REQUEST_SELECT = (
    "*, patients (display_name, phone), "
    "profiles!lab_requests_requested_by_fkey (full_name)"
)
PRESCRIPTION_SELECT = (
    "*, patients (display_name, phone), "
    "profiles!prescriptions_doctor_profile_id_fkey (full_name)"
)
MEDICATION_SELECT = "*, profiles!medications_prescribed_by_fkey (full_name)"

REMOTE_ERRORS = (PostgrestAPIError, StorageException, AuthError, httpx.HTTPError)


def _require(operation: str, **fields):
    for name, value in fields.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{operation}: '{name}' is required", field=name)


def _without_none(row: dict) -> dict:
    # Let the store apply its defaults for fields the caller left out.
    return {key: value for key, value in row.items() if value is not None}


def _error_message(exc) -> str:
    message = getattr(exc, 'message', None)
    if message:
        return str(message)
    if exc.args and isinstance(exc.args[0], dict):
        return str(exc.args[0].get('message') or exc.args[0])
    return str(exc) or exc.__class__.__name__


def storage_key(owner_id: str, filename: str, now: Optional[float] = None) -> str:
    """Builds a collision-resistant object key: `{owner_id}/{timestamp_ms}-{filename}`.

    Only the base name of `filename` is used so a client path cannot escape the owner folder.
    """
    timestamp_ms = int((time.time() if now is None else now) * 1000)
    return f"{owner_id}/{timestamp_ms}-{os.path.basename(filename)}"


class HospitalRecords:
    """Typed CRUD operations over the Supabase tables and buckets."""

    def __init__(self, client):
        """Initializes the facade.

        Args:
            client: A `supabase.Client`. Its auth session (set by `SessionManager`)
                decides what the store lets these queries see.
        """
        self._client = client

    # Plumbing

    def _run(self, operation: str, request: Callable[[], Any]):
        try:
            return request()
        except REMOTE_ERRORS as exc:
            message = _error_message(exc)
            logger.warning("%s failed: %s", operation, message)
            raise RemoteOperationError(message, operation=operation, code=getattr(exc, 'code', None)) from exc

    def _rows(self, operation: str, response) -> list:
        data = getattr(response, 'data', None)
        if data is None:
            return []
        if not isinstance(data, list):
            raise RemoteOperationError(f"{operation}: expected a list of rows", operation=operation)
        return data

    def _insert(self, operation: str, table: str, row: dict, decode):
        response = self._run(operation, lambda: self._client.table(table).insert(_without_none(row)).execute())
        rows = self._rows(operation, response)
        if not rows:
            raise RemoteOperationError(f"{operation}: the store returned no record", operation=operation)
        record = decode(rows[0])
        logger.info("%s created %s", operation, record.id)
        return record

    def _select(self, operation: str, table: str, columns: str, decode, order: str,
                descending: bool, filters: Iterable = ()) -> list:
        def request():
            query = self._client.table(table).select(columns)
            for column, value in filters:
                if value is not None:
                    query = query.eq(column, value)
            return query.order(order, desc=descending).execute()

        response = self._run(operation, request)
        return [decode(row) for row in self._rows(operation, response)]

    # Patients

    def create_patient(self, display_name, phone=None, dob=None, gender=None) -> Patient:
        _require('create_patient', display_name=display_name)
        return self._insert('create_patient', 'patients', {
            'display_name': display_name,
            'phone': phone,
            'dob': dob,
            'gender': gender,
        }, Patient.from_row)

    def get_patients(self) -> List[Patient]:
        """Returns all patients, newest first."""
        return self._select('get_patients', 'patients', '*', Patient.from_row,
                            order='created_at', descending=True)

    # Profiles

    def get_profiles(self, role=None) -> List[Profile]:
        """Returns staff and patient profiles, optionally of one role, sorted by name."""
        role_value = Role.parse(role).value if role is not None else None
        return self._select('get_profiles', 'profiles', '*', Profile.from_row,
                            order='full_name', descending=False, filters=[('role', role_value)])

    # Appointments

    def create_appointment(self, patient_id, doctor_profile_id, scheduled_at,
                           problem_summary=None, receptionist_profile_id=None) -> Appointment:
        _require('create_appointment', patient_id=patient_id,
                 doctor_profile_id=doctor_profile_id, scheduled_at=scheduled_at)
        return self._insert('create_appointment', 'appointments', {
            'patient_id': patient_id,
            'doctor_profile_id': doctor_profile_id,
            'receptionist_profile_id': receptionist_profile_id,
            'scheduled_at': scheduled_at,
            'problem_summary': problem_summary,
        }, Appointment.from_row)

    def get_appointments(self, doctor_profile_id=None) -> List[Appointment]:
        """Returns appointments with patient and doctor display fields, earliest first.

        Args:
            doctor_profile_id (str, optional): Only this doctor's appointments.
        """
        return self._select('get_appointments', 'appointments', APPOINTMENT_SELECT, Appointment.from_row,
                            order='scheduled_at', descending=False,
                            filters=[('doctor_profile_id', doctor_profile_id)])

    # Lab requests

    def create_lab_request(self, patient_id, requested_by, tests, appointment_id=None) -> LabRequest:
        """Creates a lab request for a set of tests. The store sets the initial status.

        Raises:
            ValidationError: If a required field is missing or no test is selected.
        """
        _require('create_lab_request', patient_id=patient_id, requested_by=requested_by)
        tests = sorted(set(tests or ()))
        if not tests:
            raise ValidationError("create_lab_request: select at least one test", field='tests')
        return self._insert('create_lab_request', 'lab_requests', {
            'patient_id': patient_id,
            'requested_by': requested_by,
            'tests': tests,
            'appointment_id': appointment_id,
        }, LabRequest.from_row)

    def get_lab_requests(self, status=None, patient_id=None) -> List[LabRequest]:
        """Returns lab requests with patient and requester names, newest first."""
        return self._select('get_lab_requests', 'lab_requests', LAB_REQUEST_SELECT, LabRequest.from_row,
                            order='created_at', descending=True,
                            filters=[('status', status), ('patient_id', patient_id)])

    # Prescriptions

    def create_prescription(self, patient_id, doctor_profile_id, content, appointment_id=None) -> Prescription:
        _require('create_prescription', patient_id=patient_id, doctor_profile_id=doctor_profile_id)
        if not content:
            raise ValidationError("create_prescription: 'content' is required", field='content')
        return self._insert('create_prescription', 'prescriptions', {
            'patient_id': patient_id,
            'doctor_profile_id': doctor_profile_id,
            'appointment_id': appointment_id,
            'content': content,
        }, Prescription.from_row)

    def get_prescriptions(self, patient_id=None) -> List[Prescription]:
        return self._select('get_prescriptions', 'prescriptions', PRESCRIPTION_SELECT, Prescription.from_row,
                            order='created_at', descending=True, filters=[('patient_id', patient_id)])

    # Medications

    def add_medication(self, patient_id, prescribed_by, name, dose=None, frequency=None,
                       start_date=None, end_date=None, notes=None) -> Medication:
        """Adds a regular medication. Leave `end_date` as None for an ongoing course."""
        _require('add_medication', patient_id=patient_id, prescribed_by=prescribed_by, name=name)
        return self._insert('add_medication', 'medications', {
            'patient_id': patient_id,
            'prescribed_by': prescribed_by,
            'name': name,
            'dose': dose,
            'frequency': frequency,
            'start_date': start_date,
            'end_date': end_date or None,
            'notes': notes,
        }, Medication.from_row)

    def get_patient_medications(self, patient_id=None) -> List[Medication]:
        return self._select('get_patient_medications', 'medications', MEDICATION_SELECT, Medication.from_row,
                            order='created_at', descending=True, filters=[('patient_id', patient_id)])

    # Allergies

    def add_allergy(self, patient_id, allergen, added_by, reaction=None, severity=None) -> Allergy:
        _require('add_allergy', patient_id=patient_id, allergen=allergen, added_by=added_by)
        return self._insert('add_allergy', 'allergies', {
            'patient_id': patient_id,
            'allergen': allergen,
            'reaction': reaction,
            'severity': severity,
            'added_by': added_by,
        }, Allergy.from_row)

    def get_patient_allergies(self, patient_id=None) -> List[Allergy]:
        return self._select('get_patient_allergies', 'allergies', '*', Allergy.from_row,
                            order='created_at', descending=True, filters=[('patient_id', patient_id)])

    # Files

    def _upload(self, operation: str, bucket: str, owner_id: str, filename: str, content: bytes) -> StoredObject:
        _require(operation, owner_id=owner_id, filename=filename)
        if content is None:
            raise ValidationError(f"{operation}: 'content' is required", field='content')
        path = storage_key(owner_id, filename)
        self._run(operation, lambda: self._client.storage.from_(bucket).upload(path, content))
        public_url = self._run(operation, lambda: self._client.storage.from_(bucket).get_public_url(path))
        logger.info("%s stored %s/%s", operation, bucket, path)
        return StoredObject(bucket=bucket, path=path, public_url=public_url)

    def upload_lab_report(self, filename: str, content: bytes, patient_id: str) -> StoredObject:
        """Stores a lab report under `lab-reports/{patient_id}/`.

        Args:
            filename: The original file name.
            content: The file bytes. Type and size are not checked.
            patient_id: The patient the report belongs to.
        """
        return self._upload('upload_lab_report', LAB_REPORTS_BUCKET, patient_id, filename, content)

    def get_lab_report_url(self, path: str) -> str:
        _require('get_lab_report_url', path=path)
        return self._run('get_lab_report_url',
                         lambda: self._client.storage.from_(LAB_REPORTS_BUCKET).get_public_url(path))

    def upload_prescription_document(self, filename: str, content: bytes, prescription_id: str) -> StoredObject:
        """Stores a prescription document under `prescriptions/{prescription_id}/`."""
        return self._upload('upload_prescription_document', PRESCRIPTIONS_BUCKET,
                            prescription_id, filename, content)
