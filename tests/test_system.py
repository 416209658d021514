"""
System-level tests for the Hospital Desk application.

These tests walk through complete hospital workflows that cross the session
manager, the records facade and the form helpers, and check the state of the
store afterwards: signing up and landing on the right dashboard, registering
patients at the front desk, and a doctor ordering tests and medications that
the lab and the patient's record then show.
"""
import datetime

import pytest

from hms.errors import AuthenticationError
from hms.forms import MedicationForm, ModalState, PatientRegistrationForm, medication_period, register_patient
from hms.models import Role
from hms.session import SessionManager, SessionState


def test_doctor_sign_up_verify_and_land_on_dashboard(fake_client):
    """
    Tests the first visit of a new doctor, from sign-up to their dashboard.

    The sign-up creates exactly one doctor profile but does not sign in; after
    verifying their email the doctor signs in and is routed to the doctor dashboard.
    """
    session = SessionManager(fake_client)
    assert session.initialize() is SessionState.ANONYMOUS
    assert session.dashboard_path() == '/'

    profile = session.sign_up("meera@hospital.test", "S3cure!pass", "Dr. Meera Iyer", "Doctor")
    assert profile.role is Role.DOCTOR
    assert [row['role'] for row in fake_client.db.tables['profiles']] == ['doctor']
    assert not session.is_authenticated

    with pytest.raises(AuthenticationError) as excinfo:
        session.sign_in("meera@hospital.test", "S3cure!pass")
    assert excinfo.value.reason == AuthenticationError.EMAIL_NOT_VERIFIED

    fake_client.auth.confirm("meera@hospital.test")
    signed_in = session.sign_in("meera@hospital.test", "S3cure!pass")
    assert signed_in == profile
    assert session.dashboard_path() == '/doctor/dashboard'

    session.sign_out()
    assert session.dashboard_path() == '/'


@pytest.mark.parametrize("label, path", [
    ("Patient", '/patient/dashboard'),
    ("Receptionist", '/hospital/dashboard'),
    ("Pharmacist", '/pharmacy/dashboard'),
    ("Lab Technician", '/lab/dashboard'),
])
def test_every_role_lands_on_its_dashboard(fake_client, label, path):
    session = SessionManager(fake_client)
    email = f"{label.lower().replace(' ', '.')}@hospital.test"
    session.sign_up(email, "S3cure!pass", f"Test {label}", label)
    fake_client.auth.confirm(email)
    session.sign_in(email, "S3cure!pass")
    assert session.dashboard_path() == path


def test_front_desk_registration_without_doctor(fake_client, records):
    """
    Tests registering a walk-in patient with no doctor assigned.

    The patient is created and listed first, and no appointment is booked.
    """
    desk_session = SessionManager(fake_client)
    desk_session.sign_up("desk@hospital.test", "S3cure!pass", "Front Desk", "Receptionist")
    fake_client.auth.confirm("desk@hospital.test")
    desk = desk_session.sign_in("desk@hospital.test", "S3cure!pass")

    records.create_patient(display_name="Earlier Patient")
    form = PatientRegistrationForm(display_name="Asha Rao", phone="+91 9800000000",
                                   dob=datetime.date(1990, 4, 12), gender="Female")
    patient, appointment = register_patient(records, form, receptionist=desk)

    assert appointment is None
    assert fake_client.db.tables['appointments'] == []
    assert patient.dob == '1990-04-12'
    assert records.get_patients()[0].id == patient.id


def test_doctor_consultation_workflow(fake_client, session, records, doctor):
    """
    Tests a consultation: booking, a lab request through the modal, a medication,
    an allergy and a prescription, then what the lab and the record show.
    """
    desk_session = SessionManager(fake_client)
    desk_session.sign_up("desk@hospital.test", "S3cure!pass", "Front Desk", "Receptionist")
    fake_client.auth.confirm("desk@hospital.test")
    desk = desk_session.sign_in("desk@hospital.test", "S3cure!pass")

    form = PatientRegistrationForm(display_name="Asha Rao", gender="Female",
                                   problem_description="Fatigue and dizziness", doctor_profile_id=doctor.id)
    patient, appointment = register_patient(
        records, form, receptionist=desk,
        now=datetime.datetime(2025, 9, 15, 10, 30, tzinfo=datetime.timezone.utc),
    )

    todays = records.get_appointments(doctor.id)
    assert [a.id for a in todays] == [appointment.id]
    assert todays[0].patient_name == "Asha Rao"
    assert todays[0].status == 'waiting'

    modal = ModalState.closed().open('blood_test').toggle('CBC').toggle('Blood Sugar')
    modal = modal.submit()
    lab_request = records.create_lab_request(patient_id=patient.id, requested_by=doctor.id,
                                             tests=modal.selected_tests, appointment_id=appointment.id)
    modal = modal.close()
    assert modal == ModalState.closed()
    assert lab_request.status == 'pending'
    assert lab_request.tests == frozenset({'CBC', 'Blood Sugar'})

    pending = records.get_lab_requests(status='pending')
    assert [r.id for r in pending] == [lab_request.id]
    assert pending[0].patient_name == "Asha Rao"
    assert pending[0].requested_by_name == "Dr. Anita Sharma"

    medication_form = MedicationForm(name="Metformin", dose="500mg", frequency="Twice daily",
                                     start_date=datetime.date(2025, 9, 15))
    records.add_medication(**medication_form.to_fields(patient.id, doctor.id))
    medications = records.get_patient_medications(patient.id)
    assert len(medications) == 1
    assert medications[0].end_date is None
    assert medication_period(medications[0]) == '2025-09-15 - Ongoing'

    records.add_allergy(patient.id, "Penicillin", doctor.id, reaction="Rash", severity="High")
    assert [a.allergen for a in records.get_patient_allergies(patient.id)] == ["Penicillin"]

    records.create_prescription(patient_id=patient.id, doctor_profile_id=doctor.id,
                                content="Iron supplements, once daily for 30 days", appointment_id=appointment.id)
    prescriptions = records.get_prescriptions()
    assert len(prescriptions) == 1
    assert prescriptions[0].patient_name == "Asha Rao"

    stored = records.upload_lab_report("cbc-results.pdf", b"%PDF-1.4 results", patient.id)
    assert stored.path.startswith(f"{patient.id}/")
    assert fake_client.storage.objects['lab-reports'][stored.path] == b"%PDF-1.4 results"


def test_restored_session_after_reload(fake_client, session, doctor):
    """
    Tests that a new UI session picks up the remote session of a signed-in doctor
    and that signing out there ends it for later sessions too.
    """
    reloaded = SessionManager(fake_client)
    assert reloaded.initialize() is SessionState.AUTHENTICATED
    assert reloaded.current_profile() == doctor

    reloaded.sign_out()
    assert SessionManager(fake_client).initialize() is SessionState.ANONYMOUS
