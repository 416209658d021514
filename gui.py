"""
This module defines the graphical user interface (GUI) for the Hospital Desk application using Streamlit.

It includes functions for rendering the sign-in / sign-up page and one dashboard
per role: doctor, receptionist, pharmacist, lab technician and patient.

The main entry point for signed-in users is `show_main_app`, which routes them
to the dashboard that matches their profile's role.
"""
# hospital_desk/gui.py

import datetime

import pandas as pd
import streamlit as st

from hms.errors import HMSError
from hms.forms import (
    LAB_ACTIONS,
    MedicationForm,
    ModalState,
    ModalStatus,
    PatientRegistrationForm,
    get_lab_action,
    medication_period,
    register_patient,
    search_patients,
)
from hms.models import Role

GENDER_OPTIONS = ['Male', 'Female', 'Other']
SEVERITY_OPTIONS = ['Low', 'Medium', 'High']
LAB_STATUS_OPTIONS = ['All', 'pending', 'in_progress', 'completed']


def _format_timestamp(timestamp_str):
    """Converts an ISO 8601 timestamp string into a human-readable local time format.

    Args:
        timestamp_str (str): The ISO-formatted timestamp string.

    Returns:
        str: A formatted string (e.g., "Jan 01, 2023 • 14:30") or the original
             string if conversion fails.
    """
    if not timestamp_str:
        return "Unknown time"
    try:
        timestamp = datetime.datetime.fromisoformat(timestamp_str.replace('Z', '+00:00'))
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=datetime.timezone.utc)
        return timestamp.astimezone().strftime("%b %d, %Y • %H:%M")
    except ValueError:
        return timestamp_str


def _show_error(exc):
    st.error(exc.user_message if isinstance(exc, HMSError) else str(exc))


def _flash(message):
    """Queues a notification to show after the next rerun."""
    st.session_state.notice = message


def _show_notice():
    notice = st.session_state.pop('notice', None)
    if notice:
        st.toast(notice)


def _table(rows, empty_message):
    """Renders a list of dicts as a dataframe, or an info box when there is nothing to show."""
    if not rows:
        st.info(empty_message)
        return
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)


# Page navigation helpers
def toggle_sign_up():
    """Switches the auth form between signing in and creating an account."""
    st.session_state.is_sign_up = not st.session_state.get('is_sign_up', False)


# Authentication Page
def show_login_form(session):
    """Displays the sign-in / sign-up form and handles authentication.

    Args:
        session (SessionManager): The UI session's session manager.
    """
    _show_notice()
    is_sign_up = st.session_state.get('is_sign_up', False)
    col1, col2, col3 = st.columns([1, 2, 1])
    with col2:
        st.markdown("<h1 style='text-align: center;'>Hospital Management System</h1>", unsafe_allow_html=True)
        st.markdown(
            f"<p style='text-align: center;'>{'Create your account' if is_sign_up else 'Sign in to your account'}</p>",
            unsafe_allow_html=True,
        )
        with st.form("auth_form"):
            full_name = st.text_input("Full Name") if is_sign_up else ''
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            role_label = st.selectbox("Select Role", Role.labels()) if is_sign_up else None
            submitted = st.form_submit_button("Create Account" if is_sign_up else "Sign In", use_container_width=True)

            if submitted:
                if not email or not password or (is_sign_up and not full_name):
                    st.error("Please fill in all required fields")
                elif is_sign_up:
                    with st.spinner("Creating account..."):
                        try:
                            session.sign_up(email, password, full_name, role_label)
                        except HMSError as exc:
                            _show_error(exc)
                        else:
                            st.success("Account created successfully! Please check your email to verify your account.")
                            st.session_state.is_sign_up = False
                else:
                    with st.spinner("Signing in..."):
                        try:
                            session.sign_in(email, password)
                        except HMSError as exc:
                            _show_error(exc)
                        else:
                            st.session_state.page = session.dashboard_path()
                            st.rerun()

        st.button(
            "Already have an account? Sign in" if is_sign_up else "Don't have an account? Sign up",
            on_click=toggle_sign_up,
            use_container_width=True,
        )


# Main Application UI
def show_main_app(session, records):
    """
    The main application router that displays the dashboard for the user's role.

    Args:
        session (SessionManager): The UI session's session manager.
        records (HospitalRecords): The records facade.
    """
    _show_notice()
    profile = session.current_profile()
    st.session_state.page = profile.role.dashboard_path

    header, logout_col = st.columns([4, 1])
    with header:
        st.markdown(f"## {_DASHBOARD_TITLES[profile.role]} · {profile.full_name or profile.email}")
        st.caption(f"Signed in as {profile.role.label}")
    with logout_col:
        if st.button("Log Out", key="logout_btn", use_container_width=True):
            try:
                session.sign_out()
            except HMSError as exc:
                # Local state is already cleared; tell the user the remote sign-out failed.
                _flash(f"Signed out locally, but the server reported: {exc.user_message}")
            st.session_state.page = None
            st.session_state.selected_patient_id = None
            st.rerun()
    st.divider()

    _DASHBOARDS[profile.role](profile, records)


def _render_doctor_dashboard(profile, records):
    """Doctor view: today's appointments, patient search and the selected patient's records."""
    try:
        appointments = records.get_appointments(profile.id)
        patients = records.get_patients()
    except HMSError as exc:
        _show_error(exc)
        return

    st.subheader("Appointments")
    _table([
        {
            "Time": _format_timestamp(a.scheduled_at),
            "Patient": a.patient_name or a.patient_id,
            "Problem": a.problem_summary or "",
            "Status": a.status,
        }
        for a in appointments
    ], "No appointments scheduled.")

    st.subheader("Patient Search")
    term = st.text_input("Enter patient name or ID", key="patient_search")
    matches = search_patients(patients, term)
    if term and not matches:
        st.info("No patients match your search.")
    elif term:
        by_id = {p.id: p for p in matches}
        chosen = st.selectbox("Select a patient", list(by_id), format_func=lambda pid: f"{by_id[pid].display_name} ({pid})")
        if st.button("Open Patient", key="open_patient"):
            st.session_state.selected_patient_id = chosen
            st.session_state.lab_modal = ModalState.closed()

    selected_id = st.session_state.get('selected_patient_id')
    patient = next((p for p in patients if p.id == selected_id), None)
    if patient is None:
        return

    st.divider()
    st.markdown(f"### {patient.display_name}")
    _render_lab_actions(profile, records, patient)

    overview, history, reports, allergies, medications = st.tabs(
        ["Overview", "History", "Reports", "Allergies", "Regular Medications"]
    )
    with overview:
        st.write(f"**Patient ID:** {patient.id}")
        st.write(f"**Gender:** {patient.gender or '-'}")
        st.write(f"**Phone:** {patient.phone or '-'}")
        st.write(f"**Date of Birth:** {patient.dob or '-'}")
    with history:
        _render_history_tab(profile, records, patient)
    with reports:
        _render_reports_tab(records, patient)
    with allergies:
        _render_allergies_tab(profile, records, patient)
    with medications:
        _render_medications_tab(profile, records, patient)


def _open_lab_modal(action_id):
    st.session_state.lab_modal = st.session_state.get('lab_modal', ModalState.closed()).open(action_id)


def _toggle_lab_test(test):
    st.session_state.lab_modal = st.session_state.lab_modal.toggle(test)


def _close_lab_modal():
    st.session_state.lab_modal = ModalState.closed()


def _submit_lab_modal():
    # Callbacks run before the script, so the next run renders in the submitting state.
    st.session_state.lab_modal = st.session_state.lab_modal.submit()


def _send_lab_request(profile, records, patient, modal):
    selected = modal.selected_tests
    try:
        with st.spinner(f"Requesting {', '.join(selected)}..."):
            records.create_lab_request(patient_id=patient.id, requested_by=profile.id, tests=selected)
    except HMSError as exc:
        _show_error(exc)
    else:
        _flash(f"Successfully requested {', '.join(selected)} for {patient.display_name}")
        st.rerun()
    finally:
        st.session_state.lab_modal = ModalState.closed()


def _render_lab_actions(profile, records, patient):
    modal = st.session_state.get('lab_modal', ModalState.closed())
    action_cols = st.columns(len(LAB_ACTIONS))
    for col, action in zip(action_cols, LAB_ACTIONS):
        with col:
            st.button(action.label, key=f"action_{action.id}", on_click=_open_lab_modal, args=(action.id,),
                      disabled=modal.status is ModalStatus.SUBMITTING, use_container_width=True)

    if modal.status is ModalStatus.SUBMITTING:
        _send_lab_request(profile, records, patient, modal)
        return
    if modal.status is not ModalStatus.OPEN:
        return

    action = get_lab_action(modal.action_id)
    with st.container(border=True):
        st.markdown(f"**{action.label}** for {patient.display_name}")
        for option in action.options:
            marker = "✓ " if option in modal.selection else ""
            st.button(f"{marker}{option}", key=f"lab_opt_{option}", on_click=_toggle_lab_test, args=(option,))
        selected = modal.selected_tests
        if selected:
            st.caption(f"Selected Tests ({len(selected)}): {', '.join(selected)}")
        confirm_col, cancel_col = st.columns(2)
        with cancel_col:
            st.button("Cancel", key="lab_cancel", on_click=_close_lab_modal, use_container_width=True)
        with confirm_col:
            st.button(f"Confirm Request ({len(selected)})", key="lab_confirm", on_click=_submit_lab_modal,
                      disabled=not selected, use_container_width=True)


def _render_history_tab(profile, records, patient):
    try:
        prescriptions = records.get_prescriptions(patient.id)
    except HMSError as exc:
        _show_error(exc)
        return
    st.markdown("#### Prescriptions")
    _table([
        {
            "Date": _format_timestamp(p.created_at),
            "Prescribed By": p.doctor_name or p.doctor_profile_id,
            "Content": p.content if isinstance(p.content, str) else str(p.content),
        }
        for p in prescriptions
    ], "No prescriptions on record.")

    with st.form("prescription_form", clear_on_submit=True):
        content = st.text_area("New prescription", placeholder="Medicine, dose, quantity, instructions")
        if st.form_submit_button("Save Prescription"):
            try:
                records.create_prescription(patient_id=patient.id, doctor_profile_id=profile.id, content=content)
            except HMSError as exc:
                _show_error(exc)
            else:
                st.success("Prescription saved.")


def _render_reports_tab(records, patient):
    try:
        lab_requests = records.get_lab_requests(patient_id=patient.id)
    except HMSError as exc:
        _show_error(exc)
        return
    _table([
        {
            "Requested": _format_timestamp(r.created_at),
            "Tests": ", ".join(sorted(r.tests)),
            "Requested By": r.requested_by_name or r.requested_by,
            "Status": r.status,
        }
        for r in lab_requests
    ], "No lab requests for this patient.")


def _render_allergies_tab(profile, records, patient):
    try:
        allergies = records.get_patient_allergies(patient.id)
    except HMSError as exc:
        _show_error(exc)
        return
    for allergy in allergies:
        st.write(f"**{allergy.allergen}** ({allergy.severity or 'Unknown'}): {allergy.reaction or ''}")
    if not allergies:
        st.info("No known allergies.")

    with st.form("allergy_form", clear_on_submit=True):
        allergen = st.text_input("Allergen")
        reaction = st.text_input("Reaction")
        severity = st.selectbox("Severity", SEVERITY_OPTIONS)
        if st.form_submit_button("Add Allergy"):
            try:
                records.add_allergy(patient_id=patient.id, allergen=allergen, added_by=profile.id,
                                    reaction=reaction or None, severity=severity)
            except HMSError as exc:
                _show_error(exc)
            else:
                st.success("Allergy added.")


def _render_medications_tab(profile, records, patient):
    try:
        medications = records.get_patient_medications(patient.id)
    except HMSError as exc:
        _show_error(exc)
        return
    st.markdown("#### Current Regular Medications")
    _table([
        {
            "Medicine": m.name,
            "Dosage": m.dose or "",
            "Frequency": m.frequency or "",
            "Prescribed By": m.prescribed_by_name or m.prescribed_by,
            "Period": medication_period(m),
        }
        for m in medications
    ], "No regular medications.")

    with st.form("medication_form", clear_on_submit=True):
        st.markdown("**Add Medication**")
        name = st.text_input("Medicine Name", placeholder="e.g., Metformin")
        dose = st.text_input("Dosage", placeholder="e.g., 500mg")
        frequency = st.text_input("Frequency", placeholder="e.g., Twice daily")
        start_date = st.date_input("Start Date", value=datetime.date.today())
        end_date = st.date_input("End Date (leave empty if ongoing)", value=None)
        if st.form_submit_button("Add Medication"):
            form = MedicationForm(name=name, dose=dose, frequency=frequency, start_date=start_date, end_date=end_date)
            try:
                records.add_medication(**form.to_fields(patient.id, profile.id))
            except HMSError as exc:
                _show_error(exc)
            else:
                st.success("Medication added successfully!")


def _render_receptionist_dashboard(profile, records):
    """Front desk: register patients, optionally booking them with a doctor."""
    try:
        doctors = records.get_profiles(Role.DOCTOR)
    except HMSError as exc:
        _show_error(exc)
        doctors = []
    doctor_names = {d.id: d.full_name or d.email for d in doctors}

    st.subheader("Register New Patient")
    with st.form("registration_form", clear_on_submit=True):
        display_name = st.text_input("Patient Name")
        gender = st.selectbox("Gender", GENDER_OPTIONS)
        phone = st.text_input("Phone Number", placeholder="+91 98XXXXXXXX")
        dob = st.date_input("Date of Birth", value=None, min_value=datetime.date(1900, 1, 1))
        problem = st.text_area("Patient Problem", placeholder="Briefly describe symptoms")
        doctor_id = st.selectbox("Assign Doctor (Optional)", [None] + list(doctor_names),
                                 format_func=lambda pid: "Select Doctor" if pid is None else doctor_names[pid])
        if st.form_submit_button("Register Patient"):
            form = PatientRegistrationForm(display_name=display_name, phone=phone, dob=dob, gender=gender,
                                           problem_description=problem, doctor_profile_id=doctor_id)
            try:
                patient, appointment = register_patient(records, form, receptionist=profile)
            except HMSError as exc:
                _show_error(exc)
            else:
                st.success(f"Patient registered successfully! Patient ID: {patient.id}")
                if appointment:
                    st.info(f"Appointment booked with {doctor_names.get(appointment.doctor_profile_id, 'doctor')}.")

    try:
        patients = records.get_patients()
        appointments = records.get_appointments()
    except HMSError as exc:
        _show_error(exc)
        return
    st.subheader("Patients")
    _table([
        {"ID": p.id, "Name": p.display_name, "Phone": p.phone or "", "Gender": p.gender or "",
         "Registered": _format_timestamp(p.created_at)}
        for p in patients
    ], "No patients registered yet.")
    st.subheader("Appointments")
    _table([
        {"Time": _format_timestamp(a.scheduled_at), "Patient": a.patient_name or a.patient_id,
         "Doctor": a.doctor_name or a.doctor_profile_id, "Status": a.status}
        for a in appointments
    ], "No appointments scheduled.")


def _render_pharmacist_dashboard(profile, records):
    try:
        prescriptions = records.get_prescriptions()
    except HMSError as exc:
        _show_error(exc)
        return
    st.subheader("Prescriptions")
    _table([
        {"ID": p.id, "Date": _format_timestamp(p.created_at), "Patient": p.patient_name or p.patient_id,
         "Doctor": p.doctor_name or p.doctor_profile_id,
         "Content": p.content if isinstance(p.content, str) else str(p.content)}
        for p in prescriptions
    ], "No prescriptions yet.")
    if not prescriptions:
        return

    st.subheader("Attach Prescription Document")
    by_id = {p.id: p for p in prescriptions}
    prescription_id = st.selectbox("Prescription", list(by_id),
                                   format_func=lambda pid: f"{by_id[pid].patient_name or by_id[pid].patient_id} ({pid})")
    uploaded = st.file_uploader("Document", key="prescription_document")
    if uploaded is not None and st.button("Upload Document"):
        try:
            stored = records.upload_prescription_document(uploaded.name, uploaded.getvalue(), prescription_id)
        except HMSError as exc:
            _show_error(exc)
        else:
            st.success(f"Uploaded to {stored.bucket}/{stored.path}")


def _render_lab_dashboard(profile, records):
    status = st.selectbox("Status", LAB_STATUS_OPTIONS)
    try:
        lab_requests = records.get_lab_requests(status=None if status == 'All' else status)
        patients = records.get_patients()
    except HMSError as exc:
        _show_error(exc)
        return
    st.subheader("Lab Requests")
    _table([
        {"Requested": _format_timestamp(r.created_at), "Patient": r.patient_name or r.patient_id,
         "Phone": r.patient_phone or "", "Tests": ", ".join(sorted(r.tests)),
         "Requested By": r.requested_by_name or r.requested_by, "Status": r.status}
        for r in lab_requests
    ], "No lab requests.")
    if not patients:
        return

    st.subheader("Upload Lab Report")
    by_id = {p.id: p for p in patients}
    patient_id = st.selectbox("Patient", list(by_id), format_func=lambda pid: f"{by_id[pid].display_name} ({pid})")
    uploaded = st.file_uploader("Report file", key="lab_report")
    if uploaded is not None and st.button("Upload Report"):
        try:
            stored = records.upload_lab_report(uploaded.name, uploaded.getvalue(), patient_id)
        except HMSError as exc:
            _show_error(exc)
        else:
            st.success("Report uploaded.")
            st.markdown(f"[Open report]({stored.public_url})")


def _render_patient_dashboard(profile, records):
    st.subheader("My Profile")
    st.write(f"**Name:** {profile.full_name}")
    st.write(f"**Email:** {profile.email}")
    st.info("Your care team will share reports and prescriptions with you at your next visit.")


_DASHBOARD_TITLES = {
    Role.DOCTOR: "Doctor Dashboard",
    Role.PATIENT: "Patient Portal",
    Role.RECEPTIONIST: "Hospital Desk",
    Role.PHARMACIST: "Pharmacy",
    Role.LABTECH: "Lab Dashboard",
}

_DASHBOARDS = {
    Role.DOCTOR: _render_doctor_dashboard,
    Role.PATIENT: _render_patient_dashboard,
    Role.RECEPTIONIST: _render_receptionist_dashboard,
    Role.PHARMACIST: _render_pharmacist_dashboard,
    Role.LABTECH: _render_lab_dashboard,
}
