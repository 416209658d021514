"""
This is the main entry point for the Hospital Desk Streamlit application.

This script handles the following key responsibilities:
- Sets the overall page configuration for the Streamlit app.
- Loads the Supabase settings and stops with a clear message if they are not configured.
- Gives each browser session its own Supabase client, `SessionManager` and `HospitalRecords`.
- Routes the user to the sign-in page or to their role's dashboard.
"""
# hospital_desk/main.py

import streamlit as st

import gui
from hms.client import create_supabase_client
from hms.config import configure_logging, load_settings
from hms.errors import ConfigurationError, HMSError
from hms.records import HospitalRecords
from hms.session import SessionManager

# Set the basic configuration for the Streamlit page.
st.set_page_config(
    page_title="Hospital Management System",
    layout="wide"
)


@st.cache_resource
def get_settings():
    """
    Loads and validates the backend settings once per server process.

    Returns:
        Settings: The validated settings.
    """
    settings = load_settings()
    configure_logging(settings.log_level)
    return settings


try:
    settings = get_settings()
except ConfigurationError as exc:
    st.error(exc.user_message)
    st.stop()

# Session State Management
# The client carries the signed-in user's auth session, so it is created per browser
# session rather than cached for the whole server.
if 'session' not in st.session_state:
    client = create_supabase_client(settings)
    st.session_state.session = SessionManager(client)
    st.session_state.records = HospitalRecords(client)
    st.session_state.page = None

session = st.session_state.session
try:
    with st.spinner("Loading..."):
        session.initialize()
except HMSError as exc:
    st.error(exc.user_message)

# Main App Router
if session.is_authenticated:
    gui.show_main_app(session, st.session_state.records)
else:
    gui.show_login_form(session)
