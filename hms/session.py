"""
This module provides the session manager for the Hospital Desk application.

It defines the `SessionManager` class, which is responsible for:
- Resolving an existing remote session when a UI session starts.
- Signing users up, creating their hospital profile, and signing them in and out.
- Holding the signed-in user's `Profile` so the rest of the app can read it
  without another network call.

One `SessionManager` is owned by each UI session and passed to the pages that
need it. It only talks to Supabase auth and to the `profiles` table; domain
queries go through `hms.records.HospitalRecords`.
"""
# hospital_desk/hms/session.py

import logging
from enum import Enum

import httpx
from supabase import AuthError, PostgrestAPIError

from hms.errors import AuthenticationError, RemoteOperationError, ValidationError
from hms.models import Profile, Role

logger = logging.getLogger(__name__)

LOGIN_PATH = '/'


class SessionState(str, Enum):
    UNINITIALIZED = 'uninitialized'
    LOADING = 'loading'
    AUTHENTICATED = 'authenticated'
    ANONYMOUS = 'anonymous'


def _auth_failure_reason(exc) -> str:
    """Maps a provider auth error onto an `AuthenticationError` reason."""
    code = (getattr(exc, 'code', None) or '').lower()
    message = (getattr(exc, 'message', None) or str(exc)).lower()
    if code == 'invalid_credentials' or 'invalid login credentials' in message:
        return AuthenticationError.INVALID_CREDENTIALS
    if code == 'email_not_confirmed' or 'email not confirmed' in message:
        return AuthenticationError.EMAIL_NOT_VERIFIED
    return AuthenticationError.UNKNOWN


def _remote_error(operation, exc) -> RemoteOperationError:
    message = getattr(exc, 'message', None) or str(exc) or exc.__class__.__name__
    logger.warning("%s failed: %s", operation, message)
    return RemoteOperationError(message, operation=operation, code=getattr(exc, 'code', None))


class SessionManager:
    """Owns the authentication state of one UI session.

    The state moves from UNINITIALIZED to LOADING on `initialize()`, and from
    there to AUTHENTICATED or ANONYMOUS. `sign_in` and `sign_out` move it
    between the last two.
    """

    def __init__(self, client):
        """Initializes the manager with a Supabase client.

        Args:
            client: A `supabase.Client`, or anything exposing the same `auth` and `table` API.
        """
        self._client = client
        self._state = SessionState.UNINITIALIZED
        self._profile = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self._state is SessionState.AUTHENTICATED

    def current_profile(self):
        """Returns the signed-in user's profile, or None. Never calls the network."""
        return self._profile

    def dashboard_path(self) -> str:
        """Returns where the signed-in user should land, or the login path when anonymous."""
        if self._profile is None:
            return LOGIN_PATH
        return self._profile.role.dashboard_path

    def initialize(self) -> SessionState:
        """Resolves any existing remote session into a profile.

        The account is resolved before the profile is looked up. Runs once;
        later calls return the current state untouched.

        Returns:
            SessionState: AUTHENTICATED or ANONYMOUS.

        Raises:
            RemoteOperationError: If the lookup failed for a reason other than
                there being no session. The state is ANONYMOUS afterwards.
        """
        if self._state is not SessionState.UNINITIALIZED:
            return self._state
        self._state = SessionState.LOADING
        try:
            account = self._resolve_account()
            profile = self._fetch_profile(account.id) if account else None
        except RemoteOperationError:
            self._set_anonymous()
            raise
        if profile is None:
            self._set_anonymous()
        else:
            self._set_authenticated(profile)
        logger.info("Session initialized as %s", self._state.value)
        return self._state

    def sign_up(self, email, password, full_name, role) -> Profile:
        """Creates an account and its hospital profile.

        The session stays as it was: the provider may require the email to be
        verified before the new account can sign in.

        Args:
            email (str): The account email.
            password (str): The account password.
            full_name (str): The user's display name.
            role: A role value or label, e.g. 'doctor' or 'Doctor'.

        Returns:
            Profile: The created profile.

        Raises:
            ValidationError: If a field is missing or the role is not recognized.
                Raised before any remote call.
            AuthenticationError: If the provider rejects the sign-up.
            RemoteOperationError: If the profile insert fails after the account was
                created. The account is not rolled back.
        """
        for name, value in (('email', email), ('password', password), ('full_name', full_name)):
            if not value or not str(value).strip():
                raise ValidationError(f"Please fill in the {name.replace('_', ' ')} field", field=name)
        role = Role.parse(role)

        try:
            response = self._client.auth.sign_up({
                'email': email,
                'password': password,
                'options': {'data': {'full_name': full_name, 'role': role.value}},
            })
        except AuthError as exc:
            logger.warning("Sign-up rejected for %s: %s", email, getattr(exc, 'message', exc))
            raise AuthenticationError(getattr(exc, 'message', None) or str(exc), _auth_failure_reason(exc)) from exc
        except httpx.HTTPError as exc:
            raise _remote_error('sign_up', exc) from exc

        account = getattr(response, 'user', None)
        if account is None:
            raise RemoteOperationError("Sign-up did not return an account", operation='sign_up')

        profile = self._create_profile(account.id, role, full_name, email)
        logger.info("Created %s profile %s", role.value, profile.id)
        return profile

    def sign_in(self, email, password) -> Profile:
        """Signs in with email and password and loads the user's profile.

        If the account has no profile yet (its creation failed during sign-up),
        the profile is created now from the name and role stored on the account.

        Returns:
            Profile: The signed-in user's profile.

        Raises:
            ValidationError: If email or password is missing.
            AuthenticationError: For bad credentials, an unverified email, or an
                account whose profile cannot be recovered.
            RemoteOperationError: If the provider or the profile lookup fails.
        """
        if not email or not password:
            raise ValidationError("Please fill in all required fields")

        try:
            response = self._client.auth.sign_in_with_password({'email': email, 'password': password})
        except AuthError as exc:
            reason = _auth_failure_reason(exc)
            logger.info("Sign-in refused for %s (%s)", email, reason)
            raise AuthenticationError(getattr(exc, 'message', None) or str(exc), reason) from exc
        except httpx.HTTPError as exc:
            raise _remote_error('sign_in', exc) from exc

        account = getattr(response, 'user', None)
        if account is None:
            raise AuthenticationError("Sign-in did not return an account")

        profile = self._fetch_profile(account.id)
        if profile is None:
            profile = self._recover_profile(account, email)
        self._set_authenticated(profile)
        logger.info("Signed in profile %s as %s", profile.id, profile.role.value)
        return profile

    def sign_out(self):
        """Signs out remotely and clears the local session.

        The local session is cleared even when the remote call fails.

        Raises:
            RemoteOperationError: If the remote sign-out failed.
        """
        try:
            self._client.auth.sign_out()
        except (AuthError, httpx.HTTPError) as exc:
            raise _remote_error('sign_out', exc) from exc
        finally:
            self._set_anonymous()
            logger.info("Signed out")

    def _set_authenticated(self, profile):
        self._profile = profile
        self._state = SessionState.AUTHENTICATED

    def _set_anonymous(self):
        self._profile = None
        self._state = SessionState.ANONYMOUS

    def _resolve_account(self):
        try:
            response = self._client.auth.get_user()
        except AuthError as exc:
            # Any auth error here means there is no usable session.
            logger.info("No usable stored session: %s", getattr(exc, 'message', exc))
            return None
        except httpx.HTTPError as exc:
            raise _remote_error('get_user', exc) from exc
        return getattr(response, 'user', None) if response else None

    def _fetch_profile(self, auth_uid):
        try:
            response = (
                self._client.table('profiles')
                .select('*')
                .eq('auth_uid', auth_uid)
                .limit(1)
                .execute()
            )
        except (PostgrestAPIError, httpx.HTTPError) as exc:
            raise _remote_error('get_profile', exc) from exc
        rows = response.data or []
        return Profile.from_row(rows[0]) if rows else None

    def _create_profile(self, auth_uid, role, full_name, email) -> Profile:
        try:
            response = self._client.table('profiles').insert({
                'auth_uid': auth_uid,
                'role': role.value,
                'full_name': full_name,
                'email': email,
            }).execute()
        except (PostgrestAPIError, httpx.HTTPError) as exc:
            raise _remote_error('create_profile', exc) from exc
        rows = response.data or []
        if not rows:
            raise RemoteOperationError("Profile insert returned no row", operation='create_profile')
        return Profile.from_row(rows[0])

    def _recover_profile(self, account, email) -> Profile:
        metadata = getattr(account, 'user_metadata', None) or {}
        try:
            role = Role.parse(metadata.get('role'))
        except ValidationError as exc:
            raise AuthenticationError(
                "Account has no profile and no recoverable role", AuthenticationError.PROFILE_MISSING
            ) from exc
        full_name = metadata.get('full_name') or ''
        logger.warning("Account %s has no profile; creating it from sign-up metadata", account.id)
        return self._create_profile(account.id, role, full_name, getattr(account, 'email', None) or email)
