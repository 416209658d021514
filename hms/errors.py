"""
This module defines the error types raised by the Hospital Desk core.

Every failure that leaves the session manager or the records facade is one of:
- `ConfigurationError`: the Supabase endpoint settings are missing or still placeholders.
- `ValidationError`: a required field is missing or a value is outside its closed set.
- `AuthenticationError`: the provider refused the credentials, or the account is unusable.
- `RemoteOperationError`: anything the backing store, storage or network reported.

The UI catches `HMSError` and shows `user_message` as a notification.
"""
# hospital_desk/hms/errors.py


class HMSError(Exception):
    """Base class for all Hospital Desk errors."""

    @property
    def user_message(self) -> str:
        return str(self)


class ConfigurationError(HMSError):
    """Raised when the application cannot reach a usable backend configuration."""


class ValidationError(HMSError):
    """Raised when input fails the minimal shape checks.

    Attributes:
        field (str): The offending field name, when known.
    """

    def __init__(self, message, field=None):
        super().__init__(message)
        self.field = field


class AuthenticationError(HMSError):
    """Raised when sign-in fails.

    Attributes:
        reason (str): One of INVALID_CREDENTIALS, EMAIL_NOT_VERIFIED, PROFILE_MISSING or UNKNOWN.
    """

    INVALID_CREDENTIALS = 'invalid_credentials'
    EMAIL_NOT_VERIFIED = 'email_not_verified'
    PROFILE_MISSING = 'profile_missing'
    UNKNOWN = 'unknown'

    _MESSAGES = {
        INVALID_CREDENTIALS: "Invalid email or password. Please check your credentials and try again.",
        EMAIL_NOT_VERIFIED: "Please check your email and click the verification link before signing in.",
        PROFILE_MISSING: "Your account has no hospital profile. Please contact support.",
    }

    def __init__(self, message, reason=UNKNOWN):
        super().__init__(message)
        self.reason = reason

    @property
    def user_message(self) -> str:
        return self._MESSAGES.get(self.reason) or str(self) or "Authentication failed"


class RemoteOperationError(HMSError):
    """Raised when the remote store, storage or network fails an operation.

    Attributes:
        operation (str): The facade or session operation that failed.
        code (str): The provider's error code, if it gave one.
    """

    def __init__(self, message, operation=None, code=None):
        super().__init__(message)
        self.operation = operation
        self.code = code
