"""
Pytest configuration file for the Hospital Desk test suite.

This file defines shared fixtures and an in-memory stand-in for the parts of the
Supabase client the app uses, so tests run without a network or a project:
- `FakeAuth` mimics sign-up, password sign-in, sign-out and `get_user`, including
  unverified emails, and raises the real `supabase` auth error types.
- `FakeQuery` mimics the PostgREST builder (`select`, `insert`, `eq`, `order`,
  `limit`, `execute`), resolves embedded selects such as
  `profiles!appointments_doctor_profile_id_fkey (full_name)`, and enforces the
  unique and foreign-key constraints the real schema has.
- `FakeStorage` mimics bucket uploads and public URLs.

The fake is handed to `SessionManager` and `HospitalRecords` directly; nothing is patched.
"""
import datetime
import re
import uuid
from types import SimpleNamespace

import httpx
import pytest
from supabase import AuthApiError, PostgrestAPIError, StorageException

from hms.records import HospitalRecords
from hms.session import SessionManager

EMBED_PATTERN = re.compile(r'(\w+)(?:!(\w+))?\s*\(([^)]*)\)')

# Columns that must reference an existing patient.
PATIENT_FK_TABLES = {'appointments', 'lab_requests', 'prescriptions', 'medications', 'allergies'}

# Defaults the schema applies on insert.
COLUMN_DEFAULTS = {
    'appointments': {'status': 'waiting', 'receptionist_profile_id': None, 'problem_summary': None},
    'lab_requests': {'status': 'pending', 'appointment_id': None},
    'prescriptions': {'appointment_id': None},
    'medications': {'end_date': None, 'notes': None},
    'allergies': {'reaction': None, 'severity': None},
    'patients': {'phone': None, 'dob': None, 'gender': None},
}

BASE_TIME = datetime.datetime(2025, 9, 1, 9, 0, tzinfo=datetime.timezone.utc)


class FakeDatabase:
    """Tables held as lists of dict rows."""

    def __init__(self):
        self.tables = {name: [] for name in (
            'profiles', 'patients', 'appointments', 'lab_requests',
            'prescriptions', 'medications', 'allergies',
        )}
        self._clock = 0
        self._failures = {}

    def fail_next(self, table, exc):
        """Makes the next request against `table` raise `exc`."""
        self._failures[table] = exc

    def check_failure(self, table):
        exc = self._failures.pop(table, None)
        if exc is not None:
            raise exc

    def next_timestamp(self):
        self._clock += 1
        return (BASE_TIME + datetime.timedelta(minutes=self._clock)).isoformat()

    def insert(self, table, row):
        if table == 'profiles' and any(p['auth_uid'] == row.get('auth_uid') for p in self.tables['profiles']):
            raise PostgrestAPIError({
                'message': 'duplicate key value violates unique constraint "profiles_auth_uid_key"',
                'code': '23505',
            })
        if table in PATIENT_FK_TABLES and not any(p['id'] == row.get('patient_id') for p in self.tables['patients']):
            raise PostgrestAPIError({
                'message': f'insert or update on table "{table}" violates foreign key constraint "{table}_patient_id_fkey"',
                'code': '23503',
            })
        stored = dict(COLUMN_DEFAULTS.get(table, {}))
        stored.update(row)
        stored['id'] = str(uuid.uuid4())
        if table != 'profiles':
            stored.setdefault('created_at', self.next_timestamp())
        self.tables[table].append(stored)
        return dict(stored)

    def seed(self, table, **row):
        """Inserts a row directly, bypassing constraints. Returns the stored row."""
        row.setdefault('id', str(uuid.uuid4()))
        if table != 'profiles':
            row.setdefault('created_at', self.next_timestamp())
        self.tables[table].append(row)
        return row

    def embed(self, table, row, columns):
        result = dict(row)
        for name, hint, fields in EMBED_PATTERN.findall(columns):
            if hint:
                fk_column = hint[len(table) + 1:-len('_fkey')]
            else:
                fk_column = name.rstrip('s') + '_id'
            target = next((r for r in self.tables[name] if r['id'] == row.get(fk_column)), None)
            wanted = [f.strip() for f in fields.split(',') if f.strip()]
            result[name] = {f: target.get(f) for f in wanted} if target else None
        return result


class FakeQuery:
    def __init__(self, client, table):
        self._client = client
        self._db = client.db
        self._table = table
        self._columns = '*'
        self._row = None
        self._filters = []
        self._order = None
        self._limit = None

    def select(self, columns='*'):
        self._columns = columns
        return self

    def insert(self, row):
        self._row = row
        return self

    def eq(self, column, value):
        self._filters.append((column, value))
        return self

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def execute(self):
        action = 'insert' if self._row is not None else 'select'
        self._client.calls.append(f"{action}:{self._table}")
        self._db.check_failure(self._table)
        if self._row is not None:
            return SimpleNamespace(data=[self._db.insert(self._table, self._row)])

        rows = [r for r in self._db.tables[self._table]
                if all(r.get(column) == value for column, value in self._filters)]
        if self._order:
            column, desc = self._order
            rows = sorted(rows, key=lambda r: r.get(column) or '', reverse=desc)
        if self._limit is not None:
            rows = rows[:self._limit]
        return SimpleNamespace(data=[self._db.embed(self._table, r, self._columns) for r in rows])


class FakeAuth:
    def __init__(self, client):
        self._client = client
        self.accounts = {}
        self.current = None
        self.fail_sign_out = False
        self.fail_get_user = None

    def _user(self, account):
        return SimpleNamespace(id=account['id'], email=account['email'], user_metadata=dict(account['metadata']))

    def confirm(self, email):
        """Simulates the user clicking the verification link."""
        self.accounts[email]['confirmed'] = True

    def sign_up(self, credentials):
        self._client.calls.append('auth:sign_up')
        email = credentials['email']
        if email in self.accounts:
            raise AuthApiError("User already registered", 422, "user_already_exists")
        account = {
            'id': str(uuid.uuid4()),
            'email': email,
            'password': credentials['password'],
            'confirmed': False,
            'metadata': credentials.get('options', {}).get('data', {}),
        }
        self.accounts[email] = account
        return SimpleNamespace(user=self._user(account), session=None)

    def sign_in_with_password(self, credentials):
        self._client.calls.append('auth:sign_in')
        account = self.accounts.get(credentials['email'])
        if account is None or account['password'] != credentials['password']:
            raise AuthApiError("Invalid login credentials", 400, "invalid_credentials")
        if not account['confirmed']:
            raise AuthApiError("Email not confirmed", 400, "email_not_confirmed")
        self.current = account
        return SimpleNamespace(user=self._user(account), session=SimpleNamespace(access_token='token'))

    def sign_out(self):
        self._client.calls.append('auth:sign_out')
        if self.fail_sign_out:
            raise httpx.ConnectError("network unreachable")
        self.current = None

    def get_user(self):
        self._client.calls.append('auth:get_user')
        if self.fail_get_user is not None:
            raise self.fail_get_user
        if self.current is None:
            return None
        return SimpleNamespace(user=self._user(self.current))


class FakeBucket:
    def __init__(self, storage, name):
        self._storage = storage
        self._name = name

    def upload(self, path, file):
        self._storage.client.calls.append(f"storage:upload:{self._name}")
        objects = self._storage.objects.setdefault(self._name, {})
        if path in objects:
            raise StorageException({'statusCode': 409, 'error': 'Duplicate', 'message': 'The resource already exists'})
        objects[path] = file
        return SimpleNamespace(path=path, full_path=f"{self._name}/{path}")

    def get_public_url(self, path):
        return f"https://example.supabase.co/storage/v1/object/public/{self._name}/{path}"


class FakeStorage:
    def __init__(self, client):
        self.client = client
        self.objects = {}

    def from_(self, bucket):
        return FakeBucket(self, bucket)


class FakeSupabase:
    """The subset of `supabase.Client` used by the app."""

    def __init__(self):
        self.calls = []
        self.db = FakeDatabase()
        self.auth = FakeAuth(self)
        self.storage = FakeStorage(self)

    def table(self, name):
        return FakeQuery(self, name)


@pytest.fixture
def fake_client():
    return FakeSupabase()


@pytest.fixture
def session(fake_client):
    return SessionManager(fake_client)


@pytest.fixture
def records(fake_client):
    return HospitalRecords(fake_client)


def sign_up_and_verify(session, fake_client, email, role, full_name="Test User", password="S3cure!pass"):
    """Creates a verified account with a profile and returns the profile."""
    profile = session.sign_up(email, password, full_name, role)
    fake_client.auth.confirm(email)
    return profile


@pytest.fixture
def doctor(session, fake_client):
    """
    Provides a signed-in doctor.

    Yields:
        Profile: The doctor's profile; `session` is authenticated as this doctor.
    """
    sign_up_and_verify(session, fake_client, "anita@hospital.test", "Doctor", full_name="Dr. Anita Sharma")
    return session.sign_in("anita@hospital.test", "S3cure!pass")


@pytest.fixture
def patient(records, doctor):
    return records.create_patient(display_name="Asha Rao", phone="+91 9800000000", dob="1990-04-12", gender="Female")
