"""
This module loads the settings needed to talk to the Supabase backend.

Two values are required: the project URL and the anonymous (publishable) key.
They are read from the process environment, after loading a `.env` file if one
is present. Values that are missing, blank, or still the placeholder text from
the sample `.env` are rejected with a `ConfigurationError` so that the UI can
stop before any remote call is attempted.
"""
# hospital_desk/hms/config.py

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from hms.errors import ConfigurationError

logger = logging.getLogger(__name__)

URL_VAR = 'SUPABASE_URL'
KEY_VAR = 'SUPABASE_ANON_KEY'
LOG_LEVEL_VAR = 'HMS_LOG_LEVEL'

PLACEHOLDERS = {
    URL_VAR: 'your_supabase_project_url',
    KEY_VAR: 'your_supabase_anon_key',
}


@dataclass(frozen=True)
class Settings:
    """Validated backend settings.

    Attributes:
        supabase_url (str): The Supabase project URL.
        supabase_anon_key (str): The anonymous key used by the client.
        log_level (str): The root logging level name.
    """
    supabase_url: str
    supabase_anon_key: str
    log_level: str = 'INFO'

    def __repr__(self):
        # Keep the key out of logs and tracebacks.
        return f"Settings(supabase_url={self.supabase_url!r}, supabase_anon_key='***', log_level={self.log_level!r})"


def _is_placeholder(name, value):
    return value.strip().lower() == PLACEHOLDERS[name]


def load_settings(environ=None) -> Settings:
    """Reads and validates the backend settings.

    Args:
        environ (Mapping, optional): Where to read the variables from. Defaults to
            `os.environ` after loading a `.env` file.

    Returns:
        Settings: The validated settings.

    Raises:
        ConfigurationError: If a required value is missing, blank, a placeholder,
            or the URL is not an http(s) URL.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    problems = []
    values = {}
    for name in (URL_VAR, KEY_VAR):
        value = (environ.get(name) or '').strip()
        if not value:
            problems.append(f"{name} is not set")
        elif _is_placeholder(name, value):
            problems.append(f"{name} still has its placeholder value")
        values[name] = value

    url = values[URL_VAR]
    if url and not _is_placeholder(URL_VAR, url) and not url.startswith(('http://', 'https://')):
        problems.append(f"{URL_VAR} must be an http(s) URL")

    if problems:
        raise ConfigurationError(
            "Please configure Supabase environment variables in your .env file: " + "; ".join(problems)
        )

    return Settings(
        supabase_url=url.rstrip('/'),
        supabase_anon_key=values[KEY_VAR],
        log_level=(environ.get(LOG_LEVEL_VAR) or 'INFO').upper(),
    )


def configure_logging(level='INFO'):
    """Configures the root logger once for the running app."""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.debug("Logging configured at %s", level)
