"""
This module builds the Supabase client used by the session manager and the records facade.

Each UI session gets its own client: the client keeps the signed-in user's
auth session, so it must never be shared between browser sessions.
"""
# hospital_desk/hms/client.py

import logging

from supabase import Client, create_client

from hms.config import Settings

logger = logging.getLogger(__name__)


def create_supabase_client(settings: Settings) -> Client:
    """Creates a Supabase client for the configured project.

    Args:
        settings: Validated backend settings.

    Returns:
        Client: A new, unauthenticated client.
    """
    logger.info("Connecting to Supabase project at %s", settings.supabase_url)
    return create_client(settings.supabase_url, settings.supabase_anon_key)
