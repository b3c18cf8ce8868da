import logging
from typing import Optional

from supabase import create_client, Client
from app.config.settings import settings

logger = logging.getLogger(__name__)


class SupabaseClient:
    """Process-wide Supabase clients.

    The anon client serves user-facing routes, where row-level security scopes
    every query to the caller. The service client is for webhooks, cron/sync
    jobs, team administration and health checks, which act across tenants.
    """

    _client: Optional[Client] = None
    _service_client: Optional[Client] = None
    _warned_no_service_key = False

    @classmethod
    def get_client(cls) -> Client:
        if cls._client is None:
            cls._client = create_client(settings.supabase_url, settings.supabase_key)
        return cls._client

    @classmethod
    def get_service_client(cls) -> Client:
        if cls._service_client is None:
            if not settings.supabase_service_role_key:
                if not cls._warned_no_service_key:
                    logger.warning(
                        "SUPABASE_SERVICE_ROLE_KEY is not set; webhook and sync writes "
                        "run with the anon key and are subject to RLS"
                    )
                    cls._warned_no_service_key = True
                return cls.get_client()
            cls._service_client = create_client(
                settings.supabase_url, settings.supabase_service_role_key
            )
        return cls._service_client

    @classmethod
    def reset_client(cls):
        cls._client = None
        cls._service_client = None
        cls._warned_no_service_key = False


def get_supabase() -> Client:
    return SupabaseClient.get_client()


def get_service_supabase() -> Client:
    return SupabaseClient.get_service_client()
