"""Select the gateway implementation once at startup."""

import logging

from supabase import create_client

from meal_planner.adapters.gateway import Gateway
from meal_planner.adapters.kv_storage import KeyValueStorage
from meal_planner.adapters.local_gateway import LocalGateway
from meal_planner.adapters.supabase_gateway import SupabaseGateway
from meal_planner.config import Settings, is_remote_configured

_logger = logging.getLogger(__name__)


def build_gateway(settings: Settings, storage: KeyValueStorage) -> Gateway:
    """Return a Supabase gateway when configured, else the local fallback."""
    if not is_remote_configured(settings.supabase_url, settings.supabase_anon_key):
        _logger.warning(
            "Supabase credentials missing or invalid, using local fallback store"
        )
        return LocalGateway(storage)
    try:
        client = create_client(settings.supabase_url, settings.supabase_anon_key)
    except Exception:
        _logger.exception("Supabase client initialization failed, using local store")
        return LocalGateway(storage)
    _logger.info("Using Supabase backend at %s", settings.supabase_url)
    return SupabaseGateway(
        client=client,
        timeout_seconds=settings.remote_timeout_seconds,
        retry_attempts=settings.write_retry_attempts,
        retry_delay_seconds=settings.write_retry_delay_seconds,
    )
