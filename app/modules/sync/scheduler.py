import asyncio
import logging
from app.config.settings import settings
from app.database.supabase_client import get_service_supabase
from app.integrations.vapi_client import VapiClient
from app.modules.sync.service import VapiSyncService

logger = logging.getLogger(__name__)


def run_sync_once():
    """Reconcile Vapi resources for all users and process the sync queue."""
    if not settings.vapi_configured:
        logger.debug("Vapi not configured; scheduled sync skipped")
        return None
    vapi = VapiClient()
    try:
        service = VapiSyncService(get_service_supabase(), vapi)
        result = service.run_scheduled_sync()
        logger.info(
            f"Scheduled sync: {result['users_synced']} user(s) reconciled, "
            f"{result['jobs']['processed']} job(s) processed, {len(result['errors'])} error(s)"
        )
        return result
    finally:
        vapi.close()


async def sync_scheduler_loop():
    """Background task that periodically reconciles with Vapi and drains the sync queue"""
    while True:
        try:
            await asyncio.to_thread(run_sync_once)
        except Exception as e:
            logger.error(f"Error in sync scheduler loop: {str(e)}")

        await asyncio.sleep(settings.sync_interval_sec)
