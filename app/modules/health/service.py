import logging
import time
from typing import Any, Dict

from supabase import Client

from app.config.settings import settings

logger = logging.getLogger(__name__)


class HealthService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def check_database(self) -> Dict[str, Any]:
        started = time.monotonic()
        try:
            self.supabase.table("profiles").select("id").limit(1).execute()
            return {"status": "healthy", "latency_ms": round((time.monotonic() - started) * 1000, 1)}
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {"status": "unhealthy", "error": str(e)}

    def detailed(self) -> Dict[str, Any]:
        database = self.check_database()
        checks = {
            "database": database,
            "vapi": {"configured": settings.vapi_configured},
            "webhooks": {
                "vapi_secret_configured": bool(settings.vapi_webhook_secret),
                "make_configured": settings.make_configured,
            },
            "cron": {"secret_configured": bool(settings.cron_secret)},
            "sync_scheduler": {
                "enabled": settings.sync_scheduler_enabled,
                "interval_sec": settings.sync_interval_sec,
            },
        }
        if database["status"] != "healthy":
            overall = "unhealthy"
        elif not settings.vapi_configured or not (settings.vapi_webhook_secret or settings.make_configured):
            overall = "degraded"
        else:
            overall = "healthy"
        return {"status": overall, "environment": settings.environment, "checks": checks}
