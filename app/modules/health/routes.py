from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from app.database.supabase_client import get_service_supabase
from app.modules.health.service import HealthService
from app.core.responses import success
from supabase import Client

router = APIRouter(prefix="/health", tags=["health"])


def get_health_service(supabase: Client = Depends(get_service_supabase)) -> HealthService:
    return HealthService(supabase)


@router.get("/detailed")
async def detailed_health(service: HealthService = Depends(get_health_service)):
    """Database ping plus configuration of Vapi, webhooks and cron"""
    report = service.detailed()
    status_code = 503 if report["status"] == "unhealthy" else 200
    return JSONResponse(status_code=status_code, content=success(report))
