"""
Core dependencies for route protection and profile / team role checks
"""

import hmac
import logging
from typing import Any, Dict, Optional

from fastapi import Depends, Request, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from supabase import Client

from app.config.settings import settings
from app.core.errors import ForbiddenError, NotFoundError, UnauthorizedError
from app.database.supabase_client import get_supabase
from app.modules.auth.service import AuthService

logger = logging.getLogger(__name__)

security = HTTPBearer()


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> Dict[str, Any]:
    """Extract current user info from the Supabase JWT"""
    return auth_service.get_current_user(credentials.credentials)


def fetch_profile(user_id: str, supabase: Client) -> Optional[Dict[str, Any]]:
    result = supabase.table("profiles")\
        .select("*")\
        .eq("id", user_id)\
        .limit(1)\
        .execute()
    return result.data[0] if result.data else None


def get_current_profile(
    user_data: Dict = Depends(get_current_user),
    supabase: Client = Depends(get_supabase)
) -> Dict[str, Any]:
    """Profile row of the authenticated user (plan, limits, team membership)"""
    profile = fetch_profile(user_data["id"], supabase)
    if not profile:
        raise NotFoundError("User profile not found", code="PROFILE_NOT_FOUND")
    return profile


def require_team_role(*roles: str):
    """Factory: allow team owners and members whose team_role is one of `roles`."""
    def check_team_role(
        profile: Dict = Depends(get_current_profile),
        supabase: Client = Depends(get_supabase)
    ) -> Dict[str, Any]:
        team_id = profile.get("team_id")
        if not team_id:
            raise NotFoundError("User is not part of a team", code="NO_TEAM")
        if profile.get("team_role") in roles:
            return profile
        team = supabase.table("teams")\
            .select("owner_id")\
            .eq("id", team_id)\
            .limit(1)\
            .execute()
        if team.data and team.data[0].get("owner_id") == profile["id"]:
            return profile
        raise ForbiddenError(
            f"Insufficient permissions. Required role: {', '.join(roles)}",
            code="INSUFFICIENT_PERMISSIONS"
        )
    return check_team_role


def require_system_admin(profile: Dict = Depends(get_current_profile)) -> Dict[str, Any]:
    if not profile.get("is_system_admin"):
        raise ForbiddenError("System administrator access required")
    return profile


def secrets_match(provided: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time comparison; an unset expected secret never matches."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def require_cron_secret(request: Request) -> None:
    """Authorization: Bearer <CRON_SECRET>. Open outside production when no secret is configured."""
    if not settings.cron_secret:
        if settings.is_production:
            raise UnauthorizedError("Cron secret is not configured")
        return
    header = request.headers.get("authorization", "")
    token = header[7:] if header.lower().startswith("bearer ") else ""
    if not secrets_match(token, settings.cron_secret):
        raise UnauthorizedError("Invalid cron secret")
