from fastapi import APIRouter, Depends
from app.database.supabase_client import get_service_supabase
from app.modules.team.schemas import InviteMemberRequest, UpdateMemberRequest
from app.modules.team.service import TeamService
from app.core.dependencies import get_current_profile, require_team_role
from app.core.responses import success
from supabase import Client
from typing import Dict

router = APIRouter(prefix="/team", tags=["team"])


# Membership spans other users' profiles, so team queries run with the service role
def get_team_service(supabase: Client = Depends(get_service_supabase)) -> TeamService:
    return TeamService(supabase)


@router.get("")
async def get_team(
    profile: Dict = Depends(get_current_profile),
    service: TeamService = Depends(get_team_service)
):
    """Get the caller's team"""
    return success(service.get_team(profile))


@router.get("/members")
async def list_members(
    profile: Dict = Depends(get_current_profile),
    service: TeamService = Depends(get_team_service)
):
    """List team members, oldest first"""
    team = service.get_team(profile)
    return success(service.list_members(team["id"]))


@router.post("/members", status_code=201)
async def invite_member(
    request: InviteMemberRequest,
    profile: Dict = Depends(require_team_role("admin")),
    service: TeamService = Depends(get_team_service)
):
    """Add a user to the team or invite them by email (owner/admin)"""
    result = service.invite_member(profile, request)
    message = "Team member added successfully" if result["status"] == "added" else "Invitation created"
    return success(result, message=message)


@router.put("/members/{member_id}")
async def update_member_role(
    member_id: str,
    request: UpdateMemberRequest,
    profile: Dict = Depends(require_team_role("admin")),
    service: TeamService = Depends(get_team_service)
):
    """Change a member's role (owner/admin)"""
    member = service.update_member_role(profile, member_id, request.role)
    return success(member, message="Member role updated")


@router.delete("/members/{member_id}")
async def remove_member(
    member_id: str,
    profile: Dict = Depends(require_team_role("admin")),
    service: TeamService = Depends(get_team_service)
):
    """Remove a member from the team (owner/admin)"""
    service.remove_member(profile, member_id)
    return success(message="Member removed from team")
