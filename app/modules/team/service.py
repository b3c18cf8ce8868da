import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from supabase import Client

from app.core.errors import ForbiddenError, NotFoundError, ValidationFailed
from app.core.utils import utcnow_iso
from app.modules.team.schemas import InviteMemberRequest

logger = logging.getLogger(__name__)

MEMBER_COLUMNS = "id, email, first_name, last_name, team_role, created_at, updated_at"


class TeamService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _team_id(self, profile: Dict[str, Any]) -> str:
        team_id = profile.get("team_id")
        if not team_id:
            raise NotFoundError("User is not associated with any team", code="NO_TEAM")
        return team_id

    def _team_row(self, team_id: str) -> Dict[str, Any]:
        result = self.supabase.table("teams")\
            .select("*")\
            .eq("id", team_id)\
            .limit(1)\
            .execute()
        if not result.data:
            raise NotFoundError("Team not found", code="NO_TEAM")
        return result.data[0]

    def _member(self, team_id: str, member_id: str) -> Dict[str, Any]:
        result = self.supabase.table("profiles")\
            .select(MEMBER_COLUMNS + ", team_id")\
            .eq("id", member_id)\
            .eq("team_id", team_id)\
            .limit(1)\
            .execute()
        if not result.data:
            raise NotFoundError("Team member not found", code="MEMBER_NOT_FOUND")
        return result.data[0]

    def _audit(self, user_id: str, action: str, resource_type: str, resource_id: Optional[str], details: Dict[str, Any]):
        try:
            self.supabase.table("audit_logs").insert({
                "user_id": user_id,
                "action": action,
                "resource_type": resource_type,
                "resource_id": resource_id,
                "details": details,
                "created_at": utcnow_iso(),
            }).execute()
        except Exception as e:
            logger.error(f"Failed to write audit log '{action}': {e}")

    def _guard_member_change(self, profile: Dict[str, Any], team: Dict[str, Any], member_id: str, action: str):
        if member_id == profile["id"]:
            raise ValidationFailed(f"You cannot {action} yourself", code="CANNOT_MODIFY_SELF")
        if member_id == team.get("owner_id"):
            raise ForbiddenError(f"The team owner cannot be {action}d", code="CANNOT_MODIFY_OWNER")

    def get_team(self, profile: Dict[str, Any]) -> Dict[str, Any]:
        team = self._team_row(self._team_id(profile))
        count = self.supabase.table("profiles")\
            .select("id", count="exact")\
            .eq("team_id", team["id"])\
            .execute()
        return {
            **team,
            "member_count": count.count or 0,
            "is_owner": team.get("owner_id") == profile["id"],
        }

    def list_members(self, team_id: str) -> List[Dict[str, Any]]:
        try:
            result = self.supabase.table("profiles")\
                .select(MEMBER_COLUMNS)\
                .eq("team_id", team_id)\
                .order("created_at")\
                .execute()
            return result.data or []
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def invite_member(self, profile: Dict[str, Any], request: InviteMemberRequest) -> Dict[str, Any]:
        """Add an existing user to the team, or record a pending invitation for an unknown email"""
        team_id = self._team_id(profile)
        existing = self.supabase.table("profiles")\
            .select("id, team_id, first_name, last_name")\
            .eq("email", request.email)\
            .limit(1)\
            .execute()
        existing_user = existing.data[0] if existing.data else None

        if existing_user:
            if existing_user.get("team_id") == team_id:
                raise ValidationFailed("This user is already a member of your team", code="USER_ALREADY_IN_TEAM")
            if existing_user.get("team_id"):
                raise ValidationFailed("This user is already a member of another team", code="USER_HAS_TEAM")

        team = self._team_row(team_id)
        members = self.supabase.table("profiles")\
            .select("id", count="exact")\
            .eq("team_id", team_id)\
            .execute()
        max_agents = team.get("max_agents")
        if max_agents is not None and (members.count or 0) >= max_agents:
            raise ValidationFailed(
                "Your team has reached the maximum number of members for your plan",
                code="TEAM_LIMIT_REACHED",
            )

        if existing_user:
            result = self.supabase.table("profiles")\
                .update({
                    "team_id": team_id,
                    "team_role": request.role,
                    "first_name": request.first_name or existing_user.get("first_name"),
                    "last_name": request.last_name or existing_user.get("last_name"),
                    "updated_at": utcnow_iso(),
                })\
                .eq("id", existing_user["id"])\
                .execute()
            self._audit(profile["id"], "member_added_existing", "team_member", existing_user["id"], {
                "email": request.email, "role": request.role, "team_id": team_id,
            })
            logger.info(f"User {existing_user['id']} joined team {team_id} as {request.role}")
            member = result.data[0] if result.data else {**existing_user, "team_id": team_id, "team_role": request.role}
            return {"status": "added", "member": member}

        result = self.supabase.table("team_invitations").insert({
            "team_id": team_id,
            "email": request.email,
            "role": request.role,
            "first_name": request.first_name,
            "last_name": request.last_name,
            "invited_by": profile["id"],
            "status": "pending",
            "created_at": utcnow_iso(),
        }).execute()
        invitation = result.data[0] if result.data else None
        self._audit(profile["id"], "invitation_sent", "team_invitation", invitation.get("id") if invitation else None, {
            "email": request.email, "role": request.role, "team_id": team_id,
        })
        logger.info(f"Invitation for {request.email} to team {team_id} recorded")
        return {"status": "invited", "invitation": invitation}

    def update_member_role(self, profile: Dict[str, Any], member_id: str, role: str) -> Dict[str, Any]:
        team_id = self._team_id(profile)
        team = self._team_row(team_id)
        self._guard_member_change(profile, team, member_id, "update")
        member = self._member(team_id, member_id)

        result = self.supabase.table("profiles")\
            .update({"team_role": role, "updated_at": utcnow_iso()})\
            .eq("id", member_id)\
            .execute()
        self._audit(profile["id"], "member_role_updated", "team_member", member_id, {
            "old_role": member.get("team_role"), "new_role": role,
        })
        return result.data[0] if result.data else {**member, "team_role": role}

    def remove_member(self, profile: Dict[str, Any], member_id: str) -> bool:
        team_id = self._team_id(profile)
        team = self._team_row(team_id)
        self._guard_member_change(profile, team, member_id, "remove")
        self._member(team_id, member_id)

        self.supabase.table("profiles")\
            .update({"team_id": None, "team_role": None, "updated_at": utcnow_iso()})\
            .eq("id", member_id)\
            .execute()
        self._audit(profile["id"], "member_removed", "team_member", member_id, {"team_id": team_id})
        logger.info(f"User {member_id} removed from team {team_id}")
        return True
