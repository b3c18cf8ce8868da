"""Team membership management.

Invariants:
    - Nobody can change their own membership, and the owner cannot be changed by anyone
    - Invites respect the team's max_agents; existing users join directly, others get a pending invitation
    - Membership changes are audited
    - Member management routes require an admin role or team ownership
"""

import pytest

from app.core.errors import ForbiddenError, NotFoundError, ValidationFailed
from app.modules.team.schemas import InviteMemberRequest
from app.modules.team.service import TeamService
from conftest import USER_ID

TEAM_ID = "team-1"
OWNER_ID = "owner-1"


@pytest.fixture
def team(db):
    db.seed("teams", {"id": TEAM_ID, "name": "Acme Realty", "owner_id": OWNER_ID, "max_agents": 3})
    db.seed(
        "profiles",
        {"id": OWNER_ID, "email": "owner@example.com", "team_id": TEAM_ID, "team_role": "admin",
         "created_at": "2026-01-01T00:00:00+00:00"},
        {"id": "agent-1", "email": "agent1@example.com", "team_id": TEAM_ID, "team_role": "agent",
         "created_at": "2026-01-02T00:00:00+00:00"},
    )
    return db.rows("teams")[0]


@pytest.fixture
def owner(team):
    return {"id": OWNER_ID, "team_id": TEAM_ID, "team_role": "admin"}


@pytest.fixture
def service(db):
    return TeamService(db)


def test_get_team_counts_members(service, owner):
    team = service.get_team(owner)
    assert team["member_count"] == 2
    assert team["is_owner"] is True


def test_user_without_team(service):
    with pytest.raises(NotFoundError) as exc_info:
        service.get_team({"id": USER_ID, "team_id": None})
    assert exc_info.value.code == "NO_TEAM"


def test_list_members_in_join_order(service, owner):
    assert [m["id"] for m in service.list_members(TEAM_ID)] == [OWNER_ID, "agent-1"]


def test_invite_unknown_email_records_invitation(service, db, owner):
    result = service.invite_member(owner, InviteMemberRequest(email="new@example.com", role="agent"))

    assert result["status"] == "invited"
    invitation = db.rows("team_invitations")[0]
    assert invitation["status"] == "pending"
    assert invitation["invited_by"] == OWNER_ID
    assert db.rows("audit_logs")[0]["action"] == "invitation_sent"


def test_invite_existing_user_joins_team(service, db, owner):
    db.seed("profiles", {"id": "solo-1", "email": "solo@example.com", "team_id": None, "first_name": "Sam"})

    result = service.invite_member(owner, InviteMemberRequest(email="solo@example.com", role="viewer"))

    assert result["status"] == "added"
    joined = [p for p in db.rows("profiles") if p["id"] == "solo-1"][0]
    assert joined["team_id"] == TEAM_ID
    assert joined["team_role"] == "viewer"
    assert joined["first_name"] == "Sam"


def test_invite_rejects_members_of_any_team(service, db, owner):
    db.seed("profiles", {"id": "other-1", "email": "other@example.com", "team_id": "team-2"})

    with pytest.raises(ValidationFailed) as exc_info:
        service.invite_member(owner, InviteMemberRequest(email="agent1@example.com", role="agent"))
    assert exc_info.value.code == "USER_ALREADY_IN_TEAM"

    with pytest.raises(ValidationFailed) as exc_info:
        service.invite_member(owner, InviteMemberRequest(email="other@example.com", role="agent"))
    assert exc_info.value.code == "USER_HAS_TEAM"


def test_invite_respects_team_size(service, db, owner):
    db.seed("profiles", {"id": "agent-2", "email": "agent2@example.com", "team_id": TEAM_ID, "team_role": "agent"})

    with pytest.raises(ValidationFailed) as exc_info:
        service.invite_member(owner, InviteMemberRequest(email="new@example.com", role="agent"))
    assert exc_info.value.code == "TEAM_LIMIT_REACHED"
    assert db.rows("team_invitations") == []


def test_cannot_change_self_or_owner(service, owner):
    with pytest.raises(ValidationFailed) as exc_info:
        service.update_member_role(owner, OWNER_ID, "viewer")
    assert exc_info.value.code == "CANNOT_MODIFY_SELF"

    admin = {"id": "agent-1", "team_id": TEAM_ID, "team_role": "admin"}
    with pytest.raises(ForbiddenError) as exc_info:
        service.remove_member(admin, OWNER_ID)
    assert exc_info.value.code == "CANNOT_MODIFY_OWNER"


def test_update_role_is_audited(service, db, owner):
    updated = service.update_member_role(owner, "agent-1", "admin")

    assert updated["team_role"] == "admin"
    audit = db.rows("audit_logs")[0]
    assert audit["action"] == "member_role_updated"
    assert audit["details"] == {"old_role": "agent", "new_role": "admin"}


def test_remove_member_clears_membership(service, db, owner):
    assert service.remove_member(owner, "agent-1") is True

    removed = [p for p in db.rows("profiles") if p["id"] == "agent-1"][0]
    assert removed["team_id"] is None
    assert removed["team_role"] is None


def test_member_of_other_team_is_not_found(service, db, owner):
    db.seed("profiles", {"id": "stranger", "email": "s@example.com", "team_id": "team-2"})
    with pytest.raises(NotFoundError) as exc_info:
        service.remove_member(owner, "stranger")
    assert exc_info.value.code == "MEMBER_NOT_FOUND"


def test_agent_cannot_manage_members(client, db, team):
    profile = next(p for p in db.rows("profiles") if p["id"] == USER_ID)
    profile.update({"team_id": TEAM_ID, "team_role": "agent"})

    res = client.post("/api/v1/team/members", json={"email": "new@example.com", "role": "agent"})

    assert res.status_code == 403
    assert res.json()["error"]["code"] == "INSUFFICIENT_PERMISSIONS"


def test_admin_can_invite(client, db, team):
    profile = next(p for p in db.rows("profiles") if p["id"] == USER_ID)
    profile.update({"team_id": TEAM_ID, "team_role": "admin"})
    team["max_agents"] = 10

    res = client.post("/api/v1/team/members", json={"email": "new@example.com", "role": "agent"})

    assert res.status_code == 201
    assert res.json()["data"]["status"] == "invited"
