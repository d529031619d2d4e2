"""
Tests for project team membership
"""
from budget_hub.models.models import Notification, ProjectTeam


def test_creator_adds_member_once(client, db_session, auth_headers, make_user, make_project):
    owner = make_user(role="manager")
    project = make_project(owner)
    newcomer = make_user()
    payload = {"project_id": str(project.id), "user_id": str(newcomer.id)}

    resp = client.post("/api/project-teams", json=payload, headers=auth_headers(owner))
    assert resp.status_code == 201
    assert resp.json()["project_team"]["role"] == "member"

    resp = client.post("/api/project-teams", json=payload, headers=auth_headers(owner))
    assert resp.status_code == 400
    assert resp.json() == {"error": "User is already a member of this project team"}

    db_session.expire_all()
    assert db_session.query(ProjectTeam).filter(ProjectTeam.user_id == newcomer.id).count() == 1


def test_adding_requires_manage_team(client, auth_headers, make_user, make_project, add_member):
    project = make_project(make_user(role="manager"))
    lead = make_user()
    add_member(project, lead, role="lead")

    resp = client.post(
        "/api/project-teams",
        json={"project_id": str(project.id), "user_id": str(make_user().id)},
        headers=auth_headers(lead),
    )
    assert resp.status_code == 403
    assert resp.json() == {"error": "Insufficient permissions. Required: manage_team"}


def test_manager_role_assignment_notifies(client, db_session, auth_headers, make_user, make_project):
    owner = make_user(role="manager")
    project = make_project(owner, name="Migration")
    newcomer = make_user()

    client.post(
        "/api/project-teams",
        json={"project_id": str(project.id), "user_id": str(newcomer.id), "role": "manager"},
        headers=auth_headers(owner),
    )
    db_session.expire_all()
    note = db_session.query(Notification).filter(Notification.user_id == newcomer.id).one()
    assert note.title == "Project Admin Assignment"


def test_admin_role_not_assignable_here(client, auth_headers, make_user, make_project):
    owner = make_user(role="manager")
    project = make_project(owner)
    resp = client.post(
        "/api/project-teams",
        json={"project_id": str(project.id), "user_id": str(make_user().id), "role": "admin"},
        headers=auth_headers(owner),
    )
    assert resp.status_code == 400


def test_unknown_user(client, auth_headers, make_user, make_project):
    owner = make_user(role="manager")
    project = make_project(owner)
    resp = client.post(
        "/api/project-teams",
        json={"project_id": str(project.id), "user_id": "00000000-0000-0000-0000-000000000001"},
        headers=auth_headers(owner),
    )
    assert resp.status_code == 404
    assert resp.json() == {"error": "User not found"}


def test_list_requires_a_filter(client, auth_headers, make_user, make_project, add_member):
    owner = make_user(role="manager")
    project = make_project(owner)
    member = make_user()
    add_member(project, member)

    resp = client.get("/api/project-teams", headers=auth_headers(member))
    assert resp.status_code == 400
    assert resp.json() == {"error": "Either project_id or user_id is required"}

    body = client.get(f"/api/project-teams?project_id={project.id}", headers=auth_headers(member)).json()
    assert body["total"] == 1
    assert body["project_teams"][0]["user_id"] == str(member.id)

    resp = client.get(f"/api/project-teams?user_id={owner.id}", headers=auth_headers(member))
    assert resp.status_code == 403


def test_remove_member(client, db_session, auth_headers, make_user, make_project, add_member):
    owner = make_user(role="manager")
    project = make_project(owner)
    member = make_user()
    membership = add_member(project, member)
    membership_id = membership.id

    assert client.delete(f"/api/project-teams/{membership_id}", headers=auth_headers(member)).status_code == 403

    resp = client.delete(f"/api/project-teams/{membership_id}", headers=auth_headers(owner))
    assert resp.status_code == 200
    assert resp.json()["project_team"] == {
        "id": str(membership_id),
        "project_id": str(project.id),
        "user_id": str(member.id),
    }
    resp = client.delete(f"/api/project-teams/{membership_id}", headers=auth_headers(owner))
    assert resp.status_code == 404


def test_user_projects(client, auth_headers, admin, make_user, make_project, add_member):
    owner = make_user(role="manager")
    project = make_project(owner, name="Analytics")
    member = make_user()
    add_member(project, member, role="lead")

    body = client.get(f"/api/project-teams/user-projects/{member.id}", headers=auth_headers(member)).json()
    assert body["total"] == 1
    assert body["projects"][0]["team_role"] == "lead"
    assert client.get(f"/api/project-teams/user-projects/{member.id}", headers=auth_headers(owner)).status_code == 403
    assert client.get(f"/api/project-teams/user-projects/{member.id}", headers=auth_headers(admin)).status_code == 200


def test_teams_listing_scope(client, auth_headers, admin, make_user, make_project, add_member):
    owner = make_user(role="manager", full_name="Olivia Owner")
    alpha = make_project(owner, name="Alpha")
    beta = make_project(make_user(role="manager"), name="Beta")
    alice = make_user(full_name="Alice Analyst")
    add_member(alpha, alice)
    add_member(beta, make_user(full_name="Bob Builder"))

    body = client.get("/api/teams", headers=auth_headers(owner)).json()
    assert body["total"] == 1
    assert body["teams"][0]["user_name"] == "Alice Analyst"

    body = client.get("/api/teams?search=builder", headers=auth_headers(admin)).json()
    assert body["total"] == 1
    assert body["teams"][0]["project_name"] == "Beta"


def test_teams_routes_require_system_manager(client, auth_headers, make_user, make_project):
    owner = make_user()
    project = make_project(owner)
    payload = {"project_id": str(project.id), "user_id": str(make_user().id)}

    assert client.post("/api/teams", json=payload, headers=auth_headers(owner)).status_code == 403

    manager = make_user(role="manager")
    other = make_project(manager, name="Other")
    resp = client.post(
        "/api/teams", json={"project_id": str(other.id), "user_id": payload["user_id"]}, headers=auth_headers(manager)
    )
    assert resp.status_code == 201
    assert resp.json()["team"]["project_id"] == str(other.id)
