"""
Tests for business units
"""
from budget_hub.models.models import BusinessUnit


def _unit(db_session, name="Engineering"):
    unit = BusinessUnit(name=name)
    db_session.add(unit)
    db_session.commit()
    db_session.refresh(unit)
    return unit


def test_create_and_duplicate_name(client, auth_headers, make_user):
    manager = make_user(role="manager")

    resp = client.post("/api/business-units", json={"name": "Operations"}, headers=auth_headers(manager))
    assert resp.status_code == 201
    assert resp.json()["business_unit"]["name"] == "Operations"

    resp = client.post("/api/business-units", json={"name": "operations"}, headers=auth_headers(manager))
    assert resp.status_code == 400
    assert resp.json() == {"error": "Business unit with this name already exists"}


def test_create_requires_oversight_role(client, auth_headers, make_user):
    resp = client.post("/api/business-units", json={"name": "Sales"}, headers=auth_headers(make_user()))
    assert resp.status_code == 403


def test_unknown_manager(client, auth_headers, admin):
    resp = client.post(
        "/api/business-units",
        json={"name": "Sales", "manager_id": "00000000-0000-0000-0000-000000000001"},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "Manager not found"}


def test_delete_unused_unit(client, db_session, auth_headers, admin):
    unit = _unit(db_session)

    resp = client.delete(f"/api/business-units/{unit.id}", headers=auth_headers(admin))
    assert resp.status_code == 200
    assert resp.json() == {"message": "Business unit deleted successfully"}
    assert client.get(f"/api/business-units/{unit.id}", headers=auth_headers(admin)).status_code == 404


def test_delete_blocked_by_project(client, db_session, auth_headers, admin, make_user, make_project):
    unit = _unit(db_session)
    make_project(make_user(role="manager"), business_unit_id=unit.id)

    resp = client.delete(f"/api/business-units/{unit.id}", headers=auth_headers(admin))
    assert resp.status_code == 400
    assert resp.json() == {"error": "Cannot delete business unit that has associated projects"}


def test_delete_blocked_by_user(client, db_session, auth_headers, admin, make_user):
    unit = _unit(db_session)
    member = make_user()
    member.business_unit_id = unit.id
    db_session.commit()

    resp = client.delete(f"/api/business-units/{unit.id}", headers=auth_headers(admin))
    assert resp.status_code == 400
    assert resp.json() == {"error": "Cannot delete business unit that has associated users"}


def test_counts_and_stats(client, db_session, auth_headers, admin, make_user, make_project):
    unit = _unit(db_session)
    owner = make_user(role="manager")
    make_project(owner, name="A", total_budget="1000", spent_budget="250", business_unit_id=unit.id)
    make_project(owner, name="B", total_budget="1000", status="planning", business_unit_id=unit.id)

    body = client.get(f"/api/business-units/{unit.id}", headers=auth_headers(admin)).json()["business_unit"]
    assert body["project_count"] == 2
    assert body["user_count"] == 0
    assert body["total_budget"] == 2000

    stats = client.get(f"/api/business-units/{unit.id}/stats", headers=auth_headers(admin)).json()["stats"]
    assert stats["total_projects"] == 2
    assert stats["active_projects"] == 1
    assert stats["planning_projects"] == 1
    assert stats["budget_utilization"] == 12.5


def test_unit_projects_respect_visibility(client, db_session, auth_headers, make_user, make_project, add_member):
    unit = _unit(db_session)
    owner = make_user(role="manager")
    shared = make_project(owner, name="Shared", business_unit_id=unit.id)
    make_project(owner, name="Private", business_unit_id=unit.id)
    member = make_user()
    add_member(shared, member)

    body = client.get(f"/api/business-units/{unit.id}/projects", headers=auth_headers(member)).json()
    assert body["total"] == 1
    assert body["projects"][0]["name"] == "Shared"


def test_update_rejects_null_name(client, auth_headers, admin, db_session):
    unit = _unit(db_session)
    url = f"/api/business-units/{unit.id}"

    resp = client.put(url, json={"name": None}, headers=auth_headers(admin))
    assert resp.status_code == 400
    assert [e["field"] for e in resp.json()["errors"]] == ["name"]

    resp = client.put(url, json={"description": None}, headers=auth_headers(admin))
    assert resp.status_code == 200
    assert resp.json()["business_unit"]["name"] == "Engineering"
