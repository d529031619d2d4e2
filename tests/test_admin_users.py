"""
Tests for admin user management and the activity log
"""
from budget_hub.models.models import (
    AdminActivityLog,
    BudgetVersion,
    BusinessUnit,
    Expense,
    Notification,
    ProjectTeam,
    User,
)


def test_cannot_delete_self(client, auth_headers, admin):
    resp = client.delete(f"/api/admin/users/{admin.id}", headers=auth_headers(admin))
    assert resp.status_code == 400
    assert resp.json() == {"error": "Cannot delete your own account"}


def test_cannot_delete_project_manager(client, auth_headers, admin, make_user, make_project):
    owner = make_user(role="manager")
    make_project(owner)

    resp = client.delete(f"/api/admin/users/{owner.id}", headers=auth_headers(admin))
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Cannot delete user who is managing active projects")


def test_cannot_delete_user_with_pending_expenses(client, auth_headers, admin, make_user, make_project, make_category, make_expense):
    project = make_project(make_user(role="manager"))
    submitter = make_user()
    make_expense(project, make_category(project), submitter)

    resp = client.delete(f"/api/admin/users/{submitter.id}", headers=auth_headers(admin))
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Cannot delete user who has pending expenses")


def test_delete_detaches_references(client, db_session, auth_headers, admin, make_user, make_project, add_member, make_category, make_expense):
    project = make_project(make_user(role="manager"))
    target = make_user()
    add_member(project, target, role="manager")
    expense = make_expense(project, make_category(project), make_user(), status="approved")
    expense.approved_by = target.id
    own = make_expense(project, make_category(project, name="Meals"), target, status="rejected")
    version = BudgetVersion(project_id=project.id, version_number=1, title="Baseline", created_by=target.id)
    db_session.add_all([version, Notification(user_id=target.id, title="Hi", message="Hello")])
    db_session.commit()
    target_id = target.id

    resp = client.delete(f"/api/admin/users/{target_id}", headers=auth_headers(admin))
    assert resp.status_code == 200
    assert resp.json() == {"message": "User deleted successfully"}

    db_session.expire_all()
    assert db_session.get(User, target_id) is None
    assert db_session.query(ProjectTeam).filter(ProjectTeam.user_id == target_id).count() == 0
    assert db_session.query(Notification).filter(Notification.user_id == target_id).count() == 0
    assert db_session.get(Expense, expense.id).approved_by is None
    assert db_session.get(Expense, own.id).submitted_by is None
    assert db_session.get(BudgetVersion, version.id).created_by is None
    entry = db_session.query(AdminActivityLog).filter(AdminActivityLog.action == "DELETE_USER").one()
    assert entry.target_id == str(target_id)


def test_create_user_with_default_password(client, db_session, auth_headers, admin):
    resp = client.post(
        "/api/admin/users",
        json={"email": "New.Hire@BudgetHub.io", "full_name": "New Hire", "role": "manager", "department": "Finance"},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["user"]["email"] == "new.hire@budgethub.io"
    assert body["message"] == "User created successfully. Default password is: TempPassword123!"

    resp = client.post("/auth/login", json={"email": "new.hire@budgethub.io", "password": "TempPassword123!"})
    assert resp.status_code == 200
    assert resp.json()["user"]["role"] == "manager"

    db_session.expire_all()
    entry = db_session.query(AdminActivityLog).filter(AdminActivityLog.action == "CREATE_USER").one()
    assert entry.admin_id == admin.id
    assert entry.details["email"] == "new.hire@budgethub.io"


def test_create_duplicate_user(client, auth_headers, admin, make_user):
    existing = make_user()
    resp = client.post(
        "/api/admin/users",
        json={"email": existing.email, "full_name": "Again", "role": "user"},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "User with this email already exists"}


def test_update_user_logs_diff(client, db_session, auth_headers, admin, make_user):
    target = make_user(full_name="Old Name")

    resp = client.put(
        f"/api/admin/users/{target.id}",
        json={"full_name": "New Name", "role": "manager"},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 200
    assert resp.json()["user"]["role"] == "manager"

    db_session.expire_all()
    entry = db_session.query(AdminActivityLog).filter(AdminActivityLog.action == "UPDATE_USER").one()
    assert entry.details == {
        "full_name": {"before": "Old Name", "after": "New Name"},
        "role": {"before": "user", "after": "manager"},
    }


def test_cannot_deactivate_self(client, auth_headers, admin):
    resp = client.put(f"/api/admin/users/{admin.id}", json={"is_active": False}, headers=auth_headers(admin))
    assert resp.status_code == 400
    assert resp.json() == {"error": "Cannot deactivate your own account"}


def test_deactivated_user_is_locked_out(client, auth_headers, admin, make_user):
    target = make_user()
    headers = auth_headers(target)
    assert client.get("/auth/me", headers=headers).status_code == 200

    client.put(f"/api/admin/users/{target.id}", json={"is_active": False}, headers=auth_headers(admin))
    assert client.get("/auth/me", headers=headers).status_code == 401
    resp = client.post("/auth/login", json={"email": target.email, "password": "secret123"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Account is deactivated"}


def test_user_admin_routes_require_system_admin(client, auth_headers, make_user):
    manager = make_user(role="manager")
    assert client.get("/api/admin/users", headers=auth_headers(manager)).status_code == 403
    assert client.get("/api/admin/activity-log", headers=auth_headers(manager)).status_code == 403


def test_activity_log_lists_admin_name(client, auth_headers, admin, make_user):
    target = make_user()
    client.put(f"/api/admin/users/{target.id}", json={"department": "Sales"}, headers=auth_headers(admin))

    resp = client.get("/api/admin/activity-log", headers=auth_headers(admin))
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 1
    assert body["data"][0]["action"] == "UPDATE_USER"
    assert body["data"][0]["admin_name"] == "Ada Admin"


def test_update_user_rejects_null_required_fields(client, auth_headers, admin, make_user):
    target = make_user(full_name="Nora Null", department="Finance")
    url = f"/api/admin/users/{target.id}"

    resp = client.put(url, json={"full_name": None, "is_active": None}, headers=auth_headers(admin))
    assert resp.status_code == 400
    assert {e["field"] for e in resp.json()["errors"]} == {"full_name", "is_active"}

    resp = client.put(url, json={"department": None}, headers=auth_headers(admin))
    assert resp.status_code == 200


def test_update_user_diff_stores_ids_as_text(client, db_session, auth_headers, admin, make_user):
    unit = BusinessUnit(name="Finance Ops")
    db_session.add(unit)
    db_session.commit()
    target = make_user()

    resp = client.put(
        f"/api/admin/users/{target.id}", json={"business_unit_id": str(unit.id)}, headers=auth_headers(admin)
    )
    assert resp.status_code == 200

    db_session.expire_all()
    entry = db_session.query(AdminActivityLog).filter(AdminActivityLog.action == "UPDATE_USER").one()
    assert entry.details == {"business_unit_id": {"before": None, "after": str(unit.id)}}
