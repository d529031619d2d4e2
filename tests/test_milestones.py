"""
Tests for project milestones
"""
from datetime import date, timedelta


def _create(client, headers, project, **fields):
    payload = {"project_id": str(project.id), "title": "Kickoff", "due_date": "2030-01-15"}
    payload.update(fields)
    return client.post("/api/project-milestones", json=payload, headers=headers)


def test_lead_manages_milestones_member_does_not(client, auth_headers, make_user, make_project, add_member):
    project = make_project(make_user(role="manager"))
    lead, member = make_user(), make_user()
    add_member(project, lead, role="lead")
    add_member(project, member)

    resp = _create(client, auth_headers(member), project)
    assert resp.status_code == 403
    assert resp.json() == {"error": "Insufficient permissions. Required: manage_milestones"}

    resp = _create(client, auth_headers(lead), project)
    assert resp.status_code == 201
    assert resp.json()["milestone"]["status"] == "not_started"


def test_completion_sets_progress_and_date(client, auth_headers, make_user, make_project):
    owner = make_user(role="manager")
    project = make_project(owner)
    headers = auth_headers(owner)
    milestone = _create(client, headers, project, progress=40, status="in_progress").json()["milestone"]
    url = f"/api/project-milestones/{milestone['id']}"

    body = client.put(url, json={"status": "completed"}, headers=headers).json()["milestone"]
    assert body["progress"] == 100
    assert body["completion_date"] is not None

    body = client.put(url, json={"status": "in_progress", "progress": 80}, headers=headers).json()["milestone"]
    assert body["completion_date"] is None
    assert body["progress"] == 80

    body = client.put(
        url, json={"status": "completed", "completion_date": "2030-01-20"}, headers=headers
    ).json()["milestone"]
    assert body["completion_date"].startswith("2030-01-20")


def test_created_completed(client, auth_headers, make_user, make_project):
    owner = make_user(role="manager")
    body = _create(client, auth_headers(owner), make_project(owner), status="completed", progress=10).json()["milestone"]
    assert body["progress"] == 100
    assert body["completion_date"] is not None


def test_progress_out_of_range(client, auth_headers, make_user, make_project):
    owner = make_user(role="manager")
    resp = _create(client, auth_headers(owner), make_project(owner), progress=120)
    assert resp.status_code == 400
    assert resp.json()["errors"][0]["field"] == "progress"


def test_stats(client, auth_headers, make_user, make_project):
    owner = make_user(role="manager")
    project = make_project(owner)
    headers = auth_headers(owner)
    yesterday = (date.today() - timedelta(days=1)).isoformat()
    _create(client, headers, project, title="Late", due_date=yesterday, progress=50, status="in_progress")
    done = _create(client, headers, project, title="Done", due_date="2030-01-10").json()["milestone"]
    client.put(
        f"/api/project-milestones/{done['id']}",
        json={"status": "completed", "completion_date": "2030-01-13"},
        headers=headers,
    )

    stats = client.get(f"/api/project-milestones/project/{project.id}/stats", headers=headers).json()["stats"]
    assert stats["total_milestones"] == 2
    assert stats["completed_milestones"] == 1
    assert stats["past_due_milestones"] == 1
    assert stats["avg_progress"] == 75
    assert stats["avg_completion_delay_days"] == 3


def test_listing_and_delete(client, auth_headers, make_user, make_project):
    owner = make_user(role="manager")
    project = make_project(owner)
    headers = auth_headers(owner)
    second = _create(client, headers, project, title="Second", due_date="2030-02-01").json()["milestone"]
    _create(client, headers, project, title="First", due_date="2030-01-01")

    body = client.get(f"/api/project-milestones/project/{project.id}", headers=headers).json()
    assert [m["title"] for m in body["milestones"]] == ["First", "Second"]

    assert client.delete(f"/api/project-milestones/{second['id']}", headers=headers).status_code == 200
    resp = client.get(f"/api/project-milestones/{second['id']}", headers=headers)
    assert resp.status_code == 404
    assert resp.json() == {"error": "Milestone not found"}


def test_update_rejects_null_title_but_clears_due_date(client, auth_headers, make_user, make_project):
    owner = make_user(role="manager")
    headers = auth_headers(owner)
    milestone = _create(client, headers, make_project(owner)).json()["milestone"]
    url = f"/api/project-milestones/{milestone['id']}"

    resp = client.put(url, json={"title": None, "status": None}, headers=headers)
    assert resp.status_code == 400
    assert {e["field"] for e in resp.json()["errors"]} == {"title", "status"}

    resp = client.put(url, json={"due_date": None}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["milestone"]["due_date"] is None
    assert resp.json()["milestone"]["title"] == "Kickoff"
