"""
Tests for portfolio analytics and risk detection
"""
import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest

from budget_hub.models.models import Project
from budget_hub.services import analytics


TODAY = date(2024, 6, 1)


def _project(name="P", total="1000", spent="0", status="active", end_date=None):
    return Project(
        id=uuid.uuid4(),
        name=name,
        total_budget=Decimal(total),
        spent_budget=Decimal(spent),
        status=status,
        end_date=end_date,
    )


@pytest.mark.parametrize(
    "spent, severity",
    [("760", "medium"), ("860", "high"), ("960", "critical"), ("1200", "critical")],
)
def test_budget_risk_severity(spent, severity):
    risks = analytics.budget_risks([_project(spent=spent)], threshold=75)
    assert [r["severity"] for r in risks] == [severity]


def test_budget_risk_threshold_and_zero_budget():
    projects = [_project(spent="750"), _project(total="0", spent="10")]
    assert analytics.budget_risks(projects, threshold=75) == []


def test_timeline_risks():
    projects = [
        _project("Overdue", end_date=TODAY - timedelta(days=3)),
        _project("Soon", end_date=TODAY + timedelta(days=5)),
        _project("Later", end_date=TODAY + timedelta(days=20)),
        _project("Far", end_date=TODAY + timedelta(days=45)),
        _project("Paused", status="on_hold", end_date=TODAY - timedelta(days=3)),
    ]
    risks = {r["message"].split('"')[1]: r for r in analytics.timeline_risks(projects, TODAY)}

    assert set(risks) == {"Overdue", "Soon", "Later"}
    assert risks["Overdue"]["severity"] == "critical"
    assert risks["Overdue"]["impact"] == "Project is overdue by 3 days"
    assert risks["Soon"]["severity"] == "high"
    assert risks["Later"]["severity"] == "medium"


def test_risk_endpoint_orders_by_severity(client, auth_headers, admin, make_user, make_project):
    owner = make_user(role="manager")
    make_project(owner, name="Tight", total_budget="1000", spent_budget="800")
    make_project(owner, name="Blown", total_budget="1000", spent_budget="990")
    make_project(owner, name="Fine", total_budget="1000", spent_budget="100")

    resp = client.get("/api/analytics/risks", headers=auth_headers(admin))
    assert resp.status_code == 200
    risks = resp.json()["risks"]
    assert [r["severity"] for r in risks] == ["critical", "medium"]
    assert risks[0]["id"] == "risk_1"
    assert "Blown" in risks[0]["message"]


def test_dashboard_scoped_to_visible_projects(client, auth_headers, make_user, make_project, add_member):
    owner = make_user(role="manager")
    visible = make_project(owner, name="Mine", total_budget="1000", spent_budget="400")
    make_project(make_user(role="manager"), name="Theirs", total_budget="5000")
    add_member(visible, make_user())

    metrics = client.get("/api/analytics/dashboard", headers=auth_headers(owner)).json()["metrics"]
    assert metrics["total_projects"] == 1
    assert metrics["total_budget"] == 1000
    assert metrics["budget_utilization"] == 40
    assert metrics["total_team_members"] == 1
