"""
Portfolio analytics over the projects visible to the caller.

Aggregates are computed from ORM rows so the same code runs on PostgreSQL
and SQLite.
"""
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..auth.security import CurrentUser
from ..config import settings
from ..models.models import Expense, Project, ProjectMilestone, ProjectTeam
from .permissions import visible_project_ids


SEVERITY_ORDER = {"critical": 1, "high": 2, "medium": 3, "low": 4}


def _r(value) -> float:
    return round(float(value or 0), 2)


def _pct(part, whole) -> float:
    whole = float(whole or 0)
    return float(part or 0) / whole * 100 if whole > 0 else 0.0


def utilization(project: Project) -> Optional[float]:
    total = float(project.total_budget or 0)
    if total <= 0:
        return None
    return float(project.spent_budget or 0) / total * 100


def dashboard_metrics(db: Session, user: CurrentUser, today: Optional[date] = None) -> Dict:
    today = today or date.today()
    scope = visible_project_ids(user)

    projects = db.execute(select(Project).where(Project.id.in_(scope))).scalars().all()
    expenses = db.execute(select(Expense).where(Expense.project_id.in_(scope))).scalars().all()
    milestones = db.execute(select(ProjectMilestone).where(ProjectMilestone.project_id.in_(scope))).scalars().all()
    team_members, projects_with_teams = db.execute(
        select(func.count(func.distinct(ProjectTeam.user_id)), func.count(func.distinct(ProjectTeam.project_id)))
        .where(ProjectTeam.project_id.in_(scope))
    ).one()

    total_projects = len(projects)
    active = sum(1 for p in projects if p.status == "active")
    completed = sum(1 for p in projects if p.status == "completed")
    on_hold = sum(1 for p in projects if p.status == "on_hold")
    delayed = sum(1 for p in projects if p.end_date and p.end_date < today and p.status != "completed")
    total_budget = sum((p.total_budget or Decimal(0) for p in projects), Decimal(0))
    total_spent = sum((p.spent_budget or Decimal(0) for p in projects), Decimal(0))
    total_allocated = sum((p.allocated_budget or Decimal(0) for p in projects), Decimal(0))
    utils = [u for u in (utilization(p) for p in projects) if u is not None]

    approved = [e for e in expenses if e.status == "approved"]
    pending = sum(1 for e in expenses if e.status == "pending")
    rejected = sum(1 for e in expenses if e.status == "rejected")
    approved_amount = sum((e.amount for e in approved), Decimal(0))

    ms_completed = sum(1 for m in milestones if m.status == "completed")
    ms_in_progress = sum(1 for m in milestones if m.status == "in_progress")
    ms_overdue = sum(1 for m in milestones if m.due_date and m.due_date < today and m.status != "completed")

    budget_util = _pct(total_spent, total_allocated)
    project_completion = _pct(completed, total_projects)
    milestone_completion = _pct(ms_completed, len(milestones))
    expense_approval = _pct(len(approved), len(expenses))

    efficiency = (
        project_completion * 0.3
        + milestone_completion * 0.3
        + expense_approval * 0.2
        + max(0.0, 100 - budget_util) * 0.2
    )
    risk = (
        delayed / max(1, active) * 30
        + ms_overdue / max(1, len(milestones)) * 25
        + max(0.0, budget_util - 90) * 0.5
        + pending / max(1, len(expenses)) * 20
    )
    roi = _pct(total_budget - total_spent, total_budget)
    team_util = min(100.0, active / team_members * 25) if team_members else 0.0
    cost_per_milestone = float(total_spent) / ms_completed if ms_completed else 0.0

    since = datetime.utcnow() - timedelta(days=30)
    burn = sum((e.amount for e in approved if e.created_at and e.created_at.replace(tzinfo=None) >= since), Decimal(0))
    recent = [m for m in milestones if (m.updated_at or m.created_at) and (m.updated_at or m.created_at).replace(tzinfo=None) >= since]
    velocity = _pct(sum(1 for m in recent if m.status == "completed"), len(recent)) if recent else round(project_completion)

    return {
        "total_projects": total_projects,
        "active_projects": active,
        "completed_projects": completed,
        "on_hold_projects": on_hold,
        "delayed_projects": delayed,
        "total_budget": _r(total_budget),
        "total_spent": _r(total_spent),
        "total_allocated": _r(total_allocated),
        "avg_budget_utilization": _r(sum(utils) / len(utils)) if utils else None,
        "total_expenses": len(expenses),
        "pending_expenses": pending,
        "approved_expenses": len(approved),
        "rejected_expenses": rejected,
        "total_expense_amount": _r(approved_amount),
        "avg_expense_amount": _r(approved_amount / len(approved)) if approved else None,
        "total_milestones": len(milestones),
        "completed_milestones": ms_completed,
        "in_progress_milestones": ms_in_progress,
        "overdue_milestones": ms_overdue,
        "total_team_members": team_members,
        "projects_with_teams": projects_with_teams,
        "budget_utilization": _r(budget_util),
        "project_completion_rate": _r(project_completion),
        "milestone_completion_rate": _r(milestone_completion),
        "expense_approval_rate": _r(expense_approval),
        "efficiency_score": _r(efficiency),
        "risk_score": min(100.0, _r(risk)),
        "roi": _r(roi),
        "team_utilization": _r(team_util),
        "cost_per_milestone": _r(cost_per_milestone),
        "projected_spend": _r(total_spent * Decimal("1.15")),
        "monthly_burn_rate": _r(burn),
        "completion_rate": _r(velocity),
    }


def _budget_severity(pct: float) -> str:
    if pct > 95:
        return "critical"
    if pct > 85:
        return "high"
    if pct > 75:
        return "medium"
    return "low"


def budget_risks(projects: List[Project], threshold: float) -> List[Dict]:
    risks = []
    for p in projects:
        pct = utilization(p)
        if pct is None or pct <= threshold:
            continue
        risks.append({
            "type": "budget",
            "project_id": str(p.id),
            "severity": _budget_severity(pct),
            "message": f'Project "{p.name}" budget utilization at {round(pct, 1)}%',
            "impact": f"Potential budget overrun of ${round(float(p.spent_budget - p.total_budget))}",
            "recommendation": "Review spending patterns and adjust scope if necessary",
            "probability": round(pct),
        })
    return risks


def timeline_risks(projects: List[Project], today: date) -> List[Dict]:
    risks = []
    horizon = today + timedelta(days=30)
    for p in projects:
        if p.status != "active" or not p.end_date or p.end_date >= horizon:
            continue
        if p.end_date < today:
            severity, probability = "critical", 100
            impact = f"Project is overdue by {(today - p.end_date).days} days"
        else:
            if p.end_date < today + timedelta(days=7):
                severity, probability = "high", 85
            else:
                severity, probability = "medium", 60
            impact = f"Deadline in {(p.end_date - today).days} days"
        risks.append({
            "type": "timeline",
            "project_id": str(p.id),
            "severity": severity,
            "message": f'Project "{p.name}" deadline approaching or overdue',
            "impact": impact,
            "recommendation": "Accelerate development or negotiate deadline extension",
            "probability": probability,
        })
    return risks


def risk_analysis(db: Session, user: CurrentUser, today: Optional[date] = None, limit: int = 10) -> List[Dict]:
    """Budget and timeline risks, most severe first."""
    today = today or date.today()
    projects = db.execute(select(Project).where(Project.id.in_(visible_project_ids(user)))).scalars().all()
    risks = budget_risks(projects, settings.budget_risk_threshold) + timeline_risks(projects, today)
    risks.sort(key=lambda r: (SEVERITY_ORDER[r["severity"]], -r["probability"]))
    return [dict(id=f"risk_{i + 1}", **r) for i, r in enumerate(risks[:limit])]
