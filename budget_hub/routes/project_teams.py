import uuid
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import Forbidden, ValidationFailed
from ..models.models import Project, ProjectTeam, User
from ..auth.security import CurrentUser, get_current_user
from ..schemas.budgets import ExpenseDecision
from ..schemas.teams import TeamMemberCreate
from ..services import teams
from ..services.expenses import decide_expense
from ..services.permissions import ensure_project_access
from ..services.serializers import expense_to_dict, team_member_to_dict


router = APIRouter(prefix="/api/project-teams", tags=["project-teams"])


@router.get("")
def list_project_teams(
    project_id: Optional[uuid.UUID] = None,
    user_id: Optional[uuid.UUID] = None,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    q = db.query(ProjectTeam)
    if project_id:
        ensure_project_access(db, user, project_id)
        q = q.filter(ProjectTeam.project_id == project_id)
    elif user_id:
        if user_id != user.id and not user.is_admin:
            raise Forbidden("Access denied")
        q = q.filter(ProjectTeam.user_id == user_id)
    else:
        raise ValidationFailed("Either project_id or user_id is required")
    rows = q.order_by(ProjectTeam.created_at.desc()).all()
    return {"project_teams": [team_member_to_dict(m) for m in rows], "total": len(rows)}


@router.post("", status_code=status.HTTP_201_CREATED)
def add_project_team_member(
    payload: TeamMemberCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    member = teams.add_member(db, user, payload.project_id, payload.user_id, payload.role)
    return {"message": "User added to project team successfully", "project_team": team_member_to_dict(member)}


@router.get("/available-users")
def available_users(db: Session = Depends(get_db), _: CurrentUser = Depends(get_current_user)):
    rows = db.query(User).filter(User.is_active.is_(True)).order_by(User.full_name, User.email).all()
    users = [
        {"id": str(u.id), "email": u.email, "full_name": u.full_name, "department": u.department, "role": u.role}
        for u in rows
    ]
    return {"users": users, "total": len(users)}


@router.get("/user-projects/{user_id}")
def user_projects(user_id: uuid.UUID, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    if user_id != user.id and not user.is_admin:
        raise Forbidden("Access denied")
    rows = (
        db.query(ProjectTeam, Project)
        .join(Project, Project.id == ProjectTeam.project_id)
        .filter(ProjectTeam.user_id == user_id)
        .order_by(Project.created_at.desc())
        .all()
    )
    projects = []
    for membership, p in rows:
        projects.append({
            "id": str(p.id),
            "name": p.name,
            "description": p.description,
            "total_budget": float(p.total_budget or 0),
            "spent_budget": float(p.spent_budget or 0),
            "start_date": p.start_date.isoformat() if p.start_date else None,
            "end_date": p.end_date.isoformat() if p.end_date else None,
            "status": p.status,
            "currency": p.currency,
            "team_role": membership.role,
            "joined_at": membership.created_at.isoformat() if membership.created_at else None,
            "business_unit_name": p.business_unit.name if p.business_unit else None,
        })
    return {"projects": projects, "total": len(projects)}


@router.put("/expenses/{expense_id}/approve")
def approve_expense(
    expense_id: uuid.UUID,
    payload: ExpenseDecision,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    expense = decide_expense(db, user, expense_id, payload.status, payload.comments)
    return {"message": f"Expense {payload.status} successfully", "expense": expense_to_dict(expense)}


@router.delete("/{membership_id}")
def remove_project_team_member(
    membership_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    removed = teams.remove_member(db, user, membership_id)
    return {"message": "User removed from project team successfully", "project_team": removed}
