import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session
import structlog

from ..config import settings
from ..db import get_db
from ..errors import DependencyConflict, Forbidden, ValidationFailed
from ..models.models import (
    BudgetCategory,
    BudgetVersion,
    BusinessUnit,
    Expense,
    Project,
    ProjectMilestone,
    ProjectTeam,
    User,
)
from ..auth.security import CurrentUser, get_current_user, require_roles
from ..schemas.projects import ProjectCreate, ProjectUpdate
from ..services import notifications
from ..services.listing import paginate
from ..services.permissions import (
    authorize_project,
    ensure_project_access,
    get_project_or_404,
    project_visibility_predicate,
    visible_project_ids,
)
from ..services.roles import Permission, SystemRole
from ..services.serializers import (
    category_to_dict,
    milestone_to_dict,
    project_to_dict,
    team_member_to_dict,
)


router = APIRouter(prefix="/api/projects", tags=["projects"])
log = structlog.get_logger(__name__)


def _check_refs(db: Session, business_unit_id: Optional[uuid.UUID], manager_id: Optional[uuid.UUID]) -> None:
    if business_unit_id and not db.get(BusinessUnit, business_unit_id):
        raise ValidationFailed("Business unit not found")
    if manager_id and not db.get(User, manager_id):
        raise ValidationFailed("Manager not found")


@router.get("")
def list_projects(
    search: Optional[str] = None,
    status: Optional[str] = None,
    team_id: Optional[uuid.UUID] = None,
    year: Optional[int] = Query(default=None, ge=1, le=9998),
    page: int = 1,
    limit: int = 10,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """
    List projects visible to the caller.

    Args:
        search: Matches name or description
        status: Project status, ``all`` for any
        team_id: Business unit id
        year: Projects starting in this calendar year
    """
    preds = []
    if search:
        like = f"%{search}%"
        preds.append(or_(Project.name.ilike(like), Project.description.ilike(like)))
    if status and status != "all":
        preds.append(Project.status == status)
    if team_id:
        preds.append(Project.business_unit_id == team_id)
    if year is not None:
        preds.append(Project.start_date >= date(year, 1, 1))
        preds.append(Project.start_date < date(year + 1, 1, 1))
    preds.append(project_visibility_predicate(user))

    page_ = paginate(
        db,
        select(Project),
        preds,
        count_column=Project.id,
        order_by=[Project.created_at.desc(), Project.id],
        page=page,
        limit=limit,
    )
    return page_.envelope("projects", project_to_dict)


@router.get("/dashboard/metrics")
def dashboard_metrics(db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    scope = visible_project_ids(user)
    total, active, completed, total_budget, spent = db.execute(
        select(
            func.count(Project.id),
            func.count(Project.id).filter(Project.status == "active"),
            func.count(Project.id).filter(Project.status == "completed"),
            func.coalesce(func.sum(Project.total_budget), 0),
            func.coalesce(func.sum(Project.spent_budget), 0),
        ).where(Project.id.in_(scope))
    ).one()
    pending = db.execute(
        select(func.count(Expense.id)).where(Expense.project_id.in_(scope), Expense.status == "pending")
    ).scalar()
    total_budget = Decimal(str(total_budget))
    spent = Decimal(str(spent))
    return {
        "metrics": {
            "total_projects": total,
            "active_projects": active,
            "completed_projects": completed,
            "total_budget": float(total_budget),
            "spent_budget": float(spent),
            "remaining_budget": float(total_budget - spent),
            "budget_utilization": round(float(spent / total_budget * 100), 1) if total_budget > 0 else 0,
            "pending_expenses": pending or 0,
        }
    }


@router.get("/{project_id}")
def get_project(project_id: uuid.UUID, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    project = ensure_project_access(db, user, project_id)
    team = (
        db.query(ProjectTeam)
        .filter(ProjectTeam.project_id == project_id)
        .order_by(ProjectTeam.created_at.desc())
        .all()
    )
    milestones = (
        db.query(ProjectMilestone)
        .filter(ProjectMilestone.project_id == project_id)
        .order_by(ProjectMilestone.due_date.asc())
        .all()
    )
    categories = (
        db.query(BudgetCategory).filter(BudgetCategory.project_id == project_id).order_by(BudgetCategory.name).all()
    )
    data = project_to_dict(project)
    data["team"] = [team_member_to_dict(m) for m in team]
    data["milestones"] = [milestone_to_dict(m) for m in milestones]
    data["budget_categories"] = [category_to_dict(c) for c in categories]
    return {"project": data}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(SystemRole.MANAGER, SystemRole.USER)),
):
    _check_refs(db, payload.business_unit_id, payload.manager_id)
    project = Project(
        name=payload.name.strip(),
        description=payload.description,
        total_budget=payload.total_budget,
        allocated_budget=payload.total_budget,
        spent_budget=Decimal(0),
        currency=(payload.currency or settings.default_currency).upper(),
        start_date=payload.start_date,
        end_date=payload.end_date,
        status=payload.status,
        department=payload.department or user.department,
        business_unit_id=payload.business_unit_id,
        manager_id=payload.manager_id or user.id,
        created_by=user.id,
    )
    db.add(project)
    db.commit()
    db.refresh(project)
    log.info("project_created", project_id=str(project.id), created_by=str(user.id))
    notifications.dispatch(notifications.notify_new_project, db, project, user.id)
    return {"project": project_to_dict(project)}


@router.put("/{project_id}")
def update_project(
    project_id: uuid.UUID,
    payload: ProjectUpdate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    project = get_project_or_404(db, project_id)
    authorize_project(db, user, project_id, permission=Permission.MANAGE_PROJECT_SETTINGS, allow_creator=True)
    data = payload.model_dump(exclude_unset=True)
    _check_refs(db, data.get("business_unit_id"), data.get("manager_id"))
    if data.get("currency"):
        data["currency"] = data["currency"].upper()
    for k, v in data.items():
        setattr(project, k, v)
    if project.start_date and project.end_date and project.end_date < project.start_date:
        raise ValidationFailed("end_date must not be before start_date")
    project.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(project)
    return {"project": project_to_dict(project)}


@router.delete("/{project_id}")
def delete_project(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(SystemRole.MANAGER)),
):
    project = get_project_or_404(db, project_id)
    if not user.is_admin and project.manager_id != user.id:
        raise Forbidden("Managers can only delete projects they manage")
    if db.query(Expense.id).filter(Expense.project_id == project_id).first():
        raise DependencyConflict("Cannot delete project that has associated expenses")

    db.query(ProjectTeam).filter(ProjectTeam.project_id == project_id).delete(synchronize_session=False)
    db.query(ProjectMilestone).filter(ProjectMilestone.project_id == project_id).delete(synchronize_session=False)
    db.query(BudgetCategory).filter(BudgetCategory.project_id == project_id).delete(synchronize_session=False)
    db.query(BudgetVersion).filter(BudgetVersion.project_id == project_id).delete(synchronize_session=False)
    db.delete(project)
    db.commit()
    log.info("project_deleted", project_id=str(project_id), deleted_by=str(user.id))
    return {"message": "Project deleted successfully"}
