import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import Conflict, DependencyConflict, NotFound, ValidationFailed
from ..models.models import BusinessUnit, Project, User
from ..auth.security import CurrentUser, get_current_user, require_roles
from ..schemas.projects import BusinessUnitCreate, BusinessUnitUpdate
from ..services.listing import count_where, paginate
from ..services.permissions import project_visibility_predicate
from ..services.roles import SystemRole
from ..services.serializers import business_unit_to_dict, project_to_dict


router = APIRouter(prefix="/api/business-units", tags=["business-units"])

DUPLICATE_NAME = "Business unit with this name already exists"


def _get_unit(db: Session, unit_id: uuid.UUID) -> BusinessUnit:
    unit = db.query(BusinessUnit).filter(BusinessUnit.id == unit_id).first()
    if not unit:
        raise NotFound("Business unit not found")
    return unit


def _name_taken(db: Session, name: str, exclude_id: Optional[uuid.UUID] = None) -> bool:
    q = db.query(BusinessUnit.id).filter(func.lower(BusinessUnit.name) == name.strip().lower())
    if exclude_id:
        q = q.filter(BusinessUnit.id != exclude_id)
    return q.first() is not None


def _with_counts(db: Session, unit: BusinessUnit) -> dict:
    project_count, total_budget = db.execute(
        select(func.count(Project.id), func.coalesce(func.sum(Project.total_budget), 0)).where(
            Project.business_unit_id == unit.id
        )
    ).one()
    return business_unit_to_dict(
        unit,
        project_count=project_count,
        user_count=count_where(db, User.id, User.business_unit_id == unit.id),
        total_budget=total_budget,
    )


@router.get("")
def list_units(
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(get_current_user),
):
    preds = []
    if search:
        like = f"%{search}%"
        preds.append(or_(BusinessUnit.name.ilike(like), BusinessUnit.description.ilike(like)))
    page_ = paginate(
        db,
        select(BusinessUnit),
        preds,
        count_column=BusinessUnit.id,
        order_by=[BusinessUnit.name, BusinessUnit.id],
        page=page,
        limit=limit,
    )
    return page_.envelope("business_units", lambda bu: _with_counts(db, bu))


@router.get("/{unit_id}")
def get_unit(unit_id: uuid.UUID, db: Session = Depends(get_db), _: CurrentUser = Depends(get_current_user)):
    return {"business_unit": _with_counts(db, _get_unit(db, unit_id))}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_unit(
    payload: BusinessUnitCreate,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_roles(SystemRole.MANAGER)),
):
    if _name_taken(db, payload.name):
        raise Conflict(DUPLICATE_NAME)
    if payload.manager_id and not db.get(User, payload.manager_id):
        raise ValidationFailed("Manager not found")
    unit = BusinessUnit(name=payload.name.strip(), description=payload.description, manager_id=payload.manager_id)
    db.add(unit)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict(DUPLICATE_NAME)
    db.refresh(unit)
    return {"business_unit": business_unit_to_dict(unit)}


@router.put("/{unit_id}")
def update_unit(
    unit_id: uuid.UUID,
    payload: BusinessUnitUpdate,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_roles(SystemRole.MANAGER)),
):
    unit = _get_unit(db, unit_id)
    data = payload.model_dump(exclude_unset=True)
    if not data:
        raise ValidationFailed("No valid fields to update")
    if data.get("name"):
        if _name_taken(db, data["name"], exclude_id=unit.id):
            raise Conflict(DUPLICATE_NAME)
        data["name"] = data["name"].strip()
    if data.get("manager_id") and not db.get(User, data["manager_id"]):
        raise ValidationFailed("Manager not found")
    for k, v in data.items():
        setattr(unit, k, v)
    unit.updated_at = datetime.utcnow()
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict(DUPLICATE_NAME)
    db.refresh(unit)
    return {"business_unit": business_unit_to_dict(unit)}


@router.delete("/{unit_id}")
def delete_unit(
    unit_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_roles(SystemRole.ADMIN)),
):
    unit = _get_unit(db, unit_id)
    if count_where(db, Project.id, Project.business_unit_id == unit.id):
        raise DependencyConflict("Cannot delete business unit that has associated projects")
    if count_where(db, User.id, User.business_unit_id == unit.id):
        raise DependencyConflict("Cannot delete business unit that has associated users")
    db.delete(unit)
    db.commit()
    return {"message": "Business unit deleted successfully"}


@router.get("/{unit_id}/projects")
def list_unit_projects(
    unit_id: uuid.UUID,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    _get_unit(db, unit_id)
    preds = [Project.business_unit_id == unit_id, project_visibility_predicate(user)]
    if status and status != "all":
        preds.append(Project.status == status)
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


@router.get("/{unit_id}/stats")
def unit_stats(unit_id: uuid.UUID, db: Session = Depends(get_db), _: CurrentUser = Depends(get_current_user)):
    unit = _get_unit(db, unit_id)
    rows = db.execute(
        select(Project.status, func.count(Project.id)).where(Project.business_unit_id == unit.id).group_by(Project.status)
    ).all()
    by_status = {s: n for s, n in rows}
    total_budget, spent_budget = db.execute(
        select(
            func.coalesce(func.sum(Project.total_budget), 0),
            func.coalesce(func.sum(Project.spent_budget), 0),
        ).where(Project.business_unit_id == unit.id)
    ).one()
    total_budget, spent_budget = float(total_budget), float(spent_budget)
    return {
        "stats": {
            "name": unit.name,
            "total_projects": sum(by_status.values()),
            "active_projects": by_status.get("active", 0),
            "completed_projects": by_status.get("completed", 0),
            "planning_projects": by_status.get("planning", 0),
            "on_hold_projects": by_status.get("on_hold", 0),
            "total_users": count_where(db, User.id, User.business_unit_id == unit.id),
            "total_budget": total_budget,
            "spent_budget": spent_budget,
            "budget_utilization": round(spent_budget / total_budget * 100, 2) if total_budget > 0 else 0,
        }
    }
