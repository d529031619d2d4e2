import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Optional, Tuple

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import Conflict, DependencyConflict, NotFound, ValidationFailed
from ..models.models import BudgetCategory, BudgetVersion, Expense
from ..auth.security import CurrentUser, get_current_user, require_roles
from ..schemas.budgets import BudgetCategoryCreate, BudgetCategoryUpdate
from ..services import notifications
from ..services.listing import paginate
from ..services.permissions import (
    authorize_project,
    ensure_project_access,
    get_project_or_404,
    visible_project_ids,
)
from ..services.roles import Permission, SystemRole
from ..services.serializers import category_to_dict


router = APIRouter(prefix="/api/budget-categories", tags=["budget-categories"])

DUPLICATE_NAME = "Budget category with this name already exists for this project"


def _get_category(db: Session, category_id: uuid.UUID) -> BudgetCategory:
    category = db.query(BudgetCategory).filter(BudgetCategory.id == category_id).first()
    if not category:
        raise NotFound("Budget category not found")
    return category


def _expense_totals(db: Session, category_ids) -> Dict[uuid.UUID, Tuple[int, Decimal]]:
    if not category_ids:
        return {}
    rows = db.execute(
        select(Expense.category_id, func.count(Expense.id), func.coalesce(func.sum(Expense.amount), 0))
        .where(Expense.category_id.in_(category_ids))
        .group_by(Expense.category_id)
    ).all()
    return {r[0]: (r[1], r[2]) for r in rows}


def _name_taken(db: Session, project_id: uuid.UUID, name: str, exclude_id: Optional[uuid.UUID] = None) -> bool:
    q = db.query(BudgetCategory.id).filter(
        BudgetCategory.project_id == project_id,
        BudgetCategory.name_key == name.strip().lower(),
    )
    if exclude_id:
        q = q.filter(BudgetCategory.id != exclude_id)
    return q.first() is not None


@router.get("")
def list_categories(
    project_id: Optional[uuid.UUID] = None,
    page: int = 1,
    limit: int = 50,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    preds = []
    if project_id:
        preds.append(BudgetCategory.project_id == project_id)
    if not user.is_admin:
        preds.append(BudgetCategory.project_id.in_(visible_project_ids(user)))
    page_ = paginate(
        db,
        select(BudgetCategory),
        preds,
        count_column=BudgetCategory.id,
        order_by=[BudgetCategory.name, BudgetCategory.id],
        page=page,
        limit=limit,
    )
    totals = _expense_totals(db, [c.id for c in page_.items])
    return page_.envelope("budget_categories", lambda c: category_to_dict(c, *totals.get(c.id, (0, 0))))


@router.get("/{category_id}")
def get_category(category_id: uuid.UUID, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    category = _get_category(db, category_id)
    ensure_project_access(db, user, category.project_id)
    totals = _expense_totals(db, [category.id])
    return {"category": category_to_dict(category, *totals.get(category.id, (0, 0)))}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_category(
    payload: BudgetCategoryCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    project = get_project_or_404(db, payload.project_id)
    authorize_project(db, user, project.id, permission=Permission.MANAGE_BUDGET, allow_creator=True)
    if payload.budget_version_id:
        version = db.get(BudgetVersion, payload.budget_version_id)
        if not version or version.project_id != project.id:
            raise ValidationFailed("Invalid budget version for this project")
    if _name_taken(db, project.id, payload.name):
        raise Conflict(DUPLICATE_NAME)

    name = payload.name.strip()
    category = BudgetCategory(
        project_id=project.id,
        name=name,
        name_key=name.lower(),
        description=payload.description,
        allocated_amount=payload.allocated_amount,
        budget_limit=payload.budget_limit,
        budget_version_id=payload.budget_version_id,
    )
    db.add(category)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict(DUPLICATE_NAME)
    db.refresh(category)
    notifications.dispatch(
        notifications.notify_budget_change, db, project, name, Decimal(0), category.allocated_amount, user.id
    )
    return {"category": category_to_dict(category)}


@router.put("/{category_id}")
def update_category(
    category_id: uuid.UUID,
    payload: BudgetCategoryUpdate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    category = _get_category(db, category_id)
    authorize_project(db, user, category.project_id, permission=Permission.MANAGE_BUDGET, allow_creator=True)
    data = payload.model_dump(exclude_unset=True)
    if not data:
        raise ValidationFailed("No valid fields to update")
    if data.get("name"):
        if _name_taken(db, category.project_id, data["name"], exclude_id=category.id):
            raise Conflict(DUPLICATE_NAME)
        data["name"] = data["name"].strip()
        category.name_key = data["name"].lower()

    old_amount = category.budget_limit if "budget_limit" in data else category.allocated_amount
    for k, v in data.items():
        setattr(category, k, v)
    category.updated_at = datetime.utcnow()
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict(DUPLICATE_NAME)
    db.refresh(category)

    new_amount = category.budget_limit if "budget_limit" in data else category.allocated_amount
    if ("budget_limit" in data or "allocated_amount" in data) and old_amount != new_amount:
        project = get_project_or_404(db, category.project_id)
        notifications.dispatch(
            notifications.notify_budget_change, db, project, category.name, old_amount, new_amount, user.id
        )
    return {"category": category_to_dict(category)}


@router.delete("/{category_id}")
def delete_category(
    category_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_roles(SystemRole.ADMIN)),
):
    category = _get_category(db, category_id)
    if db.query(Expense.id).filter(Expense.category_id == category_id).first():
        raise DependencyConflict("Cannot delete budget category that has associated expenses")
    db.delete(category)
    db.commit()
    return {"message": "Budget category deleted successfully"}


@router.get("/{category_id}/stats")
def category_stats(
    category_id: uuid.UUID,
    start_date: Optional[date] = Query(default=None, alias="startDate"),
    end_date: Optional[date] = Query(default=None, alias="endDate"),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    category = _get_category(db, category_id)
    ensure_project_access(db, user, category.project_id)

    stmt = select(
        func.count(Expense.id),
        func.coalesce(func.sum(Expense.amount), 0),
        func.coalesce(func.sum(case((Expense.status == "approved", Expense.amount), else_=0)), 0),
        func.coalesce(func.sum(case((Expense.status == "pending", Expense.amount), else_=0)), 0),
    ).where(Expense.category_id == category_id)
    if start_date and end_date:
        stmt = stmt.where(Expense.expense_date.between(start_date, end_date))
    count, total, approved, pending = db.execute(stmt).one()

    limit_ = Decimal(str(category.budget_limit or 0))
    approved = Decimal(str(approved))
    return {
        "stats": {
            "name": category.name,
            "budget_limit": float(limit_) if category.budget_limit is not None else None,
            "total_expenses": count,
            "total_spent": float(total),
            "approved_spent": float(approved),
            "pending_amount": float(pending),
            "utilization_percentage": round(float(approved / limit_ * 100), 2) if limit_ > 0 else 0,
        }
    }
