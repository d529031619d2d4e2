import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status as http_status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import structlog

from ..config import settings
from ..db import get_db
from ..errors import Conflict, DependencyConflict, NotFound, ValidationFailed
from ..models.models import (
    AdminActivityLog,
    BudgetVersion,
    BusinessUnit,
    Expense,
    Notification,
    Project,
    ProjectMilestone,
    ProjectTeam,
    User,
)
from ..auth.security import CurrentUser, get_password_hash, require_roles
from ..schemas.admin import AdminUserCreate, AdminUserUpdate
from ..schemas.budgets import ExpenseDecision
from ..services.audit import compute_diff, log_admin_activity, snapshot
from ..services.expenses import decide_expense
from ..services.listing import count_where, paginate
from ..services.roles import SystemRole
from ..services.serializers import activity_to_dict, expense_to_dict, user_to_dict


router = APIRouter(prefix="/api/admin", tags=["admin"])
log = structlog.get_logger(__name__)

USER_FIELDS = ("full_name", "role", "is_active", "department", "business_unit_id")


def _get_user(db: Session, user_id: uuid.UUID) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound("User not found")
    return user


@router.get("/activity-log")
def activity_log(
    page: int = 1,
    limit: int = 100,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_roles(SystemRole.ADMIN)),
):
    page_ = paginate(
        db,
        select(AdminActivityLog, User.full_name).outerjoin(User, User.id == AdminActivityLog.admin_id),
        [],
        count_column=AdminActivityLog.id,
        order_by=[AdminActivityLog.created_at.desc(), AdminActivityLog.id],
        page=page,
        limit=limit,
        scalars=False,
    )
    return page_.envelope("data", lambda row: activity_to_dict(row[0], admin_name=row[1]))


@router.get("/expenses")
def list_expenses(
    status: Optional[str] = None,
    project_id: Optional[uuid.UUID] = None,
    page: int = 1,
    limit: int = 50,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_roles(SystemRole.MANAGER)),
):
    preds = []
    if status and status != "all":
        preds.append(Expense.status == status)
    if project_id:
        preds.append(Expense.project_id == project_id)
    page_ = paginate(
        db,
        select(Expense),
        preds,
        count_column=Expense.id,
        order_by=[Expense.created_at.desc(), Expense.id],
        page=page,
        limit=limit,
    )
    return page_.envelope("expenses", expense_to_dict)


@router.put("/expenses/{expense_id}/approve")
def approve_expense(
    expense_id: uuid.UUID,
    payload: ExpenseDecision,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(SystemRole.MANAGER)),
):
    expense = decide_expense(db, user, expense_id, payload.status, payload.comments)
    log_admin_activity(
        db,
        user.id,
        f"{payload.status.upper()}_EXPENSE",
        "expenses",
        expense.id,
        {"comments": payload.comments, "amount": expense.amount, "project_id": expense.project_id},
    )
    return {"expense": expense_to_dict(expense)}


@router.get("/users")
def list_users(
    role: Optional[str] = None,
    department: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_roles(SystemRole.ADMIN)),
):
    preds = []
    if role and role != "all":
        preds.append(User.role == role)
    if department and department != "all":
        preds.append(User.department == department)
    page_ = paginate(
        db,
        select(User),
        preds,
        count_column=User.id,
        order_by=[User.created_at.desc(), User.id],
        page=page,
        limit=limit,
    )
    return page_.envelope("users", user_to_dict)


@router.post("/users", status_code=http_status.HTTP_201_CREATED)
def create_user(
    payload: AdminUserCreate,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_roles(SystemRole.ADMIN)),
):
    """Create an account with the configured default password."""
    email = payload.email.lower()
    if db.query(User.id).filter(User.email == email).first():
        raise Conflict("User with this email already exists")
    user = User(
        email=email,
        password_hash=get_password_hash(settings.default_user_password),
        full_name=payload.full_name.strip(),
        department=payload.department,
        role=payload.role,
        is_active=payload.status == "active",
    )
    db.add(user)
    try:
        db.flush()
        log_admin_activity(
            db,
            admin.id,
            "CREATE_USER",
            "users",
            user.id,
            {"email": email, "full_name": user.full_name, "role": payload.role, "status": payload.status},
            commit=False,
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("User with this email already exists")
    db.refresh(user)
    log.info("user_created", user_id=str(user.id), by=str(admin.id))
    return {
        "user": user_to_dict(user),
        "message": f"User created successfully. Default password is: {settings.default_user_password}",
    }


@router.put("/users/{user_id}")
def update_user(
    user_id: uuid.UUID,
    payload: AdminUserUpdate,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_roles(SystemRole.ADMIN)),
):
    data = payload.model_dump(exclude_unset=True)
    if not data:
        raise ValidationFailed("No valid fields to update")
    if user_id == admin.id and data.get("is_active") is False:
        raise ValidationFailed("Cannot deactivate your own account")
    user = _get_user(db, user_id)
    if data.get("business_unit_id") and not db.get(BusinessUnit, data["business_unit_id"]):
        raise ValidationFailed("Business unit not found")

    before = snapshot(user, USER_FIELDS)
    for k, v in data.items():
        setattr(user, k, v)
    user.updated_at = datetime.utcnow()
    after = snapshot(user, USER_FIELDS)
    log_admin_activity(db, admin.id, "UPDATE_USER", "users", user.id, compute_diff(before, after), commit=False)
    db.commit()
    db.refresh(user)
    return {"user": user_to_dict(user)}


@router.delete("/users/{user_id}")
def delete_user(
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_roles(SystemRole.ADMIN)),
):
    """
    Delete a user account.

    Refused while the user manages projects or has pending expenses. Other
    references are detached and the memberships and notifications of the
    user are deleted, all in one transaction.
    """
    if user_id == admin.id:
        raise ValidationFailed("Cannot delete your own account")
    user = _get_user(db, user_id)

    if count_where(db, Project.id, Project.manager_id == user_id):
        raise DependencyConflict(
            "Cannot delete user who is managing active projects. Please reassign project management first."
        )
    if count_where(db, Expense.id, Expense.submitted_by == user_id, Expense.status == "pending"):
        raise DependencyConflict(
            "Cannot delete user who has pending expenses. Please process all pending expenses first."
        )

    email = user.email
    try:
        db.query(ProjectTeam).filter(ProjectTeam.user_id == user_id).delete(synchronize_session=False)
        db.query(Notification).filter(Notification.user_id == user_id).delete(synchronize_session=False)
        detach = [
            (Expense, Expense.approved_by, "approved_by"),
            (Expense, Expense.submitted_by, "submitted_by"),
            (BudgetVersion, BudgetVersion.created_by, "created_by"),
            (BudgetVersion, BudgetVersion.approved_by, "approved_by"),
            (ProjectMilestone, ProjectMilestone.created_by, "created_by"),
            (BusinessUnit, BusinessUnit.manager_id, "manager_id"),
            (Project, Project.created_by, "created_by"),
            (AdminActivityLog, AdminActivityLog.admin_id, "admin_id"),
        ]
        for model, column, name in detach:
            db.query(model).filter(column == user_id).update({name: None}, synchronize_session=False)
        db.delete(user)
        log_admin_activity(db, admin.id, "DELETE_USER", "users", user_id, {"email": email}, commit=False)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DependencyConflict(
            "Cannot delete user due to existing dependencies. Please contact system administrator."
        )
    log.info("user_deleted", user_id=str(user_id), by=str(admin.id))
    return {"message": "User deleted successfully"}


@router.get("/overview")
def overview(db: Session = Depends(get_db), _: CurrentUser = Depends(require_roles(SystemRole.ADMIN))):
    total_budget, total_spent = db.execute(
        select(func.coalesce(func.sum(Project.total_budget), 0), func.coalesce(func.sum(Project.spent_budget), 0))
    ).one()
    total_budget, total_spent = float(total_budget), float(total_spent)
    return {
        "active_users": count_where(db, User.id, User.is_active.is_(True)),
        "total_projects": count_where(db, Project.id),
        "active_projects": count_where(db, Project.id, Project.status == "active"),
        "pending_expenses": count_where(db, Expense.id, Expense.status == "pending"),
        "total_budget": total_budget,
        "total_spent": total_spent,
        "business_units_count": count_where(db, BusinessUnit.id),
        "unread_notifications": count_where(db, Notification.id, Notification.read.is_(False)),
        "budget_utilization": round(total_spent / total_budget * 100, 1) if total_budget > 0 else 0,
    }
