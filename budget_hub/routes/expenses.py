import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, status as http_status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session
import structlog

from ..db import get_db
from ..errors import Conflict, Forbidden, ValidationFailed
from ..models.models import BudgetCategory, Expense
from ..auth.security import CurrentUser, get_current_user
from ..schemas.budgets import ExpenseCreate, ExpenseUpdate
from ..services import notifications
from ..services.expenses import add_to_spent, get_expense_or_404
from ..services.listing import paginate
from ..services.permissions import ensure_project_access, has_project_permission, visible_project_ids
from ..services.roles import Permission
from ..services.serializers import expense_to_dict


router = APIRouter(prefix="/api/expenses", tags=["expenses"])
log = structlog.get_logger(__name__)


def expense_scope(user: CurrentUser):
    """Own submissions plus expenses of every visible project."""
    if user.is_admin:
        return None
    return or_(Expense.submitted_by == user.id, Expense.project_id.in_(visible_project_ids(user)))


def _check_category(db: Session, category_id: uuid.UUID, project_id: uuid.UUID) -> None:
    found = (
        db.query(BudgetCategory.id)
        .filter(BudgetCategory.id == category_id, BudgetCategory.project_id == project_id)
        .first()
    )
    if not found:
        raise ValidationFailed("Invalid category for this project")


def _adjust_spent(db: Session, expense: Expense, old_status: str, old_amount: Decimal) -> None:
    """Keep the project's spent budget equal to its approved expense total."""
    delta = Decimal(0)
    if old_status == "approved":
        delta -= old_amount
    if expense.status == "approved":
        delta += expense.amount
    if delta:
        add_to_spent(db, expense.project_id, delta)


@router.get("")
def list_expenses(
    status: Optional[str] = None,
    project_id: Optional[uuid.UUID] = None,
    page: int = 1,
    limit: int = 10,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    preds = []
    if status and status != "all":
        preds.append(Expense.status == status)
    if project_id:
        preds.append(Expense.project_id == project_id)
    preds.append(expense_scope(user))
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


@router.get("/project/{project_id}")
def list_project_expenses(
    project_id: uuid.UUID,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    ensure_project_access(db, user, project_id)
    preds = [Expense.project_id == project_id]
    if status and status != "all":
        preds.append(Expense.status == status)
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


@router.post("", status_code=http_status.HTTP_201_CREATED)
def create_expense(payload: ExpenseCreate, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    ensure_project_access(db, user, payload.project_id)
    _check_category(db, payload.category_id, payload.project_id)
    expense = Expense(
        project_id=payload.project_id,
        category_id=payload.category_id,
        description=payload.description.strip(),
        amount=payload.amount,
        expense_date=payload.expense_date or date.today(),
        status="pending",
        submitted_by=user.id,
    )
    db.add(expense)
    db.commit()
    db.refresh(expense)
    log.info("expense_submitted", expense_id=str(expense.id), project_id=str(expense.project_id))
    notifications.dispatch(notifications.notify_new_expense_submission, db, expense)
    return {"expense": expense_to_dict(expense)}


@router.put("/{expense_id}")
def update_expense(
    expense_id: uuid.UUID,
    payload: ExpenseUpdate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """
    Edit an expense.

    Submitters may edit their own expenses while pending. Status can only be
    changed here by a system admin; approvers use the approval endpoints.
    """
    expense = get_expense_or_404(db, expense_id)
    data = payload.model_dump(exclude_unset=True)
    if not user.is_admin:
        if expense.submitted_by != user.id:
            raise Forbidden("Not authorized to update this expense")
        if expense.status != "pending":
            raise Conflict("Cannot modify approved/rejected expenses")
        if "status" in data:
            raise Forbidden("Only administrators can change expense status here")
    if data.get("category_id"):
        _check_category(db, data["category_id"], expense.project_id)

    old_status, old_amount = expense.status, expense.amount
    for k, v in data.items():
        if v is not None:
            setattr(expense, k, v)
    if data.get("status") in ("approved", "rejected") and old_status != data["status"]:
        expense.approved_by = user.id
    _adjust_spent(db, expense, old_status, old_amount)
    expense.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(expense)
    return {"expense": expense_to_dict(expense)}


@router.delete("/{expense_id}")
def delete_expense(expense_id: uuid.UUID, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    expense = get_expense_or_404(db, expense_id)
    if not user.is_admin:
        is_owner = expense.submitted_by == user.id
        if not is_owner and not has_project_permission(db, user.id, expense.project_id, Permission.DELETE_EXPENSES):
            raise Forbidden("Not authorized to delete this expense")
        if expense.status != "pending":
            raise Conflict("Cannot delete approved/rejected expenses")
    if expense.status == "approved":
        add_to_spent(db, expense.project_id, -expense.amount)
    db.delete(expense)
    db.commit()
    log.info("expense_deleted", expense_id=str(expense_id), deleted_by=str(user.id))
    return {"message": "Expense deleted successfully"}
