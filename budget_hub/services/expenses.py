"""
Expense approval.

Both the project-team route and the admin route resolve expenses through
``decide_expense``; only pending expenses may be approved or rejected.
"""
import uuid
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy import func, update
from sqlalchemy.orm import Session

from ..auth.security import CurrentUser
from ..errors import InvalidStateTransition, NotFound
from ..models.models import Expense, Project
from . import notifications
from .permissions import authorize_project
from .roles import Permission


log = structlog.get_logger(__name__)


def get_expense_or_404(db: Session, expense_id: uuid.UUID) -> Expense:
    expense = db.query(Expense).filter(Expense.id == expense_id).first()
    if not expense:
        raise NotFound("Expense not found")
    return expense


def authorize_approval(db: Session, user: CurrentUser, project_id: uuid.UUID) -> None:
    """Creator, approve_expenses holder, project admin or system admin."""
    authorize_project(
        db,
        user,
        project_id,
        permission=Permission.APPROVE_EXPENSES,
        project_admin=True,
        allow_creator=True,
    )


def add_to_spent(db: Session, project_id: uuid.UUID, delta: Decimal) -> None:
    """Add ``delta`` to a project's spent budget with a single UPDATE."""
    db.execute(
        update(Project)
        .where(Project.id == project_id)
        .values(spent_budget=func.coalesce(Project.spent_budget, 0) + delta)
        .execution_options(synchronize_session=False)
    )


def is_over_budget(project: Project) -> bool:
    total = project.total_budget or Decimal(0)
    return total > 0 and (project.spent_budget or Decimal(0)) > total


def decide_expense(
    db: Session,
    user: CurrentUser,
    expense_id: uuid.UUID,
    status: str,
    comments: Optional[str] = None,
) -> Expense:
    """
    Move a pending expense to ``approved`` or ``rejected``.

    Approval adds the amount to the project's spent budget. The submitter is
    notified, and project admins are warned when approved spending passes
    the project's total budget. Neither notification can fail the decision.
    """
    expense = get_expense_or_404(db, expense_id)
    authorize_approval(db, user, expense.project_id)

    if expense.status != "pending":
        raise InvalidStateTransition(f"Expense is already {expense.status}")

    # Conditional update so two concurrent decisions cannot both succeed
    updated = (
        db.query(Expense)
        .filter(Expense.id == expense.id, Expense.status == "pending")
        .update(
            {"status": status, "approved_by": user.id, "approval_comments": comments},
            synchronize_session="fetch",
        )
    )
    if updated != 1:
        db.rollback()
        raise InvalidStateTransition("Expense is no longer pending")

    project = db.get(Project, expense.project_id)
    over_budget = False
    if status == "approved" and project is not None:
        add_to_spent(db, project.id, expense.amount)
        db.refresh(project)
        over_budget = is_over_budget(project)
    db.commit()
    db.refresh(expense)
    log.info("expense_decided", expense_id=str(expense.id), status=status, decided_by=str(user.id))

    notifications.dispatch(notifications.notify_expense_status_change, db, expense, status, comments)
    if over_budget:
        notifications.dispatch(notifications.notify_budget_overrun, db, project)
    return expense
