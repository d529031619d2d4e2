"""
In-app notification fan-out.

Recipients are resolved with a query and one Notification row is written
per recipient. Each row is committed on its own; a failed insert is logged
and skipped so one bad recipient never loses the rest of the batch.
Routes call these helpers through ``dispatch`` after their own changes are
committed, so a notification failure never fails the triggering request.
"""
import uuid
from typing import Iterable, List, Optional

import structlog
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.models import Expense, Notification, Project, ProjectTeam, User
from .roles import ProjectRole, SystemRole


log = structlog.get_logger(__name__)

NOTIFICATION_TYPES = ("info", "warning", "error", "success")


def create_notification(
    db: Session,
    user_id: uuid.UUID,
    title: str,
    message: str,
    type: str = "info",
    action_url: Optional[str] = None,
) -> Notification:
    n = Notification(user_id=user_id, title=title, message=message, type=type, action_url=action_url)
    db.add(n)
    db.commit()
    db.refresh(n)
    return n


def create_bulk_notifications(
    db: Session,
    user_ids: Iterable[uuid.UUID],
    title: str,
    message: str,
    type: str = "info",
    action_url: Optional[str] = None,
) -> List[Notification]:
    created = []
    for uid in user_ids:
        try:
            created.append(create_notification(db, uid, title, message, type, action_url))
        except SQLAlchemyError as e:
            db.rollback()
            log.warning("notification_failed", user_id=str(uid), title=title, error=str(e))
    return created


def _ids(db: Session, stmt) -> List[uuid.UUID]:
    return [r[0] for r in db.execute(stmt).all()]


def project_team_ids(db: Session, project_id: uuid.UUID, exclude_user_id: Optional[uuid.UUID] = None) -> List[uuid.UUID]:
    """Project manager plus every team member."""
    stmt = select(User.id).where(
        or_(
            User.id.in_(select(Project.manager_id).where(Project.id == project_id)),
            User.id.in_(select(ProjectTeam.user_id).where(ProjectTeam.project_id == project_id)),
        )
    )
    if exclude_user_id is not None:
        stmt = stmt.where(User.id != exclude_user_id)
    return _ids(db, stmt.order_by(User.id))


def project_admin_ids(db: Session, project_id: uuid.UUID) -> List[uuid.UUID]:
    """Project manager plus members holding the admin or manager project role."""
    stmt = select(User.id).where(
        or_(
            User.id.in_(select(Project.manager_id).where(Project.id == project_id)),
            User.id.in_(
                select(ProjectTeam.user_id).where(
                    ProjectTeam.project_id == project_id,
                    ProjectTeam.role.in_([ProjectRole.ADMIN.value, ProjectRole.MANAGER.value]),
                )
            ),
        )
    )
    return _ids(db, stmt.order_by(User.id))


def notify_project_team(
    db: Session,
    project_id: uuid.UUID,
    title: str,
    message: str,
    type: str = "info",
    action_url: Optional[str] = None,
    exclude_user_id: Optional[uuid.UUID] = None,
) -> List[Notification]:
    return create_bulk_notifications(db, project_team_ids(db, project_id, exclude_user_id), title, message, type, action_url)


def notify_project_admins(
    db: Session,
    project_id: uuid.UUID,
    title: str,
    message: str,
    type: str = "info",
    action_url: Optional[str] = None,
) -> List[Notification]:
    return create_bulk_notifications(db, project_admin_ids(db, project_id), title, message, type, action_url)


def notify_all_admins(db: Session, title: str, message: str, type: str = "info", action_url: Optional[str] = None) -> List[Notification]:
    ids = _ids(db, select(User.id).where(User.role == SystemRole.ADMIN.value, User.is_active.is_(True)))
    return create_bulk_notifications(db, ids, title, message, type, action_url)


def broadcast(
    db: Session,
    title: str,
    message: str,
    type: str = "info",
    action_url: Optional[str] = None,
    roles: Optional[List[str]] = None,
) -> List[Notification]:
    """Notify every active user, optionally only those with one of ``roles``."""
    stmt = select(User.id).where(User.is_active.is_(True))
    if roles:
        stmt = stmt.where(User.role.in_(roles))
    return create_bulk_notifications(db, _ids(db, stmt), title, message, type, action_url)


# Domain notifications

def _money(amount) -> str:
    return f"${amount}"


def notify_expense_status_change(db: Session, expense: Expense, status: str, comments: Optional[str] = None):
    if not expense.submitted_by:
        return None
    project = db.get(Project, expense.project_id)
    status_text = "approved" if status == "approved" else "rejected"
    message = (
        f'Your expense "{expense.description}" for {_money(expense.amount)} in project '
        f'"{project.name if project else ""}" has been {status_text}.'
    )
    if comments:
        message += f" Comments: {comments}"
    return create_notification(
        db,
        expense.submitted_by,
        f"Expense {status_text.capitalize()}",
        message,
        "success" if status == "approved" else "warning",
        f"/expenses/{expense.id}",
    )


def notify_new_project(db: Session, project: Project, created_by: uuid.UUID) -> None:
    creator = db.get(User, created_by)
    notify_all_admins(
        db,
        "New Project Created",
        f'A new project "{project.name}" has been created by {creator.full_name if creator else "a user"}.',
        "info",
        f"/projects/{project.id}",
    )
    if project.manager_id and project.manager_id != created_by:
        create_notification(
            db,
            project.manager_id,
            "You've Been Assigned as Project Manager",
            f'You have been assigned as the project manager for "{project.name}".',
            "info",
            f"/projects/{project.id}",
        )


def notify_project_admin_assignment(db: Session, project: Project, user_id: uuid.UUID):
    return create_notification(
        db,
        user_id,
        "Project Admin Assignment",
        f'You have been assigned as an admin for project "{project.name}".',
        "info",
        f"/projects/{project.id}",
    )


def notify_budget_change(db: Session, project: Project, category_name: str, old_amount, new_amount, changed_by: uuid.UUID):
    change = "increased" if (new_amount or 0) > (old_amount or 0) else "decreased"
    return notify_project_team(
        db,
        project.id,
        "Budget Updated",
        f'Budget for "{category_name}" in project "{project.name}" has been {change} '
        f"from {_money(old_amount)} to {_money(new_amount)}.",
        "info",
        f"/projects/{project.id}/budget",
        exclude_user_id=changed_by,
    )


def notify_new_expense_submission(db: Session, expense: Expense):
    project = db.get(Project, expense.project_id)
    submitter = db.get(User, expense.submitted_by) if expense.submitted_by else None
    if not project:
        return []
    return notify_project_admins(
        db,
        project.id,
        "New Expense Requires Approval",
        f'{submitter.full_name if submitter else "A user"} submitted an expense "{expense.description}" '
        f'for {_money(expense.amount)} in project "{project.name}".',
        "warning",
        f"/expenses/{expense.id}",
    )


def notify_budget_overrun(db: Session, project: Project):
    log.warning(
        "budget_overrun",
        project_id=str(project.id),
        spent_budget=str(project.spent_budget),
        total_budget=str(project.total_budget),
    )
    return notify_project_admins(
        db,
        project.id,
        "Budget Overrun",
        f'Approved expenses for project "{project.name}" total {_money(project.spent_budget)}, '
        f"exceeding the budget of {_money(project.total_budget)}.",
        "warning",
        f"/projects/{project.id}",
    )


def dispatch(fn, *args, **kwargs):
    """Run a notification helper, logging and swallowing any failure."""
    try:
        return fn(*args, **kwargs)
    except Exception as e:
        if args and isinstance(args[0], Session):
            args[0].rollback()
        log.error("notification_dispatch_failed", helper=getattr(fn, "__name__", str(fn)), error=str(e))
        return None
