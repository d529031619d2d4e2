"""
Project-scoped permission resolution.

The resolver functions answer questions about project membership only and
never grant anything because of the caller's system role. The guards and
``authorize_project`` apply the system-admin bypass before delegating to
them. Every resolver fails closed: a database error is logged and treated
as "no permission".
"""
import uuid
from typing import List, Optional, Set

import structlog
from fastapi import Depends
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth.security import CurrentUser, get_current_user
from ..db import get_db
from ..errors import Forbidden, NotFound
from ..models.models import Project, ProjectTeam, RolePermission
from .roles import Permission, ProjectRole, OVERSIGHT_ROLES


log = structlog.get_logger(__name__)


def _perm_name(permission) -> str:
    return permission.value if isinstance(permission, Permission) else str(permission)


def has_project_permission(db: Session, user_id: uuid.UUID, project_id: uuid.UUID, permission) -> bool:
    """True iff the user's membership role on the project maps to ``permission``."""
    try:
        row = (
            db.query(ProjectTeam.id)
            .join(RolePermission, RolePermission.role == ProjectTeam.role)
            .filter(
                ProjectTeam.user_id == user_id,
                ProjectTeam.project_id == project_id,
                RolePermission.permission_name == _perm_name(permission),
            )
            .first()
        )
        return row is not None
    except SQLAlchemyError as e:
        log.error("permission_check_failed", user_id=str(user_id), project_id=str(project_id), error=str(e))
        return False


def is_project_admin(db: Session, user_id: uuid.UUID, project_id: uuid.UUID) -> bool:
    try:
        row = (
            db.query(ProjectTeam.id)
            .filter(
                ProjectTeam.user_id == user_id,
                ProjectTeam.project_id == project_id,
                ProjectTeam.role == ProjectRole.ADMIN.value,
            )
            .first()
        )
        return row is not None
    except SQLAlchemyError as e:
        log.error("project_admin_check_failed", user_id=str(user_id), project_id=str(project_id), error=str(e))
        return False


def is_project_creator(db: Session, user_id: uuid.UUID, project_id: uuid.UUID) -> bool:
    try:
        row = db.query(Project.id).filter(Project.id == project_id, Project.manager_id == user_id).first()
        return row is not None
    except SQLAlchemyError as e:
        log.error("project_creator_check_failed", user_id=str(user_id), project_id=str(project_id), error=str(e))
        return False


def get_user_project_permissions(db: Session, user_id: uuid.UUID, project_id: uuid.UUID) -> List[str]:
    try:
        rows = (
            db.query(RolePermission.permission_name)
            .join(ProjectTeam, ProjectTeam.role == RolePermission.role)
            .filter(ProjectTeam.user_id == user_id, ProjectTeam.project_id == project_id)
            .distinct()
            .all()
        )
        return sorted(r[0] for r in rows)
    except SQLAlchemyError as e:
        log.error("project_permissions_lookup_failed", user_id=str(user_id), project_id=str(project_id), error=str(e))
        return []


def get_user_projects_with_permission(db: Session, user_id: uuid.UUID, permission) -> List[uuid.UUID]:
    try:
        rows = (
            db.query(ProjectTeam.project_id)
            .join(RolePermission, RolePermission.role == ProjectTeam.role)
            .filter(ProjectTeam.user_id == user_id, RolePermission.permission_name == _perm_name(permission))
            .distinct()
            .all()
        )
        return [r[0] for r in rows]
    except SQLAlchemyError as e:
        log.error("projects_with_permission_lookup_failed", user_id=str(user_id), error=str(e))
        return []


def get_user_admin_projects(db: Session, user_id: uuid.UUID, role: Optional[str] = None) -> List[uuid.UUID]:
    """
    Projects the user administers.

    System admins and managers get every project (oversight); everybody else
    only the projects where their membership role is ``admin``.
    """
    try:
        if role in OVERSIGHT_ROLES:
            rows = db.query(Project.id).all()
        else:
            rows = (
                db.query(ProjectTeam.project_id)
                .filter(ProjectTeam.user_id == user_id, ProjectTeam.role == ProjectRole.ADMIN.value)
                .all()
            )
        return [r[0] for r in rows]
    except SQLAlchemyError as e:
        log.error("admin_projects_lookup_failed", user_id=str(user_id), error=str(e))
        return []


def effective_permissions(db: Session, user: CurrentUser, project_id: uuid.UUID) -> Set[str]:
    if user.is_admin:
        return {p.value for p in Permission}
    return set(get_user_project_permissions(db, user.id, project_id))


def authorize_project(
    db: Session,
    user: CurrentUser,
    project_id: uuid.UUID,
    *,
    permission=None,
    project_admin: bool = False,
    allow_creator: bool = False,
) -> None:
    """
    Raise Forbidden unless the caller may act on the project.

    Passes for system admins; otherwise for the creator (when
    ``allow_creator``), a project admin (when ``project_admin``) or a holder
    of ``permission``.
    """
    if user.is_admin:
        return
    if allow_creator and is_project_creator(db, user.id, project_id):
        return
    if project_admin and is_project_admin(db, user.id, project_id):
        return
    if permission is not None and has_project_permission(db, user.id, project_id, permission):
        return
    if permission is not None:
        raise Forbidden(f"Insufficient permissions. Required: {_perm_name(permission)}")
    raise Forbidden("Project admin access required")


def require_project_permission(permission):
    """Guard for routes with a ``project_id`` path parameter."""

    def _dep(
        project_id: uuid.UUID,
        user: CurrentUser = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> CurrentUser:
        authorize_project(db, user, project_id, permission=permission)
        return user

    return _dep


def require_project_admin():
    def _dep(
        project_id: uuid.UUID,
        user: CurrentUser = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> CurrentUser:
        authorize_project(db, user, project_id, project_admin=True)
        return user

    return _dep


def member_project_ids(user_id: uuid.UUID):
    return select(ProjectTeam.project_id).where(ProjectTeam.user_id == user_id)


def project_visibility_predicate(user: CurrentUser):
    """Predicate limiting ``Project`` rows to ones the caller manages or is on the team of."""
    if user.is_admin:
        return None
    return or_(Project.manager_id == user.id, Project.id.in_(member_project_ids(user.id)))


def visible_project_ids(user: CurrentUser):
    """Subquery of the ids of every project the caller can see."""
    stmt = select(Project.id)
    pred = project_visibility_predicate(user)
    return stmt.where(pred) if pred is not None else stmt


def can_access_project(db: Session, user: CurrentUser, project_id: uuid.UUID) -> bool:
    if user.is_admin:
        return True
    try:
        if is_project_creator(db, user.id, project_id):
            return True
        row = (
            db.query(ProjectTeam.id)
            .filter(ProjectTeam.user_id == user.id, ProjectTeam.project_id == project_id)
            .first()
        )
        return row is not None
    except SQLAlchemyError as e:
        log.error("project_access_check_failed", user_id=str(user.id), project_id=str(project_id), error=str(e))
        return False


def get_project_or_404(db: Session, project_id: uuid.UUID) -> Project:
    project = db.query(Project).filter(Project.id == project_id).first()
    if not project:
        raise NotFound("Project not found")
    return project


def ensure_project_access(db: Session, user: CurrentUser, project_id: uuid.UUID) -> Project:
    """Load the project and require that the caller can see it."""
    project = get_project_or_404(db, project_id)
    if not can_access_project(db, user, project_id):
        raise Forbidden("Access denied to this project")
    return project
