import uuid
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import structlog

from ..db import get_db
from ..errors import NotFound, ValidationFailed
from ..models.models import Project, ProjectPermission, ProjectTeam, User
from ..auth.security import CurrentUser, get_current_user, require_roles
from ..schemas.teams import AdminAssignment
from ..services import notifications
from ..services.audit import log_admin_activity
from ..services.permissions import (
    effective_permissions,
    get_user_admin_projects,
    is_project_admin,
    require_project_permission,
)
from ..services.roles import Permission, ProjectRole, SystemRole


router = APIRouter(prefix="/api/project-admin", tags=["project-admin"])
log = structlog.get_logger(__name__)


def _membership(db: Session, project_id: uuid.UUID, user_id: uuid.UUID):
    return (
        db.query(ProjectTeam)
        .filter(ProjectTeam.project_id == project_id, ProjectTeam.user_id == user_id)
        .first()
    )


def _promote(db: Session, project_id: uuid.UUID, user_id: uuid.UUID) -> None:
    """Upsert the membership as project admin and commit."""
    member = _membership(db, project_id, user_id)
    if member:
        member.role = ProjectRole.ADMIN.value
        member.updated_at = datetime.utcnow()
        db.commit()
        return
    db.add(ProjectTeam(project_id=project_id, user_id=user_id, role=ProjectRole.ADMIN.value))
    try:
        db.commit()
    except IntegrityError:
        # A concurrent request inserted the membership first
        db.rollback()
        member = _membership(db, project_id, user_id)
        member.role = ProjectRole.ADMIN.value
        member.updated_at = datetime.utcnow()
        db.commit()


@router.get("/my-admin-projects")
def my_admin_projects(db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    ids = get_user_admin_projects(db, user.id, user.role)
    if not ids:
        return []
    since = {
        m.project_id: m.created_at
        for m in db.query(ProjectTeam).filter(
            ProjectTeam.user_id == user.id, ProjectTeam.role == ProjectRole.ADMIN.value
        )
    }
    rows = db.query(Project).filter(Project.id.in_(ids)).order_by(Project.created_at.desc()).all()
    result = []
    for p in rows:
        admin_since = since.get(p.id) or p.created_at
        result.append({
            "id": str(p.id),
            "name": p.name,
            "description": p.description,
            "status": p.status,
            "start_date": p.start_date.isoformat() if p.start_date else None,
            "end_date": p.end_date.isoformat() if p.end_date else None,
            "admin_since": admin_since.isoformat() if admin_since else None,
        })
    return result


@router.get("/permissions-list")
def permissions_list(db: Session = Depends(get_db), _: CurrentUser = Depends(require_roles(SystemRole.MANAGER))):
    rows = db.query(ProjectPermission).order_by(ProjectPermission.name).all()
    return [{"name": r.name, "description": r.description} for r in rows]


@router.get("/permissions/{project_id}")
def my_project_permissions(project_id: uuid.UUID, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return {
        "is_project_admin": is_project_admin(db, user.id, project_id),
        "permissions": sorted(effective_permissions(db, user, project_id)),
        "is_system_admin": user.is_admin,
    }


@router.get("/{project_id}/admins")
def list_project_admins(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_project_permission(Permission.MANAGE_TEAM)),
):
    rows = (
        db.query(ProjectTeam, User)
        .join(User, User.id == ProjectTeam.user_id)
        .filter(ProjectTeam.project_id == project_id, ProjectTeam.role == ProjectRole.ADMIN.value)
        .order_by(ProjectTeam.created_at.desc())
        .all()
    )
    return [
        {
            "id": str(u.id),
            "email": u.email,
            "full_name": u.full_name,
            "department": u.department,
            "role": m.role,
            "assigned_at": m.created_at.isoformat() if m.created_at else None,
        }
        for m, u in rows
    ]


@router.post("/{project_id}/admins")
def assign_project_admin(
    project_id: uuid.UUID,
    payload: AdminAssignment,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_project_permission(Permission.MANAGE_TEAM)),
):
    """
    Make a user admin of a project.

    Idempotent: an existing membership is promoted, otherwise one is created.
    """
    target = db.get(User, payload.user_id)
    if not target:
        raise NotFound("User not found")
    project = db.get(Project, project_id)
    if not project:
        raise NotFound("Project not found")

    _promote(db, project.id, target.id)
    log_admin_activity(
        db,
        user.id,
        "ASSIGN_PROJECT_ADMIN",
        "project_teams",
        project.id,
        {"user_id": target.id, "user_name": target.full_name, "project_name": project.name},
    )
    log.info("project_admin_assigned", project_id=str(project.id), user_id=str(target.id), by=str(user.id))
    notifications.dispatch(notifications.notify_project_admin_assignment, db, project, target.id)
    return {
        "message": "User assigned as project admin successfully",
        "user": {"id": str(target.id), "full_name": target.full_name},
        "project": {"id": str(project.id), "name": project.name},
    }


@router.delete("/{project_id}/admins/{user_id}")
def remove_project_admin(
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_project_permission(Permission.MANAGE_TEAM)),
):
    """Demote a project admin to member; the membership itself is kept."""
    member = _membership(db, project_id, user_id)
    if not member:
        raise NotFound("User is not a member of this project")
    if member.role != ProjectRole.ADMIN.value:
        raise ValidationFailed("User is not a project admin")
    member.role = ProjectRole.MEMBER.value
    member.updated_at = datetime.utcnow()
    db.commit()
    log_admin_activity(db, user.id, "REMOVE_PROJECT_ADMIN", "project_teams", project_id, {"user_id": user_id})
    return {"message": "Project admin role removed successfully"}
