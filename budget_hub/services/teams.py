"""Project team membership changes shared by the team routers."""
import uuid

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth.security import CurrentUser
from ..errors import Conflict, NotFound
from ..models.models import ProjectTeam, User
from . import notifications
from .permissions import authorize_project, get_project_or_404
from .roles import Permission, ProjectRole


log = structlog.get_logger(__name__)

ALREADY_MEMBER = "User is already a member of this project team"


def authorize_team_change(db: Session, user: CurrentUser, project_id: uuid.UUID) -> None:
    authorize_project(db, user, project_id, permission=Permission.MANAGE_TEAM, allow_creator=True)


def add_member(db: Session, user: CurrentUser, project_id: uuid.UUID, member_id: uuid.UUID, role: str) -> ProjectTeam:
    """Insert a membership; the unique (project, user) constraint rejects duplicates."""
    project = get_project_or_404(db, project_id)
    authorize_team_change(db, user, project.id)
    if not db.get(User, member_id):
        raise NotFound("User not found")
    if db.query(ProjectTeam.id).filter(ProjectTeam.project_id == project.id, ProjectTeam.user_id == member_id).first():
        raise Conflict(ALREADY_MEMBER)

    member = ProjectTeam(project_id=project.id, user_id=member_id, role=role)
    db.add(member)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict(ALREADY_MEMBER)
    db.refresh(member)
    log.info("team_member_added", project_id=str(project.id), user_id=str(member_id), role=role)

    if role in (ProjectRole.ADMIN.value, ProjectRole.MANAGER.value):
        notifications.dispatch(notifications.notify_project_admin_assignment, db, project, member_id)
    return member


def remove_member(db: Session, user: CurrentUser, membership_id: uuid.UUID) -> dict:
    """Delete a membership and return its ids."""
    member = db.query(ProjectTeam).filter(ProjectTeam.id == membership_id).first()
    if not member:
        raise NotFound("Project team member not found")
    authorize_team_change(db, user, member.project_id)
    removed = {"id": str(member.id), "project_id": str(member.project_id), "user_id": str(member.user_id)}
    db.delete(member)
    db.commit()
    log.info("team_member_removed", **removed)
    return removed
