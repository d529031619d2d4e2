import uuid
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import Project, ProjectTeam, User
from ..auth.security import CurrentUser, get_current_user, require_roles
from ..schemas.teams import TeamMemberCreate
from ..services import teams
from ..services.listing import paginate
from ..services.roles import SystemRole
from ..services.serializers import team_member_to_dict


router = APIRouter(prefix="/api/teams", tags=["teams"])


@router.get("")
def list_team_members(
    search: Optional[str] = None,
    project_id: Optional[uuid.UUID] = None,
    role: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """All memberships the caller can see, across projects."""
    stmt = (
        select(ProjectTeam)
        .join(User, User.id == ProjectTeam.user_id)
        .join(Project, Project.id == ProjectTeam.project_id)
    )
    preds = []
    if search:
        like = f"%{search}%"
        preds.append(or_(User.full_name.ilike(like), Project.name.ilike(like), ProjectTeam.role.ilike(like)))
    if project_id:
        preds.append(ProjectTeam.project_id == project_id)
    if role:
        preds.append(ProjectTeam.role == role)
    if not user.is_admin:
        preds.append(or_(Project.manager_id == user.id, ProjectTeam.user_id == user.id))
    page_ = paginate(
        db,
        stmt,
        preds,
        count_column=ProjectTeam.id,
        order_by=[ProjectTeam.created_at.desc(), ProjectTeam.id],
        page=page,
        limit=limit,
    )
    return page_.envelope("teams", team_member_to_dict)


@router.post("", status_code=status.HTTP_201_CREATED)
def add_team_member(
    payload: TeamMemberCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(SystemRole.MANAGER)),
):
    member = teams.add_member(db, user, payload.project_id, payload.user_id, payload.role)
    return {"team": team_member_to_dict(member)}


@router.delete("/{membership_id}")
def remove_team_member(
    membership_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(SystemRole.MANAGER)),
):
    teams.remove_member(db, user, membership_id)
    return {"message": "Team member removed successfully"}
