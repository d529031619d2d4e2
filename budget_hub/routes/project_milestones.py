import uuid
from datetime import date, datetime, time
from typing import Optional

from fastapi import APIRouter, Depends, status as http_status
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import NotFound, ValidationFailed
from ..models.models import ProjectMilestone
from ..auth.security import CurrentUser, get_current_user
from ..schemas.projects import MilestoneCreate, MilestoneUpdate
from ..services.listing import paginate
from ..services.permissions import (
    authorize_project,
    ensure_project_access,
    get_project_or_404,
    visible_project_ids,
)
from ..services.roles import Permission
from ..services.serializers import milestone_to_dict


router = APIRouter(prefix="/api/project-milestones", tags=["project-milestones"])


def _get_milestone(db: Session, milestone_id: uuid.UUID) -> ProjectMilestone:
    m = db.query(ProjectMilestone).filter(ProjectMilestone.id == milestone_id).first()
    if not m:
        raise NotFound("Milestone not found")
    return m


def _authorize(db: Session, user: CurrentUser, project_id: uuid.UUID) -> None:
    authorize_project(db, user, project_id, permission=Permission.MANAGE_MILESTONES, allow_creator=True)


def _as_datetime(d: date) -> datetime:
    return datetime.combine(d, time.min)


@router.get("")
def list_milestones(
    status: Optional[str] = None,
    project_id: Optional[uuid.UUID] = None,
    page: int = 1,
    limit: int = 10,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    preds = []
    if status and status != "all":
        preds.append(ProjectMilestone.status == status)
    if project_id:
        preds.append(ProjectMilestone.project_id == project_id)
    if not user.is_admin:
        preds.append(ProjectMilestone.project_id.in_(visible_project_ids(user)))
    page_ = paginate(
        db,
        select(ProjectMilestone),
        preds,
        count_column=ProjectMilestone.id,
        order_by=[ProjectMilestone.due_date.asc(), ProjectMilestone.id],
        page=page,
        limit=limit,
    )
    return page_.envelope("milestones", milestone_to_dict)


@router.get("/project/{project_id}")
def list_project_milestones(
    project_id: uuid.UUID,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    ensure_project_access(db, user, project_id)
    preds = [ProjectMilestone.project_id == project_id]
    if status and status != "all":
        preds.append(ProjectMilestone.status == status)
    page_ = paginate(
        db,
        select(ProjectMilestone),
        preds,
        count_column=ProjectMilestone.id,
        order_by=[ProjectMilestone.due_date.asc(), ProjectMilestone.id],
        page=page,
        limit=limit,
    )
    return page_.envelope("milestones", milestone_to_dict)


@router.get("/project/{project_id}/stats")
def project_milestone_stats(project_id: uuid.UUID, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    ensure_project_access(db, user, project_id)
    rows = db.query(ProjectMilestone).filter(ProjectMilestone.project_id == project_id).all()
    today = date.today()

    counts = {s: 0 for s in ("not_started", "in_progress", "completed", "overdue")}
    for m in rows:
        counts[m.status] = counts.get(m.status, 0) + 1
    past_due = sum(1 for m in rows if m.due_date and m.due_date < today and m.status != "completed")
    delays = [
        (m.completion_date.date() - m.due_date).days
        for m in rows
        if m.status == "completed" and m.completion_date and m.due_date
    ]
    return {
        "stats": {
            "total_milestones": len(rows),
            "completed_milestones": counts["completed"],
            "in_progress_milestones": counts["in_progress"],
            "not_started_milestones": counts["not_started"],
            "overdue_milestones": counts["overdue"],
            "past_due_milestones": past_due,
            "avg_progress": round(sum(m.progress or 0 for m in rows) / len(rows), 2) if rows else 0,
            "avg_completion_delay_days": round(sum(delays) / len(delays), 2) if delays else None,
        }
    }


@router.get("/{milestone_id}")
def get_milestone(milestone_id: uuid.UUID, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    m = _get_milestone(db, milestone_id)
    ensure_project_access(db, user, m.project_id)
    return {"milestone": milestone_to_dict(m)}


@router.post("", status_code=http_status.HTTP_201_CREATED)
def create_milestone(payload: MilestoneCreate, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    project = get_project_or_404(db, payload.project_id)
    _authorize(db, user, project.id)
    m = ProjectMilestone(
        project_id=project.id,
        title=payload.title.strip(),
        description=payload.description,
        due_date=payload.due_date,
        status=payload.status,
        progress=100 if payload.status == "completed" else payload.progress,
        completion_date=datetime.utcnow() if payload.status == "completed" else None,
        created_by=user.id,
    )
    db.add(m)
    db.commit()
    db.refresh(m)
    return {"milestone": milestone_to_dict(m)}


@router.put("/{milestone_id}")
def update_milestone(
    milestone_id: uuid.UUID,
    payload: MilestoneUpdate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    m = _get_milestone(db, milestone_id)
    _authorize(db, user, m.project_id)
    data = payload.model_dump(exclude_unset=True)
    if not data:
        raise ValidationFailed("No valid fields to update")

    if data.get("completion_date"):
        data["completion_date"] = _as_datetime(data["completion_date"])
    if data.get("status") == "completed" and m.status != "completed":
        data.setdefault("progress", 100)
        if not data.get("completion_date"):
            data["completion_date"] = datetime.utcnow()
    elif data.get("status") and data["status"] != "completed":
        data.setdefault("completion_date", None)

    for k, v in data.items():
        setattr(m, k, v)
    m.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(m)
    return {"milestone": milestone_to_dict(m)}


@router.delete("/{milestone_id}")
def delete_milestone(milestone_id: uuid.UUID, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    m = _get_milestone(db, milestone_id)
    _authorize(db, user, m.project_id)
    db.delete(m)
    db.commit()
    return {"message": "Milestone deleted successfully"}
