import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import structlog

from ..db import get_db
from ..errors import Conflict, DependencyConflict, Forbidden, InvalidStateTransition, NotFound, ValidationFailed
from ..models.models import BudgetCategory, BudgetVersion
from ..auth.security import CurrentUser, get_current_user, require_roles
from ..schemas.budgets import BudgetVersionCreate, BudgetVersionUpdate
from ..services.permissions import authorize_project, ensure_project_access, get_project_or_404, has_project_permission
from ..services.roles import Permission, SystemRole
from ..services.serializers import version_to_dict


router = APIRouter(prefix="/api/budget-versions", tags=["budget-versions"])
log = structlog.get_logger(__name__)


def _get_version(db: Session, version_id: uuid.UUID) -> BudgetVersion:
    version = db.query(BudgetVersion).filter(BudgetVersion.id == version_id).first()
    if not version:
        raise NotFound("Budget version not found")
    return version


@router.get("/project/{project_id}")
def list_project_versions(project_id: uuid.UUID, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    ensure_project_access(db, user, project_id)
    rows = (
        db.query(BudgetVersion)
        .filter(BudgetVersion.project_id == project_id)
        .order_by(BudgetVersion.version_number.desc())
        .all()
    )
    return {"budget_versions": [version_to_dict(v) for v in rows], "total": len(rows)}


@router.get("/{version_id}")
def get_version(version_id: uuid.UUID, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    version = _get_version(db, version_id)
    ensure_project_access(db, user, version.project_id)
    return {"budget_version": version_to_dict(version)}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_version(payload: BudgetVersionCreate, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    project = get_project_or_404(db, payload.project_id)
    authorize_project(db, user, project.id, permission=Permission.MANAGE_BUDGET, allow_creator=True)
    last = db.query(func.max(BudgetVersion.version_number)).filter(BudgetVersion.project_id == project.id).scalar()
    version = BudgetVersion(
        project_id=project.id,
        version_number=(last or 0) + 1,
        title=payload.title.strip(),
        description=payload.description,
        status="draft",
        created_by=user.id,
    )
    db.add(version)
    try:
        db.commit()
    except IntegrityError:
        # Another request took the same version number
        db.rollback()
        raise Conflict("Budget version was created concurrently, please retry")
    db.refresh(version)
    return {"budget_version": version_to_dict(version)}


@router.put("/{version_id}")
def update_version(
    version_id: uuid.UUID,
    payload: BudgetVersionUpdate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """
    Edit a budget version.

    Its creator may edit it while it is a draft; budget managers of the
    project and system admins may edit it at any time. Approval goes through
    ``PATCH /{id}/approve``.
    """
    version = _get_version(db, version_id)
    data = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not data:
        raise ValidationFailed("No fields to update provided")

    is_budget_manager = user.is_admin or has_project_permission(db, user.id, version.project_id, Permission.MANAGE_BUDGET)
    is_draft_owner = version.created_by == user.id and version.status == "draft"
    if not (is_budget_manager or is_draft_owner):
        raise Forbidden("Only the creator can edit a draft budget version")
    if data.get("status") == "approved":
        raise ValidationFailed("Use the approve endpoint to approve a budget version")

    for k, v in data.items():
        setattr(version, k, v)
    version.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(version)
    return {"budget_version": version_to_dict(version)}


@router.patch("/{version_id}/approve")
def approve_version(
    version_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(SystemRole.MANAGER)),
):
    version = _get_version(db, version_id)
    if version.status == "approved":
        raise InvalidStateTransition("Budget version is already approved")
    version.status = "approved"
    version.approved_by = user.id
    version.approved_at = datetime.utcnow()
    db.commit()
    db.refresh(version)
    log.info("budget_version_approved", version_id=str(version.id), approved_by=str(user.id))
    return {"budget_version": version_to_dict(version)}


@router.delete("/{version_id}")
def delete_version(version_id: uuid.UUID, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    version = _get_version(db, version_id)
    if not user.is_admin:
        if version.status != "draft":
            raise Forbidden("Can only delete draft versions")
        if version.created_by != user.id and not has_project_permission(
            db, user.id, version.project_id, Permission.MANAGE_BUDGET
        ):
            raise Forbidden("Only the creator can delete a draft budget version")
        if db.query(BudgetCategory.id).filter(BudgetCategory.budget_version_id == version.id).first():
            raise DependencyConflict(
                "Cannot delete budget version with associated categories. "
                "Please remove categories first or contact an admin."
            )
    # Admin delete detaches the categories
    db.query(BudgetCategory).filter(BudgetCategory.budget_version_id == version.id).update(
        {"budget_version_id": None}, synchronize_session=False
    )
    db.delete(version)
    db.commit()
    return {"message": "Budget version deleted"}
