import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import structlog

from ..db import get_db
from ..errors import Conflict, Forbidden, NotFound, Unauthenticated
from ..models.models import User
from ..schemas.auth import RegisterRequest, LoginRequest, ProfileUpdate
from ..services.roles import SystemRole
from ..services.serializers import user_to_dict
from .security import (
    CurrentUser,
    get_password_hash,
    verify_password,
    create_access_token,
    get_current_user,
)


router = APIRouter(prefix="/auth", tags=["auth"])
log = structlog.get_logger(__name__)


def _session_payload(user: User) -> dict:
    return {
        "token": create_access_token(str(user.id), user.role),
        "user": {
            "id": str(user.id),
            "email": user.email,
            "full_name": user.full_name,
            "department": user.department,
            "role": user.role,
        },
    }


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(req: RegisterRequest, db: Session = Depends(get_db)):
    email = req.email.lower()
    if db.query(User.id).filter(User.email == email).first():
        raise Conflict("User already exists")
    # Self-registration always yields a regular user
    user = User(
        email=email,
        password_hash=get_password_hash(req.password),
        full_name=req.full_name.strip(),
        department=req.department.strip(),
        role=SystemRole.USER.value,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("User already exists")
    db.refresh(user)
    log.info("user_registered", user_id=str(user.id))
    return _session_payload(user)


@router.post("/login")
def login(req: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == req.email.lower()).first()
    if not user or not verify_password(req.password, user.password_hash):
        raise Unauthenticated("Invalid credentials")
    if not user.is_active:
        raise Unauthenticated("Account is deactivated")
    user.last_login_at = datetime.utcnow()
    db.commit()
    return _session_payload(user)


@router.get("/me")
def me(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    row = db.query(User).filter(User.id == user.id).first()
    if not row:
        raise NotFound("User not found")
    return {"user": user_to_dict(row)}


def _profile_target(db: Session, user: CurrentUser, user_id: uuid.UUID) -> User:
    if user.id != user_id and not user.is_admin:
        raise Forbidden("Access denied")
    row = db.query(User).filter(User.id == user_id).first()
    if not row:
        raise NotFound("User not found")
    return row


@router.get("/profile/{user_id}")
def get_profile(user_id: uuid.UUID, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"profile": user_to_dict(_profile_target(db, user, user_id))}


@router.put("/profile/{user_id}")
def update_profile(
    user_id: uuid.UUID,
    payload: ProfileUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = _profile_target(db, user, user_id)
    data = payload.model_dump(exclude_unset=True)
    if "role" in data and not user.is_admin:
        raise Forbidden("Only administrators can change roles")
    password = data.pop("password", None)
    if password:
        row.password_hash = get_password_hash(password)
    for k, v in data.items():
        if v is not None:
            setattr(row, k, v)
    row.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(row)
    return {"profile": user_to_dict(row)}
