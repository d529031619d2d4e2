from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import User
from ..auth.security import CurrentUser, get_current_user


router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("")
def list_users(db: Session = Depends(get_db), _: CurrentUser = Depends(get_current_user)):
    """Active users for assignment dropdowns."""
    rows = db.query(User).filter(User.is_active.is_(True)).order_by(User.full_name.asc()).all()
    return {
        "users": [
            {"id": str(u.id), "email": u.email, "full_name": u.full_name, "department": u.department, "role": u.role}
            for u in rows
        ]
    }
