from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import CurrentUser, get_current_user
from ..services import analytics


router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    """Portfolio metrics over the projects the caller can see."""
    return {"metrics": analytics.dashboard_metrics(db, user)}


@router.get("/risks")
def risks(db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return {"risks": analytics.risk_analysis(db, user)}
