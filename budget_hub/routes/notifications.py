import uuid
from datetime import date, datetime, time, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import NotFound, ValidationFailed
from ..models.models import Notification, User
from ..auth.security import CurrentUser, get_current_user, require_roles
from ..schemas.admin import BroadcastRequest, NotificationCreate
from ..services import notifications
from ..services.listing import count_where, paginate
from ..services.roles import SystemRole
from ..services.serializers import notification_to_dict


router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("")
def list_notifications(
    unread_only: bool = False,
    page: int = 1,
    limit: int = 20,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """List notifications for the current user, newest first."""
    preds = [Notification.user_id == user.id]
    if unread_only:
        preds.append(Notification.read.is_(False))
    page_ = paginate(
        db,
        select(Notification),
        preds,
        count_column=Notification.id,
        order_by=[Notification.created_at.desc(), Notification.id],
        page=page,
        limit=limit,
    )
    body = page_.envelope("notifications", notification_to_dict)
    body["unread_count"] = count_where(
        db, Notification.id, Notification.user_id == user.id, Notification.read.is_(False)
    )
    return body


@router.put("/read-all")
def mark_all_read(db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    updated = (
        db.query(Notification)
        .filter(Notification.user_id == user.id, Notification.read.is_(False))
        .update({"read": True}, synchronize_session=False)
    )
    db.commit()
    return {"message": "All notifications marked as read", "updated_count": updated}


@router.get("/stats")
def notification_stats(
    start_date: Optional[date] = Query(default=None, alias="startDate"),
    end_date: Optional[date] = Query(default=None, alias="endDate"),
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_roles(SystemRole.ADMIN)),
):
    stmt = select(Notification.type, Notification.read, func.count(Notification.id)).group_by(
        Notification.type, Notification.read
    )
    if start_date and end_date:
        stmt = stmt.where(
            Notification.created_at >= datetime.combine(start_date, time.min),
            Notification.created_at < datetime.combine(end_date + timedelta(days=1), time.min),
        )
    stats = {"total_notifications": 0, "unread_notifications": 0, "read_notifications": 0}
    stats.update({f"{t}_notifications": 0 for t in notifications.NOTIFICATION_TYPES})
    for type_, read, n in db.execute(stmt).all():
        stats["total_notifications"] += n
        stats["read_notifications" if read else "unread_notifications"] += n
        key = f"{type_}_notifications"
        stats[key] = stats.get(key, 0) + n
    return {"stats": stats}


@router.put("/{notification_id}/read")
def mark_read(notification_id: uuid.UUID, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    updated = (
        db.query(Notification)
        .filter(
            Notification.id == notification_id,
            Notification.user_id == user.id,
            Notification.read.is_(False),
        )
        .update({"read": True}, synchronize_session=False)
    )
    if not updated:
        raise NotFound("Notification not found or already read")
    db.commit()
    n = db.get(Notification, notification_id)
    db.refresh(n)
    return {"notification": notification_to_dict(n)}


@router.delete("/{notification_id}")
def delete_notification(notification_id: uuid.UUID, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    n = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user.id)
        .first()
    )
    if not n:
        raise NotFound("Notification not found")
    db.delete(n)
    db.commit()
    return {"message": "Notification deleted successfully"}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_notification(
    payload: NotificationCreate,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_roles(SystemRole.ADMIN)),
):
    if not db.get(User, payload.user_id):
        raise ValidationFailed("User not found")
    n = notifications.create_notification(
        db, payload.user_id, payload.title.strip(), payload.message.strip(), payload.type, payload.action_url
    )
    return {"notification": notification_to_dict(n)}


@router.post("/broadcast", status_code=status.HTTP_201_CREATED)
def broadcast(
    payload: BroadcastRequest,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_roles(SystemRole.ADMIN)),
):
    """Send one notification to every active user, optionally filtered by system role."""
    recipients = select(User.id).where(User.is_active.is_(True))
    if payload.role_filter:
        recipients = recipients.where(User.role.in_(payload.role_filter))
    if db.execute(recipients.limit(1)).first() is None:
        raise ValidationFailed("No users found to notify")

    created = notifications.broadcast(
        db, payload.title.strip(), payload.message.strip(), payload.type, roles=payload.role_filter
    )
    return {
        "message": f"Broadcast notification sent to {len(created)} users",
        "notifications_created": len(created),
    }
