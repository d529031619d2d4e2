import uuid
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

from .auth import SystemRoleName
from .common import PartialUpdate


NotificationType = Literal["info", "warning", "error", "success"]


class AdminUserCreate(BaseModel):
    email: EmailStr
    full_name: str = Field(min_length=1, max_length=255)
    role: SystemRoleName
    department: Optional[str] = None
    status: Literal["active", "inactive"] = "active"


class AdminUserUpdate(PartialUpdate):
    clearable = frozenset({"department", "business_unit_id"})

    full_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    role: Optional[SystemRoleName] = None
    is_active: Optional[bool] = None
    department: Optional[str] = None
    business_unit_id: Optional[uuid.UUID] = None


class NotificationCreate(BaseModel):
    user_id: uuid.UUID
    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1, max_length=1000)
    type: NotificationType = "info"
    action_url: Optional[str] = Field(default=None, max_length=500)


class BroadcastRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1, max_length=1000)
    type: NotificationType = "info"
    role_filter: Optional[List[SystemRoleName]] = None
